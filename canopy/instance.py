"""Instances: the payload type, and the node type that roots a payload in a forest."""

__all__ = ["Instance", "RootedInstance"]

import copy
from typing import Any, Dict, List, Optional, Tuple

class Instance:
    def __init__(self, class_name: str, name: Optional[str] = None, properties: Optional[Dict[str, Any]] = None):
        """A minimal document element, for use as a node payload.

        `class_name`: what kind of element this is, e.g. "Folder" or "Part".
        `name`: human-readable name. Defaults to `class_name`.
        `properties`: property bag, any JSON-able values.

        The forest never looks inside a payload, so any other object can be used as a payload too.
        This class is provided so that there is something sensible to store out of the box.
        """
        self.class_name = class_name
        self.name = name if name is not None else class_name
        self.properties = dict(properties) if properties is not None else {}

    def to_dict(self) -> Dict[str, Any]:
        """Return a JSON-able representation of this instance. The property bag is copied."""
        return {"ClassName": self.class_name,
                "Name": self.name,
                "Properties": copy.deepcopy(self.properties)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Instance":
        """Inverse of `to_dict`."""
        return cls(class_name=data["ClassName"],
                   name=data.get("Name"),
                   properties=copy.deepcopy(data.get("Properties", {})))

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, Instance):
            return NotImplemented
        return (self.class_name, self.name, self.properties) == (other.class_name, other.name, other.properties)

    __hash__ = None  # mutable

    def __repr__(self) -> str:
        return f"<Instance {self.class_name} '{self.name}'>"


class RootedInstance:
    __slots__ = ("_id", "_parent", "_children", "payload")

    def __init__(self, node_id: str, payload: Any, parent: Optional[str]):
        """A payload rooted in a forest: the payload, plus the structural links.

        Instances of this class are created by `Forest`; do not create them manually.

        `payload` may be freely read, replaced, or edited in place.

        `id`, `parent` and `children` are read-only. The links are maintained by the `Forest`
        that owns this node; to restructure the forest, use the `Forest` API.
        """
        self._id = node_id
        self._parent = parent
        self._children: List[str] = []  # order is relevant!
        self.payload = payload

    @property
    def id(self) -> str:
        """The unique ID of this node."""
        return self._id

    @property
    def parent(self) -> Optional[str]:
        """The ID of the parent node, or `None` for a root node."""
        return self._parent

    @property
    def children(self) -> Tuple[str, ...]:
        """The IDs of the child nodes, in order. This is a snapshot."""
        return tuple(self._children)

    def __repr__(self) -> str:
        return f"<RootedInstance {self._id}: parent={self._parent}, {len(self._children)} children, payload={self.payload!r}>"
