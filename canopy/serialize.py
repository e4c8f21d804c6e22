"""Snapshots of a forest as JSON-able data.

Format::

    {"RootIds": [root_id, ...],
     "Instances": {"node_unique_id": {"Id": "node_unique_id",      # so that each node knows its own ID
                                      "Parent": Optional[str],     # unique_id_of_parent_node; or for a root node, `None`
                                      "Children": List[str],       # [unique_id_of_child0, ...], in order
                                      "Payload": Any},             # the payload, as produced by `payload_encoder`
                   ...}}

This only converts to and from Python data (and JSON text). Where to store it is up to the caller.
"""

__all__ = ["forest_to_dict", "forest_from_dict",
           "dumps", "loads"]

import logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

import json
from typing import Any, Callable, Dict, Optional

from .config import forest_config
from .forest import Forest
from .instance import Instance, RootedInstance

def _default_payload_encoder(payload: Any) -> Any:
    if isinstance(payload, Instance):
        return payload.to_dict()
    return payload

def forest_to_dict(forest: Forest, payload_encoder: Optional[Callable] = None) -> Dict[str, Any]:
    """Return a JSON-able snapshot of `forest`.

    `payload_encoder`: payload -> JSON-able data. The default converts `Instance` payloads via `Instance.to_dict`,
                       and passes anything else through as-is.

    The snapshot shares no mutable structure with the forest, except what `payload_encoder` returns.
    """
    if payload_encoder is None:
        payload_encoder = _default_payload_encoder
    instances = {}
    for node_id in forest:
        node = forest[node_id]
        instances[node_id] = {"Id": node.id,
                              "Parent": node.parent,
                              "Children": list(node.children),
                              "Payload": payload_encoder(node.payload)}
    return {"RootIds": sorted(forest.get_root_ids()),
            "Instances": instances}

def forest_from_dict(data: Dict[str, Any], payload_decoder: Optional[Callable] = None) -> Forest:
    """Rebuild a forest from a snapshot made by `forest_to_dict`. Node IDs are preserved.

    `payload_decoder`: JSON-able data -> payload. The default passes the data through as-is.
                       For `Instance` payloads, use `Instance.from_dict`.

    If `forest_config.validate_on_load` is set (default), the links are checked, and `ValueError`
    is raised if they are not consistent.
    """
    if payload_decoder is None:
        payload_decoder = lambda payload: payload  # noqa: E731
    try:
        instances = data["Instances"]
        declared_root_ids = set(data["RootIds"])
    except KeyError as exc:
        raise ValueError(f"forest_from_dict: snapshot is missing required field {exc}") from exc

    nodes = {}
    for node_id, record in instances.items():
        try:
            record_id, encoded_payload, parent_id, children = record["Id"], record["Payload"], record["Parent"], record["Children"]
        except KeyError as exc:
            raise ValueError(f"forest_from_dict: node '{node_id}' is missing required field {exc}") from exc
        node = RootedInstance(record_id, payload_decoder(encoded_payload), parent_id)  # decoder errors propagate as-is
        node._children.extend(children)
        nodes[node_id] = node
    forest = Forest._from_nodes(nodes)

    if forest_config.validate_on_load:
        problems = forest.validate()
        if forest.get_root_ids() != declared_root_ids:
            problems.append(f"Declared roots {sorted(declared_root_ids)} do not match the parentless nodes {sorted(forest.get_root_ids())}.")
        if problems:
            raise ValueError(f"forest_from_dict: inconsistent snapshot: {problems}")

    plural_s = "s" if len(forest) != 1 else ""
    logger.info(f"forest_from_dict: loaded forest ({len(forest)} node{plural_s}, {len(forest.get_root_ids())} root(s)).")
    return forest

def dumps(forest: Forest, payload_encoder: Optional[Callable] = None, **kwargs) -> str:
    """Serialize `forest` as JSON text. `kwargs` are passed to `json.dumps` (e.g. `indent=2`)."""
    return json.dumps(forest_to_dict(forest, payload_encoder), **kwargs)

def loads(text: str, payload_decoder: Optional[Callable] = None) -> Forest:
    """Inverse of `dumps`."""
    return forest_from_dict(json.loads(text), payload_decoder)
