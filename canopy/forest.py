"""Forest of identity-addressed instances.

Used as the in-memory model of a hierarchical document (scene graph, DOM).
"""

__all__ = ["Forest"]

import logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

import collections
import io
from typing import Any, Callable, Dict, FrozenSet, Iterator, List, Optional, Set

from unpythonic import partition, uniqify

from .config import forest_config
from .ident import new_unique
from .instance import RootedInstance

_traversal_orders = ("stack", "document")

class Forest:
    def __init__(self):
        """Forest of instances, addressed by unique ID.

        Each node (a `RootedInstance`) wraps a payload, and has at most one parent, but may have many children,
        making a forest structure. The order of the children of a node is significant, and is preserved by all
        operations that do not explicitly reorder them.

        The forest is the sole owner of its nodes. A node is created by `insert_instance`, and ceases to exist
        (as far as this forest is concerned) when it, or one of its ancestors, is removed by `remove_instance`,
        or moved to another forest by `transplant`.

        The forest keeps the links consistent in both directions:

          - If a node has a parent, that parent is in this forest, and lists the node among its children.
          - Each child listed by a node is in this forest, and has that node as its parent. No duplicates.
          - The root IDs are exactly the IDs of the nodes that have no parent.
          - No node is its own ancestor.

        The payload of a node is never inspected; you can read, replace or edit it freely (`node.payload`).
        The links are read-only from the outside; use the methods of this class to restructure the forest.

        NOTE: Not thread-safe. If you need to access the same forest from several threads, lock it yourself.

        NOTE: A forest cannot be copied. The payload type may not support copying, so `copy.copy` and
              `copy.deepcopy` raise `TypeError`. To split a forest, use `remove_instance`; to merge, `transplant`.
        """
        self._nodes: Dict[str, RootedInstance] = {}
        self._root_ids: Set[str] = set()
        self._generation = 0  # bumped on each structural edit; lets `descendants` detect stale iteration

    @classmethod
    def _from_nodes(cls, nodes: Dict[str, RootedInstance]) -> "Forest":
        """Make a new forest that takes ownership of the already linked `nodes`.

        The root IDs are computed from the parent links. The caller is responsible for the links being consistent.
        """
        forest = cls()
        forest._nodes.update(nodes)
        forest._root_ids.update(node_id for node_id, node in nodes.items() if node._parent is None)
        return forest

    # --------------------------------------------------------------------------------
    # Lookup

    def get_instance(self, node_id: str) -> Optional[RootedInstance]:
        """Return the node `node_id`, or `None` if there is no such node in this forest.

        The node's payload may be edited via the returned reference.
        """
        return self._nodes.get(node_id, None)

    def __getitem__(self, node_id: str) -> RootedInstance:
        """Like `get_instance`, but raise `KeyError` if there is no such node."""
        try:
            return self._nodes[node_id]
        except KeyError:
            raise KeyError(f"Forest: no such node '{node_id}'") from None

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[str]:
        """Iterate over the IDs of all nodes in this forest, in arbitrary order."""
        return iter(self._nodes)

    def get_root_ids(self) -> FrozenSet[str]:
        """Return the IDs of all root nodes (i.e. nodes that have no parent).

        These are tracked incrementally, so this is cheap. The return value is a snapshot.
        """
        return frozenset(self._root_ids)

    def get_parent(self, node_id: str) -> Optional[str]:
        """Return the parent of `node_id`.

        It may be `None` if `node_id` is a root node.
        """
        if node_id not in self._nodes:
            raise KeyError(f"Forest.get_parent: no such node '{node_id}'")
        return self._nodes[node_id]._parent

    def get_children(self, node_id: str) -> List[str]:
        """Return a list of children of `node_id`, in order.

        That list may be empty, if `node_id` is a leaf node. The list is a copy.
        """
        if node_id not in self._nodes:
            raise KeyError(f"Forest.get_children: no such node '{node_id}'")
        return list(self._nodes[node_id]._children)

    # --------------------------------------------------------------------------------
    # Structural edits

    def insert_instance(self, payload: Any, parent_id: Optional[str]) -> str:
        """Create a node containing `payload`, and store it in the forest.

        Link it to the parent node with unique id `parent_id`, if given. Linking is done in both directions:
          - The new node gets a parent node, and
          - The parent node gets a new child node (added to the end of the list of children).

        If `parent_id is None`, the new node becomes a root node.

        There is no limitation on how many root nodes the forest may have.

        Returns the unique ID of the new node.
        """
        if parent_id is not None and parent_id not in self._nodes:  # check first, before creating anything
            raise KeyError(f"Forest.insert_instance: no such parent node '{parent_id}'")
        node = RootedInstance(new_unique(), payload, parent_id)
        self._link(node)
        return node.id

    def remove_instance(self, root_id: str) -> Optional["Forest"]:
        """Remove the node `root_id` from this forest, along with all of its descendants.

        The removed subtree is returned as a new, independent `Forest`, whose only root is `root_id`.
        The internal structure of the subtree is preserved. Only the link between `root_id` and its
        former parent (if any) is severed, on both sides.

        If there is no node `root_id` in this forest, return `None`, and do nothing.
        """
        node = self._nodes.get(root_id, None)
        if node is None:
            return None

        self._unlink(node, who="Forest.remove_instance")

        # Order doesn't matter here; the result is keyed by ID. Popping from the storage guarantees each node
        # is collected at most once, and only nodes reachable via child links are ever visited.
        detached_nodes = {}
        ids_to_visit = [root_id]
        while ids_to_visit:
            node_id = ids_to_visit.pop()
            node = self._nodes.pop(node_id, None)
            if node is None:
                continue
            ids_to_visit.extend(node._children)
            detached_nodes[node_id] = node

        plural_s = "s" if len(detached_nodes) != 1 else ""
        logger.debug(f"Forest.remove_instance: detached subtree '{root_id}' ({len(detached_nodes)} node{plural_s}).")
        return Forest._from_nodes(detached_nodes)

    def transplant(self, source_forest: "Forest", source_id: str, new_parent_id: Optional[str]) -> str:
        """Move the subtree starting from `source_id` from `source_forest` into this forest.

        The moved subtree is attached to the node `new_parent_id` of this forest (as its last child),
        or if `new_parent_id is None`, it becomes a new root in this forest.

        All moved nodes keep their IDs, payloads, and children. Only the top node of the subtree gets a new parent.

        `source_forest` may be this forest itself. Then the subtree is just reattached to a new parent;
        the new parent must not be inside the subtree.

        Everything is checked before anything is edited, so if this raises, both forests are unchanged:
          - `KeyError` if `source_id` is not in `source_forest`, or `new_parent_id` is not in this forest.
          - `ValueError` if some node in the subtree has the same ID as a node already in this forest,
            or if the move would make a node its own ancestor.

        For convenience, returns `source_id`.
        """
        if source_id not in source_forest._nodes:
            raise KeyError(f"Forest.transplant: no such source node '{source_id}'")
        if new_parent_id is not None and new_parent_id not in self._nodes:
            raise KeyError(f"Forest.transplant: no such parent node '{new_parent_id}'")

        if source_forest is self:
            return self._reparent(source_id, new_parent_id)

        # Discover the whole subtree first, reading each node's children before touching anything.
        # `uniqify`, because a corrupted child list may mention a node twice; it is still moved once.
        moved_ids = list(uniqify(node.id for node in source_forest._walk(source_id, "stack", source_forest._generation)))
        collisions = [node_id for node_id in moved_ids if node_id in self._nodes]
        if collisions:
            raise ValueError(f"Forest.transplant: while moving subtree '{source_id}': {len(collisions)} node ID(s) already exist in the target forest: {collisions}")

        subtree = source_forest.remove_instance(source_id)
        assert subtree is not None
        assert len(subtree._nodes) == len(moved_ids)

        top_node = subtree._nodes[source_id]
        top_node._parent = new_parent_id
        for node_id, node in subtree._nodes.items():
            if node_id != source_id:
                self._nodes[node_id] = node
        self._link(top_node)
        subtree._nodes.clear()
        subtree._root_ids.clear()

        plural_s = "s" if len(moved_ids) != 1 else ""
        logger.debug(f"Forest.transplant: moved subtree '{source_id}' ({len(moved_ids)} node{plural_s}) under '{new_parent_id}'.")
        return source_id

    def _reparent(self, node_id: str, new_parent_id: Optional[str]) -> str:
        """Reattach the subtree `node_id` of this forest to `new_parent_id` (`None` to make it a root)."""
        node = self._nodes[node_id]
        if new_parent_id is not None:
            ancestor_ids = self.linearize_up(new_parent_id)
            if node_id in ancestor_ids:
                raise ValueError(f"Forest.transplant: cannot move node '{node_id}' under '{new_parent_id}', which is in its own subtree")
        self._unlink(node, who="Forest.transplant")
        node._parent = new_parent_id
        self._link(node)
        return node_id

    def _link(self, node: RootedInstance) -> None:
        """Store `node`, linking it to the parent given in its `parent` field, or making it a root."""
        parent_id = node._parent
        if parent_id is not None:
            self._nodes[parent_id]._children.append(node.id)
        else:
            self._root_ids.add(node.id)
        self._nodes[node.id] = node
        self._generation += 1

    def _unlink(self, node: RootedInstance, who: str) -> None:
        """Sever the link between `node` and its parent (or the root set), on both sides.

        The node stays in storage; the caller must then either relink it or pop it.
        """
        parent_id = node._parent
        if parent_id is not None:
            # check everything first, so that a corrupted forest is not edited further
            if parent_id not in self._nodes:
                raise KeyError(f"{who}: node '{node.id}': its parent node '{parent_id}' does not exist")
            siblings = self._nodes[parent_id]._children
            if node.id not in siblings:
                raise ValueError(f"{who}: node '{node.id}' is not in the children of its parent '{parent_id}'")
            siblings.remove(node.id)
            node._parent = None
        else:
            self._root_ids.discard(node.id)
        self._generation += 1

    # --------------------------------------------------------------------------------
    # Traversal

    def descendants(self, node_id: str, order: Optional[str] = None) -> Iterator[RootedInstance]:
        """Iterate lazily over the node `node_id` and all of its descendants.

        The first item is the node `node_id` itself. If there is no such node, the iterator is empty.

        `order`: how to walk the tree. Both are depth first.
                 "stack": each node's children are visited last child first.
                 "document": each node's children are visited in order (i.e. a pre-order walk).
                 If `None`, use `forest_config.descendants_order` (default "stack").

        The forest must not be structurally edited (nodes inserted, removed, moved) while the iterator is alive.
        If it is, the iterator raises `RuntimeError` on its next step, even if nothing was left to visit.
        Editing payloads is fine.
        """
        if order is None:
            order = forest_config.descendants_order
        if order not in _traversal_orders:
            raise ValueError(f"Forest.descendants: unknown order '{order}'; expected one of {_traversal_orders}")
        return self._walk(node_id, order, self._generation)

    def _walk(self, node_id: str, order: str, generation: int) -> Iterator[RootedInstance]:
        ids_to_visit = [node_id]
        while ids_to_visit:
            if self._generation != generation:
                raise RuntimeError(f"Forest.descendants: forest changed structure during iteration (walk started at '{node_id}')")
            node = self._nodes.get(ids_to_visit.pop(), None)
            if node is None:
                continue
            if order == "stack":
                ids_to_visit.extend(node._children)
            else:
                ids_to_visit.extend(reversed(node._children))
            yield node
        if self._generation != generation:  # also on the final step, like `dict`
            raise RuntimeError(f"Forest.descendants: forest changed structure during iteration (walk started at '{node_id}')")

    def walk_up(self, node_id: str, callback: Optional[Callable] = None) -> str:
        """Starting from `node_id`, walk up the parent chain until a root node is reached.

        `callback`: Optional. This can be used e.g. to gather data from the parent chain.

                    For each node encountered, including `node_id` itself, `callback` (if provided) is called
                    with one argument, the node (a `RootedInstance`). The return value of `callback` is ignored.

                    `callback` may raise `StopIteration` to terminate the walk at that node.

        Returns the unique ID of the root node that was found, or the unique ID of the node where the walk was terminated
        (if told to stop by `callback`).
        """
        node = self[node_id]
        while True:
            if callback is not None:
                try:
                    callback(node)
                except StopIteration:
                    break
            parent_node_id = node._parent
            if parent_node_id is None:
                break
            node = self._nodes[parent_node_id]
        return node.id

    def linearize_up(self, node_id: str) -> List[str]:
        """Return the IDs on the path from a root node down to and including `node_id` (root node first)."""
        path = collections.deque()
        def prepend_to_path(node):
            path.appendleft(node.id)
        self.walk_up(node_id, callback=prepend_to_path)
        return list(path)

    # --------------------------------------------------------------------------------
    # Maintenance

    def validate(self) -> List[str]:
        """Check that the links in this forest are consistent.

        Returns a list of human-readable descriptions of the problems found. Empty if all is well.

        Problems should never occur when the forest is edited only via its API. This is mainly useful
        for checking data that came from elsewhere (see `canopy.serialize`), and for testing.
        """
        problems = []
        for node_id, node in self._nodes.items():
            if node.id != node_id:
                problems.append(f"Node '{node.id}' is stored under a different ID '{node_id}'.")

            parent_id = node._parent
            if parent_id is None:
                if node_id not in self._root_ids:
                    problems.append(f"Node '{node_id}' has no parent, but is not listed as a root.")
            else:
                if node_id in self._root_ids:
                    problems.append(f"Node '{node_id}' is listed as a root, but has parent '{parent_id}'.")
                if parent_id not in self._nodes:
                    problems.append(f"Node '{node_id}' links to nonexistent parent '{parent_id}'.")
                elif node_id not in self._nodes[parent_id]._children:
                    problems.append(f"Node '{node_id}' is not in the children of its parent '{parent_id}'.")

            duplicates = [child_id for child_id, count in collections.Counter(node._children).items() if count > 1]
            if duplicates:
                problems.append(f"Node '{node_id}' lists some children more than once: {duplicates}.")
            nonexistent_children, valid_children = partition(pred=lambda child_id: child_id in self._nodes,
                                                             iterable=node._children)
            nonexistent_children = list(nonexistent_children)
            if nonexistent_children:
                problems.append(f"Node '{node_id}' links to one or more nonexistent children, {nonexistent_children}.")
            for child_id in valid_children:
                child_parent_id = self._nodes[child_id]._parent
                if child_parent_id != node_id:
                    problems.append(f"Node '{node_id}' lists child '{child_id}', whose parent is '{child_parent_id}'.")

        for root_id in self._root_ids:
            if root_id not in self._nodes:
                problems.append(f"Root '{root_id}' does not exist.")

        # Every node whose parent chain ends at a root is reachable from the roots. What is left, is on a cycle.
        reachable_node_ids = set()
        ids_to_visit = list(self._root_ids)
        while ids_to_visit:
            node_id = ids_to_visit.pop()
            if node_id in reachable_node_ids or node_id not in self._nodes:
                continue
            reachable_node_ids.add(node_id)
            ids_to_visit.extend(self._nodes[node_id]._children)
        unreachable_node_ids = set(self._nodes.keys()).difference(reachable_node_ids)
        if unreachable_node_ids:
            problems.append(f"Nodes not reachable from any root (parent chain has a cycle): {sorted(unreachable_node_ids)}.")

        for problem in problems:
            logger.warning(f"Forest.validate: {problem}")
        return problems

    def __str__(self) -> str:
        """Return a human-readable, multiline string listing all nodes currently in the forest. Mainly for debugging."""
        output = io.StringIO()
        output.write(f"roots: {sorted(self._root_ids)}\n\n")
        for node_id, node in self._nodes.items():
            output.write(f"{node_id}\n")  # on its own line for easy copy'n'pasting
            output.write(f"    parent: {node._parent}\n")
            output.write(f"    children: {node._children}\n")
            output.write(f"    payload: {node.payload!r}\n")
            output.write("\n")
        return output.getvalue()

    def __copy__(self):
        raise TypeError("Forest: forests cannot be copied (the payload type may not support it)")

    def __deepcopy__(self, memo):
        raise TypeError("Forest: forests cannot be copied (the payload type may not support it)")
