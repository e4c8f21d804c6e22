"""Property-based tests for canopy.forest: invariants under random sequences of structural edits."""

from hypothesis import given, settings, strategies as st

from canopy.forest import Forest

from .test_forest import assert_invariants, shape

# Each operation picks its targets by index into the sorted IDs of a forest, so that any drawn
# integers are meaningful. Index 0 of a parent choice means "no parent" (make a root).
_insert = st.tuples(st.just("insert"), st.integers(0, 3), st.integers(0, 64))
_remove = st.tuples(st.just("remove"), st.integers(0, 3), st.integers(0, 64))
_transplant = st.tuples(st.just("transplant"), st.integers(0, 3), st.integers(0, 3), st.integers(0, 64), st.integers(0, 64))
_operations = st.lists(st.one_of(_insert, _remove, _transplant), max_size=60)


def _pick_parent(forest, choice):
    ids = sorted(forest)
    if choice == 0 or not ids:
        return None
    return ids[(choice - 1) % len(ids)]


def _pick_node(forest, choice):
    ids = sorted(forest)
    if not ids:
        return None
    return ids[choice % len(ids)]


def _run(operations):
    forests = [Forest(), Forest()]
    for operation in operations:
        kind = operation[0]
        if kind == "insert":
            _, f, parent_choice = operation
            target = forests[f % len(forests)]
            parent_id = _pick_parent(target, parent_choice)
            node_id = target.insert_instance({"n": len(target)}, parent_id)
            if parent_id is not None:
                assert target.get_children(parent_id)[-1] == node_id
        elif kind == "remove":
            _, f, node_choice = operation
            source = forests[f % len(forests)]
            node_id = _pick_node(source, node_choice)
            if node_id is None:
                continue
            expected = {node.id for node in source.descendants(node_id)}
            removed = source.remove_instance(node_id)
            assert set(removed) == expected
            assert not expected.intersection(source)
            assert removed.get_root_ids() == {node_id}
            if len(forests) < 4:
                forests.append(removed)
        else:
            _, s, t, node_choice, parent_choice = operation
            source = forests[s % len(forests)]
            target = forests[t % len(forests)]
            node_id = _pick_node(source, node_choice)
            if node_id is None:
                continue
            parent_id = _pick_parent(target, parent_choice)
            moved = {node.id for node in source.descendants(node_id)}
            if source is target and parent_id in moved:
                before = shape(source)
                try:
                    target.transplant(source, node_id, parent_id)
                except ValueError:
                    pass
                else:
                    raise AssertionError("moving a node under its own subtree should fail")
                assert shape(source) == before
                continue
            target.transplant(source, node_id, parent_id)
            if source is not target:
                assert not moved.intersection(source)
            assert {node.id for node in target.descendants(node_id)} == moved
            assert target.get_parent(node_id) == parent_id
    return forests


@settings(max_examples=200, deadline=None)
@given(operations=_operations)
def test_invariants_hold_after_any_edit_sequence(operations):
    for forest in _run(operations):
        assert_invariants(forest)


@settings(max_examples=100, deadline=None)
@given(operations=_operations, order=st.sampled_from(["stack", "document"]))
def test_descendants_cover_each_node_once(operations, order):
    for forest in _run(operations):
        for node_id in forest:
            visited = [node.id for node in forest.descendants(node_id, order=order)]
            assert visited[0] == node_id
            assert len(visited) == len(set(visited))
            # every visited node is below `node_id`; every node below `node_id` is visited
            below = {other for other in forest if node_id in forest.linearize_up(other)}
            assert set(visited) == below


@settings(max_examples=100, deadline=None)
@given(operations=_operations, choice=st.integers(0, 64))
def test_remove_then_transplant_back_restores_structure(operations, choice):
    forest = _run(operations)[0]
    node_id = _pick_node(forest, choice)
    if node_id is None:
        return
    parent_id = forest.get_parent(node_id)
    if parent_id is not None:
        # reinsertion appends, so put the node last among its siblings first
        forest.transplant(forest, node_id, parent_id)
    before = shape(forest)
    removed = forest.remove_instance(node_id)
    forest.transplant(removed, node_id, parent_id)
    assert shape(forest) == before
