from __future__ import annotations

from collections.abc import Iterator

from prdeck.log_tree import (
    LINE_DEPTH,
    STEP_DEPTH,
    LogTree,
    NodePath,
    TreeNode,
    children,
    children_of,
    is_valid_path,
    node_has_failures,
)
from prdeck.models import Direction


def flatten_visible(tree: LogTree, expanded: frozenset[NodePath]) -> Iterator[NodePath]:
    """Yield visible node paths in depth-first pre-order.

    Top-level workflows are always visible; a node's children are visible only
    while the node's own path is in ``expanded``.
    """
    yield from _walk_visible(tree, (), expanded)


def _walk_visible(
    node: TreeNode, path: NodePath, expanded: frozenset[NodePath]
) -> Iterator[NodePath]:
    for index, child in enumerate(children(node)):
        child_path = path + (index,)
        yield child_path
        if child_path in expanded:
            yield from _walk_visible(child, child_path, expanded)


def visible_index(
    tree: LogTree, expanded: frozenset[NodePath], path: NodePath
) -> int | None:
    for index, candidate in enumerate(flatten_visible(tree, expanded)):
        if candidate == path:
            return index
    return None


def toggle(tree: LogTree, expanded: frozenset[NodePath], path: NodePath) -> frozenset[NodePath]:
    if not path or not children_of(tree, path):
        return expanded
    if path in expanded:
        return expanded - {path}
    return expanded | {path}


def reveal(expanded: frozenset[NodePath], path: NodePath) -> frozenset[NodePath]:
    ancestors = {path[:depth] for depth in range(1, len(path))}
    if ancestors <= expanded:
        return expanded
    return expanded | ancestors


def find_next_error(tree: LogTree, cursor: NodePath, direction: Direction) -> NodePath | None:
    """Return the path of the next error line from ``cursor``, or None.

    Candidates are tried innermost scope first: remaining lines of the current
    step, then sibling steps, sibling jobs and finally sibling workflows. A
    node header precedes its own descendants, so searching forward from a
    header starts inside it and searching backward from a header skips it.
    """
    if not is_valid_path(tree, cursor):
        return None
    forward = direction == "forward"
    depth = len(cursor)
    for level in range(min(depth, STEP_DEPTH), -1, -1):
        parent = cursor[:level]
        siblings = children_of(tree, parent)
        if level < depth:
            current = cursor[level]
            indices = (
                range(current + 1, len(siblings)) if forward else range(current - 1, -1, -1)
            )
        elif forward:
            indices = range(len(siblings))
        else:
            continue
        for index in indices:
            hit = _first_error_within(siblings[index], parent + (index,), forward)
            if hit is not None:
                return hit
    return None


def _first_error_within(node: TreeNode, path: NodePath, forward: bool) -> NodePath | None:
    if not node_has_failures(node):
        return None
    if len(path) == LINE_DEPTH:
        return path
    kids = children(node)
    indices = range(len(kids)) if forward else range(len(kids) - 1, -1, -1)
    for index in indices:
        hit = _first_error_within(kids[index], path + (index,), forward)
        if hit is not None:
            return hit
    return None


def find_step(tree: LogTree, cursor: NodePath, direction: Direction) -> NodePath | None:
    """Return the next or previous step header in document order."""
    steps = [
        (w_index, j_index, s_index)
        for w_index, workflow in enumerate(tree.workflows)
        for j_index, job in enumerate(workflow.jobs)
        for s_index in range(len(job.steps))
    ]
    # Tuple order is document order: a header sorts before its descendants.
    if direction == "forward":
        return next((path for path in steps if path > cursor), None)
    return next((path for path in reversed(steps) if path < cursor), None)


def move_cursor(
    tree: LogTree, expanded: frozenset[NodePath], cursor: NodePath, delta: int
) -> NodePath:
    visible = list(flatten_visible(tree, expanded))
    if not visible:
        return cursor
    try:
        current = visible.index(cursor)
    except ValueError:
        return visible[0]
    target = min(max(current + delta, 0), len(visible) - 1)
    return visible[target]


def scroll_to_cursor(cursor_index: int, scroll_offset: int, viewport_height: int) -> int:
    height = max(viewport_height, 1)
    if cursor_index < scroll_offset:
        return cursor_index
    if cursor_index >= scroll_offset + height:
        return cursor_index - height + 1
    return scroll_offset
