"""
Hierarchy rendering for measurable-category columns.

Pure functions over an id-keyed arena of flat nodes:

    nodes = {n.id: n for n in flat_nodes}
    ids = ancestry_closure(nodes, rated_ids)
    text = render_forest(build_forest(nodes[i] for i in ids))

Building the forest and rendering it are separate passes; nothing here
touches the database.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Iterable


@dataclass(frozen=True)
class FlatNode:
    id: int
    parent_id: int | None
    name: str


@dataclass(frozen=True)
class TreeNode:
    id: int
    name: str
    children: tuple["TreeNode", ...] = ()


def ancestry_closure(arena: dict[int, FlatNode], leaf_ids: Iterable[int]) -> set[int]:
    """Ids of ``leaf_ids`` and all their ancestors present in ``arena``."""
    found: set[int] = set()
    for leaf_id in leaf_ids:
        current = arena.get(leaf_id)
        while current is not None and current.id not in found:
            found.add(current.id)
            current = arena.get(current.parent_id) if current.parent_id is not None else None
    return found


def _sort_key(node: FlatNode):
    return (node.name or "").lower(), node.id


def build_forest(nodes: Iterable[FlatNode]) -> list[TreeNode]:
    """Assemble flat nodes into trees.

    A node whose parent is absent from ``nodes`` becomes a root. Roots and
    siblings are ordered by name, then id.
    """
    arena = {n.id: n for n in nodes}
    children_of: dict[int | None, list[FlatNode]] = defaultdict(list)
    for node in arena.values():
        parent = node.parent_id if node.parent_id in arena else None
        children_of[parent].append(node)

    def _grow(node: FlatNode, seen: frozenset) -> TreeNode:
        kids = sorted(children_of.get(node.id, []), key=_sort_key)
        return TreeNode(
            id=node.id,
            name=node.name,
            children=tuple(_grow(k, seen | {k.id}) for k in kids if k.id not in seen),
        )

    return [_grow(root, frozenset({root.id})) for root in sorted(children_of[None], key=_sort_key)]


def render_forest(roots: list[TreeNode], indent: str = "  ", bullet: str = "- ") -> str:
    """Render trees as a plain-text nested list, one node per line."""
    lines: list[str] = []

    def _walk(node: TreeNode, depth: int):
        lines.append(f"{indent * depth}{bullet}{node.name}")
        for child in node.children:
            _walk(child, depth + 1)

    for root in roots:
        _walk(root, 0)
    return "\n".join(lines)
