"""
Forest assembly from flat parent-pointer records.

Used for the permission tree and the organization tree.
"""
from collections import defaultdict
from collections.abc import Callable, Hashable, Iterable
from typing import Any, Optional, TypeVar


RecordT = TypeVar("RecordT")


def build_tree(
    records: Iterable[RecordT],
    id_of: Callable[[RecordT], Hashable],
    parent_of: Callable[[RecordT], Optional[Hashable]],
    render: Callable[[RecordT, list[Any]], Any],
    root: Optional[Hashable] = None,
) -> list[Any]:
    """
    Build the forest hanging below ``root``.

    Siblings keep their input order. Records whose parent chain never
    reaches ``root`` are left out, and a record is rendered at most once,
    so parent cycles cannot recurse forever.

    Args:
        records: flat records, in display order
        id_of: record -> its id
        parent_of: record -> its parent id, or None at the top level
        render: (record, rendered children) -> node
        root: parent id of the top-level nodes

    Returns:
        Rendered top-level nodes
    """
    children: dict[Optional[Hashable], list[RecordT]] = defaultdict(list)
    for record in records:
        children[parent_of(record)].append(record)

    visited: set[Hashable] = set()

    def walk(parent_id: Optional[Hashable]) -> list[Any]:
        nodes = []
        for record in children.get(parent_id, []):
            record_id = id_of(record)
            if record_id in visited:
                continue
            visited.add(record_id)
            nodes.append(render(record, walk(record_id)))
        return nodes

    return walk(root)


def render_permission(permission, children: list[dict]) -> dict:
    return {
        "id": permission.id,
        "name": permission.name,
        "type": permission.type,
        "parentId": permission.parent_id,
        "level": permission.level,
        "children": children,
    }


def build_permission_tree(permissions: Iterable[Any]) -> list[dict]:
    """Permission forest, top-level sections first, in seed order."""
    return build_tree(
        permissions,
        id_of=lambda p: p.id,
        parent_of=lambda p: p.parent_id,
        render=render_permission,
    )
