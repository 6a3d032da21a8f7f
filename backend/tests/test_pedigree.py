from __future__ import annotations

from loft_core import build_pedigree_tree
from loft_core.pedigree import pedigree_depth, pedigree_label


def _lookup(rows):
    by_id = {row["id"]: row for row in rows}
    return lambda pigeon_id: by_id.get(pigeon_id)


def _line(length):
    """A straight sire line: pigeon 1 is the youngest, pigeon ``length`` the oldest."""
    return [{"id": index, "name": f"P{index}", "sire_id": index + 1 if index < length else None} for index in range(1, length + 1)]


def test_pigeon_without_ancestors_has_empty_branches() -> None:
    pigeon = {"id": 1, "name": "Solo", "sire_id": None, "dam_id": None}

    for generations in (1, 3, 5):
        tree = build_pedigree_tree(pigeon, generations, _lookup([pigeon]))
        assert tree["sire"] is None
        assert tree["dam"] is None


def test_zero_generations_returns_none() -> None:
    pigeon = {"id": 1, "name": "Solo"}

    assert build_pedigree_tree(pigeon, 0, _lookup([pigeon])) is None
    assert build_pedigree_tree(None, 5, _lookup([])) is None


def test_tree_depth_never_exceeds_generations() -> None:
    rows = _line(8)
    lookup = _lookup(rows)

    for generations in range(1, 6):
        tree = build_pedigree_tree(rows[0], generations, lookup)
        assert pedigree_depth(tree) == generations

    assert pedigree_depth(build_pedigree_tree(rows[5], 5, lookup)) == 3


def test_mutual_ancestry_is_bounded_by_depth() -> None:
    rows = [{"id": 1, "name": "A", "sire_id": 2}, {"id": 2, "name": "B", "sire_id": 1}]

    tree = build_pedigree_tree(rows[0], 5, _lookup(rows))

    assert pedigree_depth(tree) == 5
    assert tree["sire"]["sire"]["id"] == 1


def test_self_parent_yields_empty_branch() -> None:
    pigeon = {"id": 4, "name": "Loop", "sire_id": 4, "dam_id": "4"}

    tree = build_pedigree_tree(pigeon, 5, _lookup([pigeon]))

    assert tree["sire"] is None
    assert tree["dam"] is None


def test_shared_ancestors_are_repeated() -> None:
    rows = [
        {"id": 1, "name": "Child", "sire_id": 2, "dam_id": 3},
        {"id": 2, "name": "Father", "sire_id": 4},
        {"id": 3, "name": "Mother", "sire_id": 4},
        {"id": 4, "name": "Grandfather"},
    ]

    tree = build_pedigree_tree(rows[0], 5, _lookup(rows))

    assert tree["sire"]["sire"]["id"] == 4
    assert tree["dam"]["sire"]["id"] == 4


def test_missing_parent_row_ends_branch_and_keeps_legacy_fields() -> None:
    pigeon = {
        "id": 1,
        "name": "Import",
        "sire_id": 99,
        "sire_name": "Old Blue",
        "sire_ring_number": "BE-1998-123",
        "dam_color": "Checker",
    }

    tree = build_pedigree_tree(pigeon, 5, _lookup([pigeon]))

    assert tree["sire"] is None
    assert tree["sire_name"] == "Old Blue"
    assert tree["sire_ring_number"] == "BE-1998-123"
    assert tree["dam_color"] == "Checker"
    assert tree["dam_name"] is None


def test_label_prefers_name_then_ring_number() -> None:
    assert pedigree_label({"id": 1, "name": "Blue Baron", "ring_number": "X"}) == "Blue Baron"
    assert pedigree_label({"id": 1, "ring_number": "NL-2024-1"}) == "NL-2024-1"
    assert pedigree_label({"id": 1, "personal_number": "12"}) == "12"
    assert pedigree_label({"id": 7}) == "Pigeon #7"
