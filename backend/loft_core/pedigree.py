from __future__ import annotations

from typing import Any, Callable, Dict, Optional

DEFAULT_GENERATIONS = 5

PigeonLookup = Callable[[Any], Optional[Dict[str, Any]]]

LEGACY_ANCESTOR_FIELDS = (
    "sire_name",
    "sire_ring_number",
    "sire_color",
    "dam_name",
    "dam_ring_number",
    "dam_color",
)


def pedigree_label(pigeon: Dict[str, Any]) -> str:
    for key in ("name", "ring_number", "personal_number"):
        value = pigeon.get(key)
        if value:
            return str(value)
    return f"Pigeon #{pigeon.get('id')}"


def _parent(pigeon: Dict[str, Any], key: str, lookup: PigeonLookup) -> Optional[Dict[str, Any]]:
    parent_id = pigeon.get(key)
    if parent_id is None:
        return None
    # A bird listed as its own parent would otherwise repeat until the depth runs out.
    if str(parent_id) == str(pigeon.get("id")):
        return None
    return lookup(parent_id)


def build_pedigree_tree(
    pigeon: Optional[Dict[str, Any]],
    generations: int,
    lookup: PigeonLookup,
) -> Optional[Dict[str, Any]]:
    """Resolve sires and dams into a nested ancestor tree.

    ``lookup`` maps a pigeon id to its row (or ``None``). The walk stops at a
    missing parent or when ``generations`` is used up, so the returned tree
    is never deeper than ``generations``. Ancestors shared between branches
    are repeated, not merged. Free-text ancestor fields are copied onto each
    node so callers can show parents that were never entered as pigeons.
    """
    if not pigeon or generations <= 0:
        return None

    node: Dict[str, Any] = {
        "id": pigeon.get("id"),
        "name": pigeon.get("name"),
        "ring_number": pigeon.get("ring_number"),
        "personal_number": pigeon.get("personal_number"),
        "color": pigeon.get("color"),
        "gender": pigeon.get("gender"),
        "hatch_date": pigeon.get("hatch_date"),
        "label": pedigree_label(pigeon),
        "sire": build_pedigree_tree(_parent(pigeon, "sire_id", lookup), generations - 1, lookup),
        "dam": build_pedigree_tree(_parent(pigeon, "dam_id", lookup), generations - 1, lookup),
    }
    for field in LEGACY_ANCESTOR_FIELDS:
        node[field] = pigeon.get(field)
    return node


def pedigree_depth(node: Optional[Dict[str, Any]]) -> int:
    if not node:
        return 0
    return 1 + max(pedigree_depth(node.get("sire")), pedigree_depth(node.get("dam")))
