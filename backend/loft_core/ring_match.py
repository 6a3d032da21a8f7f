"""Duplicate detection for ring numbers.

Ring numbers are typed by hand in many layouts ("USA-2025-00123",
"usa 2025 00123", "USA/2025/00123"), so comparisons run on a normalised form
with separators removed.
"""

from __future__ import annotations

import math
import re
from typing import Any, Dict, Iterable, List, Optional

from rapidfuzz.distance import Levenshtein

SIMILARITY_THRESHOLD = 50
CONTAINMENT_FLOOR = 70
MAX_SIMILAR = 3
MIN_NUMERIC_RUN = 4

_SEPARATORS = re.compile(r"[\s\-/]")
_DIGITS = re.compile(r"\d+")

MATCH_FIELDS = ("id", "ring_number", "personal_number", "name", "gender", "status", "bloodline")


def normalize_ring_number(value: Optional[str]) -> str:
    return _SEPARATORS.sub("", value or "").upper()


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _normalized_similarity(left: str, right: str) -> int:
    longest = max(len(left), len(right))
    if longest == 0:
        return 0
    score = (1 - Levenshtein.distance(left, right) / longest) * 100
    if left in right or right in left:
        score = max(score, CONTAINMENT_FLOOR)
    return _round_half_up(score)


def ring_similarity(left: Optional[str], right: Optional[str]) -> int:
    """Similarity of two ring numbers on a 0-100 scale."""
    return _normalized_similarity(normalize_ring_number(left), normalize_ring_number(right))


def _summary(row: Dict[str, Any]) -> Dict[str, Any]:
    summary = {field: row.get(field) for field in MATCH_FIELDS}
    summary["photo"] = row.get("photo_url")
    return summary


def _is_candidate(stored_raw: str, stored: str, wanted: str, numeric_run: Optional[str]) -> bool:
    if not stored:
        return False
    if wanted in stored or stored in wanted:
        return True
    return bool(numeric_run) and numeric_run in stored_raw


def match_ring_number(
    candidate: Optional[str],
    rows: Iterable[Dict[str, Any]],
    exclude_id: Any = None,
) -> Dict[str, Any]:
    """Find an exact duplicate and up to three look-alikes among ``rows``.

    ``rows`` should already be restricted to the caller's own pigeons. The
    result is ``{"exact_match": summary | None, "similar_matches": [...]}``
    where every similar match is ``{"pigeon": summary, "similarity": int}``,
    best first.
    """
    wanted = normalize_ring_number((candidate or "").strip())
    if not wanted:
        return {"exact_match": None, "similar_matches": []}

    digits = _DIGITS.search(wanted)
    numeric_run = digits.group(0) if digits and len(digits.group(0)) >= MIN_NUMERIC_RUN else None

    pool = [row for row in rows if exclude_id is None or str(row.get("id")) != str(exclude_id)]

    exact: Optional[Dict[str, Any]] = None
    for row in pool:
        if normalize_ring_number(row.get("ring_number")) == wanted:
            exact = row
            break

    scored: List[Dict[str, Any]] = []
    for row in pool:
        if exact is not None and row.get("id") == exact.get("id"):
            continue
        stored_raw = str(row.get("ring_number") or "")
        stored = normalize_ring_number(stored_raw)
        if not _is_candidate(stored_raw, stored, wanted, numeric_run):
            continue
        similarity = _normalized_similarity(wanted, stored)
        if similarity >= SIMILARITY_THRESHOLD:
            scored.append({"pigeon": _summary(row), "similarity": similarity})

    scored.sort(key=lambda item: item["similarity"], reverse=True)

    return {
        "exact_match": _summary(exact) if exact is not None else None,
        "similar_matches": scored[:MAX_SIMILAR],
    }
