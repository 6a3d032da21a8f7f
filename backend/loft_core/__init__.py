"""Loft record keeping reused by the API."""

from .errors import ForbiddenError, NotFoundError, ValidationError
from .images import ImageStore
from .pedigree import build_pedigree_tree
from .racing import CIRCUITS, CLUB, OLR, Circuit
from .ring_match import match_ring_number, normalize_ring_number, ring_similarity
from .store import DataStore

__all__ = [
    "CIRCUITS",
    "CLUB",
    "OLR",
    "Circuit",
    "DataStore",
    "ForbiddenError",
    "ImageStore",
    "NotFoundError",
    "ValidationError",
    "build_pedigree_tree",
    "match_ring_number",
    "normalize_ring_number",
    "ring_similarity",
]
