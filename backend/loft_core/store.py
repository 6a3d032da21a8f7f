from __future__ import annotations

from .breeding import BreedingRecords
from .lookups import LookupRecords
from .market import MarketRecords
from .pigeons import PigeonRecords
from .racing import RacingRecords
from .tables import TableStore


class DataStore(
    PigeonRecords,
    LookupRecords,
    BreedingRecords,
    RacingRecords,
    MarketRecords,
    TableStore,
):
    """Loft records backed by Supabase, falling back to local JSON tables."""
