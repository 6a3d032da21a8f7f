from __future__ import annotations

import pytest

from loft_core import DataStore, ForbiddenError, NotFoundError, ValidationError

USER = "user-1"
OTHER = "user-2"


@pytest.fixture(autouse=True)
def reset_env(monkeypatch: pytest.MonkeyPatch):
    for name in ("SUPABASE_URL", "SUPABASE_SERVICE_ROLE_KEY", "SUPABASE_SERVICE_KEY", "SUPABASE_ANON_KEY"):
        monkeypatch.delenv(name, raising=False)
    yield


@pytest.fixture
def store(tmp_path) -> DataStore:
    return DataStore(data_dir=tmp_path)


@pytest.fixture
def pair(store):
    cock = store.create_pigeon(USER, {"ring_number": "COCK-1", "name": "Zeus", "gender": "male"})
    hen = store.create_pigeon(USER, {"ring_number": "HEN-1", "name": "Hera", "gender": "female"})
    return cock, hen


def _status(store: DataStore, pigeon_id) -> str:
    return store.get_row("pigeons", pigeon_id)["status"]


def test_create_pairing_marks_parents_as_breeding(store, pair) -> None:
    cock, hen = pair

    pairing = store.create_pairing(USER, {"sire_id": cock["id"], "dam_id": hen["id"]})

    assert pairing["status"] == "active"
    assert pairing["pair_name"] == "Pair #1"
    assert pairing["current_clutch_number"] == 1
    assert pairing["sire"]["ring_number"] == "COCK-1"
    assert pairing["dam"]["ring_number"] == "HEN-1"
    assert pairing["clutches"] == []
    assert _status(store, cock["id"]) == "breeding"
    assert _status(store, hen["id"]) == "breeding"


def test_create_pairing_validates_parents(store, pair) -> None:
    cock, hen = pair

    with pytest.raises(ValidationError) as exc:
        store.create_pairing(USER, {"sire_id": hen["id"]})

    assert exc.value.errors == {
        "sire_id": ["The selected sire is invalid."],
        "dam_id": ["The dam field is required."],
    }


def test_pigeon_can_only_be_in_one_active_pairing(store, pair) -> None:
    cock, hen = pair
    other_hen = store.create_pigeon(USER, {"ring_number": "HEN-2", "gender": "female"})
    store.create_pairing(USER, {"sire_id": cock["id"], "dam_id": hen["id"]})

    with pytest.raises(ValidationError) as exc:
        store.create_pairing(USER, {"sire_id": cock["id"], "dam_id": other_hen["id"]})

    assert exc.value.errors == {"sire_id": ["One or both pigeons are already in an active pairing."]}


def test_ending_pairing_returns_parents_to_stock(store, pair) -> None:
    cock, hen = pair
    pairing = store.create_pairing(USER, {"sire_id": cock["id"], "dam_id": hen["id"], "pair_name": "Gold pair"})

    ended = store.end_pairing(USER, pairing["id"])

    assert ended["status"] == "inactive"
    assert ended["ended_at"]
    assert _status(store, cock["id"]) == "stock"

    with pytest.raises(ValidationError, match="already inactive"):
        store.end_pairing(USER, pairing["id"])

    again = store.create_pairing(USER, {"sire_id": cock["id"], "dam_id": hen["id"]})
    assert again["current_clutch_number"] == 2
    assert again["pair_name"] == "Pair #2"


def test_available_parents_skip_busy_and_inactive_birds(store, pair) -> None:
    cock, hen = pair
    spare = store.create_pigeon(USER, {"ring_number": "COCK-2", "gender": "male"})
    store.create_pigeon(USER, {"ring_number": "COCK-3", "gender": "male", "status": "deceased"})
    pairing = store.create_pairing(USER, {"sire_id": cock["id"], "dam_id": hen["id"]})

    free = store.available_parents(USER)
    assert [row["id"] for row in free["sires"]] == [spare["id"]]
    assert free["dams"] == []

    editing = store.available_parents(USER, pairing_id=pairing["id"])
    assert {row["id"] for row in editing["sires"]} == {cock["id"], spare["id"]}
    assert [row["id"] for row in editing["dams"]] == [hen["id"]]


def test_other_users_pairing_is_forbidden(store, pair) -> None:
    cock, hen = pair
    pairing = store.create_pairing(USER, {"sire_id": cock["id"], "dam_id": hen["id"]})

    with pytest.raises(ForbiddenError):
        store.get_pairing(OTHER, pairing["id"])
    with pytest.raises(NotFoundError):
        store.get_pairing(USER, 404)


def test_list_pairings_filters_and_counts_offspring(store, pair) -> None:
    cock, hen = pair
    pairing = store.create_pairing(USER, {"sire_id": cock["id"], "dam_id": hen["id"], "pair_name": "Gold pair"})
    clutch = store.create_clutch(USER, pairing["id"], {"eggs_laid_date": "2025-03-01"})
    store.create_pigeon(USER, {"ring_number": "YB-1", "clutch_id": clutch["id"]})
    store.create_pigeon(USER, {"ring_number": "YB-2", "pairing_id": pairing["id"]})

    listing = store.list_pairings(USER)
    assert listing["total"] == 1
    assert listing["data"][0]["offspring_count"] == 2

    assert store.list_pairings(USER, status="inactive")["data"] == []
    assert store.list_pairings(USER, pair_name="gold")["total"] == 1
    assert store.list_pairings(USER, search="hera")["total"] == 1
    assert store.list_pairings(USER, search="nobody")["total"] == 0


def test_update_pairing_rejects_unknown_status(store, pair) -> None:
    cock, hen = pair
    pairing = store.create_pairing(USER, {"sire_id": cock["id"], "dam_id": hen["id"]})

    with pytest.raises(ValidationError) as exc:
        store.update_pairing(USER, pairing["id"], {"status": "paused"})
    assert "status" in exc.value.errors

    assert store.update_pairing(USER, pairing["id"], {"pair_name": "Renamed"})["pair_name"] == "Renamed"


def test_clutches_are_numbered_per_pairing(store, pair) -> None:
    cock, hen = pair
    pairing = store.create_pairing(USER, {"sire_id": cock["id"], "dam_id": hen["id"]})

    first = store.create_clutch(USER, pairing["id"], {"eggs_laid_date": "2025-03-01"})
    second = store.create_clutch(USER, pairing["id"], {"eggs_laid_date": "2025-04-15", "notes": "Second round"})

    assert (first["clutch_number"], second["clutch_number"]) == (1, 2)
    assert first["status"] == "pending"
    assert store.get_row("pairings", pairing["id"])["current_clutch_number"] == 2
    assert [row["id"] for row in store.list_clutches(USER, pairing["id"])] == [first["id"], second["id"]]


def test_clutch_hatch_date_cannot_precede_laying(store, pair) -> None:
    cock, hen = pair
    pairing = store.create_pairing(USER, {"sire_id": cock["id"], "dam_id": hen["id"]})

    with pytest.raises(ValidationError) as exc:
        store.create_clutch(USER, pairing["id"], {"eggs_laid_date": "2025-03-10", "hatched_date": "2025-03-01"})

    assert exc.value.errors == {"hatched_date": ["The hatched date must be a date after or equal to eggs laid date."]}


def test_update_clutch_requires_valid_status(store, pair) -> None:
    cock, hen = pair
    pairing = store.create_pairing(USER, {"sire_id": cock["id"], "dam_id": hen["id"]})
    clutch = store.create_clutch(USER, pairing["id"], {"eggs_laid_date": "2025-03-01"})

    updated = store.update_clutch(USER, pairing["id"], clutch["id"], {"status": "successful", "hatched_date": "2025-03-19"})
    assert updated["status"] == "successful"
    assert updated["eggs_laid_date"] == "2025-03-01"

    with pytest.raises(ValidationError) as exc:
        store.update_clutch(USER, pairing["id"], clutch["id"], {"status": "hatched"})
    assert exc.value.errors == {"status": ["The selected status is invalid."]}


def test_fostered_clutch_must_name_another_owned_pairing(store, pair) -> None:
    cock, hen = pair
    pairing = store.create_pairing(USER, {"sire_id": cock["id"], "dam_id": hen["id"]})

    with pytest.raises(ValidationError) as exc:
        store.create_clutch(USER, pairing["id"], {"is_fostered": True, "biological_pairing_id": pairing["id"]})
    assert "biological_pairing_id" in exc.value.errors

    clutch = store.create_clutch(USER, pairing["id"], {"is_fostered": False, "biological_pairing_id": None})
    assert clutch["biological_pairing_id"] is None


def test_clutch_with_offspring_cannot_be_deleted(store, pair) -> None:
    cock, hen = pair
    pairing = store.create_pairing(USER, {"sire_id": cock["id"], "dam_id": hen["id"]})
    clutch = store.create_clutch(USER, pairing["id"], {})
    empty = store.create_clutch(USER, pairing["id"], {})
    store.create_pigeon(USER, {"ring_number": "YB-1", "clutch_id": clutch["id"]})

    with pytest.raises(ValidationError, match="offspring"):
        store.delete_clutch(USER, pairing["id"], clutch["id"])

    store.delete_clutch(USER, pairing["id"], empty["id"])
    assert [row["id"] for row in store.list_clutches(USER, pairing["id"])] == [clutch["id"]]

    with pytest.raises(NotFoundError):
        store.delete_clutch(USER, pairing["id"], empty["id"])


def test_deleting_active_pairing_unlinks_offspring(store, pair) -> None:
    cock, hen = pair
    pairing = store.create_pairing(USER, {"sire_id": cock["id"], "dam_id": hen["id"]})
    clutch = store.create_clutch(USER, pairing["id"], {})
    youngster = store.create_pigeon(USER, {"ring_number": "YB-1", "clutch_id": clutch["id"], "pairing_id": pairing["id"]})

    store.delete_pairing(USER, pairing["id"])

    assert store.select_rows("pairings") == []
    assert store.select_rows("clutches") == []
    row = store.get_row("pigeons", youngster["id"])
    assert row["clutch_id"] is None
    assert row["pairing_id"] is None
    assert _status(store, cock["id"]) == "stock"
