from __future__ import annotations

import pytest

from loft_core import CLUB, OLR, DataStore, ForbiddenError, NotFoundError, ValidationError
from loft_core.racing import race_display_name

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


@pytest.fixture(params=[CLUB, OLR], ids=["club", "olr"])
def circuit(request):
    return request.param


@pytest.fixture
def season(store, circuit):
    organization = store.create_organization(circuit, USER, {"name": "Valley Flyers", "location": "Leeds"})
    season = store.create_season(circuit, USER, organization["id"], {"name": "Old birds", "year": "2025"})
    return organization, season


def _bird(store, ring_number, **fields):
    return store.create_pigeon(USER, {"ring_number": ring_number, **fields})


def test_race_display_name() -> None:
    assert race_display_name({"release_point": "Ostend", "distance": 120, "distance_unit": "km"}, 1, 2) == "Ostend 120km 1/2"
    assert race_display_name({"name": "Training toss", "distance": 0}, 0, 0) == "Training toss 0/0"
    assert race_display_name({"name": "Pau", "distance": 812.5, "distance_unit": "mi"}, 3, 10) == "Pau 812.5mi 3/10"


def test_organization_lifecycle(store, circuit) -> None:
    organization = store.create_organization(circuit, USER, {"name": "Valley Flyers"})
    store.create_season(circuit, USER, organization["id"], {"name": "Young birds", "year": 2025})

    assert organization["status"] == "active"
    listed = store.list_organizations(circuit, USER)
    assert [(row["name"], row["seasons_count"]) for row in listed] == [("Valley Flyers", 1)]
    assert store.list_organizations(circuit, OTHER) == []

    updated = store.update_organization(circuit, USER, organization["id"], {"location": "York"})
    assert (updated["name"], updated["location"]) == ("Valley Flyers", "York")

    with pytest.raises(ForbiddenError):
        store.get_organization(circuit, OTHER, organization["id"])

    store.delete_organization(circuit, USER, organization["id"])
    assert store.select_rows(circuit.seasons) == []
    with pytest.raises(NotFoundError):
        store.get_organization(circuit, USER, organization["id"])


def test_olr_keeps_organizer(store) -> None:
    race = store.create_organization(OLR, USER, {"name": "South Africa Million", "organizer": "SAMDPR"})

    assert race["organizer"] == "SAMDPR"
    assert "organizer" not in store.create_organization(CLUB, USER, {"name": "Local club"})


def test_season_validation(store, circuit) -> None:
    organization = store.create_organization(circuit, USER, {"name": "Valley Flyers"})

    with pytest.raises(ValidationError) as exc:
        store.create_season(
            circuit,
            USER,
            organization["id"],
            {"name": "", "year": 1999, "start_date": "2025-05-01", "end_date": "2025-04-01"},
        )

    assert exc.value.errors == {
        "name": ["The name field is required."],
        "year": ["The year must be between 2000 and 2100."],
        "end_date": ["The end date must be a date after or equal to start date."],
    }


def test_seasons_are_scoped_to_their_organization(store, circuit, season) -> None:
    _, first_season = season
    other_organization = store.create_organization(circuit, USER, {"name": "Hill Top"})

    with pytest.raises(NotFoundError, match="Season not found"):
        store.get_season(circuit, USER, other_organization["id"], first_season["id"])


def test_entries_and_available_pigeons(store, circuit, season) -> None:
    organization, current = season
    entered = _bird(store, "NL-1")
    free = _bird(store, "NL-2")
    _bird(store, "NL-3", status="missing")

    entry = store.add_entry(circuit, USER, organization["id"], current["id"], {"pigeon_id": entered["id"], "entry_number": "17"})
    assert entry["entry_number"] == "17"

    with pytest.raises(ValidationError, match="already entered"):
        store.add_entry(circuit, USER, organization["id"], current["id"], {"pigeon_id": entered["id"]})

    detail = store.get_season(circuit, USER, organization["id"], current["id"])
    assert [row["pigeon"]["ring_number"] for row in detail["entries"]] == ["NL-1"]
    assert [row["id"] for row in detail["available_pigeons"]] == [free["id"]]

    updated = store.update_entry(circuit, USER, organization["id"], current["id"], entered["id"], {"notes": "Late basket"})
    assert updated["notes"] == "Late basket"


def test_cannot_enter_another_users_pigeon(store, circuit, season) -> None:
    organization, current = season
    theirs = store.create_pigeon(OTHER, {"ring_number": "BE-1"})

    with pytest.raises(NotFoundError):
        store.add_entry(circuit, USER, organization["id"], current["id"], {"pigeon_id": theirs["id"]})


def test_race_validation(store, circuit, season) -> None:
    organization, current = season

    with pytest.raises(ValidationError) as exc:
        store.create_race(
            circuit,
            USER,
            organization["id"],
            current["id"],
            {"name": "Ostend", "distance": -5, "release_time": "25:00", "distance_unit": "leagues"},
        )

    assert exc.value.errors == {
        "distance": ["The distance must be at least 0."],
        "distance_unit": ["The selected distance unit is invalid."],
        "release_time": ["The release time must match the format HH:MM."],
    }


def test_results_require_a_season_entry(store, circuit, season) -> None:
    organization, current = season
    entered = _bird(store, "NL-1")
    outsider = _bird(store, "NL-2")
    store.add_entry(circuit, USER, organization["id"], current["id"], {"pigeon_id": entered["id"]})
    race = store.create_race(circuit, USER, organization["id"], current["id"], {"name": "Ostend", "race_date": "2025-05-10"})
    ids = (organization["id"], current["id"], race["id"])

    with pytest.raises(ValidationError, match="not entered"):
        store.add_result(circuit, USER, *ids, {"pigeon_id": outsider["id"]})

    result = store.add_result(circuit, USER, *ids, {"pigeon_id": entered["id"], "position": "1", "arrival_time": "11:02:45", "speed": 1450.2})
    assert result["position"] == 1
    assert result["did_not_arrive"] is False

    with pytest.raises(ValidationError, match="already has a result"):
        store.add_result(circuit, USER, *ids, {"pigeon_id": entered["id"]})

    with pytest.raises(ValidationError) as exc:
        store.update_result(circuit, USER, *ids, entered["id"], {"position": 0, "arrival_time": "11:02"})
    assert exc.value.errors == {
        "position": ["The position must be at least 1."],
        "arrival_time": ["The arrival time must match the format HH:MM:SS."],
    }


def test_add_all_entries_and_race_summary(store, circuit, season) -> None:
    organization, current = season
    birds = [_bird(store, f"NL-{index}") for index in range(3)]
    for bird in birds:
        store.add_entry(circuit, USER, organization["id"], current["id"], {"pigeon_id": bird["id"]})
    race = store.create_race(
        circuit,
        USER,
        organization["id"],
        current["id"],
        {"name": "Race 1", "release_point": "Ostend", "distance": "120", "release_time": "07:30"},
    )
    ids = (organization["id"], current["id"], race["id"])
    store.add_result(circuit, USER, *ids, {"pigeon_id": birds[0]["id"], "position": 1, "arrival_time": "10:15:30"})

    assert store.add_all_entries(circuit, USER, *ids) == 2
    assert store.add_all_entries(circuit, USER, *ids) == 0

    store.update_result(circuit, USER, *ids, birds[2]["id"], {"did_not_arrive": True})
    detail = store.get_race(circuit, USER, *ids)
    assert detail["display_name"] == "Ostend 120km 1/3"
    assert detail["results"][0]["pigeon"]["ring_number"] == "NL-0"

    season_detail = store.get_season(circuit, USER, organization["id"], current["id"])
    assert season_detail["races"][0]["arrived_count"] == 1
    assert season_detail["races"][0]["total_entries"] == 3


def test_removing_entry_drops_its_results(store, circuit, season) -> None:
    organization, current = season
    bird = _bird(store, "NL-1")
    store.add_entry(circuit, USER, organization["id"], current["id"], {"pigeon_id": bird["id"]})
    first = store.create_race(circuit, USER, organization["id"], current["id"], {"name": "Race 1"})
    second = store.create_race(circuit, USER, organization["id"], current["id"], {"name": "Race 2"})
    for race in (first, second):
        store.add_result(circuit, USER, organization["id"], current["id"], race["id"], {"pigeon_id": bird["id"]})

    store.remove_entry(circuit, USER, organization["id"], current["id"], bird["id"])

    assert store.select_rows(circuit.entries) == []
    assert store.select_rows(circuit.results) == []


def test_deleting_race_removes_results(store, circuit, season) -> None:
    organization, current = season
    bird = _bird(store, "NL-1")
    store.add_entry(circuit, USER, organization["id"], current["id"], {"pigeon_id": bird["id"]})
    race = store.create_race(circuit, USER, organization["id"], current["id"], {"name": "Race 1"})
    store.add_result(circuit, USER, organization["id"], current["id"], race["id"], {"pigeon_id": bird["id"]})

    store.delete_race(circuit, USER, organization["id"], current["id"], race["id"])

    assert store.select_rows(circuit.races) == []
    assert store.select_rows(circuit.results) == []
    assert len(store.select_rows(circuit.entries)) == 1


def test_update_season_keeps_unsent_fields(store, circuit, season) -> None:
    organization, current = season

    updated = store.update_season(circuit, USER, organization["id"], current["id"], {"status": "completed"})

    assert (updated["name"], updated["year"], updated["status"]) == ("Old birds", 2025, "completed")


def test_times_need_two_digit_parts(store, circuit, season) -> None:
    organization, current = season
    bird = _bird(store, "NL-1")
    store.add_entry(circuit, USER, organization["id"], current["id"], {"pigeon_id": bird["id"]})

    with pytest.raises(ValidationError) as exc:
        store.create_race(circuit, USER, organization["id"], current["id"], {"name": "Ostend", "release_time": "7:5"})
    assert exc.value.errors == {"release_time": ["The release time must match the format HH:MM."]}

    race = store.create_race(circuit, USER, organization["id"], current["id"], {"name": "Ostend", "release_time": "07:05"})
    ids = (organization["id"], current["id"], race["id"])

    with pytest.raises(ValidationError) as exc:
        store.add_result(circuit, USER, *ids, {"pigeon_id": bird["id"], "arrival_time": "7:5:9"})
    assert exc.value.errors == {"arrival_time": ["The arrival time must match the format HH:MM:SS."]}


def test_entry_and_result_updates_keep_fields_not_sent(store, circuit, season) -> None:
    organization, current = season
    bird = _bird(store, "NL-1")
    store.add_entry(circuit, USER, organization["id"], current["id"], {"pigeon_id": bird["id"], "entry_number": "17"})

    entry = store.update_entry(circuit, USER, organization["id"], current["id"], bird["id"], {"notes": "Late basket"})
    assert (entry["entry_number"], entry["notes"]) == ("17", "Late basket")

    race = store.create_race(circuit, USER, organization["id"], current["id"], {"name": "Ostend"})
    ids = (organization["id"], current["id"], race["id"])
    store.add_result(
        circuit,
        USER,
        *ids,
        {"pigeon_id": bird["id"], "position": 2, "arrival_time": "10:15:30", "speed": 1300, "did_not_arrive": True},
    )

    result = store.update_result(circuit, USER, *ids, bird["id"], {"notes": "Lost in fog"})

    assert result["position"] == 2
    assert result["arrival_time"] == "10:15:30"
    assert result["speed"] == 1300
    assert result["did_not_arrive"] is True
    assert result["notes"] == "Lost in fog"
