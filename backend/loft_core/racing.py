"""Race organisations: local clubs and one-loft races (OLR).

Both circuits share one shape, organisation -> seasons -> races, with pigeons
entered per season and results recorded per race. ``Circuit`` names the
tables and keys of each so the operations below are written once.
"""

from __future__ import annotations

import datetime as dt
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .common import FieldErrors, parse_bool, same_id
from .errors import ForbiddenError, NotFoundError, ValidationError
from .pigeons import INACTIVE_STATUSES, pigeon_summary

logger = logging.getLogger(__name__)

ORGANIZATION_STATUSES = ("active", "inactive")
SEASON_STATUSES = ("active", "completed", "cancelled")
DISTANCE_UNITS = ("km", "mi")
MIN_SEASON_YEAR = 2000
MAX_SEASON_YEAR = 2100
TIME_WITHOUT_SECONDS = re.compile(r"\d{2}:\d{2}")
TIME_WITH_SECONDS = re.compile(r"\d{2}:\d{2}:\d{2}")


@dataclass(frozen=True)
class Circuit:
    key: str
    label: str
    organizations: str
    seasons: str
    entries: str
    races: str
    results: str
    organization_key: str
    season_key: str
    race_key: str
    extra_fields: Tuple[str, ...] = ()


CLUB = Circuit(
    key="club",
    label="Club",
    organizations="clubs",
    seasons="club_seasons",
    entries="club_season_entries",
    races="club_season_races",
    results="club_race_results",
    organization_key="club_id",
    season_key="club_season_id",
    race_key="club_season_race_id",
)

OLR = Circuit(
    key="olr",
    label="OLR race",
    organizations="olr_races",
    seasons="olr_seasons",
    entries="olr_season_entries",
    races="olr_season_races",
    results="olr_race_results",
    organization_key="olr_race_id",
    season_key="olr_season_id",
    race_key="olr_season_race_id",
    extra_fields=("organizer",),
)

CIRCUITS = {CLUB.key: CLUB, OLR.key: OLR}


def arrived_count(results: List[Mapping[str, Any]]) -> int:
    return sum(1 for row in results if not row.get("did_not_arrive") and row.get("arrival_time"))


def race_display_name(race: Mapping[str, Any], arrived: int, total: int) -> str:
    name = race.get("release_point") or race.get("name") or ""
    distance = race.get("distance")
    distance_text = f"{float(distance):g}{race.get('distance_unit') or ''}" if distance else ""
    return " ".join(part for part in (name, distance_text, f"{arrived}/{total}") if part)


def _check_time(errors: FieldErrors, payload: Mapping[str, Any], field: str, label: str, layout: str) -> Optional[str]:
    value = payload.get(field)
    if value in (None, ""):
        return None
    with_seconds = layout.endswith("%S")
    pattern = TIME_WITH_SECONDS if with_seconds else TIME_WITHOUT_SECONDS
    try:
        if not pattern.fullmatch(str(value)):
            raise ValueError(value)
        dt.datetime.strptime(str(value), layout)
    except ValueError:
        shape = "HH:MM:SS" if with_seconds else "HH:MM"
        errors.add(field, f"The {label} must match the format {shape}.")
        return None
    return str(value)


class RacingRecords:
    """Season entries and race results for clubs and one-loft races."""

    # ------------------------------------------------------------------
    # Organisations

    def owned_organization(self, circuit: Circuit, user_id: str, organization_id: Any) -> Dict[str, Any]:
        row = self.get_row(circuit.organizations, organization_id)
        if not row:
            raise NotFoundError(f"{circuit.label} not found")
        if not same_id(row.get("user_id"), user_id):
            raise ForbiddenError(f"{circuit.label} belongs to another user")
        return row

    def _organization_fields(self, circuit: Circuit, payload: Mapping[str, Any]) -> Dict[str, Any]:
        errors = FieldErrors()
        data = {
            "name": errors.text(payload, "name", "name", required=True),
            "location": errors.text(payload, "location", "location"),
            "country": errors.text(payload, "country", "country"),
            "website": errors.text(payload, "website", "website"),
            "description": errors.text(payload, "description", "description", max_length=5000),
            "status": errors.choice(payload, "status", "status", ORGANIZATION_STATUSES, default="active"),
        }
        for field in circuit.extra_fields:
            data[field] = errors.text(payload, field, field)
        errors.raise_if_any()
        return data

    def list_organizations(self, circuit: Circuit, user_id: str) -> List[Dict[str, Any]]:
        rows = self.select_rows(circuit.organizations, {"user_id": user_id}, order="name.asc")
        seasons = self.select_rows(circuit.seasons, {circuit.organization_key: [row["id"] for row in rows]})
        counts: Dict[str, int] = {}
        for season in seasons:
            key = str(season.get(circuit.organization_key))
            counts[key] = counts.get(key, 0) + 1
        return [{**row, "seasons_count": counts.get(str(row["id"]), 0)} for row in rows]

    def get_organization(self, circuit: Circuit, user_id: str, organization_id: Any) -> Dict[str, Any]:
        organization = self.owned_organization(circuit, user_id, organization_id)
        seasons = self.select_rows(
            circuit.seasons,
            {circuit.organization_key: organization_id},
            order="year.desc,start_date.desc,id.desc",
        )
        return {**organization, "seasons": seasons}

    def create_organization(self, circuit: Circuit, user_id: str, payload: Mapping[str, Any]) -> Dict[str, Any]:
        data = self._organization_fields(circuit, payload)
        row = self.insert_row(circuit.organizations, {**data, "user_id": user_id})
        logger.info("Created %s %s for user %s", circuit.key, row["id"], user_id)
        return row

    def update_organization(
        self, circuit: Circuit, user_id: str, organization_id: Any, payload: Mapping[str, Any]
    ) -> Dict[str, Any]:
        existing = self.owned_organization(circuit, user_id, organization_id)
        data = self._organization_fields(circuit, {**existing, **payload})
        return self.update_row(circuit.organizations, organization_id, data) or {**existing, **data}

    def delete_organization(self, circuit: Circuit, user_id: str, organization_id: Any) -> None:
        self.owned_organization(circuit, user_id, organization_id)
        season_ids = [row["id"] for row in self.select_rows(circuit.seasons, {circuit.organization_key: organization_id})]
        self._delete_seasons(circuit, season_ids)
        self.delete_rows(circuit.organizations, {"id": organization_id})

    # ------------------------------------------------------------------
    # Seasons

    def _season(self, circuit: Circuit, organization_id: Any, season_id: Any) -> Dict[str, Any]:
        season = self.get_row(circuit.seasons, season_id)
        if not season or not same_id(season.get(circuit.organization_key), organization_id):
            raise NotFoundError("Season not found")
        return season

    def _scoped_season(self, circuit: Circuit, user_id: str, organization_id: Any, season_id: Any) -> Dict[str, Any]:
        self.owned_organization(circuit, user_id, organization_id)
        return self._season(circuit, organization_id, season_id)

    def _season_fields(self, payload: Mapping[str, Any]) -> Dict[str, Any]:
        errors = FieldErrors()
        name = errors.text(payload, "name", "name", required=True)
        year = payload.get("year")
        if year in (None, ""):
            errors.add("year", "The year field is required.")
        else:
            try:
                year = int(str(year))
            except (TypeError, ValueError):
                errors.add("year", "The year must be an integer.")
                year = None
            if year is not None and not MIN_SEASON_YEAR <= year <= MAX_SEASON_YEAR:
                errors.add("year", f"The year must be between {MIN_SEASON_YEAR} and {MAX_SEASON_YEAR}.")
        start = errors.date(payload, "start_date", "start date")
        end = errors.date(payload, "end_date", "end date")
        if start and end and end < start:
            errors.add("end_date", "The end date must be a date after or equal to start date.")
        status = errors.choice(payload, "status", "status", SEASON_STATUSES, default="active")
        errors.raise_if_any()
        return {
            "name": name,
            "year": year,
            "start_date": start.isoformat() if start else None,
            "end_date": end.isoformat() if end else None,
            "status": status,
        }

    def create_season(
        self, circuit: Circuit, user_id: str, organization_id: Any, payload: Mapping[str, Any]
    ) -> Dict[str, Any]:
        self.owned_organization(circuit, user_id, organization_id)
        data = self._season_fields(payload)
        return self.insert_row(circuit.seasons, {**data, circuit.organization_key: organization_id})

    def get_season(self, circuit: Circuit, user_id: str, organization_id: Any, season_id: Any) -> Dict[str, Any]:
        season = self._scoped_season(circuit, user_id, organization_id, season_id)
        entries = self._season_entries(circuit, season_id)
        races = self.select_rows(circuit.races, {circuit.season_key: season_id}, order="race_date.desc,id.desc")
        results = self.select_rows(circuit.results, {circuit.race_key: [race["id"] for race in races]})

        race_rows = []
        for race in races:
            race_results = [row for row in results if same_id(row.get(circuit.race_key), race["id"])]
            arrived = arrived_count(race_results)
            race_rows.append(
                {
                    **race,
                    "arrived_count": arrived,
                    "total_entries": len(race_results),
                    "display_name": race_display_name(race, arrived, len(race_results)),
                }
            )

        entered = {str(entry["pigeon_id"]) for entry in entries}
        available = [
            pigeon_summary(row)
            for row in self.user_pigeons(user_id)
            if row.get("status") not in INACTIVE_STATUSES and str(row["id"]) not in entered
        ]
        return {**season, "entries": entries, "races": race_rows, "available_pigeons": available}

    def update_season(
        self, circuit: Circuit, user_id: str, organization_id: Any, season_id: Any, payload: Mapping[str, Any]
    ) -> Dict[str, Any]:
        season = self._scoped_season(circuit, user_id, organization_id, season_id)
        data = self._season_fields({**season, **payload})
        return self.update_row(circuit.seasons, season_id, data) or {**season, **data}

    def delete_season(self, circuit: Circuit, user_id: str, organization_id: Any, season_id: Any) -> None:
        self._scoped_season(circuit, user_id, organization_id, season_id)
        self._delete_seasons(circuit, [season_id])

    def _delete_seasons(self, circuit: Circuit, season_ids: List[Any]) -> None:
        if not season_ids:
            return
        race_ids = [row["id"] for row in self.select_rows(circuit.races, {circuit.season_key: season_ids})]
        self.delete_rows(circuit.results, {circuit.race_key: race_ids})
        self.delete_rows(circuit.races, {circuit.season_key: season_ids})
        self.delete_rows(circuit.entries, {circuit.season_key: season_ids})
        self.delete_rows(circuit.seasons, {"id": season_ids})

    # ------------------------------------------------------------------
    # Entries

    def _season_entries(self, circuit: Circuit, season_id: Any) -> List[Dict[str, Any]]:
        entries = self.select_rows(circuit.entries, {circuit.season_key: season_id}, order="created_at.asc,id.asc")
        pigeons = {
            str(row["id"]): row
            for row in self.select_rows("pigeons", {"id": [entry["pigeon_id"] for entry in entries]})
        }
        return [{**entry, "pigeon": pigeon_summary(pigeons.get(str(entry["pigeon_id"])))} for entry in entries]

    def _season_entry(self, circuit: Circuit, season_id: Any, pigeon_id: Any) -> Optional[Dict[str, Any]]:
        rows = self.select_rows(circuit.entries, {circuit.season_key: season_id, "pigeon_id": pigeon_id})
        return rows[0] if rows else None

    def _entry_fields(self, payload: Mapping[str, Any]) -> Dict[str, Any]:
        errors = FieldErrors()
        data = {
            "entry_number": errors.text(payload, "entry_number", "entry number"),
            "notes": errors.text(payload, "notes", "notes", max_length=5000),
        }
        errors.raise_if_any()
        return data

    def add_entry(
        self, circuit: Circuit, user_id: str, organization_id: Any, season_id: Any, payload: Mapping[str, Any]
    ) -> Dict[str, Any]:
        self._scoped_season(circuit, user_id, organization_id, season_id)
        pigeon_id = payload.get("pigeon_id")
        if pigeon_id in (None, ""):
            raise ValidationError({"pigeon_id": "The pigeon field is required."})
        data = self._entry_fields(payload)
        self.owned_pigeon(user_id, pigeon_id)
        if self._season_entry(circuit, season_id, pigeon_id):
            raise ValidationError({"pigeon_id": "This pigeon is already entered in this season."})
        return self.insert_row(circuit.entries, {**data, circuit.season_key: season_id, "pigeon_id": pigeon_id})

    def update_entry(
        self,
        circuit: Circuit,
        user_id: str,
        organization_id: Any,
        season_id: Any,
        pigeon_id: Any,
        payload: Mapping[str, Any],
    ) -> Dict[str, Any]:
        self._scoped_season(circuit, user_id, organization_id, season_id)
        entry = self._season_entry(circuit, season_id, pigeon_id)
        if not entry:
            raise NotFoundError("Entry not found")
        data = self._entry_fields({**entry, **payload})
        return self.update_row(circuit.entries, entry["id"], data) or {**entry, **data}

    def remove_entry(self, circuit: Circuit, user_id: str, organization_id: Any, season_id: Any, pigeon_id: Any) -> None:
        """Withdraw a pigeon from the season together with its results in every race of it."""
        self._scoped_season(circuit, user_id, organization_id, season_id)
        self.delete_rows(circuit.entries, {circuit.season_key: season_id, "pigeon_id": pigeon_id})
        race_ids = [row["id"] for row in self.select_rows(circuit.races, {circuit.season_key: season_id})]
        self.delete_rows(circuit.results, {circuit.race_key: race_ids, "pigeon_id": pigeon_id})

    # ------------------------------------------------------------------
    # Races

    def _race(self, circuit: Circuit, season_id: Any, race_id: Any) -> Dict[str, Any]:
        race = self.get_row(circuit.races, race_id)
        if not race or not same_id(race.get(circuit.season_key), season_id):
            raise NotFoundError("Race not found")
        return race

    def _race_fields(self, payload: Mapping[str, Any]) -> Dict[str, Any]:
        errors = FieldErrors()
        race_date = errors.date(payload, "race_date", "race date")
        data = {
            "name": errors.text(payload, "name", "name", required=True),
            "release_point": errors.text(payload, "release_point", "release point"),
            "distance": errors.number(payload, "distance", "distance", minimum=0),
            "distance_unit": errors.choice(payload, "distance_unit", "distance unit", DISTANCE_UNITS, default="km"),
            "race_date": race_date.isoformat() if race_date else None,
            "release_time": _check_time(errors, payload, "release_time", "release time", "%H:%M"),
            "weather_conditions": errors.text(payload, "weather_conditions", "weather conditions"),
            "wind_direction": errors.text(payload, "wind_direction", "wind direction"),
            "notes": errors.text(payload, "notes", "notes", max_length=5000),
        }
        errors.raise_if_any()
        return data

    def create_race(
        self, circuit: Circuit, user_id: str, organization_id: Any, season_id: Any, payload: Mapping[str, Any]
    ) -> Dict[str, Any]:
        self._scoped_season(circuit, user_id, organization_id, season_id)
        data = self._race_fields(payload)
        return self.insert_row(circuit.races, {**data, circuit.season_key: season_id})

    def get_race(
        self, circuit: Circuit, user_id: str, organization_id: Any, season_id: Any, race_id: Any
    ) -> Dict[str, Any]:
        self._scoped_season(circuit, user_id, organization_id, season_id)
        race = self._race(circuit, season_id, race_id)
        results = self.select_rows(circuit.results, {circuit.race_key: race_id}, order="position.asc,id.asc")
        pigeons = {
            str(row["id"]): row for row in self.select_rows("pigeons", {"id": [row["pigeon_id"] for row in results]})
        }
        arrived = arrived_count(results)
        return {
            **race,
            "results": [{**row, "pigeon": pigeon_summary(pigeons.get(str(row["pigeon_id"])))} for row in results],
            "entries": self._season_entries(circuit, season_id),
            "arrived_count": arrived,
            "total_entries": len(results),
            "display_name": race_display_name(race, arrived, len(results)),
        }

    def update_race(
        self,
        circuit: Circuit,
        user_id: str,
        organization_id: Any,
        season_id: Any,
        race_id: Any,
        payload: Mapping[str, Any],
    ) -> Dict[str, Any]:
        self._scoped_season(circuit, user_id, organization_id, season_id)
        race = self._race(circuit, season_id, race_id)
        data = self._race_fields({**race, **payload})
        return self.update_row(circuit.races, race_id, data) or {**race, **data}

    def delete_race(self, circuit: Circuit, user_id: str, organization_id: Any, season_id: Any, race_id: Any) -> None:
        self._scoped_season(circuit, user_id, organization_id, season_id)
        self._race(circuit, season_id, race_id)
        self.delete_rows(circuit.results, {circuit.race_key: race_id})
        self.delete_rows(circuit.races, {"id": race_id})

    # ------------------------------------------------------------------
    # Results

    def _result_fields(self, payload: Mapping[str, Any]) -> Dict[str, Any]:
        errors = FieldErrors()
        position = payload.get("position")
        if position not in (None, ""):
            try:
                position = int(position)
            except (TypeError, ValueError):
                errors.add("position", "The position must be an integer.")
                position = None
            if position is not None and position < 1:
                errors.add("position", "The position must be at least 1.")
        else:
            position = None
        data = {
            "position": position,
            "arrival_time": _check_time(errors, payload, "arrival_time", "arrival time", "%H:%M:%S"),
            "speed": errors.number(payload, "speed", "speed", minimum=0),
            "notes": errors.text(payload, "notes", "notes", max_length=5000),
            "did_not_arrive": parse_bool(payload.get("did_not_arrive")),
        }
        errors.raise_if_any()
        return data

    def _race_result(self, circuit: Circuit, race_id: Any, pigeon_id: Any) -> Optional[Dict[str, Any]]:
        rows = self.select_rows(circuit.results, {circuit.race_key: race_id, "pigeon_id": pigeon_id})
        return rows[0] if rows else None

    def add_result(
        self,
        circuit: Circuit,
        user_id: str,
        organization_id: Any,
        season_id: Any,
        race_id: Any,
        payload: Mapping[str, Any],
    ) -> Dict[str, Any]:
        self._scoped_season(circuit, user_id, organization_id, season_id)
        self._race(circuit, season_id, race_id)
        pigeon_id = payload.get("pigeon_id")
        if pigeon_id in (None, ""):
            raise ValidationError({"pigeon_id": "The pigeon field is required."})
        data = self._result_fields(payload)
        if not self._season_entry(circuit, season_id, pigeon_id):
            raise ValidationError({"pigeon_id": "The pigeon is not entered in this season."})
        if self._race_result(circuit, race_id, pigeon_id):
            raise ValidationError({"pigeon_id": "This pigeon already has a result for this race."})
        return self.insert_row(circuit.results, {**data, circuit.race_key: race_id, "pigeon_id": pigeon_id})

    def update_result(
        self,
        circuit: Circuit,
        user_id: str,
        organization_id: Any,
        season_id: Any,
        race_id: Any,
        pigeon_id: Any,
        payload: Mapping[str, Any],
    ) -> Dict[str, Any]:
        self._scoped_season(circuit, user_id, organization_id, season_id)
        self._race(circuit, season_id, race_id)
        result = self._race_result(circuit, race_id, pigeon_id)
        if not result:
            raise NotFoundError("Result not found")
        data = self._result_fields({**result, **payload})
        return self.update_row(circuit.results, result["id"], data) or {**result, **data}

    def remove_result(
        self, circuit: Circuit, user_id: str, organization_id: Any, season_id: Any, race_id: Any, pigeon_id: Any
    ) -> None:
        self._scoped_season(circuit, user_id, organization_id, season_id)
        self._race(circuit, season_id, race_id)
        self.delete_rows(circuit.results, {circuit.race_key: race_id, "pigeon_id": pigeon_id})

    def add_all_entries(
        self, circuit: Circuit, user_id: str, organization_id: Any, season_id: Any, race_id: Any
    ) -> int:
        """Give every season entry without a result in this race a blank one; return how many were added."""
        self._scoped_season(circuit, user_id, organization_id, season_id)
        self._race(circuit, season_id, race_id)
        existing = {str(row["pigeon_id"]) for row in self.select_rows(circuit.results, {circuit.race_key: race_id})}
        added = 0
        for entry in self.select_rows(circuit.entries, {circuit.season_key: season_id}, order="id.asc"):
            if str(entry["pigeon_id"]) in existing:
                continue
            self.insert_row(
                circuit.results,
                {
                    circuit.race_key: race_id,
                    "pigeon_id": entry["pigeon_id"],
                    "position": None,
                    "arrival_time": None,
                    "speed": None,
                    "notes": None,
                    "did_not_arrive": False,
                },
            )
            existing.add(str(entry["pigeon_id"]))
            added += 1
        return added
