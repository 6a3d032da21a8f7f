"""Routes for clubs (``/clubs``) and one-loft races (``/olr-races``).

Both trees are produced by :func:`build_circuit_router` from the matching
``Circuit`` so the two stay identical.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from loft_core import CLUB, OLR, Circuit, DataStore

from ..deps import current_user_id, domain_errors, store
from ..schemas import (
    EntryPayload,
    EntryUpdatePayload,
    OrganizationPayload,
    RacePayload,
    ResultPayload,
    SeasonPayload,
    payload_dict,
)


def build_circuit_router(circuit: Circuit, prefix: str) -> APIRouter:
    router = APIRouter(prefix=prefix, tags=[circuit.key])
    season_path = "/{organization_id}/seasons/{season_id}"
    race_path = f"{season_path}/races/{{race_id}}"

    @router.get("")
    def list_organizations(user_id: str = Depends(current_user_id), records: DataStore = Depends(store)):
        with domain_errors():
            return records.list_organizations(circuit, user_id)

    @router.post("", status_code=201)
    def create_organization(
        payload: OrganizationPayload,
        user_id: str = Depends(current_user_id),
        records: DataStore = Depends(store),
    ):
        with domain_errors():
            return records.create_organization(circuit, user_id, payload_dict(payload))

    @router.get("/{organization_id}")
    def get_organization(
        organization_id: int,
        user_id: str = Depends(current_user_id),
        records: DataStore = Depends(store),
    ):
        with domain_errors():
            return records.get_organization(circuit, user_id, organization_id)

    @router.put("/{organization_id}")
    def update_organization(
        organization_id: int,
        payload: OrganizationPayload,
        user_id: str = Depends(current_user_id),
        records: DataStore = Depends(store),
    ):
        with domain_errors():
            return records.update_organization(circuit, user_id, organization_id, payload_dict(payload))

    @router.delete("/{organization_id}")
    def delete_organization(
        organization_id: int,
        user_id: str = Depends(current_user_id),
        records: DataStore = Depends(store),
    ):
        with domain_errors():
            records.delete_organization(circuit, user_id, organization_id)
        return {"message": f"{circuit.label} deleted successfully."}

    # Seasons

    @router.post("/{organization_id}/seasons", status_code=201)
    def create_season(
        organization_id: int,
        payload: SeasonPayload,
        user_id: str = Depends(current_user_id),
        records: DataStore = Depends(store),
    ):
        with domain_errors():
            return records.create_season(circuit, user_id, organization_id, payload_dict(payload))

    @router.get(season_path)
    def get_season(
        organization_id: int,
        season_id: int,
        user_id: str = Depends(current_user_id),
        records: DataStore = Depends(store),
    ):
        with domain_errors():
            return records.get_season(circuit, user_id, organization_id, season_id)

    @router.put(season_path)
    def update_season(
        organization_id: int,
        season_id: int,
        payload: SeasonPayload,
        user_id: str = Depends(current_user_id),
        records: DataStore = Depends(store),
    ):
        with domain_errors():
            return records.update_season(circuit, user_id, organization_id, season_id, payload_dict(payload))

    @router.delete(season_path)
    def delete_season(
        organization_id: int,
        season_id: int,
        user_id: str = Depends(current_user_id),
        records: DataStore = Depends(store),
    ):
        with domain_errors():
            records.delete_season(circuit, user_id, organization_id, season_id)
        return {"message": "Season deleted successfully."}

    # Entries

    @router.post(f"{season_path}/entries", status_code=201)
    def add_entry(
        organization_id: int,
        season_id: int,
        payload: EntryPayload,
        user_id: str = Depends(current_user_id),
        records: DataStore = Depends(store),
    ):
        with domain_errors():
            return records.add_entry(circuit, user_id, organization_id, season_id, payload_dict(payload))

    @router.put(f"{season_path}/entries/{{pigeon_id}}")
    def update_entry(
        organization_id: int,
        season_id: int,
        pigeon_id: int,
        payload: EntryUpdatePayload,
        user_id: str = Depends(current_user_id),
        records: DataStore = Depends(store),
    ):
        with domain_errors():
            return records.update_entry(
                circuit, user_id, organization_id, season_id, pigeon_id, payload_dict(payload)
            )

    @router.delete(f"{season_path}/entries/{{pigeon_id}}")
    def remove_entry(
        organization_id: int,
        season_id: int,
        pigeon_id: int,
        user_id: str = Depends(current_user_id),
        records: DataStore = Depends(store),
    ):
        with domain_errors():
            records.remove_entry(circuit, user_id, organization_id, season_id, pigeon_id)
        return {"message": "Pigeon removed from season."}

    # Races

    @router.post(f"{season_path}/races", status_code=201)
    def create_race(
        organization_id: int,
        season_id: int,
        payload: RacePayload,
        user_id: str = Depends(current_user_id),
        records: DataStore = Depends(store),
    ):
        with domain_errors():
            return records.create_race(circuit, user_id, organization_id, season_id, payload_dict(payload))

    @router.get(race_path)
    def get_race(
        organization_id: int,
        season_id: int,
        race_id: int,
        user_id: str = Depends(current_user_id),
        records: DataStore = Depends(store),
    ):
        with domain_errors():
            return records.get_race(circuit, user_id, organization_id, season_id, race_id)

    @router.put(race_path)
    def update_race(
        organization_id: int,
        season_id: int,
        race_id: int,
        payload: RacePayload,
        user_id: str = Depends(current_user_id),
        records: DataStore = Depends(store),
    ):
        with domain_errors():
            return records.update_race(
                circuit, user_id, organization_id, season_id, race_id, payload_dict(payload)
            )

    @router.delete(race_path)
    def delete_race(
        organization_id: int,
        season_id: int,
        race_id: int,
        user_id: str = Depends(current_user_id),
        records: DataStore = Depends(store),
    ):
        with domain_errors():
            records.delete_race(circuit, user_id, organization_id, season_id, race_id)
        return {"message": "Race deleted successfully."}

    # Results

    @router.post(f"{race_path}/results", status_code=201)
    def add_result(
        organization_id: int,
        season_id: int,
        race_id: int,
        payload: ResultPayload,
        user_id: str = Depends(current_user_id),
        records: DataStore = Depends(store),
    ):
        with domain_errors():
            return records.add_result(
                circuit, user_id, organization_id, season_id, race_id, payload_dict(payload)
            )

    @router.post(f"{race_path}/results/add-all-entries")
    def add_all_entries(
        organization_id: int,
        season_id: int,
        race_id: int,
        user_id: str = Depends(current_user_id),
        records: DataStore = Depends(store),
    ):
        with domain_errors():
            added = records.add_all_entries(circuit, user_id, organization_id, season_id, race_id)
        return {"added": added, "message": f"{added} pigeons added to race."}

    @router.put(f"{race_path}/results/{{pigeon_id}}")
    def update_result(
        organization_id: int,
        season_id: int,
        race_id: int,
        pigeon_id: int,
        payload: ResultPayload,
        user_id: str = Depends(current_user_id),
        records: DataStore = Depends(store),
    ):
        with domain_errors():
            return records.update_result(
                circuit, user_id, organization_id, season_id, race_id, pigeon_id, payload_dict(payload)
            )

    @router.delete(f"{race_path}/results/{{pigeon_id}}")
    def remove_result(
        organization_id: int,
        season_id: int,
        race_id: int,
        pigeon_id: int,
        user_id: str = Depends(current_user_id),
        records: DataStore = Depends(store),
    ):
        with domain_errors():
            records.remove_result(circuit, user_id, organization_id, season_id, race_id, pigeon_id)
        return {"message": "Result removed successfully."}

    return router


club_router = build_circuit_router(CLUB, "/clubs")
olr_router = build_circuit_router(OLR, "/olr-races")
