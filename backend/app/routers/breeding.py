from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from loft_core import DataStore

from ..deps import current_user_id, domain_errors, store
from ..schemas import ClutchPayload, PairingCreatePayload, PairingUpdatePayload, payload_dict

router = APIRouter(prefix="/pairings", tags=["breeding"])


@router.get("")
def list_pairings(
    status: Optional[str] = None,
    pair_name: Optional[str] = None,
    search: Optional[str] = None,
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=20, ge=1, le=100),
    user_id: str = Depends(current_user_id),
    records: DataStore = Depends(store),
):
    with domain_errors():
        return records.list_pairings(
            user_id, status=status, pair_name=pair_name, search=search, page=page, per_page=per_page
        )


@router.get("/available-parents")
def available_parents(
    pairing_id: Optional[int] = None,
    user_id: str = Depends(current_user_id),
    records: DataStore = Depends(store),
):
    with domain_errors():
        return records.available_parents(user_id, pairing_id=pairing_id)


@router.post("", status_code=201)
def create_pairing(
    payload: PairingCreatePayload,
    user_id: str = Depends(current_user_id),
    records: DataStore = Depends(store),
):
    with domain_errors():
        return records.create_pairing(user_id, payload_dict(payload))


@router.get("/{pairing_id}")
def get_pairing(pairing_id: int, user_id: str = Depends(current_user_id), records: DataStore = Depends(store)):
    with domain_errors():
        return records.get_pairing(user_id, pairing_id)


@router.put("/{pairing_id}")
def update_pairing(
    pairing_id: int,
    payload: PairingUpdatePayload,
    user_id: str = Depends(current_user_id),
    records: DataStore = Depends(store),
):
    with domain_errors():
        return records.update_pairing(user_id, pairing_id, payload_dict(payload))


@router.delete("/{pairing_id}")
def delete_pairing(pairing_id: int, user_id: str = Depends(current_user_id), records: DataStore = Depends(store)):
    with domain_errors():
        records.delete_pairing(user_id, pairing_id)
    return {"message": "Pairing deleted successfully."}


@router.post("/{pairing_id}/end")
def end_pairing(pairing_id: int, user_id: str = Depends(current_user_id), records: DataStore = Depends(store)):
    with domain_errors():
        return records.end_pairing(user_id, pairing_id)


@router.get("/{pairing_id}/clutches")
def list_clutches(pairing_id: int, user_id: str = Depends(current_user_id), records: DataStore = Depends(store)):
    with domain_errors():
        return records.list_clutches(user_id, pairing_id)


@router.post("/{pairing_id}/clutches", status_code=201)
def create_clutch(
    pairing_id: int,
    payload: ClutchPayload,
    user_id: str = Depends(current_user_id),
    records: DataStore = Depends(store),
):
    with domain_errors():
        return records.create_clutch(user_id, pairing_id, payload_dict(payload))


@router.put("/{pairing_id}/clutches/{clutch_id}")
def update_clutch(
    pairing_id: int,
    clutch_id: int,
    payload: ClutchPayload,
    user_id: str = Depends(current_user_id),
    records: DataStore = Depends(store),
):
    with domain_errors():
        return records.update_clutch(user_id, pairing_id, clutch_id, payload_dict(payload))


@router.delete("/{pairing_id}/clutches/{clutch_id}")
def delete_clutch(
    pairing_id: int,
    clutch_id: int,
    user_id: str = Depends(current_user_id),
    records: DataStore = Depends(store),
):
    with domain_errors():
        records.delete_clutch(user_id, pairing_id, clutch_id)
    return {"message": "Clutch deleted successfully."}
