from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Response

from loft_core import DataStore

from ..deps import current_user_id, domain_errors, store
from ..schemas import ColorTagPayload, NamePayload, payload_dict

router = APIRouter(tags=["lookups"])


@router.get("/bloodlines")
def list_bloodlines(user_id: str = Depends(current_user_id), records: DataStore = Depends(store)):
    with domain_errors():
        return records.list_bloodlines(user_id)


@router.get("/bloodlines/search")
def search_bloodlines(
    q: Optional[str] = None,
    user_id: str = Depends(current_user_id),
    records: DataStore = Depends(store),
):
    with domain_errors():
        return records.search_bloodlines(user_id, q)


@router.post("/bloodlines", status_code=201)
def create_bloodline(payload: NamePayload, user_id: str = Depends(current_user_id), records: DataStore = Depends(store)):
    with domain_errors():
        return records.create_bloodline(user_id, payload_dict(payload))


@router.post("/bloodlines/get-or-create")
def get_or_create_bloodline(
    payload: NamePayload,
    response: Response,
    user_id: str = Depends(current_user_id),
    records: DataStore = Depends(store),
):
    with domain_errors():
        bloodline, created = records.get_or_create_bloodline(user_id, payload.name)
    response.status_code = 201 if created else 200
    return {"id": bloodline["id"], "name": bloodline.get("name")}


@router.put("/bloodlines/{bloodline_id}")
def update_bloodline(
    bloodline_id: int,
    payload: NamePayload,
    user_id: str = Depends(current_user_id),
    records: DataStore = Depends(store),
):
    with domain_errors():
        return records.update_bloodline(user_id, bloodline_id, payload_dict(payload))


@router.delete("/bloodlines/{bloodline_id}")
def delete_bloodline(bloodline_id: int, user_id: str = Depends(current_user_id), records: DataStore = Depends(store)):
    with domain_errors():
        records.delete_bloodline(user_id, bloodline_id)
    return {"message": "Bloodline deleted successfully."}


@router.get("/color-tags")
def list_color_tags(user_id: str = Depends(current_user_id), records: DataStore = Depends(store)):
    with domain_errors():
        return records.list_color_tags(user_id)


@router.post("/color-tags", status_code=201)
def create_color_tag(
    payload: ColorTagPayload,
    user_id: str = Depends(current_user_id),
    records: DataStore = Depends(store),
):
    with domain_errors():
        return records.create_color_tag(user_id, payload_dict(payload))


@router.put("/color-tags/{tag_id}")
def update_color_tag(
    tag_id: int,
    payload: ColorTagPayload,
    user_id: str = Depends(current_user_id),
    records: DataStore = Depends(store),
):
    with domain_errors():
        return records.update_color_tag(user_id, tag_id, payload_dict(payload))


@router.delete("/color-tags/{tag_id}")
def delete_color_tag(tag_id: int, user_id: str = Depends(current_user_id), records: DataStore = Depends(store)):
    with domain_errors():
        affected = records.delete_color_tag(user_id, tag_id)
    return {"message": "Color tag deleted successfully.", "pigeons_affected": affected}
