"""Pigeon registry routes: CRUD, parent pickers, pedigree, ring checks and uploads."""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, File, Query, UploadFile

from loft_core import DataStore, ImageStore
from loft_core.pedigree import DEFAULT_GENERATIONS

from ..deps import current_user_id, domain_errors, images, store
from ..schemas import PigeonPayload, PigeonUpdatePayload, payload_dict

router = APIRouter(tags=["pigeons"])


@router.get("/dashboard")
def dashboard(user_id: str = Depends(current_user_id), records: DataStore = Depends(store)):
    with domain_errors():
        return records.dashboard(user_id)


@router.get("/pigeons")
def list_pigeons(
    search: Optional[str] = None,
    gender: Optional[str] = None,
    status: Optional[List[str]] = Query(default=None),
    bloodline: Optional[str] = None,
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=12),
    user_id: str = Depends(current_user_id),
    records: DataStore = Depends(store),
):
    with domain_errors():
        return records.list_pigeons(
            user_id,
            search=search,
            gender=gender,
            status=status,
            bloodline=bloodline,
            page=page,
            per_page=per_page,
        )


@router.post("/pigeons", status_code=201)
def create_pigeon(
    payload: PigeonPayload,
    user_id: str = Depends(current_user_id),
    records: DataStore = Depends(store),
):
    with domain_errors():
        return records.create_pigeon(user_id, payload_dict(payload))


@router.get("/pigeons/parent-options")
def parent_options(
    exclude_id: Optional[int] = None,
    user_id: str = Depends(current_user_id),
    records: DataStore = Depends(store),
):
    with domain_errors():
        return records.parent_options(user_id, exclude_id=exclude_id)


@router.get("/pigeons/check-ring-number")
def check_ring_number(
    ring_number: str = Query(default=""),
    exclude_id: Optional[int] = None,
    user_id: str = Depends(current_user_id),
    records: DataStore = Depends(store),
):
    with domain_errors():
        return records.check_ring_number(user_id, ring_number, exclude_id=exclude_id)


@router.get("/pigeons/{pigeon_id}")
def get_pigeon(pigeon_id: int, user_id: str = Depends(current_user_id), records: DataStore = Depends(store)):
    with domain_errors():
        return records.get_pigeon(user_id, pigeon_id)


@router.put("/pigeons/{pigeon_id}")
@router.patch("/pigeons/{pigeon_id}")
def update_pigeon(
    pigeon_id: int,
    payload: PigeonUpdatePayload,
    user_id: str = Depends(current_user_id),
    records: DataStore = Depends(store),
    image_store: ImageStore = Depends(images),
):
    with domain_errors():
        return records.update_pigeon(user_id, pigeon_id, payload_dict(payload), on_discard=image_store.delete_many)


@router.delete("/pigeons/{pigeon_id}")
def delete_pigeon(
    pigeon_id: int,
    user_id: str = Depends(current_user_id),
    records: DataStore = Depends(store),
    image_store: ImageStore = Depends(images),
):
    with domain_errors():
        records.delete_pigeon(user_id, pigeon_id, on_discard=image_store.delete_many)
    return {"message": "Pigeon deleted successfully."}


@router.get("/pigeons/{pigeon_id}/pedigree")
def pedigree(
    pigeon_id: int,
    generations: int = Query(default=DEFAULT_GENERATIONS, ge=1, le=DEFAULT_GENERATIONS),
    user_id: str = Depends(current_user_id),
    records: DataStore = Depends(store),
):
    with domain_errors():
        return records.pedigree(user_id, pigeon_id, generations=generations)


@router.get("/pigeons/{pigeon_id}/pedigree/print")
def pedigree_print(pigeon_id: int, user_id: str = Depends(current_user_id), records: DataStore = Depends(store)):
    with domain_errors():
        tree = records.pedigree(user_id, pigeon_id)
        return {**tree, "pigeon": records.get_pigeon(user_id, pigeon_id)}


@router.post("/pigeons/{pigeon_id}/photo")
def upload_photo(
    pigeon_id: int,
    file: UploadFile = File(...),
    user_id: str = Depends(current_user_id),
    records: DataStore = Depends(store),
    image_store: ImageStore = Depends(images),
):
    with domain_errors():
        records.owned_pigeon(user_id, pigeon_id)
        url = image_store.upload(file.file.read(), folder="pigeons/photos")
        record, previous = records.set_pigeon_photo(user_id, pigeon_id, url)
        if previous:
            image_store.delete(previous)
        return record


@router.post("/pigeons/{pigeon_id}/pedigree-images")
def upload_pedigree_images(
    pigeon_id: int,
    files: List[UploadFile] = File(...),
    user_id: str = Depends(current_user_id),
    records: DataStore = Depends(store),
    image_store: ImageStore = Depends(images),
):
    with domain_errors():
        records.owned_pigeon(user_id, pigeon_id)
        urls = image_store.upload_many((item.file.read() for item in files), folder="pigeons/pedigrees")
        return records.add_pedigree_images(user_id, pigeon_id, urls)
