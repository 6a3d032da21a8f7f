from __future__ import annotations

from fastapi import APIRouter, Depends

from loft_core import DataStore

from ..deps import current_user_id, domain_errors, store
from ..schemas import AuctionPayload, SalePayload, payload_dict

router = APIRouter(tags=["market"])


@router.get("/marketplace")
def marketplace(records: DataStore = Depends(store)):
    with domain_errors():
        return records.marketplace()


@router.get("/sales")
def sales_overview(user_id: str = Depends(current_user_id), records: DataStore = Depends(store)):
    with domain_errors():
        return records.sales_overview(user_id)


@router.post("/sales", status_code=201)
def create_sale(payload: SalePayload, user_id: str = Depends(current_user_id), records: DataStore = Depends(store)):
    with domain_errors():
        return records.create_sale(user_id, payload_dict(payload))


@router.post("/sales/{sale_id}/sold")
def mark_sale_sold(sale_id: int, user_id: str = Depends(current_user_id), records: DataStore = Depends(store)):
    with domain_errors():
        return records.mark_sale_sold(user_id, sale_id)


@router.delete("/sales/{sale_id}")
def delete_sale(sale_id: int, user_id: str = Depends(current_user_id), records: DataStore = Depends(store)):
    with domain_errors():
        records.delete_sale(user_id, sale_id)
    return {"message": "Sale listing removed"}


@router.get("/auctions")
def list_auctions(user_id: str = Depends(current_user_id), records: DataStore = Depends(store)):
    with domain_errors():
        return records.list_auctions(user_id)


@router.post("/auctions", status_code=201)
def create_auction(
    payload: AuctionPayload,
    user_id: str = Depends(current_user_id),
    records: DataStore = Depends(store),
):
    with domain_errors():
        return records.create_auction(user_id, payload_dict(payload))


@router.post("/auctions/{auction_id}/cancel")
def cancel_auction(auction_id: int, user_id: str = Depends(current_user_id), records: DataStore = Depends(store)):
    with domain_errors():
        return records.cancel_auction(user_id, auction_id)
