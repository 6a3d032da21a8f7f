from __future__ import annotations

import datetime as dt
import logging
from typing import Any, Dict, List, Mapping

from .common import FieldErrors, index_by_id, parse_bool, same_id
from .errors import ForbiddenError, NotFoundError, ValidationError
from .tables import utc_now_iso

logger = logging.getLogger(__name__)

SALE_STATUSES = ("active", "sold", "cancelled")
AUCTION_STATUSES = ("active", "ended", "cancelled")
DEFAULT_INCREMENT = 10


def _parent_brief(pigeon: Mapping[str, Any] | None) -> Dict[str, Any] | None:
    if not pigeon:
        return None
    return {"id": pigeon["id"], "name": pigeon.get("name"), "ring_number": pigeon.get("ring_number")}


def _listing_pigeon(pigeon: Mapping[str, Any] | None) -> Dict[str, Any] | None:
    if not pigeon:
        return None
    return {
        "id": pigeon["id"],
        "name": pigeon.get("name"),
        "gender": pigeon.get("gender"),
        "hatch_date": pigeon.get("hatch_date"),
        "color": pigeon.get("color"),
        "ring_number": pigeon.get("ring_number"),
        "personal_number": pigeon.get("personal_number"),
        "photo_url": pigeon.get("photo_url"),
        "pedigree_images": list(pigeon.get("pedigree_images") or []),
    }


def _photo_list(errors: FieldErrors, payload: Mapping[str, Any]) -> List[str]:
    photos = payload.get("additional_photos") or []
    if not isinstance(photos, (list, tuple)) or not all(isinstance(url, str) for url in photos):
        errors.add("additional_photos", "The additional photos must be a list of URLs.")
        return []
    return list(photos)


def _parse_deadline(value: Any) -> dt.datetime:
    if isinstance(value, dt.datetime):
        deadline = value
    else:
        deadline = dt.datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if deadline.tzinfo is None:
        deadline = deadline.replace(tzinfo=dt.timezone.utc)
    return deadline


class MarketRecords:
    """Sale listings, the public marketplace and auction listings."""

    # ------------------------------------------------------------------
    # Sales

    def _owned_sale(self, user_id: str, sale_id: Any) -> Dict[str, Any]:
        sale = self.get_row("sales", sale_id)
        if not sale:
            raise NotFoundError("Sale not found")
        if not same_id(sale.get("user_id"), user_id):
            raise ForbiddenError("Sale belongs to another user")
        return sale

    def _active_sale_pigeon_ids(self, user_id: str) -> set[str]:
        return {str(row["pigeon_id"]) for row in self.select_rows("sales", {"user_id": user_id, "status": "active"})}

    def sales_overview(self, user_id: str) -> Dict[str, Any]:
        """The owner's unlisted pigeons and active listings."""
        pigeons = self.user_pigeons(user_id)
        by_id = index_by_id(pigeons)
        listed = self._active_sale_pigeon_ids(user_id)

        available = []
        for pigeon in pigeons:
            if str(pigeon["id"]) in listed:
                continue
            item = _listing_pigeon(pigeon)
            item["sire"] = _parent_brief(by_id.get(str(pigeon.get("sire_id"))))
            item["dam"] = _parent_brief(by_id.get(str(pigeon.get("dam_id"))))
            available.append(item)

        sales = self.select_rows("sales", {"user_id": user_id, "status": "active"}, order="created_at.desc,id.desc")
        active = [{**sale, "pigeon": _listing_pigeon(by_id.get(str(sale["pigeon_id"])))} for sale in sales]
        return {"available_pigeons": available, "active_sales": active}

    def create_sale(self, user_id: str, payload: Mapping[str, Any]) -> Dict[str, Any]:
        errors = FieldErrors()
        pigeon_id = payload.get("pigeon_id")
        if pigeon_id in (None, ""):
            errors.add("pigeon_id", "The pigeon field is required.")
        else:
            pigeon = self.get_row("pigeons", pigeon_id)
            if not pigeon or not same_id(pigeon.get("user_id"), user_id):
                errors.add("pigeon_id", "The selected pigeon is invalid.")
            elif str(pigeon_id) in self._active_sale_pigeon_ids(user_id):
                errors.add("pigeon_id", "This pigeon is already listed for sale.")
        price = errors.number(payload, "price", "price", minimum=0)
        description = errors.text(payload, "description", "description", max_length=5000)
        photos = _photo_list(errors, payload)
        errors.raise_if_any()

        sale = self.insert_row(
            "sales",
            {
                "user_id": user_id,
                "pigeon_id": pigeon_id,
                "price": price,
                "hide_price": parse_bool(payload.get("hide_price")),
                "description": description,
                "additional_photos": photos,
                "status": "active",
                "sold_at": None,
            },
        )
        logger.info("Listed pigeon %s for sale (%s) for user %s", pigeon_id, sale["id"], user_id)
        return sale

    def delete_sale(self, user_id: str, sale_id: Any) -> None:
        self._owned_sale(user_id, sale_id)
        self.delete_rows("sales", {"id": sale_id})

    def mark_sale_sold(self, user_id: str, sale_id: Any) -> Dict[str, Any]:
        sale = self._owned_sale(user_id, sale_id)
        if sale.get("status") != "active":
            raise ValidationError({"status": "Only active listings can be marked as sold."})
        changes = {"status": "sold", "sold_at": utc_now_iso()}
        return self.update_row("sales", sale_id, changes) or {**sale, **changes}

    def marketplace(self) -> List[Dict[str, Any]]:
        """Every active listing across owners, newest first."""
        sales = self.select_rows("sales", {"status": "active"}, order="created_at.desc,id.desc")
        pigeon_ids = {sale["pigeon_id"] for sale in sales}
        pigeons = index_by_id(self.select_rows("pigeons", {"id": sorted(pigeon_ids, key=str)}))
        parent_ids = {
            pigeon.get(key)
            for pigeon in pigeons.values()
            for key in ("sire_id", "dam_id")
            if pigeon.get(key) is not None
        }
        parents = index_by_id(self.select_rows("pigeons", {"id": sorted(parent_ids, key=str)}))

        listings = []
        for sale in sales:
            pigeon = pigeons.get(str(sale["pigeon_id"]))
            if not pigeon:
                continue
            item = _listing_pigeon(pigeon)
            item["sire"] = _parent_brief(parents.get(str(pigeon.get("sire_id"))))
            item["dam"] = _parent_brief(parents.get(str(pigeon.get("dam_id"))))
            listings.append(
                {
                    "id": sale["id"],
                    "price": None if sale.get("hide_price") else sale.get("price"),
                    "hide_price": bool(sale.get("hide_price")),
                    "description": sale.get("description"),
                    "additional_photos": list(sale.get("additional_photos") or []),
                    "created_at": sale.get("created_at"),
                    "pigeon": item,
                    "owner": {"id": sale.get("user_id")},
                }
            )
        return listings

    # ------------------------------------------------------------------
    # Auctions

    def list_auctions(self, user_id: str) -> List[Dict[str, Any]]:
        auctions = self.select_rows("auctions", {"user_id": user_id}, order="created_at.desc,id.desc")
        pigeons = index_by_id(self.user_pigeons(user_id))
        return [{**row, "pigeon": _listing_pigeon(pigeons.get(str(row["pigeon_id"])))} for row in auctions]

    def create_auction(self, user_id: str, payload: Mapping[str, Any]) -> Dict[str, Any]:
        errors = FieldErrors()
        pigeon_id = payload.get("pigeon_id")
        if pigeon_id in (None, ""):
            errors.add("pigeon_id", "The pigeon field is required.")
        else:
            pigeon = self.get_row("pigeons", pigeon_id)
            if not pigeon or not same_id(pigeon.get("user_id"), user_id):
                errors.add("pigeon_id", "The selected pigeon is invalid.")

        if payload.get("starting_price") in (None, ""):
            errors.add("starting_price", "The starting price field is required.")
        starting_price = errors.number(payload, "starting_price", "starting price", minimum=0)
        increment = errors.number(payload, "increment", "increment", minimum=1)
        reserve_price = errors.number(payload, "reserve_price", "reserve price", minimum=0)
        if reserve_price is not None and starting_price is not None and reserve_price < starting_price:
            errors.add("reserve_price", "The reserve price must be at least the starting price.")

        deadline = None
        if payload.get("deadline") in (None, ""):
            errors.add("deadline", "The deadline field is required.")
        else:
            try:
                deadline = _parse_deadline(payload["deadline"])
            except ValueError:
                errors.add("deadline", "The deadline is not a valid date.")
            else:
                if deadline <= dt.datetime.now(dt.timezone.utc):
                    errors.add("deadline", "The deadline must be a date after now.")

        description = errors.text(payload, "description", "description", max_length=5000)
        photos = _photo_list(errors, payload)
        errors.raise_if_any()

        auction = self.insert_row(
            "auctions",
            {
                "user_id": user_id,
                "pigeon_id": pigeon_id,
                "starting_price": starting_price,
                "current_price": starting_price,
                "increment": increment if increment is not None else DEFAULT_INCREMENT,
                "reserve_price": reserve_price,
                "deadline": deadline.astimezone(dt.timezone.utc).isoformat().replace("+00:00", "Z"),
                "description": description,
                "additional_photos": photos,
                "status": "active",
                "winning_bidder_id": None,
            },
        )
        logger.info("Created auction %s for pigeon %s", auction["id"], pigeon_id)
        return auction

    def cancel_auction(self, user_id: str, auction_id: Any) -> Dict[str, Any]:
        auction = self.get_row("auctions", auction_id)
        if not auction:
            raise NotFoundError("Auction not found")
        if not same_id(auction.get("user_id"), user_id):
            raise ForbiddenError("Auction belongs to another user")
        if auction.get("status") != "active":
            raise ValidationError({"status": "Only active auctions can be cancelled."})
        return self.update_row("auctions", auction_id, {"status": "cancelled"}) or {**auction, "status": "cancelled"}
