from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from .common import FieldErrors, clean_text, contains_text, index_by_id, paginate, parse_bool, same_id
from .errors import NotFoundError, ValidationError
from .pedigree import DEFAULT_GENERATIONS, build_pedigree_tree
from .ring_match import match_ring_number

logger = logging.getLogger(__name__)

PIGEON_STATUSES = ("stock", "racing", "breeding", "injured", "deceased", "missing", "flyaway")
INACTIVE_STATUSES = ("deceased", "missing", "flyaway")
GENDERS = ("male", "female")
PER_PAGE_OPTIONS = (12, 21, 52, 104)
DEFAULT_PER_PAGE = 12
RECENT_LIMIT = 5

TEXT_FIELDS = {
    "personal_number": "personal number",
    "color": "color",
    "sire_name": "sire name",
    "sire_ring_number": "sire ring number",
    "sire_color": "sire color",
    "dam_name": "dam name",
    "dam_ring_number": "dam ring number",
    "dam_color": "dam color",
}
LONG_TEXT_FIELDS = {
    "remarks": "remarks",
    "notes": "notes",
    "sire_notes": "sire notes",
    "dam_notes": "dam notes",
    "sale_description": "sale description",
}
PIGEON_FIELDS = (
    "name",
    "gender",
    "hatch_date",
    "status",
    "color_tag_id",
    "ring_number",
    "photo_url",
    "pedigree_images",
    "for_sale",
    "sale_price",
    "hide_price",
    "sire_id",
    "dam_id",
    "pairing_id",
    "clutch_id",
    *TEXT_FIELDS,
    *LONG_TEXT_FIELDS,
)

ImageDiscard = Optional[Callable[[List[str]], Any]]


def pigeon_summary(pigeon: Optional[Mapping[str, Any]]) -> Optional[Dict[str, Any]]:
    if not pigeon:
        return None
    return {
        "id": pigeon.get("id"),
        "name": pigeon.get("name"),
        "ring_number": pigeon.get("ring_number"),
        "personal_number": pigeon.get("personal_number"),
        "gender": pigeon.get("gender"),
        "color": pigeon.get("color"),
        "status": pigeon.get("status"),
        "photo_url": pigeon.get("photo_url"),
    }


def parent_label(pigeon: Mapping[str, Any], sire: Optional[Mapping], dam: Optional[Mapping]) -> str:
    parts = [
        pigeon.get("name"),
        pigeon.get("ring_number"),
        pigeon.get("personal_number"),
        pigeon.get("color"),
        pigeon.get("bloodline"),
        f"S:{sire.get('ring_number')}" if sire else None,
        f"D:{dam.get('ring_number')}" if dam else None,
    ]
    return " ".join(str(part) for part in parts if part).strip()


class PigeonRecords:
    """Pigeon registry operations, scoped to the owning user."""

    # ------------------------------------------------------------------
    # Lookups

    def user_pigeons(self, user_id: str) -> List[Dict[str, Any]]:
        return self.select_rows("pigeons", {"user_id": user_id}, order="created_at.desc,id.desc")

    def owned_pigeon(self, user_id: str, pigeon_id: Any) -> Dict[str, Any]:
        pigeon = self.get_row("pigeons", pigeon_id)
        if not pigeon or not same_id(pigeon.get("user_id"), user_id):
            raise NotFoundError("Pigeon not found")
        return pigeon

    def _pigeon_bloodlines(self, pigeon_ids: Sequence[Any]) -> Dict[str, List[Dict[str, Any]]]:
        links = self.select_rows("pigeon_bloodline", {"pigeon_id": list(pigeon_ids)})
        if not links:
            return {}
        bloodlines = index_by_id(
            self.select_rows("bloodlines", {"id": sorted({link["bloodline_id"] for link in links}, key=str)})
        )
        grouped: Dict[str, List[Dict[str, Any]]] = {}
        for link in links:
            bloodline = bloodlines.get(str(link.get("bloodline_id")))
            if not bloodline:
                continue
            grouped.setdefault(str(link["pigeon_id"]), []).append(
                {"id": bloodline["id"], "name": bloodline.get("name"), "is_primary": bool(link.get("is_primary"))}
            )
        for items in grouped.values():
            items.sort(key=lambda item: (not item["is_primary"], str(item["name"] or "")))
        return grouped

    def _with_relations(self, user_id: str, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        if not rows:
            return rows
        bloodlines = self._pigeon_bloodlines([row["id"] for row in rows])
        parent_ids = {row.get(key) for row in rows for key in ("sire_id", "dam_id") if row.get(key) is not None}
        parents = index_by_id(self.select_rows("pigeons", {"id": sorted(parent_ids, key=str)})) if parent_ids else {}
        tags = index_by_id(self.select_rows("color_tags", {"user_id": user_id}))
        enriched = []
        for row in rows:
            item = dict(row)
            item["bloodlines"] = bloodlines.get(str(row["id"]), [])
            item["sire"] = pigeon_summary(parents.get(str(row.get("sire_id"))))
            item["dam"] = pigeon_summary(parents.get(str(row.get("dam_id"))))
            tag = tags.get(str(row.get("color_tag_id")))
            item["color_tag"] = {"id": tag["id"], "name": tag.get("name"), "color": tag.get("color")} if tag else None
            enriched.append(item)
        return enriched

    # ------------------------------------------------------------------
    # Listing

    def list_pigeons(
        self,
        user_id: str,
        search: Optional[str] = None,
        gender: Optional[str] = None,
        status: str | Sequence[str] | None = None,
        bloodline: Any = None,
        page: Any = 1,
        per_page: Any = DEFAULT_PER_PAGE,
    ) -> Dict[str, Any]:
        try:
            per_page = int(per_page)
        except (TypeError, ValueError):
            per_page = DEFAULT_PER_PAGE
        if per_page not in PER_PAGE_OPTIONS:
            per_page = DEFAULT_PER_PAGE

        pigeons = self.user_pigeons(user_id)
        bloodline_map = self._pigeon_bloodlines([row["id"] for row in pigeons]) if pigeons else {}

        needle = (search or "").strip()
        if needle:
            fields = ("name", "ring_number", "personal_number", "bloodline", "color")
            pigeons = [
                row
                for row in pigeons
                if any(contains_text(row.get(field), needle) for field in fields)
                or any(contains_text(item["name"], needle) for item in bloodline_map.get(str(row["id"]), []))
            ]

        if gender:
            pigeons = [row for row in pigeons if row.get("gender") == gender]

        if status:
            wanted = [status] if isinstance(status, str) else list(status)
            pigeons = [row for row in pigeons if row.get("status") in wanted]

        if bloodline not in (None, ""):
            if str(bloodline).isdigit():
                pigeons = [
                    row
                    for row in pigeons
                    if any(same_id(item["id"], bloodline) for item in bloodline_map.get(str(row["id"]), []))
                ]
            else:
                pigeons = [row for row in pigeons if row.get("bloodline") == bloodline]

        result = paginate(pigeons, page, per_page)
        result["data"] = self._with_relations(user_id, result["data"])

        all_pigeons = self.user_pigeons(user_id)
        result["filter_options"] = {
            "bloodlines": [{"id": row["id"], "name": row.get("name")} for row in self.list_bloodlines(user_id)],
            "colors": sorted({row["color"] for row in all_pigeons if row.get("color")}),
            "color_tags": [
                {"id": row["id"], "name": row.get("name"), "color": row.get("color")}
                for row in self.list_color_tags(user_id)
            ],
        }
        return result

    def get_pigeon(self, user_id: str, pigeon_id: Any) -> Dict[str, Any]:
        pigeon = self.owned_pigeon(user_id, pigeon_id)
        record = self._with_relations(user_id, [pigeon])[0]
        offspring = [
            row
            for row in self.user_pigeons(user_id)
            if same_id(row.get("sire_id"), pigeon_id) or same_id(row.get("dam_id"), pigeon_id)
        ]
        record["offspring"] = [pigeon_summary(row) for row in offspring]
        return record

    # ------------------------------------------------------------------
    # Validation

    def _validate_pigeon(
        self,
        user_id: str,
        payload: Mapping[str, Any],
        pigeon_id: Any = None,
    ) -> Dict[str, Any]:
        errors = FieldErrors()
        data: Dict[str, Any] = {}

        data["ring_number"] = errors.text(payload, "ring_number", "ring number", required=True)
        name = errors.text(payload, "name", "name")
        data["name"] = name.upper() if name else None
        for field, label in TEXT_FIELDS.items():
            data[field] = errors.text(payload, field, label)
        for field, label in LONG_TEXT_FIELDS.items():
            data[field] = errors.text(payload, field, label, max_length=5000)

        data["gender"] = errors.choice(payload, "gender", "gender", GENDERS)
        data["status"] = errors.choice(payload, "status", "status", PIGEON_STATUSES, default="stock")
        hatch_date = errors.date(payload, "hatch_date", "hatch date")
        data["hatch_date"] = hatch_date.isoformat() if hatch_date else None

        data["for_sale"] = parse_bool(payload.get("for_sale"))
        data["hide_price"] = parse_bool(payload.get("hide_price"))
        data["sale_price"] = errors.number(payload, "sale_price", "sale price", minimum=0)

        data["photo_url"] = clean_text(payload.get("photo_url"))
        images = payload.get("pedigree_images") or []
        if not isinstance(images, (list, tuple)) or not all(isinstance(url, str) for url in images):
            errors.add("pedigree_images", "The pedigree images must be a list of URLs.")
            images = []
        data["pedigree_images"] = list(images)

        for key, gender, label in (("sire_id", "male", "sire"), ("dam_id", "female", "dam")):
            parent_id = payload.get(key)
            data[key] = parent_id
            if parent_id in (None, ""):
                data[key] = None
                continue
            if pigeon_id is not None and same_id(parent_id, pigeon_id):
                errors.add(key, f"A pigeon cannot be its own {label}.")
                continue
            parent = self.get_row("pigeons", parent_id)
            if not parent or not same_id(parent.get("user_id"), user_id) or parent.get("gender") != gender:
                errors.add(key, f"The selected {label} is invalid.")

        data["color_tag_id"] = payload.get("color_tag_id") or None
        if data["color_tag_id"] is not None:
            tag = self.get_row("color_tags", data["color_tag_id"])
            if not tag or not same_id(tag.get("user_id"), user_id):
                errors.add("color_tag_id", "The selected color tag is invalid.")

        data["pairing_id"] = payload.get("pairing_id") or None
        if data["pairing_id"] is not None:
            pairing = self.get_row("pairings", data["pairing_id"])
            if not pairing or not same_id(pairing.get("user_id"), user_id):
                errors.add("pairing_id", "The selected pairing is invalid.")

        data["clutch_id"] = payload.get("clutch_id") or None
        if data["clutch_id"] is not None:
            clutch = self.get_row("clutches", data["clutch_id"])
            pairing = self.get_row("pairings", clutch.get("pairing_id")) if clutch else None
            if not pairing or not same_id(pairing.get("user_id"), user_id):
                errors.add("clutch_id", "The selected clutch is invalid.")

        if "bloodlines" in payload:
            self._validate_bloodline_items(user_id, payload.get("bloodlines"), errors)

        errors.raise_if_any()
        return data

    def _validate_bloodline_items(self, user_id: str, items: Any, errors: FieldErrors) -> None:
        if items is None:
            return
        if not isinstance(items, (list, tuple)):
            errors.add("bloodlines", "The bloodlines must be a list.")
            return
        for index, item in enumerate(items):
            if not isinstance(item, Mapping):
                errors.add(f"bloodlines.{index}", "Each bloodline must be an object.")
                continue
            if item.get("id") not in (None, ""):
                bloodline = self.get_row("bloodlines", item["id"])
                if not bloodline or not same_id(bloodline.get("user_id"), user_id):
                    errors.add(f"bloodlines.{index}.id", "The selected bloodline is invalid.")
            elif not clean_text(item.get("name")):
                errors.add(f"bloodlines.{index}.name", "The bloodline name field is required.")
            elif len(clean_text(item.get("name"))) > 255:
                errors.add(f"bloodlines.{index}.name", "The bloodline name may not be greater than 255 characters.")

    # ------------------------------------------------------------------
    # Writes

    def create_pigeon(self, user_id: str, payload: Mapping[str, Any]) -> Dict[str, Any]:
        data = self._validate_pigeon(user_id, payload)
        record = self.insert_row("pigeons", {**data, "user_id": user_id})
        if payload.get("bloodlines") is not None:
            self.sync_pigeon_bloodlines(user_id, record["id"], payload["bloodlines"])
        logger.info("Created pigeon %s for user %s", record["id"], user_id)
        return self.get_pigeon(user_id, record["id"])

    def update_pigeon(
        self,
        user_id: str,
        pigeon_id: Any,
        payload: Mapping[str, Any],
        on_discard: ImageDiscard = None,
    ) -> Dict[str, Any]:
        existing = self.owned_pigeon(user_id, pigeon_id)
        payload = dict(payload)
        remove_photo = parse_bool(payload.pop("remove_photo", False))
        remove_pedigree = payload.pop("remove_pedigree", None) or []
        if not isinstance(remove_pedigree, (list, tuple)):
            raise ValidationError({"remove_pedigree": "The images to remove must be a list of URLs."})

        merged = {key: existing.get(key) for key in PIGEON_FIELDS}
        merged.update({key: value for key, value in payload.items() if key != "pedigree_images"})
        current_images = list(existing.get("pedigree_images") or [])
        added_images = payload.get("pedigree_images") or []
        merged["pedigree_images"] = added_images
        data = self._validate_pigeon(user_id, merged, pigeon_id=pigeon_id)

        changes = {key: data[key] for key in payload if key in PIGEON_FIELDS and key != "pedigree_images"}
        discarded: List[str] = []

        if remove_photo and existing.get("photo_url"):
            changes["photo_url"] = None
            discarded.append(existing["photo_url"])
        elif "photo_url" in changes and existing.get("photo_url") and changes["photo_url"] != existing["photo_url"]:
            discarded.append(existing["photo_url"])

        if data["pedigree_images"] or remove_pedigree:
            images = current_images + [url for url in data["pedigree_images"] if url not in current_images]
            dropped = [url for url in images if url in remove_pedigree]
            changes["pedigree_images"] = [url for url in images if url not in remove_pedigree]
            discarded.extend(dropped)

        if changes:
            self.update_row("pigeons", pigeon_id, changes)
        if "bloodlines" in payload:
            self.sync_pigeon_bloodlines(user_id, pigeon_id, payload.get("bloodlines") or [])
        if discarded and on_discard:
            on_discard(discarded)
        return self.get_pigeon(user_id, pigeon_id)

    def delete_pigeon(self, user_id: str, pigeon_id: Any, on_discard: ImageDiscard = None) -> None:
        pigeon = self.owned_pigeon(user_id, pigeon_id)

        for table in (
            "pigeon_bloodline",
            "club_season_entries",
            "club_race_results",
            "olr_season_entries",
            "olr_race_results",
            "sales",
            "auctions",
        ):
            self.delete_rows(table, {"pigeon_id": pigeon_id})

        pairing_ids = {
            row["id"]
            for key in ("sire_id", "dam_id")
            for row in self.select_rows("pairings", {key: pigeon_id})
        }
        if pairing_ids:
            self.delete_pairing_rows(sorted(pairing_ids, key=str))

        self.update_rows("pigeons", {"sire_id": pigeon_id}, {"sire_id": None})
        self.update_rows("pigeons", {"dam_id": pigeon_id}, {"dam_id": None})
        self.delete_rows("pigeons", {"id": pigeon_id})
        logger.info("Deleted pigeon %s for user %s", pigeon_id, user_id)

        discarded = [url for url in [pigeon.get("photo_url"), *(pigeon.get("pedigree_images") or [])] if url]
        if discarded and on_discard:
            on_discard(discarded)

    def set_pigeon_photo(self, user_id: str, pigeon_id: Any, photo_url: str) -> tuple[Dict[str, Any], Optional[str]]:
        """Point the pigeon at a new photo and return the URL it replaced."""
        pigeon = self.owned_pigeon(user_id, pigeon_id)
        self.update_row("pigeons", pigeon_id, {"photo_url": photo_url})
        previous = pigeon.get("photo_url")
        return self.get_pigeon(user_id, pigeon_id), previous if previous != photo_url else None

    def add_pedigree_images(self, user_id: str, pigeon_id: Any, urls: Iterable[str]) -> Dict[str, Any]:
        pigeon = self.owned_pigeon(user_id, pigeon_id)
        images = list(pigeon.get("pedigree_images") or [])
        images.extend(url for url in urls if url not in images)
        self.update_row("pigeons", pigeon_id, {"pedigree_images": images})
        return self.get_pigeon(user_id, pigeon_id)

    # ------------------------------------------------------------------
    # Bloodline links

    def sync_pigeon_bloodlines(self, user_id: str, pigeon_id: Any, items: Sequence[Mapping[str, Any]]) -> List[Dict]:
        """Replace the pigeon's bloodline links.

        Items carry either an existing bloodline ``id`` or a ``name`` that is
        created on demand. The legacy ``bloodline`` column mirrors the primary
        link, or is cleared when no link is primary.
        """
        self.delete_rows("pigeon_bloodline", {"pigeon_id": pigeon_id})
        if not items:
            self.update_row("pigeons", pigeon_id, {"bloodline": None})
            return []

        linked: List[Dict[str, Any]] = []
        seen: set[str] = set()
        primary_name = None
        for item in items:
            if item.get("id") not in (None, ""):
                bloodline = self.owned_bloodline(user_id, item["id"])
            else:
                bloodline, _ = self.get_or_create_bloodline(user_id, item.get("name"))
            if str(bloodline["id"]) in seen:
                continue
            seen.add(str(bloodline["id"]))
            is_primary = parse_bool(item.get("is_primary"))
            self.insert_row(
                "pigeon_bloodline",
                {"pigeon_id": pigeon_id, "bloodline_id": bloodline["id"], "is_primary": is_primary},
            )
            if is_primary and primary_name is None:
                primary_name = bloodline.get("name")
            linked.append({"id": bloodline["id"], "name": bloodline.get("name"), "is_primary": is_primary})

        self.update_row("pigeons", pigeon_id, {"bloodline": primary_name})
        return linked

    # ------------------------------------------------------------------
    # Parents, pedigree and ring checks

    def parent_options(self, user_id: str, exclude_id: Any = None) -> Dict[str, List[Dict[str, Any]]]:
        pigeons = self.user_pigeons(user_id)
        by_id = index_by_id(pigeons)
        ordered = sorted(pigeons, key=lambda row: (str(row.get("name") or ""), str(row.get("ring_number") or "")))

        def option(row: Dict[str, Any]) -> Dict[str, Any]:
            sire = by_id.get(str(row.get("sire_id"))) if row.get("sire_id") is not None else None
            dam = by_id.get(str(row.get("dam_id"))) if row.get("dam_id") is not None else None
            return {
                "id": row["id"],
                "name": row.get("name"),
                "ring_number": row.get("ring_number"),
                "personal_number": row.get("personal_number"),
                "color": row.get("color"),
                "bloodline": row.get("bloodline"),
                "sire": {"ring_number": sire.get("ring_number"), "name": sire.get("name")} if sire else None,
                "dam": {"ring_number": dam.get("ring_number"), "name": dam.get("name")} if dam else None,
                "notes": row.get("notes"),
                "remarks": row.get("remarks"),
                "label": parent_label(row, sire, dam),
            }

        candidates = [row for row in ordered if exclude_id is None or not same_id(row["id"], exclude_id)]
        return {
            "sires": [option(row) for row in candidates if row.get("gender") == "male"],
            "dams": [option(row) for row in candidates if row.get("gender") == "female"],
        }

    def pedigree(self, user_id: str, pigeon_id: Any, generations: int = DEFAULT_GENERATIONS) -> Dict[str, Any]:
        pigeon = self.owned_pigeon(user_id, pigeon_id)
        by_id = index_by_id(self.user_pigeons(user_id))
        tree = build_pedigree_tree(pigeon, generations, lambda parent_id: by_id.get(str(parent_id)))
        return {"pigeon": pigeon_summary(pigeon), "generations": generations, "pedigree": tree}

    def check_ring_number(self, user_id: str, ring_number: Optional[str], exclude_id: Any = None) -> Dict[str, Any]:
        if not (ring_number or "").strip():
            return match_ring_number(ring_number, [])
        return match_ring_number(ring_number, self.user_pigeons(user_id), exclude_id=exclude_id)

    def dashboard(self, user_id: str) -> Dict[str, Any]:
        pigeons = self.user_pigeons(user_id)
        return {
            "total_pigeons": len(pigeons),
            "recent_pigeons": [pigeon_summary(row) for row in pigeons[:RECENT_LIMIT]],
        }
