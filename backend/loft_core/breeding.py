from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .common import FieldErrors, contains_text, paginate, parse_bool, same_id
from .errors import ForbiddenError, NotFoundError, ValidationError
from .pigeons import INACTIVE_STATUSES, pigeon_summary
from .tables import utc_now_iso

logger = logging.getLogger(__name__)

PAIRING_STATUSES = ("active", "inactive")
CLUTCH_STATUSES = ("pending", "successful", "unsuccessful")
PAIRINGS_PER_PAGE = 20
CLUTCH_NOTES_LIMIT = 1000


class BreedingRecords:
    """Pairings of a sire and dam and the clutches they produce."""

    # ------------------------------------------------------------------
    # Pairings

    def owned_pairing(self, user_id: str, pairing_id: Any) -> Dict[str, Any]:
        pairing = self.get_row("pairings", pairing_id)
        if not pairing:
            raise NotFoundError("Pairing not found")
        if not same_id(pairing.get("user_id"), user_id):
            raise ForbiddenError("Pairing belongs to another user")
        return pairing

    def _active_pairings_for(self, pigeon_ids: Sequence[Any]) -> List[Dict[str, Any]]:
        rows = self.select_rows("pairings", {"status": "active", "sire_id": list(pigeon_ids)})
        rows += self.select_rows("pairings", {"status": "active", "dam_id": list(pigeon_ids)})
        return rows

    def _pairing_out(self, pairing: Dict[str, Any], pigeons: Mapping[str, Dict[str, Any]]) -> Dict[str, Any]:
        item = dict(pairing)
        item["sire"] = pigeon_summary(pigeons.get(str(pairing.get("sire_id"))))
        item["dam"] = pigeon_summary(pigeons.get(str(pairing.get("dam_id"))))
        return item

    def list_pairings(
        self,
        user_id: str,
        status: Optional[str] = None,
        pair_name: Optional[str] = None,
        search: Optional[str] = None,
        page: Any = 1,
        per_page: Any = PAIRINGS_PER_PAGE,
    ) -> Dict[str, Any]:
        pairings = self.select_rows("pairings", {"user_id": user_id}, order="created_at.desc,id.desc")
        pigeons = {str(row["id"]): row for row in self.user_pigeons(user_id)}

        if status:
            pairings = [row for row in pairings if row.get("status") == status]
        if pair_name:
            pairings = [row for row in pairings if contains_text(row.get("pair_name"), pair_name)]
        if search:
            def parent_matches(pigeon_id: Any) -> bool:
                parent = pigeons.get(str(pigeon_id)) or {}
                return contains_text(parent.get("name"), search) or contains_text(parent.get("ring_number"), search)

            pairings = [
                row for row in pairings if parent_matches(row.get("sire_id")) or parent_matches(row.get("dam_id"))
            ]

        try:
            per_page = max(int(per_page), 1)
        except (TypeError, ValueError):
            per_page = PAIRINGS_PER_PAGE

        result = paginate(pairings, page, per_page)
        offspring_counts: Dict[str, int] = {}
        for pairing in result["data"]:
            offspring_counts[str(pairing["id"])] = len(self._pairing_offspring(pairing))
        result["data"] = [
            {**self._pairing_out(row, pigeons), "offspring_count": offspring_counts[str(row["id"])]}
            for row in result["data"]
        ]
        return result

    def _pairing_offspring(self, pairing: Mapping[str, Any]) -> List[Dict[str, Any]]:
        clutch_ids = [row["id"] for row in self.select_rows("clutches", {"pairing_id": pairing["id"]})]
        offspring = {str(row["id"]): row for row in self.select_rows("pigeons", {"clutch_id": clutch_ids})}
        for row in self.select_rows("pigeons", {"pairing_id": pairing["id"]}):
            offspring.setdefault(str(row["id"]), row)
        return sorted(offspring.values(), key=lambda row: str(row.get("created_at") or ""))

    def get_pairing(self, user_id: str, pairing_id: Any) -> Dict[str, Any]:
        pairing = self.owned_pairing(user_id, pairing_id)
        pigeons = {str(row["id"]): row for row in self.user_pigeons(user_id)}
        record = self._pairing_out(pairing, pigeons)
        record["clutches"] = self.list_clutches(user_id, pairing_id)
        record["offspring"] = [pigeon_summary(row) for row in self._pairing_offspring(pairing)]
        return record

    def available_parents(self, user_id: str, pairing_id: Any = None) -> Dict[str, List[Dict[str, Any]]]:
        """Pigeons that may be paired: healthy and not already in an active pairing."""
        current = self.owned_pairing(user_id, pairing_id) if pairing_id is not None else None
        pigeons = [row for row in self.user_pigeons(user_id) if row.get("status") not in INACTIVE_STATUSES]
        busy = {
            str(row[key])
            for row in self.select_rows("pairings", {"status": "active"})
            for key in ("sire_id", "dam_id")
        }
        if current:
            busy.discard(str(current.get("sire_id")))
            busy.discard(str(current.get("dam_id")))

        def summary(row: Dict[str, Any]) -> Dict[str, Any]:
            return {
                "id": row["id"],
                "name": row.get("name"),
                "ring_number": row.get("ring_number"),
                "bloodline": row.get("bloodline"),
            }

        free = sorted(
            (row for row in pigeons if str(row["id"]) not in busy),
            key=lambda row: str(row.get("name") or ""),
        )
        return {
            "sires": [summary(row) for row in free if row.get("gender") == "male"],
            "dams": [summary(row) for row in free if row.get("gender") == "female"],
        }

    def _validate_parent(self, user_id: str, errors: FieldErrors, payload: Mapping[str, Any], key: str, gender: str) -> None:
        label = "sire" if key == "sire_id" else "dam"
        pigeon_id = payload.get(key)
        if pigeon_id in (None, ""):
            errors.add(key, f"The {label} field is required.")
            return
        pigeon = self.get_row("pigeons", pigeon_id)
        if not pigeon or not same_id(pigeon.get("user_id"), user_id) or pigeon.get("gender") != gender:
            errors.add(key, f"The selected {label} is invalid.")

    def create_pairing(self, user_id: str, payload: Mapping[str, Any]) -> Dict[str, Any]:
        errors = FieldErrors()
        self._validate_parent(user_id, errors, payload, "sire_id", "male")
        self._validate_parent(user_id, errors, payload, "dam_id", "female")
        pair_name = errors.text(payload, "pair_name", "pair name")
        errors.raise_if_any()

        sire_id, dam_id = payload["sire_id"], payload["dam_id"]
        # Read-then-write: two concurrent requests for the same pigeon can both get through.
        if self._active_pairings_for([sire_id, dam_id]):
            raise ValidationError({"sire_id": "One or both pigeons are already in an active pairing."})

        previous = self.select_rows("pairings", {"user_id": user_id, "sire_id": sire_id, "dam_id": dam_id})
        clutch_number = len(previous) + 1

        pairing = self.insert_row(
            "pairings",
            {
                "user_id": user_id,
                "sire_id": sire_id,
                "dam_id": dam_id,
                "pair_name": pair_name or f"Pair #{clutch_number}",
                "status": "active",
                "current_clutch_number": clutch_number,
                "started_at": utc_now_iso(),
                "ended_at": None,
            },
        )
        self.update_rows("pigeons", {"id": [sire_id, dam_id]}, {"status": "breeding"})
        logger.info("Created pairing %s for user %s", pairing["id"], user_id)
        return self.get_pairing(user_id, pairing["id"])

    def update_pairing(self, user_id: str, pairing_id: Any, payload: Mapping[str, Any]) -> Dict[str, Any]:
        self.owned_pairing(user_id, pairing_id)
        errors = FieldErrors()
        changes: Dict[str, Any] = {}
        if "pair_name" in payload:
            changes["pair_name"] = errors.text(payload, "pair_name", "pair name")
        if "status" in payload:
            changes["status"] = errors.choice(payload, "status", "status", PAIRING_STATUSES)
            if changes["status"] is None:
                errors.add("status", "The status field is required.")
        errors.raise_if_any()
        if changes:
            self.update_row("pairings", pairing_id, changes)
        return self.get_pairing(user_id, pairing_id)

    def delete_pairing(self, user_id: str, pairing_id: Any) -> None:
        pairing = self.owned_pairing(user_id, pairing_id)
        if pairing.get("status") == "active":
            self.update_rows("pigeons", {"id": [pairing["sire_id"], pairing["dam_id"]]}, {"status": "stock"})
        self.delete_pairing_rows([pairing_id])
        logger.info("Deleted pairing %s for user %s", pairing_id, user_id)

    def delete_pairing_rows(self, pairing_ids: Sequence[Any]) -> None:
        """Remove pairings with their clutches, unlinking any offspring."""
        clutch_ids = [row["id"] for row in self.select_rows("clutches", {"pairing_id": list(pairing_ids)})]
        if clutch_ids:
            self.update_rows("pigeons", {"clutch_id": clutch_ids}, {"clutch_id": None})
        self.update_rows("clutches", {"biological_pairing_id": list(pairing_ids)}, {"biological_pairing_id": None})
        self.delete_rows("clutches", {"pairing_id": list(pairing_ids)})
        self.update_rows("pigeons", {"pairing_id": list(pairing_ids)}, {"pairing_id": None})
        self.delete_rows("pairings", {"id": list(pairing_ids)})

    def end_pairing(self, user_id: str, pairing_id: Any) -> Dict[str, Any]:
        pairing = self.owned_pairing(user_id, pairing_id)
        if pairing.get("status") != "active":
            raise ValidationError({"status": "This pairing is already inactive."})
        self.update_row("pairings", pairing_id, {"status": "inactive", "ended_at": utc_now_iso()})
        self.update_rows("pigeons", {"id": [pairing["sire_id"], pairing["dam_id"]]}, {"status": "stock"})
        return self.get_pairing(user_id, pairing_id)

    # ------------------------------------------------------------------
    # Clutches

    def list_clutches(self, user_id: str, pairing_id: Any) -> List[Dict[str, Any]]:
        self.owned_pairing(user_id, pairing_id)
        return self.select_rows("clutches", {"pairing_id": pairing_id}, order="clutch_number.asc")

    def _pairing_clutch(self, pairing_id: Any, clutch_id: Any) -> Dict[str, Any]:
        clutch = self.get_row("clutches", clutch_id)
        if not clutch or not same_id(clutch.get("pairing_id"), pairing_id):
            raise NotFoundError("Clutch not found")
        return clutch

    def _validate_clutch(self, user_id: str, pairing_id: Any, payload: Mapping[str, Any], status_required: bool) -> Dict[str, Any]:
        errors = FieldErrors()
        eggs_laid = errors.date(payload, "eggs_laid_date", "eggs laid date")
        hatched = errors.date(payload, "hatched_date", "hatched date")
        if eggs_laid and hatched and hatched < eggs_laid:
            errors.add("hatched_date", "The hatched date must be a date after or equal to eggs laid date.")
        notes = errors.text(payload, "notes", "notes", max_length=CLUTCH_NOTES_LIMIT)

        data: Dict[str, Any] = {
            "eggs_laid_date": eggs_laid.isoformat() if eggs_laid else None,
            "hatched_date": hatched.isoformat() if hatched else None,
            "notes": notes,
            "is_fostered": parse_bool(payload.get("is_fostered")),
            "biological_pairing_id": payload.get("biological_pairing_id") or None,
        }
        if status_required:
            data["status"] = errors.choice(payload, "status", "status", CLUTCH_STATUSES)
            if data["status"] is None and "status" not in errors:
                errors.add("status", "The status field is required.")

        biological_id = data["biological_pairing_id"]
        if biological_id is not None:
            biological = self.get_row("pairings", biological_id)
            if not biological or not same_id(biological.get("user_id"), user_id) or same_id(biological_id, pairing_id):
                errors.add("biological_pairing_id", "The selected biological pairing is invalid.")
        if not data["is_fostered"]:
            data["biological_pairing_id"] = None

        errors.raise_if_any()
        return data

    def create_clutch(self, user_id: str, pairing_id: Any, payload: Mapping[str, Any]) -> Dict[str, Any]:
        self.owned_pairing(user_id, pairing_id)
        data = self._validate_clutch(user_id, pairing_id, payload, status_required=False)
        existing = self.select_rows("clutches", {"pairing_id": pairing_id})
        next_number = max((int(row.get("clutch_number") or 0) for row in existing), default=0) + 1
        clutch = self.insert_row(
            "clutches",
            {**data, "pairing_id": pairing_id, "clutch_number": next_number, "status": "pending"},
        )
        self.update_row("pairings", pairing_id, {"current_clutch_number": next_number})
        return clutch

    def update_clutch(self, user_id: str, pairing_id: Any, clutch_id: Any, payload: Mapping[str, Any]) -> Dict[str, Any]:
        self.owned_pairing(user_id, pairing_id)
        clutch = self._pairing_clutch(pairing_id, clutch_id)
        merged = {key: clutch.get(key) for key in ("eggs_laid_date", "hatched_date", "notes", "status",
                                                   "is_fostered", "biological_pairing_id")}
        merged.update(payload)
        data = self._validate_clutch(user_id, pairing_id, merged, status_required=True)
        return self.update_row("clutches", clutch_id, data) or {**clutch, **data}

    def delete_clutch(self, user_id: str, pairing_id: Any, clutch_id: Any) -> None:
        self.owned_pairing(user_id, pairing_id)
        self._pairing_clutch(pairing_id, clutch_id)
        if self.select_rows("pigeons", {"clutch_id": clutch_id}):
            raise ValidationError({"clutch": "Cannot delete clutch with offspring records."})
        self.delete_rows("clutches", {"id": clutch_id})
