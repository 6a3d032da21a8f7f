from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .common import FieldErrors, contains_text, is_hex_color, same_id
from .errors import ForbiddenError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 20


def _bloodline_out(row: Mapping[str, Any]) -> Dict[str, Any]:
    return {"id": row["id"], "name": row.get("name")}


def _color_tag_out(row: Mapping[str, Any]) -> Dict[str, Any]:
    return {"id": row["id"], "name": row.get("name"), "color": row.get("color")}


class LookupRecords:
    """Bloodlines and color tags, the per-user vocabularies pigeons refer to."""

    def _owned(self, table: str, user_id: str, row_id: Any, label: str) -> Dict[str, Any]:
        row = self.get_row(table, row_id)
        if not row:
            raise NotFoundError(f"{label} not found")
        if not same_id(row.get("user_id"), user_id):
            raise ForbiddenError(f"{label} belongs to another user")
        return row

    # ------------------------------------------------------------------
    # Bloodlines

    def owned_bloodline(self, user_id: str, bloodline_id: Any) -> Dict[str, Any]:
        return self._owned("bloodlines", user_id, bloodline_id, "Bloodline")

    def list_bloodlines(self, user_id: str) -> List[Dict[str, Any]]:
        rows = self.select_rows("bloodlines", {"user_id": user_id}, order="name.asc")
        return [_bloodline_out(row) for row in rows]

    def search_bloodlines(self, user_id: str, query: Optional[str] = None) -> List[Dict[str, Any]]:
        rows = self.list_bloodlines(user_id)
        needle = (query or "").strip()
        if needle:
            rows = [row for row in rows if contains_text(row["name"], needle)]
        return rows[:SEARCH_LIMIT]

    def _bloodline_name(self, user_id: str, payload: Mapping[str, Any], ignore_id: Any = None) -> str:
        errors = FieldErrors()
        name = errors.text(payload, "name", "name", required=True)
        errors.raise_if_any()
        name = name.upper()
        for row in self.select_rows("bloodlines", {"user_id": user_id}):
            if str(row.get("name") or "").upper() == name and not same_id(row["id"], ignore_id):
                raise ValidationError({"name": "You already have a bloodline with this name."})
        return name

    def create_bloodline(self, user_id: str, payload: Mapping[str, Any]) -> Dict[str, Any]:
        name = self._bloodline_name(user_id, payload)
        row = self.insert_row("bloodlines", {"user_id": user_id, "name": name})
        logger.info("Created bloodline %s for user %s", row["id"], user_id)
        return _bloodline_out(row)

    def update_bloodline(self, user_id: str, bloodline_id: Any, payload: Mapping[str, Any]) -> Dict[str, Any]:
        self.owned_bloodline(user_id, bloodline_id)
        name = self._bloodline_name(user_id, payload, ignore_id=bloodline_id)
        row = self.update_row("bloodlines", bloodline_id, {"name": name})
        return _bloodline_out(row or {"id": bloodline_id, "name": name})

    def delete_bloodline(self, user_id: str, bloodline_id: Any) -> None:
        self.owned_bloodline(user_id, bloodline_id)
        pigeon_count = len({row["pigeon_id"] for row in self.select_rows("pigeon_bloodline", {"bloodline_id": bloodline_id})})
        if pigeon_count > 0:
            raise ValidationError(
                {"bloodline": f"Cannot delete bloodline. It is assigned to {pigeon_count} pigeon(s)."},
                pigeon_count=pigeon_count,
            )
        self.delete_rows("bloodlines", {"id": bloodline_id})

    def get_or_create_bloodline(self, user_id: str, name: Any) -> Tuple[Dict[str, Any], bool]:
        """Return the bloodline called ``name`` and whether it was just created."""
        errors = FieldErrors()
        cleaned = errors.text({"name": name}, "name", "name", required=True)
        errors.raise_if_any()
        wanted = cleaned.upper()
        for row in self.select_rows("bloodlines", {"user_id": user_id}):
            if str(row.get("name") or "").upper() == wanted:
                return row, False
        row = self.insert_row("bloodlines", {"user_id": user_id, "name": wanted})
        logger.info("Created bloodline %s for user %s", row["id"], user_id)
        return row, True

    # ------------------------------------------------------------------
    # Color tags

    def owned_color_tag(self, user_id: str, tag_id: Any) -> Dict[str, Any]:
        return self._owned("color_tags", user_id, tag_id, "Color tag")

    def list_color_tags(self, user_id: str) -> List[Dict[str, Any]]:
        rows = self.select_rows("color_tags", {"user_id": user_id}, order="name.asc")
        return [_color_tag_out(row) for row in rows]

    def _color_tag_fields(self, user_id: str, payload: Mapping[str, Any], ignore_id: Any = None) -> Dict[str, str]:
        errors = FieldErrors()
        name = errors.text(payload, "name", "name", required=True)
        color = errors.text(payload, "color", "color", required=True)
        if color and not is_hex_color(color):
            errors.add("color", "Color must be a valid hex color (e.g., #FF5733).")
        if name and "name" not in errors:
            for row in self.select_rows("color_tags", {"user_id": user_id}):
                if row.get("name") == name and not same_id(row["id"], ignore_id):
                    errors.add("name", "You already have a color tag with this name.")
                    break
        errors.raise_if_any()
        return {"name": name, "color": color.upper()}

    def create_color_tag(self, user_id: str, payload: Mapping[str, Any]) -> Dict[str, Any]:
        fields = self._color_tag_fields(user_id, payload)
        row = self.insert_row("color_tags", {"user_id": user_id, **fields})
        return _color_tag_out(row)

    def update_color_tag(self, user_id: str, tag_id: Any, payload: Mapping[str, Any]) -> Dict[str, Any]:
        self.owned_color_tag(user_id, tag_id)
        fields = self._color_tag_fields(user_id, payload, ignore_id=tag_id)
        row = self.update_row("color_tags", tag_id, fields)
        return _color_tag_out(row or {"id": tag_id, **fields})

    def delete_color_tag(self, user_id: str, tag_id: Any) -> int:
        """Delete the tag, untag its pigeons and return how many were untagged."""
        self.owned_color_tag(user_id, tag_id)
        affected = self.update_rows("pigeons", {"color_tag_id": tag_id}, {"color_tag_id": None})
        self.delete_rows("color_tags", {"id": tag_id})
        return len(affected)
