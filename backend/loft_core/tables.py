from __future__ import annotations

import datetime as dt
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import httpx


logger = logging.getLogger(__name__)

# Sync order; references to tables later in the list are patched after the insert pass.
TABLES = (
    "pigeons",
    "bloodlines",
    "pigeon_bloodline",
    "color_tags",
    "pairings",
    "clutches",
    "clubs",
    "club_seasons",
    "club_season_entries",
    "club_season_races",
    "club_race_results",
    "olr_races",
    "olr_seasons",
    "olr_season_entries",
    "olr_season_races",
    "olr_race_results",
    "sales",
    "auctions",
)

# Columns holding ids of other tables, rewritten to server ids when a backlog is synced.
FOREIGN_KEYS: Dict[str, Dict[str, str]] = {
    "pigeons": {
        "sire_id": "pigeons",
        "dam_id": "pigeons",
        "color_tag_id": "color_tags",
        "pairing_id": "pairings",
        "clutch_id": "clutches",
    },
    "pigeon_bloodline": {"pigeon_id": "pigeons", "bloodline_id": "bloodlines"},
    "pairings": {"sire_id": "pigeons", "dam_id": "pigeons"},
    "clutches": {"pairing_id": "pairings", "biological_pairing_id": "pairings"},
    "club_seasons": {"club_id": "clubs"},
    "club_season_entries": {"club_season_id": "club_seasons", "pigeon_id": "pigeons"},
    "club_season_races": {"club_season_id": "club_seasons"},
    "club_race_results": {"club_season_race_id": "club_season_races", "pigeon_id": "pigeons"},
    "olr_seasons": {"olr_race_id": "olr_races"},
    "olr_season_entries": {"olr_season_id": "olr_seasons", "pigeon_id": "pigeons"},
    "olr_season_races": {"olr_season_id": "olr_seasons"},
    "olr_race_results": {"olr_season_race_id": "olr_season_races", "pigeon_id": "pigeons"},
    "sales": {"pigeon_id": "pigeons"},
    "auctions": {"pigeon_id": "pigeons"},
}

SYNC_ID_MAP_FILE = "_synced_ids.json"

Filters = Mapping[str, Any]


def utc_now_iso() -> str:
    return dt.datetime.now(dt.timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def _same(value: Any, expected: Any) -> bool:
    if value == expected:
        return True
    if value is None or expected is None or isinstance(value, bool) or isinstance(expected, bool):
        return False
    return str(value) == str(expected)


def _row_matches(row: Mapping[str, Any], filters: Optional[Filters]) -> bool:
    for key, expected in (filters or {}).items():
        value = row.get(key)
        if isinstance(expected, (list, tuple, set, frozenset)):
            if not any(_same(value, item) for item in expected):
                return False
        elif expected is None:
            if value is not None:
                return False
        elif not _same(value, expected):
            return False
    return True


def _sort_key(value: Any) -> Any:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return (0, value, "")
    return (1, 0, str(value).lower())


def sort_rows(rows: Iterable[Dict[str, Any]], order: Optional[str]) -> List[Dict[str, Any]]:
    """Order rows with a PostgREST style clause such as ``"name.asc,id.desc"``."""
    ordered = list(rows)
    if not order:
        return ordered
    for part in reversed([item.strip() for item in order.split(",") if item.strip()]):
        column, _, direction = part.partition(".")
        present = [row for row in ordered if row.get(column) is not None]
        missing = [row for row in ordered if row.get(column) is None]
        present.sort(key=lambda row: _sort_key(row.get(column)), reverse=direction == "desc")
        ordered = present + missing
    return ordered


def _has_empty_in_filter(filters: Optional[Filters]) -> bool:
    return any(
        isinstance(value, (list, tuple, set, frozenset)) and not value
        for value in (filters or {}).values()
    )


class TableStore:
    """Row storage on Supabase PostgREST with a local JSON fallback.

    Every table lives in ``<data_dir>/<table>.json`` when Supabase is not
    configured. With Supabase configured, reads of an unreachable or missing
    table fall back to those files while failed writes raise ``RuntimeError``,
    so local ids never mix with server ids. Filters are equality maps; a list
    value means "any of".
    """

    def __init__(self, data_dir: Path | None = None) -> None:
        env_dir = os.getenv("LOFTBOOK_DATA_DIR")
        self.data_dir = data_dir or (Path(env_dir) if env_dir else Path(__file__).parent.parent / "data")

        self.supabase_url = os.getenv("SUPABASE_URL", "")
        self.supabase_key = (
            os.getenv("SUPABASE_SERVICE_ROLE_KEY")
            or os.getenv("SUPABASE_SERVICE_KEY")
            or os.getenv("SUPABASE_ANON_KEY")
            or ""
        )
        self.supabase_schema = os.getenv("SUPABASE_SCHEMA", "public")
        self.table_prefix = os.getenv("SUPABASE_TABLE_PREFIX", "")
        self._missing_tables_logged: set[str] = set()

    @property
    def remote_enabled(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)

    # ------------------------------------------------------------------
    # Public primitives

    def select_rows(
        self,
        table: str,
        filters: Optional[Filters] = None,
        order: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        if _has_empty_in_filter(filters):
            return []
        if not self.remote_enabled:
            return self._select_local(table, filters, order)

        params = {"select": "*", **self._filter_params(filters)}
        if order:
            params["order"] = order

        try:
            with httpx.Client(timeout=10.0) as client:
                response = client.get(
                    self._supabase_endpoint(table),
                    params=params,
                    headers=self._supabase_headers(include_content_profile=False),
                )
                response.raise_for_status()
                rows = response.json()
        except httpx.HTTPStatusError as exc:
            if exc.response is not None and exc.response.status_code == 404:
                self._note_missing_table(table)
                return self._select_local(table, filters, order)
            detail = self._extract_supabase_detail(exc.response)
            raise RuntimeError(f"Failed to fetch {table}: {detail or exc}") from exc
        except httpx.HTTPError as exc:
            logger.warning("Supabase select on %s failed (%s); using local fallback", table, exc)
            return self._select_local(table, filters, order)

        if not isinstance(rows, list):
            return []
        return [row for row in rows if isinstance(row, dict)]

    def get_row(self, table: str, row_id: Any) -> Optional[Dict[str, Any]]:
        if row_id is None:
            return None
        rows = self.select_rows(table, {"id": row_id})
        return rows[0] if rows else None

    def insert_row(self, table: str, record: Dict[str, Any]) -> Dict[str, Any]:
        now = utc_now_iso()
        record = {"created_at": now, "updated_at": now, **record}

        if not self.remote_enabled:
            return self._insert_local(table, record)

        headers = self._supabase_headers("return=representation")
        headers["Content-Type"] = "application/json"
        try:
            with httpx.Client(timeout=10.0) as client:
                response = client.post(
                    self._supabase_endpoint(table),
                    params={"select": "*"},
                    json=record,
                    headers=headers,
                )
                response.raise_for_status()
                rows = response.json()
        except httpx.HTTPStatusError as exc:
            self._raise_for_rejected_write(exc, table, "insert")
            raise self._write_failed(exc, table, "insert") from exc
        except httpx.RequestError as exc:
            raise self._write_failed(exc, table, "insert") from exc

        if isinstance(rows, list) and rows:
            return rows[0]
        if isinstance(rows, dict):
            return rows
        raise RuntimeError(f"Unexpected response when inserting into {table}")

    def update_rows(self, table: str, filters: Filters, changes: Dict[str, Any]) -> List[Dict[str, Any]]:
        if not filters:
            raise ValueError("Refusing to update without filters")
        if _has_empty_in_filter(filters):
            return []
        changes = {**changes, "updated_at": utc_now_iso()}

        if not self.remote_enabled:
            return self._update_local(table, filters, changes)

        headers = self._supabase_headers("return=representation")
        headers["Content-Type"] = "application/json"
        try:
            with httpx.Client(timeout=10.0) as client:
                response = client.patch(
                    self._supabase_endpoint(table),
                    params={"select": "*", **self._filter_params(filters)},
                    json=changes,
                    headers=headers,
                )
                response.raise_for_status()
                rows = response.json()
        except httpx.HTTPStatusError as exc:
            self._raise_for_rejected_write(exc, table, "update")
            raise self._write_failed(exc, table, "update") from exc
        except httpx.RequestError as exc:
            raise self._write_failed(exc, table, "update") from exc

        if isinstance(rows, list):
            return [row for row in rows if isinstance(row, dict)]
        if isinstance(rows, dict):
            return [rows]
        return []

    def update_row(self, table: str, row_id: Any, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        rows = self.update_rows(table, {"id": row_id}, changes)
        return rows[0] if rows else None

    def delete_rows(self, table: str, filters: Filters) -> int:
        if not filters:
            raise ValueError("Refusing to delete without filters")
        if _has_empty_in_filter(filters):
            return 0
        if not self.remote_enabled:
            return self._delete_local(table, filters)

        try:
            with httpx.Client(timeout=10.0) as client:
                response = client.delete(
                    self._supabase_endpoint(table),
                    params=self._filter_params(filters),
                    headers=self._supabase_headers("return=representation"),
                )
                response.raise_for_status()
                rows = response.json()
        except httpx.HTTPStatusError as exc:
            self._raise_for_rejected_write(exc, table, "delete")
            raise self._write_failed(exc, table, "delete") from exc
        except httpx.RequestError as exc:
            raise self._write_failed(exc, table, "delete") from exc

        return len(rows) if isinstance(rows, list) else 0

    # ------------------------------------------------------------------
    # Local JSON tables

    def local_path(self, table: str) -> Path:
        return self.data_dir / f"{table}.json"

    def _load_local(self, table: str) -> List[Dict[str, Any]]:
        data = self._read_json_file(self.local_path(table), [])
        if not isinstance(data, list):
            return []
        return [row for row in data if isinstance(row, dict)]

    def _select_local(self, table: str, filters: Optional[Filters], order: Optional[str]) -> List[Dict[str, Any]]:
        rows = [dict(row) for row in self._load_local(table) if _row_matches(row, filters)]
        return sort_rows(rows, order)

    def _insert_local(self, table: str, record: Dict[str, Any]) -> Dict[str, Any]:
        data = self._load_local(table)
        # Ids recorded by an earlier sync stay reserved.
        synced = self._load_id_map().get(table, {})
        used = [row.get("id") for row in data] + list(synced)
        next_id = max((int(value) for value in used if str(value).isdigit()), default=0) + 1
        entry = {**record, "id": next_id}
        data.append(entry)
        self._write_json_file(self.local_path(table), data)
        return dict(entry)

    def _update_local(self, table: str, filters: Filters, changes: Dict[str, Any]) -> List[Dict[str, Any]]:
        data = self._load_local(table)
        updated: List[Dict[str, Any]] = []
        for row in data:
            if _row_matches(row, filters):
                row.update(changes)
                updated.append(dict(row))
        if updated:
            self._write_json_file(self.local_path(table), data)
        return updated

    def _delete_local(self, table: str, filters: Filters) -> int:
        data = self._load_local(table)
        kept = [row for row in data if not _row_matches(row, filters)]
        removed = len(data) - len(kept)
        if removed:
            self._write_json_file(self.local_path(table), kept)
        return removed

    def _read_json_file(self, path: Path, default: Any) -> Any:
        try:
            if not path.exists():
                return default
            with path.open("r", encoding="utf-8") as handle:
                return json.load(handle)
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Falling back to default for %s due to read error: %s", path, exc)
            return default

    def _write_json_file(self, path: Path, data: Any) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with path.open("w", encoding="utf-8") as handle:
                json.dump(data, handle, indent=2, sort_keys=True)
        except OSError as exc:
            raise RuntimeError(f"Failed to write local data store {path}") from exc

    def _remove_local_file(self, path: Path) -> None:
        try:
            path.unlink()
        except FileNotFoundError:
            return
        except OSError as exc:  # pragma: no cover - unlikely but logged for diagnosis
            logger.warning("Failed to remove local data store %s: %s", path, exc)

    # ------------------------------------------------------------------
    # Local backlog synchronisation

    def sync_local_backlog(self) -> Dict[str, Dict[str, Any]]:
        """Push rows written to local JSON tables up to Supabase.

        Rows are inserted without their local ``id``; the server assigns a new
        one and columns listed in ``FOREIGN_KEYS`` are rewritten to those new
        ids. A reference to a row synced later (pigeon parents, a pigeon's
        clutch) is patched once every table has been pushed. The local to
        server id map is kept in ``_synced_ids.json`` so a partial sync can be
        resumed.
        """

        if not self.remote_enabled:
            raise RuntimeError("Supabase configuration is required to sync local backlog")

        id_map = self._load_id_map()
        deferred: List[Tuple[str, Any, str, str, Any]] = []
        summary: Dict[str, Dict[str, Any]] = {}
        with httpx.Client(timeout=10.0) as client:
            for table in TABLES:
                if self.local_path(table).exists():
                    summary[table] = self._sync_table_backlog(client, table, id_map, deferred)
            for table, remote_id, column, target, local_value in deferred:
                self._patch_deferred_reference(client, table, remote_id, column, target, local_value, id_map, summary)

        if id_map:
            self._write_json_file(self.data_dir / SYNC_ID_MAP_FILE, id_map)
        return summary

    def _load_id_map(self) -> Dict[str, Dict[str, Any]]:
        data = self._read_json_file(self.data_dir / SYNC_ID_MAP_FILE, {})
        if not isinstance(data, dict):
            return {}
        return {table: dict(ids) for table, ids in data.items() if isinstance(ids, dict)}

    def _remap_foreign_keys(
        self, table: str, row: Mapping[str, Any], id_map: Mapping[str, Mapping[str, Any]]
    ) -> Tuple[Dict[str, Any], List[Tuple[str, str, Any]]]:
        record = {key: value for key, value in row.items() if key != "id"}
        pending: List[Tuple[str, str, Any]] = []
        for column, target in FOREIGN_KEYS.get(table, {}).items():
            value = record.get(column)
            if value in (None, ""):
                continue
            remote_id = id_map.get(target, {}).get(str(value))
            if remote_id is None:
                record[column] = None
                pending.append((column, target, value))
            else:
                record[column] = remote_id
        return record, pending

    def _sync_table_backlog(
        self,
        client: httpx.Client,
        table: str,
        id_map: Dict[str, Dict[str, Any]],
        deferred: List[Tuple[str, Any, str, str, Any]],
    ) -> Dict[str, Any]:
        result: Dict[str, Any] = {"synced": 0, "remaining": 0, "errors": []}
        path = self.local_path(table)
        data = self._read_json_file(path, [])

        if not isinstance(data, list) or not data:
            self._remove_local_file(path)
            return result

        remaining: List[Any] = []
        for row in data:
            if not isinstance(row, dict) or row.get("id") is None:
                remaining.append(row)
                result["errors"].append(f"Skipping malformed entry in {table} backlog")
                continue
            record, pending = self._remap_foreign_keys(table, row, id_map)
            try:
                created = self._insert_remote(client, table, record)
            except httpx.HTTPStatusError as exc:
                detail = self._extract_supabase_detail(exc.response)
                remaining.append(row)
                result["errors"].append(detail or f"Supabase rejected {table} sync: {exc}")
            except httpx.HTTPError as exc:
                remaining.append(row)
                result["errors"].append(f"{table} sync request failed: {exc}")
            else:
                id_map.setdefault(table, {})[str(row["id"])] = created["id"]
                deferred.extend((table, created["id"], column, target, value) for column, target, value in pending)
                result["synced"] += 1

        if remaining:
            self._write_json_file(path, remaining)
            result["remaining"] = len(remaining)
        else:
            self._remove_local_file(path)

        return result

    def _insert_remote(self, client: httpx.Client, table: str, record: Dict[str, Any]) -> Dict[str, Any]:
        headers = self._supabase_headers("return=representation")
        headers["Content-Type"] = "application/json"
        response = client.post(
            self._supabase_endpoint(table),
            params={"select": "*"},
            json=record,
            headers=headers,
        )
        response.raise_for_status()
        rows = response.json()
        created = rows[0] if isinstance(rows, list) and rows else rows
        if not isinstance(created, dict) or created.get("id") is None:
            raise httpx.HTTPError(f"Supabase returned no id for the new {table} row")
        return created

    def _patch_deferred_reference(
        self,
        client: httpx.Client,
        table: str,
        remote_id: Any,
        column: str,
        target: str,
        local_value: Any,
        id_map: Mapping[str, Mapping[str, Any]],
        summary: Dict[str, Dict[str, Any]],
    ) -> None:
        errors = summary[table]["errors"]
        target_id = id_map.get(target, {}).get(str(local_value))
        if target_id is None:
            errors.append(f"{table} {remote_id}: {column} left empty, {target} {local_value} is not synced")
            return
        headers = self._supabase_headers("return=minimal")
        headers["Content-Type"] = "application/json"
        try:
            response = client.patch(
                self._supabase_endpoint(table),
                params={"id": f"eq.{remote_id}"},
                json={column: target_id},
                headers=headers,
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            errors.append(f"{table} {remote_id}: failed to set {column}: {exc}")

    # ------------------------------------------------------------------
    # Supabase helpers

    def _supabase_endpoint(self, table: str) -> str:
        return f"{self.supabase_url.rstrip('/')}/rest/v1/{self.table_prefix}{table}"

    def _supabase_headers(self, prefer: str | None = None, include_content_profile: bool = True) -> Dict[str, str]:
        headers = {
            "apikey": self.supabase_key,
            "Authorization": f"Bearer {self.supabase_key}",
            "Accept": "application/json",
        }
        if include_content_profile and self.supabase_schema and self.supabase_schema != "public":
            headers["Content-Profile"] = self.supabase_schema
        if self.supabase_schema and self.supabase_schema != "public":
            headers["Accept-Profile"] = self.supabase_schema
        if prefer:
            headers["Prefer"] = prefer
        return headers

    @staticmethod
    def _filter_literal(value: Any) -> str:
        if isinstance(value, bool):
            return "true" if value else "false"
        text = str(value)
        if any(char in text for char in ',()"'):
            return '"' + text.replace('"', '\\"') + '"'
        return text

    def _filter_params(self, filters: Optional[Filters]) -> Dict[str, str]:
        params: Dict[str, str] = {}
        for key, value in (filters or {}).items():
            if value is None:
                params[key] = "is.null"
            elif isinstance(value, (list, tuple, set, frozenset)):
                params[key] = "in.(" + ",".join(self._filter_literal(item) for item in value) + ")"
            else:
                params[key] = f"eq.{self._filter_literal(value)}"
        return params

    def _note_missing_table(self, table: str) -> None:
        if table in self._missing_tables_logged:
            return
        logger.info(
            "Supabase table '%s%s' missing (HTTP 404). Falling back to local JSON.",
            self.table_prefix,
            table,
        )
        self._missing_tables_logged.add(table)

    def _write_failed(self, exc: httpx.HTTPError, table: str, action: str) -> RuntimeError:
        if isinstance(exc, httpx.HTTPStatusError):
            detail = self._extract_supabase_detail(exc.response)
            logger.warning("Supabase %s on %s failed: %s", action, table, detail or exc)
            return RuntimeError(f"Failed to {action} {table}: {detail or exc}")
        logger.warning("Supabase %s on %s unavailable: %s", action, table, exc)
        return RuntimeError(f"Supabase unavailable, could not {action} {table}")

    def _raise_for_rejected_write(self, exc: httpx.HTTPStatusError, table: str, action: str) -> None:
        status_code = exc.response.status_code if exc.response is not None else None
        detail = self._extract_supabase_detail(exc.response)
        if status_code == 409:
            message = f"{table} record already exists"
            if detail and detail.lower() not in message.lower():
                message = f"{message}. Supabase: {detail}"
            raise ValueError(message) from exc
        if status_code is not None and 400 <= status_code < 500 and status_code != 404:
            raise ValueError(detail or f"Supabase rejected {action} on {table} ({status_code})") from exc

    def _extract_supabase_detail(self, response: httpx.Response | None) -> str | None:
        if response is None:
            return None
        try:
            payload = response.json()
        except ValueError:
            text = (response.text or "").strip()
            return text or None

        if isinstance(payload, list) and payload:
            payload = payload[0]
        if isinstance(payload, dict):
            for key in ("message", "detail", "error", "hint", "code"):
                value = payload.get(key)
                if isinstance(value, str) and value.strip():
                    return value.strip()
        return None
