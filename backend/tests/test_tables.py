from __future__ import annotations

import logging
from typing import Any, Dict, List

import pytest

from loft_core import tables as tables_module
from loft_core.tables import TableStore, sort_rows


@pytest.fixture(autouse=True)
def reset_env(monkeypatch: pytest.MonkeyPatch):
    for name in ("SUPABASE_URL", "SUPABASE_SERVICE_ROLE_KEY", "SUPABASE_SERVICE_KEY", "SUPABASE_ANON_KEY",
                 "SUPABASE_SCHEMA", "SUPABASE_TABLE_PREFIX"):
        monkeypatch.delenv(name, raising=False)
    yield


@pytest.fixture
def remote_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SUPABASE_URL", "https://example.supabase.co")
    monkeypatch.setenv("SUPABASE_SERVICE_ROLE_KEY", "test-key")


class _RecordingClient:
    calls: List[Dict[str, Any]] = []
    status_code = 200
    payload: Any = []

    def __init__(self, *args, **kwargs) -> None:
        pass

    def __enter__(self) -> "_RecordingClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # pragma: no cover - nothing to clean
        return None

    def _respond(self, method: str, endpoint: str, **kwargs: Any):
        _RecordingClient.calls.append({"method": method, "endpoint": endpoint, **kwargs})
        request = tables_module.httpx.Request(method, endpoint)
        response = tables_module.httpx.Response(self.status_code, request=request, json=self.payload)
        if self.status_code >= 400:
            raise tables_module.httpx.HTTPStatusError("error", request=request, response=response)
        return response

    def get(self, endpoint: str, params: Dict[str, Any], headers: Dict[str, str]):
        return self._respond("GET", endpoint, params=params, headers=headers)

    def post(self, endpoint: str, params: Dict[str, Any], json: Any, headers: Dict[str, str]):
        return self._respond("POST", endpoint, params=params, json=json, headers=headers)

    def patch(self, endpoint: str, params: Dict[str, Any], json: Any, headers: Dict[str, str]):
        return self._respond("PATCH", endpoint, params=params, json=json, headers=headers)

    def delete(self, endpoint: str, params: Dict[str, Any], headers: Dict[str, str]):
        return self._respond("DELETE", endpoint, params=params, headers=headers)


def _client(status_code: int, payload: Any) -> type:
    _RecordingClient.calls = []
    return type("_Client", (_RecordingClient,), {"status_code": status_code, "payload": payload})


class _OfflineClient(_RecordingClient):
    def _respond(self, method: str, endpoint: str, **kwargs: Any):
        raise tables_module.httpx.ConnectError("connection refused", request=tables_module.httpx.Request(method, endpoint))


def test_local_insert_assigns_sequential_ids(tmp_path) -> None:
    store = TableStore(data_dir=tmp_path)

    first = store.insert_row("bloodlines", {"user_id": "u1", "name": "JANSSEN"})
    second = store.insert_row("bloodlines", {"user_id": "u1", "name": "SION"})

    assert (first["id"], second["id"]) == (1, 2)
    assert first["created_at"] and first["updated_at"]
    assert store.local_path("bloodlines").exists()


def test_local_select_supports_in_null_and_order(tmp_path) -> None:
    store = TableStore(data_dir=tmp_path)
    store.insert_row("pigeons", {"user_id": "u1", "name": "B", "sire_id": None})
    store.insert_row("pigeons", {"user_id": "u1", "name": "A", "sire_id": 1})
    store.insert_row("pigeons", {"user_id": "u2", "name": "C", "sire_id": None})

    rows = store.select_rows("pigeons", {"user_id": "u1"}, order="name.asc")
    assert [row["name"] for row in rows] == ["A", "B"]

    rows = store.select_rows("pigeons", {"id": [1, 3]}, order="id.desc")
    assert [row["id"] for row in rows] == [3, 1]

    rows = store.select_rows("pigeons", {"sire_id": None})
    assert sorted(row["name"] for row in rows) == ["B", "C"]

    assert store.select_rows("pigeons", {"id": []}) == []


def test_local_ids_match_string_filters(tmp_path) -> None:
    store = TableStore(data_dir=tmp_path)
    row = store.insert_row("clubs", {"user_id": "u1", "name": "Valley Flyers"})

    assert store.get_row("clubs", str(row["id"]))["name"] == "Valley Flyers"
    assert store.get_row("clubs", None) is None


def test_local_update_and_delete(tmp_path) -> None:
    store = TableStore(data_dir=tmp_path)
    store.insert_row("pigeons", {"user_id": "u1", "status": "stock"})
    store.insert_row("pigeons", {"user_id": "u1", "status": "stock"})

    updated = store.update_rows("pigeons", {"id": [1, 2]}, {"status": "breeding"})
    assert [row["status"] for row in updated] == ["breeding", "breeding"]

    assert store.delete_rows("pigeons", {"id": 1}) == 1
    assert [row["id"] for row in store.select_rows("pigeons")] == [2]

    with pytest.raises(ValueError, match="without filters"):
        store.delete_rows("pigeons", {})


def test_sort_rows_puts_missing_values_last() -> None:
    rows = [{"id": 1, "race_date": None}, {"id": 2, "race_date": "2025-05-01"}, {"id": 3, "race_date": "2025-06-01"}]

    assert [row["id"] for row in sort_rows(rows, "race_date.desc")] == [3, 2, 1]
    assert [row["id"] for row in sort_rows(rows, "race_date.asc")] == [2, 3, 1]


def test_filter_params_use_postgrest_operators(tmp_path) -> None:
    store = TableStore(data_dir=tmp_path)

    params = store._filter_params({"user_id": "u1", "id": [1, 2], "sire_id": None, "did_not_arrive": False})

    assert params == {
        "user_id": "eq.u1",
        "id": "in.(1,2)",
        "sire_id": "is.null",
        "did_not_arrive": "eq.false",
    }


def test_remote_select_sends_filters(tmp_path, monkeypatch, remote_env) -> None:
    monkeypatch.setattr(tables_module.httpx, "Client", _client(200, [{"id": 7, "name": "SION"}]))
    store = TableStore(data_dir=tmp_path)

    rows = store.select_rows("bloodlines", {"user_id": "u1"}, order="name.asc")

    assert rows == [{"id": 7, "name": "SION"}]
    call = _RecordingClient.calls[0]
    assert call["endpoint"] == "https://example.supabase.co/rest/v1/bloodlines"
    assert call["params"] == {"select": "*", "user_id": "eq.u1", "order": "name.asc"}
    assert call["headers"]["apikey"] == "test-key"


def test_remote_table_prefix_and_schema_headers(tmp_path, monkeypatch, remote_env) -> None:
    monkeypatch.setenv("SUPABASE_TABLE_PREFIX", "loft_")
    monkeypatch.setenv("SUPABASE_SCHEMA", "breeding")
    monkeypatch.setattr(tables_module.httpx, "Client", _client(201, [{"id": 1, "name": "X"}]))
    store = TableStore(data_dir=tmp_path)

    store.insert_row("bloodlines", {"user_id": "u1", "name": "X"})

    call = _RecordingClient.calls[0]
    assert call["endpoint"].endswith("/rest/v1/loft_bloodlines")
    assert call["headers"]["Content-Profile"] == "breeding"
    assert call["headers"]["Accept-Profile"] == "breeding"
    assert call["headers"]["Prefer"] == "return=representation"


def test_remote_conflict_raises_value_error(tmp_path, monkeypatch, remote_env) -> None:
    monkeypatch.setattr(tables_module.httpx, "Client", _client(409, {"message": "duplicate key"}))
    store = TableStore(data_dir=tmp_path)

    with pytest.raises(ValueError, match="already exists"):
        store.insert_row("bloodlines", {"user_id": "u1", "name": "X"})
    assert not store.local_path("bloodlines").exists()


def test_remote_bad_request_raises_detail(tmp_path, monkeypatch, remote_env) -> None:
    monkeypatch.setattr(tables_module.httpx, "Client", _client(400, {"message": "column \"foo\" does not exist"}))
    store = TableStore(data_dir=tmp_path)

    with pytest.raises(ValueError, match="does not exist"):
        store.update_rows("pigeons", {"id": 1}, {"foo": "bar"})


def test_remote_missing_table_falls_back_to_local(tmp_path, monkeypatch, remote_env, caplog) -> None:
    monkeypatch.setattr(tables_module.httpx, "Client", _client(404, {"message": "relation does not exist"}))
    store = TableStore(data_dir=tmp_path)

    with caplog.at_level(logging.INFO):
        assert store.select_rows("auctions") == []
        assert store.select_rows("auctions") == []

    assert sum("auctions" in record.getMessage() for record in caplog.records) == 1


def test_remote_server_error_on_select_raises_runtime_error(tmp_path, monkeypatch, remote_env) -> None:
    monkeypatch.setattr(tables_module.httpx, "Client", _client(500, {"message": "boom"}))
    store = TableStore(data_dir=tmp_path)

    with pytest.raises(RuntimeError, match="boom"):
        store.select_rows("pigeons")


def test_remote_outage_refuses_writes(tmp_path, monkeypatch, remote_env, caplog) -> None:
    monkeypatch.setattr(tables_module.httpx, "Client", _OfflineClient)
    store = TableStore(data_dir=tmp_path)

    with caplog.at_level(logging.WARNING):
        with pytest.raises(RuntimeError, match="Supabase unavailable"):
            store.insert_row("pigeons", {"user_id": "u1", "ring_number": "NL-1"})
        with pytest.raises(RuntimeError, match="Supabase unavailable"):
            store.update_rows("pigeons", {"id": 1}, {"name": "X"})
        with pytest.raises(RuntimeError, match="Supabase unavailable"):
            store.delete_rows("pigeons", {"id": 1})

    assert not store.local_path("pigeons").exists()
    assert any("unavailable" in record.getMessage() for record in caplog.records)


def test_remote_server_error_on_write_raises_runtime_error(tmp_path, monkeypatch, remote_env) -> None:
    monkeypatch.setattr(tables_module.httpx, "Client", _client(503, {"message": "database is restarting"}))
    store = TableStore(data_dir=tmp_path)

    with pytest.raises(RuntimeError, match="database is restarting"):
        store.insert_row("color_tags", {"user_id": "u1", "name": "Racer", "color": "#FF0000"})
    assert not store.local_path("color_tags").exists()


def test_remote_outage_reads_local_tables(tmp_path, monkeypatch, remote_env) -> None:
    monkeypatch.setattr(tables_module.httpx, "Client", _OfflineClient)
    store = TableStore(data_dir=tmp_path)
    store._write_json_file(store.local_path("bloodlines"), [{"id": 1, "name": "JANSSEN"}])

    assert store.select_rows("bloodlines") == [{"id": 1, "name": "JANSSEN"}]
