from __future__ import annotations

import io
from typing import Any, Dict, List

import pytest
from PIL import Image

from loft_core import images as images_module
from loft_core.images import ImageStore, optimise_image


@pytest.fixture(autouse=True)
def reset_env(monkeypatch: pytest.MonkeyPatch):
    for name in ("SUPABASE_URL", "SUPABASE_SERVICE_ROLE_KEY", "SUPABASE_SERVICE_KEY", "SUPABASE_ANON_KEY",
                 "SUPABASE_STORAGE_BUCKET"):
        monkeypatch.delenv(name, raising=False)
    yield


def _png(width: int, height: int, mode: str = "RGB") -> bytes:
    buffer = io.BytesIO()
    Image.new(mode, (width, height)).save(buffer, format="PNG")
    return buffer.getvalue()


class _StorageClient:
    calls: List[Dict[str, Any]] = []

    def __init__(self, *args, **kwargs) -> None:
        pass

    def __enter__(self) -> "_StorageClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # pragma: no cover - nothing to clean
        return None

    def post(self, url: str, content: bytes = b"", json: Any = None, headers: Dict[str, str] | None = None):
        _StorageClient.calls.append({"method": "POST", "url": url, "content": content, "headers": headers})
        request = images_module.httpx.Request("POST", url)
        return images_module.httpx.Response(200, request=request, json={"Key": url})

    def request(self, method: str, url: str, json: Any = None, headers: Dict[str, str] | None = None):
        _StorageClient.calls.append({"method": method, "url": url, "json": json, "headers": headers})
        request = images_module.httpx.Request(method, url)
        return images_module.httpx.Response(200, request=request, json=[{"name": json["prefixes"][0]}])


def test_optimise_image_shrinks_wide_images_to_webp() -> None:
    encoded = optimise_image(_png(2400, 600))

    with Image.open(io.BytesIO(encoded)) as image:
        assert image.format == "WEBP"
        assert image.size == (1200, 300)


def test_optimise_image_keeps_small_images_and_converts_palette() -> None:
    encoded = optimise_image(_png(300, 200, mode="P"))

    with Image.open(io.BytesIO(encoded)) as image:
        assert image.format == "WEBP"
        assert image.size == (300, 200)


def test_optimise_image_rejects_non_images() -> None:
    with pytest.raises(ValueError, match="not a readable image"):
        optimise_image(b"definitely not a picture")


def test_local_upload_list_and_delete(tmp_path) -> None:
    store = ImageStore(data_dir=tmp_path)

    url = store.upload(_png(50, 50), folder="pigeons/photos")

    assert url.startswith("/uploads/pigeons/photos/")
    assert url.endswith(".webp")
    assert (tmp_path / "uploads" / store.path_from_url(url)).is_file()
    assert store.list_folder("pigeons/photos") == [url]

    assert store.delete(url) is True
    assert store.delete(url) is False
    assert store.delete("https://elsewhere.example/bird.jpg") is False
    assert store.list_folder("pigeons/photos") == []


def test_remote_upload_and_delete_use_storage_api(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("SUPABASE_URL", "https://example.supabase.co")
    monkeypatch.setenv("SUPABASE_SERVICE_ROLE_KEY", "test-key")
    _StorageClient.calls = []
    monkeypatch.setattr(images_module.httpx, "Client", _StorageClient)
    store = ImageStore(data_dir=tmp_path)

    url = store.upload(_png(10, 10), folder="pigeons/pedigrees")

    assert url.startswith("https://example.supabase.co/storage/v1/object/public/pigeons/pigeons/pedigrees/")
    upload = _StorageClient.calls[0]
    assert upload["url"].startswith("https://example.supabase.co/storage/v1/object/pigeons/pigeons/pedigrees/")
    assert upload["headers"]["Content-Type"] == "image/webp"
    assert upload["headers"]["x-upsert"] == "true"
    assert not (tmp_path / "uploads").exists()

    assert store.delete(url) is True
    removal = _StorageClient.calls[1]
    assert removal["method"] == "DELETE"
    assert removal["json"] == {"prefixes": [store.path_from_url(url)]}
