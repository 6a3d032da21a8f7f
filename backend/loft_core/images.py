from __future__ import annotations

import io
import logging
import os
import uuid
from pathlib import Path
from typing import Iterable, List, Optional

import httpx
from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

MAX_WIDTH = 1200
WEBP_QUALITY = 85
LOCAL_URL_PREFIX = "/uploads"


def optimise_image(data: bytes, max_width: int = MAX_WIDTH, quality: int = WEBP_QUALITY) -> bytes:
    """Shrink ``data`` to at most ``max_width`` pixels wide and re-encode it as WebP."""
    try:
        with Image.open(io.BytesIO(data)) as source:
            source.load()
            image = source
            if image.mode not in ("RGB", "RGBA"):
                image = image.convert("RGBA" if image.mode in ("P", "LA", "PA") else "RGB")
            if image.width > max_width:
                height = max(round(image.height * max_width / image.width), 1)
                image = image.resize((max_width, height), Image.LANCZOS)
            buffer = io.BytesIO()
            image.save(buffer, format="WEBP", quality=quality)
            return buffer.getvalue()
    except (UnidentifiedImageError, OSError) as exc:
        raise ValueError("Uploaded file is not a readable image") from exc


class ImageStore:
    """Pigeon photos and pedigree scans kept in Supabase Storage.

    Without Supabase configuration, files are written below
    ``<data_dir>/uploads`` and served by the API under ``/uploads``.
    """

    def __init__(self, data_dir: Path | None = None) -> None:
        env_dir = os.getenv("LOFTBOOK_DATA_DIR")
        base_dir = data_dir or (Path(env_dir) if env_dir else Path(__file__).parent.parent / "data")
        self.upload_dir = base_dir / "uploads"

        self.supabase_url = os.getenv("SUPABASE_URL", "").rstrip("/")
        self.supabase_key = (
            os.getenv("SUPABASE_SERVICE_ROLE_KEY")
            or os.getenv("SUPABASE_SERVICE_KEY")
            or os.getenv("SUPABASE_ANON_KEY")
            or ""
        )
        self.bucket = os.getenv("SUPABASE_STORAGE_BUCKET", "pigeons")

    @property
    def remote_enabled(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)

    @property
    def public_base(self) -> str:
        if self.remote_enabled:
            return f"{self.supabase_url}/storage/v1/object/public/{self.bucket}"
        return LOCAL_URL_PREFIX

    def _headers(self, content_type: str | None = None) -> dict[str, str]:
        headers = {
            "apikey": self.supabase_key,
            "Authorization": f"Bearer {self.supabase_key}",
        }
        if content_type:
            headers["Content-Type"] = content_type
        return headers

    def path_from_url(self, url: Optional[str]) -> Optional[str]:
        prefix = f"{self.public_base}/"
        if url and url.startswith(prefix):
            return url[len(prefix):]
        return None

    # ------------------------------------------------------------------
    # Upload

    def upload(
        self,
        data: bytes,
        folder: str = "images",
        max_width: int = MAX_WIDTH,
        quality: int = WEBP_QUALITY,
    ) -> str:
        """Store an optimised copy of the image and return its public URL."""
        encoded = optimise_image(data, max_width=max_width, quality=quality)
        path = f"{folder.strip('/')}/{uuid.uuid4()}.webp"

        if not self.remote_enabled:
            self._write_local(path, encoded)
            return f"{self.public_base}/{path}"

        try:
            with httpx.Client(timeout=30.0) as client:
                response = client.post(
                    f"{self.supabase_url}/storage/v1/object/{self.bucket}/{path}",
                    content=encoded,
                    headers={**self._headers("image/webp"), "x-upsert": "true"},
                )
                response.raise_for_status()
        except httpx.HTTPError as exc:
            raise RuntimeError(f"Failed to upload image to storage: {exc}") from exc

        logger.info("Uploaded image %s to bucket %s", path, self.bucket)
        return f"{self.public_base}/{path}"

    def upload_many(self, files: Iterable[bytes], folder: str = "images") -> List[str]:
        return [self.upload(data, folder) for data in files]

    def _write_local(self, path: str, data: bytes) -> None:
        target = self.upload_dir / path
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as exc:
            raise RuntimeError(f"Failed to write image {target}") from exc

    # ------------------------------------------------------------------
    # Delete and list

    def delete(self, url: Optional[str]) -> bool:
        """Remove the object behind ``url``; URLs outside this store are ignored."""
        path = self.path_from_url(url)
        if not path:
            return False

        if not self.remote_enabled:
            target = self.upload_dir / path
            if not target.is_file():
                return False
            try:
                target.unlink()
            except OSError as exc:
                logger.warning("Failed to remove image %s: %s", target, exc)
                return False
            return True

        try:
            with httpx.Client(timeout=10.0) as client:
                response = client.request(
                    "DELETE",
                    f"{self.supabase_url}/storage/v1/object/{self.bucket}",
                    json={"prefixes": [path]},
                    headers=self._headers("application/json"),
                )
                response.raise_for_status()
                removed = response.json()
        except httpx.HTTPError as exc:
            logger.warning("Failed to delete image %s from storage: %s", path, exc)
            return False
        return bool(removed)

    def delete_many(self, urls: Iterable[Optional[str]]) -> None:
        for url in urls:
            self.delete(url)

    def list_folder(self, folder: str) -> List[str]:
        """Public URLs of every object directly inside ``folder``."""
        folder = folder.strip("/")
        if not self.remote_enabled:
            directory = self.upload_dir / folder
            if not directory.is_dir():
                return []
            return [
                f"{self.public_base}/{folder}/{item.name}"
                for item in sorted(directory.iterdir())
                if item.is_file()
            ]

        try:
            with httpx.Client(timeout=10.0) as client:
                response = client.post(
                    f"{self.supabase_url}/storage/v1/object/list/{self.bucket}",
                    json={"prefix": folder, "limit": 1000, "offset": 0, "sortBy": {"column": "name", "order": "asc"}},
                    headers=self._headers("application/json"),
                )
                response.raise_for_status()
                items = response.json()
        except httpx.HTTPError as exc:
            raise RuntimeError(f"Failed to list images in {folder}: {exc}") from exc

        return [
            f"{self.public_base}/{folder}/{item['name']}"
            for item in items
            if isinstance(item, dict) and item.get("name") and item.get("id")
        ]
