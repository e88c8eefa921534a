from __future__ import annotations

import asyncio
import logging
import os
import shutil
from pathlib import Path

import httpx
from PIL import Image, UnidentifiedImageError
from supabase import Client

from src.domain.entities.image import ImageRef
from src.domain.errors import ArtifactDownloadFailed, StorageError

logger = logging.getLogger(__name__)

LOCAL_URL_PREFIX = "/local-storage/"


class SupabaseStorage:
    """External image store on Supabase Storage with a local fake fallback.

    Only used at pipeline boundaries: inputs are downloaded from it, final
    results are uploaded to it.
    """

    def __init__(self, client: Client | None, download_timeout: float | None = None) -> None:
        self.client = client
        self.bucket = os.getenv("SUPABASE_STORAGE_BUCKET", "images")
        self.disabled = os.getenv("SUPABASE_DISABLED", "0") == "1"
        self.local_dir = Path(os.getenv("SUPABASE_STORAGE_LOCAL_DIR", ".local_storage"))
        self.download_timeout = download_timeout or float(os.getenv("DOWNLOAD_TIMEOUT_SECONDS", "60"))
        if self.local_mode:
            self.local_dir.mkdir(parents=True, exist_ok=True)

    @property
    def local_mode(self) -> bool:
        return self.disabled or self.client is None

    @staticmethod
    def _describe(local_path: Path) -> tuple[int, int, str]:
        try:
            with Image.open(local_path) as img:
                fmt = (img.format or local_path.suffix.lstrip(".") or "png").lower()
                return img.width, img.height, "jpg" if fmt == "jpeg" else fmt
        except (UnidentifiedImageError, OSError) as exc:
            raise StorageError(f"Not a readable image: {local_path.name}: {exc}") from exc

    def get_public_url(self, storage_path: str) -> str:
        if self.local_mode:
            return f"{LOCAL_URL_PREFIX}{storage_path}"
        try:  # pragma: no cover - network
            return self.client.storage.from_(self.bucket).get_public_url(storage_path)  # type: ignore[union-attr]
        except Exception as exc:  # pragma: no cover
            raise StorageError(f"Could not resolve public URL: {exc}") from exc

    def _upload_sync(self, local_path: Path, folder: str, desired_id: str) -> ImageRef:
        width, height, fmt = self._describe(local_path)
        data = local_path.read_bytes()
        storage_path = f"{folder}/{desired_id}.{fmt}"
        content_type = f"image/{'jpeg' if fmt == 'jpg' else fmt}"
        if self.local_mode:
            full_path = self.local_dir / storage_path
            full_path.parent.mkdir(parents=True, exist_ok=True)
            full_path.write_bytes(data)
        else:
            try:  # pragma: no cover - network
                self.client.storage.from_(self.bucket).upload(  # type: ignore[union-attr]
                    path=storage_path,
                    file=data,
                    file_options={"content-type": content_type},
                )
            except Exception as exc:  # pragma: no cover
                raise StorageError(f"Storage upload failed: {exc}") from exc
        return ImageRef(
            image_url=self.get_public_url(storage_path),
            public_id=storage_path,
            width=width,
            height=height,
            format=fmt,
            size=len(data),
        )

    async def upload(self, local_path: Path, folder: str, desired_id: str) -> ImageRef:
        ref = await asyncio.to_thread(self._upload_sync, Path(local_path), folder, desired_id)
        logger.info("Uploaded %s (%s bytes)", ref.public_id, ref.size)
        return ref

    def _delete_sync(self, public_id: str) -> bool:
        if self.local_mode:
            full_path = self.local_dir / public_id
            if full_path.exists():
                full_path.unlink()
                return True
            return False
        try:  # pragma: no cover - network
            self.client.storage.from_(self.bucket).remove([public_id])  # type: ignore[union-attr]
            return True
        except Exception as exc:  # pragma: no cover
            raise StorageError(f"Storage delete failed: {exc}") from exc

    async def delete(self, public_id: str) -> bool:
        return await asyncio.to_thread(self._delete_sync, public_id)

    async def download(self, url: str, dest: Path) -> Path:
        """Fetch ``url`` into ``dest``. The caller owns ``dest`` (and must clean it up)."""
        if url.startswith(LOCAL_URL_PREFIX):
            source = self.local_dir / url[len(LOCAL_URL_PREFIX) :]
            try:
                await asyncio.to_thread(shutil.copyfile, source, dest)
            except OSError as exc:
                raise ArtifactDownloadFailed(url, str(exc)) from exc
            return dest
        if not url.startswith(("http://", "https://")):
            raise ArtifactDownloadFailed(url, "unsupported URL scheme")
        try:
            async with httpx.AsyncClient(timeout=self.download_timeout, follow_redirects=True) as client:
                async with client.stream("GET", url) as response:
                    if response.status_code != 200:
                        raise ArtifactDownloadFailed(url, f"HTTP {response.status_code}")
                    with dest.open("wb") as fh:
                        async for chunk in response.aiter_bytes():
                            fh.write(chunk)
        except httpx.HTTPError as exc:
            raise ArtifactDownloadFailed(url, str(exc)) from exc
        return dest
