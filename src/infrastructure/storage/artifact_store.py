from __future__ import annotations

import logging
import os
import tempfile
import uuid
from pathlib import Path

logger = logging.getLogger(__name__)


class ArtifactScope:
    """Owns the local staged copies of one pipeline run.

    Every path handed out or registered here is deleted exactly once when the
    scope closes, whatever the outcome of the run. Deletion never raises.
    """

    def __init__(self, root: Path) -> None:
        self.root = root
        self._paths: list[Path] = []
        self._closed = False

    def __enter__(self) -> ArtifactScope:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def paths(self) -> list[Path]:
        return list(self._paths)

    def new(self, prefix: str, ext: str = ".png") -> Path:
        ext = ext if ext.startswith(".") else f".{ext}"
        path = self.root / f"{prefix}_{uuid.uuid4().hex}{ext}"
        return self.register(path)

    def register(self, path: Path) -> Path:
        if self._closed:
            raise RuntimeError("Artifact scope is already closed")
        path = Path(path)
        if path not in self._paths:
            self._paths.append(path)
        return path

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for path in self._paths:
            ArtifactStore.discard(path)


class ArtifactStore:
    """Local staging directory for transient stage inputs and outputs."""

    def __init__(self, root: Path | str | None = None) -> None:
        default_root = Path(tempfile.gettempdir()) / "ai-pipeline-artifacts"
        self.root = Path(root or os.getenv("ARTIFACT_TEMP_DIR") or default_root)
        self.root.mkdir(parents=True, exist_ok=True)

    def scope(self) -> ArtifactScope:
        return ArtifactScope(self.root)

    @staticmethod
    def discard(path: Path) -> None:
        try:
            path.unlink()
            logger.debug("Cleaned up temp file: %s", path.name)
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning("Failed to delete temp file %s: %s", path.name, exc)


_STORE_SINGLETON: ArtifactStore | None = None


def get_artifact_store() -> ArtifactStore:
    global _STORE_SINGLETON
    if _STORE_SINGLETON is None:
        _STORE_SINGLETON = ArtifactStore()
    return _STORE_SINGLETON
