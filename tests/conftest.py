import io
import os
import sys
import tempfile
from pathlib import Path
from types import SimpleNamespace

import numpy as np
import pytest
from fastapi.testclient import TestClient
from PIL import Image

# Ensure project root is on sys.path so 'src' is importable during tests
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

_TMP = Path(tempfile.mkdtemp(prefix="ai-pipeline-tests-"))
os.environ.setdefault("SUPABASE_DISABLED", "1")
os.environ.setdefault("SUPABASE_STORAGE_LOCAL_DIR", str(_TMP / "storage"))
os.environ.setdefault("ARTIFACT_TEMP_DIR", str(_TMP / "artifacts"))
os.environ.pop("GEMINI_API_KEY", None)

from src.domain.entities.image import ImageRef  # noqa: E402
from src.domain.errors import ArtifactDownloadFailed, StageExecutionFailed  # noqa: E402


def make_png_bytes(w=8, h=8, color=(128, 64, 32, 255)) -> bytes:
    arr = np.zeros((h, w, 4), dtype=np.uint8)
    arr[:, :] = color
    buf = io.BytesIO()
    Image.fromarray(arr).save(buf, format="PNG")
    return buf.getvalue()


class FakeStageExecutor:
    """Stands in for the docker-backed executor; writes a small RGBA PNG per stage."""

    def __init__(self, fail_at=None, empty_at=None, error=None):
        self.fail_at = fail_at
        self.empty_at = empty_at
        self.error = error
        self.calls = []

    async def run_stage(self, descriptor, inputs, output, params=None):
        self.calls.append((descriptor.name, dict(inputs), dict(params or {})))
        for path in inputs.values():
            assert Path(path).exists(), f"stage input {path} missing"
        if descriptor.name == self.fail_at:
            raise self.error or StageExecutionFailed(descriptor.unit, "fake command", 1, "boom")
        if descriptor.name == self.empty_at:
            output.write_bytes(b"")
            return output
        output.write_bytes(make_png_bytes(color=(200, 100, 50, 255)))
        return output

    @property
    def stage_names(self):
        return [name for name, _, _ in self.calls]


class FakeStorage:
    """In-memory external store."""

    def __init__(self, fail_urls=()):
        self.blobs = {}
        self.fail_urls = set(fail_urls)
        self.downloads = []
        self.uploads = []
        self.deleted = []

    async def download(self, url, dest):
        if url in self.fail_urls:
            raise ArtifactDownloadFailed(url, "HTTP 404")
        self.downloads.append(url)
        dest.write_bytes(self.blobs.get(url, make_png_bytes()))
        return dest

    async def upload(self, local_path, folder, desired_id):
        data = Path(local_path).read_bytes()
        public_id = f"{folder}/{desired_id}.png"
        url = f"https://store.test/{public_id}"
        self.blobs[url] = data
        self.uploads.append(public_id)
        return ImageRef(image_url=url, public_id=public_id, width=8, height=8, format="png", size=len(data))

    async def delete(self, public_id):
        self.deleted.append(public_id)
        return True


class ThrowingClassifier:
    async def classify(self, image_bytes, mime_type):
        raise RuntimeError("classifier exploded")

    async def analyze_quality(self, image_bytes, mime_type):
        raise RuntimeError("classifier exploded")

    async def route_intent(self, image_bytes, text, mime_type):
        raise RuntimeError("classifier exploded")


@pytest.fixture()
def png_bytes() -> bytes:
    return make_png_bytes()


@pytest.fixture()
def fake_storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture()
def fake_executor() -> FakeStageExecutor:
    return FakeStageExecutor()


@pytest.fixture()
def artifact_store(tmp_path):
    from src.infrastructure.storage.artifact_store import ArtifactStore

    return ArtifactStore(tmp_path / "artifacts")


@pytest.fixture()
def history(fake_storage):
    from src.application.use_cases.project_history import ProjectHistoryUseCase
    from src.infrastructure.database.repositories.project_repository import ProjectRepository

    return ProjectHistoryUseCase(repo=ProjectRepository(None), storage=fake_storage)


@pytest.fixture()
def make_coordinator(artifact_store, fake_storage, fake_executor):
    from src.application.pipelines.coordinator import PipelineCoordinator

    def factory(executor=None, classifier=None, storage=None):
        return PipelineCoordinator(
            executor or fake_executor, artifact_store, storage or fake_storage, classifier
        )

    return factory


@pytest.fixture(scope="session")
def client() -> TestClient:
    # lazy import after env configured
    from src.main import create_app

    app = create_app()
    return TestClient(app)


@pytest.fixture()
def fakes():
    """Fake classes for tests that need to configure their own instances."""
    return SimpleNamespace(
        executor=FakeStageExecutor,
        storage=FakeStorage,
        throwing_classifier=ThrowingClassifier,
        png=make_png_bytes,
    )
