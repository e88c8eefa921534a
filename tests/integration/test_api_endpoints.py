from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from src.application.pipelines.coordinator import PipelineCoordinator
from src.domain.errors import ContainerUnavailable, UpstreamQuotaExceeded
from src.infrastructure.api.dependencies import get_coordinator
from src.infrastructure.storage.artifact_store import ArtifactStore
from src.infrastructure.storage.supabase_storage import SupabaseStorage


class QuotaClassifier:
    async def classify(self, image_bytes, mime_type):
        raise UpstreamQuotaExceeded("429 quota exceeded")

    async def analyze_quality(self, image_bytes, mime_type):
        raise UpstreamQuotaExceeded("429 quota exceeded")

    async def route_intent(self, image_bytes, text, mime_type):
        raise UpstreamQuotaExceeded("429 quota exceeded")

    async def suggest_edits(self, image_bytes, mime_type):
        raise UpstreamQuotaExceeded("429 quota exceeded")


class SuggestingClassifier(QuotaClassifier):
    async def suggest_edits(self, image_bytes, mime_type):
        return ["low_light_enhancement", "face_restoration"]


@pytest.fixture()
def ai_client(fakes, tmp_path):
    """Fresh app whose pipelines run against a fake executor and local storage."""
    from src.main import create_app

    clients = []

    def factory(executor=None, classifier=None):
        executor = executor or fakes.executor()
        artifacts = ArtifactStore(tmp_path / "artifacts")
        app = create_app()
        app.dependency_overrides[get_coordinator] = lambda: PipelineCoordinator(
            executor, artifacts, SupabaseStorage(None), classifier
        )
        client = TestClient(app)
        clients.append(client)
        return SimpleNamespace(client=client, executor=executor, artifacts=artifacts)

    yield factory
    for client in clients:
        client.close()


def create_project(client, title="Beach portrait"):
    r = client.post("/ai-projects/create", json={"title": title})
    assert r.status_code == 201, r.text
    return r.json()


def upload_original(client, project_id, png):
    files = {"file": ("photo.png", png, "image/png")}
    return client.post(f"/ai-projects/{project_id}/upload", files=files)


def operation_body(name):
    return {
        "operation_type": "relight",
        "parameters": {"brightness": 0.5},
        "output_image": {"image_url": f"https://store.test/{name}.png", "public_id": f"{name}.png"},
    }


def test_root_and_health(client):
    r = client.get("/")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"
    assert client.get("/health").json() == {"status": "healthy"}


def test_project_history_flow(client, png_bytes):
    project = create_project(client)
    pid = project["id"]
    assert project["operations"] == []
    assert project["current_image"] is None

    r = upload_original(client, pid, png_bytes)
    assert r.status_code == 200, r.text
    original = r.json()["original_image"]
    assert original["image_url"].startswith("/local-storage/ai-projects/")
    assert original["width"] == 8
    assert r.json()["current_image"] == original

    assert upload_original(client, pid, png_bytes).status_code == 409

    r = client.post(f"/ai-projects/{pid}/operations", json=operation_body("B"))
    assert r.status_code == 201, r.text
    assert r.json()["operations"][0]["input_image"] == original
    r = client.post(f"/ai-projects/{pid}/operations", json=operation_body("C"))
    assert r.json()["current_image"]["public_id"] == "C.png"

    r = client.get(f"/ai-projects/{pid}/timeline")
    timeline = r.json()
    assert timeline["current_index"] == 1
    assert [e["index"] for e in timeline["timeline"]] == [-1, 0, 1]
    assert timeline["timeline"][0]["operation_type"] == "original"

    r = client.post(f"/ai-projects/{pid}/undo")
    assert r.status_code == 200
    assert r.json()["removed_operation"]["output_image"]["public_id"] == "C.png"
    assert r.json()["project"]["current_image"]["public_id"] == "B.png"

    r = client.post(f"/ai-projects/{pid}/revert/5")
    assert r.status_code == 400
    assert r.json()["error"] == "InvalidRevertIndex"
    assert len(client.get(f"/ai-projects/{pid}").json()["operations"]) == 1

    r = client.post(f"/ai-projects/{pid}/revert/-1")
    assert r.status_code == 200
    assert r.json()["operations"] == []
    assert r.json()["current_image"] == original

    r = client.post(f"/ai-projects/{pid}/undo")
    assert r.status_code == 400
    assert r.json()["error"] == "NothingToUndo"


def test_update_list_and_delete(client):
    pid = create_project(client, "Old title")["id"]

    r = client.patch(f"/ai-projects/{pid}", json={"title": "New title"})
    assert r.status_code == 200
    assert r.json()["title"] == "New title"
    assert client.patch(f"/ai-projects/{pid}", json={"status": "nope"}).status_code == 400

    listed = client.get("/ai-projects").json()
    assert pid in {p["id"] for p in listed["projects"]}
    assert listed["total"] == len(listed["projects"])

    assert client.delete(f"/ai-projects/{pid}").json()["ok"] is True
    assert client.get(f"/ai-projects/{pid}").json()["status"] == "deleted"
    assert pid not in {p["id"] for p in client.get("/ai-projects").json()["projects"]}
    assert pid in {p["id"] for p in client.get("/ai-projects?status=all").json()["projects"]}

    assert client.delete(f"/ai-projects/{pid}?permanent=true").status_code == 200
    r = client.get(f"/ai-projects/{pid}")
    assert r.status_code == 404
    assert r.json()["error"] == "ProjectNotFound"


def test_attach_existing_original(client):
    pid = create_project(client)["id"]
    body = {"image": {"image_url": "https://store.test/orig.png", "public_id": "orig.png"}}
    r = client.post(f"/ai-projects/{pid}/original", json=body)
    assert r.status_code == 200
    assert r.json()["original_image"]["public_id"] == "orig.png"
    assert client.post(f"/ai-projects/{pid}/original", json=body).status_code == 409


def test_upload_rejects_non_image(client):
    pid = create_project(client)["id"]
    files = {"file": ("notes.txt", b"not an image", "text/plain")}
    r = client.post(f"/ai-projects/{pid}/upload", files=files)
    assert r.status_code == 400


def test_unknown_project_is_404(client):
    assert client.get("/ai-projects/missing").status_code == 404
    assert client.post("/ai-projects/missing/undo").status_code == 404
    assert client.get("/ai-projects/missing/timeline").status_code == 404


def test_prompt_features(client):
    r = client.get("/prompt/features")
    assert r.status_code == 200
    assert "remove-background" in r.json()["features"]


# --------- AI endpoints against a fake executor ---------
def test_relight_records_into_project(ai_client, png_bytes):
    env = ai_client()
    client = env.client
    pid = create_project(client)["id"]
    upload_original(client, pid, png_bytes)

    r = client.post("/ai/relight", json={"project_id": pid, "brightness": 1.0})
    assert r.status_code == 200, r.text
    data = r.json()
    assert data["pipeline"] == "relight"
    assert data["operation_type"] == "relight"
    assert data["operation_index"] == 0
    assert data["image"]["image_url"].startswith("/local-storage/relighted/")
    assert env.executor.stage_names == ["relight"]
    assert list(env.artifacts.root.iterdir()) == []

    project = client.get(f"/ai-projects/{pid}").json()
    assert project["current_image"] == data["image"]
    assert project["operations"][0]["parameters"] == {"brightness": 1.0}


def test_relight_rejects_brightness(ai_client):
    r = ai_client().client.post("/ai/relight", json={"image_url": "https://store.test/a.png", "brightness": 5})
    assert r.status_code == 400
    assert "Brightness" in r.json()["detail"]


def test_missing_input_is_400(ai_client):
    r = ai_client().client.post("/ai/enhance", json={"mode": "denoise"})
    assert r.status_code == 400


def test_object_removal_requires_point(ai_client):
    r = ai_client().client.post("/ai/object-removal", json={"image_url": "https://store.test/a.png"})
    assert r.status_code == 422


def test_remove_background_reports_variant(ai_client, png_bytes):
    env = ai_client()
    pid = create_project(env.client)["id"]
    upload_original(env.client, pid, png_bytes)

    r = env.client.post("/ai/remove-background", json={"project_id": pid})
    assert r.status_code == 200, r.text
    assert r.json()["model_variant"] == "general"
    assert r.json()["variant_source"] == "fallback"


def test_stage_failure_is_structured_502(ai_client, fakes, png_bytes):
    env = ai_client(executor=fakes.executor(fail_at="inpaint"))
    pid = create_project(env.client)["id"]
    upload_original(env.client, pid, png_bytes)

    r = env.client.post("/ai/object-removal", json={"project_id": pid, "x": 3, "y": 4})
    assert r.status_code == 502
    body = r.json()
    assert body["error"] == "PipelineStageFailed"
    assert body["pipeline"] == "object_removal"
    assert body["stage"] == "inpaint"
    assert body["cause"] == "StageExecutionFailed"
    assert env.client.get(f"/ai-projects/{pid}").json()["operations"] == []
    assert list(env.artifacts.root.iterdir()) == []


def test_unavailable_unit_is_503(ai_client, fakes, png_bytes):
    executor = fakes.executor(fail_at="segment", error=ContainerUnavailable("background-removal-service"))
    env = ai_client(executor=executor)
    pid = create_project(env.client)["id"]
    upload_original(env.client, pid, png_bytes)

    r = env.client.post("/ai/remove-background", json={"project_id": pid, "model_type": "human"})
    assert r.status_code == 503
    assert r.json()["cause"] == "ContainerUnavailable"


def test_download_failure_is_502(ai_client):
    r = ai_client().client.post("/ai/relight", json={"image_url": "/local-storage/missing/none.png"})
    assert r.status_code == 502
    assert r.json()["error"] == "ArtifactDownloadFailed"


def test_separate_layers_returns_both_layers(ai_client, png_bytes):
    env = ai_client()
    pid = create_project(env.client)["id"]
    upload_original(env.client, pid, png_bytes)

    r = env.client.post("/ai/separate-layers", json={"project_id": pid, "model_type": "general"})
    assert r.status_code == 200, r.text
    assert set(r.json()["outputs"]) == {"foreground", "background"}
    assert r.json()["operation_index"] is None


def test_auto_enhance_analyze_degrades_without_classifier(ai_client):
    r = ai_client().client.post("/ai/auto-enhance/analyze", json={"image_url": "https://store.test/a.png"})
    assert r.status_code == 200
    assert r.json()["degraded"] is True
    assert r.json()["enhancements"] == []


def test_auto_enhance_apply_chain(ai_client, png_bytes):
    env = ai_client()
    pid = create_project(env.client)["id"]
    upload_original(env.client, pid, png_bytes)

    r = env.client.post(
        "/ai/auto-enhance/apply",
        json={"project_id": pid, "enhancements": ["denoise", "low_light_enhancement"]},
    )
    assert r.status_code == 200, r.text
    assert r.json()["applied"] == ["low_light_enhancement", "denoise"]
    assert env.executor.stage_names == ["relight", "enhance"]
    assert len(env.client.get(f"/ai-projects/{pid}").json()["operations"]) == 2


def test_prompt_without_classifier_is_502(ai_client):
    r = ai_client().client.post("/prompt", json={"prompt": "brighten", "image_url": "https://store.test/a.png"})
    assert r.status_code == 502
    assert r.json()["error"] == "ClassifierUnavailable"


def test_prompt_quota_is_429(ai_client, png_bytes):
    env = ai_client(classifier=QuotaClassifier())
    pid = create_project(env.client)["id"]
    upload_original(env.client, pid, png_bytes)

    r = env.client.post("/prompt", json={"prompt": "brighten", "project_id": pid})
    assert r.status_code == 429
    assert r.headers["retry-after"] == "60"
    assert r.json()["error"] == "UpstreamQuotaExceeded"


def test_image_without_prompt_answers_suggestions(ai_client, png_bytes):
    env = ai_client(classifier=SuggestingClassifier())
    pid = create_project(env.client)["id"]
    upload_original(env.client, pid, png_bytes)

    r = env.client.post("/prompt", json={"project_id": pid})
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["status"] == "suggestions"
    assert body["suggestions"] == ["low_light_enhancement", "face_restoration"]
    assert env.executor.calls == []


def test_empty_prompt_without_image_is_400(ai_client):
    r = ai_client(classifier=SuggestingClassifier()).client.post("/prompt", json={"prompt": ""})
    assert r.status_code == 400
