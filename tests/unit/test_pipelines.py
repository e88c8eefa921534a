from __future__ import annotations

import asyncio

import pytest

from src.application.use_cases.auto_enhance import AutoEnhanceUseCase
from src.application.use_cases.enhance_image import EnhanceImageUseCase
from src.application.use_cases.relight_image import RelightImageUseCase
from src.application.use_cases.remove_background import RemoveBackgroundUseCase
from src.application.use_cases.remove_object import RemoveObjectUseCase
from src.application.use_cases.replace_background import ReplaceBackgroundUseCase
from src.application.use_cases.restore_face import RestoreFaceUseCase
from src.application.use_cases.separate_layers import SeparateLayersUseCase
from src.application.use_cases.transfer_style import TransferStyleUseCase
from src.domain.entities.image import ImageRef
from src.domain.errors import (
    ArtifactDownloadFailed,
    ClassifierUnavailable,
    EmptyOutput,
    PipelineStageFailed,
    ProjectNotFound,
    StageExecutionFailed,
    StorageError,
)
from src.domain.services.classification import Classification, EnhancementKind, ModelVariant, QualityReport
from src.domain.services.processing_service import ProcessingService

IMAGE_URL = "https://store.test/uploads/photo.png"


class LabelClassifier:
    def __init__(self, label="human", report=None):
        self.label = label
        self.report = report or QualityReport()

    async def classify(self, image_bytes, mime_type):
        assert image_bytes
        return Classification(label=self.label, confidence="high")

    async def analyze_quality(self, image_bytes, mime_type):
        return self.report

    async def route_intent(self, image_bytes, text, mime_type):
        return {}


class UnavailableClassifier(LabelClassifier):
    async def analyze_quality(self, image_bytes, mime_type):
        raise ClassifierUnavailable("Classifier timed out after 20s")


def residual_files(artifact_store):
    return list(artifact_store.root.iterdir())


async def project_with_original(history, url="https://store.test/ai-projects/original.png"):
    project = await history.create("Test")
    await history.set_original_image(project.id, ImageRef(image_url=url, public_id="ai-projects/original.png"))
    return project


# --------- single-stage pipelines ---------
def test_relight_publishes_result_and_cleans_up(make_coordinator, history, fake_executor, fake_storage, artifact_store):
    uc = RelightImageUseCase(make_coordinator(), history)

    result = asyncio.run(uc.execute(IMAGE_URL, 1.5))

    assert fake_executor.stage_names == ["relight"]
    assert fake_executor.calls[0][2] == {"brightness": 1.5}
    assert fake_storage.downloads == [IMAGE_URL]
    assert result.output_image.public_id.startswith("relighted/")
    assert result.parameters == {"brightness": 1.5}
    assert result.project_id is None
    assert result.operation_index is None
    assert "relight" in result.timings
    assert residual_files(artifact_store) == []


@pytest.mark.parametrize("brightness", [0.0, 0.09, 3.1, -1])
def test_relight_rejects_out_of_range_brightness(make_coordinator, history, fake_executor, brightness):
    uc = RelightImageUseCase(make_coordinator(), history)
    with pytest.raises(ValueError):
        asyncio.run(uc.execute(IMAGE_URL, brightness))
    assert fake_executor.calls == []


def test_relight_with_project_reads_current_image_and_records(make_coordinator, history, fake_storage):
    uc = RelightImageUseCase(make_coordinator(), history)

    async def main():
        project = await project_with_original(history)
        first = await uc.execute(None, 0.8, project.id)
        second = await uc.execute(None, 1.2, project.id)
        return await history.get(project.id), first, second

    project, first, second = asyncio.run(main())

    assert fake_storage.downloads == [
        "https://store.test/ai-projects/original.png",
        first.output_image.image_url,
    ]
    assert first.operation_index == 0
    assert second.operation_index == 1
    assert second.project_id == project.id
    assert project.current_image == second.output_image
    assert project.operations[1].input_image == first.output_image
    assert project.operations[1].parameters == {"brightness": 1.2}


def test_enhance_maps_mode_to_weights(make_coordinator, history, fake_executor):
    uc = EnhanceImageUseCase(make_coordinator(), history)
    result = asyncio.run(uc.execute(IMAGE_URL, "deblur"))
    assert result.pipeline == "enhance_deblur"
    assert "REDS" in fake_executor.calls[0][2]["config"]
    assert result.parameters == {"mode": "deblur"}


def test_enhance_rejects_unknown_mode(make_coordinator, history):
    uc = EnhanceImageUseCase(make_coordinator(), history)
    with pytest.raises(ValueError):
        asyncio.run(uc.execute(IMAGE_URL, "sharpen"))


@pytest.mark.parametrize("fidelity", [-0.1, 1.01])
def test_face_restore_rejects_fidelity(make_coordinator, history, fidelity):
    uc = RestoreFaceUseCase(make_coordinator(), history)
    with pytest.raises(ValueError):
        asyncio.run(uc.execute(IMAGE_URL, fidelity))


def test_face_restore_passes_fidelity(make_coordinator, history, fake_executor):
    uc = RestoreFaceUseCase(make_coordinator(), history)
    asyncio.run(uc.execute(IMAGE_URL, 0.3))
    assert fake_executor.calls[0][2] == {"fidelity": 0.3}


def test_style_transfer_uses_project_image_as_content(make_coordinator, history, fake_executor, fake_storage):
    uc = TransferStyleUseCase(make_coordinator(), history)
    style_url = "https://store.test/styles/starry.jpg"

    async def main():
        project = await project_with_original(history)
        result = await uc.execute(style_url, None, project.id)
        return await history.get(project.id), result

    project, result = asyncio.run(main())

    assert set(fake_storage.downloads) == {"https://store.test/ai-projects/original.png", style_url}
    name, inputs, _ = fake_executor.calls[0]
    assert name == "style_transfer"
    assert inputs["style"].suffix == ".jpg"
    assert project.operations[0].operation_type.value == "style-transfer"
    assert result.parameters == {"style_image_url": style_url}


# --------- source resolution ---------
def test_missing_source_is_rejected(make_coordinator, history):
    uc = RelightImageUseCase(make_coordinator(), history)
    with pytest.raises(ValueError):
        asyncio.run(uc.execute(None, 0.5, None))


def test_project_without_image_is_rejected(make_coordinator, history):
    uc = RelightImageUseCase(make_coordinator(), history)

    async def main():
        project = await history.create("Empty")
        await uc.execute(None, 0.5, project.id)

    with pytest.raises(ValueError):
        asyncio.run(main())


def test_unknown_project_is_not_found(make_coordinator, history):
    uc = RelightImageUseCase(make_coordinator(), history)
    with pytest.raises(ProjectNotFound):
        asyncio.run(uc.execute(IMAGE_URL, 0.5, "does-not-exist"))


def test_download_failure_is_reported(make_coordinator, history, fakes, artifact_store):
    storage = fakes.storage(fail_urls=[IMAGE_URL])
    uc = RelightImageUseCase(make_coordinator(storage=storage), history)
    with pytest.raises(ArtifactDownloadFailed):
        asyncio.run(uc.execute(IMAGE_URL))
    assert residual_files(artifact_store) == []


# --------- background removal / model variant ---------
def test_remove_background_falls_back_when_classifier_fails(make_coordinator, history, fakes, fake_executor):
    uc = RemoveBackgroundUseCase(make_coordinator(classifier=fakes.throwing_classifier()), history)

    result = asyncio.run(uc.execute(IMAGE_URL))

    assert result.model_variant is ModelVariant.GENERAL
    assert result.variant_source == "fallback"
    assert fake_executor.calls[0][2] == {"model_file": "u2net.onnx"}
    assert result.parameters["model_type"] == "general"


def test_remove_background_explicit_variant_skips_classifier(make_coordinator, history, fakes, fake_executor):
    uc = RemoveBackgroundUseCase(make_coordinator(classifier=fakes.throwing_classifier()), history)

    result = asyncio.run(uc.execute(IMAGE_URL, "human"))

    assert result.model_variant is ModelVariant.HUMAN
    assert result.variant_source == "explicit"
    assert fake_executor.calls[0][2] == {"model_file": "u2net_human_seg.onnx"}


@pytest.mark.parametrize("label, variant", [("human", ModelVariant.HUMAN), ("object", ModelVariant.GENERAL)])
def test_remove_background_follows_classifier(make_coordinator, history, label, variant):
    uc = RemoveBackgroundUseCase(make_coordinator(classifier=LabelClassifier(label)), history)
    result = asyncio.run(uc.execute(IMAGE_URL))
    assert result.model_variant is variant
    assert result.variant_source == "classifier"


def test_remove_background_without_classifier_uses_general(make_coordinator, history):
    uc = RemoveBackgroundUseCase(make_coordinator(), history)
    result = asyncio.run(uc.execute(IMAGE_URL))
    assert result.model_variant is ModelVariant.GENERAL
    assert result.variant_source == "fallback"


def test_empty_stage_output_fails_the_pipeline(make_coordinator, history, fakes, artifact_store):
    executor = fakes.executor(empty_at="segment")
    uc = RemoveBackgroundUseCase(make_coordinator(executor=executor), history)
    with pytest.raises(PipelineStageFailed) as info:
        asyncio.run(uc.execute(IMAGE_URL, "general"))
    assert info.value.stage == "segment"
    assert isinstance(info.value.cause, EmptyOutput)
    assert residual_files(artifact_store) == []


# --------- object removal ---------
def test_object_removal_runs_three_stages(make_coordinator, history, fake_executor, artifact_store):
    uc = RemoveObjectUseCase(make_coordinator(), history)

    result = asyncio.run(uc.execute(120, 45, IMAGE_URL))

    assert fake_executor.stage_names == ["point_segment", "dilate_mask", "inpaint"]
    assert fake_executor.calls[0][2] == {"x": 120, "y": 45}
    _, inpaint_inputs, _ = fake_executor.calls[2]
    assert set(inpaint_inputs) == {"image", "mask"}
    assert result.parameters == {"x": 120, "y": 45}
    assert residual_files(artifact_store) == []


@pytest.mark.parametrize("x, y", [(-1, 5), (5, -1)])
def test_object_removal_rejects_negative_point(make_coordinator, history, x, y):
    uc = RemoveObjectUseCase(make_coordinator(), history)
    with pytest.raises(ValueError):
        asyncio.run(uc.execute(x, y, IMAGE_URL))


def test_object_removal_failure_names_stage_and_keeps_history(make_coordinator, history, fakes, artifact_store):
    executor = fakes.executor(fail_at="inpaint")
    uc = RemoveObjectUseCase(make_coordinator(executor=executor), history)

    async def main():
        project = await project_with_original(history)
        with pytest.raises(PipelineStageFailed) as info:
            await uc.execute(10, 10, None, project.id)
        return await history.get(project.id), info.value

    project, error = asyncio.run(main())

    assert error.pipeline == "object_removal"
    assert error.stage == "inpaint"
    assert isinstance(error.cause, StageExecutionFailed)
    assert project.operations == []
    assert residual_files(artifact_store) == []


# --------- layer separation / background replacement ---------
def test_separate_layers_publishes_two_layers_without_history(make_coordinator, history, fake_executor, fake_storage):
    uc = SeparateLayersUseCase(make_coordinator(), history)

    async def main():
        project = await project_with_original(history)
        result = await uc.execute(None, None, project.id)
        return await history.get(project.id), result

    project, result = asyncio.run(main())

    assert fake_executor.stage_names == ["segment", "inpaint_background"]
    assert set(result.outputs) == {"foreground", "background"}
    assert len(fake_storage.uploads) == 2
    assert all(p.startswith("layers/") for p in fake_storage.uploads)
    fg_id = result.outputs["foreground"].public_id.split("foreground_")[1]
    assert result.outputs["background"].public_id == f"layers/background_{fg_id}"
    assert result.operation_type is None
    assert project.operations == []


def test_separate_layers_withdraws_published_layer_when_other_upload_fails(make_coordinator, history, fakes, artifact_store):
    class FlakyStorage(fakes.storage):
        async def upload(self, local_path, folder, desired_id):
            if desired_id.startswith("background_"):
                await asyncio.sleep(0.01)
                raise StorageError("Storage upload failed: 503")
            return await super().upload(local_path, folder, desired_id)

    storage = FlakyStorage()
    uc = SeparateLayersUseCase(make_coordinator(storage=storage), history)

    with pytest.raises(StorageError):
        asyncio.run(uc.execute(IMAGE_URL))

    assert len(storage.uploads) == 1
    assert storage.deleted == storage.uploads
    assert residual_files(artifact_store) == []


def test_replace_background_composites_and_harmonizes(make_coordinator, history, fakes, fake_executor, fake_storage, artifact_store):
    uc = ReplaceBackgroundUseCase(
        make_coordinator(classifier=fakes.throwing_classifier()), history, ProcessingService()
    )
    background_url = "https://store.test/backgrounds/beach.jpg"

    result = asyncio.run(uc.execute(background_url, IMAGE_URL))

    assert set(fake_storage.downloads) == {IMAGE_URL, background_url}
    assert fake_executor.stage_names == ["segment", "harmonize"]
    segment_inputs = fake_executor.calls[0][1]
    harmonize_inputs = fake_executor.calls[1][1]
    assert segment_inputs["image"] == harmonize_inputs["composite"]
    assert harmonize_inputs["composite"].suffix == ".jpg"
    assert harmonize_inputs["mask"].suffix == ".png"
    assert {"composite", "binarize_mask", "harmonize"} <= set(result.timings)
    assert result.variant_source == "fallback"
    assert result.operation_type is None
    assert residual_files(artifact_store) == []


def test_replace_background_download_failure_leaves_nothing_behind(make_coordinator, history, fakes, artifact_store):
    background_url = "https://store.test/backgrounds/missing.jpg"
    storage = fakes.storage(fail_urls=[background_url])
    uc = ReplaceBackgroundUseCase(make_coordinator(storage=storage), history, ProcessingService())
    with pytest.raises(ArtifactDownloadFailed):
        asyncio.run(uc.execute(background_url, IMAGE_URL))
    assert residual_files(artifact_store) == []


# --------- auto enhance ---------
def build_auto_enhance(coordinator, history):
    return AutoEnhanceUseCase(
        coordinator,
        history,
        RelightImageUseCase(coordinator, history),
        EnhanceImageUseCase(coordinator, history),
        RestoreFaceUseCase(coordinator, history),
    )


def test_auto_enhance_orders_steps_and_continues_after_failure(make_coordinator, history, fakes, fake_storage):
    executor = fakes.executor(fail_at="enhance")
    uc = build_auto_enhance(make_coordinator(executor=executor), history)

    outcome = asyncio.run(
        uc.apply(IMAGE_URL, ["face_restoration", "denoise", "low_light_enhancement", "denoise"])
    )

    assert [s.enhancement for s in outcome.steps] == [
        EnhancementKind.LOW_LIGHT,
        EnhancementKind.DENOISE,
        EnhancementKind.FACE_RESTORATION,
    ]
    assert [s.status for s in outcome.steps] == ["completed", "failed", "completed"]
    assert outcome.applied == [EnhancementKind.LOW_LIGHT, EnhancementKind.FACE_RESTORATION]
    assert "enhance" in outcome.steps[1].error
    relit = outcome.steps[0].result.output_image
    # denoise and face restore both start from the relit image
    assert fake_storage.downloads == [IMAGE_URL, relit.image_url, relit.image_url]
    assert outcome.final_image == outcome.steps[2].result.output_image


def test_auto_enhance_records_each_completed_step(make_coordinator, history):
    uc = build_auto_enhance(make_coordinator(), history)

    async def main():
        project = await project_with_original(history)
        outcome = await uc.apply(None, ["deblur", "low_light_enhancement"], project.id)
        return await history.get(project.id), outcome

    project, outcome = asyncio.run(main())

    assert [op.operation_type.value for op in project.operations] == ["relight", "enhance"]
    assert project.operations[1].parameters == {"mode": "deblur"}
    assert project.current_image == outcome.final_image


def test_auto_enhance_analyze_without_classifier_is_empty(make_coordinator, history):
    uc = build_auto_enhance(make_coordinator(), history)
    report = asyncio.run(uc.analyze(IMAGE_URL))
    assert report.degraded
    assert report.needed == []


def test_auto_enhance_analyze_degrades_on_classifier_failure(make_coordinator, history, artifact_store):
    uc = build_auto_enhance(make_coordinator(classifier=UnavailableClassifier()), history)
    report = asyncio.run(uc.analyze(IMAGE_URL))
    assert report.degraded
    assert residual_files(artifact_store) == []


def test_auto_enhance_apply_uses_analysis_when_nothing_requested(make_coordinator, history, fake_executor):
    report = QualityReport(needed=[EnhancementKind.DENOISE], overall_quality="fair")
    uc = build_auto_enhance(make_coordinator(classifier=LabelClassifier(report=report)), history)

    outcome = asyncio.run(uc.apply(IMAGE_URL))

    assert outcome.applied == [EnhancementKind.DENOISE]
    assert fake_executor.stage_names == ["enhance"]
