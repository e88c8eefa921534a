from __future__ import annotations

from dataclasses import dataclass

from src.application.pipelines import stages
from src.application.pipelines.coordinator import PipelineCoordinator, PipelineResult
from src.application.use_cases.project_history import ProjectHistoryUseCase
from src.domain.services.classification import ModelVariant
from src.domain.services.processing_service import ProcessingService


@dataclass
class ReplaceBackgroundUseCase:
    """Puts a subject onto a new background and harmonizes the lighting.

    composite -> segment the composite -> binarize alpha -> PCT-Net, with the
    segmentation weights chosen by classifying the composite.
    """

    coordinator: PipelineCoordinator
    history: ProjectHistoryUseCase
    processing: ProcessingService

    async def execute(
        self,
        background_image_url: str,
        subject_image_url: str | None = None,
        model_type: ModelVariant | str | None = None,
        project_id: str | None = None,
    ) -> PipelineResult:
        if not background_image_url:
            raise ValueError("background_image_url is required")
        if model_type is not None:
            model_type = ModelVariant(model_type)

        source = await self.history.resolve_source(project_id, subject_image_url)
        async with self.coordinator.run("replace_background") as run:
            subject, background = await run.fetch_many(
                (source.image_url, "subject"), (background_image_url, "background")
            )
            composite = run.new_artifact("composite", ".jpg")
            await run.local_step(
                "composite", self.processing.write_composite, subject, background, composite
            )

            variant = await run.select_model_variant(composite, model_type)
            foreground = await run.stage(
                stages.SEGMENT, {"image": composite}, {"model_file": variant.segmentation_model}
            )

            mask = run.new_artifact("mask", ".png")
            await run.local_step("binarize_mask", self.processing.write_binary_mask, foreground, mask)

            harmonized = await run.stage(
                stages.HARMONIZE, {"composite": composite, "mask": mask}, ext=".jpg"
            )
            image = await run.publish(harmonized, "harmonized")
            result = run.result(
                None,
                {"result": image},
                {"background_image_url": background_image_url},
                source.image,
            )
        return result
