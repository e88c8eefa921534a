from __future__ import annotations

import uuid
from dataclasses import dataclass

from src.application.pipelines import stages
from src.application.pipelines.coordinator import PipelineCoordinator, PipelineResult
from src.application.use_cases.project_history import ProjectHistoryUseCase
from src.domain.services.classification import ModelVariant


@dataclass
class SeparateLayersUseCase:
    """Splits an image into a transparent subject layer and a filled-in background.

    Produces two layers rather than an edit, so nothing is appended to history.
    """

    coordinator: PipelineCoordinator
    history: ProjectHistoryUseCase

    async def execute(
        self,
        image_url: str | None = None,
        model_type: ModelVariant | str | None = None,
        project_id: str | None = None,
    ) -> PipelineResult:
        if model_type is not None:
            model_type = ModelVariant(model_type)

        source = await self.history.resolve_source(project_id, image_url)
        layer_id = uuid.uuid4().hex
        async with self.coordinator.run("layer_separation") as run:
            local = await run.fetch(source.image_url)
            variant = await run.select_model_variant(local, model_type)
            foreground = await run.stage(
                stages.SEGMENT, {"image": local}, {"model_file": variant.segmentation_model}
            )
            background = await run.stage(
                stages.INPAINT_SUBJECT, {"image": local, "subject": foreground}
            )
            fg_image, bg_image = await run.publish_many(
                (foreground, "layers", f"foreground_{layer_id}"),
                (background, "layers", f"background_{layer_id}"),
            )
            result = run.result(
                None, {"foreground": fg_image, "background": bg_image}, None, source.image
            )
        return result
