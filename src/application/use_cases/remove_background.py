from __future__ import annotations

from dataclasses import dataclass

from src.application.pipelines import stages
from src.application.pipelines.coordinator import PipelineCoordinator, PipelineResult
from src.application.use_cases.project_history import ProjectHistoryUseCase
from src.domain.entities.edit_history import OperationType
from src.domain.services.classification import ModelVariant


@dataclass
class RemoveBackgroundUseCase:
    coordinator: PipelineCoordinator
    history: ProjectHistoryUseCase

    async def execute(
        self,
        image_url: str | None = None,
        model_type: ModelVariant | str | None = None,
        project_id: str | None = None,
    ) -> PipelineResult:
        """Classify, then segment with the matching U2Net weights.

        An explicit ``model_type`` skips the classifier.
        """
        if model_type is not None:
            model_type = ModelVariant(model_type)

        source = await self.history.resolve_source(project_id, image_url)
        async with self.coordinator.run("remove_background") as run:
            local = await run.fetch(source.image_url)
            variant = await run.select_model_variant(local, model_type)
            foreground = await run.stage(
                stages.SEGMENT, {"image": local}, {"model_file": variant.segmentation_model}
            )
            image = await run.publish(foreground, "background-removed")
            result = run.result(OperationType.REMOVE_BACKGROUND, {"result": image}, None, source.image)
        return await self.history.record(project_id, result)
