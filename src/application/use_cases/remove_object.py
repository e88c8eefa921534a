from __future__ import annotations

from dataclasses import dataclass

from src.application.pipelines import stages
from src.application.pipelines.coordinator import PipelineCoordinator, PipelineResult
from src.application.use_cases.project_history import ProjectHistoryUseCase
from src.domain.entities.edit_history import OperationType


@dataclass
class RemoveObjectUseCase:
    coordinator: PipelineCoordinator
    history: ProjectHistoryUseCase

    async def execute(
        self,
        x: int,
        y: int,
        image_url: str | None = None,
        project_id: str | None = None,
    ) -> PipelineResult:
        """Point-prompted SAM mask, dilated, then LaMa inpainting of the masked area."""
        if x is None or y is None or int(x) < 0 or int(y) < 0:
            raise ValueError("Point coordinates x and y must be non-negative integers")
        x, y = int(x), int(y)

        source = await self.history.resolve_source(project_id, image_url)
        async with self.coordinator.run("object_removal") as run:
            local = await run.fetch(source.image_url)
            mask = await run.stage(stages.POINT_SEGMENT, {"image": local}, {"x": x, "y": y})
            dilated = await run.stage(stages.DILATE_MASK, {"mask": mask})
            inpainted = await run.stage(stages.INPAINT_MASK, {"image": local, "mask": dilated})
            image = await run.publish(inpainted, "object-removed")
            result = run.result(
                OperationType.OBJECT_REMOVAL, {"result": image}, {"x": x, "y": y}, source.image
            )
        return await self.history.record(project_id, result)
