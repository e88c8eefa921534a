from __future__ import annotations

from dataclasses import dataclass

from src.application.pipelines import stages
from src.application.pipelines.coordinator import PipelineCoordinator, PipelineResult
from src.application.use_cases.project_history import ProjectHistoryUseCase
from src.domain.entities.edit_history import OperationType

MIN_BRIGHTNESS = 0.1
MAX_BRIGHTNESS = 3.0
DEFAULT_BRIGHTNESS = 0.5


@dataclass
class RelightImageUseCase:
    coordinator: PipelineCoordinator
    history: ProjectHistoryUseCase

    async def execute(
        self,
        image_url: str | None = None,
        brightness: float = DEFAULT_BRIGHTNESS,
        project_id: str | None = None,
    ) -> PipelineResult:
        """Low-light enhancement with a brightness factor in [0.1, 3.0]."""
        brightness = float(brightness)
        if not MIN_BRIGHTNESS <= brightness <= MAX_BRIGHTNESS:
            raise ValueError(f"Brightness must be between {MIN_BRIGHTNESS} and {MAX_BRIGHTNESS}")

        source = await self.history.resolve_source(project_id, image_url)
        async with self.coordinator.run("relight") as run:
            local = await run.fetch(source.image_url)
            relit = await run.stage(stages.RELIGHT, {"image": local}, {"brightness": brightness})
            image = await run.publish(relit, "relighted")
            result = run.result(
                OperationType.RELIGHT, {"result": image}, {"brightness": brightness}, source.image
            )
        return await self.history.record(project_id, result)
