from __future__ import annotations

from dataclasses import dataclass

from src.application.pipelines import stages
from src.application.pipelines.coordinator import PipelineCoordinator, PipelineResult
from src.application.use_cases.project_history import ProjectHistoryUseCase
from src.domain.entities.edit_history import OperationType

ENHANCE_MODES = tuple(stages.NAFNET_CONFIGS)


@dataclass
class EnhanceImageUseCase:
    coordinator: PipelineCoordinator
    history: ProjectHistoryUseCase

    async def execute(
        self,
        image_url: str | None = None,
        mode: str = "denoise",
        project_id: str | None = None,
    ) -> PipelineResult:
        """NAFNet restoration; ``mode`` picks the denoise (SIDD) or deblur (REDS) weights."""
        if mode not in stages.NAFNET_CONFIGS:
            raise ValueError(f"Mode must be one of: {', '.join(ENHANCE_MODES)}")

        source = await self.history.resolve_source(project_id, image_url)
        async with self.coordinator.run(f"enhance_{mode}") as run:
            local = await run.fetch(source.image_url)
            enhanced = await run.stage(
                stages.ENHANCE, {"image": local}, {"config": stages.NAFNET_CONFIGS[mode]}
            )
            image = await run.publish(enhanced, "enhanced")
            result = run.result(OperationType.ENHANCE, {"result": image}, {"mode": mode}, source.image)
        return await self.history.record(project_id, result)
