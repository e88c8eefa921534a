from __future__ import annotations

from dataclasses import dataclass

from src.application.pipelines import stages
from src.application.pipelines.coordinator import PipelineCoordinator, PipelineResult
from src.application.use_cases.project_history import ProjectHistoryUseCase
from src.domain.entities.edit_history import OperationType

DEFAULT_FIDELITY = 0.7


@dataclass
class RestoreFaceUseCase:
    coordinator: PipelineCoordinator
    history: ProjectHistoryUseCase

    async def execute(
        self,
        image_url: str | None = None,
        fidelity: float = DEFAULT_FIDELITY,
        project_id: str | None = None,
    ) -> PipelineResult:
        """CodeFormer face restoration.

        Lower fidelity favours quality, higher favours identity; must be in [0, 1].
        """
        fidelity = float(fidelity)
        if not 0.0 <= fidelity <= 1.0:
            raise ValueError("Fidelity must be between 0 and 1")

        source = await self.history.resolve_source(project_id, image_url)
        async with self.coordinator.run("face_restore") as run:
            local = await run.fetch(source.image_url)
            restored = await run.stage(stages.FACE_RESTORE, {"image": local}, {"fidelity": fidelity})
            image = await run.publish(restored, "face-restored")
            result = run.result(
                OperationType.FACE_RESTORE, {"result": image}, {"fidelity": fidelity}, source.image
            )
        return await self.history.record(project_id, result)
