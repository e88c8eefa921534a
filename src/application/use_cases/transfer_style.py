from __future__ import annotations

from dataclasses import dataclass

from src.application.pipelines import stages
from src.application.pipelines.coordinator import PipelineCoordinator, PipelineResult
from src.application.use_cases.project_history import ProjectHistoryUseCase
from src.domain.entities.edit_history import OperationType


@dataclass
class TransferStyleUseCase:
    coordinator: PipelineCoordinator
    history: ProjectHistoryUseCase

    async def execute(
        self,
        style_image_url: str,
        content_image_url: str | None = None,
        project_id: str | None = None,
    ) -> PipelineResult:
        if not style_image_url:
            raise ValueError("style_image_url is required")

        source = await self.history.resolve_source(project_id, content_image_url)
        async with self.coordinator.run("style_transfer") as run:
            content, style = await run.fetch_many(
                (source.image_url, "content"), (style_image_url, "style")
            )
            styled = await run.stage(
                stages.STYLE_TRANSFER, {"content": content, "style": style}, ext=".jpg"
            )
            image = await run.publish(styled, "style-transfer")
            result = run.result(
                OperationType.STYLE_TRANSFER,
                {"result": image},
                {"style_image_url": style_image_url},
                source.image,
            )
        return await self.history.record(project_id, result)
