from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field

from src.application.pipelines.coordinator import PipelineCoordinator, PipelineResult, guess_mime_type
from src.application.use_cases.enhance_image import EnhanceImageUseCase
from src.application.use_cases.project_history import ProjectHistoryUseCase
from src.application.use_cases.relight_image import DEFAULT_BRIGHTNESS, RelightImageUseCase
from src.application.use_cases.restore_face import DEFAULT_FIDELITY, RestoreFaceUseCase
from src.domain.entities.image import ImageRef
from src.domain.errors import ClassifierUnavailable, DomainError
from src.domain.services.classification import EnhancementKind, QualityReport, order_enhancements

logger = logging.getLogger(__name__)


@dataclass
class EnhancementStep:
    step: int
    enhancement: EnhancementKind
    status: str  # "completed" | "failed"
    processing_time: float
    result: PipelineResult | None = None
    error: str | None = None


@dataclass
class AutoEnhanceOutcome:
    input_image_url: str
    final_image: ImageRef | None
    steps: list[EnhancementStep] = field(default_factory=list)

    @property
    def applied(self) -> list[EnhancementKind]:
        return [s.enhancement for s in self.steps if s.status == "completed"]


@dataclass
class AutoEnhanceUseCase:
    """Quality analysis followed by an ordered chain of single-stage pipelines.

    Each step is its own pipeline run. A failed step is reported and the
    chain carries on from the last good image.
    """

    coordinator: PipelineCoordinator
    history: ProjectHistoryUseCase
    relight: RelightImageUseCase
    enhance: EnhanceImageUseCase
    face_restore: RestoreFaceUseCase

    async def analyze(self, image_url: str | None = None, project_id: str | None = None) -> QualityReport:
        classifier = self.coordinator.classifier
        if classifier is None:
            logger.warning("No classifier configured, skipping quality analysis")
            return QualityReport.empty()

        source = await self.history.resolve_source(project_id, image_url)
        async with self.coordinator.run("auto_enhance_analyze") as run:
            local = await run.fetch(source.image_url)
            image_bytes = await run.read_bytes(local)
            try:
                report = await classifier.analyze_quality(image_bytes, guess_mime_type(local))
            except ClassifierUnavailable as exc:
                logger.warning("Quality analysis unavailable, returning empty report: %s", exc)
                return QualityReport.empty()
        logger.info(
            "Quality analysis: %s (overall %s)",
            [k.value for k in report.needed] or "nothing needed",
            report.overall_quality,
        )
        return report

    async def _apply_one(
        self, kind: EnhancementKind, image_url: str | None, project_id: str | None
    ) -> PipelineResult:
        if kind is EnhancementKind.LOW_LIGHT:
            return await self.relight.execute(image_url, DEFAULT_BRIGHTNESS, project_id)
        if kind is EnhancementKind.DENOISE:
            return await self.enhance.execute(image_url, "denoise", project_id)
        if kind is EnhancementKind.DEBLUR:
            return await self.enhance.execute(image_url, "deblur", project_id)
        return await self.face_restore.execute(image_url, DEFAULT_FIDELITY, project_id)

    async def apply(
        self,
        image_url: str | None = None,
        enhancements: list[EnhancementKind | str] | None = None,
        project_id: str | None = None,
    ) -> AutoEnhanceOutcome:
        if enhancements is None:
            enhancements = list((await self.analyze(image_url, project_id)).needed)
        chain = order_enhancements(enhancements)

        source = await self.history.resolve_source(project_id, image_url)
        outcome = AutoEnhanceOutcome(input_image_url=source.image_url, final_image=None)
        current_url: str | None = image_url
        for number, kind in enumerate(chain, start=1):
            started = time.monotonic()
            try:
                result = await self._apply_one(kind, current_url, project_id)
            except DomainError as exc:
                logger.error("Auto-enhance step %d (%s) failed: %s", number, kind.value, exc)
                outcome.steps.append(
                    EnhancementStep(
                        step=number,
                        enhancement=kind,
                        status="failed",
                        processing_time=round(time.monotonic() - started, 3),
                        error=str(exc),
                    )
                )
                continue
            outcome.steps.append(
                EnhancementStep(
                    step=number,
                    enhancement=kind,
                    status="completed",
                    processing_time=round(time.monotonic() - started, 3),
                    result=result,
                )
            )
            outcome.final_image = result.output_image
            # a project's current image already follows the recorded step
            current_url = None if project_id else result.output_image.image_url
        return outcome
