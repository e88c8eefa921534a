from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from src.application.pipelines.coordinator import PipelineCoordinator, PipelineResult, guess_mime_type
from src.application.use_cases.enhance_image import EnhanceImageUseCase
from src.application.use_cases.project_history import ProjectHistoryUseCase
from src.application.use_cases.relight_image import RelightImageUseCase
from src.application.use_cases.remove_background import RemoveBackgroundUseCase
from src.application.use_cases.restore_face import RestoreFaceUseCase
from src.application.use_cases.separate_layers import SeparateLayersUseCase
from src.domain.errors import ClassifierUnavailable, FeatureNotImplemented, UpstreamQuotaExceeded
from src.domain.services.intents import (
    SUPPORTED_FEATURES,
    EnhanceIntent,
    FaceRestoreIntent,
    Intent,
    LayerSeparationIntent,
    ObjectRemovalIntent,
    RelightIntent,
    RemoveBackgroundIntent,
    StyleTransferIntent,
    UnimplementedIntent,
    UnsupportedIntent,
    parse_intent,
)

logger = logging.getLogger(__name__)


@dataclass
class PromptOutcome:
    status: str  # "completed" | "unsupported" | "requires_interaction" | "suggestions"
    prompt: str
    feature: str | None = None
    message: str | None = None
    supported_features: list[str] = field(default_factory=list)
    result: PipelineResult | None = None
    intent: dict[str, Any] = field(default_factory=dict)
    suggestions: list[str] = field(default_factory=list)


@dataclass
class ProcessPromptUseCase:
    """Maps a free-text instruction to exactly one pipeline.

    Classifier faults propagate (quota distinct from the rest) instead of being
    turned into "not supported".
    """

    coordinator: PipelineCoordinator
    history: ProjectHistoryUseCase
    relight: RelightImageUseCase
    enhance: EnhanceImageUseCase
    face_restore: RestoreFaceUseCase
    remove_background: RemoveBackgroundUseCase
    separate_layers: SeparateLayersUseCase

    async def route(self, prompt: str, image_url: str | None, project_id: str | None) -> dict[str, Any]:
        classifier = self.coordinator.classifier
        if classifier is None:
            raise ClassifierUnavailable("No classifier configured for prompt routing")
        source = await self.history.resolve_source(project_id, image_url)
        async with self.coordinator.run("prompt_routing") as run:
            local = await run.fetch(source.image_url)
            image_bytes = await run.read_bytes(local)
            return await classifier.route_intent(image_bytes, prompt, guess_mime_type(local))

    async def execute(
        self, prompt: str, image_url: str | None = None, project_id: str | None = None
    ) -> PromptOutcome:
        prompt = (prompt or "").strip()
        if not prompt:
            if not (image_url or project_id):
                raise ValueError("Please provide a text prompt or an image")
            return await self.suggest(prompt, image_url, project_id)

        payload = await self.route(prompt, image_url, project_id)
        intent = parse_intent(payload)
        logger.info("Prompt %r routed to %s", prompt, type(intent).__name__)
        outcome = await self.dispatch(intent, prompt, image_url, project_id)
        outcome.intent = payload
        return outcome

    async def suggest(self, prompt: str, image_url: str | None, project_id: str | None) -> PromptOutcome:
        """Image without instructions: ask the classifier what it would edit."""
        classifier = self.coordinator.classifier
        if classifier is None:
            raise ClassifierUnavailable("No classifier configured for edit suggestions")
        source = await self.history.resolve_source(project_id, image_url)
        async with self.coordinator.run("edit_suggestions") as run:
            local = await run.fetch(source.image_url)
            image_bytes = await run.read_bytes(local)
            try:
                suggestions = await classifier.suggest_edits(image_bytes, guess_mime_type(local))
            except UpstreamQuotaExceeded:
                raise
            except ClassifierUnavailable as exc:
                logger.warning("Edit suggestions unavailable: %s", exc)
                return PromptOutcome(
                    status="suggestions",
                    prompt=prompt,
                    message=str(exc),
                    supported_features=list(SUPPORTED_FEATURES),
                )
        return PromptOutcome(
            status="suggestions",
            prompt=prompt,
            supported_features=list(SUPPORTED_FEATURES),
            suggestions=suggestions,
        )

    async def dispatch(
        self, intent: Intent, prompt: str, image_url: str | None, project_id: str | None
    ) -> PromptOutcome:
        if isinstance(intent, UnsupportedIntent):
            return PromptOutcome(
                status="unsupported",
                prompt=prompt,
                message=intent.message or "This edit is not supported",
                supported_features=list(intent.supported_features),
            )
        if isinstance(intent, ObjectRemovalIntent):
            return PromptOutcome(
                status="requires_interaction",
                prompt=prompt,
                feature="object-removal",
                message=intent.message or "Select the object to remove by tapping on it",
                supported_features=list(SUPPORTED_FEATURES),
            )
        if isinstance(intent, StyleTransferIntent):
            raise FeatureNotImplemented(
                "style-transfer",
                "Style transfer via prompt is not supported. Please use the direct feature.",
            )
        if isinstance(intent, UnimplementedIntent):
            raise FeatureNotImplemented(intent.feature)

        if isinstance(intent, RelightIntent):
            feature = "relight"
            result = await self.relight.execute(image_url, intent.brightness, project_id)
        elif isinstance(intent, EnhanceIntent):
            feature = intent.mode
            result = await self.enhance.execute(image_url, intent.mode, project_id)
        elif isinstance(intent, FaceRestoreIntent):
            feature = "face-restore"
            result = await self.face_restore.execute(image_url, intent.fidelity, project_id)
        elif isinstance(intent, RemoveBackgroundIntent):
            feature = "remove-background"
            result = await self.remove_background.execute(image_url, intent.model_type, project_id)
        elif isinstance(intent, LayerSeparationIntent):
            feature = "layer-separation"
            result = await self.separate_layers.execute(image_url, None, project_id)
        else:
            raise TypeError(f"Unhandled intent: {intent!r}")
        return PromptOutcome(status="completed", prompt=prompt, feature=feature, result=result)
