"""Classifier adapter contract and the human/general model-variant policy."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class ModelVariant(str, Enum):
    GENERAL = "general"
    HUMAN = "human"

    @property
    def segmentation_model(self) -> str:
        # u2net_human_seg is tuned for people, u2net covers everything else
        return "u2net_human_seg.onnx" if self is ModelVariant.HUMAN else "u2net.onnx"


class EnhancementKind(str, Enum):
    LOW_LIGHT = "low_light_enhancement"
    DENOISE = "denoise"
    DEBLUR = "deblur"
    FACE_RESTORATION = "face_restoration"


# Order in which enhancement steps are applied when chained
ENHANCEMENT_ORDER: tuple[EnhancementKind, ...] = (
    EnhancementKind.LOW_LIGHT,
    EnhancementKind.DENOISE,
    EnhancementKind.DEBLUR,
    EnhancementKind.FACE_RESTORATION,
)


@dataclass(frozen=True)
class Classification:
    label: str  # "human" | "object"
    confidence: str = "low"
    description: str = ""


@dataclass
class QualityReport:
    needed: list[EnhancementKind] = field(default_factory=list)
    severity: dict[str, str] = field(default_factory=dict)
    overall_quality: str = "unknown"
    priority_order: list[EnhancementKind] = field(default_factory=list)
    degraded: bool = False

    @property
    def needs_enhancement(self) -> bool:
        return bool(self.needed)

    @classmethod
    def empty(cls) -> QualityReport:
        return cls(degraded=True)


class ClassifierAdapter(Protocol):
    async def classify(self, image_bytes: bytes, mime_type: str) -> Classification: ...

    async def analyze_quality(self, image_bytes: bytes, mime_type: str) -> QualityReport: ...

    async def route_intent(
        self, image_bytes: bytes | None, text: str, mime_type: str
    ) -> dict[str, Any]: ...

    async def suggest_edits(self, image_bytes: bytes, mime_type: str) -> list[str]: ...


def order_enhancements(kinds: list[EnhancementKind | str]) -> list[EnhancementKind]:
    """Deduplicate and sort requested enhancements into application order."""
    wanted = set()
    for kind in kinds:
        try:
            wanted.add(EnhancementKind(kind))
        except ValueError:
            logger.warning("Ignoring unknown enhancement %r", kind)
    return [kind for kind in ENHANCEMENT_ORDER if kind in wanted]


async def select_model_variant(
    classifier: ClassifierAdapter | None,
    image_bytes: bytes,
    mime_type: str,
    explicit: ModelVariant | str | None = None,
) -> tuple[ModelVariant, str]:
    """Pick the segmentation variant for an image.

    An explicit caller choice always wins. Otherwise a ``human`` label from
    the classifier selects the human model; any other label and any
    classifier failure select the general model. Returns ``(variant, source)``
    where source is ``explicit``, ``classifier`` or ``fallback``.
    """
    if explicit:
        return ModelVariant(explicit), "explicit"
    if classifier is None:
        logger.warning("No classifier configured, using default model variant: general")
        return ModelVariant.GENERAL, "fallback"
    try:
        result = await classifier.classify(image_bytes, mime_type)
    except Exception as exc:
        logger.warning("Image classification failed, using default general model: %s", exc)
        return ModelVariant.GENERAL, "fallback"
    if result.label == ModelVariant.HUMAN.value:
        logger.info("Image classified as human (confidence: %s) - using human model", result.confidence)
        return ModelVariant.HUMAN, "classifier"
    logger.info(
        "Image classified as %s (confidence: %s) - using general model", result.label, result.confidence
    )
    return ModelVariant.GENERAL, "classifier"


_QUOTA_MARKERS = (
    "429",
    "quota",
    "rate limit",
    "too many requests",
    "resource exhausted",
    "resource_exhausted",
    "free_tier",
)


def is_quota_message(message: str | None) -> bool:
    text = (message or "").lower()
    return any(marker in text for marker in _QUOTA_MARKERS)
