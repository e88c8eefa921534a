"""Closed set of editing intents the prompt router can dispatch.

The classifier answers with free text; :func:`parse_intent` turns that
answer into exactly one of the variants below so dispatch is a total match.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union

from src.domain.entities.edit_history import OperationType
from src.domain.errors import ClassifierUnavailable, UpstreamQuotaExceeded
from src.domain.services.classification import ModelVariant, is_quota_message

SUPPORTED_FEATURES: tuple[str, ...] = (
    "relight",
    "denoise",
    "deblur",
    "face-restore",
    "style-transfer",
    "remove-background",
    "layer-separation",
    "object-removal",
)

DEFAULT_PROMPT_BRIGHTNESS = 0.5
DEFAULT_PROMPT_FIDELITY = 0.7


@dataclass(frozen=True)
class RelightIntent:
    brightness: float = DEFAULT_PROMPT_BRIGHTNESS
    operation_type: OperationType = OperationType.RELIGHT


@dataclass(frozen=True)
class EnhanceIntent:
    mode: str = "denoise"
    operation_type: OperationType = OperationType.ENHANCE


@dataclass(frozen=True)
class FaceRestoreIntent:
    fidelity: float = DEFAULT_PROMPT_FIDELITY
    operation_type: OperationType = OperationType.FACE_RESTORE


@dataclass(frozen=True)
class RemoveBackgroundIntent:
    model_type: ModelVariant | None = None
    operation_type: OperationType = OperationType.REMOVE_BACKGROUND


@dataclass(frozen=True)
class LayerSeparationIntent:
    pass


@dataclass(frozen=True)
class ObjectRemovalIntent:
    """Needs a point on the object; the client must ask the user for it."""

    message: str | None = None


@dataclass(frozen=True)
class StyleTransferIntent:
    """Needs a second (style) image, which a text prompt cannot carry."""


@dataclass(frozen=True)
class UnsupportedIntent:
    message: str | None = None
    supported_features: tuple[str, ...] = field(default=SUPPORTED_FEATURES)


@dataclass(frozen=True)
class UnimplementedIntent:
    feature: str


Intent = Union[
    RelightIntent,
    EnhanceIntent,
    FaceRestoreIntent,
    RemoveBackgroundIntent,
    LayerSeparationIntent,
    ObjectRemovalIntent,
    StyleTransferIntent,
    UnsupportedIntent,
    UnimplementedIntent,
]


def parse_intent(payload: dict[str, Any]) -> Intent:
    """Map a classifier routing answer to an intent.

    Error payloads are raised, quota ones as :class:`UpstreamQuotaExceeded`
    so the caller can tell "back off" apart from "not supported".
    """
    message = str(payload.get("message") or "")
    if payload.get("status") == "error":
        if is_quota_message(message):
            raise UpstreamQuotaExceeded(message or "Classifier quota exceeded")
        raise ClassifierUnavailable(message or "Classifier returned an error")

    feature = payload.get("feature")
    supported = payload.get("supported")
    if supported is None:
        supported = feature not in (None, "", "not_supported")
    if not supported or not feature or feature == "not_supported":
        return UnsupportedIntent(message=message or None)

    feature = str(feature).strip().lower().replace("-", "_")
    if feature in ("relighting", "relight", "low_light_enhancement"):
        return RelightIntent()
    if feature in ("auto_enhance", "denoise", "deblur"):
        mode = "deblur" if feature == "deblur" or "blur" in message.lower() else "denoise"
        return EnhanceIntent(mode=mode)
    if feature in ("face_restore", "face_restoration"):
        return FaceRestoreIntent()
    if feature in ("background_removal", "remove_background"):
        model_type: ModelVariant | None = None
        if payload.get("subject_type") == "human" or payload.get("model") == "u2net_human_seg":
            model_type = ModelVariant.HUMAN
        elif payload.get("subject_type") == "object" or payload.get("model") == "u2net":
            model_type = ModelVariant.GENERAL
        elif payload.get("model_type") in (ModelVariant.HUMAN.value, ModelVariant.GENERAL.value):
            model_type = ModelVariant(payload["model_type"])
        return RemoveBackgroundIntent(model_type=model_type)
    if feature in ("layer_separation", "separate_layers"):
        return LayerSeparationIntent()
    if feature == "object_removal":
        return ObjectRemovalIntent(message=message or None)
    if feature == "style_transfer":
        return StyleTransferIntent()
    return UnimplementedIntent(feature=feature)
