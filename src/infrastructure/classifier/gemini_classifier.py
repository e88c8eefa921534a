"""Gemini-backed classifier adapter.

Every public method raises :class:`ClassifierUnavailable` (or its quota
subclass) on failure; degrading to defaults is the caller's policy. The one
exception is the subject check inside ``route_intent``.
"""
from __future__ import annotations

import asyncio
import json
import logging
import os
import time
from typing import Any

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions

from src.domain.errors import ClassifierUnavailable, UpstreamQuotaExceeded
from src.domain.services.classification import (
    Classification,
    EnhancementKind,
    QualityReport,
    is_quota_message,
    order_enhancements,
)

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.0-flash-exp"

ROUTABLE_FEATURES: dict[str, str] = {
    "object_removal": "Remove unwanted objects using LaMa inpainting.",
    "background_removal": "Remove background using U2Net segmentation.",
    "face_restoration": "Restore degraded faces using CodeFormer.",
    "denoise": "Remove noise from image using NAFNet.",
    "deblur": "Remove blur from image using NAFNet.",
    "low_light_enhancement": "Enhance dark/underexposed images.",
}

CLASSIFY_SYSTEM_PROMPT = 'You classify images as "human" or "object". Respond with JSON only.'
CLASSIFY_PROMPT = (
    'Classify the PRIMARY subject: "human" (people) or "object" (everything else).\n'
    'Return JSON: {"image_type":"human or object","confidence":"high/medium/low",'
    '"description":"brief description"}'
)

QUALITY_SYSTEM_PROMPT = "You assess photo quality for automatic enhancement. Respond with JSON only."
QUALITY_PROMPT = (
    "Analyze image quality. Check independently:\n"
    "- low_light_enhancement: dark/underexposed?\n"
    "- denoise: grain/noise/artifacts? (NOT blur)\n"
    "- deblur: blurry/soft/unfocused? (NOT noise)\n"
    "- face_restoration: faces need enhancement?\n"
    'Return JSON: {"enhancements":["only_needed_ones"],'
    '"analysis":{"<enhancement>":{"needed":bool,"severity":"none/mild/moderate/severe"}},'
    '"overall_quality":"good/fair/poor","priority_order":["most_important_first"]}'
)

ROUTER_SYSTEM_PROMPT = (
    "You are an image editing assistant. Only use supported features provided.\n"
    "If unsupported, say so and list available features.\n"
    "Return JSON with: feature, requires_mask, message, supported."
)
SUBJECT_PROMPT = 'Is the main subject in this image a human or an object?\nReturn ONLY one word: "human" or "object"'
SUGGEST_PROMPT = (
    "Analyze image. Suggest 3-5 edits from ONLY these features:\n"
    "object_removal, background_removal, face_restoration, denoise, deblur, low_light_enhancement.\n\n"
    "Return plain text list."
)


def strip_json_fences(text: str) -> str:
    cleaned = (text or "").strip()
    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    elif cleaned.startswith("```"):
        cleaned = cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    return cleaned.strip()


def parse_json_reply(text: str) -> dict[str, Any]:
    try:
        data = json.loads(strip_json_fences(text))
    except json.JSONDecodeError as exc:
        raise ClassifierUnavailable(f"Failed to parse classifier response: {exc}") from exc
    if not isinstance(data, dict):
        raise ClassifierUnavailable("Classifier response is not a JSON object")
    return data


class GeminiClassifier:
    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else os.getenv("GEMINI_API_KEY", "")
        self.model_name = model or os.getenv("GEMINI_MODEL", DEFAULT_MODEL)
        self.timeout = timeout or float(os.getenv("CLASSIFIER_TIMEOUT_SECONDS", "20"))
        if self.api_key:
            genai.configure(api_key=self.api_key)

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    @staticmethod
    def _image_part(image_bytes: bytes, mime_type: str) -> dict[str, Any]:
        return {"inline_data": {"mime_type": mime_type, "data": image_bytes}}

    async def _generate(self, system: str | None, parts: list[Any]) -> str:
        if not self.configured:
            raise ClassifierUnavailable("GEMINI_API_KEY is not configured")
        model = genai.GenerativeModel(self.model_name, system_instruction=system)
        t0 = time.monotonic()
        try:
            response = await asyncio.wait_for(model.generate_content_async(parts), timeout=self.timeout)
        except asyncio.TimeoutError:
            raise ClassifierUnavailable(f"Classifier timed out after {self.timeout:g}s") from None
        except google_exceptions.ResourceExhausted as exc:
            raise UpstreamQuotaExceeded(str(exc)) from exc
        except Exception as exc:
            if is_quota_message(str(exc)):
                raise UpstreamQuotaExceeded(str(exc)) from exc
            raise ClassifierUnavailable(f"Classifier request failed: {exc}") from exc
        logger.debug("Classifier answered in %.2f seconds", time.monotonic() - t0)
        try:
            return response.text or ""
        except ValueError as exc:
            # blocked or empty candidates
            raise ClassifierUnavailable(f"Classifier returned no text: {exc}") from exc

    async def classify(self, image_bytes: bytes, mime_type: str = "image/jpeg") -> Classification:
        text = await self._generate(
            CLASSIFY_SYSTEM_PROMPT, [CLASSIFY_PROMPT, self._image_part(image_bytes, mime_type)]
        )
        data = parse_json_reply(text)
        label = str(data.get("image_type", "")).lower()
        if label not in ("human", "object"):
            label = "object"
        return Classification(
            label=label,
            confidence=str(data.get("confidence") or "low"),
            description=str(data.get("description") or ""),
        )

    async def analyze_quality(self, image_bytes: bytes, mime_type: str = "image/jpeg") -> QualityReport:
        text = await self._generate(
            QUALITY_SYSTEM_PROMPT, [QUALITY_PROMPT, self._image_part(image_bytes, mime_type)]
        )
        data = parse_json_reply(text)
        needed = order_enhancements(list(data.get("enhancements") or []))
        analysis = data.get("analysis") or {}
        severity: dict[str, str] = {}
        for kind in EnhancementKind:
            entry = analysis.get(kind.value)
            if isinstance(entry, dict):
                severity[kind.value] = str(entry.get("severity") or "none")
        priority = [
            EnhancementKind(k) for k in (data.get("priority_order") or []) if k in EnhancementKind._value2member_map_
        ]
        return QualityReport(
            needed=needed,
            severity=severity,
            overall_quality=str(data.get("overall_quality") or "unknown"),
            priority_order=[k for k in priority if k in needed] or list(needed),
        )

    async def suggest_edits(self, image_bytes: bytes, mime_type: str = "image/jpeg") -> list[str]:
        text = await self._generate(None, [SUGGEST_PROMPT, self._image_part(image_bytes, mime_type)])
        return [line.strip() for line in text.strip().splitlines() if line.strip()]

    async def _detect_subject(self, image_bytes: bytes, mime_type: str) -> str:
        text = (await self._generate(None, [SUBJECT_PROMPT, self._image_part(image_bytes, mime_type)])).lower()
        return "human" if "human" in text else "object"

    async def route_intent(
        self, image_bytes: bytes | None, text: str, mime_type: str = "image/jpeg"
    ) -> dict[str, Any]:
        feature_list = ", ".join(ROUTABLE_FEATURES)
        prompt = (
            f'User: "{text}"\n\n'
            f"Map to ONE feature from: {feature_list}\n\n"
            'If no match, return "not_supported".\n\n'
            'Return JSON: {"feature": "...", "requires_mask": bool, "message": "...", "supported": bool}'
        )
        parts: list[Any] = [prompt]
        if image_bytes:
            parts.append(self._image_part(image_bytes, mime_type))
        result = parse_json_reply(await self._generate(ROUTER_SYSTEM_PROMPT, parts))
        if result.get("supported") is None:
            result["supported"] = result.get("feature") not in (None, "not_supported")

        if image_bytes and result.get("feature") == "background_removal":
            try:
                subject = await self._detect_subject(image_bytes, mime_type)
            except ClassifierUnavailable as exc:
                # the pipeline picks the variant itself
                logger.warning("Subject detection failed, leaving model unset: %s", exc)
                return result
            result["subject_type"] = subject
            result["model"] = "u2net_human_seg" if subject == "human" else "u2net"
        return result


_CLASSIFIER_SINGLETON: GeminiClassifier | None = None


def get_classifier() -> GeminiClassifier:
    global _CLASSIFIER_SINGLETON
    if _CLASSIFIER_SINGLETON is None:
        _CLASSIFIER_SINGLETON = GeminiClassifier()
    return _CLASSIFIER_SINGLETON
