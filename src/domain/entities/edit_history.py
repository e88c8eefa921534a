from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from src.domain.entities.image import ImageRef


class OperationType(str, Enum):
    RELIGHT = "relight"
    ENHANCE = "enhance"
    FACE_RESTORE = "face-restore"
    STYLE_TRANSFER = "style-transfer"
    REMOVE_BACKGROUND = "remove-background"
    OBJECT_REMOVAL = "object-removal"


@dataclass(frozen=True)
class OperationEntity:
    """One completed edit in a project's history. Never edited, only truncated away."""

    operation_type: OperationType
    parameters: dict[str, Any]
    output_image: ImageRef
    input_image: ImageRef | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    status: str = "completed"

    def to_dict(self) -> dict[str, Any]:
        return {
            "operation_type": self.operation_type.value,
            "parameters": dict(self.parameters),
            "input_image": self.input_image.to_dict() if self.input_image else None,
            "output_image": self.output_image.to_dict(),
            "timestamp": self.timestamp.isoformat(),
            "status": self.status,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> OperationEntity:
        output = ImageRef.from_dict(data.get("output_image"))
        if output is None:
            raise ValueError("Operation is missing its output image")
        timestamp = data.get("timestamp")
        if isinstance(timestamp, str):
            timestamp = datetime.fromisoformat(timestamp)
        return cls(
            operation_type=OperationType(data["operation_type"]),
            parameters=data.get("parameters") or {},
            input_image=ImageRef.from_dict(data.get("input_image")),
            output_image=output,
            timestamp=timestamp or datetime.now(UTC),
            status=data.get("status", "completed"),
        )
