from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any


@dataclass(frozen=True)
class ImageRef:
    """An image persisted in the external store."""

    image_url: str
    public_id: str
    width: int | None = None
    height: int | None = None
    format: str | None = None
    size: int | None = None  # bytes

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> ImageRef | None:
        if not data or not data.get("image_url"):
            return None
        return cls(
            image_url=data["image_url"],
            public_id=data.get("public_id") or "",
            width=data.get("width"),
            height=data.get("height"),
            format=data.get("format"),
            size=data.get("size"),
        )
