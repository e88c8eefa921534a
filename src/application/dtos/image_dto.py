from __future__ import annotations

from pydantic import BaseModel, Field


class ImageRefModel(BaseModel):
    """An image persisted in the external store."""
    image_url: str = Field(..., description="Public URL of the image", examples=["https://storage.example.com/images/relighted/relight_1f2e.png"])
    public_id: str = Field("", description="Storage identifier used for deletion", examples=["relighted/relight_1f2e.png"])
    width: int | None = Field(None, description="Width in pixels", examples=[1024])
    height: int | None = Field(None, description="Height in pixels", examples=[768])
    format: str | None = Field(None, description="Image format", examples=["png"])
    size: int | None = Field(None, description="Size in bytes", examples=[483201])
