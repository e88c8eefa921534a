from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field

from src.application.dtos.ai_dto import PipelineResponse


class PromptRequest(BaseModel):
    prompt: str = Field(
        "", description="Free-text editing instruction; empty asks for suggestions", examples=["make it brighter"]
    )
    image_url: Optional[str] = Field(None, description="URL of the image to edit")
    project_id: Optional[str] = Field(None, description="Project to read from and record into")


class PromptResponse(BaseModel):
    status: str = Field(..., description="completed, unsupported, requires_interaction or suggestions", examples=["completed"])
    prompt: str = Field(..., description="The instruction as received")
    feature: Optional[str] = Field(None, description="Feature the prompt was routed to", examples=["relight"])
    message: Optional[str] = Field(None, description="Message from the router")
    supported_features: list[str] = Field(default_factory=list, description="Features a prompt can trigger")
    result: Optional[PipelineResponse] = Field(None, description="Pipeline outcome when something ran")
    intent: dict[str, Any] = Field(default_factory=dict, description="Raw routing answer")
    suggestions: list[str] = Field(default_factory=list, description="Suggested edits for an image sent without a prompt")


class FeaturesResponse(BaseModel):
    features: list[str] = Field(..., description="Features a prompt can trigger")
