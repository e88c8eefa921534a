from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field

from src.application.dtos.image_dto import ImageRefModel


class PipelineRequest(BaseModel):
    """Input of every pipeline: an explicit image URL, a project, or both.

    Without ``image_url`` the project's current image is used. With a
    ``project_id`` a successful edit is appended to the project's history.
    """
    image_url: Optional[str] = Field(None, description="URL of the input image", examples=["https://storage.example.com/images/uploads/photo.jpg"])
    project_id: Optional[str] = Field(None, description="Project to read from and record into")


class RelightRequest(PipelineRequest):
    brightness: float = Field(0.5, description="Brightness factor between 0.1 and 3.0", examples=[0.5])


class EnhanceRequest(PipelineRequest):
    mode: str = Field("denoise", description="denoise or deblur", examples=["deblur"])


class FaceRestoreRequest(PipelineRequest):
    fidelity: float = Field(0.7, description="0 favours quality, 1 favours identity", examples=[0.7])


class StyleTransferRequest(PipelineRequest):
    style_image_url: str = Field(..., description="URL of the style reference image")


class RemoveBackgroundRequest(PipelineRequest):
    model_type: Optional[str] = Field(None, description="human or general; omit to let the classifier decide", examples=["human"])


class ObjectRemovalRequest(PipelineRequest):
    x: int = Field(..., description="X coordinate of a point on the object", examples=[412])
    y: int = Field(..., description="Y coordinate of a point on the object", examples=[230])


class SeparateLayersRequest(PipelineRequest):
    model_type: Optional[str] = Field(None, description="human or general; omit to let the classifier decide")


class ReplaceBackgroundRequest(BaseModel):
    subject_image_url: Optional[str] = Field(None, description="URL of the subject (cut-out) image")
    background_image_url: str = Field(..., description="URL of the new background")
    model_type: Optional[str] = Field(None, description="human or general; omit to let the classifier decide")
    project_id: Optional[str] = Field(None, description="Project whose current image is the subject")


class AutoEnhanceApplyRequest(PipelineRequest):
    enhancements: Optional[list[str]] = Field(
        None,
        description="Enhancements to apply; omit to analyze first",
        examples=[["low_light_enhancement", "denoise"]],
    )


class PipelineResponse(BaseModel):
    """Outcome of one successful pipeline run."""
    pipeline: str = Field(..., description="Pipeline name", examples=["remove_background"])
    operation_type: Optional[str] = Field(None, description="Operation type recorded in history, if any")
    image: ImageRefModel = Field(..., description="Main output image")
    outputs: dict[str, ImageRefModel] = Field(..., description="All published outputs by role")
    parameters: dict[str, Any] = Field(default_factory=dict, description="Parameters used")
    model_variant: Optional[str] = Field(None, description="Segmentation variant actually used", examples=["general"])
    variant_source: Optional[str] = Field(None, description="explicit, classifier or fallback", examples=["fallback"])
    timings: dict[str, float] = Field(default_factory=dict, description="Seconds spent per step")
    project_id: Optional[str] = Field(None, description="Project the result was recorded into")
    operation_index: Optional[int] = Field(None, description="Index of the new operation in the project")


class QualityReportResponse(BaseModel):
    """What the quality analysis suggests."""
    needs_enhancement: bool = Field(..., description="Whether any enhancement is suggested")
    enhancements: list[str] = Field(default_factory=list, description="Suggested enhancements in application order")
    severity: dict[str, str] = Field(default_factory=dict, description="Severity per enhancement")
    overall_quality: str = Field("unknown", description="good, fair, poor or unknown")
    priority_order: list[str] = Field(default_factory=list, description="Most important first")
    degraded: bool = Field(False, description="True when the classifier could not be reached")


class EnhancementStepResponse(BaseModel):
    step: int = Field(..., description="1-based step number")
    enhancement: str = Field(..., description="Enhancement applied")
    status: str = Field(..., description="completed or failed")
    processing_time: float = Field(..., description="Seconds spent on the step")
    image: Optional[ImageRefModel] = Field(None, description="Step output")
    error: Optional[str] = Field(None, description="Why the step failed")


class AutoEnhanceResponse(BaseModel):
    input_image_url: str = Field(..., description="Image the chain started from")
    final_image: Optional[ImageRefModel] = Field(None, description="Output of the last successful step")
    applied: list[str] = Field(default_factory=list, description="Enhancements that succeeded")
    steps: list[EnhancementStepResponse] = Field(default_factory=list, description="Per-step report")
