from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from src.application.dtos.image_dto import ImageRefModel


class CreateProjectRequest(BaseModel):
    """Request model for creating an AI edit project."""
    title: Optional[str] = Field(None, description="Project title", examples=["Beach portrait"])
    description: Optional[str] = Field(None, description="Free-form description")
    max_versions: Optional[int] = Field(None, description="How many operations to retain", examples=[50], ge=1)


class UpdateProjectRequest(BaseModel):
    """Partial update of project metadata; omitted fields are left as they are."""
    title: Optional[str] = Field(None, description="New title")
    description: Optional[str] = Field(None, description="New description")
    status: Optional[str] = Field(None, description="active, archived or deleted", examples=["archived"])


class SetOriginalImageRequest(BaseModel):
    """Attach an image that already lives in the external store as the original."""
    image: ImageRefModel = Field(..., description="The image to use as the original")


class AddOperationRequest(BaseModel):
    """Record an operation produced outside the pipeline endpoints."""
    operation_type: str = Field(..., description="Operation type", examples=["relight"])
    parameters: dict[str, Any] = Field(default_factory=dict, description="Operation parameters", examples=[{"brightness": 0.5}])
    output_image: ImageRefModel = Field(..., description="Resulting image")
    input_image: Optional[ImageRefModel] = Field(None, description="Input image; defaults to the current image")


class OperationResponse(BaseModel):
    """One completed edit in a project's history."""
    index: int = Field(..., description="Position in the operation log", examples=[0])
    operation_type: str = Field(..., description="Operation type", examples=["enhance"])
    parameters: dict[str, Any] = Field(default_factory=dict, description="Operation parameters", examples=[{"mode": "denoise"}])
    input_image: Optional[ImageRefModel] = Field(None, description="Image the operation started from")
    output_image: ImageRefModel = Field(..., description="Image the operation produced")
    timestamp: datetime = Field(..., description="When the operation completed")
    status: str = Field("completed", description="Operation status")


class ProjectResponse(BaseModel):
    """Full view of an AI edit project."""
    id: str = Field(..., description="Project identifier")
    title: str = Field(..., description="Project title")
    description: str = Field("", description="Project description")
    status: str = Field(..., description="active, archived or deleted")
    original_image: Optional[ImageRefModel] = Field(None, description="Image set at first upload")
    current_image: Optional[ImageRefModel] = Field(None, description="Output of the last operation, or the original image")
    thumbnail: Optional[ImageRefModel] = Field(None, description="Image to show in project lists")
    operations: list[OperationResponse] = Field(default_factory=list, description="Operation log in causal order")
    max_versions: int = Field(..., description="Retention bound", examples=[50])
    created_at: datetime = Field(..., description="Creation time")
    updated_at: datetime = Field(..., description="Last modification time")


class ProjectListResponse(BaseModel):
    """Response model for listing projects."""
    projects: list[ProjectResponse] = Field(..., description="Projects, most recently updated first")
    total: int = Field(..., description="Number of projects returned", ge=0)


class UndoResponse(BaseModel):
    """Project state after an undo plus the removed operation."""
    project: ProjectResponse = Field(..., description="Updated project")
    removed_operation: OperationResponse = Field(..., description="The operation that was undone")


class TimelineEntry(BaseModel):
    """A node in the edit timeline; index -1 is the original image."""
    index: int = Field(..., description="-1 for the original, 0..N-1 for operations", examples=[-1])
    operation_type: str = Field(..., description="'original' or the operation type", examples=["original"])
    image: Optional[ImageRefModel] = Field(None, description="Image at this point of the timeline")
    input_image: Optional[ImageRefModel] = Field(None, description="Input of the operation")
    timestamp: datetime = Field(..., description="When this point was reached")
    parameters: Optional[dict[str, Any]] = Field(None, description="Operation parameters")
    status: Optional[str] = Field(None, description="Operation status")


class TimelineResponse(BaseModel):
    """Response model for a project timeline."""
    project_id: str = Field(..., description="Project identifier")
    current_index: int = Field(..., description="Index of the current image in the timeline", examples=[1])
    timeline: list[TimelineEntry] = Field(..., description="Timeline entries in causal order")
