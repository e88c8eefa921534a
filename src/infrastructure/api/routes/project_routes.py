from __future__ import annotations

from io import BytesIO

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status
from PIL import Image, UnidentifiedImageError

from src.application.dtos.common_dto import SuccessResponse
from src.application.dtos.project_dto import (
    AddOperationRequest,
    CreateProjectRequest,
    ProjectListResponse,
    ProjectResponse,
    SetOriginalImageRequest,
    TimelineResponse,
    UndoResponse,
    UpdateProjectRequest,
)
from src.application.use_cases.project_history import ProjectHistoryUseCase
from src.infrastructure.api.dependencies import get_history_use_case
from src.infrastructure.api.presenters import (
    image_ref,
    operation_response,
    project_response,
    timeline_entries,
)
from src.infrastructure.storage.artifact_store import get_artifact_store

router = APIRouter(
    prefix="/ai-projects",
    tags=["AI Projects"],
    responses={
        404: {"description": "Not Found - Project does not exist"},
        422: {"description": "Validation Error - Invalid request format"},
    },
)

_UPLOAD_EXTENSIONS = {"JPEG": ".jpg", "PNG": ".png", "WEBP": ".webp", "BMP": ".bmp", "GIF": ".gif", "TIFF": ".tiff"}


def _sniff_image(data: bytes) -> str:
    """Return the file extension for an uploaded image, or raise 400."""
    try:
        with Image.open(BytesIO(data)) as img:
            img.verify()
            fmt = img.format or "PNG"
    except (UnidentifiedImageError, OSError) as exc:
        raise HTTPException(status_code=400, detail=f"Invalid image file: {exc}") from exc
    return _UPLOAD_EXTENSIONS.get(fmt, ".png")


@router.post(
    "/create",
    response_model=ProjectResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create Project",
    description="Create an empty AI edit project. Upload or attach an original image next.",
)
async def create_project(
    req: CreateProjectRequest,
    history: ProjectHistoryUseCase = Depends(get_history_use_case),
):
    project = await history.create(req.title, req.description, req.max_versions)
    return project_response(project)


@router.get(
    "",
    response_model=ProjectListResponse,
    summary="List Projects",
    description="List projects with the given status (`all` for every status), most recently updated first.",
)
async def list_projects(
    status_filter: str = Query("active", alias="status", description="active, archived, deleted or all"),
    history: ProjectHistoryUseCase = Depends(get_history_use_case),
):
    projects = await history.list_projects(None if status_filter == "all" else status_filter)
    return ProjectListResponse(projects=[project_response(p) for p in projects], total=len(projects))


@router.get("/{project_id}", response_model=ProjectResponse, summary="Get Project")
async def get_project(project_id: str, history: ProjectHistoryUseCase = Depends(get_history_use_case)):
    return project_response(await history.get(project_id))


@router.patch("/{project_id}", response_model=ProjectResponse, summary="Update Project")
async def update_project(
    project_id: str,
    req: UpdateProjectRequest,
    history: ProjectHistoryUseCase = Depends(get_history_use_case),
):
    project = await history.update(project_id, req.title, req.description, req.status)
    return project_response(project)


@router.delete(
    "/{project_id}",
    response_model=SuccessResponse,
    summary="Delete Project",
    description="""
    Soft-delete a project (status becomes `deleted`).

    With `permanent=true` the project record is removed and its stored images
    are deleted from the external store.
    """,
)
async def delete_project(
    project_id: str,
    permanent: bool = Query(False, description="Remove the project for good"),
    history: ProjectHistoryUseCase = Depends(get_history_use_case),
):
    await history.delete(project_id, permanent=permanent)
    return SuccessResponse(ok=True, message="Project deleted permanently" if permanent else "Project deleted")


@router.post(
    "/{project_id}/original",
    response_model=ProjectResponse,
    summary="Attach Original Image",
    description="Use an image already in the external store as the project's original. Can only be set once.",
    responses={409: {"description": "Conflict - Original image already set"}},
)
async def set_original_image(
    project_id: str,
    req: SetOriginalImageRequest,
    history: ProjectHistoryUseCase = Depends(get_history_use_case),
):
    project = await history.set_original_image(project_id, image_ref(req.image))
    return project_response(project)


@router.post(
    "/{project_id}/upload",
    response_model=ProjectResponse,
    summary="Upload Original Image",
    description="Upload an image file and set it as the project's original. Can only be set once.",
    responses={
        400: {"description": "Bad Request - Invalid image file"},
        409: {"description": "Conflict - Original image already set"},
    },
)
async def upload_original_image(
    project_id: str,
    file: UploadFile = File(..., description="Image file to upload"),
    history: ProjectHistoryUseCase = Depends(get_history_use_case),
):
    data = await file.read()
    ext = _sniff_image(data)
    with get_artifact_store().scope() as scope:
        local = scope.new("upload", ext)
        local.write_bytes(data)
        project = await history.upload_original(project_id, local)
    return project_response(project)


@router.post(
    "/{project_id}/operations",
    response_model=ProjectResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add Operation",
    description="Append an operation to the history. The pipeline endpoints do this automatically when given a project_id.",
)
async def add_operation(
    project_id: str,
    req: AddOperationRequest,
    history: ProjectHistoryUseCase = Depends(get_history_use_case),
):
    project, _ = await history.add_operation(
        project_id,
        req.operation_type,
        req.parameters,
        image_ref(req.output_image),
        image_ref(req.input_image),
    )
    return project_response(project)


@router.post(
    "/{project_id}/undo",
    response_model=UndoResponse,
    summary="Undo Last Operation",
    responses={400: {"description": "Bad Request - No operations to undo"}},
)
async def undo_operation(project_id: str, history: ProjectHistoryUseCase = Depends(get_history_use_case)):
    project, removed = await history.undo(project_id)
    return UndoResponse(
        project=project_response(project),
        removed_operation=operation_response(len(project.operations), removed),
    )


@router.post(
    "/{project_id}/revert/{index}",
    response_model=ProjectResponse,
    summary="Revert To Operation",
    description="Keep operations `0..index`; `-1` reverts to the original image.",
    responses={400: {"description": "Bad Request - Index out of range"}},
)
async def revert_to_operation(
    project_id: str,
    index: int,
    history: ProjectHistoryUseCase = Depends(get_history_use_case),
):
    return project_response(await history.revert(project_id, index))


@router.get("/{project_id}/timeline", response_model=TimelineResponse, summary="Get Timeline")
async def get_timeline(project_id: str, history: ProjectHistoryUseCase = Depends(get_history_use_case)):
    project = await history.get(project_id)
    return TimelineResponse(
        project_id=project.id,
        current_index=len(project.operations) - 1,
        timeline=timeline_entries(project),
    )
