from __future__ import annotations

from fastapi import APIRouter, Depends

from src.application.dtos.ai_dto import (
    AutoEnhanceApplyRequest,
    AutoEnhanceResponse,
    EnhanceRequest,
    FaceRestoreRequest,
    ObjectRemovalRequest,
    PipelineRequest,
    PipelineResponse,
    QualityReportResponse,
    RelightRequest,
    RemoveBackgroundRequest,
    ReplaceBackgroundRequest,
    SeparateLayersRequest,
    StyleTransferRequest,
)
from src.application.dtos.common_dto import ErrorResponse, PipelineErrorResponse
from src.application.use_cases.auto_enhance import AutoEnhanceUseCase
from src.application.use_cases.enhance_image import EnhanceImageUseCase
from src.application.use_cases.relight_image import RelightImageUseCase
from src.application.use_cases.remove_background import RemoveBackgroundUseCase
from src.application.use_cases.remove_object import RemoveObjectUseCase
from src.application.use_cases.replace_background import ReplaceBackgroundUseCase
from src.application.use_cases.restore_face import RestoreFaceUseCase
from src.application.use_cases.separate_layers import SeparateLayersUseCase
from src.application.use_cases.transfer_style import TransferStyleUseCase
from src.infrastructure.api.dependencies import (
    get_auto_enhance_use_case,
    get_enhance_use_case,
    get_face_restore_use_case,
    get_relight_use_case,
    get_remove_background_use_case,
    get_remove_object_use_case,
    get_replace_background_use_case,
    get_separate_layers_use_case,
    get_style_transfer_use_case,
)
from src.infrastructure.api.presenters import (
    auto_enhance_response,
    pipeline_response,
    quality_report_response,
)

router = APIRouter(
    prefix="/ai",
    tags=["AI Operations"],
    responses={
        400: {"model": ErrorResponse, "description": "Bad Request - Invalid parameters or missing input image"},
        404: {"model": ErrorResponse, "description": "Not Found - Project does not exist"},
        502: {"model": PipelineErrorResponse, "description": "Bad Gateway - A pipeline stage, download or upload failed"},
        503: {"model": PipelineErrorResponse, "description": "Service Unavailable - Execution unit could not be started"},
        504: {"model": PipelineErrorResponse, "description": "Gateway Timeout - A pipeline stage timed out"},
    },
)


@router.post(
    "/relight",
    response_model=PipelineResponse,
    summary="Relight",
    description="Low-light enhancement. `brightness` must be between 0.1 and 3.0 (default 0.5).",
)
async def relight(req: RelightRequest, uc: RelightImageUseCase = Depends(get_relight_use_case)):
    return pipeline_response(await uc.execute(req.image_url, req.brightness, req.project_id))


@router.post(
    "/enhance",
    response_model=PipelineResponse,
    summary="Denoise / Deblur",
    description="NAFNet restoration. `mode` is `denoise` or `deblur`.",
)
async def enhance(req: EnhanceRequest, uc: EnhanceImageUseCase = Depends(get_enhance_use_case)):
    return pipeline_response(await uc.execute(req.image_url, req.mode, req.project_id))


@router.post(
    "/face-restore",
    response_model=PipelineResponse,
    summary="Face Restoration",
    description="CodeFormer face restoration. `fidelity` between 0 and 1 (default 0.7).",
)
async def face_restore(req: FaceRestoreRequest, uc: RestoreFaceUseCase = Depends(get_face_restore_use_case)):
    return pipeline_response(await uc.execute(req.image_url, req.fidelity, req.project_id))


@router.post("/style-transfer", response_model=PipelineResponse, summary="Style Transfer")
async def style_transfer(
    req: StyleTransferRequest, uc: TransferStyleUseCase = Depends(get_style_transfer_use_case)
):
    return pipeline_response(await uc.execute(req.style_image_url, req.image_url, req.project_id))


@router.post(
    "/remove-background",
    response_model=PipelineResponse,
    summary="Remove Background",
    description="""
    U2Net segmentation. Without `model_type` the image is classified first:
    a `human` label selects the human model, anything else (including a
    classifier failure) the general one. `model_variant` and `variant_source`
    in the response tell which was used and why.
    """,
)
async def remove_background(
    req: RemoveBackgroundRequest, uc: RemoveBackgroundUseCase = Depends(get_remove_background_use_case)
):
    return pipeline_response(await uc.execute(req.image_url, req.model_type, req.project_id))


@router.post(
    "/object-removal",
    response_model=PipelineResponse,
    summary="Object Removal",
    description="SAM point segmentation at (x, y), mask dilation, then LaMa inpainting.",
)
async def object_removal(req: ObjectRemovalRequest, uc: RemoveObjectUseCase = Depends(get_remove_object_use_case)):
    return pipeline_response(await uc.execute(req.x, req.y, req.image_url, req.project_id))


@router.post(
    "/separate-layers",
    response_model=PipelineResponse,
    summary="Layer Separation",
    description="Returns a `foreground` (transparent subject) and an inpainted `background` layer.",
)
async def separate_layers(
    req: SeparateLayersRequest, uc: SeparateLayersUseCase = Depends(get_separate_layers_use_case)
):
    return pipeline_response(await uc.execute(req.image_url, req.model_type, req.project_id))


@router.post(
    "/replace-background",
    response_model=PipelineResponse,
    summary="Replace Background",
    description="Composite the subject onto a new background and harmonize it with PCT-Net.",
)
async def replace_background(
    req: ReplaceBackgroundRequest, uc: ReplaceBackgroundUseCase = Depends(get_replace_background_use_case)
):
    result = await uc.execute(
        req.background_image_url, req.subject_image_url, req.model_type, req.project_id
    )
    return pipeline_response(result)


@router.post(
    "/auto-enhance/analyze",
    response_model=QualityReportResponse,
    summary="Analyze Image Quality",
    description="Ask the classifier which enhancements the image needs. Degrades to an empty report.",
)
async def auto_enhance_analyze(req: PipelineRequest, uc: AutoEnhanceUseCase = Depends(get_auto_enhance_use_case)):
    return quality_report_response(await uc.analyze(req.image_url, req.project_id))


@router.post(
    "/auto-enhance/apply",
    response_model=AutoEnhanceResponse,
    summary="Apply Enhancements",
    description="""
    Run the enhancements in order: low light, denoise, deblur, face restoration.
    A failed step is reported and the chain continues.
    """,
)
async def auto_enhance_apply(
    req: AutoEnhanceApplyRequest, uc: AutoEnhanceUseCase = Depends(get_auto_enhance_use_case)
):
    return auto_enhance_response(await uc.apply(req.image_url, req.enhancements, req.project_id))
