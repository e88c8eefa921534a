from __future__ import annotations

from fastapi import APIRouter, Depends

from src.application.dtos.prompt_dto import FeaturesResponse, PromptRequest, PromptResponse
from src.application.use_cases.process_prompt import ProcessPromptUseCase
from src.domain.services.intents import SUPPORTED_FEATURES
from src.infrastructure.api.dependencies import get_prompt_use_case
from src.infrastructure.api.presenters import pipeline_response

router = APIRouter(prefix="/prompt", tags=["Prompt"])


@router.post(
    "",
    response_model=PromptResponse,
    summary="Process Prompt",
    description="""
    Route a free-text instruction to one pipeline and run it.

    - An image without a prompt answers `suggestions`: edits the classifier proposes.
    - Unsupported requests answer with the list of supported features.
    - Object removal answers `requires_interaction`: the client must pick a point.
    - Style transfer cannot be driven by text alone (501).
    - Classifier quota problems answer 429, other classifier failures 502.
    """,
    responses={
        429: {"description": "Too Many Requests - Classifier quota exceeded"},
        501: {"description": "Not Implemented - Feature recognized but not available by prompt"},
        502: {"description": "Bad Gateway - Classifier or pipeline failure"},
    },
)
async def process_prompt(req: PromptRequest, uc: ProcessPromptUseCase = Depends(get_prompt_use_case)):
    outcome = await uc.execute(req.prompt, req.image_url, req.project_id)
    return PromptResponse(
        status=outcome.status,
        prompt=outcome.prompt,
        feature=outcome.feature,
        message=outcome.message,
        supported_features=outcome.supported_features,
        result=pipeline_response(outcome.result) if outcome.result else None,
        intent=outcome.intent,
        suggestions=outcome.suggestions,
    )


@router.get("/features", response_model=FeaturesResponse, summary="Supported Prompt Features")
def list_features():
    return FeaturesResponse(features=list(SUPPORTED_FEATURES))
