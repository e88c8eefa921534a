from __future__ import annotations

from fastapi import Depends

from src.application.pipelines.coordinator import PipelineCoordinator
from src.application.use_cases.auto_enhance import AutoEnhanceUseCase
from src.application.use_cases.enhance_image import EnhanceImageUseCase
from src.application.use_cases.process_prompt import ProcessPromptUseCase
from src.application.use_cases.project_history import ProjectHistoryUseCase
from src.application.use_cases.relight_image import RelightImageUseCase
from src.application.use_cases.remove_background import RemoveBackgroundUseCase
from src.application.use_cases.remove_object import RemoveObjectUseCase
from src.application.use_cases.replace_background import ReplaceBackgroundUseCase
from src.application.use_cases.restore_face import RestoreFaceUseCase
from src.application.use_cases.separate_layers import SeparateLayersUseCase
from src.application.use_cases.transfer_style import TransferStyleUseCase
from src.domain.services.classification import ClassifierAdapter
from src.domain.services.processing_service import ProcessingService
from src.infrastructure.classifier.gemini_classifier import get_classifier
from src.infrastructure.containers.docker_cli import DockerCli
from src.infrastructure.containers.registry import get_unit_registry
from src.infrastructure.containers.stage_executor import StageExecutor
from src.infrastructure.database.repositories.project_repository import ProjectRepository
from src.infrastructure.database.supabase_client import get_supabase_client
from src.infrastructure.storage.artifact_store import get_artifact_store
from src.infrastructure.storage.supabase_storage import SupabaseStorage


def get_storage() -> SupabaseStorage:
    return SupabaseStorage(get_supabase_client())


def get_project_repo() -> ProjectRepository:
    return ProjectRepository(get_supabase_client())


def get_processing_service() -> ProcessingService:
    return ProcessingService()


def get_classifier_adapter() -> ClassifierAdapter:
    return get_classifier()


def get_stage_executor() -> StageExecutor:
    return StageExecutor(DockerCli(), get_unit_registry())


def get_coordinator(
    executor: StageExecutor = Depends(get_stage_executor),
    storage: SupabaseStorage = Depends(get_storage),
    classifier: ClassifierAdapter = Depends(get_classifier_adapter),
) -> PipelineCoordinator:
    return PipelineCoordinator(executor, get_artifact_store(), storage, classifier)


def get_history_use_case(
    repo: ProjectRepository = Depends(get_project_repo),
    storage: SupabaseStorage = Depends(get_storage),
) -> ProjectHistoryUseCase:
    return ProjectHistoryUseCase(repo=repo, storage=storage)


# --------- pipeline use cases ---------
def get_relight_use_case(
    coordinator: PipelineCoordinator = Depends(get_coordinator),
    history: ProjectHistoryUseCase = Depends(get_history_use_case),
) -> RelightImageUseCase:
    return RelightImageUseCase(coordinator, history)


def get_enhance_use_case(
    coordinator: PipelineCoordinator = Depends(get_coordinator),
    history: ProjectHistoryUseCase = Depends(get_history_use_case),
) -> EnhanceImageUseCase:
    return EnhanceImageUseCase(coordinator, history)


def get_face_restore_use_case(
    coordinator: PipelineCoordinator = Depends(get_coordinator),
    history: ProjectHistoryUseCase = Depends(get_history_use_case),
) -> RestoreFaceUseCase:
    return RestoreFaceUseCase(coordinator, history)


def get_style_transfer_use_case(
    coordinator: PipelineCoordinator = Depends(get_coordinator),
    history: ProjectHistoryUseCase = Depends(get_history_use_case),
) -> TransferStyleUseCase:
    return TransferStyleUseCase(coordinator, history)


def get_remove_background_use_case(
    coordinator: PipelineCoordinator = Depends(get_coordinator),
    history: ProjectHistoryUseCase = Depends(get_history_use_case),
) -> RemoveBackgroundUseCase:
    return RemoveBackgroundUseCase(coordinator, history)


def get_remove_object_use_case(
    coordinator: PipelineCoordinator = Depends(get_coordinator),
    history: ProjectHistoryUseCase = Depends(get_history_use_case),
) -> RemoveObjectUseCase:
    return RemoveObjectUseCase(coordinator, history)


def get_separate_layers_use_case(
    coordinator: PipelineCoordinator = Depends(get_coordinator),
    history: ProjectHistoryUseCase = Depends(get_history_use_case),
) -> SeparateLayersUseCase:
    return SeparateLayersUseCase(coordinator, history)


def get_replace_background_use_case(
    coordinator: PipelineCoordinator = Depends(get_coordinator),
    history: ProjectHistoryUseCase = Depends(get_history_use_case),
    processing: ProcessingService = Depends(get_processing_service),
) -> ReplaceBackgroundUseCase:
    return ReplaceBackgroundUseCase(coordinator, history, processing)


def get_auto_enhance_use_case(
    coordinator: PipelineCoordinator = Depends(get_coordinator),
    history: ProjectHistoryUseCase = Depends(get_history_use_case),
) -> AutoEnhanceUseCase:
    return AutoEnhanceUseCase(
        coordinator=coordinator,
        history=history,
        relight=RelightImageUseCase(coordinator, history),
        enhance=EnhanceImageUseCase(coordinator, history),
        face_restore=RestoreFaceUseCase(coordinator, history),
    )


def get_prompt_use_case(
    coordinator: PipelineCoordinator = Depends(get_coordinator),
    history: ProjectHistoryUseCase = Depends(get_history_use_case),
) -> ProcessPromptUseCase:
    return ProcessPromptUseCase(
        coordinator=coordinator,
        history=history,
        relight=RelightImageUseCase(coordinator, history),
        enhance=EnhanceImageUseCase(coordinator, history),
        face_restore=RestoreFaceUseCase(coordinator, history),
        remove_background=RemoveBackgroundUseCase(coordinator, history),
        separate_layers=SeparateLayersUseCase(coordinator, history),
    )
