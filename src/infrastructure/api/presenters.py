"""Entity -> response DTO conversions shared by the routers."""
from __future__ import annotations

from src.application.dtos.ai_dto import (
    AutoEnhanceResponse,
    EnhancementStepResponse,
    PipelineResponse,
    QualityReportResponse,
)
from src.application.dtos.image_dto import ImageRefModel
from src.application.dtos.project_dto import OperationResponse, ProjectResponse, TimelineEntry
from src.application.pipelines.coordinator import PipelineResult
from src.application.use_cases.auto_enhance import AutoEnhanceOutcome
from src.domain.entities.edit_history import OperationEntity
from src.domain.entities.image import ImageRef
from src.domain.entities.project import ProjectEntity
from src.domain.services.classification import QualityReport


def image_model(image: ImageRef | None) -> ImageRefModel | None:
    return ImageRefModel(**image.to_dict()) if image else None


def image_ref(model: ImageRefModel | None) -> ImageRef | None:
    return ImageRef(**model.model_dump()) if model else None


def operation_response(index: int, op: OperationEntity) -> OperationResponse:
    return OperationResponse(
        index=index,
        operation_type=op.operation_type.value,
        parameters=op.parameters,
        input_image=image_model(op.input_image),
        output_image=image_model(op.output_image),
        timestamp=op.timestamp,
        status=op.status,
    )


def project_response(project: ProjectEntity) -> ProjectResponse:
    return ProjectResponse(
        id=project.id,
        title=project.title,
        description=project.description,
        status=project.status,
        original_image=image_model(project.original_image),
        current_image=image_model(project.current_image),
        thumbnail=image_model(project.thumbnail),
        operations=[operation_response(i, op) for i, op in enumerate(project.operations)],
        max_versions=project.max_versions,
        created_at=project.created_at,
        updated_at=project.updated_at,
    )


def timeline_entries(project: ProjectEntity) -> list[TimelineEntry]:
    entries = []
    for entry in project.timeline():
        entries.append(
            TimelineEntry(
                **{
                    **entry,
                    "image": image_model(entry["image"]),
                    "input_image": image_model(entry["input_image"]),
                }
            )
        )
    return entries


def pipeline_response(result: PipelineResult) -> PipelineResponse:
    return PipelineResponse(
        pipeline=result.pipeline,
        operation_type=result.operation_type.value if result.operation_type else None,
        image=image_model(result.output_image),
        outputs={role: image_model(image) for role, image in result.outputs.items()},
        parameters=result.parameters,
        model_variant=result.model_variant.value if result.model_variant else None,
        variant_source=result.variant_source,
        timings=result.timings,
        project_id=result.project_id,
        operation_index=result.operation_index,
    )


def quality_report_response(report: QualityReport) -> QualityReportResponse:
    return QualityReportResponse(
        needs_enhancement=report.needs_enhancement,
        enhancements=[k.value for k in report.needed],
        severity=report.severity,
        overall_quality=report.overall_quality,
        priority_order=[k.value for k in report.priority_order],
        degraded=report.degraded,
    )


def auto_enhance_response(outcome: AutoEnhanceOutcome) -> AutoEnhanceResponse:
    return AutoEnhanceResponse(
        input_image_url=outcome.input_image_url,
        final_image=image_model(outcome.final_image),
        applied=[k.value for k in outcome.applied],
        steps=[
            EnhancementStepResponse(
                step=s.step,
                enhancement=s.enhancement.value,
                status=s.status,
                processing_time=s.processing_time,
                image=image_model(s.result.output_image) if s.result else None,
                error=s.error,
            )
            for s in outcome.steps
        ],
    )
