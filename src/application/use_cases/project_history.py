from __future__ import annotations

import asyncio
import logging
import os
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, AsyncIterator, Callable, TypeVar

from src.application.pipelines.coordinator import PipelineResult
from src.domain.entities.edit_history import OperationEntity, OperationType
from src.domain.entities.image import ImageRef
from src.domain.entities.project import PROJECT_STATUSES, ProjectEntity
from src.domain.errors import DomainError, ProjectNotFound
from src.infrastructure.database.repositories.project_repository import ProjectRepository
from src.infrastructure.storage.supabase_storage import SupabaseStorage

logger = logging.getLogger(__name__)

T = TypeVar("T")

# one writer per project id at a time; an entry lives while someone holds or awaits it
_PROJECT_LOCKS: dict[str, tuple[asyncio.Lock, int]] = {}


@asynccontextmanager
async def _project_lock(project_id: str) -> AsyncIterator[None]:
    entry = _PROJECT_LOCKS.get(project_id)
    lock, users = entry if entry is not None else (asyncio.Lock(), 0)
    _PROJECT_LOCKS[project_id] = (lock, users + 1)
    try:
        async with lock:
            yield
    finally:
        lock, users = _PROJECT_LOCKS[project_id]
        if users == 1:
            del _PROJECT_LOCKS[project_id]
        else:
            _PROJECT_LOCKS[project_id] = (lock, users - 1)


@dataclass(frozen=True)
class SourceImage:
    """Where a pipeline reads its input from, and what history records as input."""

    image_url: str
    image: ImageRef | None


@dataclass
class ProjectHistoryUseCase:
    repo: ProjectRepository
    storage: SupabaseStorage
    max_versions: int = field(
        default_factory=lambda: int(os.getenv("AI_PROJECT_MAX_VERSIONS", "50"))
    )

    # --------- helpers ---------
    async def _load(self, project_id: str) -> ProjectEntity:
        project = await asyncio.to_thread(self.repo.get, project_id)
        if project is None:
            raise ProjectNotFound(project_id)
        return project

    async def _mutate(
        self, project_id: str, change: Callable[[ProjectEntity], T]
    ) -> tuple[ProjectEntity, T]:
        """Load, apply ``change`` and save, all under the project lock.

        Nothing is saved when ``change`` raises.
        """
        async with _project_lock(project_id):
            project = await self._load(project_id)
            outcome = change(project)
            await asyncio.to_thread(self.repo.save, project)
        return project, outcome

    # --------- project lifecycle ---------
    async def create(
        self, title: str | None = None, description: str | None = None, max_versions: int | None = None
    ) -> ProjectEntity:
        project = ProjectEntity(
            id=uuid.uuid4().hex,
            title=title or "AI Edit Project",
            description=description or "",
            max_versions=max_versions or self.max_versions,
        )
        await asyncio.to_thread(self.repo.create, project)
        logger.info("Created AI project %s", project.id)
        return project

    async def list_projects(self, status: str | None = "active") -> list[ProjectEntity]:
        if status is not None and status not in PROJECT_STATUSES:
            raise ValueError(f"Unknown project status: {status}")
        return await asyncio.to_thread(self.repo.list_by_status, status)

    async def get(self, project_id: str) -> ProjectEntity:
        return await self._load(project_id)

    async def update(
        self,
        project_id: str,
        title: str | None = None,
        description: str | None = None,
        status: str | None = None,
    ) -> ProjectEntity:
        if status is not None and status not in PROJECT_STATUSES:
            raise ValueError(f"Unknown project status: {status}")

        def change(project: ProjectEntity) -> None:
            if title is not None:
                project.title = title
            if description is not None:
                project.description = description
            if status is not None:
                project.status = status
            project._touch()

        project, _ = await self._mutate(project_id, change)
        return project

    async def delete(self, project_id: str, permanent: bool = False) -> None:
        if not permanent:
            await self.update(project_id, status="deleted")
            return
        async with _project_lock(project_id):
            project = await self._load(project_id)
            await asyncio.to_thread(self.repo.delete, project_id)
        await self._purge_images(project)
        logger.info("Permanently deleted AI project %s", project_id)

    async def _purge_images(self, project: ProjectEntity) -> None:
        public_ids = {op.output_image.public_id for op in project.operations}
        if project.original_image:
            public_ids.add(project.original_image.public_id)
        for public_id in filter(None, public_ids):
            await self._purge_public_id(public_id)

    async def _purge_public_id(self, public_id: str) -> None:
        try:
            await self.storage.delete(public_id)
        except DomainError as exc:
            logger.warning("Failed to delete stored image %s: %s", public_id, exc)

    # --------- original image ---------
    async def set_original_image(self, project_id: str, image: ImageRef) -> ProjectEntity:
        project, _ = await self._mutate(project_id, lambda p: p.set_original_image(image))
        return project

    async def upload_original(self, project_id: str, local_path: Path) -> ProjectEntity:
        await self._load(project_id)
        image = await self.storage.upload(local_path, f"ai-projects/{project_id}", f"original_{uuid.uuid4().hex}")
        try:
            return await self.set_original_image(project_id, image)
        except DomainError:
            await self._purge_public_id(image.public_id)
            raise

    # --------- history ---------
    async def add_operation(
        self,
        project_id: str,
        operation_type: OperationType | str,
        parameters: dict[str, Any] | None,
        output_image: ImageRef,
        input_image: ImageRef | None = None,
    ) -> tuple[ProjectEntity, OperationEntity]:
        return await self._mutate(
            project_id,
            lambda p: p.add_operation(operation_type, parameters, output_image, input_image),
        )

    async def undo(self, project_id: str) -> tuple[ProjectEntity, OperationEntity]:
        return await self._mutate(project_id, lambda p: p.undo_last_operation())

    async def revert(self, project_id: str, index: int) -> ProjectEntity:
        project, _ = await self._mutate(project_id, lambda p: p.revert_to_operation(index))
        return project

    async def timeline(self, project_id: str) -> list[dict[str, Any]]:
        project = await self._load(project_id)
        return project.timeline()

    # --------- pipeline integration ---------
    async def resolve_source(self, project_id: str | None, image_url: str | None) -> SourceImage:
        """Explicit URL wins; otherwise the project's current image.

        A given project must exist even when the URL is explicit.
        """
        project = await self._load(project_id) if project_id else None
        if image_url:
            return SourceImage(image_url=image_url, image=ImageRef(image_url=image_url, public_id=""))
        if project is None:
            raise ValueError("Either image_url or project_id is required")
        current = project.current_image
        if current is None:
            raise ValueError(f"Project '{project_id}' has no image yet")
        return SourceImage(image_url=current.image_url, image=current)

    async def record(self, project_id: str | None, result: PipelineResult) -> PipelineResult:
        """Append a successful pipeline result to the project's history."""
        if not project_id or result.operation_type is None:
            return result
        project, _ = await self.add_operation(
            project_id,
            result.operation_type,
            result.parameters,
            result.output_image,
            result.input_image,
        )
        result.project_id = project_id
        result.operation_index = len(project.operations) - 1
        logger.info(
            "Recorded %s on project %s (%d operations)",
            result.operation_type.value,
            project_id,
            len(project.operations),
        )
        return result
