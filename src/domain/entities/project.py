from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from src.domain.entities.edit_history import OperationEntity, OperationType
from src.domain.entities.image import ImageRef
from src.domain.errors import InvalidRevertIndex, NothingToUndo, OriginalImageAlreadySet

DEFAULT_MAX_VERSIONS = 50
PROJECT_STATUSES = ("active", "archived", "deleted")


@dataclass
class ProjectEntity:
    """Edit-history aggregate of an AI project.

    ``operations`` is only ever appended to or truncated from the tail, and
    ``current_image`` is always the output of the last retained operation, or
    the original image when no operation is left.
    """

    id: str
    title: str = "AI Edit Project"
    description: str = ""
    original_image: ImageRef | None = None
    operations: list[OperationEntity] = field(default_factory=list)
    max_versions: int = DEFAULT_MAX_VERSIONS
    status: str = "active"
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __post_init__(self) -> None:
        if self.max_versions < 1:
            raise ValueError("max_versions must be >= 1")
        if self.status not in PROJECT_STATUSES:
            raise ValueError(f"Unknown project status: {self.status}")

    @property
    def current_image(self) -> ImageRef | None:
        if self.operations:
            return self.operations[-1].output_image
        return self.original_image

    @property
    def thumbnail(self) -> ImageRef | None:
        return self.current_image

    def _touch(self) -> None:
        self.updated_at = datetime.now(UTC)

    def set_original_image(self, image: ImageRef) -> None:
        """Set once, at first upload."""
        if self.original_image is not None:
            raise OriginalImageAlreadySet(self.id)
        self.original_image = image
        self._touch()

    def add_operation(
        self,
        operation_type: OperationType | str,
        parameters: dict[str, Any] | None,
        output_image: ImageRef,
        input_image: ImageRef | None = None,
    ) -> OperationEntity:
        operation = OperationEntity(
            operation_type=OperationType(operation_type),
            parameters=dict(parameters or {}),
            input_image=input_image if input_image is not None else self.current_image,
            output_image=output_image,
        )
        self.operations.append(operation)
        # oldest entries go first; original_image is a separate field and survives
        if len(self.operations) > self.max_versions:
            del self.operations[: len(self.operations) - self.max_versions]
        self._touch()
        return operation

    def undo_last_operation(self) -> OperationEntity:
        if not self.operations:
            raise NothingToUndo()
        removed = self.operations.pop()
        self._touch()
        return removed

    def revert_to_operation(self, index: int) -> None:
        """Keep ``operations[0..index]``; ``-1`` reverts to the original image."""
        if index < -1 or index >= len(self.operations):
            raise InvalidRevertIndex(index, len(self.operations))
        del self.operations[index + 1 :]
        self._touch()

    def timeline(self) -> list[dict[str, Any]]:
        entries: list[dict[str, Any]] = [
            {
                "index": -1,
                "operation_type": "original",
                "image": self.original_image,
                "input_image": None,
                "timestamp": self.created_at,
                "parameters": None,
                "status": None,
            }
        ]
        for index, op in enumerate(self.operations):
            entries.append(
                {
                    "index": index,
                    "operation_type": op.operation_type.value,
                    "image": op.output_image,
                    "input_image": op.input_image,
                    "timestamp": op.timestamp,
                    "parameters": op.parameters,
                    "status": op.status,
                }
            )
        return entries
