"""Fault taxonomy shared by the pipeline layer, the history aggregate and the API."""
from __future__ import annotations


class DomainError(Exception):
    """Base class for every fault this service raises on purpose."""


# --------- execution units / stages ---------
class StageError(DomainError):
    """A single stage could not produce its artifact."""

    def __init__(self, message: str, *, unit: str | None = None) -> None:
        super().__init__(message)
        self.unit = unit


class ContainerUnavailable(StageError):
    """An execution unit could not be probed, resumed or created."""

    def __init__(self, unit: str, detail: str = "") -> None:
        message = f"Execution unit '{unit}' is unavailable"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message, unit=unit)
        self.detail = detail


class StageExecutionFailed(StageError):
    """The in-unit command (or a copy across the boundary) exited non-zero."""

    def __init__(self, unit: str, command: str, returncode: int, output: str = "") -> None:
        super().__init__(
            f"Command '{command}' in '{unit}' exited with status {returncode}", unit=unit
        )
        self.command = command
        self.returncode = returncode
        self.output = output


class StageTimeout(StageError):
    def __init__(self, unit: str, command: str, timeout: float) -> None:
        super().__init__(f"Command '{command}' in '{unit}' timed out after {timeout:g}s", unit=unit)
        self.command = command
        self.timeout = timeout


class EmptyOutput(StageError):
    """The stage exited cleanly but produced a missing or zero-byte artifact."""

    def __init__(self, stage: str, path: str) -> None:
        super().__init__(f"Stage '{stage}' produced an empty artifact ({path})")
        self.stage = stage
        self.path = path


class PipelineStageFailed(DomainError):
    """Single structured fault reported when any stage of a pipeline fails."""

    def __init__(self, pipeline: str, stage: str, cause: Exception) -> None:
        super().__init__(f"Pipeline '{pipeline}' failed at stage '{stage}': {cause}")
        self.pipeline = pipeline
        self.stage = stage
        self.cause = cause


# --------- artifacts / external store ---------
class ArtifactDownloadFailed(DomainError):
    def __init__(self, url: str, detail: str) -> None:
        super().__init__(f"Failed to download image from {url}: {detail}")
        self.url = url


class StorageError(DomainError):
    """The external store rejected an upload or delete."""


# --------- classifier adapter ---------
class ClassifierUnavailable(DomainError):
    """The classifier could not answer (no credentials, timeout, bad reply, SDK error)."""


class UpstreamQuotaExceeded(ClassifierUnavailable):
    """The classifier reported a quota / rate-limit condition; callers should back off."""


# --------- edit history ---------
class ProjectNotFound(DomainError):
    def __init__(self, project_id: str) -> None:
        super().__init__(f"Project '{project_id}' not found")
        self.project_id = project_id


class NothingToUndo(DomainError):
    def __init__(self) -> None:
        super().__init__("No operations to undo")


class InvalidRevertIndex(DomainError):
    def __init__(self, index: int, length: int) -> None:
        super().__init__(
            f"Invalid operation index {index}: expected a value in [-1, {length - 1}]"
        )
        self.index = index
        self.length = length


class OriginalImageAlreadySet(DomainError):
    def __init__(self, project_id: str) -> None:
        super().__init__(f"Project '{project_id}' already has an original image")
        self.project_id = project_id


# --------- prompt routing ---------
class FeatureNotImplemented(DomainError):
    """The intent is recognized but cannot be executed from a text prompt."""

    def __init__(self, feature: str, message: str | None = None) -> None:
        super().__init__(message or f'Feature "{feature}" is recognized but not yet implemented')
        self.feature = feature
