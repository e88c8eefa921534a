from __future__ import annotations

import asyncio
import logging
import mimetypes
import time
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Mapping
from urllib.parse import urlparse

from src.domain.entities.edit_history import OperationType
from src.domain.entities.execution_unit import StageDescriptor
from src.domain.entities.image import ImageRef
from src.domain.errors import EmptyOutput, PipelineStageFailed, StageError, StorageError
from src.domain.services.classification import ClassifierAdapter, ModelVariant, select_model_variant
from src.infrastructure.containers.stage_executor import StageExecutor
from src.infrastructure.storage.artifact_store import ArtifactScope, ArtifactStore
from src.infrastructure.storage.supabase_storage import SupabaseStorage

logger = logging.getLogger(__name__)

_IMAGE_SUFFIXES = (".png", ".jpg", ".jpeg", ".webp", ".bmp")


def guess_mime_type(path: Path) -> str:
    mime, _ = mimetypes.guess_type(path.name)
    return mime or "image/jpeg"


@dataclass
class PipelineResult:
    pipeline: str
    operation_type: OperationType | None
    outputs: dict[str, ImageRef]
    parameters: dict[str, Any] = field(default_factory=dict)
    input_image: ImageRef | None = None
    model_variant: ModelVariant | None = None
    variant_source: str | None = None
    timings: dict[str, float] = field(default_factory=dict)
    project_id: str | None = None
    operation_index: int | None = None

    @property
    def output_image(self) -> ImageRef:
        """The image that becomes the project's current image."""
        if "result" in self.outputs:
            return self.outputs["result"]
        return next(iter(self.outputs.values()))


class PipelineRun:
    """Per-invocation state of one named pipeline.

    All local files go through the run's artifact scope and are gone when the
    run ends, whatever the outcome.
    """

    def __init__(self, coordinator: PipelineCoordinator, name: str, scope: ArtifactScope) -> None:
        self.coordinator = coordinator
        self.name = name
        self.scope = scope
        self.timings: dict[str, float] = {}
        self.model_variant: ModelVariant | None = None
        self.variant_source: str | None = None

    def new_artifact(self, prefix: str, ext: str = ".png") -> Path:
        return self.scope.new(f"{self.name}_{prefix}", ext)

    async def fetch(self, url: str, prefix: str = "input") -> Path:
        suffix = Path(urlparse(url).path).suffix.lower()
        dest = self.new_artifact(prefix, suffix if suffix in _IMAGE_SUFFIXES else ".png")
        started = time.monotonic()
        await self.coordinator.storage.download(url, dest)
        self.timings[f"download_{prefix}"] = round(time.monotonic() - started, 3)
        return dest

    async def fetch_many(self, *sources: tuple[str, str]) -> list[Path]:
        """Download independent inputs concurrently; all settle before a fault is raised."""
        outcomes = await asyncio.gather(
            *(self.fetch(url, prefix) for url, prefix in sources), return_exceptions=True
        )
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome
        return list(outcomes)

    async def stage(
        self,
        descriptor: StageDescriptor,
        inputs: Mapping[str, Path],
        params: Mapping[str, Any] | None = None,
        ext: str = ".png",
    ) -> Path:
        """Run one stage; any stage fault ends the pipeline as ``PipelineStageFailed``."""
        output = self.new_artifact(descriptor.name, ext)
        started = time.monotonic()
        try:
            await self.coordinator.executor.run_stage(descriptor, inputs, output, params)
            size = await asyncio.to_thread(lambda: output.stat().st_size if output.exists() else 0)
            if size == 0:
                raise EmptyOutput(descriptor.name, output.name)
        except StageError as exc:
            raise PipelineStageFailed(self.name, descriptor.name, exc) from exc
        self.timings[descriptor.name] = round(time.monotonic() - started, 3)
        return output

    async def local_step(self, label: str, func: Callable[..., Any], *args: Any) -> Any:
        """Run a blocking Pillow/NumPy step off the event loop."""
        started = time.monotonic()
        try:
            outcome = await asyncio.to_thread(func, *args)
        except OSError as exc:
            raise PipelineStageFailed(self.name, label, exc) from exc
        self.timings[label] = round(time.monotonic() - started, 3)
        return outcome

    async def read_bytes(self, path: Path) -> bytes:
        return await asyncio.to_thread(path.read_bytes)

    async def select_model_variant(
        self, image: Path, explicit: ModelVariant | str | None = None
    ) -> ModelVariant:
        image_bytes = b"" if explicit else await self.read_bytes(image)
        variant, source = await select_model_variant(
            self.coordinator.classifier, image_bytes, guess_mime_type(image), explicit
        )
        self.model_variant, self.variant_source = variant, source
        return variant

    async def publish(self, path: Path, folder: str, desired_id: str | None = None) -> ImageRef:
        started = time.monotonic()
        ref = await self.coordinator.storage.upload(path, folder, desired_id or f"{self.name}_{uuid.uuid4().hex}")
        self.timings[f"upload_{folder}"] = round(time.monotonic() - started, 3)
        return ref

    async def publish_many(self, *targets: tuple[Path, str, str]) -> list[ImageRef]:
        """Upload several outputs concurrently; nothing stays published if one fails."""
        outcomes = await asyncio.gather(
            *(self.publish(path, folder, desired_id) for path, folder, desired_id in targets),
            return_exceptions=True,
        )
        failure = next((o for o in outcomes if isinstance(o, BaseException)), None)
        if failure is None:
            return list(outcomes)
        for outcome in outcomes:
            if isinstance(outcome, ImageRef) and outcome.public_id:
                try:
                    await self.coordinator.storage.delete(outcome.public_id)
                except (StorageError, OSError) as exc:
                    logger.warning("[%s] failed to withdraw %s: %s", self.name, outcome.public_id, exc)
        raise failure

    def result(
        self,
        operation_type: OperationType | None,
        outputs: dict[str, ImageRef],
        parameters: dict[str, Any] | None = None,
        input_image: ImageRef | None = None,
    ) -> PipelineResult:
        params = dict(parameters or {})
        if self.model_variant is not None:
            params.setdefault("model_type", self.model_variant.value)
        return PipelineResult(
            pipeline=self.name,
            operation_type=operation_type,
            outputs=outputs,
            parameters=params,
            input_image=input_image,
            model_variant=self.model_variant,
            variant_source=self.variant_source,
            timings=dict(self.timings),
        )


class PipelineCoordinator:
    """Opens pipeline runs against injected executor, stores and classifier."""

    def __init__(
        self,
        executor: StageExecutor,
        artifacts: ArtifactStore,
        storage: SupabaseStorage,
        classifier: ClassifierAdapter | None = None,
    ) -> None:
        self.executor = executor
        self.artifacts = artifacts
        self.storage = storage
        self.classifier = classifier

    @asynccontextmanager
    async def run(self, name: str) -> AsyncIterator[PipelineRun]:
        started = time.monotonic()
        with self.artifacts.scope() as scope:
            run = PipelineRun(self, name, scope)
            logger.info("[%s] pipeline started", name)
            try:
                yield run
            except PipelineStageFailed as exc:
                logger.error("[%s] failed at stage %s: %s", name, exc.stage, exc.cause)
                raise
        logger.info("[%s] pipeline finished in %.2f seconds", name, time.monotonic() - started)
