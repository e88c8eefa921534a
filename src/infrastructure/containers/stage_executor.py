from __future__ import annotations

import logging
import os
import shlex
import time
from pathlib import Path
from typing import Any, Mapping

from src.domain.entities.execution_unit import StageDescriptor
from src.domain.errors import DomainError, StageExecutionFailed
from src.infrastructure.containers.docker_cli import DockerCli
from src.infrastructure.containers.lifecycle import ExecutionUnitLifecycle
from src.infrastructure.containers.registry import ExecutionUnitRegistry

logger = logging.getLogger(__name__)


class StageExecutor:
    """Runs one stage: copy in, invoke, copy out, clean the unit.

    The local input files belong to the caller and are left untouched; the
    only local side effect is the new file written at ``output``.
    """

    def __init__(
        self,
        docker: DockerCli,
        registry: ExecutionUnitRegistry,
        lifecycle: ExecutionUnitLifecycle | None = None,
        stage_timeout: float | None = None,
    ) -> None:
        self.docker = docker
        self.registry = registry
        self.lifecycle = lifecycle or ExecutionUnitLifecycle(docker)
        self.stage_timeout = stage_timeout or float(os.getenv("STAGE_TIMEOUT_SECONDS", "300"))

    @staticmethod
    def build_context(
        descriptor: StageDescriptor,
        inputs: Mapping[str, Path],
        output: Path,
        params: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        missing = [role for role in descriptor.roles if role not in inputs]
        if missing:
            raise ValueError(f"Stage '{descriptor.name}' is missing inputs: {', '.join(missing)}")
        context: dict[str, Any] = dict(descriptor.defaults)
        context.update(params or {})
        for role in descriptor.roles:
            path = Path(inputs[role])
            context[role] = path.name
            context[f"{role}_stem"] = path.stem
        context["output"] = output.name
        context["output_stem"] = output.stem
        return context

    @staticmethod
    def _render(template: str, context: Mapping[str, Any], stage: str) -> str:
        try:
            return template.format(**context)
        except KeyError as exc:
            raise ValueError(f"Stage '{stage}' needs parameter {exc}") from None

    async def run_stage(
        self,
        descriptor: StageDescriptor,
        inputs: Mapping[str, Path],
        output: Path,
        params: Mapping[str, Any] | None = None,
    ) -> Path:
        unit = self.registry.get(descriptor.unit)
        context = self.build_context(descriptor, inputs, output, params)

        def render(template: str) -> str:
            return self._render(template, context, descriptor.name)

        unit_inputs = [(Path(inputs[role]), render(template)) for role, template in descriptor.inputs]
        unit_output = render(descriptor.output)
        command = tuple(render(part) for part in descriptor.command)
        leftovers = [path for _, path in unit_inputs] + [unit_output]
        leftovers += [render(path) for path in descriptor.cleanup]

        async with self.registry.lock(unit.name):
            await self.lifecycle.ensure_running(unit)
            started = time.monotonic()
            try:
                for local_path, unit_path in unit_inputs:
                    copied = await self.docker.copy_in(unit.name, local_path, unit_path)
                    if not copied.ok:
                        raise StageExecutionFailed(
                            unit.name, f"cp {local_path.name}", copied.returncode, copied.output
                        )

                result = await self.docker.exec(unit.name, command, timeout=self.stage_timeout)
                if result.output:
                    logger.debug("[%s] model output: %s", descriptor.name, result.output)
                if not result.ok:
                    raise StageExecutionFailed(
                        unit.name, shlex.join(command), result.returncode, result.output
                    )

                copied = await self.docker.copy_out(unit.name, unit_output, output)
                if not copied.ok:
                    raise StageExecutionFailed(
                        unit.name, f"cp {unit_output}", copied.returncode, copied.output
                    )
            finally:
                await self._clean_unit(unit.name, leftovers)
            logger.info(
                "[%s] completed in %.2f seconds", descriptor.name, time.monotonic() - started
            )
        return output

    async def _clean_unit(self, name: str, paths: list[str]) -> None:
        try:
            result = await self.docker.remove_paths(name, paths)
        except (DomainError, OSError) as exc:
            logger.warning("Failed to clean up files in %s: %s", name, exc)
            return
        if not result.ok:
            logger.warning("Failed to clean up files in %s: %s", name, result.output)
