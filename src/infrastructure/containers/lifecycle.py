from __future__ import annotations

import logging

from src.domain.entities.execution_unit import ExecutionUnit
from src.domain.errors import ContainerUnavailable, StageTimeout
from src.infrastructure.containers.docker_cli import DockerCli

logger = logging.getLogger(__name__)


class ExecutionUnitLifecycle:
    """Makes sure a named unit is up before use. Units are reused, never stopped.

    Callers hold the unit lock; the second check after a failed create covers another
    process creating the same unit first.
    """

    def __init__(self, docker: DockerCli) -> None:
        self.docker = docker

    async def ensure_running(self, unit: ExecutionUnit) -> None:
        try:
            if await self.docker.is_running(unit.name):
                return

            started = await self.docker.start(unit.name)
            if started.ok:
                logger.info("Execution unit %s resumed", unit.name)
                return

            logger.info("Creating execution unit %s from %s", unit.name, unit.image)
            created = await self.docker.run_idle(unit.name, unit.image)
            if not created.ok and await self.docker.is_running(unit.name):
                logger.info("Execution unit %s was created concurrently", unit.name)
                return
        except StageTimeout as exc:
            raise ContainerUnavailable(unit.name, str(exc)) from exc
        if not created.ok:
            raise ContainerUnavailable(unit.name, created.output)
        logger.info("Execution unit %s created", unit.name)
