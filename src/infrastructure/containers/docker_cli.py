from __future__ import annotations

import asyncio
import logging
import os
import shlex
from dataclasses import dataclass
from pathlib import Path

from src.domain.errors import ContainerUnavailable, StageTimeout

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandResult:
    returncode: int
    output: str  # stdout and stderr interleaved

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class DockerCli:
    """Async wrapper over the docker command line.

    Every call is an external process on the event loop; nothing here blocks
    other in-flight requests.
    """

    def __init__(self, binary: str | None = None, default_timeout: float | None = None) -> None:
        self.binary = binary or os.getenv("DOCKER_BINARY", "docker")
        self.default_timeout = default_timeout or float(
            os.getenv("DOCKER_COMMAND_TIMEOUT_SECONDS", "120")
        )

    async def run(self, *args: str, timeout: float | None = None, unit: str = "") -> CommandResult:
        timeout = timeout or self.default_timeout
        argv = [self.binary, *args]
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except (FileNotFoundError, PermissionError) as exc:
            raise ContainerUnavailable(unit or "docker", f"cannot run {self.binary}: {exc}") from exc
        try:
            stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise StageTimeout(unit or "docker", shlex.join(args), timeout) from None
        output = (stdout or b"").decode("utf-8", errors="replace").strip()
        return CommandResult(returncode=proc.returncode or 0, output=output)

    # --------- primitives ---------
    async def is_running(self, name: str) -> bool:
        result = await self.run("inspect", "-f", "{{.State.Running}}", name, unit=name)
        return result.ok and result.output.strip().lower() == "true"

    async def start(self, name: str) -> CommandResult:
        return await self.run("start", name, unit=name)

    async def run_idle(self, name: str, image: str) -> CommandResult:
        return await self.run("run", "-d", "--name", name, image, "tail", "-f", "/dev/null", unit=name)

    async def copy_in(self, name: str, local_path: Path, unit_path: str) -> CommandResult:
        return await self.run("cp", str(local_path), f"{name}:{unit_path}", unit=name)

    async def copy_out(self, name: str, unit_path: str, local_path: Path) -> CommandResult:
        return await self.run("cp", f"{name}:{unit_path}", str(local_path), unit=name)

    async def exec(self, name: str, command: tuple[str, ...], timeout: float | None = None) -> CommandResult:
        return await self.run("exec", name, *command, timeout=timeout, unit=name)

    async def remove_paths(self, name: str, paths: list[str]) -> CommandResult:
        return await self.run("exec", name, "rm", "-rf", *paths, unit=name)
