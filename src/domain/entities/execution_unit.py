from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class ExecutionUnit:
    """A named, persistent container carrying one packaged model.

    Running state is never cached here; it is probed live before every use.
    """

    key: str
    name: str
    image: str


@dataclass(frozen=True)
class StageDescriptor:
    """One invocation inside an execution unit, fixed at build time.

    Templates are ``str.format`` strings. For every input role ``r`` the
    context holds ``{r}`` (in-unit file name) and ``{r_stem}``; the output
    file name is ``{output}``. Request parameters are merged in as well.
    """

    name: str
    unit: str  # registry key
    inputs: tuple[tuple[str, str], ...]  # (role, in-unit path template)
    output: str
    command: tuple[str, ...]
    cleanup: tuple[str, ...] = ()
    defaults: dict[str, Any] = field(default_factory=dict)

    @property
    def roles(self) -> tuple[str, ...]:
        return tuple(role for role, _ in self.inputs)
