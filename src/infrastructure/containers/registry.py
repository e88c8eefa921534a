from __future__ import annotations

import asyncio
import os

from src.domain.entities.execution_unit import ExecutionUnit

# key -> (container name, backing image)
DEFAULT_UNITS: dict[str, tuple[str, str]] = {
    "lowlight": ("lowlight-service", "sameer513/lowlight-cpu-bullseye"),
    "face_restore": ("codeformer-service", "sameer513/codeformer_app"),
    "enhance": ("nafnet-service", "sameer513/nafnet-image"),
    "style_transfer": ("style-transfer-service", "sameer513/pca-style-transfer-fixed"),
    "background_removal": ("background-removal-service", "sameer513/u2net-inference"),
    "object_masking": ("object-masking-service", "sameer513/sam-cpu-final"),
    "inpainting": ("object-remover-service", "sameer513/better-lama"),
    "harmonization": ("pct-net-service", "sameer513/pct-net-final"),
}


class ExecutionUnitRegistry:
    """Explicit map of logical unit keys to named execution units.

    Also owns one lock per unit name so that two requests never work inside
    the same unit's filesystem at the same time.
    """

    def __init__(self, units: dict[str, ExecutionUnit] | None = None) -> None:
        if units is None:
            units = {}
            for key, (name, image) in DEFAULT_UNITS.items():
                override = os.getenv(f"AI_UNIT_{key.upper()}_IMAGE")
                units[key] = ExecutionUnit(key=key, name=name, image=override or image)
        self._units = dict(units)
        self._locks: dict[str, asyncio.Lock] = {}

    def get(self, key: str) -> ExecutionUnit:
        try:
            return self._units[key]
        except KeyError:
            raise KeyError(f"Unknown execution unit: {key}") from None

    def lock(self, name: str) -> asyncio.Lock:
        lock = self._locks.get(name)
        if lock is None:
            lock = self._locks[name] = asyncio.Lock()
        return lock


_REGISTRY_SINGLETON: ExecutionUnitRegistry | None = None


def get_unit_registry() -> ExecutionUnitRegistry:
    global _REGISTRY_SINGLETON
    if _REGISTRY_SINGLETON is None:
        _REGISTRY_SINGLETON = ExecutionUnitRegistry()
    return _REGISTRY_SINGLETON
