from __future__ import annotations

import math
import platform
from enum import Enum
from typing import Callable, Iterable

import psutil

from image_resizer.config import DEFAULT_ARCHITECTURES


_ARCH_ALIASES = {
    "aarch64": "arm64",
    "armv8": "arm64",
    "armv8l": "arm64",
    "amd64": "x86_64",
    "x64": "x86_64",
    "i386": "x86",
    "i686": "x86",
}


class Eligibility(Enum):
    SUPPORTED = "supported"
    UNSUPPORTED = "unsupported"


def normalize_architecture(value: str) -> str:
    normalized = value.strip().lower()
    return _ARCH_ALIASES.get(normalized, normalized)


class CapabilityProbe:
    """Cheap, synchronous check of whether this machine may run the AI model."""

    def __init__(
        self,
        allowed_architectures: Iterable[str] = DEFAULT_ARCHITECTURES,
        minimum_ram_gb: int = 0,
        machine: Callable[[], str] | None = None,
        ram_detector: Callable[[], int] | None = None,
    ) -> None:
        self._allowed = frozenset(normalize_architecture(arch) for arch in allowed_architectures)
        self._minimum_ram_gb = max(0, int(minimum_ram_gb))
        self._machine = machine or platform.machine
        self._ram_detector = ram_detector or detect_ram_gb

    def check_eligibility(self) -> Eligibility:
        try:
            architecture = normalize_architecture(self._machine())
            if not architecture or architecture not in self._allowed:
                return Eligibility.UNSUPPORTED
            if self._minimum_ram_gb and self._ram_detector() < self._minimum_ram_gb:
                return Eligibility.UNSUPPORTED
        except Exception:  # noqa: BLE001
            return Eligibility.UNSUPPORTED
        return Eligibility.SUPPORTED


def detect_ram_gb() -> int:
    return int(math.ceil(psutil.virtual_memory().total / (1024**3)))
