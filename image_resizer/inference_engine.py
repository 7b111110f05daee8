from __future__ import annotations

import asyncio
import subprocess
import sys
from pathlib import Path
from typing import Callable, Protocol

from image_resizer.config import ModelSource
from image_resizer.error_handling import FeatureFailure, UserFacingError
from image_resizer.model_installation import find_installation
from image_resizer.structured_logging import StructuredLogger


class InferenceEngine(Protocol):
    async def initialize_async(self) -> bool: ...

    def upscale(self, input_path: Path, output_path: Path, scale: int) -> bool: ...


class InferenceEngineFactory(Protocol):
    def create(self) -> InferenceEngine: ...


class NoOpInferenceEngine:
    """Stand-in engine that never upscales; callers fall back to a classic resize."""

    async def initialize_async(self) -> bool:
        return True

    def upscale(self, input_path: Path, output_path: Path, scale: int) -> bool:
        return False


class ModelInferenceEngine:
    """Runs the installed model's inference entrypoint in a subprocess."""

    def __init__(
        self,
        weights_path: Path | None,
        entrypoint: str | None,
        *,
        python_executable: Path | None = None,
        runner: Callable[[list[str]], None] | None = None,
    ) -> None:
        self.weights_path = weights_path
        self.entrypoint = entrypoint
        self.python_executable = python_executable or Path(sys.executable)
        self._runner = runner or _default_runner
        self._initialized = False

    async def initialize_async(self) -> bool:
        if not self.entrypoint or self.weights_path is None:
            return False
        weights_path = self.weights_path
        self._initialized = await asyncio.to_thread(weights_path.is_file)
        return self._initialized

    def build_command(self, input_path: Path, output_path: Path, scale: int) -> list[str]:
        entrypoint = self.entrypoint or ""
        if _is_script_entrypoint(entrypoint):
            entrypoint_path = Path(entrypoint)
            if not entrypoint_path.is_absolute() and self.weights_path is not None:
                entrypoint_path = self.weights_path.parent / entrypoint_path
            cmd = [str(self.python_executable), str(entrypoint_path)]
        else:
            cmd = [str(self.python_executable), "-m", entrypoint]
        cmd.extend(["--weights", str(self.weights_path)])
        cmd.extend(["--input", str(input_path)])
        cmd.extend(["--output", str(output_path)])
        cmd.extend(["--scale", str(scale)])
        return cmd

    def upscale(self, input_path: Path, output_path: Path, scale: int) -> bool:
        if not self._initialized:
            return False
        if not input_path.is_file():
            raise FileNotFoundError(str(input_path))
        output_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            self._runner(self.build_command(input_path, output_path, scale))
        except subprocess.CalledProcessError as exc:
            raise UserFacingError(
                title="Model inference failed",
                summary="We couldn't run the AI super resolution model.",
                suggested_fixes=(
                    "Check the logs for details.",
                    "Turn off AI super resolution to resize without it.",
                ),
                error_code="MODEL-010",
                can_retry=True,
            ) from exc
        return True


class ModelEngineFactory:
    def __init__(
        self,
        source: ModelSource,
        entrypoint: str | None,
        *,
        base_dir: Path | None = None,
    ) -> None:
        self._source = source
        self._entrypoint = entrypoint
        self._base_dir = base_dir

    def create(self) -> InferenceEngine:
        paths = find_installation(self._source.name, self._source.version, base_dir=self._base_dir)
        return ModelInferenceEngine(
            paths.weights if paths is not None else None,
            self._entrypoint,
        )


class EngineHandle:
    """Application-owned slot for the single inference engine instance."""

    def __init__(
        self,
        factory: InferenceEngineFactory,
        logger: StructuredLogger | None = None,
    ) -> None:
        self._factory = factory
        self._logger = logger
        self._engine: InferenceEngine | None = None
        self._degraded = False

    @property
    def engine(self) -> InferenceEngine:
        return self._engine if self._engine is not None else NoOpInferenceEngine()

    @property
    def has_engine(self) -> bool:
        return self._engine is not None

    @property
    def degraded(self) -> bool:
        return self._degraded

    async def ensure_initialized(self) -> bool:
        """Create the engine on first use; a healthy engine is never rebuilt."""
        if self._engine is not None and not self._degraded:
            return True
        try:
            engine = self._factory.create()
            ready = await engine.initialize_async()
        except Exception as exc:  # noqa: BLE001
            self._fall_back(str(exc))
            return False
        if not ready:
            self._fall_back("initialize_async returned False")
            return False
        self.replace(engine)
        return True

    def replace(self, engine: InferenceEngine, *, degraded: bool = False) -> None:
        self._dispose_current()
        self._engine = engine
        self._degraded = degraded

    def dispose(self) -> None:
        self._dispose_current()
        self._engine = None
        self._degraded = False

    def _fall_back(self, reason: str) -> None:
        if self._logger:
            self._logger.log_event(
                "ERROR",
                "engine_init_failed",
                "Inference engine failed to initialize; using no-op engine",
                error=reason,
                error_code=FeatureFailure.ENGINE_INIT_FAILED.error_code,
            )
        self.replace(NoOpInferenceEngine(), degraded=True)

    def _dispose_current(self) -> None:
        close = getattr(self._engine, "close", None)
        if callable(close):
            close()


def _default_runner(cmd: list[str]) -> None:
    subprocess.run(cmd, check=True)


def _is_script_entrypoint(entrypoint: str) -> bool:
    return entrypoint.endswith(".py") or "/" in entrypoint or "\\" in entrypoint
