from __future__ import annotations

import asyncio
from typing import Callable

from image_resizer.batch import BatchContext
from image_resizer.capability_probe import CapabilityProbe
from image_resizer.config import AiFeatureConfig
from image_resizer.feature_state import FeatureState, FeatureStateMachine
from image_resizer.inference_engine import EngineHandle, InferenceEngine, ModelEngineFactory
from image_resizer.model_installation import LocalModelProvider
from image_resizer.provisioning import ProvisionOrchestrator
from image_resizer.readiness import CapabilityProvider, ReadinessOracle
from image_resizer.settings_store import SettingsStore, Subscription
from image_resizer.structured_logging import StructuredLogger
from image_resizer.view_state import ViewState, project_view_state


ViewListener = Callable[[ViewState], None]


class AiFeatureSession:
    """Owns the AI feature for one resize dialog and exposes its view state."""

    def __init__(
        self,
        settings: SettingsStore,
        batch: BatchContext,
        provider: CapabilityProvider,
        engine_handle: EngineHandle,
        *,
        probe: CapabilityProbe | None = None,
        logger: StructuredLogger | None = None,
    ) -> None:
        self._settings = settings
        self._batch = batch
        self._engine_handle = engine_handle
        self._machine = FeatureStateMachine(
            settings,
            probe or CapabilityProbe(),
            ReadinessOracle(provider, logger=logger),
            ProvisionOrchestrator(provider, engine_handle, logger=logger),
            logger=logger,
        )
        self._listeners: list[ViewListener] = []
        self._dimensions_task: asyncio.Task | None = None
        self._view = self._project()
        self._machine_subscription = self._machine.subscribe(lambda _machine: self._refresh())

    @classmethod
    def from_config(
        cls,
        config: AiFeatureConfig,
        batch: BatchContext,
        *,
        engine_handle: EngineHandle | None = None,
        settings: SettingsStore | None = None,
        logger: StructuredLogger | None = None,
    ) -> "AiFeatureSession":
        provider = LocalModelProvider(
            config.model,
            base_dir=config.data_dir,
            policy_disabled=config.policy_disabled,
            logger=logger,
        )
        if settings is None:
            settings = SettingsStore(config.settings_path, logger=logger)
        handle = engine_handle or EngineHandle(
            ModelEngineFactory(config.model, config.entrypoint, base_dir=config.data_dir),
            logger=logger,
        )
        return cls(
            settings,
            batch,
            provider,
            handle,
            probe=CapabilityProbe(
                allowed_architectures=config.allowed_architectures,
                minimum_ram_gb=config.minimum_ram_gb,
            ),
            logger=logger,
        )

    @property
    def machine(self) -> FeatureStateMachine:
        return self._machine

    @property
    def settings(self) -> SettingsStore:
        return self._settings

    @property
    def batch(self) -> BatchContext:
        return self._batch

    @property
    def engine(self) -> InferenceEngine:
        return self._engine_handle.engine

    @property
    def view_state(self) -> ViewState:
        return self._view

    @property
    def state(self) -> FeatureState:
        return self._machine.state

    @property
    def status_message(self) -> str:
        return self._view.status_message

    @property
    def download_progress(self) -> float:
        return self._view.download_progress

    @property
    def is_supported(self) -> bool:
        return self._view.is_supported

    @property
    def is_available(self) -> bool:
        return self._view.is_available

    @property
    def is_downloading(self) -> bool:
        return self._view.is_downloading

    @property
    def show_download_prompt(self) -> bool:
        return self._view.show_download_prompt

    @property
    def show_ai_controls(self) -> bool:
        return self._view.show_ai_controls

    @property
    def current_resolution_text(self) -> str:
        return self._view.current_resolution_text

    @property
    def new_resolution_text(self) -> str:
        return self._view.new_resolution_text

    def start(self) -> None:
        self._machine.start()
        self._refresh()

    def toggle_feature(self, enabled: bool) -> None:
        self._machine.toggle_feature(enabled)

    def request_download(self) -> bool:
        return self._machine.request_download()

    def set_scale(self, scale: int) -> None:
        self._settings.set_ai_super_resolution_scale(scale)

    def subscribe(self, listener: ViewListener) -> Subscription:
        self._listeners.append(listener)

        def _release() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return Subscription(_release)

    async def wait_idle(self) -> None:
        while True:
            await self._machine.wait_idle()
            task = self._dimensions_task
            if task is None or task.done():
                if not self._machine.busy:
                    return
                continue
            await asyncio.wait({task})

    def close(self) -> None:
        self._machine_subscription.unsubscribe()
        self._machine.close()
        if self._dimensions_task is not None and not self._dimensions_task.done():
            self._dimensions_task.cancel()
        self._listeners.clear()

    def _project(self) -> ViewState:
        return project_view_state(
            self._machine.state,
            self._settings.snapshot(),
            self._batch,
            status_message=self._machine.status_message,
            download_progress=self._machine.download_progress,
        )

    def _refresh(self) -> None:
        if (
            self._settings.use_ai_super_resolution
            and self._batch.count == 1
            and self._batch.dimensions is None
        ):
            self._load_dimensions()
        view = self._project()
        if view == self._view:
            return
        self._view = view
        for listener in list(self._listeners):
            listener(view)

    def _load_dimensions(self) -> None:
        if self._dimensions_task is not None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._batch.load_dimensions()
            return
        self._dimensions_task = loop.create_task(self._load_dimensions_async())

    async def _load_dimensions_async(self) -> None:
        await self._batch.load_dimensions_async()
        self._refresh()
