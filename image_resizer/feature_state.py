"""Canonical readiness state of the AI super-resolution feature.

The state machine is the only writer of :class:`FeatureState`. Every
asynchronous operation it starts (readiness check, model download) carries an
:class:`OperationToken`; results whose token is no longer current are dropped,
so a slow check started before the user toggled the feature off and on again
can never overwrite the outcome of the newer one.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable, Coroutine

from image_resizer import resources
from image_resizer.capability_probe import CapabilityProbe, Eligibility
from image_resizer.error_handling import FeatureFailure, feature_error
from image_resizer.readiness import ReadinessOracle, ReadinessResult
from image_resizer.settings_store import (
    DEFAULT_AI_SCALE,
    SettingChanged,
    SettingName,
    SettingsStore,
    Subscription,
)
from image_resizer.structured_logging import StructuredLogger

if TYPE_CHECKING:
    from image_resizer.provisioning import ProvisionOrchestrator


class FeatureState(Enum):
    UNKNOWN = "unknown"
    NOT_SUPPORTED = "not_supported"
    MODEL_NOT_READY = "model_not_ready"
    MODEL_DOWNLOADING = "model_downloading"
    READY = "ready"


class Trigger(Enum):
    RECHECK = "recheck"
    PROBE_UNSUPPORTED = "probe_unsupported"
    PROVIDER_DISABLED = "provider_disabled"
    PROVIDER_FAILED = "provider_failed"
    MODEL_NOT_READY = "model_not_ready"
    MODEL_READY = "model_ready"
    DOWNLOAD_REQUESTED = "download_requested"
    DOWNLOAD_SUCCEEDED = "download_succeeded"
    DOWNLOAD_FAILED = "download_failed"
    DOWNLOAD_CANCELLED = "download_cancelled"


TRANSITIONS: dict[tuple[FeatureState, Trigger], FeatureState] = {
    (FeatureState.UNKNOWN, Trigger.PROBE_UNSUPPORTED): FeatureState.NOT_SUPPORTED,
    (FeatureState.UNKNOWN, Trigger.PROVIDER_DISABLED): FeatureState.NOT_SUPPORTED,
    (FeatureState.UNKNOWN, Trigger.PROVIDER_FAILED): FeatureState.NOT_SUPPORTED,
    (FeatureState.UNKNOWN, Trigger.MODEL_NOT_READY): FeatureState.MODEL_NOT_READY,
    (FeatureState.UNKNOWN, Trigger.MODEL_READY): FeatureState.READY,
    (FeatureState.MODEL_NOT_READY, Trigger.DOWNLOAD_REQUESTED): FeatureState.MODEL_DOWNLOADING,
    (FeatureState.MODEL_DOWNLOADING, Trigger.DOWNLOAD_SUCCEEDED): FeatureState.READY,
    (FeatureState.MODEL_DOWNLOADING, Trigger.DOWNLOAD_FAILED): FeatureState.MODEL_NOT_READY,
    (FeatureState.MODEL_DOWNLOADING, Trigger.DOWNLOAD_CANCELLED): FeatureState.MODEL_NOT_READY,
}

_FAILURES = {
    Trigger.PROBE_UNSUPPORTED: FeatureFailure.HARDWARE_INELIGIBLE,
    Trigger.PROVIDER_DISABLED: FeatureFailure.PROVIDER_DISABLED,
    Trigger.PROVIDER_FAILED: FeatureFailure.PROVIDER_UNAVAILABLE,
    Trigger.DOWNLOAD_FAILED: FeatureFailure.DOWNLOAD_FAILED,
    Trigger.DOWNLOAD_CANCELLED: FeatureFailure.DOWNLOAD_CANCELLED,
}

_MESSAGES = {
    Trigger.RECHECK: resources.AI_MODEL_CHECKING,
    Trigger.MODEL_NOT_READY: resources.AI_MODEL_NOT_AVAILABLE,
    Trigger.MODEL_READY: "",
    Trigger.DOWNLOAD_REQUESTED: resources.AI_MODEL_DOWNLOADING,
    Trigger.DOWNLOAD_SUCCEEDED: "",
}

_READINESS_TRIGGERS = {
    ReadinessResult.READY: Trigger.MODEL_READY,
    ReadinessResult.NOT_READY: Trigger.MODEL_NOT_READY,
    ReadinessResult.DISABLED_BY_USER: Trigger.PROVIDER_DISABLED,
    ReadinessResult.UNKNOWN_FAILURE: Trigger.PROVIDER_FAILED,
}


def message_for(trigger: Trigger) -> str:
    failure = _FAILURES.get(trigger)
    if failure is not None:
        return feature_error(failure).summary
    return _MESSAGES.get(trigger, "")


@dataclass(frozen=True)
class OperationToken:
    generation: int


StateListener = Callable[["FeatureStateMachine"], None]


class FeatureStateMachine:
    def __init__(
        self,
        settings: SettingsStore,
        probe: CapabilityProbe,
        oracle: ReadinessOracle,
        orchestrator: "ProvisionOrchestrator",
        logger: StructuredLogger | None = None,
    ) -> None:
        self._settings = settings
        self._probe = probe
        self._oracle = oracle
        self._orchestrator = orchestrator
        self._logger = logger

        self._state = FeatureState.UNKNOWN
        self._status_message = resources.AI_MODEL_NOT_CHECKED
        self._download_progress = 0.0
        self._engine_degraded = False

        self._generation = 0
        self._task: asyncio.Task | None = None
        self._settings_subscription: Subscription | None = None
        self._listeners: list[StateListener] = []
        self._closed = False

    @property
    def state(self) -> FeatureState:
        return self._state

    @property
    def status_message(self) -> str:
        return self._status_message

    @property
    def download_progress(self) -> float:
        return self._download_progress

    @property
    def engine_degraded(self) -> bool:
        return self._engine_degraded

    @property
    def settings(self) -> SettingsStore:
        return self._settings

    @property
    def busy(self) -> bool:
        return self._task is not None and not self._task.done()

    def subscribe(self, listener: StateListener) -> Subscription:
        self._listeners.append(listener)

        def _release() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return Subscription(_release)

    def start(self) -> None:
        if self._closed:
            raise RuntimeError("FeatureStateMachine is closed")
        if self._settings_subscription is None:
            self._settings_subscription = self._settings.subscribe(self._on_setting_changed)
        if self._settings.use_ai_super_resolution:
            self._begin_check()

    def toggle_feature(self, enabled: bool) -> None:
        self._settings.set_use_ai_super_resolution(enabled)

    def request_download(self) -> bool:
        if (
            self._closed
            or not self._settings.use_ai_super_resolution
            or self._state is not FeatureState.MODEL_NOT_READY
        ):
            self._log(
                "INFO",
                "download_ignored",
                "Download requested while model is not awaiting download",
                state=self._state.value,
                enabled=self._settings.use_ai_super_resolution,
            )
            return False
        token = self._next_token()
        self._spawn(self._orchestrator.provision(self, token))
        return True

    def is_current(self, token: OperationToken) -> bool:
        return not self._closed and token.generation == self._generation

    def apply(
        self,
        token: OperationToken,
        trigger: Trigger,
        message: str | None = None,
    ) -> bool:
        """Apply ``trigger`` if ``token`` is still the active operation."""
        if not self.is_current(token):
            self._log(
                "DEBUG",
                "stale_result_dropped",
                "Dropped result of a superseded operation",
                trigger=trigger.value,
                generation=token.generation,
                current_generation=self._generation,
            )
            return False
        return self._transition(trigger, message)

    def set_progress(self, token: OperationToken, value: float) -> None:
        if not self.is_current(token):
            return
        clamped = min(1.0, max(0.0, float(value)))
        if clamped == self._download_progress:
            return
        self._download_progress = clamped
        self._notify()

    def record_engine_status(self, token: OperationToken, *, degraded: bool) -> None:
        if not self.is_current(token) or self._state is not FeatureState.READY:
            return
        self._engine_degraded = degraded
        if degraded:
            self._status_message = feature_error(FeatureFailure.ENGINE_INIT_FAILED).summary
        self._notify()

    async def wait_idle(self) -> None:
        while self._task is not None and not self._task.done():
            await asyncio.wait({self._task})

    def close(self) -> None:
        if self._closed:
            return
        self._cancel_active()
        self._closed = True
        if self._settings_subscription is not None:
            self._settings_subscription.unsubscribe()
            self._settings_subscription = None
        self._listeners.clear()

    def _on_setting_changed(self, event: SettingChanged) -> None:
        if event.name is SettingName.USE_AI_SUPER_RESOLUTION:
            if event.new_value:
                # Enabling always starts from the default scale.
                self._settings.set_ai_super_resolution_scale(DEFAULT_AI_SCALE)
                self._begin_check()
            else:
                self._cancel_active()
        self._notify()

    def _begin_check(self) -> None:
        token = self._next_token()
        self._transition(Trigger.RECHECK, None)
        self._spawn(self._run_check(token))

    async def _run_check(self, token: OperationToken) -> None:
        try:
            if self._probe.check_eligibility() is not Eligibility.SUPPORTED:
                self.apply(token, Trigger.PROBE_UNSUPPORTED)
                return
            result = await self._oracle.query_state()
            trigger = _READINESS_TRIGGERS[result]
            if self.apply(token, trigger) and trigger is Trigger.MODEL_READY:
                await self._orchestrator.initialize_engine(self, token)
        except Exception as exc:  # noqa: BLE001
            self._log(
                "ERROR",
                "readiness_check_failed",
                "Readiness check failed unexpectedly",
                error=str(exc),
                error_code=FeatureFailure.PROVIDER_UNAVAILABLE.error_code,
            )
            if self.is_current(token) and self._state is FeatureState.UNKNOWN:
                self._transition(Trigger.PROVIDER_FAILED, None)

    def _cancel_active(self) -> None:
        """Supersede the in-flight operation and restore a resolvable state."""
        was_busy = self.busy
        self._next_token()
        if self._state is FeatureState.MODEL_DOWNLOADING:
            self._transition(Trigger.DOWNLOAD_CANCELLED, None)
        elif self._state is FeatureState.UNKNOWN and was_busy:
            self._status_message = resources.AI_MODEL_NOT_CHECKED
        if self._download_progress:
            self._download_progress = 0.0
            self._notify()

    def _next_token(self) -> OperationToken:
        self._generation += 1
        if self._task is not None and not self._task.done():
            self._task.cancel()
        return OperationToken(self._generation)

    def _spawn(self, coro: Coroutine[object, object, object]) -> None:
        self._task = asyncio.get_running_loop().create_task(coro)

    def _transition(self, trigger: Trigger, message: str | None) -> bool:
        previous = self._state
        if trigger is Trigger.RECHECK:
            target = FeatureState.UNKNOWN
        else:
            target = TRANSITIONS.get((previous, trigger))
        if target is None:
            self._log(
                "WARNING",
                "transition_rejected",
                "Rejected invalid state transition",
                from_state=previous.value,
                trigger=trigger.value,
            )
            return False

        self._state = target
        self._status_message = message if message is not None else message_for(trigger)
        if target is not FeatureState.READY:
            self._engine_degraded = False
        if target is not FeatureState.MODEL_DOWNLOADING:
            self._download_progress = 0.0
        failure = _FAILURES.get(trigger)
        self._log(
            "INFO",
            "state_transition",
            "Feature state changed",
            from_state=previous.value,
            to_state=target.value,
            trigger=trigger.value,
            generation=self._generation,
            error_code=failure.error_code if failure is not None else None,
        )
        self._notify()
        return True

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    def _log(self, level: str, event: str, message: str, **fields: object) -> None:
        if self._logger:
            self._logger.log_event(level, event, message, **fields)
