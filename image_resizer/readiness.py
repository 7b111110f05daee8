from __future__ import annotations

import inspect
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Protocol, Union

from image_resizer.error_handling import FeatureFailure
from image_resizer.structured_logging import StructuredLogger


ProgressCallback = Callable[[float], None]


class ReadyState(Enum):
    """What the capability provider reports about the on-device model."""

    READY = "ready"
    NOT_READY = "not_ready"
    DISABLED_BY_USER = "disabled_by_user"


class ReadinessResult(Enum):
    READY = "ready"
    NOT_READY = "not_ready"
    DISABLED_BY_USER = "disabled_by_user"
    UNKNOWN_FAILURE = "unknown_failure"


@dataclass(frozen=True)
class ProvisionResult:
    success: bool
    reason: str | None = None


class CapabilityProvider(Protocol):
    def get_ready_state(self) -> Union[ReadyState, Awaitable[ReadyState]]: ...

    async def ensure_ready(
        self, progress: ProgressCallback | None = None
    ) -> ProvisionResult: ...


_RESULTS = {
    ReadyState.READY: ReadinessResult.READY,
    ReadyState.NOT_READY: ReadinessResult.NOT_READY,
    ReadyState.DISABLED_BY_USER: ReadinessResult.DISABLED_BY_USER,
}


class ReadinessOracle:
    def __init__(
        self,
        provider: CapabilityProvider,
        logger: StructuredLogger | None = None,
    ) -> None:
        self._provider = provider
        self._logger = logger

    async def query_state(self) -> ReadinessResult:
        try:
            state = self._provider.get_ready_state()
            if inspect.isawaitable(state):
                state = await state
        except Exception as exc:  # noqa: BLE001
            self._log_failure("Capability provider raised", error=str(exc))
            return ReadinessResult.UNKNOWN_FAILURE

        result = _RESULTS.get(state) if isinstance(state, ReadyState) else None
        if result is None:
            self._log_failure("Capability provider returned an unknown state", state=repr(state))
            return ReadinessResult.UNKNOWN_FAILURE
        return result

    def _log_failure(self, message: str, **fields: object) -> None:
        if self._logger:
            self._logger.log_event(
                "WARNING",
                "readiness_query_failed",
                message,
                error_code=FeatureFailure.PROVIDER_UNAVAILABLE.error_code,
                **fields,
            )
