from __future__ import annotations

from dataclasses import dataclass

from image_resizer.error_handling import FeatureFailure, feature_error
from image_resizer.feature_state import FeatureState, FeatureStateMachine, OperationToken, Trigger
from image_resizer.inference_engine import EngineHandle
from image_resizer.readiness import CapabilityProvider, ProvisionResult
from image_resizer.structured_logging import StructuredLogger


@dataclass(frozen=True)
class ProvisionOutcome:
    success: bool
    reason: str | None = None


class ProvisionOrchestrator:
    """Downloads the model through the provider and brings the engine up afterwards."""

    def __init__(
        self,
        provider: CapabilityProvider,
        engine_handle: EngineHandle,
        logger: StructuredLogger | None = None,
    ) -> None:
        self._provider = provider
        self._engine_handle = engine_handle
        self._logger = logger

    @property
    def engine_handle(self) -> EngineHandle:
        return self._engine_handle

    async def provision(
        self, machine: FeatureStateMachine, token: OperationToken
    ) -> ProvisionOutcome:
        if machine.state is not FeatureState.MODEL_NOT_READY:
            return ProvisionOutcome(
                success=False,
                reason=f"Model download is not possible while {machine.state.value}.",
            )
        if not machine.apply(token, Trigger.DOWNLOAD_REQUESTED):
            return ProvisionOutcome(success=False, reason="Superseded by a newer request.")

        machine.set_progress(token, 0.0)
        self._log("INFO", "provision_start", "Model provisioning started", generation=token.generation)
        try:
            try:
                result = await self._provider.ensure_ready(
                    progress=lambda value: machine.set_progress(token, value)
                )
            except Exception as exc:  # noqa: BLE001
                result = ProvisionResult(success=False, reason=str(exc) or type(exc).__name__)

            if not isinstance(result, ProvisionResult) or not result.success:
                reason = getattr(result, "reason", None) or feature_error(
                    FeatureFailure.DOWNLOAD_FAILED
                ).summary
                self._log(
                    "ERROR",
                    "provision_failed",
                    "Model provisioning failed",
                    reason=reason,
                    error_code=FeatureFailure.DOWNLOAD_FAILED.error_code,
                )
                machine.apply(token, Trigger.DOWNLOAD_FAILED)
                return ProvisionOutcome(success=False, reason=reason)

            if not machine.apply(token, Trigger.DOWNLOAD_SUCCEEDED):
                return ProvisionOutcome(success=False, reason="Superseded by a newer request.")
            self._log("INFO", "provision_complete", "Model provisioning completed")
            await self.initialize_engine(machine, token)
            return ProvisionOutcome(success=True)
        finally:
            machine.set_progress(token, 0.0)

    async def initialize_engine(
        self, machine: FeatureStateMachine, token: OperationToken
    ) -> bool:
        ready = await self._engine_handle.ensure_initialized()
        machine.record_engine_status(token, degraded=not ready)
        return ready

    def _log(self, level: str, event: str, message: str, **fields: object) -> None:
        if self._logger:
            self._logger.log_event(level, event, message, **fields)
