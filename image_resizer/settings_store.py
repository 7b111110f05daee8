from __future__ import annotations

import json
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable

from image_resizer.config import load_config
from image_resizer.structured_logging import StructuredLogger


MIN_AI_SCALE = 1
MAX_AI_SCALE = 8
DEFAULT_AI_SCALE = 2


class SettingName(str, Enum):
    USE_AI_SUPER_RESOLUTION = "use_ai_super_resolution"
    AI_SUPER_RESOLUTION_SCALE = "ai_super_resolution_scale"


@dataclass(frozen=True)
class SettingChanged:
    name: SettingName
    old_value: object
    new_value: object


@dataclass(frozen=True)
class AiSettings:
    use_ai_super_resolution: bool = False
    ai_super_resolution_scale: int = DEFAULT_AI_SCALE


SettingsListener = Callable[[SettingChanged], None]


def normalize_scale(value: object) -> int:
    """Snap anything outside [1, 8] (or not an int) back to the default scale."""
    if isinstance(value, bool) or not isinstance(value, int):
        return DEFAULT_AI_SCALE
    if value < MIN_AI_SCALE or value > MAX_AI_SCALE:
        return DEFAULT_AI_SCALE
    return value


class Subscription:
    def __init__(self, release: Callable[[], None]) -> None:
        self._release: Callable[[], None] | None = release

    @property
    def active(self) -> bool:
        return self._release is not None

    def unsubscribe(self) -> None:
        release, self._release = self._release, None
        if release is not None:
            release()


class SettingsStore:
    """Persists the user's AI preferences and announces every change."""

    def __init__(
        self,
        path: Path | None = None,
        logger: StructuredLogger | None = None,
    ) -> None:
        self._path = path or load_config().settings_path
        self._logger = logger
        self._listeners: list[SettingsListener] = []
        self._settings = self._load()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def use_ai_super_resolution(self) -> bool:
        return self._settings.use_ai_super_resolution

    @property
    def ai_super_resolution_scale(self) -> int:
        return self._settings.ai_super_resolution_scale

    def snapshot(self) -> AiSettings:
        return self._settings

    def set_use_ai_super_resolution(self, enabled: bool) -> None:
        self._update(SettingName.USE_AI_SUPER_RESOLUTION, bool(enabled))

    def set_ai_super_resolution_scale(self, scale: int) -> None:
        self._update(SettingName.AI_SUPER_RESOLUTION_SCALE, normalize_scale(scale))

    def subscribe(self, listener: SettingsListener) -> Subscription:
        self._listeners.append(listener)

        def _release() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return Subscription(_release)

    def _update(self, name: SettingName, value: object) -> None:
        old_value = getattr(self._settings, name.value)
        if old_value == value:
            return
        if name is SettingName.USE_AI_SUPER_RESOLUTION:
            self._settings = AiSettings(
                use_ai_super_resolution=bool(value),
                ai_super_resolution_scale=self._settings.ai_super_resolution_scale,
            )
        else:
            self._settings = AiSettings(
                use_ai_super_resolution=self._settings.use_ai_super_resolution,
                ai_super_resolution_scale=int(value),
            )
        self._save()
        event = SettingChanged(name=name, old_value=old_value, new_value=value)
        for listener in list(self._listeners):
            listener(event)

    def _load(self) -> AiSettings:
        if not self._path.is_file():
            return AiSettings()
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            return AiSettings()
        if not isinstance(payload, dict):
            return AiSettings()
        return AiSettings(
            use_ai_super_resolution=bool(
                payload.get(SettingName.USE_AI_SUPER_RESOLUTION.value, False)
            ),
            ai_super_resolution_scale=normalize_scale(
                payload.get(SettingName.AI_SUPER_RESOLUTION_SCALE.value, DEFAULT_AI_SCALE)
            ),
        )

    def _save(self) -> None:
        payload = {
            SettingName.USE_AI_SUPER_RESOLUTION.value: self._settings.use_ai_super_resolution,
            SettingName.AI_SUPER_RESOLUTION_SCALE.value: self._settings.ai_super_resolution_scale,
        }
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self._path.with_name(f"{self._path.name}.tmp")
            tmp_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
            os.replace(tmp_path, self._path)
        except OSError as exc:
            if self._logger:
                self._logger.log_event(
                    "WARNING",
                    "settings_save_failed",
                    "Could not persist settings",
                    path=str(self._path),
                    error=str(exc),
                )
