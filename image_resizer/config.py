"""Environment-driven configuration for the AI super-resolution feature."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from platformdirs import user_data_dir


APP_NAME = "ImageResizer"

DATA_DIR_ENV = "IMAGE_RESIZER_DATA_DIR"
SETTINGS_PATH_ENV = "IMAGE_RESIZER_SETTINGS_PATH"
LOG_LEVEL_ENV = "IMAGE_RESIZER_LOG_LEVEL"
ARCHITECTURES_ENV = "IMAGE_RESIZER_AI_ARCHITECTURES"
MIN_RAM_ENV = "IMAGE_RESIZER_AI_MIN_RAM_GB"
MODEL_NAME_ENV = "IMAGE_RESIZER_AI_MODEL_NAME"
MODEL_VERSION_ENV = "IMAGE_RESIZER_AI_MODEL_VERSION"
MODEL_URL_ENV = "IMAGE_RESIZER_AI_MODEL_URL"
MODEL_SHA256_ENV = "IMAGE_RESIZER_AI_MODEL_SHA256"
ENTRYPOINT_ENV = "IMAGE_RESIZER_AI_ENTRYPOINT"
DISABLED_ENV = "IMAGE_RESIZER_AI_DISABLED"

DEFAULT_ARCHITECTURES = ("arm64",)
DEFAULT_MODEL_NAME = "image-super-resolution"
DEFAULT_MODEL_VERSION = "1.0"

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class ModelSource:
    """Where the super-resolution weights come from."""

    name: str
    version: str
    weights_url: str | None
    checksum: str | None = None


@dataclass(frozen=True)
class AiFeatureConfig:
    data_dir: Path
    settings_path: Path
    log_level: str
    allowed_architectures: tuple[str, ...]
    minimum_ram_gb: int
    model: ModelSource
    entrypoint: str | None
    policy_disabled: bool


def load_config(environ: Mapping[str, str] | None = None) -> AiFeatureConfig:
    env = os.environ if environ is None else environ
    data_dir = resolve_data_dir(env)
    settings_path = _env_path(env, SETTINGS_PATH_ENV) or data_dir / "settings.json"
    checksum = _env_str(env, MODEL_SHA256_ENV)
    if checksum and not checksum.lower().startswith("sha256:"):
        checksum = f"sha256:{checksum}"
    return AiFeatureConfig(
        data_dir=data_dir,
        settings_path=settings_path,
        log_level=(_env_str(env, LOG_LEVEL_ENV) or "INFO").upper(),
        allowed_architectures=_parse_architectures(env.get(ARCHITECTURES_ENV)),
        minimum_ram_gb=_parse_non_negative_int(env.get(MIN_RAM_ENV)),
        model=ModelSource(
            name=_env_str(env, MODEL_NAME_ENV) or DEFAULT_MODEL_NAME,
            version=_env_str(env, MODEL_VERSION_ENV) or DEFAULT_MODEL_VERSION,
            weights_url=_env_str(env, MODEL_URL_ENV),
            checksum=checksum,
        ),
        entrypoint=_env_str(env, ENTRYPOINT_ENV),
        policy_disabled=(env.get(DISABLED_ENV, "").strip().lower() in _TRUTHY),
    )


def resolve_data_dir(environ: Mapping[str, str] | None = None) -> Path:
    env = os.environ if environ is None else environ
    return _env_path(env, DATA_DIR_ENV) or Path(user_data_dir(APP_NAME)).expanduser()


def _env_str(env: Mapping[str, str], name: str) -> str | None:
    value = env.get(name)
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def _env_path(env: Mapping[str, str], name: str) -> Path | None:
    value = _env_str(env, name)
    if value is None:
        return None
    return Path(value).expanduser()


def _parse_architectures(value: str | None) -> tuple[str, ...]:
    if not value:
        return DEFAULT_ARCHITECTURES
    parsed = tuple(
        token.strip().lower() for token in value.split(",") if token.strip()
    )
    return parsed or DEFAULT_ARCHITECTURES


def _parse_non_negative_int(value: str | None) -> int:
    if not value:
        return 0
    try:
        return max(0, int(value.strip()))
    except ValueError:
        return 0
