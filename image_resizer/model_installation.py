from __future__ import annotations

import asyncio
import hashlib
import json
import os
import shutil
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable
from urllib.parse import unquote, urlparse
from urllib.request import urlopen

from image_resizer.config import ModelSource, resolve_data_dir
from image_resizer.error_handling import UserFacingError, as_user_facing_error
from image_resizer.readiness import ProgressCallback, ProvisionResult, ReadyState
from image_resizer.structured_logging import StructuredLogger


CHUNK_SIZE = 1024 * 1024
DOWNLOAD_TIMEOUT_SECONDS = 60.0
DEFAULT_WEIGHTS_NAME = "weights.bin"


@dataclass(frozen=True)
class InstallPaths:
    root: Path
    weights: Path
    manifest: Path


@dataclass(frozen=True)
class InstallResult:
    paths: InstallPaths
    size_bytes: int
    checksum: str | None


def resolve_model_cache_dir(base_dir: Path | None = None) -> Path:
    data_dir = Path(base_dir).expanduser() if base_dir is not None else resolve_data_dir()
    return data_dir / "models"


def resolve_install_paths(
    name: str,
    version: str,
    *,
    base_dir: Path | None = None,
    filename: str | None = None,
) -> InstallPaths:
    model_dir = resolve_model_cache_dir(base_dir) / _slugify(name) / _slugify(version or "latest")
    return InstallPaths(
        root=model_dir,
        weights=model_dir / (filename or DEFAULT_WEIGHTS_NAME),
        manifest=model_dir / "manifest.json",
    )


def find_installation(
    name: str, version: str, *, base_dir: Path | None = None
) -> InstallPaths | None:
    """Return the paths of a complete installation, or None if anything is missing."""
    paths = resolve_install_paths(name, version, base_dir=base_dir)
    manifest = _load_manifest(paths.manifest)
    if manifest is None:
        return None
    weights_name = str(manifest.get("weights_filename") or DEFAULT_WEIGHTS_NAME)
    paths = resolve_install_paths(name, version, base_dir=base_dir, filename=weights_name)
    if not paths.weights.is_file():
        return None
    return paths


def install_model(
    source: ModelSource,
    *,
    base_dir: Path | None = None,
    progress: ProgressCallback | None = None,
) -> InstallResult:
    weights_url = source.weights_url or ""
    if not weights_url.strip() or weights_url.strip().upper() == "TBD":
        raise UserFacingError(
            title="Model weights unavailable",
            summary="This model does not have downloadable weights yet.",
            suggested_fixes=(
                "Set IMAGE_RESIZER_AI_MODEL_URL to the model's download location.",
                "Check for updates when weights become available.",
            ),
            error_code="MODEL-001",
            can_retry=False,
        )

    paths = resolve_install_paths(
        source.name,
        source.version,
        base_dir=base_dir,
        filename=_infer_weights_filename(weights_url),
    )
    paths.root.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(prefix="weights_", suffix=".tmp", dir=paths.root)
    os.close(fd)
    tmp_path = Path(tmp_name)
    try:
        size_bytes, digest = _download_weights(weights_url, tmp_path, progress)
        expected = _parse_sha256(source.checksum)
        if expected is not None and digest != expected:
            raise UserFacingError(
                title="Model download failed",
                summary="The downloaded file did not match the expected checksum.",
                suggested_fixes=(
                    "Retry the download.",
                    "Verify the network connection and try again.",
                ),
                error_code="MODEL-002",
                can_retry=True,
            )
        os.replace(tmp_path, paths.weights)
        _write_manifest(paths, source, size_bytes, digest)
        return InstallResult(paths=paths, size_bytes=size_bytes, checksum=digest)
    finally:
        if tmp_path.exists():
            tmp_path.unlink(missing_ok=True)


def uninstall_model(name: str, version: str, *, base_dir: Path | None = None) -> None:
    paths = resolve_install_paths(name, version, base_dir=base_dir)
    if paths.root.exists():
        shutil.rmtree(paths.root, ignore_errors=True)


class LocalModelProvider:
    """Capability provider backed by weights installed in the user data dir."""

    def __init__(
        self,
        source: ModelSource,
        *,
        base_dir: Path | None = None,
        policy_disabled: bool = False,
        logger: StructuredLogger | None = None,
        installer: Callable[..., InstallResult] = install_model,
    ) -> None:
        self._source = source
        self._base_dir = base_dir
        self._policy_disabled = policy_disabled
        self._logger = logger
        self._installer = installer

    @property
    def source(self) -> ModelSource:
        return self._source

    def installation(self) -> InstallPaths | None:
        return find_installation(
            self._source.name, self._source.version, base_dir=self._base_dir
        )

    def get_ready_state(self) -> ReadyState:
        if self._policy_disabled:
            return ReadyState.DISABLED_BY_USER
        if self.installation() is None:
            return ReadyState.NOT_READY
        return ReadyState.READY

    async def ensure_ready(self, progress: ProgressCallback | None = None) -> ProvisionResult:
        if self._policy_disabled:
            return ProvisionResult(success=False, reason="AI features are disabled by policy.")
        if self.installation() is not None:
            return ProvisionResult(success=True)

        loop = asyncio.get_running_loop()

        def _report(value: float) -> None:
            if progress is not None:
                loop.call_soon_threadsafe(progress, value)

        try:
            result = await asyncio.to_thread(
                self._installer,
                self._source,
                base_dir=self._base_dir,
                progress=_report,
            )
        except Exception as exc:  # noqa: BLE001
            error = as_user_facing_error(exc)
            if self._logger:
                self._logger.log_event(
                    "ERROR",
                    "model_install_failed",
                    "Model installation failed",
                    model=self._source.name,
                    version=self._source.version,
                    error=str(exc),
                    error_code=error.error_code,
                )
            return ProvisionResult(success=False, reason=error.summary)

        if self._logger:
            self._logger.log_event(
                "INFO",
                "model_installed",
                "Model installed",
                model=self._source.name,
                version=self._source.version,
                size_bytes=result.size_bytes,
                weights=str(result.paths.weights),
            )
        return ProvisionResult(success=True)


def _infer_weights_filename(weights_url: str) -> str:
    parsed = urlparse(weights_url)
    if parsed.path:
        name = Path(unquote(parsed.path)).name
        if name:
            return name
    return DEFAULT_WEIGHTS_NAME


def _download_weights(
    url: str, dest: Path, progress: ProgressCallback | None
) -> tuple[int, str]:
    parsed = urlparse(url)
    if parsed.scheme in ("", "file"):
        source = _resolve_file_url(parsed, url)
        with source.open("rb") as src:
            return _copy_with_checksum(src, dest, source.stat().st_size, progress)
    if parsed.scheme not in ("http", "https"):
        raise UserFacingError(
            title="Unsupported download",
            summary="We can only install models from http(s) or local files.",
            suggested_fixes=("Check the configured model URL.",),
            error_code="MODEL-003",
            can_retry=False,
        )
    with urlopen(url, timeout=DOWNLOAD_TIMEOUT_SECONDS) as response:  # noqa: S310
        total = _content_length(response.headers.get("Content-Length"))
        return _copy_with_checksum(response, dest, total, progress)


def _resolve_file_url(parsed, url: str) -> Path:
    if parsed.scheme == "file":
        path = Path(unquote(parsed.path))
        if os.name == "nt" and path.as_posix().startswith("/"):
            path = Path(path.as_posix().lstrip("/"))
        return path
    return Path(url)


def _copy_with_checksum(
    src, dest: Path, total: int | None, progress: ProgressCallback | None
) -> tuple[int, str]:
    digest = hashlib.sha256()
    size_bytes = 0
    with dest.open("wb") as handle:
        while True:
            chunk = src.read(CHUNK_SIZE)
            if not chunk:
                break
            handle.write(chunk)
            digest.update(chunk)
            size_bytes += len(chunk)
            if progress is not None and total:
                progress(min(1.0, size_bytes / total))
    return size_bytes, digest.hexdigest()


def _content_length(value: str | None) -> int | None:
    if not value:
        return None
    try:
        parsed = int(value)
    except ValueError:
        return None
    return parsed if parsed > 0 else None


def _write_manifest(
    paths: InstallPaths,
    source: ModelSource,
    size_bytes: int,
    digest: str,
) -> None:
    payload = {
        "name": source.name,
        "version": source.version,
        "weights_url": source.weights_url,
        "weights_filename": paths.weights.name,
        "size_bytes": size_bytes,
        "checksum": f"sha256:{digest}",
        "installed_at": _iso_utc_now(),
    }
    paths.manifest.write_text(json.dumps(payload, indent=2), encoding="utf-8")


def _load_manifest(path: Path) -> dict[str, object] | None:
    if not path.is_file():
        return None
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return None
    if not isinstance(payload, dict):
        return None
    return payload


def _parse_sha256(checksum: str | None) -> str | None:
    if not checksum:
        return None
    if checksum.lower().startswith("sha256:"):
        value = checksum.split(":", 1)[1].strip().lower()
        if value and value != "todo":
            return value
    return None


def _iso_utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _slugify(value: str) -> str:
    cleaned = []
    for char in value.lower().strip():
        if char.isalnum():
            cleaned.append(char)
        else:
            if cleaned and cleaned[-1] != "-":
                cleaned.append("-")
    slug = "".join(cleaned).strip("-")
    return slug or "model"
