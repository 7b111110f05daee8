from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from urllib.error import URLError

from image_resizer import resources


@dataclass(frozen=True)
class UserFacingError(Exception):
    title: str
    summary: str
    suggested_fixes: tuple[str, ...] = ()
    error_code: str = "APP-000"
    can_retry: bool = True

    def __str__(self) -> str:
        return f"{self.summary} (code {self.error_code})"


class FeatureFailure(Enum):
    HARDWARE_INELIGIBLE = "AISR-001"
    PROVIDER_DISABLED = "AISR-002"
    PROVIDER_UNAVAILABLE = "AISR-003"
    DOWNLOAD_FAILED = "AISR-004"
    ENGINE_INIT_FAILED = "AISR-005"
    IMAGE_PROBE_FAILED = "AISR-006"
    DOWNLOAD_CANCELLED = "AISR-007"

    @property
    def error_code(self) -> str:
        return self.value


_FEATURE_ERRORS: dict[FeatureFailure, tuple[str, str, tuple[str, ...], bool]] = {
    FeatureFailure.HARDWARE_INELIGIBLE: (
        "AI super resolution unavailable",
        resources.AI_MODEL_NOT_SUPPORTED,
        ("AI super resolution requires a supported processor architecture.",),
        False,
    ),
    FeatureFailure.PROVIDER_DISABLED: (
        "AI features disabled",
        resources.AI_MODEL_DISABLED_BY_USER,
        ("Turn AI features back on in system settings, then re-enable the option.",),
        False,
    ),
    FeatureFailure.PROVIDER_UNAVAILABLE: (
        "AI super resolution unavailable",
        resources.AI_MODEL_NOT_SUPPORTED,
        ("Toggle the option off and on again to retry the check.",),
        True,
    ),
    FeatureFailure.DOWNLOAD_FAILED: (
        "Model download failed",
        resources.AI_MODEL_DOWNLOAD_FAILED,
        (
            "Check your network connection and try again.",
            "If the issue persists, check the logs for details.",
        ),
        True,
    ),
    FeatureFailure.ENGINE_INIT_FAILED: (
        "AI engine unavailable",
        resources.AI_ENGINE_DEGRADED,
        ("Images will be resized without AI until the app is restarted.",),
        True,
    ),
    FeatureFailure.IMAGE_PROBE_FAILED: (
        "Image size unknown",
        resources.AI_UNKNOWN_SIZE,
        ("Verify the first selected file is a readable image.",),
        False,
    ),
    FeatureFailure.DOWNLOAD_CANCELLED: (
        "Model download cancelled",
        resources.AI_MODEL_DOWNLOAD_CANCELLED,
        ("Start the download again when you're ready.",),
        True,
    ),
}


def feature_error(kind: FeatureFailure) -> UserFacingError:
    title, summary, fixes, can_retry = _FEATURE_ERRORS[kind]
    return UserFacingError(
        title=title,
        summary=summary,
        suggested_fixes=fixes,
        error_code=kind.error_code,
        can_retry=can_retry,
    )


def as_user_facing_error(exc: Exception) -> UserFacingError:
    if isinstance(exc, UserFacingError):
        return exc

    if isinstance(exc, FileNotFoundError):
        return UserFacingError(
            title="File not found",
            summary="We couldn't find one of the files needed for this run.",
            suggested_fixes=(
                "Verify the file still exists in its original location.",
                "Re-add the file to the list and try again.",
            ),
            error_code="IO-001",
            can_retry=True,
        )

    if isinstance(exc, PermissionError):
        return UserFacingError(
            title="Access denied",
            summary="We don't have permission to read or write one of the files.",
            suggested_fixes=(
                "Move the file to a readable location.",
                "Check file permissions and try again.",
            ),
            error_code="IO-002",
            can_retry=True,
        )

    if isinstance(exc, (URLError, TimeoutError, ConnectionError)):
        return UserFacingError(
            title="Network error",
            summary="We couldn't reach the download server.",
            suggested_fixes=(
                "Check your network connection.",
                "Try again in a moment.",
            ),
            error_code="NET-001",
            can_retry=True,
        )

    return UserFacingError(
        title="Something went wrong",
        summary="We couldn't complete the request.",
        suggested_fixes=(
            "Try again in a moment.",
            "If the issue persists, check the logs for details.",
        ),
        error_code="APP-001",
        can_retry=True,
    )
