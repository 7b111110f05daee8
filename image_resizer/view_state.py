from __future__ import annotations

from dataclasses import asdict, dataclass

from image_resizer import resources
from image_resizer.batch import BatchContext, ProbedDimensions
from image_resizer.feature_state import FeatureState
from image_resizer.settings_store import AiSettings, normalize_scale


@dataclass(frozen=True)
class ViewState:
    """Read-only flags and strings the UI binds to."""

    state: FeatureState
    setting_enabled: bool
    scale: int
    is_supported: bool
    is_available: bool
    is_downloading: bool
    is_ai_mode: bool
    show_enable_control: bool
    show_download_prompt: bool
    show_ai_controls: bool
    show_size_descriptions: bool
    contains_gif: bool
    current_resolution_text: str
    new_resolution_text: str
    scale_display: str
    scale_description: str
    status_message: str
    download_progress: float

    def as_dict(self) -> dict[str, object]:
        payload = asdict(self)
        payload["state"] = self.state.value
        return payload


def format_scale_name(scale: int) -> str:
    return f"{scale}×"


def format_dimensions(width: int, height: int) -> str:
    return f"{width} × {height}"


def format_labeled_size(label: str, value: str) -> str:
    return f"{label}: {value}"


def project_view_state(
    state: FeatureState,
    settings: AiSettings,
    batch: BatchContext | None = None,
    *,
    status_message: str = "",
    download_progress: float = 0.0,
) -> ViewState:
    enabled = settings.use_ai_super_resolution
    scale = normalize_scale(settings.ai_super_resolution_scale)
    has_multiple_files = batch.has_multiple_files if batch is not None else False

    is_supported = state not in (FeatureState.UNKNOWN, FeatureState.NOT_SUPPORTED)
    is_available = state is FeatureState.READY
    show_size_descriptions = enabled and not has_multiple_files

    current_text, new_text = "", ""
    dimensions = batch.dimensions if batch is not None else None
    if show_size_descriptions and dimensions is not None:
        current_text, new_text = _resolution_texts(dimensions, scale)

    scale_display = format_scale_name(scale)
    return ViewState(
        state=state,
        setting_enabled=enabled,
        scale=scale,
        is_supported=is_supported,
        is_available=is_available,
        is_downloading=state is FeatureState.MODEL_DOWNLOADING,
        is_ai_mode=is_supported and enabled,
        show_enable_control=is_supported,
        show_download_prompt=state is FeatureState.MODEL_NOT_READY and enabled,
        show_ai_controls=enabled and is_available,
        show_size_descriptions=show_size_descriptions,
        contains_gif=batch.contains_gif if batch is not None else False,
        current_resolution_text=current_text,
        new_resolution_text=new_text,
        scale_display=scale_display,
        scale_description=format_labeled_size(resources.AI_SCALE_LABEL, scale_display),
        status_message=status_message,
        download_progress=min(1.0, max(0.0, download_progress)),
    )


def _resolution_texts(dimensions: ProbedDimensions, scale: int) -> tuple[str, str]:
    if dimensions.size is None:
        return (
            format_labeled_size(resources.AI_CURRENT_LABEL, resources.AI_UNKNOWN_SIZE),
            format_labeled_size(resources.AI_NEW_LABEL, resources.AI_UNKNOWN_SIZE),
        )
    width, height = dimensions.size
    return (
        format_labeled_size(resources.AI_CURRENT_LABEL, format_dimensions(width, height)),
        format_labeled_size(resources.AI_NEW_LABEL, format_dimensions(width * scale, height * scale)),
    )
