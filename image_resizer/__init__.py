"""AI super-resolution readiness core for the desktop image resizer."""

from .feature_state import FeatureState, FeatureStateMachine
from .session import AiFeatureSession
from .view_state import ViewState, project_view_state

__all__ = [
    "AiFeatureSession",
    "AiFeatureViewModel",
    "FeatureState",
    "FeatureStateMachine",
    "ViewState",
    "project_view_state",
]


def __getattr__(name: str):
    """Load the Qt view model on first use so the CLI never imports PySide6."""
    if name == "AiFeatureViewModel":
        from .qt_binding import AiFeatureViewModel

        return AiFeatureViewModel
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
