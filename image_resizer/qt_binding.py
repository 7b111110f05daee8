from __future__ import annotations

from PySide6 import QtCore

from image_resizer.session import AiFeatureSession
from image_resizer.view_state import ViewState


class AiFeatureViewModel(QtCore.QObject):
    """Qt-facing wrapper that re-emits session view changes as a signal."""

    changed = QtCore.Signal()
    view_state_changed = QtCore.Signal(object)

    def __init__(self, session: AiFeatureSession, parent: QtCore.QObject | None = None) -> None:
        super().__init__(parent)
        self._session = session
        self._subscription = session.subscribe(self._on_view_changed)

    @property
    def session(self) -> AiFeatureSession:
        return self._session

    def _on_view_changed(self, view: ViewState) -> None:
        self.view_state_changed.emit(view)
        self.changed.emit()

    def _view(self) -> ViewState:
        return self._session.view_state

    def _is_supported(self) -> bool:
        return self._view().is_supported

    def _is_available(self) -> bool:
        return self._view().is_available

    def _is_downloading(self) -> bool:
        return self._view().is_downloading

    def _show_enable_control(self) -> bool:
        return self._view().show_enable_control

    def _show_download_prompt(self) -> bool:
        return self._view().show_download_prompt

    def _show_ai_controls(self) -> bool:
        return self._view().show_ai_controls

    def _show_size_descriptions(self) -> bool:
        return self._view().show_size_descriptions

    def _status_message(self) -> str:
        return self._view().status_message

    def _download_progress(self) -> float:
        return self._view().download_progress

    def _current_resolution_text(self) -> str:
        return self._view().current_resolution_text

    def _new_resolution_text(self) -> str:
        return self._view().new_resolution_text

    def _scale_description(self) -> str:
        return self._view().scale_description

    is_supported = QtCore.Property(bool, _is_supported, notify=changed)
    is_available = QtCore.Property(bool, _is_available, notify=changed)
    is_downloading = QtCore.Property(bool, _is_downloading, notify=changed)
    show_enable_control = QtCore.Property(bool, _show_enable_control, notify=changed)
    show_download_prompt = QtCore.Property(bool, _show_download_prompt, notify=changed)
    show_ai_controls = QtCore.Property(bool, _show_ai_controls, notify=changed)
    show_size_descriptions = QtCore.Property(bool, _show_size_descriptions, notify=changed)
    status_message = QtCore.Property(str, _status_message, notify=changed)
    download_progress = QtCore.Property(float, _download_progress, notify=changed)
    current_resolution_text = QtCore.Property(str, _current_resolution_text, notify=changed)
    new_resolution_text = QtCore.Property(str, _new_resolution_text, notify=changed)
    scale_description = QtCore.Property(str, _scale_description, notify=changed)

    @QtCore.Slot()
    def request_download(self) -> None:
        self._session.request_download()

    @QtCore.Slot(bool)
    def toggle_feature(self, enabled: bool) -> None:
        self._session.toggle_feature(enabled)

    def dispose(self) -> None:
        self._subscription.unsubscribe()
