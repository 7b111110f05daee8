import asyncio
import json
import platform
import tempfile
import unittest
from pathlib import Path

from PIL import Image

from image_resizer import resources
from image_resizer.batch import BatchContext
from image_resizer.capability_probe import CapabilityProbe
from image_resizer.config import load_config
from image_resizer.feature_state import FeatureState
from image_resizer.inference_engine import EngineHandle, ModelInferenceEngine
from image_resizer.readiness import ProvisionResult, ReadyState
from image_resizer.session import AiFeatureSession
from image_resizer.settings_store import SettingsStore
from image_resizer.structured_logging import StructuredLogger
from image_resizer.view_state import ViewState


class _GatedProvider:
    """Provider whose readiness answers wait until ``release`` is set."""

    def __init__(self, *states: ReadyState) -> None:
        self._states = list(states)
        self.release = asyncio.Event()
        self.release.set()

    async def get_ready_state(self) -> ReadyState:
        state = self._states.pop(0) if len(self._states) > 1 else self._states[0]
        await self.release.wait()
        return state

    async def ensure_ready(self, progress=None) -> ProvisionResult:
        return ProvisionResult(success=True)


class _Engine:
    async def initialize_async(self) -> bool:
        return True

    def upscale(self, input_path: Path, output_path: Path, scale: int) -> bool:
        return True


class _Factory:
    def create(self) -> _Engine:
        return _Engine()


class TestAiFeatureSession(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        temp_dir = tempfile.TemporaryDirectory()
        self.addCleanup(temp_dir.cleanup)
        self.root = Path(temp_dir.name)
        self.image_path = self.root / "photo.png"
        Image.new("RGB", (1920, 1080), color=(0, 0, 0)).save(self.image_path)

    def _make_session(
        self, provider: _GatedProvider, files: list[Path] | None = None
    ) -> AiFeatureSession:
        session = AiFeatureSession(
            SettingsStore(self.root / "settings.json"),
            BatchContext.from_paths(files if files is not None else [self.image_path]),
            provider,
            EngineHandle(_Factory()),
            probe=CapabilityProbe(allowed_architectures=("arm64",), machine=lambda: "arm64"),
        )
        self.addCleanup(session.close)
        return session

    async def test_disabled_session_stays_unknown(self) -> None:
        session = self._make_session(_GatedProvider(ReadyState.READY))
        views: list[ViewState] = []
        session.subscribe(views.append)

        session.start()
        await session.wait_idle()

        self.assertEqual(session.state, FeatureState.UNKNOWN)
        self.assertFalse(session.is_supported)
        self.assertEqual(session.current_resolution_text, "")
        self.assertEqual(views, [])

    async def test_enable_shows_sizes_for_single_file(self) -> None:
        session = self._make_session(_GatedProvider(ReadyState.READY))
        session.start()

        session.toggle_feature(True)
        await session.wait_idle()

        self.assertEqual(session.state, FeatureState.READY)
        self.assertTrue(session.show_ai_controls)
        self.assertEqual(session.current_resolution_text, "Current: 1920 × 1080")
        self.assertEqual(session.new_resolution_text, "New: 3840 × 2160")

        session.set_scale(4)

        self.assertEqual(session.new_resolution_text, "New: 7680 × 4320")
        self.assertEqual(session.view_state.scale_description, "Scale: 4×")
        self.assertIsInstance(session.engine, _Engine)

    async def test_multiple_files_hide_sizes(self) -> None:
        second = self.root / "second.gif"
        Image.new("RGB", (10, 10)).save(second)
        session = self._make_session(
            _GatedProvider(ReadyState.READY), files=[self.image_path, second]
        )
        session.start()

        session.toggle_feature(True)
        await session.wait_idle()

        self.assertFalse(session.view_state.show_size_descriptions)
        self.assertTrue(session.view_state.contains_gif)
        self.assertEqual(session.new_resolution_text, "")
        self.assertIsNone(session.batch.dimensions)

    async def test_listeners_see_each_distinct_view(self) -> None:
        session = self._make_session(_GatedProvider(ReadyState.NOT_READY))
        views: list[ViewState] = []
        subscription = session.subscribe(views.append)
        session.start()

        session.toggle_feature(True)
        await session.wait_idle()

        states = [view.state for view in views]
        self.assertIn(FeatureState.UNKNOWN, states)
        self.assertEqual(states[-1], FeatureState.MODEL_NOT_READY)
        self.assertTrue(views[-1].show_download_prompt)
        self.assertEqual(views[-1].status_message, resources.AI_MODEL_NOT_AVAILABLE)
        for earlier, later in zip(views, views[1:]):
            self.assertNotEqual(earlier, later)

        subscription.unsubscribe()
        count = len(views)
        session.toggle_feature(False)
        self.assertEqual(len(views), count)

    async def test_rapid_toggle_keeps_latest_check(self) -> None:
        provider = _GatedProvider(ReadyState.READY, ReadyState.NOT_READY)
        provider.release.clear()
        session = self._make_session(provider)
        session.start()

        session.toggle_feature(True)
        await asyncio.sleep(0)
        session.toggle_feature(False)
        session.toggle_feature(True)
        await asyncio.sleep(0)
        provider.release.set()
        await session.wait_idle()

        self.assertEqual(session.state, FeatureState.MODEL_NOT_READY)
        self.assertTrue(session.show_download_prompt)

    async def test_download_through_session(self) -> None:
        session = self._make_session(_GatedProvider(ReadyState.NOT_READY))
        session.start()
        session.toggle_feature(True)
        await session.wait_idle()
        views: list[ViewState] = []
        session.subscribe(views.append)

        self.assertTrue(session.request_download())
        await session.wait_idle()

        self.assertIn(FeatureState.MODEL_DOWNLOADING, [view.state for view in views])
        self.assertTrue(any(view.is_downloading for view in views))
        self.assertEqual(session.state, FeatureState.READY)
        self.assertFalse(session.is_downloading)
        self.assertEqual(session.download_progress, 0.0)

    async def test_download_refused_after_disable(self) -> None:
        session = self._make_session(_GatedProvider(ReadyState.NOT_READY))
        session.start()
        session.toggle_feature(True)
        await session.wait_idle()

        session.toggle_feature(False)

        self.assertFalse(session.show_download_prompt)
        self.assertFalse(session.request_download())
        await session.wait_idle()
        self.assertEqual(session.state, FeatureState.MODEL_NOT_READY)
        self.assertFalse(session.settings.use_ai_super_resolution)

    async def test_close_stops_updates(self) -> None:
        session = self._make_session(_GatedProvider(ReadyState.READY))
        views: list[ViewState] = []
        session.subscribe(views.append)
        session.start()

        session.close()
        session.settings.set_use_ai_super_resolution(True)
        await asyncio.sleep(0)

        self.assertEqual(views, [])
        self.assertEqual(session.state, FeatureState.UNKNOWN)


class TestSessionFromConfig(unittest.IsolatedAsyncioTestCase):
    async def test_local_model_is_installed_on_request(self) -> None:
        temp_dir = tempfile.TemporaryDirectory()
        self.addCleanup(temp_dir.cleanup)
        root = Path(temp_dir.name)
        weights = root / "esrgan.onnx"
        weights.write_bytes(b"weights" * 512)
        config = load_config(
            {
                "IMAGE_RESIZER_DATA_DIR": str(root / "data"),
                "IMAGE_RESIZER_AI_ARCHITECTURES": platform.machine() or "unknown",
                "IMAGE_RESIZER_AI_MODEL_URL": str(weights),
                "IMAGE_RESIZER_AI_ENTRYPOINT": "esrgan_runner",
            }
        )
        logger = StructuredLogger("session", log_dir=root / "logs")
        self.addCleanup(logger.close)

        session = AiFeatureSession.from_config(config, BatchContext.from_paths([]), logger=logger)
        self.addCleanup(session.close)
        session.start()
        session.toggle_feature(True)
        await session.wait_idle()

        self.assertEqual(session.state, FeatureState.MODEL_NOT_READY)
        self.assertEqual(session.current_resolution_text, "")

        session.request_download()
        await session.wait_idle()

        self.assertEqual(session.state, FeatureState.READY)
        self.assertIsInstance(session.engine, ModelInferenceEngine)
        self.assertTrue(config.settings_path.is_file())

        events = [
            json.loads(line)["event"]
            for line in logger.log_file.read_text(encoding="utf-8").splitlines()
        ]
        self.assertIn("state_transition", events)
        self.assertIn("model_installed", events)


if __name__ == "__main__":
    unittest.main()
