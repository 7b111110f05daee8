from __future__ import annotations

import argparse
import asyncio
import json
import sys
import tempfile
from pathlib import Path

from image_resizer.batch import BatchContext
from image_resizer.config import AiFeatureConfig, load_config
from image_resizer.error_handling import UserFacingError
from image_resizer.feature_state import FeatureState
from image_resizer.inference_engine import EngineHandle, ModelEngineFactory
from image_resizer.session import AiFeatureSession
from image_resizer.settings_store import SettingsStore
from image_resizer.structured_logging import StructuredLogger


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_usage(sys.stderr)
        print("error: a command is required", file=sys.stderr)
        return 2

    config = load_config()
    logger = StructuredLogger("cli", level=config.log_level, log_dir=config.data_dir / "logs")
    try:
        view = asyncio.run(_run(args, config, logger))
    except UserFacingError as exc:
        print(f"error: {exc}", file=sys.stderr)
        for fix in exc.suggested_fixes:
            print(f"  - {fix}", file=sys.stderr)
        return 1
    finally:
        logger.close()

    print(json.dumps(view, indent=2, ensure_ascii=False))
    if args.command == "describe":
        return 0
    return 0 if view["is_available"] else 1


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="image_resizer",
        description="Inspect and provision the AI super resolution feature.",
    )
    subparsers = parser.add_subparsers(dest="command")

    status = subparsers.add_parser("status", help="Check whether AI super resolution is ready")
    status.add_argument(
        "--enable",
        action="store_true",
        help="Turn the AI option on before checking (persisted)",
    )

    subparsers.add_parser("download", help="Enable the feature and download the model if needed")

    describe = subparsers.add_parser("describe", help="Show current and upscaled image sizes")
    describe.add_argument("inputs", nargs="+", help="Image files in the batch")
    describe.add_argument("--scale", type=int, default=None, help="AI scale factor (1-8)")
    return parser


async def _run(
    args: argparse.Namespace,
    config: AiFeatureConfig,
    logger: StructuredLogger,
) -> dict[str, object]:
    if args.command != "describe":
        return await _run_session(args, config, logger, settings=None)
    # describe must not touch the stored preferences.
    with tempfile.TemporaryDirectory(prefix="image_resizer_") as scratch:
        settings = SettingsStore(Path(scratch) / "settings.json", logger=logger)
        return await _run_session(args, config, logger, settings=settings)


async def _run_session(
    args: argparse.Namespace,
    config: AiFeatureConfig,
    logger: StructuredLogger,
    *,
    settings: SettingsStore | None,
) -> dict[str, object]:
    inputs = getattr(args, "inputs", None) or []
    batch = BatchContext.from_paths(inputs, logger=logger)
    engine_handle = EngineHandle(
        ModelEngineFactory(config.model, config.entrypoint, base_dir=config.data_dir),
        logger=logger,
    )
    session = AiFeatureSession.from_config(
        config, batch, engine_handle=engine_handle, settings=settings, logger=logger
    )
    try:
        session.start()
        if args.command in ("download", "describe") or getattr(args, "enable", False):
            session.toggle_feature(True)
        if args.command == "describe" and args.scale is not None:
            session.set_scale(args.scale)
        await session.wait_idle()

        if args.command == "download" and session.state is FeatureState.MODEL_NOT_READY:
            session.request_download()
            await session.wait_idle()
        return session.view_state.as_dict()
    finally:
        session.close()
        engine_handle.dispose()
