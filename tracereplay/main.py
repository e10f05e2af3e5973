"""Command-line entry points: ``tracereplay`` and ``tracereplay-record``."""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Optional

import structlog

from .config import Settings, get_settings
from .exceptions import BrowserLaunchError, SessionError, TraceLoadError, TraceValidationError
from .recording.validator import load_trace
from .replay.driver import ReplayDriver
from .utils.logging import configure_logging, log_operation

logger = structlog.get_logger()


async def replay_trace(
    trace_path: str,
    settings: Settings,
    headful: bool = False,
    respect_timing: bool = False,
    video: bool = False,
    speed: float = 1.0,
    timeout_ms: int = 2000,
    artifacts_dir: Optional[str] = None,
) -> int:
    """Replay a trace file; returns the process exit code."""
    try:
        trace = load_trace(trace_path)
    except (TraceLoadError, TraceValidationError) as e:
        logger.error("Trace rejected", path=trace_path, error=str(e))
        print(f"Error: {e}", file=sys.stderr)
        return 1

    driver = ReplayDriver(
        settings=settings,
        headless=not headful,
        respect_timing=respect_timing,
        speed=speed,
        timeout_ms=timeout_ms,
        video=video,
        artifacts_dir=Path(artifacts_dir) if artifacts_dir else None,
    )

    try:
        with log_operation("replay", trace=trace_path):
            result = await driver.run(trace)
    except BrowserLaunchError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print("\n" + "=" * 50)
    print("REPLAY SUMMARY")
    print("=" * 50)
    print(f"Trace: {trace_path}")
    print(f"Steps: {result.completed_steps}/{result.total_steps} completed")
    print(f"Failures: {len(result.failures)}")
    if result.failures:
        print(f"Artifacts: {driver.artifacts_dir}")
    print(f"Status: {result.status.value}")
    print("=" * 50 + "\n")
    return 0


async def record_session(url: str, output_dir: Path, settings: Settings) -> Path:
    """Record interactions in a headful browser until Stop is pressed."""
    from .dom.playwright_dom import PlaywrightDocument
    from .recording.bridge import OverlayIndicator, PlaywrightCaptureBridge
    from .recording.capture import CaptureEngine, CaptureOptions
    from .recording.export import TraceExporter
    from .replay.driver import BrowserConfig, create_browser_context
    from .session.mailbox import MessageType, SessionController, SessionMailbox, SessionMessage
    from .session.store import SessionStateStore

    config = BrowserConfig(
        headless=False,
        viewport_width=settings.viewport_width,
        viewport_height=settings.viewport_height,
        timeout_ms=settings.navigation_timeout_ms,
    )
    async with create_browser_context(config) as browser:
        page = browser.page
        document = PlaywrightDocument(
            page,
            navigation_timeout_ms=settings.navigation_timeout_ms,
            network_idle_timeout_ms=settings.network_idle_timeout_ms,
        )
        await document.navigate(url)

        await PlaywrightCaptureBridge(page, document).install()
        indicator = OverlayIndicator(page)
        engine = CaptureEngine(document, options=CaptureOptions.from_settings(settings), indicator=indicator)
        controller = SessionController(
            document,
            engine,
            SessionStateStore(settings.state_file),
            TraceExporter(output_dir),
        )
        mailbox = SessionMailbox(controller.handle, timeout_s=settings.message_timeout_s)
        await mailbox.start()

        async def send(kind: MessageType) -> dict:
            response = await mailbox.request(SessionMessage(type=kind.value, session_id="cli"))
            if not response.success:
                raise SessionError(f"{kind.value} failed: {response.error}")
            return response.data

        try:
            await send(MessageType.REC_START)
            print("Recording... press Stop in the page overlay or close the window to finish.")

            closed = asyncio.Event()
            page.on("close", lambda _: closed.set())
            waiters = [
                asyncio.create_task(indicator.stop_requested.wait()),
                asyncio.create_task(closed.wait()),
            ]
            _, pending = await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
            for task in pending:
                task.cancel()

            await send(MessageType.REC_STOP)
            dump = await send(MessageType.REC_DUMP)
        finally:
            await mailbox.stop()

    return Path(dump["path"])


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Replay a recorded browser interaction trace"
    )
    parser.add_argument(
        "trace",
        help="Path to the trace JSON file"
    )
    parser.add_argument(
        "--headful",
        action="store_true",
        help="Show the browser window"
    )
    parser.add_argument(
        "--respect-timing",
        action="store_true",
        help="Wait between steps as long as the user did while recording"
    )
    parser.add_argument(
        "--video",
        action="store_true",
        help="Record a video of the run into the artifacts directory"
    )
    parser.add_argument(
        "--speed",
        type=float,
        default=1.0,
        help="Typing speed multiplier (default: 1.0)"
    )
    parser.add_argument(
        "--timeout",
        type=int,
        default=2000,
        help="Per-element timeout in milliseconds (default: 2000)"
    )
    parser.add_argument(
        "--artifacts-dir",
        help="Directory for error logs, screenshots and video (default: ./artifacts)"
    )
    _add_logging_arguments(parser)
    return parser


def build_record_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Record browser interactions as a replayable trace"
    )
    parser.add_argument(
        "url",
        help="Page to open and record on"
    )
    parser.add_argument(
        "--output", "-o",
        help="Directory the trace is written to (default: ./traces)"
    )
    _add_logging_arguments(parser)
    return parser


def _add_logging_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: INFO)"
    )
    parser.add_argument(
        "--log-json",
        action="store_true",
        help="Emit logs as JSON lines"
    )


def _configure(args: argparse.Namespace, settings: Settings) -> None:
    configure_logging(
        level=args.log_level or settings.log_level,
        json_format=args.log_json or settings.log_json,
    )


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    _configure(args, settings)

    return asyncio.run(replay_trace(
        args.trace,
        settings=settings,
        headful=args.headful,
        respect_timing=args.respect_timing,
        video=args.video,
        speed=args.speed,
        timeout_ms=args.timeout,
        artifacts_dir=args.artifacts_dir,
    ))


def record_main(argv: Optional[list[str]] = None) -> int:
    args = build_record_parser().parse_args(argv)
    settings = get_settings()
    _configure(args, settings)
    output_dir = Path(args.output) if args.output else settings.traces_dir

    try:
        path = asyncio.run(record_session(args.url, output_dir, settings))
    except (BrowserLaunchError, SessionError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(f"Trace saved to {path}")
    return 0


def cli():
    """Command-line interface for replay."""
    sys.exit(main())


def record_cli():
    """Command-line interface for recording."""
    sys.exit(record_main())


if __name__ == "__main__":
    cli()
