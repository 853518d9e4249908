"""
Main CLI interface for QA Recorder.

Records a browsing session, synthesizes test cases from it and exports them,
plus utilities to inspect stored sessions and re-render test cases.
"""

import argparse
import asyncio
import json
import signal
import sys
import traceback
import uuid
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError as PydanticValidationError

from .core.config import Config
from .core.exceptions import (
    ConflictError,
    GenerationError,
    QARecorderError,
    ValidationError,
)
from .core.logging_config import setup_logging
from .pipeline import RecordingPipeline
from .recording.models import RecordingSession
from .rendering.renderer import FormatRenderer
from .storage.store import JsonFileStore
from .synthesis.models import TestCase, TestFormat


def load_config(args: argparse.Namespace) -> Config:
    """Configuration from ``--config`` when given, else the environment."""
    if getattr(args, "config", None):
        return Config.from_file(args.config)
    return Config.from_env()


async def _record(args: argparse.Namespace, config: Config) -> int:
    specifications = None
    if args.spec_file:
        spec_path = Path(args.spec_file)
        if not spec_path.exists():
            print(f"❌ Specification file not found: {spec_path}")
            return 1
        specifications = spec_path.read_text(encoding="utf-8")

    output_dir = Path(args.output) if args.output else None
    pipeline = RecordingPipeline.from_config(config, output_dir=output_dir)

    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, lambda: asyncio.ensure_future(pipeline.stop()))
        handles_sigint = True
    except NotImplementedError:
        handles_sigint = False

    try:
        session = await pipeline.start(args.url, args.user, args.format, specifications)
        print(f"🎬 Recording {session.url} (session {session.id})")
        print("   Close the browser window or press Ctrl+C to stop recording.")

        await pipeline.wait_stopped()
        print(
            f"⏹️  Recording stopped: {len(session.interactions)} interactions, "
            f"{len(session.api_calls)} API calls"
        )
        print(f"🤖 Generating {args.format} test cases...")

        try:
            result = await pipeline.wait_for_result(session.id)
        except GenerationError as e:
            print(f"❌ Test case generation failed: {e.message}")
            await pipeline.abandon(session.id)
            return 1

        if result.forced:
            print(f"⚠️  Generation did not finish within {config.synthesis_timeout}s; no test cases saved")
            return 1

        print(f"✅ Generated {len(result.test_cases)} test case(s)")
        for test_case in result.test_cases:
            print(f"   • {test_case.title} ({len(test_case.steps)} steps)")
        if result.artifact:
            print(f"📄 Exported to {result.artifact}")
        if args.verbose:
            print(json.dumps(result.to_dict(), indent=2))
        return 0

    except ConflictError as e:
        print(f"❌ {e.message} (session {e.active_session_id})")
        return 1
    finally:
        if handles_sigint:
            loop.remove_signal_handler(signal.SIGINT)
        await pipeline.close()


def cmd_record(args: argparse.Namespace) -> int:
    """Record a session and generate test cases from it."""
    try:
        config = load_config(args)
        if args.headless:
            config.headless_mode = True
        config.validate()
        setup_logging(config, f"record-{uuid.uuid4().hex[:8]}")
        return asyncio.run(_record(args, config))

    except ValidationError as e:
        print(f"❌ Configuration validation failed: {e.message}")
        for violation in e.violations or []:
            print(f"   • {violation}")
        return 1
    except QARecorderError as e:
        print(f"❌ QA Recorder error: {e.message}")
        if args.verbose:
            traceback.print_exc()
        return 1
    except Exception as e:
        print(f"❌ Unexpected error: {e}")
        if args.verbose:
            traceback.print_exc()
        return 1


def cmd_render(args: argparse.Namespace) -> int:
    """Render a stored test case JSON file."""
    path = Path(args.test_case)
    try:
        test_case = TestCase.model_validate_json(path.read_text(encoding="utf-8"))
    except OSError as e:
        print(f"❌ Cannot read {path}: {e}")
        return 1
    except PydanticValidationError as e:
        print(f"❌ Invalid test case file {path}: {e.error_count()} errors")
        return 1

    renderer = FormatRenderer()
    content = renderer.render(test_case)

    if args.output:
        output = Path(args.output)
        if output.is_dir():
            output = output / renderer.filename(test_case)
        output.write_text(content, encoding="utf-8")
        print(f"📄 Rendered {test_case.title} to {output}")
    else:
        sys.stdout.write(content)
    return 0


async def _list_sessions(config: Config, user_id: str, limit: int) -> List[RecordingSession]:
    store = JsonFileStore(config.data_dir)
    sessions = await store.list(RecordingSession.entity_kind, user_id)
    sessions.sort(key=lambda s: s.start_time, reverse=True)
    return sessions[:limit]


def cmd_sessions(args: argparse.Namespace) -> int:
    """List recorded sessions of a user."""
    try:
        config = load_config(args)
        sessions = asyncio.run(_list_sessions(config, args.user, args.limit))
    except QARecorderError as e:
        print(f"❌ QA Recorder error: {e.message}")
        return 1

    if not sessions:
        print(f"No sessions recorded for {args.user}")
        return 0

    print(f"📼 Sessions for {args.user}")
    print("=" * 40)
    for session in sessions:
        duration = f"{session.duration:.1f}s" if session.duration is not None else "-"
        print(
            f"{session.id}  {session.status.value:<10} {duration:>8}  "
            f"{len(session.interactions):>3} interactions  {session.url}"
        )
    return 0


async def _list_test_cases(config: Config, session_id: str) -> List[TestCase]:
    store = JsonFileStore(config.data_dir)
    test_cases = await store.list(TestCase.entity_kind, session_id)
    test_cases.sort(key=lambda tc: (tc.created_at, tc.id))
    return test_cases


def cmd_test_cases(args: argparse.Namespace) -> int:
    """List test cases generated for a session."""
    try:
        config = load_config(args)
        test_cases = asyncio.run(_list_test_cases(config, args.session))
    except QARecorderError as e:
        print(f"❌ QA Recorder error: {e.message}")
        return 1

    if not test_cases:
        print(f"No test cases stored for session {args.session}")
        return 0

    for test_case in test_cases:
        print(f"🧪 {test_case.title} [{test_case.format}] ({test_case.id})")
        print(f"   {test_case.description}")
        for step in test_case.steps:
            print(f"   - {step.action}")
    return 0


def cmd_config(args: argparse.Namespace) -> int:
    """Show the effective configuration and validate it."""
    try:
        config = load_config(args)
    except ValidationError as e:
        print(f"❌ {e.message}")
        return 1

    print(json.dumps(config.to_dict(), indent=2))
    try:
        config.validate()
    except ValidationError as e:
        print("❌ Configuration has errors:")
        for violation in e.violations or [e.message]:
            print(f"   • {violation}")
        return 1
    print("✅ Configuration is valid")
    return 0


def create_main_parser() -> argparse.ArgumentParser:
    """Create main CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="qa-recorder",
        description="QA Recorder - record browser sessions and generate test cases",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  qa-recorder record https://example.com --user alice --format gherkin
  qa-recorder sessions --user alice
  qa-recorder test-cases --session session_20240101-0123456789abcdef
  qa-recorder render data/test_case/test_x.json --output artifacts/
  qa-recorder config
        """,
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose output",
    )
    parser.add_argument(
        "--config",
        help="Path to a YAML configuration file",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    record_parser = subparsers.add_parser(
        "record",
        help="Record a session and generate test cases",
    )
    record_parser.add_argument("url", help="Page to record")
    record_parser.add_argument("--user", default="local", help="User the session belongs to")
    record_parser.add_argument(
        "--format",
        choices=[f.value for f in TestFormat],
        default=TestFormat.PYTEST.value,
        help="Test case format",
    )
    record_parser.add_argument(
        "--spec-file",
        help="Text file with additional requirements for generation",
    )
    record_parser.add_argument(
        "--headless",
        action="store_true",
        help="Run the browser without a window",
    )
    record_parser.add_argument(
        "--output",
        help="Directory for exported test cases (defaults to the artifacts directory)",
    )
    record_parser.set_defaults(func=cmd_record)

    render_parser = subparsers.add_parser(
        "render",
        help="Render a stored test case",
    )
    render_parser.add_argument("test_case", help="Path to a test case JSON file")
    render_parser.add_argument("--output", help="Output file or directory (defaults to stdout)")
    render_parser.set_defaults(func=cmd_render)

    sessions_parser = subparsers.add_parser(
        "sessions",
        help="List recorded sessions",
    )
    sessions_parser.add_argument("--user", default="local", help="Session owner")
    sessions_parser.add_argument("--limit", type=int, default=20, help="Maximum sessions to show")
    sessions_parser.set_defaults(func=cmd_sessions)

    test_cases_parser = subparsers.add_parser(
        "test-cases",
        help="List test cases generated for a session",
    )
    test_cases_parser.add_argument("--session", required=True, help="Session id")
    test_cases_parser.set_defaults(func=cmd_test_cases)

    config_parser = subparsers.add_parser(
        "config",
        help="Show and validate configuration",
    )
    config_parser.set_defaults(func=cmd_config)

    return parser


def main(args: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = create_main_parser()

    if args is None:
        args = sys.argv[1:]

    parsed_args = parser.parse_args(args)

    if not hasattr(parsed_args, "func"):
        parser.print_help()
        return 1

    return parsed_args.func(parsed_args)


if __name__ == "__main__":
    sys.exit(main())
