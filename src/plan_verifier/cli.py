"""Command-line entry point.

Usage:
    plan-verifier check --plan plan.md --project .
    plan-verifier verify --plan plan.md --project . --prompt "add billing"
    cat plan.md | plan-verifier check --stdin --format json
    plan-verifier bench-summary results/runs.json --output results/summary.json
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Optional

import structlog

from .analysis import run_checkers
from .analysis.report import (
    build_combined_report,
    build_findings_section,
    build_json_report,
    format_text_report,
    total_findings,
)
from .benchmarks.summary import generate_summary, load_runs
from .config import ensure_gitignore, load_settings, save_global_config
from .context.budget import get_token_counter
from .context.builder import build_context
from .core.errors import AppError, ConfigError, PlanNotFoundError, ProjectNotFoundError
from .core.logging import configure_logging
from .session.store import load_last_feedback, save_session
from .telemetry.catches import build_catch_entry, log_catch, read_catches, summarize_catches
from .verifier.client import stream_verification
from .verifier.prompt import SYSTEM_PROMPT, build_user_message

logger = structlog.get_logger(__name__)


def _add_plan_args(parser: argparse.ArgumentParser) -> None:
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--plan", "-p", type=Path, help="Path to the plan markdown file")
    source.add_argument("--stdin", action="store_true", help="Read the plan from stdin")
    parser.add_argument(
        "--project",
        type=Path,
        default=Path("."),
        help="Project directory to verify against (default: current directory)",
    )
    parser.add_argument("--schema", type=Path, help="Path to schema.prisma (auto-detected if omitted)")
    parser.add_argument(
        "--allow-new",
        default="",
        help="Comma-separated path prefixes the plan may create",
    )
    parser.add_argument(
        "--experimental",
        action="store_true",
        help="Also run experimental checkers",
    )


def parse_args(args: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Args:
        args: Optional list of arguments (uses sys.argv if None)

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        prog="plan-verifier",
        description="Verify implementation plans against the real project",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    check = sub.add_parser("check", help="Run static checks only (no API calls)")
    _add_plan_args(check)
    check.add_argument(
        "--format",
        choices=["text", "json", "markdown"],
        default="text",
        help="Output format (default: text)",
    )

    verify = sub.add_parser("verify", help="Static checks plus a streamed model review")
    _add_plan_args(verify)
    verify.add_argument("--prompt", help="The original user request the plan answers")

    init = sub.add_parser("init", help="Store an API key in the global config")
    init.add_argument("--api-key", required=True, help="Anthropic API key")
    init.add_argument(
        "--project",
        type=Path,
        default=Path("."),
        help="Project whose .gitignore should ignore local state",
    )

    sub.add_parser("catches", help="Summarize logged hallucination catches")

    bench = sub.add_parser("bench-summary", help="Aggregate benchmark run results")
    bench.add_argument("runs", type=Path, help="JSON file with benchmark runs")
    bench.add_argument("--output", "-o", type=Path, help="Write the summary JSON here")

    return parser.parse_args(args)


def _read_plan(args: argparse.Namespace) -> str:
    if args.stdin:
        return sys.stdin.read()
    if not args.plan.is_file():
        raise PlanNotFoundError(str(args.plan))
    return args.plan.read_text(encoding="utf-8")


def _project_dir(args: argparse.Namespace) -> str:
    if not args.project.is_dir():
        raise ProjectNotFoundError(str(args.project))
    return str(args.project.resolve())


def _checker_options(args: argparse.Namespace) -> dict[str, str]:
    options = {"allowed_new": args.allow_new}
    if args.schema:
        options["schema_path"] = str(args.schema)
    return options


def run_check(args: argparse.Namespace) -> int:
    plan_text = _read_plan(args)
    project_dir = _project_dir(args)
    settings = load_settings(project_dir)

    pairs = run_checkers(
        plan_text,
        project_dir,
        _checker_options(args),
        include_experimental=args.experimental or settings.include_experimental,
    )

    if args.format == "json":
        print(build_json_report(pairs, project_dir).to_json())
    elif args.format == "markdown":
        print("\n".join(build_combined_report(pairs, project_dir)))
    else:
        print(format_text_report(pairs))

    log_catch(build_catch_entry("check", project_dir, pairs))
    return 1 if total_findings(pairs) else 0


def run_verify(args: argparse.Namespace) -> int:
    plan_text = _read_plan(args)
    project_dir = _project_dir(args)
    settings = load_settings(project_dir)
    if not settings.api_key:
        raise ConfigError(
            "No API key configured. Set ANTHROPIC_API_KEY or run `plan-verifier init`.",
            variable="ANTHROPIC_API_KEY",
        )

    pairs = run_checkers(
        plan_text,
        project_dir,
        _checker_options(args),
        include_experimental=args.experimental or settings.include_experimental,
    )
    findings = build_findings_section(pairs)

    context = build_context(
        plan_text,
        project_dir,
        settings.token_budget,
        prompt=args.prompt,
        session_feedback=load_last_feedback(project_dir),
        count_tokens=get_token_counter(settings.token_counter),
    )
    logger.info(
        "context_built",
        total_tokens=context.total_tokens,
        skipped=context.skipped,
        static_findings=total_findings(pairs),
    )

    chunks: list[str] = []

    def on_text(text: str) -> None:
        chunks.append(text)
        sys.stdout.write(text)
        sys.stdout.flush()

    asyncio.run(
        stream_verification(
            settings.api_key,
            settings.model,
            SYSTEM_PROMPT,
            build_user_message(context, findings),
            on_text,
            max_tokens=settings.max_tokens,
        )
    )
    print()

    save_session(project_dir, plan_text, "".join(chunks))
    log_catch(build_catch_entry("verify", project_dir, pairs))
    return 0


def run_init(args: argparse.Namespace) -> int:
    path = save_global_config({"apiKey": args.api_key})
    print(f"API key saved to {path}")
    if args.project.is_dir() and ensure_gitignore(str(args.project)):
        print(f"Added state directory to {args.project / '.gitignore'}")
    return 0


def run_catches(args: argparse.Namespace) -> int:
    print(summarize_catches(read_catches()))
    return 0


def run_bench_summary(args: argparse.Namespace) -> int:
    try:
        runs = load_runs(args.runs)
    except FileNotFoundError:
        print(f"Error: Runs file not found: {args.runs}", file=sys.stderr)
        return 1
    except (ValueError, KeyError) as exc:
        print(f"Error loading runs: {exc}", file=sys.stderr)
        return 1

    summary = generate_summary(runs)
    if args.output:
        summary.save(args.output)
        print(f"Summary saved to: {args.output}")
    print(summary.summary())
    return 0


COMMANDS = {
    "check": run_check,
    "verify": run_verify,
    "init": run_init,
    "catches": run_catches,
    "bench-summary": run_bench_summary,
}


def main(args: Optional[list[str]] = None) -> int:
    """Main entry point.

    Args:
        args: Optional list of arguments (uses sys.argv if None)

    Returns:
        Exit code
    """
    parsed = parse_args(args)
    configure_logging("DEBUG" if parsed.verbose else "WARNING")
    try:
        return COMMANDS[parsed.command](parsed)
    except AppError as exc:
        logger.debug("command_failed", command=parsed.command, code=exc.code.value)
        print(f"Error: {exc.message}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
