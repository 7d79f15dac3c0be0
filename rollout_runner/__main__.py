"""Rollout Runner CLI — entry point for driving a rollout.

Usage:
    python -m rollout_runner run        Advance the plan's rollout to the target stage
    python -m rollout_runner preview    Print the stages the plan's rollout would have

Every flag falls back to its ROLLOUT_* environment variable.

Exit codes:
    0    target stage (or every stage) done
    1    remote, task, or target failure
    2    invalid configuration
    130  interrupted; active task runs were canceled
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import signal
import sys

import structlog

from rollout_runner.config.settings import RolloutSettings, get_settings
from rollout_runner.exceptions import ConfigurationError, RolloutRunnerError
from rollout_runner.infra.rollout_client import RolloutClient
from rollout_runner.orchestration.cancellation import CancellationHandler
from rollout_runner.orchestration.controller import RolloutController
from rollout_runner.orchestration.models import RolloutHandle
from rollout_runner.utils.logging import configure_logging

logger = structlog.get_logger()

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG = 2
EXIT_INTERRUPTED = 130


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="rollout_runner",
        description="Drive a staged rollout to completion",
    )
    parser.add_argument("--url", help="Base URL of the platform (ROLLOUT_URL)")
    parser.add_argument("--token", help="Bearer credential (ROLLOUT_TOKEN)")
    parser.add_argument(
        "--plan",
        help="Plan name, projects/{project}/plans/{plan} (ROLLOUT_PLAN)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        help="HTTP timeout in seconds (ROLLOUT_TIMEOUT)",
    )
    parser.add_argument(
        "--no-version-check",
        action="store_true",
        help="Skip the server version preflight",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (ROLLOUT_LOG_LEVEL)",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Render logs as JSON (ROLLOUT_LOG_JSON)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # run
    run = subparsers.add_parser("run", help="Advance the rollout to the target stage")
    run.add_argument(
        "--target-stage",
        help="Environment of the stage to stop after; empty runs every stage "
        "(ROLLOUT_TARGET_STAGE)",
    )
    run.add_argument("--title", help="Rollout title (ROLLOUT_TITLE)")
    run.add_argument(
        "--poll-interval",
        type=float,
        help="Seconds between polls (ROLLOUT_POLL_INTERVAL_SECONDS)",
    )
    run.add_argument(
        "--cancel-timeout",
        type=float,
        help="Seconds allowed for canceling task runs after an interrupt "
        "(ROLLOUT_CANCEL_TIMEOUT)",
    )

    # preview
    subparsers.add_parser("preview", help="Print the stages of the plan's rollout")

    return parser.parse_args(argv)


def _merge_settings(settings: RolloutSettings, args: argparse.Namespace) -> RolloutSettings:
    """Overlay command-line flags that were given onto env settings."""
    overrides = {
        "url": args.url,
        "token": args.token,
        "plan": args.plan,
        "timeout": args.timeout,
        "log_level": args.log_level,
        "target_stage": getattr(args, "target_stage", None),
        "title": getattr(args, "title", None),
        "poll_interval_seconds": getattr(args, "poll_interval", None),
        "cancel_timeout_seconds": getattr(args, "cancel_timeout", None),
    }
    changes = {k: v for k, v in overrides.items() if v is not None}
    if args.no_version_check:
        changes["check_version"] = False
    if args.json_logs:
        changes["log_json"] = True
    return dataclasses.replace(settings, **changes)


def _build_controller(
    settings: RolloutSettings,
    project: str,
    client: RolloutClient,
    handle: RolloutHandle,
) -> RolloutController:
    return RolloutController(
        client,
        project=project,
        plan=settings.plan,
        handle=handle,
        target_stage=settings.target_stage,
        title=settings.title,
        poll_interval_seconds=settings.poll_interval_seconds,
        check_version=settings.check_version,
    )


async def _cmd_run(settings: RolloutSettings, project: str) -> int:
    """Drive the rollout; cancel active task runs if interrupted."""
    handle = RolloutHandle()
    async with RolloutClient(settings.base_url, settings.token, timeout=settings.timeout) as client:
        controller = _build_controller(settings, project, client, handle)
        task = asyncio.create_task(controller.run())

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, task.cancel)

        try:
            outcome = await task
        except asyncio.CancelledError:
            logger.warning("Interrupted, canceling active task runs", rollout=handle.name)
            handler = CancellationHandler(
                client, handle, timeout_seconds=settings.cancel_timeout_seconds
            )
            cleanup = asyncio.create_task(handler.cancel())
            # A second signal abandons the cleanup.
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(sig, cleanup.cancel)
            try:
                await cleanup
            except asyncio.CancelledError:
                logger.warning("Cancellation of task runs aborted", rollout=handle.name)
            return EXIT_INTERRUPTED
        finally:
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.remove_signal_handler(sig)

    if settings.target_stage:
        logger.info(
            "Target stage done",
            rollout=outcome.rollout_name,
            target_stage=outcome.target_stage,
            completed=outcome.completed_stages,
        )
    else:
        logger.info(
            "Rollout done",
            rollout=outcome.rollout_name,
            completed=outcome.completed_stages,
        )
    return EXIT_OK


async def _cmd_preview(settings: RolloutSettings, project: str) -> int:
    """Print the previewed stage environments, one per line."""
    async with RolloutClient(settings.base_url, settings.token, timeout=settings.timeout) as client:
        controller = _build_controller(settings, project, client, RolloutHandle())
        if settings.check_version:
            await client.assert_supported_version()
        preview = await controller.preview()

    print(f"\nRollout preview for {settings.plan} - {len(preview.stages)} stages\n")
    for index, stage in enumerate(preview.stages):
        print(f"  {index:>3}  {stage.environment:<40} {len(stage.tasks)} tasks")
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    try:
        settings = _merge_settings(get_settings(), args)
        configure_logging(settings.log_level, json_output=settings.log_json)
        project = settings.validate()
    except ConfigurationError as e:
        print(f"configuration error: {e}", file=sys.stderr)
        return EXIT_CONFIG

    try:
        if args.command == "run":
            return asyncio.run(_cmd_run(settings, project))
        elif args.command == "preview":
            return asyncio.run(_cmd_preview(settings, project))
        else:
            print(f"Unknown command: {args.command}", file=sys.stderr)
            return EXIT_FAILURE
    except RolloutRunnerError as e:
        print(e, file=sys.stderr)
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
