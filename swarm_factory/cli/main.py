"""`swarm-factory` command line.

Every subcommand prints exactly one JSON object on stdout:

    {"ok": true, ...}                 success
    {"ok": false, "error": "..."}     failure

Exit codes: 0 success, 1 invalid input, 2 referenced job not found,
3 store or collaborator failure. Logs go to stderr.
"""

from __future__ import annotations

import argparse
import json
import sys
from contextlib import ExitStack
from dataclasses import dataclass
from typing import Any, Callable, NoReturn, Sequence

import structlog

from swarm_factory.config import SwarmFactoryConfig, load_settings
from swarm_factory.core import paths
from swarm_factory.core.dates import MonotonicClock
from swarm_factory.core.decisions import DecisionLog
from swarm_factory.core.dispatch import DispatchDeduplicator
from swarm_factory.core.errors import (
    ConfigurationError,
    InvalidInputError,
    NotFoundError,
    NotificationError,
    StoreError,
    SwarmFactoryError,
)
from swarm_factory.core.inbox import Inbox
from swarm_factory.core.jobs import JobService
from swarm_factory.core.overlay import OverlayResolver
from swarm_factory.core.phase_machine import PhaseMachine
from swarm_factory.core.repository import RunRepository
from swarm_factory.core.retry import RetryPolicy
from swarm_factory.logging_config import setup_logging
from swarm_factory.notifications import RunChannelClient
from swarm_factory.store import open_store

logger = structlog.get_logger(__name__)

EXIT_OK = 0
EXIT_INVALID = 1
EXIT_NOT_FOUND = 2
EXIT_FAILURE = 3


class JsonArgumentParser(argparse.ArgumentParser):
    """Reports usage errors as InvalidInputError instead of printing and exiting."""

    def error(self, message: str) -> NoReturn:
        raise InvalidInputError(message)


@dataclass
class Context:
    settings: SwarmFactoryConfig
    repository: RunRepository
    clock: MonotonicClock
    resources: ExitStack

    @property
    def decision_log(self) -> DecisionLog:
        return DecisionLog(self.repository, self.clock)


def build_context(settings: SwarmFactoryConfig, resources: ExitStack) -> Context:
    store = open_store(settings.store)
    close = getattr(store, "close", None)
    if close is not None:
        resources.callback(close)
    retry = RetryPolicy(max_retries=settings.retry.max_retries, sync_before=settings.retry.sync_before)
    return Context(
        settings=settings,
        repository=RunRepository(store, retry),
        clock=MonotonicClock(),
        resources=resources,
    )


def _cmd_intake(ctx: Context, args: argparse.Namespace) -> dict[str, Any]:
    result = JobService(ctx.repository, ctx.clock).intake(args.idea, args.requester)
    return result.to_dict()


def _cmd_inbox(ctx: Context, args: argparse.Namespace) -> dict[str, Any]:
    return Inbox(ctx.repository, ctx.clock).submit(args.idea, args.requester).to_dict()


def _cmd_confirm(ctx: Context, args: argparse.Namespace) -> dict[str, Any]:
    notifier = None
    base_url = ctx.settings.notifications.base_url
    if base_url:
        notifier = RunChannelClient(base_url, timeout_s=ctx.settings.notifications.timeout_s)
        ctx.resources.callback(notifier.close)
    service = JobService(ctx.repository, ctx.clock, notifier)
    result = service.confirm(job_id=args.job_id, code=args.code, last=args.last, message=args.message)
    return result.to_dict()


def _advance_targets(ctx: Context, args: argparse.Namespace) -> list[str]:
    job_ids: list[str] = [paths.check_job_id(j) for j in args.job_id or []]
    if args.run_files:
        job_ids.extend(paths.job_id_from_record_path(f) for f in args.run_files.split(",") if f.strip())
    if args.all:
        job_ids.extend(paths.job_id_from_record_path(e.path) for e in ctx.repository.list_run_entries())
    if not job_ids:
        raise InvalidInputError("Missing --job-id, --run-files, or --all")
    return list(dict.fromkeys(job_ids))


def _cmd_advance(ctx: Context, args: argparse.Namespace) -> dict[str, Any]:
    machine = PhaseMachine(ctx.repository, ctx.clock, ctx.settings.runner.runner_name)
    max_steps = args.max_steps or ctx.settings.runner.max_steps
    return machine.advance_runs(_advance_targets(ctx, args), max_steps).to_dict()


def _cmd_decide(ctx: Context, args: argparse.Namespace) -> dict[str, Any]:
    job_id = paths.check_job_id(args.job_id)
    if ctx.repository.load_run(job_id) is None:
        raise NotFoundError(f"Run not found: {job_id}")
    stored = ctx.decision_log.append(
        job_id,
        args.action,
        to_phase=args.to_phase,
        agent=args.agent,
        pipeline=args.pipeline,
        note=args.note,
    )
    return {"file": stored.path, "decision": stored.decision.to_dict()}


def _cmd_resolve(ctx: Context, args: argparse.Namespace) -> dict[str, Any]:
    return OverlayResolver(ctx.repository, ctx.decision_log).resolve(args.job_id).to_dict()


def _cmd_board(ctx: Context, args: argparse.Namespace) -> dict[str, Any]:
    limit = args.limit or ctx.settings.board.limit
    return OverlayResolver(ctx.repository, ctx.decision_log).build_board(limit).to_dict()


def _cmd_dispatch_scan(ctx: Context, args: argparse.Namespace) -> dict[str, Any]:
    cfg = ctx.settings.dispatch
    deduplicator = DispatchDeduplicator(
        ctx.repository, ctx.decision_log, ctx.clock, max_runs=args.max_runs or cfg.max_runs
    )
    result = deduplicator.scan(
        dry_run=args.dry_run,
        sync_first=args.sync or cfg.sync_first,
        publish=args.publish or cfg.publish,
    )
    return result.to_dict()


Handler = Callable[[Context, argparse.Namespace], dict[str, Any]]


def build_parser() -> JsonArgumentParser:
    parser = JsonArgumentParser(prog="swarm-factory", description="Swarm Factory run orchestration.")
    parser.add_argument("--config", help="Path to swarm-factory.yml")
    parser.add_argument("--log-level", help="Override SWARM_FACTORY_LOG_LEVEL")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("intake", help="Create a pending job from an idea")
    p.add_argument("--idea", required=True)
    p.add_argument("--requester")
    p.set_defaults(handler=_cmd_intake)

    p = sub.add_parser("inbox", help="Record a raw idea in the inbox")
    p.add_argument("--idea", required=True)
    p.add_argument("--requester")
    p.set_defaults(handler=_cmd_inbox)

    p = sub.add_parser("confirm", help="Promote a pending job to a run")
    group = p.add_mutually_exclusive_group(required=True)
    group.add_argument("--job-id")
    group.add_argument("--code")
    group.add_argument("--last", action="store_true")
    p.add_argument("--message", help="Commit message override")
    p.set_defaults(handler=_cmd_confirm)

    p = sub.add_parser("advance", help="Drive runs through the automatic phases")
    p.add_argument("--job-id", action="append")
    p.add_argument("--run-files", help="Comma-separated runs/<id>.json paths")
    p.add_argument("--all", action="store_true")
    p.add_argument("--max-steps", type=int)
    p.set_defaults(handler=_cmd_advance)

    p = sub.add_parser("decide", help="Append a decision to a run")
    p.add_argument("--job-id", required=True)
    p.add_argument("--action", required=True)
    p.add_argument("--to-phase")
    p.add_argument("--agent")
    p.add_argument("--pipeline", action=argparse.BooleanOptionalAction)
    p.add_argument("--note")
    p.set_defaults(handler=_cmd_decide)

    p = sub.add_parser("resolve", help="Print the effective view of a run")
    p.add_argument("--job-id", required=True)
    p.set_defaults(handler=_cmd_resolve)

    p = sub.add_parser("board", help="Effective views of the newest runs")
    p.add_argument("--limit", type=int)
    p.set_defaults(handler=_cmd_board)

    p = sub.add_parser("dispatch-scan", help="Queue one marker per new assignment event")
    p.add_argument("--max-runs", type=int)
    p.add_argument("--dry-run", action="store_true")
    p.add_argument("--sync", action="store_true", help="Pull before scanning")
    p.add_argument("--publish", action="store_true", help="Commit/push written markers")
    p.set_defaults(handler=_cmd_dispatch_scan)

    return parser


def _exit_code(exc: SwarmFactoryError) -> int:
    match exc:
        case InvalidInputError() | ConfigurationError():
            return EXIT_INVALID
        case NotFoundError():
            return EXIT_NOT_FOUND
        case StoreError() | NotificationError():
            return EXIT_FAILURE
    return EXIT_FAILURE


def _emit(payload: dict[str, Any]) -> None:
    sys.stdout.write(json.dumps(payload, indent=2, ensure_ascii=False) + "\n")


def main(argv: Sequence[str] | None = None) -> int:
    try:
        args = build_parser().parse_args(argv)
    except InvalidInputError as exc:
        _emit({"ok": False, "error": str(exc)})
        return EXIT_INVALID

    setup_logging(args.log_level)
    handler: Handler = args.handler
    try:
        settings = load_settings(args.config)
        with ExitStack() as resources:
            ctx = build_context(settings, resources)
            data = handler(ctx, args)
    except SwarmFactoryError as exc:
        code = _exit_code(exc)
        logger.error("command failed", command=args.command, error=str(exc), exit_code=code)
        payload: dict[str, Any] = {"ok": False, "error": str(exc)}
        diagnostics = getattr(exc, "diagnostics", None)
        if diagnostics and len(diagnostics) > 1:
            payload["diagnostics"] = list(diagnostics)
        _emit(payload)
        return code

    _emit({"ok": True, **data})
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
