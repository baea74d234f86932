"""
CLI (Command Line Interface).

    mptnotify run                 one check, then exit (0 ok, 1 on failure)
    mptnotify serve               check now, then on every CRON_SCHEDULE tick
    mptnotify show [--group X]    preview what the page currently contains

Note:
- run/serve need the Firebase service account (GOOGLE_APPLICATION_CREDENTIALS)
- show never touches state, credentials or push delivery
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from datetime import datetime
from pathlib import Path

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

from mptnotify.config import MissingCredentialsError, Settings, load_settings
from mptnotify.groups import records_for_group
from mptnotify.parse import DATE_FORMAT, parse_replacements
from mptnotify.run import RunContext, SingleFlight, run_check
from mptnotify.scrape import FetchError, fetch_page, read_page


logger = logging.getLogger(__name__)


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def _apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    """
    CLI flags win over the environment.
    """
    overrides = {}
    if args.state_file:
        overrides["state_file"] = Path(args.state_file)
    if args.url:
        overrides["replacements_url"] = args.url
    if args.credentials:
        overrides["credentials_path"] = Path(args.credentials)
    if args.log_level:
        overrides["log_level"] = args.log_level.upper()
    if getattr(args, "cron", None):
        overrides["cron_schedule"] = args.cron
    return replace(settings, **overrides)


def _build_context(settings: Settings) -> RunContext:
    """
    Wire Firebase-backed collaborators. Raises MissingCredentialsError.
    """
    credentials_path = settings.require_credentials()

    # Imported lazily so `show` works without Firebase configured
    from mptnotify.firebase import FcmTransport, FirestoreTokenDirectory, init_app

    app = init_app(credentials_path)
    return RunContext(
        settings=settings,
        directory=FirestoreTokenDirectory(app, settings.tokens_collection),
        transport=FcmTransport(app),
    )


def _cmd_run(ctx: RunContext) -> int:
    """
    One run. Uncaught errors (state file problems) become exit code 1.
    """
    try:
        run_check(ctx)
    except Exception:
        logger.exception("Run failed")
        return 1
    return 0


def _cmd_serve(ctx: RunContext) -> int:
    """
    Run immediately, then on every cron tick. Errors of one run are logged
    and the next tick still happens.
    """
    trigger = CronTrigger.from_crontab(ctx.settings.cron_schedule)
    guarded = SingleFlight(lambda: run_check(ctx))

    def tick() -> None:
        try:
            guarded()
        except Exception:
            logger.exception("Run failed")

    logger.info("Scheduling check with cron: %s", ctx.settings.cron_schedule)
    tick()

    scheduler = BlockingScheduler()
    scheduler.add_job(tick, trigger, id="run_check", max_instances=1, coalesce=True)
    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Scheduler stopped")
    return 0


def _cmd_show(args: argparse.Namespace, settings: Settings) -> int:
    """
    Print the caption buckets (or one group's records) without side effects.
    """
    if args.date:
        try:
            reference = datetime.strptime(args.date, DATE_FORMAT)
        except ValueError:
            print(f"Invalid date {args.date!r}, expected DD.MM.YYYY.")
            return 1
    else:
        reference = datetime.now()

    try:
        if args.html:
            html = read_page(args.html)
        else:
            html = fetch_page(settings.replacements_url, timeout=settings.fetch_timeout, user_agent=settings.user_agent)
    except (FetchError, OSError) as e:
        print(f"Could not load page: {e}")
        return 1

    buckets = parse_replacements(html, reference)
    if not buckets:
        print("No replacements for today/tomorrow.")
        return 0

    if args.group:
        selected = {args.group: records_for_group(buckets, args.group)}
    else:
        selected = buckets

    for caption, records in selected.items():
        print(f"{caption} ({len(records)})")
        for r in records:
            print(f"  {r.change_date} | {r.lesson_number} | {r.replace_from} → {r.replace_to} | {r.updated_at}")

    return 0


def build_parser() -> argparse.ArgumentParser:
    """
    Build the argparse CLI parser with sub-commands.
    """
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--state-file", type=str, help="Path of the persisted state JSON")
    common.add_argument("--url", type=str, help="Replacements page URL")
    common.add_argument("--credentials", type=str, help="Firebase service-account JSON")
    common.add_argument("--log-level", type=str, help="DEBUG, INFO, WARNING, ...")

    parser = argparse.ArgumentParser(prog="mptnotify", description="MPT replacements notifier")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("run", parents=[common], help="Run one check and exit")

    p_serve = sub.add_parser("serve", parents=[common], help="Run checks on a cron schedule")
    p_serve.add_argument("--cron", type=str, help="Crontab expression (e.g. '0 * * * *')")

    p_show = sub.add_parser("show", parents=[common], help="Preview replacements on the page")
    p_show.add_argument("--group", type=str, help="Only records matching this group code")
    p_show.add_argument("--html", type=str, help="Read a saved HTML file instead of fetching")
    p_show.add_argument("--date", type=str, help="Reference day DD.MM.YYYY (default: today)")

    return parser


def main(argv: list[str] | None = None) -> None:
    """
    CLI entry point. Parses args, dispatches to command handlers,
    and exits via SystemExit with a return code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = _apply_overrides(load_settings(), args)
    except ValueError as e:
        _setup_logging("INFO")
        logger.error("Invalid configuration: %s", e)
        raise SystemExit(1)
    _setup_logging(settings.log_level)

    if args.command == "show":
        raise SystemExit(_cmd_show(args, settings))

    try:
        ctx = _build_context(settings)
    except MissingCredentialsError as e:
        logger.error("%s", e)
        raise SystemExit(1)

    if args.command == "run" or (args.command == "serve" and settings.run_once):
        raise SystemExit(_cmd_run(ctx))
    if args.command == "serve":
        raise SystemExit(_cmd_serve(ctx))

    raise SystemExit(2)
