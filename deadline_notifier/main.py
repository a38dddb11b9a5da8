"""Command line entry point for the deadline notifier."""

import argparse
import json
import os
import signal
import sys
import threading
import time
from dataclasses import asdict, dataclass
from datetime import date
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from dotenv import load_dotenv

from .classification import DeadlineClassifier
from .config.environment import EnvironmentConfig
from .config.exceptions import ConfigurationError
from .config.loader import load_config, validate_config_file
from .config.models import AppConfig
from .domain.models import Bucket, NotificationStatus
from .logging import get_logger
from .logging.config import configure_logging
from .notifications import CredentialManager, DeliveryClient, TemplateRenderer
from .persistence import (
    NotificationLedger,
    close_database,
    create_database_engine,
    get_engine,
    init_database,
    redact_url,
)
from .pipeline import Dispatcher, EscalationSummarizer, NotificationPipeline, RunResult
from .recipients import RecipientResolver
from .scheduler import SchedulerService
from .sources import SqlCaseSource, SqlDepartmentDirectory

logger = get_logger(__name__, component="cli")

BUCKET_CHOICES = [b.value for b in Bucket]
STATUS_CHOICES = [s.value for s in NotificationStatus]


@dataclass
class Runtime:
    """Wired components shared by the commands."""

    app_config: AppConfig
    env_config: EnvironmentConfig
    ledger: NotificationLedger
    credentials: CredentialManager
    delivery: DeliveryClient
    pipeline: NotificationPipeline


def load_runtime_config(
    config_path: Optional[Path], log_level_override: Optional[str]
) -> Tuple[AppConfig, EnvironmentConfig]:
    """
    Load configuration and settle the log level.

    Log level priority: CLI > environment > config file > INFO.

    Raises:
        ConfigurationError: If configuration is invalid
    """
    app_config, env_config = load_config(config_path)

    if log_level_override:
        env_config.log_level = log_level_override
    elif env_config.log_level:
        pass
    elif app_config.logging and app_config.logging.level:
        env_config.log_level = app_config.logging.level
    else:
        env_config.log_level = "INFO"

    return app_config, env_config


def build_runtime(app_config: AppConfig, env_config: EnvironmentConfig) -> Runtime:
    """Open the databases and wire the pipeline."""
    init_database(env_config.database_url)

    if env_config.cases_database_url == env_config.database_url:
        cases_engine = get_engine()
    else:
        cases_engine = create_database_engine(env_config.cases_database_url)

    ledger = NotificationLedger()
    credentials = CredentialManager(
        credentials_path=env_config.credentials_path,
        token_path=env_config.token_path,
        refresh_margin_seconds=app_config.delivery.refresh_margin_seconds,
        request_timeout=app_config.delivery.request_timeout,
    )
    delivery = DeliveryClient.from_config(app_config.delivery, credentials)
    renderer = TemplateRenderer()

    resolver = RecipientResolver(
        default_address=app_config.recipients.default_address,
        static_directory=app_config.recipients.static_directory,
        directory=SqlDepartmentDirectory(cases_engine),
    )
    dispatcher = Dispatcher(
        resolver=resolver,
        delivery=delivery,
        ledger=ledger,
        renderer=renderer,
        sender_name=app_config.delivery.sender_name,
        max_workers=app_config.dispatch.max_workers,
    )
    summarizer = EscalationSummarizer(
        delivery=delivery,
        oversight_addresses=app_config.recipients.oversight_addresses,
        renderer=renderer,
        sender_name=app_config.delivery.sender_name,
    )
    pipeline = NotificationPipeline(
        case_source=SqlCaseSource(cases_engine),
        classifier=DeadlineClassifier.from_config(app_config.deadlines),
        ledger=ledger,
        dispatcher=dispatcher,
        summarizer=summarizer,
        credentials=credentials,
        timezone=app_config.schedule.timezone,
    )

    logger.info(
        "Services initialized",
        extra={
            "event": "services.initialized",
            "database_url": redact_url(env_config.database_url),
            "cases_database_url": redact_url(env_config.cases_database_url),
            "max_workers": app_config.dispatch.max_workers,
            "oversight_count": len(app_config.recipients.oversight_addresses),
        },
    )

    return Runtime(
        app_config=app_config,
        env_config=env_config,
        ledger=ledger,
        credentials=credentials,
        delivery=delivery,
        pipeline=pipeline,
    )


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected YYYY-MM-DD, got '{value}'")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="deadline-notifier",
        description="Deadline notifier - daily SLA notices for ombudsman cases",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to configuration file (default: config.yaml, then config/config.yaml)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (overrides config and environment)",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    run = commands.add_parser("run", help="Run the buckets once and exit")
    run.add_argument(
        "--bucket",
        action="append",
        choices=BUCKET_CHOICES,
        help="Bucket to run (repeatable; default: all three)",
    )
    run.add_argument(
        "--today",
        type=_parse_date,
        default=None,
        help="Evaluate deadlines as of this date (YYYY-MM-DD)",
    )

    commands.add_parser("serve", help="Run daily at the configured time until stopped")

    history = commands.add_parser("history", help="List ledger records, newest first")
    history.add_argument("--protocol")
    history.add_argument("--department", help="Case-insensitive substring")
    history.add_argument("--bucket", choices=BUCKET_CHOICES)
    history.add_argument("--status", choices=STATUS_CHOICES)
    history.add_argument("--limit", type=int, default=50)
    history.add_argument("--offset", type=int, default=0)
    history.add_argument("--json", action="store_true", help="Print JSON")

    stats = commands.add_parser("stats", help="Ledger counts over recent days")
    stats.add_argument("--days", type=int, default=30)
    stats.add_argument("--json", action="store_true", help="Print JSON")

    commands.add_parser("auth-status", help="Check the mail account authorization")

    check = commands.add_parser("check-config", help="Validate a configuration file")
    check.add_argument("path", type=Path, nargs="?", default=Path("config.yaml"))

    return parser


def print_run_summary(result: RunResult) -> None:
    if result.skipped:
        print("Run skipped: another run is in progress")
        return

    print(f"Run {result.run_id} for {result.today.isoformat()}")
    for bucket in result.buckets:
        line = (
            f"  {bucket.bucket.value:<11} selected={bucket.selected_count} "
            f"already_notified={bucket.already_notified_count} "
            f"sent={bucket.sent_count} errors={bucket.error_count} "
            f"duplicates={bucket.duplicate_count}"
        )
        if bucket.dispatch.skipped_departments:
            line += f" skipped_departments={len(bucket.dispatch.skipped_departments)}"
        if bucket.error_message:
            line += f" failed: {bucket.error_message}"
        print(line)
        for department in bucket.dispatch.departments:
            state = "sent" if department.delivered else f"error: {department.error_message}"
            print(f"      {department.department} ({department.case_count}) {state}")
        if bucket.digest and bucket.digest.attempted:
            print(
                f"      digest: {len(bucket.digest.delivered)} delivered, "
                f"{len(bucket.digest.failed)} failed"
            )
    print(
        f"Total: {result.total_sent} sent, {result.total_errors} errors, "
        f"{result.total_duplicates} duplicates"
    )
    if result.reauthorization_required:
        print("Mail account authorization expired or revoked: reauthorize and run again")


def command_run(runtime: Runtime, buckets: Optional[Sequence[str]], today: Optional[date]) -> int:
    selected = [Bucket(b) for b in dict.fromkeys(buckets)] if buckets else None
    logger.info(
        "Executing manual run",
        extra={
            "event": "service.manual_run.starting",
            "buckets": buckets or BUCKET_CHOICES,
            "today": today,
        },
    )
    result = runtime.pipeline.run_once(buckets=selected, today=today)
    print_run_summary(result)
    if result.skipped:
        return 1
    return result.exit_code


def command_serve(runtime: Runtime) -> int:
    shutdown_event = threading.Event()
    schedule = runtime.app_config.schedule

    scheduler_service = SchedulerService(
        pipeline_callable=runtime.pipeline.run_once,
        hour=schedule.hour,
        minute=schedule.minute,
        timezone=schedule.timezone,
        shutdown_event=shutdown_event,
        on_stop=runtime.pipeline.request_stop,
    )

    def signal_handler(signum, frame):
        logger.info(
            f"Received signal {signum}, shutting down",
            extra={"event": "service.signal_received", "signal": signum},
        )
        threading.Thread(
            target=scheduler_service.shutdown, kwargs={"wait": True}, daemon=True
        ).start()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    scheduler_service.start()
    logger.info(
        "Scheduler started. Press Ctrl+C to stop",
        extra={"event": "service.daemon_mode.started", **scheduler_service.status()},
    )

    shutdown_event.wait()
    return 0


def command_history(runtime: Runtime, args: argparse.Namespace) -> int:
    page = runtime.ledger.history(
        protocol=args.protocol,
        department=args.department,
        bucket=Bucket(args.bucket) if args.bucket else None,
        status=NotificationStatus(args.status) if args.status else None,
        limit=args.limit,
        offset=args.offset,
    )

    if args.json:
        print(json.dumps(
            {
                "total": page.total,
                "limit": page.limit,
                "offset": page.offset,
                "records": [r.model_dump(mode="json") for r in page.records],
            },
            ensure_ascii=False,
            indent=2,
        ))
        return 0

    print(f"{page.total} records (showing {len(page.records)} from offset {page.offset})")
    for record in page.records:
        print(
            f"  {record.sent_at:%Y-%m-%d %H:%M} {record.status.value:<5} "
            f"{record.bucket.value:<11} {record.protocol} {record.department}"
            + (f" [{record.error_message}]" if record.error_message else "")
        )
    return 0


def command_stats(runtime: Runtime, days: int, as_json: bool) -> int:
    stats = runtime.ledger.stats(days=days)

    if as_json:
        print(json.dumps(asdict(stats), ensure_ascii=False, indent=2))
        return 0

    print(f"Last {stats.period_days} days: {stats.total} records")
    print("  By bucket: " + ", ".join(f"{k}={v}" for k, v in sorted(stats.by_bucket.items())))
    print("  By status: " + ", ".join(f"{k}={v}" for k, v in sorted(stats.by_status.items())))
    print("  Top departments:")
    for name, count in stats.top_departments:
        print(f"    {count:>5}  {name}")
    return 0


def command_auth_status(runtime: Runtime) -> int:
    status = runtime.delivery.auth_status()
    if status["authorized"]:
        print(f"Authorized as {status['email_address']}")
        return 0
    print(f"Not authorized: {status['error']}")
    return 2 if status["reauthorization_required"] else 1


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the deadline notifier.

    Returns:
        Exit code: 0 success, 1 errors or bad configuration,
        2 mail account reauthorization required
    """
    load_dotenv()
    start_time = time.time()
    args = build_parser().parse_args(argv)

    if args.command == "check-config":
        return 0 if validate_config_file(args.path) else 1

    try:
        app_config, env_config = load_runtime_config(args.config, args.log_level)

        log_format = app_config.logging.format if app_config.logging else "key-value"
        environment = os.environ.get("ENVIRONMENT", "local")
        configure_logging(
            level=env_config.log_level, format_type=log_format, environment=environment
        )

        logger.info(
            "Deadline notifier starting",
            extra={
                "event": "service.starting",
                "command": args.command,
                "config_path": str(args.config) if args.config else None,
                "log_level": env_config.log_level,
            },
        )

        runtime = build_runtime(app_config, env_config)
        try:
            if args.command == "run":
                return command_run(runtime, args.bucket, args.today)
            if args.command == "serve":
                return command_serve(runtime)
            if args.command == "history":
                return command_history(runtime, args)
            if args.command == "stats":
                return command_stats(runtime, args.days, args.json)
            if args.command == "auth-status":
                return command_auth_status(runtime)
            return 1
        finally:
            close_database()
            logger.info(
                "Deadline notifier stopped",
                extra={
                    "event": "service.stopping",
                    "uptime_seconds": round(time.time() - start_time, 2),
                },
            )

    except ConfigurationError as e:
        print(f"Configuration Error: {e}", file=sys.stderr)
        logger.error(
            f"Configuration error: {e}",
            extra={"event": "config.error", "error_type": "ConfigurationError"},
        )
        return 1
    except KeyboardInterrupt:
        print("\nShutdown requested by user", file=sys.stderr)
        return 0
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        logger.critical(
            "Fatal error during startup",
            extra={
                "event": "service.startup.failed",
                "error_type": type(e).__name__,
                "error": str(e),
            },
            exc_info=True,
        )
        return 1


def run() -> None:
    """Console script entry point."""
    sys.exit(main())


if __name__ == "__main__":
    run()
