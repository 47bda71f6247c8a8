"""Command-line entry point for the notification engine."""

import argparse
import json
import os
import signal
import sys
import threading
import time
from datetime import timedelta
from pathlib import Path
from typing import List, Optional, Tuple

from dotenv import load_dotenv
from pydantic import ValidationError

from notification_engine.config.environment import EnvironmentConfig
from notification_engine.config.exceptions import ConfigurationError
from notification_engine.config.loader import load_config
from notification_engine.config.models import AppConfig
from notification_engine.domain.models import Channel, NotificationMessage, NotificationStatus
from notification_engine.logging import get_logger
from notification_engine.logging.config import configure_logging
from notification_engine.notifications.collaborators import (
    InMemoryTemplateRepository,
    StaticPreferences,
    StaticSettings,
    load_templates_file,
)
from notification_engine.notifications.failure_tracker import FailureTracker
from notification_engine.notifications.models import TemplateNotFoundError
from notification_engine.notifications.service import NotificationService
from notification_engine.persistence.database import close_database, get_session, init_database
from notification_engine.persistence.repositories import LogQueryFilters, NotificationLogRepository
from notification_engine.providers.exceptions import ProviderConfigurationError
from notification_engine.providers.factory import build_providers
from notification_engine.rendering.engine import TemplateEngine, TemplateRenderError
from notification_engine.scheduler import RetryScheduler
from notification_engine.utils.timestamps import utc_now

logger = get_logger(__name__, component="cli")

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def load_runtime_config(
    config_path: Optional[Path], log_level_override: Optional[str]
) -> Tuple[AppConfig, EnvironmentConfig]:
    """
    Load configuration and resolve the effective log level.

    Log level priority: CLI > LOG_LEVEL environment variable > config file.

    Raises:
        ConfigurationError: If configuration is invalid
    """
    app_config, env_config = load_config(config_path)

    if log_level_override:
        env_config.log_level = log_level_override
    elif not env_config.log_level:
        env_config.log_level = app_config.logging.level or "INFO"

    return app_config, env_config


def build_service(app_config: AppConfig, env_config: EnvironmentConfig) -> NotificationService:
    """Wire the notification service from configuration.

    Raises:
        ConfigurationError: If the templates file is invalid
        ProviderConfigurationError: If providers cannot be built
    """
    notifications = app_config.notifications
    if notifications.templates_file:
        templates = load_templates_file(notifications.templates_file)
    else:
        logger.warning(
            "No templates_file configured; every send will fail with 'template not found'",
            extra={"event": "templates.missing"},
        )
        templates = InMemoryTemplateRepository()

    return NotificationService(
        template_engine=TemplateEngine(app_config.business),
        providers=build_providers(app_config.providers, env_config),
        template_repository=templates,
        settings=StaticSettings(notifications.disabled_types, notifications.disabled_channels),
        preferences=StaticPreferences(notifications.opt_outs),
        retry_config=app_config.retry,
        batch_config=app_config.batch,
        failure_tracker=FailureTracker(notifications.pause_threshold),
        transactional_types=notifications.transactional_types,
        claim_lease_seconds=app_config.claim_lease_seconds,
    )


def _print_json(payload) -> None:
    print(json.dumps(payload, default=str, sort_keys=True))


def cmd_send(args, service: NotificationService) -> int:
    try:
        data = json.loads(args.data) if args.data else {}
    except json.JSONDecodeError as e:
        print(f"Invalid --data JSON: {e}", file=sys.stderr)
        return 2
    if not isinstance(data, dict):
        print("--data must be a JSON object", file=sys.stderr)
        return 2

    try:
        message = NotificationMessage(
            type=args.type,
            channel=args.channel,
            recipient=args.recipient,
            template_data=data,
            user_id=args.user_id,
            is_test=args.test,
        )
    except ValidationError as e:
        print(f"Invalid message: {e}", file=sys.stderr)
        return 2

    result = service.send(message)
    _print_json(
        {
            "success": result.success,
            "skipped": result.skipped,
            "message_id": result.message_id,
            "log_id": result.log_id,
            "error": result.error,
            "warnings": result.warnings,
        }
    )
    return 0 if result.success or result.skipped else 1


def cmd_preview(args, service: NotificationService) -> int:
    try:
        data = json.loads(args.data) if args.data else {}
    except json.JSONDecodeError as e:
        print(f"Invalid --data JSON: {e}", file=sys.stderr)
        return 2
    if not isinstance(data, dict):
        print("--data must be a JSON object", file=sys.stderr)
        return 2

    try:
        rendered = service.render_preview(args.type, Channel(args.channel), data)
    except (TemplateNotFoundError, TemplateRenderError) as e:
        print(f"Preview failed: {e}", file=sys.stderr)
        return 1
    _print_json(
        {
            "subject": rendered.subject,
            "text": rendered.text,
            "html": rendered.html,
            "character_count": rendered.character_count,
            "segment_count": rendered.segment_count,
            "warnings": rendered.warnings,
        }
    )
    return 0


def cmd_process_retries(args, service: NotificationService) -> int:
    result = service.process_retries()
    _print_json(result.to_dict())
    return 1 if result.errors else 0


def cmd_log(args, service: NotificationService) -> int:
    filters = LogQueryFilters(
        status=NotificationStatus(args.status) if args.status else None,
        channel=Channel(args.channel) if args.channel else None,
        type=args.type,
        recipient=args.recipient,
        limit=args.limit,
    )
    with get_session() as session:
        entries = NotificationLogRepository(session).query(filters)
    for entry in entries:
        print(entry.model_dump_json())
    return 0


def cmd_metrics(args, service: NotificationService) -> int:
    end = utc_now()
    metrics = service.get_metrics(
        start=end - timedelta(days=args.days), end=end, include_test=args.include_test
    )
    _print_json(metrics.to_dict())
    return 0


def cmd_worker(args, service: NotificationService, app_config: AppConfig) -> int:
    shutdown_event = threading.Event()
    scheduler = RetryScheduler(
        sweep_callable=service.process_retries,
        interval_seconds=app_config.retry_sweep_interval_seconds,
        shutdown_event=shutdown_event,
    )

    def signal_handler(signum, frame):
        logger.info(
            f"Received signal {signum}, shutting down",
            extra={"event": "service.signal_received", "signal": signum},
        )
        scheduler.shutdown(wait=False)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    scheduler.start()
    logger.info("Retry worker started. Press Ctrl+C to stop", extra={"event": "service.worker.started"})

    try:
        shutdown_event.wait()
    except KeyboardInterrupt:
        scheduler.shutdown(wait=False)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="notification-engine",
        description="Notification Delivery Engine - templated email/SMS delivery with retries",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to configuration file (default: ./config.yaml or ./config/config.yaml)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=LOG_LEVELS,
        help="Log level (overrides config and environment)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    send = subparsers.add_parser("send", help="Send one notification")
    send.add_argument("--type", required=True, help="Notification type, e.g. booking_confirmation")
    send.add_argument("--channel", required=True, choices=[c.value for c in Channel])
    send.add_argument("--recipient", required=True, help="Email address or phone number")
    send.add_argument("--data", default=None, help="Template data as a JSON object")
    send.add_argument("--user-id", default=None, help="Recipient account id for opt-out checks")
    send.add_argument("--test", action="store_true", help="Mark as a test send")

    preview = subparsers.add_parser("preview", help="Render a template without sending")
    preview.add_argument("--type", required=True)
    preview.add_argument("--channel", required=True, choices=[c.value for c in Channel])
    preview.add_argument("--data", default=None, help="Template data as a JSON object")

    subparsers.add_parser("process-retries", help="Run one retry sweep and exit")
    subparsers.add_parser("worker", help="Run retry sweeps on the configured interval")

    log = subparsers.add_parser("log", help="Print notification log entries as JSON lines")
    log.add_argument("--status", choices=[s.value for s in NotificationStatus])
    log.add_argument("--channel", choices=[c.value for c in Channel])
    log.add_argument("--type", default=None)
    log.add_argument("--recipient", default=None)
    log.add_argument("--limit", type=int, default=100)

    metrics = subparsers.add_parser("metrics", help="Print delivery metrics as JSON")
    metrics.add_argument("--days", type=int, default=30, help="Window size in days (default 30)")
    metrics.add_argument("--include-test", action="store_true", help="Include test sends")

    return parser


COMMANDS = {
    "send": cmd_send,
    "preview": cmd_preview,
    "process-retries": cmd_process_retries,
    "log": cmd_log,
    "metrics": cmd_metrics,
}


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    start_time = time.time()
    load_dotenv()
    args = build_parser().parse_args(argv)

    try:
        app_config, env_config = load_runtime_config(args.config, args.log_level)

        # Command output goes to stdout, so logs go to stderr except for the worker
        configure_logging(
            level=env_config.log_level,
            format_type=app_config.logging.format,
            environment=os.environ.get("ENVIRONMENT", env_config.environment),
            stream=sys.stdout if args.command == "worker" else sys.stderr,
        )

        logger.info(
            "Notification engine starting",
            extra={
                "event": "service.starting",
                "command": args.command,
                "config_path": str(args.config) if args.config else None,
                "log_level": env_config.log_level,
                "provider_mode": app_config.providers.mode,
            },
        )

        init_database(env_config.database_url)
        try:
            service = build_service(app_config, env_config)
            if args.command == "worker":
                exit_code = cmd_worker(args, service, app_config)
            else:
                exit_code = COMMANDS[args.command](args, service)
        finally:
            close_database()

        logger.info(
            "Notification engine stopped",
            extra={
                "event": "service.stopping",
                "uptime_seconds": round(time.time() - start_time, 2),
                "exit_code": exit_code,
            },
        )
        return exit_code

    except (ConfigurationError, ProviderConfigurationError) as e:
        print(f"Configuration Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nShutdown requested by user", file=sys.stderr)
        return 0
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        logger.critical(
            "Fatal error",
            exc_info=True,
            extra={"event": "service.failed", "error_type": type(e).__name__, "error": str(e)},
        )
        return 1


if __name__ == "__main__":
    sys.exit(main())
