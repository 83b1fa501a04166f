"""Main entry point for the HR notification service."""

from dotenv import load_dotenv
load_dotenv()

import argparse
import json
import sys
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from aiohttp import web

from hr_notify.config.environment import EnvironmentConfig
from hr_notify.config.exceptions import ConfigurationError
from hr_notify.config.loader import load_config
from hr_notify.config.models import AppConfig
from hr_notify.logging import get_logger
from hr_notify.logging.config import configure_logging
from hr_notify.notifications.dispatcher import NotificationDispatcher
from hr_notify.notifications.models import NotificationError
from hr_notify.notifications.providers import PreviewProvider
from hr_notify.notifications.rate_limit import SlidingWindowRateLimiter
from hr_notify.notifications.store import TemplateStore
from hr_notify.persistence import DatabaseOverrideStore, close_database, init_database
from hr_notify.realtime.server import RealtimeChannelServer
from hr_notify.scheduler import ReminderJob, SchedulerService

logger = get_logger(__name__, component="cli")


def load_runtime_config(
    config_path: Optional[Path], log_level_override: Optional[str]
) -> Tuple[AppConfig, EnvironmentConfig]:
    """
    Load and prepare runtime configuration.

    Log level priority: CLI > environment > config file.

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


def build_dispatcher(app_config: AppConfig, store: Optional[TemplateStore] = None) -> NotificationDispatcher:
    """Wire the email path from configuration."""
    rate_limiter = SlidingWindowRateLimiter(
        limit=app_config.rate_limit.max_dispatches,
        window_seconds=app_config.rate_limit.window_seconds,
    )
    return NotificationDispatcher(
        store=store,
        provider_config=app_config.provider,
        settings=app_config.notifications,
        company=app_config.company,
        rate_limiter=rate_limiter,
    )


def _read_json(path: Path) -> Any:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, ValueError) as e:
        raise ConfigurationError(f"Cannot read JSON file {path}: {e}")


def _reminder_source(path: Path):
    def source() -> List[Dict[str, Any]]:
        entries = _read_json(path)
        if not isinstance(entries, list):
            raise ConfigurationError(f"{path} must contain a JSON list of reminder contexts")
        return entries

    return source


def cmd_serve(args: argparse.Namespace, app_config: AppConfig, env_config: EnvironmentConfig) -> int:
    if app_config.reminders.enabled and args.reminders is None:
        raise ConfigurationError(
            "Reminders are enabled but no reminder source was given",
            suggestions=["Pass --reminders FILE.json or set reminders.enabled: false"],
        )

    init_database(env_config.database_url)

    store = TemplateStore(overrides=DatabaseOverrideStore())
    dispatcher = build_dispatcher(app_config, store)
    server = RealtimeChannelServer(app_config.realtime)
    app = server.create_app()

    scheduler_service: Optional[SchedulerService] = None
    if app_config.reminders.enabled:
        job = ReminderJob(dispatcher, _reminder_source(args.reminders), publish=server.publish_threadsafe)
        scheduler_service = SchedulerService(
            job_callable=job.run,
            interval_seconds=app_config.reminders.interval_seconds,
        )

        async def start_scheduler(app: web.Application) -> None:
            scheduler_service.start()

        app.on_startup.append(start_scheduler)

    async def cleanup(app: web.Application) -> None:
        if scheduler_service is not None:
            scheduler_service.shutdown(wait=False)
        close_database()

    app.on_cleanup.append(cleanup)

    logger.info(
        f"Serving realtime channel on {app_config.realtime.host}:{app_config.realtime.port}",
        extra={
            "event": "service.serve.starting",
            "provider": app_config.provider.kind,
            "reminders_enabled": app_config.reminders.enabled,
        },
    )
    web.run_app(app, host=app_config.realtime.host, port=app_config.realtime.port, print=None)
    return 0


def cmd_templates(args: argparse.Namespace, app_config: AppConfig, env_config: EnvironmentConfig) -> int:
    init_database(env_config.database_url)
    try:
        store = TemplateStore(overrides=DatabaseOverrideStore())
        for template in store.list():
            marker = "custom" if template.is_custom else "default"
            print(f"{template.name:<40} {marker}")
    finally:
        close_database()
    return 0


def cmd_preview(args: argparse.Namespace, app_config: AppConfig, env_config: EnvironmentConfig) -> int:
    context = _read_json(args.context) if args.context else {}
    if not isinstance(context, dict):
        raise ConfigurationError(f"{args.context} must contain a JSON object")

    dispatcher = build_dispatcher(app_config)
    preview = PreviewProvider()
    try:
        result = dispatcher.dispatch(args.event, context, provider=preview, force=True)
    except NotificationError as e:
        print(f"Preview failed: {e}", file=sys.stderr)
        return 1

    for email in result.messages:
        print(f"To: {', '.join(email.recipients)}")
        if email.bcc:
            print(f"Bcc: {', '.join(email.bcc)}")
        print(f"Subject: {email.subject}")
        print(f"Template: {email.template_name}")
        print()
        print(email.html_body if args.html else email.text_body)
        print("-" * 72)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="HR notification service - realtime alerts and templated email for time management events"
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to configuration file (default: config.yaml or config/config.yaml)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (overrides config and environment)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the realtime channel server and reminder scheduler")
    serve.add_argument(
        "--reminders",
        type=Path,
        default=None,
        help="JSON file listing employees with missing time entries",
    )
    serve.set_defaults(handler=cmd_serve)

    templates = subparsers.add_parser("templates", help="List templates and whether they are customized")
    templates.set_defaults(handler=cmd_templates)

    preview = subparsers.add_parser("preview", help="Render an event's email without sending it")
    preview.add_argument("event", help="Event type, e.g. leave_request_approved")
    preview.add_argument("--context", type=Path, default=None, help="JSON file with the render context")
    preview.add_argument("--html", action="store_true", help="Print the HTML body instead of plain text")
    preview.set_defaults(handler=cmd_preview)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the HR notification service.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    start_time = time.time()
    args = build_parser().parse_args(argv)

    try:
        app_config, env_config = load_runtime_config(args.config, args.log_level)

        log_format = app_config.logging.format if app_config.logging else "key-value"
        configure_logging(level=env_config.log_level, format_type=log_format, environment=env_config.environment)

        logger.info(
            "HR notification service starting",
            extra={
                "event": "service.starting",
                "command": args.command,
                "log_level": env_config.log_level,
            },
        )

        exit_code = args.handler(args, app_config, env_config)

        logger.info(
            "HR notification service stopped",
            extra={"event": "service.stopping", "uptime_seconds": round(time.time() - start_time, 2)},
        )
        return exit_code

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


if __name__ == "__main__":
    sys.exit(main())
