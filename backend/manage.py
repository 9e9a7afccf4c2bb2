"""Management commands for the spa booking backend."""

from __future__ import annotations

import logging
import time

import click

from spa_booking.bootstrap import build_appointment_service, build_availability_catalog
from spa_booking.core import config
from spa_booking.core.exceptions import NotificationError, SchedulingError
from spa_booking.core.logging_config import setup_logging
from spa_booking.db.session import SessionLocal, create_tables
from spa_booking.scheduler import create_reminder_scheduler
from spa_booking.schemas.dtos import AvailabilityBlockCreateRequest
from spa_booking.services.notification_service import (
    AppointmentNotifier,
    NotificationDispatcher,
    WhatsAppSender,
)
from spa_booking.services.reminder_service import ReminderService

logger = logging.getLogger(__name__)


@click.group()
@click.option("--log-level", default="INFO", show_default=True)
@click.option("--json-logs", is_flag=True, help="Emit logs as JSON lines.")
def cli(log_level: str, json_logs: bool) -> None:
    """Entry point for management commands."""
    config.load_environment()
    setup_logging(log_level=log_level, log_to_file=False, use_json_format=json_logs)
    config.log_scheduling_config()


@cli.command("create-tables")
def create_tables_command() -> None:
    """Create every table that does not exist yet."""
    create_tables()
    click.echo("Tables created.")


@cli.command("add-availability")
@click.option("--staff-id", type=int, required=True)
@click.option(
    "--day",
    "day_of_week",
    required=True,
    help="Weekday name, e.g. Monday.",
)
@click.option("--start", "start_time", required=True, help="HH:MM")
@click.option("--end", "end_time", required=True, help="HH:MM")
@click.option("--max-concurrent", type=int, default=1, show_default=True)
def add_availability(
    staff_id: int, day_of_week: str, start_time: str, end_time: str, max_concurrent: int
) -> None:
    """Add a recurring availability block for a staff member."""
    session = SessionLocal()
    try:
        catalog = build_availability_catalog(session)
        block = catalog.create_block(
            AvailabilityBlockCreateRequest(
                staff_id=staff_id,
                day_of_week=day_of_week.capitalize(),
                start_time=start_time,
                end_time=end_time,
                max_concurrent=max_concurrent,
            )
        )
        click.echo(
            f"Created block {block.id}: {block.day_of_week.value} "
            f"{block.start_time}-{block.end_time} (max {block.max_concurrent})"
        )
    except SchedulingError as e:
        session.rollback()
        raise click.ClickException(str(e))
    finally:
        session.close()


@cli.command("send-reminders")
@click.option(
    "--wait",
    "wait_seconds",
    type=float,
    default=600.0,
    show_default=True,
    help="Seconds to wait for queued messages to be delivered.",
)
def send_reminders(wait_seconds: float) -> None:
    """Send day-ahead reminders for confirmed appointments."""
    try:
        sender = WhatsAppSender()
    except NotificationError as e:
        raise click.ClickException(str(e))

    dispatcher = NotificationDispatcher(sender)
    notifier = AppointmentNotifier(dispatcher)
    session = SessionLocal()
    try:
        service = build_appointment_service(session, notifier)
        queued = ReminderService(service, notifier).send_due_reminders()
    finally:
        session.close()

    if not dispatcher.flush(timeout=wait_seconds):
        logger.warning("Timed out waiting for reminders to be delivered")
    dispatcher.stop(timeout=5)
    click.echo(
        f"Queued {queued} reminder(s); sent {dispatcher.sent_count}, "
        f"failed {dispatcher.failed_count}."
    )


@cli.command("run-scheduler")
@click.option(
    "--interval",
    "interval_minutes",
    type=float,
    default=None,
    help="Minutes between reminder runs (defaults to REMINDER_INTERVAL_MINUTES).",
)
def run_scheduler(interval_minutes: float | None) -> None:
    """Run the reminder job in the foreground until interrupted."""
    try:
        sender = WhatsAppSender()
    except NotificationError as e:
        raise click.ClickException(str(e))

    dispatcher = NotificationDispatcher(sender)
    notifier = AppointmentNotifier(dispatcher)
    try:
        scheduler = create_reminder_scheduler(notifier, interval_minutes)
    except ValueError as e:
        dispatcher.stop(timeout=5)
        raise click.ClickException(str(e))

    scheduler.start()
    click.echo("Reminder scheduler running; press Ctrl+C to stop.")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        logger.info("Reminder scheduler interrupted")
    finally:
        scheduler.shutdown(wait=True)
        dispatcher.flush(timeout=60)
        dispatcher.stop(timeout=5)


if __name__ == "__main__":
    cli()
