"""Task mail automation: scan tasks and dispatch mock email notifications.

Nothing is actually sent. Each email waits a random 100-500 ms to stand
in for network latency, then lands in the notification history.

Flow:
  1. classify_tasks splits pending tasks into overdue, due soon and high priority
  2. TaskNotifier renders a template per task and "sends" it
  3. TaskAutomation repeats the check on a fixed interval (20 minutes by default)
"""
import asyncio
import inspect
import random
import sys
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Union

from src.config import get_config
from src.dates import parse_date
from src.notification_history import NotificationHistory


DUE_SOON_WINDOW = timedelta(hours=24)
HIGH_PRIORITY_LIMIT = 3  # Avoid spamming about every high priority task


class NotificationType(str, Enum):
    OVERDUE = "overdue"
    DUE_SOON = "due_soon"
    HIGH_PRIORITY = "high_priority"
    REMINDER = "reminder"


@dataclass
class EmailTemplate:
    subject: str
    body: str
    priority: str  # high, medium, low


@dataclass
class TaskClassification:
    """Pending tasks grouped by why they need a notification."""
    overdue: List[Mapping[str, Any]] = field(default_factory=list)
    due_soon: List[Mapping[str, Any]] = field(default_factory=list)
    high_priority: List[Mapping[str, Any]] = field(default_factory=list)


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}{'' if count == 1 else 's'}"


def overdue_duration(due: datetime, now: datetime) -> str:
    """Human-readable time since ``due``, e.g. ``"2 days, 3 hours"``."""
    seconds = max(0, int((now - due).total_seconds()))
    days, rest = divmod(seconds, 86400)
    hours = rest // 3600
    if days > 0:
        return f"{_plural(days, 'day')}, {_plural(hours, 'hour')}"
    return _plural(hours, "hour")


def time_remaining(due: datetime, now: datetime) -> str:
    """Human-readable time until ``due``, e.g. ``"3 hours, 20 minutes"``."""
    seconds = max(0, int((due - now).total_seconds()))
    hours, rest = divmod(seconds, 3600)
    minutes = rest // 60
    if hours > 0:
        return f"{_plural(hours, 'hour')}, {_plural(minutes, 'minute')}"
    return _plural(minutes, "minute")


def build_template(notification_type: NotificationType, task: Mapping[str, Any], now: datetime) -> EmailTemplate:
    """Render the email for one task.

    Args:
        notification_type: Why the task is being reported
        task: Task record
        now: Current time, for relative durations

    Returns:
        Subject, plain-text body and delivery priority
    """
    title = task.get("title") or "Untitled task"
    description = task.get("description") or "No description provided"
    priority = task.get("priority") or "Unknown"
    due = parse_date(task.get("dueDate"))
    due_text = due.strftime("%Y-%m-%d %H:%M %Z") if due else "No due date"

    lines = [title, "", description, "", f"Priority: {priority}", f"Due Date: {due_text}"]

    if notification_type == NotificationType.OVERDUE:
        if due:
            lines.append(f"Overdue By: {overdue_duration(due, now)}")
        lines += ["", "Please complete this task as soon as possible."]
        return EmailTemplate(f"OVERDUE: {title}", "\n".join(lines), "high")

    if notification_type == NotificationType.DUE_SOON:
        if due:
            lines.append(f"Time Remaining: {time_remaining(due, now)}")
        lines += ["", "This task is due within the next 24 hours."]
        return EmailTemplate(f"Due Soon: {title}", "\n".join(lines), "medium")

    if notification_type == NotificationType.HIGH_PRIORITY:
        lines += ["Status: Pending", "", "This is a high priority task that requires your attention."]
        return EmailTemplate(f"High Priority Task: {title}", "\n".join(lines), "high")

    lines += ["Status: Pending", "", "Reminder: Don't forget to complete this task."]
    return EmailTemplate(f"Task Reminder: {title}", "\n".join(lines), "low")


def classify_tasks(tasks: Iterable[Mapping[str, Any]], now: datetime) -> TaskClassification:
    """Find pending tasks that are overdue, due within 24 hours, or high priority.

    High priority tasks already reported as overdue or due soon are left
    out, and at most :data:`HIGH_PRIORITY_LIMIT` are kept.
    """
    result = TaskClassification()
    pending = [t for t in tasks if isinstance(t, Mapping) and not t.get("completed")]

    for task in pending:
        due = parse_date(task.get("dueDate"))
        if due is None:
            continue
        if due < now:
            result.overdue.append(task)
        elif now < due <= now + DUE_SOON_WINDOW:
            result.due_soon.append(task)

    reported = {id(t) for t in result.overdue + result.due_soon}
    result.high_priority = [
        t for t in pending
        if t.get("priority") == "High" and id(t) not in reported
    ][:HIGH_PRIORITY_LIMIT]

    return result


class TaskNotifier:
    """Dispatches mock emails and records them in the history."""

    def __init__(
        self,
        history: Optional[NotificationHistory] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
        clock: Optional[Callable[[], datetime]] = None,
        min_delay: Optional[float] = None,
        max_delay: Optional[float] = None,
    ):
        config = get_config().notifications
        self.history = history
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.min_delay = config.min_delay if min_delay is None else min_delay
        self.max_delay = config.max_delay if max_delay is None else max_delay

    async def send_mock_email(
        self,
        to: str,
        template: EmailTemplate,
        notification_type: NotificationType,
        task: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Simulate sending one email.

        Returns:
            The notification record
        """
        delay = self._rng.uniform(self.min_delay, self.max_delay)
        await self._sleep(delay)

        notification = {
            "id": str(uuid.uuid4()),
            "type": notification_type.value,
            "to": to,
            "subject": template.subject,
            "body": template.body,
            "priority": template.priority,
            "status": "sent",
            "sent_at": self._clock().isoformat(),
            "delivery_ms": int(round(delay * 1000)),
            "task": dict(task) if task is not None else None,
        }

        if self.history is not None:
            await self.history.record(notification)

        print(
            f"[TaskNotifier] Email sent to {to}: {template.subject} ({notification['delivery_ms']}ms)",
            file=sys.stderr,
        )
        return notification

    async def send_reminder(
        self,
        task: Mapping[str, Any],
        user_email: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Send a one-off reminder email for ``task``."""
        user_email = user_email or get_config().notifications.user_email
        template = build_template(NotificationType.REMINDER, task, self._clock())
        return await self.send_mock_email(user_email, template, NotificationType.REMINDER, task)

    async def check_tasks_and_notify(
        self,
        tasks: Iterable[Mapping[str, Any]],
        user_email: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Check tasks and send a notification for each one that needs it.

        Args:
            tasks: Current task collection
            user_email: Recipient (defaults to config)

        Returns:
            Summary with counts per category and the notifications sent
        """
        tasks = list(tasks)
        user_email = user_email or get_config().notifications.user_email
        now = self._clock()
        classification = classify_tasks(tasks, now)

        notifications = []
        batches = (
            (NotificationType.OVERDUE, classification.overdue),
            (NotificationType.DUE_SOON, classification.due_soon),
            (NotificationType.HIGH_PRIORITY, classification.high_priority),
        )
        for notification_type, batch in batches:
            for task in batch:
                template = build_template(notification_type, task, now)
                notifications.append(
                    await self.send_mock_email(user_email, template, notification_type, task)
                )

        print(
            f"[TaskNotifier] Checked {len(tasks)} tasks, sent {len(notifications)} notifications",
            file=sys.stderr,
        )

        return {
            "timestamp": now.isoformat(),
            "total_tasks": len(tasks),
            "overdue_tasks": len(classification.overdue),
            "due_soon_tasks": len(classification.due_soon),
            "high_priority_tasks": len(classification.high_priority),
            "notifications_sent": len(notifications),
            "notifications": notifications,
        }


TaskSource = Callable[[], Union[List[Mapping[str, Any]], Awaitable[List[Mapping[str, Any]]]]]


class TaskAutomation:
    """Runs :meth:`TaskNotifier.check_tasks_and_notify` on a fixed interval."""

    def __init__(
        self,
        notifier: TaskNotifier,
        get_tasks: TaskSource,
        interval_minutes: Optional[float] = None,
        user_email: Optional[str] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        config = get_config().notifications
        self.notifier = notifier
        self.get_tasks = get_tasks
        self.interval_minutes = config.interval_minutes if interval_minutes is None else interval_minutes
        self.user_email = user_email
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None
        self.last_run: Optional[Dict[str, Any]] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> Optional[Dict[str, Any]]:
        """Run a single check. Errors are logged, never raised."""
        try:
            tasks = self.get_tasks()
            if inspect.isawaitable(tasks):
                tasks = await tasks

            if not tasks:
                print("[TaskAutomation] No tasks found, skipping automation run", file=sys.stderr)
                return None

            self.last_run = await self.notifier.check_tasks_and_notify(tasks, self.user_email)
            return self.last_run
        except Exception as e:
            print(f"[TaskAutomation] Error in task automation: {e}", file=sys.stderr)
            return None

    async def _run_forever(self) -> None:
        while True:
            await self.run_once()
            await self._sleep(self.interval_minutes * 60)

    def start(self) -> None:
        """Run immediately, then every interval, until :meth:`stop`."""
        if self.is_running:
            return
        print(
            f"[TaskAutomation] Starting, interval every {self.interval_minutes:g} minutes",
            file=sys.stderr,
        )
        self._task = asyncio.get_running_loop().create_task(self._run_forever())

    async def stop(self) -> None:
        """Cancel the automation loop and wait for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        print("[TaskAutomation] Stopped", file=sys.stderr)
