"""
Simple Update Checker - Push Notifications
Sends update and error notifications through ntfy.sh and keeps track of which
updates were already announced.
"""

import logging
from typing import Optional, Protocol

import requests

from core.errors import ConsistencyError, NotificationError
from core.models import Program, format_datetime, utc_now
from core.store import ProgramStore

logger = logging.getLogger(__name__)

DEFAULT_NTFY_SERVER = "https://ntfy.sh"


class NotificationChannel(Protocol):
    """External channel push notifications are delivered through."""

    def send_update_notification(self, topic: str, message: str) -> None:
        ...

    def send_error_notification(self, topic: str, message: str) -> None:
        ...


class NtfyChannel:
    """Publishes notifications to an ntfy server."""

    def __init__(self, server: str = DEFAULT_NTFY_SERVER, timeout: int = 10):
        """
        Args:
            server: Base URL of the ntfy server.
            timeout: Request timeout in seconds.
        """
        self.server = server.rstrip("/")
        self.timeout = timeout

    def send_update_notification(self, topic: str, message: str) -> None:
        self.send(topic, message, title="Updates available", tags="arrow_up")

    def send_error_notification(self, topic: str, message: str) -> None:
        self.send(topic, message, title="Error while checking for updates", tags="x")

    def send(self, topic: str, message: str, title: str, tags: str) -> None:
        """
        Publish ``message`` to ``topic``.

        Raises:
            NotificationError: If the server could not be reached or rejected
                the message.
        """
        url = f"{self.server}/{topic}"
        try:
            response = requests.post(
                url,
                data=message.encode("utf-8"),
                headers={"Title": title, "Tags": tags},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise NotificationError(f"Failed to send notification to {url}: {e}") from e


def build_update_message(programs: list[Program]) -> str:
    """One ``name: current -> latest`` line per program."""
    return "".join(
        f"{p.name}: {p.current_version} -> {p.latest_version}\n" for p in programs
    )


class NotificationDispatcher:
    """Decides which updates to announce and records successful dispatches."""

    def __init__(self, store: ProgramStore, channel: Optional[NotificationChannel] = None):
        self.store = store
        self.channel = channel or NtfyChannel()

    def notify_updates(self, topic: str, programs: list[Program]) -> list[Program]:
        """
        Send a single notification listing every update not yet announced.

        Args:
            topic: Topic to publish to.
            programs: Programs with a visible update.

        Returns:
            The programs that were included in the notification.

        Raises:
            ConsistencyError: If a program is missing from the store.
            NotificationError: If sending failed. No flags are changed then,
                so the next pass retries the same programs.
        """
        pending = []
        for program in programs:
            info = self.store.get_notification_info(program.name)
            if info is None:
                raise ConsistencyError(f"Unable to find program {program.name} in database")
            if not info.sent:
                pending.append(program)
            elif info.sent_on is not None:
                logger.debug(
                    f"Not adding {program.name} to notification as notification "
                    f"was already sent on {format_datetime(info.sent_on)}"
                )
            else:
                logger.debug(
                    f"Not adding {program.name} to notification as program "
                    "was manually checked for updates"
                )

        if not pending:
            logger.debug(
                "Not sending push notification as no updates are available "
                "for which notifications were not already sent"
            )
            return []

        logger.info(f"Sending push notification to topic {topic}")
        self.channel.send_update_notification(topic, build_update_message(pending))

        self.store.mark_notifications_sent([program.name for program in pending], utc_now())
        return pending

    def notify_error(self, topic: str, message: str) -> bool:
        """
        Best-effort error notification. Failures are logged, never raised.

        Returns:
            True if the notification was delivered.
        """
        try:
            self.channel.send_error_notification(topic, message)
        except Exception as e:
            logger.error(f"Error while sending error notification: {e}")
            return False
        return True
