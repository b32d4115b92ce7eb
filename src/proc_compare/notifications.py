"""Desktop notification system for proc-compare."""

import subprocess
from dataclasses import dataclass

import structlog

from proc_compare.errors import NotificationDeliveryFailure

log = structlog.get_logger()

NOTIFY_SEND = "notify-send"
ALERT_TITLE = "Process Compare Alert"


@dataclass(frozen=True, slots=True)
class AlertEvent:
    """A change of best pair between two monitor cycles."""

    score: int
    process1: str  # ProcessRecord.summary()
    process2: str

    @property
    def message(self) -> str:
        return (
            f"New best pair detected. Combined diff: {self.score}\n"
            f"{self.process1} / {self.process2}"
        )


def send_notification(title: str, message: str, urgency: str = "normal") -> None:
    """Send a desktop notification via notify-send.

    Args:
        title: Notification summary line
        message: Notification body
        urgency: low, normal or critical

    Raises:
        NotificationDeliveryFailure: If notify-send is missing, hangs, or fails.
    """
    try:
        result = subprocess.run(
            [NOTIFY_SEND, "--urgency", urgency, title, message],
            capture_output=True,
            timeout=5,
        )
    except (subprocess.TimeoutExpired, FileNotFoundError) as e:
        raise NotificationDeliveryFailure(str(e)) from e

    if result.returncode != 0:
        stderr = result.stderr.decode("utf-8", errors="replace").strip()
        raise NotificationDeliveryFailure(
            f"{NOTIFY_SEND} exited with {result.returncode}: {stderr}"
        )
    log.debug("notification_sent", title=title)


class Notifier:
    """Delivers best-pair change alerts when alerting is enabled."""

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self.sent = 0
        self.failed = 0

    def best_pair_changed(self, event: AlertEvent) -> bool:
        """Notify about a new best pair.

        Delivery failures are logged and swallowed so a missing
        notification backend never stops monitoring.

        Returns:
            True if a notification was delivered
        """
        if not self.enabled:
            return False

        try:
            send_notification(title=ALERT_TITLE, message=event.message)
        except NotificationDeliveryFailure as e:
            self.failed += 1
            log.warning("notification_failed", error=str(e), score=event.score)
            return False

        self.sent += 1
        return True
