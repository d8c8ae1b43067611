import requests

from .errors import DependencyError
from .logger import logger


class NotificationHook:
    """Posts overdue reminders to the email/SMS gateway webhook."""

    def __init__(self, url=None, timeout=5.0, session=None):
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, config):
        return cls(config.get("NOTIFY_WEBHOOK_URL"), config.get("NOTIFY_TIMEOUT", 5.0))

    def send_reminder(self, loan):
        """Dispatch one reminder; returns True when the gateway accepted it."""
        if not self.url:
            logger.info(
                "no notification gateway configured, reminder for loan %s logged only",
                loan.get("loanId"),
            )
            return False

        message = {
            "type": "library_reminder",
            "studentId": loan.get("studentId"),
            "loanId": loan.get("loanId"),
            "bookId": loan.get("bookId"),
            "bookTitle": loan.get("bookTitle"),
            "dueDate": loan.get("dueDate"),
            "daysOverdue": loan.get("daysOverdue"),
            "fine": loan.get("fine"),
        }
        try:
            r = self.session.post(self.url, json=message, timeout=self.timeout)
            r.raise_for_status()
        except requests.RequestException as exc:
            raise DependencyError(f"Notification gateway error: {exc}") from exc

        logger.info("reminder for loan %s delivered", loan.get("loanId"))
        return True
