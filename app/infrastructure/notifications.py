import logging
from typing import Dict, Any

logger = logging.getLogger(__name__)


class EmailDispatcher:
    """Best-effort email dispatch.

    Emails are handed to Celery and never block or fail the request that
    triggered them; enqueue errors are logged and dropped.
    """

    def send(self, template: str, to: str, variables: Dict[str, Any]) -> bool:
        if not to:
            logger.warning(f"Skipping '{template}' email: no recipient")
            return False
        try:
            from app.tasks.email_tasks import send_booking_email_task
            send_booking_email_task.delay(template, to, variables)
            logger.info(f"Queued '{template}' email to {to}")
            return True
        except Exception as e:
            logger.error(f"Failed to queue '{template}' email to {to}: {e}")
            return False


email_dispatcher = EmailDispatcher()
