from typing import Dict, Any
from app.core.celery_app import celery_app
from loguru import logger
from app.services.email import send_email


@celery_app.task(name="app.tasks.email_tasks.send_booking_email_task")
def send_booking_email_task(template: str, to: str, variables: Dict[str, Any]):
    """
    Celery task to render and deliver a transactional email.
    """
    logger.info(f"Background task: sending '{template}' email to {to}")
    return send_email(template, to, variables)
