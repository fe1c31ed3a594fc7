from typing import Dict, Any, Tuple
from loguru import logger

from app.core.config import settings

# template name -> (subject, body)
EMAIL_TEMPLATES: Dict[str, Tuple[str, str]] = {
    "welcome": (
        "Welcome to LabMate360",
        "Hi {first_name},\n\nYour LabMate360 account is ready. "
        "Book lab tests and health packages at {frontend_url}.\n",
    ),
    "booking_created": (
        "Booking received - {lab_name}",
        "Hi {first_name},\n\nWe received your booking {booking_id} at {lab_name} "
        "for {appointment_date} {appointment_time}.\nTotal amount: {total_amount}\n"
        "Payment method: {payment_method}\n",
    ),
    "booking_cancelled": (
        "Booking cancelled",
        "Hi {first_name},\n\nYour booking {booking_id} scheduled for "
        "{appointment_date} {appointment_time} has been cancelled.\n",
    ),
    "payment_confirmed": (
        "Payment received",
        "Hi {first_name},\n\nWe received {paid_amount} for booking {booking_id}. "
        "Your appointment is {status}.\n",
    ),
    "results_published": (
        "Your lab results are ready",
        "Hi {first_name},\n\nResults for booking {booking_id} are published. "
        "Sign in at {frontend_url} to view them.\n",
    ),
}


class _SafeDict(dict):
    def __missing__(self, key):
        return ""


def render_email(template: str, variables: Dict[str, Any]) -> Tuple[str, str]:
    """Render subject and body for a named template"""
    if template not in EMAIL_TEMPLATES:
        raise KeyError(f"Unknown email template: {template}")
    subject, body = EMAIL_TEMPLATES[template]
    context = _SafeDict(frontend_url=settings.FRONTEND_URL, **variables)
    return subject.format_map(context), body.format_map(context)


def send_email(template: str, to: str, variables: Dict[str, Any]) -> bool:
    # Delivery provider is plugged in by deployment; log the rendered message
    subject, body = render_email(template, variables)
    logger.info(f"Sending '{template}' email from {settings.EMAIL_FROM} to {to}: {subject}")
    logger.debug(body)
    return True
