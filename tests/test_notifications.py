import pytest

from app.infrastructure.notifications import EmailDispatcher
from app.services.email import EMAIL_TEMPLATES, render_email, send_email


@pytest.mark.unit
class TestEmailTemplates:

    def test_render_booking_created(self) -> None:
        subject, body = render_email("booking_created", {
            "first_name": "Asha",
            "booking_id": "b-1",
            "lab_name": "Alpha Diagnostics",
            "appointment_date": "2026-03-07",
            "appointment_time": "09:30 AM",
            "total_amount": "500.00",
            "payment_method": "pay_now",
        })
        assert subject == "Booking received - Alpha Diagnostics"
        assert "b-1" in body
        assert "500.00" in body

    def test_missing_variables_render_blank(self) -> None:
        subject, body = render_email("results_published", {})
        assert subject == "Your lab results are ready"
        assert body.startswith("Hi ,")

    def test_unknown_template(self) -> None:
        with pytest.raises(KeyError):
            render_email("newsletter", {})

    def test_send_email_for_every_template(self) -> None:
        for template in EMAIL_TEMPLATES:
            assert send_email(template, "patient@example.com", {"first_name": "Asha"}) is True


@pytest.mark.unit
class TestEmailDispatcher:
    """Dispatch is best-effort and never raises."""

    def test_send_runs_task_eagerly(self) -> None:
        assert EmailDispatcher().send("welcome", "patient@example.com", {"first_name": "Asha"}) is True

    def test_send_without_recipient(self) -> None:
        assert EmailDispatcher().send("welcome", "", {}) is False

    def test_enqueue_failure_is_swallowed(self, monkeypatch) -> None:
        from app.tasks import email_tasks

        def broken_delay(*args, **kwargs):
            raise ConnectionError("broker unavailable")

        monkeypatch.setattr(email_tasks.send_booking_email_task, "delay", broken_delay)

        assert EmailDispatcher().send("welcome", "patient@example.com", {"first_name": "Asha"}) is False
