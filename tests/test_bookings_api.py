import pytest
from httpx import AsyncClient

from app.core.clock import utcnow
from app.domain.catalog.models import Lab

from conftest import FakeGateway, auth_headers, booking_payload


async def create_booking(client: AsyncClient, user, lab, tests, payment_method="pay_now", days_ahead=5) -> dict:
    response = await client.post(
        "/api/v1/bookings",
        json=booking_payload(lab, tests, payment_method=payment_method, days_ahead=days_ahead, base=utcnow()),
        headers=auth_headers(user),
    )
    assert response.status_code == 201, response.text
    return response.json()["data"]


@pytest.mark.integration
@pytest.mark.bookings
class TestBookingEndpoints:
    """Booking lifecycle through the HTTP API."""

    async def test_create_and_fetch(self, client: AsyncClient, seed) -> None:
        booking = await create_booking(client, seed.users.patient, seed.lab_a, [seed.cbc])

        assert booking["totalAmount"] == 500.0
        assert booking["status"] == "pending"
        assert booking["paymentStatus"] == "pending"
        assert booking["selectedTests"][0]["testName"] == "Complete Blood Count"

        response = await client.get(f"/api/v1/bookings/{booking['id']}", headers=auth_headers(seed.users.patient))
        assert response.status_code == 200
        assert response.json()["data"]["id"] == booking["id"]

    async def test_create_requires_token(self, client: AsyncClient, seed) -> None:
        response = await client.post("/api/v1/bookings", json=booking_payload(seed.lab_a, [seed.cbc], base=utcnow()))
        assert response.status_code == 401

    async def test_create_with_inactive_lab(self, client: AsyncClient, seed) -> None:
        response = await client.post(
            "/api/v1/bookings",
            json=booking_payload(seed.closed_lab, [seed.cbc], base=utcnow()),
            headers=auth_headers(seed.users.patient),
        )
        assert response.status_code == 404
        assert response.json() == {
            "success": False,
            "message": "Lab not found or inactive",
            "errorCode": "NOT_FOUND_ERROR",
            "requestId": response.headers["X-Request-ID"],
        }

    async def test_create_without_items(self, client: AsyncClient, seed) -> None:
        response = await client.post(
            "/api/v1/bookings",
            json=booking_payload(seed.lab_a, base=utcnow()),
            headers=auth_headers(seed.users.patient),
        )
        assert response.status_code == 400
        assert response.json()["message"] == "At least one test or package must be selected"

    async def test_create_with_unknown_payment_method(self, client: AsyncClient, seed) -> None:
        payload = booking_payload(seed.lab_a, [seed.cbc], base=utcnow())
        payload["paymentMethod"] = "crypto"
        response = await client.post("/api/v1/bookings", json=payload, headers=auth_headers(seed.users.patient))
        assert response.status_code == 400
        assert response.json()["message"] == "Validation error"

    async def test_list_my_bookings_paginates(self, client: AsyncClient, seed) -> None:
        for _ in range(3):
            await create_booking(client, seed.users.patient, seed.lab_a, [seed.cbc])

        response = await client.get(
            "/api/v1/bookings", params={"page": 2, "limit": 2}, headers=auth_headers(seed.users.patient)
        )

        body = response.json()
        assert len(body["data"]) == 1
        assert body["pagination"] == {"current": 2, "pages": 2, "total": 3}

    async def test_other_user_gets_not_found(self, client: AsyncClient, seed) -> None:
        booking = await create_booking(client, seed.users.patient, seed.lab_a, [seed.cbc])
        response = await client.get(
            f"/api/v1/bookings/{booking['id']}", headers=auth_headers(seed.users.other_patient)
        )
        assert response.status_code == 404

    async def test_delete_cancels_booking(self, client: AsyncClient, seed, notifier) -> None:
        booking = await create_booking(client, seed.users.patient, seed.lab_a, [seed.cbc], days_ahead=3)

        response = await client.delete(f"/api/v1/bookings/{booking['id']}", headers=auth_headers(seed.users.patient))

        assert response.status_code == 200
        assert response.json()["message"] == "Booking cancelled successfully"
        assert response.json()["data"]["status"] == "cancelled"
        assert "booking_cancelled" in notifier.templates()

    async def test_put_reschedules(self, client: AsyncClient, seed) -> None:
        booking = await create_booking(client, seed.users.patient, seed.lab_a, [seed.cbc])

        response = await client.put(
            f"/api/v1/bookings/{booking['id']}",
            json={"appointmentTime": "04:00 PM", "notes": "Evening slot"},
            headers=auth_headers(seed.users.patient),
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["appointmentTime"] == "04:00 PM"
        assert data["notes"] == "Evening slot"


@pytest.mark.integration
@pytest.mark.bookings
class TestLabEndpoints:
    """Lab staff endpoints."""

    async def test_lab_listing_scoped_to_assigned_lab(self, client: AsyncClient, seed) -> None:
        await create_booking(client, seed.users.patient, seed.lab_a, [seed.cbc])

        own = await client.get(f"/api/v1/bookings/lab/{seed.lab_a.id}", headers=auth_headers(seed.users.tech_a))
        other = await client.get(f"/api/v1/bookings/lab/{seed.lab_b.id}", headers=auth_headers(seed.users.tech_a))
        patient = await client.get(f"/api/v1/bookings/lab/{seed.lab_a.id}", headers=auth_headers(seed.users.patient))

        assert own.status_code == 200
        assert own.json()["pagination"]["total"] == 1
        assert other.status_code == 403
        assert other.json()["message"] == "Access denied. You can only access bookings for your assigned lab."
        assert patient.status_code == 403

    async def test_status_update_and_report_upload(self, client: AsyncClient, seed, file_store) -> None:
        booking = await create_booking(client, seed.users.patient, seed.lab_a, [seed.cbc])
        headers = auth_headers(seed.users.tech_a)

        response = await client.put(
            f"/api/v1/bookings/{booking['id']}/status", json={"status": "sample_collected"}, headers=headers
        )
        assert response.status_code == 200
        assert response.json()["data"]["status"] == "sample_collected"

        response = await client.post(
            f"/api/v1/bookings/{booking['id']}/upload-report",
            files={"reportFile": ("cbc-report.pdf", b"%PDF-1.4 test report", "application/pdf")},
            headers=headers,
        )
        assert response.status_code == 200, response.text
        data = response.json()["data"]
        assert data["status"] == "result_published"
        assert data["reportUploadDate"] is not None
        assert data["reportFile"].endswith(".pdf")
        assert data["reportFile"] in file_store.files

    async def test_upload_without_file(self, client: AsyncClient, seed) -> None:
        booking = await create_booking(client, seed.users.patient, seed.lab_a, [seed.cbc])
        headers = auth_headers(seed.users.tech_a)
        await client.put(f"/api/v1/bookings/{booking['id']}/status", json={"status": "confirmed"}, headers=headers)

        response = await client.post(f"/api/v1/bookings/{booking['id']}/upload-report", headers=headers)

        assert response.status_code == 400
        assert response.json()["message"] == "No file uploaded"

    async def test_invalid_staff_status(self, client: AsyncClient, seed) -> None:
        booking = await create_booking(client, seed.users.patient, seed.lab_a, [seed.cbc])
        response = await client.put(
            f"/api/v1/bookings/{booking['id']}/status",
            json={"status": "completed"},
            headers=auth_headers(seed.users.tech_a),
        )
        assert response.status_code == 400
        assert response.json()["message"].startswith("Invalid status. Must be one of:")

    async def test_submit_results(self, client: AsyncClient, seed) -> None:
        booking = await create_booking(client, seed.users.patient, seed.lab_a, [seed.cbc])
        headers = auth_headers(seed.users.staff_a)
        await client.put(f"/api/v1/bookings/{booking['id']}/status", json={"status": "confirmed"}, headers=headers)

        response = await client.post(
            f"/api/v1/bookings/{booking['id']}/results",
            json={"testResults": [{
                "testId": seed.cbc.id,
                "values": [{"label": "Hemoglobin", "value": 14.1, "unit": "g/dL", "referenceRange": "13-17",
                            "type": "number", "required": True}],
            }]},
            headers=headers,
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["status"] == "result_published"
        assert data["testResults"][0]["values"][0]["referenceRange"] == "13-17"
        assert data["testResults"][0]["submittedBy"] == seed.users.staff_a.id

    async def test_lab_payment(self, client: AsyncClient, seed) -> None:
        booking = await create_booking(client, seed.users.patient, seed.lab_a, [seed.lipid], payment_method="pay_later")
        headers = auth_headers(seed.users.local_admin_a)

        first = await client.post(f"/api/v1/bookings/{booking['id']}/lab-payment", headers=headers)
        second = await client.post(f"/api/v1/bookings/{booking['id']}/lab-payment", headers=headers)

        assert first.status_code == 200
        assert first.json()["data"]["paymentStatus"] == "completed"
        assert first.json()["data"]["paidAmount"] == 800.0
        assert second.status_code == 400
        assert second.json()["message"] == "Payment has already been processed for this booking"


@pytest.mark.integration
@pytest.mark.payments
class TestPaymentEndpoints:

    async def test_order_then_confirm(self, client: AsyncClient, seed) -> None:
        booking = await create_booking(client, seed.users.patient, seed.lab_a, [seed.cbc])
        headers = auth_headers(seed.users.patient)

        order = await client.post(f"/api/v1/bookings/{booking['id']}/create-order", headers=headers)
        assert order.status_code == 200
        order_data = order.json()["data"]
        assert order_data["amount"] == 50000
        assert order_data["keyId"] == "rzp_test_key"

        response = await client.post(
            f"/api/v1/bookings/{booking['id']}/payment",
            json={
                "razorpayOrderId": order_data["orderId"],
                "razorpayPaymentId": "pay_42",
                "razorpaySignature": FakeGateway.sign(order_data["orderId"], "pay_42"),
            },
            headers=headers,
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert (data["status"], data["paymentStatus"], data["paidAmount"]) == ("confirmed", "completed", 500.0)

        again = await client.post(
            f"/api/v1/bookings/{booking['id']}/payment",
            json={
                "razorpayOrderId": order_data["orderId"],
                "razorpayPaymentId": "pay_42",
                "razorpaySignature": FakeGateway.sign(order_data["orderId"], "pay_42"),
            },
            headers=headers,
        )
        assert again.status_code == 400
        assert again.json()["errorCode"] == "ALREADY_PROCESSED"

    async def test_payment_requires_gateway_fields(self, client: AsyncClient, seed) -> None:
        booking = await create_booking(client, seed.users.patient, seed.lab_a, [seed.cbc])
        response = await client.post(
            f"/api/v1/bookings/{booking['id']}/payment", json={}, headers=auth_headers(seed.users.patient)
        )
        assert response.status_code == 400


@pytest.mark.integration
@pytest.mark.bookings
class TestAdminEndpoints:

    async def test_admin_list_override_and_delete(self, client: AsyncClient, seed) -> None:
        booking = await create_booking(client, seed.users.patient, seed.lab_a, [seed.cbc])
        await create_booking(client, seed.users.other_patient, seed.lab_b, [seed.xray])
        headers = auth_headers(seed.users.admin)

        listing = await client.get(
            "/api/v1/bookings/admin/all", params={"labId": seed.lab_a.id}, headers=headers
        )
        assert listing.json()["pagination"]["total"] == 1

        override = await client.put(
            f"/api/v1/bookings/admin/{booking['id']}/status", json={"status": "completed"}, headers=headers
        )
        assert override.json()["data"]["status"] == "completed"

        deleted = await client.delete(f"/api/v1/bookings/admin/{booking['id']}", headers=headers)
        assert deleted.status_code == 200
        assert deleted.json()["data"]["isActive"] is False

    async def test_non_admin_rejected(self, client: AsyncClient, seed) -> None:
        response = await client.get("/api/v1/bookings/admin/all", headers=auth_headers(seed.users.local_admin_a))
        assert response.status_code == 403


@pytest.mark.integration
class TestPublicEndpoints:

    async def test_health(self, client: AsyncClient) -> None:
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"
        assert "X-Request-ID" in response.headers

    async def test_labs_listing_and_detail(self, client: AsyncClient, seed) -> None:
        response = await client.get("/api/v1/labs", params={"city": "kochi"})
        labs = response.json()["data"]
        assert [lab["name"] for lab in labs] == ["Alpha Diagnostics"]

        detail = await client.get(f"/api/v1/labs/{seed.lab_a.id}")
        data = detail.json()["data"]
        assert {test["name"] for test in data["availableTests"]} >= {"Complete Blood Count", "Lipid Profile"}
        assert data["availablePackages"][0]["name"] == "Basic Wellness"

        closed = await client.get(f"/api/v1/labs/{seed.closed_lab.id}")
        assert closed.status_code == 404

    async def test_labs_city_filter_skips_labs_without_city(self, client: AsyncClient, db_session, seed) -> None:
        db_session.add_all([
            Lab(name="Gamma Clinic", description="No city", address={"city": None}),
            Lab(name="Delta Labs", description="Second Kochi lab", address={"city": "KOCHI"}),
        ])
        await db_session.commit()

        response = await client.get("/api/v1/labs", params={"city": "Kochi", "limit": 1})
        assert response.status_code == 200
        body = response.json()
        assert [lab["name"] for lab in body["data"]] == ["Alpha Diagnostics"]
        assert body["pagination"] == {"current": 1, "pages": 2, "total": 2}

        everything = await client.get("/api/v1/labs")
        assert everything.json()["pagination"]["total"] == 4
