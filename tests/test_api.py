"""
HTTP-level tests: routing, authentication, camelCase bodies and the error envelope
"""

import pytest
from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

from app.models.booking import BookingPaymentStatus
from tests.helpers import auth_headers, future_date

API = "/api/v1"


def booking_body(venue_id, **overrides):
    body = {
        "venueId": str(venue_id),
        "eventDate": future_date().isoformat(),
        "startTime": "10:00",
        "endTime": "18:00",
        "eventType": "WEDDING",
        "guestCount": 200,
        "contactName": "Test Customer",
        "contactPhone": "9800000000",
        "contactEmail": "customer@example.com",
    }
    body.update(overrides)
    return body


@pytest.mark.integration
@pytest.mark.asyncio
class TestBookingEndpoints:

    async def test_create_booking(self, client, test_user, test_venue):
        response = await client.post(
            f"{API}/bookings/", json=booking_body(test_venue.id), headers=auth_headers(test_user)
        )

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "PENDING"
        assert body["paymentStatus"] == "UNPAID"
        assert body["totalAmount"] == 40000
        assert body["balanceAmount"] == 40000
        assert body["advancePaid"] == 0
        assert body["userId"] == str(test_user.id)
        assert "X-Request-ID" in response.headers

    async def test_guest_count_outside_capacity(self, client, test_user, test_venue):
        response = await client.post(
            f"{API}/bookings/", json=booking_body(test_venue.id, guestCount=600), headers=auth_headers(test_user)
        )

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["error"]["code"] == "VALIDATION_ERROR"
        assert body["error"]["message"] == "Guest count must be between 50 and 500"
        assert body["error"]["details"]["field"] == "guestCount"

    async def test_requires_authentication(self, client, test_venue):
        response = await client.post(f"{API}/bookings/", json=booking_body(test_venue.id))

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "AUTH_ERROR"

    async def test_invalid_token(self, client, test_venue):
        response = await client.get(
            f"{API}/bookings/my-bookings", headers={"Authorization": "Bearer not-a-jwt"}
        )
        assert response.status_code == 401

    async def test_malformed_body(self, client, test_user, test_venue):
        response = await client.post(
            f"{API}/bookings/",
            json=booking_body(test_venue.id, startTime="18:00", endTime="10:00"),
            headers=auth_headers(test_user)
        )

        assert response.status_code == 422
        error = response.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert error["details"]["errors"]

    async def test_slot_conflict(self, client, test_user, test_venue, make_booking):
        await make_booking(start_time="12:00", end_time="14:00")

        response = await client.post(
            f"{API}/bookings/", json=booking_body(test_venue.id), headers=auth_headers(test_user)
        )

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "CONFLICT"

    async def test_availability_is_public(self, client, test_venue, make_booking):
        await make_booking(start_time="12:00", end_time="14:00")

        response = await client.get(
            f"{API}/bookings/availability/{test_venue.id}", params={"date": future_date().isoformat()}
        )

        assert response.status_code == 200
        body = response.json()
        assert body["available"] is True
        assert body["openingTime"] == "08:00"
        assert body["bookedSlots"] == [{"startTime": "12:00", "endTime": "14:00", "status": "PENDING"}]

    async def test_my_bookings_pagination(self, client, test_user, make_booking):
        for day in (10, 11, 12):
            await make_booking(event_date=future_date(day))

        response = await client.get(
            f"{API}/bookings/my-bookings", params={"limit": 2}, headers=auth_headers(test_user)
        )

        body = response.json()
        assert response.status_code == 200
        assert len(body["data"]) == 2
        assert body["pagination"] == {
            "page": 1, "limit": 2, "total": 3, "totalPages": 2, "hasNext": True, "hasPrev": False
        }

    async def test_refund_estimate(self, client, test_user, make_booking):
        booking = await make_booking(
            advance_paid=Decimal("10000"), balance_amount=Decimal("30000"), payment_status=BookingPaymentStatus.PARTIAL
        )

        response = await client.get(
            f"{API}/bookings/{booking.id}/refund-estimate", headers=auth_headers(test_user)
        )

        body = response.json()
        assert response.status_code == 200
        assert body["paidAmount"] == 10000
        assert body["refundAmount"] == 10000
        assert body["refundPercentage"] == 100
        assert body["cancellationPolicy"]["fullRefundHours"] == 72

    async def test_cancel_then_delete(self, client, test_user, make_booking):
        booking = await make_booking()
        headers = auth_headers(test_user)

        response = await client.patch(
            f"{API}/bookings/{booking.id}/status",
            json={"status": "CANCELLED", "cancellationReason": "Plans changed"},
            headers=headers
        )
        assert response.status_code == 200
        assert response.json()["status"] == "CANCELLED"
        assert response.json()["version"] == 2

        response = await client.delete(f"{API}/bookings/{booking.id}", headers=headers)
        assert response.status_code == 200
        assert response.json()["message"] == "Booking deleted successfully"

        response = await client.get(f"{API}/bookings/{booking.id}", headers=headers)
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"

    async def test_other_user_cannot_read_booking(self, client, other_user, make_booking):
        booking = await make_booking()

        response = await client.get(f"{API}/bookings/{booking.id}", headers=auth_headers(other_user))
        assert response.status_code == 403
        assert response.json()["error"]["code"] == "AUTH_FORBIDDEN"


@pytest.mark.integration
@pytest.mark.asyncio
class TestPaymentEndpoints:

    async def test_khalti_mock_payment_marks_booking_paid(self, client, test_user, make_booking):
        booking = await make_booking()
        headers = auth_headers(test_user)

        response = await client.post(
            f"{API}/payments/initiate",
            json={"bookingId": str(booking.id), "amount": 40000, "gateway": "khalti", "paymentType": "full"},
            headers=headers
        )
        assert response.status_code == 200
        initiated = response.json()
        assert initiated["mock"] is True
        assert initiated["pidx"].startswith("mock_PAY-")

        response = await client.get(
            f"{API}/payments/success", params={"gateway": "KHALTI", "pidx": initiated["pidx"]}
        )
        assert response.status_code == 200
        verified = response.json()
        assert verified["success"] is True
        assert verified["payment"]["status"] == "COMPLETED"

        response = await client.get(f"{API}/bookings/{booking.id}", headers=headers)
        body = response.json()
        assert body["paymentStatus"] == "PAID"
        assert body["status"] == "PENDING"
        assert body["balanceAmount"] == 0

    async def test_advance_below_minimum(self, client, test_user, make_booking):
        booking = await make_booking()

        response = await client.post(
            f"{API}/payments/initiate",
            json={"bookingId": str(booking.id), "amount": 5000, "gateway": "esewa", "paymentType": "advance"},
            headers=auth_headers(test_user)
        )

        assert response.status_code == 400
        assert "8000" in response.json()["error"]["message"]

    async def test_success_without_callback_data(self, client):
        response = await client.get(f"{API}/payments/success", params={"gateway": "paypal"})

        assert response.status_code == 400
        assert response.json()["error"]["message"] == "Invalid payment callback"

    async def test_unknown_pidx(self, client):
        response = await client.get(f"{API}/payments/success", params={"gateway": "khalti", "pidx": "nope"})
        assert response.status_code == 404

    async def test_failure_redirect(self, client):
        response = await client.get(f"{API}/payments/failure", params={"gateway": "esewa"})

        assert response.status_code == 200
        assert response.json() == {
            "success": False, "message": "Payment was cancelled or failed", "gateway": "esewa"
        }

    async def test_earnings_require_owner(self, client, test_user, test_owner):
        response = await client.get(f"{API}/payments/owner/earnings", headers=auth_headers(test_user))
        assert response.status_code == 403

        response = await client.get(f"{API}/payments/owner/earnings", headers=auth_headers(test_owner))
        assert response.status_code == 200
        assert response.json()["totalEarnings"] == 0


@pytest.mark.integration
@pytest.mark.asyncio
class TestVenueAndNotificationEndpoints:

    async def test_owner_creates_venue(self, client, test_owner):
        response = await client.post(
            f"{API}/venues/",
            json={
                "name": "Garden Hall",
                "address": "Lakeside",
                "city": "Pokhara",
                "minCapacity": 20,
                "maxCapacity": 150,
                "pricePerHour": 2500,
                "cancellationPolicy": {"fullRefundHours": 48, "partialRefundHours": 12, "partialRefundPercentage": 30},
            },
            headers=auth_headers(test_owner)
        )

        assert response.status_code == 201
        body = response.json()
        assert body["ownerId"] == str(test_owner.id)
        assert body["cancellationPolicy"] == {
            "fullRefundHours": 48, "partialRefundHours": 12, "partialRefundPercentage": 30, "noRefundHours": 0
        }
        assert body["blockedDates"] == []

    async def test_customer_cannot_create_venue(self, client, test_user):
        response = await client.post(
            f"{API}/venues/",
            json={"name": "X", "address": "Y", "city": "Z", "maxCapacity": 10, "pricePerHour": 100},
            headers=auth_headers(test_user)
        )
        assert response.status_code == 403

    async def test_blocked_date_closes_availability(self, client, test_owner, test_venue):
        blocked = future_date(60)

        response = await client.post(
            f"{API}/venues/{test_venue.id}/block-dates",
            json={"dates": [blocked.isoformat()], "reason": "Maintenance"},
            headers=auth_headers(test_owner)
        )
        assert response.status_code == 200
        assert response.json()["blockedDates"] == [blocked.isoformat()]

        response = await client.get(
            f"{API}/bookings/availability/{test_venue.id}", params={"date": blocked.isoformat()}
        )
        assert response.json()["available"] is False
        assert response.json()["message"] == "Date is blocked by venue owner"

        next_day = blocked + timedelta(days=1)
        response = await client.get(
            f"{API}/bookings/availability/{test_venue.id}", params={"date": next_day.isoformat()}
        )
        assert response.json()["available"] is True

    async def test_unknown_venue(self, client):
        response = await client.get(f"{API}/venues/{uuid4()}")
        assert response.status_code == 404

    async def test_booking_notifies_both_parties(self, client, test_user, test_owner, test_venue):
        await client.post(f"{API}/bookings/", json=booking_body(test_venue.id), headers=auth_headers(test_user))

        response = await client.get(f"{API}/notifications/", headers=auth_headers(test_owner))
        assert response.status_code == 200
        assert response.json()["pagination"]["total"] == 1

        response = await client.get(f"{API}/notifications/unread-count", headers=auth_headers(test_user))
        assert response.json()["count"] == 1

        response = await client.patch(f"{API}/notifications/read-all", headers=auth_headers(test_user))
        assert response.status_code == 200

        response = await client.get(f"{API}/notifications/unread-count", headers=auth_headers(test_user))
        assert response.json()["count"] == 0


@pytest.mark.asyncio
async def test_liveness(client):
    response = await client.get(f"{API}/health/live")
    assert response.status_code == 200
    assert response.json() == {"status": "alive", "service": "venuely-api"}
