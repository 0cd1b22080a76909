"""
Email Service with SendGrid Integration
Sends booking and payment emails to customers and venue owners
"""

from typing import Dict, Optional
import asyncio
import logging
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail, From
from jinja2 import Environment, Template

from app.config import settings

logger = logging.getLogger(__name__)


# Customer-entered fields end up in HTML mail
_templates = Environment(autoescape=True)

TEMPLATES: Dict[str, Template] = {
    "booking_confirmation": _templates.from_string("""
        <!DOCTYPE html>
        <html>
        <body>
            <div style="max-width: 600px; margin: 0 auto; padding: 20px; font-family: Arial, sans-serif;">
                <h2>Booking Received</h2>
                <p>Hi {{ user_name }},</p>
                <p>Your booking request for <strong>{{ venue_name }}</strong> has been received.</p>
                <div style="border: 2px dashed #4CAF50; padding: 15px; margin: 20px 0;">
                    <p><strong>Venue:</strong> {{ venue_name }}, {{ venue_address }}</p>
                    <p><strong>Date:</strong> {{ event_date }}</p>
                    <p><strong>Time:</strong> {{ start_time }} - {{ end_time }}</p>
                    <p><strong>Event:</strong> {{ event_type }} for {{ guest_count }} guests</p>
                    <p><strong>Total Amount:</strong> Rs. {{ total_amount }}</p>
                    <p><strong>Booking ID:</strong> {{ booking_id }}</p>
                </div>
                <p><a href="{{ booking_url }}">View your booking</a></p>
                <p>Thank you for choosing {{ app_name }}!</p>
            </div>
        </body>
        </html>
    """),

    "owner_new_booking": _templates.from_string("""
        <!DOCTYPE html>
        <html>
        <body>
            <div style="max-width: 600px; margin: 0 auto; padding: 20px; font-family: Arial, sans-serif;">
                <h2>New Booking Request</h2>
                <p>Hi {{ owner_name }},</p>
                <p>{{ customer_name }} has requested <strong>{{ venue_name }}</strong>.</p>
                <ul>
                    <li>Date: {{ event_date }}, {{ start_time }} - {{ end_time }}</li>
                    <li>Event: {{ event_type }} for {{ guest_count }} guests</li>
                    <li>Contact: {{ customer_email }} / {{ customer_phone }}</li>
                    <li>Total Amount: Rs. {{ total_amount }}</li>
                    {% if special_requests %}<li>Special requests: {{ special_requests }}</li>{% endif %}
                </ul>
                <p>Booking ID: {{ booking_id }}</p>
            </div>
        </body>
        </html>
    """),

    "booking_status_update": _templates.from_string("""
        <!DOCTYPE html>
        <html>
        <body>
            <div style="max-width: 600px; margin: 0 auto; padding: 20px; font-family: Arial, sans-serif;">
                <h2>Booking {{ status|capitalize }}</h2>
                <p>Hi {{ user_name }},</p>
                <p>Your booking at <strong>{{ venue_name }}</strong> is now <strong>{{ status }}</strong>.</p>
                <p><strong>Date:</strong> {{ event_date }}</p>
                {% if cancellation_reason %}<p><strong>Reason:</strong> {{ cancellation_reason }}</p>{% endif %}
                {% if refund_amount is not none %}<p><strong>Refund:</strong> Rs. {{ refund_amount }}</p>{% endif %}
                <p>Booking ID: {{ booking_id }}</p>
            </div>
        </body>
        </html>
    """),

    "payment_receipt": _templates.from_string("""
        <!DOCTYPE html>
        <html>
        <body>
            <div style="max-width: 600px; margin: 0 auto; padding: 20px; font-family: Arial, sans-serif;">
                <h2>Payment Received</h2>
                <p>Hi {{ user_name }},</p>
                <p>We received your {{ payment_type|lower }} payment of Rs. {{ amount }} via {{ gateway }}.</p>
                <p><strong>Reference:</strong> {{ reference_id }}</p>
                <p><strong>Remaining balance:</strong> Rs. {{ balance_amount }}</p>
                <p>Booking ID: {{ booking_id }}</p>
            </div>
        </body>
        </html>
    """),
}


class EmailService:
    """Service for handling email operations"""

    def __init__(self, api_key: Optional[str] = None):
        self.api_key = api_key if api_key is not None else settings.SENDGRID_API_KEY
        self.client = SendGridAPIClient(self.api_key) if self.api_key else None
        self.from_email = From(settings.SMTP_FROM_EMAIL, settings.SMTP_FROM_NAME)

    async def send_email(
        self,
        to_email: str,
        subject: str,
        template_name: str,
        context: Dict
    ) -> bool:
        """Render a template and send it through SendGrid"""
        template = TEMPLATES.get(template_name)
        if not template:
            logger.error(f"Template {template_name} not found")
            return False

        html_content = template.render(app_name=settings.APP_NAME, **context)

        if self.client is None:
            logger.info(f"SendGrid not configured, skipping '{template_name}' email to {to_email}")
            return False

        message = Mail(
            from_email=self.from_email,
            to_emails=to_email,
            subject=subject,
            html_content=html_content
        )

        # The SendGrid SDK is blocking
        response = await asyncio.to_thread(self.client.send, message)
        logger.info(f"Email sent to {to_email}: {response.status_code}")
        return response.status_code in [200, 201, 202]

    async def send_booking_confirmation(self, user_email: str, user_name: str, details: Dict) -> bool:
        context = {
            "user_name": user_name,
            "booking_url": f"{settings.FRONTEND_URL}/bookings/{details['booking_id']}",
            **details,
        }
        return await self.send_email(
            to_email=user_email,
            subject=f"Booking Received - {details['venue_name']}",
            template_name="booking_confirmation",
            context=context
        )

    async def send_new_booking_to_owner(self, owner_email: str, owner_name: str, details: Dict) -> bool:
        return await self.send_email(
            to_email=owner_email,
            subject=f"New Booking Request - {details['venue_name']}",
            template_name="owner_new_booking",
            context={"owner_name": owner_name, **details}
        )

    async def send_booking_status_update(
        self,
        user_email: str,
        user_name: str,
        status: str,
        details: Dict
    ) -> bool:
        context = {
            "user_name": user_name,
            "status": status,
            "cancellation_reason": None,
            "refund_amount": None,
            **details,
        }
        return await self.send_email(
            to_email=user_email,
            subject=f"Booking {status.title()} - {details['venue_name']}",
            template_name="booking_status_update",
            context=context
        )

    async def send_payment_receipt(self, user_email: str, user_name: str, details: Dict) -> bool:
        return await self.send_email(
            to_email=user_email,
            subject=f"Payment Received - {details['reference_id']}",
            template_name="payment_receipt",
            context={"user_name": user_name, **details}
        )


email_service = EmailService()
