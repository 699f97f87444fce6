from __future__ import annotations
from typing import List

from fastapi_mail import ConnectionConfig, FastMail, MessageSchema, MessageType

from marketplace.core.config import settings
from marketplace.schemas.enums import OtpPurpose, ServiceDomain

conf = ConnectionConfig(
    MAIL_USERNAME=settings.MAIL_USERNAME,
    MAIL_PASSWORD=settings.MAIL_PASSWORD,
    MAIL_FROM=settings.MAIL_FROM,
    MAIL_FROM_NAME=settings.MAIL_FROM_NAME,
    MAIL_PORT=settings.MAIL_PORT,
    MAIL_SERVER=settings.MAIL_SERVER,
    MAIL_STARTTLS=settings.MAIL_STARTTLS,
    MAIL_SSL_TLS=settings.MAIL_SSL_TLS,
    USE_CREDENTIALS=bool(settings.MAIL_USERNAME),
    VALIDATE_CERTS=True,
)

_PURPOSE_TEXT = {
    "email_verification": "verify your email address",
    "phone_verification": "verify your phone number",
    "pickup": "confirm the pickup of your order",
    "delivery": "confirm the delivery of your order",
    "checkin": "confirm your check-in",
    "completion": "confirm the completion of your stay",
}


async def _send_mail(subject: str, recipients: List[str], html: str) -> None:
    message = MessageSchema(
        subject=subject,
        recipients=recipients,
        body=html,
        subtype=MessageType.html,
    )
    await FastMail(conf).send_message(message)


def generate_otp_email_html(code: str, purpose: OtpPurpose | str, domain: ServiceDomain = ServiceDomain.DELIVERY) -> str:
    label = OtpPurpose(purpose).label_for(domain)
    action = _PURPOSE_TEXT.get(label, "continue")
    return f"""
    <html>
      <body style="font-family: Arial, sans-serif; color: #1f2937;">
        <div style="max-width: 480px; margin: 0 auto; padding: 24px;">
          <h2 style="color: #1e3a8a;">{settings.PROJECT_NAME}</h2>
          <p>Use the code below to {action}.</p>
          <p style="font-size: 24px; font-weight: bold; letter-spacing: 4px; text-align: center;">{code}</p>
          <p>Do not share this code with anyone.</p>
        </div>
      </body>
    </html>
    """


def generate_order_otps_email_html(order_number: str, pickup_code: str, delivery_code: str, domain: ServiceDomain) -> str:
    pickup_label = OtpPurpose.PICKUP.label_for(domain)
    delivery_label = OtpPurpose.DELIVERY.label_for(domain)
    return f"""
    <html>
      <body style="font-family: Arial, sans-serif; color: #1f2937;">
        <div style="max-width: 480px; margin: 0 auto; padding: 24px;">
          <h2 style="color: #1e3a8a;">{settings.PROJECT_NAME}</h2>
          <p>Your order <strong>{order_number}</strong> has been placed.</p>
          <p>Share these codes with your partner only at the right moment:</p>
          <p><strong>{pickup_label}</strong>: <span style="font-size: 20px; letter-spacing: 3px;">{pickup_code}</span></p>
          <p><strong>{delivery_label}</strong>: <span style="font-size: 20px; letter-spacing: 3px;">{delivery_code}</span></p>
        </div>
      </body>
    </html>
    """
