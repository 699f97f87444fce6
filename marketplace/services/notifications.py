"""
Outbound notifications (email, SMS).

Sends are side effects that run after the authoritative write. They carry a
timeout and never raise: a failure is logged and reported as False.
"""

from __future__ import annotations
import asyncio
import logging
from typing import Optional

from twilio.rest import Client

from marketplace.core.config import settings
from marketplace.utils.fastapi_mail import _send_mail

log = logging.getLogger(__name__)


class Notifier:
    def __init__(self, timeout_seconds: float = settings.NOTIFY_TIMEOUT_SECONDS):
        self.timeout_seconds = timeout_seconds
        self._twilio: Optional[Client] = None

    def _twilio_client(self) -> Optional[Client]:
        if not (settings.TWILIO_ACCOUNT_SID and settings.TWILIO_AUTH_TOKEN and settings.TWILIO_PHONE_NUMBER):
            return None
        if self._twilio is None:
            self._twilio = Client(settings.TWILIO_ACCOUNT_SID, settings.TWILIO_AUTH_TOKEN)
        return self._twilio

    async def send_email(self, to: str, subject: str, html: str) -> bool:
        try:
            await asyncio.wait_for(_send_mail(subject, [to], html), timeout=self.timeout_seconds)
            return True
        except asyncio.TimeoutError:
            log.warning("email to %s timed out after %ss", to, self.timeout_seconds)
        except Exception:
            log.warning("email to %s failed", to, exc_info=True)
        return False

    async def send_sms(self, to: str, body: str) -> bool:
        client = self._twilio_client()
        if client is None:
            log.info("sms skipped: twilio credentials not configured")
            return False
        number = to if to.startswith("+") else "+" + to
        try:
            await asyncio.wait_for(
                asyncio.to_thread(
                    client.messages.create,
                    body=body,
                    from_=settings.TWILIO_PHONE_NUMBER,
                    to=number,
                ),
                timeout=self.timeout_seconds,
            )
            return True
        except asyncio.TimeoutError:
            log.warning("sms to %s timed out after %ss", number, self.timeout_seconds)
        except Exception:
            log.warning("sms to %s failed", number, exc_info=True)
        return False
