"""
Twilio SMS Service.

Talks to the Twilio REST Messages API over httpx. When Twilio credentials
are not configured the service degrades to a no-op that returns False.
"""

import logging
import httpx
from app.core.config import settings
from app.models.verification import VerificationCodeType

logger = logging.getLogger(__name__)


class SmsService:
    """Service for sending SMS messages via Twilio."""

    def __init__(self):
        self.account_sid = settings.TWILIO_ACCOUNT_SID
        self.auth_token = settings.TWILIO_AUTH_TOKEN
        self.from_number = settings.TWILIO_PHONE_NUMBER
        self.base_url = settings.TWILIO_API_BASE_URL
        self.timeout = settings.OUTBOUND_TIMEOUT_SECONDS

        if not self.is_configured:
            logger.warning("Twilio configuration missing, SMS disabled")

    @property
    def is_configured(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.from_number)

    def send_sms(self, to: str, message: str) -> bool:
        """
        Send a text message.

        Args:
            to: Destination phone number (E.164)
            message: Message body

        Returns:
            bool: True if Twilio accepted the message, False otherwise
        """
        if not self.is_configured:
            logger.warning("SMS client not configured, message not sent")
            return False

        url = f"{self.base_url}/Accounts/{self.account_sid}/Messages.json"

        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(
                    url,
                    data={"To": to, "From": self.from_number, "Body": message},
                    auth=(self.account_sid, self.auth_token),
                )
                response.raise_for_status()

            logger.info(f"SMS sent to {to} (sid: {response.json().get('sid')})")
            return True

        except httpx.HTTPStatusError as e:
            logger.error(f"Twilio rejected SMS to {to}: {e.response.status_code} - {e.response.text}")
            return False

        except httpx.HTTPError as e:
            logger.error(f"Twilio request failed: {str(e)}")
            return False

    def send_verification_code(self, to: str, code: str, code_type: VerificationCodeType, expires_in: str) -> bool:
        """Send a one-time code by SMS."""
        message = (
            f"Candi Tracker: your verification code is {code}. "
            f"It expires in {expires_in}. Do not share it."
        )
        logger.debug(f"Sending {code_type.value} code by SMS")
        return self.send_sms(to, message)


# Singleton instance
sms_service = SmsService()
