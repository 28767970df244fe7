"""Development EmailProvider that writes messages to the log instead of sending them.

Used when no BREVO_API_KEY is configured. Never enable in production: it
logs one-time codes in plaintext.
"""

from typing import Optional

from schemas.models.otp import OtpPurpose
from shared.logging import get_logger

log = get_logger(__name__)


class ConsoleEmailProvider:
    async def send_otp_email(
        self, email: str, name: Optional[str], code: str, purpose: OtpPurpose
    ) -> bool:
        # dev_otp_value is not one of the redacted log keys
        log.warning("dev_email_otp", to=email, purpose=purpose.value, dev_otp_value=code)
        return True

    async def send_welcome_email(self, email: str, name: Optional[str]) -> bool:
        log.info("dev_email_welcome", to=email)
        return True
