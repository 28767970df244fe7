"""EmailProvider protocol. Services depend on this, not on a concrete provider.

Both methods return False when delivery failed; callers log and carry on.
"""

from typing import Optional, Protocol

from schemas.models.otp import OtpPurpose


class EmailProvider(Protocol):
    async def send_otp_email(
        self, email: str, name: Optional[str], code: str, purpose: OtpPurpose
    ) -> bool: ...

    async def send_welcome_email(self, email: str, name: Optional[str]) -> bool: ...
