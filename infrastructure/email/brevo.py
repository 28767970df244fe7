"""Brevo transactional-email implementation of EmailProvider.

Posts to the Brevo v3 SMTP API over httpx; bodies are rendered from the
Jinja2 templates in templates/emails.
"""

import os
from typing import Optional

import httpx
from jinja2 import Environment, FileSystemLoader, select_autoescape

from config import EmailSettings
from infrastructure.http_client import HttpClient
from schemas.models.otp import OtpPurpose
from shared.logging import get_logger

log = get_logger(__name__)

BREVO_API_URL = "https://api.brevo.com/v3/smtp/email"
_DEFAULT_TEMPLATE_DIR = os.path.join(
    os.path.dirname(os.path.dirname(os.path.dirname(__file__))),
    "templates",
    "emails",
)

_OTP_SUBJECTS = {
    OtpPurpose.EMAIL_VERIFICATION: "Your RoadGuard Verification Code",
    OtpPurpose.PASSWORD_RESET: "Your RoadGuard Password Reset Code",
}

_OTP_HEADINGS = {
    OtpPurpose.EMAIL_VERIFICATION: "Verify your email",
    OtpPurpose.PASSWORD_RESET: "Reset your password",
}


class BrevoEmailProvider:
    def __init__(
        self,
        settings: EmailSettings,
        http_client: HttpClient,
        app_url: str,
        otp_expiry_minutes: int = 10,
        template_dir: str = _DEFAULT_TEMPLATE_DIR,
    ) -> None:
        self._settings = settings
        self._http = http_client
        self._app_url = app_url
        self._otp_expiry_minutes = otp_expiry_minutes
        self._jinja = Environment(
            loader=FileSystemLoader(template_dir),
            autoescape=select_autoescape(["html", "xml"]),
        )

    async def _send(
        self,
        to_email: str,
        to_name: Optional[str],
        subject: str,
        html_body: str,
        text_body: str,
        category: str,
    ) -> bool:
        payload = {
            "sender": {
                "email": self._settings.brevo_from_email,
                "name": self._settings.brevo_from_name,
            },
            "to": [{"email": to_email, "name": to_name or to_email}],
            "subject": subject,
            "htmlContent": html_body,
            "textContent": text_body,
            "tags": [category],
        }
        headers = {
            "api-key": self._settings.brevo_api_key,
            "accept": "application/json",
        }

        try:
            response = await self._http.post(BREVO_API_URL, json=payload, headers=headers)
        except httpx.HTTPError as e:
            log.error(
                "email_send_error",
                category=category,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

        if response.status_code in (200, 201, 202):
            log.info("email_sent_success", category=category)
            return True
        log.error(
            "email_send_failed",
            category=category,
            status_code=response.status_code,
            response=response.text[:200],
        )
        return False

    async def send_otp_email(
        self, email: str, name: Optional[str], code: str, purpose: OtpPurpose
    ) -> bool:
        subject = _OTP_SUBJECTS[purpose]
        template = self._jinja.get_template("otp.html")
        html_body = template.render(
            heading=_OTP_HEADINGS[purpose],
            otp_code=code,
            user_name=name,
            expiry_minutes=self._otp_expiry_minutes,
            app_url=self._app_url,
        )
        text_body = (
            f"RoadGuard - {_OTP_HEADINGS[purpose]}\n\n"
            f"Hello{f' {name}' if name else ''},\n\n"
            f"Your code is: {code}\n\n"
            f"This code expires in {self._otp_expiry_minutes} minutes. "
            f"If you didn't request this code, please ignore this email."
        )
        return await self._send(
            email, name, subject, html_body, text_body, f"otp-{purpose.value}"
        )

    async def send_welcome_email(self, email: str, name: Optional[str]) -> bool:
        subject = "Welcome to RoadGuard!"
        template = self._jinja.get_template("welcome.html")
        html_body = template.render(user_name=name, app_url=self._app_url)
        text_body = (
            f"Welcome to RoadGuard{f', {name}' if name else ''}!\n\n"
            f"Your email is verified. Get started: {self._app_url}/dashboard"
        )
        return await self._send(email, name, subject, html_body, text_body, "welcome")
