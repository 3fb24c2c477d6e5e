from pathlib import Path
import logging

from fastapi_mail import FastMail, MessageSchema, ConnectionConfig
from jinja2 import Environment, FileSystemLoader, select_autoescape

from authcode.config import settings as default_settings
from authcode.models.verification_code import Purpose
from authcode.services.errors import DeliveryError

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates" / "email"

env = Environment(
    loader=FileSystemLoader(str(TEMPLATE_DIR)),
    autoescape=select_autoescape(["html"]),
)

# subject, template per purpose
CODE_EMAILS = {
    Purpose.PASSWORD_RESET: ("Your {site} Password Reset Code", "password_reset_code.html"),
    Purpose.SIGNUP_CONFIRMATION: ("Your {site} Account Verification Code", "signup_code.html"),
}


def build_connection_config(settings) -> ConnectionConfig:
    return ConnectionConfig(
        MAIL_USERNAME=settings.EMAIL_HOST_USER,
        MAIL_PASSWORD=settings.EMAIL_HOST_PASSWORD,
        MAIL_FROM=settings.EMAIL_FROM,
        MAIL_FROM_NAME=settings.EMAIL_FROM_NAME,
        MAIL_PORT=settings.EMAIL_PORT,
        MAIL_SERVER=settings.EMAIL_HOST,
        MAIL_STARTTLS=not settings.EMAIL_USE_SSL,
        MAIL_SSL_TLS=settings.EMAIL_USE_SSL,
        USE_CREDENTIALS=bool(settings.EMAIL_HOST_USER),
        VALIDATE_CERTS=True,
    )


def render_code_email(purpose: Purpose, code: str, settings=default_settings) -> tuple[str, str]:
    subject_template, template = CODE_EMAILS[Purpose(purpose)]
    html = env.get_template(template).render(
        code=code,
        site_name=settings.SITE_NAME,
        ttl_minutes=settings.CODE_TTL_MINUTES,
    )
    return subject_template.format(site=settings.SITE_NAME), html


class EmailDelivery:
    """Delivery collaborator: one SMTP attempt per call, no automatic retry."""

    def __init__(self, settings=default_settings):
        self.settings = settings
        self._mailer = None

    @property
    def mailer(self) -> FastMail:
        if self._mailer is None:
            self._mailer = FastMail(build_connection_config(self.settings))
        return self._mailer

    async def _deliver(self, to_email: str, subject: str, html: str):
        if not self.settings.EMAIL_HOST:
            raise DeliveryError("SMTP is not configured")
        message = MessageSchema(
            subject=subject,
            recipients=[to_email],
            body=html,
            subtype="html",
        )
        await self.mailer.send_message(message)

    async def send(self, address: str, purpose: Purpose, code: str) -> None:
        subject, html = render_code_email(purpose, code, self.settings)
        try:
            await self._deliver(address, subject, html)
        except Exception as e:
            logger.error(f"Failed to send {Purpose(purpose).value} code email: {e}")
            raise DeliveryError() from e
        logger.info(f"{Purpose(purpose).value} code email sent")

    async def send_welcome(self, address: str) -> bool:
        """Best-effort welcome email after signup confirmation."""
        html = env.get_template("welcome.html").render(site_name=self.settings.SITE_NAME)
        try:
            await self._deliver(address, f"Welcome to {self.settings.SITE_NAME}!", html)
            return True
        except Exception as e:
            logger.warning(f"Failed to send welcome email: {e}")
            return False


def get_delivery() -> EmailDelivery:
    return EmailDelivery()
