"""
SendGrid Email Service
Handles recipient notifications and magic-link sign-in emails.

Delivery is best effort: every send returns a bool and failures are logged,
never raised. There is no automatic retry; owners resend notifications by hand.
"""

import os
import re
from html import escape

from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail, Email, To, Content

from secret_message.infra.log import get_logger

logger = get_logger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def is_valid_email(value) -> bool:
    return bool(value) and EMAIL_RE.match(str(value)) is not None


class EmailService:
    """Service for sending emails via SendGrid"""

    def __init__(self):
        self.api_key = os.getenv('SENDGRID_API_KEY')
        self.from_email = os.getenv('SM_FROM_EMAIL', 'notifications@secretmessage.app')
        self.from_name = os.getenv('SM_FROM_NAME', 'Secret Message')

        if not self.api_key:
            logger.warning("SENDGRID_API_KEY not set - emails will not be sent")
            self.client = None
        else:
            self.client = SendGridAPIClient(self.api_key)

    def send_email(self, to_email: str, subject: str, html_content: str) -> bool:
        """Send one email. Returns True when SendGrid accepted it."""
        if not self.client:
            logger.error("Cannot send email - SendGrid not configured", to=to_email)
            return False

        message = Mail(
            from_email=Email(self.from_email, self.from_name),
            to_emails=To(to_email),
            subject=subject,
            html_content=Content("text/html", html_content)
        )

        try:
            response = self.client.send(message)
        except Exception as e:
            logger.error("Error sending email", to=to_email, error=str(e))
            return False

        if response.status_code in (200, 201, 202):
            logger.info("Email sent", to=to_email, subject=subject)
            return True

        logger.error("SendGrid rejected email", to=to_email, status_code=response.status_code)
        return False

    def send_message_notification(self, recipient_email: str, title: str, price, unlock_url: str,
                                  sender_name: str = None) -> bool:
        """Tell a recipient a paywalled message is waiting for them."""
        if not is_valid_email(recipient_email):
            logger.info("Skipping notification - recipient is not an email address")
            return False

        if sender_name:
            subject = f"{sender_name} sent you a message on Secret Message"
        else:
            subject = "You have a new message on Secret Message"

        html_content = f"""
        <div style="font-family:-apple-system,Segoe UI,Roboto,Arial;max-width:600px;margin:0 auto;padding:40px 20px;background:#000;color:#fff">
          <h1 style="font-size:24px;margin:0 0 16px">You have a new paywalled message!</h1>
          <p style="font-size:20px;font-weight:600">"{escape(title)}"</p>
          <p style="color:#a8a8a8">Someone sent you a message on Secret Message. Pay to unlock and see what's inside.</p>
          <p style="font-size:32px;font-weight:700;color:#FD1D1D">${price}</p>
          <p><a href="{unlock_url}" style="display:inline-block;background:#FD1D1D;color:#fff;text-decoration:none;padding:16px 32px;border-radius:9999px;font-weight:600">Pay to Unlock</a></p>
          <p style="color:#6b6b6b;font-size:12px">This message can only be viewed after payment.</p>
        </div>
        """
        return self.send_email(recipient_email, subject, html_content)

    def send_magic_link(self, to_email: str, link: str, ttl_minutes: int) -> bool:
        subject = "Your Secret Message sign-in link"
        html_content = f"""
        <div style="font-family:-apple-system,Segoe UI,Roboto,Arial">
          <h2>Sign in to Secret Message</h2>
          <p><a href="{link}">Click here to sign in</a></p>
          <p style="opacity:.7">This link expires in {ttl_minutes} minutes and can be used once.</p>
          <p style="opacity:.7">If you didn't request this, you can ignore it.</p>
        </div>
        """
        return self.send_email(to_email, subject, html_content)


def get_email_service() -> EmailService:
    return EmailService()
