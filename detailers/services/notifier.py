"""
SendGrid Email Service
Transactional emails for guest course purchases.

Without SENDGRID_API_KEY every send is logged and skipped; callers treat a
False return as "not delivered" and carry on.
"""

import html
from typing import Optional

from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail, Email, To, Content

from detailers.infra.log import get_logger
from detailers.services.metrics import get_metrics_service

logger = get_logger("detailers.notifier")


def _e(value) -> str:
    return html.escape(str(value if value is not None else ""))


class Notifier:
    """Service for sending purchase emails via SendGrid"""

    def __init__(
        self,
        api_key: Optional[str],
        from_email: str = "no-reply@detailersuni.com",
        from_name: str = "Detailers University",
        frontend_origin: str = "https://www.detailersuni.com",
        client: Optional[SendGridAPIClient] = None,
    ):
        self.from_email = from_email
        self.from_name = from_name
        self.frontend_origin = frontend_origin.rstrip("/")

        if client is not None:
            self.client = client
        elif api_key:
            self.client = SendGridAPIClient(api_key)
        else:
            logger.warning("SENDGRID_API_KEY not set - emails will be logged, not sent")
            self.client = None

    @property
    def configured(self) -> bool:
        return self.client is not None

    def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: Optional[str] = None,
        kind: str = "generic",
        retries: int = 3
    ) -> bool:
        """
        Send an email with retry logic

        Args:
            to_email: Recipient email address
            subject: Email subject
            html_content: HTML email body
            text_content: Plain text email body (optional)
            kind: Label used in logs and metrics
            retries: Number of retry attempts for transient failures

        Returns:
            True if email sent successfully, False otherwise
        """
        if not self.client:
            logger.info("Email skipped (notifier not configured)", to_email=to_email, kind=kind)
            return False

        sent = False
        try:
            message = Mail(
                from_email=Email(self.from_email, self.from_name),
                to_emails=To(to_email),
                subject=subject,
                html_content=Content("text/html", html_content)
            )
            if text_content:
                message.add_content(Content("text/plain", text_content))

            for attempt in range(retries):
                try:
                    response = self.client.send(message)
                except Exception as e:
                    logger.error(f"Error sending email (attempt {attempt + 1}/{retries})",
                                 to_email=to_email, kind=kind, error=str(e))
                    continue

                if response.status_code in (200, 201, 202):
                    logger.info("Email sent", to_email=to_email, kind=kind)
                    sent = True
                    break
                if response.status_code >= 500:
                    logger.warning(f"SendGrid server error (attempt {attempt + 1}/{retries})",
                                   status_code=response.status_code, kind=kind)
                    continue
                # client error - don't retry
                logger.error("SendGrid client error", status_code=response.status_code, kind=kind)
                break
        except Exception as e:
            logger.error("Failed to build email", to_email=to_email, kind=kind, error=str(e))

        metrics = get_metrics_service()
        if metrics:
            metrics.record_email(kind, sent)
        return sent

    def send_purchase_confirmation(
        self,
        customer_email: str,
        customer_name: str,
        course_title: str,
        course_price,
        access_code: str,
        instructor_name: Optional[str] = None,
    ) -> bool:
        """Tell the buyer the payment went through and give them their access code."""
        subject = f"Course Purchase Confirmation - {course_title}"
        access_link = f"{self.frontend_origin}/course-access/{access_code}"

        html_content = f"""
        <div style="font-family:system-ui,Segoe UI,Roboto,Arial">
          <h2>Thank you for your purchase, {_e(customer_name)}!</h2>
          <p>Your payment for <strong>{_e(course_title)}</strong> was received.</p>
          <table>
            <tr><td>Course</td><td>{_e(course_title)}</td></tr>
            <tr><td>Instructor</td><td>{_e(instructor_name or 'Course Instructor')}</td></tr>
            <tr><td>Price</td><td>${_e(course_price)}</td></tr>
            <tr><td>Access code</td><td><code>{_e(access_code)}</code></td></tr>
          </table>
          <p><a href="{_e(access_link)}">Open your course</a></p>
          <p style="opacity:.7">Keep this email: the access code lets you return to your course at any time.</p>
        </div>
        """
        text_content = (
            f"Thank you for your purchase, {customer_name}!\n\n"
            f"Course: {course_title}\nPrice: ${course_price}\n"
            f"Access code: {access_code}\n{access_link}\n"
        )
        return self.send_email(customer_email, subject, html_content, text_content,
                               kind="purchase_confirmation")

    def send_credentials(
        self,
        customer_email: str,
        customer_name: str,
        username: str,
        plaintext_password: str,
        course_title: str,
        access_code: str,
    ) -> bool:
        """Deliver a one-time password for the buyer's account."""
        subject = "Your Detailers University Account Credentials - Course Access"
        login_link = f"{self.frontend_origin}/login"

        html_content = f"""
        <div style="font-family:system-ui,Segoe UI,Roboto,Arial">
          <h2>Welcome, {_e(customer_name)}</h2>
          <p>An account was set up so you can follow <strong>{_e(course_title)}</strong>.</p>
          <table>
            <tr><td>Email</td><td>{_e(customer_email)}</td></tr>
            <tr><td>Username</td><td>{_e(username)}</td></tr>
            <tr><td>Password</td><td><code>{_e(plaintext_password)}</code></td></tr>
            <tr><td>Access code</td><td><code>{_e(access_code)}</code></td></tr>
          </table>
          <p><a href="{_e(login_link)}">Log in</a> and change your password after your first login.</p>
        </div>
        """
        text_content = (
            f"Welcome, {customer_name}\n\nEmail: {customer_email}\nUsername: {username}\n"
            f"Password: {plaintext_password}\nAccess code: {access_code}\n\nLog in: {login_link}\n"
        )
        return self.send_email(customer_email, subject, html_content, text_content,
                               kind="credentials")

    def send_instructor_notification(
        self,
        instructor_email: str,
        customer_name: str,
        customer_email: str,
        course_title: str,
        course_price,
    ) -> bool:
        subject = f"New Course Purchase - {course_title}"
        html_content = f"""
        <div style="font-family:system-ui,Segoe UI,Roboto,Arial">
          <h2>New purchase of {_e(course_title)}</h2>
          <p>{_e(customer_name)} ({_e(customer_email)}) bought your course for ${_e(course_price)}.</p>
        </div>
        """
        return self.send_email(instructor_email, subject, html_content,
                               kind="instructor_notification")
