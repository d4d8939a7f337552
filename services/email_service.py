import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from core.config import settings
from models.enums import OrderStatus
from utils.logger import get_logger

# Setup logger
logger = get_logger(__name__)


def send_email(to_email: str, subject: str, body: str):
    # Skip email sending in test environment
    if settings.ENV == "testing":
        logger.info(
            "[TEST MODE] Email skipped",
            extra={"recipient": to_email, "subject": subject}
        )
        return

    logger.debug(
        "Attempting to send email",
        extra={"recipient": to_email, "subject": subject}
    )

    message = MIMEMultipart("alternative")
    message["Subject"] = subject
    message["From"] = settings.MAIL_FROM
    message["To"] = to_email
    message.attach(MIMEText(body, "html"))

    try:
        with smtplib.SMTP(settings.MAIL_SERVER, settings.MAIL_PORT) as server:
            server.starttls()
            server.login(settings.MAIL_USERNAME, settings.MAIL_PASSWORD)
            server.sendmail(settings.MAIL_FROM, to_email, message.as_string())

        logger.info(
            "Email sent successfully",
            extra={"recipient": to_email, "subject": subject}
        )

    except smtplib.SMTPException as e:
        logger.error(
            f"Failed to send email: {str(e)}",
            extra={
                "recipient": to_email,
                "subject": subject,
                "error": str(e),
                "error_type": type(e).__name__
            },
            exc_info=True
        )
        raise


def _wrap(heading: str, paragraphs: list[str]) -> str:
    body = "".join(f"<p>{p}</p>" for p in paragraphs)
    return f"""
    <html>
    <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
        <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
            <h2 style="color: #2c3e50;">{heading}</h2>
            {body}
        </div>
    </body>
    </html>
    """


def payment_rejected_email(order_number: str, reason: str) -> tuple[str, str]:
    return (
        f"Payment not accepted - order {order_number}",
        _wrap("We could not confirm your payment", [
            f"Your payment proof for order <strong>{order_number}</strong> was not accepted.",
            f"Reason: {reason}",
            "Please upload a new payment proof from your order page.",
        ])
    )


def order_cancelled_email(order_number: str, reason: str) -> tuple[str, str]:
    return (
        f"Order {order_number} cancelled",
        _wrap("Your order was cancelled", [
            f"Order <strong>{order_number}</strong> has been cancelled.",
            f"Reason: {reason}",
        ])
    )


def order_shipped_email(order_number: str, tracking_number: str | None,
                        tracking_url: str | None) -> tuple[str, str]:
    lines = [f"Good news: order <strong>{order_number}</strong> is on its way."]
    if tracking_number:
        lines.append(f"Tracking number: {tracking_number}")
    if tracking_url:
        lines.append(f'<a href="{tracking_url}">Track your parcel</a>')
    return f"Order {order_number} shipped", _wrap("Your order has shipped", lines)


def notify_status_change(bg, order, reason: str | None = None):
    """
    Queue the customer email for a status the customer must hear about.

    Called after the transition has committed; nothing is sent for statuses
    without a template.
    """
    status = OrderStatus(order.status)
    if status == OrderStatus.PENDING:
        subject, body = payment_rejected_email(order.order_number, reason or "")
    elif status == OrderStatus.CANCELLED:
        subject, body = order_cancelled_email(order.order_number, reason or "")
    elif status == OrderStatus.SHIPPED:
        subject, body = order_shipped_email(order.order_number, order.tracking_number, order.tracking_url)
    else:
        return

    if not order.customer_email:
        logger.warning("Order has no customer email, notification skipped",
                       extra={"order_id": order.id, "status": status.value})
        return

    bg.add_task(send_email, to_email=order.customer_email, subject=subject, body=body)
