"""
Email service for order notifications.
Uses Flask-Mail for SMTP integration with UTF-8 support.
"""
import logging
from flask import current_app
from flask_mail import Mail, Message

from storefront.services.coupon_service import format_rupees

logger = logging.getLogger(__name__)

mail = Mail()


def init_mail(app):
    """Initialize Flask-Mail with app."""
    mail.init_app(app)


def _mail_enabled() -> bool:
    """
    Check if mail is properly configured and enabled.
    Prevents 500 errors in dev or misconfigured environments.
    """
    cfg = current_app.config
    return (
        not cfg.get("MAIL_SUPPRESS_SEND", False)
        and cfg.get("MAIL_SERVER")
        and cfg.get("MAIL_USERNAME")
    )


def send_order_confirmation_email(to_email: str, full_name: str, orders: list, amount_charged: int) -> bool:
    """
    Send the order confirmation after a successful payment.

    Args:
        to_email: Recipient email
        full_name: Customer name
        orders: Order rows created from the payment (one per brand)
        amount_charged: Amount captured by the gateway, in paise

    Returns:
        True if sent (or mail disabled), False otherwise
    """
    try:
        logger.info(f"[EMAIL] Preparing order confirmation for {to_email}")

        if not _mail_enabled():
            logger.warning(f"[MAIL DISABLED] Order confirmation skipped for {to_email}")
            return True

        store_name = current_app.config.get("STORE_NAME", "Storefront")
        order_ids = ", ".join(f"#{order.id}" for order in orders)

        rows = "".join(
            f"""
            <tr>
                <td>#{order.id}</td>
                <td align="center">{order.total_items}</td>
                <td align="right">₹{format_rupees(order.total_amount)}</td>
                <td align="right">-₹{format_rupees(order.discount_amount)}</td>
                <td align="right">₹{format_rupees(order.delivery_amount)}</td>
            </tr>
            """
            for order in orders
        )

        html_body = f"""
        <!DOCTYPE html>
        <html>
        <head>
            <meta charset="UTF-8">
            <style>
                body {{ font-family: Arial, sans-serif; color: #333; }}
                .container {{ max-width: 600px; margin: auto; padding: 20px; }}
                .header {{ background: #111; color: #fff; padding: 20px; text-align: center; }}
                .content {{ background: #fff; padding: 30px; }}
            </style>
        </head>
        <body>
            <div class="container">
                <div class="header">
                    <h1>Thank you for your order!</h1>
                </div>
                <div class="content">
                    <p>Hi <strong>{full_name}</strong>,</p>
                    <p>We received your payment. Each brand ships its part of your order separately.</p>
                    <table border="1" cellpadding="8" cellspacing="0" width="100%">
                        <tr>
                            <th>Order</th>
                            <th>Items</th>
                            <th>Subtotal</th>
                            <th>Discount</th>
                            <th>Delivery</th>
                        </tr>
                        {rows}
                    </table>
                    <p>Total charged: <strong>₹{format_rupees(amount_charged)}</strong></p>
                </div>
            </div>
        </body>
        </html>
        """

        text_body = f"""
Hi {full_name},

We received your payment for order(s) {order_ids}.
Each brand ships its part of your order separately.

- {store_name}
"""

        msg = Message(
            subject=f"{store_name} - Order confirmed ({order_ids})",
            recipients=[to_email],
            body=text_body,
            html=html_body,
        )

        mail.send(msg)
        logger.info(f"[EMAIL] ✓ Order confirmation sent to {to_email}")
        return True

    except Exception as e:
        logger.exception(f"[EMAIL] ✗ Error sending order confirmation: {e}")
        return False
