"""Email notification helpers for restock, low-stock and waitlist events."""

from __future__ import annotations

import logging
import smtplib
from collections import OrderedDict
from email.message import EmailMessage
from email.utils import formataddr
from html import escape
from typing import Iterable, List, Optional, Sequence

from reconciler.core.config import Settings
from reconciler.core.exceptions import ConfigurationError, NotificationDeliveryError
from reconciler.schemas.catalog import Variant
from reconciler.schemas.events import NotificationRequest

logger = logging.getLogger(__name__)


RESTOCK_STYLES = (
    'body { font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", Roboto, Helvetica, Arial, sans-serif; color: #333; }'
    ".container { max-width: 600px; margin: auto; padding: 20px; border: 1px solid #eee; border-radius: 8px; }"
    ".product-box { border: 1px solid #ddd; padding: 20px; text-align: center; border-radius: 5px; margin-top: 20px; }"
    ".product-image { max-width: 150px; height: auto; margin-bottom: 20px; }"
    ".cta-button { display: inline-block; background-color: #1a1a1a; color: #ffffff; padding: 14px 28px;"
    " text-decoration: none; font-weight: bold; border-radius: 5px; margin-top: 20px; }"
)


class EmailNotificationService:
    """SMTP helper. Every public method sends exactly one message."""

    def __init__(self, settings: Settings):
        self._settings = settings

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def send(
        self,
        to: Sequence[str] | str,
        subject: str,
        html: str,
        text: Optional[str] = None,
    ) -> None:
        """Send one message to one or many recipients.

        Raises:
            ConfigurationError: SMTP settings are incomplete or no recipient given.
            NotificationDeliveryError: the SMTP server did not accept the message.
        """
        if not self._ready():
            raise ConfigurationError("SMTP configuration incomplete")

        to_addresses = self._resolve_recipients([to] if isinstance(to, str) else to)
        if not to_addresses:
            raise ConfigurationError(f"No recipients for '{subject}'")

        message = self._build_message(subject, to_addresses, text or "", html)
        self._dispatch(message)

    def send_restock_alert(self, variant: Variant, recipients: Sequence[str], product_url: str) -> None:
        """Single message to every waiting customer of ``variant``."""
        product_title = escape(variant.product_title)
        variant_title = escape(variant.title)
        image_html = ""
        if variant.image_url:
            image_html = (
                f'<img src="{escape(variant.image_url, quote=True)}" alt="{product_title}" class="product-image">'
            )

        body_html = (
            "<!DOCTYPE html><html><head>"
            f"<style>{RESTOCK_STYLES}</style>"
            "</head><body><div class=\"container\">"
            "<h2>Great News!</h2>"
            "<p>The item you requested a notification for is now back in stock.</p>"
            "<div class=\"product-box\">"
            f"{image_html}"
            f"<h3>{product_title}</h3>"
            f"<p><strong>Variant:</strong> {variant_title}</p>"
            f'<a href="{escape(product_url, quote=True)}" class="cta-button">View Product</a>'
            "</div>"
            '<p style="text-align:center; margin-top:30px; font-size: 14px; color: #777;">'
            "Stock is limited. Don't miss out!</p>"
            "</div></body></html>"
        )
        body_text = (
            f"Great news! The item you wanted, {variant.product_title} ({variant.title}), "
            f"is back in stock. Shop now: {product_url}"
        )
        self.send(
            recipients,
            f"It's Back! {variant.product_title} is in stock",
            body_html,
            body_text,
        )

    def send_low_stock_report(self, variants: Sequence[Variant], recipients: Optional[Sequence[str]] = None) -> None:
        """Cumulative report of every variant currently below its threshold, grouped by product."""
        grouped: "OrderedDict[str, List[Variant]]" = OrderedDict()
        for variant in sorted(variants, key=lambda v: (v.product_title, v.sku or "")):
            grouped.setdefault(variant.product_title, []).append(variant)

        html_parts = [
            "<h1>Cumulative Low Stock Report</h1>",
            "<p>The following variants are currently below their defined stock thresholds.</p>",
        ]
        text_lines = ["Cumulative Low Stock Report", ""]
        for product_title, items in grouped.items():
            html_parts.append(f"<h3>{escape(product_title)}</h3><ul>")
            text_lines.append(product_title)
            for item in items:
                html_parts.append(
                    f"<li><strong>{escape(item.title)}</strong><ul>"
                    f"<li>SKU: {escape(item.sku or 'N/A')}</li>"
                    f"<li>Current Quantity: {item.quantity}</li>"
                    f"<li>Alert Threshold: {item.alert_threshold}</li>"
                    f"<li>Historical Orders: {item.historical_order_count}</li>"
                    "</ul></li>"
                )
                text_lines.append(
                    f"  - {item.title} | SKU: {item.sku or 'N/A'} | qty {item.quantity}"
                    f" / threshold {item.alert_threshold} | orders {item.historical_order_count}"
                )
            html_parts.append("</ul>")
            text_lines.append("")
        html_parts.append("<p>Please consider reordering soon.</p>")
        text_lines.append("Please consider reordering soon.")

        self.send(
            recipients or self._settings.NOTIFICATION_EMAILS,
            f"CUMULATIVE Low Stock Report ({len(variants)} items)",
            "".join(html_parts),
            "\n".join(text_lines),
        )

    def send_waitlist_signup_alert(self, request: NotificationRequest) -> bool:
        """Tell the shop owner a customer joined a waitlist. Skipped when no owner address is set."""
        owner = self._settings.OWNER_NOTIFICATION_EMAIL
        if not owner:
            logger.info("OWNER_NOTIFICATION_EMAIL not set; sign-up alert skipped for variant %s", request.variant_id)
            return False

        url = escape(request.product_url or "", quote=True)
        lines = [
            ("Customer Email", escape(request.email or "")),
            ("Product", escape(request.product_title or "")),
            ("Variant", escape(request.variant_title or "")),
            ("Variant ID", escape(request.variant_id or "")),
        ]
        body_html = (
            "<p>A customer has requested to be notified about an out-of-stock item.</p><ul>"
            + "".join(f"<li><strong>{label}:</strong> {value}</li>" for label, value in lines)
            + f'<li><strong>URL:</strong> <a href="{url}">{url}</a></li></ul>'
        )
        self.send(owner, f"Stock Request: {request.product_title}", body_html)
        return True

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _ready(self) -> bool:
        settings = self._settings
        return bool(settings.SMTP_HOST and (settings.SMTP_FROM_EMAIL or settings.SMTP_USERNAME))

    def _resolve_recipients(self, recipients: Iterable[str]) -> List[str]:
        # Preserve order, drop blanks and duplicates
        seen = OrderedDict()
        for email in recipients:
            if email and email.strip():
                seen.setdefault(email.strip(), None)
        return list(seen)

    def _build_message(
        self,
        subject: str,
        to_addresses: Sequence[str],
        body_text: str,
        body_html: Optional[str] = None,
    ) -> EmailMessage:
        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = self._formatted_from_address
        message["To"] = ", ".join(to_addresses)
        message.set_content(body_text)
        if body_html:
            message.add_alternative(body_html, subtype="html")
        return message

    @property
    def _formatted_from_address(self) -> str:
        from_email = self._settings.SMTP_FROM_EMAIL or self._settings.SMTP_USERNAME
        from_name = self._settings.SMTP_FROM_NAME or "Inventory Alerts"
        return formataddr((from_name, from_email))

    def _dispatch(self, message: EmailMessage) -> None:
        try:
            self._send_sync(message)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Failed to send '%s' to %s: %s", message["Subject"], message["To"], exc)
            raise NotificationDeliveryError(str(exc)) from exc
        logger.info("Email '%s' sent to %s", message["Subject"], message["To"])

    def _send_sync(self, message: EmailMessage) -> None:
        settings = self._settings
        host = settings.SMTP_HOST
        port = settings.SMTP_PORT or (465 if settings.SMTP_USE_SSL else 587)
        timeout = settings.SMTP_TIMEOUT

        if settings.SMTP_USE_SSL:
            smtp = smtplib.SMTP_SSL(host=host, port=port, timeout=timeout)
        else:
            smtp = smtplib.SMTP(host=host, port=port, timeout=timeout)
        try:
            if settings.SMTP_USE_TLS and not settings.SMTP_USE_SSL:
                smtp.starttls()

            if settings.SMTP_USERNAME:
                smtp.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
            smtp.send_message(message)
        finally:
            try:
                smtp.quit()
            except smtplib.SMTPException:
                smtp.close()
