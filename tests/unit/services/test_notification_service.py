# tests/unit/services/test_notification_service.py
import smtplib

import pytest

from reconciler.core.exceptions import ConfigurationError, NotificationDeliveryError
from reconciler.schemas.events import NotificationRequest
from reconciler.services.notification_service import EmailNotificationService

from tests.mocks import make_variant


@pytest.fixture
def smtp(mocker):
    return mocker.patch("reconciler.services.notification_service.smtplib.SMTP")


@pytest.fixture
def email_service(settings):
    return EmailNotificationService(settings)


def sent_message(smtp):
    return smtp.return_value.send_message.call_args.args[0]


def test_restock_alert_is_a_single_message(email_service, smtp):
    variant = make_variant(42, title="254mm / Black", image_url="https://cdn.example.com/v42.jpg")

    email_service.send_restock_alert(variant, ["a@x.com", "b@x.com"], "https://shop.example.com/products/cx-ray?variant=42")

    smtp.return_value.send_message.assert_called_once()
    message = sent_message(smtp)
    assert message["To"] == "a@x.com, b@x.com"
    assert message["Subject"] == "It's Back! Sapim CX-Ray Spoke Black is in stock"
    html = message.get_body(preferencelist=("html",)).get_content()
    assert "?variant=42" in html
    assert "https://cdn.example.com/v42.jpg" in html
    smtp.return_value.starttls.assert_called_once()
    smtp.return_value.login.assert_called_once_with("alerts@example.com", "secret")


def test_low_stock_report_lists_every_item(email_service, smtp):
    variants = [
        make_variant(1, sku="CXR-254", quantity=2, alert_threshold=5, historical_order_count=31),
        make_variant(2, sku="NIP-14", quantity=0, alert_threshold=10, product_title="DT Swiss Pro Lock Nipples"),
    ]

    email_service.send_low_stock_report(variants)

    message = sent_message(smtp)
    assert message["Subject"] == "CUMULATIVE Low Stock Report (2 items)"
    assert message["To"] == "owner@example.com, buyer@example.com"
    text = message.get_body(preferencelist=("plain",)).get_content()
    assert "CXR-254" in text and "NIP-14" in text
    html = message.get_body(preferencelist=("html",)).get_content()
    assert "<h3>DT Swiss Pro Lock Nipples</h3>" in html
    assert "Historical Orders: 31" in html


def test_signup_alert_goes_to_owner(email_service, smtp):
    request = NotificationRequest(email="c@x.com", variantId="42", productTitle="Sapim CX-Ray",
                                  variantTitle="254mm", productUrl="https://shop.example.com/products/cx-ray")

    assert email_service.send_waitlist_signup_alert(request) is True
    message = sent_message(smtp)
    assert message["To"] == "owner@example.com"
    assert message["Subject"] == "Stock Request: Sapim CX-Ray"


def test_signup_alert_skipped_without_owner(settings, smtp):
    service = EmailNotificationService(settings.model_copy(update={"OWNER_NOTIFICATION_EMAIL": ""}))

    assert service.send_waitlist_signup_alert(NotificationRequest(email="c@x.com", variantId="42")) is False
    smtp.assert_not_called()


def test_smtp_failure_raises_delivery_error(email_service, smtp):
    smtp.return_value.send_message.side_effect = smtplib.SMTPRecipientsRefused({})

    with pytest.raises(NotificationDeliveryError):
        email_service.send("a@x.com", "Subject", "<p>hi</p>")


def test_connection_failure_raises_delivery_error(email_service, smtp):
    smtp.side_effect = ConnectionRefusedError("refused")

    with pytest.raises(NotificationDeliveryError):
        email_service.send("a@x.com", "Subject", "<p>hi</p>")


def test_incomplete_smtp_settings(settings, smtp):
    service = EmailNotificationService(settings.model_copy(update={"SMTP_HOST": ""}))

    with pytest.raises(ConfigurationError):
        service.send("a@x.com", "Subject", "<p>hi</p>")
    smtp.assert_not_called()


def test_blank_recipients_are_rejected(email_service, smtp):
    with pytest.raises(ConfigurationError):
        email_service.send(["", "  "], "Subject", "<p>hi</p>")


def test_ssl_transport(settings, mocker):
    smtp_ssl = mocker.patch("reconciler.services.notification_service.smtplib.SMTP_SSL")
    service = EmailNotificationService(settings.model_copy(update={"SMTP_USE_SSL": True, "SMTP_PORT": 465}))

    service.send("a@x.com", "Subject", "<p>hi</p>")

    smtp_ssl.assert_called_once_with(host="smtp.example.com", port=465, timeout=30)
    smtp_ssl.return_value.starttls.assert_not_called()
