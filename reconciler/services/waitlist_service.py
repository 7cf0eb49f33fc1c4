"""
Back-in-stock waitlist.

Customers join a per-variant waitlist from the storefront. When the variant's
availability turns positive every waiting customer gets one email and the notified
entries are removed. Removal only ever happens after the send succeeded: a failed send
leaves the list untouched for the next delivery to retry, while a crash between send
and removal can at worst repeat one notification.
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import List, Optional

from reconciler.core.config import Settings
from reconciler.core.enums import WAITLIST_CLAIM_PREFIX, waitlist_key
from reconciler.schemas.catalog import Variant
from reconciler.schemas.events import NotificationRequest

logger = logging.getLogger(__name__)


@dataclass
class WaitlistResult:
    variant_id: str
    recipients: List[str] = field(default_factory=list)
    sent: bool = False
    skipped_reason: Optional[str] = None


def dedupe_emails(emails: List[str]) -> List[str]:
    """Collapse repeated requests (case-insensitive), keeping first-seen order."""
    unique: List[str] = []
    seen = set()
    for email in emails:
        cleaned = (email or "").strip()
        if not cleaned or cleaned.lower() in seen:
            continue
        seen.add(cleaned.lower())
        unique.append(cleaned)
    return unique


class WaitlistService:
    def __init__(self, store, notifier, settings: Settings):
        self.store = store
        self.notifier = notifier
        self.settings = settings

    def add_request(self, request: NotificationRequest) -> int:
        """Queue a customer for a restock email. Returns the new waitlist length."""
        length = self.store.list_push(waitlist_key(request.variant_id), request.email.strip())
        logger.info("Waitlist request queued for variant %s (%d waiting)", request.variant_id, length)
        return length

    def product_link(self, variant: Variant) -> str:
        base = variant.product_url
        if not base and self.settings.STOREFRONT_URL and variant.product_handle:
            base = f"{self.settings.STOREFRONT_URL.rstrip('/')}/products/{variant.product_handle}"
        base = base or self.settings.STOREFRONT_URL.rstrip("/")
        return f"{base}?variant={variant.numeric_id}"

    def notify_restock(self, variant: Variant, available: int) -> WaitlistResult:
        result = WaitlistResult(variant_id=variant.numeric_id)
        if available <= 0:
            result.skipped_reason = "not_available"
            return result

        key = waitlist_key(variant.numeric_id)
        claim_key = f"{WAITLIST_CLAIM_PREFIX}:{variant.numeric_id}"
        token = uuid.uuid4().hex
        if not self.store.claim(claim_key, self.settings.WAITLIST_CLAIM_TTL_SECONDS * 1000, token):
            logger.info("Waitlist for variant %s is being drained by another delivery", variant.numeric_id)
            result.skipped_reason = "claimed_elsewhere"
            return result

        try:
            emails = self.store.list_read(key)
            if not emails:
                result.skipped_reason = "empty_waitlist"
                return result

            result.recipients = dedupe_emails(emails)
            if not result.recipients:
                self.store.list_remove_oldest(key, len(emails))
                result.skipped_reason = "no_valid_recipients"
                return result

            self.notifier.send_restock_alert(variant, result.recipients, self.product_link(variant))
            result.sent = True

            self.store.list_remove_oldest(key, len(emails))
            logger.info(
                "Restock notification sent for variant %s to %d recipients (%d requests)",
                variant.numeric_id, len(result.recipients), len(emails),
            )
            return result
        finally:
            self.store.compare_and_set(claim_key, token, None)
