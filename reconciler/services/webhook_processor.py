"""
Routes verified Shopify webhook deliveries to the reconciliation workflows.

Inventory level updates:
    variant lookup -> sibling sync -> (available > 0) waitlist notification
Order created / cancelled:
    demand ledger -> low-stock reconciliation

Anything the processor cannot use (unknown topic, unparseable body, missing fields,
unknown variant) is acknowledged as a no-op so the sender does not keep retrying it.
Per-item failures inside the sibling and ledger loops are recorded on the outcome;
other failures propagate so the sender redelivers.
"""

import json
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError

from reconciler.core.config import Settings
from reconciler.core.enums import OrderKind, WebhookTopic
from reconciler.core.exceptions import ConfigurationError, MalformedPayload, RemoteServiceError
from reconciler.schemas.events import InventoryEvent, OrderEvent
from reconciler.services.demand_ledger import DemandLedger
from reconciler.services.low_stock_service import LowStockService
from reconciler.services.sibling_sync import SiblingSyncService
from reconciler.services.waitlist_service import WaitlistService

logger = logging.getLogger(__name__)


@dataclass
class DeliveryOutcome:
    status: str
    event_type: Optional[str] = None
    reason: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ignored(cls, reason: str, event_type: Optional[str] = None) -> "DeliveryOutcome":
        return cls(status="ignored", event_type=event_type, reason=reason)

    def to_dict(self) -> Dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value not in (None, {})}


def parse_payload(raw_body: bytes) -> Dict[str, Any]:
    if not raw_body or not raw_body.strip():
        raise MalformedPayload("Empty body")
    try:
        payload = json.loads(raw_body)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise MalformedPayload(f"Body is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise MalformedPayload("Body is not a JSON object")
    return payload


def classify(topic: Optional[str], payload: Dict[str, Any]) -> Optional[Union[InventoryEvent, OrderEvent]]:
    """
    Build the event for a payload. Returns None for topics this service does not handle.

    Raises:
        ValidationError: the payload is missing fields its topic requires.
    """
    topic = (topic or "").strip().lower()
    if not topic:
        if "inventory_item_id" in payload:
            topic = WebhookTopic.INVENTORY_LEVELS_UPDATE.value
        elif "line_items" in payload:
            topic = (WebhookTopic.ORDERS_CANCELLED.value if payload.get("cancelled_at")
                     else WebhookTopic.ORDERS_CREATE.value)
        else:
            return None

    if topic == WebhookTopic.INVENTORY_LEVELS_UPDATE.value:
        return InventoryEvent.model_validate(payload)
    if topic in (WebhookTopic.ORDERS_CREATE.value, WebhookTopic.ORDERS_CANCELLED.value):
        kind = OrderKind.CANCELLED if topic == WebhookTopic.ORDERS_CANCELLED.value else OrderKind.CREATED
        return OrderEvent.model_validate({
            "order_id": payload.get("id"),
            "line_items": payload.get("line_items") or [],
            "kind": kind,
        })
    return None


class WebhookProcessor:
    def __init__(self, catalog, store, notifier, settings: Settings,
                 siblings: Optional[SiblingSyncService] = None,
                 waitlist: Optional[WaitlistService] = None,
                 low_stock: Optional[LowStockService] = None,
                 ledger: Optional[DemandLedger] = None):
        self.catalog = catalog
        self.settings = settings
        self.siblings = siblings or SiblingSyncService(catalog, settings)
        self.waitlist = waitlist or WaitlistService(store, notifier, settings)
        self.low_stock = low_stock or LowStockService(catalog, store, notifier, settings)
        self.ledger = ledger or DemandLedger(catalog, store, settings)

    def process(self, raw_body: bytes, topic: Optional[str] = None) -> DeliveryOutcome:
        """Handle one verified delivery."""
        try:
            payload = parse_payload(raw_body)
        except MalformedPayload as exc:
            logger.warning("Ignoring malformed webhook (topic=%s): %s", topic, exc)
            return DeliveryOutcome.ignored("malformed_payload")

        try:
            event = classify(topic, payload)
        except ValidationError as exc:
            logger.warning("Ignoring webhook with missing fields (topic=%s): %s", topic, exc.errors())
            return DeliveryOutcome.ignored("missing_fields", event_type=topic)

        if event is None:
            logger.info("Ignoring webhook with unhandled topic %r", topic)
            return DeliveryOutcome.ignored("unhandled_topic", event_type=topic)

        if isinstance(event, InventoryEvent):
            return self.handle_inventory_event(event)
        return self.handle_order_event(event)

    def handle_inventory_event(self, event: InventoryEvent) -> DeliveryOutcome:
        logger.info(
            "Inventory update: item=%s location=%s available=%s",
            event.inventory_item_id, event.location_id, event.available,
        )
        variant = self.catalog.get_variant_by_inventory_item(event.inventory_item_id)
        if variant is None:
            logger.info(f"No variant found for inventory item ID {event.inventory_item_id}.")
            return DeliveryOutcome.ignored("variant_not_found", event_type="inventory")

        outcome = DeliveryOutcome(status="processed", event_type="inventory")
        outcome.details["variant_id"] = variant.numeric_id

        try:
            sync = self.siblings.sync_siblings(variant, event.available, event.location_id)
            outcome.details["siblings"] = {
                "sync_key": sync.sync_key,
                "adjusted": len(sync.adjusted),
                "failures": sync.failures,
                "skipped_reason": sync.skipped_reason,
            }
        except ConfigurationError as exc:
            logger.error("Sibling sync aborted variant=%s error=%s", variant.id, exc)
            outcome.details["siblings"] = {"error": str(exc)}
        except RemoteServiceError as exc:
            logger.error("Sibling search failed variant=%s error=%s", variant.id, exc)
            outcome.details["siblings"] = {"error": str(exc)}

        if event.available > 0:
            waitlist = self.waitlist.notify_restock(variant, event.available)
            outcome.details["waitlist"] = {
                "sent": waitlist.sent,
                "recipients": len(waitlist.recipients),
                "skipped_reason": waitlist.skipped_reason,
            }
        return outcome

    def handle_order_event(self, event: OrderEvent) -> DeliveryOutcome:
        logger.info(
            "Order %s %s with %d line items", event.order_id, event.kind.value.lower(), len(event.line_items)
        )
        outcome = DeliveryOutcome(status="processed", event_type=f"order_{event.kind.value.lower()}")

        ledger = self.ledger.apply(event)
        outcome.details["ledger"] = {
            "updated": len(ledger.updated),
            "skipped": len(ledger.skipped),
            "failures": ledger.failures,
        }

        product_type = self.settings.MONITORED_PRODUCT_TYPE
        if product_type and not event.contains_product_type(product_type):
            logger.info(f"Order {event.order_id} contains no '{product_type}' products; low-stock scan skipped.")
            outcome.details["low_stock"] = {"action": "not_monitored"}
            return outcome

        report = self.low_stock.reconcile()
        outcome.details["low_stock"] = {"action": report.action, "low_items": len(report.low_skus)}
        return outcome
