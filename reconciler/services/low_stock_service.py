"""
Low-stock reporting.

After every qualifying order event the full set of monitored variants is re-scanned
(order payloads describe intent, not post-transaction stock). A report goes out only
when the set of low SKUs differs from the set in the last report that was actually
sent, and only outside the cooldown window. The two gates are independent: a change
suppressed by the cooldown leaves the stored snapshot alone so the next eligible event
still sees it as a change.
"""

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from reconciler.core.config import Settings
from reconciler.core.enums import LOW_STOCK_SNAPSHOT_KEY, ReportType, cooldown_key
from reconciler.core.exceptions import BaseServiceError
from reconciler.schemas.catalog import Variant

logger = logging.getLogger(__name__)


@dataclass
class LowStockResult:
    action: str
    low_skus: List[str] = field(default_factory=list)
    previous_skus: List[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return set(self.low_skus) != set(self.previous_skus)


def report_identity(variant: Variant) -> str:
    return variant.sku or variant.id


class LowStockService:
    def __init__(self, catalog, store, notifier, settings: Settings,
                 clock: Callable[[], float] = time.time):
        self.catalog = catalog
        self.store = store
        self.notifier = notifier
        self.settings = settings
        self._clock = clock

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def scan_low_stock(self) -> List[Variant]:
        settings = self.settings
        query_filter = f"tag:{settings.MONITORED_PRODUCT_TAG}" if settings.MONITORED_PRODUCT_TAG else None
        variants = self.catalog.scan_monitored_variants(
            page_size=settings.PRODUCT_SCAN_LIMIT,
            variants_per_product=settings.VARIANT_SCAN_LIMIT,
            query_filter=query_filter,
        )
        low = [variant for variant in variants if variant.is_low_stock]
        logger.info(f"Scan complete. {len(low)} of {len(variants)} variants below threshold.")
        return low

    def _load_snapshot(self) -> tuple[Optional[str], List[str]]:
        raw = self.store.get(LOW_STOCK_SNAPSHOT_KEY)
        if not raw:
            return raw, []
        try:
            skus = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Stored low-stock snapshot is not valid JSON; treating as empty")
            return raw, []
        if not isinstance(skus, list):
            logger.warning("Stored low-stock snapshot is not a list; treating as empty")
            return raw, []
        return raw, [str(sku) for sku in skus]

    def _in_cooldown(self) -> bool:
        window = self.settings.low_stock_cooldown_ms
        if window <= 0:
            return False
        last_sent = self.store.get(cooldown_key(ReportType.LOW_STOCK))
        if not last_sent:
            return False
        try:
            elapsed = self._now_ms() - int(last_sent)
        except ValueError:
            logger.warning("Ignoring unreadable cooldown marker %r", last_sent)
            return False
        return elapsed < window

    def reconcile(self) -> LowStockResult:
        """
        Re-scan, compare and report. A scan failure propagates before anything is
        written; a send failure rolls the snapshot back and propagates.
        """
        low_variants = self.scan_low_stock()
        current = sorted({report_identity(variant) for variant in low_variants})

        raw_previous, previous = self._load_snapshot()
        result = LowStockResult(action="unchanged", low_skus=current, previous_skus=sorted(previous))

        if not result.changed:
            logger.info("The list of low-stock items has not changed since the last report.")
            return result

        if not current:
            if self.store.compare_and_set(LOW_STOCK_SNAPSHOT_KEY, raw_previous, None):
                logger.info("All previously low-stock items have been restocked. Snapshot cleared.")
                result.action = "cleared"
            else:
                result.action = "lost_race"
            return result

        if self._in_cooldown():
            logger.info("Low-stock list changed but a report was sent within the cooldown window; deferring.")
            result.action = "cooldown"
            return result

        new_raw = json.dumps(current)
        # Until the send returns, a concurrent reconcile sees this snapshot as unchanged.
        # If the send fails and is rolled back, that change goes out with a later event.
        if not self.store.compare_and_set(LOW_STOCK_SNAPSHOT_KEY, raw_previous, new_raw):
            logger.info("Another delivery already reported this change; skipping.")
            result.action = "lost_race"
            return result

        try:
            self.notifier.send_low_stock_report(low_variants)
        except BaseServiceError:
            self.store.compare_and_set(LOW_STOCK_SNAPSHOT_KEY, new_raw, raw_previous)
            raise

        self.store.set(cooldown_key(ReportType.LOW_STOCK), str(self._now_ms()))
        logger.info(f"Cumulative report sent with {len(current)} items.")
        result.action = "sent"
        return result
