# tests/unit/services/test_sibling_sync.py
import pytest

from reconciler.core.config import Settings
from reconciler.core.exceptions import ConfigurationError, RemoteUnavailable
from reconciler.services.sibling_sync import SiblingSyncService

from tests.mocks import make_variant
from tests.mocks.mock_shopify import MockCatalogClient

LOCATION = 555


@pytest.fixture
def service(catalog, settings):
    return SiblingSyncService(catalog, settings)


def deliver(service, catalog, variant_id, available, location=LOCATION):
    """Simulate the platform changing one variant, then the webhook for it arriving."""
    catalog.variants[variant_id].quantity = available
    trigger = catalog.variants[variant_id].model_copy()
    return service.sync_siblings(trigger, available, location)


"""
1. Resolution: broad search, strict filter
"""

def test_adjusts_only_siblings_that_differ(service, catalog):
    """Trigger at 12, siblings at 5 and 12: one +7 adjustment, none for the sibling already at 12"""
    trigger = catalog.add(make_variant(1, quantity=12, sync_key="CX-BLK-254"))
    behind = catalog.add(make_variant(2, quantity=5, sync_key="CX-BLK-254"))
    catalog.add(make_variant(3, quantity=12, sync_key="CX-BLK-254"))

    result = service.sync_siblings(trigger.model_copy(), 12, LOCATION)

    assert catalog.adjust_calls == [(behind.inventory_item_id, LOCATION, 7)]
    assert len(result.adjusted) == 1
    assert result.adjusted[0].delta == 7
    assert catalog.quantity_of(behind.id) == 12


def test_trigger_never_adjusted_even_when_search_returns_it(service, catalog):
    trigger = catalog.add(make_variant(1, quantity=4, sync_key="KEY"))
    # Stale copy of the trigger at a different quantity
    catalog.search_results = [make_variant(1, quantity=9, sync_key="KEY")]

    result = service.sync_siblings(trigger.model_copy(), 4, LOCATION)

    assert catalog.adjust_calls == []
    assert result.adjusted == []


def test_broad_query_uses_first_three_title_words(service, catalog):
    trigger = catalog.add(make_variant(1, quantity=3, sync_key="KEY",
                                       product_title="DT Swiss Competition Race Spoke"))

    service.sync_siblings(trigger.model_copy(), 3, LOCATION)

    assert catalog.search_calls == [("DT Swiss Competition", 50)]


def test_search_cap_comes_from_settings(catalog, settings):
    tuned = settings.model_copy(update={"SIBLING_SEARCH_LIMIT": 10})
    trigger = catalog.add(make_variant(1, quantity=3, sync_key="KEY"))

    SiblingSyncService(catalog, tuned).sync_siblings(trigger.model_copy(), 3, LOCATION)

    assert catalog.search_calls[0][1] == 10


def test_candidates_with_other_keys_are_ignored(service, catalog):
    trigger = catalog.add(make_variant(1, quantity=8, sync_key="KEY-A"))
    catalog.add(make_variant(2, quantity=1, sync_key="KEY-B"))
    catalog.add(make_variant(3, quantity=1, sync_key=None))
    catalog.add(make_variant(4, quantity=1, sync_key="key-a"))

    result = service.sync_siblings(trigger.model_copy(), 8, LOCATION)

    assert catalog.adjust_calls == []
    assert result.candidates_found == 0


def test_sibling_found_even_when_title_search_returns_unrelated_variants(service, catalog):
    trigger = catalog.add(make_variant(1, quantity=6, sync_key="KEY", product_title="Sapim Race Spoke Silver"))
    sibling = make_variant(2, quantity=2, sync_key="KEY", product_title="Sapim Race Spoke Silver 2mm")
    catalog.add(sibling)
    catalog.search_results = [make_variant(9, quantity=0, sync_key="OTHER"), sibling]

    service.sync_siblings(trigger.model_copy(), 6, LOCATION)

    assert catalog.adjust_calls == [(sibling.inventory_item_id, LOCATION, 4)]


def test_negative_delta_when_sibling_has_more_stock(service, catalog):
    trigger = catalog.add(make_variant(1, quantity=0, sync_key="KEY"))
    sibling = catalog.add(make_variant(2, quantity=3, sync_key="KEY"))

    service.sync_siblings(trigger.model_copy(), 0, LOCATION)

    assert catalog.adjust_calls == [(sibling.inventory_item_id, LOCATION, -3)]


"""
2. Guards
"""

@pytest.mark.parametrize("sync_key", [None, ""])
def test_variant_without_sync_key_is_left_alone(service, catalog, sync_key):
    trigger = catalog.add(make_variant(1, quantity=3, sync_key=sync_key))
    catalog.add(make_variant(2, quantity=1, sync_key=sync_key))

    result = service.sync_siblings(trigger.model_copy(), 3, LOCATION)

    assert result.skipped_reason == "no_sync_key"
    assert catalog.search_calls == []
    assert catalog.adjust_calls == []


def test_missing_location_raises_before_any_adjustment(service, catalog):
    trigger = catalog.add(make_variant(1, quantity=3, sync_key="KEY"))
    catalog.add(make_variant(2, quantity=1, sync_key="KEY"))

    with pytest.raises(ConfigurationError):
        service.sync_siblings(trigger.model_copy(), 3, None)

    assert catalog.adjust_calls == []


def test_one_failing_sibling_does_not_block_the_others(service, catalog):
    trigger = catalog.add(make_variant(1, quantity=10, sync_key="KEY"))
    failing = catalog.add(make_variant(2, quantity=1, sync_key="KEY"))
    healthy = catalog.add(make_variant(3, quantity=2, sync_key="KEY"))
    catalog.fail_adjust_for.add(failing.inventory_item_id)

    result = service.sync_siblings(trigger.model_copy(), 10, LOCATION)

    assert len(catalog.adjust_calls) == 2
    assert catalog.quantity_of(healthy.id) == 10
    assert catalog.quantity_of(failing.id) == 1
    assert [f["variant_id"] for f in result.failures] == [failing.id]
    assert not result.ok


def test_search_failure_propagates(service, catalog):
    trigger = catalog.add(make_variant(1, quantity=10, sync_key="KEY"))
    catalog.search_error = RemoteUnavailable("search timed out")

    with pytest.raises(RemoteUnavailable):
        service.sync_siblings(trigger.model_copy(), 10, LOCATION)


"""
3. Idempotence and convergence
"""

def test_replaying_an_event_is_idempotent(service, catalog):
    catalog.add(make_variant(1, quantity=0, sync_key="KEY"))
    catalog.add(make_variant(2, quantity=4, sync_key="KEY"))
    catalog.add(make_variant(3, quantity=9, sync_key="KEY"))

    deliver(service, catalog, "gid://shopify/ProductVariant/1", 7)
    after_first = {vid: v.quantity for vid, v in catalog.variants.items()}
    calls_after_first = len(catalog.adjust_calls)

    deliver(service, catalog, "gid://shopify/ProductVariant/1", 7)

    assert {vid: v.quantity for vid, v in catalog.variants.items()} == after_first
    assert len(catalog.adjust_calls) == calls_after_first


@pytest.mark.parametrize("order", [
    [(1, 7), (2, 3), (3, 11)],
    [(3, 11), (1, 7), (2, 3)],
    [(2, 3), (2, 3), (1, 7), (3, 11), (3, 11)],
])
def test_group_converges_to_last_observed_quantity(order):
    catalog = MockCatalogClient([
        make_variant(1, quantity=0, sync_key="KEY"),
        make_variant(2, quantity=0, sync_key="KEY"),
        make_variant(3, quantity=0, sync_key="KEY"),
    ])
    service = SiblingSyncService(catalog, Settings())

    for number, available in order:
        deliver(service, catalog, f"gid://shopify/ProductVariant/{number}", available)

    last = order[-1][1]
    assert {v.quantity for v in catalog.variants.values()} == {last}
