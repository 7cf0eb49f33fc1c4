# reconciler.services.shopify.client

import json
import logging
import time
import requests
from typing import Dict, List, Optional, Any

from reconciler.core.config import Settings, get_settings
from reconciler.core.exceptions import (
    ConfigurationError,
    RemoteRejected,
    RemoteUnavailable,
    ShopifyGraphQLError,
)
from reconciler.core.utils import parse_bool_field, parse_int_field, to_gid
from reconciler.schemas.catalog import Variant

logger = logging.getLogger(__name__)


IMAGE_TRANSFORM = "transform: {maxWidth: 200, maxHeight: 200, crop: CENTER}"

# Metafield aliases are shared by every variant query so parsing stays in one place.
METAFIELD_VARS_DEF = "$namespace: String!, $syncKey: String!, $thresholdKey: String!, $orderCountKey: String!, $monitoringKey: String!"

VARIANT_FIELDS_FRAGMENT = f"""
fragment VariantFields on ProductVariant {{
  id
  title
  sku
  inventoryQuantity
  inventoryItem {{ id }}
  image {{ url({IMAGE_TRANSFORM}) }}
  syncKey: metafield(namespace: $namespace, key: $syncKey) {{ value }}
  alertThreshold: metafield(namespace: $namespace, key: $thresholdKey) {{ value }}
  orderCount: metafield(namespace: $namespace, key: $orderCountKey) {{ value }}
  product {{
    id
    title
    handle
    onlineStoreUrl
    featuredImage {{ url({IMAGE_TRANSFORM}) }}
    monitoring: metafield(namespace: $namespace, key: $monitoringKey) {{ value }}
  }}
}}
"""


class ShopifyGraphQLClient:
    """
    Typed wrapper over the Shopify Admin GraphQL API.

    Reads:
      - get_variant_by_inventory_item()
      - search_variants()
      - get_field()
      - scan_monitored_variants()

    Writes:
      - adjust_quantity()  (inventoryAdjustQuantities, always a delta)
      - set_field()        (metafieldsSet)

    Every call is a single blocking request. Transport failures surface as
    RemoteUnavailable, application errors as RemoteRejected; nothing is retried here.
    """

    # --- Meta/Infrastructure ---

    def __init__(self, settings: Optional[Settings] = None, session: Optional[requests.Session] = None,
                 safety_buffer_percentage: float = 0.25):
        settings = settings or get_settings()
        self.settings = settings
        self.store_domain = settings.SHOPIFY_SHOP_URL
        self.admin_api_token = settings.SHOPIFY_ADMIN_API_ACCESS_TOKEN
        self.api_version = settings.SHOPIFY_API_VERSION
        self.timeout = settings.SHOPIFY_REQUEST_TIMEOUT

        if not self.store_domain or not self.admin_api_token:
            raise ConfigurationError(
                "SHOPIFY_SHOP_URL and SHOPIFY_ADMIN_API_ACCESS_TOKEN must be set in .env or as environment variables."
            )

        domain = self.store_domain.replace("https://", "").rstrip("/")
        self.graphql_url = f"https://{domain}/admin/api/{self.api_version}/graphql.json"
        self.headers = {
            "X-Shopify-Access-Token": self.admin_api_token,
            "Content-Type": "application/json"
        }
        self.session = session or requests.Session()

        # Throttle status - updated from the cost extension of every response
        self.max_available_points = 1000.0
        self.currently_available_points = self.max_available_points
        self.restore_rate = 50.0
        self.safety_buffer_percentage = safety_buffer_percentage

        logger.info(f"ShopifyGraphQLClient initialized for {domain} (API Version: {self.api_version})")

    @property
    def safety_buffer_points(self) -> float:
        return self.max_available_points * self.safety_buffer_percentage

    def execute(self, query: str, variables: dict | None = None, estimated_cost: int = 10):
        return self._make_request(query, variables, estimated_cost)

    def _update_throttle_status(self, extensions):
        if extensions and "cost" in extensions:
            throttle = extensions["cost"].get("throttleStatus") or {}
            if throttle:
                self.max_available_points = float(throttle["maximumAvailable"])
                self.currently_available_points = float(throttle["currentlyAvailable"])
                self.restore_rate = float(throttle["restoreRate"])

    def _wait_for_budget(self, estimated_cost: int):
        required_points = estimated_cost + self.safety_buffer_points
        if self.currently_available_points >= required_points:
            return
        points_needed = required_points - self.currently_available_points
        wait_time = (points_needed / self.restore_rate) if self.restore_rate > 0 else 1.0
        wait_time = min(max(wait_time, 0) + 0.5, 10.0)
        logger.info(
            f"Rate limit approaching: {self.currently_available_points} points available, "
            f"need ~{required_points}. Waiting {wait_time:.2f}s"
        )
        time.sleep(wait_time)
        self.currently_available_points = min(
            self.max_available_points,
            self.currently_available_points + (self.restore_rate * wait_time),
        )

    def _make_request(self, query: str, variables: dict = None, estimated_cost: int = 10):
        """
        Makes a GraphQL request to Shopify and returns the ``data`` payload.
        estimated_cost: A rough estimate of the query cost to check against the safety buffer.
        """
        self._wait_for_budget(estimated_cost)

        payload = {"query": query}
        if variables:
            payload["variables"] = variables

        try:
            response = self.session.post(self.graphql_url, headers=self.headers, json=payload, timeout=self.timeout)
        except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as exc:
            raise RemoteUnavailable(f"Shopify request failed: {exc}") from exc
        except requests.exceptions.RequestException as exc:
            raise RemoteRejected(f"Shopify request could not be sent: {exc}") from exc

        if response.status_code == 429 or response.status_code >= 500:
            if response.status_code == 429:
                self.currently_available_points = 0
            raise RemoteUnavailable(f"Shopify returned HTTP {response.status_code}")
        if response.status_code >= 400:
            raise RemoteRejected(f"Shopify returned HTTP {response.status_code}: {response.text[:500]}")

        try:
            response_data = response.json()
        except (json.JSONDecodeError, ValueError):
            raise ShopifyGraphQLError([{"message": "Failed to decode JSON response", "response_text": response.text[:500]}])

        if "extensions" in response_data:
            self._update_throttle_status(response_data["extensions"])

        errors = response_data.get("errors")
        if errors:
            if any((error.get("extensions") or {}).get("code") == "THROTTLED" for error in errors):
                self.currently_available_points = 0
                raise RemoteUnavailable("Shopify throttled the request")
            raise ShopifyGraphQLError(errors)

        data = response_data.get("data")
        if data is None:
            raise ShopifyGraphQLError([{"message": "Response carried no data"}])
        return data

    @staticmethod
    def _raise_for_user_errors(result: Optional[Dict[str, Any]], operation: str) -> Dict[str, Any]:
        if result is None:
            raise ShopifyGraphQLError([{"message": f"{operation} returned no result"}])
        user_errors = result.get("userErrors") or []
        if user_errors:
            raise ShopifyGraphQLError(user_errors)
        return result

    def _metafield_variables(self) -> Dict[str, str]:
        settings = self.settings
        return {
            "namespace": settings.METAFIELD_NAMESPACE,
            "syncKey": settings.SYNC_KEY_FIELD,
            "thresholdKey": settings.ALERT_THRESHOLD_FIELD,
            "orderCountKey": settings.ORDER_COUNT_FIELD,
            "monitoringKey": settings.MONITORING_ENABLED_FIELD,
        }

    # --- Parsing ---

    @staticmethod
    def _metafield_value(node: Optional[Dict[str, Any]], alias: str) -> Optional[str]:
        field = (node or {}).get(alias)
        return field.get("value") if field else None

    @classmethod
    def _variant_from_node(cls, node: Dict[str, Any], product: Optional[Dict[str, Any]] = None) -> Variant:
        product = product or node.get("product") or {}
        image_url = ((node.get("image") or {}).get("url")
                     or (product.get("featuredImage") or {}).get("url"))
        return Variant(
            id=node["id"],
            sku=node.get("sku") or None,
            title=node.get("title") or "",
            quantity=node.get("inventoryQuantity") or 0,
            product_id=product.get("id"),
            product_title=product.get("title") or "",
            sync_key=(cls._metafield_value(node, "syncKey") or "").strip() or None,
            alert_threshold=parse_int_field(cls._metafield_value(node, "alertThreshold")),
            monitoring_enabled=parse_bool_field(cls._metafield_value(product, "monitoring")),
            historical_order_count=parse_int_field(cls._metafield_value(node, "orderCount")) or 0,
            inventory_item_id=(node.get("inventoryItem") or {}).get("id"),
            image_url=image_url,
            product_url=product.get("onlineStoreUrl"),
            product_handle=product.get("handle"),
        )

    # --- Public methods ---

    def get_variant_by_inventory_item(self, inventory_item_id) -> Optional[Variant]:
        """Fetch the variant that owns an inventory item, or None if there is none."""
        query = f"""
        query getVariantByInventoryItem($id: ID!, {METAFIELD_VARS_DEF}) {{
          inventoryItem(id: $id) {{
            variant {{ ...VariantFields }}
          }}
        }}
        {VARIANT_FIELDS_FRAGMENT}
        """
        variables = {"id": to_gid("InventoryItem", inventory_item_id), **self._metafield_variables()}
        data = self._make_request(query, variables, estimated_cost=5)
        node = (data.get("inventoryItem") or {}).get("variant")
        return self._variant_from_node(node) if node else None

    def search_variants(self, query_string: str, limit: int = 50) -> List[Variant]:
        """
        Free-text variant search. The search index lags behind direct lookups, so
        callers must filter the results themselves.
        """
        query = f"""
        query searchVariants($first: Int!, $query: String!, {METAFIELD_VARS_DEF}) {{
          productVariants(first: $first, query: $query) {{
            nodes {{ ...VariantFields }}
          }}
        }}
        {VARIANT_FIELDS_FRAGMENT}
        """
        variables = {"first": limit, "query": query_string, **self._metafield_variables()}
        data = self._make_request(query, variables, estimated_cost=max(10, limit // 2))
        nodes = (data.get("productVariants") or {}).get("nodes") or []
        return [self._variant_from_node(node) for node in nodes]

    def scan_monitored_variants(self, page_size: int = 250, variants_per_product: int = 100,
                                query_filter: Optional[str] = None) -> List[Variant]:
        """Single bounded page of products, flattened to their variants."""
        query = f"""
        query monitoredProducts($first: Int!, $variantsFirst: Int!, $query: String, {METAFIELD_VARS_DEF}) {{
          products(first: $first, query: $query) {{
            nodes {{
              id
              title
              handle
              onlineStoreUrl
              monitoring: metafield(namespace: $namespace, key: $monitoringKey) {{ value }}
              variants(first: $variantsFirst) {{
                nodes {{
                  id
                  title
                  sku
                  inventoryQuantity
                  inventoryItem {{ id }}
                  syncKey: metafield(namespace: $namespace, key: $syncKey) {{ value }}
                  alertThreshold: metafield(namespace: $namespace, key: $thresholdKey) {{ value }}
                  orderCount: metafield(namespace: $namespace, key: $orderCountKey) {{ value }}
                }}
              }}
            }}
          }}
        }}
        """
        variables = {
            "first": page_size,
            "variantsFirst": variants_per_product,
            "query": query_filter,
            **self._metafield_variables(),
        }
        data = self._make_request(query, variables, estimated_cost=500)
        products = (data.get("products") or {}).get("nodes")
        if products is None:
            raise ShopifyGraphQLError([{"message": "products missing from scan response"}])

        variants: List[Variant] = []
        for product in products:
            for node in (product.get("variants") or {}).get("nodes") or []:
                variants.append(self._variant_from_node(node, product))
        return variants

    def adjust_quantity(self, inventory_item_id, location_id, delta: int) -> Dict[str, Any]:
        """Apply an ``available`` quantity delta at one location."""
        mutation = """
        mutation inventoryAdjustQuantities($input: InventoryAdjustQuantitiesInput!) {
          inventoryAdjustQuantities(input: $input) {
            inventoryAdjustmentGroup {
              reason
              changes { name delta }
            }
            userErrors { field message }
          }
        }
        """
        variables = {
            "input": {
                "reason": "correction",
                "name": "available",
                "changes": [{
                    "delta": delta,
                    "inventoryItemId": to_gid("InventoryItem", inventory_item_id),
                    "locationId": to_gid("Location", location_id),
                }],
            }
        }
        data = self._make_request(mutation, variables, estimated_cost=10)
        return self._raise_for_user_errors(data.get("inventoryAdjustQuantities"), "inventoryAdjustQuantities")

    def get_field(self, owner_id: str, namespace: str, key: str) -> Optional[str]:
        query = """
        query getField($id: ID!, $namespace: String!, $key: String!) {
          node(id: $id) {
            ... on HasMetafields {
              metafield(namespace: $namespace, key: $key) { value }
            }
          }
        }
        """
        data = self._make_request(query, {"id": owner_id, "namespace": namespace, "key": key}, estimated_cost=2)
        node = data.get("node")
        if node is None:
            raise RemoteRejected(f"No resource found for {owner_id}")
        return self._metafield_value(node, "metafield")

    def set_field(self, owner_id: str, namespace: str, key: str, value,
                  type_name: str = "single_line_text_field") -> Dict[str, Any]:
        return self.set_metafields([{
            "ownerId": owner_id,
            "namespace": namespace,
            "key": key,
            "value": str(value),
            "type": type_name,
        }])

    def set_metafields(self, metafields: List[Dict[str, Any]]) -> Dict[str, Any]:
        mutation = """
        mutation metafieldsSet($metafields: [MetafieldsSetInput!]!) {
          metafieldsSet(metafields: $metafields) {
            metafields { id namespace key value type }
            userErrors { field message code }
          }
        }
        """
        variables = {"metafields": metafields}
        data = self._make_request(mutation, variables, estimated_cost=10)
        return self._raise_for_user_errors(data.get("metafieldsSet"), "metafieldsSet")
