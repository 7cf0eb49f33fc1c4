"""
Core module exports.
"""
from .enums import (
    WebhookTopic,
    OrderKind,
    ReportType,
)

from .exceptions import (
    BaseServiceError,
    AuthenticationError,
    MalformedPayload,
    ConfigurationError,
    RemoteServiceError,
    RemoteUnavailable,
    RemoteRejected,
    ShopifyGraphQLError,
    NotificationDeliveryError,
    StateStoreError,
)
