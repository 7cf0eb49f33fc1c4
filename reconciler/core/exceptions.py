class BaseServiceError(Exception):
    """Base exception for all service-related errors."""
    pass

class AuthenticationError(BaseServiceError):
    """Raised when a webhook signature is missing or does not match."""
    pass

class MalformedPayload(BaseServiceError):
    """Raised when a webhook body cannot be parsed into an event."""
    pass

class ConfigurationError(BaseServiceError):
    """Raised when a required setting or event attribute is missing."""
    pass

class RemoteServiceError(BaseServiceError):
    """Base exception for failures talking to an external service."""
    pass

class RemoteUnavailable(RemoteServiceError):
    """Raised on transient failures (timeout, connection error, 5xx)."""
    pass

class RemoteRejected(RemoteServiceError):
    """Raised when a remote service answers with an application-level error."""
    pass

class ShopifyGraphQLError(RemoteRejected):
    """Raised when a GraphQL response carries errors or userErrors."""
    def __init__(self, errors):
        self.errors = errors
        message = "GraphQL query failed with errors:\n"
        for error in errors:
            msg = error.get('message', 'Unknown error')
            path = error.get('path') or error.get('field') or []
            message += f"- Message: {msg}, Path: {path}\n"
        super().__init__(message)

class NotificationDeliveryError(RemoteUnavailable):
    """Raised when the email provider fails to accept a message."""
    pass

class StateStoreError(RemoteUnavailable):
    """Raised when the durable store cannot be reached."""
    pass
