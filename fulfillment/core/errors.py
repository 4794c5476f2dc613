from __future__ import annotations


class FulfillmentError(RuntimeError):
    """Base class for failures raised by the fulfillment core."""


class SinkError(FulfillmentError):
    """Raised when a match record could not be appended to the log sink."""


class ResourceCreationFailure(FulfillmentError):
    """Raised when a worker unit could not be spawned."""


class CatalogLoadError(FulfillmentError):
    """Raised when the catalog root cannot be read."""


class OrderIntakeError(FulfillmentError):
    """Raised when no order request can be read from the input stream."""
