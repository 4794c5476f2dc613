"""Application services."""

from .fulfillment import FulfillmentService, get_fulfillment_service, reset_fulfillment_state

__all__ = [
    "FulfillmentService",
    "get_fulfillment_service",
    "reset_fulfillment_state",
]
