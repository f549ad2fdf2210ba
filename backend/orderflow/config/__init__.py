"""Configuration loaders."""

from orderflow.config.fulfillment import (
    FulfillmentSettings,
    get_fulfillment_settings,
    reset_fulfillment_settings,
)

__all__ = [
    "FulfillmentSettings",
    "get_fulfillment_settings",
    "reset_fulfillment_settings",
]
