"""Configuration module."""

# Import settings
from botmakers.config.settings import Settings, get_settings

# Import integration catalog
from botmakers.config.integration_catalog import (
    CATEGORIES,
    INTEGRATION_CATALOG,
    IntegrationDefinition,
    IntegrationMode,
    get_integration_definition,
    get_integration_definitions,
)

__all__ = [
    # Settings
    "Settings",
    "get_settings",
    # Integration catalog
    "CATEGORIES",
    "INTEGRATION_CATALOG",
    "IntegrationDefinition",
    "IntegrationMode",
    "get_integration_definition",
    "get_integration_definitions",
]
