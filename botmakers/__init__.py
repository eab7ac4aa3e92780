"""BotMakers connection broker: credential resolution and connection health for integrations."""

__version__ = "0.1.0"
