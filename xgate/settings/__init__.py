"""Client settings loading."""

from .app import XGateSettings, get_settings


__all__ = ["XGateSettings", "get_settings"]
