"""
Configuration models and loading.
"""

from .models import (
    BurrowConfig, ConnectionSettings, AuthSettings, TrustSettings,
    SessionSettings, ForwardSettings, LoggingConfig
)
from .loader import ConfigLoader

__all__ = [
    "BurrowConfig",
    "ConnectionSettings",
    "AuthSettings",
    "TrustSettings",
    "SessionSettings",
    "ForwardSettings",
    "LoggingConfig",
    "ConfigLoader",
]
