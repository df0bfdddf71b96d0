"""
Infrastructure module exports.

Configuration and bootstrap for the store, WhatsApp and push backends.
"""

from .config import (
    ConfigurationError,
    InfraConfig,
    get_config,
    StoreBackendType,
    WhatsAppBackendType,
    PushBackendType,
)
from .bootstrap import InfraBootstrap

__all__ = [
    "ConfigurationError",
    "InfraConfig",
    "get_config",
    "StoreBackendType",
    "WhatsAppBackendType",
    "PushBackendType",
    "InfraBootstrap",
]
