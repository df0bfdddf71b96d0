"""
Infrastructure initialization and bootstrap.

Singleton pattern for creating the store, gateways and commerce services
from configuration.
"""

import logging
from typing import Optional

from commerce.checkout import CartRecorder
from commerce.events import CommerceEventHandler
from commerce.lifecycle import OrderLifecycle
from commerce.payments import PaymentRecorder
from commerce.repositories import CheckoutRepository, OrderRepository
from notifications import NotificationFanout, PushProvider
from storage import DocumentStore
from transport.whatsapp.message_log import MessageLog
from transport.whatsapp.messenger import WhatsAppMessenger
from transport.whatsapp.sender import MessageGateway

from .config import ConfigurationError, InfraConfig, get_config

logger = logging.getLogger(__name__)


class InfraBootstrap:
    """
    Bootstrap infrastructure based on configuration.

    Singleton pattern - single instance per process.

    A configuration error does not stop construction: it is kept in
    startup_error so health probes can report it and request handlers
    can answer 500 through require().
    """

    _instance: Optional["InfraBootstrap"] = None

    def __init__(
        self,
        config: Optional[InfraConfig] = None,
        store: Optional[DocumentStore] = None,
        gateway: Optional[MessageGateway] = None,
        push_provider: Optional[PushProvider] = None,
    ):
        """Initialize bootstrap with configuration (explicit backends win)."""
        self.config = config or get_config()
        self.startup_error: Optional[ConfigurationError] = None

        self.store = store or self.config.create_document_store()
        self.push_provider = push_provider or self.config.create_push_provider()
        self.fanout = NotificationFanout(self.store, self.push_provider, self.config.push_batch_size)

        self.orders = OrderRepository(self.store)
        self.checkouts = CheckoutRepository(self.store)
        self.message_log = MessageLog(self.store, self.config.default_country_code)
        self.payments = PaymentRecorder(self.store, self.orders, self.config.payu_salt)

        self.gateway: Optional[MessageGateway] = gateway
        self.messenger: Optional[WhatsAppMessenger] = None
        self.cart_recorder: Optional[CartRecorder] = None
        self.lifecycle: Optional[OrderLifecycle] = None
        self.handler: Optional[CommerceEventHandler] = None

        try:
            if self.gateway is None:
                self.gateway = self.config.create_message_gateway()
        except ConfigurationError as e:
            logger.error(f"Configuration error: {e}")
            self.startup_error = e
            return

        self.messenger = WhatsAppMessenger(self.gateway, self.message_log)
        self.cart_recorder = CartRecorder(
            self.checkouts,
            self.messenger,
            notify=self.fanout.effect,
            recovery_url=self.config.cart_recovery_fallback_url,
            country_code=self.config.default_country_code,
        )
        self.lifecycle = OrderLifecycle(
            self.orders,
            self.messenger,
            self.cart_recorder,
            notify=self.fanout.effect,
            country_code=self.config.default_country_code,
        )
        self.handler = CommerceEventHandler(
            self.lifecycle,
            self.cart_recorder,
            self.message_log,
            country_code=self.config.default_country_code,
        )

    @classmethod
    def get_instance(cls, config: Optional[InfraConfig] = None) -> "InfraBootstrap":
        """
        Get singleton instance.

        Args:
            config: Optional custom configuration (only used first time)

        Returns:
            Singleton InfraBootstrap instance
        """
        if cls._instance is None:
            cls._instance = cls(config)
        return cls._instance

    @classmethod
    def reset(cls):
        """Reset singleton (for testing)."""
        cls._instance = None

    @property
    def ready(self) -> bool:
        return self.startup_error is None

    def require(self) -> "InfraBootstrap":
        """
        Raises:
            ConfigurationError: If startup configuration failed
        """
        if self.startup_error is not None:
            raise self.startup_error
        return self

    async def close(self) -> None:
        await self.store.close()

    def __repr__(self) -> str:
        """String representation showing configured backends."""
        return (
            f"InfraBootstrap(store={type(self.store).__name__}, "
            f"whatsapp={type(self.gateway).__name__ if self.gateway else 'unconfigured'}, "
            f"push={type(self.push_provider).__name__})"
        )
