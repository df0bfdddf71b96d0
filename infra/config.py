"""
Infrastructure configuration system.

Environment-based backend selection with sensible defaults.
The document store defaults to a local SQLite file; WhatsApp and push
default to the real providers and need credentials.
"""

import os
from typing import Optional, Literal
from dataclasses import dataclass

from commerce.checkout import DEFAULT_RECOVERY_URL
from commerce.phone import DEFAULT_COUNTRY_CODE
from notifications import EXPO_PUSH_URL, ExpoPushProvider, PushProvider, StubPushProvider
from storage import DocumentStore, InMemoryDocumentStore, SQLiteDocumentStore
from transport.whatsapp.security import DEFAULT_VERIFY_TOKEN
from transport.whatsapp.sender import CloudApiMessageGateway, MessageGateway, StubMessageGateway


StoreBackendType = Literal["memory", "sqlite", "firestore"]
WhatsAppBackendType = Literal["cloud", "stub"]
PushBackendType = Literal["expo", "stub"]


class ConfigurationError(Exception):
    """Required configuration is missing or invalid."""
    pass


@dataclass
class InfraConfig:
    """Infrastructure configuration from environment."""

    # Document store
    store_backend: StoreBackendType
    sqlite_db_path: str
    firebase_service_account: Optional[str]   # JSON string; ADC when unset

    # WhatsApp
    whatsapp_backend: WhatsAppBackendType
    whatsapp_access_token: Optional[str]
    whatsapp_phone_number_id: Optional[str]
    whatsapp_api_version: str
    whatsapp_template_language: str
    whatsapp_verify_token: str
    whatsapp_app_secret: Optional[str]

    # Push
    push_backend: PushBackendType
    expo_push_url: str
    expo_access_token: Optional[str]
    push_batch_size: int

    # Commerce
    default_country_code: str = DEFAULT_COUNTRY_CODE
    cart_recovery_fallback_url: str = DEFAULT_RECOVERY_URL
    payu_salt: str = ""

    @classmethod
    def from_env(cls) -> "InfraConfig":
        """
        Load configuration from environment variables.

        Defaults:
        - Store: sqlite (./commerce.db)
        - WhatsApp: cloud (credentials required)
        - Push: expo
        """
        return cls(
            # Store Configuration
            store_backend=os.getenv("STORE_BACKEND", "sqlite"),  # type: ignore
            sqlite_db_path=os.getenv("SQLITE_DB_PATH", "./commerce.db"),
            firebase_service_account=os.getenv("FIREBASE_SERVICE_ACCOUNT") or None,

            # WhatsApp Configuration
            whatsapp_backend=os.getenv("WHATSAPP_BACKEND", "cloud"),  # type: ignore
            whatsapp_access_token=os.getenv("WHATSAPP_ACCESS_TOKEN") or None,
            whatsapp_phone_number_id=os.getenv("WHATSAPP_PHONE_NUMBER_ID") or None,
            whatsapp_api_version=os.getenv("WHATSAPP_API_VERSION", "v17.0"),
            whatsapp_template_language=os.getenv("WHATSAPP_TEMPLATE_LANGUAGE", "en_US"),
            whatsapp_verify_token=os.getenv("WHATSAPP_VERIFY_TOKEN", DEFAULT_VERIFY_TOKEN),
            whatsapp_app_secret=os.getenv("WHATSAPP_APP_SECRET") or None,

            # Push Configuration
            push_backend=os.getenv("PUSH_BACKEND", "expo"),  # type: ignore
            expo_push_url=os.getenv("EXPO_PUSH_URL", EXPO_PUSH_URL),
            expo_access_token=os.getenv("EXPO_ACCESS_TOKEN") or None,
            push_batch_size=int(os.getenv("PUSH_BATCH_SIZE", "100")),

            # Commerce Configuration
            default_country_code=os.getenv("DEFAULT_COUNTRY_CODE", DEFAULT_COUNTRY_CODE),
            cart_recovery_fallback_url=os.getenv("CART_RECOVERY_FALLBACK_URL", DEFAULT_RECOVERY_URL),
            payu_salt=os.getenv("PAYU_SALT", ""),
        )

    def create_document_store(self) -> DocumentStore:
        """Create document store instance based on configuration."""
        if self.store_backend == "firestore":
            # firebase-admin is only imported when selected
            from storage.firestore import FirestoreDocumentStore

            return FirestoreDocumentStore(service_account_json=self.firebase_service_account)
        elif self.store_backend == "memory":
            return InMemoryDocumentStore()
        else:
            # Default to sqlite
            return SQLiteDocumentStore(db_path=self.sqlite_db_path)

    def missing_credentials(self) -> list[str]:
        """Environment variable names the selected WhatsApp backend needs but lacks."""
        if self.whatsapp_backend == "stub":
            return []
        return [
            name
            for name, value in (
                ("WHATSAPP_ACCESS_TOKEN", self.whatsapp_access_token),
                ("WHATSAPP_PHONE_NUMBER_ID", self.whatsapp_phone_number_id),
            )
            if not value
        ]

    def create_message_gateway(self) -> MessageGateway:
        """
        Create WhatsApp gateway instance based on configuration.

        Raises:
            ConfigurationError: Cloud backend without credentials
        """
        if self.whatsapp_backend == "stub":
            return StubMessageGateway()

        missing = self.missing_credentials()
        if missing:
            raise ConfigurationError(f"Missing WhatsApp credentials: {', '.join(missing)}")

        return CloudApiMessageGateway(
            access_token=self.whatsapp_access_token,
            phone_number_id=self.whatsapp_phone_number_id,
            api_version=self.whatsapp_api_version,
            default_language=self.whatsapp_template_language,
        )

    def create_push_provider(self) -> PushProvider:
        """Create push provider instance based on configuration."""
        if self.push_backend == "stub":
            return StubPushProvider(max_batch_size=self.push_batch_size)
        return ExpoPushProvider(url=self.expo_push_url, access_token=self.expo_access_token)


def get_config() -> InfraConfig:
    """Get global infrastructure configuration."""
    return InfraConfig.from_env()
