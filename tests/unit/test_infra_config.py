"""
Infrastructure configuration and bootstrap tests.
"""

from unittest.mock import patch

import pytest

from config import Config
from infra import ConfigurationError, InfraBootstrap, InfraConfig
from notifications import ExpoPushProvider, StubPushProvider
from storage import InMemoryDocumentStore, SQLiteDocumentStore
from transport.whatsapp.sender import CloudApiMessageGateway, StubMessageGateway


class TestInfraConfig:

    def test_defaults(self):
        with patch.dict("os.environ", {}, clear=True):
            config = InfraConfig.from_env()

        assert config.store_backend == "sqlite"
        assert config.whatsapp_backend == "cloud"
        assert config.whatsapp_api_version == "v17.0"
        assert config.whatsapp_template_language == "en_US"
        assert config.push_backend == "expo"
        assert config.push_batch_size == 100
        assert config.default_country_code == "91"

    def test_memory_store(self, config_factory):
        assert isinstance(config_factory().create_document_store(), InMemoryDocumentStore)

    def test_sqlite_store(self, config_factory, tmp_path):
        config = config_factory(store_backend="sqlite", sqlite_db_path=str(tmp_path / "c.db"))
        assert isinstance(config.create_document_store(), SQLiteDocumentStore)

    def test_cloud_gateway_requires_credentials(self, config_factory):
        with pytest.raises(ConfigurationError) as exc_info:
            config_factory(whatsapp_backend="cloud", whatsapp_phone_number_id="123").create_message_gateway()

        assert "WHATSAPP_ACCESS_TOKEN" in str(exc_info.value)
        assert "WHATSAPP_PHONE_NUMBER_ID" not in str(exc_info.value)

    def test_cloud_gateway(self, config_factory):
        gateway = config_factory(
            whatsapp_backend="cloud",
            whatsapp_access_token="tok",
            whatsapp_phone_number_id="123",
            whatsapp_api_version="v19.0",
        ).create_message_gateway()

        assert isinstance(gateway, CloudApiMessageGateway)
        assert gateway.endpoint == "https://graph.facebook.com/v19.0/123/messages"

    def test_missing_credentials(self, config_factory):
        assert config_factory().missing_credentials() == []
        assert config_factory(whatsapp_backend="cloud").missing_credentials() == [
            "WHATSAPP_ACCESS_TOKEN",
            "WHATSAPP_PHONE_NUMBER_ID",
        ]

    def test_stub_backends(self, config_factory):
        config = config_factory()
        assert isinstance(config.create_message_gateway(), StubMessageGateway)
        assert isinstance(config.create_push_provider(), StubPushProvider)

    def test_expo_provider(self, config_factory):
        assert isinstance(config_factory(push_backend="expo").create_push_provider(), ExpoPushProvider)


class TestInfraBootstrap:

    def test_wires_services(self, config_factory):
        bootstrap = InfraBootstrap(config_factory())

        assert bootstrap.ready
        assert bootstrap.require() is bootstrap
        assert bootstrap.handler is not None
        assert bootstrap.lifecycle.cart_recorder is bootstrap.cart_recorder

    def test_keeps_configuration_error(self, config_factory):
        bootstrap = InfraBootstrap(config_factory(whatsapp_backend="cloud"))

        assert not bootstrap.ready
        assert bootstrap.handler is None
        with pytest.raises(ConfigurationError):
            bootstrap.require()

    def test_singleton(self, config_factory):
        InfraBootstrap.reset()
        try:
            first = InfraBootstrap.get_instance(config_factory())
            assert InfraBootstrap.get_instance() is first
        finally:
            InfraBootstrap.reset()


class TestAppConfig:

    def test_validate_reads_backend_credentials(self):
        env = {
            "WHATSAPP_BACKEND": "cloud",
            "WHATSAPP_ACCESS_TOKEN": "tok",
            "WHATSAPP_PHONE_NUMBER_ID": "123",
        }
        with patch.dict("os.environ", env, clear=True):
            assert Config.validate()

    def test_validate_reports_missing_credentials(self, capsys):
        with patch.dict("os.environ", {"WHATSAPP_BACKEND": "cloud"}, clear=True):
            assert not Config.validate()

        assert "WHATSAPP_ACCESS_TOKEN" in capsys.readouterr().out

    def test_stub_backend_needs_no_credentials(self):
        with patch.dict("os.environ", {"WHATSAPP_BACKEND": "stub"}, clear=True):
            assert Config.validate()
