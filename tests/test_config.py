"""
Tests for environment configuration.

Run with: pytest tests/test_config.py -v
"""
import pytest

from veilbridge.config import Config
from veilbridge.errors import ConfigError

ENV_VARS = (
    "PORT", "DATABASE_URL", "INGRESS_ADDRESS", "VAULT_ADDRESS", "OWNER_PRIVATE_KEY",
    "POLL_INTERVAL", "MAX_RETRIES", "RETRY_DELAY", "BLOCK_RANGE", "DESTINATION_DOMAIN",
    "INDEXER_API_URL", "PENDING_MAX_ATTEMPTS",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    config = Config.from_env()

    assert config.poll_interval_ms == 10000
    assert config.poll_interval == 10.0
    assert config.max_retries == 3
    assert config.retry_delay == 5.0
    assert config.destination_domain == 23295
    assert config.indexer_api_url is None
    assert config.pending_max_attempts == 12


def test_reads_processor_settings(monkeypatch):
    monkeypatch.setenv("VAULT_ADDRESS", "0x" + "11" * 20)
    monkeypatch.setenv("OWNER_PRIVATE_KEY", "0x" + "22" * 32)
    monkeypatch.setenv("POLL_INTERVAL", "2500")
    monkeypatch.setenv("MAX_RETRIES", "5")
    monkeypatch.setenv("RETRY_DELAY", "0")

    config = Config.from_env()
    config.validate_processor()

    assert config.poll_interval == 2.5
    assert config.max_retries == 5
    assert config.retry_delay == 0


def test_non_integer_is_a_config_error(monkeypatch):
    monkeypatch.setenv("MAX_RETRIES", "three")

    with pytest.raises(ConfigError, match="MAX_RETRIES"):
        Config.from_env()


@pytest.mark.parametrize("missing", ["VAULT_ADDRESS", "OWNER_PRIVATE_KEY"])
def test_processor_requires_vault_and_key(monkeypatch, missing):
    monkeypatch.setenv("VAULT_ADDRESS", "0x" + "11" * 20)
    monkeypatch.setenv("OWNER_PRIVATE_KEY", "0x" + "22" * 32)
    monkeypatch.delenv(missing)

    with pytest.raises(ConfigError, match=missing):
        Config.from_env().validate_processor()


def test_processor_rejects_zero_retries():
    config = Config(vault_address="0x" + "11" * 20, owner_private_key="0x" + "22" * 32, max_retries=0)

    with pytest.raises(ConfigError):
        config.validate_processor()


def test_indexer_requires_both_contracts(monkeypatch):
    monkeypatch.setenv("VAULT_ADDRESS", "0x" + "11" * 20)

    with pytest.raises(ConfigError, match="INGRESS_ADDRESS"):
        Config.from_env().validate_indexer()

    monkeypatch.setenv("INGRESS_ADDRESS", "0x" + "33" * 20)
    Config.from_env().validate_indexer()


def test_pending_attempt_cap(monkeypatch):
    monkeypatch.setenv("INGRESS_ADDRESS", "0x" + "33" * 20)
    monkeypatch.setenv("VAULT_ADDRESS", "0x" + "11" * 20)
    monkeypatch.setenv("PENDING_MAX_ATTEMPTS", "4")
    assert Config.from_env().pending_max_attempts == 4

    monkeypatch.setenv("PENDING_MAX_ATTEMPTS", "0")
    with pytest.raises(ConfigError, match="PENDING_MAX_ATTEMPTS"):
        Config.from_env().validate_indexer()
