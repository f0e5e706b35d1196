"""
Pytest configuration for the Sprite Write relay tests.
"""
import os

import pytest

from multibaas_client import MultiBaasError
from spritewrite_config import Config, MultiBaasConfig
from spritewrite_server import create_app
from tests.helpers import HSM_ADDRESS, FakeMintClient


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep SW_* variables from the developer's shell out of every test."""
    for name in list(os.environ):
        if name.upper().startswith("SW_"):
            monkeypatch.delenv(name)


@pytest.fixture
def config():
    return Config(multibaas=MultiBaasConfig(
        endpoint="https://example.multibaas.com",
        api_key="test-key",
        hsm_address=HSM_ADDRESS,
    ))


@pytest.fixture
def mint_client():
    return FakeMintClient()


@pytest.fixture
def failing_client():
    return FakeMintClient(error=MultiBaasError("chain rejected transaction", status_code=500))


@pytest.fixture
def app(config, mint_client):
    return create_app(config, client=mint_client)


@pytest.fixture
def client(app):
    return app.test_client()
