"""Pytest fixtures for testing."""

import pytest

from aicore.models import Credential, InvocationConfig, InvocationContext, Message, Providers
from aicore.providers import ProviderRegistry
from aicore.settings import Settings

from tests.fakes import FakeAdapter, FakeLanguageModel, InstrumentedTransport


@pytest.fixture
def settings() -> Settings:
    """Settings with smoothing delay disabled and diagnostics off."""
    return Settings(debug_ai=False, smooth_stream_delay_ms=0)


@pytest.fixture
def transport() -> InstrumentedTransport:
    return InstrumentedTransport()


@pytest.fixture
def fake_model() -> FakeLanguageModel:
    return FakeLanguageModel()


@pytest.fixture
def registry(fake_model: FakeLanguageModel) -> ProviderRegistry:
    """Registry serving the fake model for every built-in provider id."""
    registry = ProviderRegistry()
    for provider in Providers:
        registry.register(FakeAdapter(provider.value, fake_model))
    return registry


@pytest.fixture
def context() -> InvocationContext:
    return InvocationContext(correlation_id="test-correlation-id")


@pytest.fixture
def openai_credential() -> Credential:
    return Credential(provider=Providers.openai, token="sk-test")


@pytest.fixture
def config() -> InvocationConfig:
    return InvocationConfig(model="gpt-4o", temperature=0.7)


@pytest.fixture
def messages() -> list[Message]:
    return [
        Message(role="system", content="You are helpful."),
        Message(role="user", content="Hello"),
    ]
