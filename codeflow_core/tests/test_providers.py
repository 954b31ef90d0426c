import pytest

from codeflow_core.providers import create_provider
from codeflow_core.providers.openai_client import OpenAICompatibleClient


class DummySettings:
    default_provider = "gemini"
    http_timeout = 1.0
    openai_api_key = "sk-openai-123"
    openai_base_url = "https://api.openai.com/v1"
    gemini_api_key = "gemini-key-123"
    gemini_base_url = "https://generativelanguage.googleapis.com/v1beta/openai"


def test_create_provider_default(monkeypatch):
    monkeypatch.setattr("codeflow_core.providers.settings", DummySettings())
    provider = create_provider()
    assert isinstance(provider, OpenAICompatibleClient)
    assert provider.name == "gemini"


def test_create_provider_explicit(monkeypatch):
    monkeypatch.setattr("codeflow_core.providers.settings", DummySettings())
    assert create_provider("OpenAI").name == "openai"


def test_create_provider_unknown(monkeypatch):
    monkeypatch.setattr("codeflow_core.providers.settings", DummySettings())
    with pytest.raises(KeyError):
        create_provider("kimi")
