from __future__ import annotations

import pytest
from ferry.errors import ConfigurationError
from ferry.models.platforms import Platform
from ferry.protocols.plugins import Extractor, Loader, Transformer
from ferry.registry import PluginRegistry, default_registry
from ferry.transform import ChatGPTToClaudeTransformer, ClaudeToChatGPTTransformer

from tests.fakes import FakeExtractor, FakeLoader
from tests.helpers import make_bundle


class TestPluginRegistry:
    def test_default_registry_has_both_transformers(self) -> None:
        registry = default_registry()
        assert set(registry.list_transformers()) == {
            (Platform.chatgpt, Platform.claude),
            (Platform.claude, Platform.chatgpt),
        }
        assert isinstance(registry.get_transformer("chatgpt", "claude"), ChatGPTToClaudeTransformer)
        assert isinstance(
            registry.get_transformer(Platform.claude, Platform.chatgpt), ClaudeToChatGPTTransformer
        )

    def test_missing_lookups_raise_configuration_error(self) -> None:
        registry = PluginRegistry()
        with pytest.raises(ConfigurationError, match="No extractor"):
            registry.get_extractor(Platform.chatgpt)
        with pytest.raises(ConfigurationError, match="No loader"):
            registry.get_loader(Platform.claude)
        with pytest.raises(ConfigurationError, match="No transformer"):
            registry.get_transformer(Platform.gemini, Platform.claude)

    def test_factories_are_called_per_lookup(self) -> None:
        registry = PluginRegistry()
        registry.register_loader(Platform.claude, FakeLoader)
        first = registry.get_loader(Platform.claude)
        second = registry.get_loader(Platform.claude)
        assert first is not second
        assert registry.has_loader("claude")
        assert registry.list_loaders() == [Platform.claude]

    def test_plugins_satisfy_protocols(self) -> None:
        extractor = FakeExtractor(make_bundle())
        assert isinstance(extractor, Extractor)
        assert isinstance(FakeLoader(), Loader)
        assert isinstance(ChatGPTToClaudeTransformer(), Transformer)

    def test_registration_replaces_previous_factory(self) -> None:
        registry = PluginRegistry()
        bundle = make_bundle()
        first = FakeExtractor(bundle)
        second = FakeExtractor(bundle)
        registry.register_extractor(Platform.chatgpt, lambda: first)
        registry.register_extractor(Platform.chatgpt, lambda: second)
        assert registry.get_extractor(Platform.chatgpt) is second
        assert not registry.has_extractor(Platform.claude)
