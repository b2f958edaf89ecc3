"""Plugin registry for extractors, transformers and loaders.

A registry is an explicit object handed to the orchestrator. Lookups that
miss raise :class:`ConfigurationError`; registration never validates that a
pair is usable, so a missing transformer surfaces when a migration runs.
"""

from __future__ import annotations

from collections.abc import Callable

from ferry.errors import ConfigurationError
from ferry.models.platforms import Platform
from ferry.protocols.plugins import Extractor, Loader, Transformer
from ferry.transform import ChatGPTToClaudeTransformer, ClaudeToChatGPTTransformer

ExtractorFactory = Callable[[], Extractor]
TransformerFactory = Callable[[], Transformer]
LoaderFactory = Callable[[], Loader]


class PluginRegistry:
    """Factories keyed by platform (extractors, loaders) or ordered pair (transformers)."""

    def __init__(self) -> None:
        self._extractors: dict[Platform, ExtractorFactory] = {}
        self._transformers: dict[tuple[Platform, Platform], TransformerFactory] = {}
        self._loaders: dict[Platform, LoaderFactory] = {}

    # ------------------------------------------------------------------
    # Extractors
    # ------------------------------------------------------------------

    def register_extractor(self, platform: Platform | str, factory: ExtractorFactory) -> None:
        self._extractors[Platform(platform)] = factory

    def get_extractor(self, platform: Platform | str) -> Extractor:
        factory = self._extractors.get(Platform(platform))
        if factory is None:
            raise ConfigurationError(f"No extractor registered for platform: {platform}")
        return factory()

    def has_extractor(self, platform: Platform | str) -> bool:
        return Platform(platform) in self._extractors

    def list_extractors(self) -> list[Platform]:
        return list(self._extractors)

    # ------------------------------------------------------------------
    # Transformers
    # ------------------------------------------------------------------

    def register_transformer(
        self, source: Platform | str, target: Platform | str, factory: TransformerFactory
    ) -> None:
        self._transformers[(Platform(source), Platform(target))] = factory

    def get_transformer(self, source: Platform | str, target: Platform | str) -> Transformer:
        factory = self._transformers.get((Platform(source), Platform(target)))
        if factory is None:
            raise ConfigurationError(f"No transformer registered for {source} -> {target}")
        return factory()

    def has_transformer(self, source: Platform | str, target: Platform | str) -> bool:
        return (Platform(source), Platform(target)) in self._transformers

    def list_transformers(self) -> list[tuple[Platform, Platform]]:
        return list(self._transformers)

    # ------------------------------------------------------------------
    # Loaders
    # ------------------------------------------------------------------

    def register_loader(self, platform: Platform | str, factory: LoaderFactory) -> None:
        self._loaders[Platform(platform)] = factory

    def get_loader(self, platform: Platform | str) -> Loader:
        factory = self._loaders.get(Platform(platform))
        if factory is None:
            raise ConfigurationError(f"No loader registered for platform: {platform}")
        return factory()

    def has_loader(self, platform: Platform | str) -> bool:
        return Platform(platform) in self._loaders

    def list_loaders(self) -> list[Platform]:
        return list(self._loaders)


def default_registry() -> PluginRegistry:
    """A registry with the built-in transformers; extractors and loaders are added by callers."""
    registry = PluginRegistry()
    registry.register_transformer(Platform.chatgpt, Platform.claude, ChatGPTToClaudeTransformer)
    registry.register_transformer(Platform.claude, Platform.chatgpt, ClaudeToChatGPTTransformer)
    return registry


__all__ = [
    "ExtractorFactory",
    "LoaderFactory",
    "PluginRegistry",
    "TransformerFactory",
    "default_registry",
]
