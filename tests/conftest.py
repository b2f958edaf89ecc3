from __future__ import annotations

from pathlib import Path

import pytest
from ferry.config import FerrySettings
from ferry.models.bundle import MigrationBundle
from ferry.models.platforms import Platform
from ferry.registry import PluginRegistry, default_registry

from tests.fakes import FakeExtractor, FakeLoader
from tests.helpers import make_bundle


@pytest.fixture
def work_root(tmp_path: Path) -> Path:
    return tmp_path / "migrations"


@pytest.fixture
def settings(work_root: Path) -> FerrySettings:
    return FerrySettings(work_root=work_root)


@pytest.fixture
def chatgpt_bundle() -> MigrationBundle:
    return make_bundle(Platform.chatgpt, memories=5, conversations=2, files=[("notes.txt", 2048)])


@pytest.fixture
def extractor(chatgpt_bundle: MigrationBundle) -> FakeExtractor:
    return FakeExtractor(chatgpt_bundle)


@pytest.fixture
def loader() -> FakeLoader:
    return FakeLoader(Platform.claude)


@pytest.fixture
def registry(extractor: FakeExtractor, loader: FakeLoader) -> PluginRegistry:
    registry = default_registry()
    registry.register_extractor(Platform.chatgpt, lambda: extractor)
    registry.register_loader(Platform.claude, lambda: loader)
    return registry
