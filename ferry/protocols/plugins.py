from __future__ import annotations

from typing import Protocol, runtime_checkable

from ferry.models.bundle import MigrationBundle
from ferry.models.compatibility import CompatibilityReport
from ferry.models.migration import ExtractOptions, LoadOptions, LoadResult, TransformOptions
from ferry.models.platforms import Platform


@runtime_checkable
class Extractor(Protocol):
    platform: Platform
    version: str

    async def can_extract(self) -> bool: ...

    async def extract(self, options: ExtractOptions) -> MigrationBundle: ...


@runtime_checkable
class Transformer(Protocol):
    source: Platform
    target: Platform
    version: str

    async def analyze(self, bundle: MigrationBundle) -> CompatibilityReport: ...

    async def transform(
        self, bundle: MigrationBundle, options: TransformOptions
    ) -> MigrationBundle: ...


@runtime_checkable
class Loader(Protocol):
    platform: Platform
    version: str

    async def can_load(self, bundle: MigrationBundle) -> bool: ...

    async def load(self, bundle: MigrationBundle, options: LoadOptions) -> LoadResult: ...


__all__ = ["Extractor", "Loader", "Transformer"]
