from ferry.protocols.plugins import Extractor, Loader, Transformer

__all__ = [
    "Extractor",
    "Loader",
    "Transformer",
]
