"""
Image sources

- LocalSource: {base_dir}/{identifier}.tif per configured prefix
- ProxySource: base64url-encoded remote URIs through a content-addressed
  on-disk cache (sources.cache)
- SourceRegistry: prefix -> Source, built once from config

Usage:
    from sources import SourceRegistry
    registry = SourceRegistry.from_config({"local": {"test": "data/images"}})
    image = registry.fetch("test", "page-001")
"""
from .local import LocalSource
from .proxy import ProxySource, decode_identifier, encode_identifier
from .registry import Source, SourceRegistry

__all__ = [
    "LocalSource",
    "ProxySource",
    "Source",
    "SourceRegistry",
    "decode_identifier",
    "encode_identifier",
]
