"""
Unit tests for SourceRegistry
"""

import threading
import pytest
import numpy as np
import os
import sys
from unittest.mock import Mock

# Add project root to path
project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.append(project_root)

from common.errors import NotFound
from common.types import DecodedImage
from sources.local import LocalSource
from sources.proxy import ProxySource
from sources.registry import SourceRegistry


class _StubSource:
    kind = "stub"

    def __init__(self, wait: threading.Event = None):
        self.wait = wait
        self.entered = threading.Event()
        self.closed = 0

    def get_image(self, prefix, identifier):
        self.entered.set()
        if self.wait is not None:
            self.wait.wait(5)
        return DecodedImage(np.zeros((2, 3), dtype=np.uint8))

    def stats(self):
        return {}

    def close(self):
        self.closed += 1


class TestFromConfig:
    """Building sources from the `sources:` section"""

    def test_local_and_proxy(self, image_dir, tmp_path):
        reg = SourceRegistry.from_config({
            "local": {"test": str(image_dir), "more": str(image_dir)},
            "proxy": {"web": {"cache_dir": str(tmp_path / "cache"), "connect_timeout_s": 0.5, "read_timeout_s": 4}},
        })
        assert reg.prefixes() == ["more", "test", "web"]
        assert isinstance(reg.get("test"), LocalSource)
        assert reg.get("test") is reg.get("more")
        web = reg.get("web")
        assert isinstance(web, ProxySource)
        assert web.timeout == (0.5, 4.0)
        assert reg.fetch("test", "page").width == 64
        reg.close()

    def test_duplicate_prefix(self, image_dir, tmp_path):
        with pytest.raises(ValueError):
            SourceRegistry.from_config({
                "local": {"dup": str(image_dir)},
                "proxy": {"dup": {"cache_dir": str(tmp_path)}},
            })

    def test_empty(self):
        reg = SourceRegistry.from_config({})
        assert reg.prefixes() == []


class TestRegistry:
    """Lookup, stats and shutdown"""

    def test_unknown_prefix(self):
        with pytest.raises(NotFound):
            SourceRegistry({}).fetch("nope", "x")

    def test_fetch_delegates(self):
        src = Mock()
        src.get_image.return_value = DecodedImage(np.zeros((1, 1), dtype=np.uint8))
        reg = SourceRegistry({"p": src})
        reg.fetch("p", "ident")
        src.get_image.assert_called_once_with("p", "ident")

    def test_stats(self, image_dir, tmp_path):
        reg = SourceRegistry({
            "test": LocalSource({"test": image_dir}),
            "proxy": ProxySource("proxy", tmp_path, session=Mock()),
        })
        assert reg.stats() == {
            "proxy": {"kind": "proxy", "uris": 0, "shards": 0},
            "test": {"kind": "local", "dirs": 1},
        }

    def test_close_each_source_once(self):
        shared = _StubSource()
        other = _StubSource()
        SourceRegistry({"a": shared, "b": shared, "c": other}).close()
        assert shared.closed == 1
        assert other.closed == 1

    def test_slow_source_does_not_block_others(self):
        """Lookup lock is not held while a source works"""
        release = threading.Event()
        slow = _StubSource(wait=release)
        reg = SourceRegistry({"slow": slow, "fast": _StubSource()})

        t = threading.Thread(target=reg.fetch, args=("slow", "x"))
        t.start()
        try:
            assert slow.entered.wait(5)
            assert reg.fetch("fast", "y").width == 3
            assert reg.prefixes() == ["fast", "slow"]
        finally:
            release.set()
            t.join()
