from __future__ import annotations

import threading
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Union

from common.errors import NotFound
from common.logging_setup import get_logger
from common.types import DecodedImage
from sources.local import LocalSource
from sources.proxy import DEFAULT_CONNECT_TIMEOUT_S, DEFAULT_READ_TIMEOUT_S, ProxySource


log = get_logger(__name__)

Source = Union[LocalSource, ProxySource]


class SourceRegistry:
    """
    Maps a namespace prefix to the Source serving it. Built once at startup;
    prefixes are never added or removed while serving.

    The lock is held only for the prefix lookup. Fetch and decode run outside
    it, so a slow upstream on one prefix does not stall the others; duplicate
    fetches of one URI are serialized inside ProxySource.
    """

    def __init__(self, sources: Optional[Mapping[str, Source]] = None):
        self._lock = threading.Lock()
        self._sources: Dict[str, Source] = dict(sources or {})

    @classmethod
    def from_config(cls, cfg: Mapping) -> "SourceRegistry":
        """
        Build from the `sources:` config section:

            sources:
              local:  {<prefix>: <dir>, ...}
              proxy:  {<prefix>: {cache_dir, connect_timeout_s, read_timeout_s}, ...}

        All local prefixes share one LocalSource; each proxy prefix gets its own.
        """
        sources: Dict[str, Source] = {}
        local_dirs = dict(cfg.get("local") or {})
        if local_dirs:
            local = LocalSource.from_pairs((str(p), d) for p, d in local_dirs.items())
            for prefix in local_dirs:
                sources[str(prefix)] = local
        for prefix, pc in (cfg.get("proxy") or {}).items():
            pc = pc or {}
            if prefix in sources:
                raise ValueError(f"prefix {prefix!r} configured twice")
            sources[str(prefix)] = ProxySource(
                str(prefix),
                Path(pc.get("cache_dir", f"data/proxy_cache/{prefix}")),
                connect_timeout=float(pc.get("connect_timeout_s", DEFAULT_CONNECT_TIMEOUT_S)),
                read_timeout=float(pc.get("read_timeout_s", DEFAULT_READ_TIMEOUT_S)),
            )
        log.info("Source registry built", extra={"extra": {p: s.kind for p, s in sources.items()}})
        return cls(sources)

    # -------- public API --------

    def get(self, prefix: str) -> Source:
        with self._lock:
            src = self._sources.get(prefix)
        if src is None:
            raise NotFound(f"unknown prefix {prefix!r}")
        return src

    def fetch(self, prefix: str, identifier: str) -> DecodedImage:
        return self.get(prefix).get_image(prefix, identifier)

    def prefixes(self) -> List[str]:
        with self._lock:
            return sorted(self._sources)

    def stats(self) -> Dict[str, Dict]:
        with self._lock:
            items = list(self._sources.items())
        return {p: {"kind": s.kind, **s.stats()} for p, s in items}

    def close(self) -> None:
        with self._lock:
            unique = {id(s): s for s in self._sources.values()}
        for s in unique.values():
            s.close()
