"""
Proxy source: serves remote images addressed by an unpadded base64url
encoding of their URI, through a content-addressed on-disk cache.

Usage:
    src = ProxySource("proxy", "data/proxy_cache")
    ident = encode_identifier("https://example.org/a.png")
    image = src.get_image("proxy", ident)   # fetched once, then served from disk

The URI -> digest index lives in memory only; cached bytes survive restarts
but each URI is fetched again once per process.
"""

from __future__ import annotations

import base64
import binascii
import re
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Dict, Iterator, Optional, Set, Tuple, Union
from urllib.parse import urlparse

import requests

from common import __version__
from common.errors import BadInput, DecodeError, ImageServerError, NotFound, UpstreamTimeout
from common.logging_setup import get_logger
from common.types import DecodedImage
from iiif.formats import ON_DISK_FORMAT, ImageFormat, from_extension, from_mime_type
from imaging.codecs import decode_bytes, decode_file, encode
from sources.cache import cached_image_path, content_digest, leaf_dirs, write_atomic


log = get_logger(__name__)

DEFAULT_USER_AGENT = f"iiif-imageserver v{__version__}"
DEFAULT_CONNECT_TIMEOUT_S = 2.0
DEFAULT_READ_TIMEOUT_S = 1.0

_B64URL = re.compile(r"[A-Za-z0-9_-]*")


def encode_identifier(uri: str) -> str:
    """Unpadded base64url of the UTF-8 URI."""
    return base64.urlsafe_b64encode(uri.encode("utf-8")).decode("ascii").rstrip("=")


def decode_identifier(identifier: str) -> str:
    """
    Inverse of encode_identifier. Trailing '=' padding is tolerated.

    Raises:
        BadInput: not base64url, not UTF-8, or empty
    """
    ident = identifier.rstrip("=")
    if not _B64URL.fullmatch(ident) or len(ident) % 4 == 1:
        raise BadInput(f"identifier is not unpadded base64url: {identifier!r}")
    try:
        uri = base64.urlsafe_b64decode(ident + "=" * (-len(ident) % 4)).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as e:
        raise BadInput(f"identifier does not decode to a UTF-8 URI: {identifier!r}") from e
    if not uri:
        raise BadInput("identifier decodes to an empty URI")
    return uri


def detect_format(content_type: Optional[str], url: str) -> Optional[ImageFormat]:
    """
    Codec for an upstream response: Content-Type first, then the extension
    of the URL's last path segment.
    """
    if content_type:
        fmt = from_mime_type(content_type)
        if fmt is not None:
            return fmt
    suffix = PurePosixPath(urlparse(url).path).suffix
    return from_extension(suffix) if suffix else None


@dataclass(frozen=True)
class CacheEntry:
    digest: str
    format: ImageFormat
    path: Path


class _InFlight:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users = 0


class ProxySource:
    kind = "proxy"

    def __init__(
        self,
        prefix: str,
        cache_dir: Union[str, Path],
        *,
        session: Optional[requests.Session] = None,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT_S,
        read_timeout: float = DEFAULT_READ_TIMEOUT_S,
        user_agent: str = DEFAULT_USER_AGENT,
    ):
        """
        Params:
            prefix: namespace this source is registered under
            cache_dir: root of the content-addressed cache
            session: optional requests.Session (tests inject a mock)
            connect_timeout, read_timeout: seconds, passed to every GET
        """
        self.prefix = prefix
        self.cache_dir = Path(cache_dir)
        self.timeout: Tuple[float, float] = (float(connect_timeout), float(read_timeout))
        if session is None:
            session = requests.Session()
            session.headers["User-Agent"] = user_agent
        self.session = session

        self._lock = threading.Lock()
        self._uri_index: Dict[str, CacheEntry] = {}
        self._inflight: Dict[str, _InFlight] = {}
        self._shards: Set[Path] = set(leaf_dirs(self.cache_dir))
        log.info(
            "Proxy cache scanned",
            extra={"extra": {"prefix": prefix, "cache_dir": str(self.cache_dir), "shards": len(self._shards)}},
        )

    # -------- public API --------

    def get_image(self, prefix: str, identifier: str) -> DecodedImage:
        """
        Resolve a base64url identifier to a decoded image.

        Raises:
            BadInput: identifier is not a base64url UTF-8 URI
            NotFound: upstream non-2xx, unknown format, transport failure,
                or a missing/corrupt cache entry for an indexed URI
            UpstreamTimeout: connect/read timeout
            DecodeError: upstream bytes cannot be decoded
        """
        uri = decode_identifier(identifier)
        with self._serialized(uri):
            entry = self.lookup(uri)
            if entry is not None:
                log.debug("Cache hit", extra={"extra": {"uri": uri, "digest": entry.digest}})
                return self._read_cached(uri, entry)
            image, fmt = self._fetch(uri)
            self._store(uri, image, fmt)
            return image

    def lookup(self, uri: str) -> Optional[CacheEntry]:
        with self._lock:
            return self._uri_index.get(uri)

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {"uris": len(self._uri_index), "shards": len(self._shards)}

    def close(self) -> None:
        self.session.close()

    # -------- internals --------

    @contextmanager
    def _serialized(self, uri: str) -> Iterator[None]:
        # one fetch per URI at a time; different URIs do not wait on each other
        with self._lock:
            slot = self._inflight.get(uri)
            if slot is None:
                slot = self._inflight[uri] = _InFlight()
            slot.users += 1
        try:
            with slot.lock:
                yield
        finally:
            with self._lock:
                slot.users -= 1
                if slot.users == 0:
                    del self._inflight[uri]

    def _read_cached(self, uri: str, entry: CacheEntry) -> DecodedImage:
        try:
            return decode_file(entry.path, ON_DISK_FORMAT)
        except OSError as e:
            log.error("Indexed cache entry unreadable", extra={"extra": {"uri": uri, "path": str(entry.path)}})
            raise NotFound(f"cache entry for {uri} is unreadable: {e}") from e
        except DecodeError as e:
            log.error("Indexed cache entry corrupt", extra={"extra": {"uri": uri, "path": str(entry.path)}})
            raise NotFound(f"cache entry for {uri} is corrupt") from e

    def _fetch(self, uri: str) -> Tuple[DecodedImage, ImageFormat]:
        if urlparse(uri).scheme not in ("http", "https"):
            raise BadInput(f"unsupported URI scheme: {uri!r}")
        log.info("Fetching upstream image", extra={"extra": {"uri": uri}})
        try:
            r = self.session.get(uri, timeout=self.timeout)
        except requests.Timeout as e:
            log.warning("Upstream timeout: %s", uri)
            raise UpstreamTimeout(f"timed out fetching {uri}") from e
        except requests.RequestException as e:
            log.warning("Upstream request failed: %s %s", uri, e)
            raise NotFound(f"cannot fetch {uri}: {e}") from e

        if not 200 <= r.status_code < 300:
            log.warning("Upstream returned %s for %s", r.status_code, uri)
            raise NotFound(f"upstream returned {r.status_code} for {uri}")

        final_url = r.url if isinstance(r.url, str) and r.url else uri
        fmt = detect_format(r.headers.get("Content-Type"), final_url)
        if fmt is None:
            raise NotFound(f"cannot determine image format of {uri}")
        return decode_bytes(r.content, fmt), fmt

    def _store(self, uri: str, image: DecodedImage, fmt: ImageFormat) -> CacheEntry:
        digest = content_digest(image)
        path = cached_image_path(self.cache_dir, digest)
        data = encode(image, ON_DISK_FORMAT)
        try:
            created = write_atomic(path, data)
        except OSError as e:
            raise ImageServerError(f"cannot write cache entry {path}: {e}") from e

        entry = CacheEntry(digest=digest, format=fmt, path=path)
        with self._lock:
            self._shards.add(path.parent)
            self._uri_index[uri] = entry
        log.info(
            "Cached upstream image",
            extra={"extra": {"uri": uri, "digest": digest, "format": fmt.ext, "created": created}},
        )
        return entry
