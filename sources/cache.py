"""
Content-addressed on-disk cache layout:

    cache_root/
      └─ {hex[0:2]}/
          └─ {hex[2:4]}/
              └─ {hex}.tif

where `hex` is the SHA-256 of the decoded pixels. Entries are written to a
temporary file in the shard directory and renamed into place, so a reader
either sees a complete file or no file.
"""

from __future__ import annotations

import hashlib
import os
import tempfile
from pathlib import Path
from typing import Iterator, Union

from common.logging_setup import get_logger
from common.types import DecodedImage
from iiif.formats import ON_DISK_FORMAT


log = get_logger(__name__)

SHARD_DEPTH = 2
DIGEST_HEX_LEN = 64


def content_digest(image: DecodedImage) -> str:
    """
    Hex SHA-256 over the pixel geometry header followed by the pixel bytes.
    The header keeps equal byte strings with different shapes apart.
    """
    h = hashlib.sha256()
    h.update(f"{image.mode}:{image.width}x{image.height}\n".encode("ascii"))
    h.update(image.as_bytes())
    return h.hexdigest()


def cached_image_path(cache_root: Union[str, Path], digest: str) -> Path:
    if len(digest) != DIGEST_HEX_LEN:
        raise ValueError(f"expected a {DIGEST_HEX_LEN}-char hex digest, got {digest!r}")
    digest = digest.lower()
    return Path(cache_root) / digest[0:2] / digest[2:4] / f"{digest}.{ON_DISK_FORMAT.ext}"


def leaf_dirs(cache_root: Union[str, Path]) -> Iterator[Path]:
    """Yield shard directories exactly SHARD_DEPTH levels below cache_root."""
    root = Path(cache_root)
    if not root.is_dir():
        return
    level = [root]
    for _ in range(SHARD_DEPTH):
        nxt = []
        for d in level:
            try:
                children = sorted(d.iterdir())
            except OSError as e:
                log.warning("Skipping unreadable cache directory %s: %s", d, e)
                continue
            nxt.extend(c for c in children if c.is_dir())
        level = nxt
    yield from level


def write_atomic(path: Path, data: bytes) -> bool:
    """
    Write `data` to `path` via a temp file + rename in the same directory.
    The shard directory is (re)created as needed.

    Returns:
        True if this call created the file, False if it already existed
        (the existing bytes are left untouched).
    """
    if path.exists():
        return False
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=".tmp-", suffix=path.suffix, dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        if path.exists():
            return False
        # concurrent writers of one digest carry identical bytes
        os.replace(tmp_name, path)
        return True
    finally:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
