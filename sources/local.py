from __future__ import annotations

from pathlib import Path
from typing import Dict, Iterable, Optional, Tuple, Union

from common.errors import NotFound
from common.logging_setup import get_logger
from common.types import DecodedImage
from imaging.codecs import decode_file
from iiif.formats import ON_DISK_FORMAT


log = get_logger(__name__)


class LocalSource:
    """
    Serves images from configured directories, one per prefix:

        {base_dir}/{identifier}.tif

    The identifier is opaque except that it may not resolve outside base_dir.
    """
    kind = "local"

    def __init__(self, image_dirs: Optional[Dict[str, Union[str, Path]]] = None):
        self.image_dirs: Dict[str, Path] = {}
        for prefix, d in (image_dirs or {}).items():
            self.insert_dir(prefix, d)

    @classmethod
    def from_pairs(cls, pairs: Iterable[Tuple[str, Union[str, Path]]]) -> "LocalSource":
        return cls(dict(pairs))

    def insert_dir(self, prefix: str, directory: Union[str, Path]) -> None:
        self.image_dirs[prefix] = Path(directory)

    # -------- public API --------

    def resolve(self, prefix: str, identifier: str) -> Path:
        """
        Path of the on-disk file for (prefix, identifier).

        Raises:
            NotFound: unknown prefix, or an identifier escaping the base dir
        """
        base = self.image_dirs.get(prefix)
        if base is None:
            raise NotFound(f"unknown prefix {prefix!r}")
        try:
            path = (base / identifier).with_suffix(f".{ON_DISK_FORMAT.ext}")
        except ValueError as e:
            raise NotFound(f"invalid identifier {identifier!r}") from e
        if not path.resolve().is_relative_to(base.resolve()):
            raise NotFound(f"identifier {identifier!r} is outside {prefix!r}")
        return path

    def get_image(self, prefix: str, identifier: str) -> DecodedImage:
        """
        Decode the image for (prefix, identifier).

        Raises:
            NotFound: unknown prefix or missing file
            DecodeError: the file exists but cannot be decoded
        """
        path = self.resolve(prefix, identifier)
        try:
            image = decode_file(path, ON_DISK_FORMAT)
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError) as e:
            raise NotFound(f"no image {identifier!r} under {prefix!r}") from e
        log.debug("Loaded local image", extra={"extra": {"path": str(path), **image.to_meta()}})
        return image

    def stats(self) -> Dict[str, int]:
        return {"dirs": len(self.image_dirs)}

    def close(self) -> None:
        pass
