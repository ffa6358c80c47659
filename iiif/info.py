from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict

from common.types import DecodedImage
from imaging.transform import SizeLimits


IMAGE_3_CONTEXT = "http://iiif.io/api/image/3/context.json"
PROTOCOL = "http://iiif.io/api/image"
TYPE = "ImageService3"
PROFILE = "level2"

INFO_MEDIA_TYPE = f'application/ld+json;profile="{IMAGE_3_CONTEXT}"'


@dataclass(frozen=True)
class ImageInfo:
    """IIIF Image API 3.0 info.json descriptor for one image."""
    id: str
    width: int
    height: int
    max_width: int
    max_height: int
    max_area: int

    @classmethod
    def for_image(
        cls,
        base_url: str,
        prefix: str,
        identifier: str,
        image: DecodedImage,
        limits: SizeLimits = SizeLimits(),
    ) -> "ImageInfo":
        return cls(
            id="/".join([base_url.rstrip("/"), prefix, identifier]),
            width=image.width,
            height=image.height,
            max_width=limits.max_width,
            max_height=limits.max_height,
            max_area=limits.max_area,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "@context": [IMAGE_3_CONTEXT],
            "id": self.id,
            "type": TYPE,
            "protocol": PROTOCOL,
            "profile": PROFILE,
            "width": self.width,
            "height": self.height,
            "maxWidth": self.max_width,
            "maxHeight": self.max_height,
            "maxArea": self.max_area,
        }
