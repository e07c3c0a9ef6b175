"""Avatar image normalization.

Learn: Uploaded avatars are checked before any decoding happens:
extension must be on the allow-list and the payload must fit the size
limit. The image is then cropped/resized to a fixed square and
re-encoded as PNG, so every stored avatar has the same format no matter
what was uploaded.
"""

import io
from typing import Iterable, Optional

from PIL import Image, ImageOps, UnidentifiedImageError

from taskhub.config import settings
from taskhub.errors import UnsupportedImageFormatError


def check_upload(
    filename: Optional[str],
    size: int,
    *,
    max_bytes: Optional[int] = None,
    extensions: Optional[Iterable[str]] = None,
) -> None:
    """Reject a disallowed extension or an oversized upload."""
    allowed = {e.lower() for e in (extensions or settings.avatar_extensions)}
    limit = max_bytes or settings.avatar_max_bytes

    ext = (filename or "").rsplit(".", 1)
    if len(ext) != 2 or ext[1].lower() not in allowed:
        raise UnsupportedImageFormatError(
            f"Please upload an image ({', '.join(sorted(allowed))})"
        )
    if size > limit:
        raise UnsupportedImageFormatError(f"Image must be at most {limit} bytes")


def process_avatar(
    filename: Optional[str],
    data: bytes,
    *,
    max_bytes: Optional[int] = None,
    extensions: Optional[Iterable[str]] = None,
    size: Optional[int] = None,
    max_pixels: Optional[int] = None,
) -> bytes:
    """Validate an upload and return it as a size×size PNG.

    Raises UnsupportedImageFormatError if the upload is rejected or cannot
    be decoded. CPU-bound — call through asyncio.to_thread from async code.
    """
    check_upload(filename, len(data), max_bytes=max_bytes, extensions=extensions)
    edge = size or settings.avatar_size
    pixel_limit = max_pixels or settings.avatar_max_pixels

    try:
        with Image.open(io.BytesIO(data)) as image:
            # open() only reads the header; refuse huge canvases before load()
            # allocates them (a small PNG can declare a very large one)
            width, height = image.size
            if width * height > pixel_limit:
                raise UnsupportedImageFormatError(
                    f"Image must be at most {pixel_limit} pixels"
                )
            image.load()
            if image.mode not in ("RGB", "RGBA"):
                image = image.convert("RGBA")
            # Same as a "cover" resize: scale, then centre-crop to the square
            resized = ImageOps.fit(image, (edge, edge), method=Image.Resampling.LANCZOS)
    except (UnidentifiedImageError, OSError, Image.DecompressionBombError) as e:
        raise UnsupportedImageFormatError("Could not read image") from e

    out = io.BytesIO()
    resized.save(out, format="PNG")
    return out.getvalue()
