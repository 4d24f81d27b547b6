"""
Helpers for turning the uploaded base64 image into a model-ready data URL.

Clients send the raw base64 body of the photo. Pillow is used to identify
the actual format so the data URL advertises the right media type; payloads
that cannot be decoded are still forwarded and labelled as JPEG, leaving the
final verdict to the model.
"""

from __future__ import annotations

import base64
import binascii
import io
import logging
from typing import Optional

from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

DEFAULT_MEDIA_TYPE = "image/jpeg"

# Pillow format names mapped to the media types accepted by vision models.
FORMAT_TO_MEDIA_TYPE = {
  "JPEG": "image/jpeg",
  "PNG": "image/png",
  "GIF": "image/gif",
  "WEBP": "image/webp",
}


def decode_image(image_base64: str) -> Optional[bytes]:
  """Return the decoded bytes, or ``None`` if the payload is not base64."""
  try:
    return base64.b64decode(image_base64, validate=True)
  except (binascii.Error, ValueError):
    return None


def detect_media_type(image_bytes: Optional[bytes]) -> str:
  """Identify the image format with Pillow, defaulting to JPEG."""
  if not image_bytes:
    return DEFAULT_MEDIA_TYPE

  try:
    with Image.open(io.BytesIO(image_bytes)) as image:
      image_format = image.format
  except (UnidentifiedImageError, OSError) as exc:
    logger.debug("Could not identify uploaded image: %s", exc)
    return DEFAULT_MEDIA_TYPE

  return FORMAT_TO_MEDIA_TYPE.get(image_format or "", DEFAULT_MEDIA_TYPE)


def build_image_data_url(image_base64: str) -> str:
  """Wrap the base64 payload in a ``data:`` URL, passing existing ones through."""
  if image_base64.startswith("data:"):
    return image_base64

  image_bytes = decode_image(image_base64)
  media_type = detect_media_type(image_bytes)
  logger.debug(
    "Prepared image payload (%s bytes, %s)",
    len(image_bytes) if image_bytes is not None else "undecodable",
    media_type,
  )
  return f"data:{media_type};base64,{image_base64}"


__all__ = ["build_image_data_url", "decode_image", "detect_media_type"]
