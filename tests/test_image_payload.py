import base64
import io

import pytest
from PIL import Image

from api.image_payload import build_image_data_url, decode_image, detect_media_type


def _encoded_image(image_format: str) -> str:
  buffer = io.BytesIO()
  Image.new("RGB", (4, 4), color=(200, 120, 40)).save(buffer, format=image_format)
  return base64.b64encode(buffer.getvalue()).decode("ascii")


@pytest.mark.parametrize("image_format,media_type", [("PNG", "image/png"), ("JPEG", "image/jpeg"), ("GIF", "image/gif")])
def test_detects_real_image_formats(image_format, media_type):
  encoded = _encoded_image(image_format)
  assert build_image_data_url(encoded) == f"data:{media_type};base64,{encoded}"


@pytest.mark.parametrize("payload", ["ok", "test-image-data", "aGVsbG8="])
def test_unrecognised_payload_defaults_to_jpeg(payload):
  assert build_image_data_url(payload) == f"data:image/jpeg;base64,{payload}"


def test_existing_data_url_is_forwarded():
  url = "data:image/webp;base64,UklGRg=="
  assert build_image_data_url(url) == url


def test_decode_image_rejects_non_base64():
  assert decode_image("not base64!") is None
  assert decode_image("aGVsbG8=") == b"hello"


def test_detect_media_type_without_bytes():
  assert detect_media_type(None) == "image/jpeg"
  assert detect_media_type(b"") == "image/jpeg"
