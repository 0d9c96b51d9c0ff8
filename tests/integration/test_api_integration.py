"""Integration tests for the HTTP service.

Uploads go through the real multipart parser, pipeline and response
serialisation.
"""

import base64
import io
import json

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from jpg2png.api import CONVERT_ROUTE, create_app
from jpg2png.config import create_config
from jpg2png.models import ImageFormat


@pytest.fixture
def client():
    return TestClient(create_app(create_config()))


def _decode_image(body: dict) -> Image.Image:
    _, encoded = body["image"].split(",", 1)
    return Image.open(io.BytesIO(base64.b64decode(encoded)))


def test_full_conversion_round_trip(client, large_jpeg_bytes):
    params = {
        "noiseReduction": {"preset": "conservative"},
        "qualityEnhancement": {"preset": "photo", "normalizeEnabled": False},
        "sizeOptimization": {"maxWidth": 160, "maxHeight": 160},
        "pngOptions": {"compressionLevel": 9},
    }
    response = client.post(
        CONVERT_ROUTE,
        files={"file": ("holiday.jpg", large_jpeg_bytes, "image/jpeg")},
        data={
            "options": json.dumps(["improve-quality", "optimize-size", "reduce-noise"]),
            "params": json.dumps(params),
        },
    )

    assert response.status_code == 200
    body = response.json()
    assert body["appliedOptions"] == ["reduce-noise", "improve-quality", "optimize-size"]
    assert body["metadata"]["original"]["width"] == 400
    assert body["metadata"]["final"]["width"] == 160
    with _decode_image(body) as image:
        assert image.format == "PNG"
        assert image.size == (160, 120)


def test_rgb_source_reports_channels(client, jpeg_bytes):
    body = client.post(
        CONVERT_ROUTE, files={"file": ("photo.jpg", jpeg_bytes, "image/jpeg")}
    ).json()

    assert body["metadata"]["original"]["channels"] == 3
    assert body["metadata"]["final"]["hasAlpha"] is False


@pytest.mark.parametrize(
    "fixture_name",
    ["png_bytes", "rgba_png_bytes", "webp_bytes", "gif_bytes"],
)
def test_other_formats_rejected(client, request, fixture_name):
    data = request.getfixturevalue(fixture_name)
    response = client.post(
        CONVERT_ROUTE, files={"file": ("upload.jpg", data, "image/jpeg")}
    )

    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_FORMAT"


def test_webp_target_configuration(jpeg_bytes):
    client = TestClient(create_app(create_config(output_format=ImageFormat.WEBP)))
    body = client.post(
        CONVERT_ROUTE, files={"file": ("photo.jpg", jpeg_bytes, "image/jpeg")}
    ).json()

    assert body["image"].startswith("data:image/webp;base64,")
    assert body["metadata"]["final"]["format"] == "webp"


def test_options_route_matches_cli_presets(client):
    options = {o["id"]: o for o in client.get("/api/options").json()["options"]}

    assert options["reduce-noise"]["presets"] == ["aggressive", "conservative", "default", "photo"]
    assert options["optimize-size"]["presets"] == ["aggressive", "conservative", "default", "web"]
