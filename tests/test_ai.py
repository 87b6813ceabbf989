"""Tests for the AI gateway client and result image handling."""
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from app.core.errors import ConfigurationError, UpstreamError
from app.core.models_catalog import get_default_model, resolve_model
from app.services import ai
from app.services.images import build_storage_key, normalize_result_image

from conftest import STYLE_URL, make_png


def _response(*parts):
    return SimpleNamespace(parts=list(parts))


def _image_part(data: bytes, mime: str = "image/png"):
    return SimpleNamespace(inline_data=SimpleNamespace(data=data, mime_type=mime))


def _text_part(text: str):
    return SimpleNamespace(inline_data=None, text=text)


@pytest.fixture
def gateway():
    client = MagicMock()
    with patch.object(ai, "get_client", return_value=client), \
            patch.object(ai, "download_image", return_value=(make_png(), "image/png")):
        yield client


class TestGenerateImage:

    def test_returns_first_inline_image(self, gateway):
        gateway.models.generate_content.return_value = _response(
            _text_part("here you go"),
            _image_part(b"first", "image/webp"),
            _image_part(b"second"),
        )

        data, mime = ai.generate_image("a cat", STYLE_URL, get_default_model())

        assert (data, mime) == (b"first", "image/webp")
        kwargs = gateway.models.generate_content.call_args.kwargs
        assert kwargs["model"] == "gemini-2.5-flash-image"
        assert kwargs["contents"][0].startswith("a cat")

    def test_output_style_is_added_to_prompt(self, gateway):
        gateway.models.generate_content.return_value = _response(_image_part(b"img"))

        ai.generate_image("a cat", STYLE_URL, get_default_model(), output_style="anime")

        assert "Output style: anime." in gateway.models.generate_content.call_args.kwargs["contents"][0]

    def test_text_only_response_is_upstream_error(self, gateway):
        gateway.models.generate_content.return_value = _response(_text_part("I cannot do that"))

        with pytest.raises(UpstreamError, match="No image generated"):
            ai.generate_image("a cat", STYLE_URL, get_default_model())

    def test_gateway_exception_is_upstream_error(self, gateway):
        gateway.models.generate_content.side_effect = RuntimeError("quota exceeded")

        with pytest.raises(UpstreamError, match="quota exceeded"):
            ai.generate_image("a cat", STYLE_URL, get_default_model())

    def test_missing_key_is_configuration_error(self):
        ai.get_client.cache_clear()
        try:
            with pytest.raises(ConfigurationError):
                ai.get_client()
        finally:
            ai.get_client.cache_clear()


class TestModelsCatalog:

    def test_unknown_model_resolves_to_default(self):
        assert resolve_model("nope") == get_default_model()
        assert resolve_model(None) == get_default_model()


class TestResultImages:

    def test_storable_types_pass_through(self):
        data = make_png(3, 5)

        stored, mime, info = normalize_result_image(data, "image/png")

        assert stored == data
        assert mime == "image/png"
        assert (info.width, info.height) == (3, 5)

    def test_other_types_are_converted_to_png(self):
        data = make_png(3, 5, fmt="GIF")

        stored, mime, info = normalize_result_image(data, "image/gif")

        assert mime == "image/png"
        assert info.format == "png"
        assert stored[:8] == b"\x89PNG\r\n\x1a\n"

    def test_storage_key_layout(self):
        key = build_storage_key("generated", 42, "image/jpeg")
        assert key.startswith("generated/42/")
        assert key.endswith(".jpg")
