from __future__ import annotations

import io
import json
from decimal import Decimal

import httpx
import pytest
from PIL import Image

from buildflow_inbox.core.config import settings
from buildflow_inbox.modules.extraction import gateway
from buildflow_inbox.modules.extraction.gateway import ExtractionError, extract_document
from buildflow_inbox.modules.ledger.models import CostCategory

_GOOD_FIELDS = {
    "vendor": "Acme Hardware",
    "amount": "245.50",
    "description": "Timber and fixings",
    "date": "2024-03-01",
    "category": "materials",
    "confidence": 0.9,
}


def _text_pdf(text: str) -> bytes:
    stream = f"BT /F1 12 Tf 72 720 Td ({text}) Tj ET".encode("latin-1")
    objects = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        b"<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
        b"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] /Contents 4 0 R"
        b" /Resources << /Font << /F1 5 0 R >> >> >>",
        b"<< /Length %d >>\nstream\n" % len(stream) + stream + b"\nendstream",
        b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>",
    ]
    out = bytearray(b"%PDF-1.4\n")
    offsets = []
    for num, obj in enumerate(objects, start=1):
        offsets.append(len(out))
        out += b"%d 0 obj\n" % num + obj + b"\nendobj\n"
    xref_at = len(out)
    out += b"xref\n0 %d\n" % (len(objects) + 1)
    out += b"0000000000 65535 f \n"
    for off in offsets:
        out += b"%010d 00000 n \n" % off
    out += b"trailer\n<< /Size %d /Root 1 0 R >>\nstartxref\n%d\n%%%%EOF\n" % (
        len(objects) + 1,
        xref_at,
    )
    return bytes(out)


def _scanned_pdf() -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (60, 40), "white").save(buf, format="PDF")
    return buf.getvalue()


def _png() -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (8, 8), "red").save(buf, format="PNG")
    return buf.getvalue()


def _install_stub(monkeypatch, *, status_code=200, content=None, calls=None):
    def _post(url, *, headers, json, timeout, follow_redirects):  # noqa: A002
        if calls is not None:
            calls.append({"url": url, "headers": headers, "json": json})
        body = {
            "choices": [
                {"message": {"role": "assistant", "content": content or _dumps(_GOOD_FIELDS)}}
            ]
        }
        return httpx.Response(status_code, json=body, request=httpx.Request("POST", url))

    monkeypatch.setattr(gateway.httpx, "post", _post)


def _dumps(obj) -> str:
    return json.dumps(obj)


@pytest.fixture(autouse=True)
def _configured(monkeypatch):
    monkeypatch.setattr(settings, "extraction_api_key", "test-key")
    monkeypatch.setattr(settings, "extraction_base_url", "https://llm.example.test/v1/")


def test_image_is_sent_as_data_url_and_fields_are_coerced(monkeypatch):
    calls: list[dict] = []
    _install_stub(monkeypatch, calls=calls)

    fields = extract_document(_png(), "image/png", filename="receipt.png")

    assert fields.vendor == "Acme Hardware"
    assert fields.amount == Decimal("245.50")
    assert fields.category == CostCategory.MATERIALS
    assert fields.raw["vendor"] == "Acme Hardware"

    assert calls[0]["url"] == "https://llm.example.test/v1/chat/completions"
    assert calls[0]["headers"]["Authorization"] == "Bearer test-key"
    user_content = calls[0]["json"]["messages"][1]["content"]
    image_parts = [p for p in user_content if p["type"] == "image_url"]
    assert image_parts[0]["image_url"]["url"].startswith("data:image/png;base64,")


def test_jpg_media_type_is_normalized(monkeypatch):
    calls: list[dict] = []
    _install_stub(monkeypatch, calls=calls)

    extract_document(b"\xff\xd8\xff\xe0fake", "image/jpg", filename="photo.jpg")

    user_content = calls[0]["json"]["messages"][1]["content"]
    url = [p for p in user_content if p["type"] == "image_url"][0]["image_url"]["url"]
    assert url.startswith("data:image/jpeg;base64,")


def test_pdf_text_layer_is_sent_as_text(monkeypatch):
    calls: list[dict] = []
    _install_stub(monkeypatch, calls=calls)

    extract_document(_text_pdf("Acme Hardware Total 245.50"), "application/pdf", filename="inv.pdf")

    user_content = calls[0]["json"]["messages"][1]["content"]
    assert [p["type"] for p in user_content] == ["text"]
    assert "Acme Hardware" in user_content[0]["text"]


def test_scanned_pdf_is_rasterized_to_png(monkeypatch):
    calls: list[dict] = []
    _install_stub(monkeypatch, calls=calls)

    extract_document(_scanned_pdf(), "application/pdf", filename="scan.pdf")

    user_content = calls[0]["json"]["messages"][1]["content"]
    url = [p for p in user_content if p["type"] == "image_url"][0]["image_url"]["url"]
    assert url.startswith("data:image/png;base64,")


def test_non_2xx_raises_extraction_error(monkeypatch):
    _install_stub(monkeypatch, status_code=503)
    with pytest.raises(ExtractionError):
        extract_document(_png(), "image/png")


def test_timeout_raises_extraction_error(monkeypatch):
    def _post(url, **_kwargs):
        raise httpx.ReadTimeout("timed out", request=httpx.Request("POST", url))

    monkeypatch.setattr(gateway.httpx, "post", _post)
    with pytest.raises(ExtractionError):
        extract_document(_png(), "image/png")


def test_malformed_json_raises_extraction_error(monkeypatch):
    _install_stub(monkeypatch, content="I could not read this document.")
    with pytest.raises(ExtractionError):
        extract_document(_png(), "image/png")


def test_json_wrapped_in_prose_is_accepted(monkeypatch):
    _install_stub(monkeypatch, content="Here you go:\n```json\n" + _dumps(_GOOD_FIELDS) + "\n```")
    fields = extract_document(_png(), "image/png")
    assert fields.vendor == "Acme Hardware"


def test_missing_api_key_raises_without_calling(monkeypatch):
    calls: list[dict] = []
    _install_stub(monkeypatch, calls=calls)
    monkeypatch.setattr(settings, "extraction_api_key", None)

    with pytest.raises(ExtractionError):
        extract_document(_png(), "image/png")
    assert calls == []


def test_unsupported_media_type_raises(monkeypatch):
    _install_stub(monkeypatch)
    with pytest.raises(ExtractionError):
        extract_document(b"PK\x03\x04", "application/msword")
