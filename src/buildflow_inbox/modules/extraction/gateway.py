from __future__ import annotations

import base64
import json
import re
import time
from io import BytesIO
from typing import Any

import httpx
from pypdf import PdfReader
from pypdf.errors import PdfReadError

from buildflow_inbox.core.config import settings
from buildflow_inbox.core.logging import get_logger, log_event, monotonic_ms
from buildflow_inbox.modules.extraction.fields import ExtractedFields, coerce_fields

logger = get_logger(__name__)

_IMAGE_MEDIA_TYPES: dict[str, str] = {
    "image/jpeg": "image/jpeg",
    "image/jpg": "image/jpeg",
    "image/pjpeg": "image/jpeg",
    "image/png": "image/png",
    "image/gif": "image/gif",
}

_SYSTEM_PROMPT = (
    "You are an expense document analyzer for construction projects. Analyze bills, "
    "invoices and receipts to extract key information for job costing.\n"
    "Return a JSON object with these fields:\n"
    "- vendor: company/supplier name\n"
    "- amount: total amount charged (the main total, not a line item or tax)\n"
    "- description: brief description of goods/services\n"
    "- date: invoice date in YYYY-MM-DD format\n"
    '- category: one of "materials", "subtrades", "other_costs", "tip_fees"\n'
    "  * materials: lumber, concrete, tools, supplies, hardware\n"
    "  * subtrades: plumbing, electrical, painting, subcontractor services\n"
    "  * tip_fees: tip/dump/landfill/waste disposal fees\n"
    "  * other_costs: permits, equipment rental, delivery fees, miscellaneous\n"
    "- confidence: number 0-1 indicating extraction confidence\n"
    "Only use information present in the document. Be conservative with confidence. "
    "Return JSON only."
)


class ExtractionError(RuntimeError):
    pass


def extraction_available() -> bool:
    return bool(settings.extraction_api_key)


def extract_document(
    body: bytes,
    mime_type: str,
    *,
    filename: str | None = None,
    hint: str | None = None,
) -> ExtractedFields:
    """
    Send one document to the extraction service and return validated fields.

    Raises ExtractionError on any hard failure (no credentials, transport error,
    non-2xx, refusal, malformed response). Field-level problems never raise:
    they are coerced by ``coerce_fields``.
    """
    if not settings.extraction_api_key:
        raise ExtractionError("Extraction service is not configured")

    start = time.monotonic()
    content = _build_content(body, mime_type, hint=hint)
    payload = {
        "model": settings.extraction_model,
        "temperature": 0,
        "response_format": {"type": "json_object"},
        "messages": [
            {"role": "system", "content": _SYSTEM_PROMPT},
            {"role": "user", "content": content},
        ],
    }
    headers = {
        "Authorization": f"Bearer {settings.extraction_api_key}",
        "Content-Type": "application/json",
    }
    url = settings.extraction_base_url.rstrip("/") + "/chat/completions"

    try:
        resp = httpx.post(
            url,
            headers=headers,
            json=payload,
            timeout=float(settings.extraction_timeout_seconds),
            follow_redirects=True,
        )
        resp.raise_for_status()
    except httpx.HTTPStatusError as e:
        log_event(
            logger,
            "extraction.request.failure",
            filename=filename,
            mime_type=mime_type,
            http_status=e.response.status_code,
            duration_ms=monotonic_ms(start),
        )
        raise ExtractionError(f"Extraction service returned {e.response.status_code}") from e
    except httpx.HTTPError as e:
        log_event(
            logger,
            "extraction.request.failure",
            filename=filename,
            mime_type=mime_type,
            error_type=type(e).__name__,
            duration_ms=monotonic_ms(start),
        )
        raise ExtractionError(f"Extraction request failed: {type(e).__name__}") from e

    try:
        message = resp.json()["choices"][0]["message"]
    except (ValueError, KeyError, IndexError, TypeError) as e:
        raise ExtractionError("Malformed extraction response") from e
    if not isinstance(message, dict) or message.get("refusal"):
        raise ExtractionError("Extraction service refused the document")

    obj = _parse_json_object(message.get("content"))
    if not isinstance(obj, dict):
        raise ExtractionError("Extraction response is not a JSON object")

    fields = coerce_fields(obj, filename=filename)
    log_event(
        logger,
        "extraction.request.success",
        filename=filename,
        mime_type=mime_type,
        category=fields.category.value,
        confidence=fields.confidence,
        duration_ms=monotonic_ms(start),
    )
    return fields


def _build_content(body: bytes, mime_type: str, *, hint: str | None) -> list[dict[str, Any]]:
    intro = "Analyze this construction expense document and extract the billing information."
    if hint:
        intro += f"\nContext from the sender: {hint[:300]}"

    mime = (mime_type or "").lower()
    if mime == "application/pdf":
        text = _pdf_text(body)
        if text:
            return [{"type": "text", "text": intro + "\n\nDocument text:\n" + text}]
        image = _pdf_page_image(body)
        if image is None:
            raise ExtractionError("PDF has neither a text layer nor a page image")
        return [{"type": "text", "text": intro}, _image_part(image, "image/png")]

    media_type = _IMAGE_MEDIA_TYPES.get(mime)
    if media_type is None:
        raise ExtractionError(f"Unsupported media type: {mime_type}")
    return [{"type": "text", "text": intro}, _image_part(body, media_type)]


def _image_part(body: bytes, media_type: str) -> dict[str, Any]:
    data = base64.b64encode(body).decode("ascii")
    return {"type": "image_url", "image_url": {"url": f"data:{media_type};base64,{data}"}}


def _pdf_text(body: bytes) -> str:
    try:
        reader = PdfReader(BytesIO(body))
        pages = [(page.extract_text() or "") for page in reader.pages]
    except (PdfReadError, ValueError, KeyError) as e:
        raise ExtractionError("Could not read PDF") from e
    text = "\n\n".join(p.replace("\u202f", " ").replace("\xa0", " ") for p in pages).strip()
    return _truncate_text(text, max_chars=int(settings.extraction_max_text_chars or 0))


def _pdf_page_image(body: bytes) -> bytes | None:
    """Rasterize a scanned PDF by taking its largest embedded page image as PNG."""
    try:
        reader = PdfReader(BytesIO(body))
        page_images = [img for page in reader.pages[:3] for img in page.images]
    except (PdfReadError, ValueError, KeyError):
        return None

    best = None
    best_area = 0
    for image_file in page_images:
        try:
            image = image_file.image
        except (OSError, ValueError):
            continue
        if image is None:
            continue
        area = image.width * image.height
        if area > best_area:
            best_area = area
            best = image
    if best is None:
        return None

    if best.mode not in {"RGB", "L"}:
        best = best.convert("RGB")
    out = BytesIO()
    best.save(out, format="PNG")
    return out.getvalue()


def _truncate_text(text: str, *, max_chars: int) -> str:
    if max_chars <= 0 or len(text) <= max_chars:
        return text
    return text[: max_chars - 20].rstrip() + "\n\n[TRUNCATED]"


def _parse_json_object(content: Any) -> Any:
    c = str(content or "").strip()
    if not c:
        return None
    try:
        return json.loads(c)
    except ValueError:
        pass

    # Models sometimes wrap the object in prose or a code fence.
    m = re.search(r"\{.*\}", c, re.S)
    if not m:
        return None
    try:
        return json.loads(m.group(0))
    except ValueError:
        return None
