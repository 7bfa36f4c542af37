from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from buildflow_inbox.modules.ledger.models import CostCategory

UNKNOWN_VENDOR = "Unknown Vendor"

_CATEGORY_ALIASES: dict[str, CostCategory] = {
    "materials": CostCategory.MATERIALS,
    "material": CostCategory.MATERIALS,
    "supplies": CostCategory.MATERIALS,
    "hardware": CostCategory.MATERIALS,
    "subtrades": CostCategory.SUBTRADES,
    "subtrade": CostCategory.SUBTRADES,
    "sub_trades": CostCategory.SUBTRADES,
    "sub_trade": CostCategory.SUBTRADES,
    "subcontractor": CostCategory.SUBTRADES,
    "subcontractors": CostCategory.SUBTRADES,
    "tip_fees": CostCategory.TIP_FEES,
    "tip_fee": CostCategory.TIP_FEES,
    "tip": CostCategory.TIP_FEES,
    "tipping": CostCategory.TIP_FEES,
    "dump_fee": CostCategory.TIP_FEES,
    "other_costs": CostCategory.OTHER_COSTS,
    "other": CostCategory.OTHER_COSTS,
}


@dataclass(frozen=True)
class ExtractedFields:
    vendor: str
    amount: Decimal
    description: str
    occurred_on: date
    category: CostCategory
    confidence: float
    # Provider response as received; stored for audit only, never read back as fields.
    raw: dict[str, Any] = field(default_factory=dict, compare=False)


def parse_amount(value: Any) -> Decimal:
    """Coerce an extracted amount to a non-negative 2dp Decimal, 0 when unparseable."""
    if isinstance(value, bool) or value is None:
        return Decimal("0.00")
    if isinstance(value, (int, float, Decimal)):
        try:
            return abs(Decimal(str(value))).quantize(Decimal("0.01"))
        except InvalidOperation:
            return Decimal("0.00")

    s = str(value).strip().replace("\u202f", " ").replace("\xa0", " ")
    s = re.sub(r"[^0-9,.' ]", "", s)
    s = s.replace(" ", "").replace("'", "")
    if not s or not any(ch.isdigit() for ch in s):
        return Decimal("0.00")

    if "," in s and "." in s:
        decimal_sep = "," if s.rfind(",") > s.rfind(".") else "."
        thousands_sep = "." if decimal_sep == "," else ","
        normalized = s.replace(thousands_sep, "").replace(decimal_sep, ".")
    elif "," in s:
        idx = s.rfind(",")
        digits_after = len(s) - idx - 1
        if s.count(",") == 1 and digits_after in {1, 2}:
            normalized = s.replace(",", ".")
        else:
            normalized = s.replace(",", "")
    elif s.count(".") > 1:
        normalized = s.replace(".", "")
    else:
        normalized = s

    try:
        return Decimal(normalized).quantize(Decimal("0.01"))
    except InvalidOperation:
        return Decimal("0.00")


def normalize_category(value: Any) -> CostCategory:
    key = re.sub(r"[\s\-]+", "_", str(value or "").strip().lower())
    return _CATEGORY_ALIASES.get(key, CostCategory.OTHER_COSTS)


def clamp_confidence(value: Any) -> float:
    try:
        conf = float(value)
    except (TypeError, ValueError):
        return 0.0
    if conf != conf:  # NaN
        return 0.0
    return min(1.0, max(0.0, conf))


def parse_occurred_on(value: Any, *, today: date | None = None) -> date:
    fallback = today or datetime.now(UTC).date()
    raw = str(value or "").strip()
    if not raw:
        return fallback
    for fmt in ("%Y-%m-%d", "%d/%m/%Y", "%d-%m-%Y", "%d %b %Y", "%d %B %Y", "%b %d, %Y"):
        try:
            return datetime.strptime(raw, fmt).date()
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00")).date()
    except ValueError:
        return fallback


def coerce_fields(obj: dict[str, Any], *, filename: str | None = None) -> ExtractedFields:
    vendor = str(obj.get("vendor") or "").strip() or UNKNOWN_VENDOR
    description = str(obj.get("description") or "").strip() or (filename or "Document")
    return ExtractedFields(
        vendor=vendor[:200],
        amount=parse_amount(obj.get("amount")),
        description=description,
        occurred_on=parse_occurred_on(obj.get("date")),
        category=normalize_category(obj.get("category")),
        confidence=clamp_confidence(obj.get("confidence", 0.5)),
        raw=dict(obj),
    )
