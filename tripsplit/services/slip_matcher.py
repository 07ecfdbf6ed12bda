"""
Slip matcher - pull the paid amount out of OCR text from a transfer slip.

Heuristic order, first hit wins:
1. a number next to an amount keyword (Thai / English) or currency marker
2. the largest boundary-delimited decimal number in the text
3. bank-slip label layouts ("จำนวนเงิน (บาท)" / "Amount (THB)" with the
   figure on the following line, or a bare integer followed by baht)

Nothing found means "error", never zero. The result only annotates a
submission for the approver.
"""

import re
from typing import List, Optional

from tripsplit.core.config import settings
from tripsplit.models.settlement import SlipStatus
from tripsplit.schemas.settlement import SlipVerification

NUMBER = r"\d{1,3}(?:,\d{3})+(?:\.\d{1,2})?|\d+(?:\.\d{1,2})?"

AMOUNT_KEYWORDS = [
    "จำนวนเงิน", "ยอดเงิน", "ยอดชำระ", "ยอดโอน", "รวม", "ยอด", "ชำระ", "จำนวน",
    "total amount", "amount paid", "amount", "total", "paid", "payment",
]
CURRENCY_MARKERS = r"฿|THB|บาท|Baht|USD|\$"

KEYWORD_RE = re.compile(
    r"(?:" + "|".join(re.escape(k) for k in AMOUNT_KEYWORDS) + r")"
    r"\s*(?:\((?:" + CURRENCY_MARKERS + r")\))?\s*[:=：]?\s*(?:" + CURRENCY_MARKERS + r")?\s*"
    r"(" + NUMBER + r")",
    re.IGNORECASE,
)
CURRENCY_BEFORE_RE = re.compile(r"(?:฿|THB|USD|\$)\s*(" + NUMBER + r")", re.IGNORECASE)
CURRENCY_AFTER_RE = re.compile(r"(?<![\d.,])(" + NUMBER + r")\s*(?:฿|THB|บาท|Baht)", re.IGNORECASE)

DECIMAL_RE = re.compile(r"(?<![\d.,])(\d{1,3}(?:,\d{3})+(?:\.\d{1,2})?|\d+\.\d{1,2})(?!\d|[.,]\d)")

BANK_LABEL_RE = re.compile(
    r"(?:จำนวนเงิน|จำนวน|ยอดเงิน|Amount)\s*(?:\((?:บาท|THB|Baht)\))?\s*[:：]?\s*\n+\s*(" + NUMBER + r")",
    re.IGNORECASE,
)
BANK_INTEGER_RE = re.compile(r"(?<![\d.,])(\d+)\s*(?:บาท|Baht|THB)\b", re.IGNORECASE)

DATE_PATTERNS = [
    re.compile(r"(?<!\d)(\d{1,2})[/-](\d{1,2})[/-](\d{2,4})"),
    re.compile(r"(\d{4})[/-](\d{1,2})[/-](\d{1,2})"),
    re.compile(r"(\d{1,2})\s*(Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec)[a-z]*\.?\s*(\d{2,4})", re.IGNORECASE),
    re.compile(r"(\d{1,2})\s*(ม\.ค\.|ก\.พ\.|มี\.ค\.|เม\.ย\.|พ\.ค\.|มิ\.ย\.|ก\.ค\.|ส\.ค\.|ก\.ย\.|ต\.ค\.|พ\.ย\.|ธ\.ค\.)\s*(\d{2,4})"),
]


def normalize_text(text: str) -> str:
    text = text.replace("\u200b", "").replace("\r\n", "\n").replace("\r", "\n")
    text = text.replace("\uff0c", ",").replace("\uff0e", ".").replace("\uff1a", ":")
    lines = [re.sub(r"[ \t\u00a0]{2,}", " ", line).strip() for line in text.split("\n")]
    return "\n".join(line for line in lines if line)


def _to_number(raw: str) -> Optional[float]:
    try:
        return float(raw.replace(",", ""))
    except ValueError:
        return None


def _first(pattern: re.Pattern, lines: List[str]) -> Optional[float]:
    for line in lines:
        match = pattern.search(line)
        if match:
            value = _to_number(match.group(1))
            if value is not None:
                return value
    return None


def extract_amount(text: Optional[str]) -> Optional[float]:
    if not text:
        return None
    normalized = normalize_text(text)
    lines = normalized.split("\n")

    for pattern in (KEYWORD_RE, CURRENCY_BEFORE_RE, CURRENCY_AFTER_RE):
        value = _first(pattern, lines)
        if value is not None:
            return value

    decimals = [_to_number(m.group(1)) for m in DECIMAL_RE.finditer(normalized)]
    decimals = [d for d in decimals if d is not None]
    if decimals:
        return max(decimals)

    match = BANK_LABEL_RE.search(normalized)
    if match:
        return _to_number(match.group(1))
    return _first(BANK_INTEGER_RE, lines)


def extract_date(text: Optional[str]) -> Optional[str]:
    if not text:
        return None
    normalized = normalize_text(text)
    for pattern in DATE_PATTERNS:
        match = pattern.search(normalized)
        if match:
            return match.group(0)
    return None


def amounts_match(expected: float, extracted: float, tolerance: Optional[float] = None) -> bool:
    """Within tolerance, boundary inclusive."""
    tolerance = settings.SLIP_AMOUNT_TOLERANCE if tolerance is None else tolerance
    return abs(round(expected - extracted, 2)) <= tolerance


def verify_slip(expected: float, text: Optional[str], tolerance: Optional[float] = None) -> SlipVerification:
    extracted = extract_amount(text)
    date_string = extract_date(text)
    if extracted is None:
        return SlipVerification(
            status=SlipStatus.ERROR,
            expected_amount=expected,
            date_string=date_string,
        )

    status = SlipStatus.MATCHED if amounts_match(expected, extracted, tolerance) else SlipStatus.MISMATCH
    return SlipVerification(
        status=status,
        expected_amount=expected,
        extracted_amount=extracted,
        difference=round(extracted - expected, 2),
        date_string=date_string,
    )
