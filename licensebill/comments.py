# -*- coding: utf-8 -*-
"""
Client Comment Event Log

Clients carry a free-text ``comments`` field that doubles as the
human-readable history of license changes. This module writes the
"Added ..." and "Decreased ..." lines and reads them back for display and
for migrating old records into the structured license ledger.

Line formats:
    Added 5 license(s) effective Mar 2025 at ZAR 2,000.00 per unit.
    Decreased 2 license(s) effective Sep 2025. Credit ZAR 1,666.67 applied in Sep 2025. Reason: downsizing

Author: licensebill Team
Date: October 2026
"""

from __future__ import annotations

import logging
import re
from decimal import Decimal
from typing import List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from licensebill.money import format_currency, month_label, parse_month_label, to_decimal

logger = logging.getLogger(__name__)

_DECREASED_QTY = re.compile(r"Decreased (\d+) license")
_ADDED_QTY = re.compile(r"Added (\d+) license")
_EFFECTIVE = re.compile(r"effective ([A-Za-z]+ \d{4})")
_CREDIT = re.compile(r"Credit ([A-Z]{3}\s?[\d,]+(?:\.\d{2})?)")
_APPLIED = re.compile(r"applied (?:at|in) ([A-Za-z]+ \d{4})")
_REASON = re.compile(r"Reason: (.+)")
_UNIT_PRICE = re.compile(r"at ([A-Z]{3}\s?[\d,]+(?:\.\d{2})?) per unit")
_AMOUNT = re.compile(r"([A-Z]{3})\s?([\d,]+(?:\.\d{2})?)")


class CommentEntry(BaseModel):
    """One line of the comment log, parsed."""
    kind: Literal["added", "decreased", "note"] = Field(..., description="Line type")
    line: str = Field(..., description="Original line text")
    quantity: int = Field(default=0, description="Seats added or removed")
    effective: Optional[Tuple[int, int]] = Field(None, description="(year, month) in effect")
    applied: Optional[Tuple[int, int]] = Field(None, description="(year, month) credit applied")
    currency: Optional[str] = Field(None, description="Currency of the amount")
    amount: Optional[Decimal] = Field(None, description="Credit or unit price")
    reason: str = Field(default="", description="Reason text")

    model_config = ConfigDict(frozen=True, extra="forbid")


def _money(text: str) -> Tuple[Optional[str], Optional[Decimal]]:
    match = _AMOUNT.match(text)
    if not match:
        return None, None
    return match.group(1), to_decimal(match.group(2))


def _month(pattern: re.Pattern, line: str) -> Optional[Tuple[int, int]]:
    match = pattern.search(line)
    return parse_month_label(match.group(1)) if match else None


# ---------------------------------------------------------------------------
# Writing
# ---------------------------------------------------------------------------


def format_added_line(
    quantity: int,
    year: int,
    month: int,
    price_per_unit: Decimal,
    currency: str,
) -> str:
    return (
        f"Added {quantity} license(s) effective {month_label(year, month)} "
        f"at {format_currency(price_per_unit, currency)} per unit."
    )


def format_decreased_line(
    quantity: int,
    effective: Tuple[int, int],
    credit: Decimal,
    currency: str,
    applied: Optional[Tuple[int, int]] = None,
    reason: str = "",
) -> str:
    """Render a decrease line in the format the history view parses."""
    applied = applied or effective
    line = (
        f"Decreased {quantity} license(s) effective {month_label(*effective)}. "
        f"Credit {format_currency(credit, currency)} applied in {month_label(*applied)}."
    )
    reason = reason.strip().replace("\n", " ")
    if reason:
        line += f" Reason: {reason}"
    return line


def append_comment(comments: Optional[str], line: str) -> str:
    """Append ``line`` on its own line, leaving earlier text untouched."""
    if not comments:
        return line
    return f"{comments.rstrip(chr(10))}\n{line}"


# ---------------------------------------------------------------------------
# Reading
# ---------------------------------------------------------------------------


def parse_comment_line(line: str) -> CommentEntry:
    """Classify and parse a single comment line."""
    if "Decreased" in line and "license" in line:
        qty = _DECREASED_QTY.search(line)
        credit = _CREDIT.search(line)
        currency, amount = _money(credit.group(1)) if credit else (None, None)
        reason = _REASON.search(line)
        return CommentEntry(
            kind="decreased",
            line=line,
            quantity=int(qty.group(1)) if qty else 0,
            effective=_month(_EFFECTIVE, line),
            applied=_month(_APPLIED, line),
            currency=currency,
            amount=amount,
            reason=reason.group(1).strip() if reason else "",
        )
    if "Added" in line and "license" in line:
        qty = _ADDED_QTY.search(line)
        price = _UNIT_PRICE.search(line)
        currency, amount = _money(price.group(1)) if price else (None, None)
        return CommentEntry(
            kind="added",
            line=line,
            quantity=int(qty.group(1)) if qty else 0,
            effective=_month(_EFFECTIVE, line),
            currency=currency,
            amount=amount,
        )
    return CommentEntry(kind="note", line=line)


def parse_comment_log(text: Optional[str]) -> List[CommentEntry]:
    """Parse every non-empty line of a comment log.

    License lines whose quantity cannot be read are reported as notes.
    """
    entries: List[CommentEntry] = []
    for raw in (text or "").split("\n"):
        line = raw.strip()
        if not line:
            continue
        entry = parse_comment_line(line)
        if entry.kind != "note" and entry.quantity <= 0:
            logger.debug("Unreadable license line kept as note: %s", line)
            entry = CommentEntry(kind="note", line=line)
        entries.append(entry)
    return entries


def decreases_from_comments(text: Optional[str]) -> List[CommentEntry]:
    return [e for e in parse_comment_log(text) if e.kind == "decreased"]


__all__ = [
    "CommentEntry",
    "format_added_line",
    "format_decreased_line",
    "append_comment",
    "parse_comment_line",
    "parse_comment_log",
    "decreases_from_comments",
]
