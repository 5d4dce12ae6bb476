# SPDX-License-Identifier: Apache-2.0
"""Temporary and permanent protocol codes."""
from __future__ import annotations

import re
from datetime import datetime
from typing import Iterable

from recboard.config import settings


def temporary_code(now: datetime) -> str:
    """``SPUPREC-YYYYMMDD-NNNNNN`` from the creation time (last six ms digits)."""
    millis = int(now.timestamp() * 1000)
    return f"{settings.permanent_code_prefix}REC-{now:%Y%m%d}-{millis % 1_000_000:06d}"


def investigator_initials(name: str | None) -> str:
    words = (name or "").split()
    if not words:
        return "XX"
    if len(words) == 1:
        return f"{words[0][0]}X".upper()
    return f"{words[0][0]}{words[-1][0]}".upper()


def _pattern(prefix: str) -> re.Pattern:
    return re.compile(rf"^{re.escape(prefix)}_(\d{{4}})_(\d{{5}})_(SR|EX)_(\S{{2}})$")


def parse_permanent_code(code: str, prefix: str | None = None) -> dict | None:
    match = _pattern(prefix or settings.permanent_code_prefix).match(code or "")
    if not match:
        return None
    year, seq, review_flag, initials = match.groups()
    return {"year": int(year), "sequence": int(seq), "review_flag": review_flag, "initials": initials}


def validate_permanent_code(code: str, prefix: str | None = None) -> bool:
    return parse_permanent_code(code, prefix) is not None


def next_sequence(existing_codes: Iterable[str | None], year: int, prefix: str | None = None) -> int:
    """One past the highest sequence already issued in ``year``."""
    highest = 0
    for code in existing_codes:
        parsed = parse_permanent_code(code or "", prefix)
        if parsed and parsed["year"] == year:
            highest = max(highest, parsed["sequence"])
    return highest + 1


def permanent_code(
    year: int,
    sequence: int,
    exempt: bool,
    principal_investigator: str | None,
    prefix: str | None = None,
) -> str:
    flag = "EX" if exempt else "SR"
    initials = investigator_initials(principal_investigator)
    return f"{prefix or settings.permanent_code_prefix}_{year}_{sequence:05d}_{flag}_{initials}"
