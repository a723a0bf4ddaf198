"""
譜面内容と rate による再計算要否の判定。

譜面バイト列の SHA-1 と2桁の rate 文字列を DedupeKey とし、
直前に計算したキーと比較して同一なら再計算をスキップする。
"""

from __future__ import annotations

import hashlib
from typing import Optional

from src.models import DedupeKey


def chart_fingerprint(data: bytes) -> str:
    """
    譜面バイト列の SHA-1(16進)を返す。

    Raises:
        ValueError: data が空の場合。空の譜面はフィンガープリント対象にしない。
    """
    if not data:
        raise ValueError("empty chart bytes cannot be fingerprinted")
    return hashlib.sha1(data).hexdigest()


def build_dedupe_key(data: bytes, rate_str: str) -> DedupeKey:
    return DedupeKey(fingerprint=chart_fingerprint(data), rate=rate_str)


def needs_recalc(previous: Optional[DedupeKey], current: DedupeKey) -> bool:
    """
    直前のキーと異なる場合に True を返す。

    previous が None(起動直後、または一度も計算が成功していない)の場合は常に True。
    """
    return previous != current
