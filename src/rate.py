"""
再生速度(rate)の解決処理。

tosu の /json/v2 はビルドによって rate の出し方が異なるため、
複数の取得ルールを優先順に並べ、最初に値を返したルールを採用する。

優先順:
1. play.mods.rate
2. play.mods.array[0] の rate → settings.speed_change
3. ルートの mods に対して 1, 2 と同じ確認
4. mod 名(play.mods.name)からの推定。DT/NC は 1.5、HT/DC は 0.75、それ以外は 1.0

resolve_rate は例外を送出せず、必ず正の float を返す。
"""

from __future__ import annotations

import math
from typing import Callable, Optional

from src.models import LiveState, ModsInfo

DEFAULT_RATE = 1.0
DOUBLE_TIME_RATE = 1.5
HALF_TIME_RATE = 0.75

_DOUBLE_TIME_MARKERS = ("NC", "DT")
_HALF_TIME_MARKERS = ("HT", "DC")

RateRule = Callable[[LiveState], Optional[float]]


def _valid(rate: Optional[float]) -> Optional[float]:
    """有限の正の値のみを rate として認める。"""
    if rate is None or not math.isfinite(rate) or rate <= 0:
        return None
    return rate


def _explicit_rate(mods: Optional[ModsInfo]) -> Optional[float]:
    if mods is None:
        return None
    return _valid(mods.rate)


def _first_entry_rate(mods: Optional[ModsInfo]) -> Optional[float]:
    if mods is None or not mods.entries:
        return None
    entry = mods.entries[0]
    rate = _valid(entry.rate)
    if rate is not None:
        return rate
    return _valid(entry.speed_change)


def play_mods_rate(state: LiveState) -> Optional[float]:
    return _explicit_rate(state.play_mods)


def play_mods_array_rate(state: LiveState) -> Optional[float]:
    return _first_entry_rate(state.play_mods)


def root_mods_rate(state: LiveState) -> Optional[float]:
    return _explicit_rate(state.root_mods)


def root_mods_array_rate(state: LiveState) -> Optional[float]:
    return _first_entry_rate(state.root_mods)


def rate_from_mod_name(state: LiveState) -> float:
    """
    mod 名から rate を推定する。

    play.mods が無い場合はルートの mods.name を参照する。
    どちらにも該当マーカーが無ければ 1.0 を返す。
    """
    mods = state.play_mods if state.play_mods is not None else state.root_mods
    name = (mods.name if mods is not None else None) or ""
    if any(m in name for m in _DOUBLE_TIME_MARKERS):
        return DOUBLE_TIME_RATE
    if any(m in name for m in _HALF_TIME_MARKERS):
        return HALF_TIME_RATE
    return DEFAULT_RATE


RATE_RULES: tuple[RateRule, ...] = (
    play_mods_rate,
    play_mods_array_rate,
    root_mods_rate,
    root_mods_array_rate,
    rate_from_mod_name,
)


def resolve_rate(state: LiveState, rules: tuple[RateRule, ...] = RATE_RULES) -> float:
    """
    rules を先頭から評価し、最初に得られた rate を返す。

    Args:
        state: /json/v2 のスナップショット。
        rules: 評価するルール列。

    Returns:
        正の rate。どのルールも値を返さなければ 1.0。
    """
    for rule in rules:
        rate = rule(state)
        if rate is not None:
            return rate
    return DEFAULT_RATE


def format_rate(rate: float) -> str:
    """rate を小数2桁の文字列にする(例: 1.5 -> "1.50")。"""
    return f"{rate:.2f}"
