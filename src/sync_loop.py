"""
同期ループ。

1 tick ごとに以下を順に実行し、(譜面, rate) が変化したときだけ msd.json を更新する。

1. /json/v2 の取得
2. rate の解決
3. 譜面ファイルの取得
4. SHA-1 + rate による変化判定
5. 難易度計算
6. msd.json の書き出し

どの段階で失敗しても、ログを出して次の tick へ進む。プロセスは終了しない。
"""

from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

import requests

from src.change_detector import build_dedupe_key, needs_recalc
from src.errors import ChartContentError, PublishError, TransientFetchError
from src.models import DedupeKey
from src.publisher import build_msd_result, write_msd_json
from src.rate import format_rate, resolve_rate
from src.score_computer import SCORE_GOAL, DifficultyEngine, compute_skillset_scores
from src.tosu_client import DEFAULT_BASE_URL, fetch_chart_bytes, fetch_live_state

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_MS = 600


class TickOutcome(enum.Enum):
    PUBLISHED = "published"
    UNCHANGED = "unchanged"
    FETCH_FAILED = "fetch_failed"
    COMPUTE_FAILED = "compute_failed"
    PUBLISH_FAILED = "publish_failed"


@dataclass
class SyncContext:
    """
    ループをまたいで保持する状態と依存オブジェクト。

    Attributes:
        session: tosu への HTTP セッション。
        engine: 難易度エンジン。
        output_path: msd.json の出力先。
        base_url: tosu のベースURL。
        timeout_sec: HTTPタイムアウト秒。
        score_goal: calc_ssr に渡すスコア目標。
        last_key: 直前に計算が成功した DedupeKey。プロセス内でのみ保持する。
    """

    session: requests.Session
    engine: DifficultyEngine
    output_path: Path
    base_url: str = DEFAULT_BASE_URL
    timeout_sec: float = 5
    score_goal: float = SCORE_GOAL
    last_key: Optional[DedupeKey] = None


def run_tick(ctx: SyncContext) -> TickOutcome:
    """
    1回分の同期処理を行う。

    last_key は計算が成功した時点で更新する。書き出しに失敗しても戻さないため、
    書き出しだけが失敗した場合は (譜面, rate) が変わるまで再試行されない。

    Returns:
        この tick の結果。
    """
    try:
        state = fetch_live_state(ctx.session, ctx.base_url, ctx.timeout_sec)
        rate = resolve_rate(state)
        rate_str = format_rate(rate)
        chart_bytes = fetch_chart_bytes(ctx.session, ctx.base_url, ctx.timeout_sec)
    except TransientFetchError as e:
        logger.warning("%s", e)
        return TickOutcome.FETCH_FAILED

    key = build_dedupe_key(chart_bytes, rate_str)
    if not needs_recalc(ctx.last_key, key):
        return TickOutcome.UNCHANGED

    try:
        scores = compute_skillset_scores(chart_bytes, rate, ctx.engine, ctx.score_goal)
    except ChartContentError as e:
        logger.error("MSD calculation skipped: %s", e)
        return TickOutcome.COMPUTE_FAILED

    ctx.last_key = key

    result = build_msd_result(state, scores, rate_str)
    try:
        write_msd_json(ctx.output_path, result)
    except PublishError as e:
        logger.warning("failed to write msd.json: %s", e)
        return TickOutcome.PUBLISH_FAILED

    logger.info("msd.json updated: %s [%s] @%sx", result.song, result.diff, result.rate)
    return TickOutcome.PUBLISHED


def run_forever(
    ctx: SyncContext,
    interval_ms: int = DEFAULT_POLL_INTERVAL_MS,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
    max_ticks: Optional[int] = None,
) -> None:
    """
    固定間隔で run_tick を繰り返す。

    間隔は tick の開始時刻から測り、処理が間隔を超えた場合は待たずに次の tick へ進む。
    想定外の例外もログに残して継続する。

    Args:
        ctx: 同期コンテキスト。
        interval_ms: tick 間隔(ミリ秒)。
        sleep: 待機関数。
        clock: 単調増加する時計。
        max_ticks: 指定時はその回数で終了する。None なら終了しない。
    """
    interval = interval_ms / 1000.0
    ticks = 0
    while max_ticks is None or ticks < max_ticks:
        started = clock()
        try:
            run_tick(ctx)
        except Exception:
            logger.exception("unexpected error in sync tick")
        ticks += 1

        remaining = interval - (clock() - started)
        if remaining > 0:
            sleep(remaining)
