"""
難易度(MSD)計算処理。

譜面バイト列と rate から、外部の難易度エンジンを用いて SkillsetScores を求める。
エンジン本体は本リポジトリの外にあり、設定(engine.factory)で指定された
"module:callable" を起動時に1度だけ呼び出して生成する。

エンジンに要求するインターフェース:
    calc_ssr(notes: list[NoteRow], rate: float, goal: float) -> SkillsetScores 相当
    (dict でも属性を持つオブジェクトでもよい。項目は models.SKILLSET_FIELDS)

例外方針:
- デコード、パース、検証、変換、エンジン呼び出しのどの段階の失敗も
  ChartContentError の派生例外として送出する。
"""

from __future__ import annotations

import importlib
import logging
from typing import Any, List, Protocol

from src.errors import (
    ChartContentError,
    ChartDecodeError,
    EngineComputeError,
    EngineInitError,
)
from src.models import SkillsetScores
from src.osu_parser import NoteRow, parse_osu, security_check, to_notes_merged

logger = logging.getLogger(__name__)

# MSD の算出に一般的に使われる Etterna のスコア目標
SCORE_GOAL = 93.0


class DifficultyEngine(Protocol):
    def calc_ssr(self, notes: List[NoteRow], rate: float, goal: float) -> Any: ...


def load_engine(target: str) -> DifficultyEngine:
    """
    "package.module:factory" 形式の指定から難易度エンジンを生成する。

    Args:
        target: モジュールパスと呼び出し可能オブジェクト名を ":" で連結した文字列。

    Returns:
        calc_ssr を持つエンジンオブジェクト。

    Raises:
        EngineInitError: 指定が空・不正、import 失敗、生成失敗、
                         または calc_ssr を持たない場合。
    """
    module_name, _, attr = (target or "").partition(":")
    if not module_name or not attr:
        raise EngineInitError(f"engine.factory は 'module:callable' 形式で指定してください: {target!r}")

    try:
        module = importlib.import_module(module_name)
        factory = getattr(module, attr)
        engine = factory()
    except Exception as e:
        raise EngineInitError(f"engine initialization failed: {target} ({e})") from e

    if not callable(getattr(engine, "calc_ssr", None)):
        raise EngineInitError(f"engine has no calc_ssr(): {target}")

    logger.info("difficulty engine loaded: %s", target)
    return engine


def decode_chart(data: bytes) -> str:
    """譜面バイト列を UTF-8(BOM付き可)としてデコードする。"""
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise ChartDecodeError(f"invalid UTF-8 .osu: {e}") from e


def compute_skillset_scores(
    chart_bytes: bytes,
    rate: float,
    engine: DifficultyEngine,
    goal: float = SCORE_GOAL,
) -> SkillsetScores:
    """
    譜面バイト列を解析し、指定 rate での SkillsetScores を計算する。

    処理順:
    1. UTF-8 デコード
    2. .osu パース
    3. security_check による検証
    4. NoteRow 列への変換
    5. engine.calc_ssr(notes, rate, goal)

    Raises:
        ChartContentError: いずれかの段階で失敗した場合(派生例外で種別を表す)。
    """
    text = decode_chart(chart_bytes)
    beatmap = parse_osu(text)
    security_check(beatmap)
    notes = to_notes_merged(beatmap)

    try:
        result = engine.calc_ssr(notes, rate, goal)
        return SkillsetScores.from_engine_result(result)
    except ChartContentError:
        raise
    except Exception as e:
        raise EngineComputeError(f"calc_ssr failed: {e}") from e
