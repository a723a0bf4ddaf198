"""
.osu 譜面パーサ。

tosu から取得した譜面テキストを解析し、難易度エンジンに渡す
ノート列(同時押しをまとめた NoteRow)へ変換する責務を持つ。

想定仕様:
- 1行目(BOM/空行を除く)が "osu file format v.." であること
- [General] Mode, [Difficulty] CircleSize, [Metadata] と [HitObjects] のみを解釈する
- mania のカラムは x 座標から floor(x * keys / 512) で求める
- ロングノートは始点のみを扱う
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Dict, List

from src.errors import ChartParseError, ChartValidationError

MANIA_MODE = 3
SUPPORTED_KEYS = 4
PLAYFIELD_WIDTH = 512
MAX_NOTE_COUNT = 200_000
MAX_NOTE_TIME_MS = 2 * 60 * 60 * 1000

_HEADER_RE = re.compile(r"^osu file format v(\d+)\s*$")
_SECTION_RE = re.compile(r"^\[(\w+)\]\s*$")


@dataclass(frozen=True)
class HitObject:
    """[HitObjects] の1行分。time はミリ秒。"""

    x: int
    time: int
    type_flags: int


@dataclass
class OsuBeatmap:
    """パース済みの .osu 譜面。"""

    format_version: int
    mode: int = 0
    circle_size: float = 0.0
    metadata: Dict[str, str] = field(default_factory=dict)
    hit_objects: List[HitObject] = field(default_factory=list)

    @property
    def key_count(self) -> int:
        return int(round(self.circle_size))


@dataclass(frozen=True)
class NoteRow:
    """
    同時刻のノートをまとめた1行。

    Attributes:
        columns: 押下カラムのビットマスク(カラム0が最下位ビット)。
        time: 秒単位の時刻。
    """

    columns: int
    time: float


def _split_key_value(line: str, sep: str = ":") -> tuple[str, str]:
    key, _, value = line.partition(sep)
    return key.strip(), value.strip()


def _parse_hit_object(line: str, lineno: int) -> HitObject:
    parts = line.split(",")
    if len(parts) < 4:
        raise ChartParseError(f"line {lineno}: hit object has too few fields")
    try:
        # x/time は小数で書かれている譜面もある
        x = int(float(parts[0]))
        time = int(float(parts[2]))
        type_flags = int(parts[3])
    except (ValueError, OverflowError) as e:
        raise ChartParseError(f"line {lineno}: invalid hit object ({e})") from e
    return HitObject(x=x, time=time, type_flags=type_flags)


def parse_osu(text: str) -> OsuBeatmap:
    """
    .osu テキストをパースして OsuBeatmap を返す。

    Args:
        text: 譜面テキスト。

    Returns:
        OsuBeatmap。

    Raises:
        ChartParseError: ヘッダが無い、または数値項目が解釈できない場合。
    """
    lines = text.lstrip("\ufeff").splitlines()
    lineno = 0
    version = None
    for lineno, raw in enumerate(lines, start=1):
        if raw.strip():
            m = _HEADER_RE.match(raw.strip())
            if not m:
                raise ChartParseError("missing 'osu file format' header")
            version = int(m.group(1))
            break
    if version is None:
        raise ChartParseError("empty chart text")

    beatmap = OsuBeatmap(format_version=version)
    section = ""
    for lineno, raw in enumerate(lines[lineno:], start=lineno + 1):
        line = raw.strip()
        if not line or line.startswith("//"):
            continue

        m = _SECTION_RE.match(line)
        if m:
            section = m.group(1)
            continue

        if section == "General":
            key, value = _split_key_value(line)
            if key == "Mode":
                try:
                    beatmap.mode = int(value)
                except ValueError as e:
                    raise ChartParseError(f"line {lineno}: invalid Mode ({e})") from e
        elif section == "Metadata":
            key, value = _split_key_value(line)
            beatmap.metadata[key] = value
        elif section == "Difficulty":
            key, value = _split_key_value(line)
            if key == "CircleSize":
                try:
                    beatmap.circle_size = float(value)
                    if not math.isfinite(beatmap.circle_size):
                        raise ValueError(f"non-finite value: {value}")
                except ValueError as e:
                    raise ChartParseError(f"line {lineno}: invalid CircleSize ({e})") from e
        elif section == "HitObjects":
            beatmap.hit_objects.append(_parse_hit_object(line, lineno))

    return beatmap


def security_check(beatmap: OsuBeatmap) -> None:
    """
    難易度計算に渡してよい譜面かどうかを検証する。

    判定条件:
    - mania 譜面(Mode=3)であること
    - 4K であること
    - ノートが1つ以上、上限以下であること
    - ノート時刻が 0 以上、上限以下であること

    Raises:
        ChartValidationError: いずれかの条件を満たさない場合。
    """
    if beatmap.mode != MANIA_MODE:
        raise ChartValidationError(f"not a mania chart (Mode={beatmap.mode})")
    if beatmap.key_count != SUPPORTED_KEYS:
        raise ChartValidationError(f"unsupported key count: {beatmap.circle_size:g}K")
    if not beatmap.hit_objects:
        raise ChartValidationError("chart has no hit objects")
    if len(beatmap.hit_objects) > MAX_NOTE_COUNT:
        raise ChartValidationError(f"too many hit objects: {len(beatmap.hit_objects)}")
    for obj in beatmap.hit_objects:
        if not 0 <= obj.time <= MAX_NOTE_TIME_MS:
            raise ChartValidationError(f"hit object time out of range: {obj.time}")


def to_notes_merged(beatmap: OsuBeatmap) -> List[NoteRow]:
    """
    HitObject を時刻順の NoteRow 列へ変換する。

    同じ時刻(ミリ秒)のノートは1行にまとめ、カラムをビットマスクで表す。
    """
    keys = beatmap.key_count
    rows: Dict[int, int] = {}
    for obj in beatmap.hit_objects:
        column = math.floor(obj.x * keys / PLAYFIELD_WIDTH)
        column = min(max(column, 0), keys - 1)
        rows[obj.time] = rows.get(obj.time, 0) | (1 << column)
    return [NoteRow(columns=mask, time=t / 1000.0) for t, mask in sorted(rows.items())]
