"""
データモデル定義モジュール。

tosu の /json/v2 レスポンスを内部処理へ渡すための LiveState と、
難易度計算結果・出力用の MsdResult などを定義する。

/json/v2 はバージョンによってスキーマが揺れるため、
from_json 系の変換では欠損・型違いを None として吸収する。
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

UNKNOWN_SONG = "Unknown Song"


def _as_str(value: Any) -> Optional[str]:
    """文字列なら返し、それ以外は None を返す。"""
    return value if isinstance(value, str) else None


def _as_number(value: Any) -> Optional[float]:
    """数値(boolを除く)なら float で返し、それ以外は None を返す。"""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        return float(value)
    except OverflowError:
        return None


def _as_mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


@dataclass(frozen=True)
class BeatmapLabels:
    """
    表示用の譜面メタ情報。

    Attributes:
        artist: アーティスト名。
        title: 曲名。
        version: 難易度名(osu! の Version)。
    """

    artist: Optional[str] = None
    title: Optional[str] = None
    version: Optional[str] = None

    @classmethod
    def from_json(cls, data: Any) -> "BeatmapLabels":
        data = _as_mapping(data)
        return cls(
            artist=_as_str(data.get("artist")),
            title=_as_str(data.get("title")),
            version=_as_str(data.get("version")),
        )

    @property
    def song_label(self) -> str:
        """
        "artist - title" 形式の表示名を返す。

        artist/title がどちらも空の場合は "Unknown Song" を返す。
        """
        artist = self.artist or ""
        title = self.title or ""
        if artist or title:
            return f"{artist} - {title}"
        return UNKNOWN_SONG

    @property
    def diff_label(self) -> str:
        return self.version or ""


@dataclass(frozen=True)
class ModEntry:
    """mods.array の1要素。rate と settings.speed_change を保持する。"""

    rate: Optional[float] = None
    speed_change: Optional[float] = None

    @classmethod
    def from_json(cls, data: Any) -> "ModEntry":
        data = _as_mapping(data)
        settings = _as_mapping(data.get("settings"))
        return cls(
            rate=_as_number(data.get("rate")),
            speed_change=_as_number(settings.get("speed_change")),
        )


@dataclass(frozen=True)
class ModsInfo:
    """
    mods 構造体。

    Attributes:
        name: "HDDT" のような mod 略称の連結文字列。
        rate: 明示的な再生速度。
        entries: mods.array の要素。array が無い場合は空タプル。
    """

    name: Optional[str] = None
    rate: Optional[float] = None
    entries: tuple[ModEntry, ...] = ()

    @classmethod
    def from_json(cls, data: Any) -> Optional["ModsInfo"]:
        """mods がオブジェクトでない場合は None を返す。"""
        if not isinstance(data, Mapping):
            return None
        array = data.get("array")
        entries = tuple(ModEntry.from_json(e) for e in array) if isinstance(array, list) else ()
        return cls(
            name=_as_str(data.get("name")),
            rate=_as_number(data.get("rate")),
            entries=entries,
        )


@dataclass(frozen=True)
class LiveState:
    """
    /json/v2 の1回分のスナップショット。

    mods は play.mods とルートの mods の両方に出現しうる。
    """

    beatmap: BeatmapLabels = field(default_factory=BeatmapLabels)
    play_mods: Optional[ModsInfo] = None
    root_mods: Optional[ModsInfo] = None

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> "LiveState":
        play = _as_mapping(data.get("play"))
        return cls(
            beatmap=BeatmapLabels.from_json(data.get("beatmap")),
            play_mods=ModsInfo.from_json(play.get("mods")),
            root_mods=ModsInfo.from_json(data.get("mods")),
        )


@dataclass(frozen=True)
class DedupeKey:
    """再計算要否の判定に用いる (譜面SHA-1, 2桁rate文字列) の組。"""

    fingerprint: str
    rate: str


SKILLSET_FIELDS = (
    "overall",
    "stamina",
    "jumpstream",
    "handstream",
    "stream",
    "chordjack",
    "jackspeed",
    "technical",
)


@dataclass(frozen=True)
class SkillsetScores:
    """難易度エンジンが返すスキルセット別スコア。"""

    overall: float
    stamina: float
    jumpstream: float
    handstream: float
    stream: float
    chordjack: float
    jackspeed: float
    technical: float

    @classmethod
    def from_engine_result(cls, result: Any) -> "SkillsetScores":
        """
        エンジンの戻り値を SkillsetScores に変換する。

        dict 形式と属性形式のどちらの戻り値も受け付ける。

        Raises:
            KeyError / AttributeError: 必須項目が欠けている場合。
            TypeError / ValueError: 数値に変換できない場合、または NaN/inf を含む場合。
        """
        if isinstance(result, Mapping):
            get = result.__getitem__
        else:
            def get(name: str) -> Any:
                return getattr(result, name)
        values = {name: float(get(name)) for name in SKILLSET_FIELDS}
        for name, value in values.items():
            if not math.isfinite(value):
                raise ValueError(f"non-finite {name}: {value}")
        return cls(**values)


@dataclass(frozen=True)
class MsdResult:
    """overlay へ公開する msd.json の内容。"""

    song: str
    diff: str
    scores: SkillsetScores
    rate: str

    def to_json_dict(self) -> dict:
        """msd.json のフィールド名・順序で辞書化する。"""
        s = self.scores
        return {
            "song": self.song,
            "diff": self.diff,
            "overall": s.overall,
            "stamina": s.stamina,
            "jumpstream": s.jumpstream,
            "handstream": s.handstream,
            "stream": s.stream,
            "chordjack": s.chordjack,
            "jacks": s.jackspeed,
            "technical": s.technical,
            "rate": self.rate,
        }
