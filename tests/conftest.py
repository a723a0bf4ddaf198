from __future__ import annotations

import json
import sys
from pathlib import Path

import pytest
import requests

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from src.osu_parser import NoteRow

SAMPLE_OSU = """osu file format v14

[General]
AudioFilename: audio.mp3
Mode: 3

[Metadata]
Title:B
Artist:A
Version:Hard

[Difficulty]
HPDrainRate:8
CircleSize:4
OverallDifficulty:8

[HitObjects]
64,192,1000,1,0,0:0:0:0:
192,192,1000,1,0,0:0:0:0:
320,192,1250,1,0,0:0:0:0:
448,192,1500,128,0,1800:0:0:0:0:
"""


class FakeResponse:
    """requests.Response の必要最小限の代替。"""

    def __init__(self, status_code: int = 200, content: bytes = b""):
        self.status_code = status_code
        self.content = content

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error")

    def json(self):
        return json.loads(self.content.decode("utf-8"))


class FakeSession:
    """
    URL の末尾パスごとに応答を返す requests.Session の代替。

    routes の値は FakeResponse、例外インスタンス、またはそれらのリスト(呼び出し順に消費)。
    """

    def __init__(self, routes: dict):
        self.routes = routes
        self.calls: list[str] = []

    def get(self, url: str, timeout=None):
        self.calls.append(url)
        for path, value in self.routes.items():
            if url.endswith(path):
                if isinstance(value, list):
                    value = value.pop(0) if len(value) > 1 else value[0]
                if isinstance(value, Exception):
                    raise value
                return value
        raise requests.ConnectionError(f"no route: {url}")


class FakeEngine:
    """calc_ssr の呼び出しを記録する難易度エンジンの代替。"""

    def __init__(self, error: Exception | None = None):
        self.calls: list[tuple[list[NoteRow], float, float]] = []
        self.error = error

    def calc_ssr(self, notes, rate, goal):
        self.calls.append((notes, rate, goal))
        if self.error is not None:
            raise self.error
        return {
            "overall": 20.0 * rate,
            "stamina": 18.5,
            "jumpstream": 19.25,
            "handstream": 17.0,
            "stream": 21.5,
            "chordjack": 15.0,
            "jackspeed": 12.75,
            "technical": 16.0,
        }


def state_response(payload: dict) -> FakeResponse:
    return FakeResponse(200, json.dumps(payload).encode("utf-8"))


@pytest.fixture
def sample_osu_bytes() -> bytes:
    return SAMPLE_OSU.encode("utf-8")


@pytest.fixture
def fake_engine() -> FakeEngine:
    return FakeEngine()
