"""
tosu API クライアント。

ローカルで動作する tosu から、ライブ状態(/json/v2)と
現在ロード中の譜面ファイル(/files/beatmap/file)を取得する責務を持つ。
取得結果の解釈は rate.py / score_computer.py 側で行い、本モジュールは通信のみを担当する。

例外方針:
- requests 由来の例外は StateFetchError / ChartFetchError に変換して上位へ伝播する。
- 同一 tick 内での再試行は行わない。
"""

from __future__ import annotations

import requests

from src.errors import ChartFetchError, EmptyChartError, StateFetchError
from src.models import LiveState

DEFAULT_BASE_URL = "http://127.0.0.1:24050"
STATE_PATH = "/json/v2"
CHART_FILE_PATH = "/files/beatmap/file"


def _url(base_url: str, path: str) -> str:
    return base_url.rstrip("/") + path


def fetch_live_state(
    session: requests.Session,
    base_url: str = DEFAULT_BASE_URL,
    timeout: float = 5,
) -> LiveState:
    """
    /json/v2 へHTTP GETを行い、LiveState に変換して返す。

    Args:
        session: requests.Session(互換オブジェクト可)。
        base_url: tosu のベースURL。
        timeout: リクエストのタイムアウト秒。

    Returns:
        LiveState。

    Raises:
        StateFetchError: 通信失敗、HTTPエラー、JSONデコード失敗、
                         またはボディがJSONオブジェクトでない場合。
    """
    url = _url(base_url, STATE_PATH)
    try:
        r = session.get(url, timeout=timeout)
        r.raise_for_status()
        data = r.json()
    except requests.RequestException as e:
        raise StateFetchError(f"GET {STATE_PATH} failed: {e}") from e
    except ValueError as e:
        raise StateFetchError(f"parse {STATE_PATH} failed: {e}") from e

    if not isinstance(data, dict):
        raise StateFetchError(
            f"parse {STATE_PATH} failed: expected object, got {type(data).__name__}"
        )
    return LiveState.from_json(data)


def fetch_chart_bytes(
    session: requests.Session,
    base_url: str = DEFAULT_BASE_URL,
    timeout: float = 5,
) -> bytes:
    """
    現在の譜面ファイル(.osu)の生バイト列を取得する。

    通信自体が成功しても、ボディが空の場合は失敗として扱う。

    Raises:
        ChartFetchError: 通信失敗、HTTPエラーの場合。
        EmptyChartError: レスポンスボディが空の場合。
    """
    url = _url(base_url, CHART_FILE_PATH)
    try:
        r = session.get(url, timeout=timeout)
        r.raise_for_status()
        content = r.content
    except requests.RequestException as e:
        raise ChartFetchError(f"GET {CHART_FILE_PATH} failed: {e}") from e

    if not content:
        raise EmptyChartError("No bytes from beatmap file")
    return content
