"""
設定の読み込み処理を提供するモジュール。

- settings.yaml から tosu の接続先やポーリング間隔などを読み込み、dataclass に変換する。
- tosu.env から overlay の配置先(STATIC_FOLDER_PATH)を解決する。
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Sequence

import yaml
from dotenv import dotenv_values

from src.errors import ConfigError

logger = logging.getLogger(__name__)

TOSU_ENV_FILE_NAME = "tosu.env"
STATIC_FOLDER_KEY = "STATIC_FOLDER_PATH"
DEFAULT_STATIC_ROOT = Path("overlay")


@dataclass(frozen=True)
class TosuConfig:
    """
    tosu API 接続設定。

    Attributes:
        base_url: tosu のベースURL。
        timeout_sec: 1リクエストあたりのタイムアウト秒。
    """

    base_url: str
    timeout_sec: float


@dataclass(frozen=True)
class EngineConfig:
    """
    難易度エンジン設定。

    Attributes:
        factory: "module:callable" 形式のエンジン生成関数。
        score_goal: calc_ssr に渡すスコア目標(%)。
    """

    factory: str
    score_goal: float


@dataclass(frozen=True)
class Settings:
    """
    アプリケーション全体設定。

    Attributes:
        poll_interval_ms: ポーリング間隔(ミリ秒)。
        overlay_dir_name: static root 配下の overlay ディレクトリ名。
        overlay_source_dir: 同梱 overlay アセットのディレクトリ。
        tosu: tosu 接続設定。
        engine: 難易度エンジン設定。
    """

    poll_interval_ms: int
    overlay_dir_name: str
    overlay_source_dir: str
    tosu: TosuConfig
    engine: EngineConfig


def load_settings(path: str, environ: Optional[Mapping[str, str]] = None) -> Settings:
    """
    settings.yaml を読み込み Settings に変換する。

    環境変数 MSD_ENGINE_FACTORY が設定されていれば engine.factory を上書きする。

    Args:
        path: settings.yaml のファイルパス。
        environ: 参照する環境変数。省略時は os.environ。

    Returns:
        Settingsオブジェクト。

    Raises:
        ConfigError: ファイルが読めない、YAMLとして不正、または値の型変換に失敗した場合。
    """
    environ = os.environ if environ is None else environ
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"settings を読み込めません: {path} ({e})") from e

    if not isinstance(data, dict):
        raise ConfigError(f"settings の形式が不正です: {path}")

    tosu_data = data.get("tosu") or {}
    engine_data = data.get("engine") or {}

    try:
        settings = Settings(
            poll_interval_ms=int(data.get("poll_interval_ms", 600)),
            overlay_dir_name=str(data.get("overlay_dir_name", "MinaCalcOnOsu")),
            overlay_source_dir=str(data.get("overlay_source_dir", "overlay")),
            tosu=TosuConfig(
                base_url=str(tosu_data.get("base_url", "http://127.0.0.1:24050")).strip(),
                timeout_sec=float(tosu_data.get("timeout_sec", 5)),
            ),
            engine=EngineConfig(
                factory=str(
                    environ.get("MSD_ENGINE_FACTORY") or engine_data.get("factory") or ""
                ).strip(),
                score_goal=float(engine_data.get("score_goal", 93.0)),
            ),
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"settings の値が不正です: {path} ({e})") from e

    if settings.poll_interval_ms <= 0:
        raise ConfigError(f"poll_interval_ms は正の値が必要です: {settings.poll_interval_ms}")
    return settings


def find_tosu_env(
    cli_path: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
    search_dirs: Sequence[Path] = (Path("."), Path("..")),
) -> Optional[Path]:
    """
    tosu.env の場所を探す。

    優先順: --tosu-env 引数 → 環境変数 TOSU_ENV_PATH → ./tosu.env → ../tosu.env

    Returns:
        見つかったパス。どれにも該当しなければ None。
    """
    environ = os.environ if environ is None else environ
    if cli_path:
        return Path(cli_path)
    if environ.get("TOSU_ENV_PATH"):
        return Path(environ["TOSU_ENV_PATH"])
    for d in search_dirs:
        cand = Path(d) / TOSU_ENV_FILE_NAME
        if cand.exists():
            return cand
    return None


def resolve_static_root(
    env_path: Optional[Path],
    environ: Optional[Mapping[str, str]] = None,
) -> Path:
    """
    overlay の配置先ルート(STATIC_FOLDER_PATH)を解決する。

    - env_path がある場合: プロセスの環境変数を優先し、無ければ tosu.env の値を使う。
      相対パスは tosu.env のあるディレクトリを基準に解決する(環境変数由来の値も同様)。
    - env_path が無い場合: 環境変数 STATIC_FOLDER_PATH、無ければ ./overlay。

    Raises:
        ConfigError: env_path が指定されているのに読めない場合。
    """
    environ = os.environ if environ is None else environ

    if env_path is None:
        value = environ.get(STATIC_FOLDER_KEY)
        return Path(value) if value else DEFAULT_STATIC_ROOT

    env_path = Path(env_path)
    if not env_path.is_file():
        raise ConfigError(f"tosu.env を読み込めません: {env_path}")

    # 不正な行は dotenv 側で読み飛ばされる
    file_values = dotenv_values(env_path, encoding="utf-8")
    value = environ.get(STATIC_FOLDER_KEY) or file_values.get(STATIC_FOLDER_KEY)
    if not value:
        logger.warning("%s が %s にありません。%s を使います", STATIC_FOLDER_KEY, env_path, DEFAULT_STATIC_ROOT)
        return DEFAULT_STATIC_ROOT

    p = Path(value)
    if p.is_absolute():
        return p
    return env_path.parent / p
