import argparse
import logging
import os
import sys
from pathlib import Path

import requests

from src.config import find_tosu_env, load_settings, resolve_static_root
from src.overlay_install import install_overlay_if_missing
from src.publisher import msd_json_path
from src.score_computer import load_engine
from src.sync_loop import SyncContext, run_forever, run_tick

PROJECT_ROOT = Path(__file__).resolve().parent
DEFAULT_SETTINGS_PATH = PROJECT_ROOT / "settings.yaml"

logger = logging.getLogger("msd_sync")


def configure_logging(debug: bool) -> None:
    """
    ルートロガーを設定する。

    --debug 指定時は DEBUG、それ以外は環境変数 MSD_LOG_LEVEL(既定 INFO)。
    """
    level = logging.DEBUG if debug else os.environ.get("MSD_LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=level,
        format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
        force=True,
    )


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="tosu の譜面/rate から MSD を計算し msd.json を更新する")
    parser.add_argument(
        "--settings",
        default=str(DEFAULT_SETTINGS_PATH),
        help="settings.yaml のパス",
    )
    parser.add_argument(
        "--tosu-env",
        default=None,
        help="tosu.env のパス(未指定時は TOSU_ENV_PATH, ./tosu.env, ../tosu.env の順に探す)",
    )
    parser.add_argument("--once", action="store_true", help="1 tick だけ実行して終了する")
    parser.add_argument("--debug", action="store_true")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    """
    MSD 同期処理のメイン処理。

    以下の処理を順序実行する:
    1. settings.yaml の読み込み
    2. tosu.env から overlay の配置先を解決
    3. overlay アセットが未配置なら配置(失敗しても継続)
    4. 難易度エンジンの初期化
    5. 同期ループ開始

    1, 2, 4 の失敗は起動失敗として例外をそのまま送出する。
    """
    args = parse_args(argv)
    configure_logging(args.debug)

    settings = load_settings(args.settings)
    static_root = resolve_static_root(find_tosu_env(args.tosu_env))
    overlay_dir = static_root / settings.overlay_dir_name

    try:
        install_overlay_if_missing(PROJECT_ROOT / settings.overlay_source_dir, overlay_dir)
    except OSError as e:
        logger.warning("overlay install skipped: %s", e)

    engine = load_engine(settings.engine.factory)

    ctx = SyncContext(
        session=requests.Session(),
        engine=engine,
        output_path=msd_json_path(static_root, settings.overlay_dir_name),
        base_url=settings.tosu.base_url,
        timeout_sec=settings.tosu.timeout_sec,
        score_goal=settings.engine.score_goal,
    )
    logger.info("writing %s (poll every %d ms)", ctx.output_path, settings.poll_interval_ms)

    if args.once:
        outcome = run_tick(ctx)
        print(outcome.value)
        return 0

    try:
        run_forever(ctx, settings.poll_interval_ms)
    except KeyboardInterrupt:
        logger.info("stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
