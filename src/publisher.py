"""
msd.json の書き出し処理。

計算結果と表示用メタ情報を MsdResult にまとめ、overlay が読むパスへ書き出す。
overlay 側が書き込み途中のファイルを読まないよう、同じディレクトリの一時ファイルへ
書いてから os.replace で置き換える。
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path

from src.errors import PublishError
from src.models import LiveState, MsdResult, SkillsetScores

MSD_FILE_NAME = "msd.json"


def build_msd_result(state: LiveState, scores: SkillsetScores, rate_str: str) -> MsdResult:
    return MsdResult(
        song=state.beatmap.song_label,
        diff=state.beatmap.diff_label,
        scores=scores,
        rate=rate_str,
    )


def msd_json_path(static_root: Path, overlay_dir_name: str) -> Path:
    """<static_root>/<overlay_dir_name>/msd.json を返す。"""
    return Path(static_root) / overlay_dir_name / MSD_FILE_NAME


def write_msd_json(path: Path, result: MsdResult) -> None:
    """
    MsdResult を JSON として path へ原子的に書き出す。

    Args:
        path: 出力先 msd.json のパス。
        result: 書き出す内容。

    Raises:
        PublishError: ディレクトリ作成、書き込み、置き換えのいずれかに失敗した場合。
    """
    path = Path(path)
    try:
        payload = json.dumps(result.to_json_dict(), ensure_ascii=False, allow_nan=False)
    except ValueError as e:
        raise PublishError(f"msd.json に書けない値があります: {e}") from e

    tmp_name = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent)
        )
        with os.fdopen(fd, "w", encoding="utf-8") as file_obj:
            file_obj.write(payload)
        # mkstemp は 0600 で作るため、別ユーザーの overlay サーバーからも読めるようにする
        os.chmod(tmp_name, 0o644)
        os.replace(tmp_name, path)
        tmp_name = None
    except OSError as e:
        raise PublishError(f"failed to write {path}: {e}") from e
    finally:
        if tmp_name is not None and os.path.exists(tmp_name):
            os.remove(tmp_name)
