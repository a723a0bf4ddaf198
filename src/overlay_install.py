"""
overlay アセットの配置処理。

<static_root>/<overlay_dir_name>/index.html が無い場合に、同梱の overlay ディレクトリを
コピーする。既存ファイルは上書きしない。
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

logger = logging.getLogger(__name__)


def install_overlay_if_missing(source_dir: Path, dest_dir: Path) -> bool:
    """
    dest_dir に index.html が無ければ source_dir の中身をコピーする。

    Args:
        source_dir: 同梱 overlay アセットのディレクトリ。
        dest_dir: コピー先(<static_root>/<overlay_dir_name>)。

    Returns:
        コピーを行った場合 True。既に配置済みなら False。

    Raises:
        FileNotFoundError: source_dir が存在しない場合。
        OSError: コピーに失敗した場合。
    """
    source_dir = Path(source_dir)
    dest_dir = Path(dest_dir)
    if (dest_dir / "index.html").exists():
        return False
    if not source_dir.is_dir():
        raise FileNotFoundError(f"overlay source not found: {source_dir}")

    dest_resolved = dest_dir.resolve()
    for src in sorted(source_dir.rglob("*")):
        # static root の既定値は overlay/ なので、コピー先自身は対象外にする
        src_resolved = src.resolve()
        if src_resolved == dest_resolved or dest_resolved in src_resolved.parents:
            continue
        target = dest_dir / src.relative_to(source_dir)
        if src.is_dir():
            target.mkdir(parents=True, exist_ok=True)
        elif not target.exists():
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(src, target)

    logger.info("overlay installed: %s", dest_dir)
    return True
