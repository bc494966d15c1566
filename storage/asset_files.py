"""Filesystem area for asset bytes and plain-text article exports."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Optional, Union
from uuid import uuid4

from config import get_storage_settings

logger = logging.getLogger(__name__)


def _atomic_write(target: Path, data: bytes) -> Path:
    """Write through a hidden temp file so the final path is never partial."""
    target.parent.mkdir(parents=True, exist_ok=True)
    tmp_target = target.parent / f".{target.name}.{uuid4().hex}.tmp"
    try:
        tmp_target.write_bytes(data)
        tmp_target.replace(target)
    except BaseException:
        if tmp_target.exists():
            tmp_target.unlink()
        raise
    return target


class AssetFileStore:
    """
    Layout::

        <asset_dir>/<article_id>/<asset_id>.<ext>
        <export_dir>/<article_id>.txt

    Paths are partitioned by article and asset id, so concurrent runs never
    write to the same file.
    """

    def __init__(
        self,
        asset_dir: Optional[Union[str, Path]] = None,
        export_dir: Optional[Union[str, Path]] = None,
    ):
        settings = get_storage_settings()
        self.asset_dir = Path(asset_dir or settings.asset_dir)
        self.export_dir = Path(export_dir or settings.export_dir)

    def article_dir(self, article_id: str) -> Path:
        return self.asset_dir / str(article_id)

    def export_path(self, article_id: str) -> Path:
        return self.export_dir / f"{article_id}.txt"

    def write(self, article_id: str, asset_id: str, extension: str, data: bytes) -> Path:
        ext = str(extension or "jpg").lstrip(".") or "jpg"
        target = self.article_dir(article_id) / f"{asset_id}.{ext}"
        return _atomic_write(target, data)

    def export_text(self, article_id: str, text: str) -> Path:
        return _atomic_write(self.export_path(article_id), str(text or "").encode("utf-8"))

    def remove_article(self, article_id: str) -> None:
        """Delete an article's asset directory and text export, if present."""
        directory = self.article_dir(article_id)
        if directory.exists():
            shutil.rmtree(directory)
        export = self.export_path(article_id)
        if export.exists():
            export.unlink()
        logger.debug(f"Removed files for article {article_id}")
