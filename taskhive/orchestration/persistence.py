"""File persistence helpers: atomic writes and the autonomy switch file."""
from __future__ import annotations

import asyncio
import os
import tempfile
from pathlib import Path
from typing import Optional

import structlog
from pydantic import ValidationError

from taskhive.orchestration.models import AutonomyFile

logger = structlog.get_logger(__name__)


def atomic_write_text(path: Path, text: str) -> None:
    """Write ``text`` to a temp file next to ``path`` and rename it into place."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(text)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


async def load_autonomy(path: Optional[Path]) -> Optional[AutonomyFile]:
    if path is None:
        return None
    try:
        raw = await asyncio.to_thread(path.read_bytes)
    except FileNotFoundError:
        logger.info("autonomy_file_missing", path=str(path))
        return None
    try:
        return AutonomyFile.model_validate_json(raw)
    except ValidationError as exc:
        logger.error("autonomy_file_invalid", path=str(path), error=str(exc))
        return None


async def save_autonomy(path: Optional[Path], autonomy: AutonomyFile) -> None:
    if path is None:
        return
    await asyncio.to_thread(atomic_write_text, path, autonomy.model_dump_json(indent=2))
