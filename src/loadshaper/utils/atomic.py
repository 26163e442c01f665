"""
Atomic file writing for result and analysis files.

Content is written to a temporary file in the target directory, flushed to
disk, then moved into place with ``os.replace`` so readers never observe a
partially written file.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict

import structlog
from pydantic import BaseModel

logger = structlog.get_logger(__name__)


def atomic_write_text(target_path: Path, content: str) -> None:
    """
    Atomically replace ``target_path`` with ``content``.

    Raises:
        OSError: If the temporary file cannot be written or moved into place
    """
    target_path = Path(target_path)
    target_path.parent.mkdir(parents=True, exist_ok=True)
    temp_file_path = None

    try:
        with tempfile.NamedTemporaryFile(
            mode="w",
            dir=target_path.parent,
            prefix=f".{target_path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        ) as temp_file:
            temp_file_path = Path(temp_file.name)
            temp_file.write(content)
            temp_file.flush()
            os.fsync(temp_file.fileno())

        os.replace(str(temp_file_path), str(target_path))
        logger.debug("Atomic write completed", target=str(target_path), bytes=len(content))
    except OSError as e:
        logger.error("Atomic write failed", target=str(target_path), error=str(e))
        if temp_file_path and temp_file_path.exists():
            temp_file_path.unlink(missing_ok=True)
        raise


def atomic_write_json(target_path: Path, data: Dict[str, Any] | BaseModel) -> None:
    """
    Atomically write a dict or pydantic model as indented JSON.

    Raises:
        ValueError: If a dict cannot be serialised to JSON
        OSError: If writing fails
    """
    if isinstance(data, BaseModel):
        content = data.model_dump_json(indent=2)
    else:
        try:
            content = json.dumps(data, indent=2, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            logger.error("Failed to serialize data to JSON", error=str(e))
            raise ValueError(f"Cannot serialize data to JSON: {e}") from e
    atomic_write_text(target_path, content)
