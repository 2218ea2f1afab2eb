from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Union

from aiofiles import tempfile

log = logging.getLogger(__name__)


async def write_file_async(file_path: Path, data: Union[str, bytes], *, file_mode: int = 0o644) -> None:
    """
    Writes the provided data to a temporary file beside `file_path` and then renames it into place,
    so readers observe either no file or the complete file.
    """

    os.makedirs(file_path.parent, exist_ok=True)

    mode: str = "w" if isinstance(data, str) else "wb"
    async with tempfile.NamedTemporaryFile(
        dir=file_path.parent, mode=mode, prefix=".", suffix=".tmp", delete=False
    ) as f:
        temp_file_path = Path(f.name)
        await f.write(data)

    try:
        os.chmod(temp_file_path, file_mode)
        os.replace(temp_file_path, file_path)
    except OSError:
        log.debug(f"Failed to move temp file {temp_file_path} to {file_path}")
        try:
            temp_file_path.unlink()
        except FileNotFoundError:
            pass
        raise
