"""
Local file storage for uploads and generated receipts.

Layout under the base directory:
    payers/<unix_ts>_<file name>        uploaded spreadsheets
    <kind>/<YYYY-MM-DD_HH-MM-SS>/       one directory per request and kind
"""

import time
from datetime import datetime
from pathlib import Path

from .logging import get_logger

logger = get_logger(__name__)


class LocalFileStorage:
    """FileStorage backed by the local file system."""

    def __init__(self, base_dir: str | Path, uploads_subdir: str = 'payers'):
        self.base_dir = Path(base_dir)
        self.uploads_dir = self.base_dir / uploads_subdir

    def store(self, file_name: str, data: bytes) -> Path:
        """Write the uploaded bytes under a timestamped name and return the path."""
        safe_name = Path(file_name).name
        if not safe_name:
            raise ValueError(f"invalid file name: {file_name!r}")
        self.uploads_dir.mkdir(parents=True, exist_ok=True)
        target = self.uploads_dir / f"{int(time.time())}_{safe_name}"
        target.write_bytes(data)
        logger.debug('storage.stored', path=str(target), size_bytes=len(data))
        return target

    def make_run_dir(self, kind: str) -> Path:
        """Create ``<base>/<kind>/<timestamp>`` (suffixed if it already exists)."""
        stamp = datetime.now().strftime('%Y-%m-%d_%H-%M-%S')
        parent = self.base_dir / kind
        parent.mkdir(parents=True, exist_ok=True)
        candidate = parent / stamp
        suffix = 1
        while True:
            try:
                candidate.mkdir()
                return candidate
            except FileExistsError:
                candidate = parent / f"{stamp}_{suffix}"
                suffix += 1
