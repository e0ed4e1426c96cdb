"""
JSON file helpers for the news snapshot.

The worker is the only writer and the API server the only reader, so
whole-file atomic replacement is all the coordination needed.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def write_json_atomic(path: Path | str, document: Any) -> Path:
    """
    Write a JSON document so readers never observe a partial file.

    The document is written to a temporary file in the target's directory
    and then renamed over the target.

    Args:
        path: Destination file path.
        document: JSON-serializable document.

    Returns:
        The destination path.
    """
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(
        dir=target.parent, prefix=f"{target.name}.", suffix=".tmp"
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(document, fh, indent=2, ensure_ascii=False)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_path, target)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise

    logger.debug(f"Wrote {target}")
    return target


def read_json(path: Path | str) -> Any:
    """Read and parse a JSON file. Raises OSError or ValueError on failure."""
    with open(path, encoding="utf-8") as fh:
        return json.load(fh)
