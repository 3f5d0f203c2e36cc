"""
storage/sink.py - Persistence Sink for snapshot documents.

Whole-document semantics only: every write replaces the file, every read
returns the full document. A missing file means "no prior snapshot".
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

from core.constants import ErrorCode
from core.exceptions import PersistenceError


class PersistenceSink(Protocol):
    """Durable whole-document storage."""

    def write(self, path: str, document: Dict[str, Any]) -> None: ...

    def read(self, path: str) -> Optional[Dict[str, Any]]: ...


class JsonFileSink:
    """
    JSON files on local disk.

    Writes go to a temp file in the target directory and are moved into
    place with os.replace, so readers never see a half-written document.
    """

    def write(self, path: str, document: Dict[str, Any]) -> None:
        """
        Atomically replace the document at path.

        Raises:
            PersistenceError: On any filesystem error (not retried)
        """
        target = Path(path)
        tmp_name = None
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{target.name}.", suffix=".tmp", dir=str(target.parent)
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(document, f)
            os.replace(tmp_name, target)
        except (OSError, TypeError, ValueError) as e:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise PersistenceError(
                f"Failed to write snapshot: {e}",
                code=ErrorCode.PERSISTENCE_WRITE_FAILED,
                details={"path": str(target)},
            ) from e

    def read(self, path: str) -> Optional[Dict[str, Any]]:
        """
        Read the document at path.

        Returns:
            Parsed document, or None if the file does not exist

        Raises:
            PersistenceError: If the file exists but cannot be read or parsed
        """
        try:
            with open(path, "r", encoding="utf-8") as f:
                document = json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            raise PersistenceError(
                f"Failed to read snapshot: {e}",
                code=ErrorCode.PERSISTENCE_READ_FAILED,
                details={"path": str(path)},
            ) from e

        if not isinstance(document, dict):
            raise PersistenceError(
                "Snapshot document is not an object",
                code=ErrorCode.PERSISTENCE_READ_FAILED,
                details={"path": str(path)},
            )
        return document
