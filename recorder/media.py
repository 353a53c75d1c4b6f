"""In-memory ownership of recorded media and secure cleanup of transient files."""

import logging
import os
import tempfile
from pathlib import Path

_module_logger = logging.getLogger(__name__)

# Overwrite chunk used by secure_delete
_WIPE_CHUNK = 1024 * 1024


def secure_delete(path: Path | str | None) -> None:
    """Best-effort secure deletion of a transient media file.

    Overwrites the file with zeros, flushes it to disk and unlinks it.
    Missing files are ignored. Failures are logged, never raised, so this
    can run on every exit path.
    """
    if path is None:
        return
    path = Path(path)
    if not path.exists():
        return

    try:
        size = path.stat().st_size
        with open(path, "r+b") as f:
            remaining = size
            zeros = bytes(min(_WIPE_CHUNK, size))
            while remaining > 0:
                n = min(remaining, len(zeros))
                f.write(zeros[:n])
                remaining -= n
            f.flush()
            os.fsync(f.fileno())
    except OSError as e:
        _module_logger.warning(f"Could not overwrite {path} before deletion: {e}")

    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        _module_logger.error(f"Could not delete transient media file {path}: {e}")


class CapturedMedia:
    """Owns the bytes of one recording for the lifetime of one processing pass.

    The decoder needs a seekable file, so the bytes can be materialized into a
    private temporary file. `release()` drops the in-memory buffer and securely
    deletes every file this object created. It is idempotent.

    Usage:
        with CapturedMedia(raw_video) as media:
            path = media.materialize()
            ...
        # bytes dropped and temp file wiped here
    """

    def __init__(self, data: bytes, suffix: str = ".webm"):
        """Take ownership of recorded video bytes.

        Args:
            data: Encoded video container bytes.
            suffix: File extension hint for the decoder.
        """
        if not data:
            raise ValueError("No video data captured")
        self._data: bytes | None = data
        self._size = len(data)
        self.suffix = suffix
        self._path: Path | None = None

    @property
    def released(self) -> bool:
        """Whether the media has been released."""
        return self._data is None

    @property
    def size(self) -> int:
        """Size of the recording in bytes."""
        return self._size

    @property
    def data(self) -> bytes:
        """The recorded bytes.

        Raises:
            RuntimeError: If the media has already been released.
        """
        if self._data is None:
            raise RuntimeError("Captured media has been released")
        return self._data

    @property
    def path(self) -> Path | None:
        """Path of the materialized temp file, if any."""
        return self._path

    def materialize(self) -> Path:
        """Write the bytes to a private temporary file and return its path."""
        if self._path is not None and self._path.exists():
            return self._path

        fd, name = tempfile.mkstemp(prefix="screencontext_", suffix=self.suffix)
        self._path = Path(name)
        with os.fdopen(fd, "wb") as f:
            f.write(self.data)
        return self._path

    def release(self) -> None:
        """Drop the buffer and securely delete the materialized file."""
        self._data = None
        secure_delete(self._path)
        self._path = None

    def __enter__(self) -> "CapturedMedia":
        return self

    def __exit__(self, *args) -> None:
        self.release()

    def __repr__(self) -> str:
        state = "released" if self.released else f"{self._size} bytes"
        return f"CapturedMedia({state}, suffix={self.suffix!r})"
