"""Output writer — atomic file replacement with a single retry.

The dev server reads the output tree while builds write it. Every write
goes to a temporary sibling that is renamed over the destination, so a
reader sees either the previous file or the complete new one.
"""

from __future__ import annotations

import contextlib
import os
import tempfile
import time
from pathlib import Path

from folio._errors import BuildIOError

# Pause before the single retry of a failed read or write. Editors often
# hold a file briefly while saving.
RETRY_DELAY_S = 0.05


def read_bytes(path: Path) -> bytes:
    """Read a file, retrying once on ``OSError``.

    Raises:
        BuildIOError: If the second attempt also fails.

    """
    try:
        return path.read_bytes()
    except OSError:
        time.sleep(RETRY_DELAY_S)
    try:
        return path.read_bytes()
    except OSError as exc:
        raise BuildIOError(str(path), "read", exc) from exc


def _replace(dest: Path, data: bytes) -> None:
    dest.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=dest.parent, prefix=f".{dest.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
        os.replace(tmp_name, dest)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(tmp_name)
        raise


def write_atomic(dest: Path, data: bytes) -> None:
    """Atomically replace *dest* with *data*, retrying once.

    Raises:
        BuildIOError: If the second attempt also fails.

    """
    try:
        _replace(dest, data)
        return
    except OSError:
        time.sleep(RETRY_DELAY_S)
    try:
        _replace(dest, data)
    except OSError as exc:
        raise BuildIOError(str(dest), "write", exc) from exc


def write_if_changed(dest: Path, data: bytes) -> bool:
    """Write *data* unless *dest* already holds exactly these bytes.

    Returns True when the file was written. Unchanged files keep their
    modification time.
    """
    try:
        if dest.is_file() and dest.read_bytes() == data:
            return False
    except OSError:
        pass
    write_atomic(dest, data)
    return True


def remove_output(output_root: Path, dest: Path) -> bool:
    """Delete a generated file and prune directories it leaves empty.

    Returns True if a file was removed.
    """
    try:
        dest.unlink()
    except FileNotFoundError:
        return False
    except OSError as exc:
        raise BuildIOError(str(dest), "remove", exc) from exc

    parent = dest.parent
    while parent != output_root and output_root in parent.parents:
        try:
            parent.rmdir()
        except OSError:
            break
        parent = parent.parent
    return True


def output_file(output_root: Path, artifact_id: str) -> Path:
    """Return the path for an artifact id, refusing ids outside the output root."""
    dest = (output_root / artifact_id).resolve()
    root = output_root.resolve()
    if dest != root and root not in dest.parents:
        msg = f"artifact {artifact_id!r} escapes the output root"
        raise ValueError(msg)
    return output_root / artifact_id
