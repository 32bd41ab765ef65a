"""State persistence for the pingme daemon.

The whole `DaemonState` is stored as one JSON document (by default
~/.pingme/state.json). Writes go to a temp file in the same directory and
are renamed into place, so readers only ever see a complete old or new file.
"""

import logging
import os
import tempfile
from pathlib import Path

import orjson

from pingme.core.session import DaemonState

logger = logging.getLogger(__name__)


def empty_state() -> DaemonState:
    """A fresh state with no sessions, calls or queued instructions."""
    return DaemonState()


def load_state(path: Path) -> DaemonState:
    """Load daemon state from disk.

    Args:
        path: State file path.

    Returns:
        The stored state, or an empty state if the file is missing or
        can't be parsed.
    """
    if not path.exists():
        return empty_state()
    try:
        content = path.read_bytes()
        return DaemonState.from_dict(orjson.loads(content) if content else {})
    except (orjson.JSONDecodeError, OSError) as e:
        logger.warning(f"Could not read state file {path}, starting empty: {e}")
        return empty_state()


def dump_state(state: DaemonState) -> bytes:
    """Serialize state to the JSON bytes stored on disk."""
    return orjson.dumps(state.to_dict(), option=orjson.OPT_INDENT_2)


def write_state(data: bytes, path: Path) -> None:
    """Atomically replace `path` with already-serialized state.

    Raises:
        OSError: If the directory can't be created or the write fails.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def save_state(state: DaemonState, path: Path) -> None:
    """Atomically write daemon state to disk.

    Args:
        state: State to persist.
        path: Destination file.

    Raises:
        OSError: If the directory can't be created or the write fails.
    """
    write_state(dump_state(state), path)
