"""Scoped ownership of the temporary files one operation creates.

A ``ResourceTracker`` is opened when an operation starts. Every intermediate
path the operation creates is registered with it, and ``release`` runs when
the scope exits, whether the operation succeeded or raised. The final
artifact is produced by promoting a tracked file onto the output path, so
nothing ever appears at the output path unless the last stage succeeded.
"""

import logging
import os
import shutil
import uuid
from pathlib import Path

from splice.exceptions import ArtifactWriteError
from splice.utils.paths import safe_name

logger = logging.getLogger(__name__)


class ResourceTracker:
    """Registers temp files/directories and deletes them on scope exit."""

    def __init__(self, work_dir: str | os.PathLike):
        self.work_dir = Path(work_dir)
        self.registered: list[Path] = []
        self.released: set[Path] = set()
        self.promoted: set[Path] = set()
        self._closed = False

    # -- scope ---------------------------------------------------------------

    def open(self) -> "ResourceTracker":
        """Create the work directory and register it for removal."""
        try:
            self.work_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ArtifactWriteError(str(self.work_dir), str(e)) from e
        self.register(self.work_dir)
        return self

    def __enter__(self) -> "ResourceTracker":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()

    async def __aenter__(self) -> "ResourceTracker":
        return self.open()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.release()

    # -- registration --------------------------------------------------------

    def register(self, path: str | os.PathLike) -> Path:
        """Record a path owned by the running operation."""
        p = Path(path)
        if p not in self.registered:
            self.registered.append(p)
        return p

    def temp_path(self, label: str, suffix: str = "") -> Path:
        """Return (and register) a fresh path inside the work directory."""
        name = f"{safe_name(label)}_{uuid.uuid4().hex[:8]}{suffix}"
        return self.register(self.work_dir / name)

    def write_text(self, label: str, suffix: str, content: str) -> Path:
        """Write UTF-8 text to a new tracked file."""
        path = self.temp_path(label, suffix)
        try:
            path.write_text(content, encoding="utf-8")
        except OSError as e:
            raise ArtifactWriteError(str(path), str(e)) from e
        logger.debug(f"[TRACKER] wrote {path} ({len(content)} chars)")
        return path

    def promote(self, temp: str | os.PathLike, final: str | os.PathLike) -> Path:
        """Atomically move a tracked file onto its final path and stop tracking it."""
        src = Path(temp)
        dst = Path(final)
        try:
            os.replace(src, dst)
        except OSError as e:
            raise ArtifactWriteError(str(dst), str(e)) from e
        self.promoted.add(src)
        logger.info(f"[TRACKER] promoted {src.name} -> {dst}")
        return dst

    # -- release -------------------------------------------------------------

    @property
    def pending(self) -> list[Path]:
        """Registered paths not yet released or promoted."""
        return [p for p in self.registered if p not in self.released and p not in self.promoted]

    def release(self) -> None:
        """Delete everything still tracked. Never raises."""
        if self._closed:
            return
        self._closed = True

        remaining = self.pending
        files = [p for p in reversed(remaining) if not p.is_dir()]
        directories = [p for p in reversed(remaining) if p.is_dir()]

        for path in files:
            try:
                path.unlink(missing_ok=True)
                self.released.add(path)
            except OSError as e:
                logger.warning(f"[TRACKER] failed to delete {path}: {e}")

        # Deepest first so nested directories go before their parents
        for path in sorted(directories, key=lambda p: len(p.parts), reverse=True):
            try:
                shutil.rmtree(path)
                self.released.add(path)
            except FileNotFoundError:
                self.released.add(path)
            except OSError as e:
                logger.warning(f"[TRACKER] failed to delete directory {path}: {e}")

        logger.debug(
            f"[TRACKER] released {len(self.released)}/{len(self.registered)} paths "
            f"({len(self.promoted)} promoted)"
        )
