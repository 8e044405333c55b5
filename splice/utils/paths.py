"""Logical path scheme for project media.

Sources and artifacts are addressed as ``/projects/{projectId}/{folder}/{filename}``
where ``folder`` is ``source`` or ``artifacts``. The pipeline translates these
to host paths under one configured project root and never lets a logical
path escape that root.
"""

import os
import re
from pathlib import Path
from urllib.parse import unquote

from splice.exceptions import ArtifactWriteError, InvalidPathError

LOGICAL_PREFIX = "/projects/"
SOURCE_FOLDER = "source"
ARTIFACTS_FOLDER = "artifacts"
FOLDERS = (SOURCE_FOLDER, ARTIFACTS_FOLDER)

_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9._-]")
# Leading "scheme://host" of an absolute URL
_SCHEME_AND_HOST = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]*://[^/]*")


def safe_name(value: str) -> str:
    """Replace characters that are unsafe in file names with underscores."""
    return _UNSAFE_NAME_CHARS.sub("_", value)


def artifact_filename(sequence_number: int, operation_type: str, operation_id: str) -> str:
    """Deterministic artifact name: ``v{sequence}_{type}_{id}.mp4``.

    Operation ids are restricted to file-name-safe characters when parsed,
    so the id is used verbatim.
    """
    return f"v{sequence_number}_{operation_type}_{operation_id}.mp4"


class ProjectPaths:
    """Translate between logical project paths and host filesystem paths."""

    def __init__(self, project_root: str | os.PathLike):
        self.root = Path(project_root).resolve()

    def _contained(self, path: Path, original: str) -> Path:
        resolved = path.resolve()
        if resolved != self.root and self.root not in resolved.parents:
            raise InvalidPathError(original, "escapes project root")
        return resolved

    def project_dir(self, project_id: str) -> Path:
        if not project_id or project_id in (".", "..") or "/" in project_id or "\\" in project_id:
            raise InvalidPathError(project_id, "invalid project id")
        return self._contained(self.root / project_id, project_id)

    def folder_dir(self, project_id: str, folder: str) -> Path:
        if folder not in FOLDERS:
            raise InvalidPathError(folder, f"folder must be one of {', '.join(FOLDERS)}")
        return self.project_dir(project_id) / folder

    def artifacts_dir(self, project_id: str) -> Path:
        return self.folder_dir(project_id, ARTIFACTS_FOLDER)

    def ensure_artifacts_dir(self, project_id: str) -> Path:
        """Create the artifacts directory if needed (idempotent)."""
        directory = self.artifacts_dir(project_id)
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ArtifactWriteError(str(directory), str(e)) from e
        return directory

    @staticmethod
    def logical_path(project_id: str, folder: str, filename: str) -> str:
        return f"{LOGICAL_PREFIX}{project_id}/{folder}/{filename}"

    def artifact_logical_path(self, project_id: str, filename: str) -> str:
        return self.logical_path(project_id, ARTIFACTS_FOLDER, filename)

    def to_host_path(self, logical_path: str) -> Path:
        """Resolve ``/projects/{id}/{folder}/{file...}`` to a host path.

        Raises:
            InvalidPathError: the path does not follow the scheme or escapes the root.
        """
        if not logical_path or not logical_path.startswith(LOGICAL_PREFIX):
            raise InvalidPathError(logical_path, f"must start with {LOGICAL_PREFIX}")

        relative = unquote(logical_path[len(LOGICAL_PREFIX):])
        parts = [p for p in relative.split("/") if p]
        if len(parts) < 3:
            raise InvalidPathError(logical_path, "expected /projects/{id}/{folder}/{filename}")

        project_id, folder, *rest = parts
        base = self.folder_dir(project_id, folder)
        return self._contained(base.joinpath(*rest), logical_path)

    def resolve_clip_url(self, project_id: str, url: str) -> Path:
        """Resolve a stitch clip URL to a host path inside the project.

        Only the final path segment is used (percent-decoded); the folder is
        ``artifacts`` when the URL points into an artifacts directory and
        ``source`` otherwise. Clips are always resolved against the project
        running the operation.
        """
        # Raw split: "#" and "?" are legal in uploaded file names
        path_part = _SCHEME_AND_HOST.sub("", url)
        raw_name = path_part.rstrip("/").split("/")[-1]
        filename = unquote(raw_name)
        if not filename or filename in (".", "..") or "/" in filename or "\\" in filename:
            raise InvalidPathError(url, "clip URL has no file name")

        folder = ARTIFACTS_FOLDER if f"/{ARTIFACTS_FOLDER}/" in path_part else SOURCE_FOLDER
        return self._contained(self.folder_dir(project_id, folder) / filename, url)
