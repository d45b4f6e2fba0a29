import os
import tempfile
from pathlib import Path, PurePosixPath
from typing import Protocol, Union

from sitecraft.platform.exceptions import AssetNotFound, PersistenceError
from sitecraft.platform.logger import get_logger

logger = get_logger(__name__)

Blob = Union[bytes, str]


class AssetStore(Protocol):
    """Write-once / read-many blob storage keyed by analysis asset path."""

    def put(self, path: str, blob: Blob) -> None: ...

    def get(self, path: str) -> bytes: ...

    def exists(self, path: str) -> bool: ...


class FileSystemAssetStore:
    """
    Stores blobs as files below `root`.

    Writes go to a temp file in the target directory and are renamed into
    place, so a reader never observes a half-written asset.
    """

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root).resolve()

    def _resolve(self, path: str) -> Path:
        relative = PurePosixPath(path)
        if relative.is_absolute() or ".." in relative.parts or not relative.parts:
            raise PersistenceError(f"Invalid asset path: {path!r}")
        return self.root.joinpath(*relative.parts)

    def put(self, path: str, blob: Blob) -> None:
        target = self._resolve(path)
        data = blob.encode("utf-8") if isinstance(blob, str) else blob
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=".upload-")
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
            os.replace(tmp_name, target)
        except OSError as e:
            raise PersistenceError(f"Failed to store asset {path}: {e}") from e
        logger.debug(f"Stored asset {path} ({len(data)} bytes)")

    def get(self, path: str) -> bytes:
        target = self._resolve(path)
        try:
            return target.read_bytes()
        except FileNotFoundError as e:
            raise AssetNotFound(f"Asset not found: {path}") from e
        except OSError as e:
            raise PersistenceError(f"Failed to read asset {path}: {e}") from e

    def exists(self, path: str) -> bool:
        return self._resolve(path).is_file()
