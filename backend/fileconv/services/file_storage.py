"""
File storage for uploads and converted artifacts
Every file name is derived from the owning job id
"""
import logging
import shutil
from pathlib import Path
from typing import Any, Optional, Union

from fileconv.core.errors import CleanupFailure, InvalidInput, PayloadTooLarge

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024


class FileStorage:
    """Manages the uploads/, outputs/ and tmp/ directories under one root"""

    def __init__(self, root: Union[str, Path]):
        root = Path(root)
        if not root.is_absolute():
            # Relative roots live next to the backend directory
            root = Path(__file__).parent.parent.parent / root
        self._root = root.resolve()
        self.uploads_dir = self._root / "uploads"
        self.outputs_dir = self._root / "outputs"
        self.tmp_dir = self._root / "tmp"
        for directory in (self.uploads_dir, self.outputs_dir, self.tmp_dir):
            directory.mkdir(parents=True, exist_ok=True)

    @property
    def root(self) -> Path:
        return self._root

    def upload_path_for(self, job_id: str, fmt: str) -> Path:
        return self.uploads_dir / f"{job_id}.{fmt}"

    def output_path_for(self, job_id: str, fmt: str) -> Path:
        return self.outputs_dir / f"{job_id}.{fmt}"

    async def save_upload(self, job_id: str, fmt: str, upload: Any, max_bytes: int) -> Path:
        """
        Stream an upload (anything with an async read(size)) to disk
        Raises InvalidInput for empty uploads and PayloadTooLarge past max_bytes
        """
        path = self.upload_path_for(job_id, fmt)
        written = 0
        try:
            with open(path, "wb") as f:
                while True:
                    chunk = await upload.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    written += len(chunk)
                    if written > max_bytes:
                        raise PayloadTooLarge(
                            f"File exceeds the maximum upload size of {max_bytes // (1024 * 1024)}MB",
                            field="file",
                        )
                    f.write(chunk)
            if written == 0:
                raise InvalidInput("Uploaded file is empty", field="file")
        except BaseException:
            path.unlink(missing_ok=True)
            raise
        logger.info(f"Saved upload for job {job_id}: {path.name} ({written} bytes)")
        return path

    def save_bytes(self, job_id: str, fmt: str, data: bytes) -> Path:
        if not data:
            raise InvalidInput("Uploaded file is empty", field="file")
        path = self.upload_path_for(job_id, fmt)
        with open(path, "wb") as f:
            f.write(data)
        return path

    def exists(self, path: Optional[Union[str, Path]]) -> bool:
        return bool(path) and Path(path).is_file()

    def delete(self, path: Optional[Union[str, Path]]) -> bool:
        """
        Delete a file owned by this storage
        Returns False when it was already gone; raises CleanupFailure otherwise
        """
        if not path:
            return False
        target = Path(path).resolve()
        if self._root not in target.parents:
            raise CleanupFailure(f"Refusing to delete {target}: outside storage root")
        try:
            target.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise CleanupFailure(f"Could not delete {target.name}: {e}") from e
        logger.info(f"Deleted {target.relative_to(self._root)}")
        return True

    def purge(self) -> None:
        """Remove everything under the storage root (tests and shutdown of temp roots)"""
        shutil.rmtree(self._root, ignore_errors=True)
