"""File operations utilities for keyrotate."""

import logging
import os
import stat
import tempfile
from pathlib import Path
from typing import Optional, Union

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

# Owner read/write only
SECRET_FILE_MODE = stat.S_IRUSR | stat.S_IWUSR


class FileManager:
    """Manages file operations for keyrotate."""

    def __init__(self, file_mode: int = SECRET_FILE_MODE):
        """
        Initialize file manager.

        Args:
            file_mode: Permission bits applied to every file written
        """
        self.file_mode = file_mode

    def ensure_directory(self, path: PathLike) -> Path:
        """Create a directory (and parents) with owner-only access if missing."""
        directory = Path(path)
        if not directory.exists():
            directory.mkdir(parents=True, exist_ok=True)
            try:
                os.chmod(directory, stat.S_IRWXU)
            except OSError as e:
                logger.warning(f"Could not restrict permissions on {directory}: {e}")
        return directory

    def read_text(self, path: PathLike) -> Optional[str]:
        """
        Read a UTF-8 text file.

        Args:
            path: File to read

        Returns:
            Optional[str]: File contents, or None if the file does not exist
        """
        try:
            with open(path, encoding="utf-8") as f:
                return f.read()
        except FileNotFoundError:
            return None

    def write_atomic(self, path: PathLike, content: str) -> Path:
        """
        Replace a file's contents so that readers see either the old or the new
        file, never a partial one.

        The content goes to a temporary file in the destination directory which is
        flushed, fsynced and then renamed over the target.

        Args:
            path: Destination file
            content: Text to write (UTF-8)

        Returns:
            Path: Destination path
        """
        target = Path(path)
        self.ensure_directory(target.parent)

        tmp_file = tempfile.NamedTemporaryFile(
            mode="w",
            encoding="utf-8",
            dir=str(target.parent),
            prefix=f".{target.name}.",
            suffix=".tmp",
            delete=False,
        )
        tmp_path = tmp_file.name

        try:
            with tmp_file:
                tmp_file.write(content)
                tmp_file.flush()
                os.fsync(tmp_file.fileno())

            os.chmod(tmp_path, self.file_mode)
            os.replace(tmp_path, target)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except FileNotFoundError:
                pass
            raise

        self._fsync_directory(target.parent)
        logger.debug(f"Wrote {target} atomically")
        return target

    def _fsync_directory(self, directory: Path) -> None:
        """Persist the rename itself; not supported on every platform."""
        if not hasattr(os, "O_DIRECTORY"):
            return
        try:
            fd = os.open(str(directory), os.O_RDONLY | os.O_DIRECTORY)
        except OSError:
            return
        try:
            os.fsync(fd)
        except OSError:
            pass
        finally:
            os.close(fd)
