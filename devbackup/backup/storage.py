"""
Local storage for device images.

LocalStorage owns the backup directory. TemporaryArtifact tracks the
in-progress file until commit() promotes it to the final name with an atomic
rename, or discard() deletes it.
"""

import os
import shutil
import logging
from pathlib import Path
from datetime import datetime
from typing import List, Dict, Any

from .compression import temporary_filename, parse_backup_filename, CompressionError


logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when storage operation fails."""
    pass


class TemporaryArtifact:
    """
    In-progress backup file.

    Usage:
        artifact = storage.temporary_artifact(filename)
        write to artifact.path
        artifact.commit(), or artifact.discard() on failure
    """

    def __init__(self, directory: Path, filename: str):
        self.final_path = Path(directory) / filename
        self.path = Path(directory) / temporary_filename(filename)
        self.committed = False

    def commit(self) -> Path:
        """
        Atomically rename the temporary file to the final artifact path.

        Returns:
            Final artifact path

        Raises:
            StorageError: If the rename fails
        """
        try:
            os.replace(self.path, self.final_path)
        except OSError as e:
            raise StorageError(f"Failed to rename {self.path} to {self.final_path}: {e}")

        self.committed = True
        _fsync_directory(self.final_path.parent)
        return self.final_path

    def discard(self):
        """Delete the partial file if present."""
        if not self.path.exists():
            return

        logger.warning(f"Removing partial file: {self.path}")
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error(f"Failed to remove partial file {self.path}: {e}")


def _fsync_directory(directory: Path):
    """Flush a directory entry change (rename) to disk."""
    try:
        fd = os.open(directory, os.O_RDONLY)
    except OSError as e:
        logger.warning(f"Cannot open {directory} to sync rename: {e}")
        return

    try:
        os.fsync(fd)
    except OSError as e:
        logger.warning(f"Failed to sync directory {directory}: {e}")
    finally:
        os.close(fd)


class LocalStorage:
    """
    Handler for the backup destination directory.

    Artifacts are stored flat: {base_path}/{device}_{YYYY-MM-DD}.img.gz
    """

    def __init__(self, base_path: str):
        """
        Initialize local storage handler.

        Args:
            base_path: Backup destination directory
        """
        self.base_path = Path(base_path)

    def exists(self) -> bool:
        return self.base_path.is_dir()

    def ensure_directory(self):
        """
        Create the destination directory if it doesn't exist.

        Raises:
            StorageError: If the directory cannot be created
        """
        try:
            self.base_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to create backup destination {self.base_path}: {e}")

    def is_writable(self) -> bool:
        return os.access(self.base_path, os.W_OK | os.X_OK)

    def free_space(self) -> int:
        """
        Get available bytes on the destination filesystem.

        Raises:
            StorageError: If the filesystem cannot be queried
        """
        try:
            return shutil.disk_usage(self.base_path).free
        except OSError as e:
            raise StorageError(f"Failed to query free space on {self.base_path}: {e}")

    def temporary_artifact(self, filename: str) -> TemporaryArtifact:
        """Track an in-progress artifact named after filename."""
        return TemporaryArtifact(self.base_path, filename)

    def delete(self, filename: str):
        """
        Delete a file from the destination.

        Args:
            filename: Name of file inside the destination

        Raises:
            StorageError: If deletion fails
        """
        full_path = self.base_path / filename

        try:
            full_path.unlink()
        except FileNotFoundError:
            pass
        except PermissionError as e:
            raise StorageError(f"Permission denied deleting {full_path}: {e}")
        except OSError as e:
            raise StorageError(f"Failed to delete {full_path}: {e}")

    def list_files(self, pattern: str = '*') -> List[Dict[str, Any]]:
        """
        List files in the destination matching a glob pattern.

        Args:
            pattern: Glob pattern, matched against file names

        Returns:
            List of dicts with 'path', 'modified', 'size', 'device' and 'date' keys.
            'device' and 'date' are None for names outside the artifact format.

        Raises:
            StorageError: If listing fails
        """
        if not self.base_path.exists():
            return []

        try:
            files = []

            for file_path in sorted(self.base_path.glob(pattern)):
                if not file_path.is_file():
                    continue

                stat = file_path.stat()
                try:
                    device, backup_date = parse_backup_filename(file_path.name)
                except CompressionError:
                    device, backup_date = None, None

                files.append({
                    'path': file_path.name,
                    'modified': datetime.fromtimestamp(stat.st_mtime),
                    'size': stat.st_size,
                    'device': device,
                    'date': backup_date
                })

            return files

        except OSError as e:
            raise StorageError(f"Failed to list files in {self.base_path}: {e}")
