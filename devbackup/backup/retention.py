"""
Retention for device images: only one copy is kept.

Before a new transfer starts, every previous image in the destination is
removed, together with temporary files a killed run could not clean up.
"""

import logging
from typing import Dict, Any

from .compression import temporary_filename
from .storage import LocalStorage, StorageError


logger = logging.getLogger(__name__)


class RetentionManager:
    """
    Removes old backups from the destination directory.

    Deletion is best-effort: a file that cannot be removed is reported and
    skipped.
    """

    def __init__(self, storage: LocalStorage, pattern: str = '*.img.gz'):
        """
        Initialize retention manager.

        Args:
            storage: Destination storage handler
            pattern: Glob pattern matching final artifacts
        """
        self.storage = storage
        self.pattern = pattern

    def enforce(self) -> Dict[str, Any]:
        """
        Delete existing artifacts and stale temporary files.

        Returns:
            Dict with summary:
            {
                'deleted': List[str],
                'errors': List[str]
            }
        """
        logger.info(f"Cleaning old backups in {self.storage.base_path}...")

        summary = {
            'deleted': [],
            'errors': []
        }

        for pattern in (self.pattern, temporary_filename(self.pattern)):
            try:
                files = self.storage.list_files(pattern)
            except StorageError as e:
                logger.warning(f"Failed to list old backups: {e}")
                summary['errors'].append(str(e))
                continue

            for file_info in files:
                try:
                    self.storage.delete(file_info['path'])
                except StorageError as e:
                    logger.warning(f"Failed to delete old backup {file_info['path']}: {e}")
                    summary['errors'].append(str(e))
                    continue

                if file_info['date'] is not None:
                    logger.info(f"Deleted backup of {file_info['device']} from {file_info['date']}: {file_info['path']}")
                else:
                    logger.info(f"Deleted stale file: {file_info['path']}")
                summary['deleted'].append(file_info['path'])

        if not summary['deleted'] and not summary['errors']:
            logger.info("No old backups found")

        return summary
