"""
Source handler for raw block devices.

The device is streamed with dd. Unreadable blocks are replaced with zeros and
the copy continues (conv=sync,noerror), so a failing sector yields an image
with a zero-filled hole instead of an aborted backup.
"""

import os
import stat
import logging
from pathlib import Path
from typing import List


logger = logging.getLogger(__name__)


class SourceError(Exception):
    """Raised when the source device cannot be used."""
    pass


class BlockDeviceSource:
    """
    Handler for a raw block device identified by name, e.g. nvme0n1p2.
    """

    def __init__(self, device_name: str, device_dir: str = '/dev'):
        """
        Initialize block device source.

        Args:
            device_name: Device identifier, also used to name the backup
            device_dir: Directory holding device nodes
        """
        if not device_name:
            raise SourceError("No target device configured")

        self.device_name = device_name
        self.path = Path(device_dir) / device_name

    def exists(self) -> bool:
        return os.path.lexists(self.path)

    def is_block_device(self) -> bool:
        """Check the path exists and is a block special file."""
        try:
            st = os.stat(self.path)
        except FileNotFoundError:
            return False
        return stat.S_ISBLK(st.st_mode)

    def size(self) -> int:
        """
        Get the device size in bytes.

        Returns:
            Size in bytes, or 0 if it cannot be determined
        """
        try:
            fd = os.open(self.path, os.O_RDONLY)
        except OSError as e:
            logger.debug(f"Cannot open {self.path} to query size: {e}")
            return 0

        try:
            return os.lseek(fd, 0, os.SEEK_END)
        except OSError as e:
            logger.debug(f"Cannot seek {self.path} to query size: {e}")
            return 0
        finally:
            os.close(fd)

    def build_read_command(self, block_size: int = 64 * 1024) -> List[str]:
        """
        Build the dd command streaming the device to stdout.

        Args:
            block_size: Transfer block size in bytes

        Returns:
            argv list
        """
        return [
            'dd',
            f'if={self.path}',
            f'bs={block_size}',
            'conv=sync,noerror',
            'status=progress'
        ]

    def __repr__(self):
        return f'<BlockDeviceSource {self.path}>'
