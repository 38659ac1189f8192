"""
Compression stage and artifact naming for device images.

Images are gzip streams named {device}_{YYYY-MM-DD}.img.gz. While the copy is
running the data goes to the same name with a .tmp suffix.
"""

import os
from datetime import datetime, date
from typing import List, Optional, Tuple


ARTIFACT_EXTENSION = '.img.gz'
TEMP_SUFFIX = '.tmp'


class CompressionError(Exception):
    """Raised when an artifact name or file is invalid."""
    pass


def build_compress_command() -> List[str]:
    """Build the gzip command compressing stdin to stdout."""
    return ['gzip', '-c']


def generate_backup_filename(device_name: str, backup_date: Optional[date] = None) -> str:
    """
    Generate the final artifact filename.

    Format: {device_name}_{YYYY-MM-DD}.img.gz

    Args:
        device_name: Device identifier (e.g. nvme0n1p2)
        backup_date: Date stamp, today if omitted

    Returns:
        Filename (without path)
    """
    if backup_date is None:
        backup_date = datetime.now().date()

    return f"{device_name}_{backup_date.strftime('%Y-%m-%d')}{ARTIFACT_EXTENSION}"


def temporary_filename(filename: str) -> str:
    """Name of the in-progress file for a final artifact filename."""
    return f"{filename}{TEMP_SUFFIX}"


def parse_backup_filename(filename: str) -> Tuple[str, date]:
    """
    Split a final artifact filename into device name and date.

    Args:
        filename: Artifact filename

    Returns:
        Tuple of (device_name, backup_date)

    Raises:
        CompressionError: If the name does not follow the artifact format
    """
    if not filename.endswith(ARTIFACT_EXTENSION):
        raise CompressionError(f"Not a backup artifact: {filename}")

    stem = filename[:-len(ARTIFACT_EXTENSION)]
    device_name, sep, stamp = stem.rpartition('_')
    if not sep or not device_name:
        raise CompressionError(f"Not a backup artifact: {filename}")

    try:
        backup_date = datetime.strptime(stamp, '%Y-%m-%d').date()
    except ValueError:
        raise CompressionError(f"Invalid date in artifact name: {filename}")

    return device_name, backup_date


def get_archive_size(archive_path: str) -> int:
    """
    Get the size of an artifact file in bytes.

    Raises:
        CompressionError: If file doesn't exist or cannot be accessed
    """
    try:
        return os.path.getsize(archive_path)
    except FileNotFoundError:
        raise CompressionError(f"Artifact not found: {archive_path}")
    except OSError as e:
        raise CompressionError(f"Failed to get artifact size: {e}")
