"""
Checks run before the destination is modified.

Each failing check raises PrecheckError. The only change made here is
creating a missing destination directory.
"""

import os
import shutil
import logging
from typing import Iterable

from .sources import BlockDeviceSource
from .storage import LocalStorage, StorageError


logger = logging.getLogger(__name__)


class PrecheckError(Exception):
    """Raised when the environment does not allow a backup run."""

    exit_code = 1


def check_privileges():
    if os.geteuid() != 0:
        raise PrecheckError("Please run as root")


def check_required_commands(commands: Iterable[str]):
    for command in commands:
        if shutil.which(command) is None:
            raise PrecheckError(f"{command} is required to run!")


def check_source_device(source: BlockDeviceSource):
    if not source.is_block_device():
        raise PrecheckError(
            f"Backup device {source.path} does not exist or is not a block device."
        )


def check_destination(storage: LocalStorage):
    """
    Make sure the destination exists and is writable.

    Raises:
        PrecheckError: If it cannot be created or is not writable
    """
    if not storage.exists():
        logger.warning(
            f"Backup destination {storage.base_path} does not exist. Attempting to create it..."
        )
        try:
            storage.ensure_directory()
        except StorageError as e:
            raise PrecheckError(str(e))

    if not storage.is_writable():
        raise PrecheckError(f"Backup destination {storage.base_path} is not writable.")


def has_enough_space(device_size: int, available: int, headroom_percent: int = 10) -> bool:
    """
    Check available bytes cover the device size plus headroom.

    Integer arithmetic, so available == device_size * 1.1 passes exactly.
    """
    return available * 100 >= device_size * (100 + headroom_percent)


def check_free_space(source: BlockDeviceSource, storage: LocalStorage, headroom_percent: int = 10):
    """
    Best-effort space check: skipped when either size cannot be determined.

    Raises:
        PrecheckError: If the destination is too small
    """
    device_size = source.size()
    if device_size <= 0:
        logger.warning(f"Could not determine size of {source.path}, skipping space check")
        return

    try:
        available = storage.free_space()
    except StorageError as e:
        logger.warning(f"{e}, skipping space check")
        return

    if not has_enough_space(device_size, available, headroom_percent):
        needed = device_size * (100 + headroom_percent) // 100
        raise PrecheckError(
            f"Not enough space on {storage.base_path}: device ~{device_size} bytes, "
            f"available {available} bytes (need ~{needed})."
        )

    logger.debug(f"Space check passed: device {device_size} bytes, available {available} bytes")


def run_prechecks(config: dict, source: BlockDeviceSource, storage: LocalStorage):
    """
    Run all checks in order: privileges, tools, source, destination, space.

    Args:
        config: Settings dict
        source: Device to back up
        storage: Destination storage

    Raises:
        PrecheckError: On the first failing check
    """
    check_privileges()
    check_required_commands(config['REQUIRED_COMMANDS'])
    check_source_device(source)
    check_destination(storage)

    if config.get('CHECK_FREE_SPACE', True):
        check_free_space(source, storage, config.get('SPACE_HEADROOM_PERCENT', 10))
