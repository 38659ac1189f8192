"""
Shared pytest fixtures for devbackup tests.

This module provides fixtures for:
- Settings dicts pointing at temporary directories
- A fake source device (regular file standing in for a block device)
- Privilege and block-device check patches
"""

import os
import logging
from unittest.mock import patch

import pytest

from devbackup.config import load_config


DEVICE_NAME = 'devX'


@pytest.fixture(scope='function')
def device_dir(tmp_path):
    """Directory standing in for /dev."""
    path = tmp_path / 'dev'
    path.mkdir()
    return path


@pytest.fixture(scope='function')
def backup_dest(tmp_path):
    """Empty, writable backup destination."""
    path = tmp_path / 'backups'
    path.mkdir()
    return path


@pytest.fixture(scope='function')
def source_device(device_dir):
    """
    Create a 1 MiB source 'device' with non-trivial content.
    """
    device = device_dir / DEVICE_NAME
    block = bytes(range(256)) * 256  # 64 KiB
    device.write_bytes(block * 16)
    return device


@pytest.fixture(scope='function')
def config(device_dir, backup_dest):
    """
    Settings for a run of devX into the temporary destination.
    """
    return load_config(
        'rpi',
        TARGET_DEVICE=DEVICE_NAME,
        DEVICE_DIR=str(device_dir),
        BACKUP_DEST=str(backup_dest),
        LOG_DIR=None,
    )


@pytest.fixture(scope='function')
def privileged():
    """
    Pretend to run as root on a block device.

    Patches the effective UID check and the block special file check, so
    regular files can be backed up by an unprivileged test run.
    """
    with patch('devbackup.backup.precheck.os.geteuid', return_value=0), \
            patch('devbackup.backup.sources.BlockDeviceSource.is_block_device', return_value=True):
        yield


@pytest.fixture
def dest_snapshot(backup_dest):
    """Return a callable listing destination contents with sizes."""
    def _snapshot():
        return sorted(
            (name, os.path.getsize(backup_dest / name))
            for name in os.listdir(backup_dest)
        )
    return _snapshot


@pytest.fixture(autouse=True)
def reset_logging():
    """Drop handlers configure_logging() bound to captured streams."""
    yield
    package_logger = logging.getLogger('devbackup')
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()
    package_logger.setLevel(logging.NOTSET)
