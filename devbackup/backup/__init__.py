"""
Backup module for devbackup.

This module handles the device backup run:
- Source device access
- Compression and artifact naming
- Destination storage and the temporary artifact
- Prechecks
- Retention (one copy kept)
- Execution orchestration
"""

from .executor import BackupExecutor, BackupResult, handle_termination_signals
from .sources import BlockDeviceSource
from .storage import LocalStorage, TemporaryArtifact
from .retention import RetentionManager
from .pipeline import run_pipeline

__all__ = [
    'BackupExecutor',
    'BackupResult',
    'handle_termination_signals',
    'BlockDeviceSource',
    'LocalStorage',
    'TemporaryArtifact',
    'RetentionManager',
    'run_pipeline'
]
