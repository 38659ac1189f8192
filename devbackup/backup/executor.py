"""
Backup executor - orchestrates one device backup run.

Workflow:
1. Precheck: privileges, tools, source device, destination, free space
2. Clean old: remove previous images from the destination
3. Transfer: dd | gzip into {device}_{date}.img.gz.tmp
4. Commit: atomic rename to {device}_{date}.img.gz
   or abort: the temporary file is deleted

Any failure, or SIGINT/SIGTERM, ends the run with a non-zero exit code.
"""

import signal
import logging
import traceback
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, List

from .sources import BlockDeviceSource
from .compression import build_compress_command, generate_backup_filename, get_archive_size
from .storage import LocalStorage
from .retention import RetentionManager
from .precheck import run_prechecks
from .pipeline import run_pipeline, format_pipeline


logger = logging.getLogger(__name__)


class BackupInterrupted(Exception):
    """Raised from the signal handler when the run is cancelled."""

    def __init__(self, signum: int):
        self.signum = signum
        self.exit_code = 128 + signum
        super().__init__(f"Interrupted by {signal.Signals(signum).name}")


@contextmanager
def handle_termination_signals(signals=(signal.SIGINT, signal.SIGTERM)):
    """
    Turn termination signals into BackupInterrupted while the block runs.

    Only the first signal raises; later ones are logged so the cleanup
    triggered by the first can finish. Must be used from the main thread.
    """
    interrupted = []

    def _handler(signum, frame):
        if interrupted:
            logger.warning(f"Received {signal.Signals(signum).name} during cleanup, ignoring")
            return
        interrupted.append(signum)
        raise BackupInterrupted(signum)

    previous = {sig: signal.signal(sig, _handler) for sig in signals}
    try:
        yield
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


@dataclass
class BackupResult:
    """Outcome of a backup run."""

    device: str
    destination: str
    status: str = 'running'
    stage: str = 'start'
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    final_path: Optional[str] = None
    file_size_bytes: Optional[int] = None
    deleted: List[str] = field(default_factory=list)
    exit_code: Optional[int] = None
    error_message: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == 'success'


class BackupExecutor:
    """
    Runs the backup workflow for a settings dict from load_config().
    """

    def __init__(self, config: dict):
        """
        Initialize backup executor.

        Args:
            config: Settings dict
        """
        self.config = config
        self.source = None
        self.storage = None
        self.result = None
        self.artifact = None
        self.backup_date = None
        self.last_command = None

    def execute(self) -> BackupResult:
        """
        Execute the backup run.

        Returns:
            BackupResult with exit_code set; failures are recorded, not raised
        """
        self.backup_date = datetime.now().date()
        self.result = BackupResult(
            device=self.config['TARGET_DEVICE'],
            destination=str(self.config['BACKUP_DEST']),
            started_at=datetime.now()
        )

        try:
            self._execute_workflow()

            self.result.status = 'success'
            self.result.stage = 'end'
            self.result.exit_code = 0

        except Exception as e:
            try:
                self._abort(e)
            except BackupInterrupted as interrupted:
                # Only the first signal raises, so this pass runs to the end
                self._abort(interrupted)

        except BaseException:
            self._discard_artifact()
            raise

        finally:
            self.result.completed_at = datetime.now()

        return self.result

    def _abort(self, exc: Exception):
        """Record the failure, log it, then remove the partial file."""
        if self.result.stage in ('transfer', 'commit'):
            self.result.stage = 'abort'
        self.result.status = 'failed'
        self.result.exit_code = getattr(exc, 'exit_code', 1)
        self.result.error_message = str(exc)
        self._report_error(exc)
        self._discard_artifact()

    def _discard_artifact(self):
        if self.artifact is not None and not self.artifact.committed:
            self.artifact.discard()

    def _execute_workflow(self):
        """Execute the main backup workflow steps."""
        # Step 1: Precheck
        self._enter_stage('precheck')
        self.source = BlockDeviceSource(self.config['TARGET_DEVICE'], self.config['DEVICE_DIR'])
        self.storage = LocalStorage(self.config['BACKUP_DEST'])
        run_prechecks(self.config, self.source, self.storage)

        # Step 2: Only one copy allowed
        self._enter_stage('clean_old')
        cleanup = RetentionManager(self.storage, self.config['ARTIFACT_PATTERN']).enforce()
        self.result.deleted = cleanup['deleted']

        # Step 3: Transfer into the temporary file
        self._enter_stage('transfer')
        filename = generate_backup_filename(self.source.device_name, self.backup_date)
        commands = [
            self.source.build_read_command(self.config['BLOCK_SIZE']),
            build_compress_command()
        ]

        # Removed by _abort() unless committed
        artifact = self.artifact = self.storage.temporary_artifact(filename)
        logger.info(f"Starting backup of {self.source.path} -> {artifact.final_path}")
        self.last_command = format_pipeline(commands, artifact.path)
        run_pipeline(commands, artifact.path)

        # Step 4: Promote
        self._enter_stage('commit')
        self.last_command = f"rename {artifact.path} {artifact.final_path}"
        final_path = artifact.commit()

        self.result.final_path = str(final_path)
        self.result.file_size_bytes = get_archive_size(final_path)
        logger.info(
            f"Backup completed successfully: {final_path} "
            f"({self.result.file_size_bytes / 1024 / 1024:.2f} MB)"
        )

    def _enter_stage(self, stage: str):
        self.result.stage = stage
        self.last_command = stage
        logger.debug(f"Stage: {stage}")

    def _report_error(self, exc: Exception):
        """Log the failure with exit code, raising line and last command."""
        frames = traceback.extract_tb(exc.__traceback__)
        line = frames[-1].lineno if frames else 0

        logger.error(str(exc))
        logger.error(
            f'exit code {self.result.exit_code} at line {line}. '
            f'Last command: "{self.last_command}"'
        )

