"""
Streaming pipeline of external commands writing into a file.

Each stage's stdout feeds the next stage's stdin; the last stage writes to
the output file. The pipeline succeeds only if every stage exits with 0;
otherwise the rightmost failing stage is reported.
"""

import os
import shlex
import logging
import subprocess
from pathlib import Path
from typing import List, Sequence, Union


logger = logging.getLogger(__name__)


class PipelineError(Exception):
    """Raised when a pipeline stage fails."""

    def __init__(self, command: Sequence[str], returncode: int):
        self.command = list(command)
        self.returncode = returncode
        self.exit_code = exit_code_from_returncode(returncode)
        super().__init__(
            f"Command failed with exit code {self.exit_code}: {format_command(command)}"
        )


def format_command(command: Sequence[str]) -> str:
    return ' '.join(shlex.quote(str(arg)) for arg in command)


def format_pipeline(commands: Sequence[Sequence[str]], output_path: Union[str, Path]) -> str:
    """Shell-like rendering, e.g. 'dd if=/dev/sda | gzip -c > out.tmp'."""
    rendered = ' | '.join(format_command(command) for command in commands)
    return f"{rendered} > {shlex.quote(str(output_path))}"


def exit_code_from_returncode(returncode: int) -> int:
    """Map a Popen returncode to a shell exit status (killed by N -> 128 + N)."""
    if returncode < 0:
        return 128 + abs(returncode)
    return returncode


def _terminate(processes: List[subprocess.Popen]):
    for proc in processes:
        if proc.poll() is None:
            proc.kill()
    for proc in processes:
        proc.wait()


def run_pipeline(commands: Sequence[Sequence[str]], output_path: Union[str, Path]):
    """
    Run commands as a pipeline, last stage writing to output_path.

    The output file is fsynced once every stage has succeeded. On any
    exception (including one raised by a signal handler while waiting) the
    stages still running are killed before the exception propagates.

    Args:
        commands: argv lists, in pipeline order
        output_path: File receiving the last stage's stdout (truncated)

    Raises:
        PipelineError: For the last stage (in pipeline order) exiting non-zero
        OSError: If a command cannot be started or the output cannot be written
    """
    if not commands:
        raise ValueError("Pipeline needs at least one command")

    logger.debug(f"Running: {format_pipeline(commands, output_path)}")

    processes = []

    with open(output_path, 'wb') as output:
        upstream = None
        try:
            for index, command in enumerate(commands):
                is_last = index == len(commands) - 1
                proc = subprocess.Popen(
                    list(command),
                    stdin=upstream,
                    stdout=output if is_last else subprocess.PIPE
                )
                processes.append(proc)

                # Only the child keeps the read end, so the producer gets
                # SIGPIPE if the consumer dies
                if upstream is not None:
                    upstream.close()
                upstream = proc.stdout

            returncodes = [proc.wait() for proc in processes]

        except BaseException:
            if upstream is not None:
                upstream.close()
            _terminate(processes)
            raise

        # Rightmost failing stage decides, as with the shell's pipefail
        for command, returncode in reversed(list(zip(commands, returncodes))):
            if returncode != 0:
                raise PipelineError(command, returncode)

        output.flush()
        os.fsync(output.fileno())
