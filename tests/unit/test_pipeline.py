"""
Unit tests for the streaming pipeline (devbackup/backup/pipeline.py).

These run real processes (dd, gzip, sh) against temporary files.
"""

import gzip

import pytest

from devbackup.backup.pipeline import (
    run_pipeline,
    format_command,
    format_pipeline,
    exit_code_from_returncode,
    PipelineError
)
from devbackup.backup.sources import BlockDeviceSource
from devbackup.backup.compression import build_compress_command


class TestRunPipeline:
    """Test running stages connected by pipes."""

    def test_two_stage_pipeline(self, source_device, tmp_path):
        """Test reader | gzip produces the compressed source."""
        output = tmp_path / 'out.img.gz'

        run_pipeline([['cat', str(source_device)], build_compress_command()], output)

        assert gzip.decompress(output.read_bytes()) == source_device.read_bytes()

    def test_dd_read_command(self, source_device, tmp_path):
        """Test the dd reader stage copies the device byte for byte."""
        source = BlockDeviceSource(source_device.name, str(source_device.parent))
        output = tmp_path / 'out.img.gz'

        run_pipeline([source.build_read_command(64 * 1024), build_compress_command()], output)

        assert gzip.decompress(output.read_bytes()) == source_device.read_bytes()

    def test_dd_pads_short_last_block(self, device_dir, tmp_path):
        """Test conv=sync zero-fills a partial block to the block size."""
        device = device_dir / 'short'
        device.write_bytes(b'\x01' * 1000)
        source = BlockDeviceSource('short', str(device_dir))
        output = tmp_path / 'out.img.gz'

        run_pipeline([source.build_read_command(4096), build_compress_command()], output)

        image = gzip.decompress(output.read_bytes())
        assert image == b'\x01' * 1000 + b'\x00' * 3096

    def test_single_stage(self, tmp_path):
        output = tmp_path / 'out.txt'

        run_pipeline([['echo', 'hello']], output)

        assert output.read_text() == 'hello\n'

    def test_output_truncated(self, tmp_path):
        output = tmp_path / 'out.txt'
        output.write_text('previous content that is longer')

        run_pipeline([['echo', 'new']], output)

        assert output.read_text() == 'new\n'

    def test_producer_failure(self, tmp_path):
        """Test the producer's exit status is reported."""
        output = tmp_path / 'out.gz'

        with pytest.raises(PipelineError) as exc_info:
            run_pipeline([['sh', '-c', 'exit 3'], build_compress_command()], output)

        assert exc_info.value.exit_code == 3
        assert exc_info.value.command == ['sh', '-c', 'exit 3']

    def test_consumer_failure(self, tmp_path):
        output = tmp_path / 'out.gz'

        with pytest.raises(PipelineError) as exc_info:
            run_pipeline([['echo', 'data'], ['sh', '-c', 'cat >/dev/null; exit 4']], output)

        assert exc_info.value.exit_code == 4

    def test_last_failing_stage_wins(self, tmp_path):
        with pytest.raises(PipelineError) as exc_info:
            run_pipeline([['sh', '-c', 'exit 2'], ['sh', '-c', 'cat >/dev/null; exit 5']], tmp_path / 'out')

        assert exc_info.value.exit_code == 5
        assert exc_info.value.command == ['sh', '-c', 'cat >/dev/null; exit 5']

    def test_killed_consumer(self, source_device, tmp_path):
        """Test a compressor killed mid-stream fails the pipeline."""
        with pytest.raises(PipelineError) as exc_info:
            run_pipeline(
                [['cat', str(source_device)], ['sh', '-c', 'kill -9 $$']],
                tmp_path / 'out.gz'
            )

        assert exc_info.value.exit_code == 137

    def test_killed_consumer_under_dd(self, source_device, tmp_path):
        """Test the killed compressor is reported, not the reader it took down."""
        source = BlockDeviceSource(source_device.name, str(source_device.parent))

        with pytest.raises(PipelineError) as exc_info:
            run_pipeline(
                [source.build_read_command(64 * 1024), ['sh', '-c', 'head -c 1 >/dev/null; kill -9 $$']],
                tmp_path / 'out.gz'
            )

        assert exc_info.value.exit_code == 137
        assert exc_info.value.command[0] == 'sh'
        assert 'exit code 137: sh -c' in str(exc_info.value)

    def test_missing_command(self, tmp_path):
        with pytest.raises(OSError):
            run_pipeline([['echo', 'x'], ['no-such-compressor-xyz']], tmp_path / 'out')

    def test_empty_pipeline(self, tmp_path):
        with pytest.raises(ValueError):
            run_pipeline([], tmp_path / 'out')


class TestExitCodes:

    @pytest.mark.parametrize("returncode,expected", [
        (0, 0),
        (1, 1),
        (141, 141),
        (-9, 137),
        (-13, 141),
        (-15, 143),
    ])
    def test_exit_code_from_returncode(self, returncode, expected):
        assert exit_code_from_returncode(returncode) == expected

    def test_error_message(self):
        error = PipelineError(['gzip', '-c'], -9)

        assert error.exit_code == 137
        assert str(error) == "Command failed with exit code 137: gzip -c"


class TestFormatting:

    def test_format_command_quotes(self):
        assert format_command(['dd', 'if=/dev/my disk']) == "dd 'if=/dev/my disk'"

    def test_format_pipeline(self):
        rendered = format_pipeline([['dd', 'if=/dev/sda'], ['gzip', '-c']], '/mnt/b/sda.img.gz.tmp')

        assert rendered == 'dd if=/dev/sda | gzip -c > /mnt/b/sda.img.gz.tmp'
