"""Integration tests for the command-line interface."""

import json
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner

from audiopruner import __version__
from audiopruner.cli import cli
from audiopruner.errors import AudioIndexNotFound, NotFound
from audiopruner.models.remux import DoneEvent, ErrorEvent, ProgressEvent, RemuxOutcome
from audiopruner.models.stream import AudioStreamDescriptor

STREAMS = [
    AudioStreamDescriptor(1, language="eng", title="Stereo", codec_name="aac", channels="2"),
    AudioStreamDescriptor(2, language="jpn", codec_name="ac3", channels="6"),
]


@pytest.fixture(autouse=True)
def no_logging_setup(monkeypatch):
    monkeypatch.delenv("AUDIOPRUNER_CONFIG", raising=False)
    with patch("audiopruner.cli.setup_logging"):
        yield


@pytest.fixture
def orchestrator_mock():
    """Replace the orchestrator the CLI builds."""
    with patch("audiopruner.cli.RemuxOrchestrator") as cls:
        instance = MagicMock()
        instance.probe = AsyncMock(return_value=STREAMS)
        instance.remux = AsyncMock()
        instance.restore = AsyncMock()
        cls.return_value = instance
        yield instance


@pytest.fixture
def runner():
    return CliRunner()


class TestTracks:
    """Test the tracks command."""

    def test_lists_streams(self, runner, orchestrator_mock, media_file):
        result = runner.invoke(cli, ["tracks", str(media_file)], obj={})

        assert result.exit_code == 0
        assert "2 audio stream(s)" in result.output
        assert "eng" in result.output
        assert "jpn" in result.output
        orchestrator_mock.probe.assert_awaited_once_with(media_file.resolve())

    def test_json_output(self, runner, orchestrator_mock, media_file):
        result = runner.invoke(cli, ["tracks", str(media_file), "--json"], obj={})

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert [s["ffmpeg_index"] for s in data] == [1, 2]
        assert data[0]["codec"] == "aac"

    def test_no_streams(self, runner, orchestrator_mock, media_file):
        orchestrator_mock.probe.return_value = []

        result = runner.invoke(cli, ["tracks", str(media_file)], obj={})

        assert result.exit_code == 0
        assert "No audio streams" in result.output

    def test_missing_file(self, runner, orchestrator_mock, tmp_path):
        result = runner.invoke(cli, ["tracks", str(tmp_path / "missing.mkv")], obj={})

        assert result.exit_code != 0
        orchestrator_mock.probe.assert_not_called()


class TestPrune:
    """Test the prune command."""

    def test_prune(self, runner, orchestrator_mock, media_file):
        """Test flags are passed through and results printed."""
        orchestrator_mock.remux.return_value = RemuxOutcome(
            output_path=Path("/media/Movie.audiopruner-out-1.mkv"),
            backup_path=Path("/media/Movie.bak-1.mkv"),
        )

        result = runner.invoke(
            cli,
            ["prune", str(media_file), "-a", "2", "--drop-subtitles", "--no-backup"],
            obj={},
        )

        assert result.exit_code == 0
        assert "New file: /media/Movie.audiopruner-out-1.mkv" in result.output
        assert "Backup:   /media/Movie.bak-1.mkv" in result.output

        [request] = orchestrator_mock.remux.await_args.args
        assert request.source_path == media_file.resolve()
        assert request.audio_stream_index == 2
        assert request.keep_subtitles is False
        assert request.keep_chapters is True
        assert request.create_backup is False

    def test_backup_warning(self, runner, orchestrator_mock, media_file):
        orchestrator_mock.remux.return_value = RemuxOutcome(
            output_path=Path("/media/out.mkv"), backup_error="Backup file already exists"
        )

        result = runner.invoke(cli, ["prune", str(media_file), "-a", "1"], obj={})

        assert result.exit_code == 0
        assert "Backup not created" in result.output

    def test_failure(self, runner, orchestrator_mock, media_file):
        orchestrator_mock.remux.side_effect = AudioIndexNotFound(7, [1, 2])

        result = runner.invoke(cli, ["prune", str(media_file), "-a", "7"], obj={})

        assert result.exit_code == 1
        assert "ffmpeg audio index 7 not found" in result.output

    def test_negative_index(self, runner, orchestrator_mock, media_file):
        result = runner.invoke(cli, ["prune", str(media_file), "-a", "-1"], obj={})

        assert result.exit_code == 2
        orchestrator_mock.remux.assert_not_called()

    def test_progress(self, runner, orchestrator_mock, media_file):
        """Test streamed lines are echoed before the result."""

        async def events(request):
            yield ProgressEvent("frame=  10")
            yield DoneEvent(Path("/media/out.mkv"), None)

        orchestrator_mock.remux_stream = events

        result = runner.invoke(cli, ["prune", str(media_file), "-a", "1", "--progress"], obj={})

        assert result.exit_code == 0
        assert "frame=  10" in result.output
        assert "New file: /media/out.mkv" in result.output

    def test_progress_failure(self, runner, orchestrator_mock, media_file):
        async def events(request):
            yield ErrorEvent("ffmpeg failed (exit 1)")

        orchestrator_mock.remux_stream = events

        result = runner.invoke(cli, ["prune", str(media_file), "-a", "1", "--progress"], obj={})

        assert result.exit_code == 1
        assert "ffmpeg failed (exit 1)" in result.output


class TestRestore:
    """Test the restore command."""

    def test_restore(self, runner, orchestrator_mock, media_file):
        backup = media_file.with_name("Movie.bak.mkv")

        result = runner.invoke(cli, ["restore", str(media_file), str(backup)], obj={})

        assert result.exit_code == 0
        orchestrator_mock.restore.assert_awaited_once_with(media_file, backup)

    def test_restore_failure(self, runner, orchestrator_mock, media_file):
        orchestrator_mock.restore.side_effect = NotFound("backup", "/nope")

        result = runner.invoke(cli, ["restore", str(media_file), "/nope"], obj={})

        assert result.exit_code == 1
        assert "Backup not found" in result.output


class TestMisc:
    """Test configuration handling and version output."""

    def test_version(self, runner):
        result = runner.invoke(cli, ["version"], obj={})

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_config_file(self, runner, orchestrator_mock, media_file, tmp_path):
        """Test --config is loaded and passed to the orchestrator."""
        config_path = tmp_path / "config.yaml"
        config_path.write_text("tools:\n  ffmpeg_path: /opt/ffmpeg\n")

        with patch("audiopruner.cli.RemuxOrchestrator") as cls:
            cls.return_value = orchestrator_mock
            result = runner.invoke(
                cli, ["-c", str(config_path), "tracks", str(media_file)], obj={}
            )

        assert result.exit_code == 0
        [config] = cls.call_args.args
        assert config.tools.ffmpeg_path == "/opt/ffmpeg"

    def test_invalid_config(self, runner, tmp_path):
        config_path = tmp_path / "config.yaml"
        config_path.write_text("logging:\n  format: xml\n")

        result = runner.invoke(cli, ["-c", str(config_path), "version"], obj={})

        assert result.exit_code == 1
        assert "Error loading configuration" in result.output
