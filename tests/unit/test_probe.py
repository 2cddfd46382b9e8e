"""Unit tests for ffprobe parsing and the probe client."""

import json

import pytest

from audiopruner.config import ToolConfig
from audiopruner.core.probe import ProbeClient, parse_audio_streams
from audiopruner.errors import MalformedOutput, ToolExecutionFailed, ToolNotFound
from audiopruner.models.stream import AudioStreamDescriptor
from tests.conftest import PROBE_DOCUMENT, FakeMediaTool


class TestParseAudioStreams:
    """Test parse_audio_streams function."""

    def test_filters_audio_streams(self):
        """Test only audio streams are returned, with native indices."""
        streams = parse_audio_streams(json.dumps(PROBE_DOCUMENT))

        assert [s.stream_index for s in streams] == [1, 2]
        assert [s.codec_name for s in streams] == ["aac", "ac3"]

    def test_optional_fields_default_to_empty(self):
        """Test missing tags and channels become empty strings."""
        streams = parse_audio_streams(json.dumps(PROBE_DOCUMENT))

        assert streams[0].language == "eng"
        assert streams[0].title == "Stereo"
        assert streams[0].channels == "2"
        assert streams[1].language == "jpn"
        assert streams[1].title == ""
        assert streams[1].channels == "6"

    def test_minimal_audio_entry(self):
        """Test an audio entry with only index and type."""
        document = json.dumps({"streams": [{"index": 4, "codec_type": "audio"}]})

        (stream,) = parse_audio_streams(document)

        assert stream == AudioStreamDescriptor(stream_index=4)
        assert (stream.language, stream.title, stream.codec_name, stream.channels) == ("", "", "", "")

    def test_null_text_fields_become_empty(self):
        """Test JSON nulls in text fields are treated as absent."""
        document = json.dumps(
            {
                "streams": [
                    {
                        "index": 1,
                        "codec_type": "audio",
                        "codec_name": None,
                        "tags": {"language": None, "title": None},
                    }
                ]
            }
        )

        (stream,) = parse_audio_streams(document)

        assert (stream.language, stream.title, stream.codec_name) == ("", "", "")

    def test_preserves_tool_order(self):
        """Test results follow ffprobe order, not index order."""
        document = json.dumps(
            {
                "streams": [
                    {"index": 5, "codec_type": "audio"},
                    {"index": 2, "codec_type": "audio"},
                ]
            }
        )

        assert [s.stream_index for s in parse_audio_streams(document)] == [5, 2]

    def test_missing_streams_key(self):
        """Test a document without streams yields nothing."""
        assert parse_audio_streams(json.dumps({"format": {}})) == []

    @pytest.mark.parametrize(
        "document",
        [
            "not json",
            "[]",
            json.dumps({"streams": {"index": 1}}),
            json.dumps({"streams": [{"codec_type": "audio"}]}),
            json.dumps({"streams": [{"codec_type": "audio", "index": "one"}]}),
            json.dumps({"streams": [{"codec_type": "audio", "index": 1, "tags": "eng"}]}),
        ],
        ids=["not-json", "not-object", "streams-not-list", "no-index", "bad-index", "bad-tags"],
    )
    def test_malformed_documents(self, document):
        """Test malformed documents are rejected at parse time."""
        with pytest.raises(MalformedOutput):
            parse_audio_streams(document)

    def test_descriptor_equality_uses_index(self):
        """Test descriptors compare by stream index only."""
        a = AudioStreamDescriptor(stream_index=1, language="eng", codec_name="aac")
        b = AudioStreamDescriptor(stream_index=1, language="jpn", codec_name="ac3")

        assert a == b
        assert hash(a) == hash(b)
        assert a != AudioStreamDescriptor(stream_index=2)


class TestProbeClient:
    """Test ProbeClient class."""

    @pytest.mark.asyncio
    async def test_probe_invocation(self, tool_dir, media_file):
        """Test ffprobe is called with structured-output arguments."""
        runner = FakeMediaTool()
        client = ProbeClient(ToolConfig(ffmpeg_path=str(tool_dir)), runner)

        streams = await client.probe(media_file)

        assert len(streams) == 2
        name, args = runner.calls[0]
        assert name == "ffprobe"
        assert args[:6] == ["-v", "error", "-print_format", "json", "-show_streams", "-show_format"]
        assert args[-1] == str(media_file)

    @pytest.mark.asyncio
    async def test_probe_failure(self, tool_dir, media_file):
        """Test a non-zero exit raises with the captured stderr."""
        runner = FakeMediaTool()
        runner.probe_exit_code = 1
        runner.probe_stderr = "Invalid data found when processing input"
        client = ProbeClient(ToolConfig(ffmpeg_path=str(tool_dir)), runner)

        with pytest.raises(ToolExecutionFailed) as exc_info:
            await client.probe(media_file)

        assert "Invalid data" in exc_info.value.diagnostic_text
        assert exc_info.value.exit_code == 1

    @pytest.mark.asyncio
    async def test_probe_malformed(self, tool_dir, media_file):
        """Test unparsable output raises MalformedOutput."""
        client = ProbeClient(ToolConfig(ffmpeg_path=str(tool_dir)), FakeMediaTool("garbage"))

        with pytest.raises(MalformedOutput):
            await client.probe(media_file)

    @pytest.mark.asyncio
    async def test_probe_tool_not_found(self, tmp_path, media_file):
        """Test a missing tool directory raises ToolNotFound."""
        runner = FakeMediaTool()
        client = ProbeClient(ToolConfig(ffmpeg_path=str(tmp_path / "missing")), runner)

        with pytest.raises(ToolNotFound):
            await client.probe(media_file)
        assert runner.calls == []
