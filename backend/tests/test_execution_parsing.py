"""
Tests for format lookup, FFmpeg progress parsing, progress windows and
failure classification.

Pure functions only: no FFmpeg, fast and side-effect free.
"""

import pytest

from transcoder.execution.failures import FailureKind, classify_failure
from transcoder.execution.formats import FORMATS, get_format, parse_resolution
from transcoder.execution.progress import CONCAT_WINDOW, ProgressParser, iteration_window, rescale
from transcoder.jobs.models import QualityPreset, TargetFormat


class TestFormats:
    """Format table and resolution parsing."""

    def test_mp4_codec_pair_and_tuning(self):
        spec = get_format(TargetFormat.MP4)
        assert (spec.video_codec, spec.audio_codec) == ("libx264", "aac")
        assert spec.tuning(QualityPreset.SLOW) == ["-preset", "slow", "-movflags", "+faststart"]
        assert spec.content_type == "video/mp4"

    def test_webm_codec_pair_and_cpu_used(self):
        spec = get_format(TargetFormat.WEBM)
        assert (spec.video_codec, spec.audio_codec) == ("libvpx", "libvorbis")
        assert spec.tuning(QualityPreset.ULTRAFAST) == ["-cpu-used", "0"]
        assert spec.tuning(QualityPreset.VERYSLOW) == ["-cpu-used", "5"]

    def test_webm_unmapped_preset_falls_back_to_medium(self):
        assert get_format(TargetFormat.WEBM).tuning(QualityPreset.SUPERFAST) == ["-cpu-used", "2"]

    def test_every_format_has_an_entry(self):
        assert set(FORMATS) == set(TargetFormat)

    def test_unknown_format(self):
        with pytest.raises(ValueError):
            get_format("avi")

    def test_parse_resolution(self):
        assert parse_resolution("1920x1080") == (1920, 1080)

    @pytest.mark.parametrize("value", ["1920X1080", "1920x", "x1080", "1920*1080", "", "-1x5", "0x0"])
    def test_malformed_resolution(self, value):
        with pytest.raises(ValueError):
            parse_resolution(value)


class TestProgressParser:
    """FFmpeg stderr parsing."""

    def test_duration_header_then_status_lines(self):
        events = []
        parser = ProgressParser(on_progress=events.append)

        assert parser.parse_line("  Duration: 00:00:10.00, start: 0.000000, bitrate: 1205 kb/s") is None
        event = parser.parse_line(
            "frame=  120 fps= 31 q=28.0 size=     512kB time=00:00:05.00 bitrate= 838.9kbits/s speed=1.2x"
        )

        assert parser.duration == 10.0
        assert event.percent == 50.0
        assert event.timemark == "00:00:05.00"
        assert event.kbps == 838.9
        assert event.fps == 31.0
        assert event.frame == 120
        assert events == [event]

    def test_known_duration_ignores_header(self):
        parser = ProgressParser(duration=20.0)
        parser.parse_line("Duration: 00:00:10.00")
        event = parser.parse_line("time=00:00:05.00 bitrate=N/A")

        assert event.percent == 25.0
        assert event.kbps == 0.0

    def test_percent_clamped_to_100(self):
        parser = ProgressParser(duration=10.0)
        assert parser.parse_line("time=00:00:12.00").percent == 100.0

    def test_unknown_duration_reports_zero(self):
        parser = ProgressParser()
        assert parser.parse_line("time=00:01:00.00").percent == 0.0

    def test_non_status_lines_ignored(self):
        parser = ProgressParser(duration=10.0)
        assert parser.parse_line("Stream #0:0: Video: h264") is None
        assert parser.parse_line("[libx264 @ 0x55] using cpu capabilities") is None


class TestProgressWindows:
    """Job-wide percent mapping."""

    def test_single_iteration_owns_encode_share(self):
        assert iteration_window(1, 1) == (0.0, 95.0)

    def test_windows_tile_without_gaps(self):
        windows = [iteration_window(i, 3) for i in range(1, 4)]
        assert windows[0][0] == 0.0
        assert windows[-1][1] == pytest.approx(95.0)
        for (_, high), (low, _) in zip(windows, windows[1:]):
            assert high == pytest.approx(low)

    def test_rescale(self):
        window = iteration_window(2, 4)
        assert rescale(0, window) == pytest.approx(23.75)
        assert rescale(100, window) == pytest.approx(47.5)
        assert rescale(150, window) == pytest.approx(47.5)
        assert rescale(50, CONCAT_WINDOW) == pytest.approx(97.5)

    def test_out_of_range_iteration(self):
        with pytest.raises(ValueError):
            iteration_window(0, 3)
        with pytest.raises(ValueError):
            iteration_window(4, 3)


class TestFailureClassification:
    """Raw engine failures become user-presentable messages."""

    def test_killed_process_is_resource_exhaustion(self):
        kind, message = classify_failure("", exit_code=-9)
        assert kind == FailureKind.RESOURCE_EXHAUSTED
        assert message.startswith("Processing failed due to insufficient memory or CPU resources.")

    @pytest.mark.parametrize("raw", ["ffmpeg was killed with signal SIGKILL", "Killed", "Cannot allocate memory"])
    def test_resource_patterns(self, raw):
        assert classify_failure(raw, exit_code=1)[0] == FailureKind.RESOURCE_EXHAUSTED

    def test_disk_full(self):
        kind, message = classify_failure("av_interleaved_write_frame(): No space left on device", exit_code=1)
        assert kind == FailureKind.DISK_FULL
        assert message == "Processing failed due to insufficient disk space."

    @pytest.mark.parametrize("raw", [
        "input.mp4: Input/output error",
        "input.mp4: Invalid data found when processing input",
        "moov atom not found",
    ])
    def test_corrupt_input(self, raw):
        kind, message = classify_failure(raw, exit_code=1)
        assert kind == FailureKind.CORRUPT_INPUT
        assert message == "Input file may be corrupted or in an unsupported format."

    def test_unclassified_failure_surfaces_last_line(self):
        kind, message = classify_failure("line one\nUnknown encoder 'libfoo'\n", exit_code=1)
        assert kind == FailureKind.ENGINE_FAILED
        assert message == "Transcoding failed: Unknown encoder 'libfoo' (exit code 1)"

    def test_empty_failure(self):
        assert classify_failure("") == (FailureKind.ENGINE_FAILED, "Transcoding failed.")
