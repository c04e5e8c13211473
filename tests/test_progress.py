"""Tests for ffmpeg diagnostic parsing."""

import pytest

from trim_engine.services.progress import (
    ProgressParser,
    UNKNOWN_ERROR,
    extract_error_message,
    format_ffmpeg_time,
    parse_ffmpeg_time,
    parse_progress_line,
)


class TestTimeParsing:
    """Tests for HH:MM:SS.CC conversion."""

    @pytest.mark.parametrize("text,expected", [
        ("00:00:05.50", 5.5),
        ("00:01:30.00", 90.0),
        ("01:23:45.67", 5025.67),
        ("-00:00:06.46", -6.46),
    ])
    def test_valid_times(self, text, expected):
        assert parse_ffmpeg_time(text) == pytest.approx(expected)

    @pytest.mark.parametrize("text", ["invalid", "1:02:03.45", "00:00:05", "00:00:05.5", "N/A", ""])
    def test_malformed_times(self, text):
        assert parse_ffmpeg_time(text) is None

    def test_format_is_inverse(self):
        for seconds in (0.0, 5.5, 90.0, 5025.67, -6.46):
            assert parse_ffmpeg_time(format_ffmpeg_time(seconds)) == pytest.approx(seconds)

    def test_format_pads(self):
        assert format_ffmpeg_time(3661.05) == "01:01:01.05"


class TestProgressLines:
    """Tests for stats line recognition."""

    def test_video_line(self):
        line = "frame=  123 fps= 45 q=28.0 size=  1024kB time=00:00:50.00 bitrate= 123.4kbits/s"
        assert parse_progress_line(line, 100.0) == pytest.approx(0.5)

    def test_final_lsize_line(self):
        line = "frame= 2500 fps=900 q=-1.0 Lsize=  20480kB time=00:01:40.00 bitrate=1677.7kbits/s speed=36x"
        assert parse_progress_line(line, 100.0) == pytest.approx(1.0)

    def test_audio_line_is_capped(self):
        line = "size=  233422kB time=00:01:45.00 bitrate= 301.1kbits/s speed= 353x"
        assert parse_progress_line(line, 100.0) == 1.0

    def test_unrelated_line(self):
        assert parse_progress_line("Random FFmpeg output without time", 100.0) is None

    def test_negative_time_is_no_progress(self):
        line = "frame=  123 fps= 45 q=28.0 size=  1024kB time=-00:00:06.46 bitrate= 123.4kbits/s"
        assert parse_progress_line(line, 100.0) is None

    def test_malformed_time_is_no_progress(self):
        line = "frame=    0 fps=0.0 q=0.0 size=       0kB time=N/A bitrate=N/A speed=N/A"
        assert parse_progress_line(line, 100.0) is None

    @pytest.mark.parametrize("duration", [0.0, -5.0])
    def test_non_positive_duration(self, duration):
        line = "frame=  123 fps= 45 q=28.0 size=  1024kB time=00:00:50.00 bitrate= 123.4kbits/s"
        assert parse_progress_line(line, duration) is None

    @pytest.mark.parametrize("duration", [1.0, 37.5, 100.0, 5025.67])
    def test_progress_never_decreases(self, duration):
        values = []
        for centis in range(0, 600_000, 997):
            line = f"size=  1kB time={format_ffmpeg_time(centis / 100)} bitrate=1kbits/s"
            values.append(parse_progress_line(line, duration))
        assert all(0.0 <= v <= 1.0 for v in values)
        assert values == sorted(values)

    def test_parser_remembers_last_value(self):
        parser = ProgressParser(10.0)
        assert parser.parse_line("size=  1kB time=00:00:02.00 bitrate=1kbits/s") == pytest.approx(0.2)
        assert parser.parse_line("noise") is None
        assert parser.last == pytest.approx(0.2)

    def test_parser_without_duration(self):
        parser = ProgressParser(None)
        assert parser.parse_line("size=  1kB time=00:00:02.00 bitrate=1kbits/s") is None


class TestErrorExtraction:
    """Tests for picking the diagnostic line of a failed run."""

    def test_last_error_line_wins(self):
        stderr = (
            "Input #0, mov,mp4, from 'in.mp4':\n"
            "Error opening input file one.mp4\n"
            "  Duration: 00:00:10.00\n"
            "Invalid data found when processing input\n"
            "Conversion finished\n"
        )
        assert extract_error_message(stderr) == "Invalid data found when processing input"

    def test_case_insensitive(self):
        assert extract_error_message("ok\nCONVERSION FAILED!\n") == "CONVERSION FAILED!"

    def test_no_such_file(self):
        stderr = "missing.mp4: No such file or directory\n"
        assert extract_error_message(stderr) == "missing.mp4: No such file or directory"

    def test_falls_back_to_last_non_empty_line(self):
        assert extract_error_message("first\nsecond\n\n   \n") == "second"

    def test_carriage_returns_split_lines(self):
        stderr = "frame=1 fps=0 q=0 size=0kB time=00:00:00.04 bitrate=0\rmuxer error: bad\r"
        assert extract_error_message(stderr) == "muxer error: bad"

    @pytest.mark.parametrize("stderr", ["", "\n\n", None])
    def test_empty(self, stderr):
        assert extract_error_message(stderr) == UNKNOWN_ERROR
