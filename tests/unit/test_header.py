"""
Unit tests for FCS header parsing.

Tests the fixed 58-byte header: magic check, offset fields and the
TEXT range consistency check.
"""

import pytest

from cyto_workbench.fcs.errors import MalformedHeader
from cyto_workbench.fcs.header import HEADER_SIZE, build_header, parse_header


class TestParseHeader:
    """Test parse_header()."""

    def test_offsets_decoded(self):
        """Test every offset field is read."""
        buf = build_header(58, 200, 201, 400, 401, 500) + b"\0" * 500
        header = parse_header(buf)

        assert header.version == "FCS3.1"
        assert header.text_start == 58
        assert header.text_end == 200
        assert header.data_start == 201
        assert header.data_end == 400
        assert header.analysis_start == 401
        assert header.analysis_end == 500
        assert header.has_analysis

    def test_no_analysis_segment(self):
        """Test zero ANALYSIS offsets mean no ANALYSIS segment."""
        header = parse_header(build_header(58, 200, 201, 400))
        assert header.analysis_start == 0
        assert header.analysis_end == 0
        assert not header.has_analysis

    def test_short_buffer(self):
        """Test a buffer shorter than the header is rejected."""
        with pytest.raises(MalformedHeader):
            parse_header(build_header(58, 200)[:HEADER_SIZE - 1])

    def test_missing_magic(self):
        """Test a file without the FCS magic is rejected."""
        buf = b"XYZ3.1" + build_header(58, 200)[6:]
        with pytest.raises(MalformedHeader, match="Not an FCS file"):
            parse_header(buf)

    def test_text_end_not_after_start(self):
        """Test text_end <= text_start is rejected."""
        with pytest.raises(MalformedHeader):
            parse_header(build_header(100, 100))
        with pytest.raises(MalformedHeader):
            parse_header(build_header(100, 90))

    def test_non_numeric_text_offset(self):
        """Test a garbage TEXT offset is rejected."""
        buf = bytearray(build_header(58, 200))
        buf[10:18] = b"  abc   "
        with pytest.raises(MalformedHeader):
            parse_header(bytes(buf))

    @pytest.mark.parametrize("raw", [b"     1_0", b"    +200", b"   2 00 "])
    def test_offset_must_be_plain_digits(self, raw):
        """Test separators, signs and inner spaces in an offset are rejected."""
        buf = bytearray(build_header(58, 200))
        buf[18:26] = raw
        with pytest.raises(MalformedHeader):
            parse_header(bytes(buf))

    def test_blank_text_offset(self):
        """Test the TEXT offsets are required."""
        buf = bytearray(build_header(58, 200))
        buf[18:26] = b" " * 8
        with pytest.raises(MalformedHeader):
            parse_header(bytes(buf))

    def test_blank_data_offsets_read_as_zero(self):
        """Test blank DATA and ANALYSIS fields defer to the TEXT segment."""
        buf = bytearray(build_header(58, 200, 201, 400))
        buf[26:58] = b" " * 32
        header = parse_header(bytes(buf))

        assert header.data_start == 0
        assert header.data_end == 0
        assert header.analysis_end == 0

    def test_older_version_string(self):
        """Test FCS3.0 headers parse the same way."""
        header = parse_header(build_header(58, 200, version="FCS3.0"))
        assert header.version == "FCS3.0"


class TestBuildHeader:
    """Test build_header()."""

    def test_length(self):
        """Test the encoded header is exactly 58 bytes."""
        assert len(build_header(58, 200, 201, 400)) == HEADER_SIZE

    def test_right_justified_fields(self):
        """Test offsets are right-justified in 8 characters."""
        head = build_header(58, 200).decode("latin-1")
        assert head[10:18] == "      58"
        assert head[18:26] == "     200"

    def test_oversized_offset_written_as_zero(self):
        """Test offsets past 99,999,999 are deferred to TEXT."""
        head = build_header(58, 200, 100_000_000, 200_000_000).decode("latin-1")
        assert head[26:34].strip() == "0"
        assert head[34:42].strip() == "0"
