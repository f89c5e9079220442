"""
Unit tests for dataset metadata resolution.

Tests required keywords, DATA range resolution, numeric encoding, byte
order, parameter descriptors and spillover parsing.
"""

import math

import numpy as np
import pytest

from cyto_workbench.fcs.errors import (
    DataSegmentTooSmall,
    InvalidDataRange,
    MissingRequiredField,
    UnsupportedDataType,
)
from cyto_workbench.fcs.header import parse_header
from cyto_workbench.fcs.metadata import (
    DataType,
    bytes_for_param,
    decode_metadata,
    is_little_endian,
    parse_spillover,
    resolve_metadata,
)
from cyto_workbench.fcs.text_segment import parse_text_segment
from tests.fixtures import FCSSpec, build_fcs, two_event_file


def _resolve_with(buf: bytes, changes: dict):
    """Resolve metadata after editing the parsed TEXT segment (None deletes)."""
    header = parse_header(buf)
    text = parse_text_segment(buf, header.text_start, header.text_end)
    for key, value in changes.items():
        key = key.upper()
        if value is None:
            text.pop(key, None)
        else:
            text[key] = value
    return resolve_metadata(buf, header, text)


class TestDecodeMetadata:
    """Test decode_metadata() on well-formed files."""

    def test_two_event_file(self):
        """Test the basic 2 x 2 integer file."""
        meta = decode_metadata(two_event_file())

        assert meta.version == "FCS3.1"
        assert meta.n_events == 2
        assert meta.n_params == 2
        assert meta.data_type is DataType.INTEGER
        assert meta.little_endian
        assert meta.byte_widths == [2, 2]
        assert meta.bytes_per_event == 4
        assert meta.data_end - meta.data_start + 1 == 8
        assert meta.labels == ["Ch1", "Ch2"]
        assert meta.spillover is None

    def test_short_name_preferred_for_label(self):
        """Test $PnS wins over $PnN for the display label."""
        meta = decode_metadata(two_event_file(labels=["CD3", "CD4"], names=["FL1-A", "FL2-A"]))

        assert meta.labels == ["CD3", "CD4"]
        assert meta.params[0].name == "FL1-A"
        assert meta.params[1].range == 262144
        assert meta.params[1].bit_width == 16

    def test_label_falls_back_to_pn(self):
        """Test parameters without $PnS or $PnN are labelled Pn."""
        buf = two_event_file()
        meta = _resolve_with(buf, {"$P1N": None, "$P2N": None})
        assert meta.labels == ["P1", "P2"]
        assert meta.params[0].name is None

    def test_param_index_lookup(self):
        """Test channels can be found by label or detector name."""
        meta = decode_metadata(two_event_file(labels=["CD3", "CD4"], names=["FL1-A", "FL2-A"]))

        assert meta.param_index("cd4") == 1
        assert meta.param_index("FL1-A") == 0
        with pytest.raises(KeyError):
            meta.param_index("CD8")

    def test_offsets_in_text(self):
        """Test $BEGINDATA/$ENDDATA are used when the header defers them."""
        buf = two_event_file(offsets_in_text=True)
        header = parse_header(buf)
        meta = decode_metadata(buf)

        assert header.data_start == 0
        assert meta.data_start > 0
        assert meta.data_end == len(buf) - 1

    def test_float_file(self):
        """Test $DATATYPE F uses 4 bytes per value."""
        meta = decode_metadata(build_fcs(FCSSpec(columns=[[1.5], [2.5], [3.5]], data_type="F")))
        assert meta.data_type is DataType.FLOAT32
        assert meta.bytes_per_event == 12

    def test_missing_datatype_defaults_to_integer(self):
        """Test a file without $DATATYPE is read as integer."""
        meta = _resolve_with(two_event_file(), {"$DATATYPE": None})
        assert meta.data_type is DataType.INTEGER

    def test_big_endian_byteord(self):
        """Test descending byte order is big-endian."""
        meta = decode_metadata(two_event_file(byteord="4,3,2,1"))
        assert not meta.little_endian

    def test_mixed_integer_widths(self):
        """Test per-parameter byte widths follow $PnB."""
        spec = FCSSpec(columns=[[1], [300], [70000]], bits=[8, 16, 32])
        meta = decode_metadata(build_fcs(spec))
        assert meta.byte_widths == [1, 2, 4]
        assert meta.bytes_per_event == 7


class TestRequiredFields:
    """Test the errors raised for missing or inconsistent keywords."""

    def test_missing_tot(self):
        """Test a missing $TOT is reported with its key."""
        with pytest.raises(MissingRequiredField) as exc_info:
            _resolve_with(two_event_file(), {"$TOT": None})
        assert exc_info.value.key == "$TOT"
        assert "[Key: $TOT]" in str(exc_info.value)
        assert exc_info.value.kind == "MissingRequiredField"

    def test_non_positive_par(self):
        """Test $PAR must be a positive integer."""
        with pytest.raises(MissingRequiredField):
            _resolve_with(two_event_file(), {"$PAR": "0"})
        with pytest.raises(MissingRequiredField):
            _resolve_with(two_event_file(), {"$PAR": "two"})

    def test_unknown_datatype(self):
        """Test $DATATYPE values other than I, F and D are rejected."""
        with pytest.raises(UnsupportedDataType) as exc_info:
            _resolve_with(two_event_file(), {"$DATATYPE": "A"})
        assert exc_info.value.data_type == "A"

    def test_integer_wider_than_32_bits(self):
        """Test 64-bit integers are rejected."""
        with pytest.raises(UnsupportedDataType) as exc_info:
            _resolve_with(two_event_file(), {"$P2B": "64"})
        assert exc_info.value.bit_width == 64

    def test_data_segment_too_small(self):
        """Test $TOT larger than the DATA segment holds."""
        with pytest.raises(DataSegmentTooSmall) as exc_info:
            _resolve_with(two_event_file(), {"$TOT": "3"})
        assert exc_info.value.required == 12
        assert exc_info.value.actual == 8

    def test_empty_data_range(self):
        """Test an end offset at or before the start."""
        buf = two_event_file()
        start = parse_header(buf).data_start
        with pytest.raises(InvalidDataRange) as exc_info:
            _resolve_with(buf, {"$ENDDATA": str(start)})
        assert exc_info.value.start == start
        assert exc_info.value.end == start

    def test_data_range_beyond_file(self):
        """Test a DATA segment starting past the end of the file."""
        buf = two_event_file()
        with pytest.raises(InvalidDataRange):
            _resolve_with(buf, {"$BEGINDATA": str(len(buf) + 10),
                                "$ENDDATA": str(len(buf) + 20)})

    def test_negative_data_start(self):
        """Test a negative $BEGINDATA is an invalid range, not a decode crash."""
        buf = build_fcs(FCSSpec(columns=[[1, 2], [3, 4]], extra={"$BEGINDATA": "-20"}))
        with pytest.raises(InvalidDataRange) as exc_info:
            decode_metadata(buf)
        assert exc_info.value.start == -20

    @pytest.mark.parametrize("key,value", [("$TOT", "1_0"), ("$PAR", "+2\u0661"), ("$TOT", " 2.0 ")])
    def test_required_fields_are_plain_decimals(self, key, value):
        """Test digit separators and non-ASCII digits are not accepted."""
        with pytest.raises(MissingRequiredField):
            _resolve_with(two_event_file(), {key: value})


class TestEncodingHelpers:
    """Test byte order and width helpers."""

    @pytest.mark.parametrize("byteord,expected", [
        ("1,2,3,4", True),
        ("1,2", True),
        ("1, 2, 3, 4", True),
        (None, True),
        ("4,3,2,1", False),
        ("2,1", False),
        ("3,4,1,2", False),
    ])
    def test_is_little_endian(self, byteord, expected):
        assert is_little_endian(byteord) is expected

    @pytest.mark.parametrize("bits,expected", [
        (1, 1), (8, 1), (10, 2), (16, 2), (None, 2), (24, 4), (32, 4),
    ])
    def test_integer_widths(self, bits, expected):
        assert bytes_for_param(DataType.INTEGER, bits) == expected

    def test_float_widths_ignore_bits(self):
        assert bytes_for_param(DataType.FLOAT32, 16) == 4
        assert bytes_for_param(DataType.FLOAT64, None) == 8

    def test_zero_bits_rejected(self):
        with pytest.raises(UnsupportedDataType):
            bytes_for_param(DataType.INTEGER, 0)


class TestSpillover:
    """Test parse_spillover()."""

    def test_basic_matrix(self):
        """Test values land by position with the diagonal zeroed."""
        matrix = parse_spillover({"SPILL": "2,A,B,1,0.1,0.2,1"}, 2)
        np.testing.assert_array_equal(matrix, [[0.0, 0.1], [0.2, 0.0]])

    def test_block_smaller_than_panel(self):
        """Test a smaller block is placed top-left."""
        matrix = parse_spillover({"$SPILLOVER": "2,A,B,1,0.3,0.4,1"}, 3)
        assert matrix.shape == (3, 3)
        assert matrix[0, 1] == pytest.approx(0.3)
        assert matrix[1, 0] == pytest.approx(0.4)
        assert not matrix[2].any()

    def test_semicolons_accepted(self):
        matrix = parse_spillover({"SPILLOVER": "2;A;B;1;0.5;0;1"}, 2)
        assert matrix[0, 1] == pytest.approx(0.5)

    def test_non_numeric_value_is_zero(self):
        matrix = parse_spillover({"SPILL": "2,A,B,1,x,0.2,1"}, 2)
        assert matrix[0, 1] == 0.0
        assert not any(math.isnan(v) for v in matrix.ravel())

    def test_short_block_ignored(self):
        assert parse_spillover({"SPILL": "2,A,B,1,0.1"}, 2) is None

    def test_bad_size_ignored(self):
        assert parse_spillover({"SPILL": "x,A,B"}, 2) is None

    def test_absent(self):
        assert parse_spillover({}, 2) is None

    def test_spillover_from_file(self):
        """Test the keyword is picked up during metadata resolution."""
        meta = decode_metadata(two_event_file(spill="2,Ch1,Ch2,1,0.25,0,1"))
        assert meta.spillover[0, 1] == pytest.approx(0.25)
