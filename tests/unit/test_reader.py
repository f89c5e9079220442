"""
Unit tests for the event record reader.

Tests preview sampling, single-event decoding, chunked full decoding and
byte order handling.
"""

import numpy as np
import pytest

from cyto_workbench.fcs.metadata import DataType, decode_metadata
from cyto_workbench.fcs.reader import (
    CHANNEL_DTYPE,
    iter_event_chunks,
    preview_indices,
    read_event,
    read_full,
    read_preview,
    read_value,
)
from tests.fixtures import FCSSpec, build_fcs, random_file, two_event_file


class TestPreviewIndices:
    """Test preview_indices()."""

    def test_evenly_spaced(self):
        """Test idx[i] = floor(i * n / preview_n)."""
        np.testing.assert_array_equal(preview_indices(10, 4), [0, 2, 5, 7])

    def test_cap_covers_dataset(self):
        """Test every event is used when the cap is large enough."""
        np.testing.assert_array_equal(preview_indices(3, 5), [0, 1, 2])
        np.testing.assert_array_equal(preview_indices(3, 3), [0, 1, 2])

    def test_deterministic_and_in_range(self):
        """Test repeated calls agree and stay below n_events."""
        a = preview_indices(1_000_003, 10_000)
        b = preview_indices(1_000_003, 10_000)
        np.testing.assert_array_equal(a, b)
        assert len(a) == 10_000
        assert a[-1] < 1_000_003
        assert np.all(np.diff(a) > 0)


class TestReadEvent:
    """Test scalar decoding."""

    def test_two_event_file(self):
        """Test both events of the basic file decode."""
        buf = two_event_file()
        meta = decode_metadata(buf)

        assert read_event(buf, meta, 0) == [1000.0, 2000.0]
        assert read_event(buf, meta, 1) == [1500.0, 2500.0]

    def test_index_out_of_range(self):
        buf = two_event_file()
        meta = decode_metadata(buf)
        with pytest.raises(IndexError):
            read_event(buf, meta, 2)
        with pytest.raises(IndexError):
            read_event(buf, meta, -1)

    def test_big_endian(self):
        """Test descending $BYTEORD decodes the same values."""
        buf = two_event_file(byteord="4,3,2,1")
        meta = decode_metadata(buf)
        assert read_event(buf, meta, 1) == [1500.0, 2500.0]

    def test_read_value_rejects_unknown_width(self):
        with pytest.raises(ValueError):
            read_value(b"\0" * 8, 0, DataType.INTEGER, 3, True)


class TestPreview:
    """Test read_preview()."""

    def test_preview_capped(self):
        """Test the preview holds the sampled events in order."""
        columns = [list(range(10)), [v * 10 for v in range(10)]]
        buf = build_fcs(FCSSpec(columns=columns))
        meta = decode_metadata(buf)
        preview = read_preview(buf, meta, cap=4)

        assert preview.n == 4
        np.testing.assert_array_equal(preview.indices, [0, 2, 5, 7])
        np.testing.assert_array_equal(preview.channels[0], [0, 2, 5, 7])
        np.testing.assert_array_equal(preview.channels[1], [0, 20, 50, 70])

    def test_preview_whole_file(self):
        buf = two_event_file()
        preview = read_preview(buf, decode_metadata(buf), cap=10_000)

        assert preview.n == 2
        np.testing.assert_array_equal(preview.channels[0], [1000, 1500])
        np.testing.assert_array_equal(preview.channels[1], [2000, 2500])
        assert preview.channels[0].dtype == CHANNEL_DTYPE


class TestFullDecode:
    """Test chunked and whole-file decoding."""

    def test_chunks_cover_every_event(self):
        """Test chunk boundaries and that chunks concatenate to the full decode."""
        buf = random_file(10, n_params=3)
        meta = decode_metadata(buf)
        chunks = list(iter_event_chunks(buf, meta, chunk_size=4))

        assert [(start, stop) for start, stop, _ in chunks] == [(0, 4), (4, 8), (8, 10)]
        full = read_full(buf, meta)
        for p in range(3):
            joined = np.concatenate([channels[p] for _, _, channels in chunks])
            np.testing.assert_array_equal(joined, full[p])

    def test_zero_chunk_size_treated_as_one(self):
        buf = two_event_file()
        chunks = list(iter_event_chunks(buf, decode_metadata(buf), chunk_size=0))
        assert len(chunks) == 2

    def test_float_values(self):
        """Test float32 data decodes exactly."""
        spec = FCSSpec(columns=[[1.5, -2.25], [1e6, 0.0]], data_type="F")
        buf = build_fcs(spec)
        full = read_full(buf, decode_metadata(buf))
        np.testing.assert_array_equal(full[0], np.array([1.5, -2.25], dtype=np.float32))
        np.testing.assert_array_equal(full[1], np.array([1e6, 0.0], dtype=np.float32))

    def test_double_values_stored_as_float32(self):
        spec = FCSSpec(columns=[[0.1, 0.2]], data_type="D")
        buf = build_fcs(spec)
        full = read_full(buf, decode_metadata(buf))
        assert full[0].dtype == CHANNEL_DTYPE
        assert full[0][0] == pytest.approx(0.1, rel=1e-6)

    def test_mixed_widths_big_endian(self):
        """Test 8, 16 and 32 bit channels in a big-endian record."""
        spec = FCSSpec(columns=[[1, 255], [300, 65535], [70000, 1 << 20]],
                       bits=[8, 16, 32], byteord="4,3,2,1")
        buf = build_fcs(spec)
        meta = decode_metadata(buf)
        full = read_full(buf, meta)

        np.testing.assert_array_equal(full[0], [1, 255])
        np.testing.assert_array_equal(full[1], [300, 65535])
        np.testing.assert_array_equal(full[2], [70000, 1 << 20])
        assert read_event(buf, meta, 1) == [255.0, 65535.0, float(1 << 20)]
