"""
Tests for per-token top-k sparsification
"""

import struct

import numpy as np
import pytest

from tensor_codecs.errors import CodecError, InvalidArgumentError
from tensor_codecs.sparsity import (
    allocate_sparse_array,
    compress,
    compress_into,
    compute_num_sparse_features,
    decompress,
    get_sparse_array_size,
    load_sparse_array_from_buffer,
    select_top_k,
)


def _roundtrip(values, num_tokens, num_features, ratio, **kwargs):
    sparse_array = compress(values, num_tokens, num_features, ratio, **kwargs)
    out = np.empty(num_tokens * num_features, dtype=np.float32)
    decompress(sparse_array, out)
    return sparse_array, out


def _expected_top_k(row, k):
    # primary key: descending magnitude, secondary: ascending index
    order = np.lexsort((np.arange(row.size), -np.abs(row)))
    return order[:k]


class TestRetainedCount:
    """Derivation of num_sparse_features from the ratio"""

    @pytest.mark.parametrize("num_features,ratio,expected", [
        (8, 0.25, 2),
        (8, 0.0, 0),
        (8, 1.0, 8),
        (10, 0.01, 1),     # positive ratio keeps at least one
        (4, 0.125, 1),     # 0.5 rounds up
        (12, 0.125, 2),    # 1.5 rounds up
        (8192, 0.15, 1229),
        (8192, 0.05, 410),
        (1, 0.3, 1),
    ])
    def test_derivation(self, num_features, ratio, expected):
        assert compute_num_sparse_features(num_features, ratio) == expected

    @pytest.mark.parametrize("ratio", [-0.1, 1.5, float("nan"), None, True, False, "0.5"])
    def test_ratio_out_of_range(self, ratio):
        with pytest.raises(InvalidArgumentError):
            allocate_sparse_array(4, 8, ratio)

    @pytest.mark.parametrize("num_tokens,num_features", [(0, 8), (4, 0), (70000, 8), (4, 70000)])
    def test_bad_dimensions(self, num_tokens, num_features):
        with pytest.raises(InvalidArgumentError):
            allocate_sparse_array(num_tokens, num_features, 0.5)


class TestCompress:
    """Top-k selection"""

    def test_example_row(self, sample_row):
        sparse_array, out = _roundtrip(sample_row, 1, 8, 0.25)

        assert sparse_array.num_sparse_features == 2
        assert list(sparse_array.sparse_indices) == [4, 7]
        assert list(sparse_array.values) == [-9.0, -8.0]
        np.testing.assert_array_equal(out, [0, 0, 0, 0, -9, 0, 0, -8])

    def test_ties_break_by_ascending_index(self):
        row = np.array([1, -1, 1, 2], dtype=np.float32)

        sparse_array = compress(row, 1, 4, 0.5)
        assert list(sparse_array.sparse_indices) == [3, 0]

        sparse_array = compress(row, 1, 4, 0.75)
        assert list(sparse_array.sparse_indices) == [3, 0, 1]

    def test_zero_magnitudes_keep_index_order(self):
        row = np.array([0, -0.0, 0, 0], dtype=np.float32)
        sparse_array = compress(row, 1, 4, 1.0)
        assert list(sparse_array.sparse_indices) == [0, 1, 2, 3]

    def test_selection_matches_reference(self, rng):
        num_tokens, num_features = 16, 64
        values = rng.standard_normal((num_tokens, num_features)).astype(np.float32)
        values[3, :8] = 0.5  # force ties

        sparse_array, out = _roundtrip(values, num_tokens, num_features, 0.25)
        k = sparse_array.num_sparse_features
        dense = out.reshape(num_tokens, num_features)

        for t in range(num_tokens):
            expected = _expected_top_k(values[t], k)
            np.testing.assert_array_equal(sparse_array.token_indices(t), expected)
            np.testing.assert_array_equal(sparse_array.token_values(t), values[t, expected])

            mask = np.zeros(num_features, dtype=bool)
            mask[expected] = True
            np.testing.assert_array_equal(dense[t, mask], values[t, mask])
            assert np.all(dense[t, ~mask] == 0.0)

    def test_entries_strictly_ordered_within_token(self, rng):
        values = rng.standard_normal((8, 32)).astype(np.float32)
        sparse_array = compress(values, 8, 32, 0.5)

        for t in range(8):
            indices = sparse_array.token_indices(t)
            magnitudes = np.abs(sparse_array.token_values(t))
            assert len(set(indices.tolist())) == indices.size
            assert np.all(np.diff(magnitudes) <= 0)

    def test_select_top_k_helper(self):
        rows = np.array([[1, -3, 2], [0, 0, -1]], dtype=np.float32)
        indices, values = select_top_k(rows, 2)
        np.testing.assert_array_equal(indices, [[1, 2], [2, 0]])
        np.testing.assert_array_equal(values, [[-3, 2], [-1, 0]])

    def test_parallel_matches_serial(self, rng):
        values = rng.standard_normal((37, 50)).astype(np.float32)

        serial = compress(values, 37, 50, 0.3, parallel=False)
        parallel = compress(values, 37, 50, 0.3, parallel=True, num_workers=4)

        assert serial.to_bytes() == parallel.to_bytes()

    def test_more_workers_than_tokens(self, rng):
        values = rng.standard_normal((2, 10)).astype(np.float32)
        serial = compress(values, 2, 10, 0.5, parallel=False)
        parallel = compress(values, 2, 10, 0.5, num_workers=16)
        assert serial.to_bytes() == parallel.to_bytes()

    def test_verbose_reports_workers(self, rng, capsys):
        values = rng.standard_normal((4, 10)).astype(np.float32)
        compress(values, 4, 10, 0.5, num_workers=2, verbose=True)
        assert "2 worker threads" in capsys.readouterr().out

    def test_quiet_by_default(self, rng, capsys):
        values = rng.standard_normal((4, 10)).astype(np.float32)
        compress(values, 4, 10, 0.5, num_workers=2)
        assert capsys.readouterr().out == ""

    def test_zero_ratio(self, rng):
        values = rng.standard_normal((3, 5)).astype(np.float32)
        sparse_array = compress(values, 3, 5, 0.0)

        out = np.ones(15, dtype=np.float32)
        decompress(sparse_array, out)

        assert sparse_array.num_sparse_features == 0
        assert get_sparse_array_size(sparse_array) == 6
        assert np.all(out == 0.0)

    def test_full_ratio_is_lossless(self, rng):
        values = rng.standard_normal((5, 9)).astype(np.float32)
        _, out = _roundtrip(values, 5, 9, 1.0)
        np.testing.assert_array_equal(out, values.reshape(-1))

    def test_extra_input_values_ignored(self, sample_row):
        values = np.concatenate([sample_row, np.full(4, 100.0, dtype=np.float32)])
        sparse_array = compress(values, 1, 8, 0.25)
        assert list(sparse_array.sparse_indices) == [4, 7]


class TestDecompress:
    """Dense reconstruction into caller-owned buffers"""

    def test_only_dense_region_is_zeroed(self, sample_row):
        sparse_array = compress(sample_row, 1, 8, 0.25)
        out = np.full(11, 7.0, dtype=np.float32)

        result = decompress(sparse_array, out)

        assert result is out
        np.testing.assert_array_equal(out[:8], [0, 0, 0, 0, -9, 0, 0, -8])
        assert np.all(out[8:] == 7.0)

    def test_two_dimensional_output(self, rng):
        values = rng.standard_normal((3, 6)).astype(np.float32)
        sparse_array = compress(values, 3, 6, 1.0)
        out = np.empty((3, 6), dtype=np.float32)
        decompress(sparse_array, out)
        np.testing.assert_array_equal(out, values)

    def test_bad_output(self, sample_row):
        sparse_array = compress(sample_row, 1, 8, 0.25)
        with pytest.raises(InvalidArgumentError):
            decompress(sparse_array, None)
        with pytest.raises(InvalidArgumentError):
            decompress(sparse_array, np.empty(4, dtype=np.float32))
        with pytest.raises(InvalidArgumentError):
            decompress(sparse_array, np.empty(8, dtype=np.float64))
        with pytest.raises(InvalidArgumentError):
            decompress(None, np.empty(8, dtype=np.float32))


class TestFailures:
    """Every failure surfaces as a CodecError"""

    def test_missing_input(self):
        with pytest.raises(InvalidArgumentError):
            compress(None, 1, 8, 0.25)

    def test_short_input(self, sample_row):
        with pytest.raises(InvalidArgumentError):
            compress(sample_row, 2, 8, 0.25)

    def test_zero_dimensions(self, sample_row):
        with pytest.raises(CodecError):
            compress(sample_row, 0, 8, 0.25)
        with pytest.raises(CodecError):
            compress(sample_row, 1, 0, 0.25)

    def test_ratio_out_of_range(self, sample_row):
        with pytest.raises(CodecError):
            compress(sample_row, 1, 8, 1.01)

    def test_second_population_rejected(self, sample_row):
        sparse_array = compress(sample_row, 1, 8, 0.25)
        with pytest.raises(InvalidArgumentError):
            compress_into(sample_row, sparse_array)

    def test_compress_into_missing_record(self, sample_row):
        with pytest.raises(InvalidArgumentError):
            compress_into(sample_row, None)

    def test_bad_worker_count(self, sample_row):
        with pytest.raises(InvalidArgumentError):
            compress(sample_row, 1, 8, 0.25, num_workers=0)


class TestLifecycle:
    """Allocation, read-only population, release"""

    def test_compress_into_allocated_record(self, sample_row):
        sparse_array = allocate_sparse_array(1, 8, 0.25)
        assert not sparse_array.populated

        compress_into(sample_row, sparse_array, parallel=False)

        assert sparse_array.populated
        assert list(sparse_array.sparse_indices) == [4, 7]

    def test_populated_record_is_read_only(self, sample_row):
        sparse_array = compress(sample_row, 1, 8, 0.25)
        with pytest.raises(ValueError):
            sparse_array.values[0] = 1.0

    def test_release(self, sample_row):
        sparse_array = compress(sample_row, 1, 8, 0.25)
        sparse_array.release()
        assert sparse_array.released
        with pytest.raises(InvalidArgumentError):
            sparse_array.values

    def test_token_out_of_range(self, sample_row):
        sparse_array = compress(sample_row, 1, 8, 0.25)
        with pytest.raises(InvalidArgumentError):
            sparse_array.token_indices(1)


class TestSerialization:
    """Persisted layout and reload"""

    def test_size(self, rng):
        values = rng.standard_normal((4, 20)).astype(np.float32)
        sparse_array = compress(values, 4, 20, 0.25)

        # header + 4 tokens * 5 kept * (u16 index + f32 value)
        assert get_sparse_array_size(sparse_array) == 6 + 4 * 5 * 6
        assert len(sparse_array.to_bytes()) == get_sparse_array_size(sparse_array)

    def test_layout(self, sample_row):
        raw = compress(sample_row, 1, 8, 0.25).to_bytes()

        assert struct.unpack_from('<HHH', raw, 0) == (1, 8, 2)
        assert struct.unpack_from('<HH', raw, 6) == (4, 7)
        assert struct.unpack_from('<ff', raw, 10) == (-9.0, -8.0)

    def test_reload_decodes_identically(self, rng):
        values = rng.standard_normal((12, 40)).astype(np.float32)
        sparse_array, expected = _roundtrip(values, 12, 40, 0.2)

        loaded = load_sparse_array_from_buffer(sparse_array.to_bytes())
        out = np.empty(12 * 40, dtype=np.float32)
        decompress(loaded, out)

        assert loaded.populated
        assert (loaded.num_tokens, loaded.num_features, loaded.num_sparse_features) == (12, 40, 8)
        np.testing.assert_array_equal(out, expected)

    def test_reload_rejects_bad_buffers(self, sample_row):
        raw = bytearray(compress(sample_row, 1, 8, 0.25).to_bytes())

        with pytest.raises(InvalidArgumentError):
            load_sparse_array_from_buffer(None)
        with pytest.raises(InvalidArgumentError):
            load_sparse_array_from_buffer(raw[:4])
        with pytest.raises(InvalidArgumentError):
            load_sparse_array_from_buffer(raw + b"\x00")

        too_many = bytearray(raw)
        struct.pack_into('<H', too_many, 4, 9)
        with pytest.raises(InvalidArgumentError):
            load_sparse_array_from_buffer(too_many)

        bad_index = bytearray(raw)
        struct.pack_into('<H', bad_index, 6, 8)
        with pytest.raises(InvalidArgumentError):
            load_sparse_array_from_buffer(bad_index)

        no_tokens = bytearray(raw)
        struct.pack_into('<H', no_tokens, 0, 0)
        with pytest.raises(InvalidArgumentError):
            load_sparse_array_from_buffer(no_tokens)


@pytest.mark.slow
def test_large_matrix_parallel(generator):
    num_tokens, num_features = 512, 8192
    values = generator.generate_one(num_tokens * num_features)

    serial = compress(values, num_tokens, num_features, 0.05, parallel=False)
    parallel = compress(values, num_tokens, num_features, 0.05, num_workers=4)

    assert serial.num_sparse_features == 410
    assert serial.to_bytes() == parallel.to_bytes()
