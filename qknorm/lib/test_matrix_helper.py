import numpy as np
import pytest

from qknorm.lib.matrix_helper import (
    broadcast_channel_to_full,
    channel_mean,
    channel_sum,
    gemm,
    gemv,
    ones,
    reduce_over_batch,
    reduce_over_spatial,
)


def test_reduce_over_spatial():
    m = np.arange(6, dtype=np.float64).reshape(3, 2)
    out = np.zeros(3)
    reduce_over_spatial(m, ones(2), 1.0, out)
    assert np.array_equal(out, [1.0, 5.0, 9.0])

    reduce_over_spatial(m, ones(2), 0.5, out)
    assert np.array_equal(out, [0.5, 2.5, 4.5])


def test_reduce_over_batch():
    # N=2, C=3
    num_by_chans = np.array([1.0, 2.0, 3.0, 4.0, 5.0, 6.0])
    out = np.zeros(3)
    reduce_over_batch(num_by_chans, ones(2), out)
    assert np.array_equal(out, [5.0, 7.0, 9.0])


def test_broadcast_channel_to_full():
    vec = np.array([1.0, 2.0])
    num_by_chans = np.zeros(4)
    out = np.zeros((4, 3))
    broadcast_channel_to_full(vec, ones(2), ones(3), num_by_chans, out)

    expected = np.array([[1, 1, 1], [2, 2, 2], [1, 1, 1], [2, 2, 2]], dtype=np.float64)
    assert np.array_equal(out, expected)
    assert np.array_equal(num_by_chans, [1.0, 2.0, 1.0, 2.0])


def test_broadcast_subtracts_in_place():
    vec = np.array([1.0, 2.0])
    out = np.full((4, 3), 10.0)
    broadcast_channel_to_full(vec, ones(2), ones(3), np.zeros(4), out, alpha=-1.0, beta=1.0)
    assert np.array_equal(out[0], [9.0, 9.0, 9.0])
    assert np.array_equal(out[1], [8.0, 8.0, 8.0])


def test_channel_mean_and_sum_match_numpy():
    np.random.seed(42)
    x = np.random.randn(4, 3, 5)
    mat = x.reshape(12, 5)
    mean = np.zeros(3)
    total = np.zeros(3)

    channel_mean(mat, ones(4), ones(5), np.zeros(12), mean)
    channel_sum(mat, ones(4), ones(5), np.zeros(12), total)

    assert np.allclose(mean, x.mean(axis=(0, 2)))
    assert np.allclose(total, x.sum(axis=(0, 2)))


def test_gemv_accumulates_with_beta():
    a = np.array([[1.0, 2.0], [3.0, 4.0]])
    out = np.array([1.0, 1.0])
    gemv(a, np.array([1.0, 1.0]), 2.0, out, beta=1.0)
    assert np.array_equal(out, [7.0, 15.0])

    gemv(a, np.array([1.0, 0.0]), 1.0, out, transpose=True)
    assert np.array_equal(out, [1.0, 2.0])


def test_output_buffers_are_not_resized():
    with pytest.raises(ValueError, match="expected"):
        reduce_over_spatial(np.ones((3, 2)), ones(2), 1.0, np.zeros(4))

    with pytest.raises(ValueError, match="Cannot multiply matrices"):
        gemm(np.ones((2, 3)), np.ones((2, 3)), 1.0, np.zeros((2, 3)))

    with pytest.raises(ValueError, match="Cannot view"):
        reduce_over_batch(np.ones(5), ones(2), np.zeros(3))
