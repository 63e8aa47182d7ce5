import numpy as np

'''

Reductions and broadcasts over the batch and spatial axes of an (N, C, S)
tensor, written as products against all-ones vectors:

    sum over S   ==  (NC, S) @ ones(S)
    sum over N   ==  (N, C)^T @ ones(N)
    tile over N  ==  ones(N) outer vec(C)
    tile over S  ==  (NC, 1) outer ones(S)

Every routine writes into a caller-owned `out` buffer and never resizes it.

'''


def ones(n, dtype=np.float64):
    return np.ones((n,), dtype=dtype)


def _check_out(out, shape, what):
    if out.shape != tuple(shape):
        raise ValueError(f"Output buffer for {what} has shape {out.shape}, expected {tuple(shape)}")


# out = alpha * op(a) @ x + beta * out
def gemv(a, x, alpha, out, transpose=False, beta=0.0):
    m = a.T if transpose else a
    rows, cols = m.shape
    if cols != x.shape[0]:
        raise ValueError(f"Cannot multiply matrix and vector: ({rows}, {cols}) @ ({x.shape[0]},)")
    _check_out(out, (rows,), "gemv")

    if beta == 0.0:
        np.dot(m, x, out=out)
        out *= alpha
    else:
        out *= beta
        out += alpha * np.dot(m, x)
    return out


# out = alpha * a @ b + beta * out
def gemm(a, b, alpha, out, beta=0.0):
    a_rows, a_cols = a.shape
    b_rows, b_cols = b.shape
    if a_cols != b_rows:
        raise ValueError(f"Cannot multiply matrices: ({a_rows}, {a_cols}) @ ({b_rows}, {b_cols})")
    _check_out(out, (a_rows, b_cols), "gemm")

    if beta == 0.0:
        np.matmul(a, b, out=out)
        out *= alpha
    else:
        out *= beta
        out += alpha * np.matmul(a, b)
    return out


def reduce_over_spatial(tensor, ones_spatial, scale, out):
    """scale * sum over the spatial axis: (NC, S) -> (NC,)."""
    return gemv(tensor, ones_spatial, scale, out)


def reduce_over_batch(num_by_chans, ones_n, out, scale=1.0):
    """Sum an (N*C,) intermediate over the batch axis: -> (C,)."""
    n = ones_n.shape[0]
    channels = out.shape[0]
    if num_by_chans.size != n * channels:
        raise ValueError(f"Cannot view {num_by_chans.size} values as ({n}, {channels})")
    return gemv(num_by_chans.reshape(n, channels), ones_n, scale, out, transpose=True)


def broadcast_channel_to_full(vec, ones_n, ones_spatial, num_by_chans, out, alpha=1.0, beta=0.0):
    """
    Tile a per-channel vector to the full (NC, S) shape.

    The (N, C) intermediate is written to `num_by_chans`; `out` receives
    alpha * tiled + beta * out, so beta=1, alpha=-1 subtracts in place.
    """
    n = ones_n.shape[0]
    channels = vec.shape[0]
    by_chans = num_by_chans.reshape(n, channels)
    gemm(ones_n.reshape(n, 1), vec.reshape(1, channels), 1.0, by_chans)
    gemm(num_by_chans.reshape(n * channels, 1), ones_spatial.reshape(1, -1), alpha, out, beta=beta)
    return out


def channel_mean(tensor, ones_n, ones_spatial, num_by_chans, out):
    """Per-channel mean over batch and spatial axes, spatial reduced first."""
    n = ones_n.shape[0]
    spatial = ones_spatial.shape[0]
    reduce_over_spatial(tensor, ones_spatial, 1.0 / (n * spatial), num_by_chans)
    return reduce_over_batch(num_by_chans, ones_n, out)


def channel_sum(tensor, ones_n, ones_spatial, num_by_chans, out):
    reduce_over_spatial(tensor, ones_spatial, 1.0, num_by_chans)
    return reduce_over_batch(num_by_chans, ones_n, out)
