import logging

import numpy as np

from .errors import ShapeMismatchError

logger = logging.getLogger(__name__)


def spatial_dim_of(shape):
    """Product of every axis after the channel axis (1 for 1-D and 2-D shapes)."""
    spatial = 1
    for d in shape[2:]:
        spatial *= d
    return spatial


def normalize_shape(shape):
    # (N,) is one channel per sample
    shape = tuple(int(d) for d in shape)
    if len(shape) == 0:
        raise ShapeMismatchError("Cannot normalize a 0-d tensor")
    if len(shape) == 1:
        return (shape[0], 1)
    return shape


class TensorBuffer:
    """
    A (N, C, *spatial) tensor with a value array and a gradient array.

    `data` holds the values and `diff` the gradients; both always share one
    shape. Storage is only reallocated when the shape actually changes so the
    same arrays are reused across forward/backward calls.
    """

    def __init__(self, shape=(0,), dtype=np.float64):
        self.dtype = dtype
        self._shape = None
        self.data = None
        self.diff = None
        self.reshape(shape)

    @classmethod
    def from_array(cls, array, dtype=np.float64):
        array = np.asarray(array, dtype=dtype)
        buf = cls(array.shape, dtype=dtype)
        buf.data[...] = array
        return buf

    @property
    def shape(self):
        return self._shape

    @property
    def num(self):
        return self._shape[0]

    @property
    def channels(self):
        return normalize_shape(self._shape)[1] if len(self._shape) else 0

    @property
    def spatial_dim(self):
        return spatial_dim_of(self._shape)

    @property
    def count(self):
        return int(np.prod(self._shape)) if len(self._shape) else 0

    def reshape(self, shape):
        shape = tuple(int(d) for d in shape)
        if shape == self._shape:
            return False
        logger.debug("Reallocating buffer %s -> %s", self._shape, shape)
        self._shape = shape
        self.data = np.zeros(shape, dtype=self.dtype)
        self.diff = np.zeros(shape, dtype=self.dtype)
        return True

    def reshape_like(self, other):
        return self.reshape(other.shape)

    def as_matrix(self, which="data"):
        """(N*C, spatial) view of `data` or `diff` for the matrix helpers."""
        arr = self.data if which == "data" else self.diff
        rows = self.num * self.channels if len(self._shape) else 0
        return arr.reshape(rows, self.spatial_dim)

    def __repr__(self):
        return f"TensorBuffer(shape={self._shape}, dtype={np.dtype(self.dtype).name})"
