import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from ..config import NUM_STATISTICS_PARAMS, BatchNormConfig, ParamSpec, Phase, load_config, resolve_use_global_stats
from ..errors import ConfigurationError, ShapeMismatchError
from ..lib.matrix_helper import broadcast_channel_to_full, channel_mean, channel_sum, ones
from ..running_stats import SLOT_NAMES, RunningStatistics
from ..tensor import TensorBuffer, normalize_shape, spatial_dim_of
from .base import Layer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ForwardCache:
    """What backward() needs from the forward() call on the same input."""
    denominator: np.ndarray               # sqrt(var + eps), full input shape
    normalized: Optional[np.ndarray]      # forward output, training mode only
    use_global_stats: bool
    shape: Tuple[int, ...]


class BatchNormLayer(Layer):
    """
    Per-channel batch normalization for (N, C, *spatial) inputs.

    y = (x - E[x]) / sqrt(Var[x] + eps)

    training (use_global_stats=False): E and Var are the batch statistics over
        the N and spatial axes; they are also folded into the running
        statistics.
    inference (use_global_stats=True): E and Var come from the running
        statistics and nothing is updated.

    There is no learnable scale/shift; follow with a separate scale layer for
    that. The three statistics slots are never touched by an optimizer.
    """

    type = "BatchNorm"

    def __init__(self, config=None, phase=Phase.TRAIN, name=None, dtype=np.float64, **kwargs):
        """
        Args:
            config: BatchNormConfig, dict, DictConfig or path to a YAML file.
            phase: Phase used to pick use_global_stats when the config leaves it unset.
            name: Layer name used in log messages.
            **kwargs: Config overrides (momentum=..., eps=..., ...).
        """
        if isinstance(config, BatchNormConfig) and not kwargs:
            self.config = config
        else:
            self.config = load_config(config, **kwargs)
        self.phase = Phase(phase)
        self.name = name or self.type
        self.dtype = dtype

        # Fixed at setup()
        self.channels = None
        self.momentum = None
        self.eps = None
        self.use_global_stats = None
        self.param_specs = None
        self.stats = None
        self._pending_state = None

        # Sized by reshape()
        self.bottom_shape = None
        self.mean = None            # (C,) batch or running mean
        self.variance = None        # (C,) batch or running variance
        self.std = None             # (C,) sqrt(variance + eps)
        self.channel_buffer = None  # (C,) scratch for backward reductions
        self.num_by_chans = None    # (N*C,)
        self.batch_sum_multiplier = None    # ones (N,)
        self.spatial_sum_multiplier = None  # ones (S,)
        self.temp = TensorBuffer(dtype=dtype)

    @property
    def configured(self):
        return self.stats is not None

    def _require_setup(self):
        if not self.configured:
            raise ConfigurationError(f"{self.name}: setup() must be called first")

    def _mask_statistics_params(self, params):
        specs = list(params)
        for i, spec in enumerate(specs):
            if spec.lr_mult != 0:
                raise ConfigurationError(
                    f"{self.name}: Cannot configure batch normalization statistics as layer parameters "
                    f"({SLOT_NAMES[i]} has lr_mult={spec.lr_mult})"
                )
        while len(specs) < NUM_STATISTICS_PARAMS:
            specs.append(ParamSpec(lr_mult=0.0, name=SLOT_NAMES[len(specs)]))
        return specs

    def setup(self, bottom_shape, phase=None):
        shape = normalize_shape(bottom_shape)
        phase = self.phase if phase is None else Phase(phase)

        inferred = shape[1]
        channels = self.config.channels if self.config.channels is not None else inferred
        if channels != inferred:
            raise ShapeMismatchError(f"{self.name}: configured for {channels} channels, input has {inferred}")
        if self.configured and self.channels != channels:
            raise ShapeMismatchError(f"{self.name}: already set up for {self.channels} channels, input has {channels}")

        param_specs = self._mask_statistics_params(self.config.params)

        # statistics are only ever zeroed for a fresh layer
        if self.configured:
            logger.info("%s: Skipping parameter initialization", self.name)
            stats = self.stats
        else:
            stats = RunningStatistics(channels, dtype=self.dtype)
            if self._pending_state is not None:
                logger.info("%s: Skipping parameter initialization", self.name)
                stats.load_state_dict(self._pending_state)

        self.phase = phase
        self.channels = channels
        self.momentum = self.config.momentum
        self.eps = self.config.eps
        self.use_global_stats = resolve_use_global_stats(self.config, phase)
        self.param_specs = param_specs

        self.mean = np.zeros((channels,), dtype=self.dtype)
        self.variance = np.zeros((channels,), dtype=self.dtype)
        self.std = np.zeros((channels,), dtype=self.dtype)
        self.channel_buffer = np.zeros((channels,), dtype=self.dtype)

        self._pending_state = None
        self.stats = stats

        logger.info(
            "%s: %d channels, momentum=%g, eps=%g, use_global_stats=%s",
            self.name, channels, self.momentum, self.eps, self.use_global_stats,
        )
        self.reshape(bottom_shape)

    def reshape(self, bottom_shape):
        self._require_setup()
        shape = tuple(int(d) for d in bottom_shape)
        norm_shape = normalize_shape(shape)
        if norm_shape[1] != self.channels:
            raise ShapeMismatchError(
                f"{self.name}: input has {norm_shape[1]} channels, layer was set up for {self.channels}"
            )

        num = norm_shape[0]
        spatial_dim = spatial_dim_of(norm_shape)
        self.temp.reshape(shape)

        if self.batch_sum_multiplier is None or self.batch_sum_multiplier.shape[0] != num:
            self.batch_sum_multiplier = ones(num, dtype=self.dtype)
        if self.spatial_sum_multiplier is None or self.spatial_sum_multiplier.shape[0] != spatial_dim:
            self.spatial_sum_multiplier = ones(spatial_dim, dtype=self.dtype)
        if self.num_by_chans is None or self.num_by_chans.shape[0] != num * self.channels:
            self.num_by_chans = np.zeros((num * self.channels,), dtype=self.dtype)

        if shape != self.bottom_shape:
            logger.debug("%s: reshaped to %s (N=%d, S=%d)", self.name, shape, num, spatial_dim)
        self.bottom_shape = shape
        return shape

    def _matrix(self, arr):
        return arr.reshape(self.batch_sum_multiplier.shape[0] * self.channels, self.spatial_sum_multiplier.shape[0])

    def forward(self, bottom):
        self._require_setup()
        bottom = np.asarray(bottom, dtype=self.dtype)
        if bottom.shape != self.bottom_shape:
            self.reshape(bottom.shape)

        ones_n = self.batch_sum_multiplier
        ones_s = self.spatial_sum_multiplier
        top = bottom.copy()
        top_mat = self._matrix(top)
        temp_mat = self.temp.as_matrix("data")

        if self.use_global_stats:
            self.stats.read(self.mean, self.variance)
        else:
            channel_mean(self._matrix(bottom), ones_n, ones_s, self.num_by_chans, self.mean)

        # x - E[x]
        broadcast_channel_to_full(self.mean, ones_n, ones_s, self.num_by_chans, top_mat, alpha=-1.0, beta=1.0)

        if not self.use_global_stats:
            np.square(top_mat, out=temp_mat)
            channel_mean(temp_mat, ones_n, ones_s, self.num_by_chans, self.variance)
            samples_per_channel = top.size // self.channels
            self.stats.update(self.mean, self.variance, samples_per_channel, self.momentum)

        np.add(self.variance, self.eps, out=self.std)
        np.sqrt(self.std, out=self.std)
        broadcast_channel_to_full(self.std, ones_n, ones_s, self.num_by_chans, temp_mat)
        top_mat /= temp_mat

        cache = ForwardCache(
            denominator=self.temp.data.copy(),
            normalized=None if self.use_global_stats else top.copy(),
            use_global_stats=self.use_global_stats,
            shape=top.shape,
        )
        return top, cache

    def backward(self, top_diff, cache, propagate_down=True):
        if not propagate_down:
            return None
        self._require_setup()
        top_diff = np.asarray(top_diff, dtype=self.dtype)
        if top_diff.shape != cache.shape:
            raise ShapeMismatchError(f"{self.name}: gradient shape {top_diff.shape} does not match cache {cache.shape}")

        if cache.use_global_stats:
            return top_diff / cache.denominator

        if top_diff.shape != self.bottom_shape:
            self.reshape(top_diff.shape)

        # if y = (x - mean(x)) / sqrt(var(x) + eps) then
        #
        #   dE/dx = (dE/dy - mean(dE/dy) - mean(dE/dy * y) * y) / sqrt(var(x) + eps)
        #
        # with mean taken over every axis except channels
        ones_n = self.batch_sum_multiplier
        ones_s = self.spatial_sum_multiplier
        num = ones_n.shape[0]
        spatial_dim = ones_s.shape[0]

        y = self._matrix(cache.normalized)
        dy = self._matrix(top_diff)
        bottom_diff = np.empty(top_diff.shape, dtype=self.dtype)
        dx = self._matrix(bottom_diff)

        # sum(dy * y)
        np.multiply(y, dy, out=dx)
        channel_sum(dx, ones_n, ones_s, self.num_by_chans, self.channel_buffer)
        broadcast_channel_to_full(self.channel_buffer, ones_n, ones_s, self.num_by_chans, dx)

        # sum(dy * y) * y
        dx *= y

        # sum(dy) + sum(dy * y) * y
        channel_sum(dy, ones_n, ones_s, self.num_by_chans, self.channel_buffer)
        broadcast_channel_to_full(self.channel_buffer, ones_n, ones_s, self.num_by_chans, dx, beta=1.0)

        # dy - mean(dy) - mean(dy * y) * y
        dx *= -1.0 / (num * spatial_dim)
        dx += dy

        dx /= self._matrix(cache.denominator)
        return bottom_diff

    def blobs(self):
        self._require_setup()
        return self.stats.blobs()

    def state_dict(self):
        self._require_setup()
        return self.stats.state_dict()

    def load_state_dict(self, state):
        """Load the statistics slots. Before setup() they are kept until setup runs."""
        if not self.configured:
            missing = [name for name in SLOT_NAMES if name not in state]
            if missing:
                raise KeyError(f"{self.name}: missing statistics slots: {missing}")
            self._pending_state = {k: np.array(v, dtype=self.dtype) for k, v in state.items()}
            return
        self.stats.load_state_dict(state)

    def __repr__(self):
        return (
            f"BatchNormLayer(name={self.name!r}, channels={self.channels}, "
            f"momentum={self.config.momentum}, eps={self.config.eps}, use_global_stats={self.use_global_stats})"
        )
