import logging

import numpy as np

from .errors import ShapeMismatchError

logger = logging.getLogger(__name__)

# names of the three statistics slots, in slot order
SLOT_NAMES = ("running_mean_acc", "running_var_acc", "cumulative_weight")


class RunningStatistics:
    """
    Exponentially weighted running mean / variance for C channels.

    The accumulators are not normalized: after k updates with momentum λ

        w(k)    = λ * w(k-1) + 1
        mean(k) = λ * mean(k-1) + batch_mean(k)
        var(k)  = λ * var(k-1) + m/(m-1) * batch_var(k)

    and `read()` divides both by w. Before any update w is 0 and `read()`
    returns zeros rather than dividing by zero.
    """

    def __init__(self, channels, dtype=np.float64):
        self.channels = channels
        self.mean_accumulator = np.zeros((channels,), dtype=dtype)
        self.variance_accumulator = np.zeros((channels,), dtype=dtype)
        # kept as a (1,) array so all three slots are arrays
        self.cumulative_weight = np.zeros((1,), dtype=dtype)

    @staticmethod
    def bias_correction(samples_per_channel):
        m = samples_per_channel
        return m / (m - 1) if m > 1 else 1.0

    def update(self, batch_mean, batch_variance, samples_per_channel, momentum):
        self.cumulative_weight *= momentum
        self.cumulative_weight += 1

        # scaled accumulate, never overwrite
        self.mean_accumulator *= momentum
        self.mean_accumulator += batch_mean

        self.variance_accumulator *= momentum
        self.variance_accumulator += self.bias_correction(samples_per_channel) * batch_variance

    def scale_factor(self):
        weight = self.cumulative_weight[0]
        return 0.0 if weight == 0 else 1.0 / weight

    def read(self, mean_out=None, variance_out=None):
        scale = self.scale_factor()
        if mean_out is None:
            mean_out = np.empty_like(self.mean_accumulator)
        if variance_out is None:
            variance_out = np.empty_like(self.variance_accumulator)
        np.multiply(self.mean_accumulator, scale, out=mean_out)
        np.multiply(self.variance_accumulator, scale, out=variance_out)
        return mean_out, variance_out

    def reset(self):
        self.mean_accumulator.fill(0)
        self.variance_accumulator.fill(0)
        self.cumulative_weight.fill(0)

    def blobs(self):
        return [self.mean_accumulator, self.variance_accumulator, self.cumulative_weight]

    def state_dict(self):
        return {name: blob.copy() for name, blob in zip(SLOT_NAMES, self.blobs())}

    def load_state_dict(self, state):
        missing = [name for name in SLOT_NAMES if name not in state]
        if missing:
            raise KeyError(f"Missing statistics slots: {missing}")

        for name, blob in zip(SLOT_NAMES, self.blobs()):
            value = np.asarray(state[name], dtype=blob.dtype).reshape(-1)
            if value.shape != blob.shape:
                raise ShapeMismatchError(f"Slot {name} has shape {value.shape}, expected {blob.shape}")
            blob[...] = value
        logger.debug("Loaded running statistics for %d channels", self.channels)

    def __repr__(self):
        return f"RunningStatistics(channels={self.channels}, weight={self.cumulative_weight[0]})"
