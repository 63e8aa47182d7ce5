import logging

import numpy as np

from .config import Phase

logger = logging.getLogger(__name__)


class Net:
    """
    Runs a stack of layers through their lifecycle.

    Each layer is set up on the first input it sees and reshaped whenever
    the input shape changes. forward() hands back the per-layer caches and
    backward() consumes them, so two forward/backward pairs never share state.
    """

    def __init__(self, layers, phase=Phase.TRAIN):
        self.layers = list(layers)
        self.phase = Phase(phase)

    def forward(self, x):
        """Forward pass through all layers. Returns (output, caches)."""
        caches = []
        for layer in self.layers:
            x = np.asarray(x)
            if not layer.configured:
                layer.setup(x.shape, phase=self.phase)
            elif x.shape != layer.bottom_shape:
                layer.reshape(x.shape)
            x, cache = layer.forward(x)
            caches.append(cache)
        return x, caches

    def backward(self, grad_output, caches):
        """Backward pass through all layers."""
        if len(caches) != len(self.layers):
            raise ValueError(f"Expected {len(self.layers)} caches, got {len(caches)}")

        grad = grad_output
        for layer, cache in zip(reversed(self.layers), reversed(caches)):
            grad = layer.backward(grad, cache)
        return grad

    def state_dict(self):
        return {f"{i}.{name}": value
                for i, layer in enumerate(self.layers)
                for name, value in layer.state_dict().items()}

    def load_state_dict(self, state):
        """Load per-layer statistics. Layers with no entries in `state` are left alone."""
        loaded = 0
        for i, layer in enumerate(self.layers):
            prefix = f"{i}."
            layer_state = {k[len(prefix):]: v for k, v in state.items() if k.startswith(prefix)}
            if not layer_state:
                continue
            layer.load_state_dict(layer_state)
            loaded += 1
        logger.info("Loaded statistics for %d of %d layers", loaded, len(self.layers))
