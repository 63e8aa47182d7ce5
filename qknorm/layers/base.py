from abc import ABC, abstractmethod


class Layer(ABC):
    """
    Lifecycle contract shared by every layer kind.

    An engine calls setup() once, reshape() whenever the input shape changes,
    then pairs of forward()/backward(). forward() returns the output together
    with an explicit cache that the matching backward() consumes, so a layer
    keeps no hidden state between the two calls.
    """

    type = None
    bottom_shape = None

    @property
    @abstractmethod
    def configured(self):
        """True once setup() has run."""

    @abstractmethod
    def setup(self, bottom_shape, phase=None):
        """Fix the configuration for inputs shaped like `bottom_shape`, then reshape."""

    @abstractmethod
    def reshape(self, bottom_shape):
        """Size internal buffers for `bottom_shape` and return the output shape."""

    @abstractmethod
    def forward(self, bottom):
        """Return (top, cache)."""

    @abstractmethod
    def backward(self, top_diff, cache, propagate_down=True):
        """Return the gradient w.r.t. the input, or None if not propagated."""

    def blobs(self):
        """Parameter arrays owned by the layer, in slot order."""
        return []

    def __call__(self, bottom):
        return self.forward(bottom)
