from .base import Layer
from .batch_norm import BatchNormLayer, ForwardCache
