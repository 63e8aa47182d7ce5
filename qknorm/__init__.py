from .config import BatchNormConfig, ParamSpec, Phase, load_config
from .errors import ConfigurationError, QKNormError, ShapeMismatchError
from .layers import BatchNormLayer, ForwardCache, Layer
from .net import Net
from .running_stats import RunningStatistics
from .tensor import TensorBuffer

__version__ = "0.1.0"
