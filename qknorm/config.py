import os
from dataclasses import dataclass, field, is_dataclass
from enum import Enum
from typing import List, Optional

from omegaconf import DictConfig, OmegaConf
from omegaconf.errors import OmegaConfBaseException

from .errors import ConfigurationError

# mean accumulator, variance accumulator, cumulative weight
NUM_STATISTICS_PARAMS = 3


class Phase(Enum):
    TRAIN = "train"
    TEST = "test"


@dataclass
class ParamSpec:
    """Optimizer settings an engine may attach to one parameter slot."""
    lr_mult: float = 0.0
    name: Optional[str] = None


@dataclass
class BatchNormConfig:
    momentum: float = 0.999
    eps: float = 1e-5
    # None: derived from the phase at setup
    use_global_stats: Optional[bool] = None
    # None: taken from the channel axis of the first input
    channels: Optional[int] = None
    params: List[ParamSpec] = field(default_factory=list)

    def __post_init__(self):
        self.validate()

    def validate(self):
        if not self.eps > 0:
            raise ConfigurationError(f"eps must be positive, got {self.eps}")
        if not 0.0 <= self.momentum <= 1.0:
            raise ConfigurationError(f"momentum must be in [0, 1], got {self.momentum}")
        if self.channels is not None and self.channels < 1:
            raise ConfigurationError(f"channels must be >= 1, got {self.channels}")
        if len(self.params) > NUM_STATISTICS_PARAMS:
            raise ConfigurationError(
                f"Batch normalization has {NUM_STATISTICS_PARAMS} parameter slots, got {len(self.params)} param specs"
            )


def resolve_use_global_stats(config, phase):
    """An explicit setting wins; otherwise the test phase uses global statistics."""
    if config.use_global_stats is not None:
        return bool(config.use_global_stats)
    return Phase(phase) == Phase.TEST


def load_config(source=None, **overrides):
    """
    Build a BatchNormConfig from a dict, a DictConfig, a BatchNormConfig or a
    YAML file path.

    Values are merged over the structured defaults, so unknown keys and values
    of the wrong type are rejected.
    """
    if source is None:
        source = {}
    try:
        if isinstance(source, (str, os.PathLike)):
            loaded = OmegaConf.load(source)
        elif isinstance(source, DictConfig):
            loaded = source
        elif is_dataclass(source):
            loaded = OmegaConf.structured(source)
        else:
            loaded = OmegaConf.create(dict(source))

        schema = OmegaConf.structured(BatchNormConfig)
        merged = OmegaConf.merge(schema, loaded, OmegaConf.create(overrides))
        data = OmegaConf.to_container(merged, resolve=True)
    except OmegaConfBaseException as e:
        raise ConfigurationError(f"Invalid batch normalization config: {e}") from e

    params = [ParamSpec(**p) for p in data.pop("params")]
    return BatchNormConfig(params=params, **data)
