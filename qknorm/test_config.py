import pytest
from omegaconf import OmegaConf

from qknorm.config import BatchNormConfig, ParamSpec, Phase, load_config, resolve_use_global_stats
from qknorm.errors import ConfigurationError


def test_defaults():
    cfg = load_config()
    assert cfg.momentum == 0.999
    assert cfg.eps == 1e-5
    assert cfg.use_global_stats is None
    assert cfg.channels is None
    assert cfg.params == []


def test_load_from_dict_and_overrides():
    cfg = load_config({"momentum": 0.9, "params": [{"lr_mult": 0}]}, eps=1e-3)
    assert cfg.momentum == 0.9
    assert cfg.eps == 1e-3
    assert cfg.params == [ParamSpec(lr_mult=0.0)]


def test_load_from_dictconfig_and_yaml(tmp_path):
    cfg = load_config(OmegaConf.create({"use_global_stats": True}))
    assert cfg.use_global_stats is True

    path = tmp_path / "bn.yaml"
    path.write_text("momentum: 0.5\nchannels: 3\n")
    cfg = load_config(str(path))
    assert cfg.momentum == 0.5
    assert cfg.channels == 3


def test_invalid_values():
    with pytest.raises(ConfigurationError):
        load_config({"eps": 0.0})
    with pytest.raises(ConfigurationError):
        load_config({"momentum": 1.5})
    with pytest.raises(ConfigurationError):
        load_config({"no_such_key": 1})
    with pytest.raises(ConfigurationError):
        load_config({"momentum": "fast"})
    with pytest.raises(ConfigurationError):
        BatchNormConfig(params=[ParamSpec()] * 4)


def test_resolve_use_global_stats():
    assert resolve_use_global_stats(BatchNormConfig(), Phase.TEST) is True
    assert resolve_use_global_stats(BatchNormConfig(), "train") is False
    assert resolve_use_global_stats(BatchNormConfig(use_global_stats=False), Phase.TEST) is False
    assert resolve_use_global_stats(BatchNormConfig(use_global_stats=True), Phase.TRAIN) is True


def test_dataclass_with_overrides():
    cfg = load_config(BatchNormConfig(momentum=0.5), eps=1e-3)
    assert cfg.momentum == 0.5
    assert cfg.eps == 1e-3
