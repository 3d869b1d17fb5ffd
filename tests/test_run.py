from argparse import Namespace

from run import build_config
from wishlist.config import Config


def _args(**overrides):
    values = {"no_scheduler": False, "log_level": None, "upload_root": None}
    values.update(overrides)
    return Namespace(**values)


def test_build_config_without_overrides_is_default():
    assert build_config(_args()) is Config


def test_build_config_applies_overrides(tmp_path):
    config = build_config(
        _args(no_scheduler=True, log_level="debug", upload_root=str(tmp_path))
    )

    assert issubclass(config, Config)
    assert config.SCHEDULER_ENABLED is False
    assert config.LOG_LEVEL == "DEBUG"
    assert config.UPLOAD_ROOT == str(tmp_path)
    assert config.CRAWLER_TIMEOUT == Config.CRAWLER_TIMEOUT
