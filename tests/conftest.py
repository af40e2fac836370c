import logging

import pytest
import yaml

from ptystream.log_setup import ROOT_LOGGER


@pytest.fixture(autouse=True)
def _reset_package_logger():
    """Drop handlers installed by setup_logging so they don't outlive the test."""
    yield
    root = logging.getLogger(ROOT_LOGGER)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.setLevel(logging.NOTSET)


@pytest.fixture
def write_config(tmp_path):
    """Write a dict as YAML to a temporary config file and return its path."""

    def _write(data) -> str:
        config_file = tmp_path / "config.yaml"
        config_file.write_text(yaml.dump(data))
        return str(config_file)

    return _write
