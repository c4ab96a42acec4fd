import pytest

from pagemirror import config as config_module


@pytest.fixture(autouse=True)
def reset_global_config(monkeypatch):
    """Each test starts without a process-wide configuration"""
    monkeypatch.setattr(config_module, "_config", None)
