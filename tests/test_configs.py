import pytest

from main_configs import _env_int


def test_integer_settings_are_strict(monkeypatch):
    monkeypatch.setenv("GROWTH_AUTOMATION_MAX_RETRIES", "5")
    assert _env_int("GROWTH_AUTOMATION_MAX_RETRIES", "3") == 5

    monkeypatch.setenv("GROWTH_AUTOMATION_MAX_RETRIES", "lots")
    with pytest.raises(RuntimeError, match="GROWTH_AUTOMATION_MAX_RETRIES"):
        _env_int("GROWTH_AUTOMATION_MAX_RETRIES", "3")