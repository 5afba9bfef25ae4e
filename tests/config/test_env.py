from __future__ import annotations

import pytest

from fieldsync.config import (
    ConfigError,
    MissingConfigError,
    env_float,
    env_int,
    require_env_var,
    require_env_vars,
)


def test_require_env_vars_returns_values(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("EXAMPLE_VAR", "value")

    result = require_env_vars(["EXAMPLE_VAR"])

    assert result["EXAMPLE_VAR"] == "value"


def test_require_env_vars_lists_every_missing_name(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("MISSING_A", raising=False)
    monkeypatch.setenv("MISSING_B", "   ")

    with pytest.raises(MissingConfigError) as exc:
        require_env_vars(["MISSING_B", "MISSING_A"])

    assert "MISSING_A, MISSING_B" in str(exc.value)


def test_require_env_var_is_a_config_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("MISSING_VAR", raising=False)

    with pytest.raises(ConfigError):
        require_env_var("MISSING_VAR")


def test_numeric_env_values_fall_back_to_default(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("FIELDSYNC_TEST_NUMBER", raising=False)

    assert env_float("FIELDSYNC_TEST_NUMBER", 2.5) == 2.5
    assert env_int("FIELDSYNC_TEST_NUMBER", 3) == 3

    monkeypatch.setenv("FIELDSYNC_TEST_NUMBER", "7")
    assert env_float("FIELDSYNC_TEST_NUMBER", 2.5) == 7.0
    assert env_int("FIELDSYNC_TEST_NUMBER", 3) == 7


@pytest.mark.parametrize("raw", ["abc", "0", "-1"])
def test_numeric_env_values_must_be_positive_numbers(
    monkeypatch: pytest.MonkeyPatch,
    raw: str,
) -> None:
    monkeypatch.setenv("FIELDSYNC_TEST_NUMBER", raw)

    with pytest.raises(ConfigError, match="FIELDSYNC_TEST_NUMBER"):
        env_int("FIELDSYNC_TEST_NUMBER", 1)
    with pytest.raises(ConfigError, match="FIELDSYNC_TEST_NUMBER"):
        env_float("FIELDSYNC_TEST_NUMBER", 1.0)
