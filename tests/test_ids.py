import pytest

from serverprep.util.ids import new_run_id, validate_run_id, validate_step_name


def test_validate_run_id_invalid():
    with pytest.raises(ValueError, match="Invalid run id"):
        validate_run_id("invalid/id")
    with pytest.raises(ValueError, match="Invalid run id"):
        validate_run_id("invalid id")
    with pytest.raises(ValueError):
        validate_run_id("")


def test_new_run_id():
    rid = new_run_id()
    assert validate_run_id(rid) == rid


def test_validate_step_name():
    assert validate_step_name("Push Code via CI/CD") == "Push Code via CI/CD"
    assert validate_step_name("Configure PostgreSQL") == "Configure PostgreSQL"
    for bad in ["", "   ", "a\nb", "a\rb", "x" * 201]:
        with pytest.raises(ValueError):
            validate_step_name(bad)
