import logging

import pytest

from gmmstats.utils import _logging, logger


@pytest.mark.parametrize("verbose,expected", [
    (None, "INFO"),
    (True, "INFO"),
    (False, "WARNING"),
    ("debug", "DEBUG"),
    (20, "INFO"),
    (logging.DEBUG, "DEBUG"),
])
def test_set_log_level_coercion(verbose, expected, capsys):
    """Ensure bools and None are coerced correctly."""
    _logging.set_log_level(verbose)
    logger.log(expected, "message")
    out = capsys.readouterr().out
    assert expected in out
    if verbose is False:
        # INFO is below the threshold
        logger.info("hidden")
        assert "hidden" not in capsys.readouterr().out


def test_log_helper(capsys):
    _logging.set_log_level("INFO")
    _logging.log("Reduced 3 blocks", level="info", color="green", weight="bold")
    out = capsys.readouterr().out
    assert "Reduced 3 blocks" in out
    # Style tags are interpreted, not printed
    assert "<green>" not in out
    _logging.log("not shown", level="debug")
    assert "not shown" not in capsys.readouterr().out
