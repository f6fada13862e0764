import sys

from loguru import logger

# Drop the default loguru handler so gmmstats owns the formatting
logger.remove()
FORMAT = "<level>{level: <8}</level> | {message} - <cyan>{name}</cyan>:<cyan>{function}</cyan>"  # noqa E501
logger.add(
    sys.stdout,
    level="INFO",
    colorize=True,
    format=FORMAT,
)


def set_log_level(verbose: str | int | bool | None) -> None:
    """Set the log level for gmmstats.

    Parameters
    ----------
    verbose : str or int or bool or None
        Control verbosity of the logging output. If a str, it can be either
        ``"DEBUG"``, ``"INFO"``, ``"WARNING"``, ``"ERROR"``, or ``"CRITICAL"``.
        Integers are interpreted as :mod:`logging` levels (e.g. ``logging.DEBUG``).
        For ``bool``, ``True`` is the same as ``"INFO"``, ``False`` is the same as
        ``"WARNING"``. If ``None``, defaults to ``"INFO"``.
    """
    if verbose is None:
        verbose = "INFO"
    elif isinstance(verbose, bool):
        verbose = "INFO" if verbose else "WARNING"
    elif isinstance(verbose, str):
        verbose = verbose.upper()

    logger.remove()
    logger.add(
        sys.stdout,
        level=verbose,
        colorize=True,
        format=FORMAT,
    )


def log(msg: str, level: str = "info", color: str = None, weight: str = None) -> None:
    """Wrap around loguru logger for cleaner colored messages.

    Example: log("Reduced 12 blocks", level="info", color="green", weight="bold")
    """
    if color:
        msg = f"<{color}>{msg}</{color}>"

    if weight == "bold":
        msg = f"<lvl>{msg}</lvl>"

    # colors=True makes loguru interpret the style tags
    getattr(logger.opt(colors=True, depth=1), level)(msg)
