import logging
import os

import click


TRACE_ENV_VAR = "OCIPUSH_TRACE"


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# HELPERS
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
class ClickEchoHandler(logging.Handler):
    """Send log records to stderr through click."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
            if record.levelno >= logging.ERROR:
                msg = f"Error: {msg}"
            elif record.levelno >= logging.WARNING:
                msg = f"Warning: {msg}"
            click.echo(msg, err=True)
        except Exception:
            self.handleError(record)


class _MessageOnlyFormatter(logging.Formatter):
    def formatException(self, ei) -> str:
        return ""

    def format(self, record: logging.LogRecord) -> str:
        return record.getMessage()


def setup_logging(verbose: bool = False) -> logging.Logger:
    """Route the ocipush logger to the terminal.

    OCIPUSH_TRACE=1 has the same effect as --verbose.
    """
    trace = os.environ.get(TRACE_ENV_VAR, "").strip().lower() in ("1", "true", "yes")
    verbose = verbose or trace

    logger = logging.getLogger("ocipush")
    for h in list(logger.handlers):
        if isinstance(h, ClickEchoHandler):
            logger.removeHandler(h)

    handler = ClickEchoHandler()
    if verbose:
        handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
    else:
        handler.setFormatter(_MessageOnlyFormatter())
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    return logger


def split_tags(values) -> list[str] | None:
    """Flatten repeated/comma-separated tag options.

    ("1.0", "latest,dev") → ["1.0", "latest", "dev"]; () → None
    """
    tags = [
        t.strip()
        for value in values or ()
        for t in value.split(",")
        if t.strip()
    ]
    return tags or None
