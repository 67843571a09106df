import logging
import sys

from app.config import settings


def get_logger(name: str, prefix: str = "CHECKOUT") -> logging.Logger:
    """
    Return a module logger writing to stdout with a bracketed prefix,
    e.g. "[CHECKOUT] session abc moved review -> fulfillment".
    Handlers are attached once, so repeated calls are cheap.
    """
    log = logging.getLogger(name)
    log.setLevel(settings.LOG_LEVEL.upper())
    if not log.handlers:
        h = logging.StreamHandler(sys.stdout)
        h.setFormatter(logging.Formatter(f"[{prefix}] %(levelname)s %(name)s: %(message)s"))
        log.addHandler(h)
    return log
