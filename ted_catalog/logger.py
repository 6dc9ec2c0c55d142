import logging

from ted_catalog import config

LOG_FORMAT = "%(asctime)s [ted_catalog] %(levelname)s: %(message)s"


def setup_logging(level=None):
    """Install the console handler once; later calls only adjust the level."""
    root = logging.getLogger("ted_catalog")
    root.setLevel(level or config.LOG_LEVEL)
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
    return root
