"""
pyrungs: stacked pull requests from commits on trunk.
"""
import logging
import sys

LOG_FORMAT = '%(asctime)s.%(msecs)03d [%(levelname)s] %(message)s'
LOG_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

def setup_logging(verbose: int = 0) -> None:
    """Route all records to one stderr handler.

    Args:
        verbose: -v count. Below 2 shows INFO (github calls, stack progress);
            2 adds DEBUG (git commands, tracebacks on errors); 3 also lets
            PyGithub's own request logging through.
    """
    root = logging.getLogger()
    root.setLevel(logging.DEBUG if verbose >= 2 else logging.INFO)
    for existing in list(root.handlers):
        root.removeHandler(existing)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, LOG_DATE_FORMAT))
    root.addHandler(handler)

    logging.getLogger("github").setLevel(logging.DEBUG if verbose >= 3 else logging.WARNING)
