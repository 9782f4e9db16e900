"""Block transaction-count prediction game core."""
from blockguess.version import APP_VERSION

__version__ = APP_VERSION
