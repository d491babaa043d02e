from .log import get_logger
from .log import set_level

__all__ = [
    "get_logger",
    "set_level"
]
