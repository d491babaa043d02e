from . import core
from . import framework
from . import ops
from . import nn

__version__ = "0.1.0"

__all__ = [
    "core",
    "framework",
    "ops",
    "nn"
]
