from .context import device_scope
from .context import precision_scope

__all__ = [
    "device_scope",
    "precision_scope"
]
