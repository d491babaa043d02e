from . import loss

__all__ = [
    "loss"
]
