from . import kldiv_loss_kernel

__all__ = [
    "kldiv_loss_kernel"
]
