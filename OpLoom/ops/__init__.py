from . import kldiv_loss
from . import kernels

from .kldiv_loss import REDUCTIONS
from .kldiv_loss import check_reduction

__all__ = [
    "kldiv_loss",
    "kernels",
    "REDUCTIONS",
    "check_reduction"
]
