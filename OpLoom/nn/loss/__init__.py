from .baseloss import BaseLoss

from .kl_divergence import KLDivergence

__all__ = [
    "BaseLoss",
    "KLDivergence"
]
