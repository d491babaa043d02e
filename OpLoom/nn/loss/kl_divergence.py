from OpLoom.core.backend.config import CONFIG
from OpLoom.nn.loss.baseloss import BaseLoss
from OpLoom.core import Tensor
from OpLoom.core.tensor import ops
from OpLoom.ops import check_reduction


class KLDivergence(BaseLoss):
    """
    Kullback-Leibler (KL) Divergence loss with autograd support.

    Measures the divergence of a predicted distribution, given as
    log-probabilities, from a target distribution given as probabilities.
    Often used for soft labels or teacher-student distillation.

        loss = targets * (log(targets) - predictions)

    Args:
        reduction (str, optional): 'none' | 'batchmean' | 'mean' | 'sum'.
            Defaults to the `default_reduction` config value ('mean').

    Methods:
        forward(predictions: Tensor, targets: Tensor) -> Tensor:
            Computes the KL divergence over a batch of predictions and targets.

            Args:
                predictions (Tensor): Log-probabilities (log-softmax output) of shape (B, *).
                targets (Tensor): Target probability distributions with the shape of `predictions`.

            Returns:
                Tensor: Elementwise loss for 'none', otherwise a tensor of shape (1,).
                    Gradients flow to `predictions` only.
    """
    def __init__(self, reduction: str = None):
        self.reduction = CONFIG.get("default_reduction", "mean") if reduction is None else reduction
        check_reduction(self.reduction)

    def forward(self, predictions: Tensor, targets: Tensor) -> Tensor:
        return ops.kl_div(predictions, targets, reduction=self.reduction)
