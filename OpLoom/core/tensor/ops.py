import OpLoom.core.backend.backend as backend
import OpLoom.ops  # registers operators and kernels
from OpLoom.framework.backward import make_grad_op_descs
from OpLoom.framework.executor import Scope, run_op
from OpLoom.framework.program import OpDesc, grad_var_name
from .tensor import Tensor
from .utils import ensure_tensor, accumulate_grad

# ============================================================================
# Activations
# ============================================================================

def log_softmax(a: Tensor, axis=-1) -> Tensor:
    """
    Log-Softmax activation function.
    Applies the log of softmax along a specified axis:

        log_softmax(x_i) = log(softmax(x_i))

    Args:
        a (Tensor): Input tensor (logits).
        axis (int): Axis along which to apply log-softmax (default: -1).

    Returns:
        Tensor: Log-probabilities of the same shape as `a`.
    """
    xp = backend.xp
    a = ensure_tensor(a)
    shifted = a.data - xp.max(a.data, axis=axis, keepdims=True)
    log_sum_exp = xp.log(xp.sum(xp.exp(shifted), axis=axis, keepdims=True))
    data = shifted - log_sum_exp
    out = Tensor(data, requires_grad=a.requires_grad, dtype=a.dtype)
    out.is_leaf = False
    out.grad_fn = "log_softmax"

    def _backward():
        if out.grad is None:
            return
        if not a.requires_grad:
            return

        grad_input = out.grad - xp.exp(data) * xp.sum(out.grad, axis=axis, keepdims=True)
        accumulate_grad(a, grad_input)

    out._backward = _backward
    out._prev = {a}
    return out

# ============================================================================
# Losses
# ============================================================================

def kl_div(input: Tensor, label: Tensor, reduction: str = "mean") -> Tensor:
    """
    Kullback-Leibler divergence loss.

        loss = label * (log(label) - input)

    Entries where `label` is 0 contribute nothing to the loss or the gradient.
    The forward and backward passes run the registered `kldiv_loss` and
    `kldiv_loss_grad` operators, so validation and numerics are shared with
    static graphs.

    Args:
        input (Tensor): Log-probabilities of shape (N, *).
        label (Tensor): Target probabilities with the shape of `input`.
            Never receives a gradient.
        reduction (str): 'none' | 'batchmean' | 'mean' | 'sum'.

    Returns:
        Tensor: Elementwise loss for 'none', otherwise a tensor of shape (1,).
    """
    input = ensure_tensor(input)
    label = ensure_tensor(label, dtype=input.dtype)

    op = OpDesc(
        "kldiv_loss",
        inputs={"X": ["X"], "Target": ["Target"]},
        outputs={"Loss": ["Loss"]},
        attrs={"reduction": reduction},
    )
    scope = Scope({"X": input.data, "Target": label.data.astype(input.dtype, copy=False)})
    run_op(op, scope)

    out = Tensor(scope.find_var("Loss"), requires_grad=input.requires_grad, dtype=input.dtype)
    out.is_leaf = False
    out.grad_fn = "kl_div"

    def _backward():
        if out.grad is None:
            return
        if not input.requires_grad:
            return

        grad_op, = make_grad_op_descs(op)
        scope.set_var(grad_var_name("Loss"), out.grad)
        run_op(grad_op, scope)
        accumulate_grad(input, scope.find_var(grad_var_name("X")))

    out._backward = _backward
    out._prev = {input}
    return out
