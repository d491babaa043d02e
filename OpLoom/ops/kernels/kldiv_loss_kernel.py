import OpLoom.core.backend.backend as backend
from OpLoom.framework import registry
from OpLoom.framework.errors import InvalidArgumentError
from OpLoom.framework.program import grad_var_name

DTYPES = ("float32", "float64")


def kldiv_elementwise(x, target):
    """
    target * (log(target) - x), with 0 wherever target <= 0.

    Both operands are masked before the arithmetic so no NaN or -inf is
    produced for zero-probability entries, whatever `x` holds there.
    """
    xp = backend.xp
    positive = target > 0
    safe_target = xp.where(positive, target, 1)
    safe_x = xp.where(positive, x, 0)
    loss = safe_target * (xp.log(safe_target) - safe_x)
    return xp.where(positive, loss, 0).astype(x.dtype, copy=False)


def batch_size(dims) -> int:
    return int(dims[0]) if len(dims) > 0 else 1


def reduce_loss(loss, reduction, dims):
    """Collapse the elementwise loss to shape [1] (or leave it for 'none')."""
    xp = backend.xp
    if reduction == "none":
        return loss
    total = xp.sum(loss)
    if reduction == "mean":
        total = total / loss.size if loss.size > 0 else total
    elif reduction == "batchmean":
        n = batch_size(dims)
        total = total / n if n > 0 else total
    return xp.reshape(total, (1,)).astype(loss.dtype, copy=False)


def kldiv_loss_kernel(ctx):
    x = ctx.input("X")
    target = ctx.input("Target")
    reduction = ctx.attr("reduction")

    loss = kldiv_elementwise(x, target)
    ctx.set_output("Loss", reduce_loss(loss, reduction, x.shape))


def kldiv_loss_grad_kernel(ctx):
    xp = backend.xp
    if not ctx.has_output(grad_var_name("X")):
        return

    target = ctx.input("Target")
    loss_grad = ctx.input(grad_var_name("Loss"))
    reduction = ctx.attr("reduction")
    # X is a no-need-buffer input: only its metadata is used here
    x = ctx.input("X")
    dims = ctx.input_dim("X")

    if reduction == "none":
        if tuple(loss_grad.shape) != dims:
            raise InvalidArgumentError(
                f"Input(Loss@GRAD) should have shape {dims} when Attr(reduction) is "
                f"'none', but received {tuple(loss_grad.shape)}."
            )
        upstream = loss_grad
    else:
        if loss_grad.size != 1:
            raise InvalidArgumentError(
                f"Input(Loss@GRAD) should hold a single element when Attr(reduction) "
                f"is '{reduction}', but received shape {tuple(loss_grad.shape)}."
            )
        upstream = xp.reshape(loss_grad, ())

    positive = target > 0
    grad = xp.where(positive, -target * upstream, 0)

    if reduction == "mean" and grad.size > 0:
        grad = grad / grad.size
    elif reduction == "batchmean" and batch_size(dims) > 0:
        grad = grad / batch_size(dims)

    ctx.set_output(grad_var_name("X"), grad.astype(x.dtype, copy=False))


registry.register_kernel("kldiv_loss", "cpu", DTYPES, kldiv_loss_kernel)
registry.register_kernel("kldiv_loss_grad", "cpu", DTYPES, kldiv_loss_grad_kernel)

if backend.gpu_available():
    registry.register_kernel("kldiv_loss", "gpu", DTYPES, kldiv_loss_kernel)
    registry.register_kernel("kldiv_loss_grad", "gpu", DTYPES, kldiv_loss_grad_kernel)
