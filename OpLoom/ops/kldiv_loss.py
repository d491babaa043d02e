"""
Kullback-Leibler divergence loss operator.

`X` holds log-probabilities and `Target` holds probabilities of the same
shape. The elementwise loss is

    l(x, y) = y * (log(y) - x)

with `0 * log(0)` taken as 0. `reduction` selects how the elementwise loss
is collapsed:

    'none'       no reduction, Loss has the shape of X
    'sum'        sum of all elements, Loss has shape [1]
    'mean'       mean of all elements, Loss has shape [1]
    'batchmean'  sum divided by the extent of dim 0, Loss has shape [1]
"""

from OpLoom.framework import registry
from OpLoom.framework.backward import SingleGradOpMaker
from OpLoom.framework.errors import InvalidArgumentError, enforce_eq, op_inout_check
from OpLoom.framework.program import grad_var_name

OP_TYPE = "kldiv_loss"
GRAD_OP_TYPE = "kldiv_loss_grad"

REDUCTIONS = ("none", "batchmean", "sum", "mean")


def check_reduction(reduction):
    if reduction not in REDUCTIONS:
        raise InvalidArgumentError(
            f"Attr(reduction) can only be 'none'|'batchmean'|'sum'|'mean', "
            f"but received {reduction!r}."
        )


def kldiv_loss_infer_shape(ctx):
    op_inout_check(ctx.has_input("X"), "Input", "X", "KLDivLoss")
    op_inout_check(ctx.has_input("Target"), "Input", "Target", "KLDivLoss")
    op_inout_check(ctx.has_output("Loss"), "Output", "Loss", "KLDivLoss")

    dim_x = ctx.get_input_dim("X")
    dim_target = ctx.get_input_dim("Target")
    enforce_eq(len(dim_x), len(dim_target), InvalidArgumentError(
        f"Input(X) rank and Input(Target) rank should be same, but received "
        f"X rank({len(dim_x)}) != Target rank({len(dim_target)})"
    ))
    for i, (dx, dt) in enumerate(zip(dim_x, dim_target)):
        # unknown (-1) and empty extents are only comparable at runtime
        if ctx.is_runtime() or (dx > 0 and dt > 0):
            enforce_eq(dx, dt, InvalidArgumentError(
                f"Input(X) and Input(Target) should in same shape. but received "
                f"X dimension[{i}]({dx}) != Target dimension[{i}]({dt})"
            ))

    reduction = ctx.attr("reduction")
    check_reduction(reduction)

    if reduction == "none":
        ctx.set_output_dim("Loss", dim_x)
    else:
        ctx.set_output_dim("Loss", (1,))
    ctx.share_dtype("X", "Loss")


def kldiv_loss_grad_infer_shape(ctx):
    op_inout_check(ctx.has_input("X"), "Input", "X", "KLDivLossGrad")
    op_inout_check(ctx.has_input("Target"), "Input", "Target", "KLDivLossGrad")
    op_inout_check(ctx.has_input(grad_var_name("Loss")), "Input", "Loss@GRAD", "KLDivLossGrad")

    dim_x = ctx.get_input_dim("X")
    if ctx.has_output(grad_var_name("X")):
        ctx.set_output_dim(grad_var_name("X"), dim_x)
        ctx.share_dtype("X", grad_var_name("X"))


class KLDivLossGradOpMaker(SingleGradOpMaker):
    def apply(self, op):
        op.type = GRAD_OP_TYPE
        op.set_input("X", self.input("X"))
        op.set_input("Target", self.input("Target"))
        op.set_input(grad_var_name("Loss"), self.output_grad("Loss"))

        op.set_attr_map(self.attrs())

        op.set_output(grad_var_name("X"), self.input_grad("X"))


def _make_proto():
    maker = registry.OpProtoMaker(OP_TYPE)
    maker.add_input(
        "X",
        "The input tensor of KL divergence loss operator. This is a tensor with "
        "shape of [N, *], where N is the batch size, * means any number of "
        "additional dimensions. The data type is float32 or float64.",
    )
    maker.add_input(
        "Target",
        "The target tensor of KL divergence loss operator. This is a tensor with "
        "shape of Input(X). The data type is same as Input(X).",
    )
    maker.add_output(
        "Loss",
        "The output KL divergence loss tensor. If Attr(reduction) is 'none', this "
        "tensor has the shape of Input(X), else it has shape [1].",
    )
    maker.add_attr(
        "reduction", str,
        "The reduction type to apply to the output, available types are "
        "'none' | 'batchmean' | 'mean' | 'sum'.",
        default="mean",
    )
    maker.add_comment(__doc__)
    return maker.proto


registry.register_operator(
    OP_TYPE,
    kldiv_loss_infer_shape,
    proto=_make_proto(),
    grad_op_maker=KLDivLossGradOpMaker,
    kernel_type_var="X",
)
registry.register_operator(
    GRAD_OP_TYPE,
    kldiv_loss_grad_infer_shape,
    no_need_buffer_vars=("X",),
    kernel_type_var=grad_var_name("Loss"),
)
