"""
Gradient-graph construction.

Each differentiable operator registers a `SingleGradOpMaker` subclass. When
the backward graph is built, the maker is invoked once per forward op
instance and returns the op desc of its gradient operator. The maker does no
numeric work; it only rewires names.
"""

from typing import Iterable, List, Optional, Tuple

from OpLoom.framework import registry
from OpLoom.framework.errors import NotFoundError, UnimplementedError
from OpLoom.framework.program import EMPTY_VAR_NAME, GRAD_SUFFIX, Block, OpDesc, grad_var_name
from OpLoom.utils.loggers import get_logger

logger = get_logger(__name__)


class SingleGradOpMaker:
    """
    Build exactly one gradient op for a forward op.

    Subclasses implement `apply(grad_op)` using the helpers below to name the
    grad op's inputs and outputs in terms of the forward op.
    """
    def __init__(self, fwd_op: OpDesc, no_grad_set: Optional[Iterable[str]] = None):
        self.fwd_op = fwd_op
        self.no_grad_set = frozenset(no_grad_set or ())

    def input(self, name: str) -> List[str]:
        return list(self.fwd_op.input(name))

    def output(self, name: str) -> List[str]:
        return list(self.fwd_op.output(name))

    def output_grad(self, name: str) -> List[str]:
        return [grad_var_name(n) for n in self.fwd_op.output(name)]

    def input_grad(self, name: str, drop_empty_grad: bool = True) -> List[str]:
        """Grad names of a forward input; vars in the no-grad set map to nothing."""
        grads = [EMPTY_VAR_NAME if n in self.no_grad_set else grad_var_name(n)
                 for n in self.fwd_op.input(name)]
        if drop_empty_grad:
            grads = [g for g in grads if g != EMPTY_VAR_NAME]
        return grads

    def attrs(self) -> dict:
        return dict(self.fwd_op.attrs)

    def apply(self, grad_op: OpDesc):
        raise NotImplementedError

    def __call__(self) -> List[OpDesc]:
        grad_op = OpDesc("")
        self.apply(grad_op)
        return [grad_op]


def make_grad_op_descs(fwd_op: OpDesc, no_grad_set: Optional[Iterable[str]] = None) -> List[OpDesc]:
    """Run the registered grad maker of `fwd_op` and return its grad op descs."""
    info = registry.get_op_info(fwd_op.type)
    if not info.has_grad_op_maker():
        raise NotFoundError(f"Operator {fwd_op.type} has no gradient op maker.")
    return info.grad_op_maker(fwd_op, no_grad_set)()


def _forward_name(grad_name: str) -> str:
    return grad_name[: -len(GRAD_SUFFIX)] if grad_name.endswith(GRAD_SUFFIX) else grad_name


def append_backward(block: Block, loss_name: str,
                    no_grad_set: Optional[Iterable[str]] = None) -> List[Tuple[str, str]]:
    """
    Append gradient ops for `loss_name` to `block`.

    The upstream gradient `<loss>@GRAD` is created as a variable of the loss
    shape and is expected to be fed at execution time.
    If any grad op fails shape inference, the block is restored to its state
    before the call.

    Args:
        block (Block): Block holding the forward ops.
        loss_name (str): Name of the variable to differentiate.
        no_grad_set (iterable, optional): Variables that get no gradient, in
            addition to those marked `stop_gradient`.

    Returns:
        list[tuple[str, str]]: (variable, gradient variable) pairs produced.
    """
    loss = block.var(loss_name)
    known_vars = set(block.vars)
    n_ops = len(block.ops)
    try:
        return _append_grad_ops(block, loss, no_grad_set)
    except Exception:
        for name in set(block.vars) - known_vars:
            del block.vars[name]
        del block.ops[n_ops:]
        raise


def _append_grad_ops(block: Block, loss, no_grad_set) -> List[Tuple[str, str]]:
    loss_name = loss.name
    no_grad = set(no_grad_set or ())
    no_grad.update(v.name for v in block.vars.values() if v.stop_gradient)

    loss_grad = grad_var_name(loss_name)
    if not block.has_var(loss_grad):
        block.create_var(loss_grad, shape=loss.shape, dtype=loss.dtype)

    has_grad = {loss_name}
    produced = []
    for fwd_op in reversed(list(block.ops)):
        if not any(name in has_grad for name in fwd_op.output_arg_names):
            continue
        info = registry.get_op_info(fwd_op.type)
        if not info.has_grad_op_maker():
            logger.debug(f"operator {fwd_op.type} has no gradient op maker, skipped")
            continue

        for grad_op in info.grad_op_maker(fwd_op, no_grad)():
            outputs = [n for n in grad_op.output_arg_names if n and n != EMPTY_VAR_NAME]
            if not outputs:
                logger.debug(f"dropped {grad_op.type}: no gradient requested")
                continue
            for grad_name in outputs:
                if block.has_var(grad_name):
                    raise UnimplementedError(
                        f"Gradient variable {grad_name} is written by more than one "
                        f"operator; gradient accumulation is not supported."
                    )
                fwd_var = block.var(_forward_name(grad_name))
                block.create_var(grad_name, shape=fwd_var.shape, dtype=fwd_var.dtype)
            block.append_op_desc(grad_op)
            for grad_name in outputs:
                has_grad.add(_forward_name(grad_name))
                produced.append((_forward_name(grad_name), grad_name))
    return produced
