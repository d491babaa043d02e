"""
Sequential reference executor.

`run_op` is the single entry point that turns an op desc into numbers:
default attributes, runtime shape inference, kernel selection by dtype and
place, kernel launch, output shape check. Both the static `Executor` and the
eager tensor ops go through it.
"""

from typing import Dict, Iterable, List, Optional

import OpLoom.core.backend.backend as backend
from OpLoom.framework import registry
from OpLoom.framework.errors import InvalidArgumentError, NotFoundError
from OpLoom.framework.infer_shape import RuntimeInferShapeContext
from OpLoom.framework.program import EMPTY_VAR_NAME, Block, OpDesc
from OpLoom.utils.loggers import get_logger

logger = get_logger(__name__)


class Scope:
    """Name -> array storage for one execution."""
    def __init__(self, vars: Optional[Dict[str, object]] = None):
        self._vars = {}
        for name, value in (vars or {}).items():
            self.set_var(name, value)

    def set_var(self, name: str, value):
        self._vars[name] = backend.xp.asarray(value)

    def find_var(self, name: str):
        if name not in self._vars:
            raise NotFoundError(f"Variable '{name}' is not found in scope.")
        return self._vars[name]

    def has_var(self, name: str) -> bool:
        return name in self._vars

    def var_names(self) -> List[str]:
        return list(self._vars)


class ExecutionContext:
    """View of one op launch handed to a kernel."""
    def __init__(self, op_desc: OpDesc, scope: Scope, place: str, output_dims: dict):
        self.op_desc = op_desc
        self.scope = scope
        self.place = place
        self._output_dims = output_dims

    def input(self, name: str):
        names = self.op_desc.input(name)
        if len(names) != 1:
            raise NotFoundError(f"Input({name}) of operator {self.op_desc.type} is not bound.")
        return self.scope.find_var(names[0])

    def input_dim(self, name: str):
        return tuple(self.input(name).shape)

    def has_output(self, name: str) -> bool:
        names = self.op_desc.output(name)
        return len(names) == 1 and bool(names[0]) and names[0] != EMPTY_VAR_NAME

    def attr(self, name: str):
        if name not in self.op_desc.attrs:
            raise NotFoundError(f"Attr({name}) is not set on operator {self.op_desc.type}.")
        return self.op_desc.attrs[name]

    def set_output(self, name: str, value):
        if not self.has_output(name):
            raise NotFoundError(f"Output({name}) of operator {self.op_desc.type} is not bound.")
        expected = self._output_dims.get(name)
        if expected is not None and tuple(value.shape) != expected:
            raise InvalidArgumentError(
                f"Output({name}) of operator {self.op_desc.type} should have shape "
                f"{expected}, but the kernel produced {tuple(value.shape)}."
            )
        self.scope.set_var(self.op_desc.output(name)[0], value)


def _kernel_dtype(info, op_desc: OpDesc, ctx: RuntimeInferShapeContext):
    slot = info.kernel_type_var
    if slot is None:
        slot = next(iter(op_desc.inputs))
    return ctx.get_input_dtype(slot)


def run_op(op_desc: OpDesc, scope: Scope, place: Optional[str] = None):
    """Validate and execute a single operator against `scope`."""
    place = place or backend.get_device()
    info = registry.get_op_info(op_desc.type)
    op_desc.set_attr_map(registry.fill_default_attrs(op_desc.type, op_desc.attrs))

    infer_ctx = RuntimeInferShapeContext(op_desc, scope)
    info.infer_shape(infer_ctx)

    dtype = _kernel_dtype(info, op_desc, infer_ctx)
    kernel = registry.get_kernel(op_desc.type, place, dtype)
    logger.debug(f"launch {op_desc.type} [{place}, {dtype}]")
    kernel(ExecutionContext(op_desc, scope, place, infer_ctx.output_dims))


class Executor:
    """
    Run every op of a block in order.

    Example:
        >>> exe = Executor()
        >>> loss, = exe.run(block, feed={"X": x, "Target": y}, fetch_list=["Loss"])
    """
    def __init__(self, place: Optional[str] = None):
        self.place = place

    def run(self, block: Block, feed: Optional[dict] = None,
            fetch_list: Optional[Iterable[str]] = None, scope: Optional[Scope] = None):
        scope = scope if scope is not None else Scope()
        for name, value in (feed or {}).items():
            scope.set_var(name, value)
        for op in block.ops:
            run_op(op, scope, self.place)
        backend.synchronize()
        return [scope.find_var(name) for name in (fetch_list or [])]
