"""
Shape-inference contexts.

The same `infer_shape(ctx)` function of an operator runs in two settings:

- at graph construction, over `VarDesc` metadata, where dims may hold the
  unknown placeholder `-1` (`CompileTimeInferShapeContext`);
- at execution, over concrete arrays in a scope (`RuntimeInferShapeContext`).

`ctx.is_runtime()` tells the two apart so operators can skip checks that need
concrete extents.
"""

from typing import Tuple

import OpLoom.core.backend.backend as backend
from OpLoom.framework.errors import InvalidArgumentError, NotFoundError


class InferShapeContext:
    def __init__(self, op_desc):
        self.op_desc = op_desc

    @property
    def op_type(self) -> str:
        return self.op_desc.type

    def attr(self, name: str):
        if name not in self.op_desc.attrs:
            raise NotFoundError(f"Attr({name}) is not set on operator {self.op_type}.")
        return self.op_desc.attrs[name]

    def is_runtime(self) -> bool:
        raise NotImplementedError

    # subclasses resolve a variable name to something with shape/dtype
    def _var_exists(self, name: str) -> bool:
        raise NotImplementedError

    def _var_dim(self, name: str) -> Tuple[int, ...]:
        raise NotImplementedError

    def _var_dtype(self, name: str):
        raise NotImplementedError

    def has_input(self, name: str) -> bool:
        names = self.op_desc.input(name)
        return len(names) == 1 and bool(names[0]) and self._var_exists(names[0])

    def has_output(self, name: str) -> bool:
        names = self.op_desc.output(name)
        return len(names) == 1 and bool(names[0])

    def _single(self, names, slot, kind):
        if len(names) != 1:
            raise InvalidArgumentError(
                f"{kind}({slot}) of operator {self.op_type} should hold exactly one "
                f"variable, but received {len(names)}."
            )
        return names[0]

    def get_input_dim(self, name: str) -> Tuple[int, ...]:
        var_name = self._single(self.op_desc.input(name), name, "Input")
        return tuple(int(d) for d in self._var_dim(var_name))

    def get_input_dtype(self, name: str) -> str:
        var_name = self._single(self.op_desc.input(name), name, "Input")
        return backend.dtype_name(self._var_dtype(var_name))

    def set_output_dim(self, name: str, dims):
        raise NotImplementedError

    def share_dtype(self, in_name: str, out_name: str):
        """Declare that output `out_name` has the dtype of input `in_name`."""
        pass


class CompileTimeInferShapeContext(InferShapeContext):
    def __init__(self, op_desc, block):
        super().__init__(op_desc)
        self.block = block

    def is_runtime(self) -> bool:
        return False

    def _var_exists(self, name):
        return self.block.has_var(name)

    def _var_dim(self, name):
        return self.block.var(name).shape

    def _var_dtype(self, name):
        return self.block.var(name).dtype

    def set_output_dim(self, name, dims):
        var_name = self._single(self.op_desc.output(name), name, "Output")
        self.block.var(var_name).shape = tuple(int(d) for d in dims)

    def share_dtype(self, in_name, out_name):
        in_var = self._single(self.op_desc.input(in_name), in_name, "Input")
        out_var = self._single(self.op_desc.output(out_name), out_name, "Output")
        self.block.var(out_var).dtype = self.block.var(in_var).dtype


class RuntimeInferShapeContext(InferShapeContext):
    """
    Runtime context over a scope of concrete arrays.

    Output dims are not written anywhere; they are collected in `output_dims`
    so the executor can check what the kernel produced.
    """
    def __init__(self, op_desc, scope):
        super().__init__(op_desc)
        self.scope = scope
        self.output_dims = {}

    def is_runtime(self) -> bool:
        return True

    def _var_exists(self, name):
        return self.scope.has_var(name)

    def _var_dim(self, name):
        return self.scope.find_var(name).shape

    def _var_dtype(self, name):
        return self.scope.find_var(name).dtype

    def set_output_dim(self, name, dims):
        self.output_dims[name] = tuple(int(d) for d in dims)
