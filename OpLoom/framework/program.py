"""
Static graph description: variables, operators and the block holding them.

A `Block` is built op by op. `append_op` fills attribute defaults and runs the
operator's shape inference at construction time, so contract violations such
as mismatched input ranks surface before anything executes.
"""

from typing import Dict, List, Optional

import OpLoom.core.backend.backend as backend
from OpLoom.framework import registry
from OpLoom.framework.errors import AlreadyExistsError, NotFoundError
from OpLoom.framework.infer_shape import CompileTimeInferShapeContext
from OpLoom.utils.loggers import get_logger

logger = get_logger(__name__)

GRAD_SUFFIX = "@GRAD"
EMPTY_VAR_NAME = "@EMPTY@"


def grad_var_name(name: str) -> str:
    """Name of the gradient variable of `name`, e.g. 'Loss' -> 'Loss@GRAD'."""
    return name + GRAD_SUFFIX


class VarDesc:
    """
    Variable metadata.

    Args:
        name (str): Unique variable name within the block.
        shape (tuple): Dims; -1 marks an extent unknown until execution.
        dtype (str): Element type name, e.g. "float32".
        stop_gradient (bool): Exclude this variable from gradient construction.
    """
    def __init__(self, name: str, shape=(), dtype="float32", stop_gradient: bool = False):
        self.name = name
        self.shape = tuple(int(d) for d in shape)
        self.dtype = backend.dtype_name(dtype) if dtype is not None else None
        self.stop_gradient = stop_gradient

    def __repr__(self):
        return f"VarDesc(name={self.name!r}, shape={self.shape}, dtype={self.dtype}, stop_gradient={self.stop_gradient})"


class OpDesc:
    """Operator instance: type, named input/output bindings and attributes."""
    def __init__(self, type_: str, inputs: Optional[Dict[str, List[str]]] = None,
                 outputs: Optional[Dict[str, List[str]]] = None, attrs: Optional[dict] = None):
        self.type = type_
        self.inputs = {k: _as_name_list(v) for k, v in (inputs or {}).items()}
        self.outputs = {k: _as_name_list(v) for k, v in (outputs or {}).items()}
        self.attrs = dict(attrs or {})

    def input(self, name: str) -> List[str]:
        return self.inputs.get(name, [])

    def output(self, name: str) -> List[str]:
        return self.outputs.get(name, [])

    def set_input(self, name: str, args):
        self.inputs[name] = _as_name_list(args)

    def set_output(self, name: str, args):
        self.outputs[name] = _as_name_list(args)

    def set_attr_map(self, attrs: dict):
        self.attrs = dict(attrs)

    @property
    def input_arg_names(self) -> List[str]:
        return [n for names in self.inputs.values() for n in names]

    @property
    def output_arg_names(self) -> List[str]:
        return [n for names in self.outputs.values() for n in names]

    def __repr__(self):
        return f"OpDesc(type={self.type!r}, inputs={self.inputs}, outputs={self.outputs}, attrs={self.attrs})"


def _as_name_list(value) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return [v.name if isinstance(v, VarDesc) else v for v in value]


class Block:
    def __init__(self):
        self.vars: Dict[str, VarDesc] = {}
        self.ops: List[OpDesc] = []

    def create_var(self, name: str, shape=(), dtype="float32", stop_gradient: bool = False) -> VarDesc:
        if name in self.vars:
            raise AlreadyExistsError(f"Variable '{name}' already exists in block.")
        var = VarDesc(name, shape, dtype, stop_gradient)
        self.vars[name] = var
        return var

    def var(self, name: str) -> VarDesc:
        if name not in self.vars:
            raise NotFoundError(f"Variable '{name}' is not found in block.")
        return self.vars[name]

    def has_var(self, name: str) -> bool:
        return name in self.vars

    def _ensure_output_vars(self, op: OpDesc):
        for name in op.output_arg_names:
            if name and name != EMPTY_VAR_NAME and name not in self.vars:
                self.create_var(name, shape=(), dtype=None)

    def infer_shape(self, op: OpDesc):
        info = registry.get_op_info(op.type)
        info.infer_shape(CompileTimeInferShapeContext(op, self))

    def append_op(self, type_: str, inputs=None, outputs=None, attrs=None) -> OpDesc:
        """
        Create an operator, infer its output shapes and append it.

        Output variables that do not exist yet are created. If shape inference
        fails the error propagates and the block is left without the op.
        """
        op = OpDesc(type_, inputs, outputs, registry.fill_default_attrs(type_, attrs))
        return self.append_op_desc(op)

    def append_op_desc(self, op: OpDesc) -> OpDesc:
        created = [n for n in op.output_arg_names if n and n not in self.vars]
        self._ensure_output_vars(op)
        try:
            self.infer_shape(op)
        except Exception:
            for name in created:
                self.vars.pop(name, None)
            raise
        self.ops.append(op)
        logger.debug(f"appended {op}")
        return op
