"""
Operator registry and kernel dispatch table.

Operators are registered by string type. Each entry bundles the proto
(inputs, outputs, attributes), the shape-inference function, an optional
gradient-op maker and a set of memory-planning hints. Kernels live in a
separate table keyed by (op type, place, dtype) so one operator can carry
several numeric implementations.

    >>> from OpLoom.framework import registry
    >>> @registry.register_kernel("my_op", "cpu", ("float32", "float64"))
    ... def my_op_kernel(ctx):
    ...     ...
"""

from typing import Callable, Dict, Iterable, Optional

import OpLoom.core.backend.backend as backend
from OpLoom.framework.errors import (
    AlreadyExistsError,
    InvalidArgumentError,
    NotFoundError,
    UnimplementedError,
)
from OpLoom.utils.loggers import get_logger

logger = get_logger(__name__)

PLACES = ("cpu", "gpu")


# ============================================================================
# Operator protos
# ============================================================================

class AttrDef:
    def __init__(self, name: str, type_: type, default=None, doc: str = ""):
        self.name = name
        self.type = type_
        self.default = default
        self.doc = doc

    def check(self, value, op_type: str):
        if not isinstance(value, self.type):
            raise InvalidArgumentError(
                f"Attr({self.name}) of operator {op_type} must be of type "
                f"{self.type.__name__}, but received {type(value).__name__}."
            )


class OpProto:
    """Declared interface of an operator: named inputs, outputs and attributes."""
    def __init__(self, type_: str):
        self.type = type_
        self.inputs = {}
        self.outputs = {}
        self.attrs = {}
        self.comment = ""


class OpProtoMaker:
    """
    Builder for an `OpProto`.

    Example:
        >>> maker = OpProtoMaker("kldiv_loss")
        >>> maker.add_input("X", "log-probabilities")
        >>> maker.add_attr("reduction", str, "reduction mode", default="mean")
        >>> proto = maker.proto
    """
    def __init__(self, type_: str):
        self.proto = OpProto(type_)

    def add_input(self, name: str, doc: str = "", dispensable: bool = False):
        self.proto.inputs[name] = {"doc": doc, "dispensable": dispensable}
        return self

    def add_output(self, name: str, doc: str = "", dispensable: bool = False):
        self.proto.outputs[name] = {"doc": doc, "dispensable": dispensable}
        return self

    def add_attr(self, name: str, type_: type, doc: str = "", default=None):
        self.proto.attrs[name] = AttrDef(name, type_, default, doc)
        return self

    def add_comment(self, comment: str):
        self.proto.comment = comment
        return self


# ============================================================================
# Operator info map
# ============================================================================

class OpInfo:
    """
    Registry entry of a single operator type.

    Attributes:
        type (str): Operator type.
        proto (OpProto or None): Declared interface (grad ops usually have none).
        infer_shape (Callable): `infer_shape(ctx)` used both at graph construction
            and at execution time.
        grad_op_maker (type or None): `SingleGradOpMaker` subclass building the
            backward op desc for one forward op.
        no_need_buffer_vars (frozenset): Inputs whose data buffer the op never
            reads, only their shape. Consumed by memory planners.
        kernel_type_var (str or None): Input whose dtype selects the kernel.
    """
    def __init__(self, type_, infer_shape, proto=None, grad_op_maker=None,
                 no_need_buffer_vars=(), kernel_type_var=None):
        self.type = type_
        self.proto = proto
        self.infer_shape = infer_shape
        self.grad_op_maker = grad_op_maker
        self.no_need_buffer_vars = frozenset(no_need_buffer_vars)
        self.kernel_type_var = kernel_type_var

    def has_grad_op_maker(self) -> bool:
        return self.grad_op_maker is not None


_OP_INFO_MAP: Dict[str, OpInfo] = {}


def register_operator(type_: str, infer_shape: Callable, proto: Optional[OpProto] = None,
                      grad_op_maker=None, no_need_buffer_vars: Iterable[str] = (),
                      kernel_type_var: Optional[str] = None) -> OpInfo:
    """Register an operator type. Raises AlreadyExistsError on duplicates."""
    if type_ in _OP_INFO_MAP:
        raise AlreadyExistsError(f"Operator '{type_}' has been registered.")
    info = OpInfo(type_, infer_shape, proto=proto, grad_op_maker=grad_op_maker,
                  no_need_buffer_vars=no_need_buffer_vars, kernel_type_var=kernel_type_var)
    _OP_INFO_MAP[type_] = info
    logger.debug(f"registered operator '{type_}'")
    return info


def get_op_info(type_: str) -> OpInfo:
    if type_ not in _OP_INFO_MAP:
        raise NotFoundError(f"Operator ({type_}) has not been registered.")
    return _OP_INFO_MAP[type_]


def has_op(type_: str) -> bool:
    return type_ in _OP_INFO_MAP


def registered_ops():
    return sorted(_OP_INFO_MAP)


def fill_default_attrs(type_: str, attrs: Optional[dict]) -> dict:
    """
    Return a copy of `attrs` completed with the proto defaults.

    Unknown attribute names and values of the wrong type raise
    InvalidArgumentError. Operators without a proto get their attrs back
    unchanged.
    """
    attrs = dict(attrs or {})
    proto = get_op_info(type_).proto
    if proto is None:
        return attrs
    for name in attrs:
        if name not in proto.attrs:
            raise InvalidArgumentError(
                f"Operator {type_} has no attribute '{name}'. "
                f"Available attributes: {sorted(proto.attrs)}."
            )
    for name, attr_def in proto.attrs.items():
        if name not in attrs:
            attrs[name] = attr_def.default
        attr_def.check(attrs[name], type_)
    return attrs


# ============================================================================
# Kernel table
# ============================================================================

class KernelKey(tuple):
    """(op_type, place, dtype) with dtype normalised to its name."""
    def __new__(cls, op_type: str, place: str, dtype):
        return super().__new__(cls, (op_type, place, backend.dtype_name(dtype)))

    @property
    def op_type(self):
        return self[0]

    @property
    def place(self):
        return self[1]

    @property
    def dtype(self):
        return self[2]


_KERNELS: Dict[KernelKey, Callable] = {}


def register_kernel(op_type: str, place: str, dtypes: Iterable, fn: Optional[Callable] = None):
    """
    Register a kernel for every dtype in `dtypes` on `place`.

    Can be used directly or as a decorator.
    """
    if place not in PLACES:
        raise InvalidArgumentError(f"Unknown place '{place}'. Expected one of {PLACES}.")
    if isinstance(dtypes, str):
        dtypes = (dtypes,)

    def register(func):
        for dtype in dtypes:
            key = KernelKey(op_type, place, dtype)
            if key in _KERNELS:
                raise AlreadyExistsError(f"Kernel {tuple(key)} has been registered.")
            _KERNELS[key] = func
            logger.debug(f"registered kernel {tuple(key)}")
        return func

    if fn is None:
        return register
    return register(fn)


def get_kernel(op_type: str, place: str, dtype) -> Callable:
    key = KernelKey(op_type, place, dtype)
    if key not in _KERNELS:
        available = sorted(tuple(k) for k in _KERNELS if k.op_type == op_type)
        raise UnimplementedError(
            f"No kernel registered for operator {op_type} on place {place} with "
            f"data type {key.dtype}. Registered kernels: {available}."
        )
    return _KERNELS[key]


def has_kernel(op_type: str, place: str, dtype) -> bool:
    return KernelKey(op_type, place, dtype) in _KERNELS
