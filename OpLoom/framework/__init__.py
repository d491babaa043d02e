from .errors import EnforceNotMet
from .errors import InvalidArgumentError
from .errors import NotFoundError
from .errors import UnimplementedError
from .errors import AlreadyExistsError

from .program import VarDesc
from .program import OpDesc
from .program import Block
from .program import grad_var_name

from .backward import SingleGradOpMaker
from .backward import append_backward
from .backward import make_grad_op_descs

from .executor import Scope
from .executor import Executor
from .executor import run_op

__all__ = [
    "EnforceNotMet",
    "InvalidArgumentError",
    "NotFoundError",
    "UnimplementedError",
    "AlreadyExistsError",
    "VarDesc",
    "OpDesc",
    "Block",
    "grad_var_name",
    "SingleGradOpMaker",
    "append_backward",
    "make_grad_op_descs",
    "Scope",
    "Executor",
    "run_op"
]
