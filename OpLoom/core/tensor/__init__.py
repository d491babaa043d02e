from .tensor import Tensor

from .utils import ensure_tensor
from .utils import accumulate_grad
from .utils import trace_graph

__all__ = [
    "Tensor",
    "ensure_tensor",
    "accumulate_grad",
    "trace_graph"
]
