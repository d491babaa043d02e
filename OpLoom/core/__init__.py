from .tensor.tensor import Tensor
from .tensor import ops

from .backend.backend import gpu_available
from .backend.backend import is_gpu
from .backend.backend import device_name
from .backend.backend import get_device
from .backend.backend import synchronize
from .backend.backend import use_gpu
from .backend.backend import use_cpu
from .backend.backend import set_seed
from .backend.backend import set_dtype
from .backend.backend import is_grad_enabled
from .backend.backend import no_grad
from .backend.backend import enabled_grad

__all__ = [
    "Tensor",
    "ops",
    "gpu_available",
    "is_gpu",
    "device_name",
    "get_device",
    "synchronize",
    "use_gpu",
    "use_cpu",
    "set_seed",
    "set_dtype",
    "is_grad_enabled",
    "no_grad",
    "enabled_grad"
]
