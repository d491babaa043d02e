"""
Backend runtime selector for OpLoom.

- Single import point for array backend (`xp`) and core runtime flags.
- Toggle CPU (NumPy) / GPU (CuPy).
- Centralized dtype and autograd switches.
- Global-access pattern:
    >>> import OpLoom.core.backend.backend as backend
    >>> xp = backend.xp
    >>> DTYPE = backend.DTYPE

Kernels resolve `backend.xp` at call time, so switching devices takes effect
for every op launched afterwards.
"""

from __future__ import annotations

import numpy as _np
from contextlib import contextmanager
from OpLoom.core.backend.config import CONFIG
from OpLoom.utils.loggers import get_logger

logger = get_logger(__name__)


# ---------------------------
# Optional GPU backend (CuPy)
# ---------------------------
try:
    import cupy as _cp
    _CUPY_AVAILABLE = True
except ImportError:
    _cp = None
    _CUPY_AVAILABLE = False


# ---------------------------
# Public runtime state (globals)
# ---------------------------
xp = _np                       # current array module (NumPy or CuPy)
USING = "cpu"                  # "cpu" | "gpu"
SEED = CONFIG.get("seed", 997)

DTYPE = _np.float32            # default dtype for new tensors

# Autograd switch
AUTOGRAD_ENABLED = CONFIG.get("autograd", True)

_DTYPE_MAP = {"float32": _np.float32, "float64": _np.float64}


# ===========================
# Introspection / utilities
# ===========================
def gpu_available() -> bool:
    """Return True if CuPy is importable."""
    return _CUPY_AVAILABLE


def is_gpu() -> bool:
    """Return True if current backend is GPU (CuPy)."""
    return USING == "gpu"


def device_name() -> str:
    """Human-readable device name."""
    if is_gpu() and _cp is not None:
        dev_id = _cp.cuda.Device().id
        props = _cp.cuda.runtime.getDeviceProperties(dev_id)
        name = props.get("name", b"GPU").decode(errors="ignore")
        return f"GPU:{dev_id} ({name})"
    return "CPU (NumPy)"


def get_device() -> str:
    """Return current device string: 'cpu' or 'gpu'."""
    return USING


def synchronize():
    """Block until all queued ops on the current device are complete."""
    if is_gpu() and _cp is not None:
        _cp.cuda.Stream.null.synchronize()


def to_numpy(array):
    """Return a NumPy view/copy of a backend array."""
    if _cp is not None and isinstance(array, _cp.ndarray):
        return _cp.asnumpy(array)
    return _np.asarray(array)


def dtype_name(dtype) -> str:
    """Normalise a dtype-like object to its canonical name, e.g. 'float32'."""
    return _np.dtype(dtype).name


# ===========================
# Backend switching
# ===========================
def use_gpu():
    """
    Switch backend to GPU (CuPy).
    Raises ImportError if CuPy is not available.
    """
    global xp, USING
    if not _CUPY_AVAILABLE:
        raise ImportError("CuPy is not installed. Run `pip install cupy` to use GPU.")
    xp = _cp
    USING = "gpu"
    logger.info(f"Using {device_name()}")


def use_cpu():
    """Switch backend to CPU (NumPy)."""
    global xp, USING
    xp = _np
    USING = "cpu"
    logger.info(f"Using {device_name()}")


def _auto_select_device():
    device = str(CONFIG.get("device", "cpu")).lower()
    if device == "gpu" and _CUPY_AVAILABLE:
        use_gpu()
    else:
        if device == "gpu":
            logger.warning("Config requested device 'gpu' but CuPy is not installed; falling back to CPU.")
        use_cpu()


# ===========================
# Runtime configuration
# ===========================
def set_seed(seed: int):
    """Set RNG seed for both NumPy and CuPy (if present)."""
    global SEED
    SEED = int(seed)
    _np.random.seed(SEED)
    if _CUPY_AVAILABLE:
        _cp.random.seed(SEED)


def set_dtype(dtype: str = "float32"):
    """
    Set default DTYPE to float32 or float64.
    """
    global DTYPE
    if dtype not in _DTYPE_MAP:
        raise ValueError("dtype must be 'float32' or 'float64'")
    DTYPE = _DTYPE_MAP[dtype]


# Initialize from config
set_dtype(CONFIG.get("dtype", "float32"))
_auto_select_device()
set_seed(SEED)


# ===========================
# Autograd guards
# ===========================
def is_grad_enabled() -> bool:
    """Return whether autograd recording is enabled."""
    return AUTOGRAD_ENABLED


@contextmanager
def no_grad():
    global AUTOGRAD_ENABLED
    _prev = AUTOGRAD_ENABLED
    AUTOGRAD_ENABLED = False
    try:
        yield
    finally:
        AUTOGRAD_ENABLED = _prev


@contextmanager
def enabled_grad():
    global AUTOGRAD_ENABLED
    _prev = AUTOGRAD_ENABLED
    AUTOGRAD_ENABLED = True
    try:
        yield
    finally:
        AUTOGRAD_ENABLED = _prev
