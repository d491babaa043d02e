class device_scope:
    """
    Temporarily switch the computation device inside a `with` block.

    Args:
        device (str): "cpu" or "gpu".
    """
    def __init__(self, device="cpu"):
        if device not in ("cpu", "gpu"):
            raise ValueError(f"Invalid device '{device}'. Must be 'cpu' or 'gpu'.")
        self.device = device

    def __enter__(self):
        import OpLoom.core.backend.backend as backend
        self.prev_xp = backend.xp
        self.prev_using = backend.USING
        if self.device == "gpu":
            backend.use_gpu()
        else:
            backend.use_cpu()
        return backend.xp

    def __exit__(self, exc_type, exc_value, tb):
        import OpLoom.core.backend.backend as backend
        backend.xp = self.prev_xp
        backend.USING = self.prev_using


class precision_scope:
    """
    Temporarily change the default floating-point precision inside a `with` block.

    This affects Tensor creation when no explicit dtype is given.

    Args:
        dtype (str): "float32" or "float64".
    """
    def __init__(self, dtype="float32"):
        if dtype not in ("float32", "float64"):
            raise ValueError(f"Unsupported dtype '{dtype}'. Use one of: ['float32', 'float64']")
        self.new_dtype = dtype

    def __enter__(self):
        import OpLoom.core.backend.backend as backend
        self.prev_dtype = backend.DTYPE
        backend.set_dtype(self.new_dtype)
        return backend.DTYPE

    def __exit__(self, exc_type, exc_value, tb):
        import OpLoom.core.backend.backend as backend
        backend.DTYPE = self.prev_dtype
