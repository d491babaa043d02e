import OpLoom.core.backend.backend as backend


class Tensor:
    # ======================================================
    # Core initialization
    # ======================================================
    def __init__(self, data, requires_grad=False, dtype=None):
        """
        Tensor(data, requires_grad=False, dtype=None)

        Eager tensor object for OpLoom.

        Args:
            data: array-like, numpy.ndarray, cupy.ndarray, or scalar.
            requires_grad (bool): track gradients for autograd.
            dtype (str or np.dtype, optional): data type to cast input to.
        """
        xp = backend.xp
        if isinstance(data, Tensor):
            self.data = data.data.astype(dtype or data.dtype)
            self.requires_grad = requires_grad or data.requires_grad
        else:
            if dtype is None and hasattr(data, "dtype") and data.dtype.kind == "f":
                dtype = data.dtype
            self.data = xp.asarray(data, dtype=(dtype or backend.DTYPE))
            self.requires_grad = requires_grad and backend.is_grad_enabled()

        self.dtype = self.data.dtype
        self.grad = None
        self.grad_fn = None
        self._retain_grad = False
        self.is_leaf = True
        self._backward = lambda: None
        self._prev = set()

    # ======================================================
    # Display / Python integration
    # ======================================================
    def __repr__(self):
        """
        String representation with truncated array contents.
        Shows first few elements per dimension for readability.
        """
        def truncate(arr):
            if arr.ndim == 0:
                return str(arr.item())
            if arr.ndim == 1:
                s = arr[:3]
                return f"{s.tolist()}..." if arr.size > 3 else f"{s.tolist()}"
            s = arr[:3]
            rows = [truncate(row) for row in s]
            return "[" + ",\n ".join(rows) + ("..." if arr.shape[0] > 3 else "") + "]"

        data_str = truncate(self.data)
        return f"Tensor(shape={self.shape}, dtype={self.dtype}, requires_grad={self.requires_grad}, data={data_str})"

    def __len__(self):
        """Return length of first dimension. Raises TypeError for scalars."""
        if self.ndim == 0:
            raise TypeError("Scalar tensor has no length")
        return self.data.shape[0]

    # ======================================================
    # Conversion / utility
    # ======================================================
    def zero_grad(self):
        """Clear gradients (set to None)."""
        self.grad = None
    def detach(self):
        """Return a new Tensor detached from graph."""
        return Tensor(self.data.copy(), requires_grad=False, dtype=self.dtype)
    def item(self):
        """Return Python scalar from a single-element Tensor."""
        if self.size != 1:
            raise ValueError("Can only convert scalar tensor to Python number")
        return self.data.item()
    def numpy(self):
        """Return NumPy array (copy if GPU backend)."""
        return backend.to_numpy(self.data)

    # ======================================================
    # Properties
    # ======================================================
    @property
    def shape(self):
        """Tensor shape as tuple."""
        return self.data.shape
    @property
    def ndim(self):
        """Number of dimensions."""
        return len(self.data.shape)
    @property
    def size(self):
        """Number of elements."""
        return self.data.size

    # ======================================================
    # Autograd
    # ======================================================
    def retain_grad(self):
        """Retain grad for non-leaf tensors."""
        if not self.requires_grad:
            raise RuntimeError("Cannot retain grad on a tensor that does not require grad")
        self._retain_grad = True
        return self

    def backward(self, grad=None):
        """
        Backpropagate gradients through computation graph.

        Args:
            grad: initial gradient (defaults to ones for single-element outputs).
        """
        xp = backend.xp
        if grad is None:
            if self.data.size != 1:
                raise RuntimeError("Grad must be specified for non-scalar outputs")
            grad = xp.ones_like(self.data, dtype=self.dtype)
        if isinstance(grad, Tensor):
            grad = grad.data
        self.grad = xp.asarray(grad).astype(self.dtype, copy=False)

        if not self.requires_grad:
            return

        topo, visited = [], set()
        def build_topo(t):
            if t not in visited:
                visited.add(t)
                for child in t._prev:
                    if child.requires_grad:
                        build_topo(child)
                topo.append(t)

        build_topo(self)

        for t in reversed(topo):
            if not t.requires_grad:
                continue
            t._backward()
            if not (t.is_leaf or t._retain_grad) and t is not self:
                t.grad = None
