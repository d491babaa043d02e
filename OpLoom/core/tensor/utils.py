from .tensor import Tensor


def ensure_tensor(obj, dtype=None):
    """
    Ensure the input is a Tensor.
    Scalars, lists, numpy/cupy arrays get wrapped automatically.
    """
    if isinstance(obj, Tensor):
        return obj
    return Tensor(obj, dtype=dtype)


def accumulate_grad(t: Tensor, grad):
    """Add `grad` into `t.grad`, allocating it on first use."""
    grad = grad.astype(t.dtype, copy=False)
    if t.grad is None:
        t.grad = grad
    else:
        t.grad = t.grad + grad


def trace_graph(tensor, depth=0, visited=None):
    """Print the autograd graph rooted at `tensor`, one node per line."""
    if visited is None:
        visited = set()
    if tensor in visited:
        return
    visited.add(tensor)
    print("  " * depth + f"Tensor(id={id(tensor)}, grad_fn={tensor.grad_fn}, shape={tensor.shape})")
    for p in tensor._prev:
        trace_graph(p, depth + 1, visited)