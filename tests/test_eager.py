import numpy as np
import pytest

import OpLoom.core.backend.backend as backend
from OpLoom.core import Tensor, ops
from OpLoom.core.tensor import trace_graph
from OpLoom.framework import InvalidArgumentError
from OpLoom.nn.loss import BaseLoss, KLDivergence


def _softmax(z):
    e = np.exp(z - z.max(axis=-1, keepdims=True))
    return e / e.sum(axis=-1, keepdims=True)


@pytest.mark.parametrize("reduction", ["none", "sum", "mean", "batchmean"])
def test_kl_div_backward_populates_input_grad(distributions, reduction):
    x_np, t_np = distributions
    x = Tensor(x_np, requires_grad=True)
    t = Tensor(t_np, requires_grad=True)

    loss = ops.kl_div(x, t, reduction=reduction)
    if reduction == "none":
        loss.backward(np.ones_like(x_np))
    else:
        loss.backward()

    scale = {"none": 1.0, "sum": 1.0, "mean": 1.0 / x_np.size, "batchmean": 1.0 / x_np.shape[0]}[reduction]
    np.testing.assert_allclose(x.grad, -t_np * scale)
    assert t.grad is None


def test_kl_div_value_matches_definition(distributions):
    x_np, t_np = distributions
    loss = ops.kl_div(Tensor(x_np), Tensor(t_np), reduction="sum")
    assert loss.shape == (1,)
    assert loss.grad_fn == "kl_div"
    np.testing.assert_allclose(loss.item(), np.sum(t_np * (np.log(t_np) - x_np)))


def test_kl_div_accepts_array_like_inputs():
    loss = ops.kl_div([[0.0, 0.0]], [[1.0, 0.0]], reduction="batchmean")
    assert loss.item() == 0.0
    assert loss.dtype == backend.DTYPE


def test_gradient_flows_through_log_softmax(rng):
    logits_np = rng.normal(size=(3, 4))
    target_np = rng.dirichlet(np.ones(4), size=3)
    logits = Tensor(logits_np, requires_grad=True)

    loss = ops.kl_div(ops.log_softmax(logits), Tensor(target_np), reduction="sum")
    loss.backward()

    # d/dz sum(t * (log t - log_softmax(z))) = softmax(z) - t for rows summing to 1
    np.testing.assert_allclose(logits.grad, _softmax(logits_np) - target_np, atol=1e-10)


def test_gradients_accumulate_over_two_backward_calls(distributions):
    x_np, t_np = distributions
    x = Tensor(x_np, requires_grad=True)
    ops.kl_div(x, Tensor(t_np), reduction="sum").backward()
    ops.kl_div(x, Tensor(t_np), reduction="sum").backward()
    np.testing.assert_allclose(x.grad, -2 * t_np)


def test_no_grad_disables_tracking(distributions):
    x_np, t_np = distributions
    x = Tensor(x_np, requires_grad=True)
    with backend.no_grad():
        loss = ops.kl_div(x, Tensor(t_np))
    assert not loss.requires_grad
    loss.backward()
    assert x.grad is None


def test_kl_div_propagates_shape_errors():
    with pytest.raises(InvalidArgumentError, match="rank"):
        ops.kl_div(Tensor(np.zeros((2, 3))), Tensor(np.zeros((2, 3, 1))))


def test_kldivergence_module_defaults_to_mean(distributions):
    x_np, t_np = distributions
    criterion = KLDivergence()
    assert isinstance(criterion, BaseLoss)
    assert criterion.reduction == "mean"

    loss = criterion(Tensor(x_np), Tensor(t_np))
    np.testing.assert_allclose(loss.item(), np.mean(t_np * (np.log(t_np) - x_np)))


def test_kldivergence_module_rejects_unknown_reduction():
    with pytest.raises(InvalidArgumentError):
        KLDivergence(reduction="median")
    with pytest.raises(InvalidArgumentError):
        KLDivergence(reduction="")


def test_tensor_basics():
    t = Tensor([[1.0, 2.0], [3.0, 4.0]])
    assert len(t) == 2
    assert t.ndim == 2 and t.size == 4
    with pytest.raises(ValueError):
        t.item()
    with pytest.raises(RuntimeError):
        Tensor([1.0, 2.0], requires_grad=True).backward()
    with pytest.raises(TypeError):
        len(Tensor(1.0))
    assert "shape=(2, 2)" in repr(t)
    np.testing.assert_array_equal(t.detach().numpy(), [[1.0, 2.0], [3.0, 4.0]])


def test_trace_graph_prints_each_node(capsys, distributions):
    x_np, t_np = distributions
    x = Tensor(x_np, requires_grad=True)
    loss = ops.kl_div(ops.log_softmax(x), Tensor(t_np))
    trace_graph(loss)
    lines = capsys.readouterr().out.strip().splitlines()
    assert len(lines) == 3
    assert "grad_fn=kl_div" in lines[0]
    assert "grad_fn=log_softmax" in lines[1]


def test_retained_intermediate_grad_and_zero_grad(distributions):
    x_np, t_np = distributions
    x = Tensor(x_np, requires_grad=True)
    log_probs = ops.log_softmax(x).retain_grad()
    ops.kl_div(log_probs, Tensor(t_np), reduction="sum").backward()

    np.testing.assert_allclose(log_probs.grad, -t_np)
    x.zero_grad()
    assert x.grad is None
    with pytest.raises(RuntimeError):
        Tensor(x_np).retain_grad()
