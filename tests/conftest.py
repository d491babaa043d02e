import numpy as np
import pytest

import OpLoom.ops  # noqa: F401  registers kldiv_loss / kldiv_loss_grad
from OpLoom.framework import Block, OpDesc, Scope, run_op


def _forward(x, target, reduction="mean"):
    op = OpDesc(
        "kldiv_loss",
        inputs={"X": ["x"], "Target": ["t"]},
        outputs={"Loss": ["loss"]},
        attrs={"reduction": reduction},
    )
    scope = Scope({"x": x, "t": target})
    run_op(op, scope, "cpu")
    return scope.find_var("loss")


def _backward(x, target, loss_grad, reduction="mean", want_x_grad=True):
    outputs = {"X@GRAD": ["x@GRAD"]} if want_x_grad else {}
    op = OpDesc(
        "kldiv_loss_grad",
        inputs={"X": ["x"], "Target": ["t"], "Loss@GRAD": ["loss@GRAD"]},
        outputs=outputs,
        attrs={"reduction": reduction},
    )
    scope = Scope({"x": x, "t": target, "loss@GRAD": loss_grad})
    run_op(op, scope, "cpu")
    return scope.find_var("x@GRAD") if scope.has_var("x@GRAD") else None


@pytest.fixture
def block():
    return Block()


@pytest.fixture
def kldiv_forward():
    return _forward


@pytest.fixture
def kldiv_backward():
    return _backward


@pytest.fixture
def rng():
    return np.random.default_rng(1234)


@pytest.fixture
def distributions(rng):
    """Return (log-probabilities, target probabilities) of shape (4, 5) in float64."""
    logits = rng.normal(size=(4, 5))
    probs = np.exp(logits) / np.exp(logits).sum(axis=-1, keepdims=True)
    target = rng.dirichlet(np.ones(5), size=4)
    return np.log(probs), target
