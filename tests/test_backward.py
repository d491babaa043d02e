import numpy as np
import pytest

from OpLoom.framework import Executor, NotFoundError, Scope, append_backward


def _build(block, reduction="mean", x_stop_gradient=False):
    block.create_var("x", (-1, 5), "float64", stop_gradient=x_stop_gradient)
    block.create_var("t", (-1, 5), "float64", stop_gradient=True)
    block.append_op(
        "kldiv_loss",
        inputs={"X": "x", "Target": "t"},
        outputs={"Loss": "loss"},
        attrs={"reduction": reduction},
    )


def test_append_backward_adds_one_grad_op(block):
    _build(block)
    pairs = append_backward(block, "loss")

    assert pairs == [("x", "x@GRAD")]
    assert [op.type for op in block.ops] == ["kldiv_loss", "kldiv_loss_grad"]
    assert block.var("loss@GRAD").shape == (1,)
    assert block.var("x@GRAD").shape == (-1, 5)
    assert not block.has_var("t@GRAD")

    grad_op = block.ops[-1]
    assert grad_op.input("Loss@GRAD") == ["loss@GRAD"]
    assert grad_op.attrs == block.ops[0].attrs


def test_no_grad_op_when_x_stops_gradient(block):
    _build(block, x_stop_gradient=True)
    assert append_backward(block, "loss") == []
    assert [op.type for op in block.ops] == ["kldiv_loss"]


def test_no_grad_set_argument(block):
    _build(block)
    assert append_backward(block, "loss", no_grad_set={"x"}) == []


@pytest.mark.parametrize("reduction", ["none", "sum", "mean", "batchmean"])
def test_executor_runs_forward_and_backward(block, distributions, reduction):
    x, target = distributions
    _build(block, reduction)
    append_backward(block, "loss")

    upstream = np.ones_like(x) if reduction == "none" else np.array([1.0])
    loss, x_grad = Executor("cpu").run(
        block,
        feed={"x": x, "t": target, "loss@GRAD": upstream},
        fetch_list=["loss", "x@GRAD"],
    )

    scale = {"none": 1.0, "sum": 1.0, "mean": 1.0 / x.size, "batchmean": 1.0 / x.shape[0]}[reduction]
    np.testing.assert_allclose(x_grad, -target * scale)
    if reduction == "none":
        assert loss.shape == x.shape
    else:
        assert loss.shape == (1,)


def test_executor_reuses_a_given_scope(block, distributions):
    x, target = distributions
    _build(block, "sum")
    scope = Scope()
    Executor().run(block, feed={"x": x, "t": target}, scope=scope)
    assert scope.has_var("loss")
    assert sorted(scope.var_names()) == ["loss", "t", "x"]


def test_failed_grad_inference_leaves_block_unchanged(block):
    _build(block)
    del block.vars["t"]
    vars_before = sorted(block.vars)

    with pytest.raises(NotFoundError, match=r"No Input\(Target\) found"):
        append_backward(block, "loss")

    assert sorted(block.vars) == vars_before
    assert not block.has_var("x@GRAD")
    assert not block.has_var("loss@GRAD")
    assert [op.type for op in block.ops] == ["kldiv_loss"]
