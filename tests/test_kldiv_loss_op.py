import numpy as np
import pytest

from OpLoom.framework import (
    EnforceNotMet,
    Executor,
    InvalidArgumentError,
    NotFoundError,
    make_grad_op_descs,
)


def _append_kldiv(block, reduction=None, x="x", target="t", loss="loss"):
    attrs = {} if reduction is None else {"reduction": reduction}
    return block.append_op(
        "kldiv_loss",
        inputs={"X": x, "Target": target},
        outputs={"Loss": loss},
        attrs=attrs,
    )


def test_reduction_defaults_to_mean(block):
    block.create_var("x", (4, 3))
    block.create_var("t", (4, 3))
    op = _append_kldiv(block)
    assert op.attrs["reduction"] == "mean"
    assert block.var("loss").shape == (1,)
    assert block.var("loss").dtype == "float32"


def test_none_reduction_keeps_input_shape_with_placeholders(block):
    block.create_var("x", (-1, 3), "float64")
    block.create_var("t", (-1, 3), "float64")
    _append_kldiv(block, "none")
    assert block.var("loss").shape == (-1, 3)
    assert block.var("loss").dtype == "float64"


@pytest.mark.parametrize("reduction", ["sum", "mean", "batchmean"])
def test_scalar_reductions_give_single_element(block, reduction):
    block.create_var("x", (-1, 7, 2))
    block.create_var("t", (5, 7, 2))
    _append_kldiv(block, reduction)
    assert block.var("loss").shape == (1,)


def test_rank_mismatch_rejected_at_construction(block):
    block.create_var("x", (4, 3))
    block.create_var("t", (4, 3, 1))
    with pytest.raises(InvalidArgumentError, match=r"X rank\(2\) != Target rank\(3\)"):
        _append_kldiv(block)
    assert block.ops == []
    assert not block.has_var("loss")


def test_extent_mismatch_rejected_at_construction(block):
    block.create_var("x", (4, 3))
    block.create_var("t", (4, 5))
    with pytest.raises(InvalidArgumentError, match=r"X dimension\[1\]\(3\) != Target dimension\[1\]\(5\)"):
        _append_kldiv(block)


def test_concrete_dims_are_still_checked_next_to_placeholders(block):
    block.create_var("x", (-1, 3))
    block.create_var("t", (4, 5))
    with pytest.raises(InvalidArgumentError):
        _append_kldiv(block)


def test_placeholder_mismatch_is_caught_at_runtime(block):
    block.create_var("x", (-1, 3))
    block.create_var("t", (4, 3))
    _append_kldiv(block)

    with pytest.raises(InvalidArgumentError, match=r"dimension\[0\]"):
        Executor("cpu").run(
            block,
            feed={"x": np.zeros((2, 3)), "t": np.zeros((4, 3))},
            fetch_list=["loss"],
        )


def test_unknown_reduction_rejected(block):
    block.create_var("x", (4, 3))
    block.create_var("t", (4, 3))
    with pytest.raises(InvalidArgumentError, match="'none'\\|'batchmean'\\|'sum'\\|'mean'"):
        _append_kldiv(block, "median")


def test_unknown_reduction_rejected_at_runtime(kldiv_forward):
    with pytest.raises(ValueError):
        kldiv_forward(np.zeros((2, 2)), np.zeros((2, 2)), "median")


def test_non_string_reduction_rejected(block):
    block.create_var("x", (4, 3))
    block.create_var("t", (4, 3))
    with pytest.raises(InvalidArgumentError, match="must be of type str"):
        _append_kldiv(block, 1)


def test_unknown_attribute_rejected(block):
    block.create_var("x", (4, 3))
    block.create_var("t", (4, 3))
    with pytest.raises(InvalidArgumentError, match="no attribute 'weight'"):
        block.append_op("kldiv_loss", {"X": "x", "Target": "t"}, {"Loss": "loss"}, {"weight": 1.0})


def test_missing_target_binding(block):
    block.create_var("x", (4, 3))
    with pytest.raises(NotFoundError, match=r"No Input\(Target\) found for KLDivLoss operator"):
        block.append_op("kldiv_loss", inputs={"X": "x"}, outputs={"Loss": "loss"})


def test_target_bound_to_undeclared_variable(block):
    block.create_var("x", (4, 3))
    with pytest.raises(NotFoundError, match=r"Input\(Target\)"):
        _append_kldiv(block, target="nowhere")


def test_missing_loss_binding(block):
    block.create_var("x", (4, 3))
    block.create_var("t", (4, 3))
    with pytest.raises(NotFoundError, match=r"No Output\(Loss\) found"):
        block.append_op("kldiv_loss", inputs={"X": "x", "Target": "t"}, outputs={})


def test_errors_share_a_common_base():
    assert issubclass(InvalidArgumentError, EnforceNotMet)
    assert issubclass(NotFoundError, EnforceNotMet)


def test_grad_maker_wires_a_single_grad_op(block):
    block.create_var("x", (4, 3))
    block.create_var("t", (4, 3))
    fwd = _append_kldiv(block, "batchmean")

    grad_ops = make_grad_op_descs(fwd)
    assert len(grad_ops) == 1
    grad = grad_ops[0]
    assert grad.type == "kldiv_loss_grad"
    assert grad.inputs == {"X": ["x"], "Target": ["t"], "Loss@GRAD": ["loss@GRAD"]}
    assert grad.outputs == {"X@GRAD": ["x@GRAD"]}
    assert grad.attrs == fwd.attrs
    assert "Target@GRAD" not in grad.outputs


def test_grad_maker_leaves_x_grad_empty_when_not_needed(block):
    block.create_var("x", (4, 3))
    block.create_var("t", (4, 3))
    fwd = _append_kldiv(block)

    grad, = make_grad_op_descs(fwd, no_grad_set={"x"})
    assert grad.output("X@GRAD") == []


def test_grad_infer_shape_requires_upstream_gradient(block):
    block.create_var("x", (4, 3))
    block.create_var("t", (4, 3))
    with pytest.raises(NotFoundError, match=r"No Input\(Loss@GRAD\) found for KLDivLossGrad operator"):
        block.append_op(
            "kldiv_loss_grad",
            inputs={"X": "x", "Target": "t"},
            outputs={"X@GRAD": "x@GRAD"},
            attrs={"reduction": "mean"},
        )


def test_grad_infer_shape_sets_x_grad_dims(block):
    block.create_var("x", (-1, 3), "float64")
    block.create_var("t", (-1, 3), "float64")
    block.create_var("loss@GRAD", (1,), "float64")
    block.append_op(
        "kldiv_loss_grad",
        inputs={"X": "x", "Target": "t", "Loss@GRAD": "loss@GRAD"},
        outputs={"X@GRAD": "x@GRAD"},
        attrs={"reduction": "sum"},
    )
    assert block.var("x@GRAD").shape == (-1, 3)
    assert block.var("x@GRAD").dtype == "float64"
