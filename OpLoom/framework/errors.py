"""
Error categories raised by the operator framework.

Every error carries a human-readable message naming the failing input or
attribute together with the expected and received values. Errors are raised
eagerly and are never caught inside the framework.
"""


class EnforceNotMet(Exception):
    """Base class for all framework contract violations."""
    category = "Error"

    def __str__(self):
        return f"({self.category}) {super().__str__()}"


class InvalidArgumentError(EnforceNotMet, ValueError):
    category = "InvalidArgument"


class NotFoundError(EnforceNotMet, KeyError):
    category = "NotFound"

    def __str__(self):
        # KeyError would otherwise repr() the message
        return f"({self.category}) {self.args[0] if self.args else ''}"


class UnimplementedError(EnforceNotMet, NotImplementedError):
    category = "Unimplemented"


class AlreadyExistsError(EnforceNotMet):
    category = "AlreadyExists"


def enforce_eq(a, b, error: EnforceNotMet):
    """Raise `error` unless `a == b`."""
    if a != b:
        raise error


def op_inout_check(cond, kind: str, name: str, op_name: str):
    """
    Check that an input/output binding is present.

    Args:
        cond (bool): Whether the binding exists.
        kind (str): "Input" or "Output".
        name (str): Binding name, e.g. "X" or "Loss@GRAD".
        op_name (str): Operator display name used in the message.
    """
    if not cond:
        raise NotFoundError(f"No {kind}({name}) found for {op_name} operator.")
