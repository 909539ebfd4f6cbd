import pytest

from xmmlearn import (HMM, InvalidArgument, InvalidOperation, OutOfRange,
                      StructuralFormatError, XMMError)


@pytest.mark.parametrize('error, builtin', [
    (InvalidArgument, ValueError),
    (OutOfRange, IndexError),
    (InvalidOperation, RuntimeError),
    (StructuralFormatError, ValueError),
])
def test_hierarchy(error, builtin):
    assert issubclass(error, XMMError)
    assert issubclass(error, builtin)


def test_catch_as_builtin():
    with pytest.raises(ValueError):
        HMM(n_states=0)
    with pytest.raises(IndexError):
        HMM(n_states=2).observation_probability([0.], 5)
