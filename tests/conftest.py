import pytest

from dedit_charset import make_charset
from dedit_macro import compile_macro_dict, build_macro_table


@pytest.fixture
def chst():
    return make_charset('us', 'ffx')


@pytest.fixture
def macro_raw(chst):
    # sections 1 and 2 absent
    return compile_macro_dict({0: ['hello'], 3: ['world']}, chst)


@pytest.fixture
def macros(macro_raw, chst):
    return build_macro_table(macro_raw, chst)
