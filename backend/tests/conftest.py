import pytest

from markov_cea.data.registry import TableRegistry


@pytest.fixture(autouse=True)
def _reset_registry():
    TableRegistry.reset()
    yield
    TableRegistry.reset()
