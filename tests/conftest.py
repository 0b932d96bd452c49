from collections import Counter

import pytest

from opspool import Backend, ExecutionContext, NumpyBackend

KERNELS = sorted(Backend.__abstractmethods__)


class CountingBackend(NumpyBackend):
    """NumPy backend that records how often each kernel runs."""

    name = "counting"

    def __init__(self, device: str = "auto"):
        super().__init__(device)
        self.calls = Counter()
        for kernel in KERNELS:
            setattr(self, kernel, self._counted(kernel, getattr(self, kernel)))

    def _counted(self, kernel, fn):
        def wrapper(*args, **kwargs):
            self.calls[kernel] += 1
            return fn(*args, **kwargs)

        return wrapper

    @property
    def total_calls(self) -> int:
        return sum(self.calls.values())


class FailingBackend(NumpyBackend):
    """Raises from one named kernel, delegating the rest to NumPy."""

    name = "failing"

    def __init__(self, failing_kernel: str):
        super().__init__()

        def boom(*args, **kwargs):
            raise RuntimeError(f"{failing_kernel} exploded")

        setattr(self, failing_kernel, boom)


@pytest.fixture
def ctx():
    context = ExecutionContext("numpy")
    yield context
    context.dispose()


@pytest.fixture
def counting_backend():
    return CountingBackend()


@pytest.fixture
def counting_ctx(counting_backend):
    context = ExecutionContext(counting_backend)
    yield context
    context.dispose()
