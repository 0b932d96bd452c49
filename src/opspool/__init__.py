try:
    from importlib.metadata import PackageNotFoundError
    from importlib.metadata import version as _load_version
except ImportError:  # pragma: no cover
    from importlib_metadata import (  # type: ignore
        PackageNotFoundError,
    )
    from importlib_metadata import (
        version as _load_version,
    )

from .core import shapes
from .core.backend import Backend, available_backends, create_backend, register_backend
from .core.backend_numpy import NumpyBackend
from .core.context import ExecutionConfig, ExecutionContext
from .core.exceptions import (
    BackendError,
    InvalidKindError,
    KindMismatchError,
    NullArgumentError,
    OpsPoolError,
    ShapeError,
    TensorReleasedError,
    UnsupportedKindError,
)
from .core.kinds import DataKind
from .core.pool import PooledAllocator
from .core.storage import HostStorage, Tensor

try:
    __version__ = _load_version("opspool")
except PackageNotFoundError:
    __version__ = "0.0.0"

__all__ = [
    "ExecutionContext",
    "ExecutionConfig",
    "Tensor",
    "DataKind",
    "PooledAllocator",
    "HostStorage",
    "Backend",
    "NumpyBackend",
    "available_backends",
    "create_backend",
    "register_backend",
    "shapes",
    "OpsPoolError",
    "ShapeError",
    "NullArgumentError",
    "InvalidKindError",
    "UnsupportedKindError",
    "KindMismatchError",
    "TensorReleasedError",
    "BackendError",
    "__version__",
]
