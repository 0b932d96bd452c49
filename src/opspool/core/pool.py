from __future__ import annotations

import logging
from typing import Any, Dict, Iterator, Optional, Sequence

from .exceptions import NullArgumentError
from .kinds import KindLike, require_supported
from .shapes import as_shape
from .storage import HostStorage, Tensor

logger = logging.getLogger(__name__)


class PooledAllocator:
    """Owns the temporaries produced by one execution context.

    Every tensor allocated here is *pooled*: the allocator releases its storage on
    :meth:`flush`. :meth:`take` hands a single tensor's lifetime over to the
    caller, after which the allocator no longer tracks it. A tensor belongs to at
    most one pool at a time.
    """

    def __init__(self, storage: Optional[HostStorage] = None, *, warn_on_missing_take: bool = True):
        self.storage = storage or HostStorage()
        self.warn_on_missing_take = warn_on_missing_take
        # Ordered so flush releases in allocation order.
        self._members: Dict[Tensor, None] = {}

    def __len__(self) -> int:
        return len(self._members)

    def __contains__(self, tensor: object) -> bool:
        return tensor in self._members

    def __iter__(self) -> Iterator[Tensor]:
        return iter(list(self._members))

    def _register(self, tensor: Tensor) -> Tensor:
        if tensor is None:
            raise NullArgumentError("The tensor to add to the pool was None")
        self._members[tensor] = None
        return tensor

    # Allocation -------------------------------------------------------------

    def allocate_uninitialized(self, shape: Sequence[int], kind: KindLike) -> Tensor:
        kind = require_supported(kind)
        return self._register(self.storage.empty(as_shape(shape), kind))

    def allocate_zeros(self, shape: Sequence[int], kind: KindLike) -> Tensor:
        kind = require_supported(kind)
        return self._register(self.storage.zeros(as_shape(shape), kind))

    def allocate_full(self, shape: Sequence[int], kind: KindLike, value: Any) -> Tensor:
        kind = require_supported(kind)
        return self._register(self.storage.full(as_shape(shape), kind, value))

    def allocate_filled(self, shape: Sequence[int], kind: KindLike, data: Any) -> Tensor:
        kind = require_supported(kind)
        return self._register(self.storage.from_data(as_shape(shape), kind, data))

    # Ownership --------------------------------------------------------------

    def take(self, tensor: Optional[Tensor]) -> Optional[Tensor]:
        """Transfer ``tensor`` out of the pool.

        Returns the tensor when it was pooled here. Returns ``None`` when it is
        not a member (already taken, flushed, or allocated elsewhere); the pool
        is left untouched in that case.
        """

        if tensor is None:
            raise NullArgumentError("The tensor to take ownership of was None")
        if tensor not in self._members:
            if self.warn_on_missing_take:
                logger.warning(
                    "Unable to find %r in the temporary pool; it may already have been "
                    "taken or released",
                    tensor,
                )
            return None
        del self._members[tensor]
        return tensor

    def discard(self, tensor: Tensor) -> bool:
        """Release one pooled tensor immediately. Returns ``False`` if not pooled."""

        if tensor not in self._members:
            return False
        del self._members[tensor]
        self.storage.release(tensor)
        return True

    def flush(self) -> int:
        """Release every pooled tensor and empty the pool."""

        members = list(self._members)
        self._members.clear()
        for tensor in members:
            self.storage.release(tensor)
        if members:
            logger.debug("Flushed %d pooled tensor(s)", len(members))
        return len(members)
