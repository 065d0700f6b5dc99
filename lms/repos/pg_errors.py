"""Map database driver failures onto the core's error taxonomy."""

from __future__ import annotations

import functools
import logging
from collections.abc import Awaitable, Callable
from typing import ParamSpec, TypeVar

from sqlalchemy.exc import InterfaceError, OperationalError

from lms.core.errors import StoreUnavailable

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

_TRANSIENT = (OperationalError, InterfaceError, TimeoutError, ConnectionError)


def translate_store_errors(
    fn: Callable[P, Awaitable[T]],
) -> Callable[P, Awaitable[T]]:
    """Re-raise connection loss and timeouts as StoreUnavailable."""

    @functools.wraps(fn)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
        try:
            return await fn(*args, **kwargs)
        except _TRANSIENT as e:
            logger.error("Store call %s failed: %s", fn.__qualname__, e)
            raise StoreUnavailable("storage backend unavailable") from e

    return wrapper
