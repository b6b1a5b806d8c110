"""Process-wide default injector and the free functions forwarding to it.

The default injector is shared global state: tests using it must call
`reset_default()` between runs.
"""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING, Any, TypeVar, overload

from ._injector import Injector


if TYPE_CHECKING:
    from collections.abc import Callable

    from ._options import ProvideOption

    T = TypeVar("T")


_default: Injector | None = None
_default_lock = threading.Lock()


def default() -> Injector:
    """Get or create the default injector."""
    global _default  # noqa: PLW0603
    if _default is None:
        with _default_lock:
            if _default is None:
                _default = Injector()
    return _default


def reset_default() -> Injector:
    """Replace the default injector with an empty one and return it."""
    global _default  # noqa: PLW0603
    with _default_lock:
        _default = Injector()
        return _default


def provide(ctor: Callable[..., Any], *options: ProvideOption) -> None:
    default().provide(ctor, *options)


def provide_instance(value: object, *options: ProvideOption) -> None:
    default().provide_instance(value, *options)


def provide_zero(blueprint: type, *options: ProvideOption) -> None:
    default().provide_zero(blueprint, *options)


def override(ctor: Callable[..., Any], *options: ProvideOption) -> None:
    default().override(ctor, *options)


def override_instance(value: object, *options: ProvideOption) -> None:
    default().override_instance(value, *options)


def override_zero(blueprint: type, *options: ProvideOption) -> None:
    default().override_zero(blueprint, *options)


@overload
def invoke(key: type[T]) -> T: ...


@overload
def invoke(key: str) -> object: ...


def invoke(key: type[T] | str) -> object:
    return default().invoke(key)
