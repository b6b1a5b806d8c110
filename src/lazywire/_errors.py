from __future__ import annotations


class InjectorError(RuntimeError):
    """Base class for every error raised by the injector itself.

    Errors raised by user constructors are never wrapped into this hierarchy.
    """

    def __init__(self, msg: str, *, name: str | None = None) -> None:
        super().__init__(msg)
        self.name = name

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ""


class ServiceAlreadyExistsError(InjectorError, KeyError):
    pass


class UnknownServiceError(InjectorError, KeyError):
    pass


class ServiceNotImplementsAsError(InjectorError, TypeError):
    pass


class InvalidAsTypeError(InjectorError, TypeError):
    pass


class InvalidCtorTypeError(InjectorError, TypeError):
    pass


class InvalidZeroTypeError(InjectorError, TypeError):
    pass


class InvalidInvokeTypeError(InjectorError, TypeError):
    pass


class CircularDependencyError(InjectorError):
    """A constructor-injected service asked for itself while being built."""
