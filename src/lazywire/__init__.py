"""Lazy dependency injection with override cascades.

This package provides a runtime dependency injection container. Services are
registered under a type-derived (or explicit) key and built on first use, with
their own dependencies resolved from the annotations of their constructor or
class attributes.

Exports:
- `Injector`: the container. `provide`, `provide_instance` and `provide_zero`
  register constructors, pre-built objects and attribute-populated classes;
  `invoke` resolves; the `override*` counterparts replace a service and
  invalidate everything built from it.
- `Name`, `As`: options naming a service explicitly or exposing it under
  interface types.
- `default`, `reset_default` and module-level functions mirroring the
  `Injector` methods, operating on a process-wide default injector.
- `type_key`: the key a type is registered under.
- Errors: `InjectorError` and its subclasses.
"""

from ._default import (
    default,
    invoke,
    override,
    override_instance,
    override_zero,
    provide,
    provide_instance,
    provide_zero,
    reset_default,
)
from ._errors import (
    CircularDependencyError,
    InjectorError,
    InvalidAsTypeError,
    InvalidCtorTypeError,
    InvalidInvokeTypeError,
    InvalidZeroTypeError,
    ServiceAlreadyExistsError,
    ServiceNotImplementsAsError,
    UnknownServiceError,
)
from ._injector import Injector
from ._options import As, Name, ProvideOption
from ._types import type_key


__all__ = [
    "As",
    "CircularDependencyError",
    "Injector",
    "InjectorError",
    "InvalidAsTypeError",
    "InvalidCtorTypeError",
    "InvalidInvokeTypeError",
    "InvalidZeroTypeError",
    "Name",
    "ProvideOption",
    "ServiceAlreadyExistsError",
    "ServiceNotImplementsAsError",
    "UnknownServiceError",
    "default",
    "invoke",
    "override",
    "override_instance",
    "override_zero",
    "provide",
    "provide_instance",
    "provide_zero",
    "reset_default",
    "type_key",
]
