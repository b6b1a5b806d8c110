from __future__ import annotations

import inspect
import logging
import threading
from typing import TYPE_CHECKING, Any, TypeVar, overload

from ._errors import (
    InvalidAsTypeError,
    InvalidInvokeTypeError,
    ServiceAlreadyExistsError,
    ServiceNotImplementsAsError,
    UnknownServiceError,
)
from ._options import ProvideOption, ProvideOptions
from ._services import InstanceService, LazyService, Service, ZeroService
from ._types import conforms, implements, is_interface, type_key


if TYPE_CHECKING:
    from collections.abc import Callable

    T = TypeVar("T")


logger = logging.getLogger(__name__)

_MISSING = object()


class _InstanceCache:
    """Built instances by name, locked separately so cache hits skip the injector lock."""

    def __init__(self) -> None:
        self._instances: dict[str, object] = {}
        self._lock = threading.Lock()

    def get(self, name: str) -> object:
        with self._lock:
            return self._instances.get(name, _MISSING)

    def set(self, name: str, instance: object) -> None:
        with self._lock:
            self._instances[name] = instance

    def discard(self, name: str) -> None:
        with self._lock:
            self._instances.pop(name, None)


class Injector:
    """Dependency injection container.

    - provide constructors, pre-built instances or classes to populate by attribute
    - invoke by name or by type; dependencies are built on first use and memoized
    - expose a service under extra interface names with `As`
    - override a service, rebuilding everything that consumed it on next invoke.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._instances = _InstanceCache()
        self._services: dict[str, Service] = {}
        self._service_names: dict[Service, list[str]] = {}
        self._early_services: dict[str, Service] = {}
        # Instances built by the outermost invoke in progress, published once it succeeds
        self._pending: dict[str, object] | None = None
        self._associated_services: dict[str, list[Service]] = {}

    def provide(self, ctor: Callable[..., Any], *options: ProvideOption) -> None:
        """Register a constructor; its annotated parameters are resolved as dependencies.

        Example:
          injector.provide(new_repository)
          injector.provide(Repository, Name("primary-repo"), As(Reader))

        """
        opts = ProvideOptions.build(options)
        self._provide(LazyService(opts.name, ctor), opts)

    def provide_instance(self, value: object, *options: ProvideOption) -> None:
        """Register a pre-built object; it is returned as-is and never rebuilt."""
        opts = ProvideOptions.build(options)
        self._provide(InstanceService(opts.name, value), opts)

    def provide_zero(self, blueprint: type, *options: ProvideOption) -> None:
        """Register a class whose public annotated attributes are injected after allocation."""
        opts = ProvideOptions.build(options)
        self._provide(ZeroService(opts.name, blueprint), opts)

    def override(self, ctor: Callable[..., Any], *options: ProvideOption) -> None:
        opts = ProvideOptions.build(options, is_override=True)
        self._provide(LazyService(opts.name, ctor), opts)

    def override_instance(self, value: object, *options: ProvideOption) -> None:
        opts = ProvideOptions.build(options, is_override=True)
        self._provide(InstanceService(opts.name, value), opts)

    def override_zero(self, blueprint: type, *options: ProvideOption) -> None:
        opts = ProvideOptions.build(options, is_override=True)
        self._provide(ZeroService(opts.name, blueprint), opts)

    @overload
    def invoke(self, key: type[T]) -> T: ...

    @overload
    def invoke(self, key: str) -> object: ...

    def invoke(self, key: type[T] | str) -> object:
        """Return the instance registered under `key`, building it and its dependencies on first use.

        When `key` is a type, the name is derived from it and the instance must
        conform to it.
        """
        name = type_key(key)

        instance = self._instances.get(name)
        if instance is _MISSING:
            instance = self._invoke(name)

        if not isinstance(key, str) and inspect.isclass(key) and not conforms(instance, key):
            msg = f"Service {name!r} resolved to {type(instance).__name__}, which is not a {key.__name__}"
            raise InvalidInvokeTypeError(msg, name=name)

        return instance

    def _provide(self, svc: Service, opts: ProvideOptions) -> None:
        with self._lock:
            names = self._check_names_locked(svc, opts)

            for name in names:
                if name in self._services:
                    self._replace_locked(name)
                self._services[name] = svc

            self._service_names[svc] = names
            logger.debug(
                "%s %s under %s",
                "Overrode" if opts.is_override else "Registered",
                svc,
                ", ".join(names),
            )

    def _check_names_locked(self, svc: Service, opts: ProvideOptions) -> list[str]:
        """Validate every target name before anything is mutated."""
        names = [svc.name]
        for iface in opts.aliases:
            if iface is None or not is_interface(iface):
                msg = f"Alias target {iface!r} is not a Protocol or abstract base class"
                raise InvalidAsTypeError(msg, name=svc.name)
            if not implements(svc.type, iface):
                msg = f"Service {svc.name!r} ({svc.type.__qualname__}) does not implement {iface.__qualname__}"
                raise ServiceNotImplementsAsError(msg, name=svc.name)

            alias = type_key(iface)
            if alias not in names:
                names.append(alias)

        if not opts.is_override:
            for name in names:
                if name in self._services:
                    msg = f"Service {name!r} is already registered. Use override to replace it."
                    raise ServiceAlreadyExistsError(msg, name=name)

        return names

    def _replace_locked(self, name: str) -> None:
        old = self._services.pop(name)
        self._evict(name)
        self._reset_associated(name)

        remaining = [n for n in self._service_names.get(old, []) if n != name]
        if remaining:
            self._service_names[old] = remaining
            return

        # Nothing reaches the old service anymore
        self._service_names.pop(old, None)
        self._forget_dependencies(old, old.param_names)

    def _invoke(self, name: str) -> object:
        with self._lock:
            svc = self._services.get(name)
            if svc is None:
                msg = f"No service registered under {name!r}"
                raise UnknownServiceError(msg, name=name)

            outermost = self._pending is None
            if outermost:
                self._pending = {}
            try:
                instance = svc.get_instance(self, name)
                self._set_instance(name, instance)
                self._drain_early_services()
            except Exception:
                self._abandon_early_services()
                if outermost:
                    self._pending = None
                raise

            if outermost:
                self._publish_pending()
            return instance

    def _publish_pending(self) -> None:
        pending, self._pending = self._pending or {}, None
        for name, instance in pending.items():
            self._instances.set(name, instance)

    def _drain_early_services(self) -> None:
        """Build every service handed out before it was built, until none is left."""
        while self._early_services:
            name, svc = next(iter(self._early_services.items()))
            logger.debug("Completing early service %s", name)
            self._set_instance(name, svc.get_instance(self, name))
            self._early_services.pop(name, None)

    def _abandon_early_services(self) -> None:
        """Invalidate consumers still holding services that will never be populated."""
        pending = list(self._early_services.values())
        self._early_services.clear()
        for svc in pending:
            if svc.built:
                continue
            for name in self._service_names.get(svc, [svc.name]):
                self._reset_associated(name)

    def _reset_associated(self, name: str) -> None:
        """Reset every built consumer of `name`, and their consumers in turn."""
        for svc in self._associated_services.pop(name, []):
            param_names = svc.param_names
            if not svc.reset():
                continue
            self._forget_dependencies(svc, param_names)
            for svc_name in self._service_names.get(svc, []):
                logger.debug("Evicting %s, it consumed %s", svc_name, name)
                self._evict(svc_name)
                self._reset_associated(svc_name)

    def _forget_dependencies(self, svc: Service, param_names: list[str]) -> None:
        for param_name in param_names:
            consumers = self._associated_services.get(param_name)
            if not consumers:
                continue
            consumers[:] = [s for s in consumers if s is not svc]
            if not consumers:
                del self._associated_services[param_name]

    # The methods below are called by services while the injector lock is held.

    def _has_service(self, name: str) -> bool:
        return name in self._services

    def _get_value_locked(self, name: str) -> object:
        svc = self._services.get(name)
        if svc is None:
            msg = f"No service registered under {name!r}"
            raise UnknownServiceError(msg, name=name)
        return svc.get_value(self, name)

    def _set_instance(self, name: str, instance: object) -> None:
        if self._pending is not None:
            self._pending[name] = instance
        else:
            self._instances.set(name, instance)

    def _evict(self, name: str) -> None:
        if self._pending is not None:
            self._pending.pop(name, None)
        self._instances.discard(name)

    def _set_early_service(self, name: str, svc: Service) -> None:
        self._early_services[name] = svc

    def _commit_dependencies(self, svc: Service, param_names: list[str]) -> None:
        for param_name in param_names:
            consumers = self._associated_services.setdefault(param_name, [])
            if all(s is not svc for s in consumers):
                consumers.append(svc)
