from __future__ import annotations

import dataclasses
import inspect
import logging
import threading
import types
import typing
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar, get_args, get_origin

from ._errors import CircularDependencyError, InvalidCtorTypeError, InvalidZeroTypeError
from ._types import get_hints, type_key


if TYPE_CHECKING:
    from collections.abc import Callable

    from ._injector import Injector


logger = logging.getLogger(__name__)

_EMPTY = inspect.Parameter.empty


@dataclass(frozen=True)
class Dependency:
    """One injection point: a constructor parameter or a blueprint attribute."""

    attr: str
    key: str | None
    kind: Any = inspect.Parameter.KEYWORD_ONLY
    default: Any = _EMPTY

    @property
    def has_default(self) -> bool:
        return self.default is not _EMPTY


class Service(ABC):
    """A registered strategy for producing one named instance.

    The set of strategies is closed: `InstanceService`, `LazyService` and `ZeroService`.
    """

    def __init__(self, name: str, typ: type) -> None:
        self._name = name
        self._type = typ

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._name!r})"

    @property
    def name(self) -> str:
        return self._name

    @property
    def type(self) -> type:
        return self._type

    @property
    @abstractmethod
    def built(self) -> bool: ...

    @property
    def param_names(self) -> list[str]:
        return []

    @abstractmethod
    def get_value(self, injector: Injector, name: str) -> object:
        """Return the object to inject into a consumer, building it if needed."""

    @abstractmethod
    def get_instance(self, injector: Injector, name: str) -> object:
        """Return the fully built object, building it if needed."""

    @abstractmethod
    def reset(self) -> bool:
        """Forget the built object. Return whether anything was reset."""


class InstanceService(Service):
    """Wraps a caller-supplied object. It is never rebuilt or reset."""

    def __init__(self, name: str, value: object) -> None:
        super().__init__(name or type_key(type(value)), type(value))
        self._instance = value

    @property
    def built(self) -> bool:
        return True

    def get_value(self, injector: Injector, name: str) -> object:
        return self._instance

    def get_instance(self, injector: Injector, name: str) -> object:
        injector._set_instance(name, self._instance)  # noqa: SLF001
        return self._instance

    def reset(self) -> bool:
        return False


class _BuiltService(Service):
    """Shared state of the services the injector builds itself."""

    def __init__(self, name: str, typ: type, dependencies: list[Dependency]) -> None:
        super().__init__(name, typ)
        self._dependencies = dependencies
        self._lock = threading.RLock()
        self._instance: object = None
        self._built = False
        self._param_names: list[str] = []

    @property
    def built(self) -> bool:
        return self._built

    @property
    def param_names(self) -> list[str]:
        with self._lock:
            return list(self._param_names)

    def reset(self) -> bool:
        with self._lock:
            if not self._built:
                return False
            self._built = False
            self._param_names = []
            self._instance = None
            logger.debug("Reset service %s", self._name)
            return True

    def _resolve_dependency(self, injector: Injector, dep: Dependency) -> tuple[object, str | None]:
        """Resolve one dependency, returning the registry key it was consumed from, if any."""
        if dep.key is None or (dep.has_default and not injector._has_service(dep.key)):  # noqa: SLF001
            return dep.default, None
        return injector._get_value_locked(dep.key), dep.key  # noqa: SLF001

    def _mark_built_locked(self, injector: Injector, name: str, consumed: list[str]) -> None:
        self._built = True
        self._param_names = consumed
        injector._commit_dependencies(self, consumed)  # noqa: SLF001
        injector._set_instance(name, self._instance)  # noqa: SLF001


class LazyService(_BuiltService):
    """Builds its instance by calling a constructor with resolved arguments.

    The constructor is either a class, or a callable annotated to return `T` or
    `tuple[T, E | None]` where `E` is an exception type. A non-None second element
    of the pair is raised as the build failure.
    """

    def __init__(self, name: str, ctor: Callable[..., Any]) -> None:
        produced, is_pair, dependencies = _inspect_ctor(ctor, name)
        super().__init__(name or type_key(produced), _runtime_type(produced), dependencies)
        self._ctor = ctor
        self._is_pair = is_pair
        self._building = False

    def get_value(self, injector: Injector, name: str) -> object:
        return self.get_instance(injector, name)

    def get_instance(self, injector: Injector, name: str) -> object:
        with self._lock:
            if not self._built:
                self._build_locked(injector, name)
            return self._instance

    def _build_locked(self, injector: Injector, name: str) -> None:
        if self._building:
            msg = f"Service {self._name!r} depends on itself through its constructor"
            raise CircularDependencyError(msg, name=self._name)

        self._building = True
        try:
            args, kwargs, consumed = self._resolve_arguments(injector)
            logger.debug("Constructing %s with %d dependencies", self._name, len(consumed))
            result = self._ctor(*args, **kwargs)
        finally:
            self._building = False

        if self._is_pair:
            result = self._unpack_pair(result)

        self._instance = result
        self._mark_built_locked(injector, name, consumed)

    def _resolve_arguments(self, injector: Injector) -> tuple[list[Any], dict[str, Any], list[str]]:
        args: list[Any] = []
        kwargs: dict[str, Any] = {}
        consumed: list[str] = []

        for dep in self._dependencies:
            value, key = self._resolve_dependency(injector, dep)
            if key is not None:
                consumed.append(key)
            if dep.kind is inspect.Parameter.POSITIONAL_ONLY:
                args.append(value)
            else:
                kwargs[dep.attr] = value

        return args, kwargs, consumed

    def _unpack_pair(self, result: object) -> object:
        if not isinstance(result, tuple) or len(result) != 2:  # noqa: PLR2004
            msg = f"Constructor of {self._name!r} must return a (value, error) pair, got {type(result).__name__}"
            raise InvalidCtorTypeError(msg, name=self._name)

        value, err = result
        if err is None:
            return value
        if not isinstance(err, BaseException):
            msg = f"Constructor of {self._name!r} returned a non-exception error value: {err!r}"
            raise InvalidCtorTypeError(msg, name=self._name)
        raise err


class ZeroService(_BuiltService):
    """Builds its instance by allocating the class and setting each public annotated attribute.

    `__init__` is not run. The allocated object can be handed out before its
    attributes are set, which is how reference cycles between such services resolve.
    """

    def __init__(self, name: str, blueprint: type) -> None:
        dependencies = _inspect_blueprint(blueprint, name)
        super().__init__(name or type_key(blueprint), blueprint, dependencies)

    def get_value(self, injector: Injector, name: str) -> object:
        with self._lock:
            if self._built:
                return self._instance
            instance = self._allocate_locked()
            logger.debug("Handing out %s before it is built", self._name)
            injector._set_early_service(name, self)  # noqa: SLF001
            return instance

    def get_instance(self, injector: Injector, name: str) -> object:
        with self._lock:
            if not self._built:
                self._build_locked(injector, name)
            return self._instance

    def _allocate_locked(self) -> object:
        if self._instance is None:
            self._instance = self._type.__new__(self._type)
        return self._instance

    def _build_locked(self, injector: Injector, name: str) -> None:
        instance = self._allocate_locked()
        consumed: list[str] = []
        try:
            for dep in self._dependencies:
                value, key = self._resolve_dependency(injector, dep)
                if key is None:
                    continue
                setattr(instance, dep.attr, value)
                consumed.append(key)
        except Exception:
            self._instance = None
            raise

        logger.debug("Populated %s with %d dependencies", self._name, len(consumed))
        self._mark_built_locked(injector, name, consumed)


def _runtime_type(produced: object) -> type:
    if inspect.isclass(produced) and not get_args(produced):
        return produced
    origin = get_origin(produced)
    return origin if inspect.isclass(origin) else object


def _inspect_ctor(ctor: object, name: str) -> tuple[object, bool, list[Dependency]]:
    """Return the produced type, whether the constructor returns a (value, error) pair, and its dependencies."""
    if not callable(ctor):
        msg = f"Constructor {ctor!r} is not callable"
        raise InvalidCtorTypeError(msg, name=name)

    owner = getattr(ctor, "__qualname__", repr(ctor))

    if inspect.isclass(ctor):
        hints = _get_init_type_hints(ctor, name)
        produced: object = ctor
        is_pair = False
    else:
        target = ctor if inspect.isroutine(ctor) else type(ctor).__call__
        try:
            hints = get_hints(target, owner=owner)
        except (NameError, TypeError) as exc:
            msg = f"Constructor {owner} has unresolvable annotations: {exc}"
            raise InvalidCtorTypeError(msg, name=name) from exc
        produced, is_pair = _produced_type(hints.get("return", _EMPTY), owner, name)

    try:
        sig = inspect.signature(ctor)
    except (TypeError, ValueError):
        return produced, is_pair, []

    return produced, is_pair, _parameter_dependencies(sig, hints, owner, name)


def _produced_type(ret: object, owner: str, name: str) -> tuple[object, bool]:
    if ret is _EMPTY or ret is None or ret is type(None):
        msg = f"Constructor {owner} must declare a return type"
        raise InvalidCtorTypeError(msg, name=name)

    if get_origin(ret) is not tuple:
        return ret, False

    args = get_args(ret)
    if len(args) != 2 or not _is_error_type(args[1]):  # noqa: PLR2004
        msg = f"Constructor {owner} must return a value or a (value, error) pair, not {ret!r}"
        raise InvalidCtorTypeError(msg, name=name)
    return args[0], True


def _is_error_type(tp: object) -> bool:
    if get_origin(tp) in (typing.Union, types.UnionType):
        members = [a for a in get_args(tp) if a is not type(None)]
        return bool(members) and all(_is_error_type(m) for m in members)
    return inspect.isclass(tp) and issubclass(tp, BaseException)


def _parameter_dependencies(
    sig: inspect.Signature,
    hints: dict[str, Any],
    owner: str,
    name: str,
) -> list[Dependency]:
    dependencies = []
    for pname, p in sig.parameters.items():
        # *args/**kwargs can't be derived from types
        if p.kind in (p.VAR_POSITIONAL, p.VAR_KEYWORD):
            continue

        ann = hints.get(pname, _EMPTY)
        if ann is _EMPTY and p.default is _EMPTY:
            msg = f"Parameter '{pname}' of {owner} has neither a type annotation nor a default"
            raise InvalidCtorTypeError(msg, name=name)

        key = None if ann is _EMPTY else type_key(ann)
        dependencies.append(Dependency(attr=pname, key=key, kind=p.kind, default=p.default))
    return dependencies


def _get_init_type_hints(cls: type, name: str) -> dict[str, Any]:
    init = inspect.getattr_static(cls, "__init__")
    try:
        return get_hints(init, owner=f"{cls.__qualname__}.__init__")
    except (NameError, TypeError) as exc:
        msg = f"Constructor {cls.__qualname__} has unresolvable annotations: {exc}"
        raise InvalidCtorTypeError(msg, name=name) from exc


def _inspect_blueprint(blueprint: object, name: str) -> list[Dependency]:
    if not inspect.isclass(blueprint):
        msg = f"Blueprint {blueprint!r} must be a class"
        raise InvalidZeroTypeError(msg, name=name)

    if (
        blueprint.__module__ == "builtins"
        or issubclass(blueprint, tuple)
        or inspect.isabstract(blueprint)
        or _is_frozen_dataclass(blueprint)
    ):
        msg = f"Blueprint {blueprint.__qualname__} can't be populated attribute by attribute"
        raise InvalidZeroTypeError(msg, name=name)

    try:
        hints = get_hints(blueprint, owner=blueprint.__qualname__)
    except (NameError, TypeError) as exc:
        msg = f"Blueprint {blueprint.__qualname__} has unresolvable annotations: {exc}"
        raise InvalidZeroTypeError(msg, name=name) from exc

    dependencies = []
    for attr, ann in hints.items():
        # unexported
        if attr.startswith("_"):
            continue
        if ann is ClassVar or get_origin(ann) is ClassVar:
            continue
        dependencies.append(Dependency(attr=attr, key=type_key(ann), default=_class_default(blueprint, attr)))
    return dependencies


def _is_frozen_dataclass(cls: type) -> bool:
    return dataclasses.is_dataclass(cls) and cls.__dataclass_params__.frozen  # type: ignore[attr-defined]


def _class_default(cls: type, attr: str) -> Any:
    for klass in cls.__mro__:
        if attr in vars(klass):
            value = vars(klass)[attr]
            # __slots__ entries are descriptors, not defaults
            if isinstance(value, types.MemberDescriptorType):
                return _EMPTY
            return value
    return _EMPTY
