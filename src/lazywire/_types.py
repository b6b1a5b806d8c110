from __future__ import annotations

import inspect
import logging
import typing
from abc import ABCMeta
from typing import Any, Protocol, cast, get_type_hints


logger = logging.getLogger(__name__)


def type_key(tp: object) -> str:
    """Return the registry key derived from a type.

    Classes map to ``module.qualname`` (builtins to their bare name), strings
    pass through, anything else (``list[int]``, ``Foo | None``) maps to its repr.
    """
    if isinstance(tp, str):
        return tp
    if inspect.isclass(tp) and not typing.get_args(tp):
        module = getattr(tp, "__module__", "")
        if module == "builtins":
            return tp.__qualname__
        return f"{module}.{tp.__qualname__}"
    return repr(tp)


if hasattr(typing, "is_protocol"):
    # https://docs.python.org/3/library/typing.html#typing.is_protocol
    def is_protocol(tp: object) -> bool:
        return inspect.isclass(tp) and typing.is_protocol(tp)

else:

    def is_protocol(tp: object) -> bool:
        return (
            inspect.isclass(tp)
            and issubclass(tp, cast("type", Protocol))
            and bool(getattr(tp, "_is_protocol", False))
        )


def is_runtime_checkable_protocol(tp: object) -> bool:
    if not is_protocol(tp):
        return False

    try:
        isinstance(None, cast("type", tp))
    except TypeError:
        return False
    else:
        return True


def is_interface(tp: object) -> bool:
    """Protocols and abstract base classes are the types a service can be aliased as."""
    return is_protocol(tp) or (inspect.isclass(tp) and isinstance(tp, ABCMeta))


def implements(impl: type, iface: type) -> bool:
    if is_protocol(iface):
        try:
            validate_protocol_impl(iface, impl)
        except TypeError:
            return False
        return True
    return inspect.isclass(impl) and issubclass(impl, iface)


def conforms(value: object, tp: type) -> bool:
    """Check a resolved value against the type requested at the call site."""
    if is_protocol(tp):
        if not implements(type(value), tp):
            return False
        return not is_runtime_checkable_protocol(tp) or isinstance(value, tp)
    return isinstance(value, tp)


def validate_protocol_impl(proto_cls: type, impl: type) -> None:
    # Nominal conformance first, without issubclass
    if proto_cls in getattr(impl, "__mro__", ()):
        return

    _validate_protocol_structural_conformance(proto_cls, impl)


def _positional_arity(params: list[inspect.Parameter]) -> int:
    return sum(
        1
        for p in params
        if p.kind in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)
        and p.default is inspect.Parameter.empty
    )


def _validate_protocol_structural_conformance(proto_cls: type, impl: type) -> None:  # noqa: C901
    """Best-effort structural conformance: presence + basic callable arity."""
    missing: list[str] = []
    signature_mismatches: list[str] = []

    try:
        proto_hints = get_type_hints(proto_cls, include_extras=True)
    except (TypeError, NameError):
        proto_hints = {}

    for name in proto_hints:
        if name.startswith("_"):
            continue
        if not hasattr(impl, name):
            missing.append(name)

    for name, proto_attr in proto_cls.__dict__.items():
        if name.startswith("_") or not inspect.isfunction(proto_attr):
            continue

        if not hasattr(impl, name):
            missing.append(name)
            continue

        impl_attr = getattr(impl, name)
        if not callable(impl_attr):
            signature_mismatches.append(f"{name}: not callable on {impl.__name__}")
            continue

        try:
            proto_sig = inspect.signature(proto_attr)
            impl_sig = inspect.signature(impl_attr)
        except (TypeError, ValueError) as e:
            signature_mismatches.append(f"{name}: unable to compare signatures ({e})")
            continue

        proto_params = [p for p in proto_sig.parameters.values() if p.name != "self"]
        impl_params = [p for p in impl_sig.parameters.values() if p.name != "self"]
        if _positional_arity(impl_params) < _positional_arity(proto_params):
            signature_mismatches.append(
                f"{name}: impl has fewer required positional params "
                f"({_positional_arity(impl_params)}) than protocol ({_positional_arity(proto_params)})"
            )

    if missing or signature_mismatches:
        msgs = []
        if missing:
            msgs.append(f"missing members: {', '.join(missing)}")
        if signature_mismatches:
            msgs.append(f"signature mismatches: {', '.join(signature_mismatches)}")

        msg = (
            f"Implementation {impl.__name__} does not structurally conform to protocol "
            f"{proto_cls.__name__}: {'; '.join(msgs)}"
        )
        raise TypeError(msg)


def get_hints(obj: Any, *, owner: str) -> dict[str, Any]:
    """Resolve annotations of a function or class, logging the ones that can't be evaluated."""
    try:
        return get_type_hints(obj)
    except NameError as exc:
        logger.warning("'%s' name error retrieving %s type hints", exc.name, owner)
        raise
    except TypeError as exc:
        logger.warning("Invalid annotation retrieving %s type hints: %s", owner, exc)
        raise
