from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol


@dataclass
class ProvideOptions:
    name: str = ""
    aliases: list[object] = field(default_factory=list)
    is_override: bool = False

    @classmethod
    def build(cls, options: tuple[ProvideOption, ...], *, is_override: bool = False) -> ProvideOptions:
        opts = cls(is_override=is_override)
        for option in options:
            option.apply(opts)
        return opts


class ProvideOption(Protocol):
    def apply(self, options: ProvideOptions) -> None: ...


@dataclass(frozen=True)
class Name:
    """Register the service under an explicit key instead of its type key."""

    value: str

    def apply(self, options: ProvideOptions) -> None:
        options.name = self.value


@dataclass(frozen=True, init=False)
class As:
    """Also expose the service under each given interface (a Protocol or ABC).

    Example:
      injector.provide(new_repo, As(Reader, Writer))

    """

    interfaces: tuple[object, ...]

    def __init__(self, *interfaces: object) -> None:
        object.__setattr__(self, "interfaces", interfaces)

    def apply(self, options: ProvideOptions) -> None:
        options.aliases.extend(self.interfaces)
