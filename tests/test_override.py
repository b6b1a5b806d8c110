import unittest
from typing import Protocol

import pytest

from lazywire import As, Injector, Name, ServiceAlreadyExistsError, type_key


class Printer(Protocol):
    def describe(self) -> str: ...


class ServiceA:
    def describe(self) -> str:
        return "A"


class ServiceB:
    def __init__(self, a: ServiceA, c: "ServiceC") -> None:
        self.a = a
        self.c = c

    def describe(self) -> str:
        return "B"


class ServiceC:
    d: "ServiceD"

    def describe(self) -> str:
        return "C"


class ServiceD:
    c: ServiceC
    a: ServiceA

    def describe(self) -> str:
        return "D"


class ServiceE:
    b: Printer

    def describe(self) -> str:
        return "E"


class ServiceH:
    s: Printer


class ServiceJ:
    def __init__(self, s: Printer) -> None:
        self.s = s


def new_service_a() -> ServiceA:
    return ServiceA()


def new_service_b(a: ServiceA, c: ServiceC) -> tuple[ServiceB, Exception | None]:
    return ServiceB(a, c), None


def new_service_j(s: Printer) -> ServiceJ:
    return ServiceJ(s)


class TestOverride(unittest.TestCase):
    injector: Injector

    def setUp(self):
        self.injector = Injector()
        self.injector.provide(new_service_b, As(Printer))
        self.injector.provide_instance(ServiceA())
        self.injector.provide_zero(ServiceC)
        self.injector.provide_zero(ServiceD)
        self.injector.provide_zero(ServiceE)
        assert self.injector.invoke(Printer).describe() == "B"

    def test_override_replaces_alias(self):
        self.injector.override(new_service_a, As(Printer))
        assert self.injector.invoke(Printer).describe() == "A"

        self.injector.override_zero(ServiceC, As(Printer))
        assert self.injector.invoke(Printer).describe() == "C"

        self.injector.override_instance(ServiceD(), As(Printer))
        assert self.injector.invoke(Printer).describe() == "D"

    def test_override_of_unregistered_name_registers_it(self):
        self.injector.override_instance(ServiceA(), Name("extra"))

        assert isinstance(self.injector.invoke("extra"), ServiceA)

    def test_provide_after_override_still_rejects_duplicates(self):
        self.injector.override(new_service_a, As(Printer))

        with pytest.raises(ServiceAlreadyExistsError):
            self.injector.provide_instance(ServiceA())

    def test_partially_replaced_service_keeps_remaining_names(self):
        b = self.injector.invoke(ServiceB)

        self.injector.override_instance(ServiceD(), Name(type_key(Printer)))

        assert self.injector.invoke(ServiceB) is b
        assert self.injector.invoke(Printer).describe() == "D"


class TestOverrideAssociated(unittest.TestCase):
    injector: Injector

    def setUp(self):
        self.injector = Injector()
        self.injector.provide(new_service_b, As(Printer))
        self.injector.provide_instance(ServiceA())
        self.injector.provide_zero(ServiceC)
        self.injector.provide_zero(ServiceD)
        self.injector.provide_zero(ServiceE)
        self.injector.provide_zero(ServiceH)
        self.injector.provide(new_service_j)

        h = self.injector.invoke(ServiceH)
        j = self.injector.invoke(ServiceJ)
        assert h.s.describe() == "B"
        assert j.s.describe() == "B"
        assert h.s is j.s

    def assert_consumers_use(self, expected: str) -> None:
        h = self.injector.invoke(ServiceH)
        j = self.injector.invoke(ServiceJ)
        assert h.s.describe() == expected
        assert j.s.describe() == expected
        assert h.s is j.s

    def test_consumers_are_rebuilt_after_each_override(self):
        self.injector.override(new_service_a, As(Printer))
        self.assert_consumers_use("A")

        self.injector.override_zero(ServiceC, As(Printer))
        self.assert_consumers_use("C")

        self.injector.override_instance(ServiceD(), As(Printer))
        self.assert_consumers_use("D")

    def test_override_rebuilds_new_consumer_objects(self):
        h = self.injector.invoke(ServiceH)
        j = self.injector.invoke(ServiceJ)

        self.injector.override(new_service_a, As(Printer))

        assert self.injector.invoke(ServiceH) is not h
        assert self.injector.invoke(ServiceJ) is not j

    def test_unrelated_services_keep_their_instance(self):
        e = self.injector.invoke(ServiceE)
        c = self.injector.invoke(ServiceC)

        self.injector.override_instance(ServiceD(), Name("unrelated"))

        assert self.injector.invoke(ServiceE) is e
        assert self.injector.invoke(ServiceC) is c


class Config:
    def __init__(self, value: int) -> None:
        self.value = value


class Client:
    def __init__(self, config: Config) -> None:
        self.config = config

    def describe(self) -> str:
        return f"client-{self.config.value}"


class Gateway:
    def __init__(self, client: Client) -> None:
        self.client = client


def test_override_cascades_through_dependents():
    injector = Injector()
    injector.provide_instance(Config(1))
    injector.provide(Client)
    injector.provide(Gateway)

    gateway = injector.invoke(Gateway)
    client = injector.invoke(Client)
    assert gateway.client is client

    injector.override_instance(Config(2))

    new_gateway = injector.invoke(Gateway)
    assert new_gateway is not gateway
    assert new_gateway.client is not client
    assert new_gateway.client.config.value == 2
    assert injector.invoke(Client) is new_gateway.client


def test_override_evicts_alias_entries_of_dependents():
    injector = Injector()
    injector.provide_instance(Config(1))
    injector.provide(Client, As(Printer))

    by_type = injector.invoke(Client)
    by_alias = injector.invoke(Printer)
    assert by_type is by_alias

    injector.override_instance(Config(2))

    new_by_alias = injector.invoke(Printer)
    assert new_by_alias is not by_alias
    assert new_by_alias.describe() == "client-2"
    assert injector.invoke(Client) is new_by_alias


def test_override_of_unbuilt_service_only_replaces_it():
    injector = Injector()
    injector.provide_instance(Config(1))
    injector.provide(Client)

    injector.override_instance(Config(3))

    assert injector.invoke(Client).config.value == 3


def test_override_of_consumer_keeps_dependency():
    calls = []

    def new_config() -> Config:
        calls.append(1)
        return Config(len(calls))

    injector = Injector()
    injector.provide(new_config)
    injector.provide(Client)
    config = injector.invoke(Config)
    injector.invoke(Client)

    injector.override(Client)

    assert injector.invoke(Client).config is config
    assert len(calls) == 1


def test_override_repeatedly_tracks_only_latest_build():
    injector = Injector()
    injector.provide_instance(Config(1))
    injector.provide(Client)

    for value in range(2, 5):
        injector.invoke(Client)
        injector.override_instance(Config(value))
        assert injector.invoke(Client).config.value == value
