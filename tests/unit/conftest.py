from __future__ import annotations

import pytest
from fakes import FakeProtocolClient, FakePublisherFactory

from uaweb_gateway.application.ua_client import UaClient


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    for item in items:
        item.add_marker(pytest.mark.unit)


@pytest.fixture()
def protocol() -> FakeProtocolClient:
    return FakeProtocolClient()


@pytest.fixture()
def publishers() -> FakePublisherFactory:
    return FakePublisherFactory()


@pytest.fixture()
def ua_client(protocol: FakeProtocolClient, publishers: FakePublisherFactory) -> UaClient:
    return UaClient.create(protocol, publishers)
