"""Shared fixtures."""

import pytest

from mcpchat.models.tools import ToolDescriptor
from tests.fakes import FakeToolHost


@pytest.fixture
def weather_catalog() -> list[ToolDescriptor]:
    return [ToolDescriptor(name="weather", description="Current weather for a city", server_id="S1")]


@pytest.fixture
def weather_host() -> FakeToolHost:
    return FakeToolHost({"S1": {"weather": {"tempC": 18}}})
