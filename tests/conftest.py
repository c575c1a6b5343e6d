"""Pytest configuration and shared fixtures."""

from unittest.mock import patch

import pytest

from tests.fixtures.mock_data import SAMPLE_INTERFACES
from tests.fixtures.mock_helpers import (
    FakeNetworkManager,
    FakeProbe,
    SpeedtestMockFactory,
    SubprocessMockFactory,
)


@pytest.fixture
def mock_subprocess():
    """Mock subprocess.run with smart command handling."""
    side_effect = SubprocessMockFactory.create_mock()
    with patch('subprocess.run', side_effect=side_effect) as mock:
        yield mock


@pytest.fixture
def mock_subprocess_connect_fail():
    """Mock subprocess.run where every network refuses the connection."""
    side_effect = SubprocessMockFactory.create_mock(
        connect_failures={'HomeNet', 'CoffeeShop', 'Neighbor5G'}
    )
    with patch('subprocess.run', side_effect=side_effect) as mock:
        yield mock


@pytest.fixture
def mock_netifaces():
    """Mock netifaces.interfaces() to return sample interfaces."""
    with patch('netifaces.interfaces') as mock:
        mock.return_value = SAMPLE_INTERFACES
        yield mock


@pytest.fixture
def mock_netifaces_no_wireless():
    """Mock netifaces.interfaces() with no wireless interfaces."""
    with patch('netifaces.interfaces') as mock:
        mock.return_value = ['lo', 'eth0']
        yield mock


@pytest.fixture
def mock_speedtest():
    """Mock speedtest.Speedtest class."""
    with patch('speedtest.Speedtest') as mock_class:
        mock_class.return_value = SpeedtestMockFactory.create_mock()
        yield mock_class


@pytest.fixture
def fake_network():
    """Build a FakeNetworkManager and a FakeProbe bound to it."""

    def factory(candidates, downloads, connect_failures=()):
        manager = FakeNetworkManager(
            visible=candidates, known=candidates, connect_failures=connect_failures
        )
        return manager, FakeProbe(manager, downloads)

    return factory


@pytest.fixture
def isolated_config(tmp_path, monkeypatch):
    """Run with no config file in the search path."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv('HOME', str(tmp_path))
    return tmp_path
