"""Unit tests for NmcliNetworkManager and interface discovery."""

import subprocess
from subprocess import CompletedProcess
from unittest.mock import patch

import pytest

from network_manager import (
    ConnectError,
    KnownListingError,
    NmcliNetworkManager,
    VisibleListingError,
    detect_wireless_interface,
)
from tests.fixtures.mock_data import (
    KNOWN_NAMES,
    NMCLI_CONNECT_FAILURE,
    NMCLI_NOT_RUNNING,
    VISIBLE_SSIDS,
)
from tests.fixtures.mock_helpers import SubprocessMockFactory


def _commands(mock):
    return [call.args[0] for call in mock.call_args_list]


@pytest.mark.unit
class TestNmcliListing:
    """Test suite for the listing commands."""

    def test_list_visible(self, mock_subprocess):
        manager = NmcliNetworkManager()
        assert manager.list_visible() == VISIBLE_SSIDS
        assert _commands(mock_subprocess) == [['nmcli', 'device', 'wifi', 'list']]

    def test_list_visible_with_interface(self, mock_subprocess):
        NmcliNetworkManager(interface='wlan0').list_visible()
        assert _commands(mock_subprocess) == [
            ['nmcli', 'device', 'wifi', 'list', 'ifname', 'wlan0']
        ]

    def test_list_visible_terse(self, mock_subprocess):
        manager = NmcliNetworkManager(interface='wlan0', terse=True)
        assert manager.list_visible() == ['HomeNet', 'CoffeeShop', 'Neighbor5G', 'Lab:Net']
        assert _commands(mock_subprocess) == [
            ['nmcli', '-t', '-f', 'SSID', 'device', 'wifi', 'list', 'ifname', 'wlan0']
        ]

    def test_list_known(self, mock_subprocess):
        assert NmcliNetworkManager().list_known() == KNOWN_NAMES
        assert _commands(mock_subprocess) == [['nmcli', 'connection', 'show']]

    def test_list_known_terse(self, mock_subprocess):
        assert NmcliNetworkManager(terse=True).list_known() == ['HomeNet', 'Neighbor5G', 'Lab:Net']
        assert _commands(mock_subprocess) == [
            ['nmcli', '-t', '-f', 'NAME,TYPE', 'connection', 'show']
        ]

    def test_listing_uses_timeout(self, mock_subprocess):
        NmcliNetworkManager(timeout=12.5).list_known()
        kwargs = mock_subprocess.call_args.kwargs
        assert kwargs['timeout'] == 12.5
        assert kwargs['check'] is True

    def test_missing_nmcli_is_visible_listing_error(self):
        with patch('subprocess.run', side_effect=FileNotFoundError('nmcli')):
            with pytest.raises(VisibleListingError, match='unavailable'):
                NmcliNetworkManager().list_visible()

    def test_nonzero_exit_is_known_listing_error(self):
        side_effect = SubprocessMockFactory.create_mock(
            command_handlers={
                'connection show': CompletedProcess(
                    ['nmcli'], 8, stdout='', stderr=NMCLI_NOT_RUNNING
                )
            }
        )
        with patch('subprocess.run', side_effect=side_effect):
            with pytest.raises(KnownListingError, match='NetworkManager is not running'):
                NmcliNetworkManager().list_known()

    def test_listing_timeout_is_fatal(self):
        side_effect = subprocess.TimeoutExpired(['nmcli'], 30.0)
        with patch('subprocess.run', side_effect=side_effect):
            with pytest.raises(VisibleListingError, match='timed out'):
                NmcliNetworkManager().list_visible()

    def test_error_chains_original_exception(self):
        with patch('subprocess.run', side_effect=FileNotFoundError('nmcli')):
            with pytest.raises(KnownListingError) as excinfo:
                NmcliNetworkManager().list_known()
        assert isinstance(excinfo.value.__cause__, FileNotFoundError)

    def test_unrunnable_nmcli_is_listing_error(self):
        with patch('subprocess.run', side_effect=PermissionError(13, 'Permission denied')):
            with pytest.raises(VisibleListingError, match='cannot run nmcli'):
                NmcliNetworkManager().list_visible()

    def test_undecodable_output_is_replaced(self, mock_subprocess):
        NmcliNetworkManager().list_visible()
        kwargs = mock_subprocess.call_args.kwargs
        assert kwargs['text'] is True
        assert kwargs['errors'] == 'replace'


@pytest.mark.unit
class TestNmcliConnect:
    """Test suite for joining networks."""

    def test_connect_success(self, mock_subprocess):
        NmcliNetworkManager(interface='wlan0', connect_timeout=20.0).connect('HomeNet')
        assert _commands(mock_subprocess) == [
            ['nmcli', 'device', 'wifi', 'connect', 'HomeNet', 'ifname', 'wlan0']
        ]
        assert mock_subprocess.call_args.kwargs['timeout'] == 20.0

    def test_connect_failure(self, mock_subprocess_connect_fail):
        with pytest.raises(ConnectError, match='Secrets were required'):
            NmcliNetworkManager().connect('HomeNet')

    def test_connect_permission_denied(self):
        with patch('subprocess.run', side_effect=PermissionError(13, 'Permission denied')):
            with pytest.raises(ConnectError, match='Permission denied'):
                NmcliNetworkManager().connect('HomeNet')

    def test_connect_timeout(self):
        with patch('subprocess.run', side_effect=subprocess.TimeoutExpired(['nmcli'], 45.0)):
            with pytest.raises(ConnectError):
                NmcliNetworkManager().connect('HomeNet')

    def test_connect_failure_falls_back_to_stdout(self):
        side_effect = SubprocessMockFactory.create_mock(
            command_handlers={
                'wifi connect': CompletedProcess(
                    ['nmcli'], 10, stdout=NMCLI_CONNECT_FAILURE, stderr=''
                )
            }
        )
        with patch('subprocess.run', side_effect=side_effect):
            with pytest.raises(ConnectError, match='activation failed'):
                NmcliNetworkManager().connect('HomeNet')


@pytest.mark.unit
class TestDetectWirelessInterface:
    """Test suite for wireless interface discovery."""

    def test_first_wireless_interface(self, mock_netifaces):
        assert detect_wireless_interface() == 'wlan0'

    def test_preferred_interface_wins(self, mock_netifaces):
        assert detect_wireless_interface(preferred=['wlp3s0']) == 'wlp3s0'

    def test_preferred_interface_missing(self, mock_netifaces):
        assert detect_wireless_interface(preferred=['wlan9']) == 'wlan0'

    def test_excluded_interface(self, mock_netifaces):
        assert detect_wireless_interface(excluded=['wlan0']) == 'wlp3s0'

    def test_excluded_beats_preferred(self, mock_netifaces):
        assert detect_wireless_interface(preferred=['wlan0'], excluded=['wlan0']) == 'wlp3s0'

    def test_no_wireless_interface(self, mock_netifaces_no_wireless):
        assert detect_wireless_interface() is None
