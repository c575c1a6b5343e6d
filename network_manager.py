"""
NetworkManager access for fastwifi.

Lists visible and saved wireless networks and joins them through ``nmcli``.
The parsers are plain functions so they can be tested against captured
``nmcli`` output without a live radio.
"""

import re
import subprocess
from typing import Optional, Sequence

import netifaces

from logging_config import get_logger

logger = get_logger(__name__)

# nmcli prints this in the SSID column for hidden networks
NO_SSID_PLACEHOLDER = '--'
SSID_COLUMN_TITLE = 'SSID'
WIRELESS_CONNECTION_TYPE = '802-11-wireless'
WIRELESS_INTERFACE_PREFIXES = ('wl', 'wifi')

_HEADER_TITLE_RE = re.compile(r'\S+')


class FastWifiError(Exception):
    """Base class for all fastwifi errors."""


class ListingError(FastWifiError):
    """A network listing could not be produced. Always fatal."""

    step = 'network listing'


class VisibleListingError(ListingError):
    step = 'visible network listing'


class KnownListingError(ListingError):
    step = 'known network listing'


class ConnectError(FastWifiError):
    """Joining a candidate network failed."""


class ProbeError(FastWifiError):
    """A throughput measurement failed or produced unusable output."""


class ConfigError(FastWifiError):
    """The configuration is invalid."""

    step = 'configuration'


def _header_columns(header: str) -> list[tuple[str, int]]:
    """Return ``(title, start index)`` for every title in a table header."""
    return [(match.group(), match.start()) for match in _HEADER_TITLE_RE.finditer(header)]


def parse_wifi_list(output: str) -> list[str]:
    """
    Parse the tabular output of ``nmcli device wifi list``.

    The SSID of each row is the text between the start of the ``SSID`` header
    title and the start of the following title, so SSIDs containing spaces
    survive. Hidden networks (``--``) and rows too short to reach the SSID
    column are skipped.

    Raises:
        VisibleListingError: if there is no header or it has no SSID column.
    """
    lines = output.splitlines()
    if not lines or not lines[0].strip():
        raise VisibleListingError('nmcli produced no header line')

    columns = _header_columns(lines[0])
    titles = [title for title, _ in columns]
    if SSID_COLUMN_TITLE not in titles:
        raise VisibleListingError(f'no {SSID_COLUMN_TITLE} column in header: {lines[0].strip()!r}')

    position = titles.index(SSID_COLUMN_TITLE)
    start = columns[position][1]
    end = columns[position + 1][1] if position + 1 < len(columns) else None

    ssids = []
    for line in lines[1:]:
        if len(line) <= start:
            continue
        ssid = line[start:end].strip()
        if not ssid or ssid == NO_SSID_PLACEHOLDER:
            continue
        ssids.append(ssid)
    return ssids


def unescape_terse_field(value: str) -> str:
    """Undo nmcli's terse-mode escaping of backslashes and colons."""
    if '\\' not in value:
        return value
    return value.replace('\\\\', '\\').replace('\\:', ':')


def _split_terse_line(line: str) -> list[str]:
    # Split on colons that nmcli did not escape
    fields = []
    current = []
    escaped = False
    for char in line:
        if escaped:
            current.append('\\' + char)
            escaped = False
        elif char == '\\':
            escaped = True
        elif char == ':':
            fields.append(''.join(current))
            current = []
        else:
            current.append(char)
    if escaped:
        current.append('\\')
    fields.append(''.join(current))
    return [unescape_terse_field(field) for field in fields]


def parse_terse_wifi_list(output: str) -> list[str]:
    """Parse ``nmcli -t -f SSID device wifi list``: one SSID per line."""
    ssids = []
    for line in output.splitlines():
        ssid = unescape_terse_field(line)
        if not ssid.strip() or ssid == NO_SSID_PLACEHOLDER:
            continue
        ssids.append(ssid)
    return ssids


def parse_connection_list(output: str) -> list[str]:
    """
    Parse the tabular output of ``nmcli connection show``.

    The profile name is everything before the first whitespace character.
    A row without any whitespace means the table is not what we expect and
    the whole listing is rejected.
    """
    names = []
    for number, line in enumerate(output.splitlines()[1:], start=2):
        if not line.strip():
            continue
        match = re.search(r'\s', line)
        if match is None:
            raise KnownListingError(f'malformed connection row {number}: {line!r}')
        names.append(line[: match.start()])
    return names


def parse_terse_connection_list(output: str) -> list[str]:
    """Parse ``nmcli -t -f NAME,TYPE connection show``, keeping Wi-Fi profiles."""
    names = []
    for number, line in enumerate(output.splitlines(), start=1):
        if not line.strip():
            continue
        fields = _split_terse_line(line)
        if len(fields) < 2:
            raise KnownListingError(f'malformed connection row {number}: {line!r}')
        name, conn_type = fields[0], fields[1].strip()
        if conn_type == WIRELESS_CONNECTION_TYPE and name:
            names.append(name)
    return names


def detect_wireless_interface(
    preferred: Sequence[str] = (), excluded: Sequence[str] = ()
) -> Optional[str]:
    """
    Pick the wireless interface to benchmark on.

    Preferred interfaces win in the order given; otherwise the first wireless
    interface reported by netifaces that is not excluded.
    """
    interfaces = [
        iface
        for iface in netifaces.interfaces()
        if iface.startswith(WIRELESS_INTERFACE_PREFIXES) and iface not in excluded
    ]
    for iface in preferred:
        if iface in interfaces:
            return iface
    if interfaces:
        return interfaces[0]
    logger.info('No wireless interface found, letting nmcli choose')
    return None


class NetworkManager:
    # Base class for network manager backends
    def list_visible(self) -> list[str]:
        raise NotImplementedError()

    def list_known(self) -> list[str]:
        raise NotImplementedError()

    def connect(self, ssid: str) -> None:
        raise NotImplementedError()


class NmcliNetworkManager(NetworkManager):
    """Talk to NetworkManager through the ``nmcli`` command line tool."""

    def __init__(
        self,
        interface: Optional[str] = None,
        terse: bool = False,
        timeout: float = 30.0,
        connect_timeout: float = 45.0,
        nmcli: str = 'nmcli',
    ):
        self.interface = interface
        self.terse = terse
        self.timeout = timeout
        self.connect_timeout = connect_timeout
        self.nmcli = nmcli

    def _run(self, args: list[str], error_cls: type, timeout: float) -> str:
        cmd = [self.nmcli] + args
        logger.debug(f'Running {" ".join(cmd)}')
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                errors='replace',
                check=True,
                timeout=timeout,
            )
        except FileNotFoundError as e:
            raise error_cls(f'{self.nmcli} command unavailable') from e
        except OSError as e:
            raise error_cls(f'cannot run {self.nmcli}: {e}') from e
        except subprocess.TimeoutExpired as e:
            raise error_cls(f'{self.nmcli} timed out after {timeout}s') from e
        except subprocess.CalledProcessError as e:
            message = (e.stderr or '').strip() or (e.stdout or '').strip() or str(e)
            raise error_cls(message) from e
        return result.stdout

    def _ifname_args(self) -> list[str]:
        return ['ifname', self.interface] if self.interface else []

    def list_visible(self) -> list[str]:
        if self.terse:
            output = self._run(
                ['-t', '-f', 'SSID', 'device', 'wifi', 'list'] + self._ifname_args(),
                VisibleListingError,
                self.timeout,
            )
            return parse_terse_wifi_list(output)
        output = self._run(
            ['device', 'wifi', 'list'] + self._ifname_args(), VisibleListingError, self.timeout
        )
        return parse_wifi_list(output)

    def list_known(self) -> list[str]:
        if self.terse:
            output = self._run(
                ['-t', '-f', 'NAME,TYPE', 'connection', 'show'], KnownListingError, self.timeout
            )
            return parse_terse_connection_list(output)
        output = self._run(['connection', 'show'], KnownListingError, self.timeout)
        return parse_connection_list(output)

    def connect(self, ssid: str) -> None:
        self._run(
            ['device', 'wifi', 'connect', ssid] + self._ifname_args(),
            ConnectError,
            self.connect_timeout,
        )
        logger.info(f'Connected to {ssid}', extra={'ssid': ssid})
