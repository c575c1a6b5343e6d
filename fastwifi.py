#!/usr/bin/env python3
# Main application entry point
# Probe backends are loaded dynamically from the probes directory

import argparse
import importlib
import inspect
import os
import sys
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List, Optional

from config import FastWifiConfig, ProbeConfig, apply_logging_config, load_config
from logging_config import get_logger, setup_logging
from network_manager import (
    ConfigError,
    ConnectError,
    FastWifiError,
    KnownListingError,
    ListingError,
    NetworkManager,
    NmcliNetworkManager,
    ProbeError,
    VisibleListingError,
    detect_wireless_interface,
)

__all__ = [
    'BenchmarkLoop',
    'BenchmarkReport',
    'CandidateResult',
    'CandidateState',
    'ConfigError',
    'ConnectError',
    'FastWifiError',
    'KnownListingError',
    'ListingError',
    'ProbeError',
    'ProgressReporter',
    'ScoredNetwork',
    'SpeedMeasurement',
    'ThroughputProbe',
    'VisibleListingError',
    'main',
    'select_candidates',
    'unique_candidates',
]

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_NO_USABLE_NETWORK = 2
EXIT_INTERRUPTED = 130

PROGRESS_BAR_WIDTH = 40


@dataclass
class SpeedMeasurement:
    download: float
    upload: float
    ping: float

    @property
    def download_mbps(self) -> float:
        # speedtest reports bits per second
        return self.download / 1_000_000


class CandidateState(Enum):
    PENDING = 'pending'
    CONNECTING = 'connecting'
    CONNECT_FAILED = 'connect_failed'
    PROBING = 'probing'
    MEASURED = 'measured'
    PROBE_FAILED = 'probe_failed'


@dataclass
class CandidateResult:
    ssid: str
    state: CandidateState = CandidateState.PENDING
    measurement: Optional[SpeedMeasurement] = None
    error: Optional[str] = None

    @property
    def score(self) -> Optional[float]:
        """Download figure, or None when the candidate is unusable."""
        if self.state is CandidateState.MEASURED and self.measurement is not None:
            return self.measurement.download
        return None


@dataclass
class ScoredNetwork:
    ssid: str
    download: float
    measurement: SpeedMeasurement


@dataclass
class BenchmarkReport:
    candidates: List[str]
    results: List[CandidateResult] = field(default_factory=list)
    best: Optional[ScoredNetwork] = None


class ThroughputProbe:
    # Base class for throughput probe backends
    name = ''

    def __init__(self, timeout: int = 3, deadline: float = 60.0, secure: bool = True):
        self.timeout = timeout
        self.deadline = deadline
        self.secure = secure

    def measure(self) -> SpeedMeasurement:
        raise NotImplementedError()


def select_candidates(visible: Iterable[str], known: Iterable[str]) -> List[str]:
    """
    Return the visible networks that have a saved profile.

    Each visible entry is repeated once per matching known entry, in the
    order of ``visible``.
    """
    known_counts = Counter(known)
    candidates = []
    for ssid in visible:
        candidates.extend([ssid] * known_counts[ssid])
    return candidates


def unique_candidates(candidates: Iterable[str]) -> List[str]:
    """Drop repeated SSIDs, keeping the first occurrence."""
    return list(dict.fromkeys(candidates))


class ProgressReporter:
    """Prints the benchmark report to stdout."""

    def __init__(self, stream=None):
        self.stream = stream

    def _print(self, text: str):
        print(text, file=self.stream or sys.stdout, flush=True)

    def candidates(self, candidates: List[str]):
        self._print('Will check these:')
        for ssid in candidates:
            self._print(f'\t{ssid}')

    def no_candidates(self):
        self._print('No known networks in range')

    def progress(self, done: int, total: int):
        width = min(total, PROGRESS_BAR_WIDTH)
        filled = round(done * width / total) if total else width
        self._print(f'[{"#" * filled}{"-" * (width - filled)}]')

    def result(self, best: Optional[ScoredNetwork]):
        if best is None:
            self._print('No usable network found')
            return
        self._print(
            f'Fastest network is {best.ssid} with a download speed of '
            f'{best.download} ({best.measurement.download_mbps:.2f} Mbit/s)'
        )


class BenchmarkLoop:
    """
    Connect to each candidate in turn and measure its download speed.

    Candidates are handled strictly one at a time since every probe measures
    whatever network the radio is currently associated with. A candidate that
    fails to connect or to measure is recorded as unusable and the loop moves
    on without retrying.
    """

    def __init__(
        self,
        network_manager: NetworkManager,
        probe: ThroughputProbe,
        reporter: Optional[ProgressReporter] = None,
        finish_on_best: bool = False,
    ):
        self.network_manager = network_manager
        self.probe = probe
        self.reporter = reporter
        self.finish_on_best = finish_on_best

    def run(self, candidates: Iterable[str]) -> BenchmarkReport:
        report = BenchmarkReport(candidates=list(candidates))
        total = len(report.candidates)
        associated = None

        for done, ssid in enumerate(report.candidates, start=1):
            result = self._benchmark(ssid)
            report.results.append(result)
            if result.state is not CandidateState.CONNECT_FAILED:
                associated = ssid

            score = result.score
            if score is not None and (report.best is None or score > report.best.download):
                report.best = ScoredNetwork(ssid=ssid, download=score, measurement=result.measurement)

            if self.reporter:
                self.reporter.progress(done, total)

        if self.finish_on_best and report.best and associated != report.best.ssid:
            self._rejoin(report.best.ssid)

        return report

    def _benchmark(self, ssid: str) -> CandidateResult:
        result = CandidateResult(ssid=ssid, state=CandidateState.CONNECTING)
        try:
            self.network_manager.connect(ssid)
        except ConnectError as e:
            result.state = CandidateState.CONNECT_FAILED
            result.error = str(e)
            logger.warning(f'Could not connect to {ssid}: {e}', extra={'ssid': ssid})
            return result

        result.state = CandidateState.PROBING
        logger.debug(f'Measuring {ssid}', extra={'ssid': ssid})
        try:
            result.measurement = self.probe.measure()
        except ProbeError as e:
            result.state = CandidateState.PROBE_FAILED
            result.error = str(e)
            logger.warning(f'Speed test on {ssid} failed: {e}', extra={'ssid': ssid})
            return result

        result.state = CandidateState.MEASURED
        logger.info(
            f'{ssid}: {result.measurement.download_mbps:.2f} Mbit/s down',
            extra={'ssid': ssid, 'ping': result.measurement.ping},
        )
        return result

    def _rejoin(self, ssid: str):
        try:
            self.network_manager.connect(ssid)
        except ConnectError as e:
            logger.warning(f'Could not rejoin fastest network {ssid}: {e}', extra={'ssid': ssid})


def _load_probe_modules() -> List[type]:
    probes_dir = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'probes')
    probe_classes = []

    for filename in sorted(os.listdir(probes_dir)):
        if filename.endswith('.py') and not filename.startswith('_'):
            module_name = filename[:-3]
            try:
                module = importlib.import_module(f'probes.{module_name}')
            except ImportError as e:
                logger.error(f'Failed to load module {module_name}: {e}')
                continue
            # Find all ThroughputProbe subclasses in the module
            for _, obj in inspect.getmembers(module, inspect.isclass):
                if issubclass(obj, ThroughputProbe) and obj is not ThroughputProbe:
                    probe_classes.append(obj)

    return probe_classes


def load_probe(probe_config: ProbeConfig) -> ThroughputProbe:
    """Instantiate the probe module named by ``probe_config.backend``."""
    available = {cls.name: cls for cls in _load_probe_modules()}
    probe_cls = available.get(probe_config.backend)
    if probe_cls is None:
        raise ConfigError(
            f'unknown probe backend {probe_config.backend!r}, '
            f'expected one of: {", ".join(sorted(available)) or "none"}'
        )
    return probe_cls(
        timeout=probe_config.timeout,
        deadline=probe_config.deadline,
        secure=probe_config.secure,
    )


def build_network_manager(config: FastWifiConfig) -> NmcliNetworkManager:
    interface = config.interfaces.interface or detect_wireless_interface(
        config.interfaces.preferred, config.interfaces.excluded
    )
    if interface:
        logger.info(f'Using wireless interface {interface}')
    return NmcliNetworkManager(
        interface=interface,
        terse=config.nmcli.terse,
        timeout=config.nmcli.timeout,
        connect_timeout=config.nmcli.connect_timeout,
    )


def run(
    config: FastWifiConfig,
    network_manager: Optional[NetworkManager] = None,
    probe: Optional[ThroughputProbe] = None,
    reporter: Optional[ProgressReporter] = None,
) -> BenchmarkReport:
    """
    List, select and benchmark known networks in range.

    Raises:
        ListingError: if either network listing fails.
        ConfigError: if the configured probe backend does not exist.
    """
    if probe is None:
        probe = load_probe(config.probe)
    if network_manager is None:
        network_manager = build_network_manager(config)
    if reporter is None:
        reporter = ProgressReporter()

    visible = network_manager.list_visible()
    logger.debug(f'Visible networks: {visible}')
    known = network_manager.list_known()
    logger.debug(f'Known networks: {known}')

    candidates = select_candidates(visible, known)
    if config.benchmark.deduplicate:
        candidates = unique_candidates(candidates)
    logger.info(
        f'{len(candidates)} candidate(s) out of {len(visible)} visible network(s)',
        extra={'visible': len(visible), 'known': len(known)},
    )

    if not candidates:
        reporter.no_candidates()
        return BenchmarkReport(candidates=[])

    reporter.candidates(candidates)
    loop = BenchmarkLoop(
        network_manager,
        probe,
        reporter=reporter,
        finish_on_best=config.benchmark.finish_on_best,
    )
    report = loop.run(candidates)
    reporter.result(report.best)
    return report


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog='fastwifi',
        description='Benchmark the known Wi-Fi networks in range and report the fastest.',
    )
    parser.add_argument('--config', help='path to a YAML or JSON config file')
    parser.add_argument(
        '--log-level', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'], type=str.upper
    )
    parser.add_argument('--interface', help='wireless interface to use')
    parser.add_argument('--backend', help='probe backend (cli or library)')
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    setup_logging()

    try:
        config = load_config(args.config)
        if args.log_level:
            config.logging.level = args.log_level
        if args.interface:
            config.interfaces.interface = args.interface
        if args.backend:
            config.probe.backend = args.backend
        apply_logging_config(config)

        report = run(config)
    except (ListingError, ConfigError) as e:
        logger.error(f'{e.step} failed: {e}')
        return EXIT_FATAL
    except KeyboardInterrupt:
        logger.warning('Interrupted')
        return EXIT_INTERRUPTED

    return EXIT_OK if report.best else EXIT_NO_USABLE_NETWORK


if __name__ == '__main__':
    # Import by name so probe backends and the entry point share one ThroughputProbe
    import fastwifi

    sys.exit(fastwifi.main())
