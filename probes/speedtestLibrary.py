import speedtest

from fastwifi import ProbeError, SpeedMeasurement, ThroughputProbe
from logging_config import get_logger

logger = get_logger(__name__)


class SpeedtestLibraryProbe(ThroughputProbe):
    """
    Measure download speed in-process with the speedtest module.

    The upload test is skipped, so ``upload`` is always 0. The ``deadline``
    setting does not apply here; each request is bounded by ``timeout``.
    """

    name = 'library'

    def measure(self) -> SpeedMeasurement:
        try:
            st = speedtest.Speedtest(timeout=self.timeout, secure=self.secure)
            st.get_best_server()
            download_speed = st.download()
            ping = st.results.ping
        except Exception as e:
            raise ProbeError(f'Speedtest failed: {e}') from e

        return SpeedMeasurement(download=float(download_speed), upload=0.0, ping=float(ping))
