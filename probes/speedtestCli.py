import json
import subprocess

from fastwifi import ProbeError, SpeedMeasurement, ThroughputProbe
from logging_config import get_logger

logger = get_logger(__name__)

MEASUREMENT_FIELDS = ('download', 'upload', 'ping')


def parse_speedtest_json(output: str) -> SpeedMeasurement:
    """Parse the ``--json`` report printed by speedtest-cli."""
    try:
        data = json.loads(output)
    except ValueError as e:
        raise ProbeError(f'speedtest-cli printed invalid JSON: {e}') from e
    if not isinstance(data, dict):
        raise ProbeError('speedtest-cli JSON is not an object')

    values = {}
    for name in MEASUREMENT_FIELDS:
        value = data.get(name)
        # bool is an int subclass but never a valid figure
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ProbeError(f'speedtest-cli JSON has no numeric {name!r}')
        values[name] = float(value)
    return SpeedMeasurement(**values)


class SpeedtestCliProbe(ThroughputProbe):
    """Measure download speed by running the speedtest-cli command."""

    name = 'cli'
    command = 'speedtest-cli'

    def build_command(self) -> list[str]:
        cmd = [self.command, '--no-upload', '--json', '--timeout', str(self.timeout)]
        if self.secure:
            cmd.append('--secure')
        return cmd

    def measure(self) -> SpeedMeasurement:
        cmd = self.build_command()
        try:
            # subprocess.run kills the child when the deadline passes
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                errors='replace',
                check=True,
                timeout=self.deadline,
            )
        except FileNotFoundError as e:
            raise ProbeError(f'{self.command} command unavailable') from e
        except OSError as e:
            raise ProbeError(f'cannot run {self.command}: {e}') from e
        except subprocess.TimeoutExpired as e:
            raise ProbeError(f'{self.command} did not finish within {self.deadline}s') from e
        except subprocess.CalledProcessError as e:
            message = (e.stderr or '').strip() or (e.stdout or '').strip() or str(e)
            raise ProbeError(message) from e

        measurement = parse_speedtest_json(result.stdout)
        logger.debug(f'speedtest-cli result: {measurement}')
        return measurement
