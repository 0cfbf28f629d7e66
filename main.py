"""
Precision location demo.

Replays a scripted northbound drive (open sky -> tunnel -> exit) through
scripted position and motion sources, steps the tracker at its tick rate
on a manual clock, and prints the emitted stream and a metrics summary.
"""

import sys
import signal
import logging
import argparse
from typing import Optional

import numpy as np

import config
from precision_core.io import ManualClock, ScriptedMotionSource, ScriptedPositionSource
from precision_core.localization import accuracy_level, distance_m, offset_position
from precision_core.metrics import get_metrics
from precision_core.proto import (
    MotionSample,
    PositionSample,
    PrecisionLocation,
    SampleSource,
    SignalMetadata,
    TrackingMode,
)
from precision_core.tracker import PrecisionLocationTracker, PrecisionTrackerConfig

logging.basicConfig(
    level=getattr(logging, config.LOGGING_CONFIG["level"]),
    format=config.LOGGING_CONFIG["format"]
)
logger = logging.getLogger(__name__)


class DriveSimulation:
    """Scripted drive feeding a PrecisionLocationTracker."""

    def __init__(
        self,
        duration_s: float,
        tunnel_start_s: float,
        tunnel_length_s: float,
        mode: TrackingMode,
        as_json: bool = False,
    ):
        self.duration_s = duration_s
        self.tunnel_start_s = tunnel_start_s
        self.tunnel_end_s = tunnel_start_s + tunnel_length_s
        self.mode = mode
        self.as_json = as_json
        self.running = False

        self.sim = config.SIMULATION_CONFIG
        self.rng = np.random.default_rng(self.sim["seed"])

        self.clock = ManualClock(0.0)
        self.position_source = ScriptedPositionSource()
        self.motion_source = ScriptedMotionSource()
        self.tracker = PrecisionLocationTracker(
            self.position_source,
            self.motion_source,
            config=PrecisionTrackerConfig.from_dict(config.TRACKER_CONFIG),
            clock=self.clock,
        )

        self.tick_count = 0
        self.emitted_count = 0
        self.interpolated_count = 0

        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

    def _signal_handler(self, signum, frame):
        logger.info("Received signal %d, stopping...", signum)
        self.running = False

    def in_tunnel(self, t: float) -> bool:
        return self.tunnel_start_s <= t < self.tunnel_end_s

    def true_position(self, t: float):
        """Ground truth: constant-speed northbound from the start point."""
        return offset_position(
            self.sim["start_lat"], self.sim["start_lon"],
            north_m=self.sim["speed_mps"] * t, east_m=0.0,
        )

    def _noisy_fix(self, t: float, source: SampleSource, accuracy_m: float) -> PositionSample:
        lat, lon = self.true_position(t)
        noise_north, noise_east = self.rng.normal(0.0, self.sim["position_noise_m"], size=2)
        lat, lon = offset_position(lat, lon, float(noise_north), float(noise_east))

        metadata = None
        if source == SampleSource.SATELLITE:
            metadata = SignalMetadata(
                satellite_count=int(self.rng.integers(7, 12)),
                hdop=round(float(self.rng.uniform(0.7, 1.4)), 2),
            )

        return PositionSample(
            latitude=lat,
            longitude=lon,
            horizontal_accuracy_m=accuracy_m,
            timestamp=t,
            source=source,
            bearing=0.0 if source != SampleSource.NETWORK else None,
            speed_mps=self.sim["speed_mps"] if source != SampleSource.NETWORK else None,
            metadata=metadata,
        )

    def _feed(self, t: float, step: int, ticks_per_second: int, fused_every: int, network_every: int):
        """Deliver whatever providers would report at tick t."""
        if step % ticks_per_second == 0:
            second = step // ticks_per_second
            if not self.in_tunnel(t):
                self.position_source.emit(
                    self._noisy_fix(t, SampleSource.SATELLITE, self.sim["satellite_accuracy_m"])
                )
            if second % fused_every == 0 and not self.in_tunnel(t):
                self.position_source.emit(
                    self._noisy_fix(t, SampleSource.FUSED_PROVIDER, self.sim["fused_accuracy_m"])
                )
            if second % network_every == 0:
                self.position_source.emit(
                    self._noisy_fix(t, SampleSource.NETWORK, self.sim["network_accuracy_m"])
                )

        acceleration = self.sim["tunnel_acceleration_mps2"] if self.in_tunnel(t) else 0.0
        self.motion_source.emit(MotionSample(timestamp=t, linear_acceleration=(0.0, acceleration, 0.0)))

    def run(self):
        """Replay the drive tick by tick."""
        loop_config = self.tracker.loop.config
        interval = loop_config.tick_interval_s
        ticks_per_second = max(1, int(round(loop_config.rate_hz)))
        fused_every = max(1, int(round(self.mode.provider_request().interval_s)))
        network_every = max(1, int(round(self.sim["network_interval_s"])))

        stream = self.tracker.start(self.mode, run_loop=False)
        self.running = True
        logger.info(
            "Simulating %.0fs drive, tunnel %.0fs-%.0fs, mode=%s",
            self.duration_s, self.tunnel_start_s, self.tunnel_end_s, self.mode.value,
        )

        try:
            step = 0
            while self.running and self.clock() < self.duration_s:
                t = self.clock()
                self._feed(t, step, ticks_per_second, fused_every, network_every)
                self.tracker.tick(t)
                self.tick_count += 1

                for location in stream.drain():
                    self._output(location)

                step += 1
                self.clock.advance(interval)
        finally:
            self.tracker.stop()

        self._print_statistics()

    def _output(self, location: PrecisionLocation):
        self.emitted_count += 1
        if location.is_interpolated:
            self.interpolated_count += 1

        if self.as_json:
            print(location.to_json())
            return

        if not config.OUTPUT_CONFIG["enable_console_print"]:
            return
        if self.emitted_count % config.OUTPUT_CONFIG["print_interval"] != 0:
            return

        true_lat, true_lon = self.true_position(location.timestamp)
        error_m = distance_m(location.latitude, location.longitude, true_lat, true_lon)
        mode = "DR " if location.is_interpolated else "FIX"
        print(f"t={location.timestamp:6.1f}s [{mode}] "
              f"lat={location.latitude:.7f} lon={location.longitude:.7f} "
              f"acc={location.accuracy_m:5.1f}m ({accuracy_level(location.accuracy_m).name}) "
              f"conf={location.confidence:.3f} err={error_m:6.1f}m")

    def _print_statistics(self):
        if self.as_json:
            return
        print("\n" + "=" * 60)
        print("               Simulation finished")
        print("=" * 60)
        print(f"Ticks:               {self.tick_count}")
        print(f"Locations emitted:   {self.emitted_count}")
        print(f"Dead-reckoned:       {self.interpolated_count}")
        print("=" * 60)
        get_metrics().print_summary()


def main(argv: Optional[list] = None) -> int:
    """Entry point."""
    parser = argparse.ArgumentParser(description='Precision location demo (scripted drive)')
    parser.add_argument('--duration', type=float, default=80.0,
                        help='Drive length in seconds')
    parser.add_argument('--tunnel-start', type=float, default=30.0,
                        help='Tunnel entry time in seconds')
    parser.add_argument('--tunnel-length', type=float, default=20.0,
                        help='Time spent in the tunnel in seconds')
    parser.add_argument('--mode', type=str, default=TrackingMode.HIGH_ACCURACY.value,
                        choices=[m.value for m in TrackingMode],
                        help='Tracking mode')
    parser.add_argument('--json', action='store_true',
                        help='Print every location as a JSON line')
    parser.add_argument('--debug', '-d', action='store_true',
                        help='Enable debug logging')

    args = parser.parse_args(argv)

    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    simulation = DriveSimulation(
        duration_s=args.duration,
        tunnel_start_s=args.tunnel_start,
        tunnel_length_s=args.tunnel_length,
        mode=TrackingMode.from_name(args.mode),
        as_json=args.json,
    )
    simulation.run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
