"""
Subsystem Runner
================

Command-line entry point that builds one subsystem from a motor file and
ticks it at a fixed period, standing in for the robot scheduler.

Examples:
    python -m src.main --mode sim --motors motors.json --goal 2.0 --duration 5
    python -m src.main --mode sim --motors motors.json --sysid
    python -m src.main --mode replay --motors motors.json --replay-log logs/telemetry/x.jsonlog.gz
    python -m src.main --mode real --motors motors.json --port /dev/ttyACM0
"""

import argparse
import logging
import signal
import sys
import time
from dataclasses import dataclass
from typing import Optional

from .control.subsystem import Subsystem, SubsystemConfig
from .control.sysid import Direction, fit_feedforward
from .hal.drivers import SerialBusConfig
from .hal.errors import ActuatorError, InvalidConfiguration
from .hal.io import RobotState
from .hal.io_real import SubsystemIOReal
from .hal.io_replay import SubsystemIOReplay
from .hal.motor_data import load_motor_file
from .telemetry.logger import TelemetryLogger, TelemetryConfig
from .telemetry.sink import MemoryTelemetry, TelemetrySink

logger = logging.getLogger(__name__)


@dataclass
class RunnerConfig:
    """Runner configuration."""
    name: str = "mechanism"
    mode: RobotState = RobotState.SIM
    motors_path: str = "motors.json"

    # Hardware
    port: str = "/dev/ttyACM0"

    # Run
    period_s: float = 0.02
    duration_s: float = 5.0        # 0 = until interrupted
    goal_position: Optional[float] = None
    sysid: bool = False
    realtime: bool = True          # sleep to hold the period; off = run as fast as possible

    # Replay
    replay_log: Optional[str] = None

    # Logging
    log_dir: str = "logs/telemetry"
    log_data: bool = True


class SubsystemRunner:
    """Builds a subsystem from a RunnerConfig and drives its periodic loop."""

    def __init__(self, config: Optional[RunnerConfig] = None):
        self.config = config or RunnerConfig()
        self.subsystem: Optional[Subsystem] = None
        self.telemetry: Optional[TelemetrySink] = None
        self._memory = MemoryTelemetry()
        self._running = False
        self._stopped = False
        self._tick_count = 0

    def start(self) -> None:
        """
        Load motors and bind the subsystem.

        Raises:
            ActuatorError: on invalid configuration or missing hardware
        """
        cfg = self.config
        if cfg.period_s <= 0:
            raise InvalidConfiguration(f"Control period must be positive, got {cfg.period_s}")
        group = load_motor_file(cfg.motors_path)

        if cfg.log_data:
            self.telemetry = _TeeTelemetry(
                TelemetryLogger(TelemetryConfig(log_dir=cfg.log_dir, file_prefix=cfg.name)),
                self._memory,
            )
        else:
            self.telemetry = self._memory

        io = None
        if cfg.mode == RobotState.REAL:
            io = SubsystemIOReal(bus_config=SerialBusConfig(port=cfg.port))
        elif cfg.mode == RobotState.REPLAY:
            if not cfg.replay_log:
                raise ActuatorError("Replay mode needs --replay-log")
            io = SubsystemIOReplay(log_path=cfg.replay_log, name=cfg.name)

        self.subsystem = Subsystem(
            cfg.name,
            cfg.mode,
            leading_motor=group.leading,
            following_motors=group.following,
            io=io,
            telemetry=self.telemetry,
            config=SubsystemConfig(period_s=cfg.period_s),
        )

        if cfg.goal_position is not None:
            self.subsystem.set_goal_position(cfg.goal_position)
        if cfg.sysid:
            self.subsystem.run_sysid(Direction.FORWARD)

        self._running = True

    def stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        self._running = False
        if self.subsystem:
            self.subsystem.close()
        if self.telemetry:
            self.telemetry.close()
        logger.info(f"Runner stopped after {self._tick_count} tick(s)")

    def run(self) -> None:
        """Tick at the configured period until duration elapses or stop()."""
        cfg = self.config
        max_ticks = int(round(cfg.duration_s / cfg.period_s)) if cfg.duration_s > 0 else None

        logger.info(f"Running '{cfg.name}' at {1.0 / cfg.period_s:.0f}Hz")
        next_tick = time.monotonic()

        while self._running:
            if max_ticks is not None and self._tick_count >= max_ticks:
                break
            if cfg.sysid and self._tick_count > 0 and not self.subsystem.sysid.is_active:
                break

            self.subsystem.periodic()
            self._tick_count += 1

            if cfg.realtime:
                next_tick += cfg.period_s
                delay = next_tick - time.monotonic()
                if delay > 0:
                    time.sleep(delay)
                else:
                    if delay < -cfg.period_s:
                        logger.warning(f"Loop overrun by {-delay * 1000:.1f}ms")
                    next_tick = time.monotonic()

        self._report()

    def _report(self):
        records = self._memory.for_name(self.config.name)
        if not records:
            return
        last = records[-1]
        logger.info(
            f"Final position {last.position:.3f} rot, velocity {last.velocity:.3f} rot/s"
        )
        if self.config.sysid:
            try:
                ks, kv, ka = fit_feedforward(records)
                print(f"kS={ks:.4f} kV={kv:.4f} kA={ka:.4f}")
            except ValueError as e:
                logger.warning(f"Feedforward fit failed: {e}")

    @property
    def status(self) -> dict:
        return {
            "name": self.config.name,
            "mode": self.config.mode.name,
            "ticks": self._tick_count,
            "position": self.subsystem.inputs.position if self.subsystem else None,
            "sysid_state": self.subsystem.inputs.sys_id_state if self.subsystem else None,
        }


class _TeeTelemetry(TelemetrySink):
    """Publishes to several sinks."""

    def __init__(self, *sinks: TelemetrySink):
        self.sinks = sinks

    def publish(self, name, inputs):
        for sink in self.sinks:
            sink.publish(name, inputs)

    def close(self):
        for sink in self.sinks:
            sink.close()


def _positive_float(value: str) -> float:
    number = float(value)
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be positive, got {value}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Actuator subsystem runner")
    parser.add_argument("--mode", choices=[s.value for s in RobotState], default="sim",
                       help="Backend: real, sim or replay (default: sim)")
    parser.add_argument("--motors", "-m", default="motors.json",
                       help="Motor group JSON file")
    parser.add_argument("--name", "-n", default="mechanism",
                       help="Subsystem name used in telemetry")
    parser.add_argument("--port", default="/dev/ttyACM0",
                       help="Motor bus serial port (real mode)")
    parser.add_argument("--period", type=_positive_float, default=0.02,
                       help="Control period in seconds (default: 0.02)")
    parser.add_argument("--duration", "-d", type=float, default=5.0,
                       help="Run time in seconds, 0 for no limit (default: 5)")
    parser.add_argument("--goal", type=float, default=None,
                       help="Goal position in mechanism rotations")
    parser.add_argument("--sysid", action="store_true",
                       help="Run the characterization routine and fit feedforward")
    parser.add_argument("--replay-log", default=None,
                       help="Telemetry log to replay (replay mode)")
    parser.add_argument("--log-dir", default="logs/telemetry",
                       help="Telemetry output directory")
    parser.add_argument("--no-log", action="store_true",
                       help="Disable telemetry files")
    parser.add_argument("--fast", action="store_true",
                       help="Do not sleep between ticks")
    parser.add_argument("--verbose", "-v", action="store_true",
                       help="Verbose logging")
    return parser


def main(argv=None):
    """Main entry point."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    config = RunnerConfig(
        name=args.name,
        mode=RobotState(args.mode),
        motors_path=args.motors,
        port=args.port,
        period_s=args.period,
        duration_s=args.duration,
        goal_position=args.goal,
        sysid=args.sysid,
        realtime=not args.fast,
        replay_log=args.replay_log,
        log_dir=args.log_dir,
        log_data=not args.no_log,
    )

    runner = SubsystemRunner(config)

    def signal_handler(sig, frame):
        logger.info("Shutdown signal received")
        runner.stop()
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        runner.start()
    except (ActuatorError, OSError) as e:
        logger.error(f"Failed to start subsystem: {e}")
        sys.exit(1)

    try:
        runner.run()
    finally:
        runner.stop()


if __name__ == "__main__":
    main()
