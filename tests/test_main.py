"""
Tests for the subsystem runner and its command line.
"""

import json

import pytest

from src.hal.errors import ActuatorError, InvalidConfiguration
from src.hal.io import RobotState
from src.main import RunnerConfig, SubsystemRunner, build_parser, main
from src.telemetry.log_reader import read_log_directory


@pytest.fixture
def motors_file(tmp_path):
    path = tmp_path / "motors.json"
    path.write_text(json.dumps({
        "leading": {
            "id": 1,
            "pid": [8.0, 0.0, 0.2],
            "ff": [0.0, 0.0, 1.2, 0.0],
            "max_speeds": [2.0, 4.0],
            "internal_encoder_ratio": 10.0,
        },
        "following": [{"id": 2, "internal_encoder_ratio": 10.0}],
    }))
    return path


def fast_config(motors_file, **kwargs):
    defaults = dict(
        motors_path=str(motors_file),
        realtime=False,
        log_data=False,
        duration_s=1.0,
    )
    defaults.update(kwargs)
    return RunnerConfig(**defaults)


class TestParser:
    """Tests for command line parsing."""

    def test_defaults(self):
        """Parser defaults should select a simulated run."""
        args = build_parser().parse_args([])

        assert args.mode == "sim"
        assert args.period == 0.02
        assert args.duration == 5.0
        assert args.goal is None
        assert args.sysid is False

    def test_rejects_unknown_mode(self):
        """An unknown mode should be a usage error."""
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--mode", "hover"])

    @pytest.mark.parametrize("period", ["0", "-1", "-0.02"])
    def test_rejects_non_positive_period(self, period):
        """A period that is not positive should be a usage error."""
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--period", period])


class TestRunner:
    """Tests for the subsystem runner."""

    def test_runs_for_duration(self, motors_file):
        """Runner should tick until the duration elapses."""
        runner = SubsystemRunner(fast_config(motors_file, duration_s=0.5))
        runner.start()
        runner.run()
        runner.stop()

        assert runner.status["ticks"] == 25
        assert runner.status["mode"] == "SIM"

    def test_goal_position(self, motors_file):
        """A goal position run should move the mechanism."""
        runner = SubsystemRunner(fast_config(motors_file, duration_s=3.0, goal_position=0.5))
        runner.start()
        runner.run()

        assert runner.status["position"] == pytest.approx(0.5, abs=0.05)
        runner.stop()

    def test_sysid_prints_fit(self, motors_file, capsys):
        """An identification run should print the fitted gains."""
        runner = SubsystemRunner(fast_config(motors_file, duration_s=0.0, sysid=True))
        runner.start()
        runner.run()
        runner.stop()

        assert "kS=" in capsys.readouterr().out
        assert runner.status["sysid_state"] == "None"

    def test_stop_twice(self, motors_file):
        """Stopping twice should be harmless."""
        runner = SubsystemRunner(fast_config(motors_file))
        runner.start()

        runner.stop()
        runner.stop()

    def test_writes_telemetry(self, motors_file, tmp_path):
        """Runner should write a telemetry log when asked."""
        log_dir = tmp_path / "logs"
        runner = SubsystemRunner(fast_config(
            motors_file, name="arm", log_data=True, log_dir=str(log_dir), duration_s=0.1,
        ))
        runner.start()
        runner.run()
        runner.stop()

        records = read_log_directory(log_dir, name="arm")
        assert len(records) == 5
        assert all(r.connected for r in records)

    def test_replays_written_log(self, motors_file, tmp_path):
        """A written log should replay through the runner."""
        log_dir = tmp_path / "logs"
        recorder = SubsystemRunner(fast_config(
            motors_file, name="arm", log_data=True, log_dir=str(log_dir), goal_position=0.5,
        ))
        recorder.start()
        recorder.run()
        recorder.stop()
        recorded = read_log_directory(log_dir, name="arm")

        log_path = next(log_dir.iterdir())
        replay = SubsystemRunner(fast_config(
            motors_file, name="arm", mode=RobotState.REPLAY, replay_log=str(log_path),
        ))
        replay.start()
        replay.run()
        replay.stop()

        assert replay.status["position"] == recorded[-1].position

    def test_replay_without_log(self, motors_file):
        """Replay mode without a log should be rejected."""
        runner = SubsystemRunner(fast_config(motors_file, mode=RobotState.REPLAY))

        with pytest.raises(ActuatorError):
            runner.start()

    def test_invalid_motor_file(self, tmp_path):
        """A malformed motor file should be rejected."""
        path = tmp_path / "motors.json"
        path.write_text(json.dumps({"following": []}))
        runner = SubsystemRunner(fast_config(path))

        with pytest.raises(InvalidConfiguration):
            runner.start()

    def test_non_positive_period_rejected(self, motors_file):
        """A zero period should be rejected before anything is built."""
        runner = SubsystemRunner(fast_config(motors_file, period_s=0.0))

        with pytest.raises(InvalidConfiguration):
            runner.start()

        assert runner.subsystem is None


class TestMain:
    """Tests for the command line entry point."""

    @pytest.fixture(autouse=True)
    def no_signal_handlers(self, monkeypatch):
        monkeypatch.setattr("src.main.signal.signal", lambda *args: None)

    def test_sim_run(self, motors_file):
        """A simulated run should exit cleanly."""
        main(["--motors", str(motors_file), "--duration", "0.1", "--fast", "--no-log"])

    def test_missing_motor_file_exits(self, tmp_path):
        """A missing motor file should exit with an error."""
        with pytest.raises(SystemExit) as exc:
            main(["--motors", str(tmp_path / "missing.json"), "--fast", "--no-log"])

        assert exc.value.code == 1

    def test_replay_without_log_exits(self, motors_file):
        """Replay without a log should exit with an error."""
        with pytest.raises(SystemExit) as exc:
            main(["--mode", "replay", "--motors", str(motors_file), "--no-log"])

        assert exc.value.code == 1

    def test_malformed_motor_entry_exits(self, tmp_path):
        """A motor entry with the wrong number of gains should exit with an error."""
        path = tmp_path / "motors.json"
        path.write_text(json.dumps({"leading": {"id": 5, "pid": [1.0, 2.0]}}))

        with pytest.raises(SystemExit) as exc:
            main(["--motors", str(path), "--fast", "--no-log"])

        assert exc.value.code == 1
