"""
Unit tests for Subsystem orchestration.

Tests group assembly, the bind-once lifecycle, the periodic sequence and
command forwarding.
"""

import pytest
from unittest.mock import MagicMock, call

from src.control.subsystem import Subsystem, SubsystemConfig
from src.hal.errors import BackendMisuse, HardwareUnavailable, InvalidConfiguration
from src.hal.inputs import SubsystemInputs
from src.hal.io import RobotState, SubsystemIO
from src.hal.io_real import SubsystemIOReal
from src.hal.io_replay import SubsystemIOReplay
from src.hal.io_sim import SubsystemIOSim
from src.hal.motor_data import MotorData

from conftest import FakeMotorDriver


class TestConstruction:
    """Tests for subsystem construction and backend binding."""

    def test_end_to_end_sim_tick(self, telemetry):
        """Leader id 5 (40A, inverted) with follower 6, one tick at time 0."""
        leader = MotorData(5).with_current_limit(40.0).with_inverted(True)
        subsystem = Subsystem(
            "elevator", RobotState.SIM,
            leading_motor=leader, following_motors=[MotorData(6)],
            telemetry=telemetry,
        )

        subsystem.periodic()

        assert isinstance(subsystem.io, SubsystemIOSim)
        assert len(subsystem.io.follower_sims) == 1
        name, record = telemetry.records[0]
        assert name == "elevator"
        assert record["position"] == pytest.approx(0.0, abs=1e-6)
        assert record["sys_id_state"] == "None"

    def test_binds_in_constructor_with_leader(self, leader):
        """A leader given to the constructor should bind at once."""
        subsystem = Subsystem("arm", RobotState.SIM, leading_motor=leader)

        assert subsystem.is_bound is True

    def test_deferred_binding(self, leader, follower):
        """Motors added before bind should all be bound."""
        subsystem = Subsystem("arm", RobotState.SIM)
        assert subsystem.is_bound is False

        subsystem.set_leading_motor(leader)
        subsystem.add_following_motor(follower)
        subsystem.add_following_motor(MotorData(7))
        subsystem.bind()

        assert subsystem.is_bound is True
        assert subsystem.group.motor_ids == [5, 6, 7]
        assert len(subsystem.io.follower_sims) == 2

    @pytest.mark.parametrize("state,cls", [
        (RobotState.SIM, SubsystemIOSim),
        (RobotState.REPLAY, SubsystemIOReplay),
    ])
    def test_backend_selected_from_state(self, leader, state, cls):
        """Run state should pick the backend."""
        subsystem = Subsystem("arm", state, leading_motor=leader)

        assert isinstance(subsystem.io, cls)
        assert subsystem.robot_state == state

    def test_sim_backend_uses_config_period(self, leader):
        """The sim backend should run at the configured period."""
        subsystem = Subsystem("arm", RobotState.SIM, leading_motor=leader,
                              config=SubsystemConfig(period_s=0.005))

        assert subsystem.io.period_s == 0.005

    def test_bind_without_leader(self):
        """Binding without a leader should be rejected."""
        subsystem = Subsystem("arm", RobotState.SIM)

        with pytest.raises(InvalidConfiguration):
            subsystem.bind()

    def test_real_with_missing_hardware(self, leader, follower):
        """Missing hardware should surface from the constructor."""
        io = SubsystemIOReal(driver=FakeMotorDriver(present_ids=[5]))

        with pytest.raises(HardwareUnavailable):
            Subsystem("arm", RobotState.REAL, leading_motor=leader,
                      following_motors=[follower], io=io)

    def test_real_binds_all_followers(self, fake_driver, leader):
        """The real backend should bind every follower."""
        followers = [MotorData(i) for i in (6, 7, 8)]
        subsystem = Subsystem("arm", RobotState.REAL, leading_motor=leader,
                              following_motors=followers,
                              io=SubsystemIOReal(driver=fake_driver))

        assert subsystem.io.bound_follower_ids == [6, 7, 8]


class TestLifecycle:
    """Tests for motor changes around bind."""

    @pytest.fixture
    def bound(self, leader):
        return Subsystem("arm", RobotState.SIM, leading_motor=leader)

    def test_set_leading_after_bind(self, bound):
        """Changing the leader after bind should be rejected."""
        with pytest.raises(BackendMisuse):
            bound.set_leading_motor(MotorData(9))

    def test_add_following_after_bind(self, bound):
        """Adding a follower after bind should be rejected."""
        with pytest.raises(BackendMisuse):
            bound.add_following_motor(MotorData(9))

    def test_bind_twice(self, bound):
        """Binding twice should be rejected."""
        with pytest.raises(BackendMisuse):
            bound.bind()

    def test_periodic_before_bind(self):
        """Ticking an unbound subsystem should be rejected."""
        subsystem = Subsystem("arm", RobotState.SIM)

        with pytest.raises(BackendMisuse):
            subsystem.periodic()

    def test_failed_bind_leaves_subsystem_unbound(self, leader):
        """A failed bind should leave the subsystem unbound."""
        io = SubsystemIOReal(driver=FakeMotorDriver(present_ids=[]))
        subsystem = Subsystem("arm", RobotState.REAL, io=io)
        subsystem.set_leading_motor(leader)

        with pytest.raises(HardwareUnavailable):
            subsystem.bind()

        assert subsystem.is_bound is False
        with pytest.raises(BackendMisuse):
            subsystem.periodic()

    @pytest.mark.parametrize("operation", ["run_sysid", "sysid_quasistatic", "sysid_dynamic"])
    def test_sysid_before_bind(self, operation):
        """Starting identification on an unbound subsystem should be rejected."""
        subsystem = Subsystem("arm", RobotState.SIM)

        with pytest.raises(BackendMisuse):
            getattr(subsystem, operation)()

        assert subsystem.sysid.is_active is False

    def test_close_before_bind(self):
        """Closing an unbound subsystem should be harmless."""
        subsystem = Subsystem("arm", RobotState.SIM)

        subsystem.close()

        assert subsystem.is_bound is False

    @pytest.mark.parametrize("period", [0.0, -0.02])
    def test_non_positive_period_rejected(self, leader, period):
        """A control period that is not positive should be rejected."""
        with pytest.raises(InvalidConfiguration):
            Subsystem("arm", RobotState.SIM, leading_motor=leader,
                      config=SubsystemConfig(period_s=period))

    def test_shared_motor_data_between_subsystems(self):
        """One MotorData bound twice must not couple the two subsystems."""
        shared = MotorData(5).with_current_limit(20.0)
        first = Subsystem("a", RobotState.SIM, leading_motor=shared)

        shared.set_current_limit(80.0)
        second = Subsystem("b", RobotState.SIM, leading_motor=shared)

        assert first.io.leading_motor.get_motor_config().current_limits.stator_current_limit == 20.0
        assert second.io.leading_motor.get_motor_config().current_limits.stator_current_limit == 80.0


class TestPeriodic:
    """Tests for the periodic tick."""

    def test_sequence(self, leader):
        """Backend refresh, then publish, then SysId."""
        order = MagicMock()
        io = MagicMock(spec=SubsystemIO)
        io.is_bound = True
        order.attach_mock(io.update_inputs, "update_inputs")
        sink = MagicMock()
        order.attach_mock(sink.publish, "publish")

        subsystem = Subsystem("arm", RobotState.SIM, io=io, telemetry=sink)
        subsystem.periodic()

        assert order.mock_calls == [
            call.update_inputs(subsystem.inputs),
            call.publish("arm", subsystem.inputs),
        ]

    def test_publishes_every_tick(self, leader, telemetry):
        """Every tick should publish one record under the subsystem name."""
        subsystem = Subsystem("arm", RobotState.SIM, leading_motor=leader,
                              telemetry=telemetry)

        for _ in range(5):
            subsystem.periodic()

        assert len(telemetry.records) == 5
        assert all(name == "arm" for name, _ in telemetry.records)

    def test_snapshot_overwritten_in_place(self, leader):
        """The inputs object should be reused across ticks."""
        subsystem = Subsystem("arm", RobotState.SIM, leading_motor=leader)
        inputs = subsystem.inputs

        subsystem.periodic()
        subsystem.periodic()

        assert subsystem.inputs is inputs
        assert inputs.timestamp == pytest.approx(0.04)

    def test_replay_keeps_recorded_labels(self, leader, recorded_inputs, telemetry):
        """Replayed labels should be published unchanged."""
        subsystem = Subsystem("arm", RobotState.REPLAY, leading_motor=leader,
                              io=SubsystemIOReplay(records=recorded_inputs),
                              telemetry=telemetry)

        for _ in recorded_inputs:
            subsystem.periodic()

        labels = [record["sys_id_state"] for _, record in telemetry.records]
        assert labels == [r.sys_id_state for r in recorded_inputs]


class TestCommands:
    """Tests for command forwarding."""

    def test_forwards_without_logic(self, fake_driver, leader):
        """Commands should reach the backend unchanged."""
        subsystem = Subsystem("arm", RobotState.REAL, leading_motor=leader,
                              io=SubsystemIOReal(driver=fake_driver))
        fake_driver.controls.clear()

        subsystem.set_goal_position(2.5)
        subsystem.set_voltage(1.5)

        assert [c[2] for c in fake_driver.controls] == [2.5, 1.5]
        assert subsystem.get_position() == 1.25

    def test_sim_goal_position_moves(self):
        """A goal position should move the simulated mechanism."""
        motor = (MotorData(5).with_internal_encoder_ratios(10.0)
                 .with_pid(8.0, 0.0, 0.2).with_ff(0.0, 0.0, 1.2, 0.0)
                 .with_max_speeds(2.0, 4.0))
        subsystem = Subsystem("arm", RobotState.SIM, leading_motor=motor)

        subsystem.set_goal_position(0.5)
        for _ in range(150):
            subsystem.periodic()

        assert subsystem.get_position() == pytest.approx(0.5, abs=0.05)
