"""Tests for the fan state machine."""

import threading
from unittest.mock import MagicMock

import pytest

from cave.fan.state import FanState, FanStateMachine, Outcome
from cave.lib.exceptions import ActuatorFailed, InvalidParameter
from cave.lib.mock import MockFanOutput


def _machine(state: FanState) -> tuple[FanStateMachine, MockFanOutput]:
    output = MockFanOutput()
    return FanStateMachine(output, initial=state), output


class TestParseTarget:
    """Tests for caller-supplied label parsing."""

    def test_valid_labels(self):
        assert FanState.parse_target("On") is FanState.ON
        assert FanState.parse_target("Off") is FanState.OFF

    @pytest.mark.parametrize("label", ["Failed", "on", "OFF", "", "bogus", None, b"On"])
    def test_invalid_labels_raise(self, label):
        with pytest.raises(InvalidParameter):
            FanState.parse_target(label)


class TestApply:
    """Tests for the transition function."""

    def test_initial_state_is_off(self, fan):
        assert fan.state is FanState.OFF

    @pytest.mark.parametrize("start", [FanState.ON, FanState.OFF])
    @pytest.mark.parametrize("label", ["On", "Off"])
    def test_valid_label_applies(self, start, label):
        fan, output = _machine(start)

        state, outcome = fan.apply(label)

        assert state is FanState(label)
        assert outcome is Outcome.APPLIED
        assert fan.state is FanState(label)
        assert output.writes == [label == "On"]

    def test_reapplying_current_state_succeeds(self):
        fan, output = _machine(FanState.ON)

        assert fan.apply("On") == (FanState.ON, Outcome.APPLIED)
        assert output.level is True

    @pytest.mark.parametrize("label", ["On", "Off", "Failed", "bogus", ""])
    def test_failed_rejects_everything(self, label):
        fan, output = _machine(FanState.FAILED)

        state, outcome = fan.apply(label)

        assert state is FanState.FAILED
        assert outcome is Outcome.ACTUATOR_FAILED
        assert output.writes == []

    @pytest.mark.parametrize("start", [FanState.ON, FanState.OFF])
    @pytest.mark.parametrize("label", ["bogus", "", "Failed", "xyz"])
    def test_invalid_label_leaves_state(self, start, label):
        fan, output = _machine(start)

        state, outcome = fan.apply(label)

        assert state is start
        assert outcome is Outcome.INVALID_PARAMETER
        assert fan.state is start
        assert output.writes == []

    def test_output_fault_marks_fan_failed(self):
        output = MagicMock()
        output.write.side_effect = ActuatorFailed("line stuck")
        fan = FanStateMachine(output)

        state, outcome = fan.apply("On")

        assert state is FanState.FAILED
        assert outcome is Outcome.ACTUATOR_FAILED
        # Failure is terminal
        assert fan.apply("Off") == (FanState.FAILED, Outcome.ACTUATOR_FAILED)
        assert output.write.call_count == 1


class TestMarkFailed:
    def test_mark_failed_is_terminal(self, fan):
        fan.mark_failed("overcurrent")

        assert fan.state is FanState.FAILED
        assert fan.apply("On") == (FanState.FAILED, Outcome.ACTUATOR_FAILED)

    def test_mark_failed_logs(self, fan, caplog):
        fan.mark_failed("overcurrent")
        assert "overcurrent" in caplog.text


class TestListeners:
    def test_listener_called_on_change(self, fan):
        seen = []
        fan.add_listener(seen.append)

        fan.apply("On")
        fan.apply("On")
        fan.apply("Off")
        fan.apply("bogus")

        assert seen == [FanState.ON, FanState.OFF]

    def test_listener_error_does_not_break_transition(self, fan, caplog):
        fan.add_listener(MagicMock(side_effect=RuntimeError("boom")))

        assert fan.apply("On") == (FanState.ON, Outcome.APPLIED)
        assert "listener raised" in caplog.text


class TestConcurrency:
    def test_snapshot_never_sees_torn_transition(self):
        """Output level and state always agree under concurrent access."""
        output = MockFanOutput()
        fan = FanStateMachine(output)
        mismatches = []
        stop = threading.Event()

        def toggler():
            for i in range(2000):
                fan.apply("On" if i % 2 else "Off")
            stop.set()

        def reader():
            while not stop.is_set():
                with fan._lock:
                    if (fan._state is FanState.ON) != output.level:
                        mismatches.append(fan._state)

        threads = [threading.Thread(target=toggler), threading.Thread(target=reader)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert mismatches == []
        assert fan.snapshot() is FanState.ON

    def test_close_releases_output(self, fan, fan_output):
        fan.close()
        assert fan_output.closed is True
