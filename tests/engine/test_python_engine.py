"""Tests for the in-process Python engine."""

import threading
from unittest.mock import MagicMock

import pytest

from runspace.engine import Engine, PythonEngine, ScriptSession, SessionState, base, get_engine
from runspace.errors import InvalidKeyError, InvalidOperationError, ScriptTerminatedError
from runspace.native import DataCollection, PropertyBag


def _run(session, input=None, timeout=5):
    output = DataCollection()
    session.begin_invoke(input, output)
    assert session.wait(timeout)
    return output


class TestPythonSession:
    """Tests for PythonSession execution."""

    def test_write_output(self):
        """Output objects land in the output collection in order."""
        session = PythonEngine().create_session()
        session.add_script("write_output('one'); write_output('two', 3)")

        output = _run(session)

        assert [output[i] for i in range(len(output))] == ["one", "two", 3]
        assert output.is_completed
        assert session.state == SessionState.COMPLETED
        session.end_invoke()

    def test_streams(self):
        """Errors, warnings and information go to their own streams."""
        session = PythonEngine().create_session()
        session.add_script(
            "write_error('error'); write_warning('warning'); write_information('info')"
        )

        output = _run(session)

        assert len(output) == 0
        assert session.streams.error[0].exception.message == "error"
        assert session.streams.warning[0].message == "warning"
        assert session.streams.information[0].message_data == "info"

    def test_variables_are_bound(self):
        session = PythonEngine().create_session()
        session.set_variable("var1", "ABC")
        session.set_variable("obj", PropertyBag(name="n"))
        session.add_script("write_output(var1, obj.name)")

        output = _run(session)

        assert output[0] == "ABC"
        assert output[1] == "n"

    @pytest.mark.parametrize("name", ["input", "write_output", "PropertyBag", "stopping"])
    def test_host_api_names_cannot_be_variables(self, name):
        """A variable may not shadow or be shadowed by the host API."""
        session = PythonEngine().create_session()

        with pytest.raises(InvalidKeyError, match="reserved"):
            session.set_variable(name, "x")
        assert name not in session.variables

    def test_sessions_are_isolated(self):
        """Variables from one session do not leak into the next."""
        engine = PythonEngine()
        first = engine.create_session()
        first.add_script("leaked = 1")
        _run(first)

        second = engine.create_session()
        second.add_script("write_output('leaked' in globals())")
        output = _run(second)

        assert output[0] is False

    def test_pipeline_input(self):
        input = DataCollection([PropertyBag(k=1), PropertyBag(k=2)])
        input.complete()
        session = PythonEngine().create_session()
        session.add_script("for item in input:\n    write_output(item.k * 10)")

        output = _run(session, input=input)

        assert [output[0], output[1]] == [10, 20]

    def test_no_input_is_empty(self):
        session = PythonEngine().create_session()
        session.add_script("write_output(len(list(input)))")

        output = _run(session)

        assert output[0] == 0

    def test_uncaught_exception_terminates(self):
        """An uncaught exception is logged to the error stream and fails the session."""
        session = PythonEngine().create_session()
        session.add_script("write_output(1)\nraise RuntimeError('bad thing')")

        output = _run(session)

        assert output[0] == 1
        assert session.state == SessionState.FAILED
        assert session.streams.error[0].exception.message == "bad thing"
        with pytest.raises(ScriptTerminatedError, match="bad thing"):
            session.end_invoke()

    def test_syntax_error_terminates(self):
        session = PythonEngine().create_session()
        session.add_script("def (")

        _run(session)

        with pytest.raises(ScriptTerminatedError):
            session.end_invoke()

    def test_stop_before_start(self):
        """A stopped session raises inside the script at the next host call."""
        session = PythonEngine().create_session()
        session.add_script("write_output(1)")
        session.stop()

        output = _run(session)

        assert len(output) == 0
        assert session.state == SessionState.STOPPED
        session.end_invoke()

    def test_single_use(self):
        session = PythonEngine().create_session()
        session.add_script("pass")
        _run(session)

        with pytest.raises(InvalidOperationError):
            session.begin_invoke(None, DataCollection())

    def test_requires_script(self):
        session = PythonEngine().create_session()

        with pytest.raises(InvalidOperationError, match="No script"):
            session.begin_invoke(None, DataCollection())

    def test_set_variable_after_start(self):
        session = PythonEngine().create_session()
        session.add_script("pass")
        _run(session)

        with pytest.raises(InvalidOperationError):
            session.set_variable("late", 1)

    def test_done_callback(self):
        """Done callbacks run once execution has finished, or immediately after."""
        session = PythonEngine().create_session()
        session.add_script("write_output(1)")
        calls = []
        session.add_done_callback(lambda s: calls.append(s.state))

        _run(session)
        session.add_done_callback(lambda s: calls.append("late"))

        assert calls == [SessionState.COMPLETED, "late"]

    def test_dispose_is_idempotent(self):
        with PythonEngine().create_session() as session:
            session.add_script("write_output(1)")
            _run(session)
        session.dispose()

        assert session.state == SessionState.DISPOSED

    def test_worker_finishing_after_dispose_keeps_disposed(self, monkeypatch):
        """A worker that outlives dispose() leaves the state and resources alone."""
        monkeypatch.setattr(base, "JOIN_TIMEOUT", 0.1)
        gate = threading.Event()
        session = PythonEngine().create_session()
        session.set_variable("gate", gate)
        session.add_script("gate.wait()")
        release = MagicMock()
        monkeypatch.setattr(session, "_release", release)
        session.begin_invoke(None, DataCollection())

        session.dispose()
        gate.set()
        assert session.wait(timeout=5)
        session.dispose()

        assert session.state == SessionState.DISPOSED
        release.assert_called_once()


class TestRegistry:
    """Tests for engine lookup."""

    def test_default_engine_is_python(self):
        assert isinstance(get_engine(), PythonEngine)


class TestEngineContract:
    """Tests for the base classes engines build on."""

    def test_engine_must_override_create_session(self):
        with pytest.raises(NotImplementedError):
            Engine().create_session()

    def test_session_without_execute_fails_the_run(self):
        session = ScriptSession()
        session.add_script("anything")

        _run(session)

        assert session.state == SessionState.FAILED
        with pytest.raises(ScriptTerminatedError, match="Engine failure"):
            session.end_invoke()
