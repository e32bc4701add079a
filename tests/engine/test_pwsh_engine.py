"""Tests for the pwsh engine."""

import io
import json
import logging
import shutil
from datetime import datetime
from enum import Enum

import pytest

from runspace.convert import to_native
from runspace.engine import PwshEngine, SessionState, get_engine, pwsh as pwsh_module
from runspace.engine.pwsh import PwshSession, build_wrapper, decode_native, encode_native
from runspace.errors import EngineNotFoundError, EngineUnavailableError, ScriptTerminatedError
from runspace.native import DataCollection, PropertyBag
from runspace.runner import get_records, run_script
from runspace.values import Record

requires_pwsh = pytest.mark.skipif(shutil.which("pwsh") is None, reason="pwsh not installed")


class Mode(Enum):
    FAST = 1


class TestEncoding:
    """Tests for the JSON line encoding used with the wrapper."""

    def test_encode_property_bag(self):
        native = to_native(Record.from_dict({"a": 1, "b": {"c": ["x"]}}))

        assert json.loads(encode_native(native)) == {"a": 1, "b": {"c": ["x"]}}

    def test_encode_dates_and_enums(self):
        line = encode_native(PropertyBag(when=datetime(2025, 1, 1, 9, 30), mode=Mode.FAST))

        assert json.loads(line) == {"when": "2025-01-01T09:30:00", "mode": "FAST"}

    def test_decode_objects_as_property_bags(self):
        value = decode_native('{"prop1": "one", "prop2": {"n": 2}}')

        assert value == PropertyBag(prop1="one", prop2=PropertyBag(n=2))

    def test_build_wrapper_embeds_script(self):
        wrapper = build_wrapper("Write-Output '100%'")

        assert "Write-Output '100%'" in wrapper
        assert "__RunspaceEmit" in wrapper


class TestDispatchLine:
    """Tests for routing wrapper output lines."""

    def _session(self):
        return PwshSession("pwsh")

    def test_output(self):
        session = self._session()
        output = DataCollection()

        session.dispatch_line('{"stream": "output", "value": {"prop1": "one"}}\n', output)

        assert output[0] == PropertyBag(prop1="one")

    def test_error_warning_information(self):
        session = self._session()
        output = DataCollection()

        session.dispatch_line('{"stream": "error", "value": "error"}', output)
        session.dispatch_line('{"stream": "warning", "value": "warning"}', output)
        session.dispatch_line('{"stream": "information", "value": "hi"}', output)

        assert len(output) == 0
        assert session.streams.error[0].exception.message == "error"
        assert session.streams.warning[0].message == "warning"
        assert session.streams.information[0].message_data == "hi"

    def test_terminating_is_logged_as_error(self):
        session = self._session()

        session.dispatch_line('{"stream": "terminating", "value": "boom"}', DataCollection())

        assert session.streams.error[0].exception.message == "boom"

    def test_raw_text_becomes_information(self):
        session = self._session()
        output = DataCollection()

        session.dispatch_line("plain console text", output)
        session.dispatch_line("", output)

        assert len(output) == 0
        assert len(session.streams.information) == 1
        assert session.streams.information[0].message_data == "plain console text"

    def test_unknown_stream_is_reported(self, caplog):
        session = self._session()

        with caplog.at_level(logging.WARNING):
            session.dispatch_line('{"stream": "verbose", "value": "x"}', DataCollection())

        assert "Unknown stream" in caplog.text


class TestPwshEngine:
    """Tests for PwshEngine availability."""

    def test_missing_executable(self):
        engine = PwshEngine(executable="definitely-not-pwsh-xyz")

        assert not engine.is_available()
        with pytest.raises(EngineUnavailableError):
            engine.create_session()

    def test_get_engine_pwsh(self):
        engine = get_engine("pwsh", pwsh_path="/opt/pwsh")

        assert isinstance(engine, PwshEngine)
        assert engine.executable == "/opt/pwsh"

    def test_unknown_engine(self):
        with pytest.raises(EngineNotFoundError, match="Unknown engine"):
            get_engine("bash")


class _ExitedProcess:
    """Stands in for a pwsh process that has already written its output and exited."""

    def __init__(self, lines, returncode=0):
        self.stdin = io.StringIO()
        self.stdout = io.StringIO("".join(line + "\n" for line in lines))
        self.stderr = io.StringIO()
        self.returncode = returncode

    def poll(self):
        return self.returncode

    def wait(self):
        return self.returncode

    def terminate(self):
        pass

    def kill(self):
        pass


class TestPwshSessionExit:
    """Tests for a pwsh process that exits while input is still open."""

    def _invoke(self, monkeypatch, process):
        monkeypatch.setattr(pwsh_module.subprocess, "Popen", lambda *args, **kwargs: process)
        session = PwshSession("pwsh")
        session.add_script("exit 0")
        input = DataCollection()  # never completed, like an idle stdin source
        output = DataCollection()
        session.begin_invoke(input, output)
        return session, output

    def test_early_exit_does_not_wait_for_input(self, monkeypatch):
        process = _ExitedProcess(['{"stream": "output", "value": "one"}'])

        session, output = self._invoke(monkeypatch, process)

        assert session.wait(timeout=5)
        session.end_invoke()
        assert output[0] == "one"
        assert session.state == SessionState.COMPLETED
        session.dispose()

    def test_terminating_exit_with_open_input(self, monkeypatch):
        process = _ExitedProcess(['{"stream": "terminating", "value": "boom"}'], returncode=1)

        session, _ = self._invoke(monkeypatch, process)

        assert session.wait(timeout=5)
        with pytest.raises(ScriptTerminatedError, match="boom"):
            session.end_invoke()
        session.dispose()


@requires_pwsh
@pytest.mark.integration
class TestPwshIntegration:
    """End-to-end runs against a real pwsh."""

    def test_reads_output_stream(self):
        result = run_script("Write-Output 'one'; Write-Output 'two'", engine=PwshEngine())

        assert result == ["one", "two"]

    def test_logs_errors_and_warnings(self, caplog):
        script = "Write-Output 'one'; Write-Error 'error'; Write-Output 'two'; Write-Warning 'warning'"

        with caplog.at_level(logging.WARNING, logger="runspace.script"):
            result = run_script(script, engine=PwshEngine())

        assert result == ["one", "two"]
        messages = [r.getMessage() for r in caplog.records if r.name == "runspace.script"]
        assert sorted(messages) == ["error", "warning"]

    def test_pscustomobject(self):
        records = get_records(
            "[pscustomobject]@{ prop1 = 'one' ; prop2 = 2 } | Write-Output",
            engine=PwshEngine(),
        )

        assert records == [Record.create(prop1="one", prop2=2)]

    def test_variables(self):
        records = get_records(
            "$var1, $var2 | Write-Output",
            Record.create(var1="ABC", var2="DEF"),
            engine=PwshEngine(),
        )

        assert records == [Record.primitive("ABC"), Record.primitive("DEF")]

    def test_input(self):
        records = get_records(
            "$input | ForEach-Object { Write-Output $_ }",
            input=[
                Record.create(key1=1, key2="two"),
                Record.create(key3=3, key4=("four", "forty")),
            ],
            engine=PwshEngine(),
        )

        assert records == [
            Record.create(key1=1, key2="two"),
            Record.create(key3=3, key4=("four", "forty")),
        ]
