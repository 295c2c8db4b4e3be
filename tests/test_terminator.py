import asyncio
import time

import pytest

from privatepdf.ollama.errors import TerminateError
from privatepdf.ollama.terminator import (
    LinuxTerminator,
    MacTerminator,
    ServiceTerminator,
    WindowsTerminator,
    get_terminator,
    stop_on_exit,
)


class _FakeProc:
    def __init__(self, returncode: int, stderr: str = ""):
        self.returncode = returncode
        self._stderr = stderr.encode("utf-8")

    async def communicate(self):
        return b"", self._stderr


@pytest.mark.asyncio
async def test_stop_runs_platform_command(monkeypatch):
    calls: list[tuple[str, ...]] = []

    async def _fake_exec(*cmd, **kwargs):
        calls.append(tuple(cmd))
        return _FakeProc(0)

    monkeypatch.setattr(asyncio, "create_subprocess_exec", _fake_exec)

    message = await LinuxTerminator().stop()

    assert message == "Ollama service stopped"
    assert calls == [("pkill", "-f", "ollama serve")]


@pytest.mark.asyncio
@pytest.mark.parametrize("returncode", [1, 128])
async def test_nothing_to_kill_still_succeeds(monkeypatch, returncode):
    async def _fake_exec(*cmd, **kwargs):
        return _FakeProc(returncode, stderr="process not found")

    monkeypatch.setattr(asyncio, "create_subprocess_exec", _fake_exec)

    message = await WindowsTerminator().stop()

    assert message == "Ollama stop attempted (may not have been running)"


@pytest.mark.asyncio
async def test_unrunnable_kill_command_is_terminate_error(monkeypatch):
    async def _fake_exec(*cmd, **kwargs):
        raise FileNotFoundError("pkill")

    monkeypatch.setattr(asyncio, "create_subprocess_exec", _fake_exec)

    with pytest.raises(TerminateError, match="Failed to stop Ollama"):
        await MacTerminator().stop()


def test_get_terminator_commands():
    assert get_terminator("macos").command == ("pkill", "-f", "ollama")
    assert get_terminator("windows").command == ("taskkill", "/F", "/IM", "ollama.exe")
    assert get_terminator("linux").command == ("pkill", "-f", "ollama serve")


class _ScriptedTerminator(ServiceTerminator):
    def __init__(self, delay: float = 0.0, error: Exception | None = None):
        super().__init__()
        self.delay = delay
        self.error = error

    async def stop(self) -> str:
        await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return "Ollama service stopped"


def test_stop_on_exit_success():
    assert stop_on_exit(_ScriptedTerminator(), timeout=5.0) is True


def test_stop_on_exit_swallows_failure():
    terminator = _ScriptedTerminator(error=TerminateError("Failed to stop Ollama: denied"))
    assert stop_on_exit(terminator, timeout=5.0) is False


def test_stop_on_exit_is_bounded():
    started = time.monotonic()
    finished = stop_on_exit(_ScriptedTerminator(delay=10.0), timeout=0.2)

    assert finished is False
    assert time.monotonic() - started < 5.0


class _HungProc:
    def __init__(self):
        self.returncode = None
        self.killed = False
        self.reaped = False

    async def communicate(self):
        await asyncio.sleep(30)

    def kill(self):
        self.killed = True

    async def wait(self):
        self.reaped = True
        self.returncode = -9
        return self.returncode


@pytest.mark.asyncio
async def test_hung_kill_command_is_killed_and_reaped(monkeypatch):
    proc = _HungProc()

    async def _fake_exec(*cmd, **kwargs):
        return proc

    monkeypatch.setattr(asyncio, "create_subprocess_exec", _fake_exec)

    with pytest.raises(TerminateError, match="timed out"):
        await LinuxTerminator(timeout=0.05).stop()

    assert proc.killed is True
    assert proc.reaped is True
