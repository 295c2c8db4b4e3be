"""Service terminator — stop Ollama when the app closes.

Runs unconditionally at shutdown, so "nothing to kill" counts as success.
Only a kill command that cannot be executed at all is an error.
"""

import asyncio
import logging
import threading

from privatepdf.config import get_os

from .errors import TerminateError

logger = logging.getLogger(__name__)


async def _kill(proc: asyncio.subprocess.Process) -> None:
    """Kill a hung child and reap it."""
    try:
        proc.kill()
    except ProcessLookupError:
        pass
    await proc.wait()


class ServiceTerminator:
    """Runs one platform kill command and interprets its exit code."""

    platform_name = "generic"
    command: tuple[str, ...] = ()

    def __init__(self, timeout: float = 10.0) -> None:
        self.timeout = timeout

    async def stop(self) -> str:
        logger.info("Executing: %s", " ".join(self.command))
        try:
            proc = await asyncio.create_subprocess_exec(
                *self.command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.warning("Failed to stop Ollama on %s: %s", self.platform_name, e)
            raise TerminateError(f"Failed to stop Ollama: {e}") from e

        try:
            _, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except TimeoutError as e:
            await _kill(proc)
            logger.warning("Stop command timed out on %s", self.platform_name)
            raise TerminateError(
                f"Failed to stop Ollama: '{' '.join(self.command)}' timed out "
                f"after {self.timeout:.0f}s"
            ) from e

        if proc.returncode == 0:
            logger.info("Ollama stopped (%s)", self.platform_name)
            return "Ollama service stopped"

        # pkill exits 1 and taskkill 128 when nothing matched
        detail = (stderr or b"").decode(errors="replace").strip()
        logger.info("Ollama may not be running or already stopped: %s", detail or proc.returncode)
        return "Ollama stop attempted (may not have been running)"


class MacTerminator(ServiceTerminator):
    platform_name = "macos"
    command = ("pkill", "-f", "ollama")


class WindowsTerminator(ServiceTerminator):
    platform_name = "windows"
    command = ("taskkill", "/F", "/IM", "ollama.exe")


class LinuxTerminator(ServiceTerminator):
    platform_name = "linux"
    command = ("pkill", "-f", "ollama serve")


def get_terminator(os_key: str | None = None) -> ServiceTerminator:
    os_key = os_key or get_os()
    if os_key == "windows":
        return WindowsTerminator()
    if os_key == "macos":
        return MacTerminator()
    return LinuxTerminator()


def stop_on_exit(terminator: ServiceTerminator, timeout: float = 5.0) -> bool:
    """Blocking, bounded stop for shutdown hooks.

    Runs ``terminator.stop()`` on a daemon thread with its own event loop and
    waits at most ``timeout`` seconds.  Returns True when the stop finished in
    time without error; never raises.
    """
    outcome: dict[str, object] = {}

    def _worker() -> None:
        try:
            outcome["message"] = asyncio.run(terminator.stop())
        except Exception as e:
            outcome["error"] = e

    logger.info("Window closing, stopping Ollama service...")
    thread = threading.Thread(target=_worker, name="ollama-shutdown", daemon=True)
    thread.start()
    thread.join(timeout)

    if thread.is_alive():
        logger.warning("Ollama stop did not finish within %.1fs; exiting anyway", timeout)
        return False
    if "error" in outcome:
        logger.warning("Ollama stop failed: %s", outcome["error"])
        return False
    logger.info("%s", outcome.get("message"))
    return True
