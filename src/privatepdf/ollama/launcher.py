"""Service launcher — find a local Ollama and get ``ollama serve`` running.

Each platform is a :class:`ServiceLauncher` subclass holding an ordered list of
:class:`LaunchStrategy` objects.  Strategies are tried in order; the first one
that returns wins.  A failing strategy is logged and the next one runs.  Only
when every strategy has failed does the caller see an error, and that error
lists every attempt.

    Windows:  known install paths -> PATH lookup -> bare ``ollama serve``
    macOS:    ``ollama serve``    -> ``open -g -a Ollama`` (+ readiness check)
    Linux:    PATH / common dirs (else NotInstalledError)
              -> systemd user unit -> direct ``<path> serve``

Starting the server is asynchronous: success means "process spawned", and the
caller is expected to re-probe after a few seconds.
"""

import asyncio
import logging
import os
import shutil
import sys
from collections.abc import Sequence
from pathlib import Path

from privatepdf.config import Settings, get_install_dir, get_os, get_settings

from .errors import LaunchError, NotFoundError, NotInstalledError, OllamaError
from .probe import ServiceProbe

logger = logging.getLogger(__name__)

# Windows process creation flags: no console window, detached from ours
CREATE_NO_WINDOW = 0x08000000
DETACHED_PROCESS = 0x00000008

WAIT_MESSAGE = "Ollama server starting. Please wait a few seconds for it to initialize."

WINDOWS_NOT_FOUND_MESSAGE = (
    "Could not find or start Ollama. Please:\n"
    "1. Install Ollama from https://ollama.com/download/windows\n"
    "2. Or open Command Prompt and run: ollama serve\n"
    "3. Then click 'Check Status' in PrivatePDF"
)
LINUX_NOT_INSTALLED_MESSAGE = (
    "Ollama is not installed or not in PATH. "
    "Please install Ollama from https://ollama.com/download/linux"
)
MANUAL_START_MESSAGE = (
    "Failed to start Ollama. Please start it manually by running 'ollama serve' "
    "in a terminal, then click 'Check Status'."
)

# systemctl status: 0 active, 1/2 dead with pid/lock file, 3 inactive, 4 no such unit
_SYSTEMD_KNOWN_STATES = 3


async def spawn_detached(*cmd: str, windows_flags: bool = False) -> asyncio.subprocess.Process:
    """Spawn ``cmd`` with all stdio discarded; raises OSError if it cannot start."""
    kwargs: dict = {
        "stdin": asyncio.subprocess.DEVNULL,
        "stdout": asyncio.subprocess.DEVNULL,
        "stderr": asyncio.subprocess.DEVNULL,
    }
    if windows_flags and sys.platform == "win32":
        kwargs["creationflags"] = CREATE_NO_WINDOW | DETACHED_PROCESS
    elif sys.platform != "win32":
        # Own session so the server outlives a terminal closing on us
        kwargs["start_new_session"] = True
    return await asyncio.create_subprocess_exec(*cmd, **kwargs)


async def _run_exec(*cmd: str, timeout: float = 15.0) -> int:
    """Run a short command to completion and return its exit code."""
    proc = await asyncio.create_subprocess_exec(
        *cmd,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except TimeoutError as e:
        try:
            proc.kill()
        except ProcessLookupError:
            pass
        await proc.wait()
        raise LaunchError(f"'{' '.join(cmd)}' timed out after {timeout:.0f}s") from e
    return 1 if proc.returncode is None else proc.returncode


# ─── Strategies ──────────────────────────────────────────────────────────


class LaunchStrategy:
    """One way of getting the server started.

    ``attempt()`` returns a user-facing message on success and raises
    (``OllamaError`` or ``OSError``) on failure.
    """

    name = "strategy"

    async def attempt(self) -> str:
        raise NotImplementedError


class SpawnFromKnownPaths(LaunchStrategy):
    """Spawn the first existing executable out of a fixed, ordered path list."""

    name = "known install paths"

    def __init__(self, paths: Sequence[Path], *, windows_flags: bool = False) -> None:
        self.paths = list(paths)
        self.windows_flags = windows_flags

    async def attempt(self) -> str:
        logger.info("Will check these paths: %s", [str(p) for p in self.paths])
        for index, path in enumerate(self.paths, start=1):
            if not path.exists():
                logger.info("Path %d does not exist: %s", index, path)
                continue
            logger.info("Found Ollama at %s, launching '%s serve'", path, path)
            try:
                proc = await spawn_detached(str(path), "serve", windows_flags=self.windows_flags)
            except OSError as e:
                logger.error("Failed to spawn ollama server from %s: %s", path, e)
                continue
            logger.info("Ollama server spawned successfully! Process ID: %s", proc.pid)
            return WAIT_MESSAGE
        raise NotFoundError("Ollama executable not found in any known install path")


class SpawnFromPathLookup(LaunchStrategy):
    """Resolve the executable on PATH, then spawn it with ``serve``."""

    name = "PATH lookup"

    def __init__(self, executable: str = "ollama", *, windows_flags: bool = False) -> None:
        self.executable = executable
        self.windows_flags = windows_flags

    async def attempt(self) -> str:
        resolved = shutil.which(self.executable)
        if not resolved:
            raise NotFoundError(f"'{self.executable}' is not on PATH")
        logger.info("Found '%s' at: %s", self.executable, resolved)
        await spawn_detached(resolved, "serve", windows_flags=self.windows_flags)
        logger.info("Ollama server started from PATH: %s", resolved)
        return WAIT_MESSAGE


class SpawnCommand(LaunchStrategy):
    """Spawn ``<command> serve`` and let the OS resolve the command name."""

    name = "direct command"

    def __init__(
        self,
        command: str = "ollama",
        *,
        windows_flags: bool = False,
        message: str = WAIT_MESSAGE,
    ) -> None:
        self.command = command
        self.windows_flags = windows_flags
        self.message = message

    async def attempt(self) -> str:
        logger.info("Trying '%s serve' directly...", self.command)
        try:
            await spawn_detached(self.command, "serve", windows_flags=self.windows_flags)
        except OSError as e:
            raise LaunchError(f"Failed to run '{self.command} serve': {e}") from e
        logger.info("Ollama server started via '%s serve'", self.command)
        return self.message


class OpenApplication(LaunchStrategy):
    """macOS: launch the packaged app in the background; it starts the server.

    With a probe, success is only reported once the server answers.  Without
    one the launch is reported optimistically.
    """

    name = "Ollama.app"

    def __init__(
        self,
        app_name: str = "Ollama",
        probe: ServiceProbe | None = None,
        ready_timeout: float = 20.0,
    ) -> None:
        self.app_name = app_name
        self.probe = probe
        self.ready_timeout = ready_timeout

    async def attempt(self) -> str:
        logger.info("Launching %s.app with 'open -g -a %s'...", self.app_name, self.app_name)
        rc = await _run_exec("open", "-g", "-a", self.app_name)
        if rc != 0:
            raise NotFoundError(f"{self.app_name}.app could not be opened (exit code {rc})")

        if self.probe is None:
            logger.warning("%s.app launched; server readiness not verified", self.app_name)
            return "Ollama starting via app... Please wait 10-20 seconds for it to initialize."

        if not await self.probe.wait_until_ready(self.ready_timeout):
            raise LaunchError(
                f"{self.app_name}.app was opened but the server did not respond "
                f"within {self.ready_timeout:.0f} seconds"
            )
        return "Ollama started via app and is ready."


class SystemdUserUnit(LaunchStrategy):
    """Linux: start a ``systemctl --user`` unit when one exists."""

    name = "systemd user service"

    def __init__(self, unit: str = "ollama") -> None:
        self.unit = unit

    async def attempt(self) -> str:
        logger.info("Checking if Ollama is available as systemd service...")
        status_code = await _run_exec("systemctl", "--user", "status", self.unit)
        # Negative codes mean systemctl itself was killed by a signal
        if status_code < 0 or status_code > _SYSTEMD_KNOWN_STATES:
            raise NotFoundError(
                f"systemd user unit '{self.unit}' not found (exit code {status_code})"
            )

        logger.info("Ollama systemd service found, attempting to start...")
        start_code = await _run_exec("systemctl", "--user", "start", self.unit)
        if start_code != 0:
            raise LaunchError(f"'systemctl --user start {self.unit}' exited with {start_code}")
        logger.info("Ollama started via systemd (user service)")
        return "Ollama service started via systemd."


# ─── Platform launchers ──────────────────────────────────────────────────


class ServiceLauncher:
    """Runs an ordered strategy list; first success wins.

    Pass ``strategies`` to override the platform's own list (tests do).
    """

    platform_name = "generic"

    def __init__(self, strategies: Sequence[LaunchStrategy] | None = None) -> None:
        self._strategies = list(strategies) if strategies is not None else None

    def build_strategies(self) -> list[LaunchStrategy]:
        return []

    def exhausted_error(self, attempts: list[str]) -> OllamaError:
        return LaunchError(MANUAL_START_MESSAGE, attempts)

    async def start(self) -> str:
        logger.info("Attempting to start Ollama service on %s...", self.platform_name)
        strategies = self._strategies if self._strategies is not None else self.build_strategies()

        attempts: list[str] = []
        for index, strategy in enumerate(strategies, start=1):
            logger.info("Method %d: %s", index, strategy.name)
            try:
                message = await strategy.attempt()
            except (OllamaError, OSError) as e:
                logger.warning("Method %d (%s) failed: %s", index, strategy.name, e)
                attempts.append(f"{strategy.name}: {e}")
                continue
            return message

        logger.error("All methods failed to start Ollama server on %s", self.platform_name)
        raise self.exhausted_error(attempts)


class WindowsLauncher(ServiceLauncher):
    platform_name = "windows"

    def __init__(
        self,
        install_dir: Path,
        strategies: Sequence[LaunchStrategy] | None = None,
    ) -> None:
        super().__init__(strategies)
        self.install_dir = install_dir

    def known_paths(self) -> list[Path]:
        # PrivatePDF-managed install first, then the official installer locations
        paths = [self.install_dir / "ollama.exe"]
        local_app_data = os.environ.get("LOCALAPPDATA")
        if local_app_data:
            paths.append(Path(local_app_data) / "Programs" / "Ollama" / "ollama.exe")
        program_files = os.environ.get("PROGRAMFILES")
        if program_files:
            paths.append(Path(program_files) / "Ollama" / "ollama.exe")
        return paths

    def build_strategies(self) -> list[LaunchStrategy]:
        return [
            SpawnFromKnownPaths(self.known_paths(), windows_flags=True),
            SpawnFromPathLookup("ollama", windows_flags=True),
            SpawnCommand("ollama", windows_flags=True),
        ]

    def exhausted_error(self, attempts: list[str]) -> OllamaError:
        return NotFoundError(WINDOWS_NOT_FOUND_MESSAGE, attempts)


class MacLauncher(ServiceLauncher):
    platform_name = "macos"

    def __init__(
        self,
        probe: ServiceProbe | None = None,
        ready_timeout: float = 20.0,
        strategies: Sequence[LaunchStrategy] | None = None,
    ) -> None:
        super().__init__(strategies)
        self.probe = probe
        self.ready_timeout = ready_timeout

    def build_strategies(self) -> list[LaunchStrategy]:
        return [
            SpawnCommand(
                "ollama",
                message="Ollama starting... Please wait 10-20 seconds for it to initialize.",
            ),
            OpenApplication("Ollama", probe=self.probe, ready_timeout=self.ready_timeout),
        ]


class LinuxLauncher(ServiceLauncher):
    platform_name = "linux"

    COMMON_PATHS = (
        Path("/usr/local/bin/ollama"),
        Path("/usr/bin/ollama"),
        Path("/opt/ollama/bin/ollama"),
    )

    def common_paths(self) -> list[Path]:
        return [*self.COMMON_PATHS, Path.home() / ".local" / "bin" / "ollama"]

    def resolve_binary(self) -> Path:
        """PATH first, then the common install dirs; NotInstalledError if neither."""
        found = shutil.which("ollama")
        if found:
            logger.info("Found ollama at: %s", found)
            return Path(found)

        logger.info("'ollama' not on PATH, checking common installation paths...")
        for path in self.common_paths():
            if path.exists():
                logger.info("Found ollama at: %s", path)
                return path

        logger.error("Ollama binary not found in PATH or common installation paths")
        raise NotInstalledError(
            LINUX_NOT_INSTALLED_MESSAGE,
            attempts=["PATH lookup: not found"]
            + [f"{p}: does not exist" for p in self.common_paths()],
        )

    def build_strategies(self) -> list[LaunchStrategy]:
        binary = self.resolve_binary()
        return [
            SystemdUserUnit("ollama"),
            SpawnCommand(
                str(binary),
                message="Ollama service started. Please wait a few seconds for it to initialize.",
            ),
        ]


def get_launcher(
    settings: Settings | None = None,
    probe: ServiceProbe | None = None,
    os_key: str | None = None,
) -> ServiceLauncher:
    """Pick the launcher variant for this (or the given) operating system."""
    settings = settings or get_settings()
    os_key = os_key or get_os()
    if os_key == "windows":
        return WindowsLauncher(get_install_dir(settings))
    if os_key == "macos":
        return MacLauncher(
            probe=probe if settings.verify_app_launch else None,
            ready_timeout=settings.app_launch_timeout,
        )
    return LinuxLauncher()
