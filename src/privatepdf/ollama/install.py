"""Install workflow — download Ollama's release zip and unpack it locally.

Linear pipeline; the first failing stage aborts the rest:

    1. pick the release URL (generic or ROCm/AMD GPU build)
    2. create the app-data root
    3. stream the zip to ``ollama_temp.zip``       -> ollama_download_progress
    4. unpack into ``<app data>/ollama``           -> ollama_extraction_progress
    5. delete the temp zip (best effort)
    6. check ``ollama.exe`` is really there

Status events go out as ``ollama_download_status``:
downloading -> extracting -> completed (or ``error``).
"""

import asyncio
import logging
import shutil
import zipfile
from pathlib import Path, PureWindowsPath

from privatepdf.config import get_os

from .errors import FilesystemError, OllamaError, TransportError, UnsupportedPlatformError
from .events import (
    DOWNLOAD_PROGRESS,
    DOWNLOAD_STATUS,
    EXTRACTION_PROGRESS,
    ProgressSink,
    emit,
    threadsafe_sink,
)
from .models import DownloadProgress, ExtractionProgress, InstallStatus
from .transport import OllamaTransport, iter_body

logger = logging.getLogger(__name__)

GENERIC_RELEASE_URL = (
    "https://github.com/ollama/ollama/releases/latest/download/ollama-windows-amd64.zip"
)
GPU_RELEASE_URL = (
    "https://github.com/ollama/ollama/releases/latest/download/ollama-windows-amd64-rocm.zip"
)

MIB = 1_048_576
EXTRACTION_REPORT_EVERY = 10


def select_release_url(is_amd_gpu: bool) -> str:
    return GPU_RELEASE_URL if is_amd_gpu else GENERIC_RELEASE_URL


def _safe_target(root: Path, member_name: str) -> Path:
    """Map an archive entry name to a path inside ``root`` or refuse it."""
    name = member_name.replace("\\", "/")
    if not name or name.startswith("/") or PureWindowsPath(member_name).drive:
        raise FilesystemError(f"Refusing to extract '{member_name}': absolute path in archive")
    target = (root / name).resolve()
    if target != root and not target.is_relative_to(root):
        raise FilesystemError(
            f"Refusing to extract '{member_name}': path escapes the installation directory"
        )
    return target


def extract_archive(archive_path: Path, install_dir: Path, sink: ProgressSink | None = None) -> int:
    """Unpack ``archive_path`` into ``install_dir``; returns the number of entries.

    Every entry is checked before anything is written, so a single escaping
    entry leaves the filesystem untouched.
    """
    try:
        archive = zipfile.ZipFile(archive_path)
    except (OSError, zipfile.BadZipFile) as e:
        raise FilesystemError(f"Failed to read ZIP archive: {e}") from e

    with archive:
        try:
            install_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FilesystemError(f"Failed to create installation directory: {e}") from e
        root = install_dir.resolve()

        members = archive.infolist()
        targets = [_safe_target(root, info.filename) for info in members]
        total_files = len(members)
        logger.info("Extracting %d files...", total_files)

        for index, (info, target) in enumerate(zip(members, targets)):
            try:
                if info.is_dir():
                    target.mkdir(parents=True, exist_ok=True)
                else:
                    target.parent.mkdir(parents=True, exist_ok=True)
                    with archive.open(info) as src, target.open("wb") as dst:
                        shutil.copyfileobj(src, dst)
                    mode = (info.external_attr >> 16) & 0o777
                    if mode and get_os() != "windows":
                        target.chmod(mode)
            except (OSError, zipfile.BadZipFile) as e:
                raise FilesystemError(f"Failed to extract '{info.filename}': {e}") from e

            if index % EXTRACTION_REPORT_EVERY == 0 or index == total_files - 1:
                emit(
                    sink,
                    EXTRACTION_PROGRESS,
                    ExtractionProgress(
                        current=index + 1,
                        total=total_files,
                        percent=((index + 1) / total_files) * 100.0,
                    ),
                )

    logger.info("Extraction completed")
    return total_files


class InstallWorkflow:
    """Downloads and unpacks a PrivatePDF-managed copy of Ollama.

    The caller guarantees at most one install runs at a time.
    """

    SUPPORTED_PLATFORMS = ("windows",)

    def __init__(
        self,
        transport: OllamaTransport,
        install_dir: Path,
        temp_archive: Path,
        *,
        executable_name: str = "ollama.exe",
        timeout: float = 600.0,
        os_key: str | None = None,
    ) -> None:
        self.transport = transport
        self.install_dir = install_dir
        self.temp_archive = temp_archive
        self.executable_name = executable_name
        self.timeout = timeout
        self.os_key = os_key or get_os()

    @property
    def executable_path(self) -> Path:
        return self.install_dir / self.executable_name

    async def run(self, is_amd_gpu: bool, sink: ProgressSink | None = None) -> Path:
        """Run the whole pipeline; returns the verified executable path."""
        logger.info("Starting Ollama ZIP installation (AMD GPU: %s)", is_amd_gpu)
        if self.os_key not in self.SUPPORTED_PLATFORMS:
            raise UnsupportedPlatformError("ZIP installation only supported on Windows")

        try:
            return await self._run(is_amd_gpu, sink)
        except OllamaError as e:
            emit(sink, DOWNLOAD_STATUS, InstallStatus(status="error", message=str(e)))
            raise

    async def _run(self, is_amd_gpu: bool, sink: ProgressSink | None) -> Path:
        url = select_release_url(is_amd_gpu)
        logger.info("Downloading from: %s", url)
        emit(
            sink,
            DOWNLOAD_STATUS,
            InstallStatus(status="downloading", message="Starting download..."),
        )

        logger.info("Will install to: %s", self.install_dir)
        try:
            self.temp_archive.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FilesystemError(f"Failed to create temp directory: {e}") from e

        try:
            downloaded = await self._download(url, sink)
            logger.info("Download completed: %d bytes", downloaded)

            emit(
                sink,
                DOWNLOAD_STATUS,
                InstallStatus(status="extracting", message="Extracting files..."),
            )
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(
                None,
                extract_archive,
                self.temp_archive,
                self.install_dir,
                threadsafe_sink(sink, loop),
            )
        finally:
            self._remove_temp_archive()

        if not self.executable_path.exists():
            raise FilesystemError(f"Extraction failed: {self.executable_name} not found")

        logger.info("Ollama successfully installed to: %s", self.install_dir)
        emit(
            sink,
            DOWNLOAD_STATUS,
            InstallStatus(status="completed", message="Installation complete!"),
        )
        return self.executable_path

    async def _download(self, url: str, sink: ProgressSink | None) -> int:
        async with self.transport.stream(
            "GET", url, timeout=self.timeout, follow_redirects=True
        ) as response:
            if not response.is_success:
                raise TransportError(f"Download failed: HTTP {response.status_code}")

            try:
                total_size = int(response.headers.get("content-length", 0))
            except ValueError:
                total_size = 0
            logger.info("Download size: %d bytes (%.2f MB)", total_size, total_size / MIB)

            try:
                out_file = self.temp_archive.open("wb")
            except OSError as e:
                raise FilesystemError(f"Failed to create temp file: {e}") from e

            downloaded = 0
            next_report = MIB
            with out_file:
                async for chunk in iter_body(response):
                    try:
                        out_file.write(chunk)
                    except OSError as e:
                        raise FilesystemError(f"Failed to write to temp file: {e}") from e
                    downloaded += len(chunk)

                    # At most one report per MiB crossed
                    if downloaded >= next_report:
                        next_report = (downloaded // MIB + 1) * MIB
                        emit(
                            sink,
                            DOWNLOAD_PROGRESS,
                            DownloadProgress(
                                downloaded=downloaded,
                                total=total_size,
                                percent=(downloaded / total_size) * 100.0 if total_size else 0.0,
                            ),
                        )

        emit(
            sink,
            DOWNLOAD_PROGRESS,
            DownloadProgress(downloaded=downloaded, total=total_size or downloaded, percent=100.0),
        )
        return downloaded

    def _remove_temp_archive(self) -> None:
        try:
            self.temp_archive.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Could not delete temporary archive %s: %s", self.temp_archive, e)
