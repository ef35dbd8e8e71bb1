"""
yt-dlp process orchestration.

Every invocation goes through a runner with the signature
``runner(args, timeout) -> ProcessResult``. The default runner launches the
binary with a discrete argument vector (never through a shell), tests swap it
for a stub.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, Sequence

from media_pipeline.errors import ExtractionError
from media_pipeline.models import ProcessResult

logger = logging.getLogger(__name__)

Runner = Callable[[Sequence[str], Optional[float]], Awaitable[ProcessResult]]

# Keep stderr excerpts short in logs
MAX_DIAGNOSTICS_LENGTH = 2000


async def run_process(args: Sequence[str], timeout: Optional[float] = None) -> ProcessResult:
    """
    Run an external process and capture its output.

    Args:
        args: Program and arguments, passed as-is to exec
        timeout: Seconds to wait before killing the process (None = no limit)

    Returns:
        ProcessResult with decoded stdout, stderr and exit code

    Raises:
        ExtractionError: If the program cannot be started or times out
    """
    try:
        process = await asyncio.create_subprocess_exec(
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except (FileNotFoundError, PermissionError) as e:
        raise ExtractionError(
            "Extraction tool is not available",
            diagnostics=f"{type(e).__name__}: {e}",
        ) from e

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        raise ExtractionError(
            "Extraction timed out",
            diagnostics=f"{args[0]} killed after {timeout}s",
        )
    except asyncio.CancelledError:
        # Client went away, do not leave the child running
        if process.returncode is None:
            process.kill()
            await process.wait()
        raise

    return ProcessResult(
        stdout=stdout.decode('utf-8', errors='replace'),
        stderr=stderr.decode('utf-8', errors='replace'),
        exit_code=process.returncode if process.returncode is not None else -1,
    )


class YtDlp:
    """
    Thin async wrapper around the yt-dlp command line.

    Args:
        binary: Executable name or path
        timeout: Per-call timeout in seconds (None = wait for exit)
        runner: Process runner, defaults to run_process
    """

    def __init__(self, binary: str = "yt-dlp", timeout: Optional[float] = None, runner: Optional[Runner] = None):
        self.binary = binary
        self.timeout = timeout
        self.runner = runner or run_process

    async def run(self, args: Sequence[str], failure_message: str) -> ProcessResult:
        """
        Run yt-dlp with the given arguments.

        Raises:
            ExtractionError: On non-zero exit (stderr kept for logs only)
        """
        argv = [self.binary, *args]
        logger.debug(f"[YTDLP] Running: {argv}")
        result = await self.runner(argv, self.timeout)

        if result.exit_code != 0:
            diagnostics = result.stderr.strip()[-MAX_DIAGNOSTICS_LENGTH:]
            logger.error(f"[YTDLP] ✗ Exit code {result.exit_code}: {diagnostics}")
            raise ExtractionError(failure_message, diagnostics=diagnostics, exit_code=result.exit_code)
        return result

    async def fetch_metadata(self, url: str) -> dict[str, Any]:
        """
        Dump the metadata document of one post without downloading media.

        Partial or truncated output is a hard failure.

        Raises:
            ExtractionError: On non-zero exit or unparseable output
        """
        logger.info(f"[YTDLP] Fetching metadata: {url}")
        result = await self.run(['--dump-json', '--skip-download', url], "Failed to extract metadata")

        output = result.stdout.strip()
        if not output:
            logger.error(f"[YTDLP] ✗ Empty output for {url}")
            raise ExtractionError("Failed to extract metadata", diagnostics="empty stdout")

        try:
            document = json.loads(output)
        except json.JSONDecodeError as e:
            logger.error(f"[YTDLP] ✗ Unparseable output for {url}: {e}")
            raise ExtractionError("Failed to extract metadata", diagnostics=str(e)) from e

        if not isinstance(document, dict):
            raise ExtractionError("Failed to extract metadata", diagnostics="metadata is not an object")
        return document

    async def fetch_feed(self, url: str, limit: int) -> list[dict[str, Any]]:
        """
        Dump metadata for the first `limit` items of a profile feed.

        yt-dlp prints one JSON document per line, malformed lines are skipped.
        """
        logger.info(f"[YTDLP] Fetching feed: {url} (limit: {limit})")
        result = await self.run(
            ['--playlist-items', f'1:{limit}', '--dump-json', '--skip-download', url],
            "Failed to fetch profile feed",
        )

        documents = []
        for line in result.stdout.splitlines():
            line = line.strip()
            if not line:
                continue
            try:
                document = json.loads(line)
            except json.JSONDecodeError as e:
                logger.warning(f"[YTDLP] Skipping malformed feed line: {e}")
                continue
            if isinstance(document, dict):
                documents.append(document)

        logger.info(f"[YTDLP] Parsed {len(documents)} feed item(s)")
        return documents

    async def download_video(self, url: str, output: Path) -> Path:
        await self.run(
            ['--format', 'best[ext=mp4]', '--force-overwrites', '-o', str(output), url],
            "Failed to download video",
        )
        return output

    async def download_slideshow_video(self, url: str, output: Path) -> Path:
        """TikTok serves slideshows as a compiled video asset, merge it to mp4."""
        await self.run(
            ['--format', 'best', '--force-overwrites', '--merge-output-format', 'mp4', '-o', str(output), url],
            "Failed to download slideshow video",
        )
        return output

    async def download_audio(self, url: str, output_stem: Path) -> Path:
        """
        Extract the audio track as mp3.

        Args:
            output_stem: Output path without extension

        Returns:
            Path of the produced .mp3 file
        """
        template = f"{output_stem}.%(ext)s"
        await self.run(
            ['--extract-audio', '--audio-format', 'mp3', '--force-overwrites', '-o', template, url],
            "Failed to download audio",
        )
        return output_stem.with_name(output_stem.name + '.mp3')

    async def download_batch(self, batch_file: Path, output_pattern: str) -> None:
        """Download every URL listed in batch_file with a single invocation."""
        await self.run(
            [
                '--batch-file', str(batch_file),
                '--format', 'best[ext=mp4]/best',
                '--merge-output-format', 'mp4',
                '--force-overwrites',
                '-o', output_pattern,
            ],
            "Failed to download videos",
        )

    async def download_feed(self, url: str, count: int, output_pattern: str) -> None:
        """Download the latest `count` items of a profile."""
        await self.run(
            [
                '--playlist-items', f'1-{count}',
                '--format', 'best[ext=mp4]/best',
                '--merge-output-format', 'mp4',
                '--force-overwrites',
                '-o', output_pattern,
                url,
            ],
            "Failed to download profile videos",
        )
