import asyncio
import logging
from typing import AsyncIterator, Literal
from pydantic import BaseModel
from mcnode.core.config import Settings
from mcnode.utils.paths import ServerPaths


logger = logging.getLogger(__name__)


class LogEvent(BaseModel):
    kind: Literal["line", "keepalive"]
    data: str = ""


class LogTailStreamer():
    """
    Follows logs/latest.log with `tail -F`, which keeps following across
    truncation and log rotation.
    """

    def __init__(self, settings: Settings, paths: ServerPaths):
        self.lines = settings.LOG_TAIL_LINES
        self.line_limit = settings.LOG_LINE_LIMIT
        self.keepalive = settings.LOG_KEEPALIVE_SECONDS
        self.paths = paths

    def command(self, name: str) -> list[str]:
        return ["tail", "-n", str(self.lines), "-F", str(self.paths.log(name))]

    async def follow(self, name: str) -> AsyncIterator[LogEvent]:
        log_file = self.paths.log(name)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        proc = await asyncio.subprocess.create_subprocess_exec(
                *self.command(name),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                limit=self.line_limit,
                )
        logger.debug("Following %s (tail PID %s)", log_file, proc.pid)
        try:
            while True:
                try:
                    line = await asyncio.wait_for(proc.stdout.readline(),
                                                  self.keepalive)
                except asyncio.TimeoutError:
                    yield LogEvent(kind="keepalive")
                    continue
                except (ValueError, asyncio.LimitOverrunError) as e:
                    if isinstance(e, asyncio.LimitOverrunError):
                        await proc.stdout.read(self.line_limit)
                    # Otherwise readline already discarded the buffer
                    logger.debug("Dropped a log line over %d bytes from %s",
                                 self.line_limit, log_file)
                    continue
                if not line:
                    # tail itself went away
                    return
                sanitized_line = line.decode("utf-8", errors="replace")
                sanitized_line = sanitized_line.rstrip("\r\n")
                if sanitized_line:
                    yield LogEvent(kind="line", data=sanitized_line)
        finally:
            if proc.returncode is None:
                try:
                    proc.terminate()
                except ProcessLookupError:
                    pass
                await proc.wait()
            logger.debug("Stopped following %s", log_file)
