"""
Tool Invoker

Runs clang with the FP16 demotion plugin against a workspace:

    <clang> -fplugin=<plugin> <source> -Xclang -plugin-arg-<name> -Xclang <flag> -c

The command runs without a shell, with the workspace as current directory.
stdout/stderr are spooled to anonymous temp files and read back up to a fixed
bound, so a chatty tool cannot grow memory without limit. A non-zero exit or
a failure to start is reported in the result (the tool may still have written
artifacts); only a timeout raises.
"""

import subprocess
import tempfile
import time
from typing import IO, List, Optional, Tuple

from shared.config import Config
from shared.errors import ToolTimeoutError
from shared.logging_config import get_pipeline_logger
from shared.models import ToolInvocationResult

from Pipeline.workers.workspace_manager.workspace_manager import Workspace

logger = get_pipeline_logger("tool_invoker")


def _read_bounded(stream: IO[bytes], limit: int) -> Tuple[str, bool]:
    stream.seek(0)
    data = stream.read(limit + 1)
    truncated = len(data) > limit
    if truncated:
        data = data[:limit]
    return data.decode("utf-8", errors="replace"), truncated


class ToolInvoker:
    """Single-attempt runner for the external transformation tool."""

    def __init__(self, config: Optional[Config] = None):
        self.config = config or Config()

    def build_command(self, workspace: Workspace) -> List[str]:
        return [
            self.config.clang_path,
            f"-fplugin={self.config.plugin_path}",
            workspace.source_filename,
            "-Xclang",
            f"-plugin-arg-{self.config.plugin_name}",
            "-Xclang",
            self.config.analysis_flag,
            "-c",
        ]

    def invoke(self, workspace: Workspace) -> ToolInvocationResult:
        command = self.build_command(workspace)
        timeout = self.config.tool_timeout_seconds
        limit = self.config.tool_max_output_bytes

        logger.info(f"🔧 Running tool in workspace {workspace.workspace_id}")
        logger.debug(f"⚙️  Command: {' '.join(command)}")

        start_time = time.monotonic()
        with tempfile.TemporaryFile() as out_file, tempfile.TemporaryFile() as err_file:
            try:
                completed = subprocess.run(
                    command,
                    cwd=workspace.path,
                    stdin=subprocess.DEVNULL,
                    stdout=out_file,
                    stderr=err_file,
                    timeout=timeout,
                    check=False,
                )
            except subprocess.TimeoutExpired:
                elapsed = time.monotonic() - start_time
                logger.error(f"⏰ Tool timed out after {elapsed:.1f}s (limit {timeout}s); process killed")
                raise ToolTimeoutError(
                    f"Analysis tool timed out after {timeout:g} seconds", timeout_seconds=timeout
                )
            except OSError as e:
                logger.error(f"🚫 Could not start tool '{command[0]}': {e}")
                return ToolInvocationResult(
                    success=False,
                    failure_reason=f"Failed to start tool: {e}",
                    exit_status=None,
                    command=command,
                    duration_seconds=time.monotonic() - start_time,
                )

            duration = time.monotonic() - start_time
            stdout, stdout_truncated = _read_bounded(out_file, limit)
            stderr, stderr_truncated = _read_bounded(err_file, limit)

        if stdout_truncated or stderr_truncated:
            logger.warning(f"⚠️ Tool output exceeded {limit} bytes and was truncated")

        returncode = completed.returncode
        failure_reason = None
        if returncode < 0:
            failure_reason = f"Tool terminated by signal {-returncode}"
        elif returncode > 0:
            failure_reason = f"Tool exited with status {returncode}"

        if failure_reason:
            logger.warning(f"❌ {failure_reason} after {duration:.2f}s")
        else:
            logger.info(f"✅ Tool completed in {duration:.2f}s")

        return ToolInvocationResult(
            success=returncode == 0,
            stdout=stdout,
            stderr=stderr,
            failure_reason=failure_reason,
            exit_status=returncode,
            command=command,
            duration_seconds=duration,
            stdout_truncated=stdout_truncated,
            stderr_truncated=stderr_truncated,
        )
