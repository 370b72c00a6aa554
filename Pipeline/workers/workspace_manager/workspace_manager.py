"""
Workspace Manager

Gives every analysis request its own directory under the workspace root. The
plugin writes demoted.c, memory_analysis.txt and float_map.json into its
current directory, so two requests sharing a directory would read each
other's artifacts. Directory names come from a uuid4 token only, never from
the uploaded filename.
"""

import shutil
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from uuid import uuid4

from shared.config import Config
from shared.errors import WorkspaceError
from shared.logging_config import get_pipeline_logger

logger = get_pipeline_logger("workspace_manager")

WORKSPACE_PREFIX = "ws_"
SOURCE_STEM = "source"
DEFAULT_SOURCE_SUFFIX = ".c"


@dataclass(frozen=True)
class Workspace:
    """A directory exclusively owned by one in-flight request."""
    workspace_id: str
    path: Path
    source_path: Path
    original_name: str

    @property
    def source_filename(self) -> str:
        return self.source_path.name


def source_filename_for(original_name: str) -> str:
    """Deterministic name for the materialized source: ``source`` + original extension."""
    suffix = Path(original_name).suffix.lower()
    return f"{SOURCE_STEM}{suffix or DEFAULT_SOURCE_SUFFIX}"


class WorkspaceManager:
    """Allocates and releases per-request workspaces under ``config.workspace_root``."""

    def __init__(self, config: Optional[Config] = None):
        self.config = config or Config()
        self.root = Path(self.config.workspace_root)
        self._initialized = False
        self._init_lock = threading.Lock()

    def initialize(self) -> Path:
        """Create the workspace root. Safe to call more than once; meant for process start."""
        with self._init_lock:
            if self._initialized:
                return self.root
            try:
                self.root.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise WorkspaceError(f"Could not create workspace root {self.root}: {e}") from e
            self._initialized = True
            logger.info(f"📁 Workspace root ready at: {self.root}")
            return self.root

    def acquire(self, source_bytes: bytes, original_name: str) -> Workspace:
        """Create a fresh workspace and write the submitted source into it."""
        workspace_id = uuid4().hex
        path = self.root / f"{WORKSPACE_PREFIX}{workspace_id}"
        try:
            # exist_ok=False: a name collision must fail, never share a directory
            path.mkdir(exist_ok=False)
        except OSError as e:
            raise WorkspaceError(f"Could not create workspace {path}: {e}") from e

        source_path = path / source_filename_for(original_name)
        try:
            source_path.write_bytes(source_bytes)
        except OSError as e:
            shutil.rmtree(path, ignore_errors=True)
            raise WorkspaceError(f"Could not write source into workspace {path}: {e}") from e

        logger.info(f"Acquired workspace {workspace_id} for '{original_name}' ({len(source_bytes)} bytes)")
        return Workspace(
            workspace_id=workspace_id,
            path=path,
            source_path=source_path,
            original_name=original_name,
        )

    def release(self, workspace: Workspace) -> None:
        """Delete the workspace, or keep it when RETAIN_WORKSPACES is set."""
        if self.config.retain_workspaces:
            logger.info(f"Retaining workspace {workspace.workspace_id} at: {workspace.path}")
            return
        if not workspace.path.exists():
            logger.debug(f"Workspace {workspace.workspace_id} already gone")
            return
        try:
            shutil.rmtree(workspace.path)
        except OSError as e:
            logger.error(f"❌ Could not remove workspace {workspace.path}: {e}")
            raise WorkspaceError(f"Could not remove workspace {workspace.path}: {e}") from e
        logger.debug(f"🧹 Released workspace {workspace.workspace_id}")
