"""
Artifact Collector

Reads whatever the tool managed to write into a workspace. Every artifact is
optional: a missing file leaves its field unset, and an unreadable one is
logged and treated the same way.
"""

from pathlib import Path
from typing import Dict, Optional, Tuple

from shared.logging_config import get_pipeline_logger
from shared.models import CollectedArtifacts

from Pipeline.workers.workspace_manager.workspace_manager import Workspace

logger = get_pipeline_logger("artifact_collector")

DEMOTED_CODE_FILE = "demoted.c"
MEMORY_REPORT_FILE = "memory_analysis.txt"
FLOAT_MAP_FILE = "float_map.json"

ARTIFACT_FIELDS: Dict[str, str] = {
    "demoted_code": DEMOTED_CODE_FILE,
    "memory_report_text": MEMORY_REPORT_FILE,
    "float_map_raw": FLOAT_MAP_FILE,
}


def _read_artifact(path: Path) -> Tuple[Optional[str], Optional[str]]:
    """Return (text, error); both None when the file does not exist."""
    if not path.is_file():
        return None, None
    try:
        return path.read_bytes().decode("utf-8"), None
    except (OSError, UnicodeDecodeError) as e:
        return None, f"{path.name}: {e}"


def collect(workspace: Workspace) -> CollectedArtifacts:
    """Read demoted.c, memory_analysis.txt and float_map.json from the workspace."""
    found = {}
    read_errors = []

    for field_name, filename in ARTIFACT_FIELDS.items():
        text, error = _read_artifact(workspace.path / filename)
        if error:
            logger.warning(f"⚠️ Could not read artifact {error}")
            read_errors.append(error)
        elif text is not None:
            found[field_name] = text
            logger.debug(f"📄 Collected {filename} ({len(text)} chars)")

    logger.info(
        f"📦 Collected {len(found)}/{len(ARTIFACT_FIELDS)} artifacts from workspace {workspace.workspace_id}"
    )
    return CollectedArtifacts(**found, read_errors=read_errors)
