#!/usr/bin/env python3
"""
Integration tests for the analysis pipeline.

Runs the whole chain (workspace -> tool -> artifacts -> parsing ->
aggregation) against the executable stand-in from conftest.
"""

import json
import shutil
import sys
from pathlib import Path

import pytest
from pydantic import ValidationError

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from shared.errors import AdmissionError, ToolTimeoutError, WorkspaceError
from shared.models import (
    CollectedArtifacts,
    DiffClassification,
    FloatMapParseResult,
    ToolInvocationResult,
)
from Pipeline.Orchestrator import orchestrator
from Pipeline.Orchestrator.orchestrator import (
    aggregate_analysis_results,
    run_analysis,
    validate_submission,
)

from conftest import SAMPLE_FLOAT_MAP, SAMPLE_MEMORY_REPORT, SAMPLE_SOURCE, list_workspaces


def _full_tool(make_tool, **kwargs):
    return make_tool(
        demote=True,
        artifacts={
            "memory_analysis.txt": SAMPLE_MEMORY_REPORT,
            "float_map.json": SAMPLE_FLOAT_MAP,
        },
        stdout="FP16 demotion finished\n",
        **kwargs,
    )


# ============================================================================
# ADMISSION
# ============================================================================

def test_validate_submission_accepts_c_family(config):
    for name in ("a.c", "b.CPP", "c.cc", "d.cxx"):
        validate_submission(name, 10, config)


def test_validate_submission_rejects_headers(config):
    """clang -c on a header builds a precompiled header, not a normal compile."""
    for name in ("e.h", "f.hpp"):
        with pytest.raises(AdmissionError):
            validate_submission(name, 10, config)


def test_validate_submission_rejects_other_extensions(config):
    with pytest.raises(AdmissionError) as excinfo:
        validate_submission("notes.txt", 10, config)
    assert "valid C/C++ file" in str(excinfo.value)


def test_validate_submission_rejects_missing_name(config):
    with pytest.raises(AdmissionError, match="No file uploaded"):
        validate_submission("", 10, config)


def test_validate_submission_size_limit(config):
    validate_submission("a.c", config.max_upload_bytes, config)
    with pytest.raises(AdmissionError, match="File too large. Maximum size is 5MB."):
        validate_submission("a.c", config.max_upload_bytes + 1, config)


# ============================================================================
# PIPELINE
# ============================================================================

def test_end_to_end_two_demoted_lines(config, workspace_root, make_tool):
    """A ten-line file with two float declarations comes back fully analyzed."""
    config.clang_path = _full_tool(make_tool)

    result = run_analysis(SAMPLE_SOURCE.encode("utf-8"), "test.c", config)

    assert result.success is True
    assert result.error is None
    assert result.original_code == SAMPLE_SOURCE
    assert result.original_filename == "test.c"
    assert result.plugin_output.stdout == "FP16 demotion finished\n"

    analysis = result.analysis
    assert "__fp16 a = 1.5f;" in analysis.demoted_code
    assert analysis.memory_analysis == SAMPLE_MEMORY_REPORT
    assert analysis.memory_report.variables.successfully_demoted == "2"

    assert [(d.line_number, d.classification) for d in analysis.differences] == [
        (4, DiffClassification.DEMOTION),
        (5, DiffClassification.DEMOTION),
    ]
    assert len(analysis.json_analysis) == 3

    summary = analysis.summary
    assert summary.safe_count == 2
    assert summary.unsafe_count == 1
    assert summary.demotion_lines == 2
    assert summary.other_lines == 0
    assert summary.memory.saved_bytes == 8
    assert result.diagnostics == []

    # Workspace is gone once the result is returned
    assert list_workspaces(workspace_root) == []


def test_response_shape(config, make_tool):
    config.clang_path = _full_tool(make_tool)

    response = run_analysis(SAMPLE_SOURCE.encode("utf-8"), "test.c", config).to_response()

    assert response["success"] is True
    assert response["originalFilename"] == "test.c"
    assert set(response["pluginOutput"]) == {"stdout", "stderr"}
    assert set(response["analysis"]) >= {"demotedCode", "memoryAnalysis", "jsonAnalysis"}
    assert response["analysis"]["differences"][0]["type"] == "demotion"
    assert response["analysis"]["jsonAnalysis"][2]["downcast"] == "Infinity"
    assert "error" not in response
    json.dumps(response)


def test_tool_without_artifacts_gives_empty_analysis(config, make_tool):
    config.clang_path = make_tool()

    response = run_analysis(b"int main(void) { return 0; }\n", "empty.c", config).to_response()

    assert response["success"] is True
    assert response["analysis"] == {}


def test_failed_tool_still_returns_partial_artifacts(config, workspace_root, make_tool):
    config.clang_path = make_tool(
        artifacts={"demoted.c": "__fp16 x;\n"},
        stderr="source.c:1:1: error: boom\n",
        exit_code=1,
    )

    result = run_analysis(b"float x;\n", "x.c", config)

    assert result.success is False
    assert result.error == "Tool exited with status 1"
    assert result.plugin_output.stderr == "source.c:1:1: error: boom\n"
    assert result.analysis.demoted_code == "__fp16 x;\n"
    assert result.analysis.differences[0].classification == DiffClassification.DEMOTION
    assert list_workspaces(workspace_root) == []


def test_unparseable_float_map_is_a_diagnostic(config, make_tool):
    config.clang_path = make_tool(artifacts={"float_map.json": "{{ not json"})

    result = run_analysis(b"float x;\n", "x.c", config)

    assert result.success is True
    assert result.analysis.json_analysis == []
    assert any("Invalid float map JSON" in d for d in result.diagnostics)


def test_timeout_releases_workspace(config, workspace_root, make_tool):
    config.tool_timeout_seconds = 0.5
    config.clang_path = make_tool(sleep=10)

    with pytest.raises(ToolTimeoutError):
        run_analysis(b"float x;\n", "x.c", config)

    assert list_workspaces(workspace_root) == []


def _broken_rmtree(path, *args, **kwargs):
    raise OSError(f"Device or resource busy: '{path}'")


def test_cleanup_failure_does_not_hide_timeout(config, make_tool, monkeypatch):
    """A timeout stays a timeout even when the workspace cannot be removed."""
    config.tool_timeout_seconds = 0.5
    config.clang_path = make_tool(sleep=10)
    monkeypatch.setattr(shutil, "rmtree", _broken_rmtree)

    with pytest.raises(ToolTimeoutError):
        run_analysis(b"float x;\n", "x.c", config)


def test_cleanup_failure_after_successful_run_is_raised(config, make_tool, monkeypatch):
    config.clang_path = make_tool()
    monkeypatch.setattr(shutil, "rmtree", _broken_rmtree)

    with pytest.raises(WorkspaceError):
        run_analysis(b"float x;\n", "x.c", config)


def test_retained_workspace_keeps_artifacts(config, workspace_root, make_tool):
    config.retain_workspaces = True
    config.clang_path = _full_tool(make_tool)

    run_analysis(SAMPLE_SOURCE.encode("utf-8"), "test.c", config)

    kept = list_workspaces(workspace_root)
    assert len(kept) == 1
    assert (workspace_root / kept[0] / "demoted.c").exists()


# ============================================================================
# AGGREGATION
# ============================================================================

def test_aggregate_with_nothing_collected():
    invocation = ToolInvocationResult(success=False, failure_reason="Failed to start tool: nope")

    result = aggregate_analysis_results(
        invocation=invocation,
        artifacts=CollectedArtifacts(read_errors=["demoted.c: bad bytes"]),
        parsed_report=None,
        parsed_float_map=None,
        original_source="float x;",
        original_name="x.c",
    )

    assert result.success is False
    assert result.error == "Failed to start tool: nope"
    assert result.analysis.summary is None
    assert result.diagnostics == ["demoted.c: bad bytes"]


def test_aggregate_reports_unparsed_memory_report():
    result = aggregate_analysis_results(
        invocation=ToolInvocationResult(success=True),
        artifacts=CollectedArtifacts(memory_report_text="VARIABLES:\n"),
        parsed_report=None,
        parsed_float_map=FloatMapParseResult(records=[], error="Skipped 1 invalid float map entry: #0"),
        original_source="",
        original_name="x.c",
    )

    assert result.analysis.memory_analysis == "VARIABLES:\n"
    assert result.analysis.memory_report is None
    assert result.diagnostics == [
        "Memory report could not be parsed",
        "Skipped 1 invalid float map entry: #0",
    ]
    assert result.analysis.summary.safe_count == 0


def test_aggregated_result_is_immutable():
    result = aggregate_analysis_results(
        invocation=ToolInvocationResult(success=True),
        artifacts=CollectedArtifacts(demoted_code="__fp16 x;"),
        parsed_report=None,
        parsed_float_map=None,
        original_source="float x;",
        original_name="x.c",
    )

    assert result.analysis.differences[0].classification == DiffClassification.DEMOTION
    with pytest.raises(ValidationError):
        result.success = False
    with pytest.raises(ValidationError):
        result.analysis.demoted_code = None


# ============================================================================
# COMMAND LINE
# ============================================================================

def test_cli_json_output(config, make_tool, tmp_path, monkeypatch, capsys):
    config.clang_path = _full_tool(make_tool)
    source = tmp_path / "kernel.c"
    source.write_text(SAMPLE_SOURCE)
    monkeypatch.setattr(orchestrator, "Config", lambda: config)
    monkeypatch.setattr(orchestrator, "setup_logging", lambda *args, **kwargs: None)
    monkeypatch.setattr(sys, "argv", ["fp16-analyze", str(source), "--json"])

    exit_code = orchestrator.main()

    assert exit_code == 0
    response = json.loads(capsys.readouterr().out)
    assert response["originalFilename"] == "kernel.c"
    assert response["analysis"]["summary"]["demotionLines"] == 2


def test_cli_rejects_unsupported_file(config, tmp_path, monkeypatch):
    source = tmp_path / "notes.txt"
    source.write_text("hello")
    monkeypatch.setattr(orchestrator, "Config", lambda: config)
    monkeypatch.setattr(orchestrator, "setup_logging", lambda *args, **kwargs: None)
    monkeypatch.setattr(sys, "argv", ["fp16-analyze", str(source)])

    assert orchestrator.main() == 2


def test_cli_reads_dotenv_from_working_directory(make_tool, tmp_path, monkeypatch, capsys):
    """Tool path and workspace root come from the .env next to where the command runs."""
    tool = _full_tool(make_tool)
    project = tmp_path / "project"
    project.mkdir()
    dotenv_root = tmp_path / "dotenv_workspaces"
    (project / ".env").write_text(
        f'CLANG_PATH="{tool}"\n'
        f'WORKSPACE_ROOT="{dotenv_root}"\n'
        "RETAIN_WORKSPACES=true\n"
    )
    (project / "kernel.c").write_text(SAMPLE_SOURCE)

    # Unset for the test and restored afterwards (load_dotenv writes os.environ)
    for name in ("CLANG_PATH", "WORKSPACE_ROOT", "RETAIN_WORKSPACES"):
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    monkeypatch.chdir(project)
    monkeypatch.setattr(orchestrator, "setup_logging", lambda *args, **kwargs: None)
    monkeypatch.setattr(sys, "argv", ["fp16-analyze", "kernel.c", "--json"])

    exit_code = orchestrator.main()

    assert exit_code == 0
    response = json.loads(capsys.readouterr().out)
    assert response["success"] is True
    assert response["analysis"]["summary"]["demotionLines"] == 2
    assert len(list_workspaces(dotenv_root)) == 1
