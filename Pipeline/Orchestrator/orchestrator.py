"""
Analysis Orchestrator
Runs the FP16 demotion pipeline for one submitted source file.

This module:
1. Checks the submission (extension allow-list, size ceiling)
2. Acquires an isolated workspace
3. Invokes the external tool (clang + demotion plugin)
4. Collects whichever artifacts the tool produced
5. Sanitizes/parses the float map and parses the memory report
6. Aggregates everything into one AnalysisResult
7. Releases the workspace, whatever happened
"""

from datetime import datetime
from pathlib import Path
from typing import List, Optional
import argparse
import json
import sys

from dotenv import find_dotenv, load_dotenv

from shared.config import Config
from shared.errors import AdmissionError, InfrastructureError, WorkspaceError
from shared.logging_config import get_pipeline_logger, setup_logging
from shared.models import (
    AnalysisArtifacts,
    AnalysisResult,
    AnalysisSummary,
    CollectedArtifacts,
    DiffEntry,
    FloatMapParseResult,
    FloatRecord,
    MemoryReport,
    PluginOutput,
    ToolInvocationResult,
)
from shared.float_analysis import (
    compute_differences,
    count_by_classification,
    parse_float_map,
    parse_memory_report,
    partition_float_records,
    summarize_memory,
)

from Pipeline.workers.workspace_manager.workspace_manager import Workspace, WorkspaceManager
from Pipeline.workers.tool_invoker.tool_invoker import ToolInvoker
from Pipeline.workers.artifact_collector.artifact_collector import collect

logger = get_pipeline_logger("orchestrator")


# ============================================================================
# ADMISSION
# ============================================================================

def validate_submission(filename: Optional[str], size_bytes: int, config: Config) -> None:
    """Reject a submission before it reaches the pipeline."""
    if not filename:
        raise AdmissionError("No file uploaded")

    extension = Path(filename).suffix.lower()
    allowed = [ext.lower() for ext in config.allowed_extensions]
    if extension not in allowed:
        raise AdmissionError(
            f"Please select a valid C/C++ file ({', '.join(allowed)})"
        )

    if size_bytes > config.max_upload_bytes:
        limit_mb = config.max_upload_bytes / (1024 * 1024)
        raise AdmissionError(f"File too large. Maximum size is {limit_mb:g}MB.")


# ============================================================================
# AGGREGATION
# ============================================================================

def aggregate_analysis_results(
    invocation: ToolInvocationResult,
    artifacts: CollectedArtifacts,
    parsed_report: Optional[MemoryReport],
    parsed_float_map: Optional[FloatMapParseResult],
    original_source: str,
    original_name: str,
) -> AnalysisResult:
    """
    Combine the invocation outcome, raw artifacts and parse results.

    ``success`` mirrors the tool invocation only; a missing or unparseable
    artifact shows up as an absent field plus an entry in ``diagnostics``.
    Never raises.

    Args:
        invocation: Result of running the tool
        artifacts: Files read back from the workspace
        parsed_report: Parsed memory_analysis.txt, None if absent/unparsed
        parsed_float_map: Parsed float_map.json, None if absent/unparsed
        original_source: Submitted source text
        original_name: Filename declared by the client

    Returns:
        AnalysisResult ready to be serialized for the caller
    """
    diagnostics = list(artifacts.read_errors)

    if artifacts.memory_report_text is not None and parsed_report is None:
        diagnostics.append("Memory report could not be parsed")

    json_analysis = None
    if parsed_float_map is not None:
        json_analysis = parsed_float_map.records
        if parsed_float_map.error:
            diagnostics.append(parsed_float_map.error)
    elif artifacts.float_map_raw is not None:
        json_analysis = []

    differences = None
    if artifacts.demoted_code is not None:
        try:
            differences = compute_differences(original_source, artifacts.demoted_code)
        except Exception as e:
            logger.exception(f"❌ Could not compute source differences: {e}")
            diagnostics.append(f"Source comparison failed: {e}")

    summary = None
    if any(value is not None for value in (json_analysis, parsed_report, differences)):
        try:
            summary = _build_summary(json_analysis, parsed_report, differences)
        except Exception as e:
            logger.exception(f"❌ Could not summarize analysis: {e}")
            diagnostics.append(f"Summary failed: {e}")

    return AnalysisResult(
        success=invocation.success,
        original_code=original_source,
        original_filename=original_name,
        plugin_output=PluginOutput(stdout=invocation.stdout, stderr=invocation.stderr),
        analysis=AnalysisArtifacts(
            demoted_code=artifacts.demoted_code,
            memory_analysis=artifacts.memory_report_text,
            json_analysis=json_analysis,
            memory_report=parsed_report,
            differences=differences,
            summary=summary,
        ),
        error=invocation.failure_reason,
        diagnostics=diagnostics,
    )


def _build_summary(
    json_analysis: Optional[List[FloatRecord]],
    memory_report: Optional[MemoryReport],
    differences: Optional[List[DiffEntry]],
) -> AnalysisSummary:
    safe, unsafe = partition_float_records(json_analysis or [])
    line_counts = count_by_classification(differences or [])
    return AnalysisSummary(
        safe_count=len(safe),
        unsafe_count=len(unsafe),
        demotion_lines=line_counts["demotion"],
        other_lines=line_counts["other"],
        memory=summarize_memory(memory_report) if memory_report else None,
    )


def _parse_report_safely(text: Optional[str]) -> Optional[MemoryReport]:
    if text is None:
        return None
    try:
        return parse_memory_report(text)
    except Exception as e:
        logger.exception(f"❌ Memory report parsing failed: {e}")
        return None


def _parse_float_map_safely(raw: Optional[str]) -> Optional[FloatMapParseResult]:
    if raw is None:
        return None
    try:
        return parse_float_map(raw)
    except Exception as e:
        logger.exception(f"❌ Float map parsing failed: {e}")
        return FloatMapParseResult(records=[], error=f"Float map parsing failed: {e}")


# ============================================================================
# PIPELINE
# ============================================================================

def _release_after_failure(workspace_manager: WorkspaceManager, workspace: Workspace) -> None:
    # The error already propagating is the one the caller sees
    try:
        workspace_manager.release(workspace)
    except WorkspaceError as e:
        logger.error(f"❌ Workspace cleanup failed while handling another error: {e}")


def run_analysis(
    source_bytes: bytes,
    original_name: str,
    config: Optional[Config] = None,
    workspace_manager: Optional[WorkspaceManager] = None,
) -> AnalysisResult:
    """
    Run the complete pipeline for one source file.

    Stages run sequentially; the workspace is released in all cases. A
    cleanup failure is raised only when no other error is propagating.

    Args:
        source_bytes: Submitted file content
        original_name: Filename declared by the client
        config: Service configuration (defaults from environment)
        workspace_manager: Shared manager; a new one is created and
            initialized when omitted

    Returns:
        AnalysisResult for this request

    Raises:
        InfrastructureError: Workspace failure or tool timeout
    """
    config = config or Config()
    if workspace_manager is None:
        workspace_manager = WorkspaceManager(config)
        workspace_manager.initialize()

    start_time = datetime.now()
    logger.info("=" * 60)
    logger.info(f"🚀 Starting FP16 analysis for '{original_name}'")
    logger.info("=" * 60)

    workspace = workspace_manager.acquire(source_bytes, original_name)
    try:
        invocation = ToolInvoker(config).invoke(workspace)
        artifacts = collect(workspace)
        parsed_report = _parse_report_safely(artifacts.memory_report_text)
        parsed_float_map = _parse_float_map_safely(artifacts.float_map_raw)

        result = aggregate_analysis_results(
            invocation=invocation,
            artifacts=artifacts,
            parsed_report=parsed_report,
            parsed_float_map=parsed_float_map,
            original_source=source_bytes.decode("utf-8", errors="replace"),
            original_name=original_name,
        )
    except BaseException:
        _release_after_failure(workspace_manager, workspace)
        raise
    workspace_manager.release(workspace)

    execution_time = (datetime.now() - start_time).total_seconds()
    logger.info(f"✅ Analysis finished in {execution_time:.2f}s (success={result.success})")
    if result.diagnostics:
        logger.info(f"   Diagnostics: {len(result.diagnostics)}")
    return result


# ============================================================================
# COMMAND LINE
# ============================================================================

def _print_summary(result: AnalysisResult) -> None:
    analysis = result.analysis
    print("=" * 70)
    print(f"📄 {result.original_filename}: {'✅ success' if result.success else '❌ failed'}")
    print("=" * 70)
    if result.error:
        print(f"Error: {result.error}")
    if analysis.summary:
        summary = analysis.summary
        print(f"   Safe floats:      {summary.safe_count}")
        print(f"   Unsafe floats:    {summary.unsafe_count}")
        print(f"   Demoted lines:    {summary.demotion_lines}")
        print(f"   Other changes:    {summary.other_lines}")
        if summary.memory:
            print(f"   Memory: {summary.memory.original_bytes} -> {summary.memory.after_bytes} bytes "
                  f"({summary.memory.reduction_percent}% reduction)")
    for entry in analysis.differences or []:
        print(f"   [{entry.classification.value:8}] {entry.line_number:4}: "
              f"{entry.original.strip()}  ->  {entry.transformed.strip()}")
    for message in result.diagnostics:
        print(f"⚠️  {message}")


def main() -> int:
    """Main function for command-line usage."""
    # .env of the directory the command is run from
    load_dotenv(find_dotenv(usecwd=True))

    parser = argparse.ArgumentParser(description="Run the FP16 demotion analysis on a C/C++ source file")
    parser.add_argument("source", help="Path to the C/C++ source file")
    parser.add_argument("--json", action="store_true", help="Print the full JSON response")
    parser.add_argument("--timeout", type=float, default=None, help="Tool timeout in seconds")
    parser.add_argument("--keep-workspace", action="store_true", help="Do not delete the workspace")
    args = parser.parse_args()

    config = Config()
    if args.timeout is not None:
        config.tool_timeout_seconds = args.timeout
    if args.keep_workspace:
        config.retain_workspaces = True

    setup_logging(config.log_level, config.log_file)

    try:
        config.validate()
    except ValueError as e:
        print(f"❌ Invalid configuration: {e}")
        return 2

    source_path = Path(args.source)
    try:
        source_bytes = source_path.read_bytes()
    except OSError as e:
        print(f"❌ Could not read {source_path}: {e}")
        return 2

    try:
        validate_submission(source_path.name, len(source_bytes), config)
        result = run_analysis(source_bytes, source_path.name, config)
    except AdmissionError as e:
        print(f"❌ {e}")
        return 2
    except InfrastructureError as e:
        print(f"❌ Analysis failed: {e}")
        return 1

    if args.json:
        print(json.dumps(result.to_response(), indent=2, ensure_ascii=False))
    else:
        _print_summary(result)
    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
