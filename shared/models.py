"""Shared data models for the FP16 Demotion Analysis service."""

from typing import Dict, List, Optional, Any, Literal
from pydantic import BaseModel, ConfigDict, Field, field_validator
from enum import Enum


class DiffClassification(str, Enum):
    """Classification of a differing source line."""
    DEMOTION = "demotion"
    OTHER = "other"


class MemorySection(str, Enum):
    """Sections recognized in the memory analysis report."""
    VARIABLES = "variables"
    LITERALS = "literals"
    MEMORY = "memory"
    BREAKDOWN = "breakdown"


# Tool / Artifact Models
class ToolInvocationResult(BaseModel):
    """Outcome of one run of the external transformation tool."""
    model_config = ConfigDict(frozen=True)

    success: bool = Field(..., description="True when the tool exited with status 0")
    stdout: str = Field(default="", description="Captured standard output (possibly truncated)")
    stderr: str = Field(default="", description="Captured standard error (possibly truncated)")
    failure_reason: Optional[str] = Field(None, description="Why the invocation is considered failed")
    exit_status: Optional[int] = Field(None, description="Process exit status; None if it never started")
    command: List[str] = Field(default_factory=list, description="Executed argv")
    duration_seconds: float = Field(default=0.0, description="Wall-clock run time")
    stdout_truncated: bool = Field(default=False, description="stdout exceeded the capture bound")
    stderr_truncated: bool = Field(default=False, description="stderr exceeded the capture bound")


class CollectedArtifacts(BaseModel):
    """Artifact files read back from a workspace; any field may be absent."""
    demoted_code: Optional[str] = Field(None, description="Contents of demoted.c")
    memory_report_text: Optional[str] = Field(None, description="Contents of memory_analysis.txt")
    float_map_raw: Optional[str] = Field(None, description="Raw contents of float_map.json")
    read_errors: List[str] = Field(default_factory=list, description="Files present but unreadable")


class FloatRecord(BaseModel):
    """One entry of float_map.json."""
    value: str = Field(..., description="Literal or variable text as emitted by the tool")
    location: str = Field(..., description="Source location, e.g. 'test.c:5, col 18'")
    safe: bool = Field(..., description="Whether the value was judged safe to demote")
    reason: Optional[str] = Field(None, description="Why the value is (un)safe")
    downcast: Optional[str] = Field(None, description="Simulated half-precision value")
    error: Optional[str] = Field(None, description="Absolute conversion error")
    mode: Optional[str] = Field(None, description="Target precision mode")

    @field_validator('value', 'location', 'reason', 'downcast', 'error', 'mode', mode='before')
    @classmethod
    def coerce_scalar_to_text(cls, v):
        if v is None or isinstance(v, str):
            return v
        if isinstance(v, bool):
            return "true" if v else "false"
        if isinstance(v, (int, float)):
            return str(v)
        return v


class FloatMapParseResult(BaseModel):
    """Records recovered from float_map.json plus an optional parse diagnostic."""
    records: List[FloatRecord] = Field(default_factory=list)
    error: Optional[str] = Field(None, description="Parse failure or skipped-entry diagnostic")


class _ReportSection(BaseModel):
    """Key/value pairs of one report section; unknown keys are kept as extras."""
    model_config = ConfigDict(extra="allow")

    def as_dict(self) -> Dict[str, str]:
        return self.model_dump(exclude_none=True)


class VariableStats(_ReportSection):
    total_float_variables_found: Optional[str] = None
    successfully_demoted: Optional[str] = None
    demotion_success_rate: Optional[str] = None


class LiteralStats(_ReportSection):
    total_float_literals_found: Optional[str] = None
    successfully_demoted: Optional[str] = None
    demotion_success_rate: Optional[str] = None


class MemoryUsageStats(_ReportSection):
    original_memory_usage: Optional[str] = None
    after_demotion: Optional[str] = None
    memory_saved: Optional[str] = None
    memory_reduction: Optional[str] = None


class BreakdownStats(_ReportSection):
    pass


class MemoryReport(BaseModel):
    """Parsed memory_analysis.txt: four fixed sections of normalized key -> raw value."""
    variables: VariableStats = Field(default_factory=VariableStats)
    literals: LiteralStats = Field(default_factory=LiteralStats)
    memory: MemoryUsageStats = Field(default_factory=MemoryUsageStats)
    breakdown: BreakdownStats = Field(default_factory=BreakdownStats)

    def section(self, name: MemorySection) -> _ReportSection:
        return getattr(self, MemorySection(name).value)

    def as_dict(self) -> Dict[str, Dict[str, str]]:
        return {section.value: self.section(section).as_dict() for section in MemorySection}


class DiffEntry(BaseModel):
    """One line index where original and transformed source differ."""
    model_config = ConfigDict(populate_by_name=True)

    line_number: int = Field(..., alias="lineNumber", description="1-based line index")
    original: str = Field(..., description="Original line text")
    transformed: str = Field(..., alias="demoted", description="Transformed line text")
    classification: DiffClassification = Field(..., alias="type")


class MemorySavings(BaseModel):
    """Byte counts derived from the MEMORY USAGE section at point of use."""
    model_config = ConfigDict(populate_by_name=True)

    original_bytes: int = Field(0, alias="originalBytes")
    after_bytes: int = Field(0, alias="afterBytes")
    saved_bytes: int = Field(0, alias="savedBytes")
    reduction_percent: float = Field(0.0, alias="reductionPercent")


class AnalysisSummary(BaseModel):
    """Counts a presentation layer needs without re-deriving them."""
    model_config = ConfigDict(populate_by_name=True)

    safe_count: int = Field(0, alias="safeCount")
    unsafe_count: int = Field(0, alias="unsafeCount")
    demotion_lines: int = Field(0, alias="demotionLines")
    other_lines: int = Field(0, alias="otherLines")
    memory: Optional[MemorySavings] = None


# Request/Response Models
class AnalysisRequest(BaseModel):
    """A submitted source file."""
    source_bytes: bytes = Field(..., description="Raw uploaded file content")
    original_name: str = Field(..., description="Filename declared by the client")


class PluginOutput(BaseModel):
    stdout: str = ""
    stderr: str = ""


class AnalysisArtifacts(BaseModel):
    """Everything the tool produced, raw and parsed."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    demoted_code: Optional[str] = Field(None, alias="demotedCode")
    memory_analysis: Optional[str] = Field(None, alias="memoryAnalysis")
    json_analysis: Optional[List[FloatRecord]] = Field(None, alias="jsonAnalysis")
    memory_report: Optional[MemoryReport] = Field(None, alias="memoryReport")
    differences: Optional[List[DiffEntry]] = None
    summary: Optional[AnalysisSummary] = None


class AnalysisResult(BaseModel):
    """The sole object crossing the pipeline/presentation boundary."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    success: bool = Field(..., description="Mirrors the tool invocation outcome")
    original_code: str = Field(..., alias="originalCode")
    original_filename: str = Field(..., alias="originalFilename")
    plugin_output: PluginOutput = Field(default_factory=PluginOutput, alias="pluginOutput")
    analysis: AnalysisArtifacts = Field(default_factory=AnalysisArtifacts)
    error: Optional[str] = Field(None, description="Top-level failure reason")
    diagnostics: List[str] = Field(default_factory=list, description="Non-fatal read/parse problems")

    def to_response(self) -> Dict[str, Any]:
        """Serialize with camelCase keys, omitting absent optional fields."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ErrorResponse(BaseModel):
    """Body returned for admission and infrastructure failures."""
    success: Literal[False] = False
    error: str
