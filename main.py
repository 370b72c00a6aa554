#!/usr/bin/env python3
"""
FP16 Demotion Analysis - API Server

Accepts a C/C++ source upload and runs the analysis pipeline:
- Workspace Manager gives the request its own directory
- Tool Invoker runs clang with the FP16 demotion plugin
- Artifact Collector reads demoted.c / memory_analysis.txt / float_map.json
- Result Aggregator returns one JSON response

Runs on localhost:3001 by default.
"""

import logging
import uvicorn
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

from fastapi import APIRouter, FastAPI, File, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from shared.config import Config
from shared.errors import AdmissionError, InfrastructureError, ToolTimeoutError
from shared.logging_config import setup_logging
from shared.models import AnalysisRequest, ErrorResponse
from Pipeline.Orchestrator.orchestrator import run_analysis, validate_submission
from Pipeline.workers.workspace_manager.workspace_manager import WorkspaceManager

logger = logging.getLogger("api")

SERVICE_NAME = "FP16 Demotion Plugin API Server"
SERVICE_VERSION = "1.0.0"

router = APIRouter()


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=message).model_dump())


@router.get("/")
async def root():
    """Service banner"""
    return {"message": SERVICE_NAME}


@router.get("/api/info")
async def api_info(request: Request):
    """API information endpoint"""
    config: Config = request.app.state.config
    return {
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "status": "running",
        "allowed_extensions": config.allowed_extensions,
        "max_upload_bytes": config.max_upload_bytes,
        "endpoints": {
            "analyze": "POST /analyze (multipart field 'codeFile')",
            "analyze_alias": "POST /api/analyze",
            "config": "GET /api/config",
            "health": "GET /health",
        },
    }


@router.get("/api/config")
async def get_config(request: Request):
    """Tool configuration (no secrets involved)"""
    config: Config = request.app.state.config
    return {
        "clang_path": config.clang_path,
        "plugin_path": config.plugin_path,
        "plugin_name": config.plugin_name,
        "analysis_flag": config.analysis_flag,
        "tool_timeout_seconds": config.tool_timeout_seconds,
        "retain_workspaces": config.retain_workspaces,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/health")
async def health_check(request: Request):
    """Health check endpoint"""
    manager: WorkspaceManager = request.app.state.workspace_manager
    return {
        "status": "healthy",
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "workspace_root": str(manager.root),
        "workspace_root_ready": manager.root.is_dir(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.post("/analyze")
@router.post("/api/analyze")
async def analyze(request: Request, code_file: Optional[UploadFile] = File(None, alias="codeFile")):
    """
    Analyze one C/C++ source file with the FP16 demotion plugin.

    Returns the original code, the tool's stdout/stderr and whichever
    artifacts were produced (raw and parsed). Tool failures still return
    200 with success=false; only rejected uploads (400), infrastructure
    errors (500) and timeouts (504) return an error body.
    """
    config: Config = request.app.state.config
    manager: WorkspaceManager = request.app.state.workspace_manager

    if code_file is None:
        return _error(400, "No file uploaded")

    # Read one byte past the ceiling so oversize uploads are detected without reading them whole
    contents = await code_file.read(config.max_upload_bytes + 1)
    filename = code_file.filename

    try:
        validate_submission(filename, len(contents), config)
    except AdmissionError as e:
        logger.info(f"Rejected upload '{filename}': {e}")
        return _error(400, str(e))

    submission = AnalysisRequest(source_bytes=contents, original_name=filename)
    logger.info(f"📤 File uploaded: {submission.original_name} ({len(submission.source_bytes)} bytes)")

    try:
        result = await run_in_threadpool(
            run_analysis, submission.source_bytes, submission.original_name, config, manager
        )
    except ToolTimeoutError as e:
        logger.error(f"⏰ Analysis timed out for '{filename}': {e}")
        return _error(504, str(e))
    except InfrastructureError as e:
        logger.error(f"❌ Analysis failed for '{filename}': {e}")
        return _error(500, str(e))
    except Exception as e:
        logger.exception(f"❌ Unexpected analysis error for '{filename}': {e}")
        return _error(500, f"Analysis failed: {e}")

    return result.to_response()


def create_app(config: Optional[Config] = None) -> FastAPI:
    """Build the FastAPI app; the workspace root is created once at startup."""
    config = config or Config()
    config.validate()
    workspace_manager = WorkspaceManager(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Also covers `uvicorn main:app`, which never calls main()
        setup_logging(config.log_level, config.log_file)
        workspace_manager.initialize()
        yield

    app = FastAPI(
        title="FP16 Demotion Analysis",
        description="Runs the clang FP16 demotion plugin on uploaded C/C++ sources",
        version=SERVICE_VERSION,
        lifespan=lifespan,
        # Interactive docs are off in production
        docs_url=None if config.is_production else "/docs",
        redoc_url=None if config.is_production else "/redoc",
    )
    app.state.config = config
    app.state.workspace_manager = workspace_manager

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )
    app.include_router(router)
    return app


app = create_app()


def main():
    """Start the analysis API server"""
    config: Config = app.state.config

    print("\n" + "=" * 80)
    print("🚀 FP16 DEMOTION ANALYSIS - API SERVER")
    print("=" * 80)
    print()
    print("🌐 Server URLs:")
    print(f"   API:        http://localhost:{config.api_port}")
    print(f"   API Docs:   http://localhost:{config.api_port}/docs")
    print(f"   Health:     http://localhost:{config.api_port}/health")
    print()
    print("🔧 TOOL CONFIGURATION (from .env):")
    print(f"   Clang:      {config.clang_path}")
    print(f"   Plugin:     {config.plugin_path} ({config.plugin_name})")
    print(f"   Flag:       {config.analysis_flag}")
    print(f"   Timeout:    {config.tool_timeout_seconds:g}s")
    print(f"   Workspaces: {config.workspace_root}")
    print()
    print("📚 ENDPOINTS:")
    print("   POST /analyze       - Analyze a C/C++ file (multipart 'codeFile')")
    print("   GET  /api/info      - Service information")
    print("   GET  /api/config    - Tool configuration")
    print("   GET  /health        - Health check")
    print()
    print("🛑 Press Ctrl+C to stop")
    print("=" * 80)
    print()

    uvicorn.run(
        app,
        host=config.api_host,
        port=config.api_port,
        log_level="debug" if config.is_development and config.log_level.upper() == "DEBUG" else "info"
    )


if __name__ == "__main__":
    main()
