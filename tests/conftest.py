"""
Shared fixtures for the analysis pipeline tests.

The real tool (clang + demotion plugin) is replaced by a small executable
script that behaves like it: it writes artifacts into its current directory,
prints to stdout/stderr, sleeps or exits with a chosen status.
"""

import os
import stat
import sys
import textwrap
from pathlib import Path

import pytest

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from shared.config import Config


SAMPLE_SOURCE = textwrap.dedent("""\
    #include <stdio.h>

    int main(void) {
        float a = 1.5f;
        float b = 2.25f;
        int n = 3;
        printf("%d\\n", n);
        return 0;
    }
    /* end */""")

SAMPLE_MEMORY_REPORT = textwrap.dedent("""\
    FP16 DEMOTION MEMORY ANALYSIS
    =============================

    VARIABLES:
      Total float variables found: 2
      Successfully demoted: 2
      Demotion success rate: 100.0%

    LITERALS:
      Total float literals found: 2
      Successfully demoted: 2
      Demotion success rate: 100.0%

    MEMORY USAGE:
      Original memory usage: 16 bytes
      After demotion: 8 bytes
      Memory saved: 8 bytes
      Memory reduction: 50.0%

    BREAKDOWN:
      Float (4 bytes each): 4 items
      FP16 (2 bytes each): 4 items

    EXPLANATION:
      Note: values were demoted where the conversion error is small.
    """)

# printf-style output: NBSP in the indentation and a bare inf value
SAMPLE_FLOAT_MAP = (
    "[\n"
    "  {\"value\": 1.5, \"downcast\": 1.5, \"error\": 0.0, \"mode\": \"fp16\", "
    "\"safe\": true, \"reason\": \"exact\", \"location\": \"source.c:4, col 15\"},\n"
    "  {\"value\": 2.25, \"downcast\": 2.25, \"error\": 0.0, \"mode\": \"fp16\", "
    "\"safe\": true, \"reason\": \"exact\", \"location\": \"source.c:5, col 15\"},\n"
    "  {\"value\": 70000.0, \"downcast\": inf, \"error\": inf, \"mode\": \"fp16\", "
    "\"safe\": false, \"reason\": \"overflow\", \"location\": \"source.c:9, col 1\"}\n"
    "]\n"
)


_STUB_TEMPLATE = """#!{python}
import os, sys, time

artifacts = {artifacts!r}
demote = {demote!r}
for name, text in artifacts.items():
    with open(name, "w", encoding="utf-8") as fh:
        fh.write(text)
if demote:
    source = sys.argv[2]
    with open(source, encoding="utf-8") as fh:
        text = fh.read()
    with open("demoted.c", "w", encoding="utf-8") as fh:
        fh.write(text.replace("float ", "__fp16 "))
with open("argv.txt", "w", encoding="utf-8") as fh:
    fh.write("\\n".join(sys.argv[1:]))
sys.stdout.write({stdout!r})
sys.stderr.write({stderr!r})
sys.stdout.flush()
time.sleep({sleep!r})
sys.exit({exit_code!r})
"""


@pytest.fixture
def make_tool(tmp_path):
    """Factory writing an executable stand-in for clang; returns its path."""
    counter = {"n": 0}

    def _make(artifacts=None, demote=False, stdout="", stderr="", sleep=0, exit_code=0):
        counter["n"] += 1
        path = tmp_path / f"fake_clang_{counter['n']}"
        path.write_text(_STUB_TEMPLATE.format(
            python=sys.executable,
            artifacts=dict(artifacts or {}),
            demote=demote,
            stdout=stdout,
            stderr=stderr,
            sleep=sleep,
            exit_code=exit_code,
        ))
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return str(path)

    return _make


@pytest.fixture
def config(tmp_path):
    """Config pointing at a private workspace root."""
    return Config(
        clang_path="clang",
        plugin_path="build/libfp16DemotionPlugin.so",
        workspace_root=str(tmp_path / "workspaces"),
        retain_workspaces=False,
        tool_timeout_seconds=10.0,
        log_level="WARNING",
    )


@pytest.fixture
def workspace_root(config):
    return Path(config.workspace_root)


def list_workspaces(root):
    if not os.path.isdir(root):
        return []
    return sorted(os.listdir(root))
