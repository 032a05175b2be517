"""Starter workflow files written by ``cortex init``."""

from __future__ import annotations

from pathlib import Path

DEFAULT_WORKFLOW_FILE_NAME = "Cortexfile.yml"

FULL_TEMPLATE = """\
# Cortexfile.yml - cortex workflow configuration

# Optional working directory for all agents, absolute or relative to this file.
# workdir: .

# Optional execution overrides for this workflow.
# settings:
#   parallel: true
#   max_parallel: 4
#   verbose: false

# Agents: each has a tool (claude-code, opencode, shell) and an optional model.
agents:
  analyzer:
    tool: claude-code
    model: sonnet

  reviewer:
    tool: claude-code
    model: sonnet

  builder:
    tool: shell

  # alt-agent:
  #   tool: opencode
  #   model: sonnet

# Tasks: 'needs' takes one task name or a list. Use {{outputs.<task>}} in a
# prompt to insert the output of a task listed in 'needs'.
#
#   agent       : agent name defined above (required)
#   prompt      : inline prompt text (AI agents)
#   prompt_file : path to a prompt file (AI agents)
#   command     : shell command (shell agents)
#   write       : allow the agent to modify files (default: false)
tasks:
  build:
    agent: builder
    command: |
      echo "Building project..."
      make build 2>&1 || echo "No build step, skipping"

  analyze:
    agent: analyzer
    prompt: |
      Analyze the codebase structure and identify the main components,
      their responsibilities, and areas for improvement.

  review:
    agent: reviewer
    prompt: |
      Review the codebase for code quality issues, security concerns,
      and missing tests.

  report:
    agent: analyzer
    needs: [build, analyze, review]
    prompt: |
      Combine the findings below into a short prioritized report.

      Build log:
      {{outputs.build}}

      Analysis:
      {{outputs.analyze}}

      Review:
      {{outputs.review}}
"""

MINIMAL_TEMPLATE = """\
agents:
  assistant:
    tool: claude-code
    model: sonnet

tasks:
  analyze:
    agent: assistant
    prompt: Summarize what this project does.

  suggest:
    agent: assistant
    needs: analyze
    prompt: |
      Based on this summary, suggest three improvements:
      {{outputs.analyze}}
"""


def write_workflow_template(directory: Path, *, minimal: bool = False, force: bool = False) -> Path:
    """Write a starter workflow file; refuses to overwrite unless ``force``."""

    target = directory / DEFAULT_WORKFLOW_FILE_NAME
    if target.exists() and not force:
        raise FileExistsError(f"{target} already exists (use --force to overwrite).")
    target.write_text(MINIMAL_TEMPLATE if minimal else FULL_TEMPLATE, "utf-8")
    return target
