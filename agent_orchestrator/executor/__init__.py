"""Execution engine for registered workflows.

Architecture (bottom-up):
- variable_store: write-once step outputs and input resolution
- conditions: parsed, sandboxed condition expressions
- retry: retry/fallback sequencing around one agent call, per-attempt timeouts
- step_runner: one step (agent, condition, parallel) or a sequence of steps
- workflow_runner: top-level execution, fail-fast, result assembly
"""
