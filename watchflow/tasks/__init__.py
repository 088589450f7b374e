"""
Tasks and Workflows

Concrete collaborators for the pipeline:
- command.py - External command tasks (tests, compile, lint)
- workflow.py - Regex-matched workflows with a task chain
"""

from .command import CommandTask, LintTask, new_compile_task, new_lint_task, new_test_task
from .workflow import PatternWorkflow

__all__ = [
    "CommandTask",
    "LintTask",
    "PatternWorkflow",
    "new_compile_task",
    "new_lint_task",
    "new_test_task",
]
