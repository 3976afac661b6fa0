from .commands import CommandResult, run_command
from .executor import ExecutorConfig, StageExecutor, StageOutcome

__all__ = [
    "CommandResult",
    "run_command",
    "ExecutorConfig",
    "StageExecutor",
    "StageOutcome",
]
