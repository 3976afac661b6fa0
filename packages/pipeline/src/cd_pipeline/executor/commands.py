from __future__ import annotations

import subprocess
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from cd_pipeline.core import ensure_parent, monotonic_ms


@dataclass(frozen=True, slots=True)
class CommandResult:
    command: str
    exit_code: int
    duration_ms: int
    output_tail: str

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


def run_command(
    command: str,
    *,
    cwd: Path,
    env: Mapping[str, str],
    log_path: Path,
    shell: str = "/bin/sh",
    tail_lines: int = 40,
) -> CommandResult:
    """
    Run one shell command to completion, streaming combined stdout/stderr
    into log_path. Only the last `tail_lines` lines are kept in memory.
    """
    ensure_parent(log_path)
    tail: deque[str] = deque(maxlen=tail_lines)
    t0 = monotonic_ms()

    with Path(log_path).open("a", encoding="utf-8") as logf:
        logf.write(f"$ {command}\n")
        logf.flush()
        proc = subprocess.Popen(
            command,
            shell=True,
            executable=shell,
            cwd=str(cwd),
            env=dict(env),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            encoding="utf-8",
            errors="replace",
        )
        assert proc.stdout is not None
        with proc.stdout:
            for line in proc.stdout:
                logf.write(line)
                tail.append(line.rstrip("\n"))
        exit_code = proc.wait()
        logf.write(f"[exit {exit_code}]\n")

    return CommandResult(
        command=command,
        exit_code=exit_code,
        duration_ms=monotonic_ms() - t0,
        output_tail="\n".join(tail),
    )
