"""
Logging for the pipeline CLI and runner.

Every record goes through one structlog chain (context vars, level, UTC
timestamp, secret redaction) and is rendered per handler:

  - console: rich, key=value
  - json:    one JSON object per line on stdout
  - run log: `{run_root}/pipeline.log`, always JSON, attached for one run
"""

from __future__ import annotations

import logging
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, MutableMapping, Protocol, runtime_checkable

import structlog
from rich.logging import RichHandler
from structlog.contextvars import bind_contextvars, clear_contextvars, merge_contextvars
from structlog.stdlib import ProcessorFormatter

SENSITIVE_KEY_PARTS: tuple[str, ...] = ("token", "secret", "password", "authorization")
REDACTED = "***"

_CONFIGURED = False


@runtime_checkable
class ILogger(Protocol):
    def debug(self, event: str, **kw: Any) -> Any: ...
    def info(self, event: str, **kw: Any) -> Any: ...
    def warning(self, event: str, **kw: Any) -> Any: ...
    def error(self, event: str, **kw: Any) -> Any: ...
    def exception(self, event: str, **kw: Any) -> Any: ...
    def bind(self, **kw: Any) -> "ILogger": ...


def _is_sensitive(key: str) -> bool:
    k = key.lower()
    return any(part in k for part in SENSITIVE_KEY_PARTS)


def redact_secrets(
    _logger: Any, _method: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """
    Mask stage tokens and similar values, including one level down in dict
    values such as a stage `env` mapping.
    """
    for key, value in list(event_dict.items()):
        if _is_sensitive(key):
            event_dict[key] = REDACTED
        elif isinstance(value, dict):
            event_dict[key] = {
                k: (REDACTED if isinstance(k, str) and _is_sensitive(k) else v)
                for k, v in value.items()
            }
    return event_dict


def _shared_processors() -> list[Any]:
    return [
        merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        redact_secrets,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]


def _formatter(renderer: Any) -> ProcessorFormatter:
    return ProcessorFormatter(
        processors=[ProcessorFormatter.remove_processors_meta, renderer],
        foreign_pre_chain=_shared_processors(),
    )


def _console_handler() -> logging.Handler:
    handler = RichHandler(
        rich_tracebacks=True,
        markup=False,
        show_time=False,
        show_path=False,
    )
    handler.setFormatter(_formatter(structlog.processors.KeyValueRenderer(sort_keys=True)))
    return handler


def _json_handler(stream: Any = None) -> logging.Handler:
    handler = logging.StreamHandler(stream=stream or sys.stdout)
    handler.setFormatter(_formatter(structlog.processors.JSONRenderer()))
    return handler


def configure_logging(*, level: str = "INFO", fmt: str = "console", force: bool = False) -> None:
    """
    Install the root handler and the structlog chain. Later calls are no-ops
    unless `force` is set.
    """
    global _CONFIGURED
    if _CONFIGURED and not force:
        return

    lvl = level.upper()
    handler = _console_handler() if fmt == "console" else _json_handler()
    handler.setLevel(lvl)

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(lvl)
    root.addHandler(handler)

    structlog.configure(
        processors=[*_shared_processors(), ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.make_filtering_bound_logger(lvl),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=not force,
    )

    _CONFIGURED = True


@contextmanager
def run_log_file(path: Path) -> Iterator[logging.Handler]:
    """
    Mirror everything logged while the block runs into `path` as JSON lines.

    Records only arrive once `configure_logging` has routed structlog through
    the stdlib root logger.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setFormatter(_formatter(structlog.processors.JSONRenderer()))
    root = logging.getLogger()
    root.addHandler(handler)
    try:
        yield handler
    finally:
        root.removeHandler(handler)
        handler.close()


def get_logger(name: str = "cd_pipeline") -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def bind(**values: Any) -> None:
    bind_contextvars(**values)


def clear_bindings() -> None:
    clear_contextvars()
