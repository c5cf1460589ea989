"""
Component logger for dagflow.

Structured, human-readable console output with optional JSON lines for
machine parsing. Each subsystem (compiler, poller, generator, ...) gets its
own component logger; grouped mode indents nested work under a header.
"""

from datetime import datetime
from typing import Deque, Dict, Any, Optional, List, Iterator
from collections import deque
from enum import Enum
from contextlib import contextmanager
from dataclasses import dataclass, field
import threading
import json
import uuid

from .constants import get_trace_history_limit, structured_logging_enabled


class LogLevel(Enum):
    """Log levels with their marker, label and ANSI color."""
    DEBUG = ("▪", "DEBUG", "\033[38;5;240m")
    INFO = ("◆", "INFO", "\033[38;5;51m")
    SUCCESS = ("◉", "SUCCESS", "\033[38;5;76m")
    WARNING = ("◈", "WARN", "\033[38;5;214m")
    ERROR = ("◇", "ERROR", "\033[38;5;196m")


_RESET = "\033[0m"
_AMBER = "\033[38;5;214m"
_AMBER_DIM = "\033[38;5;172m"
_CYAN = "\033[38;5;51m"
_GRAY = "\033[38;5;240m"


@dataclass
class LogContext:
    """Context for a grouped logging session."""
    component: str
    run_id: Optional[str] = None
    indent_level: int = 0
    start_time: float = field(default_factory=lambda: datetime.now().timestamp())


class IOLogger:
    """
    Component logger with structured data support.

    - level markers for quick scanning
    - `data=` dictionaries rendered as a tree (or JSON in structured mode)
    - `group()` for hierarchical output with timing footers
    """

    def __init__(self, component: str = "system", structured: bool = False):
        self.component = component.upper()
        self.structured = structured
        self._contexts = threading.local()
        self._use_grouping = False

    def enable_grouping(self):
        """Enable grouped/hierarchical logging mode."""
        self._use_grouping = True
        return self

    @property
    def current_context(self) -> Optional[LogContext]:
        if not hasattr(self._contexts, 'stack'):
            self._contexts.stack = []
        return self._contexts.stack[-1] if self._contexts.stack else None

    @contextmanager
    def group(self, title: str, run_id: Optional[str] = None) -> Iterator[LogContext]:
        """
        Create a grouped logging context.

        Usage:
            with logger.group("Compiling plan"):
                logger.info("Sorting nodes")
        """
        parent = self.current_context
        new_context = LogContext(
            component=title,
            run_id=run_id or (parent.run_id if parent else None),
            indent_level=(parent.indent_level + 1) if parent else 0,
        )
        if not hasattr(self._contexts, 'stack'):
            self._contexts.stack = []
        self._contexts.stack.append(new_context)

        if self._use_grouping and not self.structured:
            self._print_group_header(new_context)
        try:
            yield new_context
        finally:
            if self._use_grouping and not self.structured:
                self._print_group_footer(new_context)
            self._contexts.stack.pop()

    def _print_group_header(self, context: LogContext):
        indent = "  " * context.indent_level
        header = f"\n{indent}{_GRAY}┌─{_RESET} {_AMBER}[{context.component}]{_RESET}"
        if context.run_id:
            header += f" {_GRAY}run:{_CYAN}{context.run_id[:8]}{_RESET}"
        header += f" {_GRAY}@ {_CYAN}{datetime.now().strftime('%H:%M:%S.%f')[:-3]}{_RESET}"
        print(header)

    def _print_group_footer(self, context: LogContext):
        indent = "  " * context.indent_level
        duration = datetime.now().timestamp() - context.start_time
        print(f"{indent}{_GRAY}└─ completed in {_CYAN}{duration:.3f}s{_RESET}\n")

    def _format_message(
        self,
        level: LogLevel,
        message: str,
        data: Optional[Dict[str, Any]] = None,
        run_id: Optional[str] = None
    ) -> str:
        if self.structured:
            log_entry = {
                "timestamp": datetime.now().isoformat(),
                "level": level.value[1],
                "component": self.component,
                "message": message,
                "run_id": run_id,
                "data": data or {}
            }
            return json.dumps(log_entry, default=str)

        context = self.current_context if self._use_grouping else None
        indent = ("  " * context.indent_level) if context else ""
        marker, level_name, color = level.value

        if context:
            base_msg = f"{indent}{_GRAY}│{_RESET} {color}{marker}{_RESET} {_AMBER}{message}{_RESET}"
        else:
            timestamp = datetime.now().strftime("%H:%M:%S.%f")[:-3]
            context_parts = [self.component]
            if run_id:
                context_parts.append(f"run:{run_id[:8]}")
            context_str = "▸".join(context_parts)
            base_msg = (
                f"{_GRAY}┌─[{_RESET}{_CYAN}{timestamp}{_RESET}{_GRAY}]─{_RESET} "
                f"{color}{marker} {level_name:7}{_RESET} {_GRAY}[{_RESET}{_AMBER}{context_str}{_RESET}{_GRAY}]{_RESET}\n"
                f"{_GRAY}│{_RESET} {_AMBER}{message}{_RESET}"
            )

        if data:
            base_msg += "\n" + "\n".join(self._format_data(data, indent))
        return base_msg

    def _format_data(self, data: Dict[str, Any], indent: str) -> List[str]:
        lines = []
        items = list(data.items())
        for i, (key, value) in enumerate(items):
            branch = "└─" if i == len(items) - 1 else "├─"
            if isinstance(value, dict):
                lines.append(f"{indent}{_GRAY}│   {branch} {_RESET}{_AMBER_DIM}{key}:{_RESET}")
                prefix = "    " if i == len(items) - 1 else "│   "
                sub_items = list(value.items())
                for j, (subkey, subval) in enumerate(sub_items):
                    sub_branch = "└─" if j == len(sub_items) - 1 else "├─"
                    lines.append(f"{indent}{_GRAY}│   {prefix}{sub_branch} {_RESET}{_AMBER}{subkey}: {_CYAN}{subval}{_RESET}")
            elif isinstance(value, list) and len(value) > 3:
                lines.append(f"{indent}{_GRAY}│   {branch} {_RESET}{_AMBER_DIM}{key}: {_CYAN}[{len(value)} items]{_RESET}")
            else:
                lines.append(f"{indent}{_GRAY}│   {branch} {_RESET}{_AMBER_DIM}{key}: {_CYAN}{value}{_RESET}")
        return lines

    def debug(self, message: str, data: Optional[Dict[str, Any]] = None, run_id: Optional[str] = None):
        print(self._format_message(LogLevel.DEBUG, message, data, run_id))

    def info(self, message: str, data: Optional[Dict[str, Any]] = None, run_id: Optional[str] = None):
        print(self._format_message(LogLevel.INFO, message, data, run_id))

    def success(self, message: str, data: Optional[Dict[str, Any]] = None, run_id: Optional[str] = None):
        print(self._format_message(LogLevel.SUCCESS, message, data, run_id))

    def warning(self, message: str, data: Optional[Dict[str, Any]] = None, run_id: Optional[str] = None):
        print(self._format_message(LogLevel.WARNING, message, data, run_id))

    def error(self, message: str, data: Optional[Dict[str, Any]] = None, run_id: Optional[str] = None):
        print(self._format_message(LogLevel.ERROR, message, data, run_id))


# ===== TRACE LOGGING =====
# Prompt/response history for debugging generation sessions; oldest entries drop off
trace_history: Deque[Dict[str, Any]] = deque(maxlen=get_trace_history_limit())

_trace_logger = IOLogger("TRACE")


def log_trace(
    prompt_type: str,
    prompt: str,
    response: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None
) -> str:
    """
    Record a prompt (and optionally its response) for later inspection.

    Returns the id of the stored trace entry.
    """
    entry = {
        "timestamp": datetime.now().isoformat(),
        "type": prompt_type,
        "prompt": prompt,
        "response": response,
        "metadata": metadata or {},
        "id": str(uuid.uuid4())
    }
    trace_history.append(entry)
    _trace_logger.debug(f"Logged {prompt_type} trace", data={
        "trace_id": entry["id"],
        "prompt_length": len(prompt),
        "has_response": response is not None,
    })
    return entry["id"]


def get_trace_history() -> list[Dict[str, Any]]:
    return list(trace_history)


def clear_trace_history() -> int:
    count = len(trace_history)
    trace_history.clear()
    return count


def get_component_logger(component: str, grouped: bool = False) -> IOLogger:
    """Get a logger for a specific component."""
    logger = IOLogger(component, structured=structured_logging_enabled())
    if grouped:
        logger.enable_grouping()
    return logger
