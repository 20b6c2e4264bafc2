"""
Hierarchical runtime tracing for ink fusion.

Nested spans with timing plus one-off events, written to stderr and
optionally to a file or as JSON lines. Recent records are also kept in
memory so a debug run can dump the trace next to its artifacts.
"""

import functools
import hashlib
import json
import sys
import time
from collections import deque
from contextlib import contextmanager
from datetime import datetime


class TracerConfig:
    """Configuration for the tracer."""

    def __init__(self):
        self.enabled = False
        self.level = "INFO"
        self.file_path = None
        self.json_output = False
        self.history_size = 0
        self._file_handle = None

    def configure(self, enabled=False, level="INFO", file_path=None, json_output=False,
                  history_size=0):
        """Configure tracer settings, reopening the trace file if needed."""
        self.close()
        self.enabled = enabled
        self.level = level.upper()
        self.file_path = file_path
        self.json_output = json_output
        self.history_size = history_size

        if file_path and enabled:
            self._file_handle = open(file_path, "w", encoding="utf-8")

    def close(self):
        if self._file_handle:
            self._file_handle.close()
            self._file_handle = None


class Tracer:
    """
    Hierarchical tracer for structured analysis logging.

    Spans nest; every line is indented by the current depth. Events are
    attributed to the innermost open span.
    """

    LEVELS = {"ERROR": 0, "WARN": 1, "INFO": 2, "DEBUG": 3}

    def __init__(self):
        self.config = TracerConfig()
        self._depth = 0
        self._span_stack = []
        self.history = deque(maxlen=0)

    def reset(self):
        """Drop open spans and recorded history."""
        self._depth = 0
        self._span_stack = []
        self.history = deque(maxlen=self.config.history_size)

    def _should_log(self, level):
        if not self.config.enabled:
            return False
        return self.LEVELS.get(level, 2) <= self.LEVELS.get(self.config.level, 2)

    def _write(self, level, module, func, message, meta=None):
        if not self._should_log(level):
            return

        now = datetime.now()
        timestamp = now.strftime("%H:%M:%S.") + f"{now.microsecond // 1000:03d}"
        location = f"{module}:{func}" if func else module
        text_line = f"{timestamp} {level:<5} {'  ' * self._depth}{location}  {message}"

        record = {
            "timestamp": timestamp,
            "level": level,
            "depth": self._depth,
            "module": module,
            "function": func,
            "message": message,
            "meta": {k: summarize(v) for k, v in (meta or {}).items()},
        }
        if self.history.maxlen:
            self.history.append(record)

        lines = [text_line]
        if self.config.json_output:
            lines.append(json.dumps(record))

        for line in lines:
            print(line, file=sys.stderr)
            if self.config._file_handle:
                self.config._file_handle.write(line + "\n")
        if self.config._file_handle:
            self.config._file_handle.flush()

    @contextmanager
    def span(self, name, module="", **meta):
        """
        Context manager for a traced span.

        Logs start and end with elapsed milliseconds. A failing body is
        logged at ERROR and re-raised.
        """
        if not self.config.enabled:
            yield
            return

        start = time.perf_counter()
        meta_str = " ".join(f"{k}={summarize(v)}" for k, v in meta.items())
        self._write("INFO", module, name, f"start {meta_str}".strip(), meta)
        self._depth += 1
        self._span_stack.append((name, module))

        try:
            yield
        except Exception as e:
            elapsed = (time.perf_counter() - start) * 1000
            self._span_stack.pop()
            self._depth -= 1
            self._write("ERROR", module, name,
                        f"failed dt={elapsed:.0f}ms error={type(e).__name__}: {str(e)[:100]}")
            raise

        elapsed = (time.perf_counter() - start) * 1000
        self._span_stack.pop()
        self._depth -= 1
        self._write("INFO", module, name, f"end ok dt={elapsed:.0f}ms")

    def event(self, message, level="INFO", **meta):
        """Log a one-off event within the current span."""
        if not self._should_log(level):
            return

        func, module = self._span_stack[-1] if self._span_stack else ("", "")
        meta_str = " ".join(f"{k}={summarize(v)}" for k, v in meta.items())
        self._write(level, module, func, f"{message} {meta_str}".strip(), meta)

    def warn(self, message, **meta):
        """Shorthand for a WARN event."""
        self.event(message, level="WARN", **meta)


def summarize(obj, max_len=200):
    """
    Summarize an object for logging.

    Returns a compact string that never exceeds max_len chars. Knows about
    numpy arrays, shapely geometries, networkx graphs, the analysis models
    and other pydantic models.
    """
    try:
        result = _summarize_impl(obj)
    except Exception:
        return f"<{type(obj).__name__}>"
    if len(result) > max_len:
        return result[:max_len - 3] + "..."
    return result


def _summarize_impl(obj):
    if obj is None:
        return "None"

    type_name = type(obj).__name__

    import numpy as np
    if isinstance(obj, np.ndarray):
        shape_str = "x".join(str(s) for s in obj.shape)
        source = obj.tobytes() if 0 < obj.size < 1000 else str(obj.shape).encode()
        h = hashlib.md5(source).hexdigest()[:8]
        return f"ndarray({obj.dtype},{shape_str},h={h})"

    from shapely.geometry.base import BaseGeometry
    if isinstance(obj, BaseGeometry):
        bounds_str = ",".join(f"{b:.3f}" for b in obj.bounds)
        return f"{type_name}(bounds=[{bounds_str}])"

    import networkx as nx
    if isinstance(obj, nx.Graph):
        return f"{type_name}(nodes={obj.number_of_nodes()},edges={obj.number_of_edges()})"

    from inkfusion.models import BoundingBox, DetectedElement, Stroke
    if isinstance(obj, BoundingBox):
        corners = ",".join(f"{v:.3f}" for v in obj.as_list())
        return f"BoundingBox([{corners}])"
    if isinstance(obj, DetectedElement):
        return f"DetectedElement(name={obj.name!r},source={obj.source.value},conf={obj.confidence:.2f})"
    if isinstance(obj, Stroke):
        return f"Stroke(id={obj.id!r},points={len(obj.points)})"

    from pydantic import BaseModel
    if isinstance(obj, BaseModel):
        fields = list(type(obj).model_fields.keys())[:3]
        return f"{type_name}(fields={fields}...)"

    if isinstance(obj, str):
        if len(obj) > 50:
            h = hashlib.md5(obj.encode()).hexdigest()[:8]
            return f"str(len={len(obj)},h={h})"
        return repr(obj)

    if isinstance(obj, bytes):
        return f"bytes(len={len(obj)},h={hashlib.md5(obj).hexdigest()[:8]})"

    if isinstance(obj, (list, tuple)):
        if not obj:
            return f"{type_name}(len=0)"
        return f"{type_name}(len={len(obj)},first={type(obj[0]).__name__})"

    if isinstance(obj, dict):
        keys_str = ",".join(str(k) for k in list(obj.keys())[:5])
        return f"dict(len={len(obj)},keys=[{keys_str}])"

    if isinstance(obj, float):
        return f"{obj:.4g}"

    if isinstance(obj, int):
        return str(obj)

    return f"<{type_name}>"


def trace(label=None, arg_names=None):
    """
    Decorator to trace function execution.

    Wraps the call in a span named after the label (or function name).
    arg_names selects keyword arguments to show in the span header.
    """
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            if not _tracer.config.enabled:
                return func(*args, **kwargs)

            module = func.__module__.split(".")[-1] if func.__module__ else ""
            meta = {name: kwargs[name] for name in (arg_names or []) if name in kwargs}

            with _tracer.span(label or func.__name__, module=module, **meta):
                return func(*args, **kwargs)

        return wrapper
    return decorator


# Global tracer instance
_tracer = Tracer()


def get_tracer():
    """Get the global tracer instance."""
    return _tracer


def configure_tracer(enabled=False, level="INFO", file_path=None, json_output=False,
                     history_size=0):
    """Configure the global tracer and clear its history."""
    _tracer.config.configure(
        enabled=enabled,
        level=level,
        file_path=file_path,
        json_output=json_output,
        history_size=history_size,
    )
    _tracer.reset()
