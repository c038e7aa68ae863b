"""
Diagnostics Module
Console logging shared by every component of the collector.

One Diagnostics object is built from configuration and handed to each
component, which keeps a module-scoped view of it:

    diagnostics = Diagnostics(level='info')
    log = diagnostics.module('UDPServer')
    log.info("Listening")   # [2024-01-15 14:30:22] INFO  UDPServer: Listening
"""

import sys
import datetime

LOG_LEVELS = {
    'none': -1,   # Only success lines and raw output
    'error': 0,
    'warn': 1,
    'info': 2,
    'debug': 3,
    'trace': 4,
}

COLORS = {
    'ERROR': '\x1b[31m',
    'WARN': '\x1b[33m',
    'INFO': '\x1b[36m',
    'DEBUG': '\x1b[35m',
    'TRACE': '\x1b[90m',
    'MODULE': '\x1b[34m',
    'SUCCESS': '\x1b[32m',
    'RESET': '\x1b[0m',
}


def parse_level(name):
    """
    Convert a level name to its numeric value

    Raises:
        ValueError: if the name is not one of LOG_LEVELS
    """
    key = str(name).strip().lower()
    if key not in LOG_LEVELS:
        raise ValueError(f"Unknown log level '{name}' (expected one of: {', '.join(LOG_LEVELS)})")
    return LOG_LEVELS[key]


class Diagnostics:
    def __init__(self, level='none', use_colors=True, out=None, err=None):
        """
        Initialize diagnostics sink

        Args:
            level: Level name ('none', 'error', 'warn', 'info', 'debug', 'trace')
            use_colors: Wrap level and module names in ANSI colours
            out: Stream for info/debug/trace/success lines (default stdout)
            err: Stream for error/warn lines (default stderr)
        """
        self.level = parse_level(level)
        self.use_colors = use_colors
        self._out = out
        self._err = err

    @property
    def level_name(self):
        for name, value in LOG_LEVELS.items():
            if value == self.level:
                return name
        return 'unknown'

    def set_level(self, level):
        self.level = parse_level(level)

    def enabled(self, level):
        return LOG_LEVELS[level] <= self.level

    def module(self, name):
        """Return a logger bound to a module name"""
        return ModuleLog(self, name)

    def _stream(self, is_error):
        # Resolved lazily so pytest's capsys sees the redirected streams
        if is_error:
            return self._err or sys.stderr
        return self._out or sys.stdout

    def _colorize(self, text, color):
        if not self.use_colors:
            return text
        return f"{COLORS[color]}{text}{COLORS['RESET']}"

    def _timestamp(self):
        return datetime.datetime.now().strftime('%Y-%m-%d %H:%M:%S')

    def emit(self, level, module_name, message):
        if not self.enabled(level):
            return
        label = level.upper()
        level_str = self._colorize(label.ljust(5), label)
        module_str = self._colorize(module_name, 'MODULE')
        line = f"[{self._timestamp()}] {level_str} {module_str}: {message}"
        print(line, file=self._stream(level in ('error', 'warn')), flush=True)

    def success(self, module_name, message):
        """Always printed, whatever the level"""
        mark = self._colorize('✓', 'SUCCESS')
        module_str = self._colorize(module_name, 'MODULE')
        print(f"[{self._timestamp()}] {mark} {module_str}: {message}", file=self._stream(False), flush=True)

    def raw(self, *args):
        print(*args, file=self._stream(False), flush=True)


class ModuleLog:
    """Module-scoped view of a Diagnostics sink"""

    def __init__(self, diagnostics, name):
        self.diagnostics = diagnostics
        self.name = name

    def error(self, message):
        self.diagnostics.emit('error', self.name, message)

    def warn(self, message):
        self.diagnostics.emit('warn', self.name, message)

    def info(self, message):
        self.diagnostics.emit('info', self.name, message)

    def debug(self, message):
        self.diagnostics.emit('debug', self.name, message)

    def trace(self, message):
        self.diagnostics.emit('trace', self.name, message)

    def success(self, message):
        self.diagnostics.success(self.name, message)

    def raw(self, *args):
        self.diagnostics.raw(*args)
