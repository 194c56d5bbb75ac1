import sys
import warnings
from typing import List, Optional, TextIO


class ConversionWarning(UserWarning):
    """Предупреждение конвертера (пропущенные чанки, генераторы, лишние осцилляторы)"""


class DiagnosticRecord:
    """Одна запись диагностики"""
    __slots__ = ['level', 'message', 'preset']

    def __init__(self, level: str, message: str, preset: Optional[str] = None):
        self.level = level
        self.message = message
        self.preset = preset

    def __repr__(self):
        return f"DiagnosticRecord({self.level!r}, {self.message!r})"


class Diagnostics:
    """
    Приемник диагностических сообщений.

    Передается явно в декодер и конвертер вместо глобального состояния,
    чтобы каждую конвертацию можно было проверять отдельно.
    Предупреждения дублируются через warnings.warn, debug сообщения
    печатаются только в verbose режиме.
    """

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"

    def __init__(self, verbose: bool = False, emit_warnings: bool = True, stream: Optional[TextIO] = None):
        self.verbose = verbose
        self.emit_warnings = emit_warnings
        self.stream = stream
        self.records: List[DiagnosticRecord] = []

    def _record(self, level: str, message: str, preset: Optional[str] = None) -> DiagnosticRecord:
        record = DiagnosticRecord(level, message, preset)
        self.records.append(record)
        return record

    def debug(self, message: str):
        self._record(self.DEBUG, message)
        if self.verbose:
            print(message, file=self.stream or sys.stderr)

    def info(self, message: str):
        self._record(self.INFO, message)
        if self.verbose:
            print(message, file=self.stream or sys.stdout)

    def warn(self, message: str, preset: Optional[str] = None):
        self._record(self.WARNING, message, preset)
        if self.emit_warnings:
            warnings.warn(message, ConversionWarning, stacklevel=3)

    @property
    def warnings(self) -> List[DiagnosticRecord]:
        return [r for r in self.records if r.level == self.WARNING]

    def warnings_for(self, preset: str) -> List[DiagnosticRecord]:
        return [r for r in self.warnings if r.preset == preset]
