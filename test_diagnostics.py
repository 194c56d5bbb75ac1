#!/usr/bin/env python3
"""
Тесты приемника диагностических сообщений
"""

import io

import pytest

from diagnostics import ConversionWarning, Diagnostics


def test_records_by_level():
    diagnostics = Diagnostics(emit_warnings=False)
    diagnostics.debug("chunk")
    diagnostics.info("preset")
    diagnostics.warn("too many oscillators", preset="Piano")
    diagnostics.warn("unknown chunk")

    assert [r.level for r in diagnostics.records] == ["debug", "info", "warning", "warning"]
    assert len(diagnostics.warnings) == 2
    assert [r.message for r in diagnostics.warnings_for("Piano")] == ["too many oscillators"]


def test_verbose_output():
    stream = io.StringIO()
    Diagnostics(verbose=True, stream=stream).debug("Chunk: INFO")
    Diagnostics(verbose=False, stream=stream).debug("hidden")
    assert stream.getvalue() == "Chunk: INFO\n"


def test_warnings_are_emitted():
    with pytest.warns(ConversionWarning, match="Unused generator"):
        Diagnostics().warn("Unused generator: 14")
