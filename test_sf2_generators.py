#!/usr/bin/env python3
"""
Тесты декодирования генераторов SoundFont
"""

import math
import struct

import pytest

from diagnostics import ConversionWarning, Diagnostics
from sf2_generators import (GeneratorType, Level, LoopMode, SF2Generator, Seconds, centibels_to_level,
                            parse_generator, timecents_to_seconds)


def _signed(value):
    return struct.pack('<h', value)


def test_every_known_operator_decodes_to_its_kind():
    """Каждый известный код оператора дает генератор своего вида"""
    for kind in GeneratorType:
        if kind == GeneratorType.UNUSED:
            continue
        generator = parse_generator(int(kind), b'\x00\x00')
        assert generator.kind == kind
        assert generator.oper == int(kind)


def test_signed_and_unsigned_payloads():
    assert parse_generator(51, _signed(-12)).amount == -12  # coarseTune
    assert parse_generator(53, struct.pack('<H', 40000)).amount == 40000  # sampleID
    assert parse_generator(41, struct.pack('<H', 3)).amount == 3  # instrument


def test_range_payload():
    generator = parse_generator(43, bytes([36, 72]))
    assert generator.kind == GeneratorType.KEY_RANGE
    assert generator.amount == (36, 72)
    assert parse_generator(44, bytes([1, 127])).amount == (1, 127)


@pytest.mark.parametrize("raw, mode", [
    (0, LoopMode.NO_LOOP),
    (1, LoopMode.CONTINUOUS_LOOP),
    (2, LoopMode.NO_LOOP),
    (3, LoopMode.RELEASE_LOOP),
    (5, LoopMode.NO_LOOP),
    (7, LoopMode.NO_LOOP),
    (0x0101, LoopMode.CONTINUOUS_LOOP),
])
def test_sample_modes(raw, mode):
    assert parse_generator(54, _signed(raw)).amount == mode


def test_unknown_operator_is_unused_and_reported():
    """Неизвестный оператор не прерывает декодирование"""
    diagnostics = Diagnostics(emit_warnings=False)
    generator = parse_generator(14, b'\x05\x00', diagnostics)
    assert generator.kind == GeneratorType.UNUSED
    assert generator.oper == 14
    assert [w.message for w in diagnostics.warnings] == ["Unused generator: 14"]


def test_unknown_operator_emits_conversion_warning():
    with pytest.warns(ConversionWarning, match="Unused generator: 99"):
        parse_generator(99, b'\x00\x00', Diagnostics())


def test_envelope_values_in_physical_units():
    attack = parse_generator(34, _signed(-1200))
    assert isinstance(attack.value(), Seconds)
    assert attack.value() == pytest.approx(0.5)

    sustain = parse_generator(37, _signed(960))
    assert isinstance(sustain.value(), Level)
    assert sustain.value() == pytest.approx(-96.0)

    assert parse_generator(17, _signed(100)).value() is None  # pan


def test_unit_conversions():
    assert timecents_to_seconds(0) == 1.0
    assert timecents_to_seconds(1200) == 2.0
    assert timecents_to_seconds(-12000) == pytest.approx(2 ** -10)
    assert centibels_to_level(0) == 0.0
    assert centibels_to_level(200) == -20.0
    assert not math.isnan(centibels_to_level(-10))


def test_generator_equality():
    assert SF2Generator(GeneratorType.PAN, 10) == parse_generator(17, _signed(10))
    assert SF2Generator(GeneratorType.PAN, 10) != SF2Generator(GeneratorType.PAN, 11)
