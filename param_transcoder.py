import math
import numpy as np
from dataclasses import dataclass
from typing import Dict, Iterable, List, Sequence, Tuple

from sf2_dataclasses import ZoneView
from sf2_generators import GeneratorType

# Нормализованное значение Deluge: знаковое 32-битное число,
# отображаемое на экране как 0..50 (25 = 0x00000000)
MAX_POSITIVE = 0x7FFFFFFF
MIN_NEGATIVE = -0x80000000
DISPLAY_MIN = 0
DISPLAY_MID = 25
DISPLAY_MAX = 50

# Опорные точки кривых: значение на экране -> время в секундах.
# Между точками интерполяция по логарифму времени.
ATTACK_TABLE: Sequence[Tuple[int, float]] = (
    (0, 0.0007), (5, 0.003), (10, 0.01), (15, 0.025), (20, 0.06), (25, 0.14),
    (30, 0.32), (35, 0.7), (40, 1.5), (45, 3.4), (50, 7.5),
)
DECAY_TABLE: Sequence[Tuple[int, float]] = (
    (0, 0.003), (5, 0.012), (10, 0.04), (15, 0.1), (20, 0.25), (25, 0.55),
    (30, 1.2), (35, 2.6), (40, 5.5), (45, 11.5), (50, 24.0),
)
RELEASE_TABLE: Sequence[Tuple[int, float]] = (
    (0, 0.0025), (5, 0.01), (10, 0.035), (15, 0.09), (20, 0.22), (25, 0.5),
    (30, 1.1), (35, 2.4), (40, 5.0), (45, 10.5), (50, 22.0),
)


def to_signed(bits: int) -> int:
    bits &= 0xFFFFFFFF
    return bits - 0x100000000 if bits & 0x80000000 else bits


def to_bits(signed: int) -> int:
    return signed & 0xFFFFFFFF


def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def _clamp(x, low, high):
    return max(low, min(high, x))


def value_to_display(bits: int) -> int:
    """32-битное значение -> шкала 0..50: round(ratio * 25 + 25)"""
    ratio = to_signed(bits) / MAX_POSITIVE
    return _clamp(_round_half_up(ratio * DISPLAY_MID + DISPLAY_MID), DISPLAY_MIN, DISPLAY_MAX)


def display_to_value(display: float) -> int:
    """Шкала 0..50 -> 32-битное значение: ratio = (display - 25) / 25"""
    ratio = (display - DISPLAY_MID) / DISPLAY_MID
    signed = _clamp(_round_half_up(ratio * 2 ** 31), MIN_NEGATIVE, MAX_POSITIVE)
    return to_bits(signed)


class TimeCurve:
    """Монотонная кривая время <-> шкала 0..50 по таблице опорных точек"""

    def __init__(self, table: Sequence[Tuple[int, float]]):
        displays, seconds = zip(*table)
        self.displays = np.asarray(displays, dtype=np.float64)
        self.log_seconds = np.log(np.asarray(seconds, dtype=np.float64))
        if np.any(np.diff(self.log_seconds) <= 0):
            raise ValueError("Опорные точки кривой должны возрастать")

    def to_display(self, seconds: float) -> float:
        if seconds <= 0:
            return float(DISPLAY_MIN)
        return float(np.interp(math.log(seconds), self.log_seconds, self.displays))

    def to_seconds(self, display: float) -> float:
        return float(math.exp(np.interp(display, self.displays, self.log_seconds)))


ATTACK_CURVE = TimeCurve(ATTACK_TABLE)
DECAY_CURVE = TimeCurve(DECAY_TABLE)
RELEASE_CURVE = TimeCurve(RELEASE_TABLE)


def sustain_to_display(level_db: float) -> float:
    """Уровень sustain в дБ -> шкала 0..50 (линейная амплитуда)"""
    if level_db == -math.inf:
        return float(DISPLAY_MIN)
    return _clamp(DISPLAY_MAX * 10 ** (min(level_db, 0.0) / 20.0), DISPLAY_MIN, DISPLAY_MAX)


def display_to_sustain(display: float) -> float:
    if display <= DISPLAY_MIN:
        return -math.inf
    return 20.0 * math.log10(min(display, DISPLAY_MAX) / DISPLAY_MAX)


@dataclass
class EnvelopeAverage:
    """Усредненные физические параметры амплитудной огибающей"""
    attack: float = 0.0  # секунды
    decay: float = 0.0  # секунды
    sustain: float = 0.0  # дБ
    release: float = 0.0  # секунды


@dataclass
class EnvelopeValues:
    """Параметры огибающей в 32-битном представлении Deluge"""
    attack: int
    decay: int
    sustain: int
    release: int


_ENVELOPE_GENERATORS: Dict[str, GeneratorType] = {
    'attack': GeneratorType.ATTACK_VOL_ENV,
    'decay': GeneratorType.DECAY_VOL_ENV,
    'sustain': GeneratorType.SUSTAIN_VOL_ENV,
    'release': GeneratorType.RELEASE_VOL_ENV,
}


def _mean(values: List[float]) -> float:
    if not values:
        return 0.0
    return float(np.mean(values))


def average_envelope(zones: Iterable[ZoneView]) -> EnvelopeAverage:
    """
    Среднее арифметическое физических значений по всем зонам, где генератор задан.
    Если ни одна зона не задает параметр, он равен 0.
    """
    collected: Dict[str, List[float]] = {name: [] for name in _ENVELOPE_GENERATORS}
    for zone in zones:
        for name, kind in _ENVELOPE_GENERATORS.items():
            generator = zone.get(kind)
            if generator is not None:
                collected[name].append(generator.value())
    return EnvelopeAverage(**{name: _mean(values) for name, values in collected.items()})


def transcode_envelope(envelope: EnvelopeAverage) -> EnvelopeValues:
    """Физические значения -> шкала 0..50 (целые) -> 32-битные значения"""
    return EnvelopeValues(
        attack=display_to_value(_round_half_up(ATTACK_CURVE.to_display(envelope.attack))),
        decay=display_to_value(_round_half_up(DECAY_CURVE.to_display(envelope.decay))),
        sustain=display_to_value(_round_half_up(sustain_to_display(envelope.sustain))),
        release=display_to_value(_round_half_up(RELEASE_CURVE.to_display(envelope.release))),
    )
