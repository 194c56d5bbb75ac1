import struct
from enum import IntEnum
from typing import Callable, Dict, Optional, Tuple, Union

from diagnostics import Diagnostics


class GeneratorType(IntEnum):
    """Операторы генераторов SoundFont 2.01 (значение = код в pgen/igen)"""
    START_ADDRS_OFFSET = 0
    END_ADDRS_OFFSET = 1
    STARTLOOP_ADDRS_OFFSET = 2
    ENDLOOP_ADDRS_OFFSET = 3
    START_ADDRS_COARSE_OFFSET = 4
    MOD_LFO_TO_PITCH = 5
    VIB_LFO_TO_PITCH = 6
    MOD_ENV_TO_PITCH = 7
    INITIAL_FILTER_FC = 8
    INITIAL_FILTER_Q = 9
    MOD_LFO_TO_FILTER_FC = 10
    MOD_ENV_TO_FILTER_FC = 11
    END_ADDRS_COARSE_OFFSET = 12
    MOD_LFO_TO_VOLUME = 13
    CHORUS_EFFECTS_SEND = 15
    REVERB_EFFECTS_SEND = 16
    PAN = 17
    DELAY_MOD_LFO = 21
    FREQ_MOD_LFO = 22
    DELAY_VIB_LFO = 23
    FREQ_VIB_LFO = 24
    DELAY_MOD_ENV = 25
    ATTACK_MOD_ENV = 26
    HOLD_MOD_ENV = 27
    DECAY_MOD_ENV = 28
    SUSTAIN_MOD_ENV = 29
    RELEASE_MOD_ENV = 30
    KEYNUM_TO_MOD_ENV_HOLD = 31
    KEYNUM_TO_MOD_ENV_DECAY = 32
    DELAY_VOL_ENV = 33
    ATTACK_VOL_ENV = 34
    HOLD_VOL_ENV = 35
    DECAY_VOL_ENV = 36
    SUSTAIN_VOL_ENV = 37
    RELEASE_VOL_ENV = 38
    KEYNUM_TO_VOL_ENV_HOLD = 39
    KEYNUM_TO_VOL_ENV_DECAY = 40
    INSTRUMENT = 41
    KEY_RANGE = 43
    VEL_RANGE = 44
    STARTLOOP_ADDRS_COARSE_OFFSET = 45
    KEYNUM = 46
    VELOCITY = 47
    INITIAL_ATTENUATION = 48
    ENDLOOP_ADDRS_COARSE_OFFSET = 50
    COARSE_TUNE = 51
    FINE_TUNE = 52
    SAMPLE_ID = 53
    SAMPLE_MODES = 54
    SCALE_TUNING = 56
    EXCLUSIVE_CLASS = 57
    OVERRIDING_ROOT_KEY = 58
    END_OPER = 60
    # Нераспознанный или зарезервированный оператор
    UNUSED = -1


class LoopMode(IntEnum):
    """Значения генератора sampleModes"""
    NO_LOOP = 0
    CONTINUOUS_LOOP = 1
    RELEASE_LOOP = 3


# Физические единицы значения генератора
class Seconds(float):
    """Время в секундах"""


class Level(float):
    """Уровень в децибелах (0 = пик, отрицательные значения = ослабление)"""


GeneratorAmount = Union[int, Tuple[int, int], LoopMode, None]


class SF2Generator:
    """Генератор: дискриминант GeneratorType и типизированное значение"""
    __slots__ = ['kind', 'amount', 'oper']

    def __init__(self, kind: GeneratorType, amount: GeneratorAmount = None, oper: Optional[int] = None):
        self.kind = kind
        self.amount = amount
        self.oper = int(kind) if oper is None else oper

    def value(self) -> Optional[float]:
        """
        Физическое значение генераторов огибающих.

        Returns:
            Seconds для времен (timecents), Level для sustainVolEnv (centibels),
            None для остальных генераторов
        """
        if self.kind in TIMECENT_GENERATORS:
            return Seconds(timecents_to_seconds(self.amount))
        if self.kind == GeneratorType.SUSTAIN_VOL_ENV:
            return Level(centibels_to_level(self.amount))
        return None

    def __eq__(self, other):
        if not isinstance(other, SF2Generator):
            return NotImplemented
        return self.kind == other.kind and self.amount == other.amount

    def __hash__(self):
        return hash((self.kind, self.amount))

    def __repr__(self):
        if self.kind == GeneratorType.UNUSED:
            return f"SF2Generator(UNUSED, oper={self.oper})"
        return f"SF2Generator({self.kind.name}, {self.amount!r})"


TIMECENT_GENERATORS = frozenset([
    GeneratorType.DELAY_MOD_LFO,
    GeneratorType.DELAY_VIB_LFO,
    GeneratorType.DELAY_MOD_ENV,
    GeneratorType.ATTACK_MOD_ENV,
    GeneratorType.HOLD_MOD_ENV,
    GeneratorType.DECAY_MOD_ENV,
    GeneratorType.RELEASE_MOD_ENV,
    GeneratorType.DELAY_VOL_ENV,
    GeneratorType.ATTACK_VOL_ENV,
    GeneratorType.HOLD_VOL_ENV,
    GeneratorType.DECAY_VOL_ENV,
    GeneratorType.RELEASE_VOL_ENV,
])


def timecents_to_seconds(timecents: int) -> float:
    """SoundFont timecents: time = 2 ^ (tc / 1200) секунд"""
    return 2.0 ** (timecents / 1200.0)


def centibels_to_level(centibels: int) -> float:
    """sustainVolEnv задает ослабление в сантибелах относительно пика"""
    return -max(0, centibels) / 10.0


def _signed(raw: bytes) -> int:
    return struct.unpack('<h', raw)[0]


def _unsigned(raw: bytes) -> int:
    return struct.unpack('<H', raw)[0]


def _range(raw: bytes) -> Tuple[int, int]:
    return raw[0], raw[1]


def _loop_mode(raw: bytes) -> LoopMode:
    """Режим зацикливания по младшему байту; значение 2 и прочие означают без цикла"""
    if raw[0] == 1:
        return LoopMode.CONTINUOUS_LOOP
    if raw[0] == 3:
        return LoopMode.RELEASE_LOOP
    return LoopMode.NO_LOOP


def _none(raw: bytes) -> None:
    return None


# Таблица оператор -> декодер значения. Все операторы, не попавшие в
# таблицу, декодируются как UNUSED.
_PAYLOAD_DECODERS: Dict[GeneratorType, Callable[[bytes], GeneratorAmount]] = {
    kind: _signed for kind in GeneratorType if kind != GeneratorType.UNUSED
}
_PAYLOAD_DECODERS.update({
    GeneratorType.INSTRUMENT: _unsigned,
    GeneratorType.SAMPLE_ID: _unsigned,
    GeneratorType.KEY_RANGE: _range,
    GeneratorType.VEL_RANGE: _range,
    GeneratorType.SAMPLE_MODES: _loop_mode,
    GeneratorType.END_OPER: _none,
})

_KNOWN_OPERS = {int(kind): kind for kind in _PAYLOAD_DECODERS}


def parse_generator(oper: int, raw: bytes, diagnostics: Optional[Diagnostics] = None) -> SF2Generator:
    """
    Декодирует пару (оператор, 2 байта значения) в генератор.

    Неизвестный оператор никогда не прерывает декодирование: возвращается
    генератор UNUSED с сохраненным кодом оператора.
    """
    kind = _KNOWN_OPERS.get(oper)
    if kind is None:
        if diagnostics is not None:
            diagnostics.warn(f"Unused generator: {oper}")
        return SF2Generator(GeneratorType.UNUSED, _unsigned(raw), oper)
    return SF2Generator(kind, _PAYLOAD_DECODERS[kind](raw), oper)
