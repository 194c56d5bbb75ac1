from enum import IntEnum
from typing import Iterator, List, Optional, Sequence

from sf2_generators import GeneratorType, SF2Generator


class SampleType(IntEnum):
    MONO = 1
    RIGHT = 2
    LEFT = 4
    LINKED = 8
    ROM_MONO = 32769
    ROM_RIGHT = 32770
    ROM_LEFT = 32772
    ROM_LINKED = 32776


class SourceController(IntEnum):
    """Индексы источника модулятора при сброшенном флаге CC"""
    NO_CONTROLLER = 0
    NOTE_ON_VELOCITY = 2
    NOTE_ON_KEY_NUMBER = 3
    POLY_PRESSURE = 10
    CHANNEL_PRESSURE = 13
    PITCH_WHEEL = 14
    PITCH_WHEEL_SENSITIVITY = 16
    LINK = 127


class SourceType(IntEnum):
    LINEAR = 0
    CONCAVE = 1
    CONVEX = 2
    SWITCH = 3


class ModulatorTransform(IntEnum):
    LINEAR = 0
    ABSOLUTE_VALUE = 2


class ModulatorSource:
    """Декодированное 16-битное поле источника модулятора"""
    __slots__ = ['source_type', 'polarity', 'direction', 'cc', 'index']

    def __init__(self, raw: int = 0):
        self.source_type = (raw >> 10) & 0x3F  # 0 linear, 1 concave, 2 convex, 3 switch
        self.polarity = (raw >> 9) & 0x01  # 0 = unipolar, 1 = bipolar
        self.direction = (raw >> 8) & 0x01  # 0 = min -> max, 1 = max -> min
        self.cc = bool(raw & 0x80)  # индекс - номер MIDI CC
        self.index = raw & 0x7F

    @property
    def controller(self):
        """SourceController или номер MIDI CC; неизвестные индексы остаются числом"""
        if self.cc:
            return self.index
        try:
            return SourceController(self.index)
        except ValueError:
            return self.index

    def __repr__(self):
        kind = "cc" if self.cc else "general"
        return (f"ModulatorSource({kind}={self.index}, type={self.source_type}, "
                f"polarity={self.polarity}, direction={self.direction})")


class SF2Modulator:
    """Модулятор SoundFont 2.0 (декодируется, но конвертером не используется)"""
    __slots__ = ['source', 'destination', 'link', 'amount', 'amount_source', 'transform']

    def __init__(self, source: int = 0, destination: int = 0, amount: int = 0,
                 amount_source: int = 0, transform: int = 0):
        self.source = ModulatorSource(source)
        # Старший бит цели - ссылка на другой модулятор
        self.link = bool(destination & 0x8000)
        self.destination = destination & 0x7FFF if self.link else destination
        self.amount = amount
        self.amount_source = ModulatorSource(amount_source)
        self.transform = transform

    def __repr__(self):
        dest = f"link {self.destination}" if self.link else f"gen {self.destination}"
        return f"SF2Modulator({self.source!r} -> {dest}, amount={self.amount})"


class SF2SampleHeader:
    """Заголовок сэмпла в SoundFont 2.0"""
    __slots__ = [
        'name', 'start', 'end', 'start_loop', 'end_loop', 'sample_rate',
        'original_pitch', 'pitch_correction', 'link', 'type'
    ]

    def __init__(self):
        self.name = "Default"
        self.start = 0
        self.end = 0
        self.start_loop = 0
        self.end_loop = 0
        self.sample_rate = 44100
        self.original_pitch = 60  # MIDI note number
        self.pitch_correction = 0  # в центах
        self.link = 0
        self.type = SampleType.MONO  # 1 = mono, 2 = right, 4 = left, 8 = linked

    @property
    def is_terminal(self) -> bool:
        return self.name.startswith("EOS")

    def __repr__(self):
        return f"SF2SampleHeader({self.name!r}, {self.start}-{self.end}, rate={self.sample_rate})"


class SF2Preset:
    """Заголовок пресета в SoundFont 2.0"""
    __slots__ = [
        'name', 'preset', 'bank', 'preset_bag_index', 'library', 'genre', 'morphology'
    ]

    def __init__(self):
        self.name = "Default"
        self.preset = 0
        self.bank = 0
        self.preset_bag_index = 0
        self.library = 0
        self.genre = 0
        self.morphology = 0

    @property
    def is_terminal(self) -> bool:
        return self.name.startswith("EOP")

    def __repr__(self):
        return f"SF2Preset({self.name!r}, bank={self.bank}, preset={self.preset})"


class SF2Instrument:
    """Заголовок инструмента в SoundFont 2.0"""
    __slots__ = ['name', 'instrument_bag_index']

    def __init__(self):
        self.name = "Default"
        self.instrument_bag_index = 0

    @property
    def is_terminal(self) -> bool:
        return self.name.startswith("EOI")

    def __repr__(self):
        return f"SF2Instrument({self.name!r})"


class SF2Bag:
    """Запись pbag / ibag: начальные индексы в общих массивах генераторов и модуляторов"""
    __slots__ = ['gen_ndx', 'mod_ndx']

    def __init__(self, gen_ndx: int = 0, mod_ndx: int = 0):
        self.gen_ndx = gen_ndx
        self.mod_ndx = mod_ndx

    def __repr__(self):
        return f"SF2Bag(gen_ndx={self.gen_ndx}, mod_ndx={self.mod_ndx})"


class ZoneView:
    """
    Зона: срез [start, end) общего массива генераторов без копирования.

    Если генератор одного вида встречается в зоне несколько раз,
    действует первый по порядку массива.
    """
    __slots__ = ['generators', 'start', 'end', 'bag_index']

    def __init__(self, generators: Sequence[SF2Generator], start: int, end: int, bag_index: int = -1):
        self.generators = generators
        self.start = start
        self.end = end
        self.bag_index = bag_index

    def __len__(self):
        return self.end - self.start

    def __iter__(self) -> Iterator[SF2Generator]:
        for i in range(self.start, self.end):
            yield self.generators[i]

    def __getitem__(self, i: int) -> SF2Generator:
        if i < 0:
            i += len(self)
        if not 0 <= i < len(self):
            raise IndexError(i)
        return self.generators[self.start + i]

    def get(self, kind: GeneratorType) -> Optional[SF2Generator]:
        for generator in self:
            if generator.kind == kind:
                return generator
        return None

    def amount(self, kind: GeneratorType, default=None):
        generator = self.get(kind)
        return default if generator is None else generator.amount

    def has(self, kind: GeneratorType) -> bool:
        return self.get(kind) is not None

    def to_list(self) -> List[SF2Generator]:
        return list(self)

    def __repr__(self):
        return f"ZoneView([{self.start}:{self.end}] {self.to_list()!r})"
