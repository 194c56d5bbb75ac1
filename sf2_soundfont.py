import io
import sys
import numpy as np
from typing import BinaryIO, Dict, Iterator, List, Optional, Sequence, TextIO, Tuple, Union

from diagnostics import Diagnostics
from riff import RiffChunk, RiffFormatError, walk_chunks
from sf2_dataclasses import (SF2Bag, SF2Instrument, SF2Modulator, SF2Preset, SF2SampleHeader,
                             SampleType, ZoneView)
from sf2_generators import GeneratorType, SF2Generator, parse_generator


class Sf2FormatError(ValueError):
    """Неустранимая ошибка формата SoundFont (прерывает обработку файла)"""


NAME_SIZE = 20
INVALID_NAME = "<invalid>"

# Структуры записей pdta (little-endian)
SHDR_DTYPE = np.dtype([
    ('name', 'S20'),
    ('start', '<u4'),
    ('end', '<u4'),
    ('start_loop', '<u4'),
    ('end_loop', '<u4'),
    ('sample_rate', '<u4'),
    ('original_pitch', 'u1'),
    ('pitch_correction', 'i1'),
    ('link', '<u2'),
    ('type', '<u2'),
])

PHDR_DTYPE = np.dtype([
    ('name', 'S20'),
    ('preset', '<u2'),
    ('bank', '<u2'),
    ('preset_bag_ndx', '<u2'),
    ('library', '<u4'),
    ('genre', '<u4'),
    ('morphology', '<u4'),
])

INST_DTYPE = np.dtype([
    ('name', 'S20'),
    ('inst_bag_ndx', '<u2'),
])

BAG_DTYPE = np.dtype([
    ('gen_ndx', '<u2'),
    ('mod_ndx', '<u2'),
])

# Значение генератора храним сырыми байтами, тип зависит от оператора
GEN_DTYPE = np.dtype([
    ('oper', '<u2'),
    ('amount', 'u1', (2,)),
])

MOD_DTYPE = np.dtype([
    ('src_oper', '<u2'),
    ('dest_oper', '<u2'),
    ('amount', '<i2'),
    ('amt_src_oper', '<u2'),
    ('trans_oper', '<u2'),
])

VERSION_DTYPE = np.dtype([('major', '<u2'), ('minor', '<u2')])

INFO_TEXT_CHUNKS = {
    b'INAM': 'name',
    b'isng': 'sound_engine',
    b'irom': 'rom_name',
    b'ICRD': 'creation_date',
    b'IENG': 'engineers',
    b'IPRD': 'product',
    b'ICOP': 'copyright',
    b'ICMT': 'comments',
    b'ISFT': 'software',
}
INFO_VERSION_CHUNKS = {
    b'ifil': 'version',
    b'iver': 'rom_version',
}

# Сэмплы, которые можно сохранить как моно 16 бит
SUPPORTED_SAMPLE_TYPES = (SampleType.MONO, SampleType.RIGHT, SampleType.LEFT)


def decode_name(raw: bytes) -> str:
    """Имя фиксированной длины: обрезается по первому нулевому байту"""
    raw = bytes(raw).split(b'\x00', 1)[0]
    try:
        return raw.decode('utf-8').strip()
    except UnicodeDecodeError:
        return INVALID_NAME


def decode_records(data: bytes, dtype: np.dtype, chunk_name: str) -> np.ndarray:
    """
    Позиционное декодирование записей фиксированного размера.

    Args:
        data: полезные данные чанка
        dtype: структура одной записи
        chunk_name: имя чанка для сообщения об ошибке

    Returns:
        структурированный массив записей
    """
    if len(data) % dtype.itemsize != 0:
        raise Sf2FormatError(
            f"Чанк {chunk_name}: {len(data)} байт не делится на размер записи {dtype.itemsize}"
        )
    return np.frombuffer(data, dtype=dtype)


def resolve_index_range(first_indices: Sequence[int], i: int, shared_length: int) -> Tuple[int, int]:
    """
    Диапазон [start, end) сущности i в общем массиве.

    Начало хранится в самой сущности, конец - это начало следующей сущности,
    а для последней сущности - длина общего массива. Используется одинаково
    для пресетов, инструментов и их bag записей.
    """
    count = len(first_indices)
    if not 0 <= i < count:
        raise IndexError(f"Индекс {i} вне диапазона 0..{count - 1}")
    start = int(first_indices[i])
    end = int(first_indices[i + 1]) if i + 1 < count else shared_length
    if start > end or end > shared_length:
        raise Sf2FormatError(
            f"Некорректный диапазон индексов [{start}, {end}) при длине массива {shared_length}"
        )
    return start, end


class Sf2SoundFont:
    """
    SoundFont файл, полностью загруженный в память.

    Все массивы pdta (включая терминальные записи EOP/EOI/EOS) и сырые
    PCM данные читаются один раз при создании объекта. Зоны пресетов и
    инструментов строятся по запросу как срезы общих массивов.
    """

    def __init__(self, sf2_path: Optional[str] = None, diagnostics: Optional[Diagnostics] = None,
                 stream: Optional[BinaryIO] = None):
        """
        Args:
            sf2_path: путь к файлу SoundFont (.sf2)
            diagnostics: приемник диагностических сообщений
            stream: уже открытый бинарный поток (вместо пути)
        """
        self.path = sf2_path
        self.diagnostics = diagnostics if diagnostics is not None else Diagnostics()

        self.info: Dict[str, Union[str, Tuple[int, int]]] = {}
        self.samples: List[SF2SampleHeader] = []
        self.presets: List[SF2Preset] = []
        self.instruments: List[SF2Instrument] = []
        self.pbags: List[SF2Bag] = []
        self.ibags: List[SF2Bag] = []
        self.pgens: List[SF2Generator] = []
        self.igens: List[SF2Generator] = []
        self.pmods: List[SF2Modulator] = []
        self.imods: List[SF2Modulator] = []
        self.sample_data = np.zeros(0, dtype='<i2')
        self.sample_data_24: Optional[bytes] = None

        # первые индексы записей, строятся один раз после разбора
        self.preset_bag_starts: List[int] = []
        self.instrument_bag_starts: List[int] = []
        self.pbag_gen_starts: List[int] = []
        self.pbag_mod_starts: List[int] = []
        self.ibag_gen_starts: List[int] = []
        self.ibag_mod_starts: List[int] = []

        if stream is not None:
            self._parse(stream)
        elif sf2_path is not None:
            with open(sf2_path, 'rb', buffering=1024 * 1024) as f:
                self._parse(f)

    @classmethod
    def from_bytes(cls, data: bytes, diagnostics: Optional[Diagnostics] = None) -> 'Sf2SoundFont':
        return cls(diagnostics=diagnostics, stream=io.BytesIO(data))

    # Декодирование

    def _parse(self, stream: BinaryIO):
        try:
            for chunk in walk_chunks(stream, expected_form=b'sfbk'):
                self.diagnostics.debug(f"{' ' * (2 * chunk.depth)}Chunk: {chunk.name}, len: {chunk.size}")
                if chunk.is_container:
                    continue
                self._parse_leaf(chunk)
        except RiffFormatError as e:
            raise Sf2FormatError(f"Некорректный формат SoundFont файла {self.path or '<stream>'}: {e}") from e
        self._build_indices()

    def _build_indices(self):
        self.preset_bag_starts = [p.preset_bag_index for p in self.presets]
        self.instrument_bag_starts = [i.instrument_bag_index for i in self.instruments]
        self.pbag_gen_starts = [b.gen_ndx for b in self.pbags]
        self.pbag_mod_starts = [b.mod_ndx for b in self.pbags]
        self.ibag_gen_starts = [b.gen_ndx for b in self.ibags]
        self.ibag_mod_starts = [b.mod_ndx for b in self.ibags]

    def _parse_leaf(self, chunk: RiffChunk):
        chunk_id = chunk.id
        data = chunk.data
        if chunk_id in INFO_VERSION_CHUNKS:
            record = decode_records(data[:VERSION_DTYPE.itemsize], VERSION_DTYPE, chunk.name)
            if len(record):
                self.info[INFO_VERSION_CHUNKS[chunk_id]] = (int(record[0]['major']), int(record[0]['minor']))
        elif chunk_id in INFO_TEXT_CHUNKS:
            try:
                text = data.split(b'\x00', 1)[0].decode('utf-8')
            except UnicodeDecodeError as e:
                raise Sf2FormatError(f"Некорректная кодировка текста в чанке {chunk.name}") from e
            self.info[INFO_TEXT_CHUNKS[chunk_id]] = text
        elif chunk_id == b'smpl':
            if len(data) % 2 != 0:
                raise Sf2FormatError(f"Чанк smpl нечетной длины: {len(data)}")
            self.sample_data = np.frombuffer(data, dtype='<i2')
            self.diagnostics.debug(f"Samples: {len(self.sample_data)}")
        elif chunk_id == b'sm24':
            self.sample_data_24 = data
        elif chunk_id == b'shdr':
            self.samples = self._parse_shdr(data)
        elif chunk_id == b'phdr':
            self.presets = self._parse_phdr(data)
        elif chunk_id == b'inst':
            self.instruments = self._parse_inst(data)
        elif chunk_id == b'pbag':
            self.pbags = self._parse_bags(data, 'pbag')
        elif chunk_id == b'ibag':
            self.ibags = self._parse_bags(data, 'ibag')
        elif chunk_id == b'pgen':
            self.pgens = self._parse_gens(data, 'pgen')
        elif chunk_id == b'igen':
            self.igens = self._parse_gens(data, 'igen')
        elif chunk_id == b'pmod':
            self.pmods = self._parse_mods(data, 'pmod')
        elif chunk_id == b'imod':
            self.imods = self._parse_mods(data, 'imod')
        else:
            self.diagnostics.warn(f"Unknown chunk {chunk.name!r} skipped")

    def _parse_shdr(self, data: bytes) -> List[SF2SampleHeader]:
        samples = []
        for record in decode_records(data, SHDR_DTYPE, 'shdr'):
            sample = SF2SampleHeader()
            sample.name = decode_name(record['name'])
            sample.start = int(record['start'])
            sample.end = int(record['end'])
            sample.start_loop = int(record['start_loop'])
            sample.end_loop = int(record['end_loop'])
            sample.sample_rate = int(record['sample_rate'])
            sample.original_pitch = int(record['original_pitch'])
            sample.pitch_correction = int(record['pitch_correction'])
            sample.link = int(record['link'])
            try:
                sample.type = SampleType(int(record['type']))
            except ValueError:
                sample.type = int(record['type'])
            if not sample.is_terminal:
                self.diagnostics.debug(f"Sample: {sample.name}")
            samples.append(sample)
        return samples

    def _parse_phdr(self, data: bytes) -> List[SF2Preset]:
        presets = []
        for record in decode_records(data, PHDR_DTYPE, 'phdr'):
            preset = SF2Preset()
            preset.name = decode_name(record['name'])
            preset.preset = int(record['preset'])
            preset.bank = int(record['bank'])
            preset.preset_bag_index = int(record['preset_bag_ndx'])
            preset.library = int(record['library'])
            preset.genre = int(record['genre'])
            preset.morphology = int(record['morphology'])
            if not preset.is_terminal:
                self.diagnostics.debug(f"Preset: {preset.name}")
            presets.append(preset)
        return presets

    def _parse_inst(self, data: bytes) -> List[SF2Instrument]:
        instruments = []
        for record in decode_records(data, INST_DTYPE, 'inst'):
            instrument = SF2Instrument()
            instrument.name = decode_name(record['name'])
            instrument.instrument_bag_index = int(record['inst_bag_ndx'])
            if not instrument.is_terminal:
                self.diagnostics.debug(f"Instrument: {instrument.name}")
            instruments.append(instrument)
        return instruments

    def _parse_bags(self, data: bytes, chunk_name: str) -> List[SF2Bag]:
        records = decode_records(data, BAG_DTYPE, chunk_name)
        return [SF2Bag(int(r['gen_ndx']), int(r['mod_ndx'])) for r in records]

    def _parse_gens(self, data: bytes, chunk_name: str) -> List[SF2Generator]:
        records = decode_records(data, GEN_DTYPE, chunk_name)
        return [parse_generator(int(r['oper']), r['amount'].tobytes(), self.diagnostics) for r in records]

    def _parse_mods(self, data: bytes, chunk_name: str) -> List[SF2Modulator]:
        records = decode_records(data, MOD_DTYPE, chunk_name)
        return [
            SF2Modulator(int(r['src_oper']), int(r['dest_oper']), int(r['amount']),
                         int(r['amt_src_oper']), int(r['trans_oper']))
            for r in records
        ]

    # Индексация

    @property
    def preset_count(self) -> int:
        """Количество пресетов без терминальной записи EOP"""
        if self.presets and self.presets[-1].is_terminal:
            return len(self.presets) - 1
        return len(self.presets)

    @property
    def instrument_count(self) -> int:
        if self.instruments and self.instruments[-1].is_terminal:
            return len(self.instruments) - 1
        return len(self.instruments)

    def preset_bag_range(self, preset_index: int) -> Tuple[int, int]:
        return resolve_index_range(self.preset_bag_starts, preset_index, len(self.pbags))

    def instrument_bag_range(self, instrument_index: int) -> Tuple[int, int]:
        return resolve_index_range(self.instrument_bag_starts, instrument_index, len(self.ibags))

    @staticmethod
    def _bag_zone(gen_starts: List[int], bag_index: int, generators: List[SF2Generator]) -> ZoneView:
        start, end = resolve_index_range(gen_starts, bag_index, len(generators))
        return ZoneView(generators, start, end, bag_index)

    @staticmethod
    def _bag_modulators(mod_starts: List[int], bag_index: int, modulators: List[SF2Modulator]) -> List[SF2Modulator]:
        start, end = resolve_index_range(mod_starts, bag_index, len(modulators))
        return modulators[start:end]

    def preset_zones(self, preset_index: int) -> List[ZoneView]:
        """Зоны пресета: по одной на каждую pbag запись, срезы массива pgen"""
        bag_start, bag_end = self.preset_bag_range(preset_index)
        return [self._bag_zone(self.pbag_gen_starts, bag, self.pgens) for bag in range(bag_start, bag_end)]

    def instrument_zones(self, instrument_index: int) -> List[ZoneView]:
        """Зоны инструмента: по одной на каждую ibag запись, срезы массива igen"""
        if not 0 <= instrument_index < len(self.instruments):
            raise Sf2FormatError(f"Ссылка на несуществующий инструмент {instrument_index}")
        bag_start, bag_end = self.instrument_bag_range(instrument_index)
        return [self._bag_zone(self.ibag_gen_starts, bag, self.igens) for bag in range(bag_start, bag_end)]

    def preset_modulators(self, bag_index: int) -> List[SF2Modulator]:
        return self._bag_modulators(self.pbag_mod_starts, bag_index, self.pmods)

    def instrument_modulators(self, bag_index: int) -> List[SF2Modulator]:
        return self._bag_modulators(self.ibag_mod_starts, bag_index, self.imods)

    def get_sample(self, sample_id: int) -> SF2SampleHeader:
        if not 0 <= sample_id < len(self.samples):
            raise Sf2FormatError(f"Ссылка на несуществующий сэмпл {sample_id}")
        return self.samples[sample_id]

    def sample_frames(self, sample: SF2SampleHeader) -> np.ndarray:
        """PCM данные сэмпла как срез общего буфера"""
        return self.sample_data[sample.start:sample.end]

    def iter_presets(self) -> Iterator[Tuple[int, SF2Preset]]:
        for ix in range(self.preset_count):
            yield ix, self.presets[ix]

    # Вывод структуры

    def dump(self, stream: Optional[TextIO] = None):
        out = stream or sys.stdout
        print("Presets:", file=out)
        for ix in range(self.preset_count):
            self.dump_preset(ix, out)

    def dump_preset(self, ix: int, stream: Optional[TextIO] = None):
        out = stream or sys.stdout
        preset = self.presets[ix]
        print(f"  Name: {preset.name}", file=out)
        print(f"  Pos: {preset.preset}", file=out)
        print(f"  Bank: {preset.bank}", file=out)
        for zone_number, zone in enumerate(self.preset_zones(ix)):
            print(f"  Preset zone {zone_number}:", file=out)
            print("    Generators:", file=out)
            for generator in zone:
                if generator.kind == GeneratorType.INSTRUMENT:
                    self.dump_instrument(generator.amount, out)
                else:
                    print(f"      {generator!r}", file=out)
            print("    Modulators:", file=out)
            for modulator in self.preset_modulators(zone.bag_index):
                print(f"      {modulator!r}", file=out)
        print("", file=out)

    def dump_instrument(self, ix: int, stream: Optional[TextIO] = None):
        out = stream or sys.stdout
        instrument = self.instruments[ix]
        print(f"      Instrument: {instrument.name}", file=out)
        for zone_number, zone in enumerate(self.instrument_zones(ix)):
            print(f"        Instrument zone {zone_number}:", file=out)
            print("          Generators:", file=out)
            for generator in zone:
                if generator.kind == GeneratorType.SAMPLE_ID and generator.amount < len(self.samples):
                    print(f"            {self.samples[generator.amount]!r}", file=out)
                else:
                    print(f"            {generator!r}", file=out)
            print("          Modulators:", file=out)
            for modulator in self.instrument_modulators(zone.bag_index):
                print(f"            {modulator!r}", file=out)
