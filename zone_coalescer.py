from typing import List, Optional, Tuple

import deluge
from diagnostics import Diagnostics
from sample_export import sample_file_name
from sf2_dataclasses import SF2SampleHeader, ZoneView
from sf2_generators import GeneratorType, LoopMode
from sf2_soundfont import Sf2SoundFont

# Количество осцилляторов Deluge
MAX_OSCILLATORS = 2
FULL_KEY_RANGE = (0, 127)
MIDDLE_C = 60
COARSE_OFFSET_SCALE = 32768


class SampleRangeEntry:
    """Диапазон клавиш одного сэмпла внутри осциллятора"""
    __slots__ = ['zone', 'low', 'high', 'sample_id', 'root_key']

    def __init__(self, zone: ZoneView, low: int, high: int, sample_id: Optional[int], root_key: Optional[int]):
        self.zone = zone  # первая зона диапазона, из нее берутся настройки
        self.low = low
        self.high = high
        self.sample_id = sample_id
        self.root_key = root_key

    def same_sample(self, sample_id: Optional[int], root_key: Optional[int]) -> bool:
        return self.sample_id == sample_id and self.root_key == root_key

    def __repr__(self):
        return f"SampleRangeEntry({self.low}-{self.high}, sample={self.sample_id}, root={self.root_key})"


class OscillatorGroup:
    """Группа смежных по клавишам зон, которая станет одним осциллятором"""
    __slots__ = ['loop_mode', 'entries']

    def __init__(self):
        self.loop_mode = LoopMode.NO_LOOP
        self.entries: List[SampleRangeEntry] = []

    @property
    def high(self) -> int:
        return self.entries[-1].high

    def __repr__(self):
        return f"OscillatorGroup({self.loop_mode.name}, {self.entries!r})"


def collect_preset_zones(soundfont: Sf2SoundFont, preset_index: int) -> List[ZoneView]:
    """Все зоны всех инструментов, на которые ссылаются зоны пресета, в порядке bag записей"""
    zones: List[ZoneView] = []
    for preset_zone in soundfont.preset_zones(preset_index):
        for generator in preset_zone:
            if generator.kind == GeneratorType.INSTRUMENT:
                zones.extend(soundfont.instrument_zones(generator.amount))
    return zones


def zone_key_range(zone: ZoneView) -> Optional[Tuple[int, int]]:
    """
    Диапазон клавиш зоны. Зона с сэмплом без keyRange покрывает всю клавиатуру,
    глобальная зона (без keyRange и без сэмпла) диапазона не имеет.
    """
    key_range = zone.amount(GeneratorType.KEY_RANGE)
    if key_range is not None:
        return key_range
    if zone.has(GeneratorType.SAMPLE_ID):
        return FULL_KEY_RANGE
    return None


def coalesce_zones(zones: List[ZoneView], sort_zones: bool = True) -> List[OscillatorGroup]:
    """
    Объединяет зоны в группы осцилляторов.

    Группа начинается с первой свободной зоны, затем весь список
    многократно просматривается в поисках свободной зоны, нижняя граница
    которой на 1 больше текущей верхней границы группы. Смежная зона с тем
    же сэмплом и root key расширяет последний диапазон, иначе открывает
    новый диапазон в той же группе.

    Args:
        zones: зоны пресета (см. collect_preset_zones)
        sort_zones: предварительно сортировать зоны по нижней границе диапазона

    Returns:
        все найденные группы в порядке обнаружения
    """
    candidates = []
    for zone in zones:
        key_range = zone_key_range(zone)
        if key_range is not None:
            candidates.append((zone, key_range))
    if sort_zones:
        candidates.sort(key=lambda candidate: candidate[1][0])

    taken = set()
    groups: List[OscillatorGroup] = []
    while len(taken) < len(candidates):
        group = OscillatorGroup()
        found = True
        while found:
            found = False
            for ix, (zone, (low, high)) in enumerate(candidates):
                if ix in taken:
                    continue
                if group.entries and low != group.high + 1:
                    continue
                taken.add(ix)
                found = True
                loop_mode = zone.amount(GeneratorType.SAMPLE_MODES)
                if loop_mode is not None:
                    group.loop_mode = loop_mode
                sample_id = zone.amount(GeneratorType.SAMPLE_ID)
                root_key = zone.amount(GeneratorType.OVERRIDING_ROOT_KEY)
                if group.entries and group.entries[-1].same_sample(sample_id, root_key):
                    # В Deluge у диапазона одни параметры, поэтому просто расширяем его
                    group.entries[-1].high = high
                else:
                    group.entries.append(SampleRangeEntry(zone, low, high, sample_id, root_key))
        groups.append(group)
    return groups


def select_oscillator_groups(groups: List[OscillatorGroup], preset_name: str,
                             diagnostics: Diagnostics) -> List[OscillatorGroup]:
    """Оставляет первые MAX_OSCILLATORS групп, об отброшенных - одно предупреждение"""
    if len(groups) > MAX_OSCILLATORS:
        diagnostics.warn(
            f"{preset_name} has {len(groups)} oscillators, more than the Deluge has; "
            f"keeping the first {MAX_OSCILLATORS}",
            preset=preset_name,
        )
    return groups[:MAX_OSCILLATORS]


def _address_offset(zone: ZoneView, fine: GeneratorType, coarse: GeneratorType) -> int:
    return zone.amount(fine, 0) + COARSE_OFFSET_SCALE * zone.amount(coarse, 0)


def build_zone(zone: ZoneView, sample: SF2SampleHeader, loop_mode: LoopMode) -> deluge.Zone:
    """Позиции внутри сохраненного файла сэмпла (относительно sample.start)"""
    length = sample.end - sample.start

    def clamp(position):
        return max(0, min(length, position))

    result = deluge.Zone(
        start_sample_pos=clamp(_address_offset(
            zone, GeneratorType.START_ADDRS_OFFSET, GeneratorType.START_ADDRS_COARSE_OFFSET)),
        end_sample_pos=clamp(length + _address_offset(
            zone, GeneratorType.END_ADDRS_OFFSET, GeneratorType.END_ADDRS_COARSE_OFFSET)),
    )
    if loop_mode != LoopMode.NO_LOOP:
        result.start_loop_pos = clamp(sample.start_loop - sample.start + _address_offset(
            zone, GeneratorType.STARTLOOP_ADDRS_OFFSET, GeneratorType.STARTLOOP_ADDRS_COARSE_OFFSET))
        result.end_loop_pos = clamp(sample.end_loop - sample.start + _address_offset(
            zone, GeneratorType.ENDLOOP_ADDRS_OFFSET, GeneratorType.ENDLOOP_ADDRS_COARSE_OFFSET))
    return result


def entry_tuning(entry: SampleRangeEntry, sample: SF2SampleHeader) -> Tuple[int, Optional[int]]:
    """
    Транспонирование и расстройка диапазона.

    Root key берется из overridingRootKey, иначе из заголовка сэмпла
    (255 - сэмпл без высоты, считается нотой 60).
    """
    root = entry.root_key
    if root is None or not 0 <= root <= 127:
        root = sample.original_pitch if 0 <= sample.original_pitch <= 127 else MIDDLE_C
    transpose = MIDDLE_C - root + entry.zone.amount(GeneratorType.COARSE_TUNE, 0)
    cents = entry.zone.amount(GeneratorType.FINE_TUNE, 0) + sample.pitch_correction
    return transpose, (cents if cents != 0 else None)


def build_oscillator(group: OscillatorGroup, soundfont: Sf2SoundFont, sample_folder: str) -> deluge.Osc:
    """
    Осциллятор Deluge из группы зон.

    Единственный диапазон переносится прямо в осциллятор, несколько
    диапазонов образуют список sampleRanges. У последнего диапазона
    rangeTopNote не указывается. Зоны без сэмпла пропускаются.
    """
    osc = deluge.Osc(
        osc_type=deluge.OscType.SAMPLE,
        loop_mode=0,  # всегда режим 0 (Cut)
        reversed=0,
        time_stretch_enable=0,
        time_stretch_amount=0,
    )

    entries = [entry for entry in group.entries if entry.sample_id is not None]
    if not entries:
        return osc

    single_sample = len(entries) == 1
    sample_ranges = []
    for ix, entry in enumerate(entries):
        sample = soundfont.get_sample(entry.sample_id)
        transpose, cents = entry_tuning(entry, sample)
        file_name = sample_file_name(sample_folder, entry.sample_id, sample.name)
        zone = build_zone(entry.zone, sample, group.loop_mode)
        if single_sample:
            osc.transpose = transpose
            osc.cents = cents
            osc.file_name = file_name
            osc.zone = zone
        else:
            sample_ranges.append(deluge.SampleRange(
                file_name=file_name,
                zone=zone,
                range_top_note=entry.high if ix != len(entries) - 1 else None,
                transpose=transpose,
                cents=cents,
            ))
    if not single_sample:
        osc.sample_ranges = sample_ranges
    return osc
