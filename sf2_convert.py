import os
from typing import Any, Dict, Optional

import deluge
from diagnostics import Diagnostics
from param_transcoder import average_envelope, transcode_envelope
from sample_export import safe_name
from sf2_soundfont import Sf2SoundFont
from zone_coalescer import (build_oscillator, coalesce_zones, collect_preset_zones,
                            select_oscillator_groups)

FIRMWARE_VERSION = "3.1.3"
EARLIEST_COMPATIBLE_FIRMWARE = "3.1.0-beta"
FULL_VOLUME = 0x7FFFFFFF


def soundfont_to_deluge(soundfont: Sf2SoundFont, preset_index: int, sample_folder: str = "SAMPLES",
                        diagnostics: Optional[Diagnostics] = None, prefix: str = "",
                        sort_zones: bool = True, firmware_version: str = FIRMWARE_VERSION,
                        earliest_compatible_firmware: str = EARLIEST_COMPATIBLE_FIRMWARE,
                        polyphony: Any = "poly") -> deluge.Sound:
    """
    Конвертация одного пресета SoundFont в патч Deluge.

    Args:
        soundfont: загруженный банк
        preset_index: индекс пресета в массиве phdr
        sample_folder: папка сэмплов, как она будет видна на карте Deluge
        diagnostics: приемник предупреждений для этой конвертации
        prefix: префикс имени патча
        sort_zones: сортировать зоны по диапазону клавиш перед объединением

    Returns:
        модель патча; поля, не выводимые из банка, имеют заводские значения
    """
    diagnostics = diagnostics if diagnostics is not None else Diagnostics()
    preset = soundfont.presets[preset_index]
    diagnostics.info(f"Preset: {preset.name}")

    zones = collect_preset_zones(soundfont, preset_index)
    groups = coalesce_zones(zones, sort_zones=sort_zones)
    for group in groups:
        diagnostics.debug(f"osc: {group!r}")
    groups = select_oscillator_groups(groups, preset.name, diagnostics)

    sound = deluge.Sound(
        name=prefix + preset.name,
        firmware_version=firmware_version,
        earliest_compatible_firmware=earliest_compatible_firmware,
        polyphonic=deluge.Polyphony(polyphony),
    )
    params = sound.default_params
    oscillators = [build_oscillator(group, soundfont, sample_folder) for group in groups]
    # незанятые слоты остаются осцилляторами по умолчанию (sine)
    while len(oscillators) < 2:
        oscillators.append(deluge.Osc())
    sound.osc1, sound.osc2 = oscillators
    if len(groups) >= 1:
        params.osc_a_volume = deluge.Value(FULL_VOLUME)
    if len(groups) >= 2:
        params.osc_b_volume = deluge.Value(FULL_VOLUME)

    envelope = average_envelope(zones)
    diagnostics.debug(f"attack: {envelope.attack} s")
    diagnostics.debug(f"decay: {envelope.decay} s")
    diagnostics.debug(f"sustain: {envelope.sustain} dB")
    diagnostics.debug(f"release: {envelope.release} s")
    values = transcode_envelope(envelope)
    params.envelope_1 = deluge.Envelope(
        attack=deluge.Value(values.attack),
        decay=deluge.Value(values.decay),
        sustain=deluge.Value(values.sustain),
        release=deluge.Value(values.release),
    )
    return sound


def save_deluge_as_xml(sound: deluge.Sound, folder: str) -> str:
    os.makedirs(folder, exist_ok=True)
    path = os.path.join(folder, safe_name(sound.name) + ".xml")
    with open(path, 'w', encoding='utf-8') as f:
        f.write(sound.to_xml())
    return path


def save_as_xml(soundfont: Sf2SoundFont, folder: str, sample_folder: str, preset_index: int,
                prefix: str = "", diagnostics: Optional[Diagnostics] = None,
                config: Optional[Dict[str, Any]] = None) -> str:
    """Конвертирует пресет и сохраняет XML в папку синтов"""
    diagnostics = diagnostics if diagnostics is not None else Diagnostics()
    config = config or {}
    diagnostics.info(f"Writing xml to {folder} for {preset_index}")
    sound = soundfont_to_deluge(
        soundfont, preset_index, sample_folder, diagnostics, prefix,
        sort_zones=config.get('sort_zones', True),
        firmware_version=config.get('firmware_version', FIRMWARE_VERSION),
        earliest_compatible_firmware=config.get('earliest_compatible_firmware', EARLIEST_COMPATIBLE_FIRMWARE),
        polyphony=config.get('polyphony', 'poly'),
    )
    return save_deluge_as_xml(sound, folder)


def convert_all(soundfont: Sf2SoundFont, folder: str, sample_folder: str, prefix: str = "",
                diagnostics: Optional[Diagnostics] = None, config: Optional[Dict[str, Any]] = None):
    """Сохраняет XML для каждого пресета банка (без терминальной записи EOP)"""
    paths = []
    for ix, _preset in soundfont.iter_presets():
        paths.append(save_as_xml(soundfont, folder, sample_folder, ix, prefix, diagnostics, config))
    return paths
