import os
from pathlib import PurePath
from typing import List, Optional

from pydub import AudioSegment

from diagnostics import Diagnostics
from sf2_soundfont import SUPPORTED_SAMPLE_TYPES


def safe_name(name: str) -> str:
    """Имя, пригодное для файловой системы Deluge"""
    for ch in '/"?*':
        name = name.replace(ch, '_')
    return name


def sample_file_name(sample_folder: str, sample_id: int, name: str) -> str:
    """Путь к файлу сэмпла с разделителями '/' (так его ожидает Deluge)"""
    file_name = f"{sample_id} - {safe_name(name)}.wav"
    return PurePath(sample_folder, file_name).as_posix()


def save_samples(soundfont, folder: str, diagnostics: Optional[Diagnostics] = None) -> List[str]:
    """
    Сохранение всех моно 16-битных сэмплов банка в WAV файлы.

    Args:
        soundfont: загруженный Sf2SoundFont
        folder: папка для сэмплов
        diagnostics: приемник сообщений о пропущенных сэмплах

    Returns:
        список путей к записанным файлам
    """
    diagnostics = diagnostics if diagnostics is not None else Diagnostics()
    diagnostics.info(f"saving samples to {folder}")
    os.makedirs(folder, exist_ok=True)
    if soundfont.sample_data_24 is not None:
        diagnostics.warn("24-bit sample data (sm24) is ignored, samples are saved as 16-bit")

    written = []
    for ix, sample in enumerate(soundfont.samples):
        if sample.is_terminal:
            continue
        # TODO: объединять пары left/right в стерео файл
        if int(sample.type) not in SUPPORTED_SAMPLE_TYPES:
            diagnostics.warn(f"Unsupported sample type: {int(sample.type)}, name: {sample.name}")
            continue
        if not 0 <= sample.start <= sample.end <= len(soundfont.sample_data):
            diagnostics.warn(f"Sample {sample.name} points outside of the sample data, skipped")
            continue
        diagnostics.info(f"saving sample {sample.name}, sample rate: {sample.sample_rate}")
        frames = soundfont.sample_frames(sample)
        segment = AudioSegment(
            data=frames.astype('<i2').tobytes(),
            sample_width=2,
            frame_rate=sample.sample_rate,
            channels=1,
        )
        path = os.path.join(folder, f"{ix} - {safe_name(sample.name)}.wav")
        with open(path, 'wb') as f:
            segment.export(f, format="wav")
        written.append(path)
    return written
