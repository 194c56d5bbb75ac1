import struct

import numpy as np
import pytest

from diagnostics import Diagnostics
from riff import LIST, RIFF


def make_chunk(chunk_id: bytes, payload: bytes) -> bytes:
    """Листовой чанк; нечетные данные дополняются нулевым байтом"""
    size = len(payload)
    return chunk_id + struct.pack('<I', size) + payload + (b'\x00' if size % 2 else b'')


def _container(chunk_id: bytes, form: bytes, children) -> bytes:
    body = form + b''.join(children)
    return chunk_id + struct.pack('<I', len(body)) + body


def make_list(form: bytes, children) -> bytes:
    return _container(LIST, form, children)


def make_riff(form: bytes, children) -> bytes:
    return _container(RIFF, form, children)


def _name(name: str) -> bytes:
    return name.encode('utf-8')[:20].ljust(20, b'\x00')


def _generator(oper: int, amount) -> bytes:
    if isinstance(amount, tuple):
        return struct.pack('<H', oper) + bytes(amount)
    if oper in (41, 53):  # instrument, sampleID
        return struct.pack('<HH', oper, amount)
    return struct.pack('<Hh', oper, amount)


class Sf2Builder:
    """
    Сборщик минимального SoundFont банка в памяти.

    Зона задается списком пар (оператор, значение); значение - число или
    кортеж (lo, hi) для keyRange / velRange. Терминальные записи добавляются
    при сборке.
    """

    def __init__(self):
        self.samples = []
        self.sample_data = []
        self.instruments = []  # (name, zones)
        self.presets = []  # (name, preset, bank, zones)
        self.preset_modulators = []  # по одному списку на зону пресета
        self.extra_info = []
        self.extra_pdta = []
        self.replace_pdta = {}

    def add_sample(self, name, frames=100, loop=(10, 90), rate=44100, pitch=60, correction=0, sample_type=1):
        start = sum(len(d) for d in self.sample_data)
        data = (np.arange(frames) % 128).astype('<i2')
        self.sample_data.append(data)
        # 46 нулевых точек после каждого сэмпла по стандарту
        self.sample_data.append(np.zeros(46, dtype='<i2'))
        self.samples.append(dict(name=name, start=start, end=start + frames,
                                 start_loop=start + loop[0], end_loop=start + loop[1],
                                 rate=rate, pitch=pitch, correction=correction, type=sample_type))
        return len(self.samples) - 1

    def add_instrument(self, name, zones):
        self.instruments.append((name, zones))
        return len(self.instruments) - 1

    def add_preset(self, name, zones, preset=0, bank=0):
        self.presets.append((name, preset, bank, zones))
        return len(self.presets) - 1

    def add_preset_for_instrument(self, name, instrument_index, preset=0):
        return self.add_preset(name, [[(41, instrument_index)]], preset=preset)

    @staticmethod
    def _entities(entities):
        headers, bags, gens = [], [], []
        for entity in entities:
            zones = entity[-1]
            headers.append((entity, len(bags)))
            for zone in zones:
                bags.append((len(gens), 0))
                gens.extend(zone)
        return headers, bags, gens

    def build_pdta(self):
        preset_headers, pbags, pgens = self._entities(self.presets)
        inst_headers, ibags, igens = self._entities(self.instruments)

        phdr = b''.join(
            _name(name) + struct.pack('<HHHIII', preset, bank, bag, 0, 0, 0)
            for (name, preset, bank, _zones), bag in preset_headers
        ) + _name('EOP') + struct.pack('<HHHIII', 0, 0, len(pbags), 0, 0, 0)

        pmods = []
        pbag_records = []
        for zone_ix, (gen_ndx, _) in enumerate(pbags):
            pbag_records.append(struct.pack('<HH', gen_ndx, len(pmods)))
            if zone_ix < len(self.preset_modulators):
                pmods.extend(self.preset_modulators[zone_ix])
        pbag = b''.join(pbag_records) + struct.pack('<HH', len(pgens), len(pmods))
        pmod = b''.join(struct.pack('<HHhHH', *m) for m in pmods) + b'\x00' * 10
        pgen = b''.join(_generator(o, a) for o, a in pgens) + b'\x00' * 4

        inst = b''.join(
            _name(name) + struct.pack('<H', bag) for (name, _zones), bag in inst_headers
        ) + _name('EOI') + struct.pack('<H', len(ibags))
        ibag = b''.join(struct.pack('<HH', g, 0) for g, _ in ibags) + struct.pack('<HH', len(igens), 0)
        imod = b'\x00' * 10
        igen = b''.join(_generator(o, a) for o, a in igens) + b'\x00' * 4

        shdr = b''.join(
            _name(s['name']) + struct.pack('<IIIIIBbHH', s['start'], s['end'], s['start_loop'], s['end_loop'],
                                           s['rate'], s['pitch'], s['correction'], 0, s['type'])
            for s in self.samples
        ) + _name('EOS') + struct.pack('<IIIIIBbHH', 0, 0, 0, 0, 0, 0, 0, 0, 0)

        chunks = [
            (b'phdr', phdr), (b'pbag', pbag), (b'pmod', pmod), (b'pgen', pgen),
            (b'inst', inst), (b'ibag', ibag), (b'imod', imod), (b'igen', igen), (b'shdr', shdr),
        ]
        result = [make_chunk(cid, self.replace_pdta.get(cid, data)) for cid, data in chunks]
        result.extend(make_chunk(cid, data) for cid, data in self.extra_pdta)
        return result

    def build(self) -> bytes:
        info = [make_chunk(b'ifil', struct.pack('<HH', 2, 1)), make_chunk(b'INAM', b'Test Bank\x00')]
        info.extend(make_chunk(cid, data) for cid, data in self.extra_info)
        pcm = np.concatenate(self.sample_data).astype('<i2').tobytes() if self.sample_data else b''
        return make_riff(b'sfbk', [
            make_list(b'INFO', info),
            make_list(b'sdta', [make_chunk(b'smpl', pcm)]),
            make_list(b'pdta', self.build_pdta()),
        ])


@pytest.fixture
def builder():
    return Sf2Builder()


@pytest.fixture
def diagnostics():
    return Diagnostics(emit_warnings=False)


def key_zone(low, high, sample_id=None, generators=()):
    """Зона инструмента: keyRange, дополнительные генераторы, sampleID последним"""
    zone = [(43, (low, high))]
    zone.extend(generators)
    if sample_id is not None:
        zone.append((53, sample_id))
    return zone
