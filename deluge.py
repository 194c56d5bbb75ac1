"""
Модель патча синтезатора Synthstrom Deluge и его XML представление.

Значения по умолчанию соответствуют заводскому init патчу (Init.xml).
Документ атрибутный: простые поля становятся атрибутами элемента,
вложенные структуры - дочерними элементами.
"""
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Union


class Value(int):
    """32-битный нормализованный параметр, в XML пишется как 0x + 8 hex цифр"""

    def __new__(cls, bits: int = 0):
        return super().__new__(cls, int(bits) & 0xFFFFFFFF)

    def to_xml(self) -> str:
        return f"0x{int(self):08x}"

    @classmethod
    def parse(cls, text: str) -> 'Value':
        """Шестнадцатеричная строка с префиксом 0x или без него (как пишет прошивка)"""
        text = text.strip()
        if text.lower().startswith("0x"):
            text = text[2:]
        return cls(int(text, 16))

    def __repr__(self):
        return f"Value({self.to_xml()})"


def _mixed_case(name: str) -> str:
    """SNAKE_CASE имя перечисления -> mixedCase строка формата Deluge"""
    head, *tail = name.lower().split('_')
    return head + ''.join(part.capitalize() for part in tail)


class _XmlEnum(Enum):
    def to_xml(self) -> str:
        return self.value

    @classmethod
    def parse(cls, text: str):
        return cls(text)


def _xml_enum(name: str, members: List[str]):
    return _XmlEnum(name, [(m, _mixed_case(m).replace("Fx", "FX")) for m in members])


OscType = _xml_enum('OscType', [
    'ANALOG_SAW', 'ANALOG_SQUARE', 'IN_LEFT', 'IN_RIGHT', 'SAMPLE', 'SAW', 'SINE', 'SQUARE', 'TRIANGLE',
])
LfoType = _xml_enum('LfoType', ['SAW', 'SINE', 'SQUARE', 'TRIANGLE'])
Mode = _xml_enum('Mode', ['RINGMOD', 'SUBTRACTIVE', 'FM'])
ModFxType = _xml_enum('ModFxType', ['NONE', 'CHORUS', 'FLANGER', 'PHASER'])
ArpeggiatorMode = _xml_enum('ArpeggiatorMode', ['OFF'])
Source = _xml_enum('Source', [
    'AFTERTOUCH', 'COMPRESSOR', 'ENVELOPE1', 'ENVELOPE2', 'LFO1', 'LFO2', 'NOTE', 'VELOCITY', 'RANDOM',
])
Destination = _xml_enum('Destination', [
    'ARP_RATE', 'BASS', 'BASS_FREQ', 'BITCRUSH_AMOUNT', 'CARRIER1_FEEDBACK', 'CARRIER2_FEEDBACK',
    'DELAY_FEEDBACK', 'DELAY_RATE', 'ENV1_ATTACK', 'ENV1_DECAY', 'ENV1_RELEASE', 'ENV1_SUSTAIN',
    'ENV2_ATTACK', 'ENV2_DECAY', 'ENV2_RELEASE', 'ENV2_SUSTAIN', 'HPF_FREQUENCY', 'HPF_RESONANCE',
    'LFO1_RATE', 'LFO2_RATE', 'LPF_FREQUENCY', 'LPF_RESONANCE', 'MOD_FX_DEPTH', 'MOD_FX_FEEDBACK',
    'MOD_FX_RATE', 'MODULATOR1_FEEDBACK', 'MODULATOR1_PITCH', 'MODULATOR1_VOLUME', 'MODULATOR2_FEEDBACK',
    'MODULATOR2_PITCH', 'MODULATOR2_VOLUME', 'NOISE_VOLUME', 'OSC_A_PHASE_WIDTH', 'OSC_A_PITCH',
    'OSC_A_VOLUME', 'OSC_B_PHASE_WIDTH', 'OSC_B_PITCH', 'OSC_B_VOLUME', 'PAN', 'PITCH', 'PORTAMENTO',
    'RANGE', 'REVERB_AMOUNT', 'SAMPLE_RATE_REDUCTION', 'STUTTER_RATE', 'TREBLE', 'TREBLE_FREQ', 'VOLUME',
    'VOLUME_POST_FX', 'VOLUME_POST_REVERB_SEND',
])


class LpfMode(_XmlEnum):
    # Имена не могут начинаться с цифры, поэтому строки заданы явно
    MODE_24DB = "24dB"
    MODE_24DB_DRIVE = "24dBDrive"
    MODE_12DB = "12dB"


class Polyphony:
    """Режим полифонии: auto, mono, legato, poly или число голосов"""
    MODES = ("auto", "mono", "legato", "poly")

    def __init__(self, mode: Union[str, int] = "poly"):
        if isinstance(mode, int) and not isinstance(mode, bool):
            if mode < 0:
                raise ValueError(f"Некорректное количество голосов: {mode}")
            self.mode: Union[str, int] = mode
        elif str(mode) in self.MODES:
            self.mode = str(mode)
        elif str(mode).isdigit():
            self.mode = int(mode)
        else:
            raise ValueError(f"Неизвестный режим полифонии: {mode!r}")

    def to_xml(self) -> str:
        return str(self.mode)

    @classmethod
    def parse(cls, text: str) -> 'Polyphony':
        return cls(text)

    def __eq__(self, other):
        return isinstance(other, Polyphony) and self.mode == other.mode

    def __repr__(self):
        return f"Polyphony({self.mode!r})"


def _format(value) -> str:
    if hasattr(value, 'to_xml'):
        return value.to_xml()
    return str(value)


def _set_attributes(element: ET.Element, attributes):
    for name, value in attributes:
        if value is not None:
            element.set(name, _format(value))


@dataclass
class Zone:
    start_sample_pos: int = 0
    end_sample_pos: int = 0
    start_loop_pos: Optional[int] = None
    end_loop_pos: Optional[int] = None

    def to_element(self) -> ET.Element:
        element = ET.Element('zone')
        _set_attributes(element, [
            ('startSamplePos', self.start_sample_pos),
            ('endSamplePos', self.end_sample_pos),
            ('startLoopPos', self.start_loop_pos),
            ('endLoopPos', self.end_loop_pos),
        ])
        return element


@dataclass
class SampleRange:
    file_name: str
    zone: Zone
    range_top_note: Optional[int] = None
    transpose: Optional[int] = None
    cents: Optional[int] = None

    def to_element(self) -> ET.Element:
        element = ET.Element('sampleRange')
        _set_attributes(element, [
            ('rangeTopNote', self.range_top_note),
            ('transpose', self.transpose),
            ('cents', self.cents),
            ('fileName', self.file_name),
        ])
        element.append(self.zone.to_element())
        return element


@dataclass
class Osc:
    osc_type: _XmlEnum = OscType.SINE
    transpose: Optional[int] = None
    cents: Optional[int] = None
    retrig_phase: Optional[int] = None
    loop_mode: Optional[int] = None
    reversed: Optional[int] = None
    time_stretch_enable: Optional[int] = None
    time_stretch_amount: Optional[int] = None
    # Один сэмпл на весь осциллятор
    file_name: Optional[str] = None
    zone: Optional[Zone] = None
    # Несколько сэмплов по диапазонам клавиш
    sample_ranges: Optional[List[SampleRange]] = None

    def to_element(self, tag: str) -> ET.Element:
        element = ET.Element(tag)
        _set_attributes(element, [
            ('type', self.osc_type),
            ('transpose', self.transpose),
            ('cents', self.cents),
            ('retrigPhase', self.retrig_phase),
            ('loopMode', self.loop_mode),
            ('reversed', self.reversed),
            ('timeStretchEnable', self.time_stretch_enable),
            ('timeStretchAmount', self.time_stretch_amount),
            ('fileName', self.file_name),
        ])
        if self.zone is not None:
            element.append(self.zone.to_element())
        if self.sample_ranges is not None:
            ranges = ET.SubElement(element, 'sampleRanges')
            for sample_range in self.sample_ranges:
                ranges.append(sample_range.to_element())
        return element


@dataclass
class Lfo:
    lfo_type: _XmlEnum = LfoType.SINE
    sync_level: Optional[int] = None

    def to_element(self, tag: str) -> ET.Element:
        element = ET.Element(tag)
        _set_attributes(element, [('type', self.lfo_type), ('syncLevel', self.sync_level)])
        return element


@dataclass
class Unison:
    num: int = 1
    detune: int = 8

    def to_element(self) -> ET.Element:
        element = ET.Element('unison')
        _set_attributes(element, [('num', self.num), ('detune', self.detune)])
        return element


@dataclass
class Delay:
    ping_pong: int = 1
    analog: int = 0
    sync_level: int = 7

    def to_element(self) -> ET.Element:
        element = ET.Element('delay')
        _set_attributes(element, [('pingPong', self.ping_pong), ('analog', self.analog),
                                  ('syncLevel', self.sync_level)])
        return element


@dataclass
class Compressor:
    sync_level: int = 7
    attack: int = 327244
    release: int = 936

    def to_element(self) -> ET.Element:
        element = ET.Element('compressor')
        _set_attributes(element, [('syncLevel', self.sync_level), ('attack', self.attack),
                                  ('release', self.release)])
        return element


@dataclass
class Envelope:
    attack: Value = field(default_factory=Value)
    decay: Value = field(default_factory=Value)
    sustain: Value = field(default_factory=Value)
    release: Value = field(default_factory=Value)

    def to_element(self, tag: str) -> ET.Element:
        element = ET.Element(tag)
        _set_attributes(element, [('attack', self.attack), ('decay', self.decay),
                                  ('sustain', self.sustain), ('release', self.release)])
        return element


@dataclass
class PatchCable:
    source: _XmlEnum
    destination: _XmlEnum
    amount: Value

    def to_element(self) -> ET.Element:
        element = ET.Element('patchCable')
        _set_attributes(element, [('source', self.source), ('destination', self.destination),
                                  ('amount', self.amount)])
        return element


@dataclass
class Equalizer:
    bass: Value = field(default_factory=Value)
    treble: Value = field(default_factory=Value)
    bass_frequency: Value = field(default_factory=Value)
    treble_frequency: Value = field(default_factory=Value)

    def to_element(self) -> ET.Element:
        element = ET.Element('equalizer')
        _set_attributes(element, [('bass', self.bass), ('treble', self.treble),
                                  ('bassFrequency', self.bass_frequency),
                                  ('trebleFrequency', self.treble_frequency)])
        return element


def _default_patch_cables() -> List[PatchCable]:
    return [PatchCable(Source.VELOCITY, Destination.VOLUME, Value(0x3FFFFFE8))]


# Имена атрибутов defaultParams (порядок как в init патче)
_DEFAULT_PARAM_ATTRIBUTES = [
    ('arpeggiator_gate', 'arpeggiatorGate'),
    ('portamento', 'portamento'),
    ('compressor_shape', 'compressorShape'),
    ('osc_a_volume', 'oscAVolume'),
    ('osc_a_pulse_width', 'oscAPulseWidth'),
    ('osc_b_volume', 'oscBVolume'),
    ('osc_b_pulse_width', 'oscBPulseWidth'),
    ('noise_volume', 'noiseVolume'),
    ('volume', 'volume'),
    ('pan', 'pan'),
    ('lpf_frequency', 'lpfFrequency'),
    ('lpf_resonance', 'lpfResonance'),
    ('hpf_frequency', 'hpfFrequency'),
    ('hpf_resonance', 'hpfResonance'),
    ('lfo_1_rate', 'lfo1Rate'),
    ('lfo_2_rate', 'lfo2Rate'),
    ('modulator_1_amount', 'modulator1Amount'),
    ('modulator_1_feedback', 'modulator1Feedback'),
    ('modulator_2_amount', 'modulator2Amount'),
    ('modulator_2_feedback', 'modulator2Feedback'),
    ('carrier_1_feedback', 'carrier1Feedback'),
    ('carrier_2_feedback', 'carrier2Feedback'),
    ('mod_fx_rate', 'modFXRate'),
    ('mod_fx_depth', 'modFXDepth'),
    ('delay_rate', 'delayRate'),
    ('delay_feedback', 'delayFeedback'),
    ('reverb_amount', 'reverbAmount'),
    ('arpeggiator_rate', 'arpeggiatorRate'),
    ('stutter_rate', 'stutterRate'),
    ('sample_rate_reduction', 'sampleRateReduction'),
    ('bit_crush', 'bitCrush'),
    ('mod_fx_offset', 'modFXOffset'),
    ('mod_fx_feedback', 'modFXFeedback'),
]


def _v(bits: int):
    return field(default_factory=lambda: Value(bits))


@dataclass
class DefaultParams:
    arpeggiator_gate: Value = _v(0x00000000)
    portamento: Value = _v(0x80000000)
    compressor_shape: Value = _v(0xDC28F5B2)
    osc_a_volume: Value = _v(0x7FFFFFFF)
    osc_a_pulse_width: Value = _v(0x00000000)
    osc_b_volume: Value = _v(0x80000000)
    osc_b_pulse_width: Value = _v(0x00000000)
    noise_volume: Value = _v(0x80000000)
    volume: Value = _v(0x4CCCCCA8)
    pan: Value = _v(0x00000000)
    lpf_frequency: Value = _v(0x7FFFFFFF)
    lpf_resonance: Value = _v(0x80000000)
    hpf_frequency: Value = _v(0x80000000)
    hpf_resonance: Value = _v(0x80000000)
    envelope_1: Envelope = field(default_factory=lambda: Envelope(
        Value(0x80000000), Value(0xE6666654), Value(0x7FFFFFFF), Value(0x80000000)))
    envelope_2: Envelope = field(default_factory=lambda: Envelope(
        Value(0xE6666654), Value(0xE6666654), Value(0xFFFFFFE9), Value(0xE6666654)))
    lfo_1_rate: Value = _v(0x1999997E)
    lfo_2_rate: Value = _v(0x00000000)
    modulator_1_amount: Value = _v(0x80000000)
    modulator_1_feedback: Value = _v(0x80000000)
    modulator_2_amount: Value = _v(0x80000000)
    modulator_2_feedback: Value = _v(0x80000000)
    carrier_1_feedback: Value = _v(0x80000000)
    carrier_2_feedback: Value = _v(0x80000000)
    mod_fx_rate: Value = _v(0x80000000)
    mod_fx_depth: Value = _v(0x80000000)
    delay_rate: Value = _v(0x00000000)
    delay_feedback: Value = _v(0x80000000)
    reverb_amount: Value = _v(0x80000000)
    arpeggiator_rate: Value = _v(0x00000000)
    patch_cables: List[PatchCable] = field(default_factory=_default_patch_cables)
    stutter_rate: Value = _v(0x00000000)
    sample_rate_reduction: Value = _v(0x80000000)
    bit_crush: Value = _v(0x80000000)
    equalizer: Equalizer = field(default_factory=Equalizer)
    mod_fx_offset: Value = _v(0x00000000)
    mod_fx_feedback: Value = _v(0x00000000)

    def to_element(self) -> ET.Element:
        element = ET.Element('defaultParams')
        _set_attributes(element, [(xml_name, getattr(self, name)) for name, xml_name in _DEFAULT_PARAM_ATTRIBUTES])
        element.append(self.envelope_1.to_element('envelope1'))
        element.append(self.envelope_2.to_element('envelope2'))
        cables = ET.SubElement(element, 'patchCables')
        for cable in self.patch_cables:
            cables.append(cable.to_element())
        element.append(self.equalizer.to_element())
        return element


@dataclass
class Arpeggiator:
    mode: _XmlEnum = ArpeggiatorMode.OFF
    num_octaves: int = 2
    sync_level: int = 7

    def to_element(self) -> ET.Element:
        element = ET.Element('arpeggiator')
        _set_attributes(element, [('mode', self.mode), ('numOctaves', self.num_octaves),
                                  ('syncLevel', self.sync_level)])
        return element


@dataclass
class ModKnob:
    controls_param: _XmlEnum
    patch_amount_from_source: Optional[_XmlEnum] = None

    def to_element(self) -> ET.Element:
        element = ET.Element('modKnob')
        _set_attributes(element, [('controlsParam', self.controls_param),
                                  ('patchAmountFromSource', self.patch_amount_from_source)])
        return element


def _default_mod_knobs() -> List[ModKnob]:
    return [
        ModKnob(Destination.PAN),
        ModKnob(Destination.VOLUME_POST_FX),
        ModKnob(Destination.LPF_RESONANCE),
        ModKnob(Destination.LPF_FREQUENCY),
        ModKnob(Destination.ENV1_RELEASE),
        ModKnob(Destination.ENV1_ATTACK),
        ModKnob(Destination.DELAY_FEEDBACK),
        ModKnob(Destination.DELAY_RATE),
        ModKnob(Destination.REVERB_AMOUNT),
        ModKnob(Destination.VOLUME_POST_REVERB_SEND, Source.COMPRESSOR),
        ModKnob(Destination.PITCH, Source.LFO1),
        ModKnob(Destination.LFO1_RATE),
        ModKnob(Destination.PORTAMENTO),
        ModKnob(Destination.STUTTER_RATE),
        ModKnob(Destination.BITCRUSH_AMOUNT),
        ModKnob(Destination.SAMPLE_RATE_REDUCTION),
    ]


@dataclass
class Sound:
    name: str = ""
    firmware_version: Optional[str] = None
    earliest_compatible_firmware: Optional[str] = None
    osc1: Osc = field(default_factory=Osc)
    osc2: Osc = field(default_factory=Osc)
    polyphonic: Polyphony = field(default_factory=Polyphony)
    clipping_amount: int = 0
    voice_priority: int = 1
    lfo1: Lfo = field(default_factory=lambda: Lfo(LfoType.TRIANGLE, 7))
    lfo2: Lfo = field(default_factory=lambda: Lfo(LfoType.TRIANGLE))
    mode: _XmlEnum = Mode.SUBTRACTIVE
    lpf_mode: Optional[LpfMode] = LpfMode.MODE_24DB_DRIVE
    unison: Unison = field(default_factory=Unison)
    delay: Delay = field(default_factory=Delay)
    compressor: Optional[Compressor] = field(default_factory=Compressor)
    mod_fx_type: _XmlEnum = ModFxType.NONE
    default_params: DefaultParams = field(default_factory=DefaultParams)
    arpeggiator: Arpeggiator = field(default_factory=Arpeggiator)
    mod_knobs: List[ModKnob] = field(default_factory=_default_mod_knobs)

    def to_element(self) -> ET.Element:
        element = ET.Element('sound')
        _set_attributes(element, [
            ('firmwareVersion', self.firmware_version),
            ('earliestCompatibleFirmware', self.earliest_compatible_firmware),
            ('polyphonic', self.polyphonic),
            ('voicePriority', self.voice_priority),
            ('mode', self.mode),
            ('lpfMode', self.lpf_mode),
            ('modFXType', self.mod_fx_type),
            ('clippingAmount', self.clipping_amount),
        ])
        element.append(self.osc1.to_element('osc1'))
        element.append(self.osc2.to_element('osc2'))
        element.append(self.lfo1.to_element('lfo1'))
        element.append(self.lfo2.to_element('lfo2'))
        element.append(self.unison.to_element())
        element.append(self.delay.to_element())
        if self.compressor is not None:
            element.append(self.compressor.to_element())
        element.append(self.default_params.to_element())
        element.append(self.arpeggiator.to_element())
        knobs = ET.SubElement(element, 'modKnobs')
        for knob in self.mod_knobs:
            knobs.append(knob.to_element())
        return element

    def to_xml(self) -> str:
        element = self.to_element()
        ET.indent(element, space="\t")
        body = ET.tostring(element, encoding='unicode')
        return '<?xml version="1.0" encoding="UTF-8"?>\n' + body + '\n'


# Чтение сохраненного патча

def _int_attr(element: ET.Element, name: str) -> Optional[int]:
    text = element.get(name)
    return None if text is None else int(text)


def _value_attr(element: ET.Element, name: str, default: Value) -> Value:
    text = element.get(name)
    return default if text is None else Value.parse(text)


def _parse_zone(element: Optional[ET.Element]) -> Optional[Zone]:
    if element is None:
        return None
    return Zone(
        start_sample_pos=_int_attr(element, 'startSamplePos') or 0,
        end_sample_pos=_int_attr(element, 'endSamplePos') or 0,
        start_loop_pos=_int_attr(element, 'startLoopPos'),
        end_loop_pos=_int_attr(element, 'endLoopPos'),
    )


def _parse_osc(element: Optional[ET.Element]) -> Osc:
    if element is None:
        return Osc()
    osc = Osc(
        osc_type=OscType.parse(element.get('type', OscType.SINE.value)),
        transpose=_int_attr(element, 'transpose'),
        cents=_int_attr(element, 'cents'),
        retrig_phase=_int_attr(element, 'retrigPhase'),
        loop_mode=_int_attr(element, 'loopMode'),
        reversed=_int_attr(element, 'reversed'),
        time_stretch_enable=_int_attr(element, 'timeStretchEnable'),
        time_stretch_amount=_int_attr(element, 'timeStretchAmount'),
        file_name=element.get('fileName'),
        zone=_parse_zone(element.find('zone')),
    )
    ranges = element.find('sampleRanges')
    if ranges is not None:
        osc.sample_ranges = [
            SampleRange(
                file_name=r.get('fileName', ''),
                zone=_parse_zone(r.find('zone')) or Zone(),
                range_top_note=_int_attr(r, 'rangeTopNote'),
                transpose=_int_attr(r, 'transpose'),
                cents=_int_attr(r, 'cents'),
            )
            for r in ranges.findall('sampleRange')
        ]
    return osc


def _parse_envelope(element: Optional[ET.Element], default: Envelope) -> Envelope:
    if element is None:
        return default
    return Envelope(
        attack=_value_attr(element, 'attack', default.attack),
        decay=_value_attr(element, 'decay', default.decay),
        sustain=_value_attr(element, 'sustain', default.sustain),
        release=_value_attr(element, 'release', default.release),
    )


def _parse_default_params(element: Optional[ET.Element]) -> DefaultParams:
    params = DefaultParams()
    if element is None:
        return params
    for name, xml_name in _DEFAULT_PARAM_ATTRIBUTES:
        setattr(params, name, _value_attr(element, xml_name, getattr(params, name)))
    params.envelope_1 = _parse_envelope(element.find('envelope1'), params.envelope_1)
    params.envelope_2 = _parse_envelope(element.find('envelope2'), params.envelope_2)
    cables = element.find('patchCables')
    if cables is not None:
        params.patch_cables = [
            PatchCable(Source.parse(c.get('source')), Destination.parse(c.get('destination')),
                       Value.parse(c.get('amount', '0')))
            for c in cables.findall('patchCable')
        ]
    return params


def parse_sound(text: str) -> Sound:
    """
    Разбор XML патча. Старые файлы Deluge не имеют корневого элемента,
    поэтому документ оборачивается в <doc>.
    """
    body = re.sub(r'^\s*<\?xml[^>]*\?>', '', text)
    doc = ET.fromstring(f"<doc>{body}</doc>")
    element = doc.find('sound')
    if element is None:
        raise ValueError("В документе нет элемента <sound>")
    sound = Sound(
        name=element.get('name', ''),
        firmware_version=element.get('firmwareVersion') or doc.findtext('firmwareVersion'),
        earliest_compatible_firmware=(element.get('earliestCompatibleFirmware')
                                      or doc.findtext('earliestCompatibleFirmware')),
        osc1=_parse_osc(element.find('osc1')),
        osc2=_parse_osc(element.find('osc2')),
        default_params=_parse_default_params(element.find('defaultParams')),
    )
    if element.get('polyphonic') is not None:
        sound.polyphonic = Polyphony.parse(element.get('polyphonic'))
    if element.get('voicePriority') is not None:
        sound.voice_priority = int(element.get('voicePriority'))
    if element.get('mode') is not None:
        sound.mode = Mode.parse(element.get('mode'))
    if element.get('lpfMode') is not None:
        sound.lpf_mode = LpfMode.parse(element.get('lpfMode'))
    if element.get('modFXType') is not None:
        sound.mod_fx_type = ModFxType.parse(element.get('modFXType'))
    return sound


def read_sound(path: str) -> Sound:
    with open(path, 'r', encoding='utf-8') as f:
        return parse_sound(f.read())
