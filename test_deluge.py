#!/usr/bin/env python3
"""
Тесты модели патча Deluge и его XML представления
"""

import xml.etree.ElementTree as ET

import pytest

from deluge import (Destination, Envelope, LpfMode, ModFxType, Osc, OscType, Polyphony, SampleRange, Sound,
                    Value, Zone, parse_sound, read_sound)


def test_value_hex_format():
    assert Value(0x7FFFFFFF).to_xml() == "0x7fffffff"
    assert Value(0).to_xml() == "0x00000000"
    assert Value(-1).to_xml() == "0xffffffff"
    assert Value.parse("0xE6666654") == 0xE6666654


def test_value_parses_unprefixed_hex():
    """Значения без префикса 0x читаются как hex, а не как десятичные числа"""
    assert Value.parse("80000000") == 0x80000000
    assert Value.parse("e6666654") == 0xE6666654
    assert Value.parse("00000012") == 0x12

    sound = parse_sound('<sound><defaultParams oscBVolume="80000000">'
                        '<envelope1 attack="80000000" decay="e6666654" sustain="7fffffff" release="00000000"/>'
                        '</defaultParams></sound>')
    params = sound.default_params
    assert params.osc_b_volume == 0x80000000
    assert params.envelope_1.decay == 0xE6666654
    assert params.envelope_1.sustain == 0x7FFFFFFF
    assert params.envelope_1.release == 0


def test_enum_names():
    assert OscType.SAMPLE.to_xml() == "sample"
    assert OscType.ANALOG_SAW.to_xml() == "analogSaw"
    assert Destination.MOD_FX_DEPTH.to_xml() == "modFXDepth"
    assert Destination.ENV1_ATTACK.to_xml() == "env1Attack"
    assert Destination.VOLUME_POST_FX.to_xml() == "volumePostFX"
    assert LpfMode.MODE_24DB_DRIVE.to_xml() == "24dBDrive"
    assert ModFxType.parse("flanger") == ModFxType.FLANGER


def test_polyphony():
    assert Polyphony().to_xml() == "poly"
    assert Polyphony("auto").to_xml() == "auto"
    assert Polyphony(8).to_xml() == "8"
    assert Polyphony("4") == Polyphony(4)
    with pytest.raises(ValueError):
        Polyphony("many")


def test_default_sound_document():
    """Патч по умолчанию соответствует init патчу"""
    text = Sound().to_xml()
    assert text.startswith('<?xml version="1.0" encoding="UTF-8"?>')

    root = ET.fromstring(text.split('\n', 1)[1])
    assert root.tag == 'sound'
    assert root.get('polyphonic') == 'poly'
    assert root.get('mode') == 'subtractive'
    assert root.get('lpfMode') == '24dBDrive'
    assert root.find('osc1').get('type') == 'sine'

    params = root.find('defaultParams')
    assert params.get('oscAVolume') == '0x7fffffff'
    assert params.get('oscBVolume') == '0x80000000'
    assert params.find('envelope1').get('sustain') == '0x7fffffff'
    cable = params.find('patchCables/patchCable')
    assert cable.get('source') == 'velocity'
    assert cable.get('destination') == 'volume'
    assert len(root.findall('modKnobs/modKnob')) == 16


def test_sample_oscillator_attributes():
    osc = Osc(osc_type=OscType.SAMPLE, transpose=-12, loop_mode=0, reversed=0,
              time_stretch_enable=0, time_stretch_amount=0,
              file_name="SAMPLES/0 - Piano.wav", zone=Zone(0, 1000))
    element = osc.to_element('osc1')

    assert element.get('type') == 'sample'
    assert element.get('transpose') == '-12'
    assert element.get('cents') is None
    assert element.get('fileName') == "SAMPLES/0 - Piano.wav"
    zone = element.find('zone')
    assert zone.get('startSamplePos') == '0'
    assert zone.get('endSamplePos') == '1000'
    assert zone.get('startLoopPos') is None


def test_sample_ranges():
    osc = Osc(osc_type=OscType.SAMPLE, sample_ranges=[
        SampleRange("A.wav", Zone(0, 10, 2, 8), range_top_note=59, transpose=1),
        SampleRange("B.wav", Zone(0, 20), cents=-4),
    ])
    ranges = osc.to_element('osc2').findall('sampleRanges/sampleRange')

    assert [r.get('rangeTopNote') for r in ranges] == ['59', None]
    assert ranges[0].find('zone').get('endLoopPos') == '8'
    assert ranges[1].get('cents') == '-4'
    assert ranges[1].get('fileName') == 'B.wav'


def test_parse_back(tmp_path):
    sound = Sound(firmware_version="3.1.3", earliest_compatible_firmware="3.1.0-beta",
                  polyphonic=Polyphony("mono"))
    sound.osc1 = Osc(osc_type=OscType.SAMPLE, transpose=3, file_name="S.wav", zone=Zone(0, 50, 10, 40))
    sound.osc2 = Osc(osc_type=OscType.SAMPLE, sample_ranges=[SampleRange("A.wav", Zone(0, 5), 40),
                                                             SampleRange("B.wav", Zone(0, 6))])
    sound.default_params.envelope_1 = Envelope(Value(0x11111111), Value(0x22222222), Value(0x33333333),
                                               Value(0x44444444))

    path = tmp_path / "patch.xml"
    path.write_text(sound.to_xml(), encoding='utf-8')
    parsed = read_sound(str(path))

    assert parsed.firmware_version == "3.1.3"
    assert parsed.earliest_compatible_firmware == "3.1.0-beta"
    assert parsed.polyphonic == Polyphony("mono")
    assert parsed.osc1 == sound.osc1
    assert parsed.osc2 == sound.osc2
    assert parsed.default_params.envelope_1 == sound.default_params.envelope_1
    assert parsed.default_params.osc_a_volume == 0x7FFFFFFF


def test_parse_legacy_document_without_root():
    """Старые патчи хранят версию прошивки отдельным элементом"""
    text = ('<?xml version="1.0" encoding="UTF-8"?>\n'
            '<firmwareVersion>1.2.0</firmwareVersion>\n'
            '<sound polyphonic="1"><osc1 type="saw"/></sound>\n')
    sound = parse_sound(text)
    assert sound.firmware_version == "1.2.0"
    assert sound.osc1.osc_type == OscType.SAW
    assert sound.polyphonic.to_xml() == "1"


def test_document_without_sound():
    with pytest.raises(ValueError):
        parse_sound("<kit/>")
