#!/usr/bin/env python3
"""
Тесты обхода RIFF контейнера
"""

import io
import struct

import pytest

from conftest import make_chunk, make_list, make_riff
from riff import RiffFormatError, read_root_chunk, walk_chunks


def _walk(data, expected_form=None):
    return list(walk_chunks(io.BytesIO(data), expected_form))


def test_walk_order_and_nesting():
    """Чанки выдаются в глубину в порядке документа, корень первым"""
    data = make_riff(b'sfbk', [
        make_list(b'INFO', [make_chunk(b'ifil', b'\x02\x00\x01\x00'), make_chunk(b'INAM', b'Bank\x00\x00')]),
        make_list(b'pdta', [make_chunk(b'phdr', b'\x00' * 38)]),
    ])
    chunks = _walk(data, b'sfbk')

    assert [c.name for c in chunks] == ['sfbk', 'INFO', 'ifil', 'INAM', 'pdta', 'phdr']
    assert [c.depth for c in chunks] == [0, 1, 2, 2, 1, 2]
    assert chunks[2].data == b'\x02\x00\x01\x00'
    assert chunks[1].is_container and not chunks[2].is_container
    assert [c.name for c in chunks[1].children] == ['ifil', 'INAM']


def test_read_root_chunk_builds_tree():
    data = make_riff(b'sfbk', [make_list(b'pdta', [make_chunk(b'inst', b'\x00' * 22)])])
    root = read_root_chunk(io.BytesIO(data))
    assert root.form == b'sfbk'
    assert root.children[0].children[0].id == b'inst'


def test_odd_sized_chunk_is_padded():
    """Нечетный чанк занимает на байт больше, следующий чанк читается корректно"""
    odd = b'abcd' + struct.pack('<I', 3) + b'xyz' + b'\x00'
    body = b'sfbk' + odd + make_chunk(b'next', b'12')
    data = b'RIFF' + struct.pack('<I', len(body)) + body

    chunks = _walk(data)
    assert chunks[1].id == b'abcd'
    assert chunks[1].size == 3
    assert chunks[1].data == b'xyz'
    assert chunks[2].id == b'next'
    assert chunks[2].data == b'12'


def test_unknown_leaf_is_surfaced():
    data = make_riff(b'sfbk', [make_chunk(b'zzzz', b'data')])
    chunks = _walk(data)
    assert chunks[-1].id == b'zzzz'
    assert chunks[-1].data == b'data'


def test_not_riff_is_rejected():
    with pytest.raises(RiffFormatError):
        _walk(b'RIFX' + struct.pack('<I', 4) + b'sfbk')


def test_wrong_form_is_rejected():
    data = make_riff(b'WAVE', [])
    with pytest.raises(RiffFormatError):
        _walk(data, b'sfbk')


def test_child_overrunning_parent_is_rejected():
    """Дочерний чанк длиннее родителя - фатальная ошибка"""
    bad_child = b'phdr' + struct.pack('<I', 100) + b'\x00' * 8
    list_body = b'pdta' + bad_child
    data = make_riff(b'sfbk', [b'LIST' + struct.pack('<I', len(list_body)) + list_body])
    with pytest.raises(RiffFormatError):
        _walk(data)


def test_truncated_payload_is_rejected():
    data = make_riff(b'sfbk', [make_chunk(b'smpl', b'\x00' * 16)])
    with pytest.raises(RiffFormatError):
        _walk(data[:-4])


def test_make_chunk_pads_payload():
    """Размер в заголовке без выравнивающего байта, сам байт дописывается"""
    chunk = make_chunk(b'INAM', b'abc')
    assert chunk == b'INAM' + struct.pack('<I', 3) + b'abc\x00'
    assert _walk(make_riff(b'sfbk', [chunk]))[1].data == b'abc'
