import struct
from typing import BinaryIO, Iterator, List, Optional

# Идентификаторы контейнерных чанков. RIFF и LIST несут 4 байта типа формы
# сразу после поля размера, sdta встречается как самостоятельный контейнер
# в некоторых старых банках.
RIFF = b'RIFF'
LIST = b'LIST'
SDTA = b'sdta'
CONTAINER_IDS = (RIFF, LIST, SDTA)
FORM_IDS = (RIFF, LIST)

CHUNK_HEADER_SIZE = 8


class RiffFormatError(ValueError):
    """Нарушена структура RIFF контейнера"""


class RiffChunk:
    """
    Чанк RIFF контейнера.

    Листовые чанки хранят полезные данные в ``data``, контейнеры хранят
    тип формы в ``form`` и дочерние чанки в ``children``.
    """
    __slots__ = ['id', 'size', 'offset', 'form', 'data', 'children', 'depth']

    def __init__(self, chunk_id: bytes, size: int, offset: int, depth: int = 0):
        self.id = chunk_id
        self.size = size
        self.offset = offset  # позиция полезных данных в потоке
        self.form: Optional[bytes] = None
        self.data: Optional[bytes] = None
        self.children: List['RiffChunk'] = []
        self.depth = depth

    @property
    def is_container(self) -> bool:
        return self.id in CONTAINER_IDS

    @property
    def name(self) -> str:
        """Имя чанка: тип формы для контейнеров, идентификатор для листьев"""
        tag = self.form if self.form is not None else self.id
        return tag.decode('ascii', 'replace')

    def __repr__(self):
        return f"RiffChunk({self.name!r}, size={self.size})"


class _StreamReader:
    """Чтение из потока с отслеживанием позиции"""

    def __init__(self, stream: BinaryIO):
        self.stream = stream
        self.position = 0

    def read_exact(self, count: int, what: str) -> bytes:
        data = self.stream.read(count)
        if len(data) != count:
            raise RiffFormatError(
                f"Неожиданный конец данных при чтении {what}: нужно {count} байт, прочитано {len(data)}"
            )
        self.position += count
        return data

    def read_header(self):
        header = self.read_exact(CHUNK_HEADER_SIZE, "заголовка чанка")
        chunk_id = header[:4]
        size = struct.unpack('<I', header[4:8])[0]
        return chunk_id, size


def _walk(reader: _StreamReader, end: int, depth: int, parent: Optional[RiffChunk]) -> Iterator[RiffChunk]:
    while reader.position + CHUNK_HEADER_SIZE <= end:
        chunk_id, size = reader.read_header()
        chunk = RiffChunk(chunk_id, size, reader.position, depth)
        chunk_end = reader.position + size
        if chunk_end > end:
            raise RiffFormatError(
                f"Чанк {chunk_id!r} длиной {size} выходит за границу родителя ({chunk_end} > {end})"
            )
        if parent is not None:
            parent.children.append(chunk)

        if chunk_id in CONTAINER_IDS:
            if chunk_id in FORM_IDS:
                if size < 4:
                    raise RiffFormatError(f"Контейнер {chunk_id!r} без типа формы")
                chunk.form = reader.read_exact(4, "типа формы")
            yield chunk
            yield from _walk(reader, chunk_end, depth + 1, chunk)
            # Дочерние чанки могли не покрыть контейнер целиком
            if reader.position < chunk_end:
                reader.read_exact(chunk_end - reader.position, "хвоста контейнера")
        else:
            chunk.data = reader.read_exact(size, f"данных чанка {chunk_id!r}")
            yield chunk

        # Выравнивание по четной границе
        if size % 2 == 1 and reader.position < end:
            reader.read_exact(1, "байта выравнивания")

    if reader.position < end and parent is not None:
        # Остаток меньше заголовка чанка
        reader.read_exact(end - reader.position, "хвоста контейнера")


def walk_chunks(stream: BinaryIO, expected_form: Optional[bytes] = None) -> Iterator[RiffChunk]:
    """
    Обход дерева чанков в глубину в порядке документа.

    Args:
        stream: бинарный поток, установленный на корневой чанк
        expected_form: ожидаемый тип формы корневого RIFF чанка (например b'sfbk')

    Yields:
        все чанки дерева, начиная с корневого
    """
    reader = _StreamReader(stream)
    chunk_id, size = reader.read_header()
    if chunk_id != RIFF:
        raise RiffFormatError(f"Ожидался RIFF заголовок, найден {chunk_id!r}")
    if size < 4:
        raise RiffFormatError("RIFF контейнер без типа формы")
    root = RiffChunk(chunk_id, size, reader.position, 0)
    root.form = reader.read_exact(4, "типа формы")
    if expected_form is not None and root.form != expected_form:
        raise RiffFormatError(f"Ожидался тип формы {expected_form!r}, найден {root.form!r}")
    yield root
    yield from _walk(reader, CHUNK_HEADER_SIZE + size, 1, root)


def read_root_chunk(stream: BinaryIO, expected_form: Optional[bytes] = None) -> RiffChunk:
    """Читает дерево чанков целиком и возвращает корневой чанк"""
    chunks = walk_chunks(stream, expected_form)
    root = next(chunks)
    for _ in chunks:
        pass
    return root
