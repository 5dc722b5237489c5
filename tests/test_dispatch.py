import io
import logging
import struct

from nvrom_dispatch import chase_pointers
from nvrom_io import InvalidFormatError, unpack


class Root:
    def __init__(self, **pointers):
        for name, value in pointers.items():
            setattr(self, name, value)


class Record:
    def __init__(self, fd, ptr):
        fd.seek(ptr)
        self.Magic, self.Value = unpack('<4sI', fd)
        if self.Magic != b'GOOD':
            raise InvalidFormatError('Bad magic %r' % self.Magic)


CATALOG = [('FirstPtr', 'first', Record),
           ('SecondPtr', 'second', Record),
           ('ThirdPtr', 'third', Record)]


def test_zero_pointer_is_absent():
    calls = []

    def decoder(fd, ptr):
        calls.append(ptr)

    result = chase_pointers(Root(FirstPtr=0), io.BytesIO(b''), [('FirstPtr', 'first', decoder)])
    assert result == {'first': None}
    assert calls == []


def test_failed_decode_does_not_stop_siblings(caplog):
    data = bytearray(64)
    data[0x10:0x18] = struct.pack('<4sI', b'JUNK', 1)
    data[0x20:0x28] = struct.pack('<4sI', b'GOOD', 42)
    root = Root(FirstPtr=0, SecondPtr=0x10, ThirdPtr=0x20)
    with caplog.at_level(logging.WARNING):
        result = chase_pointers(root, io.BytesIO(bytes(data)), CATALOG)
    assert result['first'] is None
    assert result['second'] is None
    assert result['third'].Value == 42
    assert 'second' in caplog.text


def test_pointer_past_end_is_tolerated(caplog):
    root = Root(FirstPtr=0x100, SecondPtr=0, ThirdPtr=0)
    with caplog.at_level(logging.WARNING):
        result = chase_pointers(root, io.BytesIO(b'GOOD\x01\0\0\0'), CATALOG)
    assert result == {'first': None, 'second': None, 'third': None}
    assert 'first' in caplog.text
