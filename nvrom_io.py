import struct
from logging import getLogger

logger = getLogger(__name__)


class RomError(Exception):
    pass


class InvalidFormatError(RomError):
    pass


class InvalidInputError(RomError, ValueError):
    pass


def align_up(offset, alignment):
    return (offset + alignment - 1) & ~(alignment - 1)


def read_exact(fd, size):
    data = b''
    while len(data) < size:
        chunk = fd.read(size - len(data))
        if not chunk:
            raise InvalidFormatError('Unexpected end of data, wanted %d bytes, got %d' % (size, len(data)))
        data += chunk
    return data


def read_up_to(fd, size):
    data = b''
    while len(data) < size:
        chunk = fd.read(size - len(data))
        if not chunk:
            break
        data += chunk
    return data


def unpack(fmt, fd):
    return struct.unpack(fmt, read_exact(fd, struct.calcsize(fmt)))


def read_cstr(fd, ptr, size):
    fd.seek(ptr)
    cstr = read_exact(fd, size).split(b'\0', 1)[0]
    try:
        return cstr.decode()
    except UnicodeDecodeError:
        raise InvalidFormatError('String at 0x%X is not valid UTF-8' % ptr)


def try_read(cls, fd, offset):
    """Speculatively decode cls at offset.

    On a structural failure the source is rewound to offset and None is
    returned. I/O errors propagate.
    """
    fd.seek(offset)
    logger.debug('Trying to parse %s at %d', cls.__name__, offset)
    try:
        return cls(fd, offset)
    except (InvalidFormatError, InvalidInputError) as e:
        logger.debug('Failed to parse %s at %d: %s', cls.__name__, offset, e)
        fd.seek(offset)
        return None


def format_version(raw):
    return '%02X.%02X.%02X.%02X' % (raw[3], raw[2], raw[1], raw[0])


def non_zero_version(raw):
    if raw is None or raw == b'\0\0\0\0':
        return None
    return format_version(raw)


def as_dict(value):
    if isinstance(value, bytes):
        return value.hex()
    if isinstance(value, (list, tuple)):
        return [as_dict(v) for v in value]
    if isinstance(value, dict):
        return {k: as_dict(v) for k, v in value.items()}
    if hasattr(value, '__dict__'):
        return {k: as_dict(v) for k, v in vars(value).items() if not k.startswith('_')}
    return value
