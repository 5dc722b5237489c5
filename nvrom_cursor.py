import os
from logging import getLogger

from nvrom_io import InvalidInputError

logger = getLogger(__name__)

BEFORE_FIRST_REGION = 'before_first_region'
IN_REGION = 'in_region'
BETWEEN_REGIONS = 'between_regions'
AFTER_LAST_REGION = 'after_last_region'

READ_ALL_CHUNK_SIZE = 8192


class ContinuousRegionReader:
    """File-like view of several regions of fd as one contiguous stream.

    Logical position 0 is the first byte of the lowest region, the bytes of
    every following region come right after the previous one. Past the last
    region the logical position keeps counting over the rest of fd, which
    can be seeked to but reads as end of stream.

    The reader drives the position of fd directly, so fd must not be used
    by anybody else while the reader is in use. Overlapping regions are not
    supported.
    """

    def __init__(self, fd, regions):
        self.fd = fd
        self.regions = sorted(regions, key=lambda r: r.offset_in_firmware)

    @property
    def size(self):
        return sum(r.region_size for r in self.regions)

    def _position_info(self, firmware_position):
        """Classify a raw position of fd.

        Returns (kind, region_index, offset_in_region, translated_position),
        fields that do not apply to kind are None.
        """
        translated_offset = 0
        end_offset_in_firmware = 0
        for index, region in enumerate(self.regions):
            offset_in_firmware = region.offset_in_firmware
            end_offset_in_firmware = offset_in_firmware + region.region_size
            if end_offset_in_firmware <= firmware_position:
                translated_offset += region.region_size
            elif offset_in_firmware <= firmware_position:
                offset = firmware_position - offset_in_firmware
                return IN_REGION, index, offset, translated_offset + offset
            elif index == 0:
                return BEFORE_FIRST_REGION, None, None, None
            else:
                return BETWEEN_REGIONS, None, None, None
        return AFTER_LAST_REGION, None, None, \
            firmware_position - end_offset_in_firmware + translated_offset

    def readable(self):
        return True

    def seekable(self):
        return True

    def read(self, size=-1):
        if size is None or size < 0:
            return b''.join(iter(lambda: self.read(READ_ALL_CHUNK_SIZE), b''))
        firmware_position = self.fd.tell()
        kind, index, offset, _ = self._position_info(firmware_position)
        if kind == IN_REGION:
            bytes_left = self.regions[index].region_size - offset
            data = self.fd.read(min(size, bytes_left))
            if len(data) == bytes_left and index + 1 < len(self.regions):
                self.fd.seek(self.regions[index + 1].offset_in_firmware)
            return data
        if kind == AFTER_LAST_REGION:
            return b''
        if kind == BEFORE_FIRST_REGION:
            raise InvalidInputError('Cannot read before first region!')
        raise InvalidInputError('Cannot read between specified regions!')

    def tell(self):
        kind, _, _, translated_position = self._position_info(self.fd.tell())
        if translated_position is None:
            raise InvalidInputError('Position is outside of specified regions!')
        return translated_position

    def seek(self, offset, whence=os.SEEK_SET):
        if whence == os.SEEK_SET:
            return self._seek_from_start(offset)
        if whence == os.SEEK_END:
            return self._seek_from_start(self.size + offset)
        if whence == os.SEEK_CUR:
            kind, _, _, translated_position = self._position_info(self.fd.tell())
            if translated_position is None:
                raise InvalidInputError('Cannot relative seek from outside of specified regions!')
            return self._seek_from_start(translated_position + offset)
        raise InvalidInputError('Invalid whence: %r' % whence)

    def _seek_from_start(self, from_start):
        if from_start < 0:
            raise InvalidInputError('Invalid seek to a negative position!')
        remaining_offset = from_start
        for region in self.regions:
            if region.region_size > remaining_offset:
                seek_in_firmware = region.offset_in_firmware + remaining_offset
                logger.debug('Seek translated %d, in firmware %d', from_start, seek_in_firmware)
                self.fd.seek(seek_in_firmware)
                return from_start
            remaining_offset -= region.region_size
        last_region_end = self.regions[-1].offset_in_firmware + self.regions[-1].region_size \
            if self.regions else 0
        self.fd.seek(last_region_end + remaining_offset)
        return from_start
