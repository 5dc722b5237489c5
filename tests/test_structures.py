import io

from nvrom_bit import BITStructure
from nvrom_cursor import ContinuousRegionReader
from nvrom_dcb import DeviceControlBlock
from nvrom_structures import iterate_structures
from romdata import BLOCK, bit, dcb, legacy_image, nv_image, Region


def test_bit_and_dcb_are_found():
    image = legacy_image(structures=[(0x100, bit([(0x4E, 0, 0, 0)])), (0x180, dcb())])
    fd = io.BytesIO(image)
    reader = ContinuousRegionReader(fd, [Region(0, BLOCK)])
    reader.seek(0x1C)
    structures = list(iterate_structures(reader))
    assert [type(s) for s in structures] == [BITStructure, DeviceControlBlock]
    assert structures[0].offset_in_region == 0x100
    assert structures[1].offset_in_region == 0x180


def test_scan_stops_after_dcb():
    image = legacy_image(structures=[(0x100, dcb()), (0x180, bit([]))])
    reader = ContinuousRegionReader(io.BytesIO(image), [Region(0, BLOCK)])
    structures = list(iterate_structures(reader))
    assert [type(s) for s in structures] == [DeviceControlBlock]


def test_broken_bit_is_skipped():
    broken = bytearray(bit([]))
    broken[8] = 4
    image = legacy_image(structures=[(0x100, bytes(broken)), (0x180, bit([(0x4E, 0, 0, 0)]))])
    reader = ContinuousRegionReader(io.BytesIO(image), [Region(0, BLOCK)])
    structures = list(iterate_structures(reader))
    assert [s.offset_in_region for s in structures] == [0x180]


def test_structure_across_region_boundary():
    table = bit([(0x4E, 0, 0, 0), (0x4E, 0, 0, 0)])
    first = bytearray(legacy_image())
    second = bytearray(nv_image())
    first[BLOCK - 8:] = table[:8]
    second[:len(table) - 8] = table[8:]
    data = bytes(first) + b'\xff' * BLOCK + bytes(second)
    reader = ContinuousRegionReader(io.BytesIO(data), [Region(0, BLOCK), Region(2 * BLOCK, BLOCK)])
    structures = list(iterate_structures(reader))
    assert len(structures) == 1
    assert structures[0].offset_in_region == BLOCK - 8
    assert len(structures[0].tokens) == 2


def test_dcb_checked_when_bit_fails_at_same_offset():
    table = bytearray(dcb(gpio_ptr=0xFF))
    # header size 0xDC, token size 0x4E and 0xFF tokens run past the image
    table[2:6] = b'BIT\0'
    image = legacy_image(blocks=12, structures=[(0x100, bytes(table))])
    reader = ContinuousRegionReader(io.BytesIO(image), [Region(0, 12 * BLOCK)])
    structures = list(iterate_structures(reader))
    assert [type(s) for s in structures] == [DeviceControlBlock]
    assert structures[0].offset_in_region == 0x100
    assert structures[0].EntryCount == 0x42


def test_scan_resumes_after_token_array():
    table = bytearray(bit([(0x4E, 0, 0, 0)], token_size=32))
    table[18:30] = bit([])
    image = legacy_image(structures=[(0x100, bytes(table)), (0x180, bit([]))])
    reader = ContinuousRegionReader(io.BytesIO(image), [Region(0, BLOCK)])
    structures = list(iterate_structures(reader))
    assert [s.offset_in_region for s in structures] == [0x100, 0x180]
