from logging import getLogger

from nvrom_bit import BIT_SIGNATURE, BITStructure
from nvrom_dcb import DCB_SIGNATURE, DeviceControlBlock
from nvrom_io import align_up, read_up_to, try_read

logger = getLogger(__name__)

FIRMWARE_REGION_STRUCTURE_ALIGN = 1
STRUCTURE_PROBE_SIZE = 16


def _classify(reader, offset, probe):
    if probe[2:6] == BIT_SIGNATURE:
        structure = try_read(BITStructure, reader, offset)
        if structure is not None:
            return structure
    if probe[6:10] == DCB_SIGNATURE:
        return try_read(DeviceControlBlock, reader, offset)
    return None


def iterate_structures(reader):
    """Yield the BIT structures and the DCB found in reader.

    reader is usually a ContinuousRegionReader. Scanning starts at the
    current position and ends after the first DCB or at the end of the
    stream.
    """
    position = reader.tell()
    while True:
        offset = align_up(position, FIRMWARE_REGION_STRUCTURE_ALIGN)
        reader.seek(offset)
        probe = read_up_to(reader, STRUCTURE_PROBE_SIZE)
        if len(probe) < STRUCTURE_PROBE_SIZE:
            return
        structure = _classify(reader, offset, probe)
        if structure is None:
            position = offset + FIRMWARE_REGION_STRUCTURE_ALIGN
            continue
        logger.debug('Found %s at %d', type(structure).__name__, offset)
        yield structure
        if isinstance(structure, DeviceControlBlock):
            return
        # resume after the token array
        header = structure.header
        position = offset + header.HeaderSize + header.TokenEntries * header.TokenSize
