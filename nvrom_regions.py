import struct
from logging import getLogger

from nvrom_io import InvalidFormatError, align_up, read_exact, try_read, unpack

logger = getLogger(__name__)

FIRMWARE_REGION_ALIGN = 512
IMAGE_BLOCK_SIZE = 512

PCI_EXPANSION_ROM_SIGNATURE = b'\x55\xAA'
PCI_DATA_STRUCTURE_SIGNATURE = b'PCIR'
EFI_SIGNATURE = b'\xF1\x0E\0\0'
NV_ROM_SIGNATURE = b'VN'
NV_PCI_DATA_STRUCTURE_SIGNATURE = b'NPDS'
NV_PCI_DATA_EXTENDED_SIGNATURE = b'NPDE'
NBSI_SIGNATURE = b'ISBN'
NVGI_SIGNATURE = b'NVGI'
RFRD_SIGNATURE = b'RFRD'

RFRD_REGION_SIZE = 16

CODE_TYPES = {0x00: 'Ia32PcAtCompatible',
              0x01: 'OpenFirmwareStandardForPci',
              0x02: 'HewlettPackardPaRisc',
              0x03: 'EfiImage',
              0x70: 'NvidiaNbsiSignature',
              0x85: 'NvidiaHDCP',
              0xE0: 'NvidiaX86Extension'}

INDICATORS = {0x00: 'AnotherImageFollows',
              0x80: 'LastImage'}

EFI_SUBSYSTEMS = {0x0B: 'BootServiceDriver',
                  0x0C: 'RuntimeDriver'}

EFI_MACHINE_TYPES = {0x014C: 'Ia32',
                     0x0200: 'Itanium',
                     0x0EBC: 'EfiByteCode',
                     0x8664: 'X64',
                     0x01C2: 'Arm',
                     0xAA64: 'Arm64'}

EFI_COMPRESSION_TYPES = {0x0: 'Uncompressed',
                         0x1: 'UefiCompressionAlgorithm'}


def _global_type(code):
    return struct.unpack('<H', code)[0]


NBSI_GLOBAL_TYPES = {0x00: 'Reserved',
                     _global_type(b'DR'): 'Driver',
                     _global_type(b'VB'): 'VBios',
                     _global_type(b'HK'): 'Hdcp',
                     _global_type(b'IR'): 'InfoRom',
                     _global_type(b'HD'): 'Hdd',
                     _global_type(b'NV'): 'NonVolatile',
                     _global_type(b'PI'): 'PlatInfo',
                     _global_type(b'IP'): 'PlatInfoWar',
                     _global_type(b'VK'): 'ValKey',
                     _global_type(b'TG'): 'TegraInfo',
                     _global_type(b'TD'): 'TegraDcb',
                     _global_type(b'TP'): 'TegraPanel',
                     _global_type(b'TS'): 'TegraDsi',
                     _global_type(b'GD'): 'SysInfo',
                     _global_type(b'TT'): 'TegraTmds',
                     _global_type(b'OP'): 'OptimusPlat'}


def _expect(name, value, expected):
    if value != expected:
        raise InvalidFormatError('Bad %s: expected %r, got %r' % (name, expected, value))


def _expect_known(name, value, known):
    if value not in known:
        raise InvalidFormatError('Unknown %s: 0x%X' % (name, value))


class PciExpansionRomHeader:
    def __init__(self, fd, ptr):
        fd.seek(ptr)
        self.Signature, \
        self.InitializationSize, \
        self.InitFunctionPtr, \
        self.Reserved, \
        self.PcirOffset = unpack('<2sB3s18sH', fd)
        _expect('PCI expansion ROM signature', self.Signature, PCI_EXPANSION_ROM_SIGNATURE)


class EfiPciExpansionRomHeader:
    def __init__(self, fd, ptr):
        fd.seek(ptr)
        self.Signature, \
        self.InitializationSize, \
        self.EfiSignature, \
        self.EfiSubsystem, \
        self.EfiMachineType, \
        self.CompressionType, \
        self.Reserved, \
        self.EfiImageHeaderOffset, \
        self.PcirOffset = unpack('<2sH4sHHH8sHH', fd)
        _expect('PCI expansion ROM signature', self.Signature, PCI_EXPANSION_ROM_SIGNATURE)
        _expect('EFI signature', self.EfiSignature, EFI_SIGNATURE)
        _expect_known('EFI subsystem', self.EfiSubsystem, EFI_SUBSYSTEMS)
        _expect_known('EFI machine type', self.EfiMachineType, EFI_MACHINE_TYPES)
        _expect_known('EFI compression type', self.CompressionType, EFI_COMPRESSION_TYPES)


class NvidiaPciExpansionRomHeader:
    def __init__(self, fd, ptr):
        fd.seek(ptr)
        self.Signature, \
        self.Reserved, \
        self.PcirOffset = unpack('<2s22sH', fd)
        _expect('NVIDIA ROM signature', self.Signature, NV_ROM_SIGNATURE)


class NbsiPciExpansionRomHeader:
    def __init__(self, fd, ptr):
        fd.seek(ptr)
        self.Signature, \
        self.Reserved, \
        self.NbsiDataOffset, \
        self.PcirOffset, \
        self.NbsiBlockSize = unpack('<2s20sHHH', fd)
        _expect('NVIDIA ROM signature', self.Signature, NV_ROM_SIGNATURE)


class PciExpansionRomDataHeader:
    def __init__(self, fd, ptr, signature=PCI_DATA_STRUCTURE_SIGNATURE):
        fd.seek(ptr)
        self.Signature, \
        self.VendorId, \
        self.DeviceId, \
        self.DeviceListPtr, \
        self.PciDataStructureLength, \
        self.PciDataStructureRevision, \
        self.ClassCode, \
        self.ImageLength, \
        self.RevisionLevel, \
        self.CodeType, \
        self.Indicator, \
        self.MaxRuntimeImageLength, \
        self.ConfigurationUtilityCodePointer, \
        self.DmtfClpEntryPointPointer = unpack('<4sHHHHB3sHHBBHHH', fd)
        _expect('PCI data structure signature', self.Signature, signature)
        _expect_known('code type', self.CodeType, CODE_TYPES)
        _expect_known('indicator', self.Indicator, INDICATORS)


class NvidiaPciDataExtended:
    def __init__(self, fd, ptr):
        fd.seek(ptr)
        self.Signature, \
        self.Revision, \
        self.StructureLength, \
        self.ImageLength, \
        self.Indicator, \
        self.Flags = unpack('<4sHHHBB', fd)
        _expect('NPDE signature', self.Signature, NV_PCI_DATA_EXTENDED_SIGNATURE)
        _expect_known('indicator', self.Indicator, INDICATORS)
        self.GopVersion = read_exact(fd, 4) if self.StructureLength > 12 else None
        self.SubsystemId = read_exact(fd, 4) if self.StructureLength > 14 else None


class NbsiGenericObject:
    HEADER_SIZE = 16

    def __init__(self, fd, ptr):
        fd.seek(ptr)
        self.offset_in_region = ptr
        self.HashSignature, \
        self.GlobalType, \
        self.Size, \
        self.MinVersion, \
        self.MaxVersion = unpack('<QHIBB', fd)
        if self.Size < self.HEADER_SIZE:
            raise InvalidFormatError('NBSI object size %d is smaller than its header' % self.Size)
        self.data_size = self.Size - self.HEADER_SIZE
        self.data_offset_in_region = ptr + self.HEADER_SIZE
        fd.seek(self.data_offset_in_region + self.data_size)


class NbsiDirectory:
    def __init__(self, fd, ptr):
        fd.seek(ptr)
        self.offset_in_region = ptr
        self.Signature, \
        self.Size, \
        self.GlobalsCount, \
        self.Driver = unpack('<4sIBB', fd)
        _expect('NBSI signature', self.Signature, NBSI_SIGNATURE)
        self.ObjectsGlobalTypes = list(unpack('<%dH' % self.GlobalsCount, fd))
        self.objects_offset_in_region = fd.tell()
        self.objects = []
        latest_ptr = self.objects_offset_in_region
        for _ in range(self.GlobalsCount):
            self.objects.append(NbsiGenericObject(fd, latest_ptr))
            latest_ptr = fd.tell()

    def global_type_names(self):
        return [NBSI_GLOBAL_TYPES.get(t) for t in self.ObjectsGlobalTypes]


class _PciImage:
    """Common tail of every option ROM style image.

    The PCI data structure sits at PcirOffset, an optional NPDE extension
    follows on the next 16-byte boundary, and the whole image of
    ImageLength * 512 bytes must be present in the source.
    """

    data_signature = PCI_DATA_STRUCTURE_SIGNATURE

    def _read_data_headers(self, fd):
        self.data_header = PciExpansionRomDataHeader(
            fd, self.offset_in_firmware + self.header.PcirOffset, self.data_signature)
        self.data_header_extended = try_read(NvidiaPciDataExtended, fd, align_up(fd.tell(), 16))

    def _consume_image(self, fd):
        size = self.region_size
        if size == 0:
            raise InvalidFormatError('Image at %d declares zero length' % self.offset_in_firmware)
        fd.seek(self.end_offset_in_firmware - 1)
        if len(fd.read(1)) != 1:
            raise InvalidFormatError('Image at %d declares %d bytes past the end of the source'
                                     % (self.offset_in_firmware, size))

    @property
    def region_size(self):
        return self.data_header.ImageLength * IMAGE_BLOCK_SIZE

    @property
    def end_offset_in_firmware(self):
        return self.offset_in_firmware + self.region_size


class LegacyPciExpansionRom(_PciImage):
    def __init__(self, fd, offset):
        self.offset_in_firmware = offset
        self.header = PciExpansionRomHeader(fd, offset)
        self._read_data_headers(fd)
        self._consume_image(fd)


class EfiPciExpansionRom(_PciImage):
    def __init__(self, fd, offset):
        self.offset_in_firmware = offset
        self.header = EfiPciExpansionRomHeader(fd, offset)
        self._read_data_headers(fd)
        self._consume_image(fd)


class NvidiaPciExpansionRom(_PciImage):
    data_signature = NV_PCI_DATA_STRUCTURE_SIGNATURE

    def __init__(self, fd, offset):
        self.offset_in_firmware = offset
        self.header = NvidiaPciExpansionRomHeader(fd, offset)
        self._read_data_headers(fd)
        self._consume_image(fd)


class NbsiPciExpansionRom(_PciImage):
    data_signature = NV_PCI_DATA_STRUCTURE_SIGNATURE

    def __init__(self, fd, offset):
        self.offset_in_firmware = offset
        self.header = NbsiPciExpansionRomHeader(fd, offset)
        self._read_data_headers(fd)
        self.nbsi_directory = NbsiDirectory(fd, offset + self.header.NbsiDataOffset)
        self._consume_image(fd)


class NvgiRegion:
    def __init__(self, fd, offset):
        fd.seek(offset)
        self.offset_in_firmware = offset
        self.Signature, \
        self.Unknown1, \
        self.Unknown2, \
        self.Size = unpack('<4sHHI', fd)
        _expect('NVGI signature', self.Signature, NVGI_SIGNATURE)
        if self.Size == 0:
            raise InvalidFormatError('NVGI region at %d declares zero size' % offset)
        self.data_offset_in_firmware = fd.tell()
        fd.seek(self.data_offset_in_firmware + self.Size - 1)
        if len(fd.read(1)) != 1:
            raise InvalidFormatError('NVGI region at %d declares %d bytes past the end of the source'
                                     % (offset, self.Size))

    @property
    def region_size(self):
        return self.Size

    @property
    def end_offset_in_firmware(self):
        return self.offset_in_firmware + self.region_size


class RfrdRegion:
    def __init__(self, fd, offset):
        fd.seek(offset)
        self.offset_in_firmware = offset
        self.Signature, \
        self.Unknown1, \
        self.Unknown2, \
        self.PciRomOffset = unpack('<4sHHI', fd)
        _expect('RFRD signature', self.Signature, RFRD_SIGNATURE)

    @property
    def region_size(self):
        return RFRD_REGION_SIZE

    @property
    def end_offset_in_firmware(self):
        return self.offset_in_firmware + self.region_size


# Tried in order, first successful decode wins.
REGION_SIGNATURES_2 = [(PCI_EXPANSION_ROM_SIGNATURE, (EfiPciExpansionRom, LegacyPciExpansionRom)),
                       (NV_ROM_SIGNATURE, (NbsiPciExpansionRom, NvidiaPciExpansionRom))]

REGION_SIGNATURES_4 = [(NVGI_SIGNATURE, (NvgiRegion,)),
                       (RFRD_SIGNATURE, (RfrdRegion,))]


def _classify(fd, offset, probe):
    for signatures, size in ((REGION_SIGNATURES_2, 2), (REGION_SIGNATURES_4, 4)):
        logger.debug('Testing region at %d for %d-bytes signature: %s', offset, size, probe[:size].hex())
        for signature, candidates in signatures:
            if probe[:size] != signature:
                continue
            for cls in candidates:
                region = try_read(cls, fd, offset)
                if region is not None:
                    return region
    return None


def iterate_regions(fd):
    """Yield every region found in fd, probing at FIRMWARE_REGION_ALIGN steps.

    Scanning starts at the current position of fd rounded up to the
    alignment. A decoded region leaves the source where its own length says
    it ends, the next probe is aligned from there.
    """
    position = fd.tell()
    while True:
        offset = align_up(position, FIRMWARE_REGION_ALIGN)
        fd.seek(offset)
        probe = fd.read(FIRMWARE_REGION_ALIGN)
        if len(probe) < FIRMWARE_REGION_ALIGN:
            return
        region = _classify(fd, offset, probe)
        if region is not None:
            position = fd.tell()
            logger.debug('Found %s at %d, size %d', type(region).__name__, offset, region.region_size)
            yield region
            continue
        position = offset + FIRMWARE_REGION_ALIGN
