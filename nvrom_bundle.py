from logging import getLogger

from nvrom_bit import TOKEN_TABLES, BITStructure, StringToken, bios_version
from nvrom_cursor import ContinuousRegionReader
from nvrom_dcb import DCB_TABLES, DeviceControlBlock
from nvrom_dispatch import chase_pointers
from nvrom_io import InvalidFormatError, InvalidInputError, non_zero_version
from nvrom_regions import EfiPciExpansionRom, LegacyPciExpansionRom, NbsiPciExpansionRom, \
    NvgiRegion, NvidiaPciExpansionRom, RfrdRegion, iterate_regions
from nvrom_structures import iterate_structures

logger = getLogger(__name__)


class FirmwareBundle:
    def __init__(self):
        self.firmwares = []
        self.nbsi_pci_expansion_rom = None


class FirmwareUnit:
    def __init__(self):
        self.nvgi_regions = []
        self.rfrd_region = None
        self.legacy_pci_image = None
        self.efi_pci_image = None
        self.nv_pci_expansion_roms = []


class LegacyPciImageInfo:
    def __init__(self, image):
        self.image = image

        self.bit_table_structure = None
        self.bit_tokens_data = []
        self.bit_string_token = None
        self.nvlink_config_data = None
        self.pll_info = None
        self.memory_clock_table = None
        self.memory_tweak_table = None
        self.virtual_p_state_table = None
        self.power_policy_table = None

        self.device_control_block = None
        self.gpio_assignment_table = None
        self.i2c_devices_table = None
        self.connector_table = None
        self.communications_control_block = None


def parse_bundle(fd):
    """Scan fd for firmware regions and decode the tables of every legacy image.

    Regions are grouped into units: an NVGI region that follows a unit
    which already has its RFRD trailer starts a new unit.
    """
    bundle = FirmwareBundle()
    firmware = FirmwareUnit()
    for region in iterate_regions(fd):
        if isinstance(region, LegacyPciExpansionRom):
            firmware.legacy_pci_image = LegacyPciImageInfo(region)
        elif isinstance(region, EfiPciExpansionRom):
            firmware.efi_pci_image = region
        elif isinstance(region, NbsiPciExpansionRom):
            bundle.nbsi_pci_expansion_rom = region
        elif isinstance(region, NvidiaPciExpansionRom):
            firmware.nv_pci_expansion_roms.append(region)
        elif isinstance(region, NvgiRegion):
            if firmware.rfrd_region is not None:
                bundle.firmwares.append(firmware)
                firmware = FirmwareUnit()
            firmware.nvgi_regions.append(region)
        elif isinstance(region, RfrdRegion):
            firmware.rfrd_region = region
        else:
            raise TypeError('Unexpected region %r' % region)
    bundle.firmwares.append(firmware)

    for firmware in bundle.firmwares:
        _parse_legacy_pci_image_info(fd, firmware)
    return bundle


def _parse_legacy_pci_image_info(fd, firmware):
    info = firmware.legacy_pci_image
    if info is None:
        return
    reader = ContinuousRegionReader(fd, [info.image] + firmware.nv_pci_expansion_roms)
    reader.seek(info.image.header.PcirOffset)
    # Chasing pointers moves the reader, so the scan has to finish first.
    structures = list(iterate_structures(reader))
    for structure in structures:
        if isinstance(structure, BITStructure):
            _parse_bit(reader, info, structure)
        elif isinstance(structure, DeviceControlBlock):
            for name, table in chase_pointers(structure, reader, DCB_TABLES).items():
                setattr(info, name, table)
            info.device_control_block = structure


def _parse_bit(reader, info, bit):
    for token in bit.tokens:
        try:
            data = token.data(reader)
        except (InvalidFormatError, InvalidInputError) as e:
            logger.warning('Failed to read BIT token 0x%02X at 0x%X: %s', token.Id, token.DataPointer, e)
            continue
        if data.kind == 'String':
            info.bit_string_token = StringToken(reader, data)
        elif data.kind in TOKEN_TABLES:
            for name, table in chase_pointers(data, reader, TOKEN_TABLES[data.kind]).items():
                if table is not None:
                    setattr(info, name, table)
        info.bit_tokens_data.append(data)
    info.bit_table_structure = bit


def vbios_info(bundle):
    """Per firmware unit summary: BIOS version, GOP version and subsystem id."""
    result = []
    for firmware in bundle.firmwares:
        info = {'version': 'N/A',
                'gop_version': None,
                'subsystem_id': None}
        image_info = firmware.legacy_pci_image
        if image_info is not None:
            for token_data in image_info.bit_tokens_data:
                if token_data.kind == 'Bios':
                    info['version'] = bios_version(token_data)
            extended = image_info.image.data_header_extended
            if extended is not None:
                info['gop_version'] = non_zero_version(extended.GopVersion)
                info['subsystem_id'] = non_zero_version(extended.SubsystemId)
        result.append(info)
    return result
