import io

from nvrom_regions import EfiPciExpansionRom, LegacyPciExpansionRom, NbsiPciExpansionRom, \
    NvgiRegion, NvidiaPciExpansionRom, RfrdRegion, iterate_regions
from romdata import BLOCK, efi_image, legacy_image, nbsi_image, npde, nv_image, nvgi_block, rfrd_block


def scan(data):
    return list(iterate_regions(io.BytesIO(data)))


def test_legacy_image_and_trailer():
    regions = scan(legacy_image() + rfrd_block(pci_rom_offset=0x1000))
    assert [type(r) for r in regions] == [LegacyPciExpansionRom, RfrdRegion]
    assert regions[0].offset_in_firmware == 0
    assert regions[0].region_size == BLOCK
    assert regions[1].offset_in_firmware == BLOCK
    assert regions[1].region_size == 16
    assert regions[1].PciRomOffset == 0x1000


def test_scan_is_repeatable():
    data = b'\xff' * BLOCK + legacy_image(blocks=2) + efi_image() + nv_image() + rfrd_block()
    first = [(type(r), r.offset_in_firmware, r.region_size) for r in scan(data)]
    second = [(type(r), r.offset_in_firmware, r.region_size) for r in scan(data)]
    assert first == second
    assert first == [(LegacyPciExpansionRom, BLOCK, 2 * BLOCK),
                     (EfiPciExpansionRom, 3 * BLOCK, BLOCK),
                     (NvidiaPciExpansionRom, 4 * BLOCK, BLOCK),
                     (RfrdRegion, 5 * BLOCK, 16)]


def test_efi_image_is_not_taken_for_legacy():
    regions = scan(efi_image())
    assert len(regions) == 1
    assert isinstance(regions[0], EfiPciExpansionRom)
    assert regions[0].header.EfiMachineType == 0x8664


def test_vendor_images():
    regions = scan(nbsi_image() + nv_image())
    assert [type(r) for r in regions] == [NbsiPciExpansionRom, NvidiaPciExpansionRom]
    directory = regions[0].nbsi_directory
    assert directory.GlobalsCount == 1
    assert directory.global_type_names() == ['VBios']
    assert directory.objects[0].data_size == 8


def test_nvgi_payload_is_skipped():
    regions = scan(nvgi_block(size=600) + legacy_image())
    assert [type(r) for r in regions] == [NvgiRegion, LegacyPciExpansionRom]
    assert regions[0].region_size == 600
    assert regions[1].offset_in_firmware == 2 * BLOCK


def test_truncated_image_is_skipped():
    assert scan(legacy_image(blocks=2)[:BLOCK]) == []


def test_short_tail_ends_scan():
    regions = scan(legacy_image() + b'RFRD' + b'\0' * 100)
    assert [type(r) for r in regions] == [LegacyPciExpansionRom]


def test_extended_data_header():
    image = legacy_image(extended=npde(gop_version=b'\x00\x05\x00\x0A', subsystem_id=b'\x01\x00\xde\x10'))
    region = scan(image)[0]
    assert region.data_header.VendorId == 0x10DE
    assert region.data_header_extended.GopVersion == b'\x00\x05\x00\x0A'
    assert region.data_header_extended.SubsystemId == b'\x01\x00\xde\x10'


def test_missing_extended_data_header():
    assert scan(legacy_image())[0].data_header_extended is None
