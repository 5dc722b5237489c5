"""Builders for synthetic ROM images."""
import struct

BLOCK = 512
PCIR_OFFSET = 0x1C
NPDE_OFFSET = 0x40


def place(image, offset, chunk):
    image[offset:offset + len(chunk)] = chunk


def pci_data_structure(signature=b'PCIR', image_length=1, code_type=0x00, indicator=0x80):
    return struct.pack('<4sHHHHB3sHHBBHHH', signature, 0x10DE, 0x2489, 0, 24, 3, b'\0\0\x03',
                       image_length, 1, code_type, indicator, 0, 0, 0)


def npde(image_length=1, gop_version=b'\0\0\0\0', subsystem_id=b'\0\0\0\0'):
    return struct.pack('<4sHHHBB', b'NPDE', 0x101, 0x18, image_length, 0x80, 0) + gop_version + subsystem_id


def _image(header, blocks, data_structure, extended, structures):
    image = bytearray(blocks * BLOCK)
    place(image, 0, header)
    place(image, PCIR_OFFSET, data_structure)
    if extended is not None:
        place(image, NPDE_OFFSET, extended)
    for offset, chunk in structures:
        place(image, offset, chunk)
    return bytes(image)


def legacy_image(blocks=1, structures=(), extended=None, indicator=0x00):
    header = struct.pack('<2sB3s18sH', b'\x55\xAA', blocks, b'\0\0\0', b'\0' * 18, PCIR_OFFSET)
    return _image(header, blocks, pci_data_structure(image_length=blocks, indicator=indicator),
                  extended, structures)


def efi_image(blocks=1):
    header = struct.pack('<2sH4sHHH8sHH', b'\x55\xAA', blocks, b'\xF1\x0E\0\0', 0x0B, 0x8664, 0,
                         b'\0' * 8, 0x30, PCIR_OFFSET)
    return _image(header, blocks, pci_data_structure(image_length=blocks, code_type=0x03, indicator=0x00),
                  None, ())


def nv_image(blocks=1, structures=()):
    header = struct.pack('<2s22sH', b'VN', b'\0' * 22, PCIR_OFFSET)
    return _image(header, blocks, pci_data_structure(b'NPDS', blocks, 0xE0), None, structures)


def nbsi_image(blocks=1, directory_offset=0x60):
    header = struct.pack('<2s20sHHH', b'VN', b'\0' * 20, directory_offset, PCIR_OFFSET, 0)
    payload = b'\xAB' * 8
    directory = struct.pack('<4sIBBH', b'ISBN', 0, 1, 0, struct.unpack('<H', b'VB')[0]) + \
        struct.pack('<QHIBB', 0x1122334455667788, struct.unpack('<H', b'VB')[0], 16 + len(payload), 0, 0xFF) + \
        payload
    return _image(header, blocks, pci_data_structure(b'NPDS', blocks, 0x70), None,
                  [(directory_offset, directory)])


def rfrd_block(pci_rom_offset=0):
    block = bytearray(BLOCK)
    place(block, 0, struct.pack('<4sHHI', b'RFRD', 0, 1, pci_rom_offset))
    return bytes(block)


def nvgi_block(size=BLOCK - 12):
    block = bytearray(12 + size)
    place(block, 0, struct.pack('<4sHHI', b'NVGI', 0, 1, size))
    padding = -len(block) % BLOCK
    return bytes(block) + b'\0' * padding


def bit(tokens, header_size=12, token_size=6):
    data = bytearray(struct.pack('<H4s6B', 0xB8FF, b'BIT\0', 0, 1, header_size, token_size, len(tokens), 0))
    data += b'\0' * (header_size - len(data))
    for token in tokens:
        entry = struct.pack('<BBHH', *token)
        data += entry + b'\0' * (token_size - len(entry))
    return bytes(data)


def bios_token_data(version=b'\x00\x41\x04\x94', oem_version=0x02):
    return struct.pack('<4sBBHHHIBBBBHHHBBBI', version, oem_version, 0, 0, 0, 0, 0, 1, 0, 0, 0,
                       0, 0, 0, 0, 0, 0, 0)


def string_token_data(strings):
    """strings is a list of seven (pointer, size) pairs."""
    values = []
    for ptr, size in strings:
        values += [ptr, size]
    return struct.pack('<' + 'HB' * 7, *values)


def perf_token_data(**pointers):
    fields = ['PerformanceTablePtr', 'MemoryClockTablePtr', 'MemoryTweakTablePtr', 'PowerControlTablePtr',
              'ThermalControlTablePtr', 'ThermalDeviceTablePtr', 'ThermalCoolersTablePtr',
              'PerformanceSettingsScriptPtr', 'ContinuousVirtualBinningTablePtr', 'VenturaTablePtr',
              'PowerSensorsTablePtr', 'PowerPolicyTablePtr', 'PStateClockRangeTablePtr',
              'VoltageFrequencyTablePtr', 'VirtualPStateTablePtr']
    values = [pointers.get(field, 0) for field in fields] + [0] * (40 - len(fields))
    return struct.pack('<40I', *values)


def power_policy_table(entries):
    data = struct.pack('<4B', 0x30, 4, 67, len(entries))
    for minimum, average, peak in entries:
        data += struct.pack('<HIIII', 0, minimum, average, peak, 0) + b'\0' * 49
    return data


def dcb(entries=(), gpio_ptr=0, i2c_ptr=0, connector_ptr=0, ccb_ptr=0):
    data = struct.pack('<4BH4s6HBHH', 0x40, 27, len(entries), 8, ccb_ptr, b'\xcb\xbd\xdc\x4e',
                       gpio_ptr, 0, 0, 0, i2c_ptr, connector_ptr, 0, 0, 0)
    for display_path, device_specific in entries:
        data += struct.pack('<II', display_path, device_specific)
    return data


def gpio_assignment_table(entries):
    data = struct.pack('<4BH', 0x41, 6, len(entries), 5, 0)
    for entry in entries:
        data += bytes(entry)
    return data


def i2c_devices_table(entries, entry_size=4):
    data = struct.pack('<5B', 0x40, 5, len(entries), entry_size, 0)
    for entry in entries:
        data += struct.pack('<I', entry) + b'\0' * (entry_size - 4)
    return data


def connector_table(entries, platform=0x00):
    data = struct.pack('<5B', 0x40, 5, len(entries), 4, platform)
    for entry in entries:
        data += struct.pack('<I', entry)
    return data


class Region:
    def __init__(self, offset_in_firmware, region_size):
        self.offset_in_firmware = offset_in_firmware
        self.region_size = region_size
