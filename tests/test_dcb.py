import io

import pytest

from nvrom_dcb import DCB_TABLES, ConnectorTable, DeviceControlBlock, GpioAssignmentTable, I2cDevicesTable
from nvrom_dispatch import chase_pointers
from nvrom_io import InvalidFormatError
from romdata import connector_table, dcb, gpio_assignment_table, i2c_devices_table

DISPLAY_PORT = 0x6 | (1 << 8) | (2 << 12) | (3 << 16)
DISPLAY_PORT_SPECIFIC = (3 << 21) | (4 << 24) | (1 << 17)
CRT = 0x0 | (0 << 8)


def source(*chunks):
    data = bytearray(0x200)
    for offset, chunk in chunks:
        data[offset:offset + len(chunk)] = chunk
    return io.BytesIO(bytes(data))


def test_device_entries():
    fd = source((0x20, dcb([(DISPLAY_PORT, DISPLAY_PORT_SPECIFIC), (CRT, 0xABCD)])))
    block = DeviceControlBlock(fd, 0x20)
    assert block.Version == 0x40
    assert len(block.entries) == 2
    path = block.entries[0].display_path_information
    assert path.DisplayType == 'DisplayPort'
    assert (path.Head, path.Connector, path.Bus) == (1, 2, 3)
    assert path.Location == 'OnChip'
    specific = block.entries[0].device_specific_information
    assert specific.MaximumLinkRate == 'Rate8100Mbps'
    assert specific.MaximumLaneCount == 'FourLines'
    assert specific.HdmiEnable
    assert block.entries[1].display_path_information.DisplayType == 'Crt'
    assert block.entries[1].device_specific_information == 0xABCD


def test_bad_signature():
    data = bytearray(dcb())
    data[6] = 0
    fd = source((0x20, bytes(data)))
    with pytest.raises(InvalidFormatError):
        DeviceControlBlock(fd, 0x20)


def test_gpio_assignment_table():
    fd = source((0x80, gpio_assignment_table([(0x47, 9, 0, 0x20 | 22, 0x40), (0x01, 200, 0, 0, 0)])))
    table = GpioAssignmentTable(fd, 0x80)
    first, second = table.entries
    assert (first.PinNumber, first.IoType, first.InitState) == (7, True, False)
    assert first.Function == 'FanControl'
    assert first.InputHwSelect == 'ThermalAlert'
    assert first.InputGSync
    assert first.MiscIo == 'Out'
    assert second.Function is None
    assert second.FunctionRaw == 200


def test_connector_table():
    fd = source((0x80, connector_table([0x31 | (1 << 12) | (1 << 14), 0x61 | (2 << 8)])))
    table = ConnectorTable(fd, 0x80)
    assert table.Platform == 'NormalAddInCard'
    first, second = table.entries
    assert first.ConnectorType == 'DviD'
    assert first.HotplugAInterrupt
    assert first.DpA
    assert not first.DpB
    assert second.ConnectorType == 'HdmiAConnector'
    assert second.Location == 2


def test_connector_table_unknown_platform():
    fd = source((0x80, connector_table([], platform=0x55)))
    with pytest.raises(InvalidFormatError):
        ConnectorTable(fd, 0x80)


def test_i2c_devices_table():
    fd = source((0x80, i2c_devices_table([0x0C | (0x98 << 8) | (1 << 20)])))
    entry = I2cDevicesTable(fd, 0x80).entries[0]
    assert entry.DeviceType == 'Tmp411'
    assert entry.I2cAddress == 0x98
    assert entry.ExternalCommunicationsPort == 1


def test_dcb_tables():
    fd = source((0x20, dcb(gpio_ptr=0x80, i2c_ptr=0xC0, connector_ptr=0xA0)),
                (0x80, gpio_assignment_table([(0x47, 9, 0, 0, 0)])),
                (0xA0, connector_table([0x31])),
                (0xC0, i2c_devices_table([0x0C], entry_size=5)))
    block = DeviceControlBlock(fd, 0x20)
    tables = chase_pointers(block, fd, DCB_TABLES)
    assert tables['gpio_assignment_table'].entries[0].Function == 'FanControl'
    assert tables['connector_table'].entries[0].ConnectorType == 'DviD'
    assert tables['i2c_devices_table'] is None
    assert tables['communications_control_block'] is None
