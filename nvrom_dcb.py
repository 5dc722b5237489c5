"""Device Control Block and its sub-tables.

Layouts follow https://nvidia.github.io/open-gpu-doc/DCB/DCB-4.x-Specification.html
"""
from nvrom_io import InvalidFormatError, unpack

DCB_SIGNATURE = b'\xcb\xbd\xdc\x4e'
DCB_HEADER_SIZE = 27
DCB_ENTRY_SIZE = 8

DISPLAY_TYPES = {0x0: 'Crt',
                 0x1: 'Tv',
                 0x2: 'Tmds',
                 0x3: 'Lvds',
                 0x5: 'Sdi',
                 0x6: 'DisplayPort',
                 0xE: 'EndOfLine',
                 0xF: 'SkipEntry'}

DFP_DISPLAY_TYPES = ('Tmds', 'Lvds', 'Sdi', 'DisplayPort')

LOCATIONS = {0x0: 'OnChip',
             0x1: 'OnBoard'}

EDID_SOURCES = {0x0: 'Ddc',
                0x1: 'PanelStrapsAndVBiosTables',
                0x2: 'DdcAcpiOrBiosCalls'}

POWER_AND_BACKLIGHT_CONTROLS = {0x0: 'External',
                                0x1: 'Scripts',
                                0x2: 'VBiosCallbacksToSBios'}

EXTERNAL_LINK_TYPES = {0x0: 'UndefinedSingleLink',
                       0x1: 'SiliconImage164SingleLinkTmds',
                       0x2: 'SiliconImage178SingleLinkTmds',
                       0x3: 'DualSiliconImage178DualLinkTmds',
                       0x4: 'Chrontel7009SingleLinkTmds',
                       0x5: 'Chrontel7019DualLinkLvds',
                       0x6: 'NationalSemiconductorDs90C387DualLinkLvds',
                       0x7: 'SiliconImage164SingleLinkTmdsAlternateAddress',
                       0x8: 'Chrontel7301SingleLinkTmds',
                       0x9: 'SiliconImage1162SingleLinkTmdsAlternateAddress',
                       0xB: 'AnalogixAnx9801FourLaneDisplayPort',
                       0xC: 'ParadeTechDp5014LaneDisplayPort',
                       0xD: 'AnalogixAnx9805HdmiAndDisplayPort',
                       0xE: 'AnalogixAnx9805HdmiAndDisplayPortAlternateAddress'}

EXTERNAL_COMMUNICATIONS_PORTS = {0x0: 'Primary',
                                 0x1: 'Secondary'}

MAXIMUM_LINK_RATES = {0x0: 'Rate1620Mbps',
                      0x1: 'Rate2700Mbps',
                      0x2: 'Rate5400Mbps',
                      0x3: 'Rate8100Mbps'}

MAXIMUM_LANE_COUNTS = {0x1: 'SingleLine',
                       0x2: 'TwoLines',
                       0x3: 'TwoLinesDeprecated',
                       0x4: 'FourLines',
                       0xF: 'FourLinesDeprecated'}

SDTV_FORMATS = {0x0: 'NtscM',
                0x1: 'NtscJ',
                0x2: 'PalM',
                0x3: 'PalBdghi',
                0x4: 'PalN',
                0x5: 'PalNC'}

HDTV_FORMATS = {0x0: 'Hdtv576I',
                0x1: 'Hdtv480I',
                0x2: 'Hdtv576P50Hz',
                0x3: 'Hdtv720P50Hz',
                0x4: 'Hdtv720P60Hz',
                0x5: 'Hdtv1080I50Hz',
                0x6: 'Hdtv1080I60Hz',
                0x7: 'Hdtv1080P24Hz'}

GPIO_FUNCTIONS = {7: 'HotPlugA',
                  8: 'HotPlugB',
                  9: 'FanControl',
                  17: 'ThermalEvent',
                  35: 'OverTemp',
                  48: 'GenericInitialized',
                  52: 'ThermalAlert',
                  53: 'ThermalCritical',
                  61: 'FanSpeedSense',
                  76: 'PowerAlert',
                  81: 'HotPlugC',
                  82: 'HotPlugD',
                  94: 'HotPlugE',
                  95: 'HotPlugF',
                  96: 'HotPlugG',
                  122: 'NvddPsi',
                  129: 'NvvddPwm',
                  0xFF: 'SkipEntry'}
GPIO_FUNCTIONS.update({209 + i: 'InstanceId%d' % i for i in range(10)})

GPIO_INPUT_HW_SELECTS = {0: 'None',
                         22: 'ThermalAlert',
                         23: 'PowerAlert'}

GPIO_MISC_IOS = {0x0: 'Unused',
                 0x1: 'InvOut',
                 0x3: 'InvOutTristate',
                 0x4: 'Out',
                 0x6: 'InStereoTristate',
                 0x9: 'InvOutTristateLo',
                 0xB: 'InvIn',
                 0xC: 'OutTristate',
                 0xE: 'IoIn'}

I2C_DEVICE_TYPES = {0x01: 'Adm1032',
                    0x02: 'Max6649',
                    0x03: 'Lm99',
                    0x06: 'Max1617',
                    0x07: 'Lm64',
                    0x0A: 'Adt7473',
                    0x0B: 'Lm89',
                    0x0C: 'Tmp411',
                    0x0D: 'Adt7461',
                    0x30: 'Ads1112',
                    0xC0: 'Pic16F690',
                    0x40: 'Vt1103',
                    0x41: 'Px3540',
                    0x42: 'Vt1165',
                    0x43: 'ChiL8203_8212_8213_8214',
                    0x44: 'Ncp4208',
                    0xFF: 'SkipEntry'}

CONNECTOR_TABLE_PLATFORMS = {0x00: 'NormalAddInCard',
                             0x01: 'TwoBackPlateAddInCards',
                             0x02: 'AddInCardConfigurable',
                             0x07: 'DesktopWithIntegratedFullDp',
                             0x08: 'MobileAddInCard',
                             0x09: 'MxmModule',
                             0x10: 'MobileSystemWithAllDisplaysOnTheBackOfTheSystem',
                             0x11: 'MobileSystemWithDisplayConnectorsOnTheBackAndLeftOfTheSystem',
                             0x18: 'MobileSystemWithExtraConnectorsOnTheDock',
                             0x20: 'CrushNormalBackPlateDesign'}

CONNECTOR_TYPES = {0x00: 'Vga15Pin',
                   0x01: 'DviA',
                   0x02: 'PodVga15Pin',
                   0x10: 'TvCompositeOut',
                   0x11: 'TvSVideoOut',
                   0x12: 'TvSVideoBreakoutComposite',
                   0x13: 'TvHdtvComponentYPrPb',
                   0x14: 'TvScart',
                   0x16: 'TvCompositeScartOverBlue',
                   0x17: 'TvHdtvEiaj4120',
                   0x18: 'PodHdtvYPrPb',
                   0x19: 'PodSVideo',
                   0x1A: 'PodComposite',
                   0x20: 'DviITvSVideo',
                   0x21: 'DviITvComposite',
                   0x22: 'DviITvSVideoBreakoutComposite',
                   0x30: 'DviI',
                   0x31: 'DviD',
                   0x32: 'AppleDisplayConnector',
                   0x38: 'LfhDviI1',
                   0x39: 'LfhDviI2',
                   0x3C: 'Bnc',
                   0x40: 'LvdsSpwgAttached',
                   0x41: 'LvdsOemAttached',
                   0x42: 'LvdsSpwgDetached',
                   0x43: 'LvdsOemDetached',
                   0x45: 'TmdsOemAttached',
                   0x46: 'DisplayPortExternalConnector',
                   0x47: 'DisplayPortInternalConnector',
                   0x48: 'DisplayPortMiniExternalConnector',
                   0x50: 'Vga15PinIfNotDocked',
                   0x51: 'Vga15PinIfDocked',
                   0x52: 'DviIIfNotDocked',
                   0x53: 'DviIIfDocked',
                   0x54: 'DviDIfNotDocked',
                   0x55: 'DviDIfDocked',
                   0x56: 'DisplayPortExternalIfNotDocked',
                   0x57: 'DisplayPortExternalIfDocked',
                   0x58: 'DisplayPortMiniExternalIfNotDocked',
                   0x59: 'DisplayPortMiniExternalIfDocked',
                   0x60: 'ThreePinDinStereoConnector',
                   0x61: 'HdmiAConnector',
                   0x62: 'AudioSpdifConnector',
                   0x63: 'HdmiCMiniConnector',
                   0x64: 'LfhDp1',
                   0x65: 'LfhDp2',
                   0x70: 'VirtualConnectorForWifiDisplay',
                   0xFF: 'SkipEntry'}


def bits(value, shift, width):
    return (value >> shift) & ((1 << width) - 1)


def flag(value, shift):
    return bool(bits(value, shift, 1))


class DisplayPathInformation:
    def __init__(self, value):
        self.DisplayType = DISPLAY_TYPES.get(bits(value, 0, 4), bits(value, 0, 4))
        self.EdidPort = bits(value, 4, 4)
        self.Head = bits(value, 8, 4)
        self.Connector = bits(value, 12, 4)
        self.Bus = bits(value, 16, 4)
        self.Location = LOCATIONS.get(bits(value, 20, 2), bits(value, 20, 2))
        self.IsBootDeviceRemoved = flag(value, 22)
        self.IsBlindBootDeviceRemoved = flag(value, 23)
        self.OutputDevices = bits(value, 24, 4)
        self.IsVirtualDevice = flag(value, 28)


class DfpDeviceSpecificInformation:
    def __init__(self, value):
        self.EdidSource = EDID_SOURCES.get(bits(value, 0, 2), bits(value, 0, 2))
        self.PowerAndBacklightControl = POWER_AND_BACKLIGHT_CONTROLS.get(bits(value, 2, 2), bits(value, 2, 2))
        self.SubLinkBDpBPadLink1 = flag(value, 4)
        self.SubLinkADpAPadLink0 = flag(value, 5)
        self.ExternalLinkType = EXTERNAL_LINK_TYPES.get(bits(value, 8, 8), bits(value, 8, 8))
        self.HdmiEnable = flag(value, 17)
        self.ExternalCommunicationPort = EXTERNAL_COMMUNICATIONS_PORTS[bits(value, 20, 1)]
        self.MaximumLinkRate = MAXIMUM_LINK_RATES.get(bits(value, 21, 3), bits(value, 21, 3))
        self.MaximumLaneCount = MAXIMUM_LANE_COUNTS.get(bits(value, 24, 4), bits(value, 24, 4))


class TvDeviceSpecificInformation:
    def __init__(self, value):
        self.SdtvFormat = SDTV_FORMATS.get(bits(value, 0, 3), bits(value, 0, 3))
        self.ExternalCommunicationPort = EXTERNAL_COMMUNICATIONS_PORTS[bits(value, 4, 1)]
        self.ConnectorCount = bits(value, 5, 2) + 1
        self.HdtvFormat = HDTV_FORMATS.get(bits(value, 7, 4), bits(value, 7, 4))
        self.Dacs = bits(value, 16, 8)
        self.EncoderIdentifier = bits(value, 24, 8)


class DeviceEntry:
    def __init__(self, fd, ptr):
        fd.seek(ptr)
        display_path, device_specific = unpack('<II', fd)
        self.display_path_information = DisplayPathInformation(display_path)
        display_type = self.display_path_information.DisplayType
        if display_type in DFP_DISPLAY_TYPES:
            self.device_specific_information = DfpDeviceSpecificInformation(device_specific)
        elif display_type == 'Tv':
            self.device_specific_information = TvDeviceSpecificInformation(device_specific)
        else:
            self.device_specific_information = device_specific


class DeviceControlBlock:
    def __init__(self, fd, ptr):
        self.offset_in_region = ptr
        fd.seek(ptr)
        self.Version, \
        self.HeaderSize, \
        self.EntryCount, \
        self.EntrySize, \
        self.CommunicationsControlBlockPointer, \
        self.Signature, \
        self.GpioAssignmentTablePointer, \
        self.InputDevicesTablePointer, \
        self.PersonalCinemaTablePointer, \
        self.SpreadSpectrumTablePointer, \
        self.I2cDevicesTablePointer, \
        self.ConnectorTablePointer, \
        self.Flags, \
        self.HdtvTranslationTablePointer, \
        self.SwitchedOutputsTablePointer = unpack('<4BH4s6HBHH', fd)
        if self.Signature != DCB_SIGNATURE:
            raise InvalidFormatError('Bad DCB signature: %r' % self.Signature)
        if self.HeaderSize < DCB_HEADER_SIZE or self.EntrySize < DCB_ENTRY_SIZE:
            raise InvalidFormatError('Unsupported DCB header size %d or entry size %d'
                                     % (self.HeaderSize, self.EntrySize))
        self.entries = []
        for i in range(self.EntryCount):
            self.entries.append(DeviceEntry(fd, ptr + self.HeaderSize + i * self.EntrySize))


class GpioAssignmentTableEntry:
    def __init__(self, fd, ptr):
        fd.seek(ptr)
        pin, self.FunctionRaw, self.Output, gpio_input, misc = unpack('<5B', fd)
        self.PinNumber = bits(pin, 0, 6)
        self.IoType = flag(pin, 6)
        self.InitState = flag(pin, 7)
        self.Function = GPIO_FUNCTIONS.get(self.FunctionRaw)
        self.InputHwSelect = GPIO_INPUT_HW_SELECTS.get(bits(gpio_input, 0, 5), bits(gpio_input, 0, 5))
        self.InputGSync = flag(gpio_input, 5)
        self.InputOpenDrain = flag(gpio_input, 6)
        self.InputPwm = flag(gpio_input, 7)
        self.MiscLock = bits(misc, 0, 4)
        self.MiscIo = GPIO_MISC_IOS.get(bits(misc, 4, 4), bits(misc, 4, 4))


class GpioAssignmentTable:
    def __init__(self, fd, ptr):
        fd.seek(ptr)
        self.Version, \
        self.HeaderSize, \
        self.EntryCount, \
        self.EntrySize, \
        self.ExtGpioMaster = unpack('<4BH', fd)
        if self.HeaderSize < 6 or self.EntrySize < 5:
            raise InvalidFormatError('Unsupported GPIO assignment table header size %d or entry size %d'
                                     % (self.HeaderSize, self.EntrySize))
        self.entries = []
        for i in range(self.EntryCount):
            self.entries.append(GpioAssignmentTableEntry(fd, ptr + self.HeaderSize + i * self.EntrySize))


class I2cDevicesTableEntry:
    def __init__(self, fd, ptr):
        fd.seek(ptr)
        value = unpack('<I', fd)[0]
        self.DeviceType = I2C_DEVICE_TYPES.get(bits(value, 0, 8), bits(value, 0, 8))
        self.I2cAddress = bits(value, 8, 8)
        self.ExternalCommunicationsPort = bits(value, 20, 1)
        self.WriteAccessPrivilegeLevel = bits(value, 21, 3)
        self.ReadAccessPrivilegeLevel = bits(value, 24, 3)


class I2cDevicesTable:
    def __init__(self, fd, ptr):
        fd.seek(ptr)
        self.Version, \
        self.HeaderSize, \
        self.EntryCount, \
        self.EntrySize, \
        self.Flags = unpack('<5B', fd)
        if self.HeaderSize < 5 or self.EntrySize != 4:
            raise InvalidFormatError('Unsupported I2C devices table header size %d or entry size %d'
                                     % (self.HeaderSize, self.EntrySize))
        self.DisableDeviceProbing = flag(self.Flags, 7)
        self.entries = []
        for i in range(self.EntryCount):
            self.entries.append(I2cDevicesTableEntry(fd, ptr + self.HeaderSize + i * self.EntrySize))


class ConnectorTableEntry:
    def __init__(self, fd, ptr):
        fd.seek(ptr)
        value = unpack('<I', fd)[0]
        self.ConnectorType = CONNECTOR_TYPES.get(bits(value, 0, 8), bits(value, 0, 8))
        self.Location = bits(value, 8, 4)
        self.HotplugAInterrupt = flag(value, 12)
        self.HotplugBInterrupt = flag(value, 13)
        self.DpA = flag(value, 14)
        self.DpB = flag(value, 15)
        self.HotplugCInterrupt = flag(value, 16)
        self.HotplugDInterrupt = flag(value, 17)
        self.DpC = flag(value, 18)
        self.DpD = flag(value, 19)
        self.DiA = flag(value, 20)
        self.DiB = flag(value, 21)
        self.DiC = flag(value, 22)
        self.DiD = flag(value, 23)
        self.HotplugEInterrupt = flag(value, 24)
        self.HotplugFInterrupt = flag(value, 25)
        self.HotplugGInterrupt = flag(value, 26)
        self.SelfRefreshA = flag(value, 27)
        self.LcdInterruptGpioPin = bits(value, 28, 3)


class ConnectorTable:
    def __init__(self, fd, ptr):
        fd.seek(ptr)
        self.Version, \
        self.HeaderSize, \
        self.EntryCount, \
        self.EntrySize, \
        platform = unpack('<5B', fd)
        if self.HeaderSize < 5 or self.EntrySize != 4:
            raise InvalidFormatError('Unsupported connector table header size %d or entry size %d'
                                     % (self.HeaderSize, self.EntrySize))
        if platform not in CONNECTOR_TABLE_PLATFORMS:
            raise InvalidFormatError('Unknown connector table platform 0x%02X' % platform)
        self.Platform = CONNECTOR_TABLE_PLATFORMS[platform]
        self.entries = []
        for i in range(self.EntryCount):
            self.entries.append(ConnectorTableEntry(fd, ptr + self.HeaderSize + i * self.EntrySize))


class CommunicationsControlBlock:
    def __init__(self, fd, ptr):
        fd.seek(ptr)
        self.Version, \
        self.HeaderSize, \
        self.EntryCount, \
        self.EntrySize = unpack('<4B', fd)
        if self.HeaderSize < 4 or self.EntrySize < 4:
            raise InvalidFormatError('Unsupported CCB header size %d or entry size %d'
                                     % (self.HeaderSize, self.EntrySize))
        self.entries = []
        for i in range(self.EntryCount):
            fd.seek(ptr + self.HeaderSize + i * self.EntrySize)
            self.entries.append(unpack('<I', fd)[0])


DCB_TABLES = [('GpioAssignmentTablePointer', 'gpio_assignment_table', GpioAssignmentTable),
              ('I2cDevicesTablePointer', 'i2c_devices_table', I2cDevicesTable),
              ('ConnectorTablePointer', 'connector_table', ConnectorTable),
              ('CommunicationsControlBlockPointer', 'communications_control_block', CommunicationsControlBlock)]
