"""BIOS Information Table (BIT) and the tables reachable from its tokens.

Layouts follow https://nvidia.github.io/open-gpu-doc/BIOS-Information-Table/
"""
from functools import partial

from nvrom_dispatch import chase_pointers
from nvrom_io import InvalidFormatError, format_version, read_cstr, read_exact, unpack

BIT_SIGNATURE = b'BIT\0'
BIT_HEADER_SIZE = 12
BIT_TOKEN_SIZE = 6

# id: (name, struct format, fields)
BIT_TOKEN_LAYOUTS = {
    0x32: ('I2C', '<HH', ('I2cScriptsPtr', 'ExtHwMonInitPtr')),
    0x41: ('Dac', '<HB', ('DacDataPtr', 'DacFlags')),
    0x42: ('Bios', '<4sBBHHHIBBBBHHHBBBI',
           ('BiosVersion', 'BiosOemVersion', 'BiosChecksum', 'Int15PostCallbacks',
            'Int15SystemCallbacks', 'FrameCount', 'Reserved', 'MaxHeadsAtPost',
            'MemorySizeReport', 'HScaleFactor', 'VScaleFactor', 'DataRangeTablePtr',
            'RomPacksPtr', 'AppliedRomPacksPtr', 'AppliedRomPackMax', 'AppliedRomPackCount',
            'ModuleMapExternal0', 'CompressionDataTable')),
    0x43: ('Clock', '<7I',
           ('PllInfoTablePtr', 'VbeModePclkTablePtr', 'ClocksTablePtr', 'ClocksProgrammingTablePtr',
            'NafllTablePtr', 'AdcTablePtr', 'FrequencyControllerTablePtr')),
    0x44: ('Dfp', '<HH', ('FpEstablishedPtr', 'FpTablePtr')),
    0x49: ('NvInit', '<17H',
           ('InitScriptTablePtr', 'MacroIndexTablePtr', 'MacroTablePtr', 'ConditionTablePtr',
            'IoConditionTablePtr', 'IoFlagConditionTablePtr', 'InitFunctionTablePtr',
            'VbiosPrivateBootScriptPtr', 'DataArraysTablePtr', 'PcieSettingsScriptPtr',
            'DevinitTablesPtr', 'DevinitTablesSize', 'BootScriptsPtr', 'BootScriptsSize',
            'NvlinkConfigurationDataPtr', 'BootScriptsNonGc6Ptr', 'BootScriptsSizeNonGc6')),
    0x4C: ('Lvds', '<H', ('LvdsInfoTablePtr',)),
    0x4D: ('Memory', '<BHHQII',
           ('MemoryStrapDataCount', 'MemoryStrapTranslationTablePtr', 'MemoryInformationTablePtr',
            'Reserved', 'MemoryPartitionInformationTable', 'MemoryScriptListPtr')),
    0x50: ('Perf', '<40I',
           ('PerformanceTablePtr', 'MemoryClockTablePtr', 'MemoryTweakTablePtr',
            'PowerControlTablePtr', 'ThermalControlTablePtr', 'ThermalDeviceTablePtr',
            'ThermalCoolersTablePtr', 'PerformanceSettingsScriptPtr',
            'ContinuousVirtualBinningTablePtr', 'VenturaTablePtr', 'PowerSensorsTablePtr',
            'PowerPolicyTablePtr', 'PStateClockRangeTablePtr', 'VoltageFrequencyTablePtr',
            'VirtualPStateTablePtr', 'PowerTopologyTablePtr', 'PowerLeakageTablePtr',
            'PerformanceTestSpecificationsTablePtr', 'ThermalChannelTablePtr',
            'ThermalAdjustmentTablePtr', 'ThermalPolicyTablePtr',
            'PStateMemoryClockFrequencyTablePtr', 'FanCoolerTablePtr', 'FanPolicyTablePtr',
            'DidtTablePtr', 'FanTestTablePtr', 'VoltageRailTablePtr', 'VoltageDeviceTablePtr',
            'VoltagePolicyTablePtr', 'LowPowerTablePtr', 'LowPowerPcieTablePtr',
            'LowPowerPciePlatformTablePtr', 'LowPowerGrTablePtr', 'LowPowerMsTablePtr',
            'LowPowerDiTablePtr', 'LowPowerGc6TablePtr', 'LowPowerPsiTablePtr',
            'ThermalMonitorTablePtr', 'OverclockingTablePtr', 'LowPowerNvlinkTablePtr')),
    0x52: ('BridgeFw', '<IBHQIHBH',
           ('FirmwareVersion', 'FirmwareOemVersion', 'FirmwareImageLength', 'BiosModDate',
            'FirmwareFlags', 'EngineeringProductNamePtr', 'EngineeringProductNameSize',
            'InstanceId')),
    0x53: ('String', '<' + 'HB' * 7,
           ('SignOnMessagePtr', 'SignOnMessageMaximumLength', 'VersionStringPtr',
            'VersionStringSize', 'CopyrightStringPtr', 'CopyrightStringSize', 'OemStringPtr',
            'OemStringSize', 'OemVendorNamePtr', 'OemVendorNameSize', 'OemProductNamePtr',
            'OemProductNameSize', 'OemProductRevisionPtr', 'OemProductRevisionSize')),
    0x54: ('Tmds', '<H', ('TmdsInfoTablePtr',)),
    0x55: ('Display', '<HBH', ('DisplayScriptingTablePtr', 'DisplayControlFlags', 'SliTableHeaderPtr')),
    0x56: ('Virtual', '<HHH', ('VirtualStrapFieldTablePtr', 'VirtualStrapFieldRegister', 'TranslationTablePtr')),
    0x64: ('Dp', '<H', ('DpInfoTablePtr',)),
    0x6E: ('Dcb', '<H', ('DcbHeaderPtr',)),
    0x70: ('Falcon', '<I', ('FalconUcodeTablePtr',)),
    0x75: ('Uefi', '<IBQ', ('MinimumUefiDriverVersion', 'UefiCompatibilityLevel', 'UefiFlags')),
    0x78: ('Mxm', '<BBBBHH',
           ('ModuleSpecVersion', 'ModuleFlags', 'ConfigFlags', 'DpDriveStrengthScale',
            'MxmDigitalConnectorTablePtr', 'MxmAuxToCcbTablePtr')),
}

BIT_TOKEN_NOP = 0x4E
BIT_TOKEN_PTRS32 = 0x63

NVLINK_LINE_RATES = ['LineRate5_000_000', 'LineRate1_600_000', 'LineRate2_000_000', 'LineRate2_500_000',
                     'LineRate2_578_125', 'LineRate3_200_000', 'LineRate4_000_000', 'LineRate5_312_500',
                     'Unknown0x08']

NVLINK_CODE_MODES = ['CodeModeNrz', 'CodeModeNrz128B130', 'CodeModeNrzPam4']

NVLINK_REFERENCE_CLOCK_MODES = ['Common', 'Rsvd', 'NonCommonNoSs', 'NonCommonSs']

NVLINK_CLOCK_MODE_BLOCK_CODES = ['Off', 'Ecc96', 'Ecc88', 'Rsvd']


def _name(names, value):
    return names[value] if value < len(names) else value


class BITHeader:
    def __init__(self, fd, ptr):
        fd.seek(ptr)
        self.Id, \
        self.Signature, \
        self.VersionMinor, \
        self.VersionMajor, \
        self.HeaderSize, \
        self.TokenSize, \
        self.TokenEntries, \
        self.HeaderChecksum = unpack('<H4s6B', fd)
        if self.Signature != BIT_SIGNATURE:
            raise InvalidFormatError('Bad BIT signature: %r' % self.Signature)
        if self.HeaderSize < BIT_HEADER_SIZE or self.TokenSize < BIT_TOKEN_SIZE:
            raise InvalidFormatError('Unsupported BIT header size %d or token size %d'
                                     % (self.HeaderSize, self.TokenSize))


class BITToken:
    def __init__(self, fd, ptr):
        fd.seek(ptr)
        self.Id, \
        self.DataVersion, \
        self.DataSize, \
        self.DataPointer = unpack('<BBHH', fd)

    @property
    def name(self):
        if self.Id == BIT_TOKEN_NOP:
            return 'Nop'
        if self.Id == BIT_TOKEN_PTRS32:
            return 'Ptrs32Bit'
        layout = BIT_TOKEN_LAYOUTS.get(self.Id)
        return layout[0] if layout else None

    def data(self, fd):
        return BITTokenData(fd, self)


class BITStructure:
    def __init__(self, fd, ptr):
        self.offset_in_region = ptr
        self.header = BITHeader(fd, ptr)
        self.tokens = []
        for i in range(self.header.TokenEntries):
            self.tokens.append(BITToken(fd, ptr + self.header.HeaderSize + i * self.header.TokenSize))


class BITTokenData:
    """Pointer record a BIT token points at, fields named after BIT_TOKEN_LAYOUTS."""

    def __init__(self, fd, token):
        self.Id = token.Id
        if token.DataPointer == 0 or token.Id == BIT_TOKEN_NOP:
            self.kind = 'Nop'
            return
        self.kind = token.name
        if self.kind is None:
            raise InvalidFormatError('Unexpected BIT token id: 0x%02X' % token.Id)
        fd.seek(token.DataPointer)
        if token.Id == BIT_TOKEN_PTRS32:
            self.Pointers = list(unpack('<%dI' % (token.DataSize // 4), fd))
            return
        _, fmt, fields = BIT_TOKEN_LAYOUTS[token.Id]
        for field, value in zip(fields, unpack(fmt, fd)):
            setattr(self, field, value)


STRING_FIELDS = [('SignOnMessagePtr', 'SignOnMessageMaximumLength', 'sign_on_message'),
                 ('VersionStringPtr', 'VersionStringSize', 'version_string'),
                 ('CopyrightStringPtr', 'CopyrightStringSize', 'copyright_string'),
                 ('OemStringPtr', 'OemStringSize', 'oem_string'),
                 ('OemVendorNamePtr', 'OemVendorNameSize', 'oem_vendor_name'),
                 ('OemProductNamePtr', 'OemProductNameSize', 'oem_product_name'),
                 ('OemProductRevisionPtr', 'OemProductRevisionSize', 'oem_product_revision')]


class StringToken:
    def __init__(self, fd, ptrs):
        catalog = [(ptr_field, name, partial(read_cstr, size=getattr(ptrs, size_field)))
                   for ptr_field, size_field, name in STRING_FIELDS]
        for name, value in chase_pointers(ptrs, fd, catalog).items():
            setattr(self, name, value)


class TableHeader:
    """Version, HeaderSize, then the sizes and counts named by fields."""

    def __init__(self, fd, ptr, fmt, fields):
        fd.seek(ptr)
        for field, value in zip(fields, unpack(fmt, fd)):
            setattr(self, field, value)


def _check(condition, message):
    if not condition:
        raise InvalidFormatError(message)


class PllInfoEntry:
    def __init__(self, fd, ptr):
        fd.seek(ptr)
        self.Id, \
        self.RefMinMhz, \
        self.RefMaxMhz, \
        self.VcoMinMhz, \
        self.VcoMaxMhz, \
        self.UpdateMinMhz, \
        self.UpdateMaxMhz, \
        self.MMin, \
        self.MMax, \
        self.NMin, \
        self.NMax, \
        self.PlMin, \
        self.PlMax = unpack('<B6H6B', fd)


class PllInfo:
    def __init__(self, fd, ptr):
        self.header = TableHeader(fd, ptr, '<4B', ('Version', 'HeaderSize', 'EntrySize', 'EntryCount'))
        _check(self.header.EntrySize == 19, 'PLL info entry size must be 19, got %d' % self.header.EntrySize)
        self.entries = []
        for i in range(self.header.EntryCount):
            self.entries.append(PllInfoEntry(fd, ptr + self.header.HeaderSize + i * self.header.EntrySize))


class MemoryClockTableStrapEntry:
    def __init__(self, fd, ptr, size):
        fd.seek(ptr)
        self.MemTweakIndex, \
        self.Flags0, \
        self.Reserved0, \
        self.Flags4, \
        self.Reserved1, \
        self.Flags5 = unpack('<BB6sBBB', fd)
        self.Unknown = read_exact(fd, size - 11)


class MemoryClockTableEntry:
    def __init__(self, fd, ptr, header):
        fd.seek(ptr)
        min_freq, max_freq, self.Reserved = unpack('<HH4s', fd)
        self.MinFreq = min_freq & 0x3FFF
        self.MaxFreq = max_freq & 0x3FFF
        self.Unknown = read_exact(fd, header.BaseEntrySize - 8)
        self.strap_entries = []
        latest_ptr = ptr + header.BaseEntrySize
        for _ in range(header.StrapEntryCount):
            self.strap_entries.append(MemoryClockTableStrapEntry(fd, latest_ptr, header.StrapEntrySize))
            latest_ptr += header.StrapEntrySize
        self.length = latest_ptr - ptr


class MemoryClockTable:
    def __init__(self, fd, ptr):
        self.header = TableHeader(fd, ptr, '<6B20s',
                                  ('Version', 'HeaderSize', 'BaseEntrySize', 'StrapEntrySize',
                                   'StrapEntryCount', 'EntryCount', 'Unknown'))
        _check(self.header.HeaderSize == 26, 'Memory clock table header size must be 26')
        _check(self.header.BaseEntrySize >= 8, 'Memory clock table base entry is too small')
        _check(self.header.StrapEntrySize >= 11, 'Memory clock table strap entry is too small')
        self.entries = []
        latest_ptr = ptr + self.header.HeaderSize
        for _ in range(self.header.EntryCount):
            self.entries.append(MemoryClockTableEntry(fd, latest_ptr, self.header))
            latest_ptr += self.entries[-1].length


class MemoryTweakTableEntry:
    def __init__(self, fd, ptr, header):
        fd.seek(ptr)
        config = unpack('<6I', fd)
        self.Config = list(config)
        self.Rc = config[0] & 0xFF
        self.Rfc = (config[0] >> 8) & 0x1FF
        self.Ras = (config[0] >> 17) & 0x7F
        self.Rp = (config[0] >> 24) & 0x7F
        self.Cl = config[1] & 0x7F
        self.Wl = (config[1] >> 7) & 0x7F
        self.RdRcd = (config[1] >> 14) & 0x3F
        self.WrRcd = (config[1] >> 20) & 0x3F
        self.Remainder = read_exact(fd, header.BaseEntrySize - 24)
        self.extended_entries = [read_exact(fd, header.ExtendedEntrySize)
                                 for _ in range(header.ExtendedEntryCount)]


class MemoryTweakTable:
    def __init__(self, fd, ptr):
        self.header = TableHeader(fd, ptr, '<6B',
                                  ('Version', 'HeaderSize', 'BaseEntrySize', 'ExtendedEntrySize',
                                   'ExtendedEntryCount', 'EntryCount'))
        _check(self.header.Version == 0x20, 'Unsupported memory tweak table version 0x%X' % self.header.Version)
        _check(self.header.HeaderSize == 6, 'Memory tweak table header size must be 6')
        _check(self.header.BaseEntrySize == 76, 'Memory tweak table base entry size must be 76')
        _check(self.header.ExtendedEntrySize == 12, 'Memory tweak table extended entry size must be 12')
        entry_length = self.header.BaseEntrySize + self.header.ExtendedEntrySize * self.header.ExtendedEntryCount
        self.entries = []
        for i in range(self.header.EntryCount):
            self.entries.append(MemoryTweakTableEntry(fd, ptr + self.header.HeaderSize + i * entry_length,
                                                      self.header))


class VirtualPStateDomainEntry:
    def __init__(self, fd, ptr):
        fd.seek(ptr)
        first, second = unpack('<HH', fd)
        self.Flags1 = [bool(first & 0x8), bool(first & 0x4)]
        self.Frequency1 = first & 0x3FFF
        self.Flags2 = [bool(second & 0x8), bool(second & 0x4)]
        self.Frequency2 = (second << 2) & 0xFFFF


class VirtualPStateTable:
    def __init__(self, fd, ptr):
        self.header = TableHeader(fd, ptr, '<6B',
                                  ('Version', 'HeaderSize', 'BaseEntrySize', 'EntryCount',
                                   'DomainFreqEntrySize', 'DomainFreqEntryCount'))
        _check(self.header.Version == 0x20, 'Unsupported virtual P-state table version 0x%X' % self.header.Version)
        _check(self.header.HeaderSize >= 6, 'Virtual P-state table header is too small')
        _check(self.header.BaseEntrySize == 1, 'Virtual P-state base entry size must be 1')
        _check(self.header.DomainFreqEntrySize == 4, 'Virtual P-state domain entry size must be 4')
        self.PStateIndexes = list(read_exact(fd, self.header.HeaderSize - 6))
        entry_length = 1 + 4 * self.header.DomainFreqEntryCount
        self.entries = []
        for i in range(self.header.EntryCount):
            entry_ptr = ptr + self.header.HeaderSize + i * entry_length
            fd.seek(entry_ptr)
            p_state = read_exact(fd, 1)[0]
            domains = [VirtualPStateDomainEntry(fd, entry_ptr + 1 + j * 4)
                       for j in range(self.header.DomainFreqEntryCount)]
            self.entries.append({'PState': p_state, 'domain_entries': domains})


class PowerPolicyTableEntry:
    def __init__(self, fd, ptr, size):
        fd.seek(ptr)
        self.Unknown0, \
        self.Min, \
        self.Avg, \
        self.Peak, \
        self.Unknown1 = unpack('<HIIII', fd)
        self.Unknown2 = read_exact(fd, size - 18)


class PowerPolicyTable:
    def __init__(self, fd, ptr):
        self.header = TableHeader(fd, ptr, '<4B', ('Version', 'HeaderSize', 'EntrySize', 'EntryCount'))
        _check(self.header.Version == 0x30, 'Unsupported power policy table version 0x%X' % self.header.Version)
        _check(self.header.EntrySize >= 18, 'Power policy table entry is too small')
        self.entries = []
        for i in range(self.header.EntryCount):
            self.entries.append(PowerPolicyTableEntry(fd, ptr + self.header.HeaderSize + i * self.header.EntrySize,
                                                      self.header.EntrySize))


class NvLinkLinkEntry:
    def __init__(self, fd, ptr, size):
        fd.seek(ptr)
        params = read_exact(fd, size)
        self.Link = bool(params[0] & 0x01)
        self.AcMode = bool(params[0] & 0x04)
        self.ReceiverDetectEnable = bool(params[0] & 0x08)
        self.RestorePhyTrainingEnable = bool(params[0] & 0x10)
        self.SlmEnable = bool(params[0] & 0x20)
        self.L2Enable = bool(params[0] & 0x40)
        self.LineRate = _name(NVLINK_LINE_RATES, params[1])
        self.CodeMode = _name(NVLINK_CODE_MODES, params[2])
        self.ReferenceClockMode = _name(NVLINK_REFERENCE_CLOCK_MODES, params[3] & 0x3)
        self.ClockModeBlockCode = _name(NVLINK_CLOCK_MODE_BLOCK_CODES, (params[3] >> 4) & 0x3)
        self.TxtrainOptimizationAlgorithm = params[4]
        self.Txtrain = params[5]
        self.TxtrainMinimumTrainTimeMantissa = params[6] & 0xF
        self.TxtrainMinimumTrainTimeExponent = params[6] >> 4
        self.ExtraParams = params[7:]


class NvLinkConfigData:
    def __init__(self, fd, ptr):
        self.header = TableHeader(fd, ptr, '<6BH',
                                  ('Version', 'HeaderSize', 'BaseEntrySize', 'BaseEntryCount',
                                   'LinkEntrySize', 'LinkEntryCount', 'Reserved'))
        _check(self.header.HeaderSize == 8, 'NVLink config header size must be 8')
        _check(self.header.BaseEntrySize == 1, 'NVLink config base entry size must be 1')
        _check(self.header.LinkEntrySize >= 7, 'NVLink link entry is too small')
        entry_length = 1 + self.header.LinkEntryCount * self.header.LinkEntrySize
        self.entries = []
        for i in range(self.header.BaseEntryCount):
            entry_ptr = ptr + self.header.HeaderSize + i * entry_length
            fd.seek(entry_ptr)
            position_id = read_exact(fd, 1)[0]
            links = [NvLinkLinkEntry(fd, entry_ptr + 1 + j * self.header.LinkEntrySize, self.header.LinkEntrySize)
                     for j in range(self.header.LinkEntryCount)]
            self.entries.append({'PositionId': position_id, 'link_entries': links})


CLOCK_TABLES = [('PllInfoTablePtr', 'pll_info', PllInfo)]

NVINIT_TABLES = [('NvlinkConfigurationDataPtr', 'nvlink_config_data', NvLinkConfigData)]

PERF_TABLES = [('MemoryClockTablePtr', 'memory_clock_table', MemoryClockTable),
               ('MemoryTweakTablePtr', 'memory_tweak_table', MemoryTweakTable),
               ('VirtualPStateTablePtr', 'virtual_p_state_table', VirtualPStateTable),
               ('PowerPolicyTablePtr', 'power_policy_table', PowerPolicyTable)]

TOKEN_TABLES = {'Clock': CLOCK_TABLES,
                'NvInit': NVINIT_TABLES,
                'Perf': PERF_TABLES}


def bios_version(token_data):
    return '%s.%02X' % (format_version(token_data.BiosVersion), token_data.BiosOemVersion)
