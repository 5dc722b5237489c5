#!/usr/bin/env python3
import argparse
import json
import logging
import sys

from hexdump import hexdump

from nvrom_bundle import parse_bundle, vbios_info
from nvrom_io import as_dict


def bundle_regions(bundle):
    if bundle.nbsi_pci_expansion_rom is not None:
        yield bundle.nbsi_pci_expansion_rom
    for firmware in bundle.firmwares:
        yield from firmware.nvgi_regions
        if firmware.legacy_pci_image is not None:
            yield firmware.legacy_pci_image.image
        if firmware.efi_pci_image is not None:
            yield firmware.efi_pci_image
        yield from firmware.nv_pci_expansion_roms
        if firmware.rfrd_region is not None:
            yield firmware.rfrd_region


def print_summary(bundle):
    for index, info in enumerate(vbios_info(bundle)):
        print('Firmware: %d' % index)
        print('Version: %s' % info['version'])
        if info['gop_version']:
            print('GOP version: %s' % info['gop_version'])
        if info['subsystem_id']:
            print('Subsystem ID: %s' % info['subsystem_id'])
        print()


def print_tree(value, indent=0):
    pad = '  ' * indent
    if isinstance(value, dict):
        for key, item in value.items():
            if isinstance(item, (dict, list)) and item:
                print('%s%s:' % (pad, key))
                print_tree(item, indent + 1)
            else:
                print('%s%s: %s' % (pad, key, item))
    elif isinstance(value, list):
        for index, item in enumerate(value):
            if isinstance(item, (dict, list)):
                print('%s- [%d]' % (pad, index))
                print_tree(item, indent + 1)
            else:
                print('%s- %s' % (pad, item))
    else:
        print('%s%s' % (pad, value))


def main(argv=None):
    parser = argparse.ArgumentParser(description='Parse NVIDIA VBIOS ROM images')
    parser.add_argument("rom", type=str,
                        help="path to rom file")
    parser.add_argument("--full", help="print every decoded table", action="store_true")
    parser.add_argument("--json", help="print JSON instead of text", action="store_true")
    parser.add_argument("--hexdump", help="print hex dump of region headers", action="store_true")
    parser.add_argument("--verbose", help="log scanning details", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format='* %(levelname)s %(name)s: %(message)s')

    try:
        with open(args.rom, 'rb') as rom:
            bundle = parse_bundle(rom)
            if args.full:
                result = as_dict(bundle)
            else:
                result = vbios_info(bundle)
            if args.json:
                print(json.dumps(result, indent=2))
            elif args.full:
                print_tree(result)
            else:
                print_summary(bundle)
            if args.hexdump:
                for region in bundle_regions(bundle):
                    print('%s at 0x%X:' % (type(region).__name__, region.offset_in_firmware))
                    rom.seek(region.offset_in_firmware)
                    hexdump(rom.read(64))
                    print()
    except OSError as e:
        print('Failed to read %s: %s' % (args.rom, e), file=sys.stderr)
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
