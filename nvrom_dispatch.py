from logging import getLogger

from nvrom_io import InvalidFormatError, InvalidInputError

logger = getLogger(__name__)


def chase_pointers(root, fd, catalog):
    """Follow the pointer fields of root listed in catalog.

    catalog is a list of (pointer field, result name, decoder). A zero
    pointer means the table is absent. A decoder that fails on the data it
    points at is logged and its result left as None, the remaining fields
    are still followed.
    """
    results = {}
    for pointer_field, name, decoder in catalog:
        results[name] = None
        ptr = getattr(root, pointer_field)
        if ptr == 0:
            continue
        try:
            fd.seek(ptr)
            results[name] = decoder(fd, ptr)
        except (InvalidFormatError, InvalidInputError) as e:
            logger.warning('Failed to read %s at 0x%X (%s of %s): %s',
                           name, ptr, pointer_field, type(root).__name__, e)
    return results
