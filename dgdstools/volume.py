import logging
import os
import struct

from dgdstools.errors import FormatError

logger = logging.getLogger(__name__)

FILENAME_MAX = 12
NAME_FIELD_SIZE = FILENAME_MAX + 1
TOMBSTONE = 0xFFFFFFFF


def dgds_hash(filename, salt):
    """Filename hash stored in the index.

    A 16-bit sum and xor of the uppercased characters are multiplied together,
    then added to the four characters the salt bytes point at.
    """
    name = filename.upper().encode("latin-1")

    isum = 0
    ixor = 0
    for c in name:
        isum = (isum + c) & 0xffff
        ixor ^= c

    isum = (isum * ixor) & 0xffff

    result = 0
    for idx in salt[:4]:
        result <<= 8

        if len(name) > idx:
            result |= name[idx]

    return (result + isum) & 0xffffffff


def decode_name(raw):
    return raw.split(b"\0", 1)[0].decode("latin-1").strip()


def find_file(directory, name):
    path = os.path.join(directory, name)

    if os.path.exists(path):
        return path

    # Volume names are stored in uppercase, the files may not be
    if os.path.isdir(directory):
        for filename in os.listdir(directory):
            if filename.lower() == name.lower():
                return os.path.join(directory, filename)

    return None


class ArchiveEntry:
    def __init__(self, name, volume, volume_path, offset, size, stored_hash):
        self.name = name
        self.volume = volume
        self.volume_path = volume_path
        self.offset = offset
        self.size = size
        self.stored_hash = stored_hash

    @property
    def data_offset(self):
        return self.offset + NAME_FIELD_SIZE + 4

    def read(self):
        with open(self.volume_path, "rb") as infile:
            infile.seek(self.data_offset)
            data = infile.read(self.size)

        if len(data) != self.size:
            raise FormatError("%s: volume record truncated (%d of %d bytes)" % (self.name, len(data), self.size))

        return data

    def __repr__(self):
        return "<ArchiveEntry %s vol[%d] offset[%08x] size[%08x]>" % (self.name, self.volume, self.offset, self.size)


class ArchiveIndex:
    def __init__(self, index_path):
        self.index_path = index_path
        self.directory = os.path.dirname(os.path.abspath(index_path))
        self.salt, self.volumes = self.parse_index(index_path)

    def parse_index(self, filename):
        volumes = []

        with open(filename, "rb") as infile:
            header = infile.read(6)
            if len(header) != 6:
                raise FormatError("%s: truncated index header" % filename)

            salt = header[:4]
            volume_count = struct.unpack("<H", header[4:6])[0]

            for _ in range(volume_count):
                raw = infile.read(NAME_FIELD_SIZE + 2)
                if len(raw) != NAME_FIELD_SIZE + 2:
                    raise FormatError("%s: truncated volume table" % filename)

                name = decode_name(raw[:NAME_FIELD_SIZE])
                file_count = struct.unpack("<H", raw[NAME_FIELD_SIZE:])[0]

                table = infile.read(file_count * 8)
                if len(table) != file_count * 8:
                    raise FormatError("%s: truncated file table for %s" % (filename, name))

                volumes.append({
                    'name': name,
                    'path': find_file(self.directory, name),
                    'files': list(struct.iter_unpack("<II", table)),
                })

        logger.debug("(%u,%u,%u,%u) %u volumes", salt[0], salt[1], salt[2], salt[3], len(volumes))

        return salt, volumes

    def hash(self, filename):
        return dgds_hash(filename, self.salt)

    def read_record(self, infile, offset):
        infile.seek(offset)
        raw = infile.read(NAME_FIELD_SIZE + 4)

        if len(raw) != NAME_FIELD_SIZE + 4:
            raise FormatError("volume record at %08x truncated" % offset)

        name = decode_name(raw[:NAME_FIELD_SIZE])
        size = struct.unpack("<I", raw[NAME_FIELD_SIZE:])[0]

        return name, size

    def iter_records(self, volume_ids=None, wanted_hash=None):
        for volume_id, volume in enumerate(self.volumes):
            if volume_ids is not None and volume_id not in volume_ids:
                continue

            if volume['path'] is None:
                logger.warning("volume %s not found next to %s", volume['name'], self.index_path)
                continue

            with open(volume['path'], "rb") as infile:
                for stored_hash, offset in volume['files']:
                    if wanted_hash is not None and stored_hash != wanted_hash:
                        continue

                    name, size = self.read_record(infile, offset)

                    if size == TOMBSTONE:
                        continue

                    yield ArchiveEntry(name, volume_id, volume['path'], offset, size, stored_hash)

    def entries(self):
        return self.iter_records()

    def lookup(self, filename):
        """Resolve through the stored hashes; the record name still has to match."""
        wanted = self.hash(filename)

        for entry in self.iter_records(wanted_hash=wanted):
            if entry.name.upper() == filename.upper():
                return entry

        return None

    def scan(self, filename):
        for entry in self.iter_records():
            if entry.name.upper() != filename.upper():
                continue

            computed = self.hash(entry.name)
            if computed != entry.stored_hash:
                logger.warning("%s: stored hash %08x does not match computed %08x", entry.name, entry.stored_hash, computed)

            return entry

        return None

    def resolve(self, filename):
        entry = self.lookup(filename)

        if entry is None:
            entry = self.scan(filename)

        if entry is None:
            logger.debug("%s not found in %s", filename, self.index_path)

        return entry

    def read(self, filename):
        entry = self.resolve(filename)

        if entry is None:
            return None

        return entry.read()
