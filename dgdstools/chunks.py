import logging
import struct

from dgdstools.decompress import METHOD_NAMES, decompress
from dgdstools.errors import FormatError
from dgdstools.profiles import get_extension

logger = logging.getLogger(__name__)

HEADER_SIZE = 8
PACKED_PREFIX_SIZE = 5
CONTAINER_FLAG = 0x80000000


class Chunk:
    def __init__(self, tag, size, container, offset=0):
        self.tag = tag
        self.size = size
        self.container = container
        self.offset = offset
        self.parent = None

    @property
    def type(self):
        return self.tag + ":"

    def __repr__(self):
        return "<Chunk %s: %d%s @%08x>" % (self.tag, self.size, "+" if self.container else "", self.offset)


def read_exact(stream, size, what):
    data = stream.read(size)

    if len(data) != size:
        raise FormatError("truncated %s: wanted %d bytes, got %d" % (what, size, len(data)))

    return data


def read_header(stream):
    offset = stream.tell()
    raw = stream.read(HEADER_SIZE)

    if not raw:
        return None

    if len(raw) < HEADER_SIZE:
        raise FormatError("truncated chunk header at %08x" % offset)

    if raw[3:4] != b":":
        raise FormatError("bad chunk header at %08x: %r" % (offset, bytes(raw[:4])))

    size = struct.unpack("<I", raw[4:8])[0]

    return Chunk(
        raw[:3].decode("latin-1"),
        size & ~CONTAINER_FLAG,
        (size & CONTAINER_FLAG) != 0,
        offset,
    )


def read_payload(chunk, stream, packed=False, align_on_clear=False):
    """Read the payload that follows `chunk`'s header.

    Containers carry no payload and return None. Packed leaves start with a
    codec selector and the unpacked size; everything else is returned as-is.
    The stream is left at the next header either way.
    """
    if chunk.container:
        logger.debug("    %s %u+", chunk.type, chunk.size)
        return None

    if not packed:
        logger.debug("    %s %u", chunk.type, chunk.size)
        return read_exact(stream, chunk.size, "%s payload" % chunk.type)

    if chunk.size < PACKED_PREFIX_SIZE:
        raise FormatError("%s chunk too small to be packed: %d bytes" % (chunk.type, chunk.size))

    method, unpack_size = struct.unpack("<BI", read_exact(stream, PACKED_PREFIX_SIZE, "%s packing header" % chunk.type))
    data = read_exact(stream, chunk.size - PACKED_PREFIX_SIZE, "%s packed payload" % chunk.type)

    logger.debug("    %s %u %s %u", chunk.type, chunk.size - PACKED_PREFIX_SIZE, METHOD_NAMES.get(method, "?"), unpack_size)

    return bytes(decompress(method, data, unpack_size, align_on_clear))


class ChunkReader:
    """Walks a chunk stream, remembering the most recent container tag."""

    def __init__(self, stream, name, profile):
        self.stream = stream
        self.name = name
        self.profile = profile
        self.ext = get_extension(name)

        self.parent = None
        self.in_size = 0
        self.out_size = 0

    def __iter__(self):
        return self.iter_chunks()

    def iter_chunks(self, include_containers=False):
        while True:
            try:
                chunk = read_header(self.stream)

            except FormatError as e:
                raise FormatError("%s: %s" % (self.name, e)) from e

            if chunk is None:
                break

            self.in_size += HEADER_SIZE

            if chunk.container:
                self.parent = chunk.tag
                read_payload(chunk, self.stream)

                if include_containers:
                    yield chunk, None

                continue

            chunk.parent = self.parent
            packed = self.profile.is_packed(chunk.tag, self.ext)
            payload = read_payload(chunk, self.stream, packed, self.profile.align_on_clear)

            self.in_size += chunk.size
            self.out_size += len(payload)

            yield chunk, payload

        logger.debug("  %s [%u:%u] --", self.name, self.in_size, self.out_size)
