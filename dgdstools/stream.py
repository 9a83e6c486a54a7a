import struct

from dgdstools.errors import FormatError


class ByteReader:
    """Little-endian cursor over a decoded payload."""

    def __init__(self, data, name="payload"):
        self.data = data
        self.name = name
        self.cur_offset = 0

    def remaining(self):
        return max(0, len(self.data) - self.cur_offset)

    def read(self, size):
        if self.cur_offset + size > len(self.data):
            raise FormatError("%s: wanted %d bytes at %04x, only %d left" % (self.name, size, self.cur_offset, self.remaining()))

        data = self.data[self.cur_offset:self.cur_offset + size]
        self.cur_offset += size
        return bytes(data)

    def unpack(self, fmt):
        return struct.unpack(fmt, self.read(struct.calcsize(fmt)))

    def u8(self):
        return self.read(1)[0]

    def u16(self):
        return self.unpack("<H")[0]

    def u32(self):
        return self.unpack("<I")[0]

    def u16be(self):
        return self.unpack(">H")[0]

    def u32be(self):
        return self.unpack(">I")[0]

    def cstring(self):
        end = self.data.find(b"\0", self.cur_offset)

        if end < 0:
            raise FormatError("%s: unterminated string at %04x" % (self.name, self.cur_offset))

        value = self.data[self.cur_offset:end].decode("latin-1")
        self.cur_offset = end + 1
        return value

    def fixed_string(self, size):
        return self.read(size).split(b"\0", 1)[0].decode("latin-1")

    def rest(self):
        return self.read(self.remaining())
