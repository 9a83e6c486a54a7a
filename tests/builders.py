"""Reference encoders and fixture builders for archives, chunks and scripts."""

import struct

from dgdstools.volume import NAME_FIELD_SIZE, TOMBSTONE, dgds_hash

LZW_CLEAR = 0x100
LZW_END = 0x101


def rle_encode(data):
    out = bytearray()
    i = 0

    while i < len(data):
        run = 1
        while i + run < len(data) and data[i + run] == data[i] and run < 0x7f:
            run += 1

        if run >= 3:
            out.append(0x80 | run)
            out.append(data[i])
            i += run
            continue

        start = i
        while i < len(data) and i - start < 0x7f:
            if i + 2 < len(data) and data[i] == data[i + 1] == data[i + 2]:
                break
            i += 1

        out.append(i - start)
        out += data[start:i]

    return bytes(out)


class BitWriter:
    def __init__(self):
        self.value = 0
        self.bits = 0
        self.out = bytearray()

    def write(self, code, width):
        self.value |= code << self.bits
        self.bits += width

        while self.bits >= 8:
            self.out.append(self.value & 0xff)
            self.value >>= 8
            self.bits -= 8

    def getvalue(self):
        out = bytearray(self.out)

        if self.bits:
            out.append(self.value & 0xff)

        return bytes(out)


class LzwEncoder:
    """Mirrors the decoder's code width so the stream it writes decodes exactly."""

    def __init__(self, align_on_clear=False):
        self.align_on_clear = align_on_clear
        self.writer = BitWriter()
        self.codes = []
        self.reset()

    def reset(self):
        self.table = {bytes([i]): i for i in range(256)}
        self.enc_next = 0x102
        self.dec_next = 0x102
        self.width = 9
        self.group_bits = 0
        self.first = True

    def emit(self, code):
        self.codes.append(code)
        self.writer.write(code, self.width)

        self.group_bits += self.width
        if self.group_bits >= self.width * 8:
            self.group_bits = 0

        if code in (LZW_CLEAR, LZW_END):
            return

        if self.first:
            self.first = False
            return

        if self.dec_next < 4096:
            self.dec_next += 1

            if self.dec_next == (1 << self.width) and self.width < 12:
                self.width += 1
                self.group_bits = 0

    def clear(self):
        self.emit(LZW_CLEAR)

        if self.align_on_clear and self.group_bits > 0:
            self.writer.write(0, self.width * 8 - self.group_bits)

        self.reset()

    def encode(self, data, clear_at=()):
        w = b""

        for pos, c in enumerate(data):
            if pos in clear_at:
                if w:
                    self.emit(self.table[w])
                    w = b""
                self.clear()

            wc = w + bytes([c])
            if wc in self.table:
                w = wc
                continue

            self.emit(self.table[w])

            if self.enc_next < 4096:
                self.table[wc] = self.enc_next
                self.enc_next += 1

            w = bytes([c])

        if w:
            self.emit(self.table[w])

        self.emit(LZW_END)
        return self.writer.getvalue()


def lzw_encode(data, clear_at=(), align_on_clear=False):
    return LzwEncoder(align_on_clear).encode(data, clear_at)


def pack_codes(codes, width=9):
    """`width` is one width for every code or a list with one width per code."""
    widths = [width] * len(codes) if isinstance(width, int) else width
    writer = BitWriter()

    for code, code_width in zip(codes, widths):
        writer.write(code, code_width)

    return writer.getvalue()


def chunk(tag, payload):
    return tag.encode("latin-1") + b":" + struct.pack("<I", len(payload)) + payload


def packed_chunk(tag, payload, method=0):
    if method == 1:
        body = rle_encode(payload)
    elif method == 2:
        body = lzw_encode(payload)
    else:
        body = payload

    return chunk(tag, struct.pack("<BI", method, len(payload)) + body)


def container(tag, *children):
    body = b"".join(children)
    return tag.encode("latin-1") + b":" + struct.pack("<I", len(body) | 0x80000000) + body


def string_table(strings):
    out = struct.pack("<H", len(strings))

    for idx, value in strings.items():
        out += struct.pack("<H", idx) + value.encode("latin-1") + b"\0"

    return out


def name_field(name):
    return name.encode("latin-1").ljust(NAME_FIELD_SIZE, b"\0")


def build_archive(directory, files, salt=b"\x00\x01\x02\x03", volume_name="VOLUME.001", index_name="RESOURCE.MAP", hashes=None, tombstones=()):
    """Write an index and a single volume; `files` is a list of (name, data)."""
    hashes = hashes or {}
    volume = bytearray()
    table = []

    for name in tombstones:
        table.append((hashes.get(name, dgds_hash(name, salt)), len(volume)))
        volume += name_field(name) + struct.pack("<I", TOMBSTONE)

    for name, data in files:
        table.append((hashes.get(name, dgds_hash(name, salt)), len(volume)))
        volume += name_field(name) + struct.pack("<I", len(data)) + data

    index = bytearray(salt) + struct.pack("<H", 1)
    index += name_field(volume_name) + struct.pack("<H", len(table))
    for file_hash, offset in table:
        index += struct.pack("<II", file_hash, offset)

    (directory / volume_name).write_bytes(bytes(volume))
    index_path = directory / index_name
    index_path.write_bytes(bytes(index))

    return index_path


def op(code, *args):
    return struct.pack("<H", code | len(args)) + struct.pack("<%dh" % len(args), *args)


def op_string(code, value):
    raw = value.encode("latin-1") + b"\0"
    if len(raw) % 2:
        raw += b"\0"

    return struct.pack("<H", code | 0x0f) + raw


def play_scene(resource_id, bound):
    return struct.pack("<5H", 0x2005, resource_id, bound, 0, 0)


def ttm_file(script, tags=None, method=0):
    return (
        chunk("VER", b"4.09\0")
        + chunk("PAG", struct.pack("<H", 1))
        + packed_chunk("TT3", script, method)
        + chunk("TAG", string_table(tags or {}))
    )


def ads_file(script, resources, tags=None, method=0):
    return (
        chunk("VER", b"4.09\0")
        + chunk("RES", string_table(resources))
        + packed_chunk("SCR", script, method)
        + chunk("TAG", string_table(tags or {}))
    )


def bmp_file(tiles, method=0):
    """`tiles` is a list of (width, height, pixel bytes)."""
    widths = [w for w, _, _ in tiles]
    heights = [h for _, h, _ in tiles]
    pixels = b"".join(p for _, _, p in tiles)

    bin_plane, vga_plane = split_planes(pixels)

    info = struct.pack("<H", len(tiles)) + struct.pack("<%dH" % len(tiles), *widths) + struct.pack("<%dH" % len(tiles), *heights)

    return container(
        "BMP",
        chunk("INF", info),
        packed_chunk("BIN", bin_plane, method),
        packed_chunk("VGA", vga_plane, method),
    )


def split_planes(pixels):
    if len(pixels) % 2:
        pixels += b"\0"

    bin_plane = bytearray()
    vga_plane = bytearray()

    for i in range(0, len(pixels), 2):
        a, b = pixels[i], pixels[i + 1]
        vga_plane.append((a & 0xf0) | (b >> 4))
        bin_plane.append(((a & 0x0f) << 4) | (b & 0x0f))

    return bytes(bin_plane), bytes(vga_plane)


def pal_file(colors):
    return container("PAL", chunk("VGA", bytes(colors)))
