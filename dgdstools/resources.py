import io
import logging

import hexdump

from dgdstools.chunks import ChunkReader
from dgdstools.decompress import decompress
from dgdstools.errors import FormatError, ResourceNotFound
from dgdstools.graphics import SCREEN_HEIGHT, SCREEN_WIDTH, Bitmap, interleave_planes
from dgdstools.profiles import Profile, get_extension
from dgdstools.stream import ByteReader

logger = logging.getLogger(__name__)

PALETTE_SIZE = 256 * 3

SONG_DRIVERS = {
    0: "Adlib, Soundblaster",
    7: "General MIDI",
    9: "CMS",
    12: "MT-32",
    18: "PC Speaker",
    19: "Tandy 1000, PS/1",
}


def read_strings(data, name="strings"):
    """Count-prefixed list of (u16 index, NUL terminated string)."""
    reader = ByteReader(data, name)
    strings = {}

    count = reader.u16()
    for _ in range(count):
        idx = reader.u16()
        strings[idx] = reader.cstring()

    return strings


class Palette:
    def __init__(self, colors):
        self.colors = bytes(colors)

    @classmethod
    def from_vga(cls, data):
        if len(data) < PALETTE_SIZE:
            raise FormatError("palette chunk holds %d bytes, expected %d" % (len(data), PALETTE_SIZE))

        # 6-bit DAC values
        return cls(bytes((c << 2) & 0xff for c in data[:PALETTE_SIZE]))

    @classmethod
    def black(cls):
        return cls(bytes(PALETTE_SIZE))

    @classmethod
    def grayscale(cls):
        return cls(bytes(i for i in range(256) for _ in range(3)))

    def rgb(self, index):
        return tuple(self.colors[index * 3:index * 3 + 3])

    def to_gpl(self, name):
        lines = ["GIMP Palette", "Name: %s" % name, "Columns: 0", "#"]

        for i in range(0, PALETTE_SIZE, 3):
            lines.append("%3u %3u %3u\tUntitled" % tuple(self.colors[i:i + 3]))

        return "\n".join(lines) + "\n"


class TileMatrix:
    def __init__(self, width, height, tiles):
        self.width = width
        self.height = height
        self.tiles = tiles

    def __getitem__(self, pos):
        x, y = pos
        return self.tiles[y * self.width + x]


class BitmapSet:
    """All tiles of one BMP file, kept as the two 4-bit planes."""

    def __init__(self, name):
        self.name = name
        self.widths = []
        self.heights = []
        self.offsets = []
        self.bin_plane = b""
        self.vga_plane = b""
        self.matrix = None

    def __len__(self):
        return len(self.widths)

    def set_info(self, widths, heights):
        self.widths = widths
        self.heights = heights
        self.offsets = []

        size = 0
        for w, h in zip(widths, heights):
            self.offsets.append(size)
            size += w * h

    def tile(self, idx):
        if idx < 0 or idx >= len(self.widths):
            logger.warning("%s: no tile %d (%d tiles)", self.name, idx, len(self.widths))
            return Bitmap.empty()

        w = self.widths[idx]
        h = self.heights[idx]
        start = self.offsets[idx] >> 1
        end = start + (w * h + 1) // 2

        return Bitmap(w, h, interleave_planes(self.bin_plane[start:end], self.vga_plane[start:end], w * h))


class Screen:
    def __init__(self, name, bitmap):
        self.name = name
        self.bitmap = bitmap


class Font:
    """Fixed width font, one byte per glyph row with the leftmost pixel in bit 7."""

    def __init__(self, width, height, start, count, data):
        self.width = width
        self.height = height
        self.start = start
        self.count = count
        self.data = data

    @classmethod
    def load(cls, data):
        reader = ByteReader(data, "FNT")
        w, h, start, count = reader.unpack("<BBBB")

        size = h * count
        logger.debug("    w: %u, h: %u, start: 0x%x, count: %u", w, h, start, count)

        return cls(w, h, start, count, reader.read(size))

    def has_char(self, ch):
        return self.start <= ch < self.start + self.count

    def char_width(self, ch):
        return self.width

    def glyph(self, ch):
        """Rows of 0/1 pixels for `ch`, empty if the font lacks it."""
        if not self.has_char(ch):
            return []

        pos = (ch - self.start) * self.height
        rows = []

        for y in range(self.height):
            row = self.data[pos + y] if pos + y < len(self.data) else 0
            rows.append([(row >> (7 - x)) & 1 if x < 8 else 0 for x in range(self.width)])

        return rows

    def draw_char(self, surface, ch, x, y, color):
        for dy, row in enumerate(self.glyph(ch)):
            for dx, value in enumerate(row):
                px = x + dx
                py = y + dy

                if value and 0 <= px < surface.width and 0 <= py < surface.height:
                    surface.putpixel((px, py), color)

        return self.char_width(ch) if self.has_char(ch) else 0

    def draw_string(self, surface, text, x, y, color):
        for c in text.encode("latin-1", "replace"):
            x += self.draw_char(surface, c, x, y, color)

        return x


class ProportionalFont(Font):
    """Glyph data: u16 offsets[count], u8 widths[count], then the glyph rows."""

    def __init__(self, width, height, start, count, data):
        super().__init__(width, height, start, count, data)

        reader = ByteReader(data, "PFNT")
        self.offsets = [reader.u16() for _ in range(count)]
        self.widths = list(reader.read(count))
        self.glyph_data = data[count * 3:]

    @classmethod
    def load(cls, data):
        reader = ByteReader(data, "PFNT")
        magic, w, h, unknown, start, count, size, method, unpack_size = reader.unpack("<BBBBBBHBI")

        if magic != 0xff:
            raise FormatError("proportional font magic is 0x%02x" % magic)

        logger.debug("    magic: 0x%x, w: %u, h: %u, unknown: 0x%x, start: 0x%x, count: %u", magic, w, h, unknown, start, count)
        logger.debug("    size: %u, compression: 0x%x, uncompressedSize: %u", size, method, unpack_size)

        if unpack_size != size:
            logger.warning("proportional font size %u does not match unpacked size %u", size, unpack_size)

        glyphs = bytes(decompress(method, reader.rest(), unpack_size))
        if len(glyphs) < count * 3:
            raise FormatError("proportional font glyph table truncated")

        return cls(w, h, start, count, glyphs)

    def char_width(self, ch):
        if not self.has_char(ch):
            return 0

        return self.widths[ch - self.start]

    def glyph(self, ch):
        if not self.has_char(ch):
            return []

        width = self.char_width(ch)
        stride = (width + 7) // 8
        pos = self.offsets[ch - self.start]
        rows = []

        for y in range(self.height):
            row = self.glyph_data[pos + y * stride:pos + (y + 1) * stride]
            rows.append([(row[x >> 3] >> (7 - (x & 7))) & 1 if (x >> 3) < len(row) else 0 for x in range(width)])

        return rows


def load_font(data):
    if data[:1] == b"\xff":
        return ProportionalFont.load(data)

    return Font.load(data)


def parse_song_tracks(data):
    def byte_at(pos):
        if pos >= len(data):
            raise FormatError("song track table runs past the end of the data")

        return data[pos]

    header = 2 if data[:2] == b"\x84\x00" else 0
    pos = header

    if pos < len(data) and data[pos] == 0xf0:
        logger.debug("SysEx transfer = %d bytes", byte_at(pos + 1))
        pos += 8

    tracks = []
    while byte_at(pos) != 0xff:
        driver = byte_at(pos)
        pos += 1

        while byte_at(pos) != 0xff:
            flag = byte_at(pos + 1)
            offset = byte_at(pos + 2) | (byte_at(pos + 3) << 8)
            size = byte_at(pos + 4) | (byte_at(pos + 5) << 8)
            offset += header
            pos += 6

            track = {
                'driver': driver,
                'driver_name': SONG_DRIVERS.get(driver, "Unknown %d" % driver),
                'flag': flag,
                'offset': offset,
                'size': size,
                'pcm': data[offset:offset + 2] == b"\xfe\x00",
            }

            if track['pcm']:
                track['frequency'] = int.from_bytes(data[offset + 2:offset + 4], 'little')

            elif offset + 1 < len(data):
                track['number'] = data[offset]
                track['voices'] = data[offset + 1] & 0x0f

            tracks.append(track)

        pos += 1

    return tracks


class Song:
    def __init__(self, name):
        self.name = name
        self.songs = []
        self.info = []

    @property
    def data(self):
        return self.songs[0] if self.songs else b""

    def tracks(self, idx=0):
        return parse_song_tracks(self.songs[idx])


class Sound:
    def __init__(self, name, data):
        self.name = name
        self.data = data


class SoundInfo:
    def __init__(self, name):
        self.name = name
        self.type = None
        self.ids = []
        self.tags = {}
        self.filenames = {}
        self.data_ids = []


class TTMData:
    """A decoded scene script. The script bytes are never modified."""

    def __init__(self, name, script=b"", version=None, pages=0, tags=None):
        self.name = name
        self.script = bytes(script)
        self.version = version
        self.pages = pages
        self.tags = tags or {}

    def __repr__(self):
        return "<TTMData %s: %d bytes>" % (self.name, len(self.script))


class ADSData:
    def __init__(self, name, script=b"", version=None, resources=None, tags=None):
        self.name = name
        self.script = bytes(script)
        self.version = version
        self.resources = resources or {}
        self.tags = tags or {}
        self.scripts = {}

    @property
    def names(self):
        return list(self.resources.values())

    @property
    def resource_ids(self):
        return list(self.resources.keys())

    def child_index(self, resource_id):
        try:
            return self.resource_ids.index(resource_id)
        except ValueError:
            return None

    def children(self):
        return [self.scripts.get(res_id) for res_id in self.resources]

    def __repr__(self):
        return "<ADSData %s: %d bytes, %d scripts>" % (self.name, len(self.script), len(self.resources))


class SceneInfo:
    def __init__(self, name, mark=None, version=None, strings=None, number=None):
        self.name = name
        self.mark = mark
        self.version = version
        self.strings = strings or []
        self.number = number


def read_version_header(data, name):
    reader = ByteReader(data, name)
    mark = reader.u32()
    version = reader.fixed_string(7)
    logger.debug("    0x%X \"%s\"", mark, version)
    return reader, mark, version


class RawResource:
    def __init__(self, name, data=None):
        self.name = name
        self.data = data
        self.chunks = []
        self.strings = {}

    def get(self, tag):
        for chunk, payload in self.chunks:
            if chunk.tag == tag:
                return payload

        return None


class RestartInfo:
    def __init__(self, mark):
        self.mark = mark
        self.records = []
        self.links = []


class TextList:
    def __init__(self, name, lines):
        self.name = name
        self.lines = lines


class AmigaScreen:
    def __init__(self, tag, pitch, planes, data):
        self.tag = tag
        self.pitch = pitch
        self.planes = planes
        self.data = data


class AmigaBitmapInfo:
    def __init__(self):
        self.widths = []
        self.heights = []
        self.offsets = []
        self.version = ""
        self.unpacked_size = 0
        self.packed_size = 0
        self.data = b""


class ResourceLoader:
    def __init__(self, index=None, profile=None, trace=False, cache=True):
        self.index = index
        self.profile = profile or Profile()
        self.trace = trace
        self.cache = {} if cache else None

        self.chunk_decoders = {
            "ADH": self.decode_ads,
            "ADL": self.decode_ads,
            "ADS": self.decode_ads,
            "BMP": self.decode_bmp,
            "DDS": self.decode_scene_info,
            "FNT": self.decode_fnt,
            "GDS": self.decode_scene_info,
            "PAL": self.decode_pal,
            "REQ": self.decode_req,
            "SCR": self.decode_scr,
            "SDS": self.decode_scene_info,
            "SNG": self.decode_sng,
            "SX": self.decode_sx,
            "TDS": self.decode_scene_info,
            "TTM": self.decode_ttm,
        }

        self.flat_decoders = {
            "AMG": self.decode_amg,
            "BMP": self.decode_amiga_bmp,
            "INS": self.decode_ins,
            "RST": self.decode_rst,
            "SCR": self.decode_amiga_scr,
            "VIN": self.decode_vin,
        }

    def read(self, name):
        if self.index is None:
            return None

        return self.index.read(name)

    def load(self, name):
        """Decode `name` from the archive, or None if the archive lacks it."""
        key = name.upper()

        if self.cache is not None and key in self.cache:
            return self.cache[key]

        data = self.read(name)
        if data is None:
            logger.warning("%s not found", name)
            return None

        resource = self.decode(name, data)

        if self.cache is not None:
            self.cache[key] = resource

        return resource

    def require(self, name):
        resource = self.load(name)

        if resource is None:
            raise ResourceNotFound(name)

        return resource

    def read_chunks(self, name, data):
        reader = ChunkReader(io.BytesIO(data), name, self.profile)
        chunks = list(reader.iter_chunks())

        if self.trace:
            for chunk, payload in chunks:
                logger.debug("%s %s\n%s", name, chunk.type, hexdump.hexdump(payload, result="return"))

        return chunks

    def decode(self, name, data):
        ext = get_extension(name)

        if self.profile.is_flat(ext):
            decoder = self.flat_decoders.get(ext)

            if decoder is None:
                return RawResource(name, bytes(data))

            return decoder(name, data)

        chunks = self.read_chunks(name, data)
        decoder = self.chunk_decoders.get(ext, self.decode_raw)

        return decoder(name, chunks)

    def leftover(self, name, reader):
        if reader.remaining() and self.trace:
            logger.debug("%s: %d bytes left over\n%s", name, reader.remaining(), hexdump.hexdump(reader.data[reader.cur_offset:], result="return"))

    def decode_raw(self, name, chunks):
        resource = RawResource(name)
        resource.chunks.extend(chunks)
        return resource

    def decode_pal(self, name, chunks):
        for chunk, payload in chunks:
            if chunk.tag == "VGA":
                return Palette.from_vga(payload)

        raise FormatError("%s: no VGA: chunk in palette" % name)

    def decode_bmp(self, name, chunks):
        bitmaps = BitmapSet(name)

        for chunk, payload in chunks:
            if chunk.tag == "INF":
                reader = ByteReader(payload, "%s INF" % name)
                count = reader.u16()
                widths = [reader.u16() for _ in range(count)]
                heights = [reader.u16() for _ in range(count)]
                bitmaps.set_info(widths, heights)
                logger.debug("        [%u] = %s", count, ", ".join("%ux%u" % x for x in zip(widths, heights)))
                self.leftover(name, reader)

            elif chunk.tag == "BIN":
                bitmaps.bin_plane = payload

            elif chunk.tag == "VGA":
                bitmaps.vga_plane = payload

            elif chunk.tag == "MTX":
                reader = ByteReader(payload, "%s MTX" % name)
                width, height = reader.u16(), reader.u16()
                tiles = [reader.u16() for _ in range(width * height)]
                bitmaps.matrix = TileMatrix(width, height, tiles)
                logger.debug("        %ux%u: %u bytes", width, height, width * height * 2)

            else:
                logger.debug("%s: skipping %s", name, chunk.type)

        return bitmaps

    def decode_scr(self, name, chunks):
        planes = {}

        for chunk, payload in chunks:
            if chunk.tag in ("BIN", "VGA", "MA8"):
                planes[chunk.tag] = payload

            else:
                logger.debug("%s: skipping %s", name, chunk.type)

        count = SCREEN_WIDTH * SCREEN_HEIGHT

        if "MA8" in planes:
            bitmap = Bitmap(SCREEN_WIDTH, SCREEN_HEIGHT, planes["MA8"][:count])

        elif "VGA" in planes:
            pixels = interleave_planes(planes.get("BIN", bytes(count // 2)), planes["VGA"], count)
            bitmap = Bitmap(SCREEN_WIDTH, SCREEN_HEIGHT, pixels)

        else:
            raise FormatError("%s: no picture planes" % name)

        return Screen(name, bitmap)

    def decode_fnt(self, name, chunks):
        for chunk, payload in chunks:
            if chunk.tag == "FNT":
                return load_font(payload)

        raise FormatError("%s: no FNT: chunk" % name)

    def decode_ttm(self, name, chunks):
        ttm = TTMData(name)

        for chunk, payload in chunks:
            if chunk.tag == "VER":
                ttm.version = payload.split(b"\0", 1)[0].decode("latin-1")

            elif chunk.tag == "PAG":
                ttm.pages = ByteReader(payload, "%s PAG" % name).u16()

            elif chunk.tag == "TT3":
                ttm.script = bytes(payload)

            elif chunk.tag == "TAG":
                ttm.tags = read_strings(payload, "%s TAG" % name)

        return ttm

    def decode_ads(self, name, chunks):
        ads = ADSData(name)

        for chunk, payload in chunks:
            if chunk.tag == "VER":
                ads.version = payload.split(b"\0", 1)[0].decode("latin-1")

            elif chunk.tag == "RES":
                ads.resources = read_strings(payload, "%s RES" % name)

            elif chunk.tag == "SCR":
                ads.script = bytes(payload)

            elif chunk.tag == "TAG":
                ads.tags = read_strings(payload, "%s TAG" % name)

        self.load_children(ads)
        return ads

    def load_children(self, ads):
        for res_id, script_name in ads.resources.items():
            try:
                child = self.load(script_name)

            except FormatError as e:
                logger.warning("%s: cannot load %s: %s", ads.name, script_name, e)
                child = None

            if child is not None and not isinstance(child, TTMData):
                logger.warning("%s: %s is not a scene script", ads.name, script_name)
                child = None

            ads.scripts[res_id] = child

    def decode_sng(self, name, chunks):
        song = Song(name)

        for chunk, payload in chunks:
            if chunk.tag == "SNG":
                logger.debug("        %2u: %u bytes", len(song.songs), len(payload))
                song.songs.append(bytes(payload))

            elif chunk.tag == "INF":
                reader = ByteReader(payload, "%s INF" % name)
                song.info = [reader.u16() for _ in range(len(payload) // 2)]

        return song

    def decode_sx(self, name, chunks):
        info = SoundInfo(name)

        for chunk, payload in chunks:
            if chunk.tag == "INF":
                reader = ByteReader(payload, "%s INF" % name)
                info.type, count = reader.u16(), reader.u16()
                info.ids = [reader.u16() for _ in range(count)]

            elif chunk.tag == "TAG":
                info.tags = read_strings(payload, "%s TAG" % name)

            elif chunk.tag == "FNM":
                info.filenames = read_strings(payload, "%s FNM" % name)

            elif chunk.tag == "DAT":
                info.data_ids.append(ByteReader(payload, "%s DAT" % name).u16())

        return info

    def decode_req(self, name, chunks):
        resource = RawResource(name)

        for chunk, payload in chunks:
            if chunk.parent == "TAG" and chunk.tag in ("REQ", "GAD"):
                resource.strings[chunk.tag] = read_strings(payload, "%s %s" % (name, chunk.tag))

            else:
                resource.chunks.append((chunk, payload))

        return resource

    def decode_scene_info(self, name, chunks):
        ext = get_extension(name)
        info = SceneInfo(name)

        for chunk, payload in chunks:
            if (ext, chunk.tag) in (("SDS", "SDS"), ("GDS", "INF"), ("TDS", "THD"), ("DDS", "DDS")):
                reader, info.mark, info.version = read_version_header(payload, "%s %s" % (name, chunk.tag))

                if ext == "SDS":
                    info.number = reader.u16()
                    info.strings.append("S%d.SDS" % info.number)

                elif ext == "TDS":
                    info.strings.extend([reader.cstring(), reader.cstring()])

                elif ext == "DDS":
                    info.strings.append(reader.cstring())

        return info

    def decode_rst(self, name, data):
        reader = ByteReader(data, name)
        info = RestartInfo(reader.u32())

        while reader.remaining() >= 2:
            idx = reader.u16()
            if idx == 0:
                break

            info.records.append((idx, reader.unpack("<7H")))

        while reader.remaining() >= 6:
            idx = reader.u16()
            info.links.append((idx, reader.unpack("<2H")))

            if idx == 0:
                break

        self.leftover(name, reader)
        return info

    def decode_vin(self, name, data):
        lines = [line.rstrip("\r") for line in bytes(data).decode("latin-1").split("\n")]
        return TextList(name, [line for line in lines if line])

    def decode_amg(self, name, data):
        lines = []

        for line in bytes(data).decode("latin-1").split("\n"):
            line = line.rstrip("\r")
            if not line:
                break

            lines.append(line)

        return TextList(name, lines)

    def decode_ins(self, name, data):
        return Sound(name, bytes(data))

    def decode_amiga_scr(self, name, data):
        reader = ByteReader(data, name)
        tag = reader.read(4).decode("latin-1")
        pitch = reader.u16be()
        planes = reader.u16be()

        logger.debug("    \"%s\" pitch:%u bpp:%u", tag, pitch, planes)

        return AmigaScreen(tag, pitch, planes, reader.rest())

    def decode_amiga_bmp(self, name, data):
        reader = ByteReader(data, name)
        info = AmigaBitmapInfo()

        count = reader.u16be()
        total_size = reader.u32be()
        logger.debug("        [%u] %u =", count, total_size)

        size = 0
        for _ in range(count):
            w, h = reader.u16be(), reader.u16be()
            info.widths.append(w)
            info.heights.append(h)
            info.offsets.append(size)
            size += (w + 15) // 16 * h * 5

        logger.debug("    ~= [%u]", size)

        info.version = reader.fixed_string(12)
        info.unpacked_size = reader.u32be()
        info.packed_size = reader.u32be()
        info.data = reader.rest()

        return info
