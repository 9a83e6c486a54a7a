import logging

from dgdstools.errors import FormatError

logger = logging.getLogger(__name__)

METHOD_NONE = 0
METHOD_RLE = 1
METHOD_LZW = 2

METHOD_NAMES = {
    METHOD_NONE: "None",
    METHOD_RLE: "RLE",
    METHOD_LZW: "LZW",
}

LZW_CLEAR = 0x100
LZW_END = 0x101
LZW_FIRST_FREE = 0x102
LZW_MIN_BITS = 9
LZW_MAX_BITS = 12
LZW_TABLE_SIZE = 1 << LZW_MAX_BITS


class RleDecoder:
    """Control byte 0x80 is a no-op, 0x00-0x7f copies that many literal bytes,
    0x81-0xff repeats the following byte (control & 0x7f) times."""

    def __init__(self, data):
        self.data = data
        self.cur_offset = 0

    def read_byte(self):
        if self.cur_offset >= len(self.data):
            raise FormatError("RLE stream ended at offset %d" % self.cur_offset)

        value = self.data[self.cur_offset]
        self.cur_offset += 1
        return value

    def decode(self, size):
        output = bytearray()

        while len(output) < size:
            control = self.read_byte()
            left = size - len(output)

            if control == 0x80:
                continue

            if control < 0x80:
                if self.cur_offset + control > len(self.data):
                    raise FormatError("RLE literal run of %d bytes past end of stream" % control)

                # The whole run is consumed even if only part of it fits
                count = min(control, left)
                output += self.data[self.cur_offset:self.cur_offset + count]
                self.cur_offset += control

            else:
                value = self.read_byte()
                output += bytes([value]) * min(control & 0x7f, left)

        return output


class LzwDecoder:
    def __init__(self, data, align_on_clear=False):
        self.data = data
        self.align_on_clear = align_on_clear

        self.cur_offset = 0
        self.bit_buffer = 0
        self.bit_count = 0
        self.group_bits = 0

        self.prefixes = [0] * LZW_TABLE_SIZE
        self.suffixes = bytearray(LZW_TABLE_SIZE)
        for i in range(256):
            self.suffixes[i] = i

        self.reset()

    def reset(self):
        self.code_size = LZW_MIN_BITS
        self.next_code = LZW_FIRST_FREE
        self.group_bits = 0

    @property
    def entry_count(self):
        # Root entries plus everything added since the last reset
        return 256 + self.next_code - LZW_FIRST_FREE

    def get_bits(self, count):
        while self.bit_count < count:
            if self.cur_offset >= len(self.data):
                raise FormatError("LZW stream ended mid-code at offset %d (need %d bits, have %d)" % (self.cur_offset, count, self.bit_count))

            self.bit_buffer |= self.data[self.cur_offset] << self.bit_count
            self.bit_count += 8
            self.cur_offset += 1

        result = self.bit_buffer & ((1 << count) - 1)
        self.bit_buffer >>= count
        self.bit_count -= count

        return result

    def get_code(self):
        code = self.get_bits(self.code_size)

        self.group_bits += self.code_size
        if self.group_bits >= self.code_size * 8:
            self.group_bits = 0

        return code

    def expand(self, code):
        output = bytearray()

        while code > 0xff:
            output.append(self.suffixes[code])
            code = self.prefixes[code]

        output.append(code)
        output.reverse()

        return output

    def decode(self, size):
        output = bytearray()
        prev_code = None

        while len(output) < size:
            code = self.get_code()

            if code == LZW_END:
                break

            if code == LZW_CLEAR:
                if self.align_on_clear and self.group_bits > 0:
                    self.get_bits(self.code_size * 8 - self.group_bits)

                self.reset()
                prev_code = None
                continue

            if prev_code is None:
                if code > 0xff:
                    raise FormatError("LZW code 0x%03x with an empty dictionary" % code)

                output.append(code)
                prev_code = code
                continue

            if code >= self.next_code:
                # KwKwK: the code being defined by this very step
                entry = self.expand(prev_code)
                entry.append(entry[0])

            else:
                entry = self.expand(code)

            output += entry

            if self.next_code < LZW_TABLE_SIZE:
                self.prefixes[self.next_code] = prev_code
                self.suffixes[self.next_code] = entry[0]
                self.next_code += 1

                if self.next_code == (1 << self.code_size) and self.code_size < LZW_MAX_BITS:
                    self.code_size += 1
                    self.group_bits = 0

            prev_code = code

        del output[size:]
        return output


def decode_rle(data, size):
    return RleDecoder(data).decode(size)


def decode_lzw(data, size, align_on_clear=False):
    return LzwDecoder(data, align_on_clear).decode(size)


def decompress(method, data, size, align_on_clear=False):
    logger.debug("decompress %s: %d -> %d bytes", METHOD_NAMES.get(method, method), len(data), size)

    if method == METHOD_NONE:
        result = bytearray(data[:size])

    elif method == METHOD_RLE:
        result = decode_rle(data, size)

    elif method == METHOD_LZW:
        result = decode_lzw(data, size, align_on_clear)

    else:
        raise FormatError("unknown chunk compression: %d" % method)

    if len(result) < size:
        raise FormatError("%s stream gave %d bytes, expected %d" % (METHOD_NAMES[method], len(result), size))

    return result
