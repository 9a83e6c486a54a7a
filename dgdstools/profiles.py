"""Which chunks are compressed and which files carry no chunk framing at all.

Both associations depend on the file extension (and for flat files on the
platform the archive was built for), so they are kept here as tables rather
than inferred from the data.
"""

import logging

logger = logging.getLogger(__name__)

PLATFORM_DOS = "dos"
PLATFORM_AMIGA = "amiga"
PLATFORM_MAC = "mac"

PLATFORMS = (PLATFORM_DOS, PLATFORM_AMIGA, PLATFORM_MAC)

PACKED_TAGS = {
    "ADH": {"SCR"},
    "ADL": {"SCR"},
    "ADS": {"SCR"},
    "BMP": {"BIN", "VGA"},
    "DDS": {"DDS"},
    "GDS": {"SDS"},
    "OVL": {
        "ADL", "ADS", "APA", "ASB", "GMD", "M32", "NLD", "PRO", "PS1",
        "SBL", "SBP", "STD", "TAN", "T3V", "001", "003", "004", "101", "VGA",
    },
    "SCR": {"BIN", "VGA", "MA8"},
    "SDS": {"SDS"},
    "SNG": {"SNG"},
    "TDS": {"THD", "TDS"},
    "TTM": {"TT3"},
}

# Tags each extension is known to contain uncompressed
RAW_TAGS = {
    "ADH": {"VER", "RES", "TAG"},
    "ADL": {"VER", "RES", "TAG"},
    "ADS": {"VER", "RES", "TAG"},
    "BMP": {"INF", "MTX", "VQT", "OFF"},
    "FNT": {"FNT"},
    "GDS": {"INF"},
    "PAL": {"PAL", "VGA", "EGA", "CGA"},
    "REQ": {"TAG", "REQ", "GAD"},
    "SCR": {"DIM", "VQT", "OFF"},
    "SNG": {"INF"},
    "SX": {"INF", "TAG", "FNM", "DAT"},
    "TTM": {"VER", "PAG", "TAG"},
}

FLAT_EXTENSIONS = {
    None: {"RST", "VIN", "DAT"},
    PLATFORM_AMIGA: {"BMP", "SCR", "INS", "AMG"},
}


def get_extension(filename):
    if "." not in filename:
        return ""

    return filename.rsplit(".", 1)[1][:3].upper()


class Profile:
    def __init__(self, platform=PLATFORM_DOS, align_on_clear=False):
        if platform not in PLATFORMS:
            raise ValueError("unknown platform %r" % platform)

        self.platform = platform
        self.align_on_clear = align_on_clear

    def is_flat(self, ext):
        return ext in FLAT_EXTENSIONS[None] or ext in FLAT_EXTENSIONS.get(self.platform, ())

    def is_packed(self, tag, ext):
        if tag in PACKED_TAGS.get(ext, ()):
            return True

        if tag not in RAW_TAGS.get(ext, ()):
            logger.warning("no profile entry for %s: in .%s, reading it uncompressed", tag, ext)

        return False

    def __repr__(self):
        return "Profile(%r, align_on_clear=%r)" % (self.platform, self.align_on_clear)
