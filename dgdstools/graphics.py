from PIL import Image

SCREEN_WIDTH = 320
SCREEN_HEIGHT = 200

# Colour 0 is transparent for every blit
MASK_TABLE = bytes([0] + [255] * 255)


def interleave_planes(bin_plane, vga_plane, pixel_count=None):
    """Rebuild 8-bit pixels from the BIN (low nibble) and VGA (high nibble) planes.

    Every plane byte holds two pixels, the left one in its high nibble.
    """
    count = min(len(bin_plane), len(vga_plane))
    pixels = bytearray(count * 2)

    for i in range(count):
        b = bin_plane[i]
        v = vga_plane[i]
        pixels[i * 2] = (v & 0xf0) | ((b & 0xf0) >> 4)
        pixels[i * 2 + 1] = ((v & 0x0f) << 4) | (b & 0x0f)

    if pixel_count is not None:
        del pixels[pixel_count:]

    return bytes(pixels)


class Rect:
    def __init__(self, left, top, right, bottom):
        self.left = left
        self.top = top
        self.right = right
        self.bottom = bottom

    @classmethod
    def from_size(cls, x, y, w, h):
        return cls(x, y, x + w, y + h)

    @property
    def width(self):
        return max(0, self.right - self.left)

    @property
    def height(self):
        return max(0, self.bottom - self.top)

    @property
    def box(self):
        return (self.left, self.top, self.right, self.bottom)

    def is_empty(self):
        return self.width == 0 or self.height == 0

    def clip(self, other):
        return Rect(
            max(self.left, other.left),
            max(self.top, other.top),
            min(self.right, other.right),
            min(self.bottom, other.bottom),
        )

    def __eq__(self, other):
        return isinstance(other, Rect) and self.box == other.box

    def __repr__(self):
        return "Rect(%d, %d, %d, %d)" % self.box


SCREEN_RECT = Rect(0, 0, SCREEN_WIDTH, SCREEN_HEIGHT)


class Bitmap:
    def __init__(self, width, height, pixels):
        self.width = width
        self.height = height
        self.pixels = bytes(pixels)

        if len(self.pixels) < width * height:
            self.pixels += bytes(width * height - len(self.pixels))

    @classmethod
    def empty(cls):
        return cls(0, 0, b"")

    def is_empty(self):
        return self.width == 0 or self.height == 0

    def to_image(self, palette=None):
        image = Image.frombytes("P", (self.width, self.height), self.pixels[:self.width * self.height])

        if palette is not None:
            image.putpalette(palette)

        return image

    def __repr__(self):
        return "<Bitmap %dx%d>" % (self.width, self.height)


def new_surface(width=SCREEN_WIDTH, height=SCREEN_HEIGHT):
    return Image.new("P", (width, height), 0)


def transparency_mask(image):
    return Image.frombytes("L", image.size, image.tobytes().translate(MASK_TABLE))


def fill_rect(surface, rect, color=0):
    rect = rect.clip(Rect(0, 0, surface.width, surface.height))

    if not rect.is_empty():
        surface.paste(color, rect.box)


def copy_rect(dst, src, rect):
    rect = rect.clip(Rect(0, 0, src.width, src.height))

    if not rect.is_empty():
        dst.paste(src.crop(rect.box), (rect.left, rect.top))


def trans_blit(dst, src, rect=None):
    """Copy the non-zero pixels of `src` inside `rect` onto `dst` at the same place."""
    if rect is None:
        rect = Rect(0, 0, src.width, src.height)

    rect = rect.clip(Rect(0, 0, src.width, src.height))

    if rect.is_empty():
        return

    part = src.crop(rect.box)
    dst.paste(part, (rect.left, rect.top), transparency_mask(part))


def draw_bitmap(dst, bitmap, x, y, clip=None):
    """Blit `bitmap` with colour 0 transparent, clipped to `dst` and `clip`.

    Returns the destination rectangle actually touched.
    """
    dest = Rect.from_size(x, y, bitmap.width, bitmap.height)
    clipped = dest.clip(Rect(0, 0, dst.width, dst.height))

    if clip is not None:
        clipped = clipped.clip(clip)

    if bitmap.is_empty() or clipped.is_empty():
        return Rect(clipped.left, clipped.top, clipped.left, clipped.top)

    source = bitmap.to_image().crop((
        clipped.left - dest.left,
        clipped.top - dest.top,
        clipped.right - dest.left,
        clipped.bottom - dest.top,
    ))
    dst.paste(source, (clipped.left, clipped.top), transparency_mask(source))

    return clipped


def to_rgb(surface, palette):
    image = surface.copy()
    image.putpalette(palette)
    return image.convert("RGB")
