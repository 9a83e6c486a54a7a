from dgdstools.graphics import (
    SCREEN_RECT,
    Bitmap,
    Rect,
    draw_bitmap,
    interleave_planes,
    new_surface,
    to_rgb,
    trans_blit,
)


def test_interleave_nibbles():
    assert interleave_planes(bytes([0xa5]), bytes([0x3c])) == bytes([0x3a, 0xc5])


def test_interleave_trims_to_pixel_count():
    assert interleave_planes(b"\x00\x11", b"\x22\x33", 3) == bytes([0x20, 0x20, 0x31])


def test_rect_clip_and_size():
    rect = Rect.from_size(-5, 190, 20, 20).clip(SCREEN_RECT)

    assert rect == Rect(0, 190, 15, 200)
    assert (rect.width, rect.height) == (15, 10)
    assert Rect(10, 10, 5, 5).is_empty()


def test_draw_bitmap_is_transparent_on_zero():
    surface = new_surface()
    surface.putpixel((11, 20), 9)
    bitmap = Bitmap(2, 1, b"\x07\x00")

    touched = draw_bitmap(surface, bitmap, 10, 20)

    assert touched == Rect(10, 20, 12, 21)
    assert surface.getpixel((10, 20)) == 7
    assert surface.getpixel((11, 20)) == 9


def test_draw_bitmap_clips_to_window_and_screen():
    surface = new_surface()
    bitmap = Bitmap(4, 4, b"\x01" * 16)

    touched = draw_bitmap(surface, bitmap, 318, -2, Rect(0, 0, 319, 200))

    assert touched == Rect(318, 0, 319, 2)
    assert surface.getpixel((318, 0)) == 1
    assert surface.getpixel((318, 1)) == 1
    assert surface.getpixel((319, 0)) == 0


def test_empty_bitmap_draws_nothing():
    surface = new_surface()

    touched = draw_bitmap(surface, Bitmap.empty(), 10, 20)

    assert touched.is_empty()
    assert surface.getbbox() is None


def test_trans_blit_copies_only_the_window():
    src = new_surface()
    src.paste(4, (0, 0, 320, 200))
    dst = new_surface()

    trans_blit(dst, src, Rect(10, 10, 12, 12))

    assert dst.getpixel((10, 10)) == 4
    assert dst.getpixel((12, 12)) == 0


def test_to_rgb_applies_palette():
    surface = new_surface()
    surface.putpixel((0, 0), 1)
    palette = bytes([0, 0, 0, 255, 128, 4]) + bytes(762)

    image = to_rgb(surface, palette)

    assert image.getpixel((0, 0)) == (255, 128, 4)
    assert image.getpixel((1, 0)) == (0, 0, 0)
