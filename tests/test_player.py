import pytest
from PIL import Image

from builders import op, play_scene
from dgdstools import ttm
from dgdstools.context import FrameRecorder, NullDisplay, PlaybackContext
from dgdstools.graphics import Bitmap, draw_bitmap
from dgdstools.player import FRAME_DELAY_MS, Player
from dgdstools.resources import ADSData, Palette, ResourceLoader, TTMData


def _context(display=None):
    return PlaybackContext(ResourceLoader(), display)


def test_one_step_per_frame_with_script_delay():
    sleeps = []
    script = TTMData("A.TTM", op(ttm.DELAY, 2) + op(ttm.REFRESH) + op(ttm.REFRESH) + op(ttm.FINISH))
    display = NullDisplay()
    player = Player(_context(display), script, sleep=sleeps.append)

    assert player.play() == 3
    assert display.frames == 3
    assert sleeps == pytest.approx([0.06, 0.04, 0.04])
    assert FRAME_DELAY_MS == 40


def test_max_frames():
    script = TTMData("A.TTM", op(ttm.REFRESH) * 10)
    player = Player(_context(), script, sleep=lambda seconds: None)

    assert player.play(max_frames=4) == 4


def test_should_quit_is_checked_between_frames():
    script = TTMData("A.TTM", op(ttm.REFRESH) * 10)
    player = Player(_context(), script, sleep=lambda seconds: player.quit())

    assert player.play() == 1
    assert player.should_quit


def test_plays_sequence_scripts():
    child = TTMData("C.TTM", op(ttm.SET_SCENE, 1) + op(ttm.REFRESH) + op(ttm.SET_SCENE, 2) + op(ttm.REFRESH))
    ads = ADSData("S.ADS", play_scene(1, 2), resources={1: "C.TTM"})
    ads.scripts[1] = child

    player = Player(_context(), ads, sleep=lambda seconds: None)

    assert player.play() == 3


def test_refuses_other_resources():
    with pytest.raises(TypeError):
        Player(_context(), Palette.black())


def test_frame_recorder_keeps_rgb_frames(tmp_path):
    recorder = FrameRecorder(limit=2)
    context = _context(recorder)
    context.set_palette(Palette(bytes([0, 0, 0, 252, 0, 0]) + bytes(762)))
    draw_bitmap(context.top, Bitmap(1, 1, b"\x01"), 0, 0)

    player = Player(context, TTMData("A.TTM", op(ttm.REFRESH) * 3), sleep=lambda seconds: None)
    player.play()

    assert len(recorder.images) == 2
    assert recorder.images[0].getpixel((0, 0)) == (252, 0, 0)
    assert recorder.images[1].getpixel((0, 0)) == (0, 0, 0)

    output = tmp_path / "out.gif"
    assert recorder.save(str(output))

    with Image.open(str(output)) as image:
        assert image.size == (320, 200)


def test_frame_recorder_without_frames(tmp_path):
    assert FrameRecorder().save(str(tmp_path / "none.gif")) is False


def test_frame_recorder_writes_video(tmp_path):
    recorder = FrameRecorder()
    player = Player(_context(recorder), TTMData("A.TTM", op(ttm.REFRESH) * 3), sleep=lambda seconds: None)
    player.play()

    output = tmp_path / "out.mp4"
    assert recorder.save(str(output))
    assert output.stat().st_size > 0
