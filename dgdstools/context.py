import logging

import imageio
import numpy

from dgdstools.errors import FormatError
from dgdstools.graphics import SCREEN_RECT, Bitmap, copy_rect, new_surface, to_rgb, trans_blit
from dgdstools.resources import Palette

logger = logging.getLogger(__name__)

MAX_SLOTS = 16


class NullDisplay:
    def __init__(self):
        self.frames = 0

    def present(self, surface, palette):
        self.frames += 1


class FrameRecorder(NullDisplay):
    """Display that keeps every presented frame as an RGB image."""

    def __init__(self, limit=None):
        super().__init__()
        self.images = []
        self.limit = limit

    def present(self, surface, palette):
        super().present(surface, palette)

        if self.limit is None or len(self.images) < self.limit:
            self.images.append(to_rgb(surface, palette.colors))

    def save(self, output_filename, fps=25):
        if not self.images:
            logger.warning("no frames recorded, not writing %s", output_filename)
            return False

        if output_filename.lower().endswith(".gif"):
            self.images[0].save(output_filename, format="gif", save_all=True, append_images=self.images[1:], loop=0, duration=round(1000 / fps))

        else:
            with imageio.get_writer(output_filename, mode='I', fps=fps, format='FFMPEG') as writer:
                for frame in self.images:
                    writer.append_data(numpy.asarray(frame, dtype='uint8'))

        logger.info("wrote %d frames to %s", len(self.images), output_filename)
        return True


class NullAudio:
    def __init__(self):
        self.playing = None

    def play(self, song):
        self.playing = song

    def stop(self):
        self.playing = None


class PlaybackContext:
    """Everything the scripts draw into or select, shared by every interpreter of one playback."""

    def __init__(self, loader, display=None, audio=None):
        self.loader = loader
        self.display = display or NullDisplay()
        self.audio = audio or NullAudio()

        # persistent background, transient overlay, composed frame
        self.bottom = new_surface()
        self.top = new_surface()
        self.result = new_surface()

        self.palette = Palette.black()
        self.palettes = [None] * MAX_SLOTS
        self.current_palette = 0
        self.faded = False

        self.bitmap_sets = [None] * MAX_SLOTS
        self.tiles = [Bitmap.empty() for _ in range(MAX_SLOTS)]
        self.current_bitmap = 0

        self.songs = [None] * MAX_SLOTS
        self.current_song = 0

        self.draw_window = SCREEN_RECT
        self.bitmap_window = SCREEN_RECT

    def select_slot(self, kind, value):
        if value < 0 or value >= MAX_SLOTS:
            logger.warning("%s slot %d out of range", kind, value)
            return False

        setattr(self, "current_" + kind, value)
        return True

    def load(self, name):
        """Load a named resource, None if it is missing or corrupt."""
        try:
            return self.loader.load(name)

        except FormatError as e:
            logger.warning("cannot load %s: %s", name, e)
            return None

    def set_palette(self, palette):
        self.palette = palette
        self.faded = False

    def active_palette(self):
        if self.faded:
            return Palette.black()

        return self.palette

    def compose(self):
        """Bottom layer with the overlay's bitmap window on top."""
        self.result = self.bottom.copy()
        trans_blit(self.result, self.top, self.bitmap_window)
        return self.result

    def present(self):
        self.display.present(self.result, self.active_palette())

    def save_background(self):
        copy_rect(self.bottom, self.top, SCREEN_RECT)
