import logging
import struct

from dgdstools.errors import FormatError, UnsupportedOpcode
from dgdstools.graphics import SCREEN_RECT, Bitmap, Rect, copy_rect, draw_bitmap, fill_rect
from dgdstools.resources import BitmapSet, Palette, Screen, Song

logger = logging.getLogger(__name__)

DELAY_UNIT_MS = 10
STRING_OPERAND = 0x0f

STATUS_READY = "ready"
STATUS_RUNNING = "running"
STATUS_HALTED = "halted"

FINISH = 0x0000
SAVE_BACKGROUND = 0x0020
REFRESH = 0x0ff0
DELAY = 0x1020
SET_BITMAP = 0x1030
SELECT_BITMAP = 0x1050
SELECT_SCREEN = 0x1060
SELECT_SONG = 0x1090
SET_SCENE = 0x1110
SET_CLIP_WINDOW = 0x4000
FADE_OUT = 0x4110
FADE_IN = 0x4120
STORE_AREA = 0x4200
MERGE_LAYERS = 0xa050
SET_BITMAP_WINDOW = 0xa100
DRAW_BITMAP = 0xa500
DRAW_BITMAP_ALT = 0xa520
LOAD_SCREEN = 0xf010
LOAD_BITMAP = 0xf020
LOAD_PALETTE = 0xf050
LOAD_SONG = 0xf060

OPCODE_NAMES = {
    FINISH: "FINISH",
    SAVE_BACKGROUND: "SAVE_BACKGROUND",
    0x0080: "UNKNOWN_0080",
    0x0110: "PURGE",
    REFRESH: "REFRESH",
    DELAY: "DELAY",
    SET_BITMAP: "SET_BITMAP",
    SELECT_BITMAP: "SELECT_BITMAP",
    SELECT_SCREEN: "SELECT_SCREEN",
    SELECT_SONG: "SELECT_SONG",
    0x10a0: "SET_SCR",
    0x1100: "UNKNOWN_1100",
    SET_SCENE: "SET_SCENE",
    0x1300: "PLAY_SFX",
    0x1310: "STOP_SFX",
    0x2000: "SET_COLORS",
    SET_CLIP_WINDOW: "SET_CLIP_WINDOW",
    FADE_OUT: "FADE_OUT",
    FADE_IN: "FADE_IN",
    STORE_AREA: "STORE_AREA",
    MERGE_LAYERS: "MERGE_LAYERS",
    SET_BITMAP_WINDOW: "SET_BITMAP_WINDOW",
    DRAW_BITMAP: "DRAW_BITMAP",
    DRAW_BITMAP_ALT: "DRAW_BITMAP",
    0xa530: "DRAW_BITMAP_FLIP",
    LOAD_SCREEN: "LOAD_SCREEN",
    LOAD_BITMAP: "LOAD_BITMAP",
    LOAD_PALETTE: "LOAD_PALETTE",
    LOAD_SONG: "LOAD_SONG",
}


class Instruction:
    def __init__(self, offset, code, args):
        self.offset = offset
        self.code = code
        self.args = args

    @property
    def op(self):
        return self.code & 0xfff0

    @property
    def count(self):
        return self.code & 0x000f

    @property
    def name(self):
        return OPCODE_NAMES.get(self.op, "UNKNOWN_%04X" % self.op)

    def __str__(self):
        if isinstance(self.args, str):
            operands = "\"%s\"" % self.args
        else:
            operands = " ".join("%d" % x for x in self.args)

        return "%04x: %-18s %s" % (self.offset, self.name, operands)


def read_string_operand(script, offset):
    chars = bytearray()

    while True:
        pair = script[offset:offset + 2]
        if len(pair) != 2:
            raise FormatError("unterminated string operand at %04x" % offset)

        offset += 2

        if pair[0] == 0:
            break

        chars.append(pair[0])

        if pair[1] == 0:
            break

        chars.append(pair[1])

    return chars.decode("latin-1"), offset


def read_instruction(script, offset):
    """Decode the instruction at `offset`, returning it and the next offset."""
    if offset + 2 > len(script):
        raise FormatError("truncated opcode at %04x" % offset)

    start = offset
    code = struct.unpack_from("<H", script, offset)[0]
    offset += 2

    count = code & 0x0f
    if count == STRING_OPERAND:
        args, offset = read_string_operand(script, offset)

    else:
        if offset + count * 2 > len(script):
            raise FormatError("truncated operands for 0x%04X at %04x" % (code, start))

        args = list(struct.unpack_from("<%dh" % count, script, offset))
        offset += count * 2

    return Instruction(start, code, args), offset


class TTMState:
    def __init__(self):
        self.reset()

    def reset(self):
        self.offset = 0
        self.scene = 0
        self.delay = 0
        self.status = STATUS_READY

    def consume_delay(self):
        delay = self.delay
        self.delay = 0
        return delay

    @property
    def halted(self):
        return self.status == STATUS_HALTED

    def __repr__(self):
        return "<TTMState %s offset[%04x] scene[%d] delay[%d]>" % (self.status, self.offset, self.scene, self.delay)


class TTMInterpreter:
    """Runs one scene script against a playback context.

    `run()` executes until an instruction that changes the visible frame has
    been handled (True) or the script finishes (False).
    """

    def __init__(self, context, data, strict=False):
        self.context = context
        self.data = data
        self.strict = strict

        # opcode: (handler, accepted operand counts, yields)
        self.handlers = {
            FINISH: (self.op_finish, (0,), False),
            SAVE_BACKGROUND: (self.op_save_background, (0,), False),
            REFRESH: (self.op_refresh, (0,), True),
            DELAY: (self.op_delay, (1,), False),
            SET_BITMAP: (self.op_set_bitmap, (1,), False),
            SELECT_BITMAP: (self.op_select_bitmap, (1,), False),
            SELECT_SCREEN: (self.op_select_screen, (1,), False),
            SELECT_SONG: (self.op_select_song, (1,), False),
            SET_SCENE: (self.op_set_scene, (1,), False),
            SET_CLIP_WINDOW: (self.op_set_clip_window, (4,), False),
            FADE_OUT: (self.op_fade_out, None, True),
            FADE_IN: (self.op_fade_in, None, True),
            STORE_AREA: (self.op_store_area, (4,), False),
            MERGE_LAYERS: (self.op_merge_layers, None, False),
            SET_BITMAP_WINDOW: (self.op_set_bitmap_window, (4,), False),
            DRAW_BITMAP: (self.op_draw_bitmap, (2, 4), False),
            DRAW_BITMAP_ALT: (self.op_draw_bitmap, (2, 4), False),
            LOAD_SCREEN: (self.op_load_screen, (STRING_OPERAND,), False),
            LOAD_BITMAP: (self.op_load_bitmap, (STRING_OPERAND,), False),
            LOAD_PALETTE: (self.op_load_palette, (STRING_OPERAND,), False),
            LOAD_SONG: (self.op_load_song, (STRING_OPERAND,), False),
        }

    @property
    def name(self):
        return self.data.name

    def disassemble(self):
        offset = 0
        instructions = []

        while offset < len(self.data.script):
            insn, offset = read_instruction(self.data.script, offset)
            instructions.append(insn)

        return instructions

    def run(self, state):
        if state.status == STATUS_HALTED:
            return False

        state.status = STATUS_RUNNING
        script = self.data.script

        while True:
            if state.offset >= len(script):
                state.status = STATUS_HALTED
                return False

            try:
                insn, state.offset = read_instruction(script, state.offset)

            except FormatError as e:
                logger.warning("%s: %s", self.name, e)
                state.status = STATUS_HALTED
                return False

            logger.debug("%s %s", self.name, insn)

            if self.execute(state, insn):
                return True

            if state.status == STATUS_HALTED:
                return False

    def execute(self, state, insn):
        entry = self.handlers.get(insn.op)

        if entry is None:
            self.unhandled(insn)
            return False

        handler, counts, yields = entry

        if counts is not None and insn.count not in counts:
            logger.warning("%s[%04x]: %s with %d operands, skipped", self.name, insn.offset, insn.name, insn.count)
            return False

        handler(state, insn.args)
        return yields

    def unhandled(self, insn):
        error = UnsupportedOpcode(self.name, insn.offset, insn.op)

        if self.strict:
            raise error

        logger.warning("%s", error)

    def op_finish(self, state, args):
        state.status = STATUS_HALTED

    def op_save_background(self, state, args):
        self.context.save_background()

    def op_refresh(self, state, args):
        ctx = self.context
        ctx.compose()
        fill_rect(ctx.top, ctx.bitmap_window, 0)

    def op_delay(self, state, args):
        state.delay += args[0] * DELAY_UNIT_MS

    def op_set_bitmap(self, state, args):
        ctx = self.context
        bitmaps = ctx.bitmap_sets[ctx.current_bitmap]

        if args[0] < 0 or bitmaps is None:
            ctx.tiles[ctx.current_bitmap] = Bitmap.empty()
        else:
            ctx.tiles[ctx.current_bitmap] = bitmaps.tile(args[0])

    def op_select_bitmap(self, state, args):
        self.context.select_slot("bitmap", args[0])

    def op_select_screen(self, state, args):
        ctx = self.context

        if ctx.select_slot("palette", args[0]) and ctx.palettes[args[0]] is not None:
            ctx.set_palette(ctx.palettes[args[0]])

    def op_select_song(self, state, args):
        self.context.select_slot("song", args[0])

    def op_set_scene(self, state, args):
        state.scene = args[0]

    def op_set_clip_window(self, state, args):
        self.context.draw_window = Rect(*args).clip(SCREEN_RECT)

    def op_fade_out(self, state, args):
        ctx = self.context
        ctx.faded = True
        fill_rect(ctx.bottom, SCREEN_RECT, 0)
        ctx.compose()

    def op_fade_in(self, state, args):
        ctx = self.context
        ctx.faded = False
        ctx.compose()

    def op_store_area(self, state, args):
        ctx = self.context
        ctx.compose()
        copy_rect(ctx.bottom, ctx.result, Rect.from_size(*args).clip(SCREEN_RECT))

    def op_merge_layers(self, state, args):
        ctx = self.context
        ctx.top = ctx.compose().copy()

    def op_set_bitmap_window(self, state, args):
        self.context.bitmap_window = Rect.from_size(*args).clip(SCREEN_RECT)

    def op_draw_bitmap(self, state, args):
        ctx = self.context

        if len(args) == 4:
            x, y, tile, slot = args
            bitmaps = ctx.bitmap_sets[slot] if 0 <= slot < len(ctx.bitmap_sets) else None
            # tile -1 draws nothing
            if bitmaps is None or tile < 0:
                bitmap = Bitmap.empty()
            else:
                bitmap = bitmaps.tile(tile)

        else:
            x, y = args
            bitmap = ctx.tiles[ctx.current_bitmap]

        draw_bitmap(ctx.top, bitmap, x, y, ctx.draw_window)

    def load_typed(self, name, kind):
        resource = self.context.load(name)

        if resource is not None and not isinstance(resource, kind):
            logger.warning("%s: %s is not a %s", self.name, name, kind.__name__)
            return None

        return resource

    def op_load_screen(self, state, name):
        screen = self.load_typed(name, Screen)

        if screen is not None:
            self.context.bottom.paste(screen.bitmap.to_image(), (0, 0))

    def op_load_bitmap(self, state, name):
        ctx = self.context
        ctx.bitmap_sets[ctx.current_bitmap] = self.load_typed(name, BitmapSet)

    def op_load_palette(self, state, name):
        ctx = self.context
        palette = self.load_typed(name, Palette)

        if palette is not None:
            ctx.palettes[ctx.current_palette] = palette
            ctx.set_palette(palette)

    def op_load_song(self, state, name):
        ctx = self.context
        song = self.load_typed(name, Song)
        ctx.songs[ctx.current_song] = song

        if song is not None:
            ctx.audio.play(song)
