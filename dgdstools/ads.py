import logging
import struct

from dgdstools.errors import UnsupportedOpcode
from dgdstools.ttm import STATUS_HALTED, STATUS_READY, STATUS_RUNNING, TTMInterpreter, TTMState

logger = logging.getLogger(__name__)

PLAY_SCENE = 0x2005
PLAY_SCENE_ARGS = 4
END_BLOCK = 0xffff

OPCODE_NAMES = {
    0x1330: "UNKNOWN_1330",
    0x1350: "IF_SCENE",
    0x1510: "UNKNOWN_1510",
    PLAY_SCENE: "PLAY_SCENE",
    END_BLOCK: "END_BLOCK",
}


def is_push(code):
    return (code & 0xff00) == 0


class ADSState:
    def __init__(self):
        self.child_states = {}
        self.reset()

    def reset(self):
        self.offset = 0
        self.status = STATUS_READY
        self.active = None
        self.bound = 0
        self.child_states.clear()

    @property
    def halted(self):
        return self.status == STATUS_HALTED

    def __repr__(self):
        return "<ADSState %s offset[%04x] active[%s] bound[%d]>" % (self.status, self.offset, self.active, self.bound)


class ADSInterpreter:
    """Sequences the scene scripts listed in an ADS resource table.

    At most one child runs at a time. While a child is active every `run()`
    steps that child; once its scene reaches the requested bound the
    sequencer goes back to its own instructions.
    """

    def __init__(self, context, data, strict=False):
        self.context = context
        self.data = data
        self.strict = strict

        self.children = []
        for ttm in data.children():
            self.children.append(TTMInterpreter(context, ttm, strict) if ttm is not None else None)

    @property
    def name(self):
        return self.data.name

    def child_for(self, resource_id):
        idx = self.data.child_index(resource_id)

        # Not a RES id, fall back to the position in the table
        if idx is None and 0 <= resource_id < len(self.children):
            idx = resource_id

        return idx

    def read_word(self, offset):
        return struct.unpack_from("<H", self.data.script, offset)[0]

    def disassemble(self):
        script = self.data.script
        offset = 0
        lines = []

        while offset + 2 <= len(script):
            start = offset
            code = self.read_word(offset)
            offset += 2

            if is_push(code):
                lines.append("%04x: PUSH %d" % (start, code))

            elif code == PLAY_SCENE and offset + PLAY_SCENE_ARGS * 2 <= len(script):
                args = struct.unpack_from("<%dH" % PLAY_SCENE_ARGS, script, offset)
                offset += PLAY_SCENE_ARGS * 2
                lines.append("%04x: PLAY_SCENE %s" % (start, " ".join("%d" % x for x in args)))

            else:
                lines.append("%04x: %s" % (start, OPCODE_NAMES.get(code, "OP 0x%04X" % code)))

        return lines

    def run(self, state):
        if state.status == STATUS_HALTED:
            return False

        state.status = STATUS_RUNNING

        if state.active is not None:
            return self.run_child(state)

        script = self.data.script

        while True:
            if state.offset + 2 > len(script):
                state.status = STATUS_HALTED
                return False

            start = state.offset
            code = self.read_word(start)
            state.offset += 2

            if is_push(code):
                logger.debug("%s %04x: PUSH %d", self.name, start, code)
                continue

            if code == END_BLOCK:
                logger.debug("%s %04x: END_BLOCK", self.name, start)
                continue

            if code != PLAY_SCENE:
                self.unhandled(start, code)
                continue

            if state.offset + PLAY_SCENE_ARGS * 2 > len(script):
                logger.warning("%s[%04x]: truncated PLAY_SCENE", self.name, start)
                state.status = STATUS_HALTED
                return False

            resource_id, bound, _, _ = struct.unpack_from("<%dH" % PLAY_SCENE_ARGS, script, state.offset)
            state.offset += PLAY_SCENE_ARGS * 2
            logger.debug("%s %04x: PLAY_SCENE %d %d", self.name, start, resource_id, bound)

            if self.activate(state, resource_id, bound):
                return self.run_child(state)

    def activate(self, state, resource_id, bound):
        idx = self.child_for(resource_id)

        if idx is None or self.children[idx] is None:
            logger.warning("%s: no scene script for resource %d", self.name, resource_id)
            return False

        child_state = state.child_states.setdefault(idx, TTMState())

        if child_state.halted:
            child_state.reset()

        if child_state.scene >= bound and child_state.status != STATUS_READY:
            logger.debug("%s: %s already at scene %d", self.name, self.children[idx].name, child_state.scene)
            return False

        state.active = idx
        state.bound = bound
        return True

    def run_child(self, state):
        child = self.children[state.active]
        child_state = state.child_states[state.active]

        running = child.run(child_state)

        if not running or child_state.scene >= state.bound:
            logger.debug("%s: %s done at scene %d", self.name, child.name, child_state.scene)
            state.active = None

        return True

    def consume_delay(self, state):
        # a child that just finished may still hold its last delay
        return sum(child_state.consume_delay() for child_state in state.child_states.values())

    def unhandled(self, offset, code):
        error = UnsupportedOpcode(self.name, offset, code)

        if self.strict:
            raise error

        logger.warning("%s", error)
