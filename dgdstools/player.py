import logging
import time

from dgdstools.ads import ADSInterpreter, ADSState
from dgdstools.resources import ADSData, TTMData
from dgdstools.ttm import TTMInterpreter, TTMState

logger = logging.getLogger(__name__)

FRAME_DELAY_MS = 40


class Player:
    """Frame-stepped host loop: one interpreter step, one presented frame, one sleep."""

    def __init__(self, context, script, strict=False, sleep=time.sleep, frame_delay=FRAME_DELAY_MS):
        self.context = context
        self.script = script
        self.sleep = sleep
        self.frame_delay = frame_delay
        self.should_quit = False
        self.frames = 0

        if isinstance(script, ADSData):
            self.interpreter = ADSInterpreter(context, script, strict)
            self.state = ADSState()

        elif isinstance(script, TTMData):
            self.interpreter = TTMInterpreter(context, script, strict)
            self.state = TTMState()

        else:
            raise TypeError("cannot play %r" % (script,))

    def consume_delay(self):
        if isinstance(self.state, ADSState):
            return self.interpreter.consume_delay(self.state)

        return self.state.consume_delay()

    def step(self):
        running = self.interpreter.run(self.state)

        self.context.present()
        self.frames += 1

        delay = self.frame_delay + self.consume_delay()
        self.sleep(delay / 1000.0)

        return running

    def play(self, max_frames=None):
        logger.info("playing %s", self.script.name)

        while not self.should_quit:
            if max_frames is not None and self.frames >= max_frames:
                break

            if not self.step():
                break

        logger.info("%s: %d frames", self.script.name, self.frames)
        return self.frames

    def quit(self):
        self.should_quit = True
