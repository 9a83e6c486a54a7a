class DgdsError(Exception):
    pass


class FormatError(DgdsError):
    """Malformed chunk framing or a truncated/corrupt compressed stream."""


class ResourceNotFound(DgdsError, KeyError):
    def __init__(self, name):
        super().__init__(name)
        self.name = name

    def __str__(self):
        return "resource not found: %s" % self.name


class UnsupportedOpcode(DgdsError):
    def __init__(self, script, offset, op):
        super().__init__(script, offset, op)
        self.script = script
        self.offset = offset
        self.op = op

    def __str__(self):
        return "%s[%04x]: unhandled opcode 0x%04X" % (self.script, self.offset, self.op)
