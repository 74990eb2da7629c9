"""Error taxonomy for the register VM.

Every failure the machine can report is a subclass of VMError. None of them
are recovered from inside the package: they surface from the construction,
step or run call that detected them.
"""


class VMError(Exception):
    """Base class for all machine errors.

    Attributes:
        kind: Stable name of the error kind (matches the class name)
    """
    kind = "VMError"


class MemoryOverflow(VMError):
    """Initial memory image is larger than the arena."""
    kind = "MemoryOverflow"


class RegIndexOutOfRange(VMError):
    """External register access used an index outside r0-r15."""
    kind = "RegIndexOutOfRange"


class WriteError(VMError):
    """The output sink rejected a write."""
    kind = "WriteError"


class UnknownInstruction(VMError):
    """Opcode not in the ISA, or IP already past the end of memory."""
    kind = "UnknownInstruction"


class MemAddressOutOfRange(VMError):
    """Operand register index >= 16, or an access/advance outside the arena."""
    kind = "MemAddressOutOfRange"
