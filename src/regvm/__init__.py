"""regvm: a small register-based bytecode virtual machine.

The machine has a flat 4096-byte memory arena, sixteen unsigned 32-bit
registers (r0 is the instruction pointer) and an 8-instruction ISA. Every
operand is bounds-checked; violations raise a VMError subclass.

Architecture:
    MEMORY -> FETCH -> DECODE -> REGISTRY -> EXECUTE -> STATE
                                                 |
                                               SINK (output bytes)

Modules:
    errors: VMError and the five error kinds
    state: MachineState register file and arena
    decode: ISA table, fetch window, Instruction decoding
    sink: Output sink protocol
    registry: Opcode handlers and shared operand checks
    machine: Machine orchestrator (step, run, accessors, trace)
"""

__version__ = "0.1.0"

from .errors import (
    VMError,
    MemoryOverflow,
    RegIndexOutOfRange,
    WriteError,
    UnknownInstruction,
    MemAddressOutOfRange,
)
from .state import MachineState, MEMORY_SIZE, NUM_REGISTERS
from .decode import Instruction, decode, fetch, disassemble
from .registry import OpRegistry
from .machine import Machine, StepRecord

__all__ = [
    "Machine",
    "StepRecord",
    "MachineState",
    "OpRegistry",
    "Instruction",
    "decode",
    "fetch",
    "disassemble",
    "MEMORY_SIZE",
    "NUM_REGISTERS",
    "VMError",
    "MemoryOverflow",
    "RegIndexOutOfRange",
    "WriteError",
    "UnknownInstruction",
    "MemAddressOutOfRange",
]
