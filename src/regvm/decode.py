"""Instruction fetch and decode for the register VM.

Each step reads a 4-byte window at IP and decodes it once into an
Instruction: an operation key plus named operands. The executor never looks
at raw bytes again.

Architecture:
    memory[IP:IP+4] -> fetch -> window -> decode -> Instruction -> registry

Encoding:
    byte 0 is the opcode; bytes 1..3 are operands whose meaning depends on
    the opcode (see ISA). Instruction size, and so the IP advance, is a pure
    function of the opcode byte.
"""

from dataclasses import dataclass, field
from typing import Dict, Tuple

from .errors import UnknownInstruction
from .state import MEMORY_SIZE, to_signed, to_word

WINDOW_SIZE = 4


@dataclass(frozen=True)
class OpcodeSpec:
    """Static description of one opcode.

    Attributes:
        opcode: Opcode byte
        key: Registry key of the handler
        mnemonic: Disassembly mnemonic
        size: Encoded length in bytes, which is also the IP advance
        registers: Names of the register-index operands, in byte order
    """
    opcode: int
    key: str
    mnemonic: str
    size: int
    registers: Tuple[str, ...] = ()


ISA: Dict[int, OpcodeSpec] = {
    spec.opcode: spec
    for spec in (
        OpcodeSpec(1, "OP_MOVE_IF", "movif", 4, ("rd", "rs", "rc")),
        OpcodeSpec(2, "OP_STORE", "store", 3, ("ri", "rj")),
        OpcodeSpec(3, "OP_LOAD", "load", 3, ("ri", "rj")),
        OpcodeSpec(4, "OP_LOAD_IMM", "loadimm", 4, ("ri",)),
        OpcodeSpec(5, "OP_SUB", "sub", 4, ("rd", "ra", "rb")),
        OpcodeSpec(6, "OP_OUT", "out", 2, ("ri",)),
        OpcodeSpec(7, "OP_EXIT", "exit", 1),
        OpcodeSpec(8, "OP_OUT_NUMBER", "outnum", 2, ("ri",)),
    )
}


@dataclass
class Instruction:
    """A decoded instruction.

    Attributes:
        spec: OpcodeSpec of the opcode
        params: Named operands (register indices, plus "value" for loadimm)
        raw: The bytes of the instruction actually used (size bytes)
    """
    spec: OpcodeSpec
    params: Dict[str, int] = field(default_factory=dict)
    raw: bytes = b""

    @property
    def key(self) -> str:
        return self.spec.key

    @property
    def opcode(self) -> int:
        return self.spec.opcode

    @property
    def size(self) -> int:
        return self.spec.size

    def __str__(self) -> str:
        operands = [f"r{self.params[name]}" for name in self.spec.registers]
        if "value" in self.params:
            operands.append(str(to_signed(self.params["value"])))
        if not operands:
            return self.spec.mnemonic
        return f"{self.spec.mnemonic} {', '.join(operands)}"


def fetch(memory, ip: int) -> bytes:
    """Read the 4-byte instruction window starting at `ip`.

    Bytes past the end of memory read as zero. Only the window is padded,
    memory itself is never extended.

    Raises:
        UnknownInstruction: If ip is already at or past the end of memory
    """
    if ip >= MEMORY_SIZE:
        raise UnknownInstruction(f"No instruction at {ip:#06x}: past the end of memory")
    return bytes(memory[ip:ip + WINDOW_SIZE]).ljust(WINDOW_SIZE, b"\x00")


def decode(window: bytes) -> Instruction:
    """Decode an instruction window.

    Args:
        window: 4 bytes starting at the instruction's opcode

    Returns:
        Decoded Instruction. Register operands are not range-checked here;
        the registry checks them before execution.

    Raises:
        UnknownInstruction: If the opcode byte is not in the ISA
    """
    opcode = window[0]
    spec = ISA.get(opcode)
    if spec is None:
        raise UnknownInstruction(f"Unknown opcode: {opcode:#04x}")

    params = {name: window[1 + i] for i, name in enumerate(spec.registers)}
    if spec.key == "OP_LOAD_IMM":
        # 16-bit two's-complement immediate, sign-extended to 32 bits
        imm = window[2] | (window[3] << 8)
        if imm & 0x8000:
            imm -= 0x10000
        params["value"] = to_word(imm)

    return Instruction(spec=spec, params=params, raw=bytes(window[:spec.size]))


def disassemble(memory, start: int = 0, end: int = MEMORY_SIZE) -> str:
    """Render a linear disassembly of memory[start:end].

    Stops at the first byte that does not decode; data after code is not
    distinguished from instructions.
    """
    lines = []
    ip = start
    while ip < end:
        try:
            instruction = decode(fetch(memory, ip))
        except UnknownInstruction:
            break
        lines.append(f"{ip:#06x}: {instruction.raw.hex(' '):<12} {instruction}")
        ip += instruction.size
    return "\n".join(lines)
