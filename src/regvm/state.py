"""MachineState: register file and memory arena for the register VM.

State Components:
    - Registers: r0-r15, unsigned 32-bit words. r0 is the instruction pointer.
    - Memory: flat 4096-byte arena, no protection regions.

Unlike an immutable CPU model, the state is created once and mutated in place
by every executed instruction. Neither the register list nor the arena is
ever reallocated after construction.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Type

from .errors import MemAddressOutOfRange, MemoryOverflow, VMError


MEMORY_SIZE = 4096
NUM_REGISTERS = 16
IP = 0
WORD_SIZE = 4

WORD_MASK = 0xFFFFFFFF


def to_signed(value: int) -> int:
    """Interpret a 32-bit word as a two's-complement integer."""
    value &= WORD_MASK
    return value - (1 << 32) if value & 0x80000000 else value


def to_word(value: int) -> int:
    """Reduce any integer to an unsigned 32-bit word (wrapping)."""
    return value & WORD_MASK


def check_register(index: int, error: Type[VMError] = MemAddressOutOfRange) -> int:
    """Validate a register index against [0, NUM_REGISTERS).

    Args:
        index: Register index to check
        error: Error class raised on failure. Instruction operands report
            MemAddressOutOfRange, external accessors RegIndexOutOfRange.

    Returns:
        The index, unchanged

    Raises:
        error: If index is negative or >= NUM_REGISTERS
    """
    if not 0 <= index < NUM_REGISTERS:
        raise error(f"Invalid register index: {index}")
    return index


def check_span(address: int, length: int = WORD_SIZE) -> int:
    """Validate that [address, address + length) lies inside the arena.

    Raises:
        MemAddressOutOfRange: If any byte of the span is outside memory
    """
    if address < 0 or address + length > MEMORY_SIZE:
        raise MemAddressOutOfRange(
            f"Access of {length} bytes at {address:#06x} exceeds memory size {MEMORY_SIZE}"
        )
    return address


@dataclass
class MachineState:
    """Mutable machine state.

    Attributes:
        registers: 16 unsigned 32-bit register values, r0 is the IP
        memory: The 4096-byte arena
    """
    registers: List[int] = field(default_factory=lambda: [0] * NUM_REGISTERS)
    memory: bytearray = field(default_factory=lambda: bytearray(MEMORY_SIZE))

    @property
    def ip(self) -> int:
        return self.registers[IP]

    @ip.setter
    def ip(self, value: int) -> None:
        self.registers[IP] = to_word(value)

    def read_word(self, address: int) -> int:
        """Read a little-endian 32-bit word, checking the span first."""
        check_span(address)
        return int.from_bytes(self.memory[address:address + WORD_SIZE], "little")

    def write_word(self, address: int, value: int) -> None:
        """Write a 32-bit word as 4 little-endian bytes, checking the span first."""
        check_span(address)
        self.memory[address:address + WORD_SIZE] = to_word(value).to_bytes(WORD_SIZE, "little")

    def snapshot(self) -> Dict:
        """Copy of the register file for tracing.

        Memory is excluded; it is large and inspected through the machine.
        """
        return {
            "registers": list(self.registers),
            "ip": self.ip,
        }

    def __str__(self) -> str:
        regs = " ".join(f"r{i}={v:#x}" for i, v in enumerate(self.registers) if i and v)
        return f"IP={self.ip:#06x} {regs}".rstrip()


def create_initial_state(image: bytes = b"") -> MachineState:
    """Create the reset state with `image` loaded at offset 0.

    Args:
        image: Initial memory contents (program and data)

    Returns:
        Fresh MachineState, all registers zero, memory zero-extended

    Raises:
        MemoryOverflow: If the image is larger than the arena
    """
    if len(image) > MEMORY_SIZE:
        raise MemoryOverflow(
            f"Image of {len(image)} bytes does not fit in {MEMORY_SIZE} bytes of memory"
        )
    memory = bytearray(MEMORY_SIZE)
    memory[:len(image)] = image
    return MachineState(registers=[0] * NUM_REGISTERS, memory=memory)
