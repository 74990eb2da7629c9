"""OpRegistry: opcode handlers for the register VM.

Each decoded Instruction carries a registry key. The registry looks up the
handler, runs the checks shared by every opcode, advances IP and then runs
the handler.

Registry Keys:
    OP_MOVE_IF: Conditional register copy (also the only jump: rd = r0)
    OP_STORE: Store a register as a little-endian word
    OP_LOAD: Load a little-endian word into a register
    OP_LOAD_IMM: Load a sign-extended 16-bit immediate
    OP_SUB: Wrapping 32-bit subtraction
    OP_OUT: Output one character
    OP_EXIT: Stop execution
    OP_OUT_NUMBER: Output a register as signed decimal

Handler signature: (MachineState, params, sink) -> terminated
"""

from typing import Callable, Dict, Optional

from .decode import Instruction
from .errors import MemAddressOutOfRange
from .sink import Sink, emit
from .state import MEMORY_SIZE, MachineState, check_register, to_signed, to_word

Handler = Callable[[MachineState, Dict[str, int], Sink], bool]


class OpRegistry:
    """Frozen registry of opcode handlers.

    Attributes:
        _handlers: Dictionary mapping instruction keys to handler functions
        _frozen: Whether the registry is locked against modifications
    """

    def __init__(self):
        self._handlers: Dict[str, Handler] = {}
        self._frozen = False
        self._register_all_handlers()
        self.freeze()

    def _register_all_handlers(self) -> None:
        # Data movement
        self.register("OP_MOVE_IF", self._op_move_if)
        self.register("OP_STORE", self._op_store)
        self.register("OP_LOAD", self._op_load)
        self.register("OP_LOAD_IMM", self._op_load_imm)

        # Arithmetic
        self.register("OP_SUB", self._op_sub)

        # Output
        self.register("OP_OUT", self._op_out)
        self.register("OP_OUT_NUMBER", self._op_out_number)

        # Control
        self.register("OP_EXIT", self._op_exit)

    def register(self, key: str, handler: Handler) -> None:
        """Register a handler.

        Raises:
            RuntimeError: If registry is frozen
            ValueError: If key already registered
        """
        if self._frozen:
            raise RuntimeError("Cannot register handlers: registry is frozen")
        if key in self._handlers:
            raise ValueError(f"Handler already registered: {key}")
        self._handlers[key] = handler

    def freeze(self) -> None:
        self._frozen = True

    def is_frozen(self) -> bool:
        return self._frozen

    def get_valid_keys(self) -> set:
        return set(self._handlers.keys())

    def execute(self, state: MachineState, instruction: Instruction, sink: Sink) -> bool:
        """Execute one decoded instruction against `state`.

        All register operands and the IP advance are checked before anything
        is mutated. IP is then advanced by the instruction size, and only
        then is the handler run, so handlers see the advanced IP in r0.

        Args:
            state: Machine state, mutated in place
            instruction: Decoded instruction at the current IP
            sink: Destination for output opcodes

        Returns:
            True if the instruction terminated the program

        Raises:
            KeyError: If the instruction key has no handler
            MemAddressOutOfRange: Bad register operand, IP advance past the
                end of memory, or a memory access outside the arena
            WriteError: If the sink rejected output
        """
        if instruction.key not in self._handlers:
            raise KeyError(f"Unknown operation key: {instruction.key}")
        handler = self._handlers[instruction.key]

        for name in instruction.spec.registers:
            check_register(instruction.params[name])

        next_ip = state.ip + instruction.size
        if next_ip > MEMORY_SIZE:
            raise MemAddressOutOfRange(
                f"{instruction.spec.mnemonic} at {state.ip:#06x} runs past the end of memory"
            )

        state.ip = next_ip
        return handler(state, instruction.params, sink)

    # =========================================================================
    # Data Movement
    # =========================================================================

    def _op_move_if(self, state: MachineState, params: Dict[str, int], sink: Sink) -> bool:
        """MOVIF rd, rs, rc - if rc != 0 then rd = rs."""
        regs = state.registers
        if regs[params["rc"]] != 0:
            regs[params["rd"]] = regs[params["rs"]]
        return False

    def _op_store(self, state: MachineState, params: Dict[str, int], sink: Sink) -> bool:
        """STORE ri, rj - memory[ri..ri+4] = rj, little-endian."""
        regs = state.registers
        state.write_word(regs[params["ri"]], regs[params["rj"]])
        return False

    def _op_load(self, state: MachineState, params: Dict[str, int], sink: Sink) -> bool:
        """LOAD ri, rj - ri = memory[rj..rj+4], little-endian."""
        regs = state.registers
        regs[params["ri"]] = state.read_word(regs[params["rj"]])
        return False

    def _op_load_imm(self, state: MachineState, params: Dict[str, int], sink: Sink) -> bool:
        """LOADIMM ri, imm16 - ri = sign-extended immediate (decoded already)."""
        state.registers[params["ri"]] = params["value"]
        return False

    # =========================================================================
    # Arithmetic
    # =========================================================================

    def _op_sub(self, state: MachineState, params: Dict[str, int], sink: Sink) -> bool:
        """SUB rd, ra, rb - rd = ra - rb, wrapping modulo 2**32."""
        regs = state.registers
        regs[params["rd"]] = to_word(regs[params["ra"]] - regs[params["rb"]])
        return False

    # =========================================================================
    # Output
    # =========================================================================

    def _op_out(self, state: MachineState, params: Dict[str, int], sink: Sink) -> bool:
        """OUT ri - emit the low byte of ri as one UTF-8 encoded character."""
        char = chr(state.registers[params["ri"]] & 0xFF)
        emit(sink, char.encode("utf-8"))
        return False

    def _op_out_number(self, state: MachineState, params: Dict[str, int], sink: Sink) -> bool:
        """OUTNUM ri - emit ri as signed decimal text."""
        number = to_signed(state.registers[params["ri"]])
        emit(sink, str(number).encode("ascii"))
        return False

    # =========================================================================
    # Control
    # =========================================================================

    def _op_exit(self, state: MachineState, params: Dict[str, int], sink: Sink) -> bool:
        return True


# Singleton registry instance
_registry: Optional[OpRegistry] = None


def get_registry() -> OpRegistry:
    """Get the singleton OpRegistry instance."""
    global _registry
    if _registry is None:
        _registry = OpRegistry()
    return _registry
