"""Machine: fetch-decode-execute loop of the register VM.

This module ties the pipeline together:
    MEMORY -> FETCH -> DECODE -> REGISTRY -> EXECUTE -> STATE (+ SINK)

A Machine owns one MachineState for its whole life. Output only ever goes to
the sink passed into step_on/run_on; step/run use standard output.
"""

import logging
from collections import deque
from dataclasses import dataclass
from typing import Deque, Dict, List, Optional, Tuple

from .decode import Instruction, decode, fetch
from .errors import RegIndexOutOfRange, VMError
from .registry import OpRegistry, get_registry
from .sink import Sink, default_sink
from .state import MachineState, check_register, create_initial_state, to_signed, to_word

logger = logging.getLogger(__name__)


@dataclass
class StepRecord:
    """Single entry in the execution trace.

    Attributes:
        step: Step number (0-indexed)
        ip: Address the instruction was fetched from
        instruction: Decoded instruction
        pre_registers: Register file before execution
        post_registers: Register file after execution
        terminated: Whether the step executed exit
    """
    step: int
    ip: int
    instruction: Instruction
    pre_registers: List[int]
    post_registers: List[int]
    terminated: bool = False


class Machine:
    """Register VM with a 4096-byte arena and 16 32-bit registers.

    Attributes:
        registry: OpRegistry used to execute decoded instructions
        steps: Number of steps executed successfully
        trace: Execution trace, filled only when tracing is enabled. Holds at
            most trace_limit records; older ones are dropped.
    """

    DEFAULT_TRACE_LIMIT = 10000

    def __init__(
        self,
        image: bytes = b"",
        trace: bool = False,
        trace_limit: Optional[int] = DEFAULT_TRACE_LIMIT
    ):
        """Create a machine in its reset state.

        Args:
            image: Initial memory contents, copied at offset 0. Bytes-like or
                an iterable of ints in [0, 256).
            trace: Record a StepRecord for every executed step
            trace_limit: Keep only the most recent records (None = unbounded)

        Raises:
            MemoryOverflow: If image is larger than the memory arena
            TypeError: If image is an int rather than a byte sequence
        """
        if isinstance(image, int):
            raise TypeError(f"image must be bytes-like or an iterable of ints, not {type(image).__name__}")
        self._state: MachineState = create_initial_state(bytes(image))
        self.registry: OpRegistry = get_registry()
        self.steps = 0
        self.tracing = trace
        self.trace: Deque[StepRecord] = deque(maxlen=trace_limit)

    def step_on(self, sink: Sink) -> bool:
        """Execute one instruction, writing any output to `sink`.

        Performs: FETCH -> DECODE -> CHECK -> ADVANCE IP -> EXECUTE

        Returns:
            True if the program terminated (exit), False otherwise

        Raises:
            UnknownInstruction: IP past the end of memory, or bad opcode
            MemAddressOutOfRange: Bad operand or out-of-arena access
            WriteError: The sink rejected output
        """
        state = self._state
        ip = state.ip
        try:
            instruction = decode(fetch(state.memory, ip))
            pre = state.snapshot() if self.tracing else None
            terminated = self.registry.execute(state, instruction, sink)
        except VMError as e:
            logger.debug("step %d at %#06x failed: %s: %s", self.steps, ip, e.kind, e)
            raise

        logger.debug("step %d at %#06x: %s", self.steps, ip, instruction)
        if self.tracing:
            self.trace.append(StepRecord(
                step=self.steps,
                ip=ip,
                instruction=instruction,
                pre_registers=pre["registers"],
                post_registers=state.snapshot()["registers"],
                terminated=terminated,
            ))
        self.steps += 1
        if terminated:
            logger.debug("program exited after %d steps", self.steps)
        return terminated

    def step(self) -> bool:
        """Like step_on, printing output on standard output."""
        return self.step_on(default_sink())

    def run_on(self, sink: Sink) -> None:
        """Run until the program exits. Any error aborts the run and propagates."""
        while not self.step_on(sink):
            pass

    def run(self) -> None:
        """Like run_on, printing output on standard output."""
        self.run_on(default_sink())

    @property
    def regs(self) -> Tuple[int, ...]:
        """Read-only copy of the register file."""
        return tuple(self._state.registers)

    @property
    def memory(self) -> memoryview:
        """Read-only view of the memory arena."""
        return memoryview(self._state.memory).toreadonly()

    @property
    def ip(self) -> int:
        return self._state.ip

    def get_reg(self, reg: int) -> int:
        """Get a register value.

        Raises:
            RegIndexOutOfRange: If reg is not in [0, 16)
        """
        return self._state.registers[check_register(reg, RegIndexOutOfRange)]

    def set_reg(self, reg: int, value: int) -> None:
        """Set a register to the given value, reduced modulo 2**32.

        Raises:
            RegIndexOutOfRange: If reg is not in [0, 16)
        """
        check_register(reg, RegIndexOutOfRange)
        self._state.registers[reg] = to_word(value)

    def format_trace(self) -> str:
        """Render the execution trace in human-readable form."""
        lines = []
        for record in self.trace:
            changes = [
                f"r{i}: {before:#x} -> {after:#x}"
                for i, (before, after) in enumerate(zip(record.pre_registers, record.post_registers))
                if i and before != after
            ]
            line = f"[{record.step}] {record.ip:#06x}: {record.instruction}"
            if changes:
                line += "  (" + ", ".join(changes) + ")"
            next_ip = record.post_registers[0]
            if next_ip != record.ip + record.instruction.size:
                line += f"  jump -> {next_ip:#06x}"
            if record.terminated:
                line += "  EXIT"
            lines.append(line)
        return "\n".join(lines)

    def get_summary(self) -> Dict:
        """Execution summary: step count and final registers (signed view too)."""
        return {
            "steps": self.steps,
            "ip": self.ip,
            "registers": list(self._state.registers),
            "signed": [to_signed(v) for v in self._state.registers],
        }

    def __str__(self) -> str:
        return f"[Step {self.steps}] {self._state}"
