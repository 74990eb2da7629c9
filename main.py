#!/usr/bin/env python3
"""regvm Command Line Interface.

Load a binary memory image into the register VM and run it.

Usage:
    python main.py program.bin
    python main.py --hex "04 01 05 00 08 01 07" --trace
"""

import argparse
import logging
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent / "src"))

from regvm import Machine, VMError, WriteError, disassemble

logger = logging.getLogger("regvm.main")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="regvm: register-based bytecode virtual machine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Run a memory image, program output on stdout
    python main.py hello.bin

    # Run inline bytes: r1 = 5, r2 = 7, r3 = r1 - r2, print r3, exit
    python main.py --hex "04 01 05 00 04 02 07 00 05 03 01 02 08 03 07"

    # Stop after 1000 steps, print the execution trace on stderr
    python main.py loop.bin --max-steps 1000 --trace
        """
    )

    parser.add_argument(
        "image",
        nargs="?",
        type=str,
        help="Path to memory image file (at most 4096 bytes)"
    )
    parser.add_argument(
        "--hex",
        type=str,
        help="Inline memory image as hex bytes (whitespace ignored)"
    )
    parser.add_argument(
        "--output", "-o",
        type=str,
        help="Write program output to this file instead of stdout"
    )
    parser.add_argument(
        "--max-steps",
        type=int,
        default=0,
        help="Stop with an error after this many steps (0 = unbounded). Default: 0"
    )
    parser.add_argument(
        "--disassemble", "-d",
        action="store_true",
        help="Print the disassembled image and exit without running"
    )
    parser.add_argument(
        "--trace", "-t",
        action="store_true",
        help="Print the execution trace on stderr"
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Do not print the final state summary"
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging of every step"
    )
    return parser


def load_image(args, parser: argparse.ArgumentParser) -> bytes:
    if args.hex is not None:
        try:
            return bytes.fromhex("".join(args.hex.split()))
        except ValueError as e:
            parser.error(f"invalid --hex image: {e}")
    image_path = Path(args.image)
    if not image_path.is_file():
        parser.error(f"image file not found: {args.image}")
    return image_path.read_bytes()


def report(error: VMError) -> None:
    print(f"Error: {error.kind}: {error}", file=sys.stderr)


def run_bounded(machine: Machine, sink, max_steps: int) -> bool:
    """Step the machine at most `max_steps` times.

    Returns:
        True if the program exited within the bound
    """
    for _ in range(max_steps):
        if machine.step_on(sink):
            return True
    return False


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.image and args.hex is None:
        parser.error("Either an image path or --hex is required")
    if args.image and args.hex is not None:
        parser.error("Give either an image path or --hex, not both")
    if args.max_steps < 0:
        parser.error("--max-steps must be >= 0")

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    image = load_image(args, parser)

    try:
        machine = Machine(image, trace=args.trace)
    except VMError as e:
        report(e)
        return 1

    if args.disassemble:
        print(disassemble(machine.memory, 0, len(image)))
        return 0

    try:
        out = open(args.output, "wb") if args.output else sys.stdout.buffer
    except OSError as e:
        report(WriteError(f"cannot open output {args.output}: {e}"))
        return 1

    status = 0
    try:
        if args.max_steps:
            if not run_bounded(machine, out, args.max_steps):
                logger.warning("step limit of %d reached", args.max_steps)
                print(f"Error: step limit ({args.max_steps}) reached", file=sys.stderr)
                status = 1
        else:
            machine.run_on(out)
    except VMError as e:
        report(e)
        status = 1
    finally:
        # buffered output can still fail here
        try:
            if args.output:
                out.close()
            else:
                out.flush()
        except OSError as e:
            report(WriteError(f"flushing output failed: {e}"))
            status = 1

    if args.trace:
        print(machine.format_trace(), file=sys.stderr)
    if not args.quiet:
        summary = machine.get_summary()
        print(f"Steps: {summary['steps']}", file=sys.stderr)
        regs = " ".join(
            f"r{i}={v}" for i, v in enumerate(summary["signed"]) if v
        )
        print(f"Registers: {regs or '(all zero)'}", file=sys.stderr)

    return status


if __name__ == "__main__":
    sys.exit(main())
