"""Conversion of CVP-1 value-prediction traces into the standard instruction trace format."""

from __future__ import annotations

import gzip
import io
import lzma
import struct
import sys
from collections import Counter
from dataclasses import dataclass
from enum import IntEnum
from typing import BinaryIO, Iterable, Iterator, Optional

from champtrace.trace_format import (
    NUM_INSTR_SOURCES,
    REG_FLAGS,
    REG_INSTRUCTION_POINTER,
    REG_STACK_POINTER,
    InputInstr,
)

# A register that stands in for "some other source" of an indirect branch.
REG_AX = 56

# ARM links the return address in this register.
_LINK_REGISTER = 30

_PAGE_SHIFT = 12
_PAGE_OFFSET_MASK = 0xFFF
_FIRST_REMAP_PAGE = 0x1000
_MASK64 = (1 << 64) - 1

_XZ_MAGIC = b"\xfd7zXZ\x00"
_GZIP_MAGIC = b"\x1f\x8b"

# Special registers are moved out of the way of the branch-detection registers.
_REGISTER_REMAP = {
    REG_INSTRUCTION_POINTER: 64,
    REG_STACK_POINTER: 65,
    REG_FLAGS: 66,
    0: 67,
}


class InstClass(IntEnum):
    """Instruction classes recorded in CVP-1 traces."""

    ALU = 0
    LOAD = 1
    STORE = 2
    COND_BRANCH = 3
    UNCOND_DIRECT_BRANCH = 4
    UNCOND_INDIRECT_BRANCH = 5
    FP = 6
    SLOW_ALU = 7
    UNDEF = 8


class OpType(IntEnum):
    """Branch kinds, as used by branch prediction championships."""

    OP = 2
    RET_UNCOND = 3
    JMP_DIRECT_UNCOND = 4
    JMP_INDIRECT_UNCOND = 5
    CALL_DIRECT_UNCOND = 6
    CALL_INDIRECT_UNCOND = 7
    RET_COND = 8
    JMP_DIRECT_COND = 9
    JMP_INDIRECT_COND = 10
    CALL_DIRECT_COND = 11
    CALL_INDIRECT_COND = 12
    ERROR = 13
    MAX = 14

    @property
    def label(self) -> str:
        return f"OPTYPE_{self.name}"


_BRANCH_CLASSES = frozenset(
    {InstClass.COND_BRANCH, InstClass.UNCOND_DIRECT_BRANCH, InstClass.UNCOND_INDIRECT_BRANCH}
)
_UNCONDITIONAL_CLASSES = frozenset({InstClass.UNCOND_DIRECT_BRANCH, InstClass.UNCOND_INDIRECT_BRANCH})


@dataclass(frozen=True)
class CvpRecord:
    """One instruction from a CVP-1 trace."""

    pc: int
    inst_class: InstClass
    ea: int = 0
    access_size: int = 0
    taken: bool = False
    target: int = 0
    input_regs: tuple[int, ...] = ()
    output_regs: tuple[int, ...] = ()
    output_values: tuple[int, ...] = ()


def _read_exact(stream: BinaryIO, count: int) -> bytes:
    parts = []
    remaining = count
    while remaining > 0:
        piece = stream.read(remaining)
        if not piece:
            break
        parts.append(piece)
        remaining -= len(piece)
    return b"".join(parts)


def _require(stream: BinaryIO, count: int) -> bytes:
    data = _read_exact(stream, count)
    if len(data) != count:
        raise ValueError("truncated CVP record")
    return data


def _u8(stream: BinaryIO) -> int:
    return _require(stream, 1)[0]


def _u64(stream: BinaryIO) -> int:
    return struct.unpack("<Q", _require(stream, 8))[0]


def read_record(stream: BinaryIO) -> Optional[CvpRecord]:
    """Read one record; return None at the end of the trace.

    Raises ValueError for a truncated or malformed record.
    """
    head = _read_exact(stream, 8)
    if len(head) < 8:
        return None
    pc = struct.unpack("<Q", head)[0]

    raw_class = _u8(stream)
    try:
        inst_class = InstClass(raw_class)
    except ValueError:
        raise ValueError(f"unknown instruction class {raw_class} at pc {pc:#x}") from None

    ea = 0
    access_size = 0
    taken = False
    target = 0
    if inst_class in (InstClass.LOAD, InstClass.STORE):
        ea = _u64(stream)
        access_size = _u8(stream)
    elif inst_class in _BRANCH_CLASSES:
        taken = bool(_u8(stream))
        if taken:
            target = _u64(stream)
        else:
            if inst_class in _UNCONDITIONAL_CLASSES:
                raise ValueError(f"unconditional branch at pc {pc:#x} is not taken")
            # The fall-through of a not-taken branch.
            target = (pc + 4) & _MASK64

    num_inputs = _u8(stream)
    input_regs = tuple(_require(stream, num_inputs))
    num_outputs = _u8(stream)
    output_regs = tuple(_require(stream, num_outputs))

    values = []
    for reg in output_regs:
        if reg <= 31 or reg == 64:
            values.append(int.from_bytes(_require(stream, 8), "little"))
        elif 32 <= reg < 64:
            values.append(int.from_bytes(_require(stream, 16), "little"))
        else:
            raise ValueError(f"unknown output register {reg} at pc {pc:#x}")

    return CvpRecord(
        pc=pc,
        inst_class=inst_class,
        ea=ea,
        access_size=access_size,
        taken=taken,
        target=target,
        input_regs=input_regs,
        output_regs=output_regs,
        output_values=tuple(values),
    )


def _iter_cvp(stream: BinaryIO) -> Iterator[CvpRecord]:
    while (record := read_record(stream)) is not None:
        yield record


def is_branch(inst_class: InstClass) -> bool:
    """True for the three branch instruction classes."""
    return inst_class in _BRANCH_CLASSES


def open_trace(path: str) -> BinaryIO:
    """Open a CVP trace, decompressing xz or gzip by its magic number; "-" means standard input."""
    if path == "-":
        print("reading from standard input", file=sys.stderr, flush=True)
        return sys.stdin.buffer

    with open(path, "rb") as probe:
        magic = probe.read(len(_XZ_MAGIC))
    if len(magic) < len(_XZ_MAGIC):
        raise ValueError(f"{path}: too short to be a trace file")

    if magic == _XZ_MAGIC:
        print(f'opening xz file "{path}"', file=sys.stderr, flush=True)
        return lzma.open(path, "rb")
    if magic.startswith(_GZIP_MAGIC):
        print(f'opening gz file "{path}"', file=sys.stderr, flush=True)
        return gzip.open(path, "rb")
    print(f'opening file "{path}"', file=sys.stderr, flush=True)
    return open(path, "rb")


class PageRemapper:
    """Moves data addresses that fall on code pages onto fresh, unused pages."""

    def __init__(self, code_pages: Iterable[int], data_pages: Iterable[int]):
        self.code_pages = set(code_pages)
        self.data_pages = set(data_pages)
        self.remapped: dict[int, int] = {}
        self._bump_page = _FIRST_REMAP_PAGE
        self._allocations = 0

    def _allocate(self) -> int:
        self._allocations += 1
        print(f"[{self._allocations}]", end="", file=sys.stderr, flush=True)
        page = self._bump_page
        while page in self.code_pages or page in self.data_pages:
            page += 1
        self._bump_page = page + 1
        return page

    def transform(self, address: int) -> int:
        """Return ``address``, moved off any code page while keeping its page offset."""
        page = address >> _PAGE_SHIFT
        if page in self.code_pages:
            new_page = self.remapped.get(page)
            if new_page is None:
                new_page = self._allocate()
                self.remapped[page] = new_page
            page = new_page
        return ((page << _PAGE_SHIFT) | (address & _PAGE_OFFSET_MASK)) & _MASK64


def scan_pages(records: Iterable[CvpRecord]) -> tuple[set[int], set[int]]:
    """Collect the code pages and the data pages touched by ``records``."""
    code_pages: set[int] = set()
    data_pages: set[int] = set()
    for record in records:
        code_pages.add(record.pc >> _PAGE_SHIFT)
        if record.inst_class in (InstClass.LOAD, InstClass.STORE):
            data_pages.add(record.ea >> _PAGE_SHIFT)
    return code_pages, data_pages


def classify_branch(record: CvpRecord) -> OpType:
    """Work out what kind of branch ``record`` is, or OP for a non-branch."""
    if not is_branch(record.inst_class):
        return OpType.OP
    if record.inst_class is InstClass.COND_BRANCH:
        return OpType.JMP_DIRECT_COND

    if not record.target:
        raise ValueError(f"unconditional branch at pc {record.pc:#x} has no target")

    indirect = record.inst_class is InstClass.UNCOND_INDIRECT_BRANCH
    if record.output_regs == (_LINK_REGISTER,):
        op = OpType.CALL_INDIRECT_UNCOND if indirect else OpType.CALL_DIRECT_UNCOND
    else:
        op = OpType.JMP_INDIRECT_UNCOND if indirect else OpType.JMP_DIRECT_UNCOND

    if record.input_regs == (_LINK_REGISTER,):
        op = OpType.RET_UNCOND
    return op


def _branch_instr(record: CvpRecord, op: OpType) -> InputInstr:
    ip_reg, sp_reg = REG_INSTRUCTION_POINTER, REG_STACK_POINTER
    taken = 1
    if op is OpType.JMP_DIRECT_UNCOND:
        dest, src = (ip_reg,), ()
        taken = int(record.taken)
    elif op is OpType.JMP_DIRECT_COND:
        dest, src = (ip_reg,), (ip_reg, REG_FLAGS)
        taken = int(record.taken)
    elif op is OpType.CALL_INDIRECT_UNCOND:
        dest, src = (ip_reg, sp_reg), (ip_reg, sp_reg, REG_AX)
    elif op is OpType.CALL_DIRECT_UNCOND:
        dest, src = (ip_reg, sp_reg), (ip_reg, sp_reg)
    elif op is OpType.JMP_INDIRECT_UNCOND:
        dest, src = (ip_reg,), (REG_AX,)
    elif op is OpType.RET_UNCOND:
        dest, src = (ip_reg, sp_reg), (sp_reg,)
    else:
        raise ValueError(f"cannot encode branch kind {op.label}")
    return InputInstr(
        ip=record.pc,
        is_branch=1,
        branch_taken=taken,
        destination_registers=dest,
        source_registers=src,
    )


def _remap_register(reg: int) -> int:
    return _REGISTER_REMAP.get(reg, reg)


def convert_record(record: CvpRecord, remapper: PageRemapper) -> InputInstr:
    """Build the standard trace record for one CVP record."""
    op = classify_branch(record)
    if op is not OpType.OP:
        return _branch_instr(record, op)

    inputs = record.input_regs[:NUM_INSTR_SOURCES]
    first_output = record.output_regs[0] if record.output_regs else 0

    source_memory: tuple[int, ...] = ()
    destination_memory: tuple[int, ...] = ()
    if record.inst_class is InstClass.LOAD:
        source_memory = (remapper.transform(record.ea),)
    elif record.inst_class is InstClass.STORE:
        destination_memory = (remapper.transform(record.ea),)
    elif record.inst_class is InstClass.UNDEF:
        raise ValueError(f"undefined instruction at pc {record.pc:#x}")

    return InputInstr(
        ip=record.pc,
        is_branch=0,
        branch_taken=0,
        destination_registers=(_remap_register(first_output),),
        source_registers=tuple(_remap_register(r) for r in inputs),
        destination_memory=destination_memory,
        source_memory=source_memory,
    )


_CLASS_LABELS = {
    InstClass.ALU: "ALU",
    InstClass.FP: "FP",
    InstClass.SLOW_ALU: "SLOWALU",
}


def _describe(index: int, record: CvpRecord, op: OpType) -> str:
    text = f"{index} {record.pc:x} "
    if op is not OpType.OP:
        return text + f"{op.label} {record.target:x}"
    if record.inst_class is InstClass.LOAD:
        text += f"LOAD (0x{record.ea:x})"
    elif record.inst_class is InstClass.STORE:
        text += f"STORE (0x{record.ea:x})"
    else:
        text += _CLASS_LABELS.get(record.inst_class, "")
    inputs = record.input_regs[:NUM_INSTR_SOURCES]
    outputs = record.output_regs or (0,)
    text += "".join(f" I{r}" for r in inputs)
    text += "".join(f" O{r}" for r in outputs)
    return text


def _with_scan_progress(records: Iterable[CvpRecord]) -> Iterator[CvpRecord]:
    for count, record in enumerate(records, start=1):
        yield record
        if count % 10_000_000 == 0:
            print(".", end="", file=sys.stderr, flush=True)
            if count % 600_000_000 == 0:
                print(file=sys.stderr, flush=True)


def convert(path: str, out: BinaryIO, verbose: bool = False) -> Counter:
    """Convert the CVP trace at ``path`` (or "-" for stdin), writing records to ``out``.

    Returns how many instructions of each ``OpType`` were converted.
    """
    log = sys.stderr
    if path == "-":
        print("reading from standard input", file=log, flush=True)
        stdin_data = sys.stdin.buffer.read()

        def opener() -> BinaryIO:
            return io.BytesIO(stdin_data)

    else:

        def opener() -> BinaryIO:
            return open_trace(path)

    print("preprocessing to find code and data pages...", file=log, flush=True)
    with opener() as stream:
        code_pages, data_pages = scan_pages(_with_scan_progress(_iter_cvp(stream)))
    print(f"{len(code_pages)} code pages, {len(data_pages)} data pages", file=log, flush=True)

    remapper = PageRemapper(code_pages, data_pages)
    counts: Counter = Counter()
    converted = 0
    previous_pc = 0
    with opener() as stream:
        for record in _iter_cvp(stream):
            converted += 1
            if converted % 1_000_000 == 0:
                print(f"{converted} instructions", file=log, flush=True)
            if record.pc == previous_pc:
                print("hmm, that's weird", file=log)
            previous_pc = record.pc

            op = classify_branch(record)
            counts[op] += 1
            out.write(convert_record(record, remapper).pack())
            if verbose:
                print(_describe(converted, record, op), file=log)

    print(f"converted {converted} instructions", file=log)
    for op in OpType:
        if op in (OpType.MAX,) or not counts[op]:
            continue
        share = 100 * counts[op] / converted
        print(f"{op.label} {counts[op]} {share:f}%", file=log)
    return counts


def main(argv: Optional[list[str]] = None) -> int:
    """Convert a CVP trace named on the command line (default stdin) to stdout."""
    args = sys.argv[1:] if argv is None else argv
    verbose = False
    path = "-"
    for arg in args:
        if arg == "-v":
            verbose = True
        else:
            path = arg

    out = sys.stdout.buffer
    try:
        convert(path, out, verbose)
    except OSError as exc:
        print(f"{path}: {exc.strerror or exc}", file=sys.stderr)
        return 1
    except ValueError as exc:
        print(f"{path}: {exc}", file=sys.stderr)
        return 1
    out.flush()
    return 0