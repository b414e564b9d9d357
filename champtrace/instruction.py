"""The core model's view of an instruction, decoded from a trace record."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum

from champtrace.trace_format import (
    REG_FLAGS,
    REG_INSTRUCTION_POINTER,
    REG_STACK_POINTER,
    CloudsuiteInstr,
    InputInstr,
)

_NO_ASID = 0xFF


class BranchType(IntEnum):
    NOT_BRANCH = 0
    BRANCH_DIRECT_JUMP = 1
    BRANCH_INDIRECT = 2
    BRANCH_CONDITIONAL = 3
    BRANCH_DIRECT_CALL = 4
    BRANCH_INDIRECT_CALL = 5
    BRANCH_RETURN = 6
    BRANCH_OTHER = 7


def _nonzero(values) -> list[int]:
    return [v for v in values if v != 0]


@dataclass
class ModelInstr:
    """An in-flight instruction with its decoded registers, memory operands and branch kind."""

    instr_id: int = 0
    ip: int = 0
    event_cycle: int = 0

    is_branch: bool = False
    branch_taken: bool = False
    branch_prediction: bool = False
    # A branch can be mispredicted even when the direction is right, if the target is wrong.
    branch_mispredicted: bool = False

    asid: tuple[int, int] = (_NO_ASID, _NO_ASID)

    branch_type: BranchType = BranchType.NOT_BRANCH
    branch_target: int = 0

    dib_checked: int = 0
    fetched: int = 0
    decoded: int = 0
    scheduled: int = 0
    executed: int = 0

    completed_mem_ops: int = 0
    num_reg_dependent: int = 0

    destination_registers: list[int] = field(default_factory=list)
    source_registers: list[int] = field(default_factory=list)
    destination_memory: list[int] = field(default_factory=list)
    source_memory: list[int] = field(default_factory=list)

    registers_instrs_depend_on_me: list[ModelInstr] = field(default_factory=list, compare=False, repr=False)

    @classmethod
    def from_input(cls, cpu: int, instr: InputInstr) -> ModelInstr:
        """Decode a standard trace record; both address-space ids become ``cpu``."""
        return cls._from_trace(instr, (cpu, cpu))

    @classmethod
    def from_cloudsuite(cls, cpu: int, instr: CloudsuiteInstr) -> ModelInstr:
        """Decode a cloudsuite trace record, keeping its own address-space ids."""
        return cls._from_trace(instr, (instr.asid[0], instr.asid[1]))

    @classmethod
    def _from_trace(cls, instr, asid: tuple[int, int]) -> ModelInstr:
        dest_regs = _nonzero(instr.destination_registers)
        src_regs = _nonzero(instr.source_registers)
        special = {REG_STACK_POINTER, REG_FLAGS, REG_INSTRUCTION_POINTER}

        writes_sp = REG_STACK_POINTER in dest_regs
        writes_ip = REG_INSTRUCTION_POINTER in dest_regs
        reads_sp = REG_STACK_POINTER in src_regs
        reads_flags = REG_FLAGS in src_regs
        reads_ip = REG_INSTRUCTION_POINTER in src_regs
        reads_other = any(r not in special for r in src_regs)

        is_branch = bool(instr.is_branch)
        trace_taken = bool(instr.branch_taken)
        branch_type = BranchType.NOT_BRANCH

        if not reads_sp and not reads_flags and writes_ip and not reads_other:
            is_branch, taken, branch_type = True, True, BranchType.BRANCH_DIRECT_JUMP
        elif not reads_sp and not reads_flags and writes_ip and reads_other:
            is_branch, taken, branch_type = True, True, BranchType.BRANCH_INDIRECT
        elif not reads_sp and reads_ip and not writes_sp and writes_ip and reads_flags and not reads_other:
            is_branch, taken, branch_type = True, trace_taken, BranchType.BRANCH_CONDITIONAL
        elif reads_sp and reads_ip and writes_sp and writes_ip and not reads_flags and not reads_other:
            is_branch, taken, branch_type = True, True, BranchType.BRANCH_DIRECT_CALL
        elif reads_sp and reads_ip and writes_sp and writes_ip and not reads_flags and reads_other:
            is_branch, taken, branch_type = True, True, BranchType.BRANCH_INDIRECT_CALL
        elif reads_sp and not reads_ip and writes_sp and writes_ip:
            is_branch, taken, branch_type = True, True, BranchType.BRANCH_RETURN
        elif writes_ip:
            is_branch, taken, branch_type = True, trace_taken, BranchType.BRANCH_OTHER
        else:
            taken = False

        return cls(
            ip=instr.ip,
            is_branch=is_branch,
            branch_taken=taken,
            asid=asid,
            branch_type=branch_type,
            destination_registers=dest_regs,
            source_registers=src_regs,
            destination_memory=_nonzero(instr.destination_memory),
            source_memory=_nonzero(instr.source_memory),
        )

    def num_mem_ops(self) -> int:
        """Number of memory operands, reads and writes together."""
        return len(self.destination_memory) + len(self.source_memory)


def program_order(lhs: ModelInstr, rhs: ModelInstr) -> bool:
    """True when ``lhs`` comes before ``rhs`` in program order."""
    return lhs.instr_id < rhs.instr_id