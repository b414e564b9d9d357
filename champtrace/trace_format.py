"""Binary record layouts of instruction trace files."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import ClassVar, Iterable, Iterator, Union

# Special registers that identify branches.
REG_STACK_POINTER = 6
REG_FLAGS = 25
REG_INSTRUCTION_POINTER = 26

NUM_INSTR_DESTINATIONS_SPARC = 4
NUM_INSTR_DESTINATIONS = 2
NUM_INSTR_SOURCES = 4

# Little-endian layouts that match the in-memory structures, padding included.
_INPUT_STRUCT = struct.Struct(
    f"<QBB{NUM_INSTR_DESTINATIONS}B{NUM_INSTR_SOURCES}B{NUM_INSTR_DESTINATIONS}Q{NUM_INSTR_SOURCES}Q"
)
_CLOUDSUITE_STRUCT = struct.Struct(
    f"<QBB{NUM_INSTR_DESTINATIONS_SPARC}B{NUM_INSTR_SOURCES}B6x"
    f"{NUM_INSTR_DESTINATIONS_SPARC}Q{NUM_INSTR_SOURCES}Q2B6x"
)

Buffer = Union[bytes, bytearray, memoryview]


def _fixed(values: Iterable[int], length: int, name: str) -> tuple[int, ...]:
    items = tuple(values)
    if len(items) > length:
        raise ValueError(f"{name} holds at most {length} entries, got {len(items)}")
    return items + (0,) * (length - len(items))


def _pack(layout: struct.Struct, fields: tuple) -> bytes:
    try:
        return layout.pack(*fields)
    except struct.error as exc:
        raise ValueError(f"field out of range: {exc}") from exc


def _check_size(data: Buffer, size: int) -> None:
    if len(data) != size:
        raise ValueError(f"record must be {size} bytes, got {len(data)}")


@dataclass
class InputInstr:
    """One instruction in the standard trace format."""

    ip: int = 0
    is_branch: int = 0
    branch_taken: int = 0
    destination_registers: tuple[int, ...] = (0,) * NUM_INSTR_DESTINATIONS
    source_registers: tuple[int, ...] = (0,) * NUM_INSTR_SOURCES
    destination_memory: tuple[int, ...] = (0,) * NUM_INSTR_DESTINATIONS
    source_memory: tuple[int, ...] = (0,) * NUM_INSTR_SOURCES

    _STRUCT: ClassVar[struct.Struct] = _INPUT_STRUCT
    SIZE: ClassVar[int] = _INPUT_STRUCT.size

    def __post_init__(self) -> None:
        self.destination_registers = _fixed(self.destination_registers, NUM_INSTR_DESTINATIONS, "destination_registers")
        self.source_registers = _fixed(self.source_registers, NUM_INSTR_SOURCES, "source_registers")
        self.destination_memory = _fixed(self.destination_memory, NUM_INSTR_DESTINATIONS, "destination_memory")
        self.source_memory = _fixed(self.source_memory, NUM_INSTR_SOURCES, "source_memory")

    def pack(self) -> bytes:
        """Encode this record as it appears in a trace file."""
        return _pack(
            self._STRUCT,
            (
                self.ip,
                self.is_branch,
                self.branch_taken,
                *self.destination_registers,
                *self.source_registers,
                *self.destination_memory,
                *self.source_memory,
            ),
        )

    @classmethod
    def unpack(cls, data: Buffer) -> InputInstr:
        """Decode one record of exactly ``SIZE`` bytes."""
        _check_size(data, cls.SIZE)
        return cls._from_fields(cls._STRUCT.unpack(data))

    @classmethod
    def _from_fields(cls, f: tuple) -> InputInstr:
        return cls(
            ip=f[0],
            is_branch=f[1],
            branch_taken=f[2],
            destination_registers=f[3:5],
            source_registers=f[5:9],
            destination_memory=f[9:11],
            source_memory=f[11:15],
        )


@dataclass
class CloudsuiteInstr:
    """One instruction in the cloudsuite trace format, which carries address-space ids."""

    ip: int = 0
    is_branch: int = 0
    branch_taken: int = 0
    destination_registers: tuple[int, ...] = (0,) * NUM_INSTR_DESTINATIONS_SPARC
    source_registers: tuple[int, ...] = (0,) * NUM_INSTR_SOURCES
    destination_memory: tuple[int, ...] = (0,) * NUM_INSTR_DESTINATIONS_SPARC
    source_memory: tuple[int, ...] = (0,) * NUM_INSTR_SOURCES
    asid: tuple[int, int] = (0, 0)

    _STRUCT: ClassVar[struct.Struct] = _CLOUDSUITE_STRUCT
    SIZE: ClassVar[int] = _CLOUDSUITE_STRUCT.size

    def __post_init__(self) -> None:
        self.destination_registers = _fixed(
            self.destination_registers, NUM_INSTR_DESTINATIONS_SPARC, "destination_registers"
        )
        self.source_registers = _fixed(self.source_registers, NUM_INSTR_SOURCES, "source_registers")
        self.destination_memory = _fixed(self.destination_memory, NUM_INSTR_DESTINATIONS_SPARC, "destination_memory")
        self.source_memory = _fixed(self.source_memory, NUM_INSTR_SOURCES, "source_memory")
        self.asid = _fixed(self.asid, 2, "asid")

    def pack(self) -> bytes:
        """Encode this record as it appears in a trace file."""
        return _pack(
            self._STRUCT,
            (
                self.ip,
                self.is_branch,
                self.branch_taken,
                *self.destination_registers,
                *self.source_registers,
                *self.destination_memory,
                *self.source_memory,
                *self.asid,
            ),
        )

    @classmethod
    def unpack(cls, data: Buffer) -> CloudsuiteInstr:
        """Decode one record of exactly ``SIZE`` bytes."""
        _check_size(data, cls.SIZE)
        return cls._from_fields(cls._STRUCT.unpack(data))

    @classmethod
    def _from_fields(cls, f: tuple) -> CloudsuiteInstr:
        return cls(
            ip=f[0],
            is_branch=f[1],
            branch_taken=f[2],
            destination_registers=f[3:7],
            source_registers=f[7:11],
            destination_memory=f[11:15],
            source_memory=f[15:19],
            asid=f[19:21],
        )


def iter_records(data: Buffer, record_type=InputInstr) -> Iterator:
    """Yield each whole record in ``data``; a trailing partial record is ignored."""
    size = record_type.SIZE
    usable = len(data) - len(data) % size
    for fields in record_type._STRUCT.iter_unpack(memoryview(data)[:usable]):
        yield record_type._from_fields(fields)