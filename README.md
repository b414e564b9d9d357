# champtrace

Tools for working with the instruction traces that a cycle-level
microarchitecture simulator consumes: the binary record layout, the decoding
of records into instructions with their branch kind, a base class for clocked
components, and a converter from CVP-1 traces.

## Modules

- `champtrace.trace_format`: the fixed-size binary records `InputInstr` and
  `CloudsuiteInstr` (the latter carries two address-space ids). Each has
  `pack()` and the class method `unpack(data)`, which needs exactly `SIZE`
  bytes. `iter_records(data, record_type)` yields every whole record in a
  buffer and ignores a trailing partial one. The special register numbers
  `REG_STACK_POINTER`, `REG_FLAGS` and `REG_INSTRUCTION_POINTER` live here.
- `champtrace.instruction`: `ModelInstr.from_input(cpu, instr)` and
  `ModelInstr.from_cloudsuite(cpu, instr)` drop zero registers and memory
  operands and infer the `BranchType` from which special registers the record
  reads and writes. `num_mem_ops()` counts the memory operands, and
  `program_order(lhs, rhs)` compares instruction ids.
- `champtrace.operable`: `Operable`, an abstract clocked component. Its
  `tick()` calls `operate()` once per cycle of its own clock and skips global
  ticks when its scale is above one. `Deadlock` is the exception for a core
  that stops making progress.
- `champtrace.bits`: `lg2`, `bitmask` and `splice_bits` on 64-bit values.
- `champtrace.span`: `get_span`, `get_span_p`, `extract_if` and
  `transform_while_n`, for taking bounded leading runs of queues.
- `champtrace.cvp_convert`: reads CVP-1 records (`read_record`, `CvpRecord`),
  classifies branches (`classify_branch`, `OpType`), moves data addresses off
  code pages (`PageRemapper`, `scan_pages`) and writes `InputInstr` records
  (`convert_record`, `convert`).

## Installation

```
pip install .
```

## Converting a CVP-1 trace

```
cvp2champtrace trace.gz > converted.trace
```

The input may be plain, gzip or xz; the format is found from the file's magic
number. Pass `-` in place of a file name, or no file name, to read from
standard input, and `-v` to print each instruction to standard error.
Progress, page counts and the share of each branch kind go to standard error;
the converted records go to standard output. The command exits with status 1
if the file cannot be read or a record is malformed.

From Python, `convert(path, out, verbose)` does the same and returns a
`collections.Counter` of `OpType` values.

## Decoding a trace

```python
from pathlib import Path

from champtrace.instruction import ModelInstr
from champtrace.trace_format import InputInstr, iter_records

data = Path("converted.trace").read_bytes()
for instr_id, record in enumerate(iter_records(data, InputInstr)):
    instr = ModelInstr.from_input(0, record)
    instr.instr_id = instr_id
    print(instr.instr_id, hex(instr.ip), instr.branch_type.name)
```

## What it does not do

The package does not read compressed instruction traces as a stream, does not
fill in branch targets or reopen a trace when it ends, and does not simulate
caches, cores or memory. Traces are decoded from bytes already in memory, and
`Operable` is only a base class for components you write yourself.

## Running the tests

```
pip install ".[test]"
pytest
```