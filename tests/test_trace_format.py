import pytest
from hypothesis import given
from hypothesis import strategies as st

from champtrace.trace_format import (
    NUM_INSTR_DESTINATIONS,
    NUM_INSTR_DESTINATIONS_SPARC,
    NUM_INSTR_SOURCES,
    CloudsuiteInstr,
    InputInstr,
    iter_records,
)

u8 = st.integers(min_value=0, max_value=255)
u64 = st.integers(min_value=0, max_value=(1 << 64) - 1)


def test_record_sizes_match_struct_layouts():
    assert InputInstr.SIZE == 64
    assert len(InputInstr().pack()) == 64
    assert CloudsuiteInstr.SIZE == 96
    assert len(CloudsuiteInstr().pack()) == 96


def test_ip_is_little_endian_at_start():
    packed = InputInstr(ip=0x0102030405060708).pack()
    assert packed[:8] == bytes([8, 7, 6, 5, 4, 3, 2, 1])


def test_input_field_offsets():
    packed = InputInstr(
        is_branch=1,
        branch_taken=1,
        destination_registers=(26,),
        source_registers=(6,),
        destination_memory=(0xAA,),
        source_memory=(0xBB,),
    ).pack()
    assert packed[8] == 1
    assert packed[9] == 1
    assert packed[10] == 26
    assert packed[12] == 6
    assert packed[16] == 0xAA
    assert packed[32] == 0xBB


def test_cloudsuite_asid_offset():
    packed = CloudsuiteInstr(asid=(3, 4)).pack()
    assert packed[88:90] == bytes([3, 4])


def test_short_register_lists_are_padded():
    instr = InputInstr(source_registers=[5])
    assert instr.source_registers == (5, 0, 0, 0)


def test_too_many_registers_rejected():
    with pytest.raises(ValueError):
        InputInstr(destination_registers=(1, 2, 3))


def test_out_of_range_register_rejected_on_pack():
    with pytest.raises(ValueError):
        InputInstr(source_registers=(300,)).pack()


def test_unpack_wrong_size_rejected():
    with pytest.raises(ValueError):
        InputInstr.unpack(b"\x00" * 63)
    with pytest.raises(ValueError):
        CloudsuiteInstr.unpack(b"\x00" * 64)


@given(
    ip=u64,
    flags=st.tuples(u8, u8),
    dregs=st.lists(u8, min_size=NUM_INSTR_DESTINATIONS, max_size=NUM_INSTR_DESTINATIONS),
    sregs=st.lists(u8, min_size=NUM_INSTR_SOURCES, max_size=NUM_INSTR_SOURCES),
    dmem=st.lists(u64, min_size=NUM_INSTR_DESTINATIONS, max_size=NUM_INSTR_DESTINATIONS),
    smem=st.lists(u64, min_size=NUM_INSTR_SOURCES, max_size=NUM_INSTR_SOURCES),
)
def test_input_round_trip(ip, flags, dregs, sregs, dmem, smem):
    instr = InputInstr(ip, flags[0], flags[1], dregs, sregs, dmem, smem)
    assert InputInstr.unpack(instr.pack()) == instr


@given(
    ip=u64,
    dregs=st.lists(u8, max_size=NUM_INSTR_DESTINATIONS_SPARC),
    sregs=st.lists(u8, max_size=NUM_INSTR_SOURCES),
    dmem=st.lists(u64, max_size=NUM_INSTR_DESTINATIONS_SPARC),
    smem=st.lists(u64, max_size=NUM_INSTR_SOURCES),
    asid=st.tuples(u8, u8),
)
def test_cloudsuite_round_trip(ip, dregs, sregs, dmem, smem, asid):
    instr = CloudsuiteInstr(ip, 1, 0, dregs, sregs, dmem, smem, asid)
    assert CloudsuiteInstr.unpack(instr.pack()) == instr


def test_iter_records_ignores_partial_tail():
    records = [InputInstr(ip=i + 1) for i in range(3)]
    data = b"".join(r.pack() for r in records) + b"\x01\x02\x03"
    assert list(iter_records(data)) == records


def test_iter_records_cloudsuite():
    records = [CloudsuiteInstr(ip=10, asid=(1, 2)), CloudsuiteInstr(ip=20, asid=(3, 4))]
    data = bytearray(b"".join(r.pack() for r in records))
    assert list(iter_records(data, CloudsuiteInstr)) == records


def test_iter_records_empty():
    assert list(iter_records(b"")) == []