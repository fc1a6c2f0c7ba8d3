from microseq.components import BRANCH_BACKWARD, BRANCH_FORWARD, INCREMENT, MicroprogramStore, expand_bus_op
from microseq.engine import ControlEngine
from microseq.microcode import DEFAULT_IMAGE, FIN_LDA, FIN_STA, SLOT_FETCH, SLOT_IMM, SLOT_JSR, SLOT_ZP_W
from microseq.words import (
    AluFunction, AluOp, BusOp, DataOut, FINISHER_BASE, Flag, ILLEGAL_ENTRY, Mode, RESET_ENTRY,
    STORE_SIZE, make_word,
)


def engine_with(words: dict) -> ControlEngine:
    image = [make_word(Mode.JUMP, target=0xDF, bus=BusOp.HOLD)] * STORE_SIZE
    for index, word in words.items():
        image[index] = word
    return ControlEngine(MicroprogramStore(image))


def boot(engine: ControlEngine):
    """Reset e rotina de vetor do microprograma padrão até o primeiro sync."""
    engine.reset()
    while not engine.sync:
        engine.clock()


def test_one_byte_instruction_end_to_end():
    engine = engine_with({
        RESET_ENTRY: make_word(Mode.DECODE, bus=BusOp.PC),
        0x42: make_word(Mode.FINISH, alu=AluOp(AluFunction.ADD)),
        FINISHER_BASE: make_word(Mode.DECODE, flags=Flag.N | Flag.Z, bus=BusOp.PC),
    })

    out = engine.clock(0x42)
    assert out.sync and out.index == RESET_ENTRY

    out = engine.clock()
    assert out.index == 0x42
    assert not out.sync
    assert out.flag_mask is None

    out = engine.outputs()
    assert out.sync
    assert out.index == FINISHER_BASE
    assert out.flag_mask == Flag.N | Flag.Z


def test_finisher_preset_by_save():
    engine = engine_with({
        RESET_ENTRY: make_word(Mode.SAVE, target=0x01, finisher=3),
        0x101: make_word(Mode.DECODE),
        0x42: make_word(Mode.FINISH),
        FINISHER_BASE | 3: make_word(Mode.DECODE, flags=Flag.C),
    })

    engine.clock()
    engine.clock(0x42)
    engine.clock()
    out = engine.outputs()
    assert out.index == FINISHER_BASE | 3
    assert out.sync
    assert out.flag_mask == Flag.C


def test_sync_only_on_decode_words():
    engine = ControlEngine(MicroprogramStore(DEFAULT_IMAGE))
    seen = []
    for data in (0, 0, 0, 0xA9, 0x10, 0x10, 0xEA, 0x02, 0, 0):
        out = engine.clock(data)
        word = engine.store.read(out.index)
        assert out.sync == (word.mode == Mode.DECODE)
        assert (out.flag_mask is not None) == out.sync
        seen.append(out.sync)
    assert any(seen) and not all(seen)


def test_alu_op_hidden_when_alu_not_needed():
    engine = ControlEngine(MicroprogramStore(DEFAULT_IMAGE))
    boot(engine)
    engine.clock(0xA9)

    out = engine.outputs()
    assert engine.current_word.alu_not_needed
    assert out.alu_op is None

    engine.clock()
    assert engine.outputs().alu_op == AluOp(AluFunction.PASS_B).code


def test_lda_immediate_uses_shared_finisher():
    engine = ControlEngine(MicroprogramStore(DEFAULT_IMAGE))
    boot(engine)
    assert engine.outputs().index == SLOT_FETCH

    engine.clock(0xA9)
    assert engine.outputs().index == 0xA9
    engine.clock(0x00)
    assert engine.outputs().index == SLOT_IMM
    assert engine.sequencer.finisher_pointer.read() == FIN_LDA
    engine.clock(0x7F)

    out = engine.outputs()
    assert out.index == FINISHER_BASE | FIN_LDA
    assert out.sync
    assert out.flag_mask == Flag.N | Flag.Z


def test_sta_zero_page_write_pipeline():
    engine = ControlEngine(MicroprogramStore(DEFAULT_IMAGE))
    boot(engine)

    out = engine.clock(0x85)
    assert not out.write_enable
    out = engine.clock(0x10)
    assert out.index == 0x85 and not out.write_enable
    assert out.bus_op == expand_bus_op(BusOp.ZP_INDEX, False, False)
    out = engine.clock()
    # o write-enable da palavra 0x85 aparece no ciclo em que o endereço é 0x0010
    assert out.index == SLOT_ZP_W and out.write_enable
    assert out.data_out == DataOut.ALU
    assert out.bus_op == expand_bus_op(BusOp.PC, False, False)
    out = engine.clock()
    assert out.index == FINISHER_BASE | FIN_STA
    assert out.sync
    assert not out.write_enable


def test_branch_forks_on_displacement_byte():
    engine = ControlEngine(MicroprogramStore(DEFAULT_IMAGE))
    boot(engine)
    engine.clock(0xF0)      # BEQ

    # no ciclo do opcode o dado é o deslocamento
    assert engine.current_word.mode == Mode.JUMP
    assert engine.outputs(0xFE, condition=True).bus_op == BRANCH_BACKWARD
    assert engine.outputs(0x05, condition=True).bus_op == BRANCH_FORWARD
    assert engine.outputs(0xFE, condition=False).bus_op == INCREMENT

    out = engine.clock(0xFE, condition=True)
    assert out.bus_op == BRANCH_BACKWARD
    assert not out.sync
    # o deslocamento não é decodificado como opcode
    assert engine.sequencer.index == SLOT_FETCH
    assert engine.sync

    engine.clock(0xEA)
    assert engine.sequencer.index == 0xEA


def test_reset_decodes_only_after_vector():
    engine = ControlEngine(MicroprogramStore(DEFAULT_IMAGE))
    outs = [engine.clock(data) for data in (0x00, 0x00, 0xC0)]

    assert [o.index for o in outs] == [RESET_ENTRY, RESET_ENTRY + 1, RESET_ENTRY + 2]
    assert not any(o.sync for o in outs)
    assert outs[2].bus_op == expand_bus_op(BusOp.AHL, False, False)
    assert engine.sequencer.index == SLOT_FETCH

    engine.clock(0xA9)
    assert engine.sequencer.index == 0xA9


def test_jsr_pushes_return_address():
    engine = ControlEngine(MicroprogramStore(DEFAULT_IMAGE))
    boot(engine)
    engine.clock(0x20)

    # byte baixo, byte alto, opcode do destino, duas escritas na pilha
    outs = [engine.clock(data) for data in (0x34, 0x12, 0xEA, 0x00, 0x00)]
    assert [o.index for o in outs] == [0x20, SLOT_JSR, SLOT_JSR + 1, SLOT_JSR + 2, SLOT_JSR + 3]
    assert [o.write_enable for o in outs] == [False, False, False, True, True]
    assert not any(o.sync for o in outs)
    assert outs[1].bus_op == expand_bus_op(BusOp.AHL_CALL, False, False)
    assert outs[3].data_out == DataOut.PCH
    assert outs[4].data_out == DataOut.PCL
    assert outs[4].bus_op == expand_bus_op(BusOp.PC, False, False)

    out = engine.outputs()
    assert out.index == SLOT_FETCH
    assert out.sync
    assert not out.write_enable


def test_illegal_opcode_parks_the_engine():
    engine = ControlEngine(MicroprogramStore(DEFAULT_IMAGE))
    boot(engine)
    engine.clock(0x02)
    engine.clock()
    for _ in range(5):
        assert engine.clock(0xEA).index == ILLEGAL_ENTRY


def test_reset_from_any_state():
    engine = ControlEngine(MicroprogramStore(DEFAULT_IMAGE))
    boot(engine)
    engine.clock(0xA5)
    engine.clock(0x10)

    engine.clock(0xEA, reset=True)
    assert engine.outputs().index == RESET_ENTRY
    assert engine.sequencer.finisher_pointer.read() == 0
