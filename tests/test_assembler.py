import pytest

from microseq.assembler import assemble
from microseq.components import MicroprogramStore
from microseq.engine import ControlEngine
from microseq.words import (
    AluFunction, AluOp, BusOp, CarryIn, DataOut, FINISHER_BASE, Flag, Mode, Reg, RESET_ENTRY,
    Shift, make_word,
)

SOURCE = """
; rotina mínima: LDA imediato com finisher compartilhado
.org 0x100
reset:    decode bus=PC
imm:      finish alu=PASS_B bus=INC
illegal:  jump illegal bus=HOLD

.org 0x1E6
fin_lda:  decode flags=NZ alu=PASS_B src=DB dst=A bus=PC

.org 0xA9
          save imm fin=fin_lda bus=INC
.org 0xEA
          decode bus=PC           ; NOP
.org 0x48
          jump imm bus=HOLD we dout=PCH
.org 0x69
          save imm fin=4 bus=INC
.org 0x2A
          decode flags=0x83 alu=PASS_A shift=ROL cin=CARRY src=A dst=A bus=PC
"""


def test_assemble_program():
    image, error = assemble(SOURCE)
    assert error is None
    assert len(image) == 512

    assert image[0x100] == make_word(Mode.DECODE, bus=BusOp.PC)
    assert image[0x101] == make_word(Mode.FINISH, alu=AluOp(AluFunction.PASS_B), bus=BusOp.INC)
    assert image[0xA9] == make_word(Mode.SAVE, target=0x01, finisher=6, bus=BusOp.INC)
    assert image[0x69] == make_word(Mode.SAVE, target=0x01, finisher=4, bus=BusOp.INC)
    assert image[0x48] == make_word(Mode.JUMP, target=0x01, bus=BusOp.HOLD, we=True, dout=DataOut.PCH)
    assert image[0x1E6] == make_word(Mode.DECODE, flags=Flag.N | Flag.Z, alu=AluOp(AluFunction.PASS_B),
                                     src=Reg.DB, dst=Reg.A, bus=BusOp.PC)
    assert image[0x2A] == make_word(Mode.DECODE, flags=0x83,
                                    alu=AluOp(AluFunction.PASS_A, Shift.ROL, CarryIn.CARRY),
                                    src=Reg.A, dst=Reg.A, bus=BusOp.PC)


def test_unassigned_slots_jump_to_illegal():
    image, _ = assemble(SOURCE)
    fill = make_word(Mode.JUMP, target=0x02, bus=BusOp.HOLD)
    assert image[0x00] == fill
    assert image[0x1FF] == fill


def test_assembled_image_runs():
    image, _ = assemble(SOURCE)
    engine = ControlEngine(MicroprogramStore(image))

    assert engine.outputs().index == RESET_ENTRY
    engine.clock(0xA9)
    engine.clock()
    engine.clock()
    out = engine.outputs()
    assert out.index == FINISHER_BASE | 6
    assert out.flag_mask == Flag.N | Flag.Z


@pytest.mark.parametrize("source,message", [
    (".org 0x100\nillegal: jump illegal\nfoo bar", "Mnemônico 'FOO' desconhecido"),
    (".org 0x100\nillegal: jump illegal\njump 0x10", "fora da região do sequenciador"),
    (".org 0x100\nillegal: jump illegal\nsave illegal bus=INC", "SAVE precisa de FIN="),
    (".org 0x100\nillegal: jump illegal\njump nowhere", "'NOWHERE' não encontrado"),
    (".org 0x100\nillegal: jump illegal\njump illegal flags=NZ", "FLAGS só vale em palavras DECODE"),
    (".org 0x100\nillegal: jump illegal\nsave illegal fin=illegal", "não é um slot de finisher"),
    (".org 0x100\nillegal: jump illegal\nsave illegal fin=3 alu=ADD", "SAVE não usa a ALU"),
    (".org 0x100\nillegal: jump illegal\ndecode bus=SIDEWAYS", "valor 'SIDEWAYS' inválido"),
    (".org 0x100\nillegal: jump illegal\ndecode color=RED", "campo 'COLOR' desconhecido"),
    (".org 0x100\nillegal: jump illegal\n.org 0x100\ndecode", "já usado na linha 2"),
    (".org 0x100\nillegal: jump illegal\nillegal: decode", "label 'ILLEGAL' duplicado"),
    (".org 0x200\ndecode", "fora do store"),
    (".org 0x100\ndecode", "label 'ILLEGAL' não definido"),
    ("illegal: decode", "precisa estar na região do sequenciador"),
])
def test_assemble_errors(source, message):
    image, error = assemble(source)
    assert image is None
    assert message in error


def test_error_reports_line_number():
    _, error = assemble(".org 0x100\nillegal: jump illegal\n\n; comentário\nbogus")
    assert error.startswith("Erro na linha 5:")


def test_error_line_counts_leading_blank_lines():
    _, error = assemble("\n\n.org 0x100\nillegal: jump illegal\nbogus")
    assert error.startswith("Erro na linha 5:")
