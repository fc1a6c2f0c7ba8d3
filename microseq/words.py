# microseq/words.py
from dataclasses import dataclass
from enum import IntEnum, IntFlag
from typing import ClassVar, Optional, Union

# --- GEOMETRIA DO STORE ---
WORD_BITS = 36
WORD_MASK = (1 << WORD_BITS) - 1
STORE_SIZE = 512
INDEX_MASK = STORE_SIZE - 1

SEQUENCER_BASE = 0x100    # 0x100..0x1FF: continuação + finishers
FINISHER_BASE = 0x1E0     # 0x1E0..0x1FF: 32 finishers (ponteiro de 5 bits)
FINISHER_BITS = 5
RESET_ENTRY = 0x100
ILLEGAL_ENTRY = 0x1DF

# --- CAMPOS DA PALAVRA (shift, mask) ---
FIELD_LOW8 = (0, 0xFF)        # flags (decode) / endereço de salto (jump)
FIELD_ALU = (8, 0x7F)         # operação da ALU / ponteiro de finisher
FIELD_FINISHER = (8, 0x1F)
FIELD_ALU_IDLE = (15, 0x1)    # aluNotNeeded
FIELD_MODE = (16, 0x3)
FIELD_BUS = (18, 0xF)
FIELD_DOUT = (22, 0x3)
FIELD_WE = (24, 0x1)
FIELD_REG = (25, 0x7FF)       # repassado sem alteração ao banco de registradores


def get_field(word: int, field: tuple[int, int]) -> int:
    shift, mask = field
    return (word >> shift) & mask


class Mode(IntEnum):
    DECODE = 0b00
    JUMP = 0b01
    FINISH = 0b10
    SAVE = 0b11


class BusOp(IntEnum):
    INC = 0b0000
    ZP_INDEX = 0b0001
    PC = 0b0010
    AHL_CALL = 0b0011
    STACK = 0b0100
    HOLD = 0b0101
    AHL = 0b0110
    STACK_PREINC = 0b0111
    BRANCH_TRUE = 0b1000
    BRANCH_FALSE = 0b1001
    STACK_HOLD_PC = 0b1010
    STACK_RETURN = 0b1011
    VECTOR = 0b1100
    BRANCH = 0b1101


class DataOut(IntEnum):
    ALU = 0b00
    PCL = 0b01
    PCH = 0b10
    STATUS = 0b11


class AluFunction(IntEnum):
    ADD = 0b000
    SUB = 0b001
    AND = 0b010
    OR = 0b011
    EOR = 0b100
    PASS_A = 0b101
    PASS_B = 0b110
    BIT = 0b111


class Shift(IntEnum):
    NONE = 0b00
    ASL = 0b01
    LSR = 0b10
    ROL = 0b11


class CarryIn(IntEnum):
    ZERO = 0b00
    ONE = 0b01
    CARRY = 0b10
    BIT7 = 0b11


class Reg(IntEnum):
    NONE = 0
    A = 1
    X = 2
    Y = 3
    S = 4
    P = 5
    DB = 6


class Flag(IntFlag):
    NONE = 0
    C = 0x01
    Z = 0x02
    I = 0x04
    D = 0x08
    B = 0x10
    V = 0x40
    N = 0x80


def parse_flags(text: str) -> Flag:
    """'NZC' -> Flag.N | Flag.Z | Flag.C"""
    mask = Flag.NONE
    for letter in text.upper():
        mask |= Flag[letter]
    return mask


# ==============================================================================
# CAMPO DUPLO: OPERAÇÃO DA ALU OU PONTEIRO DE FINISHER
# ==============================================================================
@dataclass(frozen=True)
class AluOp:
    function: AluFunction
    shift: Shift = Shift.NONE
    carry_in: CarryIn = CarryIn.ZERO

    @property
    def code(self) -> int:
        # 2 bits de carry + 2 de shift + 3 do somador/lógica
        return (self.carry_in << 5) | (self.shift << 3) | self.function

    @classmethod
    def from_code(cls, code: int) -> "AluOp":
        return cls(AluFunction(code & 0x7), Shift((code >> 3) & 0x3), CarryIn((code >> 5) & 0x3))

    def __str__(self):
        text = self.function.name
        if self.shift != Shift.NONE:
            text += f"+{self.shift.name}"
        if self.carry_in != CarryIn.ZERO:
            text += f" cin={self.carry_in.name}"
        return text


@dataclass(frozen=True)
class FinisherCapture:
    pointer: int

    @property
    def code(self) -> int:
        return self.pointer & 0x1F

    @property
    def index(self) -> int:
        return FINISHER_BASE | self.code

    def __str__(self):
        return f"fin={self.pointer}"


Operation = Union[AluOp, FinisherCapture]


# ==============================================================================
# PALAVRA DE CONTROLE (variante discriminada pelo modo)
# ==============================================================================
@dataclass(frozen=True)
class ControlWord:
    raw: int

    mode: ClassVar[Mode]

    @staticmethod
    def decode(raw: int) -> "ControlWord":
        return _VARIANTS[Mode(get_field(raw, FIELD_MODE))](raw)

    def encode(self) -> int:
        return self.raw

    @property
    def alu_not_needed(self) -> bool:
        return bool(get_field(self.raw, FIELD_ALU_IDLE))

    @property
    def operation(self) -> Operation:
        if self.alu_not_needed:
            return FinisherCapture(get_field(self.raw, FIELD_FINISHER))
        return AluOp.from_code(get_field(self.raw, FIELD_ALU))

    @property
    def bus_op(self) -> int:
        return get_field(self.raw, FIELD_BUS)

    @property
    def data_out(self) -> DataOut:
        return DataOut(get_field(self.raw, FIELD_DOUT))

    @property
    def write_enable(self) -> bool:
        return bool(get_field(self.raw, FIELD_WE))

    @property
    def register_bits(self) -> int:
        return get_field(self.raw, FIELD_REG)

    @property
    def well_formed(self) -> bool:
        # SAVE é o único modo que dispensa a ALU
        return self.alu_not_needed == (self.mode == Mode.SAVE)


@dataclass(frozen=True)
class DecodeWord(ControlWord):
    mode: ClassVar[Mode] = Mode.DECODE

    @property
    def flag_mask(self) -> Flag:
        return Flag(get_field(self.raw, FIELD_LOW8))


@dataclass(frozen=True)
class JumpWord(ControlWord):
    mode: ClassVar[Mode] = Mode.JUMP

    @property
    def target(self) -> int:
        return get_field(self.raw, FIELD_LOW8)

    @property
    def target_index(self) -> int:
        return SEQUENCER_BASE | self.target


@dataclass(frozen=True)
class SaveJumpWord(JumpWord):
    mode: ClassVar[Mode] = Mode.SAVE


@dataclass(frozen=True)
class FinishWord(ControlWord):
    mode: ClassVar[Mode] = Mode.FINISH


_VARIANTS = {
    Mode.DECODE: DecodeWord,
    Mode.JUMP: JumpWord,
    Mode.SAVE: SaveJumpWord,
    Mode.FINISH: FinishWord,
}


def make_word(mode: Mode, target: int = 0, flags: int = 0, alu: Optional[AluOp] = None,
              finisher: Optional[int] = None, bus: int = BusOp.HOLD, dout: int = DataOut.ALU,
              we: bool = False, src: int = Reg.NONE, dst: int = Reg.NONE) -> int:
    """Constrói a palavra de 36 bits. `finisher` liga aluNotNeeded e ocupa o campo da ALU."""
    if finisher is not None and alu is not None:
        raise ValueError("alu and finisher share the same field")

    word = 0
    word |= (mode & 0x3) << FIELD_MODE[0]
    if mode == Mode.DECODE:
        word |= (int(flags) & 0xFF) << FIELD_LOW8[0]
    elif mode in (Mode.JUMP, Mode.SAVE):
        word |= (target & 0xFF) << FIELD_LOW8[0]

    if finisher is not None:
        word |= (finisher & 0x1F) << FIELD_FINISHER[0]
        word |= 1 << FIELD_ALU_IDLE[0]
    elif alu is not None:
        word |= alu.code << FIELD_ALU[0]

    word |= (bus & 0xF) << FIELD_BUS[0]
    word |= (dout & 0x3) << FIELD_DOUT[0]
    word |= (1 if we else 0) << FIELD_WE[0]
    word |= ((src & 0x7) | (dst & 0x7) << 3) << FIELD_REG[0]
    return word


def describe(word: ControlWord) -> str:
    """Texto curto para o histórico de micro-instruções."""
    parts = [word.mode.name]
    if isinstance(word, JumpWord):
        parts.append(f"0x{word.target_index:03X}")
    parts.append(str(word.operation))
    if isinstance(word, DecodeWord) and word.flag_mask:
        parts.append(f"flags={int(word.flag_mask):02X}")
    try:
        parts.append(f"bus={BusOp(word.bus_op).name}")
    except ValueError:
        parts.append(f"bus={word.bus_op}")
    if word.write_enable:
        parts.append(f"we({word.data_out.name})")
    return " ".join(parts)
