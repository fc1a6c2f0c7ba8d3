# microseq/components.py
import ctypes
import logging
from enum import IntEnum
from typing import NamedTuple, Optional, Sequence

from .exceptions import ConfigurationError
from .words import BusOp, ControlWord, INDEX_MASK, STORE_SIZE, WORD_BITS, WORD_MASK

logger = logging.getLogger(__name__)


class Register:
    def __init__(self, name: str, width: int, initial_value: int = 0):
        self.name = name
        self.mask = (1 << width) - 1
        self.value = ctypes.c_uint16(initial_value & self.mask)

    def write(self, data: int):
        self.value.value = data & self.mask

    def read(self) -> int:
        return self.value.value


class MicroprogramStore:
    """ROM de 512 palavras de controle. Carregada uma única vez; só leitura depois."""

    def __init__(self, image: Optional[Sequence[int]] = None):
        self._raw: tuple[int, ...] = ()
        self._words: tuple[ControlWord, ...] = ()
        if image is not None:
            self.load(image)

    @property
    def loaded(self) -> bool:
        return bool(self._words)

    @property
    def image(self) -> tuple[int, ...]:
        return self._raw

    def load(self, image: Sequence[int]):
        if self.loaded:
            raise ConfigurationError("microprogram store is already loaded")

        words = list(image)
        if len(words) != STORE_SIZE:
            raise ConfigurationError(f"microcode image must have {STORE_SIZE} words, got {len(words)}")
        for index, word in enumerate(words):
            if isinstance(word, bool) or not isinstance(word, int):
                raise ConfigurationError(f"word {index:03X} is not an integer: {word!r}")
            if word < 0 or word > WORD_MASK:
                raise ConfigurationError(f"word {index:03X} does not fit in {WORD_BITS} bits: {word:#x}")

        self._raw = tuple(words)
        self._words = tuple(ControlWord.decode(word) for word in words)
        logger.info("Loaded %d microcode words", len(words))

    def read(self, index: int) -> ControlWord:
        if not self.loaded:
            raise ConfigurationError("microprogram store was read before load()")
        return self._words[index & INDEX_MASK]

    def __len__(self):
        return len(self._words)


# ==============================================================================
# EXPANSOR DAS OPERAÇÕES DO BARRAMENTO DE ENDEREÇOS
# ==============================================================================
class HighOp(IntEnum):
    ABH = 0b0000             # byte alto atual + carry do byte baixo ("soma zero")
    ABH_DEC = 0b0001         # byte alto - 1 + carry (deslocamento negativo)
    PCH = 0b0010
    ZERO_PAGE = 0b0011
    AHL = 0b0100             # byte de dados do ciclo, travado no latch AHL
    AHL_SAVE_PC = 0b0101     # idem, captura endereço de retorno e o PC segue o alvo
    STACK = 0b0110
    STACK_HOLD_PC = 0b0111
    STACK_SAVE_PC1 = 0b1000  # captura retorno + 1
    VECTOR = 0b1001          # página 0xFF


class LowOp(IntEnum):
    ABL = 0b0000
    PCL = 0b0001
    DB_X = 0b0010            # byte de dados + registrador de índice
    SP = 0b0011
    ABL_DB = 0b0100          # byte baixo + deslocamento do desvio
    X = 0b0101
    DL_X = 0b0110            # byte de dados do ciclo anterior + índice


class BusControl(NamedTuple):
    pc_inc: bool
    pc_load: bool
    ahl_load: bool
    high_op: HighOp
    low_op: LowOp
    carry_in: bool

    @property
    def vector(self) -> int:
        return _row(self.pc_inc, self.pc_load, self.ahl_load, self.high_op, self.low_op, self.carry_in)

    def to_dict(self) -> dict:
        state = self._asdict()
        state["high_op"] = self.high_op.name
        state["low_op"] = self.low_op.name
        return state

    @classmethod
    def from_vector(cls, vector: int) -> "BusControl":
        return cls(
            pc_inc=bool(vector >> 11 & 1),
            pc_load=bool(vector >> 10 & 1),
            ahl_load=bool(vector >> 9 & 1),
            high_op=HighOp(vector >> 5 & 0xF),
            low_op=LowOp(vector >> 1 & 0xF),
            carry_in=bool(vector & 1),
        )


def _row(pc_inc, pc_load, ahl_load, high, low, carry) -> int:
    """Vetor de 12 bits: PC+, PCload, AHLload, op alta (4), op baixa (4) + carry"""
    vector = 0
    vector |= int(pc_inc) << 11
    vector |= int(pc_load) << 10
    vector |= int(ahl_load) << 9
    vector |= (high & 0xF) << 5
    vector |= (low & 0xF) << 1
    vector |= int(carry)
    return vector


INCREMENT = _row(1, 0, 0, HighOp.ABH, LowOp.ABL, 1)
HOLD = _row(0, 0, 0, HighOp.ABH, LowOp.ABL, 0)
BRANCH_FORWARD = _row(0, 0, 0, HighOp.ABH, LowOp.ABL_DB, 1)
BRANCH_BACKWARD = _row(0, 0, 0, HighOp.ABH_DEC, LowOp.ABL_DB, 1)

# Tabela fixa: é contrato com a unidade de execução, não uma fórmula
BUS_TABLE = {
    BusOp.INC: INCREMENT,
    BusOp.ZP_INDEX: _row(0, 0, 0, HighOp.ZERO_PAGE, LowOp.DB_X, 0),
    BusOp.PC: _row(0, 1, 0, HighOp.PCH, LowOp.PCL, 0),
    BusOp.AHL_CALL: _row(0, 0, 1, HighOp.AHL_SAVE_PC, LowOp.DL_X, 0),
    BusOp.STACK: _row(0, 0, 0, HighOp.STACK, LowOp.SP, 0),
    BusOp.HOLD: HOLD,
    BusOp.AHL: _row(0, 0, 1, HighOp.AHL, LowOp.DL_X, 0),
    BusOp.STACK_PREINC: _row(0, 0, 0, HighOp.STACK, LowOp.SP, 1),
    BusOp.STACK_HOLD_PC: _row(0, 0, 0, HighOp.STACK_HOLD_PC, LowOp.SP, 0),
    BusOp.STACK_RETURN: _row(0, 0, 0, HighOp.STACK_SAVE_PC1, LowOp.SP, 0),
    BusOp.VECTOR: _row(0, 0, 0, HighOp.VECTOR, LowOp.X, 0),
}


def expand_bus_op(selector: int, condition: bool, sign: bool) -> int:
    selector &= 0xF

    if selector == BusOp.BRANCH_TRUE or selector == BusOp.BRANCH_FALSE:
        taken = condition if selector == BusOp.BRANCH_TRUE else not condition
        if not taken:
            return INCREMENT
        return BRANCH_BACKWARD if sign else BRANCH_FORWARD

    if selector == BusOp.BRANCH:
        return BRANCH_BACKWARD if sign else BRANCH_FORWARD

    # 1110 e 1111 não são usados: segura o barramento
    return BUS_TABLE.get(selector, HOLD)
