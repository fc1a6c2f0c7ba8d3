# microseq/sequencer.py
import logging

from .components import MicroprogramStore, Register
from .words import (
    ControlWord, FinisherCapture, FINISHER_BASE, FINISHER_BITS, INDEX_MASK, Mode,
    RESET_ENTRY, SEQUENCER_BASE,
)

logger = logging.getLogger(__name__)


class Sequencer:
    def __init__(self, store: MicroprogramStore):
        self.store = store
        self.mpc = Register("MPC", 9)
        self.finisher_pointer = Register("FP", FINISHER_BITS)
        self.current_word: ControlWord = None
        self.pending_write_enable = False
        self.reset()

    def reset(self):
        """Reset assíncrono: força o vetor de reset e zera o ponteiro de finisher."""
        self.mpc.write(RESET_ENTRY)
        self.finisher_pointer.write(0)
        self.pending_write_enable = False
        self.current_word = self.store.read(RESET_ENTRY)
        logger.debug("Sequencer reset to 0x%03X", RESET_ENTRY)

    @property
    def index(self) -> int:
        return self.mpc.read()

    @property
    def sync(self) -> bool:
        return self.current_word.mode == Mode.DECODE

    @property
    def write_enable(self) -> bool:
        # Registrado: o valor lido num ciclo aparece no seguinte
        return self.pending_write_enable

    def next_index(self, opcode: int, reset: bool = False) -> int:
        if reset:
            return RESET_ENTRY

        mode = self.current_word.mode
        if mode == Mode.DECODE:
            return opcode & 0xFF
        if mode == Mode.FINISH:
            return FINISHER_BASE | self.finisher_pointer.read()
        # JUMP e SAVE formam o endereço da mesma forma
        return SEQUENCER_BASE | self.current_word.target

    def clock(self, opcode: int = 0, reset: bool = False) -> int:
        # 1. Próximo índice a partir da palavra travada
        next_mpc = self.next_index(opcode, reset) & INDEX_MASK

        if reset:
            self.reset()
            return next_mpc

        # 2. Captura do finisher (aluNotNeeded) e pipeline do write-enable
        operation = self.current_word.operation
        if isinstance(operation, FinisherCapture):
            self.finisher_pointer.write(operation.pointer)
        self.pending_write_enable = self.current_word.write_enable

        # 3. Busca da nova palavra
        self.mpc.write(next_mpc)
        self.current_word = self.store.read(next_mpc)
        return next_mpc
