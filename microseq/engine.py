# microseq/engine.py
from dataclasses import dataclass, asdict
from typing import Optional

from .components import MicroprogramStore, expand_bus_op
from .sequencer import Sequencer
from .words import AluOp, DataOut, DecodeWord


@dataclass(frozen=True)
class CycleOutputs:
    index: int
    sync: bool
    flag_mask: Optional[int]     # só tem sentido em ciclos de sync
    alu_op: Optional[int]        # None quando a ALU não é usada (aluNotNeeded)
    bus_op: int
    data_out: DataOut
    write_enable: bool
    register_bits: int

    def to_dict(self) -> dict:
        state = asdict(self)
        state["data_out"] = self.data_out.name
        return state


class ControlEngine:
    """Junta Sequencer, MicroprogramStore e o expansor do barramento de endereços."""

    def __init__(self, store: MicroprogramStore):
        self.store = store
        self.sequencer = Sequencer(store)

    @property
    def sync(self) -> bool:
        return self.sequencer.sync

    @property
    def current_word(self):
        return self.sequencer.current_word

    def outputs(self, data: int = 0, condition: bool = False) -> CycleOutputs:
        word = self.sequencer.current_word
        operation = word.operation

        flag_mask = int(word.flag_mask) if isinstance(word, DecodeWord) else None
        alu_op = operation.code if isinstance(operation, AluOp) else None
        sign = bool(data & 0x80)

        return CycleOutputs(
            index=self.sequencer.index,
            sync=self.sequencer.sync,
            flag_mask=flag_mask,
            alu_op=alu_op,
            bus_op=expand_bus_op(word.bus_op, condition, sign),
            data_out=word.data_out,
            write_enable=self.sequencer.write_enable,
            register_bits=word.register_bits,
        )

    def clock(self, data: int = 0, condition: bool = False, reset: bool = False) -> CycleOutputs:
        """Saídas do ciclo atual; depois aplica a borda de clock."""
        outputs = self.outputs(data, condition)
        self.sequencer.clock(data, reset)
        return outputs

    def reset(self):
        self.sequencer.reset()
