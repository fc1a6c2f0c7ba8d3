# microseq/simulator.py
import logging
import time
from typing import Iterable, Optional, Sequence

from .components import BusControl, MicroprogramStore
from .engine import ControlEngine, CycleOutputs
from .microcode import DEFAULT_IMAGE
from .words import ILLEGAL_ENTRY, describe

logger = logging.getLogger(__name__)

HISTORY_DEPTH = 50


class ControlUnitSimulator:
    def __init__(self, image: Optional[Sequence[int]] = None):
        self.load_image(DEFAULT_IMAGE if image is None else image)

    def load_image(self, image: Sequence[int]):
        # Store novo a cada carga: o anterior continua imutável
        store = MicroprogramStore(image)
        self.store = store
        self.engine = ControlEngine(store)
        self.breakpoint_index = -1
        self.reset()

    def reset(self):
        self.engine.reset()
        self.is_running = False
        self.stop_flag = False
        self.cycle_count = 0
        self.execution_start_time = 0
        self.micro_history = []
        self.last_outputs: Optional[CycleOutputs] = None

    @property
    def sequencer(self):
        return self.engine.sequencer

    def step(self, data: int = 0, condition: bool = False, reset: bool = False) -> Optional[CycleOutputs]:
        if not self.is_running or self.stop_flag:
            return None

        # 1. Histórico formatado: "0x1E6: DECODE ADD flags=83 bus=PC"
        current_index = self.sequencer.index
        self.micro_history.insert(0, f"0x{current_index:03X}: {describe(self.engine.current_word)}")
        if len(self.micro_history) > HISTORY_DEPTH:
            self.micro_history.pop()

        # 2. Saídas do ciclo + borda de clock
        outputs = self.engine.clock(data & 0xFF, condition, reset)
        self.last_outputs = outputs
        self.cycle_count += 1
        logger.debug("cycle %d: 0x%03X -> 0x%03X", self.cycle_count, current_index, self.sequencer.index)

        if self.sequencer.index == ILLEGAL_ENTRY and current_index != ILLEGAL_ENTRY:
            logger.warning("Illegal instruction path entered after 0x%03X", current_index)

        # Breakpoint no índice do microprograma
        if self.sequencer.index == self.breakpoint_index:
            self.is_running = False
            self.stop_flag = True

        return outputs

    def run(self, stimulus: Iterable[dict]) -> list[CycleOutputs]:
        """Aplica uma lista de entradas {data, condition, reset}; para no breakpoint."""
        self.is_running = True
        self.stop_flag = False
        if self.cycle_count == 0:
            self.execution_start_time = time.time()

        trace = []
        for inputs in stimulus:
            outputs = self.step(**inputs)
            if outputs is None:
                break
            trace.append(outputs)
        self.is_running = False
        return trace

    def get_state(self) -> dict:
        exec_time = (time.time() - self.execution_start_time) if self.execution_start_time > 0 else 0
        word = self.engine.current_word
        preview = self.engine.outputs()

        return {
            "sequencer": {
                "index": self.sequencer.index,
                "mode": word.mode.name,
                "sync": self.sequencer.sync,
                "finisherPointer": self.sequencer.finisher_pointer.read(),
                "writeEnable": self.sequencer.write_enable,
                "word": f"{word.encode():09X}",
                "description": describe(word),
            },
            "outputs": {
                "flagMask": preview.flag_mask,
                "aluOp": preview.alu_op,
                "busOp": f"{preview.bus_op:012b}",
                "busControl": BusControl.from_vector(preview.bus_op).to_dict(),
                "dataOut": preview.data_out.name,
                "registerBits": preview.register_bits,
            },
            "lastCycle": self.last_outputs.to_dict() if self.last_outputs else None,
            "simulation": {
                "isRunning": self.is_running, "isStopped": self.stop_flag,
                "cycleCount": self.cycle_count,
                "breakpoint": self.breakpoint_index,
                "executionTimeMs": int(exec_time * 1000),
            },
            "microHistory": self.micro_history,
        }
