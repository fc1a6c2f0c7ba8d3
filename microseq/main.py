# microseq/main.py

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel
from .simulator import ControlUnitSimulator
from .assembler import assemble
from .components import BusControl, expand_bus_op
from .exceptions import ConfigurationError
from .microcode import read_image
from .words import STORE_SIZE, describe
import asyncio
import logging
import os
import time

from fastapi.middleware.cors import CORSMiddleware

logger = logging.getLogger(__name__)

app = FastAPI(title="Microsequencer Control Engine API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Imagem inicial: arquivo em MICROSEQ_IMAGE ou o microprograma embutido
IMAGE_PATH = os.environ.get("MICROSEQ_IMAGE")
if IMAGE_PATH:
    logger.info("Loading microcode image from %s", IMAGE_PATH)
    simulator = ControlUnitSimulator(read_image(IMAGE_PATH))
else:
    logger.info("Using built-in microprogram")
    simulator = ControlUnitSimulator()


# --- Modelos de Dados para a API ---
class AssemblyPayload(BaseModel):
    source: str

class ImagePayload(BaseModel):
    image: list[int]

class CyclePayload(BaseModel):
    data: int = 0
    condition: bool = False
    reset: bool = False

class RunPayload(BaseModel):
    cycles: list[CyclePayload]
    delay_ms: int = 0

class ControlPayload(BaseModel):
    value: int


@app.post("/assemble", summary="Montar Microcódigo")
def assemble_code(payload: AssemblyPayload):
    image, error = assemble(payload.source)
    if error:
        raise HTTPException(status_code=400, detail=error)

    return {"image": [f"{word:09X}" for word in image]}

@app.post("/load", summary="Carregar Imagem do Microprograma")
def load_image(payload: ImagePayload):
    try:
        simulator.load_image(payload.image)
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"message": f"{len(payload.image)} palavras carregadas no store.", "state": simulator.get_state()}

@app.get("/status", summary="Obter Estado Atual")
def get_status():
    return simulator.get_state()

@app.post("/step", summary="Executar Um Ciclo")
def execute_step(cycle: CyclePayload):
    # Pedido explícito do frontend: sai do breakpoint e anda um ciclo
    simulator.is_running = True
    simulator.stop_flag = False

    simulator.step(cycle.data, cycle.condition, cycle.reset)
    return simulator.get_state()

@app.post("/run", summary="Executar Sequência de Ciclos")
async def run_simulation(payload: RunPayload):
    simulator.is_running = True
    simulator.stop_flag = False
    if simulator.cycle_count == 0:
        simulator.execution_start_time = time.time()
    delay = payload.delay_ms / 1000.0
    executed = 0
    for cycle in payload.cycles:
        if not simulator.is_running:
            break
        simulator.step(cycle.data, cycle.condition, cycle.reset)
        executed += 1
        await asyncio.sleep(delay)
    simulator.is_running = False
    return {"message": f"{executed} ciclos executados.", "state": simulator.get_state()}

@app.post("/pause", summary="Pausar Simulação")
def pause_simulation():
    simulator.is_running = False
    return {"message": "Simulação pausada.", "state": simulator.get_state()}

@app.post("/reset", summary="Resetar Sequenciador")
def reset_simulation():
    simulator.reset()
    return {"message": "Sequenciador resetado.", "state": simulator.get_state()}

@app.post("/set_breakpoint", summary="Definir Breakpoint")
def set_breakpoint(control: ControlPayload):
    simulator.breakpoint_index = control.value
    return {"message": f"Breakpoint set at micro index 0x{control.value:03X}."}

@app.get("/word/{index}", summary="Decodificar Palavra de Controle")
def read_word(index: int):
    if not 0 <= index < STORE_SIZE:
        raise HTTPException(status_code=404, detail=f"index {index} outside 0..{STORE_SIZE - 1}")
    word = simulator.store.read(index)
    return {
        "index": index,
        "word": f"{word.encode():09X}",
        "mode": word.mode.name,
        "aluNotNeeded": word.alu_not_needed,
        "wellFormed": word.well_formed,
        "description": describe(word),
    }

@app.get("/bus_op", summary="Expandir Operação do Barramento")
def bus_op(selector: int, condition: bool = False, sign: bool = False):
    vector = expand_bus_op(selector, condition, sign)
    return {"vector": f"{vector:012b}", "fields": BusControl.from_vector(vector).to_dict()}
