# microseq/microcode.py
import logging
from pathlib import Path
from typing import Sequence, Union

from .exceptions import ConfigurationError
from .words import (
    AluFunction as F, AluOp, BusOp, CarryIn, DataOut, Flag, FINISHER_BASE, ILLEGAL_ENTRY,
    Mode, Reg, RESET_ENTRY, Shift, STORE_SIZE, make_word,
)

logger = logging.getLogger(__name__)

NZ = Flag.N | Flag.Z
NZC = Flag.N | Flag.Z | Flag.C
NVZC = Flag.N | Flag.V | Flag.Z | Flag.C

# Convenção de ciclo: o byte de dados de um ciclo vem do endereço escolhido
# pela operação de barramento do ciclo anterior. Uma palavra DECODE só aparece
# no ciclo em que o opcode do novo PC está no barramento.

# --- SLOTS DA REGIÃO DO SEQUENCIADOR ---
SLOT_RESET = RESET_ENTRY      # 0x100..0x102: busca do vetor
SLOT_FETCH = 0x103            # sync após qualquer transferência de controle
SLOT_IMM = 0x104
SLOT_ZP = 0x105
SLOT_ABS = 0x106
SLOT_ABS_HI = 0x107
SLOT_ABS_W = 0x108
SLOT_ABS_W_HI = 0x109
SLOT_ZP_W = 0x10A
SLOT_JMP = 0x110
SLOT_JSR = 0x112              # 0x112..0x115
SLOT_RTS = 0x116              # 0x116..0x118
SLOT_PUSH = 0x11A
SLOT_PULL = 0x11C             # 0x11C..0x11D
SLOT_BRK = 0x120              # 0x120..0x122
SLOT_ILLEGAL = ILLEGAL_ENTRY

# --- FINISHERS (ponteiro de 5 bits) ---
FIN_NONE = 0                  # alvo padrão após reset
FIN_ORA = 1
FIN_AND = 2
FIN_EOR = 3
FIN_ADC = 4
FIN_STA = 5
FIN_LDA = 6
FIN_CMP = 7
FIN_SBC = 8
FIN_LDX = 9
FIN_LDY = 10


def jump(slot, **fields):
    return make_word(Mode.JUMP, target=slot & 0xFF, **fields)


def save(slot, finisher, **fields):
    return make_word(Mode.SAVE, target=slot & 0xFF, finisher=finisher, **fields)


def finish(**fields):
    return make_word(Mode.FINISH, **fields)


def decode(flags=Flag.NONE, **fields):
    return make_word(Mode.DECODE, flags=flags, **fields)


def stack_step(**fields):
    """S = S - 1 junto com o ciclo de pilha"""
    return dict(alu=AluOp(F.SUB), src=Reg.S, dst=Reg.S, **fields)


def stack_pop(**fields):
    """S = S + 1"""
    return dict(alu=AluOp(F.ADD, carry_in=CarryIn.ONE), src=Reg.S, dst=Reg.S, **fields)


CONTROL_STORE = [jump(SLOT_ILLEGAL, bus=BusOp.HOLD)] * STORE_SIZE

# ==============================================================================
# RESET / VETOR
# ==============================================================================
# 0x100: endereço = página 0xFF + índice do vetor
CONTROL_STORE[SLOT_RESET] = jump(SLOT_RESET + 1, bus=BusOp.VECTOR)
# 0x101: dado = byte baixo do vetor
CONTROL_STORE[SLOT_RESET + 1] = jump(SLOT_RESET + 2, bus=BusOp.INC)
# 0x102: dado = byte alto; PC = {dado, byte baixo}
CONTROL_STORE[SLOT_RESET + 2] = jump(SLOT_FETCH, bus=BusOp.AHL)
# 0x103: dado = primeiro opcode
CONTROL_STORE[SLOT_FETCH] = decode(bus=BusOp.INC)

# Instrução ilegal: trava no próprio slot
CONTROL_STORE[SLOT_ILLEGAL] = jump(SLOT_ILLEGAL, bus=BusOp.HOLD)

# ==============================================================================
# MODOS DE ENDEREÇAMENTO (fase de endereço efetivo)
# ==============================================================================
# O operando está no barramento durante o ciclo FINISH; o PC volta ao próximo opcode
CONTROL_STORE[SLOT_IMM] = finish(alu=AluOp(F.PASS_B), bus=BusOp.PC)
CONTROL_STORE[SLOT_ZP] = finish(alu=AluOp(F.PASS_B), bus=BusOp.PC)
CONTROL_STORE[SLOT_ABS] = jump(SLOT_ABS_HI, bus=BusOp.AHL)
CONTROL_STORE[SLOT_ABS_HI] = finish(alu=AluOp(F.PASS_B), bus=BusOp.PC)
# Escrita: o write-enable sai um ciclo antes do endereço
CONTROL_STORE[SLOT_ZP_W] = finish(alu=AluOp(F.PASS_A), bus=BusOp.PC, src=Reg.A)
CONTROL_STORE[SLOT_ABS_W] = jump(SLOT_ABS_W_HI, bus=BusOp.AHL, we=True)
CONTROL_STORE[SLOT_ABS_W_HI] = finish(alu=AluOp(F.PASS_A), bus=BusOp.PC, src=Reg.A)

# ==============================================================================
# FINISHERS: última operação, flags e sync
# ==============================================================================
FINISHERS = {
    FIN_NONE: decode(bus=BusOp.INC),
    FIN_ORA: decode(NZ, alu=AluOp(F.OR), bus=BusOp.INC, src=Reg.DB, dst=Reg.A),
    FIN_AND: decode(NZ, alu=AluOp(F.AND), bus=BusOp.INC, src=Reg.DB, dst=Reg.A),
    FIN_EOR: decode(NZ, alu=AluOp(F.EOR), bus=BusOp.INC, src=Reg.DB, dst=Reg.A),
    FIN_ADC: decode(NVZC, alu=AluOp(F.ADD, carry_in=CarryIn.CARRY), bus=BusOp.INC, src=Reg.DB, dst=Reg.A),
    FIN_STA: decode(bus=BusOp.INC),
    FIN_LDA: decode(NZ, alu=AluOp(F.PASS_B), bus=BusOp.INC, src=Reg.DB, dst=Reg.A),
    FIN_CMP: decode(NZC, alu=AluOp(F.SUB, carry_in=CarryIn.ONE), bus=BusOp.INC, src=Reg.DB),
    FIN_SBC: decode(NVZC, alu=AluOp(F.SUB, carry_in=CarryIn.CARRY), bus=BusOp.INC, src=Reg.DB, dst=Reg.A),
    FIN_LDX: decode(NZ, alu=AluOp(F.PASS_B), bus=BusOp.INC, src=Reg.DB, dst=Reg.X),
    FIN_LDY: decode(NZ, alu=AluOp(F.PASS_B), bus=BusOp.INC, src=Reg.DB, dst=Reg.Y),
}
for pointer, word in FINISHERS.items():
    CONTROL_STORE[FINISHER_BASE | pointer] = word

# Instruções de memória: opcode -> (finisher, imediato, página zero, absoluto)
MEMORY_OPS = {
    "ORA": (FIN_ORA, 0x09, 0x05, 0x0D),
    "AND": (FIN_AND, 0x29, 0x25, 0x2D),
    "EOR": (FIN_EOR, 0x49, 0x45, 0x4D),
    "ADC": (FIN_ADC, 0x69, 0x65, 0x6D),
    "LDA": (FIN_LDA, 0xA9, 0xA5, 0xAD),
    "CMP": (FIN_CMP, 0xC9, 0xC5, 0xCD),
    "SBC": (FIN_SBC, 0xE9, 0xE5, 0xED),
    "LDX": (FIN_LDX, 0xA2, 0xA6, 0xAE),
    "LDY": (FIN_LDY, 0xA0, 0xA4, 0xAC),
}
for finisher, imm, zp, absolute in MEMORY_OPS.values():
    CONTROL_STORE[imm] = save(SLOT_IMM, finisher, bus=BusOp.HOLD)
    CONTROL_STORE[zp] = save(SLOT_ZP, finisher, bus=BusOp.ZP_INDEX)
    CONTROL_STORE[absolute] = save(SLOT_ABS, finisher, bus=BusOp.INC)

# STA: o write-enable da página zero sai junto com o cálculo do endereço
CONTROL_STORE[0x85] = save(SLOT_ZP_W, FIN_STA, bus=BusOp.ZP_INDEX, we=True)
CONTROL_STORE[0x8D] = save(SLOT_ABS_W, FIN_STA, bus=BusOp.INC)

# ==============================================================================
# IMPLÍCITAS (o byte seguinte já é o próximo opcode)
# ==============================================================================
IMPLIED_OPS = {
    0xEA: decode(bus=BusOp.INC),                                                            # NOP
    0xE8: decode(NZ, alu=AluOp(F.ADD, carry_in=CarryIn.ONE), bus=BusOp.INC, src=Reg.X, dst=Reg.X),  # INX
    0xCA: decode(NZ, alu=AluOp(F.SUB), bus=BusOp.INC, src=Reg.X, dst=Reg.X),                # DEX
    0xC8: decode(NZ, alu=AluOp(F.ADD, carry_in=CarryIn.ONE), bus=BusOp.INC, src=Reg.Y, dst=Reg.Y),  # INY
    0x88: decode(NZ, alu=AluOp(F.SUB), bus=BusOp.INC, src=Reg.Y, dst=Reg.Y),                # DEY
    0xAA: decode(NZ, alu=AluOp(F.PASS_A), bus=BusOp.INC, src=Reg.A, dst=Reg.X),             # TAX
    0x8A: decode(NZ, alu=AluOp(F.PASS_A), bus=BusOp.INC, src=Reg.X, dst=Reg.A),             # TXA
    0xA8: decode(NZ, alu=AluOp(F.PASS_A), bus=BusOp.INC, src=Reg.A, dst=Reg.Y),             # TAY
    0x98: decode(NZ, alu=AluOp(F.PASS_A), bus=BusOp.INC, src=Reg.Y, dst=Reg.A),             # TYA
    0x18: decode(Flag.C, alu=AluOp(F.PASS_A, carry_in=CarryIn.ZERO), bus=BusOp.INC),        # CLC
    0x38: decode(Flag.C, alu=AluOp(F.PASS_A, carry_in=CarryIn.ONE), bus=BusOp.INC),         # SEC
    0x0A: decode(NZC, alu=AluOp(F.PASS_A, Shift.ASL), bus=BusOp.INC, src=Reg.A, dst=Reg.A),  # ASL A
    0x4A: decode(NZC, alu=AluOp(F.PASS_A, Shift.LSR), bus=BusOp.INC, src=Reg.A, dst=Reg.A),  # LSR A
    0x2A: decode(NZC, alu=AluOp(F.PASS_A, Shift.ROL, CarryIn.CARRY), bus=BusOp.INC, src=Reg.A, dst=Reg.A),  # ROL A
}
for opcode, word in IMPLIED_OPS.items():
    CONTROL_STORE[opcode] = word

# ==============================================================================
# DESVIOS
# ==============================================================================
# O dado do ciclo do opcode é o deslocamento (dá o sinal); o bit de condição
# vem de fora. No ciclo seguinte o opcode do destino já está no barramento.
for opcode in (0xF0, 0xB0, 0x30):      # BEQ, BCS, BMI
    CONTROL_STORE[opcode] = jump(SLOT_FETCH, bus=BusOp.BRANCH_TRUE)
for opcode in (0xD0, 0x90, 0x10):      # BNE, BCC, BPL
    CONTROL_STORE[opcode] = jump(SLOT_FETCH, bus=BusOp.BRANCH_FALSE)
CONTROL_STORE[0x80] = jump(SLOT_FETCH, bus=BusOp.BRANCH)    # BRA

# --- JMP abs (0x4C) ---
CONTROL_STORE[0x4C] = jump(SLOT_JMP, bus=BusOp.INC)
CONTROL_STORE[SLOT_JMP] = jump(SLOT_FETCH, bus=BusOp.AHL)

# --- JSR abs (0x20) ---
# O write-enable sai um ciclo antes; dout vale no próprio ciclo da escrita
CONTROL_STORE[0x20] = jump(SLOT_JSR, bus=BusOp.INC)
CONTROL_STORE[SLOT_JSR] = jump(SLOT_JSR + 1, bus=BusOp.AHL_CALL)
CONTROL_STORE[SLOT_JSR + 1] = jump(SLOT_JSR + 2, **stack_step(bus=BusOp.STACK, we=True))
CONTROL_STORE[SLOT_JSR + 2] = jump(SLOT_JSR + 3, **stack_step(bus=BusOp.STACK, we=True, dout=DataOut.PCH))
CONTROL_STORE[SLOT_JSR + 3] = jump(SLOT_FETCH, bus=BusOp.PC, dout=DataOut.PCL)

# --- RTS (0x60) ---
CONTROL_STORE[0x60] = jump(SLOT_RTS, **stack_pop(bus=BusOp.STACK_PREINC))
CONTROL_STORE[SLOT_RTS] = jump(SLOT_RTS + 1, **stack_pop(bus=BusOp.STACK_PREINC))
CONTROL_STORE[SLOT_RTS + 1] = jump(SLOT_RTS + 2, bus=BusOp.AHL)
# endereço empilhado aponta para o último byte do JSR
CONTROL_STORE[SLOT_RTS + 2] = jump(SLOT_FETCH, bus=BusOp.INC)

# --- PHA (0x48) / PLA (0x68) ---
CONTROL_STORE[0x48] = jump(SLOT_PUSH, **stack_step(bus=BusOp.STACK_HOLD_PC, we=True))
CONTROL_STORE[SLOT_PUSH] = jump(SLOT_FETCH, bus=BusOp.PC, alu=AluOp(F.PASS_A), src=Reg.A)

CONTROL_STORE[0x68] = jump(SLOT_PULL, bus=BusOp.STACK_HOLD_PC)
CONTROL_STORE[SLOT_PULL] = save(SLOT_PULL + 1, FIN_LDA, bus=BusOp.STACK_PREINC)
CONTROL_STORE[SLOT_PULL + 1] = finish(**stack_pop(bus=BusOp.PC))

# --- BRK (0x00): empilha PC e P, depois entra na rotina de vetor ---
CONTROL_STORE[0x00] = jump(SLOT_BRK, **stack_step(bus=BusOp.STACK_RETURN, we=True))
CONTROL_STORE[SLOT_BRK] = jump(SLOT_BRK + 1, **stack_step(bus=BusOp.STACK, we=True, dout=DataOut.PCH))
CONTROL_STORE[SLOT_BRK + 1] = jump(SLOT_BRK + 2, **stack_step(bus=BusOp.STACK, we=True, dout=DataOut.PCL))
CONTROL_STORE[SLOT_BRK + 2] = jump(SLOT_RESET + 1, bus=BusOp.VECTOR, dout=DataOut.STATUS)

DEFAULT_IMAGE = tuple(CONTROL_STORE)


# ==============================================================================
# ARQUIVO DE IMAGEM (uma palavra hexadecimal por linha, '#' comenta)
# ==============================================================================
def parse_image(text: str) -> list[int]:
    image = []
    for number, line in enumerate(text.splitlines(), 1):
        line = line.split('#')[0].strip()
        if not line:
            continue
        try:
            image.append(int(line, 16))
        except ValueError:
            raise ConfigurationError(f"line {number}: invalid hex word {line!r}") from None
    return image


def read_image(path: Union[str, Path]) -> list[int]:
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"cannot read microcode image {path}: {e}") from e
    image = parse_image(text)
    logger.info("Read %d words from %s", len(image), path)
    return image


def format_image(image: Sequence[int]) -> str:
    return "".join(f"{word:09X}\n" for word in image)


def write_image(path: Union[str, Path], image: Sequence[int]):
    Path(path).write_text(format_image(image), encoding="utf-8")
