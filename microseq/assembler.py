# microseq/assembler.py
import re

from .words import (
    AluFunction, AluOp, BusOp, CarryIn, DataOut, FINISHER_BASE, Mode, Reg,
    SEQUENCER_BASE, Shift, STORE_SIZE, make_word, parse_flags,
)

MODE_MAP = {
    "DECODE": Mode.DECODE,
    "JUMP": Mode.JUMP,
    "SAVE": Mode.SAVE,
    "FINISH": Mode.FINISH,
}

ILLEGAL_LABEL = "ILLEGAL"


class _LineError(Exception):
    pass


def _number(text: str) -> int:
    try:
        return int(text, 0)
    except ValueError:
        raise _LineError(f"'{text}' não é um número.") from None


def _resolve(operand: str, labels: dict) -> int:
    if operand in labels:
        return labels[operand]
    try:
        return int(operand, 0)
    except ValueError:
        raise _LineError(f"'{operand}' não encontrado.") from None


def _enum(enum_cls, name: str):
    try:
        return enum_cls[name]
    except KeyError:
        raise _LineError(f"valor '{name}' inválido para {enum_cls.__name__}.") from None


def _build_word(mode: Mode, operands: list[str], labels: dict) -> int:
    fields = {}
    alu_parts = {}

    if mode in (Mode.JUMP, Mode.SAVE):
        if not operands or "=" in operands[0]:
            raise _LineError(f"{mode.name} precisa de um endereço de destino.")
        target = _resolve(operands[0], labels)
        if not SEQUENCER_BASE <= target < STORE_SIZE:
            raise _LineError(f"destino 0x{target:X} fora da região do sequenciador.")
        fields["target"] = target & 0xFF
        operands = operands[1:]

    for operand in operands:
        key, _, value = operand.partition("=")
        if key == "WE" and not value:
            fields["we"] = True
        elif not value:
            raise _LineError(f"operando '{operand}' sem valor.")
        elif key == "FLAGS":
            if mode != Mode.DECODE:
                raise _LineError("FLAGS só vale em palavras DECODE.")
            try:
                fields["flags"] = parse_flags(value)
            except KeyError:
                fields["flags"] = _number(value) & 0xFF
        elif key == "FIN":
            if mode != Mode.SAVE:
                raise _LineError("FIN só vale em palavras SAVE.")
            if value in labels:
                address = labels[value]
                if not FINISHER_BASE <= address < STORE_SIZE:
                    raise _LineError(f"'{value}' não é um slot de finisher.")
                fields["finisher"] = address - FINISHER_BASE
            else:
                pointer = _resolve(value, labels)
                if not 0 <= pointer < 32:
                    raise _LineError(f"ponteiro de finisher {pointer} fora de 0..31.")
                fields["finisher"] = pointer
        elif key == "ALU":
            alu_parts["function"] = _enum(AluFunction, value)
        elif key == "SHIFT":
            alu_parts["shift"] = _enum(Shift, value)
        elif key == "CIN":
            alu_parts["carry_in"] = _enum(CarryIn, value)
        elif key == "BUS":
            fields["bus"] = _enum(BusOp, value)
        elif key == "DOUT":
            fields["dout"] = _enum(DataOut, value)
        elif key == "SRC":
            fields["src"] = _enum(Reg, value)
        elif key == "DST":
            fields["dst"] = _enum(Reg, value)
        else:
            raise _LineError(f"campo '{key}' desconhecido.")

    if mode == Mode.SAVE and "finisher" not in fields:
        raise _LineError("SAVE precisa de FIN=.")
    if alu_parts:
        if mode == Mode.SAVE:
            raise _LineError("SAVE não usa a ALU (campo ocupado pelo finisher).")
        alu_parts.setdefault("function", AluFunction.ADD)
        fields["alu"] = AluOp(**alu_parts)

    return make_word(mode, **fields)


def assemble(source_code: str) -> tuple[list[int] | None, str | None]:
    lines = source_code.upper().splitlines()
    labels = {}
    words = []

    # 1. Primeira Passagem: endereços e labels
    location = 0
    used = {}
    for i, line in enumerate(lines):
        line = line.split(';')[0].strip()
        if not line:
            continue

        if line.startswith(".ORG"):
            parts = line.split()
            if len(parts) != 2:
                return None, f"Erro na linha {i + 1}: .ORG precisa de um endereço."
            try:
                location = _number(parts[1])
            except _LineError as e:
                return None, f"Erro na linha {i + 1}: {e}"
            continue

        match = re.match(r'^([A-Z0-9_]+):\s*(.*)', line)
        if match:
            label, rest_of_line = match.groups()
            if label in labels:
                return None, f"Erro na linha {i + 1}: label '{label}' duplicado."
            labels[label] = location
            line = rest_of_line.strip()

        if not line:
            continue

        if not 0 <= location < STORE_SIZE:
            return None, f"Erro na linha {i + 1}: endereço 0x{location:X} fora do store."
        if location in used:
            return None, f"Erro na linha {i + 1}: endereço 0x{location:03X} já usado na linha {used[location]}."
        used[location] = i + 1

        parts = line.split()
        words.append({
            "address": location,
            "mnemonic": parts[0],
            "operands": parts[1:],
            "line": i + 1,
        })
        location += 1

    # 2. Slots não usados vão para a rotina de instrução ilegal
    illegal = labels.get(ILLEGAL_LABEL)
    if illegal is None:
        return None, f"Erro: label '{ILLEGAL_LABEL}' não definido."
    if not SEQUENCER_BASE <= illegal < STORE_SIZE:
        return None, f"Erro: '{ILLEGAL_LABEL}' precisa estar na região do sequenciador."
    image = [make_word(Mode.JUMP, target=illegal & 0xFF, bus=BusOp.HOLD)] * STORE_SIZE

    # 3. Segunda Passagem: gerar palavras
    for word in words:
        mode = MODE_MAP.get(word["mnemonic"])
        if mode is None:
            return None, f"Erro na linha {word['line']}: Mnemônico '{word['mnemonic']}' desconhecido."
        try:
            image[word["address"]] = _build_word(mode, word["operands"], labels)
        except _LineError as e:
            return None, f"Erro na linha {word['line']}: {e}"

    return image, None
