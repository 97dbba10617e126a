# CHIP-8 INFO
# https://chip-8.github.io/extensions/#chip-8
# https://chip-8.github.io/links/
#
# COMPATIBILITY QUIRKS TABLE
# https://games.gulrak.net/cadmium/chip8-opcode-table.html#quirk6
#
# MASTERING CHIP-8
# https://github.com/mattmikolay/chip-8/wiki/Mastering-CHIP%E2%80%908
#
# TEST SUITE
# https://github.com/Timendus/chip8-test-suite


import os
import random
import time
from enum import Enum
from functools import wraps
from typing import NamedTuple


# ******************** STATIC SECTION
C8_FONTS = [0xF0, 0x90, 0x90, 0x90, 0xF0,  # 0
            0x20, 0x60, 0x20, 0x20, 0x70,  # 1
            0xF0, 0x10, 0xF0, 0x80, 0xF0,  # 2
            0xF0, 0x10, 0xF0, 0x10, 0xF0,  # 3
            0x90, 0x90, 0xF0, 0x10, 0x10,  # 4
            0xF0, 0x80, 0xF0, 0x10, 0xF0,  # 5
            0xF0, 0x80, 0xF0, 0x90, 0xF0,  # 6
            0xF0, 0x10, 0x20, 0x40, 0x40,  # 7
            0xF0, 0x90, 0xF0, 0x90, 0xF0,  # 8
            0xF0, 0x90, 0xF0, 0x10, 0xF0,  # 9
            0xF0, 0x90, 0xF0, 0x90, 0x90,  # A
            0xE0, 0x90, 0xE0, 0x90, 0xE0,  # B
            0xF0, 0x80, 0x80, 0x80, 0xF0,  # C
            0xE0, 0x90, 0x90, 0x90, 0xE0,  # D
            0xF0, 0x80, 0xF0, 0x80, 0xF0,  # E
            0xF0, 0x80, 0xF0, 0x80, 0x80]  # F

MEMORY_SIZE = 4096
FONTSET_START_ADDRESS = 0x000
GLYPH_SIZE = 5
ROM_START_ADDRESS = 0x200
MAX_ROM_SIZE = MEMORY_SIZE - ROM_START_ADDRESS
NUM_REGISTERS = 16
STACK_SIZE = 16
KEYPAD_SIZE = 16
SCREEN_HEIGHT = 32
SCREEN_WIDTH = 64
DEFAULT_SEED = 996
LCG_A = 75
LCG_C = 74
DEBUG = True if int(os.getenv('DEBUG', 0)) >= 1 else False


# ******************** ERRORS SECTION
class Chip8Error(Exception):
    """base class of everything the interpreter core can raise"""


class UnknownOpcode(Chip8Error):
    def __init__(self, opcode):
        super().__init__(f"Unknown opcode: 0x{opcode:04x}")
        self.opcode = opcode


class AddressOutOfRange(Chip8Error):
    def __init__(self, address):
        super().__init__(f"Address 0x{address:04x} is outside of the {MEMORY_SIZE} bytes of memory")
        self.address = address


class StackOverflow(Chip8Error):
    def __init__(self):
        super().__init__(f"The CHIP-8 stack can contain at most {STACK_SIZE} addresses. Limit exceeded")


class StackUnderflow(Chip8Error):
    def __init__(self):
        super().__init__("Tried to return from a subroutine with an empty stack")


class RomTooLarge(Chip8Error):
    def __init__(self, size):
        super().__init__(f"ROM is {size} bytes long, at most {MAX_ROM_SIZE} bytes fit in memory")
        self.size = size


# ******************** UTILITIES SECTION
def asm(msg):
    """decorator to print out the ASM of the instruction being called"""
    def decorator(fn):
        @wraps(fn)
        def wrapper_fn(*args, **kwargs):
            mem_addr = args[0].state.pc - 2     # pc has already been moved past the instruction
            vals = fn(*args, **kwargs)          # use the locals() values of each decorated function in the print
            vals['mem_addr'] = mem_addr
            if DEBUG: print(msg.format(**vals))
        return wrapper_fn
    return decorator


# ******************** RANDOM SECTION
class LinearCongruentialGenerator:
    """
    endless source of 16 bit pseudo-random values: seed = seed * 75 + 74 (mod 65536)
    the same seed always yields the same sequence, reseed() restarts it
    """
    def __init__(self, seed=DEFAULT_SEED):
        self.seed = seed & 0xFFFF

    @classmethod
    def from_time(cls):
        """seed from the wall clock so that each session plays differently"""
        return cls(int(time.time() * 1000) & 0xFFFF)

    def reseed(self, seed):
        self.seed = seed & 0xFFFF

    def __iter__(self):
        return self

    def __next__(self):
        self.seed = (LCG_A * self.seed + LCG_C) & 0xFFFF
        return self.seed

    def __repr__(self):
        return f"LinearCongruentialGenerator(seed={self.seed})"


def python_random_source(seed=None):
    """alternative source backed by the random module"""
    rnd = random.Random(seed)
    while True:
        yield rnd.getrandbits(16)


# ******************** MEMORY SECTION
# ********** WRAPS A BYTEARRAY TO REPRESENT THE MAIN MEMORY WITH A LIMITED SIZE OF 4KB
class Memory:
    def __init__(self):
        self.inner = bytearray(MEMORY_SIZE)

    def __len__(self):
        return len(self.inner)

    def _check(self, key):
        if isinstance(key, slice):
            start, stop = key.start or 0, key.stop if key.stop is not None else MEMORY_SIZE
            if start < 0 or start > stop:
                raise AddressOutOfRange(start)
            if stop > MEMORY_SIZE:
                raise AddressOutOfRange(stop - 1)
        elif not 0 <= key < MEMORY_SIZE:
            raise AddressOutOfRange(key)

    def __setitem__(self, key, value):
        self._check(key)
        if isinstance(key, slice) and len(value) != key.stop - (key.start or 0):
            raise ValueError("Memory slices can't be resized")
        self.inner[key] = value

    def __getitem__(self, key):
        self._check(key)
        return self.inner[key]

    def load_fontset(self):
        self[FONTSET_START_ADDRESS:FONTSET_START_ADDRESS+len(C8_FONTS)] = C8_FONTS

    def load_rom(self, rom):
        """copy the program image right after the interpreter reserved area"""
        if len(rom) > MAX_ROM_SIZE:
            raise RomTooLarge(len(rom))
        self[ROM_START_ADDRESS:ROM_START_ADDRESS+len(rom)] = rom


# ********** WRAPS A LIST TO REPRESENT A STACK WITH A LIMITED SIZE OF 16 ADDRESSES
class Stack:
    def __init__(self):
        self.addr_list = [0] * STACK_SIZE
        self.size = 0   # doubles as the stack pointer

    def __len__(self):
        return self.size

    def __repr__(self):
        return f"Stack({[hex(a) for a in self.addr_list[:self.size]]})"

    def append(self, address):
        if self.size >= STACK_SIZE:
            raise StackOverflow()
        self.addr_list[self.size] = address
        self.size += 1

    def pop(self):
        if self.size == 0:
            raise StackUnderflow()
        self.size -= 1
        return self.addr_list[self.size]


class MachineState:
    """
    everything the interpreter mutates: registers, memory, timers, stack, keypad and screen
    it's an explicitly owned value, the Chip8 executor and tick_timer() receive it from the driver
    """
    def __init__(self):
        self.reset()

    def reset(self):
        """power-on state: everything zeroed except the font table and the program counter"""
        self.mem = Memory()
        self.mem.load_fontset()
        self.stack = Stack()
        self.v_regs = [0] * NUM_REGISTERS
        self.pc = ROM_START_ADDRESS
        self.idx = 0    # specify where the sprites reside in memory
        self.dt = 0     # delay timer, active when non-zero
        self.st = 0     # sound timer, active when non-zero
        self.keypad = [False] * KEYPAD_SIZE
        self.screen = [False] * SCREEN_WIDTH * SCREEN_HEIGHT
        self.draw = False
        # None while idle, otherwise the key captured by LD Vx, K which has to be released
        self.wait_for_key_release = None

    def __str__(self):
        registers = f"PC_REGISTER:0x{self.pc:04x} | IDX_REGISTER:0x{self.idx:04x} | VARIABLE_REGISTERS:{self.v_regs}"
        timers = f"DELAY_TIMER:{self.dt} | SOUND_TIMER:{self.st}"
        stack = f"STACK:{self.stack}"
        flags = f"DRAW: {self.draw} | WAIT_FOR_KEY_RELEASE: {self.wait_for_key_release}"
        return f"{registers}\n{timers}\n{stack}\n{flags}"

    @property
    def stack_pointer(self):
        return self.stack.size

    @property
    def beeping(self):
        return self.st > 0

    @property
    def waiting_for_key_release(self):
        return self.wait_for_key_release is not None

    def load_program(self, rom):
        self.mem.load_rom(rom)

    def pixel(self, x, y):
        return self.screen[y * SCREEN_WIDTH + x]

    def press_key(self, key):
        self.keypad[key] = True

    def release_key(self, key):
        self.keypad[key] = False
        if self.wait_for_key_release == key:
            self.wait_for_key_release = None

    def release_all_keys(self):
        """input went idle: forget every pressed key and any pending wait"""
        self.keypad = [False] * KEYPAD_SIZE
        self.wait_for_key_release = None


# ******************** DECODER SECTION
class Op(Enum):
    SYS = "SYS"
    CLS = "CLS"
    RET = "RET"
    JP = "JP"
    CALL = "CALL"
    SE_BYTE = "SE_BYTE"
    SNE_BYTE = "SNE_BYTE"
    SE_REG = "SE_REG"
    LD_BYTE = "LD_BYTE"
    ADD_BYTE = "ADD_BYTE"
    LD_REG = "LD_REG"
    OR = "OR"
    AND = "AND"
    XOR = "XOR"
    ADD_REG = "ADD_REG"
    SUB = "SUB"
    SHR = "SHR"
    SUBN = "SUBN"
    SHL = "SHL"
    SNE_REG = "SNE_REG"
    LD_I = "LD_I"
    JP_V0 = "JP_V0"
    RND = "RND"
    DRW = "DRW"
    SKP = "SKP"
    SKNP = "SKNP"
    LD_VX_DT = "LD_VX_DT"
    LD_VX_K = "LD_VX_K"
    LD_DT_VX = "LD_DT_VX"
    LD_ST_VX = "LD_ST_VX"
    ADD_I = "ADD_I"
    LD_F = "LD_F"
    LD_B = "LD_B"
    LD_I_VX = "LD_I_VX"
    LD_VX_I = "LD_VX_I"


# WATCH OUT: masks order is important!!!
# the lookup stops at the first mask whose patterns contain the masked opcode
OPCODE_MASKS = (
    (0xFFFF, {0x00E0: Op.CLS, 0x00EE: Op.RET}),
    (0xF0FF, {0xE09E: Op.SKP, 0xE0A1: Op.SKNP,
              0xF007: Op.LD_VX_DT, 0xF00A: Op.LD_VX_K, 0xF015: Op.LD_DT_VX, 0xF018: Op.LD_ST_VX,
              0xF01E: Op.ADD_I, 0xF029: Op.LD_F, 0xF033: Op.LD_B, 0xF055: Op.LD_I_VX, 0xF065: Op.LD_VX_I}),
    (0xF00F, {0x8000: Op.LD_REG, 0x8001: Op.OR, 0x8002: Op.AND, 0x8003: Op.XOR, 0x8004: Op.ADD_REG,
              0x8005: Op.SUB, 0x8006: Op.SHR, 0x8007: Op.SUBN, 0x800E: Op.SHL}),
    (0xF000, {0x0000: Op.SYS, 0x1000: Op.JP, 0x2000: Op.CALL, 0x3000: Op.SE_BYTE, 0x4000: Op.SNE_BYTE,
              0x5000: Op.SE_REG, 0x6000: Op.LD_BYTE, 0x7000: Op.ADD_BYTE, 0x9000: Op.SNE_REG,
              0xA000: Op.LD_I, 0xB000: Op.JP_V0, 0xC000: Op.RND, 0xD000: Op.DRW}),
)

MNEMONICS = {
    Op.SYS: "SYS 0x{nnn:03x}",
    Op.CLS: "CLS",
    Op.RET: "RET",
    Op.JP: "JP 0x{nnn:03x}",
    Op.CALL: "CALL 0x{nnn:03x}",
    Op.SE_BYTE: "SE V{x:X}, {nn}",
    Op.SNE_BYTE: "SNE V{x:X}, {nn}",
    Op.SE_REG: "SE V{x:X}, V{y:X}",
    Op.LD_BYTE: "LD V{x:X}, {nn}",
    Op.ADD_BYTE: "ADD V{x:X}, {nn}",
    Op.LD_REG: "LD V{x:X}, V{y:X}",
    Op.OR: "OR V{x:X}, V{y:X}",
    Op.AND: "AND V{x:X}, V{y:X}",
    Op.XOR: "XOR V{x:X}, V{y:X}",
    Op.ADD_REG: "ADD V{x:X}, V{y:X}",
    Op.SUB: "SUB V{x:X}, V{y:X}",
    Op.SHR: "SHR V{x:X}, V{y:X}",
    Op.SUBN: "SUBN V{x:X}, V{y:X}",
    Op.SHL: "SHL V{x:X}, V{y:X}",
    Op.SNE_REG: "SNE V{x:X}, V{y:X}",
    Op.LD_I: "LD I, 0x{nnn:03x}",
    Op.JP_V0: "JP V0, 0x{nnn:03x}",
    Op.RND: "RND V{x:X}, 0x{nn:02x}",
    Op.DRW: "DRW V{x:X}, V{y:X}, {n}",
    Op.SKP: "SKP V{x:X}",
    Op.SKNP: "SKNP V{x:X}",
    Op.LD_VX_DT: "LD V{x:X}, DT",
    Op.LD_VX_K: "LD V{x:X}, K",
    Op.LD_DT_VX: "LD DT, V{x:X}",
    Op.LD_ST_VX: "LD ST, V{x:X}",
    Op.ADD_I: "ADD I, V{x:X}",
    Op.LD_F: "LD F, V{x:X}",
    Op.LD_B: "LD B, V{x:X}",
    Op.LD_I_VX: "LD [I], V{x:X}",
    Op.LD_VX_I: "LD V{x:X}, [I]",
}


class Instruction(NamedTuple):
    """decoded opcode: the operation tag plus every operand field sliced out of the opcode"""
    op: Op
    x: int = 0      # second nibble, register index
    y: int = 0      # third nibble, register index
    n: int = 0      # lowest nibble
    nn: int = 0     # lowest byte
    nnn: int = 0    # lowest 12 bits, address

    def __str__(self):
        return MNEMONICS[self.op].format(**self._asdict())


def decode(opcode):
    """split the opcode in its fields and find out which instruction it is, raise UnknownOpcode otherwise"""
    opcode &= 0xFFFF
    for mask, patterns in OPCODE_MASKS:
        op = patterns.get(opcode & mask)
        if op is not None:
            return Instruction(
                op,
                x=(opcode & 0x0F00) >> 8,
                y=(opcode & 0x00F0) >> 4,
                n=opcode & 0x000F,
                nn=opcode & 0x00FF,
                nnn=opcode & 0x0FFF,
            )
    raise UnknownOpcode(opcode)


# ******************** CPU SECTION
class Chip8:
    def __init__(self, state=None, rng=None):
        self.state = state if state is not None else MachineState()
        self.rng = rng if rng is not None else LinearCongruentialGenerator()
        self.instructions = {
            Op.SYS: self._sys,
            Op.CLS: self._clear_screen,
            Op.RET: self._return,
            Op.JP: self._jump,
            Op.CALL: self._call_addr,
            Op.SE_BYTE: self._skip_if_eq,
            Op.SNE_BYTE: self._skip_if_not_eq,
            Op.SE_REG: self._skip_if_eq_regs,
            Op.LD_BYTE: self._set_vk,
            Op.ADD_BYTE: self._add_to_vk,
            Op.LD_REG: self._set_vx_to_vy,
            Op.OR: self._set_vx_or_vy,
            Op.AND: self._set_vx_and_vy,
            Op.XOR: self._set_vx_xor_vy,
            Op.ADD_REG: self._add_vx_vy,
            Op.SUB: self._sub_vx_vy,
            Op.SHR: self._shr,
            Op.SUBN: self._subn_vx_vy,
            Op.SHL: self._shl,
            Op.SNE_REG: self._skip_if_not_eq_regs,
            Op.LD_I: self._set_idx,
            Op.JP_V0: self._jump_plus,
            Op.RND: self._random_byte_and,
            Op.DRW: self._to_screen,
            Op.SKP: self._skip_if_pressed,
            Op.SKNP: self._skip_if_not_pressed,
            Op.LD_VX_DT: self._set_vx_dt,
            Op.LD_VX_K: self._wait_keypress,
            Op.LD_DT_VX: self._set_dt_vx,
            Op.LD_ST_VX: self._set_st,
            Op.ADD_I: self._add_to_idx,
            Op.LD_F: self._select_char,
            Op.LD_B: self._bcd_repr,
            Op.LD_I_VX: self._store_vregs,
            Op.LD_VX_I: self._load_vregs,
        }

    def __str__(self):
        return str(self.state)

    @property
    def v_regs(self):
        return self.state.v_regs

    @property
    def mem(self):
        return self.state.mem

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: SYS 0x{address:03x}")
    def _sys(self, ins):
        """jump to a machine code routine, ignored by modern interpreters"""
        address = ins.nnn
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: SKP V{x:X}")
    def _skip_if_pressed(self, ins):
        """skip the following instruction if the key corresponding to the hex value stored in Vx is pressed"""
        x = ins.x
        key = self.v_regs[x] & 0xF
        if self.state.keypad[key]:
            self._goto_next_instruction()
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: SKNP V{x:X}")
    def _skip_if_not_pressed(self, ins):
        """skip the following instruction if the key corresponding to the hex value stored in Vx is NOT pressed"""
        x = ins.x
        key = self.v_regs[x] & 0xF
        if not self.state.keypad[key]:
            self._goto_next_instruction()
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: LD V{x:X}, K")
    def _wait_keypress(self, ins):
        """
        wait for a key press and store its value in Vx
        the lowest pressed key wins, then the machine halts until that same key gets released
        """
        x = ins.x
        key = next((k for k, pressed in enumerate(self.state.keypad) if pressed), None)
        if key is None:
            self.state.pc -= 0x2    # stay on the same instruction until a key is pressed
        else:
            self.v_regs[x] = key
            self.state.wait_for_key_release = key
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: LD V{x:X}, DT")
    def _set_vx_dt(self, ins):
        """set Vx = DT (delay timer) value"""
        x = ins.x
        self.v_regs[x] = self.state.dt
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: LD DT, V{x:X}")
    def _set_dt_vx(self, ins):
        """set DT (delay timer) = Vx"""
        x = ins.x
        self.state.dt = self.v_regs[x]
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: CLS")
    def _clear_screen(self, ins):
        self.state.screen = [False] * SCREEN_WIDTH * SCREEN_HEIGHT
        self.state.draw = True
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: RET")
    def _return(self, ins):
        """return from a subroutine"""
        self.state.pc = self.state.stack.pop()
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: JP 0x{address:03x}")
    def _jump(self, ins):
        address = ins.nnn
        self.state.pc = address
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: CALL 0x{address:03x}")
    def _call_addr(self, ins):
        address = ins.nnn
        self.state.stack.append(self.state.pc)
        self.state.pc = address
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: SE V{x:X}, {comparison_value}")
    def _skip_if_eq(self, ins):
        x, comparison_value = ins.x, ins.nn
        if self.v_regs[x] == comparison_value:
            self._goto_next_instruction()
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: SNE V{x:X}, {comparison_value}")
    def _skip_if_not_eq(self, ins):
        x, comparison_value = ins.x, ins.nn
        if self.v_regs[x] != comparison_value:
            self._goto_next_instruction()
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: SE V{x:X}, V{y:X}")
    def _skip_if_eq_regs(self, ins):
        x, y = ins.x, ins.y
        if self.v_regs[x] == self.v_regs[y]:
            self._goto_next_instruction()
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: SNE V{x:X}, V{y:X}")
    def _skip_if_not_eq_regs(self, ins):
        x, y = ins.x, ins.y
        if self.v_regs[x] != self.v_regs[y]:
            self._goto_next_instruction()
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: LD V{x:X}, {value}")
    def _set_vk(self, ins):
        """set the value of one of the 16 variable registers, Vx"""
        x, value = ins.x, ins.nn
        self.v_regs[x] = value
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: ADD V{x:X}, {value}")
    def _add_to_vk(self, ins):
        """add to the value already present in one of the variable registers, VF untouched"""
        x, value = ins.x, ins.nn
        self.v_regs[x] = (self.v_regs[x] + value) & 0xFF    # keep only the lowest 8 bits from the result and store them in Vx
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: LD V{x:X}, V{y:X}")
    def _set_vx_to_vy(self, ins):
        """set the value of Vx equal to that of Vy"""
        x, y = ins.x, ins.y
        self.v_regs[x] = self.v_regs[y]
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: OR V{x:X}, V{y:X}")
    def _set_vx_or_vy(self, ins):
        """set the value of Vx to Vx OR Vy"""
        x, y = ins.x, ins.y
        self.v_regs[x] |= self.v_regs[y]
        self.v_regs[0xF] = 0            # compatibility quirk 1
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: AND V{x:X}, V{y:X}")
    def _set_vx_and_vy(self, ins):
        """set the value of Vx to Vx AND Vy"""
        x, y = ins.x, ins.y
        self.v_regs[x] &= self.v_regs[y]
        self.v_regs[0xF] = 0            # compatibility quirk 1
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: XOR V{x:X}, V{y:X}")
    def _set_vx_xor_vy(self, ins):
        """set the value of Vx to Vx XOR Vy"""
        x, y = ins.x, ins.y
        self.v_regs[x] ^= self.v_regs[y]
        self.v_regs[0xF] = 0            # compatibility quirk 1
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: ADD V{x:X}, V{y:X}")
    def _add_vx_vy(self, ins):
        """set the value of Vx to Vx + Vy, VF = carry"""
        x, y = ins.x, ins.y
        total = self.v_regs[x] + self.v_regs[y]
        self.v_regs[x] = total & 0xFF   # keep only the lowest 8 bits from the result and store them in Vx
        self.v_regs[0xF] = 1 if total > 0xFF else 0
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: SUB V{x:X}, V{y:X}")
    def _sub_vx_vy(self, ins):
        """set the value of Vx to Vx - Vy, VF = NOT borrow"""
        x, y = ins.x, ins.y
        not_borrow = 1 if self.v_regs[x] >= self.v_regs[y] else 0
        self.v_regs[x] = (self.v_regs[x] - self.v_regs[y]) & 0xFF
        self.v_regs[0xF] = not_borrow
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: SHR V{x:X}, V{y:X}")
    def _shr(self, ins):
        """set Vx equal to Vy SHR 1"""
        x, y = ins.x, ins.y
        self.v_regs[x] = self.v_regs[y]     # compatibility quirk 2
        lsb = self.v_regs[x] & 0x1
        self.v_regs[x] = (self.v_regs[x] >> 1) & 0xFF   # divide by 2 and keep only the lowest 8 bits from the result
        self.v_regs[0xF] = lsb
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: SUBN V{x:X}, V{y:X}")
    def _subn_vx_vy(self, ins):
        """set the value of Vx to Vy - Vx, VF = NOT borrow"""
        x, y = ins.x, ins.y
        not_borrow = 1 if self.v_regs[y] >= self.v_regs[x] else 0
        self.v_regs[x] = (self.v_regs[y] - self.v_regs[x]) & 0xFF
        self.v_regs[0xF] = not_borrow
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: SHL V{x:X}, V{y:X}")
    def _shl(self, ins):
        """set Vx equal to Vy SHL 1"""
        x, y = ins.x, ins.y
        self.v_regs[x] = self.v_regs[y]     # compatibility quirk 2
        msb = (self.v_regs[x] & 0x80) >> 7
        self.v_regs[x] = (self.v_regs[x] << 1) & 0xFF   # multiply by 2 and keep only the lowest 8 bits from the result
        self.v_regs[0xF] = msb
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: LD I, 0x{value:03x}")
    def _set_idx(self, ins):
        """set the value of the I register"""
        value = ins.nnn
        self.state.idx = value
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: JP V0, 0x{address:03x}")
    def _jump_plus(self, ins):
        address = ins.nnn
        v0 = self.v_regs[0x0]
        self.state.pc = address + v0
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: RND V{x:X}, 0x{kk:02x}")
    def _random_byte_and(self, ins):
        x, kk = ins.x, ins.nn
        rnd = next(self.rng, 0) & 0xFF     # an exhausted source yields 0
        self.v_regs[x] = rnd & kk
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: LD ST, V{register:X}")
    def _set_st(self, ins):
        """set ST = Vx"""
        register = ins.x
        self.state.st = self.v_regs[register]
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: ADD I, V{register:X}")
    def _add_to_idx(self, ins):
        """set I = I + Vx"""
        register = ins.x
        self.state.idx = (self.state.idx + self.v_regs[register]) & 0xFFFF
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: LD F, V{register:X}")
    def _select_char(self, ins):
        """set I to location of sprite for digit Vx"""
        register = ins.x
        self.state.idx = FONTSET_START_ADDRESS + self.v_regs[register] * GLYPH_SIZE
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: LD [I], V{x:X}")
    def _store_vregs(self, ins):
        """store registers V0 through Vx (included) in memory starting at location I"""
        x, idx = ins.x, self.state.idx
        self.mem[idx:idx+x+1] = self.v_regs[:x+1]
        self.state.idx = (idx + x + 1) & 0xFFFF     # compatibility quirk 6
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: LD V{x:X}, [I]")
    def _load_vregs(self, ins):
        """read registers V0 through Vx (included) from memory starting at location I"""
        x, idx = ins.x, self.state.idx
        self.v_regs[:x+1] = list(self.mem[idx:idx+x+1])
        self.state.idx = (idx + x + 1) & 0xFFFF     # compatibility quirk 6
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: LD B, V{x:X}")
    def _bcd_repr(self, ins):
        """takes the decimal value of Vx and the hundreds digit in memory at I, the tens digit at I+1, the ones digit at I+2"""
        x, idx = ins.x, self.state.idx
        hundreds, tens, ones = self.v_regs[x] // 100, (self.v_regs[x] // 10) % 10, self.v_regs[x] % 10
        self.mem[idx:idx+3] = [hundreds, tens, ones]
        return locals()

    @asm("mem_addr: 0x{mem_addr:04x}    instruction: DRW V{x:X}, V{y:X}, {n_bytes}")
    def _to_screen(self, ins):
        """display n-byte sprite starting at memory location I at (Vx, Vy), set VF = collision"""
        x, y, n_bytes = ins.x, ins.y, ins.n
        # only the starting point wraps around, the sprite itself gets clipped at the edges
        start_x, start_y = self.v_regs[x] % SCREEN_WIDTH, self.v_regs[y] % SCREEN_HEIGHT
        self.v_regs[0xF] = 0
        # step through each sprite byte
        for i in range(n_bytes):
            y_coordinate = start_y + i
            if y_coordinate >= SCREEN_HEIGHT:
                break
            sprite_byte = self.mem[self.state.idx + i]  # get sprite's bytes one by one starting at I
            for j in range(8):                          # step through each byte's bits, MSB first
                x_coordinate = start_x + j
                if x_coordinate >= SCREEN_WIDTH:
                    break
                bit = bool((sprite_byte >> (7 - j)) & 0x1)
                pos = y_coordinate * SCREEN_WIDTH + x_coordinate
                # collision detection
                # sprites are XORed onto the existing screen and if this
                # causes any pixel to be erased then VF=1, otherwise VF=0
                if bit and self.state.screen[pos]:
                    self.v_regs[0xF] = 1
                self.state.screen[pos] ^= bit
        self.state.draw = True
        return locals()

    def _goto_next_instruction(self):
        self.state.pc += 0x2

    def fetch(self):
        """read the big-endian opcode pointed by pc, each instruction is two bytes long"""
        pc = self.state.pc
        return self.mem[pc] << 8 | self.mem[pc + 1]

    def execute(self, instruction):
        self.instructions[instruction.op](instruction)

    def tick(self):
        """
        emulate one machine cycle: fetch opcode, move pc forward, decode opcode, execute opcode
        while a captured key is waiting to be released nothing happens and None is returned
        """
        if self.state.waiting_for_key_release:
            return None
        opcode = self.fetch()
        self._goto_next_instruction()
        if DEBUG: print(f"opcode: 0x{opcode:04x}", end="    ")
        instruction = decode(opcode)
        self.execute(instruction)
        return instruction


# ******************** TIMERS SECTION
def tick_timer(state):
    """delay/sound timers (dt/st) count down toward zero, called once per video frame"""
    if state.dt > 0:
        state.dt -= 1
    if state.st > 0:
        state.st -= 1
