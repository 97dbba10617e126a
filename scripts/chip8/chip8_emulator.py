import argparse
import array
import sys

import os
os.environ["PYGAME_HIDE_SUPPORT_PROMPT"] = "no welcome message"   # this env var disable pygame's welcome message when imported
import pygame
from pygame.locals import (
    K_1, K_2, K_3, K_4,
    K_q, K_w, K_e, K_r,
    K_a, K_s, K_d, K_f,
    K_z, K_x, K_c, K_v,
    K_ESCAPE, KEYDOWN, KEYUP, QUIT,
)

from chip8 import (
    DEBUG, SCREEN_HEIGHT, SCREEN_WIDTH,
    Chip8, Chip8Error, LinearCongruentialGenerator, MachineState,
    python_random_source, tick_timer,
)


# ******************** STATIC SECTION
# the left side of a QWERTY keyboard mimics the COSMAC VIP hex keypad
#   1 2 3 4        1 2 3 C
#   Q W E R   ->   4 5 6 D
#   A S D F        7 8 9 E
#   Z X C V        A 0 B F
KEY_MAPPINGS = {
    K_1: 0x1, K_2: 0x2, K_3: 0x3, K_4: 0xC,
    K_q: 0x4, K_w: 0x5, K_e: 0x6, K_r: 0xD,
    K_a: 0x7, K_s: 0x8, K_d: 0x9, K_f: 0xE,
    K_z: 0xA, K_x: 0x0, K_c: 0xB, K_v: 0xF,
}

TICKS_PER_FRAME = 8
FRAME_RATE = 60
SCALE = 15
KEYPAD_RESET_FRAMES = 0     # 0 disables the idle reset, pygame delivers real key releases
TONE_HZ = 440
SAMPLE_RATE = 44100
BLUE = pygame.Color(80,69,155,255)
LIGHT_BLUE = pygame.Color(136,126,203,255)


# ******************** UTILITIES SECTION
def get_args(argv=None):
    parser = argparse.ArgumentParser(description="CHIP-8 interpreter")
    parser.add_argument("-f", "--file", required=True, help="input rom file")
    parser.add_argument("--ticks-per-frame", type=int, default=TICKS_PER_FRAME,
                        help="instructions executed for each video frame")
    parser.add_argument("--fps", type=int, default=FRAME_RATE, help="video frames (and timer ticks) per second")
    parser.add_argument("--scale", type=int, default=SCALE, help="size in pixels of a CHIP-8 pixel")
    parser.add_argument("--seed", type=int, default=None, help="random generator seed, defaults to the wall clock")
    parser.add_argument("--rng", choices=("lcg", "python"), default="lcg", help="random source used by RND")
    parser.add_argument("--keypad-reset-frames", type=int, default=KEYPAD_RESET_FRAMES,
                        help="release every key after this many frames without input (0 disables it)")
    parser.add_argument("--mute", action="store_true", help="disable the beeper")
    return parser.parse_args(argv)

def make_rng(kind="lcg", seed=None):
    if kind == "python":
        return python_random_source(seed)
    if seed is None:
        return LinearCongruentialGenerator.from_time()
    return LinearCongruentialGenerator(seed)

def load_rom(path):
    """read the ROM file at the user specified path, OSError propagates if it can't be read"""
    with open(path, mode='rb') as f:
        rom = f.read()
    if DEBUG: print(f"The ROM at path {path} has been loaded successfully")
    return rom


# ******************** I/O SECTION
class Screen:
    def __init__(self, w=SCREEN_WIDTH, h=SCREEN_HEIGHT, s=SCALE, bg_color=BLUE, fg_color=LIGHT_BLUE):
        self.w, self.h, self.scale = w, h, s
        self.background = bg_color
        self.foreground = fg_color
        self.surface = pygame.display.set_mode(
            (w * self.scale, h * self.scale),
        )
        self.surface.fill(self.background)

    def render(self, state):
        """redraw the whole frame from the machine pixel buffer and make it visible"""
        self.surface.fill(self.background)
        for pos, lit in enumerate(state.screen):
            if lit:
                x, y = pos % self.w, pos // self.w
                pygame.draw.rect(
                    self.surface,
                    self.foreground,
                    (x * self.scale, y * self.scale, self.scale, self.scale)
                )
        pygame.display.flip()

class KeypadInput:
    """
    turns pygame keyboard events into CHIP-8 keypad presses and releases
    a release also ends the wait started by LD Vx, K when it's the captured key
    """
    def __init__(self, state, reset_frames=KEYPAD_RESET_FRAMES):
        self.state = state
        self.reset_frames = reset_frames
        self.countdown = reset_frames

    def handle(self, event):
        """apply one event to the keypad, return False when the user asked to quit"""
        if event.type == QUIT:
            return False
        if event.type == KEYDOWN:
            if event.key == K_ESCAPE:
                return False
            if event.key in KEY_MAPPINGS:
                self.state.press_key(KEY_MAPPINGS[event.key])     # register keypress
        elif event.type == KEYUP:
            if event.key in KEY_MAPPINGS:
                self.state.release_key(KEY_MAPPINGS[event.key])
        return True

    def idle_frame(self):
        """a frame went by without input: after enough of them every key is considered released"""
        if self.reset_frames <= 0:
            return
        self.countdown -= 1
        if self.countdown <= 0:
            self.countdown = self.reset_frames
            self.state.release_all_keys()

    def poll(self, events):
        run = True
        if not events:
            self.idle_frame()
            return run
        self.countdown = self.reset_frames
        for event in events:
            run = self.handle(event) and run
        return run

class Beeper:
    """square wave played in loop as long as the sound timer is active"""
    def __init__(self, enabled=True, tone_hz=TONE_HZ, sample_rate=SAMPLE_RATE, volume=0.2):
        self.sound = None
        self.playing = False
        if not enabled:
            return
        try:
            pygame.mixer.init(sample_rate, -16, 1, 512)
        except pygame.error as e:
            if DEBUG: print(f"No audio device available, the beeper is disabled: {e}")
            return
        frequency, _, channels = pygame.mixer.get_init()
        period = frequency // tone_hz
        wave = [16000] * (period // 2) + [-16000] * (period - period // 2)
        samples = array.array('h', [s for s in wave for _ in range(channels)] * tone_hz)
        self.sound = pygame.mixer.Sound(buffer=samples.tobytes())
        self.sound.set_volume(volume)

    def update(self, state):
        if self.sound is None:
            return
        if state.beeping and not self.playing:
            self.sound.play(loops=-1)
            self.playing = True
        elif not state.beeping and self.playing:
            self.sound.stop()
            self.playing = False


# ******************** DRIVER SECTION
def run_frame(chip, ticks_per_frame=TICKS_PER_FRAME):
    """
    emulate one video frame: a batch of instructions, then a single timers tick
    stops executing early while a captured key waits to be released
    returns the draw flag so the caller knows if the screen has to be refreshed
    """
    for _ in range(ticks_per_frame):
        if chip.state.waiting_for_key_release:
            break
        chip.tick()
    tick_timer(chip.state)
    return chip.state.draw


# ******************** ENTRY POINT SECTION
def main(argv=None):
    args = get_args(argv)
    state = MachineState()
    try:
        state.load_program(load_rom(args.file))
    except Chip8Error as e:
        sys.exit(str(e))
    chip = Chip8(state, make_rng(args.rng, args.seed))
    # pygame initialization
    pygame.init()
    try:
        clock = pygame.time.Clock()
        pygame.display.set_caption(os.path.basename(args.file))
        # IO
        screen = Screen(s=args.scale)
        keypad = KeypadInput(state, args.keypad_reset_frames)
        beeper = Beeper(enabled=not args.mute)
        # emulation loop
        run = True
        while run:
            # frames per second
            clock.tick(args.fps)
            try:
                if run_frame(chip, args.ticks_per_frame):
                    screen.render(state)
                    state.draw = False
            except Chip8Error as e:
                sys.exit(f"********** THE EMULATOR CRASHED ({e}) WITH THE FOLLOWING STATE\n{state}")
            beeper.update(state)
            # process user input
            run = keypad.poll(pygame.event.get())
    finally:
        pygame.quit()


if __name__ == "__main__":
    main()
