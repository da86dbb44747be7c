#!/usr/bin/env python3
"""
Pygame viewer for watching a trained network play the Game of Life.

Features:
- Board rendering with the network's last move highlighted
- Automaton ("nature") ticks and network moves toggled independently
- Click cells to toggle them by hand
- Keyboard controls and camera zoom/pan

Controls:
- SPACE: Pause/Resume
- T: Single step (network move, then nature tick)
- N: Toggle nature ticks
- M: Toggle network moves
- R: Reseed board randomly
- C: Clear board
- G: Toggle grid
- +/-: Adjust simulation speed
- Mouse wheel: Zoom
- Left click: Toggle cell
- Right drag: Pan camera
- ESC: Quit
"""

import time
from collections import deque
from typing import Optional

import numpy as np
import pygame

from board import Board, Game, TileState
from config import ALIVE_CELLS, BLOCK_SIZE, RENDER_TICK_MS
from player import Move, NetworkPlayer
from savedata import NetworkSave

# =============================================================================
# CONSTANTS
# =============================================================================
WINDOW_WIDTH = 1100
WINDOW_HEIGHT = 800
PANEL_WIDTH = 300
HEADER_HEIGHT = 40
FPS_TARGET = 30
MAX_SPEED = 10

# UI Colors
COLOR_BG = (10, 10, 10)
COLOR_TEXT = (220, 220, 220)
COLOR_GRID = (60, 60, 60)
COLOR_PANEL = (30, 30, 30)
COLOR_ALIVE = (230, 230, 230)
COLOR_KILLED = (220, 60, 60)
COLOR_REVIVED = (60, 220, 100)
COLOR_PAUSED = (255, 200, 0)
COLOR_RUNNING = (0, 255, 100)

CONTROLS = [
    ("SPACE", "Pause/Resume"),
    ("T", "Single step"),
    ("N", "Toggle nature ticks"),
    ("M", "Toggle network moves"),
    ("R", "Reseed board"),
    ("C", "Clear board"),
    ("G", "Toggle grid"),
    ("+/-", "Adjust speed"),
    ("Wheel", "Zoom"),
    ("Click", "Toggle cell"),
    ("R-Drag", "Pan camera"),
    ("ESC", "Quit"),
]


def on_off(flag: bool) -> str:
    return "ON" if flag else "OFF"


# =============================================================================
# SESSION
# =============================================================================
class ViewerSession:
    """The board being watched plus the optional network playing on it."""

    def __init__(self, width: int, height: int, network_save: Optional[NetworkSave],
                 rng: np.random.Generator):
        self.rng = rng
        self.game = Game(Board(width, height))
        self.network_save = network_save
        self.player = None
        if network_save is not None:
            self.player = NetworkPlayer(network_save.player_config, network_save.network, rng)

        self.nature_enabled = True
        self.network_enabled = self.player is not None
        self.generation = 0
        self.network_moves = 0
        self.last_move: Optional[Move] = None

    def step(self):
        """One round: the network moves, then nature ticks."""
        if self.network_enabled:
            move = self.player.play_step(self.game)
            if move is not None:
                self.network_moves += 1
                self.last_move = move
        if self.nature_enabled:
            self.game.tick()
        self.generation += 1

    def reseed(self):
        alive_cells = min(ALIVE_CELLS, self.game.width * self.game.height // 2)
        board = Board.new_random(self.game.width, self.game.height, alive_cells, self.rng, BLOCK_SIZE)
        self.game = Game(board, self.game.rule)
        self.generation = 0
        self.last_move = None
        print(f"Board reseeded with {self.game.count(TileState.ALIVE)} cells")

    def clear(self):
        self.game.board.clear()
        self.last_move = None
        print("Board cleared")

    def toggle_cell(self, position):
        state = self.game.read(position)
        if state is None:
            return
        self.game.write(position, TileState.DEAD if state is TileState.ALIVE else TileState.ALIVE)

    def toggle_nature(self):
        self.nature_enabled = not self.nature_enabled
        print(f"Nature: {on_off(self.nature_enabled)}")

    def toggle_network(self):
        if self.player is None:
            print("No network loaded")
            return
        self.network_enabled = not self.network_enabled
        print(f"Network: {on_off(self.network_enabled)}")

    def describe_last_move(self) -> str:
        if self.last_move is None:
            return "-"
        verb = "killed" if self.last_move.new_state is TileState.DEAD else "revived"
        return f"{verb} {self.last_move.position}"


# =============================================================================
# CAMERA
# =============================================================================
class Camera:
    """Maps board cells to pixels inside the board panel."""

    def __init__(self, panel_width: int, panel_height: int, top: int):
        self.panel_width = panel_width
        self.panel_height = panel_height
        self.top = top
        self.zoom = 1.0
        self.pan = [0, 0]
        self.drag_origin = None
        self.cell_size = 1.0
        self.origin = (0.0, 0.0)

    def fit(self, columns: int, rows: int):
        """Center a columns x rows board in the panel at the current zoom."""
        base = min(self.panel_width / max(1, columns), self.panel_height / max(1, rows))
        self.cell_size = base * self.zoom
        self.origin = ((self.panel_width - self.cell_size * columns) / 2,
                       self.top + (self.panel_height - self.cell_size * rows) / 2)

    def zoom_by(self, factor: float):
        self.zoom = max(0.1, min(5.0, self.zoom * factor))

    def to_screen(self, x, y):
        return (self.origin[0] + x * self.cell_size + self.pan[0],
                self.origin[1] + y * self.cell_size + self.pan[1])

    def to_cell(self, sx, sy):
        x = (sx - self.origin[0] - self.pan[0]) / self.cell_size
        y = (sy - self.origin[1] - self.pan[1]) / self.cell_size
        return int(np.floor(x)), int(np.floor(y))

    def start_drag(self, pos):
        self.drag_origin = pos

    def drag_to(self, pos):
        if self.drag_origin is None:
            return
        self.pan[0] += pos[0] - self.drag_origin[0]
        self.pan[1] += pos[1] - self.drag_origin[1]
        self.drag_origin = pos

    def stop_drag(self):
        self.drag_origin = None


# =============================================================================
# PYGAME RENDERER
# =============================================================================
class PyGameRenderer:
    def __init__(self, width: int, height: int, network_save: Optional[NetworkSave],
                 rng: np.random.Generator):
        pygame.init()
        pygame.display.set_caption('Life Killer')

        self.session = ViewerSession(width, height, network_save, rng)

        self.window = pygame.display.set_mode((WINDOW_WIDTH, WINDOW_HEIGHT))
        self.clock = pygame.time.Clock()
        self.font_large = pygame.font.Font(None, 32)
        self.font_medium = pygame.font.Font(None, 24)
        self.font_small = pygame.font.Font(None, 18)

        board_width = WINDOW_WIDTH - PANEL_WIDTH
        self.board_surface = pygame.Surface((board_width, WINDOW_HEIGHT))
        self.panel_surface = pygame.Surface((PANEL_WIDTH, WINDOW_HEIGHT))
        self.camera = Camera(board_width, WINDOW_HEIGHT - 100, HEADER_HEIGHT + 10)
        self.camera.fit(width, height)

        self.show_grid = True
        self.speed = 0  # Rounds per tick, 0 = paused
        self.last_tick = 0.0
        self.frame_rates = deque(maxlen=30)
        self.tick_millis = deque(maxlen=30)

        self.key_actions = {
            pygame.K_SPACE: self.toggle_pause,
            pygame.K_t: self.session.step,
            pygame.K_n: self.session.toggle_nature,
            pygame.K_m: self.session.toggle_network,
            pygame.K_r: self.reseed,
            pygame.K_c: self.session.clear,
            pygame.K_g: self.toggle_grid,
            pygame.K_PLUS: lambda: self.change_speed(1),
            pygame.K_EQUALS: lambda: self.change_speed(1),
            pygame.K_MINUS: lambda: self.change_speed(-1),
        }

        print("\n" + "="*60)
        print("Life Killer Viewer Started")
        print("="*60)
        print("\nControls:")
        for key, action in CONTROLS:
            print(f"  {key:<7}: {action}")
        print("="*60 + "\n")

    # -------------------------------------------------------------------------
    # Actions
    # -------------------------------------------------------------------------
    def toggle_pause(self):
        self.speed = 0 if self.speed > 0 else 1

    def toggle_grid(self):
        self.show_grid = not self.show_grid
        print(f"Grid: {on_off(self.show_grid)}")

    def change_speed(self, delta: int):
        self.speed = max(0, min(MAX_SPEED, self.speed + delta))
        print(f"Speed: {self.speed}x")

    def reseed(self):
        self.session.reseed()
        self.camera.fit(self.session.game.width, self.session.game.height)

    def advance(self):
        """Play up to `speed` rounds, pausing once the board is extinct."""
        started = time.time()
        for _ in range(self.speed):
            self.session.step()
            if self.session.game.is_extinct():
                print(f"All cells dead after {self.session.generation} generations")
                self.speed = 0
                break
        self.tick_millis.append((time.time() - started) * 1000)

    # -------------------------------------------------------------------------
    # Drawing
    # -------------------------------------------------------------------------
    def cell_rect(self, x, y):
        sx, sy = self.camera.to_screen(x, y)
        return pygame.Rect(sx, sy, self.camera.cell_size, self.camera.cell_size)

    def draw_board(self):
        game = self.session.game
        self.board_surface.fill(COLOR_BG)

        ys, xs = np.nonzero(game.board.cells)
        for x, y in zip(xs, ys):
            pygame.draw.rect(self.board_surface, COLOR_ALIVE, self.cell_rect(x, y))

        move = self.session.last_move
        if move is not None:
            color = COLOR_KILLED if move.new_state is TileState.DEAD else COLOR_REVIVED
            border = max(1, int(self.camera.cell_size / 8))
            pygame.draw.rect(self.board_surface, color, self.cell_rect(*move.position), border)

        if self.show_grid and self.camera.cell_size > 3:
            self.draw_grid()

        self.window.blit(self.board_surface, (0, 0))

    def draw_grid(self):
        width, height = self.session.game.width, self.session.game.height
        for x in range(width + 1):
            top = self.camera.to_screen(x, 0)
            bottom = self.camera.to_screen(x, height)
            pygame.draw.line(self.board_surface, COLOR_GRID, top, bottom, 1)
        for y in range(height + 1):
            left = self.camera.to_screen(0, y)
            right = self.camera.to_screen(width, y)
            pygame.draw.line(self.board_surface, COLOR_GRID, left, right, 1)

    def panel_lines(self):
        session = self.session
        fps = int(np.mean(self.frame_rates)) if self.frame_rates else 0
        tick = int(np.mean(self.tick_millis)) if self.tick_millis else 0
        lines = [
            f"Board: {session.game.width}x{session.game.height}",
            f"Generation: {session.generation:,}",
            f"Alive: {session.game.count(TileState.ALIVE):,}",
            f"Network moves: {session.network_moves:,}",
            f"Last move: {session.describe_last_move()}",
            "",
            f"FPS: {fps}",
            f"Tick: {tick}ms",
            f"Speed: {self.speed}x",
            "",
            f"Nature: {on_off(session.nature_enabled)}",
            f"Network: {on_off(session.network_enabled)}",
            f"Zoom: {self.camera.zoom:.2f}x",
            f"Grid: {on_off(self.show_grid)}",
        ]
        if session.network_save is not None:
            lines += [
                "",
                f"Edges: {session.network_save.network.edge_count()}",
                f"Kernel: {session.network_save.player_config.kernel_diameter}",
            ]
        return lines

    def draw_panel(self):
        self.panel_surface.fill(COLOR_PANEL)
        self.panel_surface.blit(self.font_large.render('Statistics', True, COLOR_TEXT), (10, 20))
        for row, line in enumerate(self.panel_lines()):
            self.panel_surface.blit(self.font_small.render(line, True, COLOR_TEXT), (10, 70 + row * 22))
        self.window.blit(self.panel_surface, (WINDOW_WIDTH - PANEL_WIDTH, 0))

    def draw_header(self):
        board_width = WINDOW_WIDTH - PANEL_WIDTH
        pygame.draw.rect(self.window, COLOR_PANEL, pygame.Rect(0, 0, board_width, HEADER_HEIGHT))
        self.window.blit(self.font_large.render('Life Killer', True, COLOR_TEXT), (10, 5))

        paused = self.speed == 0
        status = self.font_medium.render("PAUSED" if paused else "RUNNING", True,
                                         COLOR_PAUSED if paused else COLOR_RUNNING)
        self.window.blit(status, (board_width - 150, 8))

    # -------------------------------------------------------------------------
    # Main loop
    # -------------------------------------------------------------------------
    def handle_events(self) -> bool:
        """Process pending events; False once the window should close."""
        for event in pygame.event.get():
            if event.type == pygame.QUIT:
                return False
            if event.type == pygame.KEYDOWN:
                if event.key == pygame.K_ESCAPE:
                    return False
                action = self.key_actions.get(event.key)
                if action is not None:
                    action()
            elif event.type == pygame.MOUSEWHEEL:
                self.camera.zoom_by(1.1 if event.y > 0 else 0.9)
                self.camera.fit(self.session.game.width, self.session.game.height)
            elif event.type == pygame.MOUSEBUTTONDOWN:
                if event.button == 1:
                    self.session.toggle_cell(self.camera.to_cell(*event.pos))
                elif event.button == 3:
                    self.camera.start_drag(event.pos)
            elif event.type == pygame.MOUSEBUTTONUP and event.button == 3:
                self.camera.stop_drag()
            elif event.type == pygame.MOUSEMOTION:
                self.camera.drag_to(event.pos)
        return True

    def run(self):
        running = True
        while running:
            frame_start = time.time()
            running = self.handle_events()

            # Speed sets rounds per tick, ticks are RENDER_TICK_MS apart
            if self.speed > 0 and (frame_start - self.last_tick) * 1000 >= RENDER_TICK_MS:
                self.last_tick = frame_start
                self.advance()

            self.draw_board()
            self.draw_header()
            self.draw_panel()
            pygame.display.flip()

            frame_time = time.time() - frame_start
            self.frame_rates.append(1.0 / frame_time if frame_time > 0 else 0)
            self.clock.tick(FPS_TARGET)

        pygame.quit()
