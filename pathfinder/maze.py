"""
Maze grid for the PathFinder agent.

A maze is a rectangle of cells addressed as (row, col), row 0 at the top.
Only traversable cells are stored; everything else is wall. Moving is
allowed between two traversable cells that share an edge.

Each traversable cell carries at most one kind of reward:
- treasure: positive value, claimed once per trajectory
- hazard: negative value, claimed once per trajectory

This module also builds random mazes (depth-first backtracker carving on an
odd-sized grid) and scatters treasures/hazards over them.
"""

from collections import deque, namedtuple
from typing import Dict, Iterable, List, Optional, Tuple

import numpy as np

from pathfinder import config

Cell = Tuple[int, int]

# Fixed order, used for every deterministic tie-break
DIRECTIONS = ('up', 'down', 'left', 'right')

DIRECTION_OFFSETS = {
    'up': (-1, 0), 'down': (1, 0),
    'left': (0, -1), 'right': (0, 1)
}

EMPTY = 'empty'
TREASURE = 'treasure'
HAZARD = 'hazard'

# Tagged reward variant: a cell maps to exactly one of these
CellReward = namedtuple('CellReward', ['kind', 'value'])

NO_REWARD = CellReward(EMPTY, 0.0)


class MazeError(ValueError):
    """Raised for a maze that cannot be built or parsed."""


class Maze:
    """
    Traversable cells, start/end, and the reward map.

    The reward map is fixed for the lifetime of the maze so the environment
    stays stationary across episodes.
    """

    def __init__(self, cells: Iterable[Cell], start: Cell, end: Cell,
                 rewards: Optional[Dict[Cell, CellReward]] = None,
                 rows: Optional[int] = None, cols: Optional[int] = None):
        self.cells = frozenset(tuple(c) for c in cells)
        self.start = tuple(start)
        self.end = tuple(end)

        if self.start not in self.cells:
            raise MazeError(f"start {self.start} is not a traversable cell")
        if self.end not in self.cells:
            raise MazeError(f"end {self.end} is not a traversable cell")
        if self.start == self.end:
            raise MazeError("start and end must be different cells")

        self.rewards = {}
        for cell, reward in (rewards or {}).items():
            cell = tuple(cell)
            if cell in (self.start, self.end):
                raise MazeError(f"reward placed on start/end cell {cell}")
            if cell not in self.cells:
                raise MazeError(f"reward placed on wall cell {cell}")
            if reward.kind not in (TREASURE, HAZARD):
                raise MazeError(f"unknown reward kind {reward.kind!r} at {cell}")
            self.rewards[cell] = CellReward(reward.kind, float(reward.value))

        self.rows = rows if rows is not None else max(r for r, _ in self.cells) + 1
        self.cols = cols if cols is not None else max(c for _, c in self.cells) + 1

    @classmethod
    def open_grid(cls, rows: int, cols: int, start: Cell, end: Cell,
                  rewards: Optional[Dict[Cell, CellReward]] = None) -> 'Maze':
        """A rectangle with no walls at all."""
        cells = [(r, c) for r in range(rows) for c in range(cols)]
        return cls(cells, start, end, rewards, rows=rows, cols=cols)

    @classmethod
    def from_ascii(cls, lines, treasure_reward: float = config.REWARDS['treasure'],
                   hazard_reward: float = config.REWARDS['hazard']) -> 'Maze':
        """
        Parse a text layout.

        '#' wall, '.' open, 'S' start, 'E' end, 'T' treasure, 'H' hazard.
        Lines may be given as one string or a list of strings. Blank lines
        before and after the layout are ignored; a blank line inside it is
        a row of wall.
        """
        if isinstance(lines, str):
            lines = lines.splitlines()
        lines = [line.rstrip() for line in lines]
        while lines and not lines[0]:
            lines.pop(0)
        while lines and not lines[-1]:
            lines.pop()
        if not lines:
            raise MazeError("empty maze layout")

        cells = []
        rewards = {}
        start = end = None
        for r, line in enumerate(lines):
            for c, ch in enumerate(line):
                if ch == '#':
                    continue
                if ch not in '.SETH':
                    raise MazeError(f"unknown maze character {ch!r} at {(r, c)}")
                cells.append((r, c))
                if ch == 'S':
                    if start is not None:
                        raise MazeError("layout has more than one start")
                    start = (r, c)
                elif ch == 'E':
                    if end is not None:
                        raise MazeError("layout has more than one end")
                    end = (r, c)
                elif ch == 'T':
                    rewards[(r, c)] = CellReward(TREASURE, treasure_reward)
                elif ch == 'H':
                    rewards[(r, c)] = CellReward(HAZARD, hazard_reward)

        if start is None or end is None:
            raise MazeError("layout needs exactly one 'S' and one 'E'")

        return cls(cells, start, end, rewards,
                   rows=len(lines), cols=max(len(line) for line in lines))

    # --- Queries used by the learner ---

    def neighbor(self, cell: Cell, direction: str) -> Optional[Cell]:
        """Adjacent traversable cell in that direction, or None if blocked."""
        try:
            dr, dc = DIRECTION_OFFSETS[direction]
        except KeyError:
            raise ValueError(f"unknown direction {direction!r}") from None
        target = (cell[0] + dr, cell[1] + dc)
        return target if target in self.cells else None

    def legal_directions(self, cell: Cell) -> List[str]:
        return [d for d in DIRECTIONS if self.neighbor(cell, d) is not None]

    def is_goal(self, cell: Cell) -> bool:
        return tuple(cell) == self.end

    def reward_kind(self, cell: Cell) -> str:
        return self.rewards.get(tuple(cell), NO_REWARD).kind

    def reward_at(self, cell: Cell) -> float:
        return self.rewards.get(tuple(cell), NO_REWARD).value

    def reset(self) -> Cell:
        return self.start

    @property
    def treasures(self) -> Dict[Cell, float]:
        return {c: r.value for c, r in self.rewards.items() if r.kind == TREASURE}

    @property
    def hazards(self) -> Dict[Cell, float]:
        return {c: r.value for c, r in self.rewards.items() if r.kind == HAZARD}

    def is_connected(self) -> bool:
        """BFS check that the end can be reached from the start."""
        visited = {self.start}
        queue = deque([self.start])
        while queue:
            cell = queue.popleft()
            if cell == self.end:
                return True
            for d in DIRECTIONS:
                nxt = self.neighbor(cell, d)
                if nxt is not None and nxt not in visited:
                    visited.add(nxt)
                    queue.append(nxt)
        return False

    def __repr__(self):
        return (f"Maze({self.rows}x{self.cols}, cells={len(self.cells)}, "
                f"treasures={len(self.treasures)}, hazards={len(self.hazards)})")


class MazeBuilder:
    """
    Randomized depth-first backtracker on an odd-sized square grid.

    Cells with two even coordinates are rooms. Carving a passage between
    two rooms opens the cell between them; cells with two odd coordinates
    always stay wall. The result is a perfect maze (one route between any
    two rooms) unless loop_probability opens extra walls afterwards.
    """

    def __init__(self, dimensions: int = config.MAZE_DIMENSIONS, rng=None,
                 loop_probability: float = config.LOOP_PROBABILITY):
        if dimensions < 3 or dimensions % 2 == 0:
            raise MazeError(f"maze dimensions must be odd and >= 3, got {dimensions}")
        if not 0.0 <= loop_probability <= 1.0:
            raise MazeError(f"loop probability must be in [0, 1], got {loop_probability}")
        self.dimensions = dimensions
        self.rng = rng if rng is not None else np.random.default_rng()
        self.loop_probability = loop_probability

    def carve(self) -> set:
        """Return the set of traversable cells."""
        d = self.dimensions
        start = (0, 0)
        open_cells = {start}
        stack = [start]

        while stack:
            r, c = stack[-1]
            candidates = []
            for dr, dc in DIRECTION_OFFSETS.values():
                nr, nc = r + 2 * dr, c + 2 * dc
                if 0 <= nr < d and 0 <= nc < d and (nr, nc) not in open_cells:
                    candidates.append((nr, nc))

            if not candidates:
                stack.pop()
                continue

            nr, nc = candidates[self.rng.integers(len(candidates))]
            open_cells.add(((r + nr) // 2, (c + nc) // 2))
            open_cells.add((nr, nc))
            stack.append((nr, nc))

        if self.loop_probability > 0:
            for r in range(d):
                for c in range(d):
                    # Only walls that sit between two rooms
                    if (r + c) % 2 == 1 and (r, c) not in open_cells:
                        if self.rng.random() < self.loop_probability:
                            open_cells.add((r, c))

        return open_cells

    def build(self, rewards: Optional[Dict[Cell, CellReward]] = None) -> Maze:
        d = self.dimensions
        return Maze(self.carve(), (0, 0), (d - 1, d - 1), rewards, rows=d, cols=d)


def spread_rewards(cells, start: Cell, end: Cell, rng=None,
                   treasure_probability: float = config.TREASURE_PROBABILITY,
                   hazard_probability: float = config.HAZARD_PROBABILITY,
                   treasure_reward: float = config.REWARDS['treasure'],
                   hazard_reward: float = config.REWARDS['hazard']) -> Dict[Cell, CellReward]:
    """
    Scatter treasures and hazards over the traversable cells.

    Each cell other than start/end independently becomes a treasure; cells
    that did not get a treasure independently become a hazard. A cell
    never gets both.
    """
    for name, p in (('treasure', treasure_probability), ('hazard', hazard_probability)):
        if not 0.0 <= p <= 1.0:
            raise MazeError(f"{name} probability must be in [0, 1], got {p}")

    rng = rng if rng is not None else np.random.default_rng()
    rewards = {}
    for cell in sorted(cells):
        if cell in (start, end):
            continue
        if rng.random() < treasure_probability:
            rewards[cell] = CellReward(TREASURE, treasure_reward)
        elif rng.random() < hazard_probability:
            rewards[cell] = CellReward(HAZARD, hazard_reward)
    return rewards


def generate_maze(dimensions: int = config.MAZE_DIMENSIONS, seed=None,
                  loop_probability: float = config.LOOP_PROBABILITY,
                  treasure_probability: float = config.TREASURE_PROBABILITY,
                  hazard_probability: float = config.HAZARD_PROBABILITY,
                  treasure_reward: float = config.REWARDS['treasure'],
                  hazard_reward: float = config.REWARDS['hazard']) -> Maze:
    """Carve a maze and scatter rewards over it with one seeded generator."""
    rng = np.random.default_rng(seed)
    builder = MazeBuilder(dimensions, rng=rng, loop_probability=loop_probability)
    cells = builder.carve()
    start, end = (0, 0), (dimensions - 1, dimensions - 1)
    rewards = spread_rewards(
        cells, start, end, rng=rng,
        treasure_probability=treasure_probability,
        hazard_probability=hazard_probability,
        treasure_reward=treasure_reward,
        hazard_reward=hazard_reward
    )
    return Maze(cells, start, end, rewards, rows=dimensions, cols=dimensions)


def format_maze(maze: Maze, path=None) -> str:
    """Plain-text picture of the maze, path cells drawn as '*'."""
    on_path = set(path or ())
    symbols = {TREASURE: 'T', HAZARD: 'H'}
    lines = []
    for r in range(maze.rows):
        row = []
        for c in range(maze.cols):
            cell = (r, c)
            if cell not in maze.cells:
                row.append('#')
            elif cell == maze.start:
                row.append('S')
            elif cell == maze.end:
                row.append('E')
            elif cell in on_path:
                row.append('*')
            else:
                row.append(symbols.get(maze.reward_kind(cell), '.'))
        lines.append(''.join(row))
    return '\n'.join(lines)
