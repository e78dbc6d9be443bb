"""Shared mazes for the PathFinder tests."""

import pytest

from pathfinder.maze import Maze
from pathfinder.maze_env import MazeEnv


class FixedRng:
    """Stand-in for numpy's Generator that returns preset draws."""

    def __init__(self, draws, index=0):
        self.draws = list(draws)
        self.index = index
        self.calls = 0

    def random(self):
        self.calls += 1
        return self.draws.pop(0)

    def integers(self, n):
        return self.index % n


@pytest.fixture
def open_maze():
    """3x3 grid without walls, start top-right, end bottom-left."""
    return Maze.open_grid(3, 3, start=(0, 2), end=(2, 0))


@pytest.fixture
def open_env(open_maze):
    return MazeEnv(open_maze, step_cost=-1, goal_bonus=100)


@pytest.fixture
def corridor_maze():
    return Maze.from_ascii(["S.T.E"], treasure_reward=20)


@pytest.fixture
def hazard_maze():
    # The straight route runs through the hazard, the long way round is clear
    return Maze.from_ascii([
        "S.H.E",
        ".###.",
        ".....",
    ], hazard_reward=-50)
