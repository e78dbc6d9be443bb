from pathfinder.maze import Maze, MazeBuilder, MazeError, generate_maze
from pathfinder.maze_env import AgentState, MazeEnv, StateKey, encode_state
from pathfinder.qlearn import QLearningAgent, QTable, extract_path

__version__ = "0.1.0"
