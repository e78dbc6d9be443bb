from collections import namedtuple

from pathfinder import config
from pathfinder.maze import HAZARD, TREASURE


# Learning state key: the same cell reached with different collection
# histories is a different state.
StateKey = namedtuple('StateKey', ['position', 'treasures', 'hazards'])


def encode_state(position, treasures=(), hazards=()):
    """Build a hashable StateKey from a position and the collected cells."""
    return StateKey(tuple(position), frozenset(treasures), frozenset(hazards))


class EpisodeOverError(RuntimeError):
    """Raised when stepping after the goal was reached."""


class AgentState:
    """Position and per-trajectory collection history of the agent."""

    def __init__(self, position):
        self.position = tuple(position)
        self.collected_treasures = set()
        self.collected_hazards = set()
        self.step_count = 0
        self.cumulative_score = 0.0

    def state_key(self):
        return encode_state(self.position, self.collected_treasures, self.collected_hazards)

    def __repr__(self):
        return (f"AgentState(position={self.position}, steps={self.step_count}, "
                f"score={self.cumulative_score:.1f}, "
                f"treasures={len(self.collected_treasures)}, hazards={len(self.collected_hazards)})")


class MazeEnv:
    """
    Episode environment for the maze agent.

    An episode starts at the maze's start cell and ends on the end cell:
    - Every legal move pays the movement cost
    - Treasures and hazards fire once per trajectory, then stay claimed
    - Reaching the end adds the goal bonus
    - Illegal moves (into a wall or off the grid) change nothing

    The maze's reward map is never mutated, so every episode sees the same
    environment.
    """

    def __init__(self, maze, step_cost=config.REWARDS['step'],
                 goal_bonus=config.REWARDS['goal']):
        self.maze = maze
        self.step_cost = float(step_cost)
        self.goal_bonus = float(goal_bonus)

        self.episode = 0
        self.agent = AgentState(maze.start)

    @property
    def state(self):
        return self.agent.state_key()

    @property
    def done(self):
        return self.maze.is_goal(self.agent.position)

    def legal_directions(self, cell):
        return self.maze.legal_directions(cell)

    def reset(self):
        """Start a new episode at the start cell with nothing collected."""
        self.agent = AgentState(self.maze.reset())
        self.episode += 1
        return self.agent.state_key()

    def step(self, action):
        """
        Move the agent one cell.

        Returns (state_key, reward, done, info), or None for an illegal move,
        in which case nothing about the episode has changed.
        """
        if self.done:
            raise EpisodeOverError(
                f"episode {self.episode} already reached the goal at {self.agent.position}")

        target = self.maze.neighbor(self.agent.position, action)
        if target is None:
            return None

        agent = self.agent
        reward = self.step_cost
        agent.position = target
        agent.step_count += 1

        found_treasure = False
        found_hazard = False
        kind = self.maze.reward_kind(target)

        if kind == TREASURE and target not in agent.collected_treasures:
            agent.collected_treasures.add(target)
            reward += self.maze.reward_at(target)
            found_treasure = True
        elif kind == HAZARD and target not in agent.collected_hazards:
            agent.collected_hazards.add(target)
            reward += self.maze.reward_at(target)
            found_hazard = True

        done = self.maze.is_goal(target)
        if done:
            reward += self.goal_bonus

        agent.cumulative_score += reward

        info = {
            'position': target,
            'treasure': found_treasure,
            'hazard': found_hazard
        }

        return agent.state_key(), reward, done, info

    def get_episode_stats(self):
        """Get statistics for the current episode."""
        return {
            'episode': self.episode,
            'steps': self.agent.step_count,
            'score': self.agent.cumulative_score,
            'treasures': len(self.agent.collected_treasures),
            'hazards': len(self.agent.collected_hazards),
            'reached_goal': self.done
        }
