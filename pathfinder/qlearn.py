from collections import namedtuple

import numpy as np
from tqdm import tqdm

from pathfinder import config
from pathfinder.maze import DIRECTIONS
from pathfinder.maze_env import StateKey, encode_state

__all__ = [
    'StateKey', 'encode_state', 'QTableError', 'MissingRowError', 'EmptyRowError',
    'QTable', 'greedy_action', 'select_action', 'TrainingContext', 'td_update',
    'run_episode', 'PathResult', 'extract_path', 'QLearningAgent',
]


class QTableError(RuntimeError):
    """Broken Q-table invariant. Always fatal."""


class MissingRowError(QTableError, KeyError):
    """A state was queried before its row was lazily expanded."""


class EmptyRowError(QTableError):
    """A non-terminal state has no legal action."""


class QTable:
    """
    Sparse action-value table.

    Rows are created the first time a state is visited and only hold the
    directions that are legal from the state's position. Entries are
    updated in place and never removed.

    With initial_range=(low, high) each new entry is drawn uniformly from
    that range instead of taking initial_value.
    """

    def __init__(self, initial_value=config.INITIAL_Q, initial_range=None, rng=None):
        self.initial_value = float(initial_value)
        if initial_range is not None:
            low, high = (float(v) for v in initial_range)
            if low > high:
                raise ValueError(f"initial range low must be <= high, got ({low}, {high})")
            initial_range = (low, high)
        self.initial_range = initial_range
        self.rng = rng if rng is not None else np.random.default_rng()
        self._rows = {}

    def _fresh_row(self, key, env):
        return {d: self.initial_value for d in env.legal_directions(key.position)}

    def ensure_row(self, key, env):
        """Expand the row for key if it does not exist yet; idempotent."""
        row = self._rows.get(key)
        if row is None:
            if self.initial_range is None:
                row = self._fresh_row(key, env)
            else:
                low, high = self.initial_range
                row = {d: float(self.rng.uniform(low, high))
                       for d in env.legal_directions(key.position)}
            self._rows[key] = row
        return row

    def row(self, key):
        try:
            return self._rows[key]
        except KeyError:
            raise MissingRowError(f"no Q-row for state at {key.position}; "
                                  f"lazy expansion was skipped") from None

    def peek_row(self, key, env):
        """Existing row, or an unstored row of initial_value entries."""
        row = self._rows.get(key)
        return row if row is not None else self._fresh_row(key, env)

    def update(self, key, action, value):
        row = self.row(key)
        if action not in row:
            raise MissingRowError(f"action {action!r} is not legal at {key.position}")
        row[action] = float(value)

    def best_action(self, key):
        return greedy_action(self.row(key))

    def max_value(self, key):
        row = self.row(key)
        return max(row.values()) if row else 0.0

    def items(self):
        return self._rows.items()

    def __getitem__(self, key):
        return self.row(key)

    def __contains__(self, key):
        return key in self._rows

    def __len__(self):
        return len(self._rows)


def greedy_action(row):
    """Highest-valued action; ties go to the first one in DIRECTIONS order."""
    if not row:
        raise EmptyRowError("cannot pick an action from an empty Q-row")
    best = None
    for d in DIRECTIONS:
        if d in row and (best is None or row[d] > row[best]):
            best = d
    return best


def select_action(row, epsilon, rng):
    """Epsilon-greedy choice over the legal actions in row."""
    if not row:
        raise EmptyRowError("cannot pick an action from an empty Q-row")
    if rng.random() < epsilon:
        actions = list(row)
        return actions[rng.integers(len(actions))]
    return greedy_action(row)


class TrainingContext:
    """Everything the learning loop reads and writes."""

    def __init__(self, q_table, alpha, gamma, epsilon, rng):
        self.q_table = q_table
        self.alpha = alpha
        self.gamma = gamma
        self.epsilon = epsilon
        self.rng = rng
        self.updates = 0


def td_update(context, key, action, reward, next_key, done):
    """One-step Q-learning update. Returns the new value."""
    q = context.q_table
    old_value = q.row(key)[action]
    next_max = 0.0 if done else q.max_value(next_key)
    new_value = old_value + context.alpha * (reward + context.gamma * next_max - old_value)
    q.update(key, action, new_value)
    context.updates += 1
    return new_value


def run_episode(env, context, max_steps=None):
    """
    Play one episode from the start cell, learning after every move.

    Runs until the goal, or until max_steps moves when a bound is given.
    """
    q = context.q_table
    key = env.reset()
    done = False

    while not done:
        if max_steps is not None and env.agent.step_count >= max_steps:
            break

        row = q.ensure_row(key, env)
        action = select_action(row, context.epsilon, context.rng)
        result = env.step(action)

        retries = 0
        while result is None:
            # Rows only hold legal moves, so this means the table and maze disagree
            retries += 1
            if retries > 4 * len(row):
                raise QTableError(f"no legal move found from {key.position} "
                                  f"using row {sorted(row)}")
            action = select_action(row, context.epsilon, context.rng)
            result = env.step(action)

        next_key, reward, done, _ = result
        q.ensure_row(next_key, env)
        td_update(context, key, action, reward, next_key, done)
        key = next_key

    return env.get_episode_stats()


PathResult = namedtuple('PathResult', ['path', 'reached_goal', 'steps'])


def extract_path(env, q_table, step_budget=config.STEP_BUDGET):
    """
    Follow the greedy policy from the start cell.

    The table is only read. Stops on the goal or after step_budget moves,
    whichever comes first, so a policy that cycles still terminates.
    """
    key = env.reset()
    path = [key.position]
    steps = 0

    while not env.done and steps < step_budget:
        row = q_table.peek_row(key, env)
        result = env.step(greedy_action(row))
        if result is None:
            raise QTableError(f"greedy action from {key.position} is not a legal move")
        key = result[0]
        path.append(key.position)
        steps += 1

    reached_goal = env.done
    if path[-1] != env.maze.end:
        path.append(env.maze.end)
    return PathResult(path, reached_goal, steps)


class QLearningAgent:
    """
    Tabular Q-learning agent for a single maze.

    Key points:
    - State = (cell, treasures collected, hazards collected), so the value
      of a cell depends on what is still left to pick up ahead
    - Rows are expanded lazily with only the legal directions
    - Epsilon-greedy exploration, optional per-episode epsilon decay
    - solve() walks the greedy policy under a fixed step budget
    """

    def __init__(self, env, alpha=config.ALPHA, gamma=config.GAMMA,
                 epsilon=config.EPSILON, epsilon_decay=config.EPSILON_DECAY,
                 epsilon_min=config.EPSILON_MIN, initial_value=config.INITIAL_Q,
                 initial_range=config.INITIAL_Q_RANGE, step_budget=config.STEP_BUDGET,
                 seed=None, rng=None, verbose=False):
        if not 0.0 < alpha <= 1.0:
            raise ValueError(f"alpha must be in (0, 1], got {alpha}")
        if not 0.0 < gamma <= 1.0:
            raise ValueError(f"gamma must be in (0, 1], got {gamma}")
        if not 0.0 <= epsilon <= 1.0:
            raise ValueError(f"epsilon must be in [0, 1], got {epsilon}")
        if not 0.0 < epsilon_decay <= 1.0:
            raise ValueError(f"epsilon_decay must be in (0, 1], got {epsilon_decay}")
        if step_budget < 0:
            raise ValueError(f"step_budget must be >= 0, got {step_budget}")

        self.env = env
        self.epsilon_decay = epsilon_decay
        self.epsilon_min = epsilon_min
        self.step_budget = step_budget
        self.verbose = verbose
        self.episodes_trained = 0

        rng = rng if rng is not None else np.random.default_rng(seed)
        self.context = TrainingContext(
            q_table=QTable(initial_value, initial_range=initial_range, rng=rng),
            alpha=alpha,
            gamma=gamma,
            epsilon=epsilon,
            rng=rng
        )

        if verbose:
            print(f"[AGENT] α={alpha}, γ={gamma}, ε={epsilon}")

    @property
    def q_table(self):
        return self.context.q_table

    @property
    def epsilon(self):
        return self.context.epsilon

    @epsilon.setter
    def epsilon(self, value):
        self.context.epsilon = value

    def decay_epsilon(self):
        self.context.epsilon = max(self.epsilon_min, self.context.epsilon * self.epsilon_decay)

    def train(self, episodes=config.EPISODES, max_steps=config.MAX_STEPS_PER_EPISODE,
              progress=False, callback=None):
        """
        Run exactly `episodes` training episodes.

        callback(episode_number, stats) is called after each episode.
        Returns the list of per-episode stats.
        """
        if episodes < 0:
            raise ValueError(f"episodes must be >= 0, got {episodes}")

        history = []
        for _ in tqdm(range(episodes), desc="Training", unit="ep", disable=not progress):
            stats = run_episode(self.env, self.context, max_steps=max_steps)
            stats['epsilon'] = self.context.epsilon
            self.episodes_trained += 1
            history.append(stats)

            if self.verbose:
                print(f"[EPISODE] {self.episodes_trained}: steps={stats['steps']} "
                      f"score={stats['score']:.1f} ε={self.context.epsilon:.3f}")
            if callback is not None:
                callback(self.episodes_trained, stats)

            self.decay_epsilon()

        return history

    def solve_detailed(self):
        return extract_path(self.env, self.q_table, self.step_budget)

    def solve(self):
        """Greedy path from start to end as a list of cells."""
        return self.solve_detailed().path

    def greedy_values(self, path):
        """
        Best Q-value of each state met while replaying path.

        Stops before the end cell, whose value is never learned.
        """
        key = self.env.reset()
        values = []
        for cell in path[1:]:
            values.append(max(self.q_table.peek_row(key, self.env).values()))
            move = next((d for d in DIRECTIONS if self.env.maze.neighbor(key.position, d) == cell), None)
            if move is None:
                break
            key, _, done, _ = self.env.step(move)
            if done:
                break
        return values

    def print_stats(self):
        q = self.q_table
        print(f"\n{'='*60}")
        print(f"Q-LEARNING STATS")
        print(f"{'='*60}")
        print(f"Episodes: {self.episodes_trained}")
        print(f"States:   {len(q)}")
        print(f"Updates:  {self.context.updates}")
        print(f"Epsilon:  {self.context.epsilon:.3f}")

        if len(q):
            values = np.array([v for _, row in q.items() for v in row.values()])
            print(f"Q range:  {values.min():.2f} .. {values.max():.2f} (mean {values.mean():.2f})")
        print(f"{'='*60}\n")

    def print_q_table(self, limit=None):
        """Print rows, best-valued states first."""
        rows = sorted(self.q_table.items(),
                      key=lambda item: max(item[1].values(), default=0.0), reverse=True)
        if limit is not None:
            rows = rows[:limit]
        for key, row in rows:
            print(f"{key.position} treasures={len(key.treasures)} hazards={len(key.hazards)}")
            for d in DIRECTIONS:
                if d in row:
                    print(f"\t{d:5s}: {row[d]:.3f}")
