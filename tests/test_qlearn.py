import numpy as np
import pytest

from pathfinder.maze import DIRECTIONS
from pathfinder.maze_env import MazeEnv, encode_state
from pathfinder.qlearn import (
    EmptyRowError, MissingRowError, QLearningAgent, QTable, QTableError,
    TrainingContext, extract_path, greedy_action, run_episode, select_action,
    td_update,
)

from conftest import FixedRng


def test_rows_hold_exactly_the_legal_moves(open_maze, open_env):
    q = QTable()
    for cell in open_maze.cells:
        for treasures in ((), [(1, 1)]):
            key = encode_state(cell, treasures)
            row = q.ensure_row(key, open_env)
            expected = [d for d in DIRECTIONS if open_maze.neighbor(cell, d) is not None]
            assert list(row) == expected
            assert all(v == 0.0 for v in row.values())


def test_ensure_row_is_idempotent(open_env):
    q = QTable()
    key = encode_state((1, 1))
    row = q.ensure_row(key, open_env)
    row['up'] = 3.5
    again = q.ensure_row(key, open_env)
    assert again is row
    assert again == {'up': 3.5, 'down': 0.0, 'left': 0.0, 'right': 0.0}
    assert len(q) == 1


def test_initial_value_is_configurable(open_env):
    q = QTable(initial_value=10.0)
    row = q.ensure_row(encode_state((0, 0)), open_env)
    assert row == {'down': 10.0, 'right': 10.0}


def test_initial_range_draws_fresh_entries(open_env):
    q = QTable(initial_range=(0.0, 1.0), rng=np.random.default_rng(7))
    values = []
    for r in range(3):
        for c in range(3):
            row = q.ensure_row(encode_state((r, c)), open_env)
            assert set(row) == set(open_env.legal_directions((r, c)))
            values.extend(row.values())
    assert all(0.0 <= v <= 1.0 for v in values)
    assert len(set(values)) > 1


def test_initial_range_row_is_drawn_once(open_env):
    q = QTable(initial_range=(0.0, 1.0), rng=np.random.default_rng(7))
    key = encode_state((1, 1))
    row = dict(q.ensure_row(key, open_env))
    assert q.ensure_row(key, open_env) == row


def test_initial_range_peek_stays_unstored(open_env):
    q = QTable(initial_value=0.0, initial_range=(0.0, 1.0), rng=np.random.default_rng(7))
    row = q.peek_row(encode_state((0, 0)), open_env)
    assert row == {'down': 0.0, 'right': 0.0}
    assert len(q) == 0


def test_initial_range_rejects_reversed_bounds():
    with pytest.raises(ValueError):
        QTable(initial_range=(1.0, 0.0))


def test_missing_row_is_fatal():
    q = QTable()
    with pytest.raises(MissingRowError):
        q.row(encode_state((0, 0)))
    with pytest.raises(QTableError):
        q.best_action(encode_state((0, 0)))
    # Still a KeyError for callers that treat the table as a mapping
    with pytest.raises(KeyError):
        q[encode_state((0, 0))]


def test_update_rejects_illegal_action(open_env):
    q = QTable()
    key = encode_state((0, 0))
    q.ensure_row(key, open_env)
    with pytest.raises(MissingRowError):
        q.update(key, 'up', 1.0)


def test_peek_row_does_not_store(open_env):
    q = QTable()
    row = q.peek_row(encode_state((2, 2)), open_env)
    assert row == {'up': 0.0, 'left': 0.0}
    assert len(q) == 0


@pytest.mark.parametrize("row,expected", [
    ({'down': 1.0, 'left': 1.0}, 'down'),
    ({'right': 2.0, 'up': 2.0}, 'up'),
    ({'left': -1.0, 'right': 0.5, 'down': 0.5}, 'down'),
    ({'right': -3.0}, 'right'),
    ({'up': 0.0, 'down': 0.0, 'left': 0.0, 'right': 0.0}, 'up'),
])
def test_greedy_tie_break_follows_direction_order(row, expected):
    assert greedy_action(row) == expected


def test_empty_row_is_fatal():
    with pytest.raises(EmptyRowError):
        greedy_action({})
    with pytest.raises(EmptyRowError):
        select_action({}, 0.5, FixedRng([0.9]))


def test_select_action_explores_below_epsilon():
    row = {'up': 5.0, 'down': 1.0, 'left': 0.0}
    assert select_action(row, 0.3, FixedRng([0.1], index=2)) == 'left'
    assert select_action(row, 0.3, FixedRng([0.1], index=1)) == 'down'


def test_select_action_exploits_above_epsilon():
    row = {'up': 5.0, 'down': 1.0, 'left': 0.0}
    assert select_action(row, 0.3, FixedRng([0.3], index=2)) == 'up'
    assert select_action(row, 0.0, FixedRng([0.0], index=2)) == 'up'


def test_td_update_arithmetic(open_env):
    q = QTable()
    key = encode_state((0, 2))
    next_key = encode_state((1, 2))
    q.ensure_row(key, open_env)
    q.ensure_row(next_key, open_env)
    q.update(next_key, 'left', 10.0)
    context = TrainingContext(q, alpha=0.5, gamma=0.9, epsilon=0.0, rng=None)

    assert td_update(context, key, 'down', -1.0, next_key, False) == pytest.approx(4.0)
    assert q[key]['down'] == pytest.approx(4.0)
    # 4 + 0.5 * (-1 + 9 - 4)
    assert td_update(context, key, 'down', -1.0, next_key, False) == pytest.approx(6.0)
    assert context.updates == 2


def test_td_update_ignores_next_state_when_done(open_env):
    q = QTable()
    key = encode_state((1, 0))
    goal = encode_state((2, 0))
    q.ensure_row(key, open_env)
    q.ensure_row(goal, open_env)
    q.update(goal, 'up', 50.0)
    context = TrainingContext(q, alpha=0.5, gamma=0.9, epsilon=0.0, rng=None)
    assert td_update(context, key, 'down', 99.0, goal, True) == pytest.approx(49.5)


def test_run_episode_reaches_goal_and_expands_lazily(open_env):
    q = QTable()
    context = TrainingContext(q, alpha=0.5, gamma=0.9, epsilon=0.2,
                              rng=np.random.default_rng(0))
    stats = run_episode(open_env, context)
    assert stats['reached_goal']
    assert context.updates == stats['steps']
    assert encode_state((0, 2)) in q
    assert encode_state((2, 0)) in q
    # No treasures in the grid, so at most one key per cell
    assert len(q) <= 9


def test_run_episode_respects_max_steps(open_env):
    q = QTable()
    context = TrainingContext(q, alpha=0.5, gamma=0.9, epsilon=1.0,
                              rng=np.random.default_rng(1))
    stats = run_episode(open_env, context, max_steps=1)
    assert stats['steps'] == 1
    assert not stats['reached_goal']


def test_extract_path_stops_at_step_budget_on_zero_table(open_env):
    q = QTable()
    result = extract_path(open_env, q, step_budget=25)
    assert result.steps == 25
    assert not result.reached_goal
    assert result.path[0] == (0, 2)
    assert result.path[-1] == (2, 0)
    assert len(result.path) == 27
    # Greedy on zeros bounces between the first two legal moves
    assert result.path[1:4] == [(1, 2), (0, 2), (1, 2)]
    assert len(q) == 0


def test_extract_path_with_expanded_zero_table(open_maze, open_env):
    q = QTable()
    for cell in open_maze.cells:
        q.ensure_row(encode_state(cell), open_env)
    result = extract_path(open_env, q, step_budget=10)
    assert result.steps <= 10
    assert len(result.path) <= 12


def test_extract_path_zero_budget(open_env):
    result = extract_path(open_env, QTable(), step_budget=0)
    assert result.path == [(0, 2), (2, 0)]
    assert result.steps == 0
    assert not result.reached_goal


def fixed_table_agent(env):
    agent = QLearningAgent(env, epsilon=0.0, seed=0)
    q = agent.q_table
    route = [((0, 2), 'left'), ((0, 1), 'down'), ((1, 1), 'down'), ((2, 1), 'left')]
    for cell, action in route:
        key = encode_state(cell)
        q.ensure_row(key, env)
        q.update(key, action, 10.0)
    return agent


def test_solve_is_deterministic_on_fixed_table(open_env):
    agent = fixed_table_agent(open_env)
    first = agent.solve()
    assert first == [(0, 2), (0, 1), (1, 1), (2, 1), (2, 0)]
    for _ in range(5):
        assert agent.solve() == first
    assert agent.solve_detailed().reached_goal


def test_solve_does_not_change_table(open_env):
    agent = fixed_table_agent(open_env)
    before = {k: dict(row) for k, row in agent.q_table.items()}
    agent.solve()
    after = {k: dict(row) for k, row in agent.q_table.items()}
    assert before == after


@pytest.mark.parametrize("kwargs", [
    {'alpha': 0.0},
    {'alpha': 1.5},
    {'gamma': 0.0},
    {'epsilon': -0.1},
    {'epsilon': 1.1},
    {'epsilon_decay': 0.0},
    {'step_budget': -1},
])
def test_agent_rejects_bad_hyperparameters(open_env, kwargs):
    with pytest.raises(ValueError):
        QLearningAgent(open_env, **kwargs)


def test_train_runs_exact_episode_count(open_env):
    agent = QLearningAgent(open_env, alpha=0.5, gamma=0.9, epsilon=0.2, seed=0)
    seen = []
    history = agent.train(7, callback=lambda ep, stats: seen.append(ep))
    assert len(history) == 7
    assert seen == list(range(1, 8))
    assert agent.episodes_trained == 7
    assert all(s['reached_goal'] for s in history)

    with pytest.raises(ValueError):
        agent.train(-1)


def test_epsilon_decays_to_floor(corridor_maze):
    env = MazeEnv(corridor_maze, step_cost=-1, goal_bonus=100)
    agent = QLearningAgent(env, epsilon=1.0, epsilon_decay=0.5, epsilon_min=0.1, seed=0)
    history = agent.train(3)
    assert [s['epsilon'] for s in history] == [1.0, 0.5, 0.25]
    assert agent.epsilon == pytest.approx(0.125)
    agent.train(1)
    assert agent.epsilon == pytest.approx(0.1)


def test_seeded_training_is_reproducible(hazard_maze):
    def run():
        env = MazeEnv(hazard_maze, step_cost=-1, goal_bonus=100)
        agent = QLearningAgent(env, alpha=0.5, gamma=0.9, epsilon=0.2, seed=11)
        agent.train(50)
        return {k: dict(v) for k, v in agent.q_table.items()}

    assert run() == run()


def test_seeded_random_initialization_is_reproducible(open_maze):
    def run():
        env = MazeEnv(open_maze, step_cost=-1, goal_bonus=100)
        agent = QLearningAgent(env, alpha=0.5, gamma=0.9, epsilon=0.2,
                               initial_range=(0.0, 1.0), seed=4)
        agent.train(100)
        return agent, {k: dict(v) for k, v in agent.q_table.items()}

    agent, table = run()
    assert table == run()[1]
    assert agent.solve_detailed().reached_goal


def test_print_helpers(open_env, capsys):
    agent = QLearningAgent(open_env, alpha=0.5, gamma=0.9, epsilon=0.2, seed=0)
    agent.train(5)
    agent.print_stats()
    agent.print_q_table(limit=2)
    out = capsys.readouterr().out
    assert "Q-LEARNING STATS" in out
    assert "Episodes: 5" in out
