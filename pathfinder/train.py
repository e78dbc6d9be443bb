#!/usr/bin/env python3
"""
Q-Learning Training for the PathFinder maze

Key features:
- One episode runs from the start cell until the end cell is reached
- Treasures and hazards are claimed once per episode and stay in the maze
- The learned greedy path is printed on top of the maze after training

Usage:
    pathfinder-train --episodes 2000 --seed 7
    pathfinder-train --layout maze.txt --episodes 500 --print-q 10
"""

import argparse
import json
import sys

import numpy as np

from pathfinder import config
from pathfinder.maze import Maze, MazeError, format_maze, generate_maze
from pathfinder.maze_env import MazeEnv
from pathfinder.qlearn import QLearningAgent


def load_maze(layout=None, dimensions=config.MAZE_DIMENSIONS, seed=None,
              loop_probability=config.LOOP_PROBABILITY,
              treasure_probability=config.TREASURE_PROBABILITY,
              hazard_probability=config.HAZARD_PROBABILITY,
              treasure_reward=config.REWARDS['treasure'],
              hazard_reward=config.REWARDS['hazard']):
    """Read a maze layout file, or generate a random maze."""
    if layout:
        with open(layout, 'r') as f:
            maze = Maze.from_ascii(f.read(), treasure_reward=treasure_reward,
                                   hazard_reward=hazard_reward)
    else:
        maze = generate_maze(
            dimensions=dimensions,
            seed=seed,
            loop_probability=loop_probability,
            treasure_probability=treasure_probability,
            hazard_probability=hazard_probability,
            treasure_reward=treasure_reward,
            hazard_reward=hazard_reward
        )

    if not maze.is_connected():
        raise MazeError("the end cell cannot be reached from the start cell")
    return maze


def print_summary(history, n, states):
    recent = history[-n:]
    scores = np.array([s['score'] for s in recent])
    steps = np.array([s['steps'] for s in recent])
    treasures = np.array([s['treasures'] for s in recent])
    hazards = np.array([s['hazards'] for s in recent])

    print(f"\n{'='*60}")
    print(f"SUMMARY - Last {len(recent)} episodes")
    print(f"{'='*60}")
    print(f"Avg Score:     {scores.mean():9.1f} (max: {scores.max():.1f})")
    print(f"Avg Steps:     {steps.mean():9.1f} (min: {steps.min()})")
    print(f"Avg Treasures: {treasures.mean():9.2f}")
    print(f"Avg Hazards:   {hazards.mean():9.2f}")
    print(f"States in Q:   {states}")
    print(f"{'='*60}\n")


def train(maze, episodes=config.EPISODES, alpha=config.ALPHA, gamma=config.GAMMA,
          epsilon=config.EPSILON, epsilon_decay=config.EPSILON_DECAY,
          epsilon_min=config.EPSILON_MIN, initial_range=config.INITIAL_Q_RANGE,
          step_cost=config.REWARDS['step'],
          goal_bonus=config.REWARDS['goal'], max_steps=config.MAX_STEPS_PER_EPISODE,
          step_budget=config.STEP_BUDGET, seed=None, summary_every=config.SUMMARY_EVERY,
          progress=False, history_file=None, print_q=0):
    """
    Train an agent on maze and print the solved path.

    Returns (agent, result) where result is the PathResult of the greedy walk.
    """
    print(f"\n{'='*60}")
    print(f"PATHFINDER Q-LEARNING")
    print(f"{'='*60}")
    print(f"Maze:     {maze.rows}x{maze.cols}, {len(maze.cells)} open cells")
    print(f"Rewards:  {len(maze.treasures)} treasures, {len(maze.hazards)} hazards")
    print(f"Episodes: {episodes}")
    print(f"α={alpha}, γ={gamma}, ε={epsilon} (decay={epsilon_decay}, min={epsilon_min})")
    print(f"{'='*60}\n")

    env = MazeEnv(maze, step_cost=step_cost, goal_bonus=goal_bonus)
    agent = QLearningAgent(
        env,
        alpha=alpha,
        gamma=gamma,
        epsilon=epsilon,
        epsilon_decay=epsilon_decay,
        epsilon_min=epsilon_min,
        initial_range=initial_range,
        step_budget=step_budget,
        seed=seed
    )

    history = []
    best_score = None
    best_ep = 0

    def on_episode(ep, stats):
        nonlocal best_score, best_ep
        history.append(stats)
        if best_score is None or stats['score'] > best_score:
            best_score = stats['score']
            best_ep = ep
        if summary_every and ep % summary_every == 0:
            print_summary(history, summary_every, len(agent.q_table))

    try:
        agent.train(episodes, max_steps=max_steps, progress=progress, callback=on_episode)
    except KeyboardInterrupt:
        print("\n[INTERRUPTED]")

    print(f"\n{'='*60}")
    print(f"TRAINING COMPLETE")
    print(f"{'='*60}")
    if history:
        print(f"Episodes:      {len(history)}")
        print(f"Avg Score:     {np.mean([s['score'] for s in history]):.1f}")
        print(f"Avg Steps:     {np.mean([s['steps'] for s in history]):.1f}")
        print(f"Best Score:    {best_score:.1f} (Ep {best_ep})")
        print(f"States in Q:   {len(agent.q_table)}")
    print(f"{'='*60}")

    agent.print_stats()
    if print_q:
        agent.print_q_table(limit=print_q)

    result = agent.solve_detailed()
    print(format_maze(maze, result.path))
    print(f"\nPath: {len(result.path)} cells, {result.steps} moves")
    if not result.reached_goal:
        print(f"[WARN] Greedy policy did not reach the end within {step_budget} steps")

    if history_file:
        with open(history_file, 'w') as f:
            json.dump({
                'episodes': history,
                'best_score': best_score,
                'best_episode': best_ep,
                'path': [list(cell) for cell in result.path],
                'reached_goal': result.reached_goal
            }, f)

    return agent, result


def main(argv=None):
    parser = argparse.ArgumentParser(description="Train a Q-learning agent to solve a maze")

    # Maze
    parser.add_argument("--layout", type=str, default=None,
                        help="Text maze file (# wall, . open, S start, E end, T treasure, H hazard)")
    parser.add_argument("--dimensions", type=int, default=config.MAZE_DIMENSIONS,
                        help="Side of a generated maze (odd)")
    parser.add_argument("--treasure-prob", type=float, default=config.TREASURE_PROBABILITY,
                        help="Chance that a generated cell holds treasure")
    parser.add_argument("--hazard-prob", type=float, default=config.HAZARD_PROBABILITY,
                        help="Chance that a generated cell holds a hazard")
    parser.add_argument("--loops", type=float, default=config.LOOP_PROBABILITY,
                        help="Chance to knock out each remaining inner wall")
    parser.add_argument("--seed", type=int, default=None,
                        help="Seed for maze generation and exploration")

    # RL parameters
    parser.add_argument("--episodes", type=int, default=config.EPISODES,
                        help="Number of episodes to train")
    parser.add_argument("--alpha", type=float, default=config.ALPHA,
                        help="Learning rate")
    parser.add_argument("--gamma", type=float, default=config.GAMMA,
                        help="Discount factor")
    parser.add_argument("--epsilon", type=float, default=config.EPSILON,
                        help="Exploration rate")
    parser.add_argument("--epsilon-decay", type=float, default=config.EPSILON_DECAY,
                        help="Epsilon multiplier per episode")
    parser.add_argument("--epsilon-min", type=float, default=config.EPSILON_MIN,
                        help="Minimum exploration rate")
    parser.add_argument("--initial-range", type=float, nargs=2, default=config.INITIAL_Q_RANGE,
                        metavar=("LOW", "HIGH"),
                        help="Draw fresh Q entries uniformly from [LOW, HIGH]")
    parser.add_argument("--max-steps", type=int, default=config.MAX_STEPS_PER_EPISODE,
                        help="Optional cap on moves per training episode")
    parser.add_argument("--step-budget", type=int, default=config.STEP_BUDGET,
                        help="Move limit when walking the learned policy")

    # Rewards
    parser.add_argument("--step-cost", type=float, default=config.REWARDS['step'])
    parser.add_argument("--treasure-reward", type=float, default=config.REWARDS['treasure'])
    parser.add_argument("--hazard-reward", type=float, default=config.REWARDS['hazard'])
    parser.add_argument("--goal-bonus", type=float, default=config.REWARDS['goal'])

    # Output
    parser.add_argument("--summary-every", type=int, default=config.SUMMARY_EVERY,
                        help="Episodes between summary blocks (0 = off)")
    parser.add_argument("--progress", action="store_true",
                        help="Show a progress bar")
    parser.add_argument("--history", type=str, default=None,
                        help="Write per-episode stats to this JSON file")
    parser.add_argument("--print-q", type=int, default=0,
                        help="Print the N best Q-table rows")

    args = parser.parse_args(argv)

    try:
        maze = load_maze(
            layout=args.layout,
            dimensions=args.dimensions,
            seed=args.seed,
            loop_probability=args.loops,
            treasure_probability=args.treasure_prob,
            hazard_probability=args.hazard_prob,
            treasure_reward=args.treasure_reward,
            hazard_reward=args.hazard_reward
        )
        _, result = train(
            maze,
            episodes=args.episodes,
            alpha=args.alpha,
            gamma=args.gamma,
            epsilon=args.epsilon,
            epsilon_decay=args.epsilon_decay,
            epsilon_min=args.epsilon_min,
            initial_range=args.initial_range,
            step_cost=args.step_cost,
            goal_bonus=args.goal_bonus,
            max_steps=args.max_steps,
            step_budget=args.step_budget,
            seed=args.seed,
            summary_every=args.summary_every,
            progress=args.progress,
            history_file=args.history,
            print_q=args.print_q
        )
    except (ValueError, OSError) as e:
        # MazeError is a ValueError, as are rejected hyperparameters
        print(f"[ERROR] {e}")
        return 2

    return 0 if result.reached_goal else 1


if __name__ == "__main__":
    sys.exit(main())
