# Training Hyperparameters
ALPHA = 0.1           # Learning rate
GAMMA = 0.8           # Discount factor
EPSILON = 0.1         # Exploration rate
EPSILON_DECAY = 1.0   # Per-episode multiplier (1.0 = constant exploration)
EPSILON_MIN = 0.0     # Floor for the decayed exploration rate
INITIAL_Q = 0.0       # Value given to a freshly expanded action entry
INITIAL_Q_RANGE = None  # (low, high) to draw fresh entries uniformly instead

# Reward Configuration
REWARDS = {
    'step': -1.0,         # Movement cost paid on every legal move
    'treasure': 200.0,    # Claiming a treasure cell
    'hazard': -50.0,      # Walking into a hazard cell
    'goal': 1000.0,       # Reaching the end cell, must dwarf any single step
}

# Training Settings
EPISODES = 500
MAX_STEPS_PER_EPISODE = None  # None = run every episode until the goal
STEP_BUDGET = 1000            # Safety bound for greedy path extraction
SUMMARY_EVERY = 50

# Maze Generation
MAZE_DIMENSIONS = 19          # Must be odd so both corners are rooms
TREASURE_PROBABILITY = 0.10
HAZARD_PROBABILITY = 0.05
LOOP_PROBABILITY = 0.0        # Extra walls knocked out after carving
