# config.py
# =========
# Global configuration / experiment knobs for the store-flow simulation and
# the layout optimizer.
#
# Each block below is grouped by purpose. Every parameter has a comment
# explaining what it controls, reasonable default values, and notes about
# how it interacts with other parameters.
#
# Units: world coordinates are floor-plan units (the editor used pixels,
# roughly 10 units per foot). Times are simulated seconds.
#
# Values are read at call time (SimulationConfig / OptimizerConfig build their
# defaults from this module), so tests and scenarios may override attributes
# of this module before creating a simulation.

# -------------------------
# CORE RUN PARAMETERS
# -------------------------
SEED = 42
# - SEED:
#   Default RNG seed for simulations and the optimizer. Set to None for
#   nondeterministic runs.

TICK_SECONDS = 0.1
# - TICK_SECONDS:
#   Default elapsed time per step() when a run loop drives the simulation.
#   0.1 gives 10 ticks per simulated second.

MAX_SIM_TIME = 600.0
# - MAX_SIM_TIME:
#   Upper bound (simulated seconds) for a headless run started from the CLI.

WORLD_WIDTH = 1200.0
WORLD_HEIGHT = 800.0
# - WORLD_WIDTH / WORLD_HEIGHT:
#   Agents are clamped to [0, WORLD_WIDTH] x [0, WORLD_HEIGHT].

LAYOUT_FILE = "maps/examples/corner_store.json"
# - LAYOUT_FILE:
#   Layout used by the CLI when no --layout option is given.

# -------------------------
# SPAWNING
# -------------------------
SPAWN_INTERVAL = 5.0
# - SPAWN_INTERVAL:
#   Seconds between two customer arrivals. At most one customer spawns per tick.

MAX_CUSTOMERS = 50
# - MAX_CUSTOMERS:
#   Maximum number of customers inside the store at the same time.

SHOPPING_LIST_MIN = 3
SHOPPING_LIST_MAX = 5
# - SHOPPING_LIST_*:
#   Inclusive bounds of the shopping list size. Labels are drawn without
#   replacement, so a layout with fewer labels yields shorter lists.

# -------------------------
# CUSTOMER BEHAVIOUR
# -------------------------
CUSTOMER_SPEED_MIN = 30.0
CUSTOMER_SPEED_MAX = 50.0
# - CUSTOMER_SPEED_*:
#   Walking speed (units / second) is drawn uniformly from this range.

VISION_RANGE = 150.0
# - VISION_RANGE:
#   A product section is visible when its centroid is this close and no wall
#   blocks the sight line.

DECISION_INTERVAL = 2.0
# - DECISION_INTERVAL:
#   Seconds between two perception + decision rounds for one customer.

CROWD_RADIUS = 30.0
# - CROWD_RADIUS:
#   Customers within this radius of a section centroid count as its crowd.

PRODUCT_WAIT = 3.0
CHECKOUT_WAIT = 5.0
# - PRODUCT_WAIT / CHECKOUT_WAIT:
#   Time spent picking an item and paying. Waiting customers do not move.

# -------------------------
# MOVEMENT
# -------------------------
STATIONARY_RADIUS = 5.0
# - STATIONARY_RADIUS:
#   Closer than this to the target, a customer does not move.

ARRIVAL_RADIUS = 15.0
# - ARRIVAL_RADIUS:
#   Closer than this to the target, the target counts as reached.

AVOIDANCE_RADIUS = 20.0
AVOIDANCE_SLOWDOWN = 0.5
AVOIDANCE_JITTER = 0.5
# - AVOIDANCE_*:
#   Another customer within AVOIDANCE_RADIUS scales speed by AVOIDANCE_SLOWDOWN
#   and perturbs the heading by up to +/- AVOIDANCE_JITTER / 2 radians.
#   This is a crowd heuristic, not collision resolution.

# -------------------------
# CONGESTION
# -------------------------
CONGESTION_CELL_SIZE = 50.0
# - CONGESTION_CELL_SIZE:
#   Side of a congestion grid cell in world units.

BOTTLENECK_THRESHOLD = 3
# - BOTTLENECK_THRESHOLD:
#   A cell holding at least this many customers is a bottleneck.

# -------------------------
# DECISION PROVIDER
# -------------------------
DECISION_PROVIDER = "fallback"
# - DECISION_PROVIDER: "fallback" | "ollama" | "openrouter"
#   "fallback" is the deterministic local rule set and needs no network.

DECISION_TIMEOUT = 5.0
# - DECISION_TIMEOUT:
#   Seconds the simulator waits for a remote decision before falling back.

OLLAMA_URL = "http://localhost:11434"
OLLAMA_MODEL = "llama3.2"
OPENROUTER_URL = "https://openrouter.ai/api/v1/chat/completions"
OPENROUTER_MODEL = "google/gemini-flash-1.5-8b"
OPENROUTER_API_KEY_ENV = "OPENROUTER_API_KEY"
# - Remote provider endpoints. The OpenRouter key is read from the environment
#   variable named by OPENROUTER_API_KEY_ENV, never stored here.

# -------------------------
# GENETIC OPTIMIZER
# -------------------------
POPULATION_SIZE = 20
MAX_GENERATIONS = 50
# - POPULATION_SIZE / MAX_GENERATIONS:
#   Each generation costs POPULATION_SIZE full simulations.

SURVIVOR_FRACTION = 0.3
MUTATION_RATE = 0.2
# - SURVIVOR_FRACTION:
#   Top fraction kept unmodified into the next generation.
# - MUTATION_RATE:
#   Probability that a child is mutated at all.

INIT_CHECKOUT_JITTER = 50.0
INIT_RESIZE_PROB = 0.3
INIT_RESIZE_DW = 20.0
INIT_RESIZE_DH = 15.0
# - INIT_*:
#   Variation of the initial population: checkouts move by up to +/- 50,
#   30% of the sections are resized by up to +/- 20 (width) / +/- 15 (height).

MUTATION_CHECKOUT_JITTER = 25.0
MUTATION_RESIZE_DW = 20.0
MUTATION_RESIZE_DH = 15.0
# - MUTATION_*:
#   Per-mutation checkout jitter and section resize amplitudes (+/-).

MIN_SECTION_WIDTH = 60.0
MIN_SECTION_HEIGHT = 40.0
# - MIN_SECTION_*:
#   Resizing never shrinks a section below this footprint.

EVAL_TARGET_COMPLETED = 30
EVAL_MAX_SIM_TIME = 300.0
EVAL_TICK_SECONDS = 0.25
# - EVAL_*:
#   One fitness evaluation runs until EVAL_TARGET_COMPLETED customers left the
#   store or EVAL_MAX_SIM_TIME simulated seconds passed. A coarser tick than
#   TICK_SECONDS keeps evaluations affordable.

FITNESS_BASE = 1000.0
FITNESS_CONGESTION_WEIGHT = 5.0
FITNESS_BOTTLENECK_WEIGHT = 10.0
FITNESS_TIME_WEIGHT = 2.0
# - FITNESS_*:
#   fitness = BASE - w_c * avg congestion - w_b * bottlenecks - w_t * avg
#   shopping time (seconds). Higher is better.

OPTIMIZER_WORKERS = 1
# - OPTIMIZER_WORKERS:
#   Processes used to evaluate a generation. 1 evaluates in-process.

# -------------------------
# NOTES & TUNING GUIDANCE
# -------------------------
# - For quick debugging: small POPULATION_SIZE (4-6), EVAL_MAX_SIM_TIME of
#   60-120 and EVAL_TICK_SECONDS of 0.5.
# - Remote decision providers make evaluations slow; the decision cache helps
#   only when many customers see the same sections with the same lists.
