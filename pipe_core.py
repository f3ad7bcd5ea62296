import logging
import random
from collections import deque
from dataclasses import dataclass, replace
from enum import Enum
from itertools import product

logger = logging.getLogger(__name__)

# Fresh boards are retried this many times when a region ends up walled off
DEFAULT_MAX_ATTEMPTS = 200


# ============================================================================
# ERRORS
# ============================================================================

class PipeGameError(Exception):
    """Base class for recoverable board errors (bad position, locked cell)."""


class InvalidCell(PipeGameError):
    """Raised when a position lies outside the board."""

    def __init__(self, x, y):
        super().__init__("No cell at ({}, {})".format(x, y))
        self.x = x
        self.y = y


class CellIsLocked(PipeGameError):
    """Raised when rotating a cell whose lock flag is set."""

    def __init__(self, x, y):
        super().__init__("Cell at ({}, {}) is locked".format(x, y))
        self.x = x
        self.y = y


class NoMatchingConfiguration(RuntimeError):
    """No pipe piece satisfies a constraint list.

    Generation only builds satisfiable lists, so this signals a broken
    invariant. It is not a PipeGameError on purpose: nothing should catch it.
    """

    def __init__(self, constraints):
        super().__init__("No cell configuration can match those constraints: {}".format(
            format_constraints(constraints)))
        self.constraints = list(constraints)


class GenerationFailed(RuntimeError):
    """Every generation attempt left part of the board unreachable."""


# ============================================================================
# DIRECTIONS & SHAPES
# ============================================================================

class Direction(Enum):
    NORTH = 0
    EAST = 1
    SOUTH = 2
    WEST = 3

    def rotate(self, by):
        """Turn clockwise by as many quarter turns as `by` is away from NORTH."""
        return DIRECTION_ORDER[(self.value + by.value) % 4]

    def opposite(self):
        return self.rotate(Direction.SOUTH)

    def offset(self):
        return DIRECTION_OFFSETS[self]

    def step_from(self, x, y):
        """Neighbor position in this direction, or None below zero.

        There is no upper bound here; Grid lookups reject positions past the
        far edges.
        """
        dx, dy = self.offset()
        nx, ny = x + dx, y + dy
        if nx < 0 or ny < 0:
            return None
        return (nx, ny)


# Ordinal -> Direction; the only place an index turns back into a direction
DIRECTION_ORDER = tuple(Direction)

# y grows toward NORTH
DIRECTION_OFFSETS = {
    Direction.NORTH: (0, 1),
    Direction.EAST: (1, 0),
    Direction.SOUTH: (0, -1),
    Direction.WEST: (-1, 0),
}


class CellShape(Enum):
    SINGLE = 0
    ANGLE = 1
    LINE = 2
    TRIPLE = 3

    @property
    def degree(self):
        return len(SHAPE_CONNECTIONS[self])


# Pipe ends of each shape in its NORTH orientation
SHAPE_CONNECTIONS = {
    CellShape.SINGLE: (Direction.NORTH,),
    CellShape.ANGLE: (Direction.NORTH, Direction.EAST),
    CellShape.LINE: (Direction.NORTH, Direction.SOUTH),
    CellShape.TRIPLE: (Direction.EAST, Direction.SOUTH, Direction.WEST),
}


# ============================================================================
# CELL MODEL
# ============================================================================

@dataclass(frozen=True)
class Cell:
    shape: CellShape = CellShape.SINGLE
    orientation: Direction = Direction.NORTH
    locked: bool = False
    powered: bool = False

    def connections(self):
        """Absolute directions this piece opens toward."""
        return frozenset(d.rotate(self.orientation) for d in SHAPE_CONNECTIONS[self.shape])

    def connects(self, direction):
        return direction in self.connections()

    def satisfies(self, constraints):
        """True iff every (direction, must_connect) entry matches this piece.

        Contradictory entries for one direction can never all match.
        """
        conns = self.connections()
        return all((direction in conns) == must_connect
                   for direction, must_connect in constraints)

    def rotated(self, by=Direction.EAST):
        return replace(self, orientation=self.orientation.rotate(by))


DEFAULT_CELL = Cell()

# Every (shape, orientation) pair, the pool constrained sampling draws from
ALL_CONFIGURATIONS = tuple(
    Cell(shape, orientation) for shape, orientation in product(CellShape, Direction)
)


def all_configurations():
    return list(ALL_CONFIGURATIONS)


def format_constraints(constraints):
    return '[' + ', '.join(
        '{}={}'.format(direction.name, 'open' if must_connect else 'closed')
        for direction, must_connect in constraints
    ) + ']'


def sample_matching(constraints, rng=None):
    """Pick a configuration satisfying `constraints` uniformly at random.

    Raises NoMatchingConfiguration when nothing fits and ValueError when a
    direction is constrained twice.
    """
    if rng is None:
        rng = random.Random()
    seen = set()
    for direction, _ in constraints:
        if direction in seen:
            raise ValueError("Direction {} constrained twice in {}".format(
                direction.name, format_constraints(constraints)))
        seen.add(direction)

    candidates = [cell for cell in ALL_CONFIGURATIONS if cell.satisfies(constraints)]
    if not candidates:
        logger.error("No cell configuration matches %s", format_constraints(constraints))
        raise NoMatchingConfiguration(constraints)
    return rng.choice(candidates)


# ============================================================================
# GRID
# ============================================================================

class Grid:
    """Fixed-size board of cells stored row-major, indexed x + width * y."""

    def __init__(self, width, height):
        if width < 0 or height < 0:
            raise ValueError("Grid dimensions must be non-negative, got {}x{}".format(width, height))
        self.width = width
        self.height = height
        self._cells = [DEFAULT_CELL] * (width * height)

    def __repr__(self):
        return 'Grid({}, {})'.format(self.width, self.height)

    def in_bounds(self, x, y):
        return 0 <= x < self.width and 0 <= y < self.height

    def _index(self, x, y):
        if not self.in_bounds(x, y):
            raise InvalidCell(x, y)
        return x + self.width * y

    def get(self, x, y):
        if not self.in_bounds(x, y):
            return None
        return self._cells[x + self.width * y]

    def set(self, x, y, cell):
        """Replace the whole cell (shape, orientation and flags)."""
        self._cells[self._index(x, y)] = cell

    def set_orientation(self, x, y, orientation):
        index = self._index(x, y)
        cell = self._cells[index]
        if cell.locked:
            raise CellIsLocked(x, y)
        self._cells[index] = replace(cell, orientation=orientation)

    def rotate(self, x, y, by=Direction.EAST):
        """Turn an unlocked cell a quarter turn clockwise (by default)."""
        cell = self.get(x, y)
        if cell is None:
            raise InvalidCell(x, y)
        self.set_orientation(x, y, cell.rotated(by).orientation)

    # Lock and power are meta-state; the lock does not protect itself
    def set_locked(self, x, y, locked):
        index = self._index(x, y)
        self._cells[index] = replace(self._cells[index], locked=locked)

    def toggle_locked(self, x, y):
        index = self._index(x, y)
        self._cells[index] = replace(self._cells[index], locked=not self._cells[index].locked)

    def set_powered(self, x, y, powered):
        index = self._index(x, y)
        self._cells[index] = replace(self._cells[index], powered=powered)

    def iter_cells(self):
        """Yield (x, y, cell) row by row, y outer."""
        for y in range(self.height):
            for x in range(self.width):
                yield x, y, self._cells[x + self.width * y]

    def __iter__(self):
        return self.iter_cells()

    def neighbor_position(self, x, y, direction):
        pos = direction.step_from(x, y)
        if pos is None or not self.in_bounds(*pos):
            return None
        return pos

    def neighbor(self, x, y, direction):
        pos = self.neighbor_position(x, y, direction)
        if pos is None:
            return None
        return self.get(*pos)

    def neighbors(self, x, y):
        """(direction, cell) for every in-bounds neighbor."""
        result = []
        for direction in Direction:
            cell = self.neighbor(x, y, direction)
            if cell is not None:
                result.append((direction, cell))
        return result

    def cell_constraints(self, x, y):
        """Hard constraints on (x, y) from the walls and locked neighbors.

        Walls forbid a connection, a locked neighbor demands whatever it
        already decided, an unlocked neighbor adds nothing.
        """
        constraints = []
        for direction in Direction:
            neighbor = self.neighbor(x, y, direction)
            if neighbor is None:
                constraints.append((direction, False))
            elif neighbor.locked:
                constraints.append((direction, neighbor.connects(direction.opposite())))
        return constraints

    def unlocked_connected_neighbors(self, x, y):
        """Positions of unlocked cells this cell's pipe ends point at."""
        cell = self.get(x, y)
        if cell is None:
            raise InvalidCell(x, y)
        result = []
        for direction in Direction:
            if not cell.connects(direction):
                continue
            pos = self.neighbor_position(x, y, direction)
            if pos is not None and not self.get(*pos).locked:
                result.append(pos)
        return result

    def linked_neighbors(self, x, y):
        """Positions joined to (x, y) by pipe ends that meet from both sides."""
        cell = self.get(x, y)
        if cell is None:
            raise InvalidCell(x, y)
        result = []
        for direction in Direction:
            if not cell.connects(direction):
                continue
            pos = self.neighbor_position(x, y, direction)
            if pos is not None and self.get(*pos).connects(direction.opposite()):
                result.append(pos)
        return result

    # ------------------------------------------------------------------------
    # Power propagation
    # ------------------------------------------------------------------------

    def connected_to(self, x, y):
        """Every position reachable from (x, y) through linked pipe ends."""
        if not self.in_bounds(x, y):
            raise InvalidCell(x, y)
        seen = {(x, y)}
        queue = deque([(x, y)])
        while queue:
            cx, cy = queue.popleft()
            for pos in self.linked_neighbors(cx, cy):
                if pos not in seen:
                    seen.add(pos)
                    queue.append(pos)
        return seen

    def power_from(self, x, y):
        """Power exactly the cells reachable from the source; return them."""
        reachable = self.connected_to(x, y)
        for cx, cy, cell in list(self.iter_cells()):
            powered = (cx, cy) in reachable
            if cell.powered != powered:
                self.set_powered(cx, cy, powered)
        return reachable

    def is_solved(self):
        """No dangling pipe ends and one network spanning the whole board."""
        if self.width * self.height == 0:
            return True
        for x, y, cell in self.iter_cells():
            for direction in cell.connections():
                neighbor = self.neighbor(x, y, direction)
                if neighbor is None or not neighbor.connects(direction.opposite()):
                    return False
        return len(self.connected_to(0, 0)) == self.width * self.height


# ============================================================================
# GENERATION
# ============================================================================

def seed_position(width, height):
    return (width // 2, height // 2)


def frontier_constraints(grid, frontier, x, y):
    """Keep (x, y) closed toward unlocked neighbors still waiting in the frontier.

    Two pending cells must not both claim the edge between them; the one
    placed later sees this cell locked and matches it.
    """
    constraints = []
    for direction, neighbor in grid.neighbors(x, y):
        if not neighbor.locked and direction.step_from(x, y) in frontier:
            constraints.append((direction, False))
    return constraints


def drain_frontier(grid, frontier, rng):
    """Place and lock every queued position, growing the queue as pipes open."""
    placed = 0
    while frontier:
        x, y = frontier.popleft()
        constraints = grid.cell_constraints(x, y) + frontier_constraints(grid, frontier, x, y)
        cell = sample_matching(constraints, rng)
        grid.set(x, y, cell)
        grid.set_locked(x, y, True)
        placed += 1
        logger.debug("Locked cell at (%d, %d) - %s %s", x, y, cell.shape.name, cell.orientation.name)
        frontier.extend(grid.unlocked_connected_neighbors(x, y))
    return placed


def find_repair_target(grid, rng):
    """Choose an unlocked cell next to a locked piece with a free side.

    Returns (x, y, direction) where direction points from the unlocked cell
    to the locked one, or None when no unlocked cell can be reached.
    """
    candidates = []
    for x, y, cell in grid.iter_cells():
        if cell.locked:
            continue
        for direction, neighbor in grid.neighbors(x, y):
            if neighbor.locked and neighbor.shape is not CellShape.TRIPLE:
                candidates.append((x, y, direction))
                break
    if not candidates:
        return None
    return rng.choice(candidates)


def repair(grid, frontier, target, rng):
    """Reopen the locked neighbor of an orphan so that it connects to it."""
    x, y, direction = target
    lx, ly = direction.step_from(x, y)
    grid.set_locked(lx, ly, False)
    constraints = grid.cell_constraints(lx, ly)
    constraints.append((direction.opposite(), True))
    cell = sample_matching(constraints, rng)
    grid.set(lx, ly, cell)
    grid.set_locked(lx, ly, True)
    logger.debug("Forced a way to (%d, %d) by changing (%d, %d) to %s %s",
                 x, y, lx, ly, cell.shape.name, cell.orientation.name)
    frontier.extend(grid.unlocked_connected_neighbors(lx, ly))


def _generate_attempt(width, height, rng):
    grid = Grid(width, height)
    frontier = deque([seed_position(width, height)])
    repairs = 0
    while True:
        drain_frontier(grid, frontier, rng)
        # Frontier empty: either everything is locked or some areas were missed
        target = find_repair_target(grid, rng)
        if target is None:
            break
        repair(grid, frontier, target, rng)
        repairs += 1
    return grid, repairs


def random_valid(width, height, rng=None, max_attempts=DEFAULT_MAX_ATTEMPTS):
    """Generate a fully connected, fully locked board.

    Grows a network outward from the center, then patches regions the
    growth missed. An attempt that leaves cells walled in by TRIPLE pieces
    is thrown away and retried on a fresh board.
    """
    if width < 1 or height < 1:
        raise ValueError("Board must be at least 1x1, got {}x{}".format(width, height))
    if width * height < 2:
        raise ValueError("A 1x1 board has no valid layout: every piece has at least one pipe end")
    if rng is None:
        rng = random.Random()

    for attempt in range(1, max_attempts + 1):
        grid, repairs = _generate_attempt(width, height, rng)
        unreachable = sum(1 for _, _, cell in grid.iter_cells() if not cell.locked)
        if unreachable == 0:
            logger.info("Generated %dx%d board (attempt %d, %d repairs)",
                        width, height, attempt, repairs)
            return grid
        logger.warning("Attempt %d left %d unreachable cells on a %dx%d board, retrying",
                       attempt, unreachable, width, height)

    raise GenerationFailed("No valid {}x{} board after {} attempts".format(
        width, height, max_attempts))


def random_invalid(width, height, rng=None):
    """Board of independently random pieces, with no validity guarantee."""
    if rng is None:
        rng = random.Random()
    grid = Grid(width, height)
    for y in range(height):
        for x in range(width):
            grid.set(x, y, rng.choice(ALL_CONFIGURATIONS))
    return grid


# ============================================================================
# PUZZLE PREPARATION
# ============================================================================

def scramble(grid, rng=None):
    """Unlock every cell and spin it to a random orientation.

    A spin that happens to leave the board solved gets one random cell turned
    a further quarter turn. Every shape changes its pipe ends under a quarter
    turn, so that cell's old partner is left dangling.

    Returns {(x, y): orientation} holding the solved orientations.
    """
    if rng is None:
        rng = random.Random()
    solution = {}
    for x, y, cell in list(grid.iter_cells()):
        solution[(x, y)] = cell.orientation
        grid.set_locked(x, y, False)
        grid.set_orientation(x, y, rng.choice(DIRECTION_ORDER))
    if solution and grid.is_solved():
        x, y = rng.choice(sorted(solution))
        grid.rotate(x, y)
        logger.debug("Scramble left the board solved, turned (%d, %d) once more", x, y)
    return solution


def prepare_puzzle(width, height, rng=None, max_attempts=DEFAULT_MAX_ATTEMPTS):
    """Generate a valid board and scramble it; returns (grid, solution)."""
    if rng is None:
        rng = random.Random()
    grid = random_valid(width, height, rng=rng, max_attempts=max_attempts)
    solution = scramble(grid, rng)
    return grid, solution
