import logging
import math

import drawsvg as draw
from shapely.geometry import Polygon, LineString
from shapely.ops import unary_union

from pipe_core import Direction

logger = logging.getLogger(__name__)


# ============================================================================
# TEXT RENDERING
# ============================================================================

# Indexed shape * 4 + orientation
TEXT_GLYPHS = "╵╶╷╴└┌┐┘│─│─┬┤┴├"


def cell_glyph(cell):
    return TEXT_GLYPHS[cell.shape.value * 4 + cell.orientation.value]


def render_text(grid):
    """Render the board with box-drawing characters, NORTH row first."""
    rows = []
    for y in reversed(range(grid.height)):
        rows.append(''.join(cell_glyph(grid.get(x, y)) for x in range(grid.width)))
    return '\n'.join(rows)


# ============================================================================
# GEOMETRY HELPERS
# ============================================================================

DEFAULT_RENDER_PARAMS = {
    'cell_size': 100,           # pitch between cell centers
    'half_width': 30,           # pipe half-width (out of 50 half-cell)
    'stroke_width': 0.5,
    'pipe_color': 'white',
    'powered_color': '#8ecae6',
    'locked_color': '#dddddd',  # background of locked cells
    'grid_color': '#eeeeee',    # cell borders, 'none' to hide
    'highlight_color': '#e76f51',
}

# Clockwise rotation of the NORTH arm for each direction (SVG y points down)
ARM_ROTATIONS = {
    Direction.NORTH: 0,
    Direction.EAST: 90,
    Direction.SOUTH: 180,
    Direction.WEST: 270,
}


def _rotate_vec(v, angle_deg):
    rad = math.radians(angle_deg)
    cos_a, sin_a = math.cos(rad), math.sin(rad)
    return (v[0] * cos_a - v[1] * sin_a, v[0] * sin_a + v[1] * cos_a)


def cell_center(x, y, width, height, cell_size=100):
    """SVG coordinates of a cell center; grid y grows upward, SVG y downward."""
    xloc = (x - (width - 1) / 2.0) * cell_size
    yloc = ((height - 1) / 2.0 - y) * cell_size
    return xloc, yloc


def get_arm_polygon(direction, xloc, yloc, half_width=30, cell_size=100):
    """Rectangle from the central square out to the cell edge."""
    hw = half_width
    edge = cell_size / 2.0
    rot_deg = ARM_ROTATIONS[direction]

    def transform_point(px, py):
        rx, ry = _rotate_vec((px, py), rot_deg)
        return (round(xloc + rx, 6), round(yloc + ry, 6))

    return Polygon([
        transform_point(-hw, -edge),
        transform_point(hw, -edge),
        transform_point(hw, -hw),
        transform_point(-hw, -hw),
    ])


def get_cell_polygon(cell, xloc, yloc, half_width=30, cell_size=100):
    """Return Shapely Polygon for a pipe piece: central square plus one arm per pipe end."""
    hw = half_width
    center = Polygon([
        (xloc - hw, yloc - hw),
        (xloc + hw, yloc - hw),
        (xloc + hw, yloc + hw),
        (xloc - hw, yloc + hw),
    ])
    arms = [get_arm_polygon(d, xloc, yloc, hw, cell_size) for d in cell.connections()]
    return unary_union([center] + arms).buffer(0)


def build_poly_cache(grid, half_width=30, cell_size=100):
    """Precompute every cell's pipe polygon, keyed by (x, y)."""
    poly_cache = {}
    for x, y, cell in grid.iter_cells():
        xloc, yloc = cell_center(x, y, grid.width, grid.height, cell_size)
        poly = get_cell_polygon(cell, xloc, yloc, half_width, cell_size)
        if poly.is_valid and not poly.is_empty:
            poly_cache[(x, y)] = poly
    return poly_cache


def build_occlusion_polygon(grid, poly_cache, x, y, pad=0):
    """Union of the four neighboring pipes, used to clip this cell's outline.

    Walls shared with a joined neighbor fall inside its polygon and vanish,
    so a run of joined cells reads as one tube.
    """
    polygons = []
    for direction in Direction:
        pos = grid.neighbor_position(x, y, direction)
        if pos is None or pos not in poly_cache:
            continue
        poly = poly_cache[pos]
        if pad > 0:
            poly = poly.buffer(pad, join_style=2)
        polygons.append(poly)
    if not polygons:
        return None
    return unary_union(polygons).buffer(0)


def clip_line_outside_polygon(x1, y1, x2, y2, occlusion_poly):
    """Clip a line segment to stay OUTSIDE the occlusion polygon.

    Returns list of (x1, y1, x2, y2) tuples for visible line segments.
    """
    if occlusion_poly is None:
        return [(x1, y1, x2, y2)]

    line = LineString([(x1, y1), (x2, y2)])
    clipped = line.difference(occlusion_poly)

    if clipped.is_empty:
        return []

    if clipped.geom_type == 'LineString':
        parts = [clipped]
    elif clipped.geom_type in ('MultiLineString', 'GeometryCollection'):
        parts = [g for g in clipped.geoms if g.geom_type == 'LineString']
    else:
        parts = []

    result = []
    for geom in parts:
        coords = list(geom.coords)
        for i in range(len(coords) - 1):
            result.append((coords[i][0], coords[i][1], coords[i + 1][0], coords[i + 1][1]))
    return result


def clip_and_draw_line(drawing, x1, y1, x2, y2, occlusion_poly, sw):
    """Clip a line against occlusion polygon and draw visible parts."""
    for sx1, sy1, sx2, sy2 in clip_line_outside_polygon(x1, y1, x2, y2, occlusion_poly):
        drawing.append(draw.Line(sx1, sy1, sx2, sy2,
                                 stroke='black', stroke_width=sw, fill='none'))


# ============================================================================
# SVG RENDERING
# ============================================================================

def _polygon_points(poly):
    return [c for point in list(poly.exterior.coords)[:-1] for c in point]


def draw_cell(drawing, cell, xloc, yloc, pipe_poly, occlusion_poly, params,
              highlighted=False):
    """Draw one cell: background, pipe fill, then clipped outline."""
    cs = params['cell_size']
    background = params['locked_color'] if cell.locked else 'none'
    border = params['highlight_color'] if highlighted else params['grid_color']
    drawing.append(draw.Rectangle(xloc - cs / 2.0, yloc - cs / 2.0, cs, cs,
                                  fill=background, stroke=border,
                                  stroke_width=params['stroke_width'] * (6 if highlighted else 1)))

    if pipe_poly is None:
        return
    fill = params['powered_color'] if cell.powered else params['pipe_color']
    drawing.append(draw.Lines(*_polygon_points(pipe_poly), close=True,
                              fill=fill, stroke='none'))

    coords = list(pipe_poly.exterior.coords)
    for (x1, y1), (x2, y2) in zip(coords, coords[1:]):
        clip_and_draw_line(drawing, x1, y1, x2, y2, occlusion_poly, params['stroke_width'])


def render_svg(grid, params=None, highlight=None, progress_callback=None):
    """Render a board to an SVG string.

    Args:
        grid: pipe_core.Grid to draw
        params: dict overriding DEFAULT_RENDER_PARAMS
        highlight: optional (x, y) of a cell to outline
        progress_callback: called as (current, total) after each cell
    """
    params = dict(DEFAULT_RENDER_PARAMS, **(params or {}))
    cs = params['cell_size']
    hw = params['half_width']
    if not 0 < hw < cs / 2.0:
        raise ValueError("half_width must lie between 0 and half the cell size, got {}".format(hw))

    d = draw.Drawing(grid.width * cs, grid.height * cs, origin='center', displayInline=False)

    # Pad so a neighbor's stroke does not leak into the shared wall
    pad = params['stroke_width'] * 0.5 + 0.1
    poly_cache = build_poly_cache(grid, hw, cs)

    total = grid.width * grid.height
    count = 0
    for x, y, cell in grid.iter_cells():
        xloc, yloc = cell_center(x, y, grid.width, grid.height, cs)
        occlusion_poly = build_occlusion_polygon(grid, poly_cache, x, y, pad=pad)
        draw_cell(d, cell, xloc, yloc, poly_cache.get((x, y)), occlusion_poly, params,
                  highlighted=(highlight == (x, y)))
        count += 1
        if progress_callback:
            progress_callback(count, total)

    logger.debug("Rendered %dx%d board to SVG", grid.width, grid.height)
    return d.as_svg()
