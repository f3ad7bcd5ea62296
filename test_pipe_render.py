"""
Tests for the text and SVG board renderers.
"""

import random

import pytest
from shapely.geometry import Polygon

from pipe_core import Cell, CellShape, Direction, Grid, random_valid
from pipe_render import (
    DEFAULT_RENDER_PARAMS,
    TEXT_GLYPHS,
    build_occlusion_polygon,
    build_poly_cache,
    cell_center,
    cell_glyph,
    clip_line_outside_polygon,
    get_cell_polygon,
    render_svg,
    render_text,
)


N, E, S, W = Direction.NORTH, Direction.EAST, Direction.SOUTH, Direction.WEST


class TestTextRendering:
    def test_glyph_table_covers_every_configuration(self) -> None:
        assert len(TEXT_GLYPHS) == 16
        assert cell_glyph(Cell(CellShape.SINGLE, N)) == '╵'
        assert cell_glyph(Cell(CellShape.ANGLE, N)) == '└'
        assert cell_glyph(Cell(CellShape.LINE, E)) == '─'
        assert cell_glyph(Cell(CellShape.TRIPLE, W)) == '├'

    def test_horizontal_pair(self) -> None:
        grid = random_valid(2, 1, rng=random.Random(0))
        assert render_text(grid) == '╶╴'

    def test_north_row_printed_first(self) -> None:
        grid = random_valid(1, 2, rng=random.Random(0))
        assert render_text(grid) == '╷\n╵'

    def test_dimensions(self) -> None:
        grid = random_valid(7, 4, rng=random.Random(8))
        lines = render_text(grid).split('\n')
        assert len(lines) == 4
        assert all(len(line) == 7 for line in lines)


class TestGeometry:
    def test_cell_center_flips_y(self) -> None:
        assert cell_center(0, 0, 3, 3) == (-100, 100)
        assert cell_center(2, 2, 3, 3) == (100, -100)
        assert cell_center(0, 0, 2, 1) == (-50, 0)

    @pytest.mark.parametrize("shape,area", [
        (CellShape.SINGLE, 4800),
        (CellShape.ANGLE, 6000),
        (CellShape.LINE, 6000),
        (CellShape.TRIPLE, 7200),
    ])
    def test_polygon_area(self, shape, area) -> None:
        for orientation in Direction:
            poly = get_cell_polygon(Cell(shape, orientation), 0, 0)
            assert poly.area == pytest.approx(area)

    def test_north_arm_points_up(self) -> None:
        poly = get_cell_polygon(Cell(CellShape.SINGLE, N), 0, 0)
        assert poly.bounds == pytest.approx((-30, -50, 30, 30))
        poly = get_cell_polygon(Cell(CellShape.SINGLE, E), 0, 0)
        assert poly.bounds == pytest.approx((-30, -30, 50, 30))

    def test_clip_without_occlusion(self) -> None:
        assert clip_line_outside_polygon(0, 0, 10, 0, None) == [(0, 0, 10, 0)]

    def test_clip_removes_covered_middle(self) -> None:
        square = Polygon([(4, -1), (6, -1), (6, 1), (4, 1)])
        segments = clip_line_outside_polygon(0, 0, 10, 0, square)
        assert len(segments) == 2
        assert sum(abs(x2 - x1) for x1, _, x2, _ in segments) == pytest.approx(8)

    def test_occlusion_uses_neighbors_only(self) -> None:
        grid = Grid(3, 1)
        poly_cache = build_poly_cache(grid)
        assert build_occlusion_polygon(grid, poly_cache, 0, 0) is not None
        occlusion = build_occlusion_polygon(grid, poly_cache, 0, 0)
        assert not occlusion.intersects(poly_cache[(2, 0)])
        assert build_occlusion_polygon(Grid(1, 1), build_poly_cache(Grid(1, 1)), 0, 0) is None


class TestSvgRendering:
    def test_document_size(self) -> None:
        grid = random_valid(3, 2, rng=random.Random(1))
        svg = render_svg(grid)
        assert svg.startswith('<?xml') or '<svg' in svg
        assert 'width="300"' in svg
        assert 'height="200"' in svg

    def test_powered_cells_filled(self) -> None:
        grid = random_valid(4, 4, rng=random.Random(2))
        assert DEFAULT_RENDER_PARAMS['powered_color'] not in render_svg(grid)
        grid.power_from(2, 2)
        assert DEFAULT_RENDER_PARAMS['powered_color'] in render_svg(grid)

    def test_highlight_and_overrides(self) -> None:
        grid = random_valid(3, 3, rng=random.Random(3))
        svg = render_svg(grid, params={'highlight_color': '#123456'}, highlight=(1, 1))
        assert '#123456' in svg

    def test_progress_callback(self) -> None:
        grid = random_valid(3, 3, rng=random.Random(4))
        calls = []
        render_svg(grid, progress_callback=lambda current, total: calls.append((current, total)))
        assert calls[0] == (1, 9)
        assert calls[-1] == (9, 9)

    def test_rejects_oversized_pipes(self) -> None:
        with pytest.raises(ValueError, match="half_width"):
            render_svg(Grid(2, 1), params={'half_width': 60})
