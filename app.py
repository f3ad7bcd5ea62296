import logging
import random
import re

import streamlit as st
import streamlit.components.v1 as components

import pipe_core
import pipe_render

logging.basicConfig(level=logging.INFO, format='%(levelname)s: %(message)s')

st.set_page_config(page_title="Pipe Puzzle", layout="wide")
st.title("Pipe Puzzle")

with st.sidebar:
    st.header("Board Settings")
    grid_width = st.slider("Grid Width", 2, 40, 8)
    grid_height = st.slider("Grid Height", 2, 40, 8)
    seed = st.number_input("Seed", min_value=0, value=0, step=1,
                           help="0 = new random board every time")

    st.header("View Settings")
    zoom_level = st.slider("Zoom", 25, 200, 100, 5, help="Zoom level (100% = fit to window)")
    half_width = st.slider("Pipe Half-Width", 5, 45, 30, 1)
    stroke_width = st.slider("Stroke Width", 0.2, 4.0, 1.0, 0.1)

    if st.button("New Puzzle", type="primary"):
        st.session_state.pop('grid', None)
        st.session_state.pop('grid_dims', None)

# Generate puzzle if needed
current_dims = (grid_width, grid_height, seed)

if 'grid' not in st.session_state or st.session_state.get('grid_dims') != current_dims:
    rng = random.Random(seed) if seed else random.Random()
    try:
        grid, solution = pipe_core.prepare_puzzle(grid_width, grid_height, rng=rng)
    except pipe_core.GenerationFailed as e:
        st.error(str(e))
        st.stop()
    st.session_state.grid = grid
    st.session_state.solution = solution
    st.session_state.grid_dims = current_dims

grid = st.session_state.grid
source = pipe_core.seed_position(grid.width, grid.height)

st.header("Controls")
col_x, col_y, col_rotate, col_lock, col_reveal = st.columns(5)
with col_x:
    sel_x = st.number_input("x", min_value=0, max_value=grid.width - 1, value=source[0], step=1)
with col_y:
    sel_y = st.number_input("y (0 = bottom row)", min_value=0, max_value=grid.height - 1,
                            value=source[1], step=1)
with col_rotate:
    if st.button("Rotate"):
        try:
            grid.rotate(sel_x, sel_y)
        except pipe_core.CellIsLocked:
            st.warning("Cell ({}, {}) is locked. Unlock it before rotating.".format(sel_x, sel_y))
with col_lock:
    if st.button("Toggle Lock"):
        grid.toggle_locked(sel_x, sel_y)
with col_reveal:
    if st.button("Show Solution"):
        for (x, y), orientation in st.session_state.solution.items():
            grid.set_locked(x, y, False)
            grid.set_orientation(x, y, orientation)

powered = grid.power_from(*source)
if grid.is_solved():
    st.success("Solved! Every pipe is connected.")
else:
    st.caption("{} / {} cells powered".format(len(powered), grid.width * grid.height))

svg_string = pipe_render.render_svg(
    grid,
    params={'half_width': half_width, 'stroke_width': stroke_width},
    highlight=(sel_x, sel_y),
)
# Make SVG responsive for display
display_svg = re.sub(r'width="\d+"', 'width="100%"', svg_string, count=1)
display_svg = re.sub(r'height="\d+"', 'height="100%"', display_svg, count=1)

svg_size = zoom_level

html_content = f'''
<div style="background:#f0f0f0; height:100%; display:flex; align-items:center;
            justify-content:center; overflow:auto; padding:20px; box-sizing:border-box;">
    <div style="background:white; padding:10px; box-shadow: 0 2px 8px rgba(0,0,0,0.1);">
        <div style="width:{svg_size}vmin; height:{svg_size}vmin;">
            {display_svg}
        </div>
    </div>
</div>
'''
components.html(html_content, height=700, scrolling=True)

with st.expander("Text View"):
    st.code(pipe_render.render_text(grid), language=None)

st.download_button(
    "Download SVG",
    svg_string,
    file_name="pipe-puzzle.svg",
    mime="image/svg+xml"
)
