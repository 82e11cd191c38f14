"""
Output filenames under <data_dir>/outputs/<project_id>/.
Single source of truth for consistent naming.
"""

ORTHOPHOTO_TIF = "orthophoto.tif"
COG_SUFFIX = ".cog.tif"
TILES_DIR = "tiles"
TILE_EXTENSION = ".png"
