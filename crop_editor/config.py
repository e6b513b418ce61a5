"""
Application constants and configuration.

All constants controlling crop-editor geometry, the pixel pipeline and
the default look of the editor live here.  Per-editor settings are
carried by ``models.EditorOptions``; these are the fallbacks it uses.
"""

# =============================================================================
# APP IDENTITY
# =============================================================================
APP_NAME = "crop-editor"

# =============================================================================
# GEOMETRY
# =============================================================================
# Smallest width/height a corner drag may produce (viewport units)
MIN_SELECTION_SIZE = 1.0

# Initial selection size as a fraction of the largest fitting rectangle
DEFAULT_INITIAL_SIZE = 1.0

# =============================================================================
# PIXEL PIPELINE
# =============================================================================
# EXIF "Orientation" tag id
EXIF_ORIENTATION_TAG = 0x0112

# PNG compression level (0-9, 9 = maximum compression)
PNG_COMPRESS_LEVEL = 9

# Number of background worker threads used for decode/crop jobs
PIPELINE_WORKERS = 1

# =============================================================================
# EDITOR LOOK (only read by the Qt adapter)
# =============================================================================
# Total size of a corner dot, including its transparent touch padding
DOT_TOTAL_SIZE = 32.0
DOT_PADDING = 8.0

# RGBA tuples
DEFAULT_BASE_COLOR = (255, 255, 255, 255)
DEFAULT_MASK_COLOR = (0, 0, 0, 100)
DOT_COLOR = (255, 255, 255, 255)

# Keyboard nudge amounts (viewport units)
NUDGE_SMALL = 1
NUDGE_LARGE = 10

# Supported image extensions for the open dialog
IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg", ".bmp", ".tiff", ".tif", ".webp", ".gif", ".psd"}

# Aspect presets offered by the desktop entry point: (label, ratio or None)
ASPECT_PRESETS = [
    ("Free", None),
    ("1:1", 1.0),
    ("4:3", 4 / 3),
    ("3:2", 3 / 2),
    ("16:9", 16 / 9),
    ("3:4", 3 / 4),
    ("9:16", 9 / 16),
]
