"""Application-wide constants.

Single configuration layer for history limits, flush delays, persistence
keys and export tiers.
"""

APP_NAME = "Environment Map Editor"
APP_VERSION = "0.1.0"
APP_ORGANIZATION = "envmap"

# Database
DB_FILENAME = "envmap_editor.db"
KV_TABLE = "kv"
SCENE_HISTORY_KEY = "scene-history-v1"

# Scene snapshots
SNAPSHOT_VERSION = 1
HISTORY_LIMIT = 100

# Debounce delays [ms]
HISTORY_COMMIT_DELAY_MS = 350
URL_FLUSH_DELAY_MS = 1200
POINTER_UP_FLUSH_DELAY_MS = 60

# Shareable URL query keys
URL_KEY_MODE = "m"
URL_KEY_LIGHTS = "l"
URL_KEY_CAMERAS = "c"

# Light defaults
DEFAULT_TEXTURE_MAP = "textures/softbox-octagon.exr"

# Export tiers: name -> (width, height) of the equirectangular panorama
RESOLUTION_SIZES = {
    "1k": (1024, 512),
    "2k": (2048, 1024),
    "4k": (4096, 2048),
}
MATCAP_SUPERSAMPLE = {"1k": 2.0, "2k": 1.5, "4k": 1.0}

# Matcap
MATCAP_PREVIEW_SIZE = 256
MATCAP_BACKGROUND_RGBA8 = (4, 7, 10, 255)
MATCAP_BACKGROUND_FLOAT = (0.0, 0.0, 0.0)

# Export file naming
ENVMAP_PREFIX = "envmap"
MATCAP_PREFIX = "matcap"
