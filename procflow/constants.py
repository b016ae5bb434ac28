"""Default values shared across procflow modules."""

DEFAULT_DUE_DATE_HOURS = 24

# Auto-layout canvas geometry
DEFAULT_BASE_X = 100.0
DEFAULT_BASE_Y = 300.0
DEFAULT_GAP_X = 320.0
DEFAULT_GAP_Y = 160.0

# Gaps longer than a year are treated as data-quality outliers
OUTLIER_HOURS = 24 * 365
NEAR_DUE_HOURS = 4.0

# Coordinates assumed for imported nodes without diagram bounds
DEFAULT_IMPORT_X = 100
DEFAULT_IMPORT_Y = 100
