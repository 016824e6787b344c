# constants.py
APP_NAME = "V-Tech Workshop Management"

DATA_DIR = "data"
DB_FILE_NAME = "workshop.db"

TABLE_SCHEMA_VERSION = "schema_version"
SCHEMA_VERSION = "4"

# ---- Job lifecycle (order matters: forward moves only) ----
STATUS_PENDING = "Pending"
STATUS_IN_PROGRESS = "In-Progress"
STATUS_REPAIRED = "Repaired"
STATUS_DELIVERED = "Delivered"
STATUS_CANCELLED = "Cancelled"

JOB_STATUS_FLOW: tuple[str, ...] = (
    STATUS_PENDING,
    STATUS_IN_PROGRESS,
    STATUS_REPAIRED,
    STATUS_DELIVERED,
)
JOB_STATUSES: tuple[str, ...] = JOB_STATUS_FLOW + (STATUS_CANCELLED,)
TERMINAL_STATUSES: frozenset[str] = frozenset({STATUS_DELIVERED, STATUS_CANCELLED})

# ---- Roles ----
ROLE_ADMIN = "admin"
ROLE_STAFF = "staff"
ROLES: tuple[str, ...] = (ROLE_ADMIN, ROLE_STAFF)
DEFAULT_ROLE = ROLE_STAFF

# ---- Money ----
PAYMENT_MODES: tuple[str, ...] = (
    "Cash",
    "PhonePe/GPay",
    "Bank Transfer",
    "Credit Card",
    "Cheque",
)
DEFAULT_PARTS_COST_RATIO = 0.90

# ---- Attendance -> salary multiplier ----
ATTENDANCE_MULTIPLIER: dict[str, float] = {
    "full": 1.0,
    "half": 0.5,
    "absent": 0.0,
    "leave": 0.0,
}

# ---- Inventory ----
DEFAULT_MIN_STOCK = 5
PART_CATEGORIES: tuple[str, ...] = (
    "Stage Light",
    "Amplifier",
    "Speaker",
    "Mixer",
    "Power Supply",
    "General",
)

# ---- Client status messages ----
SHOP_NAME = "V-Technologies"
SHOP_SIGNATURE = "V-Technologies, Jabalpur"
MESSAGE_COUNTRY_CODE = "91"
