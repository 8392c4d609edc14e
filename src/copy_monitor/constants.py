from __future__ import annotations

# Device types
DEVICE_FLASH = "flash"
DEVICE_PHONE = "phone"
DEVICE_SD_CARD = "sd_card"
DEVICE_HDD = "hdd"
DEVICE_SSD = "ssd"
DEVICE_UNKNOWN = "unknown"

DEVICE_TYPES = (DEVICE_FLASH, DEVICE_PHONE, DEVICE_SD_CARD, DEVICE_HDD, DEVICE_SSD, DEVICE_UNKNOWN)

# Copy operation states
STATUS_COPYING = "copying"
STATUS_COMPLETE = "complete"
STATUS_ABORTED = "aborted"

# Pricing content types and methods
CONTENT_MOVIES = "movies"
CONTENT_SERIES = "series"
CONTENT_MIXED = "mixed"
CONTENT_PROGRAMS = "programs"

METHOD_PER_ITEM = "per_item"
METHOD_PER_GB = "per_gb"
METHOD_DOWNLOAD = "download"

# Media files worth tracking
VIDEO_EXTENSIONS = (".mp4", ".mkv", ".avi", ".mov", ".wmv", ".flv", ".webm", ".m4v")

# Pseudo-device namespace for explicitly configured watch paths
PATH_DEVICE_PREFIX = "path:"

# Journald keys
LOG_KEY_EVENT = "COPY_MON_EVENT"
LOG_KEY_DEVICE = "DEVICE"
LOG_KEY_DEVICE_TYPE = "DEVICE_TYPE"
LOG_KEY_MOUNT = "MOUNT"
LOG_KEY_OPERATION = "OPERATION"
LOG_KEY_PATH = "PATH"
LOG_KEY_STATUS = "STATUS"
LOG_KEY_SIZE = "SIZE"
LOG_KEY_CONTENT_TYPE = "CONTENT_TYPE"
LOG_KEY_RESULT = "RESULT"

# Events
EVENT_DEVICE_CONNECTED = "device-connected"
EVENT_DEVICE_DISCONNECTED = "device-disconnected"
EVENT_DEVICE_CHANGED = "device-changed"
EVENT_FOLDER_COPY = "folder-copy-detected"
EVENT_COPY_START = "copy-start"
EVENT_COPY_PROGRESS = "copy-progress"
EVENT_COPY_COMPLETE = "copy-complete"
EVENT_COPY_ABORTED = "copy-aborted"
EVENT_EJECT = "eject"
