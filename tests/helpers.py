from datetime import datetime, timezone

# 13:00 in Lagos
FIXED_NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)

DEVICE = "device-1"
