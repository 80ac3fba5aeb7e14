import os

REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", 6379))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD", None)

# "redis" or "memory"
STORE_BACKEND = os.getenv("STORE_BACKEND", "redis")

# 0 disables expiry, room lifetime is then left to whoever runs Redis
ROOM_TTL_SECONDS = int(os.getenv("ROOM_TTL_SECONDS", 24 * 60 * 60))
ROOM_ID_LENGTH = int(os.getenv("ROOM_ID_LENGTH", 10))

# Sync tuning
HEARTBEAT_INTERVAL_MS = int(os.getenv("HEARTBEAT_INTERVAL_MS", 2000))
SYNC_TICK_INTERVAL_MS = int(os.getenv("SYNC_TICK_INTERVAL_MS", 1000))
MAX_DRIFT_SECONDS = float(os.getenv("MAX_DRIFT_SECONDS", 0.8))
BUFFER_STALL_TICKS = int(os.getenv("BUFFER_STALL_TICKS", 5))
BUFFER_STALL_MAX_TICKS = int(os.getenv("BUFFER_STALL_MAX_TICKS", 40))

DEMO_VIDEO_URL = os.getenv("DEMO_VIDEO_URL", "https://www.youtube.com/watch?v=LXb3EKWsInQ")
