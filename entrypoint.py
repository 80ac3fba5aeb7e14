import os

import uvicorn

# Importing the app configures logging from LOG_LEVEL/LOG_FILE
from app import app
from logging_config import get_logger

logger = get_logger(__name__)


def main():
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", 8000))
    reload = os.getenv("RELOAD", "0") == "1"
    logger.info(f"Starting SyncStream server on {host}:{port} (reload={reload})")
    # uvicorn can only reload an app it imports itself
    uvicorn.run("app:app" if reload else app, host=host, port=port, reload=reload, log_config=None)


if __name__ == "__main__":
    main()
