"""Todolist service entry point."""

import logging
import sys

import uvicorn

from todolist.factory import create_app, get_config

# Create app instance for uvicorn
app = create_app()


def main() -> int:
    """Serve the API until interrupted."""
    config = get_config()
    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s %(levelname)-8s [%(name)s:%(lineno)d] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logging.info(f"[Main] Tasks in {config.local_path}, synced folder: {config.cloud_dir or 'none'}")

    uvicorn.run(app, host=config.host, port=config.port, log_level=config.log_level.lower())
    return 0


if __name__ == "__main__":
    sys.exit(main())
