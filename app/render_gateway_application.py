import argparse
import logging
import os
from datetime import datetime
from pathlib import Path

import uvicorn

from app import render_controller

DEFAULT_PORT = 4300


def setup_logging() -> Path:
    """
    Configure logging for the render gateway with both file and console output.

    The function:
    - Sets log level from LOG_LEVEL environment variable (defaults to INFO)
    - Creates timestamped log files in the LOG_DIR directory (defaults to /opt/render-gateway/logs)
    - Configures both file and console logging handlers
    - Uses format: timestamp - logger name - log level - message

    The log files are not rotated and a new file is created on each service start.

    Returns:
        Path: The path to the created log file
    """
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        handler.close()
        root_logger.removeHandler(handler)

    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    log_dir = Path(os.getenv("LOG_DIR", "/opt/render-gateway/logs"))
    log_dir.mkdir(parents=True, exist_ok=True)

    current_time = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
    log_file = log_dir / f"render-gateway_{current_time}.log"

    formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    file_handler = logging.FileHandler(log_file, encoding="utf-8", delay=False)
    file_handler.setFormatter(formatter)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)

    configured_level = getattr(logging, log_level, logging.INFO)  # Default to INFO if invalid
    root_logger.setLevel(configured_level)
    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)

    # Third-party libraries with their own loggers follow LOG_LEVEL too
    for logger_name in ["playwright", "pypdf", "uvicorn"]:
        logging.getLogger(logger_name).setLevel(configured_level)

    root_logger.info(f"Logging initialized with level: {log_level}")
    root_logger.info(f"Log file: {log_file}")

    for handler in root_logger.handlers:
        handler.flush()

    return log_file


def get_port(cli_port: int | None) -> int:
    """Port from the command line, else the PORT environment variable, else 4300."""
    if cli_port is not None:
        return cli_port
    env_port = os.getenv("PORT")
    if env_port:
        try:
            return int(env_port)
        except ValueError:
            logging.warning("Invalid PORT value '%s', using default: %d", env_port, DEFAULT_PORT)
    return DEFAULT_PORT


def start_server(port: int) -> None:
    uvicorn.run(app=render_controller.app, host="", port=port)


def main() -> None:
    """
    Main entry point for the render gateway.

    Parses command line arguments, initializes logging, and starts the server.
    Interrupting the process (Ctrl+C / SIGINT) stops uvicorn, which closes the
    browser through the application lifespan.
    """
    parser = argparse.ArgumentParser(description="Render gateway")
    parser.add_argument("--port", default=None, type=int, required=False, help=f"Service port (defaults to $PORT or {DEFAULT_PORT})")
    args = parser.parse_args()

    setup_logging()
    port = get_port(args.port)
    logging.info("Render gateway listening port: " + str(port))

    start_server(port)


if __name__ == "__main__":
    main()
