# ╔════════════════════════════════════════════════════════════════════════════╗
# ║                      CALENDAR HERALD LOGGING SETUP                         ║
# ║ Configures asynchronous, rotating file logging and colored console output. ║
# ║ Includes fallback mechanisms for log directory permissions.                ║
# ╚════════════════════════════════════════════════════════════════════════════╝

# Standard library imports
import logging
import sys
import platform
import atexit
import os
import tempfile
import traceback
from logging.handlers import QueueHandler, QueueListener, MemoryHandler, TimedRotatingFileHandler
from queue import Queue

# Third-party imports
from colorlog import ColoredFormatter

# Local application imports
from utils.environ import DEBUG, LOG_DIR

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ LOGGING CONFIGURATION AND CONSTANTS                                        ║
# ╚════════════════════════════════════════════════════════════════════════════╝

LOGGER_NAME = "calendarherald"
LOG_FILE_NAME = "herald.log"

# Fallback directories if LOG_DIR is not writable
FALLBACK_DIRS = [
    os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "logs"),
    tempfile.gettempdir(),
]

# Actual log file path and directory in use
active_log_file = None
log_dir_used = None

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ LOG DIRECTORY SETUP                                                        ║
# ╚════════════════════════════════════════════════════════════════════════════╝

# --- setup_log_directory ---
# Attempts to create and verify write access to the log directory.
# Tries the preferred LOG_DIR first, then iterates through FALLBACK_DIRS.
# Sets `active_log_file` and `log_dir_used` globals upon success.
# Returns: True if a writable log directory was found, False otherwise.
def setup_log_directory() -> bool:
    global active_log_file, log_dir_used
    candidates = [LOG_DIR] + FALLBACK_DIRS if LOG_DIR else list(FALLBACK_DIRS)
    for directory in candidates:
        try:
            os.makedirs(directory, exist_ok=True)
            if os.access(directory, os.W_OK):
                active_log_file = os.path.join(directory, LOG_FILE_NAME)
                log_dir_used = directory
                if directory != LOG_DIR:
                    print(f"Using fallback log directory: {directory}")
                return True
        except OSError as e:
            # Logger is not ready yet
            print(f"Notice: Could not use log directory {directory}: {e}")

    print("CRITICAL WARNING: Could not find any writable log directory. File logging disabled.")
    return False

has_valid_log_dir = setup_log_directory()

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ LOGGER INITIALIZATION AND CONFIGURATION                                    ║
# ╚════════════════════════════════════════════════════════════════════════════╝

logger = logging.getLogger(LOGGER_NAME)
logger.setLevel(logging.DEBUG if DEBUG else logging.INFO)

# --- shutdown_logging ---
# Stops the queue listener and flushes buffered records to disk.
# Safe to call more than once (main() calls it, atexit calls it again).
def shutdown_logging() -> None:
    listener = getattr(logger, "_listener", None)
    if listener is None:
        return
    logger._listener = None
    try:
        listener.stop()
        for handler in listener.handlers:
            handler.flush()
            if isinstance(handler, MemoryHandler) and handler.target is not None:
                handler.target.close()
            handler.close()
    except Exception as e:
        print(f"Error during logging cleanup: {e}")

# --- Prevent Re-initialization ---
if not getattr(logger, "_initialized", False):
    log_queue = Queue(-1)
    queue_handler = QueueHandler(log_queue)
    logger.addHandler(queue_handler)
    handlers = []
    try:
        file_formatter = logging.Formatter(
            "[%(asctime)s] %(levelname)s in %(name)s [%(filename)s:%(lineno)d]: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )
        console_formatter = ColoredFormatter(
            "%(log_color)s[%(asctime)s] %(levelname)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
            log_colors={
                "DEBUG": "cyan",
                "INFO": "green",
                "WARNING": "yellow",
                "ERROR": "red",
                "CRITICAL": "bold_red",
            }
        )

        # --- File Handler (daily rotation, 7 backups, buffered) ---
        if has_valid_log_dir and active_log_file:
            try:
                file_handler = TimedRotatingFileHandler(
                    active_log_file,
                    when="midnight",
                    interval=1,
                    backupCount=7,
                    encoding="utf-8",
                )
                file_handler.setFormatter(file_formatter)
                file_handler.setLevel(logging.DEBUG if DEBUG else logging.INFO)

                # Flushes on ERROR or when 1000 records are buffered
                memory_handler = MemoryHandler(
                    capacity=1000,
                    flushLevel=logging.ERROR,
                    target=file_handler
                )
                memory_handler.setLevel(logging.DEBUG)
                handlers.append(memory_handler)
            except OSError as e:
                print(f"ERROR: Failed to set up file logging handler: {e}")
                has_valid_log_dir = False

        # --- Console Handler ---
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(console_formatter)
        console_handler.setLevel(logging.DEBUG if DEBUG else logging.INFO)
        handlers.append(console_handler)

        listener = QueueListener(log_queue, *handlers, respect_handler_level=True)
        listener.start()
        logger._listener = listener
        logger._initialized = True
        atexit.register(shutdown_logging)

        logger.debug(f"--- Logging Initialized ({platform.system()} {platform.release()}) ---")
        if has_valid_log_dir and log_dir_used:
            logger.debug(f"Log Directory: {log_dir_used}")
        else:
            logger.warning("File logging is disabled.")

    except Exception as e:
        # --- Critical Initialization Failure ---
        print(f"CRITICAL ERROR during logger initialization: {e}")
        traceback.print_exc()
        logger.handlers.clear()
        basic_handler = logging.StreamHandler(sys.stdout)
        basic_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
        logger.addHandler(basic_handler)
        logger.setLevel(logging.INFO)
        logger._initialized = True
        logger.critical("Logging system failed to initialize properly. Using basic console logging.")

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ UTILITY FUNCTIONS                                                          ║
# ╚════════════════════════════════════════════════════════════════════════════╝

# --- get_log_file_location ---
# Returns the path to the currently active log file.
def get_log_file_location() -> str:
    if has_valid_log_dir and active_log_file:
        return active_log_file
    return "Console only (File logging disabled)"
