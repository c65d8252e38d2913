"""
This module contains the configuration settings for memcached-service.
It defines default paths, service defaults, and the timing constants used by
the daemon controller, the health probe and the start verification loop.
"""

import os
import pathlib
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv(override=True)

#* --- Core Paths ---
DEFAULT_BINARY = pathlib.Path(os.getenv("MEMCACHED_BINARY", "/usr/bin/memcached"))
# Directory used to derive '<port>.pid' when a service file has no 'pidfile'.
# Only the console reads this; it is passed to ServiceConfig explicitly.
PID_DIR = pathlib.Path(os.environ["MEMCACHED_PID_DIR"]) if os.getenv("MEMCACHED_PID_DIR") else None
CONSOLE_LOG_PATH = pathlib.Path(os.environ["MEMCACHED_SERVICE_LOG"]) if os.getenv("MEMCACHED_SERVICE_LOG") else None

#* --- Service Defaults ---
DEFAULT_MAXSIZE = 640  # MB
DEFAULT_USER = "root"
BINARY_NAME = "memcached"

#* --- Start Verification ---
START_STEP = 0.1   # seconds, multiplied by the trial number
START_TRIALS = 10

#* --- Daemon Control ---
LAUNCH_GRACE_PERIOD = float(os.getenv("MEMCACHED_LAUNCH_GRACE_PERIOD", "0.2"))  # seconds the child must survive
GRACEFUL_SHUTDOWN_TIMEOUT = 10  # seconds before force-killing
FORCEFUL_KILL_TIMEOUT = 5
PID_IDENTITY_TOLERANCE = 0.01  # seconds of create_time drift accepted

#* --- Health Probe ---
PROBE_HOST = os.getenv("MEMCACHED_PROBE_HOST", "127.0.0.1")
PROBE_TIMEOUT = 1.0
PROBE_KEY = "memcached-service:testkey"
PROBE_VALUE = "1"

#* --- Console ---
PROCESS_TITLE = "memcached-service"
VERBOSE_LOGGING = False
