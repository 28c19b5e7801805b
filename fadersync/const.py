"""Constants for fadersync."""

import sys

MASTER_SESSION_KEY = "master"
SYSTEM_SESSION_KEY = "system"
PSEUDO_SESSION_KEYS = (MASTER_SESSION_KEY, SYSTEM_SESSION_KEY)

# Reserved native identifier for the system-sounds session
SYSTEM_SESSION_PID = 0

IS_WINDOWS = sys.platform == "win32"
WINDOWS_EXECUTABLE_SUFFIX = ".exe"

# Shell-form command recipes, selected by IS_WINDOWS only
WINDOWS_SHELL = ("cmd.exe", "/C")
POSIX_SHELL = ("/bin/bash", "-c")

# Seconds to serve the kept sessions after a failed rescan before scanning again
SCAN_RETRY_INTERVAL = 1.0
