"""
Centralized constants for ergo.

Placeholder tokens and execution defaults live here so the loader,
dispatcher and runners agree on them.
"""

# Replaced by each input item in map commands and their catch commands
ITEM_PLACEHOLDER = "{item}"

# Replaced by the joined successful items in a reduce command
RESULTS_PLACEHOLDER = "{results}"

# Joins successful map items before reduce
RESULTS_SEPARATOR = ","

# Default shells per platform family
POSIX_SHELL = "bash"
WINDOWS_SHELL = "cmd"

# Python operator: commands with this suffix run as a script file
PYTHON_SCRIPT_SUFFIX = ".py"

# Fan-out runs one item at a time unless configured otherwise
DEFAULT_MAX_WORKERS = 1

# Config file names searched when no --config is given
CONFIG_FILE_NAMES = ("config.yaml", "ergo.yaml")
