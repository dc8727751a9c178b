"""
ergo - Declarative task runner

Runs the tasks listed in a YAML workflow file with:
- An explicit lifecycle state machine per task
- Single-level fallback (catch) when a command fails
- Fan-out/fan-in (map/reduce) over a list of inputs
- Fail-fast halting on the first unrecovered failure
"""

__version__ = "0.1.0"
__package_name__ = "ergo"
