"""
fsconform - conformance and latency checks for object-store filesystems

Validates that a storage backend honours the contract a partitioned
data-processing engine relies on (directory create/delete, stat
visibility, write/read round trips) and records the cost of seek, read
and close so regressions show up in the logs.
"""

__version__ = "0.1.0"
