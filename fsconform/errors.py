"""
Exception taxonomy for the harness.

NotFound is not modelled here: a missing path is reported with the
builtin FileNotFoundError by every filesystem binding.
"""


class HarnessError(Exception):
    """Base class for every failure raised by the harness itself"""


class HarnessDisabled(HarnessError):
    """Raised when a resource is requested while the gate is closed"""


class StoreConnectionError(HarnessError, ConnectionError):
    """Authentication or network failure while binding to a store"""


class BindingClosedError(HarnessError, ValueError):
    """Operation attempted on a filesystem binding after release"""


class ExecutionError(HarnessError):
    """Failure inside the compute engine while running a job"""


class UnexpectedLayout(HarnessError):
    """Output of a partitioned write violates the write contract"""

    def __init__(self, message, listing=()):
        self.listing = list(listing)
        if self.listing:
            entries = "\n".join(f"  {status}" for status in self.listing)
            message = f"{message}\n{entries}"
        super().__init__(message)


class CountMismatch(HarnessError):
    """Number of records read back differs from the number written"""

    def __init__(self, expected, actual, source=None):
        self.expected = expected
        self.actual = actual
        self.source = source
        where = f" from {source}" if source else ""
        super().__init__(
            f"Expected {expected} records{where}, read back {actual}"
        )


class CloseCostRegression(HarnessError):
    """close() time grows with the stream position reached before close"""
