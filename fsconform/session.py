"""
Filesystem session lifecycle.

A session is one bound filesystem handle plus a fresh test directory under
the target URI. The directory name is unique per run, which is the only
thing keeping concurrent harness runs against the same store apart.
release() removes the directory, checks it is gone and closes the
binding; it is idempotent and always runs via session_scope().
"""

import logging
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Iterator, Optional

from fsconform import config as cfg
from fsconform import gate
from fsconform.errors import HarnessDisabled, HarnessError
from fsconform.fs import Filesystem, join, resolve

logger = logging.getLogger(__name__)


def unique_dir_name(prefix: str = "fsconform") -> str:
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    return f"{prefix}-{stamp}-{uuid.uuid4().hex[:8]}"


@dataclass
class Session:
    binding: Filesystem
    test_dir: str
    config: cfg.RunConfiguration
    released: bool = False

    def path(self, *parts: str) -> str:
        """URI of `parts` under the session's test directory"""
        return join(self.test_dir, *parts)


class SessionManager:
    """Hands out sessions for a configuration and cleans them up"""

    def __init__(self, resolver: Callable[..., Filesystem] = resolve,
                 prefix: str = "fsconform"):
        self.resolver = resolver
        self.prefix = prefix

    def acquire(self, config: cfg.RunConfiguration) -> Session:
        """
        Bind to the configured target and create the test directory.

        Refuses to touch the store while the gate is closed. Connection
        failures from the binding propagate as StoreConnectionError.
        """
        if not gate.is_enabled(config):
            raise HarnessDisabled(gate.disabled_reason(config))

        target = config.require(cfg.TEST_URI)
        logger.info("Executing filesystem tests against %s", target)
        binding = self.resolver(target, config.connection_options())
        try:
            test_dir = join(binding.qualify(target), unique_dir_name(self.prefix))
            if binding.exists(test_dir):
                raise HarnessError(f"Test directory already exists: {test_dir}")
            binding.mkdirs(test_dir)
        except BaseException:
            binding.close()
            raise
        logger.debug("Created test directory %s", test_dir)
        return Session(binding, test_dir, config)

    def release(self, session: Session) -> None:
        """Delete the test directory if present, verify it is gone, close"""
        if session.released:
            return
        binding = session.binding
        try:
            if binding.closed:
                # closed by the scenario; clean up through a new binding
                logger.debug("Binding for %s already closed, rebinding", session.test_dir)
                cleaner = self.resolver(session.test_dir,
                                        session.config.connection_options())
                try:
                    self._remove(cleaner, session.test_dir)
                finally:
                    cleaner.close()
            else:
                self._remove(binding, session.test_dir)
        finally:
            binding.close()
            session.released = True
        logger.debug("Released %s", session.test_dir)

    @staticmethod
    def _remove(binding: Filesystem, test_dir: str) -> None:
        binding.delete(test_dir, recursive=True)
        try:
            st = binding.stat(test_dir)
        except FileNotFoundError:
            return
        raise HarnessError(f"Test directory still present after release: {st}")


@contextmanager
def session_scope(config: cfg.RunConfiguration,
                  manager: Optional[SessionManager] = None) -> Iterator[Session]:
    """Acquire a session and release it on every exit path"""
    manager = manager or SessionManager()
    session = manager.acquire(config)
    try:
        yield session
    finally:
        manager.release(session)
