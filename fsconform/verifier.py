"""
Distributed round-trip verification.

Writes the integers 1..N through the engine into the session's test
directory, checks the output layout, reads the data back (optionally
through another binding) and compares counts.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from fsconform.errors import CountMismatch, UnexpectedLayout
from fsconform.fs import SUCCESS_MARKER, FileStatus, Filesystem, qualify
from fsconform.fs.base import split_uri
from fsconform.timing import TimingLog, duration

logger = logging.getLogger(__name__)


@dataclass
class VerificationResult:
    record_count: int
    read_count: int
    data_files: List[FileStatus]
    listing: List[FileStatus]
    timings: TimingLog = field(default_factory=TimingLog)

    @property
    def ok(self) -> bool:
        return self.read_count == self.record_count

    @property
    def data_file(self) -> FileStatus:
        return self.data_files[0]


def check_layout(children: List[FileStatus], expected_parts: Optional[int] = 1,
                 require_marker: bool = True) -> List[FileStatus]:
    """
    Validate the listing of a partitioned write and return its data files.

    Every entry must be a non-empty file or the completion marker; with
    `expected_parts` set, exactly that many data files must be present.
    """
    if not children:
        raise UnexpectedLayout("No children under output directory")
    for child in children:
        if child.is_directory:
            raise UnexpectedLayout(f"Unexpected directory in output: {child}", children)
        if child.length == 0 and child.name != SUCCESS_MARKER:
            raise UnexpectedLayout(f"Empty output {child}", children)
    if require_marker and not any(c.name == SUCCESS_MARKER for c in children):
        raise UnexpectedLayout(f"No {SUCCESS_MARKER} marker in output", children)
    parts = [c for c in children if c.name != SUCCESS_MARKER]
    if expected_parts is not None and len(parts) != expected_parts:
        raise UnexpectedLayout(
            f"Expected {expected_parts} data file(s), found {len(parts)}", children
        )
    return parts


def rebase(path: str, binding: Filesystem) -> str:
    """The same path, addressed through `binding`'s filesystem URI"""
    return qualify(split_uri(path)[2], binding.uri)


class RoundTripVerifier:
    def __init__(self, engine, session, expected_parts: Optional[int] = 1):
        self.engine = engine
        self.session = session
        self.expected_parts = expected_parts

    def write_and_read_back(self, record_count: int,
                            write_binding: Optional[Filesystem] = None,
                            read_binding: Optional[Filesystem] = None,
                            name: str = "example1") -> VerificationResult:
        """
        Round trip `record_count` records and return the verified result.

        Raises UnexpectedLayout if the written output breaks the write
        contract and CountMismatch if fewer or more records come back.
        Engine failures surface as ExecutionError.
        """
        if record_count <= 0:
            raise ValueError(f"record_count must be positive, got {record_count}")
        write_binding = write_binding or self.session.binding
        read_binding = read_binding or write_binding
        output = rebase(self.session.path(name), write_binding)
        timings = TimingLog()

        with duration(f"write[{record_count}]", timings):
            self.engine.submit_partitioned_write(
                range(1, record_count + 1), output, write_binding.override_config()
            )

        st = write_binding.stat(output)
        if not st.is_directory:
            raise UnexpectedLayout(f"Not a dir: {st}")
        children = write_binding.list_status(output)
        for child in children:
            logger.info("%s", child)
        parts = check_layout(children, self.expected_parts)

        read_count = 0
        with duration(f"read[{record_count}]", timings):
            for part in parts:
                lines = self.engine.submit_read(
                    rebase(part.path, read_binding), read_binding.override_config()
                )
                read_count += len(lines)

        if read_count != record_count:
            raise CountMismatch(record_count, read_count, source=output)
        logger.info("Round trip of %d records through %s verified",
                    record_count, output)
        return VerificationResult(record_count, read_count, parts, children, timings)
