from __future__ import annotations

from typing import Any, Iterable, Iterator, List

from cmdrefinery.lib.batch.model import (
    CommandRecord,
    DeobfuscationError,
    Frame,
    FrameVariables,
)

DEFAULT_VARIABLES = {
    'appdata' : R'C:\Users\whoami\AppData\Roaming',
    'comspec' : R'C:\Windows\System32\cmd.exe',
}


class ContextStack(List[Frame]):
    """
    The result of an interpretation: one frame for each scope that was entered, with the most
    recently entered scope first. Branches that could not be interpreted are listed in `errors`.
    """

    errors: list[DeobfuscationError]

    def __init__(self, frames: Iterable[Frame] = ()):
        super().__init__(frames)
        self.errors = []
        self.sequence = 0

    @property
    def root(self) -> Frame:
        return self[-1]

    def push(self, parent: Frame | None, variables: FrameVariables, **options) -> Frame:
        depth = 0 if parent is None else parent.depth + 1
        frame = Frame(vars=variables, depth=depth, **options)
        self.insert(0, frame)
        return frame

    def record(self, frame: Frame, record: CommandRecord):
        record.sequence = self.sequence
        record.depth = frame.depth
        self.sequence += 1
        frame.commands.append(record)

    def trace(self) -> list[CommandRecord]:
        """
        All recorded commands in the order in which they were executed.
        """
        records = [record for frame in self for record in frame.commands]
        records.sort(key=lambda record: record.sequence)
        return records

    def commands(self, skip: Iterable[str] = ()) -> Iterator[str]:
        """
        The cleaned text of every recorded command in the order of execution. Commands whose
        identified name is contained in `skip` are left out.
        """
        skip = {name.lower() for name in skip}
        for record in self.trace():
            if record.command.name not in skip:
                yield record.text

    def asdict(self) -> dict[str, Any]:
        return {
            'frames': [frame.asdict() for frame in self],
            'errors': [str(error) for error in self.errors],
        }
