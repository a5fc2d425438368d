from __future__ import annotations

from typing import Protocol

from rich.console import ConsoleRenderable


class ConsoleLike(Protocol):
    def print(self, msg: ConsoleRenderable | str | None = None) -> None: ...

    def info(self, msg: str) -> None: ...

    def warn(self, msg: str) -> None: ...

    def error(self, msg: str) -> None: ...

    def ok(self, msg: str) -> None: ...


class NullConsole:
    """Console that discards everything.

    Lets the hubble core run without a terminal attached (tests, library use).
    """

    def print(self, msg: ConsoleRenderable | str | None = None) -> None:
        pass

    def info(self, msg: str) -> None:
        pass

    def warn(self, msg: str) -> None:
        pass

    def error(self, msg: str) -> None:
        pass

    def ok(self, msg: str) -> None:
        pass


def coalesce_console(console: ConsoleLike | None) -> ConsoleLike:
    return console if console is not None else NullConsole()
