from typing import Iterator, List, Tuple

from .logger import get_logger

logger = get_logger()


class ResolutionTrace:
    """Append-only, ordered log of what the engine tried and what came back.

    Not shared between threads: each concurrent probe records into its own
    trace, merged afterwards in a fixed order.
    """

    def __init__(self, prefix: str = ""):
        self.prefix = prefix
        self._lines: List[str] = []

    def record(self, message: str) -> None:
        line = f"{self.prefix}{message}"
        self._lines.append(line)
        logger.debug(line)

    def extend(self, other: "ResolutionTrace") -> None:
        # already logged when first recorded
        self._lines.extend(other.lines)

    @property
    def lines(self) -> Tuple[str, ...]:
        return tuple(self._lines)

    def __len__(self) -> int:
        return len(self._lines)

    def __iter__(self) -> Iterator[str]:
        return iter(self.lines)
