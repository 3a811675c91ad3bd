"""Composable path expressions.

A ``PathSpec`` is an ordered list of segments, each either joined onto the
previous one with a directory separator or concatenated directly onto it.
The expression is only turned into a string when it reaches the filesystem
or the openssl command line, and every segment has to be resolvable by then.
"""

import os

JOIN = "/"
CONCAT = ""


class UnresolvedSegmentError(ValueError):
    """Raised when a path expression contains a segment which can not be turned into a string."""


class PathSpec:
    """An immutable path expression built from joins (``/``) and concatenations (``+``).

    Example::

        >>> (PathSpec("/tmp/certs") / "rootCA" / "private" / "cakey" + ".pem").resolve()
        '/tmp/certs/rootCA/private/cakey.pem'
    """

    __slots__ = ("_parts",)

    def __init__(self, *segments: object) -> None:
        """Join the initial segments with the directory separator."""
        self._parts: tuple[tuple[str, object], ...] = tuple(
            (JOIN if index else CONCAT, segment) for index, segment in enumerate(segments)
        )

    def _extend(self, separator: str, segment: object) -> "PathSpec":
        spec = PathSpec()
        spec._parts = (*self._parts, (separator if self._parts else CONCAT, segment))
        return spec

    def __truediv__(self, segment: object) -> "PathSpec":
        return self._extend(JOIN, segment)

    def __add__(self, fragment: object) -> "PathSpec":
        return self._extend(CONCAT, fragment)

    @staticmethod
    def resolve_segment(segment: object) -> str:
        """Return the string form of a single segment.

        Args:
            segment: A str, int, os.PathLike or nested PathSpec

        Returns:
            The segment as a string

        Raises:
            UnresolvedSegmentError: If the segment is of any other type
        """
        if isinstance(segment, PathSpec):
            return segment.resolve()
        if isinstance(segment, str):
            return segment
        # bool is an int subclass but never a sensible path segment
        if isinstance(segment, int) and not isinstance(segment, bool):
            return str(segment)
        if isinstance(segment, os.PathLike):
            return os.fspath(segment)  # type: ignore[return-value]
        raise UnresolvedSegmentError(f"Unable to resolve path segment {segment!r}")

    def resolve(self) -> str:
        """Concatenate all segments and separators into a single path string."""
        if not self._parts:
            raise UnresolvedSegmentError("Unable to resolve an empty path expression")
        return "".join(separator + self.resolve_segment(segment) for separator, segment in self._parts)

    def __fspath__(self) -> str:
        return self.resolve()

    def __str__(self) -> str:
        return self.resolve()

    # expressions are equal when they resolve to the same path
    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PathSpec):
            return NotImplemented
        return self.resolve() == other.resolve()

    def __hash__(self) -> int:
        return hash(self.resolve())

    def __repr__(self) -> str:
        terms = "".join(
            (f" {'/' if separator else '+'} " if index else "") + repr(segment)
            for index, (separator, segment) in enumerate(self._parts)
        )
        return f"PathSpec({terms})"
