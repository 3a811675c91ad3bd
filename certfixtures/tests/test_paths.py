"""paths.py tests.

Runs with pytest.
"""

from pathlib import Path

import pytest

from certfixtures.paths import PathSpec, UnresolvedSegmentError


def test_join_and_concat() -> None:
    """Test that / joins and + concatenates, with the usual operator precedence."""
    spec = PathSpec("/tmp/certs") / "rootCA" / "private" / "cakey" + ".pem"
    assert spec.resolve() == "/tmp/certs/rootCA/private/cakey.pem"
    assert (PathSpec("/tmp") / 11 + "-cert.pem").resolve() == "/tmp/11-cert.pem"


def test_initial_segments_are_joined() -> None:
    """Test that the constructor joins its segments."""
    assert PathSpec("a", "b", "c").resolve() == "a/b/c"


def test_nested_and_pathlike_segments() -> None:
    """Test resolving nested PathSpec and pathlib segments."""
    ca = PathSpec(Path("/srv/out")) / "14_CA"
    spec = ca / PathSpec("private", "cakey.pem")
    assert spec.resolve() == "/srv/out/14_CA/private/cakey.pem"
    assert Path(spec) == Path("/srv/out/14_CA/private/cakey.pem")
    assert str(spec) == "/srv/out/14_CA/private/cakey.pem"


def test_empty_expression_starts_without_separator() -> None:
    """Test that extending an empty expression does not add a leading separator."""
    assert (PathSpec() / "relative" + ".cnf").resolve() == "relative.cnf"


def test_spec_is_immutable() -> None:
    """Test that extending an expression leaves the original alone."""
    base = PathSpec("/tmp")
    base / "foo"
    base + "bar"
    assert base.resolve() == "/tmp"


@pytest.mark.parametrize("segment", [None, 1.5, True, ["a"]])
def test_unresolved_segment(segment: object) -> None:
    """Test that segments which are not ground fail loudly on resolve."""
    spec = PathSpec("/tmp") / segment
    with pytest.raises(UnresolvedSegmentError, match="Unable to resolve path segment"):
        spec.resolve()


def test_empty_expression() -> None:
    """Test that an empty expression can not be resolved."""
    with pytest.raises(UnresolvedSegmentError, match="empty path expression"):
        PathSpec().resolve()


def test_repr() -> None:
    """Test the repr shows joins and concatenations."""
    assert repr(PathSpec("a") / "b" + ".pem") == "PathSpec('a' / 'b' + '.pem')"


def test_equality() -> None:
    """Test that expressions resolving to the same path are equal and hash alike."""
    joined = PathSpec("/tmp") / "11" + "-cert.pem"
    assert joined == PathSpec("/tmp", "11-cert.pem")
    assert joined == PathSpec(Path("/tmp")) / 11 + "-cert.pem"
    assert hash(joined) == hash(PathSpec("/tmp/11-cert.pem"))
    assert joined != PathSpec("/tmp") / "11.csr"
    assert joined != "/tmp/11-cert.pem"
    assert len({joined, PathSpec("/tmp/11-cert.pem")}) == 1
