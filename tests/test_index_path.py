"""
Tests for index-path addressing: locate() and replace().
"""

import pytest

from rollables.data_models import RollContext
from rollables.tables import (
    IndexOutOfRange,
    LocationKind,
    RowMissing,
    UnresolvedRef,
    locate,
    parse_reference,
    replace,
    resolve,
)
from rollables.tables.index_path import child_context


@pytest.fixture
def two_rows(treasure_registry, scripted):
    """/two rolled twice: row 0 is A with a gem, row 1 is B with a coin."""
    node, _ = resolve(parse_reference("/two|roll=2"), treasure_registry, 0, source=scripted(1, 3, 2, 2))
    return node


@pytest.fixture
def hoard(treasure_registry, scripted):
    node, _ = resolve(UnresolvedRef("/hoard"), treasure_registry, 0, source=scripted(1, 3, 4, 1))
    return node


class TestLocate:
    """Tests for locate()."""

    def test_empty_path_is_root(self, two_rows):
        location = locate([], two_rows)
        assert location.kind == LocationKind.NODE
        assert location.node is two_rows
        assert location.context == RollContext()

    def test_row(self, two_rows):
        location = locate([1], two_rows)
        assert location.kind == LocationKind.ROW
        assert location.node is two_rows.rows[1]
        assert location.parent is two_rows
        assert location.index == 1

    def test_nested_reference(self, two_rows):
        location = locate([0, 0], two_rows)
        assert location.kind == LocationKind.NODE
        assert location.node.path == "/gems"
        assert location.context.depth == 1

    def test_row_inside_nested(self, two_rows):
        location = locate([1, 0, 0], two_rows)
        assert location.kind == LocationKind.ROW
        assert location.parent.path == "/coins"

    def test_root_context_carried(self, two_rows):
        """The context passed in is the root's starting context."""
        start = RollContext(vars={"level": 2})
        location = locate([0, 0], two_rows, start)
        assert dict(location.context.vars) == {"level": 2}

    def test_bundle_repeat(self, hoard):
        location = locate([0], hoard)
        assert location.kind == LocationKind.REPEAT
        assert location.node is hoard.repeats[0]

    def test_bundle_child_sees_earlier_exports(self, hoard):
        """A bundle child's context includes what earlier siblings exported."""
        purse = locate([0, 0], hoard)
        chest = locate([0, 1], hoard)
        assert dict(purse.context.vars) == {}
        assert dict(chest.context.vars) == {"gold": 7}
        assert chest.context.depth == 1

    @pytest.mark.parametrize("path", [[2], [-1], [0, 1], [0, 0, 5]])
    def test_out_of_range(self, two_rows, path):
        assert locate(path, two_rows) is None

    def test_through_missing_row(self, make_registry, scripted):
        registry = make_registry({"/sparse": {"dice": "1d6", "rows": ["1|A"]}})
        node, _ = resolve(UnresolvedRef("/sparse"), registry, 0, source=scripted(4))
        assert isinstance(locate([0], node).node, RowMissing)
        assert locate([0, 0], node) is None

    def test_through_leaf(self, make_registry, scripted):
        registry = make_registry({"/a": {"rows": ["[[/gone]]"]}})
        node, _ = resolve(UnresolvedRef("/a"), registry, 0, source=scripted(1))
        assert locate([0, 0], node).node.path == "/gone"
        assert locate([0, 0, 0], node) is None


class TestReplace:
    """Tests for replace()."""

    def test_empty_path_returns_new(self, two_rows):
        assert replace([], "new", two_rows) == "new"

    def test_row_replaced(self, two_rows):
        new_row = RowMissing(9)
        result = replace([0], new_row, two_rows)
        assert result.rows[0] is new_row
        assert result.rows[1] is two_rows.rows[1]

    def test_nested_path_shares_siblings(self, two_rows):
        """Only nodes along the path are rebuilt."""
        new_row = RowMissing(9)
        result = replace([1, 0, 0], new_row, two_rows)
        assert result.rows[0] is two_rows.rows[0]
        assert result.rows[1].nested_refs[0].rows[0] is new_row
        assert two_rows.rows[1].nested_refs[0].rows[0] is not new_row

    def test_original_untouched(self, two_rows):
        before = two_rows.rows
        replace([0], RowMissing(9), two_rows)
        assert two_rows.rows is before

    def test_bundle_child(self, hoard, two_rows):
        result = replace([0, 1], two_rows, hoard)
        assert result.repeats[0][1] is two_rows
        assert result.repeats[0][0] is hoard.repeats[0][0]

    def test_bundle_repeat(self, hoard):
        result = replace([0], [], hoard)
        assert result.repeats == ((),)

    @pytest.mark.parametrize("path", [[3], [0, 4], [0, 0, 0, 0]])
    def test_out_of_range(self, two_rows, path):
        with pytest.raises(IndexOutOfRange):
            replace(path, RowMissing(1), two_rows)


class TestChildContext:
    """Tests for child_context()."""

    def test_first_sibling(self, hoard):
        context = child_context(RollContext(), {"a": 1}, hoard.repeats[0], 0)
        assert context.depth == 1
        assert dict(context.vars) == {"a": 1}

    def test_later_sibling_sees_exports(self, hoard):
        context = child_context(RollContext(), {}, hoard.repeats[0], 1)
        assert dict(context.vars) == {"gold": 7}
