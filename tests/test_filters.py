import pytest
from hydra_provider.filters import child_key, compile_filters


def _compile(filters):
    return compile_filters(filters, {})


def test_operator_sub_key_uses_brackets():
    assert _compile({"price": {"between": "10..20"}}) == {"price[between]": "10..20"}


def test_nested_property_uses_dot_path():
    assert _compile({"author": {"name": "x"}}) == {"author.name": "x"}


@pytest.mark.parametrize(
    "operator",
    [
        "after",
        "before",
        "strictly_after",
        "strictly_before",
        "lt",
        "gt",
        "lte",
        "gte",
        "between",
    ],
)
def test_every_operator_wins_bracket_notation(operator):
    assert child_key("createdAt", operator) == f"createdAt[{operator}]"


def test_exists_root_uses_brackets_for_any_sub_key():
    assert _compile({"exists": {"author": True, "isbn": False}}) == {
        "exists[author]": "true",
        "exists[isbn]": "false",
    }


def test_exists_only_applies_at_root():
    assert _compile({"author": {"exists": {"name": "x"}}}) == {
        "author.exists.name": "x"
    }


def test_nested_path_then_operator():
    assert _compile({"author": {"birthDate": {"before": "1950-01-01"}}}) == {
        "author.birthDate[before]": "1950-01-01"
    }


def test_sequences_emit_indexed_parameters():
    assert _compile({"id": ["/books/1", "/books/2"]}) == {
        "id[0]": "/books/1",
        "id[1]": "/books/2",
    }


def test_sequence_under_nested_path():
    assert _compile({"author": {"name": ["a", "b"]}}) == {
        "author.name[0]": "a",
        "author.name[1]": "b",
    }


def test_scalars_are_stringified():
    assert _compile({"title": "Dune", "pages": 412, "published": True}) == {
        "title": "Dune",
        "pages": "412",
        "published": "true",
    }


def test_compile_writes_into_existing_query():
    query = {"page": "2"}
    compile_filters({"title": "Dune"}, query)
    assert query == {"page": "2", "title": "Dune"}
