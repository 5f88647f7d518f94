import pytest
from hydra_provider.schema import (
    Field,
    Parameter,
    Resource,
    denormalize_document,
    normalize_document,
    parameters_from_search_template,
    resolve_schema_parameters,
)


async def _upper(value):
    return value.upper()


def _books():
    return Resource(
        name="books",
        url="https://api.test/books",
        fields=[
            Field(name="title", normalizeData=_upper, denormalizeData=str.lower),
            Field(name="author", reference="https://api.test/docs.jsonld#Author"),
            Field(name="isbn"),
        ],
    )


@pytest.mark.asyncio
async def test_normalize_applies_async_transform_and_keeps_other_fields():
    data = {"title": "dune", "isbn": "123", "extra": 1}
    result = await normalize_document(_books(), data)

    assert result == {"title": "DUNE", "isbn": "123", "extra": 1}
    assert data["title"] == "dune"


@pytest.mark.asyncio
async def test_normalize_turns_empty_reference_into_none():
    result = await normalize_document(_books(), {"author": ""})
    assert result == {"author": None}


@pytest.mark.asyncio
async def test_denormalize_applies_sync_transform_to_present_fields_only():
    doc = {"title": "DUNE"}
    result = await denormalize_document(_books(), doc)
    assert result == {"title": "dune"}
    assert "isbn" not in result


def test_field_relation_flag():
    assert Field(name="author", reference="#Author").is_relation
    assert Field(name="cover", embedded=True).is_relation
    assert not Field(name="title").is_relation


def test_parameters_from_search_template_reads_both_prefixes():
    payload = {
        "hydra:search": {
            "hydra:mapping": [
                {"variable": "id", "property": "id", "required": False},
                {"hydra:variable": "title", "hydra:property": "title"},
                {"property": "missing-variable"},
            ]
        }
    }
    params = parameters_from_search_template(payload)
    assert [p.variable for p in params] == ["id", "title"]
    assert params[1].range == "title"


def test_parameters_from_search_template_without_search():
    assert parameters_from_search_template({"hydra:member": []}) == []


@pytest.mark.asyncio
async def test_resolve_schema_parameters_loads_once():
    calls = []

    async def loader(resource):
        calls.append(resource.name)
        return [Parameter(variable="id")]

    resource = _books()
    first = await resolve_schema_parameters(resource, loader)
    second = await resolve_schema_parameters(resource, loader)

    assert [p.variable for p in first] == ["id"]
    assert second == first
    assert calls == ["books"]


@pytest.mark.asyncio
async def test_resolve_schema_parameters_prefers_declared():
    resource = Resource(name="books", parameters=[Parameter(variable="title")])

    async def loader(resource):  # pragma: no cover - must not be called
        raise AssertionError("loader should not run")

    params = await resolve_schema_parameters(resource, loader)
    assert [p.variable for p in params] == ["title"]


@pytest.mark.asyncio
async def test_resolve_schema_parameters_without_resource():
    assert await resolve_schema_parameters(None) == []
