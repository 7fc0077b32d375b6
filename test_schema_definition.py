"""
Schema Definition Tests

Validates the declarative schema and the content engine tables.
"""

import pytest

from core.schema import (
    CONTENT_ENGINE_SCHEMA,
    FieldSpec,
    FieldType,
    SchemaDefinition,
    SchemaDefinitionError,
    TableSpec,
    semantic_key,
)


def _table(key, name, *fields):
    return TableSpec(key=key, name=name, primary=FieldSpec(name="Name", type=FieldType.TEXT), fields=fields)


def _link(name, target, related=None):
    return FieldSpec(name=name, type=FieldType.LINK_ROW, link_target=target, related_field_name=related)


class TestContentEngineSchema:
    """The tables every tenant gets."""

    def test_table_order(self):
        assert CONTENT_ENGINE_SCHEMA.table_keys == [
            "content_ideas",
            "templates",
            "images",
            "email_ideas",
            "social_media_content",
            "brand_assets",
            "image_ideas",
        ]

    def test_links(self):
        links = [(l.table_key, l.field_name, l.target_table_key) for l in CONTENT_ENGINE_SCHEMA.links()]
        assert links == [
            ("email_ideas", "Templates", "templates"),
            ("email_ideas", "Images", "images"),
            ("social_media_content", "Images", "images"),
            ("social_media_content", "Content Idea", "content_ideas"),
            ("image_ideas", "Selected Images", "images"),
        ]

    def test_links_point_backwards(self):
        positions = {key: i for i, key in enumerate(CONTENT_ENGINE_SCHEMA.table_keys)}
        for link in CONTENT_ENGINE_SCHEMA.links():
            assert positions[link.target_table_key] < positions[link.table_key]

    def test_fifth_table_third_field(self):
        assert CONTENT_ENGINE_SCHEMA.tables[4].fields[2].name == "CTA"

    def test_every_table_has_a_primary(self):
        for table in CONTENT_ENGINE_SCHEMA:
            assert table.all_fields()[0] is table.primary

    def test_explicit_semantic_keys(self):
        images = CONTENT_ENGINE_SCHEMA.get_table("images")
        assert images.get_field("Reference URL").semantic_key == "reference_url"
        assert images.get_field("Image Prompt").semantic_key == "image_prompt"

    def test_unknown_table(self):
        with pytest.raises(KeyError):
            CONTENT_ENGINE_SCHEMA.get_table("invoices")


class TestValidation:
    """Invalid schemas are rejected at construction."""

    def test_forward_link_rejected(self):
        with pytest.raises(SchemaDefinitionError) as exc_info:
            SchemaDefinition(version="1", tables=(
                _table("posts", "Posts", _link("Images", "images")),
                _table("images", "Images"),
            ))
        assert "must be declared before" in str(exc_info.value)

    def test_link_without_target_rejected(self):
        with pytest.raises(SchemaDefinitionError):
            SchemaDefinition(version="1", tables=(_table("posts", "Posts", _link("Images", None)),))

    def test_duplicate_table_key_rejected(self):
        with pytest.raises(SchemaDefinitionError):
            SchemaDefinition(version="1", tables=(_table("posts", "Posts"), _table("posts", "More Posts")))

    def test_duplicate_field_name_rejected(self):
        with pytest.raises(SchemaDefinitionError):
            SchemaDefinition(version="1", tables=(
                _table("posts", "Posts", FieldSpec("Title", FieldType.TEXT), FieldSpec("Title", FieldType.LONG_TEXT)),
            ))

    def test_reverse_field_collision_rejected(self):
        """Reverse field name defaults to the source table name."""
        with pytest.raises(SchemaDefinitionError):
            SchemaDefinition(version="1", tables=(
                _table("images", "Images", FieldSpec("Posts", FieldType.TEXT)),
                _table("posts", "Posts", _link("Images", "images")),
            ))

    def test_two_reverse_fields_with_same_name_rejected(self):
        with pytest.raises(SchemaDefinitionError):
            SchemaDefinition(version="1", tables=(
                _table("images", "Images"),
                _table("posts", "Posts", _link("Hero", "images"), _link("Gallery", "images")),
            ))

    def test_link_payload_needs_target_id(self):
        spec = _link("Images", "images")
        with pytest.raises(SchemaDefinitionError):
            spec.to_payload()
        assert spec.to_payload(641) == {
            "name": "Images",
            "type": "link_row",
            "link_row_table_id": 641,
            "has_related_field": False,
        }


@pytest.mark.parametrize("name,expected", [
    ("Image Prompt", "image_prompt"),
    ("CTA", "cta"),
    ("Anime/Manga", "anime_manga"),
    (" Created At ", "created_at"),
])
def test_semantic_key(name, expected):
    assert semantic_key(name) == expected
