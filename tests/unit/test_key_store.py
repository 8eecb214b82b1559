import json
import os
import tempfile

import pytest

from translation_manager.errors import InvalidArgumentError, NotFoundError, SchemaConflictError, StaleWriteError
from translation_manager.key_store import KeyStore
from translation_manager.models import TranslationValue, ValueType


def text_values(*pairs):
    return [TranslationValue(language, value) for language, value in pairs]


class TestProjects:
    def test_create_and_get(self, store):
        project = store.create_project("  Shop ", "en", ["en", "tr", "fr"], description="Storefront")
        loaded = store.get_project(project.id)
        assert loaded.name == "Shop"
        assert loaded.languages == ["en", "tr", "fr"]
        assert loaded.main_language == "en"

    def test_languages_default_to_main_language(self, store):
        assert store.create_project("Shop", "en").languages == ["en"]

    @pytest.mark.parametrize("main_language, languages", [
        ("en", ["tr"]),
        ("en", ["en", "tr", "en"]),
        ("en", ["en", ""]),
        ("", ["en"]),
    ])
    def test_invalid_languages(self, store, main_language, languages):
        with pytest.raises(InvalidArgumentError):
            store.create_project("Shop", main_language, languages)

    def test_missing_project(self, store):
        with pytest.raises(NotFoundError, match="Project not found"):
            store.get_project("missing")

    def test_update_keeps_main_language_in_languages(self, store, project):
        with pytest.raises(InvalidArgumentError):
            store.update_project(project.id, languages=["tr"])
        updated = store.update_project(project.id, languages=["en", "tr", "fr"], name="Shop 2")
        assert updated.languages == ["en", "tr", "fr"]
        assert updated.name == "Shop 2"

    def test_delete_cascades_to_categories_and_keys(self, store, project, category):
        store.add_key(project.id, category.id, "common.save", ValueType.TEXT,
                      text_values(("en", "Save"), ("tr", "Kaydet")))
        other = store.create_project("Blog", "en")

        store.delete_project(project.id)

        assert [p.id for p in store.list_projects()] == [other.id]
        assert store.list_categories(project.id) == []
        assert store.list_keys(project.id) == []


class TestCategories:
    def test_nested_categories(self, store, project, category):
        child = store.create_category(project.id, "buttons", parent_category_id=category.id)
        assert child.parent_category_id == category.id
        assert [c.name for c in store.list_categories(project.id)] == ["ui", "buttons"]

    def test_parent_must_belong_to_same_project(self, store, category):
        other = store.create_project("Blog", "en")
        with pytest.raises(InvalidArgumentError):
            store.create_category(other.id, "posts", parent_category_id=category.id)

    def test_reparenting_under_a_descendant_is_rejected(self, store, project, category):
        child = store.create_category(project.id, "buttons", parent_category_id=category.id)
        with pytest.raises(InvalidArgumentError):
            store.update_category(category.id, parent_category_id=child.id, reparent=True)
        with pytest.raises(InvalidArgumentError):
            store.update_category(category.id, parent_category_id=category.id, reparent=True)

    def test_reparent_to_top_level(self, store, project, category):
        child = store.create_category(project.id, "buttons", parent_category_id=category.id)
        moved = store.update_category(child.id, parent_category_id=None, reparent=True)
        assert moved.parent_category_id is None
        renamed = store.update_category(child.id, name="actions")
        assert renamed.name == "actions"
        assert renamed.parent_category_id is None

    def test_delete_cascades_to_descendants_and_their_keys(self, store, project, category):
        child = store.create_category(project.id, "buttons", parent_category_id=category.id)
        sibling = store.create_category(project.id, "errors")
        values = text_values(("en", "Save"), ("tr", "Kaydet"))
        store.add_key(project.id, child.id, "buttons.save", ValueType.TEXT, values)
        store.add_key(project.id, sibling.id, "errors.save", ValueType.TEXT, values)

        removed = store.delete_category(category.id)

        assert removed == 1
        assert [c.id for c in store.list_categories(project.id)] == [sibling.id]
        assert [k.key for k in store.list_keys(project.id)] == ["errors.save"]


class TestTranslationKeys:
    def test_one_value_per_project_language(self, store, project, category):
        with pytest.raises(InvalidArgumentError):
            store.add_key(project.id, category.id, "common.save", ValueType.TEXT, text_values(("en", "Save")))
        with pytest.raises(InvalidArgumentError):
            store.add_key(project.id, category.id, "common.save", ValueType.TEXT,
                          text_values(("en", "Save"), ("en", "Save")))

    def test_values_share_the_key_value_type(self, store, project, category):
        values = [TranslationValue("en", ["Save"], ValueType.ARRAY), TranslationValue("tr", "Kaydet")]
        with pytest.raises(InvalidArgumentError):
            store.add_key(project.id, category.id, "common.save", ValueType.ARRAY, values)

    def test_duplicate_and_prefix_keys_are_conflicts(self, store, project, category):
        values = text_values(("en", "Save"), ("tr", "Kaydet"))
        store.add_key(project.id, category.id, "common.save", ValueType.TEXT, values)
        for key in ("common.save", "common", "common.save.label"):
            with pytest.raises(SchemaConflictError):
                store.add_key(project.id, category.id, key, ValueType.TEXT, values)
        store.add_key(project.id, category.id, "common.saved", ValueType.TEXT, values)

    def test_same_key_in_another_project_is_allowed(self, store, project, category):
        other = store.create_project("Blog", "en", ["en", "tr"])
        other_category = store.create_category(other.id, "ui")
        values = text_values(("en", "Save"), ("tr", "Kaydet"))
        store.add_key(project.id, category.id, "common.save", ValueType.TEXT, values)
        store.add_key(other.id, other_category.id, "common.save", ValueType.TEXT, values)

    def test_list_keys_in_creation_order_and_by_category(self, store, project, category):
        other_category = store.create_category(project.id, "errors")
        values = text_values(("en", "x"), ("tr", "y"))
        for key, cat in (("b.two", category), ("a.one", other_category), ("c.three", category)):
            store.add_key(project.id, cat.id, key, ValueType.TEXT, values)

        assert [k.key for k in store.list_keys(project.id)] == ["b.two", "a.one", "c.three"]
        assert [k.key for k in store.list_keys(project.id, category.id)] == ["b.two", "c.three"]

    def test_replace_key_keeps_position(self, store, project, category):
        values = text_values(("en", "x"), ("tr", "y"))
        first = store.add_key(project.id, category.id, "a.one", ValueType.TEXT, values)
        store.add_key(project.id, category.id, "a.two", ValueType.TEXT, values)

        first.key = "a.zero"
        store.replace_key(first)

        assert [k.key for k in store.list_keys(project.id)] == ["a.zero", "a.two"]

    def test_replace_key_refuses_a_stale_copy(self, store, project, category):
        translation_key = store.add_key(project.id, category.id, "a.one", ValueType.TEXT,
                                        text_values(("en", "x"), ("tr", "y")))
        translation_key.values = text_values(("en", "x"), ("tr", "z"))

        with pytest.raises(StaleWriteError):
            store.replace_key(translation_key, expected_updated_at="2000-01-01T00:00:00+00:00")
        assert store.get_key(translation_key.id).value_for("tr").value == "y"

        store.replace_key(translation_key, expected_updated_at=translation_key.updated_at)
        assert store.get_key(translation_key.id).value_for("tr").value == "z"

    def test_delete_key(self, store, project, category):
        translation_key = store.add_key(project.id, category.id, "a.one", ValueType.TEXT,
                                        text_values(("en", "x"), ("tr", "y")))
        store.delete_key(translation_key.id)
        with pytest.raises(NotFoundError, match="Translation key not found"):
            store.get_key(translation_key.id)


class TestPersistence:
    def test_store_survives_reload(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            path = os.path.join(temp_dir, 'data', 'store.json')
            store = KeyStore(path)
            project = store.create_project("Shop", "en", ["en", "tr"])
            category = store.create_category(project.id, "ui")
            store.add_key(project.id, category.id, "common.save", ValueType.TEXT,
                          text_values(("en", "Save"), ("tr", "Kaydet")))

            reloaded = KeyStore(path)

            assert reloaded.get_project(project.id).name == "Shop"
            assert reloaded.list_keys(project.id)[0].value_for("tr").value == "Kaydet"
            with open(path, 'r', encoding='utf-8') as f:
                assert set(json.load(f)) == {"projects", "categories", "translationKeys"}

    def test_missing_file_starts_empty(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            store = KeyStore(os.path.join(temp_dir, 'store.json'))
            assert store.list_projects() == []
