import unittest

from translation_manager.key_store import KeyStore, TRANSLATION_KEYS
from translation_manager.models import TranslationKey, TranslationValue, ValueType
from translation_manager.translation_validator import (
    audit_project,
    audit_translation_key,
    check_key_coverage,
    check_placeholder_parity,
)


def make_key(values, value_type=ValueType.TEXT, key="common.greeting"):
    return TranslationKey(id="k1", project_id="p1", category_id="c1", key=key, value_type=value_type,
                          values=values)


class TestTranslationValidator(unittest.TestCase):
    def test_check_key_coverage(self):
        expected = {'en', 'tr', 'fr'}
        actual = {'en', 'fr', 'de'}

        missing, extra = check_key_coverage(expected, actual)

        self.assertEqual(missing, {'tr'})
        self.assertEqual(extra, {'de'})

    def test_check_key_coverage_no_diff(self):
        missing, extra = check_key_coverage({'en', 'tr'}, {'en', 'tr'})

        self.assertEqual(missing, set())
        self.assertEqual(extra, set())

    def test_placeholder_parity_success(self):
        self.assertTrue(check_placeholder_parity("Hello {0}, welcome to {1}.", "Merhaba {0}, {1} hoş geldin."))

    def test_placeholder_parity_missing_placeholder(self):
        self.assertFalse(check_placeholder_parity("Hello {0}, welcome to {1}.", "Merhaba, {1} hoş geldin."))

    def test_placeholder_parity_reordered_placeholders(self):
        # Reordering is common in translation and allowed.
        self.assertTrue(check_placeholder_parity("First {0}, then {1}.", "Önce {1}, sonra {0}."))

    def test_placeholder_parity_different_placeholders(self):
        self.assertFalse(check_placeholder_parity("Hello {0}.", "Merhaba {name}."))

    def test_placeholder_parity_repeated_placeholders(self):
        self.assertFalse(check_placeholder_parity("{0} and {0}", "{0}"))
        self.assertTrue(check_placeholder_parity("{0} and {0}", "{0} ve {0}"))


class TestAuditTranslationKey(unittest.TestCase):
    def test_consistent_key_has_no_problems(self):
        translation_key = make_key([TranslationValue("en", "Hello {name}"), TranslationValue("tr", "Merhaba {name}")])
        self.assertEqual(audit_translation_key(translation_key, ["en", "tr"], "en"), [])

    def test_missing_and_extra_languages(self):
        translation_key = make_key([TranslationValue("en", "Hello"), TranslationValue("de", "Hallo")])

        problems = audit_translation_key(translation_key, ["en", "tr"], "en")

        self.assertIn("Key `common.greeting` is missing values for: tr.", problems)
        self.assertIn("Key `common.greeting` has values for languages not in the project: de.", problems)

    def test_duplicate_languages(self):
        translation_key = make_key([TranslationValue("en", "Hello"), TranslationValue("en", "Hi")])

        problems = audit_translation_key(translation_key, ["en"], "en")

        self.assertEqual(problems, ["Key `common.greeting` has more than one value for: en."])

    def test_mixed_value_types(self):
        translation_key = make_key([TranslationValue("en", "Hello"), TranslationValue("tr", ["Merhaba"], ValueType.ARRAY)])

        problems = audit_translation_key(translation_key, ["en", "tr"], "en")

        self.assertIn("Key `common.greeting` mixes value types across languages.", problems)

    def test_placeholder_mismatch_in_structured_value(self):
        translation_key = make_key([
            TranslationValue("en", {"title": "Hi {name}", "body": "{count} items"}, ValueType.OBJECT),
            TranslationValue("tr", {"title": "Merhaba", "body": "{count} ürün"}, ValueType.OBJECT),
        ], value_type=ValueType.OBJECT)

        problems = audit_translation_key(translation_key, ["en", "tr"], "en")

        self.assertEqual(problems, ["Placeholder mismatch for key `common.greeting` in 'tr'."])


class TestAuditProject(unittest.TestCase):
    def test_audit_project_collects_problems_from_every_key(self):
        store = KeyStore()
        project = store.create_project("Shop", "en", ["en", "tr"])
        category = store.create_category(project.id, "ui")
        store.add_key(project.id, category.id, "common.save", ValueType.TEXT,
                      [TranslationValue("en", "Save"), TranslationValue("tr", "Kaydet")])
        store._collections[TRANSLATION_KEYS].append({
            "id": "legacy", "projectId": project.id, "categoryId": category.id, "key": "legacy.title",
            "valueType": "text", "values": [{"language": "en", "value": "Title", "valueType": "text"}],
        })

        with self.assertLogs("translation_manager.translation_validator", level="WARNING"):
            problems = audit_project(store, project.id)

        self.assertEqual(problems, ["Key `legacy.title` is missing values for: tr."])


if __name__ == '__main__':
    unittest.main()
