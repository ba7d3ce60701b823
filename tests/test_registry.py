import json
import tempfile
import unittest
from pathlib import Path

from cost_ledger.errors import RegistryError
from cost_ledger.registry import CanonicalProject, JsonProjectRegistry, VariantIndex

from cost_report_fixtures import write_registry


class JsonProjectRegistryTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.root = Path(self.tmpdir.name)

    def tearDown(self):
        self.tmpdir.cleanup()

    def write(self, payload):
        path = self.root / "projects.json"
        path.write_text(json.dumps(payload), encoding="utf-8")
        return JsonProjectRegistry(path)

    def test_reads_fixture_records(self):
        projects = JsonProjectRegistry(write_registry(self.root / "projects.json")).list_projects()
        self.assertEqual([project.id for project in projects], ["P-ASH", "P-RES"])
        self.assertEqual(projects[0].aliases, frozenset({"24-5-072"}))
        self.assertEqual(projects[0].job_number, "24001")
        self.assertEqual(projects[1].code, "RES")

    def test_wrapped_list_and_alias_shapes(self):
        registry = self.write(
            {
                "projects": [
                    {
                        "id": 7,
                        "displayName": "Leesburg",
                        "projectNumber": "25-8-131",
                        "projectNumbers": [{"projectNumber": "25-8-131-QUIE6"}, {"projectNumber": None}],
                        "aliases": "LDH-3",
                    }
                ]
            }
        )
        (project,) = registry.list_projects()
        self.assertEqual(project.id, "7")
        self.assertEqual(project.display_name, "Leesburg")
        self.assertEqual(project.aliases, frozenset({"25-8-131", "25-8-131-QUIE6", "LDH-3"}))
        self.assertIsNone(project.code)

    def test_name_falls_back_to_id(self):
        (project,) = self.write([{"id": "P-1"}]).list_projects()
        self.assertEqual(project.display_name, "P-1")
        self.assertEqual(project.aliases, frozenset())

    def test_bad_registries_raise(self):
        with self.assertRaisesRegex(RegistryError, "not found"):
            JsonProjectRegistry(self.root / "missing.json").list_projects()
        with self.assertRaisesRegex(RegistryError, "list of projects"):
            self.write({"items": []}).list_projects()
        with self.assertRaisesRegex(RegistryError, "has no 'id'"):
            self.write([{"name": "No id"}]).list_projects()
        with self.assertRaisesRegex(RegistryError, "must be an object"):
            self.write(["P-1"]).list_projects()
        with self.assertRaisesRegex(RegistryError, "must be a list"):
            self.write([{"id": "P-1", "aliases": {"a": 1}}]).list_projects()

        broken = self.root / "broken.json"
        broken.write_text("[{", encoding="utf-8")
        with self.assertRaisesRegex(RegistryError, "Could not read registry"):
            JsonProjectRegistry(broken).list_projects()


class VariantIndexTests(unittest.TestCase):
    def test_index_from_json_registry(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            registry = JsonProjectRegistry(write_registry(Path(tmpdir) / "projects.json"))
            index = VariantIndex.build(registry.list_projects())
        self.assertEqual([project.id for project in index.owners("24-5-072")], ["P-ASH"])
        self.assertIn("25-8-131", index.by_primary)
        self.assertGreater(len(index), 0)
        self.assertEqual(index.owners("00-0-000"), [])

    def test_alias_length_keeps_the_shortest_producing_alias(self):
        project = CanonicalProject(
            id="P-RES",
            display_name="Reston",
            aliases=frozenset({"25-8-131-RES2", "25-8-131-B"}),
        )
        index = VariantIndex.build([project])
        self.assertEqual(index.alias_length("25-8-131", project), 10)
        self.assertEqual(index.alias_length("25-8-131-res2", project), 13)


if __name__ == "__main__":
    unittest.main()
