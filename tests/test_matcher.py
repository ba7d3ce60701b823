import unittest

from cost_ledger.matcher import (
    MatchType,
    exact_alias,
    match_row,
    prefix_containment,
    prefix_score,
    Candidates,
)
from cost_ledger.registry import CanonicalProject, VariantIndex
from cost_ledger.rows import SpreadsheetRow


def project(project_id, *aliases):
    return CanonicalProject(id=project_id, display_name=project_id.title(), aliases=frozenset(aliases))


def row(identifier=None, job=None, number=1):
    return SpreadsheetRow(
        row_number=number,
        job_number=job,
        project_identifier=identifier,
        project_name="Some Project",
    )


class MatchRowTests(unittest.TestCase):
    def setUp(self):
        self.index = VariantIndex.build(
            [
                project("ash", "24-5-072"),
                project("res", "25-8-131", "25-8-131-RES2"),
                project("quie", "24-5-099-QUIE1"),
                project("long", "778899"),
            ]
        )

    def ids(self, result):
        return [item.id for item in result.matched_projects]

    def test_exact_alias_ignores_case_and_whitespace(self):
        result = match_row(row("  24-5-072 "), self.index)
        self.assertEqual(self.ids(result), ["ash"])
        self.assertEqual(result.match_type, MatchType.EXACT)
        self.assertEqual(result.rank_score, 0)
        self.assertFalse(result.is_ambiguous)

    def test_suffix_variant_matches_generic_alias(self):
        result = match_row(row("24-5-072-QUIE1"), self.index)
        self.assertEqual(self.ids(result), ["ash"])
        self.assertEqual(result.match_type, MatchType.VARIANT)
        self.assertEqual(result.rank_score, 106)
        self.assertEqual(result.matched_keys, ["24-5-072"])

    def test_generic_row_matches_suffixed_alias(self):
        result = match_row(row("24-5-099"), self.index)
        self.assertEqual(self.ids(result), ["quie"])
        self.assertEqual(result.match_type, MatchType.VARIANT)
        self.assertEqual(result.rank_score, 0)

    def test_other_site_row_goes_only_to_the_generic_project(self):
        index = VariantIndex.build([project("site", "24-5-072-QUIE1"), project("generic", "24-5-072")])
        result = match_row(row("24-5-072-QUIE2"), index)
        self.assertEqual(self.ids(result), ["generic"])
        self.assertEqual(result.strategy, "variant_lookup")
        self.assertEqual(result.rank_score, 106)
        self.assertFalse(result.is_ambiguous)

    def test_site_only_registry_still_takes_other_site_rows(self):
        index = VariantIndex.build([project("site", "24-5-072-QUIE1")])
        result = match_row(row("24-5-072-QUIE2"), index)
        self.assertEqual(self.ids(result), ["site"])
        self.assertEqual(result.rank_score, 106)

    def test_equal_rank_on_variant_fans_out(self):
        index = VariantIndex.build([project("east", "24-5-072-EAST"), project("west", "24-5-072-WEST")])
        result = match_row(row("24-5-072-NRTH"), index)
        self.assertEqual(self.ids(result), ["east", "west"])
        self.assertTrue(result.is_ambiguous)

    def test_variant_equal_to_row_beats_stripped_variant(self):
        index = VariantIndex.build([project("generic", "24-5-072"), project("site", "24-5-072-QUIE1-B")])
        result = match_row(row("24-5-072-quie1"), index)
        self.assertEqual(self.ids(result), ["site"])
        self.assertEqual(result.rank_score, 0)

    def test_exact_alias_beats_generic_variant_of_other_projects(self):
        index = VariantIndex.build([project("generic", "24-5-072"), project("site", "24-5-072-QUIE1")])
        result = match_row(row("24-5-072-quie1"), index)
        self.assertEqual(self.ids(result), ["site"])
        self.assertEqual(result.match_type, MatchType.EXACT)

    def test_multi_identifier_cell_matches_each_token(self):
        result = match_row(row("24-5-072, 25-8-131"), self.index)
        self.assertEqual(sorted(self.ids(result)), ["ash", "res"])
        self.assertTrue(result.is_ambiguous)

    def test_prefix_containment_scores_by_length_difference(self):
        result = match_row(row("7788991"), self.index)
        self.assertEqual(self.ids(result), ["long"])
        self.assertEqual(result.match_type, MatchType.VARIANT)
        self.assertEqual(result.rank_score, 101)
        self.assertEqual(result.strategy, "prefix_containment")

    def test_prefix_prefers_shorter_key_on_equal_score(self):
        index = VariantIndex.build([project("short", "1234"), project("longer", "123456")])
        candidates = Candidates(raw="12345", primary=frozenset({"12345"}), variants=frozenset({"12345"}))
        result = prefix_containment(row("12345"), candidates, index)
        self.assertEqual([item.id for item in result.matched_projects], ["short"])
        self.assertEqual(result.rank_score, 101)

    def test_prefix_ignores_very_short_keys(self):
        self.assertIsNone(prefix_score("24", "24-5-072"))
        self.assertIsNone(prefix_score("245072", "24"))
        self.assertEqual(prefix_score("24-5", "24-5-0"), 102)

    def test_unknown_identifier_is_no_match(self):
        result = match_row(row("99-9-999"), self.index)
        self.assertEqual(result.matched_projects, [])
        self.assertEqual(result.match_type, MatchType.NONE)
        self.assertIsNone(result.rank_score)

    def test_job_number_is_used_when_project_number_is_missing(self):
        result = match_row(row(identifier=None, job="25-8-131"), self.index)
        self.assertEqual(self.ids(result), ["res"])

    def test_row_without_identifier_is_no_match(self):
        result = match_row(row(identifier=None, job=None), self.index)
        self.assertFalse(result.matched)

    def test_shared_alias_returns_every_owner(self):
        index = VariantIndex.build([project("a", "30-1-001"), project("b", "30-1-001")])
        result = match_row(row("30-1-001"), index)
        self.assertEqual(self.ids(result), ["a", "b"])
        self.assertTrue(result.is_ambiguous)

    def test_exact_strategy_alone(self):
        candidates = Candidates.for_row(row("25-8-131-res2"))
        result = exact_alias(row("25-8-131-res2"), candidates, self.index)
        self.assertEqual([item.id for item in result.matched_projects], ["res"])


if __name__ == "__main__":
    unittest.main()
