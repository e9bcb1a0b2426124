"""
Tests for the manifest reconciler — duplicates, conflicts, pins, ordering.
"""

from src.core.models.manifest import ConflictReport, DependencyEntry, DuplicateReport, Manifest
from src.core.services.reconciler import rank, reconcile


def _pairs(manifest: Manifest) -> list[tuple[str, str]]:
    return [(e.key, e.version_spec) for e in manifest.entries]


class TestDuplicates:
    def test_same_version_repeats_collapse(self, manifest_of):
        m = manifest_of(("numpy", "1.0"), ("numpy", "1.0"), ("torch", "2.5.1"))
        result, reports = reconcile(m)

        assert _pairs(result) == [("numpy", "==1.0"), ("torch", "==2.5.1")]
        assert len(reports) == 1
        assert isinstance(reports[0], DuplicateReport)
        assert reports[0].name == "numpy"
        assert [e.source_line for e in reports[0].dropped] == [2]

    def test_names_are_normalised(self, manifest_of):
        m = manifest_of(("Scikit_Learn", ""), ("scikit-learn", ""))
        result, reports = reconcile(m)

        assert len(result.entries) == 1
        assert result.entries[0].name == "Scikit_Learn"
        assert isinstance(reports[0], DuplicateReport)

    def test_keeps_first_occurrence(self, manifest_of):
        m = manifest_of(("pandas", ">=2.0"), ("requests", ""), ("pandas", ">=2.0"))
        result, _ = reconcile(m)
        assert result.entries[0].source_line == 1

    def test_extras_of_dropped_repeats_are_merged(self):
        m = Manifest(entries=[
            DependencyEntry(name="pandas", version_spec="==2.0", source_line=1),
            DependencyEntry(name="pandas", version_spec="==2.0", source_line=2, extras=("excel",)),
        ])
        result, reports = reconcile(m)

        assert [e.requirement() for e in result.entries] == ["pandas[excel]==2.0"]
        assert reports[0].merged_extras == ["excel"]
        assert "merged extras [excel]" in reports[0].message

    def test_no_merge_when_extras_agree(self):
        entry = DependencyEntry(name="ray", version_spec="==2.9.0", extras=("tune",))
        _, reports = reconcile(Manifest(entries=[entry, entry]))
        assert reports[0].merged_extras == []


class TestConflicts:
    def test_highest_version_wins(self, manifest_of):
        m = manifest_of(
            ("langchain-core", "1.1.0"),
            ("langchain-core", "0.3.80"),
            ("langchain-core", "0.3.80"),
        )
        result, reports = reconcile(m)

        assert _pairs(result) == [("langchain-core", "==1.1.0")]
        assert len(reports) == 1
        report = reports[0]
        assert isinstance(report, ConflictReport)
        assert [e.version_spec for e in report.dropped] == ["==0.3.80", "==0.3.80"]
        assert "highest" in report.reason

    def test_range_beats_floating(self, manifest_of):
        m = manifest_of(("pandas", ""), ("pandas", ">=2.0"))
        result, _ = reconcile(m)
        assert _pairs(result) == [("pandas", ">=2.0")]

    def test_exact_pin_beats_range_at_same_version(self, manifest_of):
        m = manifest_of(("x", ">=1.5"), ("x", "==1.5"))
        result, _ = reconcile(m)
        assert _pairs(result) == [("x", "==1.5")]

    def test_excluded_version_does_not_count(self, manifest_of):
        m = manifest_of(("numpy", "==1.26.4"), ("numpy", ">=1.20,!=2.0.0"))
        result, reports = reconcile(m)

        assert _pairs(result) == [("numpy", "==1.26.4")]
        assert [e.version_spec for e in reports[0].dropped] == [">=1.20,!=2.0.0"]

    def test_upper_cap_does_not_beat_lower_pin(self, manifest_of):
        m = manifest_of(("numpy", "<2.0.0"), ("numpy", "==1.26.4"))
        result, _ = reconcile(m)
        assert _pairs(result) == [("numpy", "==1.26.4")]

    def test_bounded_range_ranks_by_its_floor(self, manifest_of):
        m = manifest_of(("numpy", ">=1.20,<3"), ("numpy", "==1.26.4"))
        result, _ = reconcile(m)
        assert _pairs(result) == [("numpy", "==1.26.4")]

    def test_survivor_keeps_its_position(self, manifest_of):
        m = manifest_of(("a", ""), ("b", "==1"), ("a", "==2"))
        result, _ = reconcile(m)
        assert _pairs(result) == [("b", "==1"), ("a", "==2")]

    def test_pin_overrides_highest(self, manifest_of):
        m = manifest_of(("numpy", "==2.1.0"), ("torch", ""), ("numpy", "==1.26.4"))
        result, reports = reconcile(m, pins={"numpy": "1.26.4"})

        assert _pairs(result) == [("torch", ""), ("numpy", "==1.26.4")]
        assert "compatibility pin" in reports[0].reason
        assert [e.version_spec for e in reports[0].dropped] == ["==2.1.0"]

    def test_pin_repins_when_no_entry_matches(self, manifest_of):
        m = manifest_of(("numpy", ">=1.20"), ("numpy", "==2.0.0"))
        result, reports = reconcile(m, pins={"NumPy": "1.26.4"})

        assert _pairs(result) == [("numpy", "==1.26.4")]
        assert result.entries[0].source_line == 1
        assert "re-pinned" in reports[0].reason
        # both declared entries were replaced
        assert len(reports[0].dropped) == 2

    def test_pin_ignored_without_conflict(self, manifest_of):
        m = manifest_of(("numpy", "==2.0.0"))
        result, reports = reconcile(m, pins={"numpy": "1.26.4"})
        assert _pairs(result) == [("numpy", "==2.0.0")]
        assert reports == []


class TestGuarantees:
    def test_one_entry_per_name(self, manifest_of):
        m = manifest_of(
            ("a", "==1"), ("b", ""), ("A", "==2"), ("b", ""), ("c", ">=1"), ("a", "==1"),
        )
        result, _ = reconcile(m)
        keys = result.names()
        assert len(keys) == len(set(keys)) == 3

    def test_idempotent(self, manifest_of):
        m = manifest_of(
            ("numpy", "1.0"), ("numpy", "1.0"), ("torch", "2.5.1"),
            ("langchain-core", "1.1.0"), ("langchain-core", "0.3.80"),
        )
        once, _ = reconcile(m)
        twice, reports = reconcile(once)
        assert twice == once
        assert reports == []

    def test_input_not_mutated(self, manifest_of):
        m = manifest_of(("x", "==1"), ("x", "==2"))
        before = m.model_copy(deep=True)
        reconcile(m)
        assert m == before

    def test_empty_manifest(self):
        result, reports = reconcile(Manifest())
        assert result.entries == []
        assert reports == []


class TestRank:
    def test_floating_ranks_lowest(self, manifest_of):
        floating, ranged = manifest_of(("x", ""), ("x", ">=0.1")).entries
        assert rank(floating) < rank(ranged)

    def test_wildcard_counts_as_its_prefix(self, manifest_of):
        wild, lower = manifest_of(("x", "==1.2.*"), ("x", "==1.1")).entries
        assert rank(wild) > rank(lower)

    def test_cap_only_range_beats_floating(self, manifest_of):
        floating, capped = manifest_of(("x", ""), ("x", "<2")).entries
        assert rank(floating) < rank(capped)

    def test_higher_cap_ranks_higher(self, manifest_of):
        low, high = manifest_of(("x", "<2"), ("x", "<=3")).entries
        assert rank(low) < rank(high)

    def test_exclusion_only_ranks_as_floating(self, manifest_of):
        floating, excluded = manifest_of(("x", ""), ("x", "!=1.0")).entries
        assert rank(floating) == rank(excluded)
