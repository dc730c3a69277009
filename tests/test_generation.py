"""Tests for the generation ledger."""

from datetime import datetime, timedelta

import pytest

from routegen_cli.cache.generation import GenerationLedger, dependency_hash


def _ledger_with_record(deps=("a.py@1", "b.py@2")) -> GenerationLedger:
    ledger = GenerationLedger()
    ledger.mark_generated("/p/users/route.py", "/p/out/gen_route.py", "abc12345ff", "tpl", "cfg", list(deps))
    return ledger


class TestDependencyHash:
    """Tests for dependency_hash."""

    def test_empty_is_empty_string(self):
        assert dependency_hash([]) == ""

    def test_order_independent(self):
        assert dependency_hash(["b", "a", "c"]) == dependency_hash(["c", "b", "a"])

    def test_distinguishes_sets(self):
        assert dependency_hash(["a"]) != dependency_hash(["a", "b"])


class TestNeedsRegeneration:
    """Tests for the staleness checks, in the order they are evaluated."""

    def test_no_record(self):
        """Test an unknown source is stale."""
        stale, reason = GenerationLedger().needs_regeneration("/p/x.py", "h", [])
        assert stale is True
        assert reason == "no generation record found"

    def test_up_to_date(self):
        """Test identical inputs are fresh."""
        ledger = _ledger_with_record()

        stale, reason = ledger.needs_regeneration(
            "/p/users/route.py", "abc12345ff", ["b.py@2", "a.py@1"],
            template_hash="tpl", config_hash="cfg",
        )

        assert stale is False
        assert reason == ""

    def test_source_changed_reports_short_hashes(self):
        """Test the reason shows the first eight characters of each hash."""
        ledger = _ledger_with_record()

        stale, reason = ledger.needs_regeneration(
            "/p/users/route.py", "99887766aa", ["a.py@1", "b.py@2"]
        )

        assert stale is True
        assert reason == "source content changed (hash: abc12345 -> 99887766)"

    def test_dependencies_changed(self):
        ledger = _ledger_with_record()

        stale, reason = ledger.needs_regeneration(
            "/p/users/route.py", "abc12345ff", ["a.py@1", "b.py@3"]
        )

        assert stale is True
        assert reason == "dependencies changed"

    def test_template_changed(self):
        ledger = _ledger_with_record()

        stale, reason = ledger.needs_regeneration(
            "/p/users/route.py", "abc12345ff", ["a.py@1", "b.py@2"], template_hash="other",
        )

        assert (stale, reason) == (True, "template changed")

    def test_config_changed(self):
        ledger = _ledger_with_record()

        stale, reason = ledger.needs_regeneration(
            "/p/users/route.py", "abc12345ff", ["a.py@1", "b.py@2"],
            template_hash="tpl", config_hash="other",
        )

        assert (stale, reason) == (True, "config changed")

    def test_source_checked_before_dependencies(self):
        """Test that the first failing check determines the reason."""
        ledger = _ledger_with_record()

        _, reason = ledger.needs_regeneration("/p/users/route.py", "ffffffff00", [])

        assert reason.startswith("source content changed")


class TestLedgerBookkeeping:
    """Tests for records, invalidation and statistics."""

    def test_mark_requires_paths(self):
        with pytest.raises(ValueError):
            GenerationLedger().mark_generated("", "/out.py", "h", "t", "c", [])
        with pytest.raises(ValueError):
            GenerationLedger().mark_generated("/src.py", "", "h", "t", "c", [])

    def test_generation_info(self):
        ledger = _ledger_with_record(deps=())

        info = ledger.get_generation_info("/p/users/route.py")

        assert info.output_path == "/p/out/gen_route.py"
        assert info.dependency_hash == ""
        assert info.template_hash == "tpl"
        assert isinstance(info.generated_at, datetime)

    def test_invalidate_forces_regeneration(self):
        ledger = _ledger_with_record()

        ledger.invalidate_generation("/p/users/route.py")

        assert ledger.get_generation_info("/p/users/route.py") is None
        assert ledger.needs_regeneration("/p/users/route.py", "abc12345ff", [])[0] is True

    def test_outdated_files(self):
        ledger = _ledger_with_record()
        ledger.get_generation_info("/p/users/route.py").generated_at = datetime.now() - timedelta(days=2)

        assert ledger.outdated_files() == ["/p/users/route.py"]
        assert ledger.outdated_files(older_than=timedelta(days=3)) == []

    def test_stats_and_clear(self):
        ledger = _ledger_with_record()
        assert ledger.get_stats().generation_entries == 1
        assert ledger.generated_files() == ["/p/users/route.py"]

        ledger.clear()

        assert ledger.get_stats().generation_entries == 0
