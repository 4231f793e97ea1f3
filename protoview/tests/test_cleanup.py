#!/usr/bin/env python3
"""
Tests for protoview.reconciliation.cleanup

Covers:
- Keeper selection and removal per duplicate group
- Singleton records are never touched
- Idempotency of repeated passes
- Per-group failures are collected, not fatal
- Dry runs
"""

import pytest

from protoview.exceptions import ValidationError
from protoview.models.interaction import ConfidenceTier
from protoview.reconciliation.cleanup import bulk_cleanup, group_by_identity, plan_group


def _apply_with(repository):
    return lambda group: repository.apply_cleanup_group(group.keep, group.remove)


@pytest.mark.unit
class TestGrouping:

    def test_group_by_identity(self, record_factory):
        records = [record_factory(record_id=1), record_factory(record_id=2, contacts=None),
                   record_factory(record_id=3, contacts=0), record_factory(record_id=4, prey="P00009")]
        groups = group_by_identity(records)
        assert [len(members) for members in groups.values()] == [1, 2, 1]

    def test_plan_group_fills_keeper(self, record_factory):
        """The keeper inherits fields only the removed records carry"""
        v3 = record_factory(record_id=1, version="v3", contacts_pae_lt_6=410, plddt=86.1)
        v4 = record_factory(record_id=2, version="v4", ipsae=0.751, plddt=None)
        group = plan_group(v3.identity_key, [v3, v4])
        assert group.keep.id == 2
        assert group.remove_ids == [1]
        assert group.keep.contacts_pae_lt_6 == 410
        assert group.keep.interface_plddt == 86.1
        assert group.keep.confidence is ConfidenceTier.HIGH
        assert group.keep.ipsae_confidence is ConfidenceTier.HIGH


@pytest.mark.unit
class TestBulkCleanup:

    def test_v3_v4_pairs(self, repository, record_factory):
        """Each v3/v4 pair keeps the ipSAE-bearing v4 record"""
        for prey in ("P00001", "P00002", "P00003"):
            repository.seed(record_factory(prey=prey, version="v3"))
            repository.seed(record_factory(prey=prey, version="v4", ipsae=0.8))
        repository.seed(record_factory(prey="P00004"))

        report = bulk_cleanup(repository.all(), _apply_with(repository))

        assert report.groups_processed == 3
        assert report.duplicates_removed == 3
        assert report.failures == []
        remaining = repository.all()
        assert len(remaining) == 4
        assert all(r.ipsae == 0.8 for r in remaining if r.subject_key.prey != "P00004")

    def test_unscored_keeps_most_recent(self, repository, record_factory):
        first = repository.seed(record_factory(source_path="/old"))
        second = repository.seed(record_factory(source_path="/new"))
        bulk_cleanup(repository.all(), _apply_with(repository))
        assert [r.id for r in repository.all()] == [second.id]
        assert first.id not in repository.rows

    def test_singletons_untouched(self, repository, record_factory):
        """Records without duplicates are never deleted or rewritten"""
        a = repository.seed(record_factory(prey="P00001"))
        b = repository.seed(record_factory(prey="P00001", iptm=0.61))
        c = repository.seed(record_factory(bait="P00001", prey="Q9NVL8"))
        before = repository.all()

        report = bulk_cleanup(before, _apply_with(repository))

        assert report.groups_processed == 0
        assert report.duplicates_removed == 0
        assert repository.all() == before
        assert {a.id, b.id, c.id} == set(repository.rows)
        assert repository.db.transactions == 0

    def test_idempotent(self, repository, record_factory):
        for version, score in [("v3", None), ("v4", 0.8), ("v4", None), ("v3", None)]:
            repository.seed(record_factory(version=version, ipsae=score))
        first = bulk_cleanup(repository.all(), _apply_with(repository))
        assert first.duplicates_removed == 3
        after_first = repository.all()

        second = bulk_cleanup(repository.all(), _apply_with(repository))
        assert second.groups_processed == 0
        assert second.duplicates_removed == 0
        assert repository.all() == after_first

    def test_failure_isolated(self, repository, record_factory):
        """A failing group is reported and rolled back; other groups proceed"""
        for prey in ("P00001", "P00002"):
            repository.seed(record_factory(prey=prey))
            repository.seed(record_factory(prey=prey))
        failing = repository.all()[0].subject_key
        repository.failing_groups.add(failing)

        report = bulk_cleanup(repository.all(), _apply_with(repository))

        assert report.groups_processed == 1
        assert report.duplicates_removed == 1
        assert len(report.failures) == 1
        assert report.failures[0].error_type == "TransactionConflictError"
        assert not report.success
        assert len([r for r in repository.all() if r.subject_key == failing]) == 2

    def test_dry_run(self, repository, record_factory):
        repository.seed(record_factory())
        repository.seed(record_factory())
        report = bulk_cleanup(repository.all())
        assert report.dry_run
        assert report.duplicates_removed == 1
        assert len(repository.all()) == 2

    def test_report_to_dict(self, repository, record_factory):
        repository.seed(record_factory())
        repository.seed(record_factory())
        repository.failing_groups.add(repository.all()[0].subject_key)
        data = bulk_cleanup(repository.all(), _apply_with(repository)).to_dict()
        assert data['groups_processed'] == 0
        assert data['failures'][0]['subject'] == "Q9NVL8 -> P68363"

    def test_unsaved_duplicates_reported_not_fatal(self, repository, record_factory):
        """A group with id-less members fails alone; the stored group is still cleaned"""
        repository.seed(record_factory(prey="P00001"))
        repository.seed(record_factory(prey="P00001"))
        records = repository.all() + [record_factory(prey="P00002"), record_factory(prey="P00002")]

        for apply_group in (None, _apply_with(repository)):
            report = bulk_cleanup(records, apply_group)
            assert report.groups_processed == 1
            assert report.duplicates_removed == 1
            assert [f.error_type for f in report.failures] == ["ValidationError"]
            assert report.failures[0].to_dict()['subject'] == "Q9NVL8 -> P00002"
            assert [g.keep.subject_key.prey for g in report.groups] == ["P00001"]

        assert len(repository.all()) == 1

    def test_plan_group_rejects_unsaved(self, record_factory):
        records = [record_factory(record_id=1), record_factory()]
        with pytest.raises(ValidationError):
            plan_group(records[0].identity_key, records)

    def test_unexpected_callback_error_collected(self, repository, record_factory):
        for prey in ("P00001", "P00002"):
            repository.seed(record_factory(prey=prey))
            repository.seed(record_factory(prey=prey))

        def apply_group(group):
            if group.keep.subject_key.prey == "P00001":
                raise RuntimeError("lost connection")
            repository.apply_cleanup_group(group.keep, group.remove)

        report = bulk_cleanup(repository.all(), apply_group)
        assert report.groups_processed == 1
        assert report.failures[0].error_type == "RuntimeError"
        assert report.failures[0].error == "lost connection"
