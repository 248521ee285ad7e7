"""
Unit tests for StagingService and variant grouping.

Run: pytest tests/unit/test_staging_service.py -v
"""

import pytest

from services.staging_service import StagingService, group_staging_items, get_staging_service
from services.import_batch_service import ImportBatchService
from models.staging import StagingItemCreate, StagingItemResponse, StagingItemUpdate, StagingStatus
from exceptions import BatchNotFoundError, DatabaseError, StagingItemNotFoundError

from tests.factories import BatchFactory, StagingItemFactory


def responses(rows: list) -> list:
    return [StagingItemResponse(**row) for row in rows]


class TestGroupStagingItems:
    """Tests for group_staging_items()"""

    def test_rings_and_necklace_form_two_groups(self, taxonomy):
        """Should group unset and explicit variant names under the item name."""
        # Arrange
        rows = [
            StagingItemFactory.create("b1", id="i1", name="Ring A", minutes=1),
            StagingItemFactory.create("b1", id="i2", name="Ring A", minutes=2),
            StagingItemFactory.create("b1", id="i3", name="Ring A", variant_of_name="Ring A", minutes=3),
            StagingItemFactory.create("b1", id="i4", name="Necklace B", minutes=4),
        ]

        # Act
        groups = group_staging_items(responses(rows), taxonomy)

        # Assert
        assert [g.name for g in groups] == ["Necklace B", "Ring A"]
        ring = groups[1]
        assert ring.variant_count == 3
        assert [i.id for i in ring.items] == ["i3", "i2", "i1"]
        assert groups[0].variant_count == 1

    def test_grouping_is_deterministic(self, taxonomy):
        """Should produce identical output for the same items in any input order."""
        rows = [
            StagingItemFactory.create("b1", id="a", name="Chair", minutes=5),
            StagingItemFactory.create("b1", id="b", name="Chair", minutes=5),
            StagingItemFactory.create("b1", id="c", name="Table", minutes=5),
        ]
        items = responses(rows)

        first = group_staging_items(items, taxonomy)
        second = group_staging_items(list(reversed(items)), taxonomy)

        assert [g.model_dump() for g in first] == [g.model_dump() for g in second]
        assert [i.id for i in first[0].items] == ["a", "b"]

    def test_ignores_non_pending_items(self, taxonomy):
        """Should only group pending items."""
        rows = [
            StagingItemFactory.create("b1", name="Ring A"),
            StagingItemFactory.create("b1", name="Ring B", status=StagingStatus.COMMITTED.value),
        ]

        groups = group_staging_items(responses(rows), taxonomy)

        assert [g.name for g in groups] == ["Ring A"]

    def test_group_names_come_from_newest_member(self, taxonomy):
        """Should resolve category/collection names from the newest member only."""
        rows = [
            StagingItemFactory.create("b1", name="Ring A", minutes=1, category_id="cat-necklaces"),
            StagingItemFactory.create("b1", name="Ring A", minutes=9, category_id="cat-rings", collection_id="col-bridal"),
        ]

        groups = group_staging_items(responses(rows), taxonomy)

        assert groups[0].category_name == "Rings"
        assert groups[0].collection_name == "Bridal"

    def test_groups_ordered_by_newest_member(self, taxonomy):
        """Should put the group with the most recent item first."""
        rows = [
            StagingItemFactory.create("b1", name="Old", minutes=1),
            StagingItemFactory.create("b1", name="Old", minutes=50),
            StagingItemFactory.create("b1", name="Middle", minutes=20),
        ]

        groups = group_staging_items(responses(rows), taxonomy)

        assert [g.name for g in groups] == ["Old", "Middle"]


class TestStagingServiceCreate:
    """Tests for StagingService.create_items()"""

    def test_create_items_defaults_variant_name_and_counts(self, mock_db, mock_supabase):
        """Should default variant_of_name to the item name and bump items_scraped."""
        # Arrange
        batch = BatchFactory.create(id="b1")
        mock_supabase.set_table_data("import_batches", [batch])
        service = StagingService()

        # Act
        created = service.create_items("b1", [
            StagingItemCreate(name="Gold Ring", rental_price="$1,250.00"),
            StagingItemCreate(name="Gold Ring Large", variant_of_name="Gold Ring"),
        ])

        # Assert
        assert len(created) == 2
        assert created[0].variant_of_name == "Gold Ring"
        assert created[0].rental_price == 1250.0
        assert all(i.status == StagingStatus.PENDING for i in created)
        assert created[1].created_at > created[0].created_at
        assert ImportBatchService().get_by_id("b1").items_scraped == 2

    def test_create_items_empty_list_is_noop(self, mock_db, mock_supabase):
        """Should not touch the database for an empty list."""
        service = StagingService()

        assert service.create_items("b1", []) == []
        assert mock_supabase.calls == []

    def test_create_items_database_error(self, mock_db, mock_supabase):
        """Should raise DatabaseError and take back the scraped count when insert fails."""
        mock_supabase.set_table_data("import_batches", [BatchFactory.create(id="b1")])
        mock_supabase.fail_on("staging_items", "insert")
        service = StagingService()

        with pytest.raises(DatabaseError):
            service.create_items("b1", [StagingItemCreate(name="Ring")])

        counts = ImportBatchService().get_counts("b1")
        assert counts.items_scraped == 0
        assert counts.is_consistent

    def test_counter_failure_inserts_nothing(self, mock_db, mock_supabase):
        """Should leave no uncounted rows when the batch counter cannot be written."""
        mock_supabase.set_table_data("import_batches", [BatchFactory.create(id="b1")])
        mock_supabase.fail_on("import_batches", "update")
        service = StagingService()

        with pytest.raises(DatabaseError):
            service.create_items("b1", [StagingItemCreate(name="Ring"), StagingItemCreate(name="Band")])

        assert mock_supabase.rows("staging_items") == []
        assert mock_supabase.calls_to("staging_items", "insert") == 0

    def test_prices_are_written_as_numbers(self, mock_db, mock_supabase):
        """Should store Decimal prices as plain numbers."""
        mock_supabase.set_table_data("import_batches", [BatchFactory.create(id="b1")])

        StagingService().create_items("b1", [StagingItemCreate(name="Ring", rental_price="$1,250")])

        assert mock_supabase.rows("staging_items")[0]["rental_price"] == 1250.0
        assert isinstance(mock_supabase.rows("staging_items")[0]["rental_price"], float)


class TestStagingServiceCuration:
    """Tests for edit, remove and rename."""

    @pytest.fixture
    def seeded(self, mock_db, mock_supabase):
        mock_supabase.set_table_data("import_batches", [BatchFactory.create(id="b1", items_scraped=3)])
        mock_supabase.set_table_data("staging_items", [
            StagingItemFactory.create("b1", id="i1", name="Ring A", variant_of_name="Ring A"),
            StagingItemFactory.create("b1", id="i2", name="Ring A Small", variant_of_name="Ring A"),
            StagingItemFactory.create("b1", id="i3", name="Necklace B", variant_of_name="Necklace B"),
        ])
        return mock_supabase

    def test_update_item_writes_only_provided_fields(self, seeded):
        """Should patch given fields and leave others alone."""
        service = StagingService()

        updated = service.update_item("i1", StagingItemUpdate(color="Gold", sku=None))

        assert updated.color == "Gold"
        assert updated.sku is None
        assert updated.name == "Ring A"

    def test_update_item_not_found(self, seeded):
        """Should raise StagingItemNotFoundError for unknown id."""
        service = StagingService()

        with pytest.raises(StagingItemNotFoundError):
            service.update_item("missing", StagingItemUpdate(color="Red"))

    def test_remove_item_keeps_counts_consistent(self, seeded):
        """Should hard delete and count the item as removed."""
        service = StagingService()

        service.remove_item("i3")

        counts = ImportBatchService().get_counts("b1")
        assert counts.pending == 2
        assert counts.removed == 1
        assert counts.is_consistent
        with pytest.raises(StagingItemNotFoundError):
            service.get_by_id("i3")

    def test_failed_delete_takes_back_removed_count(self, seeded):
        """Should keep the row and the removed counter unchanged when the delete fails."""
        seeded.fail_on("staging_items", "delete")
        service = StagingService()

        with pytest.raises(DatabaseError):
            service.remove_item("i3")

        counts = ImportBatchService().get_counts("b1")
        assert counts.pending == 3
        assert counts.removed == 0
        assert counts.is_consistent

    def test_rename_group_rewrites_all_members(self, seeded):
        """Should move every current member to the new group name."""
        service = StagingService()

        result = service.rename_group("b1", "Ring A", "Signet Ring")

        assert result.updated_count == 2
        names = {i.id: i.variant_of_name for i in service.get_items("b1")}
        assert names == {"i1": "Signet Ring", "i2": "Signet Ring", "i3": "Necklace B"}

    def test_rename_unknown_group_updates_nothing(self, seeded):
        """Should report zero updates without writing."""
        service = StagingService()

        result = service.rename_group("b1", "Nope", "Other")

        assert result.updated_count == 0
        assert seeded.calls_to("staging_items", "update") == 0

    def test_get_counts_unknown_batch(self, mock_db):
        """Should raise BatchNotFoundError."""
        with pytest.raises(BatchNotFoundError):
            ImportBatchService().get_counts("missing")


class TestGetStagingService:
    def test_returns_singleton(self, mock_db):
        """Should return the same instance."""
        assert get_staging_service() is get_staging_service()
