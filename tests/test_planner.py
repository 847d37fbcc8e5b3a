import unittest

from dbsync.errors import KeyColumnMissingError, SchemaMismatchError
from dbsync.models.config import SyncMode
from dbsync.models.schema import ColumnDescriptor, TableDescriptor
from dbsync.services.planner import ColumnMapping, plan_table


def descriptor(name, columns, primary_keys=()):
    return TableDescriptor(
        name=name,
        columns=tuple(ColumnDescriptor(name=col, type="text", is_primary_key=col in primary_keys) for col in columns),
        primary_key_columns=tuple(primary_keys),
    )


class TestPlanTable(unittest.TestCase):
    def test_columns_match_case_insensitively_in_source_order(self):
        source = descriptor("orders", ["ID", "Note", "Total"], ["ID"])
        target = descriptor("orders", ["total", "id"], ["id"])

        plan = plan_table(source, target, SyncMode.INSERT_UPDATE)

        self.assertEqual(plan.columns, (ColumnMapping("ID", "id"), ColumnMapping("Total", "total")))
        self.assertEqual(plan.key_columns, ("id",))
        self.assertEqual(plan.dropped_columns, ("Note",))
        self.assertEqual(plan.unfilled_columns, ())

    def test_target_only_columns_are_reported(self):
        source = descriptor("users", ["id", "name"], ["id"])
        target = descriptor("users", ["id", "name", "created_at"], ["id"])

        plan = plan_table(source, target, SyncMode.INSERT_UPDATE)

        self.assertEqual(plan.unfilled_columns, ("created_at",))

    def test_no_common_columns(self):
        source = descriptor("t", ["a", "b"], ["a"])
        target = descriptor("t", ["c", "d"], ["c"])

        with self.assertRaises(SchemaMismatchError):
            plan_table(source, target, SyncMode.INSERT_ONLY)

    def test_insert_update_requires_target_key(self):
        source = descriptor("logs", ["id", "message"], ["id"])
        target = descriptor("logs", ["id", "message"])

        with self.assertRaises(KeyColumnMissingError):
            plan_table(source, target, SyncMode.INSERT_UPDATE)

    def test_target_key_must_be_a_shared_column(self):
        source = descriptor("users", ["email", "name"])
        target = descriptor("users", ["uid", "email", "name"], ["uid"])

        with self.assertRaises(KeyColumnMissingError):
            plan_table(source, target, SyncMode.INSERT_UPDATE)

    def test_insert_only_allows_tables_without_key(self):
        source = descriptor("logs", ["id", "message"])
        target = descriptor("logs", ["id", "message"])

        plan = plan_table(source, target, SyncMode.INSERT_ONLY, batch_size=50)

        self.assertEqual(plan.key_columns, ())
        self.assertEqual(plan.batch_size, 50)

    def test_composite_key_uses_target_spelling(self):
        source = descriptor("stock", ["WAREHOUSE", "SKU", "qty"], ["WAREHOUSE", "SKU"])
        target = descriptor("stock", ["sku", "warehouse", "qty"], ["warehouse", "sku"])

        plan = plan_table(source, target, SyncMode.INSERT_UPDATE)

        self.assertEqual(plan.key_columns, ("warehouse", "sku"))

    def test_map_rows_renames_and_drops(self):
        source = descriptor("orders", ["ID", "total", "note"], ["ID"])
        target = descriptor("orders", ["id", "total"], ["id"])
        plan = plan_table(source, target, SyncMode.INSERT_UPDATE)

        rows = plan.map_rows([{"ID": 1, "total": 9.5, "note": "gift"}])

        self.assertEqual(rows, [{"id": 1, "total": 9.5}])


if __name__ == "__main__":
    unittest.main()
