import unittest

from dbsync.models.job import JobStatus, SyncJob, TableState, TableSyncResult
from dbsync.services.reporter import build_report


def done(table, read, inserted, updated=0):
    return TableSyncResult(table=table, state=TableState.DONE, rows_read=read,
                           rows_inserted=inserted, rows_updated=updated)


class TestBuildReport(unittest.TestCase):
    def setUp(self):
        self.job = SyncJob(tables=("users", "orders", "tags"))
        self.job.start()

    def test_all_tables_done(self):
        for result in (done("users", 10, 10), done("orders", 5, 2, 3), done("tags", 0, 0)):
            self.job.record(result)
        self.job.log("finished")
        self.job.finish()

        report = build_report(self.job)

        self.assertTrue(report.success)
        self.assertEqual(report.tables_synced, 3)
        self.assertEqual((report.rows_inserted, report.rows_updated), (12, 3))
        self.assertEqual(report.message, "Synced 3 table(s). Inserted: 12, Updated: 3")
        self.assertEqual(len(report.logs), 1)
        self.assertEqual(self.job.status, JobStatus.COMPLETED)

    def test_first_failed_table_wins_over_skipped(self):
        self.job.record(TableSyncResult(table="users", state=TableState.SKIPPED, error="no key"))
        self.job.record(TableSyncResult(table="orders", state=TableState.FAILED, rows_read=40,
                                        rows_inserted=20, error="connection lost"))
        self.job.record(done("tags", 3, 3))
        self.job.finish()

        report = build_report(self.job)

        self.assertFalse(report.success)
        self.assertEqual(report.tables_synced, 1)
        self.assertEqual(report.rows_inserted, 23)
        self.assertEqual(report.message, "Synced 1/3 table(s). Table orders failed: connection lost")

    def test_job_fatal_error(self):
        self.job.fail("Cannot connect to sqlite://x.db/main")

        report = build_report(self.job)

        self.assertFalse(report.success)
        self.assertEqual(report.tables_synced, 0)
        self.assertTrue(report.message.startswith("Sync aborted"))
        self.assertEqual(self.job.status, JobStatus.FAILED)

    def test_cancelled_job(self):
        self.job.record(done("users", 1, 1))
        self.job.record(TableSyncResult(table="orders", state=TableState.FAILED, error="cancelled", cancelled=True))
        self.job.cancelled = True
        self.job.finish()

        report = build_report(self.job)

        self.assertFalse(report.success)
        self.assertEqual(self.job.status, JobStatus.FAILED)
        self.assertEqual(report.message, "Sync cancelled after 1 of 3 table(s)")

    def test_wire_format(self):
        self.job.record(done("users", 2, 2))
        self.job.finish()

        data = build_report(self.job).to_dict()

        self.assertEqual(
            set(data),
            {"success", "message", "tablesSynced", "rowsInserted", "rowsUpdated",
             "rowsFailed", "rowsSkipped", "tables", "logs"},
        )
        self.assertEqual(data["tables"][0]["rowsRead"], 2)

    def test_status_only_moves_forward(self):
        self.job.finish()
        with self.assertRaises(RuntimeError):
            self.job.start()


if __name__ == "__main__":
    unittest.main()
