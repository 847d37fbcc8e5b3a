from dbsync.models.job import SyncJob, SyncReport, TableState


def build_report(job: SyncJob) -> SyncReport:
    """由作业状态生成返回给调用方的报告, 不做任何 I/O"""
    results = [job.results[table] for table in job.tables if table in job.results]
    done = [result for result in results if result.state is TableState.DONE]

    rows_inserted = sum(result.rows_inserted for result in results)
    rows_updated = sum(result.rows_updated for result in results)
    success = (
        job.error is None
        and not job.cancelled
        and len(done) == len(job.tables)
    )

    failed = next((result for result in results if result.state is TableState.FAILED), None)
    skipped = next((result for result in results if result.state is TableState.SKIPPED), None)
    if job.error:
        message = f"Sync aborted: {job.error}"
    elif job.cancelled:
        message = f"Sync cancelled after {len(done)} of {len(job.tables)} table(s)"
    elif failed is not None:
        message = f"Synced {len(done)}/{len(job.tables)} table(s). Table {failed.table} failed: {failed.error}"
    elif skipped is not None:
        message = f"Synced {len(done)}/{len(job.tables)} table(s). Table {skipped.table} skipped: {skipped.error}"
    else:
        message = f"Synced {len(done)} table(s). Inserted: {rows_inserted}, Updated: {rows_updated}"

    return SyncReport(
        success=success,
        message=message,
        tables_synced=len(done),
        rows_inserted=rows_inserted,
        rows_updated=rows_updated,
        logs=tuple(job.logs),
        rows_failed=sum(result.rows_failed for result in results),
        rows_skipped=sum(result.rows_skipped for result in results),
        tables=tuple(result.to_dict() for result in results),
        started_at=job.started_at,
        finished_at=job.finished_at,
    )
