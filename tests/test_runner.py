import asyncio
import json
from datetime import date

import pytest
from openpyxl import load_workbook

from conftest import xlsx_bytes
from pricewatch.jobs.errors import JobConflict
from pricewatch.jobs.models import JobStatus, RowResult
from pricewatch.jobs.runner import InvalidRequest
from pricewatch.jobs.stream import progress_events
from pricewatch.logic.report_xlsx import BASE_COLUMNS, NOTE_COLUMN


def upload():
    return xlsx_bytes(
        [
            ("Артикул", "Бренд"),
            ("OC90", "KNECHT"),
            ("W71252", "MANN"),
            ("GDB1330", "TRW"),
        ]
    )


def scripted_results():
    return [
        RowResult(article="OC90", brand="KNECHT", prices=[510, 510, 540], stats={"февраля-24": 5, "января-24": 4}),
        RowResult(article="W71252", brand="MANN", prices=[890], stats={"марта-24": 2}, ai="Цена за упаковку"),
        asyncio.TimeoutError(),
    ]


def report_sheet(tmp_path, job):
    wb = load_workbook(tmp_path / "reports" / f"{job.id}.xlsx")
    return list(wb.active.iter_rows(values_only=True))


@pytest.mark.asyncio
async def test_job_runs_to_done_with_full_report(runner, fake_extractor, period, tmp_path):
    fake_extractor.script = scripted_results()
    job = runner.create(upload(), "request.xlsx", *period)
    assert job.status is JobStatus.PENDING
    assert job.total == 3

    for _ in range(3):
        job = await runner.step(job.id)

    assert job.status is JobStatus.DONE
    assert job.processed == 3
    assert job.finished_at is not None
    assert job.result_file == f"reports/zzap/{job.id}.xlsx"
    assert len(job.results) == 3
    assert job.results[2].prices == []
    assert job.results[2].error == "timeout"
    assert job.last_id == "2:GDB1330|TRW"

    rows = report_sheet(tmp_path, job)
    assert rows[0][0].startswith("Отчёт ZZAP на ")
    assert list(rows[1]) == [*BASE_COLUMNS, "января-24", "февраля-24", "марта-24", NOTE_COLUMN]
    assert list(rows[2]) == ["OC90", "KNECHT", 510, 540, None, 4, 5, None, None]
    assert list(rows[3]) == ["W71252", "MANN", 890, None, None, None, None, 2, "Цена за упаковку"]
    assert list(rows[4]) == ["GDB1330", "TRW", None, None, None, None, None, None, "Ошибка: timeout"]
    assert len(rows) == 5

    log_text = runner.log(job.id).path.read_text(encoding="utf-8")
    assert "Задание создано: 3 строк" in log_text
    assert "Готово: обработано 3 из 3" in log_text
    assert runner.storage.download_url(job.result_file).startswith(f"/downloads/{job.id}.xlsx?token=")


@pytest.mark.asyncio
async def test_step_on_terminal_job_is_a_no_op(runner, fake_extractor, period):
    job = runner.create(upload(), "request.xlsx", *period)
    for _ in range(3):
        job = await runner.step(job.id)
    assert job.status is JobStatus.DONE
    calls = len(fake_extractor.calls)

    again = await runner.step(job.id)
    assert again.status is JobStatus.DONE
    assert again.version == job.version
    assert len(fake_extractor.calls) == calls


@pytest.mark.asyncio
async def test_extractor_failure_is_recorded_per_row(runner, fake_extractor, period):
    fake_extractor.script = [RuntimeError("browser crashed")]
    job = runner.create(upload(), "request.xlsx", *period)
    job = await runner.step(job.id)
    assert job.status is JobStatus.RUNNING
    assert job.processed == 1
    assert job.results[0].error == "browser crashed"
    assert job.results[0].prices == []


@pytest.mark.asyncio
async def test_prices_only_mode_is_passed_to_extractor(runner, fake_extractor, period):
    job = runner.create(upload(), "request.xlsx", *period, include_stats=False)
    await runner.step(job.id)
    assert fake_extractor.calls[0][1] is False
    assert runner.store.get(job.id).include_stats is False


@pytest.mark.asyncio
async def test_stop_builds_partial_report_over_observed_months(runner, fake_extractor, period, tmp_path):
    fake_extractor.script = scripted_results()
    job = runner.create(upload(), "request.xlsx", *period)
    job = await runner.step(job.id)

    job = runner.stop(job.id)
    assert job.status is JobStatus.CANCELED
    assert job.processed == 1
    assert job.result_file == f"reports/zzap/{job.id}.xlsx"

    rows = report_sheet(tmp_path, job)
    assert list(rows[1]) == [*BASE_COLUMNS, "января-24", "февраля-24", NOTE_COLUMN]
    assert list(rows[2])[:7] == ["OC90", "KNECHT", 510, 540, None, 4, 5]
    assert list(rows[3]) == ["W71252", "MANN", None, None, None, None, None, None]

    assert runner.stop(job.id).status is JobStatus.CANCELED
    with pytest.raises(JobConflict):
        runner.finalize(job.id)
    stepped = await runner.step(job.id)
    assert stepped.processed == 1


def test_stop_without_results_has_no_report(runner, period):
    job = runner.create(upload(), "request.xlsx", *period)
    job = runner.stop(job.id)
    assert job.status is JobStatus.CANCELED
    assert job.result_file is None


@pytest.mark.asyncio
async def test_stop_after_done_returns_final_status(runner, period):
    job = runner.create(upload(), "request.xlsx", *period)
    for _ in range(3):
        job = await runner.step(job.id)
    stopped = runner.stop(job.id)
    assert stopped.status is JobStatus.DONE
    assert stopped.version == job.version
    assert stopped.result_file == job.result_file


@pytest.mark.asyncio
async def test_result_arriving_after_stop_is_kept(runner, fake_extractor, period):
    fake_extractor.script = scripted_results()
    job = runner.create(upload(), "request.xlsx", *period)
    fake_extractor.before_return = lambda row: runner.stop(job.id)

    job = await runner.step(job.id)
    assert job.status is JobStatus.CANCELED
    assert job.processed == 1
    assert job.results[0].prices == [510, 510, 540]
    assert job.result_file is not None


@pytest.mark.asyncio
async def test_stop_between_reread_and_save_keeps_last_result(runner, fake_extractor, period, monkeypatch, tmp_path):
    fake_extractor.script = scripted_results()
    job = runner.create(upload(), "request.xlsx", *period)
    for _ in range(2):
        job = await runner.step(job.id)

    read_job = runner.store.get
    stop_on_next_read = []

    def read_then_stop(job_id):
        current = read_job(job_id)
        if stop_on_next_read:
            stop_on_next_read.clear()
            runner.stop(job_id)
        return current

    fake_extractor.before_return = lambda row: stop_on_next_read.append(row)
    monkeypatch.setattr(runner.store, "get", read_then_stop)

    job = await runner.step(job.id)
    assert job.status is JobStatus.CANCELED
    assert job.processed == 3
    assert job.results[2].error == "timeout"
    assert job.result_file == f"reports/zzap/{job.id}.xlsx"
    rows = report_sheet(tmp_path, job)
    assert rows[4][:2] == ("GDB1330", "TRW")


@pytest.mark.asyncio
async def test_report_reference_is_saved_with_terminal_status(runner, fake_extractor, period, monkeypatch):
    fake_extractor.script = scripted_results()
    job = runner.create(upload(), "request.xlsx", *period)
    for _ in range(2):
        job = await runner.step(job.id)

    seen_while_storing = []
    store_report = runner.storage.store

    def poll_while_storing(path):
        current = runner.store.get(job.id)
        seen_while_storing.append((current.status, current.result_file))
        return store_report(path)

    monkeypatch.setattr(runner.storage, "store", poll_while_storing)
    job = await runner.step(job.id)
    assert seen_while_storing == [(JobStatus.RUNNING, None)]
    assert job.status is JobStatus.DONE

    frames = [frame async for frame in progress_events(runner.store, job.id, log=runner.log(job.id), poll_interval=0)]
    states = [json.loads(frame.split("data: ", 1)[1]) for frame in frames if frame.startswith("event: job")]
    assert states[-1]["status"] == "done"
    assert states[-1]["result_file"] == job.result_file
    assert any("Отчёт сохранён" in frame for frame in frames)


@pytest.mark.asyncio
async def test_report_failure_still_saves_canceled_status(runner, fake_extractor, period, monkeypatch):
    job = runner.create(upload(), "request.xlsx", *period)
    await runner.step(job.id)

    def broken_store(path):
        raise OSError("disk full")

    monkeypatch.setattr(runner.storage, "store", broken_store)
    job = runner.stop(job.id)
    assert job.status is JobStatus.CANCELED
    assert job.result_file is None
    assert runner.store.get(job.id).status is JobStatus.CANCELED
    assert "Не удалось сформировать отчёт: disk full" in runner.log(job.id).path.read_text(encoding="utf-8")


@pytest.mark.asyncio
async def test_duplicate_result_for_same_row_is_discarded(runner, fake_extractor, period):
    job = runner.create(upload(), "request.xlsx", *period)

    def other_worker_finished_row(row):
        current = runner.store.get(job.id)
        current.results.append(RowResult(article=row.article, brand=row.brand, prices=[1]))
        current.processed = 1
        current.last_id = current.cursor_for(0)
        runner.store.save(current)

    fake_extractor.before_return = other_worker_finished_row
    job = await runner.step(job.id)
    assert job.processed == 1
    assert [result.prices for result in job.results] == [[1]]


@pytest.mark.asyncio
async def test_finalize_is_idempotent(runner, period):
    job = runner.create(upload(), "request.xlsx", *period)
    for _ in range(3):
        job = await runner.step(job.id)

    first = runner.finalize(job.id)
    second = runner.finalize(job.id)
    assert first.result_file == second.result_file == job.result_file
    assert second.version == job.version


@pytest.mark.asyncio
async def test_finalize_rebuilds_missing_report(runner, period):
    job = runner.create(upload(), "request.xlsx", *period)
    for _ in range(3):
        job = await runner.step(job.id)
    job.result_file = None
    runner.store.save(job)

    job = runner.finalize(job.id)
    assert job.status is JobStatus.DONE
    assert job.result_file == f"reports/zzap/{job.id}.xlsx"


@pytest.mark.asyncio
async def test_finalize_requires_complete_job(runner, period):
    job = runner.create(upload(), "request.xlsx", *period)
    await runner.step(job.id)
    with pytest.raises(JobConflict):
        runner.finalize(job.id)


def test_create_rejects_inverted_period(runner):
    with pytest.raises(InvalidRequest):
        runner.create(upload(), "request.xlsx", date(2024, 3, 1), date(2024, 1, 1))
