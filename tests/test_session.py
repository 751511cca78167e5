import pytest

from refinery.connectors import MalformedInputError
from refinery.graph import RefinerySession
from refinery.utils.settings import RefinerySettings
from sample_data import CSV_TEXT


def test_ingest_builds_profiled_dataset_and_counts_rows(make_session):
    session, _ = make_session([])

    dataset = session.ingest_text(CSV_TEXT, "people")

    assert dataset.headers == ("name", "age")
    assert [s.column for s in dataset.column_stats] == ["name", "age"]
    assert dataset.source_type == "csv"
    assert session.active_dataset is dataset
    assert session.orchestrator.phase == "idle"
    assert session.usage.snapshot() == {"rows_processed": 3, "ai_calls": 0}


def test_header_only_input_does_not_switch_dataset(make_session):
    session, _ = make_session([])
    first = session.ingest_text(CSV_TEXT, "people")
    epoch = session.epoch.current

    assert session.ingest_text("a,b\n", "empty") is None
    assert session.active_dataset is first
    assert session.epoch.current == epoch
    assert session.usage.rows_processed == 3


def test_malformed_input_leaves_active_dataset(make_session):
    session, _ = make_session([])
    first = session.ingest_text(CSV_TEXT, "people")

    with pytest.raises(MalformedInputError):
        session.ingest_text("  \n\n", "broken")

    assert session.active_dataset is first


def test_ingest_file_uses_basename(make_session, tmp_path):
    path = tmp_path / "sales.csv"
    path.write_text("region,total\nnorth,10\nsouth,12\n", encoding="utf-8")
    session, _ = make_session([])

    dataset = session.ingest_file(str(path))

    assert dataset.name == "sales.csv"
    assert dataset.stats_for("total").avg == 11.0


def test_from_settings_wires_sizes_and_retry_budget(make_client):
    settings = RefinerySettings(
        api_key="test-key",
        max_retries=5,
        retry_base_delay=0.25,
        timeout_seconds=30.0,
        clean_sample_size=10,
        query_sample_size=7,
    )

    session = RefinerySession.from_settings(settings, client=make_client([]))

    assert session.gateway.max_retries == 5
    assert session.gateway.base_delay == 0.25
    assert session.gateway.attempt_timeout == 30.0
    assert session.orchestrator.clean_sample_size == 10
    assert session.query_executor.sample_size == 7
    assert session.orchestrator.epoch is session.query_executor.epoch
    assert session.orchestrator.usage is session.query_executor.usage
