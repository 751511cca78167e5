import asyncio
import json

import pytest

from refinery.utils.cells import NumberCell, TextCell
from refinery.utils.llm_gateway import GatewayError
from sample_data import CSV_TEXT

CHART_JSON = json.dumps({"type": "bar", "title": "Ages", "xAxis": "name", "yAxis": "age"})


def _session(make_session, responses, **kwargs):
    session, client = make_session(responses, **kwargs)
    dataset = session.ingest_text(CSV_TEXT, "people")
    return session, client, dataset


def test_natural_language_query_with_chart(make_session):
    session, client, dataset = _session(make_session, ['[{"name": "cy", "age": 41}]', CHART_JSON])

    result = asyncio.run(session.query_executor.run(dataset, "who is older than 40?"))

    assert result.records == ({"name": TextCell(value="cy"), "age": NumberCell(value=41.0)},)
    assert result.columns() == ["name", "age"]
    assert result.chart.type == "bar"
    assert result.chart.x_axis == "name"
    assert result.mode == "natural_language"
    assert result.sampled_rows == 3
    assert session.usage.ai_calls == 2
    assert "who is older than 40?" in client.calls[0]["prompt"]


def test_result_keeps_collaborator_keys(make_session):
    session, _, dataset = _session(make_session, ['[{"avg_age": 35.5}]', "null"])
    result = asyncio.run(session.query_executor.run(dataset, "average age"))
    assert result.records[0] == {"avg_age": NumberCell(value=35.5)}
    assert result.chart is None


def test_empty_result_skips_chart(make_session):
    session, client, dataset = _session(make_session, ["[]"])
    result = asyncio.run(session.query_executor.run(dataset, "names starting with z"))
    assert result.is_empty
    assert result.chart is None
    assert len(client.calls) == 1


def test_large_result_skips_chart(make_session):
    rows = json.dumps([{"name": "ana"}, {"name": "bo"}])
    session, client, dataset = _session(make_session, [rows], chart_max_rows=1)
    result = asyncio.run(session.query_executor.run(dataset, "all names"))
    assert len(result.records) == 2
    assert result.chart is None
    assert len(client.calls) == 1


def test_query_sample_is_bounded(make_session):
    session, client, dataset = _session(make_session, ["[]"], query_sample_size=2)
    result = asyncio.run(session.query_executor.run(dataset, "everything"))
    assert result.sampled_rows == 2
    assert '"cy"' not in client.calls[0]["prompt"]


def test_sql_mode_uses_sql_prompt(make_session):
    session, client, dataset = _session(make_session, ["[]"])
    result = asyncio.run(session.query("SELECT name FROM data WHERE age > 40", mode="sql"))
    assert result.mode == "sql"
    assert "SQL" in client.calls[0]["prompt"]


@pytest.mark.parametrize("text, mode", [("   ", "natural_language"), ("ok", "graphql")])
def test_invalid_query_is_rejected_before_any_call(make_session, text, mode):
    session, client, dataset = _session(make_session, [])
    with pytest.raises(ValueError):
        asyncio.run(session.query_executor.run(dataset, text, mode))
    assert client.calls == []


def test_chart_gateway_error_propagates(make_session):
    session, _, dataset = _session(make_session, ['[{"name": "cy"}]', ValueError("403 forbidden")])
    with pytest.raises(GatewayError):
        asyncio.run(session.query_executor.run(dataset, "oldest"))


def test_query_for_replaced_dataset_is_discarded(make_session):
    async def scenario():
        started = asyncio.Event()
        release = asyncio.Event()

        async def slow_query(prompt):
            started.set()
            await release.wait()
            return '[{"name": "cy"}]'

        session, client, dataset = _session(make_session, [slow_query])
        task = asyncio.create_task(session.query_executor.run(dataset, "oldest"))
        await started.wait()
        session.ingest_text("x\n1\n", "other")
        release.set()
        return client, await task

    client, result = asyncio.run(scenario())
    assert result is None
    assert len(client.calls) == 1


def test_ask_and_report(make_session):
    session, _, dataset = _session(make_session, ["The average age is 35.5.", ""])
    executor = session.query_executor

    assert asyncio.run(executor.ask(dataset, "average age?")) == "The average age is 35.5."
    assert asyncio.run(executor.report(dataset)) == "Report generation unavailable."


def test_kpis_and_dashboard(make_session):
    kpis = json.dumps([{"label": "Rows", "value": 3, "trend": 5, "trendDirection": "up"}])
    charts = json.dumps(
        [
            {"type": "bar", "title": "Age by name", "xAxis": "name", "yAxis": "age"},
            {"type": "pie", "title": "Ghost", "xAxis": "ghost", "yAxis": "age"},
        ]
    )
    session, _, dataset = _session(make_session, [kpis, charts])
    executor = session.query_executor

    extracted = asyncio.run(executor.kpis(dataset))
    dashboard = asyncio.run(executor.dashboard(dataset, goal="Age overview"))

    assert extracted[0].label == "Rows"
    assert extracted[0].trend_direction == "up"
    assert [c.title for c in dashboard] == ["Age by name"]
