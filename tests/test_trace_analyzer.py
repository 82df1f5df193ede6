import json
from datetime import date

import pytest
from typer.testing import CliRunner

from analyzer_config import AnalyzerConfig
from conftest import TODAY
from error_handler import (
    FILE_NOT_FOUND_MESSAGE,
    METHOD_NOT_FOUND_MESSAGE,
    ErrorCodes,
    StackTraceAnalyzerError,
)
from fakes import FakeFileSearch, FakeSourceControl, porcelain_entry
from method_locator import HeuristicMethodLocator, MethodLocator
from progress_tracker import ERROR
from trace_analyzer import StackTraceAnalyzer, app, parse_start_date

HASH_A = "a" * 40
HASH_B = "b" * 40

runner = CliRunner()


def blame_with_two_commits():
    return "\n".join([
        porcelain_entry(HASH_A, 7, author="Ana Ruiz", day=date(2026, 9, 1), summary="Fix rounding (PR 1532)"),
        porcelain_entry(HASH_B, 8, author="Bo Lee", day=date(2025, 12, 1), summary="Initial (#3)"),
    ]) + "\n"


def make_analyzer(project_tree, source_control=None, **config):
    return StackTraceAnalyzer(
        AnalyzerConfig(project_root=str(project_tree), **config),
        source_control=source_control or FakeSourceControl(blame_output=blame_with_two_commits()),
        today_provider=lambda: TODAY,
    )


class ExplodingLocator(MethodLocator):

    def locate(self, file_path, method_name):
        raise RuntimeError("parser crashed")


def test_full_pipeline(project_tree, sample_trace):
    gateway = FakeSourceControl(blame_output=blame_with_two_commits())
    report = make_analyzer(project_tree, gateway).analyze(sample_trace, "2026-01-01")

    submit, submit_async, post = report.results
    assert submit.location.file_path == str(project_tree / "App" / "Orders" / "OrderService.cs")
    assert (submit.location.line_range.start, submit.location.line_range.end) == (7, 14)
    assert [c.hash for c in submit.commits] == [HASH_A, HASH_B]
    assert submit.changes_in_range == 1
    assert submit.error is None

    assert (submit_async.location.line_range.start, submit_async.location.line_range.end) == (16, 19)
    assert [call[1:] for call in gateway.blame_calls] == [(7, 14), (16, 19)]

    assert post.file_found
    assert not post.method_found
    assert post.commits == []
    assert post.error == METHOD_NOT_FOUND_MESSAGE


def test_summary_counts(project_tree, sample_trace):
    summary = make_analyzer(project_tree).analyze(sample_trace, "2026-01-01").summary
    assert (summary.total_entries, summary.files_found, summary.methods_found, summary.with_changes) == (3, 3, 2, 2)
    assert (summary.start_date, summary.end_date) == ("2026-01-01", "2026-10-16")


def test_missing_file_is_reported_per_frame(project_tree):
    trace = "at App.Billing.InvoiceService.Run()\nat App.Orders.OrderService.Submit(Order o)"
    report = make_analyzer(project_tree).analyze(trace, "2026-01-01")

    missing, found = report.results
    assert missing.error == FILE_NOT_FOUND_MESSAGE
    assert not missing.file_found
    assert missing.location.file_path is None
    assert found.error is None
    assert found.method_found


def test_unexpected_failure_is_contained_to_its_frame(project_tree, sample_trace):
    analyzer = StackTraceAnalyzer(
        AnalyzerConfig(project_root=str(project_tree)),
        source_control=FakeSourceControl(),
        method_locator=ExplodingLocator(),
        today_provider=lambda: TODAY,
    )
    report = analyzer.analyze(sample_trace, "2026-01-01")

    assert len(report.results) == 3
    assert all(r.error == "parser crashed" for r in report.results)
    assert all(r.file_found for r in report.results)
    assert report.progress[-1].status == ERROR


def test_unexpected_failure_is_reported_on_the_failing_step(project_tree):
    analyzer = StackTraceAnalyzer(
        AnalyzerConfig(project_root=str(project_tree)),
        source_control=FakeSourceControl(),
        method_locator=ExplodingLocator(),
        today_provider=lambda: TODAY,
    )
    report = analyzer.analyze("at App.Orders.OrderService.Submit(Order o)", "2026-01-01")

    failed = report.progress[-1]
    assert (failed.step_number, failed.status) == (3, ERROR)
    assert "parser crashed" in failed.description


def test_history_failure_gives_empty_commit_list(project_tree):
    gateway = FakeSourceControl(success=False)
    report = make_analyzer(project_tree, gateway).analyze("at App.Orders.OrderService.Submit(Order o)", "2026-01-01")

    result = report.results[0]
    assert result.method_found
    assert result.commits == []
    assert result.error is None


def test_parallel_analysis_keeps_frame_order(project_tree, sample_trace):
    sequential = make_analyzer(project_tree).analyze(sample_trace, "2026-01-01")
    parallel = make_analyzer(project_tree, max_workers=3).analyze(sample_trace, "2026-01-01")

    assert [r.to_dict() for r in parallel.results] == [r.to_dict() for r in sequential.results]


def test_progress_is_reported_to_observer(project_tree, sample_trace):
    received = []
    report = make_analyzer(project_tree).analyze(sample_trace, "2026-01-01", observer=received.append)

    assert received == report.progress
    assert report.progress[0].title == "Parse Stack Trace"
    assert {s.total_steps for s in report.progress[1:]} == {10}


def test_injected_file_search_is_used(project_tree):
    search = FakeFileSearch([str(project_tree / "App" / "Orders" / "OrderService.cs")])
    analyzer = StackTraceAnalyzer(
        AnalyzerConfig(project_root=str(project_tree)),
        file_search=search,
        source_control=FakeSourceControl(),
        method_locator=HeuristicMethodLocator(),
        today_provider=lambda: TODAY,
    )
    analyzer.analyze("at App.Orders.OrderService.Submit(Order o)", "2026-01-01")
    assert search.calls == [(str(project_tree), "OrderService.cs")]


@pytest.mark.parametrize("trace, start_date, code", [
    ("", "2026-01-01", ErrorCodes.INVALID_STACK_TRACE),
    ("   \n  ", "2026-01-01", ErrorCodes.INVALID_STACK_TRACE),
    ("at App.Jobs.Runner.Run()", "16/10/2026", ErrorCodes.INVALID_DATE),
    ("at App.Jobs.Runner.Run()", "2026-13-01", ErrorCodes.INVALID_DATE),
    ("at System.Linq.Enumerable.First()", "2026-01-01", ErrorCodes.NO_ACTIONABLE_ENTRIES),
])
def test_request_level_errors(project_tree, trace, start_date, code):
    with pytest.raises(StackTraceAnalyzerError) as excinfo:
        make_analyzer(project_tree).analyze(trace, start_date)
    assert excinfo.value.code == code


def test_no_actionable_entries_message(project_tree):
    with pytest.raises(StackTraceAnalyzerError, match=r"filtered out System\.\* entries"):
        make_analyzer(project_tree).analyze("at System.Linq.Enumerable.First()", "2026-01-01")


def test_missing_project_root(tmp_path):
    with pytest.raises(StackTraceAnalyzerError) as excinfo:
        make_analyzer(tmp_path / "missing").analyze("at App.Jobs.Runner.Run()", "2026-01-01")
    assert excinfo.value.code == ErrorCodes.PROJECT_ROOT_ERROR


def test_parse_start_date():
    assert parse_start_date("2024-02-29") == date(2024, 2, 29)
    with pytest.raises(StackTraceAnalyzerError):
        parse_start_date("2023-02-29")


def test_report_serializes_to_json(project_tree, sample_trace):
    data = make_analyzer(project_tree).analyze(sample_trace, "2026-01-01").to_dict()
    first = data["results"][0]

    assert first["line_range"] == {"start": 7, "end": 14}
    assert first["commits"][0]["date"] == "2026-09-01"
    assert first["commits"][0]["pr_source"] == "azure"
    assert data["summary"]["date_range"] == {"start_date": "2026-01-01", "end_date": "2026-10-16"}
    json.dumps(data)


@pytest.fixture
def trace_file(tmp_path, sample_trace):
    path = tmp_path / "crash.txt"
    path.write_text(sample_trace, encoding="utf-8")
    return path


def test_cli_analyze_json(project_tree, trace_file):
    result = runner.invoke(app, [
        "analyze", str(trace_file), "--start-date", "2026-01-01", "--project-root", str(project_tree), "--json",
    ])

    assert result.exit_code == 0
    data = json.loads(result.stdout)
    assert data["summary"]["total_entries"] == 3
    assert data["summary"]["files_found"] == 3
    assert data["summary"]["methods_found"] == 2


def test_cli_analyze_text_report(project_tree, trace_file):
    result = runner.invoke(app, ["analyze", str(trace_file), "-s", "2026-01-01", "-p", str(project_tree)])

    assert result.exit_code == 0
    assert "[1] App.Orders.OrderService.Submit" in result.stdout
    assert "Methods found: 2/3" in result.stdout


def test_cli_analyze_bad_date(project_tree, trace_file):
    result = runner.invoke(app, ["analyze", str(trace_file), "-s", "yesterday", "-p", str(project_tree)])
    assert result.exit_code == 1
    assert "Invalid date format" in result.output


def test_cli_analyze_missing_trace_file(project_tree, tmp_path):
    result = runner.invoke(app, ["analyze", str(tmp_path / "nope.txt"), "-s", "2026-01-01", "-p", str(project_tree)])
    assert result.exit_code == 1


def test_cli_analyze_rejects_unknown_history_mode(project_tree, trace_file):
    result = runner.invoke(app, ["analyze", str(trace_file), "-s", "2026-01-01", "--history", "reflog"])
    assert result.exit_code == 1
    assert "Invalid configuration" in result.output


def test_cli_parse_from_stdin(sample_trace):
    result = runner.invoke(app, ["parse", "-"], input=sample_trace)
    assert result.exit_code == 0
    assert result.stdout.splitlines() == [
        "App.Orders.OrderService.Submit",
        "App.Orders.OrderService.SubmitAsync",
        "App.Web.Controllers.OrdersController.Post",
    ]


def test_cli_parse_json(trace_file):
    result = runner.invoke(app, ["parse", str(trace_file), "--json"])
    frames = json.loads(result.stdout)
    assert frames[0]["line_hint"] == 42
    assert [f["source_line_index"] for f in frames] == [2, 3, 5]


def test_cli_parse_without_frames():
    result = runner.invoke(app, ["parse", "-"], input="at System.Linq.Enumerable.First()\n")
    assert result.exit_code == 0
    assert "No user-code frames found." in result.stdout


def test_cli_locate(project_tree):
    path = str(project_tree / "App" / "Orders" / "OrderService.cs")
    result = runner.invoke(app, ["locate", path, "Submit"])
    assert result.exit_code == 0
    assert result.stdout.strip() == "Submit: lines 7-14"


def test_cli_locate_syntax(project_tree):
    path = str(project_tree / "App" / "Orders" / "OrderService.cs")
    result = runner.invoke(app, ["locate", path, "Save", "--locator", "syntax"])
    assert result.stdout.strip() == "Save: lines 21-23"


def test_cli_locate_missing_method(project_tree):
    path = str(project_tree / "App" / "Orders" / "OrderService.cs")
    result = runner.invoke(app, ["locate", path, "Cancel"])
    assert result.exit_code == 1
    assert "Method Cancel not found" in result.stdout
