#!/usr/bin/env python3
"""
Stack Trace Blame: analysis pipeline and command line interface

Workflow per request:
1. Parse the stack trace into deduplicated user-code frames
2. For every frame:
   a. Find the source file for the frame's class
   b. Find the method's line span inside that file
   c. Query git history for that span and classify the commits
3. Summarize files found, methods found and frames with changes since the start date

A frame that fails at any step gets an error message and the remaining frames
are still analyzed. Only an unusable request (empty trace, bad date, missing
project root, no user-code frames) fails as a whole.
"""

import json
import logging
import os
import re
import sys
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import date
from pathlib import Path
from typing import Callable, List, Optional

import typer

from analyzer_config import AnalyzerConfig
from data_models import (
    AnalysisReport,
    AnalysisResult,
    AnalysisSummary,
    ProgressStep,
    ResolvedLocation,
    StackFrame,
)
from error_handler import (
    FILE_NOT_FOUND_MESSAGE,
    METHOD_NOT_FOUND_MESSAGE,
    ErrorCodes,
    StackTraceAnalyzerError,
    handle_error,
)
from file_resolver import FileResolver
from history_analyzer import HistoryAnalyzer
from method_locator import MethodLocator, create_method_locator
from progress_tracker import ProgressTracker
from repository_gateway import FileSearchGateway, GitGateway, SourceControlGateway
from stack_trace_parser import StackTraceParser

logger = logging.getLogger(__name__)

DATE_PATTERN = re.compile(r'^\d{4}-\d{2}-\d{2}$')
STEPS_PER_FRAME = 3


def parse_start_date(raw: str) -> date:
    if not raw or not DATE_PATTERN.match(raw.strip()):
        raise StackTraceAnalyzerError(f"Invalid start date: {raw!r}", ErrorCodes.INVALID_DATE)
    try:
        return date.fromisoformat(raw.strip())
    except ValueError as e:
        raise StackTraceAnalyzerError(f"Invalid start date: {raw!r}", ErrorCodes.INVALID_DATE) from e


class StackTraceAnalyzer:
    """
    Runs the parse -> resolve -> locate -> history pipeline

    Gateways and the method locator can be injected; by default the analyzer
    walks the project root on disk and shells out to git.
    """

    def __init__(self, config: Optional[AnalyzerConfig] = None,
                 file_search: Optional[FileSearchGateway] = None,
                 source_control: Optional[SourceControlGateway] = None,
                 method_locator: Optional[MethodLocator] = None,
                 today_provider: Callable[[], date] = date.today):
        self.config = config or AnalyzerConfig()
        self.today_provider = today_provider
        self.parser = StackTraceParser(self.config.frame_markers, self.config.noise_namespaces)
        self.file_resolver = FileResolver(self.config.project_root, self.config.source_extension, file_search)
        self.method_locator = method_locator or create_method_locator(self.config.locator)
        self.history = HistoryAnalyzer(
            source_control or GitGateway(self.config.project_root, timeout=self.config.command_timeout),
            github_pr_url_template=self.config.github_pr_url_template,
            azure_pr_url_template=self.config.azure_pr_url_template,
            today_provider=today_provider,
        )

    def analyze(self, stack_trace: str, start_date: str,
                observer: Optional[Callable[[ProgressStep], None]] = None) -> AnalysisReport:
        """
        Analyze every user-code frame of a stack trace.

        Args:
            stack_trace: Raw trace text as pasted by the user
            start_date: "YYYY-MM-DD"; commits on or after it are flagged in_date_range
            observer: Optional callback receiving each progress step

        Raises:
            StackTraceAnalyzerError: for request-level failures only
        """
        if not stack_trace or not stack_trace.strip():
            raise StackTraceAnalyzerError("Missing stack trace", ErrorCodes.INVALID_STACK_TRACE)
        start = parse_start_date(start_date)
        if not os.path.isdir(self.config.project_root):
            raise StackTraceAnalyzerError(
                f"Project root does not exist: {self.config.project_root}",
                ErrorCodes.PROJECT_ROOT_ERROR,
            )

        tracker = ProgressTracker()
        if observer:
            tracker.subscribe(observer)

        tracker.start(1, "Parse Stack Trace", "Extracting stack trace entries")
        frames = self.parser.parse(stack_trace)
        if not frames:
            tracker.error(1, "Parse Stack Trace", "No user-code entries found")
            raise StackTraceAnalyzerError(
                "No valid custom code entries found in stack trace "
                f"(filtered out {', '.join(n + '.*' for n in self.config.noise_namespaces)} entries)",
                ErrorCodes.NO_ACTIONABLE_ENTRIES,
            )

        tracker.set_total_steps(1 + len(frames) * STEPS_PER_FRAME)
        tracker.complete(1, "Parse Stack Trace", f"Found {len(frames)} entries")
        logger.info(f"Analysis started with {len(frames)} stack trace entries "
                    f"({tracker.total_steps} total steps)")

        results = self._analyze_frames(frames, start, tracker)
        summary = AnalysisSummary.from_results(results, start, self.today_provider())
        self._log_summary(summary)

        return AnalysisReport(results=results, summary=summary, progress=tracker.get_steps())

    def _analyze_frames(self, frames: List[StackFrame], start: date,
                        tracker: ProgressTracker) -> List[AnalysisResult]:
        max_workers = min(self.config.max_workers, len(frames))
        if max_workers <= 1:
            return [self.analyze_frame(i, frame, start, tracker) for i, frame in enumerate(frames)]

        results: List[Optional[AnalysisResult]] = [None] * len(frames)
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = {
                executor.submit(self.analyze_frame, i, frame, start, tracker): i
                for i, frame in enumerate(frames)
            }
            for future in as_completed(futures):
                results[futures[future]] = future.result()
        return results

    def analyze_frame(self, index: int, frame: StackFrame, start: date,
                      tracker: ProgressTracker) -> AnalysisResult:
        """Run one frame through the pipeline; never raises"""
        base_step = 1 + index * STEPS_PER_FRAME
        location = ResolvedLocation(namespace=frame.namespace, method_name=frame.method_name)

        step = base_step + 1
        try:
            file_name = self.file_resolver.expected_file_name(frame.namespace)
            tracker.start(step, "Find Source File", f"Locating {file_name} for {frame.namespace}")

            file_path = self.file_resolver.find_source_file(frame.namespace)
            if not file_path:
                tracker.error(step, "Find Source File",
                              f"Source file not found for {frame.namespace}. Manual review needed.")
                return AnalysisResult(frame=frame, location=location, error=FILE_NOT_FOUND_MESSAGE)

            location = ResolvedLocation(namespace=frame.namespace, method_name=frame.method_name,
                                        file_path=file_path, found=True)
            tracker.complete(step, "Find Source File", f"Found: {file_path}")

            step = base_step + 2
            tracker.start(step, "Find Method Location", f"Searching for method {frame.method_name}")

            line_range = self.method_locator.locate(file_path, frame.method_name)
            if not line_range:
                tracker.error(step, "Find Method Location",
                              f"Method {frame.method_name} not found. May be interface/base class. "
                              "Manual review needed.")
                return AnalysisResult(frame=frame, location=location, error=METHOD_NOT_FOUND_MESSAGE)

            location = ResolvedLocation(namespace=frame.namespace, method_name=frame.method_name,
                                        file_path=file_path, found=True, line_range=line_range)
            tracker.complete(step, "Find Method Location", f"Found at lines {line_range.start}-{line_range.end}")

            step = base_step + 3
            tracker.start(step, "Query Git History",
                          f"Analyzing git {self.config.history_mode} for lines {line_range.start}-{line_range.end}")

            commits = self.history.analyze(file_path, line_range, start, mode=self.config.history_mode)
            in_range = sum(1 for c in commits if c.in_date_range)
            tracker.complete(step, "Query Git History", f"Found {len(commits)} commits ({in_range} in date range)")

            return AnalysisResult(frame=frame, location=location, commits=commits)

        except Exception as e:
            logger.error(f"✗ Error processing {frame.key}: {e}")
            tracker.error(step, "Error", f"{frame.key}: {e}")
            return AnalysisResult(frame=frame, location=location, error=str(e))

    def _log_summary(self, summary: AnalysisSummary):
        logger.info("ANALYSIS COMPLETE")
        logger.info(f"Total entries analyzed: {summary.total_entries}")
        logger.info(f"Files found: {summary.files_found}/{summary.total_entries}")
        logger.info(f"Methods found: {summary.methods_found}/{summary.total_entries}")
        logger.info(f"Methods with changes in date range: {summary.with_changes}")


app = typer.Typer(
    help="Trace .NET stack frames back to the commits that last changed them",
    epilog="""
Examples:
  trace-blame analyze crash.txt --start-date 2024-01-01 -p /src/app
  cat crash.txt | trace-blame analyze - -s 2024-01-01 --json
  trace-blame parse crash.txt
  trace-blame locate src/App/Orders/OrderService.cs Submit
    """
)


def _setup_logging(verbose: bool):
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format='%(message)s')


def _read_trace(trace_file: str) -> str:
    if trace_file == '-':
        return sys.stdin.read()
    path = Path(trace_file)
    if not path.exists():
        typer.echo(f"Error: File '{trace_file}' does not exist.", err=True)
        raise typer.Exit(1)
    return path.read_text(encoding='utf-8', errors='replace')


def _load_config(config_file: Optional[str], **overrides) -> AnalyzerConfig:
    try:
        config = AnalyzerConfig.from_file(config_file) if config_file else AnalyzerConfig()
        return config.with_overrides(**overrides)
    except (OSError, ValueError) as e:
        typer.echo(f"Error: Invalid configuration: {e}", err=True)
        raise typer.Exit(1)


def _print_report(report: AnalysisReport):
    for number, result in enumerate(report.results, 1):
        typer.echo(f"\n[{number}] {result.namespace}.{result.method_name}")
        location = result.location
        if location.file_path:
            span = f" (lines {location.line_range.start}-{location.line_range.end})" if location.line_range else ""
            typer.echo(f"  File: {location.file_path}{span}")
        if result.error:
            typer.echo(f"  ✗ {result.error}")
            continue

        typer.echo(f"  ✓ {len(result.commits)} commits ({result.changes_in_range} in date range)")
        for commit in result.commits:
            marker = "IN RANGE" if commit.in_date_range else "before start"
            pr = f"  {commit.pr_url}" if commit.pr_url else ""
            typer.echo(f"    {commit.date.isoformat()}  {commit.short_hash}  {commit.author}  "
                       f"{commit.message}{pr}  [{marker}]")

    summary = report.summary
    typer.echo("\n" + "=" * 60)
    typer.echo("SUMMARY")
    typer.echo("=" * 60)
    typer.echo(f"Date range: {summary.start_date} to {summary.end_date}")
    typer.echo(f"Total entries: {summary.total_entries}")
    typer.echo(f"Files found: {summary.files_found}/{summary.total_entries}")
    typer.echo(f"Methods found: {summary.methods_found}/{summary.total_entries}")
    typer.echo(f"With changes in date range: {summary.with_changes}")


@app.command()
def analyze(
    trace_file: str = typer.Argument(help="File containing the stack trace, '-' for stdin"),
    start_date: str = typer.Option(..., "--start-date", "-s", help="Start date (YYYY-MM-DD)"),
    project_root: Optional[str] = typer.Option(None, "--project-root", "-p", help="Root of the git working tree"),
    history: Optional[str] = typer.Option(None, "--history", help="History query: blame or log"),
    locator: Optional[str] = typer.Option(None, "--locator", "-l", help="Method locator: heuristic or syntax"),
    workers: Optional[int] = typer.Option(None, "--workers", "-w", help="Frames analyzed in parallel"),
    config_file: Optional[str] = typer.Option(None, "--config", "-c", help="JSON configuration file"),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output results in JSON format"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
):
    """Find the commits behind every user-code frame of a stack trace."""
    _setup_logging(verbose)
    config = _load_config(config_file, project_root=project_root, history_mode=history,
                          locator=locator, max_workers=workers)
    stack_trace = _read_trace(trace_file)

    try:
        report = StackTraceAnalyzer(config).analyze(stack_trace, start_date)
    except StackTraceAnalyzerError as e:
        typer.echo(f"Error: {handle_error(e)}", err=True)
        raise typer.Exit(1)

    if json_output:
        typer.echo(json.dumps(report.to_dict(), indent=2))
        return
    _print_report(report)


@app.command()
def parse(
    trace_file: str = typer.Argument(help="File containing the stack trace, '-' for stdin"),
    config_file: Optional[str] = typer.Option(None, "--config", "-c", help="JSON configuration file"),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output frames in JSON format"),
):
    """Show the user-code frames extracted from a stack trace."""
    config = _load_config(config_file)
    frames = StackTraceParser(config.frame_markers, config.noise_namespaces).parse(_read_trace(trace_file))

    if json_output:
        typer.echo(json.dumps([
            {
                'namespace': f.namespace,
                'method_name': f.method_name,
                'source_line_index': f.source_line_index,
                'file_hint': f.file_hint,
                'line_hint': f.line_hint,
            }
            for f in frames
        ], indent=2))
        return

    if not frames:
        typer.echo("No user-code frames found.")
        return
    for f in frames:
        typer.echo(f"{f.namespace}.{f.method_name}")


@app.command()
def locate(
    file: str = typer.Argument(help="C# source file"),
    method: str = typer.Argument(help="Method name"),
    locator: str = typer.Option("heuristic", "--locator", "-l", help="Method locator: heuristic or syntax"),
):
    """Print the line span of a method inside a source file."""
    if not Path(file).exists():
        typer.echo(f"Error: File '{file}' does not exist.", err=True)
        raise typer.Exit(1)
    try:
        method_locator = create_method_locator(locator)
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    line_range = method_locator.locate(file, method)
    if not line_range:
        typer.echo(f"Method {method} not found in {file}")
        raise typer.Exit(1)
    typer.echo(f"{method}: lines {line_range.start}-{line_range.end}")


if __name__ == "__main__":
    app()
