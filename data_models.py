
"""
Data Models for the Stack Trace Blame tool

This module contains all the data classes and models used throughout the analysis pipeline.
"""

from dataclasses import dataclass, field, asdict
from datetime import date
from typing import List, Optional, Dict, Any


GITHUB = "github"
AZURE = "azure"


@dataclass(frozen=True)
class StackFrame:
    namespace: str
    method_name: str
    source_line_index: int
    file_hint: Optional[str] = None
    line_hint: Optional[int] = None

    @property
    def key(self) -> str:
        return f"{self.namespace}.{self.method_name}"

    @property
    def class_name(self) -> str:
        return self.namespace.rsplit(".", 1)[-1]


@dataclass(frozen=True)
class LineRange:
    start: int
    end: int


@dataclass(frozen=True)
class ResolvedLocation:
    namespace: str
    method_name: str
    file_path: Optional[str] = None
    found: bool = False
    line_range: Optional[LineRange] = None

    @property
    def method_found(self) -> bool:
        return self.line_range is not None


@dataclass(frozen=True)
class CommitRecord:
    hash: str
    author: str
    date: date
    message: str
    in_date_range: bool
    within_retention_window: bool
    author_email: Optional[str] = None
    pr_number: Optional[str] = None
    pr_source: Optional[str] = None
    pr_url: Optional[str] = None

    @property
    def short_hash(self) -> str:
        return self.hash[:12]


@dataclass
class AnalysisResult:
    frame: StackFrame
    location: ResolvedLocation
    commits: List[CommitRecord] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def namespace(self) -> str:
        return self.frame.namespace

    @property
    def method_name(self) -> str:
        return self.frame.method_name

    @property
    def file_found(self) -> bool:
        return self.location.found

    @property
    def method_found(self) -> bool:
        return self.location.method_found

    @property
    def changes_in_range(self) -> int:
        return sum(1 for c in self.commits if c.in_date_range)

    def to_dict(self) -> Dict[str, Any]:
        line_range = self.location.line_range
        return {
            'namespace': self.namespace,
            'method_name': self.method_name,
            'file_path': self.location.file_path or "",
            'file_found': self.file_found,
            'line_range': asdict(line_range) if line_range else None,
            'method_found': self.method_found,
            'commits': [_commit_to_dict(c) for c in self.commits],
            'error': self.error,
        }


@dataclass
class AnalysisSummary:
    total_entries: int
    files_found: int
    methods_found: int
    with_changes: int
    start_date: str
    end_date: str

    @classmethod
    def from_results(cls, results: List[AnalysisResult], start_date: date, end_date: date) -> "AnalysisSummary":
        return cls(
            total_entries=len(results),
            files_found=sum(1 for r in results if r.file_found),
            methods_found=sum(1 for r in results if r.method_found),
            with_changes=sum(1 for r in results if r.changes_in_range > 0),
            start_date=start_date.isoformat(),
            end_date=end_date.isoformat(),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total_entries': self.total_entries,
            'files_found': self.files_found,
            'methods_found': self.methods_found,
            'with_changes': self.with_changes,
            'date_range': {'start_date': self.start_date, 'end_date': self.end_date},
        }


@dataclass
class ProgressStep:
    step_number: int
    total_steps: int
    title: str
    description: str
    status: str
    percentage: int
    timestamp: str


@dataclass
class AnalysisReport:
    results: List[AnalysisResult]
    summary: AnalysisSummary
    progress: List[ProgressStep] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'results': [r.to_dict() for r in self.results],
            'summary': self.summary.to_dict(),
            'progress': [asdict(step) for step in self.progress],
        }


def _commit_to_dict(commit: CommitRecord) -> Dict[str, Any]:
    data = asdict(commit)
    data['date'] = commit.date.isoformat()
    return data
