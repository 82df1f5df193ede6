#!/usr/bin/env python3
"""
History Analyzer

Turns git blame (or git log) output for a method's line span into
CommitRecord objects:
- one record per commit hash, first-seen metadata wins
- in_date_range: commit date on or after the requested start date
- within_retention_window: commit date within the last year; older commits are dropped
- pull request number and source (GitHub or Azure DevOps) taken from the message
"""

import logging
import re
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Tuple

from data_models import AZURE, GITHUB, CommitRecord, LineRange
from repository_gateway import SourceControlGateway

logger = logging.getLogger(__name__)

HASH_LINE_PATTERN = re.compile(r'^([0-9a-f]{40}(?:[0-9a-f]{24})?)\s+\d+\s+\d+')
# Working-tree lines; 64 zeros in SHA-256 repositories
NOT_COMMITTED_HASH = '0' * 40

LOG_RECORD_SEPARATOR = '---END---'
LOG_FORMAT = '%H%n%an%n%ae%n%at%n%s%n' + LOG_RECORD_SEPARATOR
COMMIT_INFO_FORMAT = '%H%n%an%n%ae%n%at%n%s'

# Tried in order, first match wins
PR_PATTERNS = [
    (re.compile(r'Merge pull request #(\d+)'), GITHUB),
    (re.compile(r'\(#(\d+)\)'), GITHUB),
    (re.compile(r'\(PR\s+(\d+)\)'), AZURE),
    (re.compile(r'#(\d+)'), GITHUB),
    (re.compile(r'PR\s+(\d+)'), AZURE),
]


def extract_pr_number(message: str) -> Tuple[Optional[str], Optional[str]]:
    """
    Extract PR number with source detection

    Supports: GitHub "Merge pull request #123", "(#123)", "#123"
              Azure DevOps "(PR 1234)", "PR 1234"

    Returns (pr_number, pr_source), both None when nothing matches.
    """
    for pattern, source in PR_PATTERNS:
        match = pattern.search(message)
        if match:
            return match.group(1), source
    return None, None


def get_pr_url(pr_number: Optional[str], source: Optional[str],
               github_template: str, azure_template: str) -> Optional[str]:
    if not pr_number:
        return None
    if source == AZURE:
        return azure_template.format(number=pr_number)
    return github_template.format(number=pr_number)


def one_year_before(day: date) -> date:
    try:
        return day.replace(year=day.year - 1)
    except ValueError:
        # Feb 29
        return day.replace(year=day.year - 1, day=28)


def timestamp_to_date(raw: str) -> date:
    return datetime.fromtimestamp(int(raw), tz=timezone.utc).date()


class HistoryAnalyzer:
    """
    Queries the source-control gateway and classifies the commits it reports
    """

    def __init__(self, gateway: SourceControlGateway,
                 github_pr_url_template: str = "https://github.com/your-org/your-repo/pull/{number}",
                 azure_pr_url_template: str = "https://dev.azure.com/your-org/your-project/_git/your-repo/pullrequest/{number}",
                 today_provider: Callable[[], date] = date.today):
        self.gateway = gateway
        self.github_pr_url_template = github_pr_url_template
        self.azure_pr_url_template = azure_pr_url_template
        self.today_provider = today_provider

    def retention_cutoff(self) -> date:
        return one_year_before(self.today_provider())

    def analyze(self, file_path: str, line_range: Optional[LineRange], start_date: date,
                mode: str = 'blame') -> List[CommitRecord]:
        if mode == 'log':
            return self.analyze_log(file_path, start_date)
        return self.analyze_blame(file_path, line_range, start_date)

    def analyze_blame(self, file_path: str, line_range: Optional[LineRange],
                      start_date: date) -> List[CommitRecord]:
        """
        Perform git blame on a line range (whole file when None) and analyze commits
        """
        if line_range:
            success, output = self.gateway.blame(file_path, line_range.start, line_range.end)
        else:
            success, output = self.gateway.blame(file_path)

        if not success:
            logger.warning(f"⚠ git blame failed for {file_path}: {output.strip()}")
            return []

        return self.finalize(self.parse_blame_output(output, start_date))

    def analyze_log(self, file_path: str, start_date: date) -> List[CommitRecord]:
        """
        Get all commits that touched the file inside the retention window

        Cheaper than blame when line-level attribution is not needed.
        """
        today = self.today_provider()
        since = self.retention_cutoff().isoformat()
        until = (today + timedelta(days=1)).isoformat()
        success, output = self.gateway.log_file(file_path, since, until, LOG_FORMAT)

        if not success:
            logger.warning(f"⚠ git log failed for {file_path}: {output.strip()}")
            return []

        return self.finalize(self.parse_log_output(output, start_date))

    def get_commit_info(self, commit_hash: str, start_date: date) -> Optional[CommitRecord]:
        """
        Get detailed commit information for a single commit
        """
        success, output = self.gateway.show_commit(commit_hash, COMMIT_INFO_FORMAT)
        if not success:
            logger.warning(f"⚠ Could not read commit {commit_hash[:12]}: {output.strip()}")
            return None

        records = self.parse_log_output(output, start_date)
        return records[0] if records else None

    def parse_blame_output(self, output: str, start_date: date) -> List[CommitRecord]:
        """
        Parse `git blame --porcelain` output in discovery order

        A hash header opens a commit the first time it is seen. Repeated hashes
        are skipped, so their metadata never overwrites the first record.
        """
        seen = set()
        records = []
        current: Optional[Dict[str, object]] = None

        for line in output.split('\n'):
            if not line.strip() or line.startswith('\t'):
                continue

            hash_match = HASH_LINE_PATTERN.match(line)
            if hash_match:
                commit_hash = hash_match.group(1)
                if commit_hash in seen or not commit_hash.strip('0'):
                    current = None
                else:
                    seen.add(commit_hash)
                    current = {'hash': commit_hash}
                continue

            if current is None:
                continue

            if line.startswith('author-mail '):
                current['author_email'] = line[len('author-mail '):].strip().strip('<>')
            elif line.startswith('author-time '):
                current['date'] = timestamp_to_date(line[len('author-time '):].strip())
            elif line.startswith('author '):
                current['author'] = line[len('author '):]
            elif line.startswith('summary '):
                current['message'] = line[len('summary '):]
                if 'date' in current:
                    records.append(self.build_record(
                        commit_hash=current['hash'],
                        author=current.get('author') or 'Unknown',
                        author_email=current.get('author_email'),
                        commit_date=current['date'],
                        message=current['message'],
                        start_date=start_date,
                    ))
                else:
                    logger.debug(f"Skipping commit {current['hash'][:12]} without author-time")
                current = None

        return records

    def parse_log_output(self, output: str, start_date: date) -> List[CommitRecord]:
        """
        Parse `git log` output written with LOG_FORMAT (or COMMIT_INFO_FORMAT)

        Dates come from the author timestamp in UTC, the same as blame mode.
        """
        seen = set()
        records = []

        for block in output.split(LOG_RECORD_SEPARATOR):
            # Leading newline only; an empty subject is still a line
            lines = block.lstrip('\n').split('\n')
            if len(lines) < 5 or not lines[0].strip():
                continue

            commit_hash, author, author_email, raw_date, message = (l.strip() for l in lines[:5])
            if commit_hash in seen:
                continue

            try:
                commit_date = timestamp_to_date(raw_date)
            except (ValueError, OverflowError, OSError):
                logger.debug(f"Skipping commit {commit_hash[:12]} with unreadable date {raw_date!r}")
                continue

            seen.add(commit_hash)
            records.append(self.build_record(
                commit_hash=commit_hash,
                author=author or 'Unknown',
                author_email=author_email or None,
                commit_date=commit_date,
                message=message,
                start_date=start_date,
            ))

        return records

    def build_record(self, commit_hash: str, author: str, author_email: Optional[str],
                     commit_date: date, message: str, start_date: date) -> CommitRecord:
        pr_number, pr_source = extract_pr_number(message)
        return CommitRecord(
            hash=commit_hash,
            author=author,
            author_email=author_email,
            date=commit_date,
            message=message,
            in_date_range=commit_date >= start_date,
            within_retention_window=commit_date >= self.retention_cutoff(),
            pr_number=pr_number,
            pr_source=pr_source,
            pr_url=get_pr_url(pr_number, pr_source, self.github_pr_url_template, self.azure_pr_url_template),
        )

    @staticmethod
    def finalize(records: List[CommitRecord]) -> List[CommitRecord]:
        """Drop commits outside the retention window, newest first, ties in discovery order"""
        retained = [r for r in records if r.within_retention_window]
        return sorted(retained, key=lambda r: r.date, reverse=True)
