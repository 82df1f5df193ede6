#!/usr/bin/env python3
"""
Repository Gateways for the Stack Trace Blame tool

This module owns every call out of the process: the git command runner used for
blame and log queries, and the directory walk used to find source files.
Callers receive (success, output) tuples or plain lists and never see the
underlying subprocess or OS errors.
"""

import logging
import os
import subprocess
from typing import List, Optional, Tuple

logger = logging.getLogger(__name__)

SKIPPED_DIRECTORIES = {'.git', '.hg', '.svn'}


class SourceControlGateway:
    """
    Interface for version-control queries

    Each method returns (success, output). On failure output holds the error text.
    """

    def blame(self, file_path: str, line_start: Optional[int] = None,
              line_end: Optional[int] = None) -> Tuple[bool, str]:
        raise NotImplementedError

    def log_file(self, file_path: str, since: str, until: str, pretty_format: str) -> Tuple[bool, str]:
        raise NotImplementedError

    def show_commit(self, commit_hash: str, pretty_format: str) -> Tuple[bool, str]:
        raise NotImplementedError


class FileSearchGateway:
    """Interface for locating files by exact name under a root directory"""

    def find_files(self, root: str, file_name: str) -> List[str]:
        raise NotImplementedError


class GitGateway(SourceControlGateway):
    """
    Runs git commands in the project root

    Every invocation is a separate subprocess with its own pipes, so one
    gateway can be shared by worker threads.
    """

    def __init__(self, repo_path: str, timeout: float = 30, git_binary: str = 'git'):
        self.repo_path = repo_path
        self.timeout = timeout
        self.git_binary = git_binary

    def _run_git_command(self, command: List[str]) -> Tuple[bool, str]:
        """
        Run a git command in the repository
        """
        try:
            full_command = [self.git_binary] + command
            result = subprocess.run(
                full_command,
                cwd=self.repo_path,
                capture_output=True,
                text=True,
                encoding='utf-8',
                errors='replace',
                timeout=self.timeout
            )
            return result.returncode == 0, result.stdout if result.returncode == 0 else result.stderr
        except subprocess.TimeoutExpired:
            return False, "Command timed out"
        except (OSError, ValueError) as e:
            return False, str(e)

    def blame(self, file_path: str, line_start: Optional[int] = None,
              line_end: Optional[int] = None) -> Tuple[bool, str]:
        command = ['blame', '--porcelain']
        if line_start is not None and line_end is not None:
            command += ['-L', f'{line_start},{line_end}']
        command += ['--', file_path]
        return self._run_git_command(command)

    def log_file(self, file_path: str, since: str, until: str, pretty_format: str) -> Tuple[bool, str]:
        command = [
            'log',
            f'--since={since}',
            f'--until={until}',
            f'--pretty=format:{pretty_format}',
            '--',
            file_path
        ]
        return self._run_git_command(command)

    def show_commit(self, commit_hash: str, pretty_format: str) -> Tuple[bool, str]:
        return self._run_git_command(['log', '-1', f'--format={pretty_format}', commit_hash])


class WalkFileSearch(FileSearchGateway):
    """
    Recursive exact-name search using os.walk

    Directories are visited in sorted order so the candidate order is stable
    across runs and platforms.
    """

    def find_files(self, root: str, file_name: str) -> List[str]:
        if not os.path.isdir(root):
            logger.warning(f"⚠ Search root does not exist: {root}")
            return []

        matches = []

        def on_error(error: OSError):
            logger.debug(f"Skipping unreadable path during search: {error}")

        for dirpath, dirnames, filenames in os.walk(root, onerror=on_error):
            dirnames[:] = sorted(d for d in dirnames if d not in SKIPPED_DIRECTORIES)
            if file_name in filenames:
                matches.append(os.path.join(dirpath, file_name))

        return matches
