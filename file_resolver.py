#!/usr/bin/env python3
"""
Source File Resolver

Finds the source file for a namespace. When several files share the class
name, the one whose directory structure best mirrors the namespace wins.
"""

import logging
import os
from dataclasses import dataclass
from typing import List, Optional

from repository_gateway import FileSearchGateway, WalkFileSearch

logger = logging.getLogger(__name__)

CONSECUTIVE_MATCH_WEIGHT = 100
CONTAINMENT_MATCH_WEIGHT = 10


@dataclass
class FileMatch:
    path: str
    score: int


def _normalize_path(path: str) -> str:
    return path.replace('\\', '/').lower()


def relative_candidate_path(file_path: str, project_root: str) -> str:
    """Candidate path relative to the project root, lowercase with forward slashes"""
    if os.path.isabs(file_path) or not os.path.isabs(project_root):
        try:
            relative = os.path.relpath(file_path, project_root)
        except ValueError:
            # Different drive on Windows
            relative = file_path
    else:
        # Already relative to the root
        relative = file_path
    return _normalize_path(relative)


def calculate_namespace_score(file_path: str, namespace: str, project_root: str) -> int:
    """
    Calculate namespace matching score for a file

    consecutive: leading path parts equal to leading namespace parts, stopping at
                 the first mismatch
    total:       namespace parts found anywhere in the relative path

    Score = 100 * consecutive + 10 * total
    """
    relative_path = relative_candidate_path(file_path, project_root)
    namespace_parts = [p.lower() for p in namespace.split('.')[:-1]]
    path_parts = relative_path.split('/')

    consecutive_matches = 0
    for namespace_part, path_part in zip(namespace_parts, path_parts):
        if namespace_part != path_part:
            break
        consecutive_matches += 1

    total_matches = sum(1 for part in namespace_parts if part in relative_path)

    return consecutive_matches * CONSECUTIVE_MATCH_WEIGHT + total_matches * CONTAINMENT_MATCH_WEIGHT


class FileResolver:
    """
    Resolves namespaces to source files under a project root
    """

    def __init__(self, project_root: str, source_extension: str = 'cs',
                 file_search: Optional[FileSearchGateway] = None):
        self.project_root = project_root
        self.source_extension = source_extension.lstrip('.')
        self.file_search = file_search or WalkFileSearch()

    def expected_file_name(self, namespace: str) -> str:
        class_name = namespace.rsplit('.', 1)[-1]
        # Nested types "Outer+Inner" live in the outer type's file
        class_name = class_name.split('+', 1)[0]
        return f"{class_name}.{self.source_extension}"

    def find_candidates(self, file_name: str) -> List[str]:
        try:
            return list(self.file_search.find_files(self.project_root, file_name))
        except OSError as e:
            logger.warning(f"⚠ File search for {file_name} failed: {e}")
            return []

    def namespace_score(self, file_path: str, namespace: str) -> int:
        return calculate_namespace_score(file_path, namespace, self.project_root)

    def rank_candidates(self, candidates: List[str], namespace: str) -> List[FileMatch]:
        """Score every candidate, best first; equal scores keep search order"""
        scored = [FileMatch(path=path, score=self.namespace_score(path, namespace)) for path in candidates]
        return sorted(scored, key=lambda m: m.score, reverse=True)

    def find_source_file(self, namespace: str) -> Optional[str]:
        """
        Find source file for a given namespace

        Returns None when no file with the class name exists.
        """
        file_name = self.expected_file_name(namespace)
        candidates = self.find_candidates(file_name)

        if not candidates:
            logger.debug(f"No {file_name} found under {self.project_root}")
            return None

        if len(candidates) == 1:
            return candidates[0]

        best = self.rank_candidates(candidates, namespace)[0]
        logger.info(
            f"Found {len(candidates)} {file_name} files. Using best match with score {best.score}: {best.path}"
        )
        return best.path
