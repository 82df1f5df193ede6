#!/usr/bin/env python3
"""
Method Locator

Finds the 1-based inclusive line span of a method inside a source file.

The default locator is a line heuristic: the first line that looks like a
declaration of the method starts the span, and the span ends where the running
brace balance first returns to zero. Braces inside string literals, char
literals and comments are counted too, which can misplace the end line. The
syntax locator in csharp_parser avoids that by walking a tree-sitter parse tree.
"""

import logging
import re
from typing import List, Optional, Pattern

from data_models import LineRange

logger = logging.getLogger(__name__)


def build_signature_pattern(method_name: str) -> Pattern:
    """
    Permissive declaration pattern: optional access modifier, optional async and
    static, any return type, then the method name and an opening parenthesis.
    """
    return re.compile(
        r'(public|private|protected|internal)?\s*(async\s*)?(static\s*)?.*?\s+'
        + re.escape(method_name)
        + r'\s*\(',
        re.IGNORECASE
    )


def find_declaration_line(lines: List[str], method_name: str) -> Optional[int]:
    """0-based index of the first declaration-looking line; overloads resolve to the first"""
    pattern = build_signature_pattern(method_name)
    for index, line in enumerate(lines):
        if pattern.search(line):
            return index
    return None


def find_method_end_line(lines: List[str], start: int) -> Optional[int]:
    """
    Track braces from the declaration line until the balance returns to zero.

    Returns the 0-based closing line, or None if the body never opens
    (interface members, abstract methods).
    """
    brace_count = 0
    found_opening_brace = False

    for index in range(start, len(lines)):
        line = lines[index]
        # Per character, so "Count() { return _n; }" closes on its own line
        for char in line:
            if char == '{':
                brace_count += 1
                found_opening_brace = True
            elif char == '}':
                brace_count -= 1
                if found_opening_brace and brace_count == 0:
                    return index

        if not found_opening_brace and line.rstrip().endswith(';'):
            # Expression-bodied member "=> expr;" is a body, a bare ";" is a stub
            return index if '=>' in line else None

    return None


def find_method_line_range(lines: List[str], method_name: str) -> Optional[LineRange]:
    start = find_declaration_line(lines, method_name)
    if start is None:
        return None

    end = find_method_end_line(lines, start)
    if end is None:
        return None

    return LineRange(start=start + 1, end=min(end + 1, len(lines)))


def read_source_lines(file_path: str) -> Optional[List[str]]:
    try:
        with open(file_path, 'r', encoding='utf-8-sig', errors='replace') as f:
            return f.read().splitlines()
    except OSError as e:
        logger.warning(f"⚠ Could not read {file_path}: {e}")
        return None


class MethodLocator:
    """Interface shared by the heuristic and syntax locators"""

    def locate(self, file_path: str, method_name: str) -> Optional[LineRange]:
        raise NotImplementedError


class HeuristicMethodLocator(MethodLocator):

    def locate(self, file_path: str, method_name: str) -> Optional[LineRange]:
        lines = read_source_lines(file_path)
        if lines is None:
            return None

        line_range = find_method_line_range(lines, method_name)
        if line_range is None:
            logger.debug(f"Method {method_name} not found in {file_path}")
        return line_range


def create_method_locator(kind: str = 'heuristic') -> MethodLocator:
    if kind == 'heuristic':
        return HeuristicMethodLocator()
    if kind == 'syntax':
        from csharp_parser import SyntaxMethodLocator
        return SyntaxMethodLocator()
    raise ValueError(f"Unknown method locator: {kind}")
