#!/usr/bin/env python3
"""
Stack Trace Parser

Turns a pasted .NET exception stack trace into StackFrame objects:
1. Keep only lines shaped like "at Namespace.Class.Method(args) [in File:line N]"
2. Drop runtime library frames (System.* by default)
3. Undo compiler decoration (generic arity, generic argument lists,
   async state machines, lambdas and local functions)
4. Deduplicate on Namespace.Class.Method, keeping first-seen order
"""

import logging
import re
from typing import Iterable, List, Optional, Sequence, Tuple

from analyzer_config import DEFAULT_FRAME_MARKERS, DEFAULT_NOISE_NAMESPACES
from data_models import StackFrame

logger = logging.getLogger(__name__)

ARITY_PATTERN = re.compile(r'`\d+')
GENERIC_ARGS_PATTERN = re.compile(r'\[[^\[\]]*\]')
WRAPPER_PATTERN = re.compile(r'^<+([^<>]*)>')
LOCATION_PATTERN = re.compile(r'^\s+\S+\s+(?P<file>.+):\S+\s+(?P<line>\d+)\s*$')
CONSTRUCTOR_TOKENS = {'ctor', 'cctor'}


class FunctionNameProcessor:
    """Cleans compiler-generated decoration out of frame names"""

    @staticmethod
    def strip_generic_arguments(name: str) -> str:
        previous = None
        while previous != name:
            previous = name
            name = GENERIC_ARGS_PATTERN.sub('', name)
        return name

    @staticmethod
    def normalize_method_name(raw: str) -> str:
        """
        Normalize a raw method token.

        Examples:
            Get`1           -> Get
            Get[T]          -> Get
            Get<T>          -> Get
            <SubmitAsync>d__5 -> SubmitAsync
            <Submit>b__0    -> Submit
        """
        name = ARITY_PATTERN.sub('', raw)
        name = FunctionNameProcessor.strip_generic_arguments(name)
        if '<' in name:
            wrapped = WRAPPER_PATTERN.match(name)
            if wrapped:
                return wrapped.group(1).strip()
            name = name.split('<', 1)[0]
        return name.strip()

    @staticmethod
    def pop_generated_type(segments: List[str]) -> Optional[str]:
        """
        Remove a trailing compiler-generated type from the namespace segments.

        Handles both "Class.<Run>d__3" and "Class+<Run>d__3" spellings.
        Returns the generated type name, or None if the last segment is user code.
        """
        if not segments:
            return None
        owner, _, nested = segments[-1].rpartition('+')
        if not nested.startswith('<'):
            return None
        if owner:
            segments[-1] = owner
        else:
            segments.pop()
        return nested


class StackTraceParser:
    """Extracts user-code frames from raw stack trace text"""

    def __init__(self, frame_markers: Sequence[str] = DEFAULT_FRAME_MARKERS,
                 noise_namespaces: Sequence[str] = DEFAULT_NOISE_NAMESPACES):
        self.noise_namespaces = set(noise_namespaces)
        alternation = "|".join(re.escape(m) for m in sorted(frame_markers, key=len, reverse=True))
        self.frame_pattern = re.compile(
            rf'^(?:{alternation})\s+(?P<name>[^\s(]+)\((?P<args>[^)]*)\)(?P<location>.*)$'
        )

    def parse(self, stack_trace: str) -> List[StackFrame]:
        """Parse and deduplicate. An empty list means nothing actionable was found."""
        return deduplicate_frames(self.parse_frames(stack_trace))

    def parse_frames(self, stack_trace: str) -> List[StackFrame]:
        frames = []
        for index, line in enumerate(stack_trace.splitlines()):
            frame = self.parse_line(line, index)
            if frame:
                frames.append(frame)
        logger.debug(f"Parsed {len(frames)} user-code frames from trace")
        return frames

    def parse_line(self, line: str, index: int = 0) -> Optional[StackFrame]:
        match = self.frame_pattern.match(line.strip())
        if not match:
            return None

        qualified_name = match.group('name')
        if self.is_noise(qualified_name):
            return None

        split = self.split_qualified_name(qualified_name)
        if not split:
            return None
        namespace, method_name = split

        file_hint, line_hint = None, None
        location = LOCATION_PATTERN.match(match.group('location'))
        if location:
            file_hint = location.group('file').strip()
            line_hint = int(location.group('line'))

        return StackFrame(
            namespace=namespace,
            method_name=method_name,
            source_line_index=index,
            file_hint=file_hint,
            line_hint=line_hint
        )

    def is_noise(self, qualified_name: str) -> bool:
        top_level = qualified_name.split('.', 1)[0]
        return top_level in self.noise_namespaces

    def split_qualified_name(self, qualified_name: str) -> Optional[Tuple[str, str]]:
        """
        Split "Ns.Class.Method" into ("Ns.Class", "Method").

        Returns None when there is no namespace part to resolve a file from.
        """
        cleaned = FunctionNameProcessor.strip_generic_arguments(ARITY_PATTERN.sub('', qualified_name))

        # Constructors render as "Ns.Class..ctor"
        head, sep, tail = cleaned.rpartition('..')
        if sep and tail in CONSTRUCTOR_TOKENS:
            segments = head.split('.')
            if len(segments) < 2:
                return None
            return head, segments[-1].rsplit('+', 1)[-1]

        segments = cleaned.split('.')
        if len(segments) < 2 or not all(segments):
            return None

        method_token = segments.pop()
        generated = FunctionNameProcessor.pop_generated_type(segments)
        while generated is not None:
            inner = WRAPPER_PATTERN.match(generated)
            if inner and inner.group(1):
                # State machine type "<Run>d__3" stands for method Run
                method_token = generated
            generated = FunctionNameProcessor.pop_generated_type(segments)

        method_name = FunctionNameProcessor.normalize_method_name(method_token)
        if not segments or not method_name:
            return None
        return '.'.join(segments), method_name


def deduplicate_frames(frames: Iterable[StackFrame]) -> List[StackFrame]:
    """Remove duplicate Namespace.Method entries, keeping first occurrence order"""
    seen = set()
    unique = []
    for frame in frames:
        if frame.key not in seen:
            seen.add(frame.key)
            unique.append(frame)
    return unique


def parse_stack_trace(stack_trace: str, frame_markers: Sequence[str] = DEFAULT_FRAME_MARKERS,
                      noise_namespaces: Sequence[str] = DEFAULT_NOISE_NAMESPACES) -> List[StackFrame]:
    return StackTraceParser(frame_markers, noise_namespaces).parse(stack_trace)


def format_frame(frame: StackFrame) -> str:
    return f"at {frame.namespace}.{frame.method_name}()"


def render_frames(frames: Iterable[StackFrame]) -> str:
    return "\n".join(format_frame(f) for f in frames)
