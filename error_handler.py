#!/usr/bin/env python3
"""
Centralized error handling for the Stack Trace Blame tool
"""

from typing import Any, Optional


class ErrorCodes:
    INVALID_STACK_TRACE = "INVALID_STACK_TRACE"
    NO_ACTIONABLE_ENTRIES = "NO_ACTIONABLE_ENTRIES"
    FILE_NOT_FOUND = "FILE_NOT_FOUND"
    METHOD_NOT_FOUND = "METHOD_NOT_FOUND"
    GIT_ERROR = "GIT_ERROR"
    INVALID_DATE = "INVALID_DATE"
    PROJECT_ROOT_ERROR = "PROJECT_ROOT_ERROR"
    UNKNOWN = "UNKNOWN"


class StackTraceAnalyzerError(Exception):
    """Request-level failure carrying an error code for the caller"""

    def __init__(self, message: str, code: str = ErrorCodes.UNKNOWN, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details


# Per-frame guidance attached to AnalysisResult.error
FILE_NOT_FOUND_MESSAGE = "Source file not found. Please manually verify in codebase."
METHOD_NOT_FOUND_MESSAGE = "Method not found in file. May be defined in interface or base class."

_USER_MESSAGES = {
    ErrorCodes.INVALID_STACK_TRACE: (
        'The stack trace format is not recognized. Please ensure it contains lines starting with "at".'
    ),
    ErrorCodes.FILE_NOT_FOUND: "Source file could not be found in the project directory.",
    ErrorCodes.GIT_ERROR: "Git command failed. Ensure you are in a Git repository with proper permissions.",
    ErrorCodes.INVALID_DATE: "Invalid date format. Please use YYYY-MM-DD format.",
}


def handle_error(error: Any) -> str:
    """Map an exception to the message shown to the user"""
    if isinstance(error, StackTraceAnalyzerError):
        return _USER_MESSAGES.get(error.code, error.message)
    if isinstance(error, BaseException):
        return str(error)
    return "An unexpected error occurred. Please try again."
