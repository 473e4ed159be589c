"""Type definitions for GitHub operations."""

from typing import Literal

PRState = Literal["OPEN", "MERGED", "CLOSED"]

PR_STATES: tuple[PRState, ...] = ("OPEN", "MERGED", "CLOSED")
