# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation

"""
Reader for the ref update lines git feeds the pre-receive hook.
"""

from collections.abc import Iterable, Iterator

from pydantic import ValidationError as PydanticValidationError

from .exceptions import RefParseError
from .models import RefUpdate


def parse_ref_line(line: str) -> RefUpdate:
    """
    Parse one `old-sha new-sha ref-name` line.

    Args:
        line: Line without its trailing newline

    Returns:
        RefUpdate for the line

    Raises:
        RefParseError: If the line does not have exactly three fields or the ref name is invalid
    """
    fields = line.split(" ")
    if len(fields) != 3 or not all(fields):
        raise RefParseError(f"malformed line [{line}]")
    try:
        return RefUpdate(old_sha=fields[0], new_sha=fields[1], ref_name=fields[2])
    except PydanticValidationError as e:
        raise RefParseError(f"malformed line [{line}]: {e}") from e


def read_ref_updates(lines: Iterable[str]) -> Iterator[RefUpdate]:
    """
    Lazily parse ref update lines in the order git emits them.

    Blank lines are skipped. Parsing stops at the first malformed line.
    """
    for line in lines:
        line = line.rstrip("\r\n")
        if not line.strip():
            continue
        yield parse_ref_line(line)
