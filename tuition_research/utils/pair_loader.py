"""
Load school/program pairs for batch research.

Format: one pair per line, ``School | Program`` (an optional third column
is the project id). Blank lines and lines starting with # are ignored.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class ProgramEntry:
    """A parsed line from a pairs file."""

    school: str
    program: str
    project_id: Optional[str] = None


def load_program_pairs(file_path: str, default_project: Optional[str] = None, logger=None) -> list[ProgramEntry]:
    """Load pairs from a pipe-delimited file.

    Malformed lines are skipped with a warning; duplicate pairs
    (case-insensitive) keep their first occurrence.

    Args:
        file_path: Path to the pairs file
        default_project: Project id for lines without one
        logger: Optional PipelineLogger or logging.Logger for warnings

    Returns:
        Entries in file order
    """
    entries = []
    seen: set[tuple[str, str]] = set()

    with open(file_path, encoding="utf-8") as f:
        for line_number, line in enumerate(f, 1):
            line = line.strip()
            if not line or line.startswith("#"):
                continue

            parts = [p.strip() for p in line.split("|")]
            if len(parts) < 2 or not parts[0] or not parts[1]:
                if logger:
                    logger.warning(f"Skipping malformed line {line_number}: {line[:80]}")
                continue

            key = (parts[0].lower(), parts[1].lower())
            if key in seen:
                continue
            seen.add(key)

            entries.append(
                ProgramEntry(
                    school=parts[0],
                    program=parts[1],
                    project_id=parts[2] if len(parts) >= 3 and parts[2] else default_project,
                )
            )

    return entries
