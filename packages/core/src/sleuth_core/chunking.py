"""Turn unified diff text into ChangedFile records and hunk-sized CodeChunks.

This is deliberately simple: every hunk becomes one ``range`` chunk covering
the hunk's new-file lines. Chunk hashes depend on the file path and hunk
content only, so an unchanged hunk keeps its hash across runs (even when it
shifts within the file) and the review tracker can skip it.
"""

from __future__ import annotations

import hashlib
import logging
import re
from dataclasses import dataclass

from sleuth_core.models import ChangedFile, CodeChunk
from sleuth_core.utils.code import is_code_file, is_excluded

logger = logging.getLogger(__name__)

_HUNK_RE = re.compile(r"^@@ -\d+(?:,\d+)? \+(\d+)(?:,(\d+))? @@ ?(.*)$")


@dataclass
class FilePatch:
    changed_file: ChangedFile
    patch: str


def content_hash(content: str) -> str:
    return hashlib.sha256(content.encode("utf-8")).hexdigest()[:16]


def _to_ranges(lines: list[int]) -> list[tuple[int, int]]:
    ranges: list[tuple[int, int]] = []
    for n in lines:
        if ranges and ranges[-1][1] == n - 1:
            ranges[-1] = (ranges[-1][0], n)
        else:
            ranges.append((n, n))
    return ranges


def _scan_patch(patch: str) -> tuple[int, int, list[int]]:
    """Return (additions, deletions, added new-file line numbers) for a patch."""
    additions = deletions = 0
    added: list[int] = []
    file_line: int | None = None
    for line in patch.splitlines():
        match = _HUNK_RE.match(line)
        if match:
            file_line = int(match.group(1))
            continue
        if file_line is None:
            continue
        if line.startswith("+"):
            additions += 1
            added.append(file_line)
            file_line += 1
        elif line.startswith("-"):
            deletions += 1  # removed line — does not advance the new-file counter
        elif not line.startswith("\\"):  # "\ No newline at end of file"
            file_line += 1
    return additions, deletions, added


def parse_unified_diff(diff_text: str) -> list[FilePatch]:
    """Split ``git diff`` output into one FilePatch per file."""
    patches: list[FilePatch] = []
    path: str | None = None
    status = "modified"
    body: list[str] = []
    in_hunks = False

    def flush():
        if path is None:
            return
        patch = "\n".join(body)
        additions, deletions, added = _scan_patch(patch)
        changed = ChangedFile(
            path=path,
            status=status,
            additions=additions,
            deletions=deletions,
            changed_lines=_to_ranges(added),
        )
        patches.append(FilePatch(changed_file=changed, patch=patch))

    for line in diff_text.splitlines():
        if line.startswith("diff --git "):
            flush()
            path = line.split(" b/", 1)[-1] if " b/" in line else line.split()[-1]
            status = "modified"
            body = []
            in_hunks = False
            continue
        if path is None:
            continue
        if not in_hunks:
            if line.startswith("new file mode"):
                status = "added"
            elif line.startswith("deleted file mode"):
                status = "deleted"
            elif line.startswith("rename to "):
                status = "renamed"
                path = line[len("rename to ") :]
            elif line.startswith("+++ b/"):
                path = line[len("+++ b/") :]
            elif line.startswith("@@"):
                in_hunks = True
                body.append(line)
            continue
        body.append(line)

    flush()
    return patches


def chunk_patch(file_path: str, patch: str) -> list[CodeChunk]:
    """Build one range chunk per hunk from the hunk's new-file lines."""
    chunks: list[CodeChunk] = []
    start: int | None = None
    context = ""
    lines: list[str] = []

    def close():
        if start is None or not lines:
            return
        end = start + len(lines) - 1
        content = "\n".join(lines)
        chunks.append(
            CodeChunk(
                id=f"{file_path}:{start}-{end}",
                name=context or f"lines {start}-{end}",
                type="range",
                file=file_path,
                start_line=start,
                end_line=end,
                content=content,
                hash=content_hash(f"{file_path}\n{content}"),
            )
        )

    for line in patch.splitlines():
        match = _HUNK_RE.match(line)
        if match:
            close()
            start = int(match.group(1))
            context = match.group(3).strip()
            lines = []
            continue
        if start is None or line.startswith("-") or line.startswith("\\"):
            continue
        lines.append(line[1:] if line[:1] in ("+", " ") else line)

    close()
    return chunks


def chunk_diff(diff_text: str, exclude: list[str] | None = None) -> tuple[list[ChangedFile], list[CodeChunk]]:
    """Parse a diff and chunk every reviewable file in it.

    Deleted, excluded and non-code files are reported as changed files but
    produce no chunks.
    """
    changed_files: list[ChangedFile] = []
    chunks: list[CodeChunk] = []
    for file_patch in parse_unified_diff(diff_text):
        changed = file_patch.changed_file
        changed_files.append(changed)
        if changed.status == "deleted":
            continue
        if is_excluded(changed.path, exclude or []) or not is_code_file(changed.path):
            logger.debug("Skipping %s (excluded or not code)", changed.path)
            continue
        chunks.extend(chunk_patch(changed.path, file_patch.patch))
    return changed_files, chunks
