"""Documentation tree scanning for the system-state snapshot."""

from datetime import datetime, timedelta, timezone
from pathlib import Path

from intentflow.domain.system_state import DocumentStats

EXCLUDED_DIRS = frozenset({"node_modules", ".git", "_site"})


def markdown_files(docs_dir: Path) -> list[Path]:
    """Every *.md under docs_dir, skipping build and VCS directories."""
    docs_dir = Path(docs_dir)
    if not docs_dir.is_dir():
        return []
    return sorted(
        p
        for p in docs_dir.rglob("*.md")
        if p.is_file() and not EXCLUDED_DIRS.intersection(p.relative_to(docs_dir).parts)
    )


def modified_at(path: Path) -> datetime:
    return datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)


def document_stats(docs_dir: Path, now: datetime, window: timedelta = timedelta(days=30)) -> DocumentStats:
    files = markdown_files(docs_dir)
    if not files:
        return DocumentStats()

    sizes = []
    categories: dict[str, int] = {}
    stale = []
    times = []
    for path in files:
        sizes.append(len(path.read_text(encoding="utf-8", errors="replace")))
        mtime = modified_at(path)
        times.append(mtime)
        relative = path.relative_to(docs_dir)
        category = relative.parts[0] if len(relative.parts) > 1 else "."
        categories[category] = categories.get(category, 0) + 1
        if now - mtime > window:
            stale.append(relative.as_posix())

    return DocumentStats(
        total_documents=len(files),
        average_size=sum(sizes) / len(files),
        oldest_document=min(times),
        newest_document=max(times),
        documents_by_category=categories,
        stale_documents=sorted(stale),
    )
