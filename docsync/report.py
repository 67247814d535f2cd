import csv
from datetime import datetime
from pathlib import Path

from pydantic import BaseModel, Field

from .models import Action, Classification, ItemOutcome, Rejection

REPORT_COLUMNS = ["action", "status", "name", "id", "folder", "format", "reason", "signals", "chunks_written", "chunks_deleted"]


class RunReport(BaseModel):
    root: str
    started_at: datetime
    finished_at: datetime | None = None
    dry_run: bool = False
    scanned: int = 0
    cutoff: datetime | None = None
    rejected: list[Rejection] = Field(default_factory=list)
    classifications: list[Classification] = Field(default_factory=list)
    outcomes: list[ItemOutcome] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    def counts(self) -> dict[str, int]:
        counts = {action.value: 0 for action in Action}
        for classification in self.classifications:
            counts[classification.action.value] += 1
        counts["SKIPPED"] = len(self.rejected)
        return counts

    @property
    def failures(self) -> list[ItemOutcome]:
        return [o for o in self.outcomes if not o.ok]

    @property
    def exit_code(self) -> int:
        return 1 if self.failures else 0

    def rows(self) -> list[dict[str, object]]:
        """One flat row per classified or skipped item, for tabular export."""
        by_key = {(o.action, o.item_id, o.name): o for o in self.outcomes}
        rows = []
        for c in self.classifications:
            item = c.item
            outcome = by_key.get((c.action, c.document_id, c.name))
            if self.dry_run or c.action == Action.UNCHANGED:
                status = "planned" if self.dry_run and c.action != Action.UNCHANGED else "skipped"
            elif outcome is None:
                status = "pending"
            else:
                status = "ok" if outcome.ok else "failed"
            rows.append(
                {
                    "action": c.action.value,
                    "status": status,
                    "name": c.name,
                    "id": c.document_id or "",
                    "folder": item.folder_path if item else "",
                    "format": item.format_tag.name if item else "",
                    "reason": outcome.reason if outcome is not None and not outcome.ok else c.reason,
                    "signals": ";".join(c.signals.active()),
                    "chunks_written": outcome.chunks_written if outcome else 0,
                    "chunks_deleted": outcome.chunks_deleted if outcome else 0,
                }
            )
        for rejection in self.rejected:
            rows.append(
                {
                    "action": "SKIPPED",
                    "status": "skipped",
                    "name": rejection.item.display_name,
                    "id": rejection.item.id or "",
                    "folder": rejection.item.folder_path,
                    "format": rejection.item.format_tag.name,
                    "reason": f"{rejection.reason.value}: {rejection.detail}" if rejection.detail else rejection.reason.value,
                    "signals": "",
                    "chunks_written": 0,
                    "chunks_deleted": 0,
                }
            )
        return rows

    def write_csv(self, path: str | Path) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", newline="", encoding="utf-8") as f:
            writer = csv.DictWriter(f, fieldnames=REPORT_COLUMNS)
            writer.writeheader()
            writer.writerows(self.rows())
        return path

    def summary_lines(self) -> list[str]:
        counts = self.counts()
        lines = [
            f"Scanned {self.scanned} items"
            + (f", cutoff {self.cutoff.date().isoformat()}" if self.cutoff else ""),
            "  ".join(f"{name}: {count}" for name, count in counts.items()),
        ]
        if self.dry_run:
            lines.append("Dry run: no index changes were made.")
        else:
            written = sum(o.chunks_written for o in self.outcomes)
            deleted = sum(o.chunks_deleted for o in self.outcomes)
            lines.append(f"Chunks written: {written}, chunks deleted: {deleted}")
        for failure in self.failures:
            lines.append(f"FAILED {failure.action.value} {failure.name}: {failure.reason}")
        return lines
