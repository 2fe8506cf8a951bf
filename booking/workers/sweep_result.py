"""Outcome of one lifecycle sweep run."""

from dataclasses import dataclass, field


@dataclass
class SweepResult:
    """
    Counts and ids for a sweep.

    In a dry run, candidates is filled and nothing is attempted.
    """

    job_name: str
    dry_run: bool = False
    candidates: list[str] = field(default_factory=list)
    succeeded: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def attempted(self) -> int:
        return len(self.succeeded) + len(self.failed)

    @property
    def ok(self) -> bool:
        return not self.failed

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1

    def summary(self) -> str:
        if self.dry_run:
            return f"{self.job_name}: dry run, {len(self.candidates)} candidate(s)"
        return (
            f"{self.job_name}: attempted={self.attempted}, "
            f"succeeded={len(self.succeeded)}, failed={len(self.failed)}"
        )
