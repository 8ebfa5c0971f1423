"""Score calculator for maintainer activity."""

from datetime import datetime

from maintrisk.models.schemas import (
    AccessLevel,
    MaintainerActivityReport,
    MaintainerFinding,
)

MAX_SCORE = 10
MIN_SCORE = 0
INCONCLUSIVE_SCORE = -1


def activity_score(active: int, total: int) -> int:
    """Share of active privileged accounts on a 0-10 scale, truncated.

    Returns INCONCLUSIVE_SCORE when there are no privileged accounts.
    """
    if total <= 0:
        return INCONCLUSIVE_SCORE
    return (MAX_SCORE * active) // total


class Scorer:
    """Turns an activity map into per-maintainer findings and a score.

    Every privileged account yields one finding. An inactive account is a
    risk signal: someone who can push or merge but has shown no activity.
    """

    def build_report(
        self,
        project: str,
        activity: dict[str, bool],
        cutoff: datetime,
        min_access_level: AccessLevel = AccessLevel.DEVELOPER,
        evidence: dict[str, str | None] | None = None,
    ) -> MaintainerActivityReport:
        """Build the scored report.

        Args:
            project: Project path or ID the activity belongs to.
            activity: Normalized handle -> active since cutoff.
            cutoff: The cutoff used to compute ``activity``.
            min_access_level: Threshold used to select privileged accounts.
            evidence: Optional handle -> signal source that confirmed it.

        Returns:
            MaintainerActivityReport, findings sorted inactive first.
        """
        evidence = evidence or {}
        findings = [
            MaintainerFinding(username=user, active=is_active, evidence=evidence.get(user))
            for user, is_active in activity.items()
        ]
        findings.sort(key=lambda f: (f.active, f.username))

        active_count = sum(1 for f in findings if f.active)
        return MaintainerActivityReport(
            project=project,
            cutoff=cutoff,
            min_access_level=min_access_level,
            findings=findings,
            active_count=active_count,
            inactive_count=len(findings) - active_count,
            score=activity_score(active_count, len(findings)),
        )
