"""Discovery of accounts with elevated project permissions."""

import logging

from maintrisk.analyzers.ledger import normalize_handle
from maintrisk.clients.base import paginate
from maintrisk.clients.gitlab import GitLabClient
from maintrisk.models.schemas import AccessLevel

logger = logging.getLogger(__name__)


class PrivilegedAccountResolver:
    """Finds project members at or above a minimum access level.

    Uses the ``members/all`` listing, which includes members inherited from
    parent groups as well as direct members.
    """

    def __init__(
        self,
        client: GitLabClient,
        min_access_level: AccessLevel = AccessLevel.DEVELOPER,
        page_size: int = 100,
    ) -> None:
        self.client = client
        self.min_access_level = min_access_level
        self.page_size = page_size

    async def resolve(self, project: str | int) -> set[str]:
        """Return normalized handles of all privileged members.

        Any page failure propagates: a partial member list would make every
        later activity verdict meaningless.
        """

        async def fetch(page: int):
            return await self.client.list_all_project_members(
                project, page=page, per_page=self.page_size
            )

        elevated: set[str] = set()
        async for member in paginate(fetch):
            handle = normalize_handle(member.username)
            if not handle:
                continue
            if member.access_level >= self.min_access_level:
                elevated.add(handle)

        logger.debug(
            f"Resolved {len(elevated)} members with access level >= "
            f"{self.min_access_level.name} for {project}"
        )
        return elevated
