# hopelink/services/parameters.py
from typing import Optional

from loguru import logger

from hopelink.core.errors import ConflictError
from hopelink.schemas import MatchingParameters

DEFAULT_GROUP = "DONOR_RECIPIENT_VOLUNTEER"

class ParameterStore:
    """
    Loads immutable, versioned snapshots of a matching parameter group.
    A scoring batch takes one snapshot up front and uses it for every candidate,
    so an admin edit mid-batch only affects the next batch.
    """

    def __init__(self, repo):
        self.repo = repo

    async def snapshot(self, group: str = DEFAULT_GROUP) -> MatchingParameters:
        try:
            row = await self.repo.get_parameters(group)
        except Exception as exc:
            logger.warning("Failed to load matching parameters for {}, using defaults: {}", group, exc)
            return MatchingParameters(parameter_group=group)
        if not row:
            return MatchingParameters(parameter_group=group)
        return MatchingParameters.model_validate({**row, "parameter_group": group})

    async def update(self, group: str, changes: dict, expected_version: Optional[int]) -> MatchingParameters:
        row = await self.repo.get_parameters(group)
        current = MatchingParameters.model_validate({**row, "parameter_group": group}) if row \
            else MatchingParameters(parameter_group=group)
        merged = MatchingParameters.model_validate({**current.model_dump(), **changes})
        doc = merged.model_dump(exclude={"version", "updated_at", "parameter_group"})

        saved = await self.repo.put_parameters(group, doc, expected_version)
        if saved is None:
            raise ConflictError(
                f"Matching parameters {group} changed since version {expected_version}. Refresh and retry."
            )
        logger.info("Matching parameters {} updated to version {}", group, saved.get("version"))
        return MatchingParameters.model_validate({**saved, "parameter_group": group})
