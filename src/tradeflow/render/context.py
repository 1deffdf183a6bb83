"""Runtime context supplied with each deployment request.

The context carries facts the fragments cannot know: who the business is,
who is on the team, and which folder identifiers the provisioning step
assigned. It is validated per request and never cached.

Usage:
    from tradeflow.render.context import RuntimeContext

    context = RuntimeContext.model_validate({
        "business": {"name": "Bright Spark Electric", "domain": "brightspark.ca"},
        "team": [{"role": "manager", "name": "Dana"}],
        "folder_ids": {"URGENT": "F123"},
    })
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

from tradeflow.config_schema import TeamConfig
from tradeflow.core.errors import InvalidArgument


class BusinessIdentity(BaseModel):
    """Business display identity."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1, description="Business display name")
    domain: str = Field(default="", description="Primary mail domain")
    phone: str = Field(default="", description="Public phone number")
    currency: str = Field(default="USD", description="ISO currency code")

    @field_validator("domain")
    @classmethod
    def normalize_domain(cls, v: str) -> str:
        return v.strip().lower().removeprefix("@")

    @field_validator("currency")
    @classmethod
    def normalize_currency(cls, v: str) -> str:
        return v.strip().upper()


class TeamMember(BaseModel):
    """One roster entry. Role names are matched case-insensitively."""

    model_config = ConfigDict(frozen=True)

    role: str = Field(min_length=1, description="Role, e.g. 'manager' or 'supplier'")
    name: str = Field(min_length=1, description="Display name")
    email: str | None = None


class RuntimeContext(BaseModel):
    """Deployment-time facts for one request.

    folder_ids keys are a bare top-level label name ("URGENT") or a
    '/'-joined path ("URGENT/Burst Pipe"). Keys that match no label are
    ignored.
    """

    model_config = ConfigDict(frozen=True)

    business: BusinessIdentity
    team: tuple[TeamMember, ...] = ()
    folder_ids: dict[str, str] = Field(default_factory=dict)

    @field_validator("folder_ids")
    @classmethod
    def normalize_folder_keys(cls, v: dict[str, str]) -> dict[str, str]:
        return {_normalize_path_key(k): folder_id for k, folder_id in v.items()}

    def members(self, role: str) -> list[TeamMember]:
        """Roster entries with the given role, in roster order."""
        wanted = role.strip().casefold()
        return [m for m in self.team if m.role.strip().casefold() == wanted]

    def roster_by_role(self) -> dict[str, list[TeamMember]]:
        grouped: dict[str, list[TeamMember]] = {}
        for member in self.team:
            grouped.setdefault(member.role.strip().casefold(), []).append(member)
        return grouped

    def check_slot_limits(self, team_config: TeamConfig) -> None:
        """Enforce the per-role roster caps.

        Raises:
            InvalidArgument: If a role has more members than it has slots
        """
        for role, members in self.roster_by_role().items():
            limit = team_config.limit_for(role)
            if len(members) > limit:
                raise InvalidArgument(
                    f"Team roster has {len(members)} entries with role '{role}', "
                    f"but only {limit} slots are available. Remove entries or raise "
                    f"team.slot_limits.{role} in config.yaml"
                )

    def folder_id(self, path: tuple[str, ...]) -> str | None:
        return self.folder_ids.get("/".join(path))


def _normalize_path_key(key: str) -> str:
    return "/".join(segment.strip() for segment in key.strip().strip("/").split("/"))
