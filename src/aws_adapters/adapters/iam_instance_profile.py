import logging
from typing import Dict, Iterable, List, Optional

from pydantic import Field

from ..clients import compact, paginate
from ..core_logic.diff_engine import plan_members
from ..core_logic.tagging import from_tag_list, to_tag_list
from ..models import ResourceEvent
from .base import ENVELOPE_REQUIREMENTS, CollectionAdapter, Phase, ResourceAdapter, require

logger = logging.getLogger(__name__)


class IAMInstanceProfileEvent(ResourceEvent):
    iam_instance_profile_aws_id: Optional[str] = None
    iam_instance_profile_arn: Optional[str] = None
    roles: List[Optional[str]] = Field(default_factory=list)
    path: Optional[str] = None


class IAMInstanceProfileAdapter(ResourceAdapter):
    resource_type = "iam_instance_profile"
    event_model = IAMInstanceProfileEvent
    REQUIREMENTS = [
        *ENVELOPE_REQUIREMENTS,
        require("name", "IAM instance profile name invalid"),
    ]

    def create(self) -> None:
        resp = self.iam.create_instance_profile(
            **compact(InstanceProfileName=self.event.name, Path=self.event.path)
        )
        profile = resp["InstanceProfile"]
        self.event.iam_instance_profile_aws_id = profile["InstanceProfileId"]
        self.event.iam_instance_profile_arn = profile["Arn"]
        self.wait(self.iam, "instance_profile_exists", InstanceProfileName=self.event.name)
        logger.info("Created instance profile %s", self.event.iam_instance_profile_arn)

        for role in self.event.roles:
            if role:
                self.iam.add_role_to_instance_profile(InstanceProfileName=self.event.name, RoleName=role)
        self.tag(self.event.name)

    def update(self) -> None:
        plan = plan_members(self.event.roles, self._roles())

        self.enter(Phase.APPLYING)
        for role in plan.to_remove:
            self.iam.remove_role_from_instance_profile(InstanceProfileName=self.event.name, RoleName=role)
        for role in plan.to_add:
            self.iam.add_role_to_instance_profile(InstanceProfileName=self.event.name, RoleName=role)
        self.tag(self.event.name)

    def delete(self) -> None:
        for role in self._roles():
            self.iam.remove_role_from_instance_profile(InstanceProfileName=self.event.name, RoleName=role)
        self.iam.delete_instance_profile(InstanceProfileName=self.event.name)
        logger.info("Deleted instance profile %s", self.event.name)

    def _roles(self) -> List[str]:
        resp = self.iam.get_instance_profile(InstanceProfileName=self.event.name)
        return [r["RoleName"] for r in resp["InstanceProfile"].get("Roles", [])]

    def apply_tags(self, resource_ids: List[str], tags: Dict[str, str]) -> None:
        for profile in resource_ids:
            self.iam.tag_instance_profile(InstanceProfileName=profile, Tags=to_tag_list(tags))


class IAMInstanceProfileCollection(CollectionAdapter):
    resource_type = "iam_instance_profile"

    def find(self) -> Iterable[IAMInstanceProfileEvent]:
        for profile in paginate(self.iam, "list_instance_profiles", "InstanceProfiles"):
            yield self.component(
                IAMInstanceProfileEvent(
                    name=profile["InstanceProfileName"],
                    iam_instance_profile_aws_id=profile.get("InstanceProfileId"),
                    iam_instance_profile_arn=profile.get("Arn"),
                    roles=[r["RoleName"] for r in profile.get("Roles", [])],
                    path=profile.get("Path"),
                    tags=from_tag_list(profile.get("Tags")),
                )
            )
