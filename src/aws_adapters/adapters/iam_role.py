import logging
from typing import Dict, Iterable, List, Optional

from pydantic import Field

from ..clients import compact, paginate
from ..core_logic.diff_engine import plan_members
from ..core_logic.tagging import from_tag_list, to_tag_list
from ..models import Action, ResourceEvent
from .base import ENVELOPE_REQUIREMENTS, CollectionAdapter, Phase, ResourceAdapter, require
from .iam_policy import document_text

logger = logging.getLogger(__name__)


class IAMRoleEvent(ResourceEvent):
    iam_role_aws_id: Optional[str] = None
    iam_role_arn: Optional[str] = None
    assume_policy_document: Optional[str] = None
    policies: List[str] = Field(default_factory=list)
    policy_arns: List[Optional[str]] = Field(default_factory=list)
    description: Optional[str] = None
    path: Optional[str] = None


def attached_policy_arns(iam, role_name: str) -> List[str]:
    policies = paginate(iam, "list_attached_role_policies", "AttachedPolicies", RoleName=role_name)
    return [p["PolicyArn"] for p in policies]


class IAMRoleAdapter(ResourceAdapter):
    resource_type = "iam_role"
    event_model = IAMRoleEvent
    REQUIREMENTS = [
        *ENVELOPE_REQUIREMENTS,
        require("name", "IAM role name invalid"),
        require("assume_policy_document", "IAM role assume policy document invalid", on=[Action.CREATE]),
        require("iam_role_aws_id", "IAM role aws id invalid", on=[Action.DELETE]),
    ]

    def create(self) -> None:
        resp = self.iam.create_role(
            **compact(
                RoleName=self.event.name,
                AssumeRolePolicyDocument=self.event.assume_policy_document,
                Description=self.event.description,
                Path=self.event.path,
            )
        )
        role = resp["Role"]
        self.event.iam_role_aws_id = role["RoleId"]
        self.event.iam_role_arn = role["Arn"]
        logger.info("Created IAM role %s", self.event.iam_role_arn)

        for arn in self.event.policy_arns:
            if arn:
                self.iam.attach_role_policy(RoleName=self.event.name, PolicyArn=arn)
        self.tag(self.event.name)

    def update(self) -> None:
        plan = plan_members(self.event.policy_arns, attached_policy_arns(self.iam, self.event.name))

        self.enter(Phase.APPLYING)
        for arn in plan.to_remove:
            self.iam.detach_role_policy(RoleName=self.event.name, PolicyArn=arn)
        for arn in plan.to_add:
            self.iam.attach_role_policy(RoleName=self.event.name, PolicyArn=arn)
        self.tag(self.event.name)

    def delete(self) -> None:
        # A role with attached policies cannot be deleted.
        for arn in attached_policy_arns(self.iam, self.event.name):
            self.iam.detach_role_policy(RoleName=self.event.name, PolicyArn=arn)
        self.iam.delete_role(RoleName=self.event.name)
        logger.info("Deleted IAM role %s", self.event.name)

    def apply_tags(self, resource_ids: List[str], tags: Dict[str, str]) -> None:
        for role_name in resource_ids:
            self.iam.tag_role(RoleName=role_name, Tags=to_tag_list(tags))


class IAMRoleCollection(CollectionAdapter):
    resource_type = "iam_role"

    def find(self) -> Iterable[IAMRoleEvent]:
        for role in paginate(self.iam, "list_roles", "Roles"):
            name = role["RoleName"]
            tags = self.iam.list_role_tags(RoleName=name).get("Tags")
            yield self.component(
                IAMRoleEvent(
                    name=name,
                    iam_role_aws_id=role.get("RoleId"),
                    iam_role_arn=role.get("Arn"),
                    assume_policy_document=document_text(role.get("AssumeRolePolicyDocument")),
                    policy_arns=attached_policy_arns(self.iam, name),
                    description=role.get("Description"),
                    path=role.get("Path"),
                    tags=from_tag_list(tags),
                )
            )
