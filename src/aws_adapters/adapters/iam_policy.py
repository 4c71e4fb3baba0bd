import json
import logging
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import unquote

from ..clients import compact, paginate
from ..core_logic.tagging import from_tag_list, to_tag_list
from ..models import Action, ResourceEvent
from .base import ENVELOPE_REQUIREMENTS, CollectionAdapter, ResourceAdapter, require

logger = logging.getLogger(__name__)


def document_text(document: Any) -> Optional[str]:
    """IAM documents come back either parsed (boto3) or URL-encoded JSON text."""
    if document is None:
        return None
    if isinstance(document, str):
        return unquote(document)
    return json.dumps(document)


class IAMPolicyEvent(ResourceEvent):
    iam_policy_aws_id: Optional[str] = None
    iam_policy_arn: Optional[str] = None
    policy_document: Optional[str] = None
    description: Optional[str] = None
    path: Optional[str] = None


class IAMPolicyAdapter(ResourceAdapter):
    resource_type = "iam_policy"
    event_model = IAMPolicyEvent
    REQUIREMENTS = [
        *ENVELOPE_REQUIREMENTS,
        require("name", "IAM policy name invalid", on=[Action.CREATE]),
        require("policy_document", "IAM policy document invalid", on=[Action.CREATE]),
        require("iam_policy_arn", "IAM policy arn invalid", on=[Action.DELETE]),
    ]

    def create(self) -> None:
        resp = self.iam.create_policy(
            **compact(
                PolicyName=self.event.name,
                PolicyDocument=self.event.policy_document,
                Description=self.event.description,
                Path=self.event.path,
            )
        )
        policy = resp["Policy"]
        self.event.iam_policy_aws_id = policy["PolicyId"]
        self.event.iam_policy_arn = policy["Arn"]
        logger.info("Created IAM policy %s", self.event.iam_policy_arn)
        self.tag(self.event.iam_policy_arn)

    def delete(self) -> None:
        self.iam.delete_policy(PolicyArn=self.event.iam_policy_arn)
        logger.info("Deleted IAM policy %s", self.event.iam_policy_arn)

    def apply_tags(self, resource_ids: List[str], tags: Dict[str, str]) -> None:
        for arn in resource_ids:
            self.iam.tag_policy(PolicyArn=arn, Tags=to_tag_list(tags))


class IAMPolicyCollection(CollectionAdapter):
    resource_type = "iam_policy"

    def find(self) -> Iterable[IAMPolicyEvent]:
        for policy in paginate(self.iam, "list_policies", "Policies", Scope="Local"):
            arn = policy["Arn"]
            version = self.iam.get_policy_version(PolicyArn=arn, VersionId=policy["DefaultVersionId"])
            tags = self.iam.list_policy_tags(PolicyArn=arn).get("Tags")
            yield self.component(
                IAMPolicyEvent(
                    name=policy["PolicyName"],
                    iam_policy_aws_id=policy.get("PolicyId"),
                    iam_policy_arn=arn,
                    policy_document=document_text(version["PolicyVersion"].get("Document")),
                    description=policy.get("Description"),
                    path=policy.get("Path"),
                    tags=from_tag_list(tags),
                )
            )
