import logging
from typing import Any, Dict, Iterable, List, Optional

from botocore.exceptions import ClientError
from pydantic import Field

from ..clients import compact
from ..core_logic.tagging import from_tag_list, to_tag_list
from ..errors import FieldValidationError
from ..models import ResourceEvent, WireModel
from .base import ENVELOPE_REQUIREMENTS, CollectionAdapter, Phase, ResourceAdapter, require

logger = logging.getLogger(__name__)

DEFAULT_REGION = "us-east-1"  # Buckets here take no location constraint

# grantee type on the wire -> (provider grantee type, provider identifier field)
GRANTEE_TYPES = {
    "id": ("CanonicalUser", "ID"),
    "emailaddress": ("AmazonCustomerByEmail", "EmailAddress"),
    "uri": ("Group", "URI"),
}


class Grantee(WireModel):
    id: Optional[str] = None
    type: Optional[str] = None
    permissions: Optional[str] = None


class S3Event(ResourceEvent):
    acl: Optional[str] = None
    bucket_location: Optional[str] = None
    bucket_uri: Optional[str] = None
    grantees: List[Grantee] = Field(default_factory=list)


def to_grant(grantee: Grantee) -> Dict[str, Any]:
    provider_type, id_field = GRANTEE_TYPES[(grantee.type or "").lower()]
    return {
        "Grantee": {"Type": provider_type, id_field: grantee.id},
        "Permission": (grantee.permissions or "").upper(),
    }


def from_grant(grant: Dict[str, Any]) -> Optional[Grantee]:
    provider = grant.get("Grantee", {})
    for wire_type, (provider_type, id_field) in GRANTEE_TYPES.items():
        if provider.get("Type") == provider_type:
            return Grantee(id=provider.get(id_field), type=wire_type, permissions=grant.get("Permission"))
    return None


class S3Adapter(ResourceAdapter):
    resource_type = "s3"
    event_model = S3Event
    REQUIREMENTS = [
        *ENVELOPE_REQUIREMENTS,
        require("name", "S3 bucket name invalid"),
    ]

    def validate_fields(self) -> None:
        for i, grantee in enumerate(self.event.grantees):
            if (grantee.type or "").lower() not in GRANTEE_TYPES:
                raise FieldValidationError(
                    self.resource_type, f"grantees[{i}].type", "S3 grantee type invalid"
                )

    def create(self) -> None:
        location = self.event.bucket_location or self.event.datacenter_region
        params = compact(Bucket=self.event.name, ACL=self.event.acl)
        if location != DEFAULT_REGION:
            params["CreateBucketConfiguration"] = {"LocationConstraint": location}
        resp = self.s3.create_bucket(**params)
        self.event.bucket_uri = resp.get("Location")
        logger.info("Created bucket %s", self.event.name)

        if self.event.grantees:
            self.enter(Phase.APPLYING)
            self._apply_acl()
        self.tag(self.event.name)

    def update(self) -> None:
        self.enter(Phase.APPLYING)
        self._apply_acl()
        self.tag(self.event.name)

    def _apply_acl(self) -> None:
        if self.event.acl and not self.event.grantees:
            self.s3.put_bucket_acl(Bucket=self.event.name, ACL=self.event.acl)
            return
        if not self.event.grantees:
            return
        owner = self.s3.get_bucket_acl(Bucket=self.event.name)["Owner"]
        self.s3.put_bucket_acl(
            Bucket=self.event.name,
            AccessControlPolicy={
                "Owner": owner,
                "Grants": [to_grant(g) for g in self.event.grantees],
            },
        )

    def delete(self) -> None:
        self.s3.delete_bucket(Bucket=self.event.name)
        logger.info("Deleted bucket %s", self.event.name)

    def apply_tags(self, resource_ids: List[str], tags: Dict[str, str]) -> None:
        for bucket in resource_ids:
            self.s3.put_bucket_tagging(Bucket=bucket, Tagging={"TagSet": to_tag_list(tags)})


class S3Collection(CollectionAdapter):
    resource_type = "s3"

    def find(self) -> Iterable[S3Event]:
        for bucket in self.s3.list_buckets().get("Buckets", []):
            name = bucket["Name"]
            acl = self.s3.get_bucket_acl(Bucket=name)
            grantees = [g for g in (from_grant(grant) for grant in acl.get("Grants", [])) if g]
            location = self.s3.get_bucket_location(Bucket=name).get("LocationConstraint")
            yield self.component(
                S3Event(
                    name=name,
                    bucket_location=location or DEFAULT_REGION,
                    grantees=grantees,
                    tags=self._tags(name),
                )
            )

    def _tags(self, bucket: str) -> Dict[str, str]:
        try:
            resp = self.s3.get_bucket_tagging(Bucket=bucket)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") == "NoSuchTagSet":
                return {}
            raise
        return from_tag_list(resp.get("TagSet"))
