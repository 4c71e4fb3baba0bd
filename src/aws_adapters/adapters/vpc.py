import logging
from typing import Iterable, Optional

from botocore.exceptions import BotoCoreError, ClientError

from ..clients import paginate
from ..core_logic.tagging import from_tag_list
from ..errors import VPC_ID_INVALID
from ..models import Action, ResourceEvent
from .base import ENVELOPE_REQUIREMENTS, CollectionAdapter, ResourceAdapter, require

logger = logging.getLogger(__name__)


class VpcEvent(ResourceEvent):
    vpc_aws_id: Optional[str] = None
    subnet: Optional[str] = None  # CIDR block of the VPC
    auto_remove: bool = False


class VpcAdapter(ResourceAdapter):
    resource_type = "vpc"
    event_model = VpcEvent
    REQUIREMENTS = [
        require("vpc_aws_id", VPC_ID_INVALID, on=[Action.DELETE]),
        *ENVELOPE_REQUIREMENTS,
        require("subnet", "VPC subnet invalid", on=[Action.CREATE]),
    ]

    def create(self) -> None:
        resp = self.ec2.create_vpc(CidrBlock=self.event.subnet)
        self.event.vpc_aws_id = resp["Vpc"]["VpcId"]
        logger.info("Created vpc %s", self.event.vpc_aws_id)
        self.tag(self.event.vpc_aws_id)

    def delete(self) -> None:
        # Best-effort: a VPC that still has dependents completes with a warning.
        try:
            self.ec2.delete_vpc(VpcId=self.event.vpc_aws_id)
        except (ClientError, BotoCoreError) as e:
            self.warn(f"WARN : Could not remove the vpc - {e}")
            return
        logger.info("Deleted vpc %s", self.event.vpc_aws_id)


class VpcCollection(CollectionAdapter):
    resource_type = "vpc"

    def find(self) -> Iterable[VpcEvent]:
        for vpc in paginate(self.ec2, "describe_vpcs", "Vpcs"):
            tags = from_tag_list(vpc.get("Tags"))
            yield self.component(
                VpcEvent(
                    vpc_aws_id=vpc["VpcId"],
                    subnet=vpc.get("CidrBlock"),
                    name=tags.get("Name"),
                    tags=tags,
                )
            )
