import logging
from typing import Iterable, Optional

from ..clients import compact, paginate
from ..core_logic.tagging import from_tag_list
from ..errors import VPC_ID_INVALID
from ..models import Action, ResourceEvent
from .base import ENVELOPE_REQUIREMENTS, CollectionAdapter, ResourceAdapter, require

logger = logging.getLogger(__name__)


class EBSVolumeEvent(ResourceEvent):
    vpc_id: Optional[str] = None
    volume_aws_id: Optional[str] = None
    availability_zone: Optional[str] = None
    volume_type: Optional[str] = None
    size: Optional[int] = None
    iops: Optional[int] = None
    encrypted: Optional[bool] = None
    encryption_key_id: Optional[str] = None


class EBSVolumeAdapter(ResourceAdapter):
    resource_type = "ebs_volume"
    event_model = EBSVolumeEvent
    REQUIREMENTS = [
        require("vpc_id", VPC_ID_INVALID),
        *ENVELOPE_REQUIREMENTS,
        require("volume_aws_id", "EBS volume aws id invalid", unless=[Action.CREATE]),
        require("name", "EBS volume name invalid", on=[Action.CREATE]),
        require("availability_zone", "EBS volume availability zone invalid", on=[Action.CREATE]),
        require("volume_type", "EBS volume type invalid", on=[Action.CREATE]),
    ]

    def create(self) -> None:
        resp = self.ec2.create_volume(
            **compact(
                AvailabilityZone=self.event.availability_zone,
                VolumeType=self.event.volume_type,
                Size=self.event.size,
                Iops=self.event.iops,
                Encrypted=self.event.encrypted,
                KmsKeyId=self.event.encryption_key_id,
            )
        )
        self.event.volume_aws_id = resp["VolumeId"]
        logger.info("Created volume %s (%s)", self.event.volume_aws_id, self.event.name)
        self.tag(self.event.volume_aws_id)

    def delete(self) -> None:
        self.ec2.delete_volume(VolumeId=self.event.volume_aws_id)
        logger.info("Deleted volume %s", self.event.volume_aws_id)


class EBSVolumeCollection(CollectionAdapter):
    resource_type = "ebs_volume"

    def find(self) -> Iterable[EBSVolumeEvent]:
        for volume in paginate(self.ec2, "describe_volumes", "Volumes"):
            tags = from_tag_list(volume.get("Tags"))
            yield self.component(
                EBSVolumeEvent(
                    volume_aws_id=volume["VolumeId"],
                    name=tags.get("Name"),
                    availability_zone=volume.get("AvailabilityZone"),
                    volume_type=volume.get("VolumeType"),
                    size=volume.get("Size"),
                    iops=volume.get("Iops"),
                    encrypted=volume.get("Encrypted"),
                    encryption_key_id=volume.get("KmsKeyId"),
                    tags=tags,
                )
            )
