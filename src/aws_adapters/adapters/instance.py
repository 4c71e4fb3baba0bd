import logging
from typing import Any, Dict, Iterable, List, Optional

from pydantic import Field

from ..clients import compact, paginate
from ..core_logic.diff_engine import compute_convergence
from ..core_logic.tagging import from_tag_list
from ..errors import VPC_ID_INVALID
from ..models import Action, ResourceEvent, WireModel
from .base import ENVELOPE_REQUIREMENTS, CollectionAdapter, Phase, ResourceAdapter, require

logger = logging.getLogger(__name__)

LISTED_STATES = ["running", "stopped"]


class InstanceVolume(WireModel):
    name: Optional[str] = None
    device: Optional[str] = None
    volume_aws_id: Optional[str] = None


def volume_key(volume: InstanceVolume) -> Optional[str]:
    return volume.volume_aws_id


class InstanceEvent(ResourceEvent):
    vpc_id: Optional[str] = None
    network_aws_id: Optional[str] = None
    network_is_public: Optional[bool] = None
    security_group_aws_ids: List[Optional[str]] = Field(default_factory=list)
    instance_aws_id: Optional[str] = None
    image: Optional[str] = None
    instance_type: Optional[str] = None
    ip: Optional[str] = None
    key_pair: Optional[str] = None
    user_data: Optional[str] = None
    public_ip: Optional[str] = None
    elastic_ip: Optional[str] = None
    elastic_ip_aws_id: Optional[str] = None
    assign_elastic_ip: Optional[bool] = None
    volumes: List[InstanceVolume] = Field(default_factory=list)


def attached_volumes(instance: Dict[str, Any]) -> List[InstanceVolume]:
    """EBS volumes attached to an instance, root device excluded."""
    root = instance.get("RootDeviceName")
    volumes = []
    for mapping in instance.get("BlockDeviceMappings", []):
        if mapping.get("DeviceName") == root or "Ebs" not in mapping:
            continue
        volumes.append(
            InstanceVolume(device=mapping["DeviceName"], volume_aws_id=mapping["Ebs"]["VolumeId"])
        )
    return volumes


class InstanceAdapter(ResourceAdapter):
    resource_type = "instance"
    event_model = InstanceEvent
    REQUIREMENTS = [
        require("vpc_id", VPC_ID_INVALID),
        *ENVELOPE_REQUIREMENTS,
        require("instance_aws_id", "Instance aws id invalid", unless=[Action.CREATE]),
        require("network_aws_id", "Instance network invalid", unless=[Action.DELETE]),
        require("name", "Instance name invalid", unless=[Action.DELETE]),
        require("image", "Instance image invalid", unless=[Action.DELETE]),
        require("instance_type", "Instance type invalid", unless=[Action.DELETE]),
    ]

    def create(self) -> None:
        groups = [g for g in self.event.security_group_aws_ids if g]
        resp = self.ec2.run_instances(
            **compact(
                ImageId=self.event.image,
                InstanceType=self.event.instance_type,
                MinCount=1,
                MaxCount=1,
                SubnetId=self.event.network_aws_id,
                PrivateIpAddress=self.event.ip,
                KeyName=self.event.key_pair,
                SecurityGroupIds=groups or None,
                UserData=self.event.user_data,  # boto3 base64-encodes it
            )
        )
        instance_id = resp["Instances"][0]["InstanceId"]
        self.event.instance_aws_id = instance_id
        self.wait(self.ec2, "instance_running", InstanceIds=[instance_id])
        logger.info("Instance %s (%s) is running", instance_id, self.event.name)

        if self.event.assign_elastic_ip:
            allocation = self.ec2.allocate_address(Domain="vpc")
            self.ec2.associate_address(InstanceId=instance_id, AllocationId=allocation["AllocationId"])
            self.event.elastic_ip = allocation["PublicIp"]
            self.event.elastic_ip_aws_id = allocation["AllocationId"]

        self._refresh_addresses()
        self._attach(self.event.volumes)
        self.tag(instance_id)

    def update(self) -> None:
        instance_id = self.event.instance_aws_id
        self.wait(self.ec2, "instance_status_ok", InstanceIds=[instance_id])
        volumes = compute_convergence(
            self.event.volumes, attached_volumes(self._describe()), key=volume_key
        )

        self.enter(Phase.APPLYING)
        self.ec2.stop_instances(InstanceIds=[instance_id])
        self.wait(self.ec2, "instance_stopped", InstanceIds=[instance_id])

        self.ec2.modify_instance_attribute(
            InstanceId=instance_id, InstanceType={"Value": self.event.instance_type}
        )
        groups = [g for g in self.event.security_group_aws_ids if g]
        if groups:
            self.ec2.modify_instance_attribute(InstanceId=instance_id, Groups=groups)

        for volume in volumes.to_remove:
            self.ec2.detach_volume(
                Device=volume.device, InstanceId=instance_id, VolumeId=volume.volume_aws_id
            )
        self._attach(volumes.to_add)

        self.ec2.start_instances(InstanceIds=[instance_id])
        self.wait(self.ec2, "instance_running", InstanceIds=[instance_id])
        self._refresh_addresses()
        self.tag(instance_id)

    def delete(self) -> None:
        instance_id = self.event.instance_aws_id
        self.ec2.terminate_instances(InstanceIds=[instance_id])
        self.wait(self.ec2, "instance_terminated", InstanceIds=[instance_id])
        logger.info("Terminated instance %s", instance_id)

        if self.event.elastic_ip_aws_id:
            self.ec2.release_address(AllocationId=self.event.elastic_ip_aws_id)

    def _describe(self) -> Dict[str, Any]:
        resp = self.ec2.describe_instances(InstanceIds=[self.event.instance_aws_id])
        return resp["Reservations"][0]["Instances"][0]

    def _refresh_addresses(self) -> None:
        instance = self._describe()
        self.event.public_ip = instance.get("PublicIpAddress")
        self.event.ip = instance.get("PrivateIpAddress", self.event.ip)

    def _attach(self, volumes: Iterable[InstanceVolume]) -> None:
        for volume in volumes:
            self.ec2.attach_volume(
                Device=volume.device,
                InstanceId=self.event.instance_aws_id,
                VolumeId=volume.volume_aws_id,
            )


class InstanceCollection(CollectionAdapter):
    resource_type = "instance"

    def find(self) -> Iterable[InstanceEvent]:
        reservations = paginate(
            self.ec2,
            "describe_instances",
            "Reservations",
            Filters=[{"Name": "instance-state-name", "Values": LISTED_STATES}],
        )
        for reservation in reservations:
            for instance in reservation.get("Instances", []):
                tags = from_tag_list(instance.get("Tags"))
                yield self.component(
                    InstanceEvent(
                        instance_aws_id=instance["InstanceId"],
                        name=tags.get("Name"),
                        vpc_id=instance.get("VpcId"),
                        network_aws_id=instance.get("SubnetId"),
                        security_group_aws_ids=[g["GroupId"] for g in instance.get("SecurityGroups", [])],
                        image=instance.get("ImageId"),
                        instance_type=instance.get("InstanceType"),
                        ip=instance.get("PrivateIpAddress"),
                        public_ip=instance.get("PublicIpAddress"),
                        key_pair=instance.get("KeyName"),
                        volumes=attached_volumes(instance),
                        tags=tags,
                    )
                )
