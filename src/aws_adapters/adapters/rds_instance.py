import logging
from typing import Any, Dict, Iterable, List, Optional

from pydantic import Field

from ..clients import compact, paginate
from ..models import Action, ResourceEvent
from .base import ENVELOPE_REQUIREMENTS, CollectionAdapter, Phase, require
from .rds_common import RDSAdapter, ids, resource_tags, snapshot_params, subnet_group_name

logger = logging.getLogger(__name__)


class RDSInstanceEvent(ResourceEvent):
    arn: Optional[str] = None
    size: Optional[str] = None  # Instance class, e.g. db.t3.micro
    engine: Optional[str] = None
    engine_version: Optional[str] = None
    port: Optional[int] = None
    cluster: Optional[str] = None
    public: Optional[bool] = None
    endpoint: Optional[str] = None
    multi_az: Optional[bool] = None
    promotion_tier: Optional[int] = None
    storage_type: Optional[str] = None
    storage_size: Optional[int] = None
    storage_iops: Optional[int] = None
    availability_zone: Optional[str] = None
    security_groups: List[str] = Field(default_factory=list)
    security_group_aws_ids: List[Optional[str]] = Field(default_factory=list)
    networks: List[str] = Field(default_factory=list)
    network_aws_ids: List[Optional[str]] = Field(default_factory=list)
    database_name: Optional[str] = None
    database_username: Optional[str] = None
    database_password: Optional[str] = None
    auto_upgrade: Optional[bool] = None
    backup_retention: Optional[int] = None
    backup_window: Optional[str] = None
    maintenance_window: Optional[str] = None
    final_snapshot: Optional[bool] = None
    replication_source: Optional[str] = None
    license: Optional[str] = None
    timezone: Optional[str] = None


class RDSInstanceAdapter(RDSAdapter):
    resource_type = "rds_instance"
    event_model = RDSInstanceEvent
    REQUIREMENTS = [
        *ENVELOPE_REQUIREMENTS,
        require("name", "DB Instance name invalid"),
        require("engine", "DB Instance engine invalid", on=[Action.CREATE]),
        require("size", "DB Instance size invalid", on=[Action.CREATE]),
    ]

    def create(self) -> None:
        ev = self.event
        group = self.create_subnet_group()
        if ev.replication_source:
            self.rds.create_db_instance_read_replica(
                **compact(
                    DBInstanceIdentifier=ev.name,
                    SourceDBInstanceIdentifier=ev.replication_source,
                    DBInstanceClass=ev.size,
                    AvailabilityZone=ev.availability_zone,
                    Port=ev.port,
                    PubliclyAccessible=ev.public,
                    AutoMinorVersionUpgrade=ev.auto_upgrade,
                    StorageType=ev.storage_type,
                    Iops=ev.storage_iops,
                    DBSubnetGroupName=group,
                )
            )
        else:
            self.rds.create_db_instance(
                **compact(
                    DBInstanceIdentifier=ev.name,
                    DBInstanceClass=ev.size,
                    Engine=ev.engine,
                    EngineVersion=ev.engine_version,
                    Port=ev.port,
                    DBClusterIdentifier=ev.cluster,
                    PubliclyAccessible=ev.public,
                    MultiAZ=ev.multi_az,
                    PromotionTier=ev.promotion_tier,
                    StorageType=ev.storage_type,
                    AllocatedStorage=ev.storage_size,
                    Iops=ev.storage_iops,
                    AvailabilityZone=ev.availability_zone,
                    VpcSecurityGroupIds=ids(ev.security_group_aws_ids) or None,
                    DBSubnetGroupName=group,
                    DBName=ev.database_name,
                    MasterUsername=ev.database_username,
                    MasterUserPassword=ev.database_password,
                    AutoMinorVersionUpgrade=ev.auto_upgrade,
                    BackupRetentionPeriod=ev.backup_retention,
                    PreferredBackupWindow=ev.backup_window,
                    PreferredMaintenanceWindow=ev.maintenance_window,
                    LicenseModel=ev.license,
                    Timezone=ev.timezone,
                )
            )
        self.wait(self.rds, "db_instance_available", DBInstanceIdentifier=ev.name)
        logger.info("DB instance %s is available", ev.name)

        self._read_back(self._describe())
        self.tag(ev.arn)

    def update(self) -> None:
        ev = self.event
        instance = self._describe()
        groups = self.changed_security_groups(instance.get("VpcSecurityGroups", []))

        self.enter(Phase.APPLYING)
        group = None
        if self.networks():
            self.reconcile_subnet_group()
            group = subnet_group_name(ev.name)

        self.rds.modify_db_instance(
            **compact(
                DBInstanceIdentifier=ev.name,
                DBInstanceClass=ev.size,
                EngineVersion=ev.engine_version,
                DBPortNumber=ev.port,
                AllocatedStorage=ev.storage_size,
                StorageType=ev.storage_type,
                Iops=ev.storage_iops,
                PubliclyAccessible=ev.public,
                MultiAZ=ev.multi_az,
                PromotionTier=ev.promotion_tier,
                VpcSecurityGroupIds=groups,
                DBSubnetGroupName=group,
                MasterUserPassword=ev.database_password,
                AutoMinorVersionUpgrade=ev.auto_upgrade,
                BackupRetentionPeriod=ev.backup_retention,
                PreferredBackupWindow=ev.backup_window,
                PreferredMaintenanceWindow=ev.maintenance_window,
                ApplyImmediately=True,
            )
        )
        self._read_back(instance)
        self.tag(ev.arn)

    def delete(self) -> None:
        self.rds.delete_db_instance(
            DBInstanceIdentifier=self.event.name,
            **snapshot_params(self.event.name, self.event.final_snapshot),
        )
        self.wait(self.rds, "db_instance_deleted", DBInstanceIdentifier=self.event.name)
        logger.info("Deleted DB instance %s", self.event.name)
        self.delete_subnet_group()

    def _describe(self) -> Dict[str, Any]:
        resp = self.rds.describe_db_instances(DBInstanceIdentifier=self.event.name)
        return resp["DBInstances"][0]

    def _read_back(self, instance: Dict[str, Any]) -> None:
        self.event.arn = instance.get("DBInstanceArn")
        self.event.endpoint = instance.get("Endpoint", {}).get("Address")


class RDSInstanceCollection(CollectionAdapter):
    resource_type = "rds_instance"

    def find(self) -> Iterable[RDSInstanceEvent]:
        for instance in paginate(self.rds, "describe_db_instances", "DBInstances"):
            arn = instance.get("DBInstanceArn")
            group = instance.get("DBSubnetGroup") or {}
            yield self.component(
                RDSInstanceEvent(
                    name=instance["DBInstanceIdentifier"],
                    arn=arn,
                    size=instance.get("DBInstanceClass"),
                    engine=instance.get("Engine"),
                    engine_version=instance.get("EngineVersion"),
                    port=instance.get("Endpoint", {}).get("Port"),
                    endpoint=instance.get("Endpoint", {}).get("Address"),
                    cluster=instance.get("DBClusterIdentifier"),
                    public=instance.get("PubliclyAccessible"),
                    multi_az=instance.get("MultiAZ"),
                    storage_type=instance.get("StorageType"),
                    storage_size=instance.get("AllocatedStorage"),
                    storage_iops=instance.get("Iops"),
                    availability_zone=instance.get("AvailabilityZone"),
                    security_group_aws_ids=[
                        g["VpcSecurityGroupId"] for g in instance.get("VpcSecurityGroups", [])
                    ],
                    network_aws_ids=[s["SubnetIdentifier"] for s in group.get("Subnets", [])],
                    database_name=instance.get("DBName"),
                    database_username=instance.get("MasterUsername"),
                    auto_upgrade=instance.get("AutoMinorVersionUpgrade"),
                    backup_retention=instance.get("BackupRetentionPeriod"),
                    backup_window=instance.get("PreferredBackupWindow"),
                    maintenance_window=instance.get("PreferredMaintenanceWindow"),
                    replication_source=instance.get("ReadReplicaSourceDBInstanceIdentifier"),
                    license=instance.get("LicenseModel"),
                    tags=resource_tags(self.rds, arn),
                )
            )
