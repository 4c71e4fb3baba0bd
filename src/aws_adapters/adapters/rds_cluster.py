import logging
from typing import Any, Dict, Iterable, List, Optional

from botocore.exceptions import ClientError
from pydantic import Field

from ..clients import compact, paginate
from ..models import Action, ResourceEvent
from .base import ENVELOPE_REQUIREMENTS, CollectionAdapter, Phase, require
from .rds_common import RDSAdapter, ids, resource_tags, snapshot_params

logger = logging.getLogger(__name__)

CLUSTER_NOT_FOUND = "DBClusterNotFoundFault"


class RDSClusterEvent(ResourceEvent):
    arn: Optional[str] = None
    engine: Optional[str] = None
    engine_version: Optional[str] = None
    port: Optional[int] = None
    endpoint: Optional[str] = None
    availability_zones: List[Optional[str]] = Field(default_factory=list)
    security_groups: List[str] = Field(default_factory=list)
    security_group_aws_ids: List[Optional[str]] = Field(default_factory=list)
    networks: List[str] = Field(default_factory=list)
    network_aws_ids: List[Optional[str]] = Field(default_factory=list)
    database_name: Optional[str] = None
    database_username: Optional[str] = None
    database_password: Optional[str] = None
    backup_retention: Optional[int] = None
    backup_window: Optional[str] = None
    maintenance_window: Optional[str] = None
    replication_source: Optional[str] = None
    final_snapshot: Optional[bool] = None


class RDSClusterAdapter(RDSAdapter):
    resource_type = "rds_cluster"
    event_model = RDSClusterEvent
    REQUIREMENTS = [
        *ENVELOPE_REQUIREMENTS,
        require("name", "DB Cluster name invalid"),
        require("engine", "DB Cluster engine invalid", on=[Action.CREATE]),
    ]

    def create(self) -> None:
        ev = self.event
        group = self.create_subnet_group()
        resp = self.rds.create_db_cluster(
            **compact(
                DBClusterIdentifier=ev.name,
                Engine=ev.engine,
                EngineVersion=ev.engine_version,
                Port=ev.port,
                AvailabilityZones=ids(ev.availability_zones) or None,
                VpcSecurityGroupIds=ids(ev.security_group_aws_ids) or None,
                DBSubnetGroupName=group,
                DatabaseName=ev.database_name,
                MasterUsername=ev.database_username,
                MasterUserPassword=ev.database_password,
                BackupRetentionPeriod=ev.backup_retention,
                PreferredBackupWindow=ev.backup_window,
                PreferredMaintenanceWindow=ev.maintenance_window,
                ReplicationSourceIdentifier=ev.replication_source,
            )
        )
        ev.arn = resp["DBCluster"].get("DBClusterArn")
        self.wait(self.rds, "db_cluster_available", DBClusterIdentifier=ev.name)
        logger.info("Created DB cluster %s", ev.name)

        cluster = self._describe()
        ev.arn = cluster.get("DBClusterArn") or ev.arn
        ev.endpoint = cluster.get("Endpoint")
        self.tag(ev.arn)

    def update(self) -> None:
        ev = self.event
        cluster = self._describe()
        groups = self.changed_security_groups(cluster.get("VpcSecurityGroups", []))

        self.enter(Phase.APPLYING)
        if self.networks():
            self.reconcile_subnet_group()

        self.rds.modify_db_cluster(
            **compact(
                DBClusterIdentifier=ev.name,
                Port=ev.port,
                VpcSecurityGroupIds=groups,
                MasterUserPassword=ev.database_password,
                BackupRetentionPeriod=ev.backup_retention,
                PreferredBackupWindow=ev.backup_window,
                PreferredMaintenanceWindow=ev.maintenance_window,
                ApplyImmediately=True,
            )
        )
        ev.arn = cluster.get("DBClusterArn")
        ev.endpoint = cluster.get("Endpoint")
        self.tag(ev.arn)

    def delete(self) -> None:
        self.rds.delete_db_cluster(
            DBClusterIdentifier=self.event.name,
            **snapshot_params(self.event.name, self.event.final_snapshot),
        )
        self.poll(
            self._gone,
            self.config.polling.rds_cluster_deletion,
            f"DB cluster {self.event.name} to be deleted",
        )
        logger.info("Deleted DB cluster %s", self.event.name)
        self.delete_subnet_group()

    def _describe(self) -> Dict[str, Any]:
        resp = self.rds.describe_db_clusters(DBClusterIdentifier=self.event.name)
        return resp["DBClusters"][0]

    def _gone(self) -> bool:
        try:
            self._describe()
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") == CLUSTER_NOT_FOUND:
                return True
            raise
        return False


class RDSClusterCollection(CollectionAdapter):
    resource_type = "rds_cluster"

    def find(self) -> Iterable[RDSClusterEvent]:
        for cluster in paginate(self.rds, "describe_db_clusters", "DBClusters"):
            arn = cluster.get("DBClusterArn")
            yield self.component(
                RDSClusterEvent(
                    name=cluster["DBClusterIdentifier"],
                    arn=arn,
                    engine=cluster.get("Engine"),
                    engine_version=cluster.get("EngineVersion"),
                    port=cluster.get("Port"),
                    endpoint=cluster.get("Endpoint"),
                    availability_zones=cluster.get("AvailabilityZones", []),
                    security_group_aws_ids=[
                        g["VpcSecurityGroupId"] for g in cluster.get("VpcSecurityGroups", [])
                    ],
                    database_name=cluster.get("DatabaseName"),
                    database_username=cluster.get("MasterUsername"),
                    backup_retention=cluster.get("BackupRetentionPeriod"),
                    backup_window=cluster.get("PreferredBackupWindow"),
                    maintenance_window=cluster.get("PreferredMaintenanceWindow"),
                    replication_source=cluster.get("ReplicationSourceIdentifier"),
                    tags=resource_tags(self.rds, arn),
                )
            )
