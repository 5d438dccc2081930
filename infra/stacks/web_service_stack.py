"""
AWS CDK stack: VPC + ECS Fargate + ALB + RDS PostgreSQL.

Resources:
  - VPC (2 AZs, public + private subnets, one shared NAT gateway)
  - Security group for the Fargate tasks
  - Existing ECR repository (looked up by name, never created)
  - ECS cluster running one Fargate service in the private subnets
  - Application Load Balancer (public) forwarding to the service
  - RDS PostgreSQL in the private subnets, reachable only from the tasks
"""

from __future__ import annotations

import logging
from typing import Optional

from constructs import Construct
import aws_cdk as cdk
from aws_cdk import (
    Stack,
    Duration,
    aws_ec2 as ec2,
    aws_ecs as ecs,
    aws_ecr as ecr,
    aws_elasticloadbalancingv2 as elbv2,
    aws_logs as logs,
    aws_rds as rds,
)

from stacks.settings import StackSettings

logger = logging.getLogger("infra.stack")

RETENTION_BY_DAYS = {
    1: logs.RetentionDays.ONE_DAY,
    3: logs.RetentionDays.THREE_DAYS,
    5: logs.RetentionDays.FIVE_DAYS,
    7: logs.RetentionDays.ONE_WEEK,
    14: logs.RetentionDays.TWO_WEEKS,
    30: logs.RetentionDays.ONE_MONTH,
    60: logs.RetentionDays.TWO_MONTHS,
    90: logs.RetentionDays.THREE_MONTHS,
    120: logs.RetentionDays.FOUR_MONTHS,
    150: logs.RetentionDays.FIVE_MONTHS,
    180: logs.RetentionDays.SIX_MONTHS,
    365: logs.RetentionDays.ONE_YEAR,
    400: logs.RetentionDays.THIRTEEN_MONTHS,
    545: logs.RetentionDays.EIGHTEEN_MONTHS,
    731: logs.RetentionDays.TWO_YEARS,
    1096: logs.RetentionDays.THREE_YEARS,
    1827: logs.RetentionDays.FIVE_YEARS,
    2192: logs.RetentionDays.SIX_YEARS,
    2557: logs.RetentionDays.SEVEN_YEARS,
    2922: logs.RetentionDays.EIGHT_YEARS,
    3288: logs.RetentionDays.NINE_YEARS,
    3653: logs.RetentionDays.TEN_YEARS,
}


class WebServiceStack(Stack):

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        settings: Optional[StackSettings] = None,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        s = settings or StackSettings()
        self.settings = s
        logger.debug("Building %s with %s", construct_id, s.model_dump())

        # ---------------------------------------------------------------
        # VPC
        # ---------------------------------------------------------------
        self.vpc = ec2.Vpc(
            self, "MyVpc",
            max_azs=s.max_azs,
            nat_gateways=s.nat_gateways,
            subnet_configuration=[
                ec2.SubnetConfiguration(
                    cidr_mask=s.subnet_cidr_mask,
                    name="publicSubnet",
                    subnet_type=ec2.SubnetType.PUBLIC,
                ),
                ec2.SubnetConfiguration(
                    cidr_mask=s.subnet_cidr_mask,
                    name="privateSubnet",
                    subnet_type=ec2.SubnetType.PRIVATE_WITH_EGRESS,
                ),
            ],
        )
        private_subnets = ec2.SubnetSelection(
            subnet_type=ec2.SubnetType.PRIVATE_WITH_EGRESS,
        )

        # ---------------------------------------------------------------
        # Security group for the Fargate tasks
        # ---------------------------------------------------------------
        self.service_security_group = ec2.SecurityGroup(
            self, "ECSSecurityGroup",
            vpc=self.vpc,
            description="Allow internal traffic to ECS Service",
            allow_all_outbound=True,
        )

        # existing repository, only referenced
        repository = ecr.Repository.from_repository_name(
            self, "MyRepository", s.repository_name,
        )

        # ---------------------------------------------------------------
        # ECS Cluster + Fargate task
        # ---------------------------------------------------------------
        self.cluster = ecs.Cluster(self, "MyCluster", vpc=self.vpc)

        self.task_definition = ecs.FargateTaskDefinition(
            self, "MyTaskDefinition",
            memory_limit_mib=s.memory_limit_mib,
            cpu=s.cpu,
        )

        self.container = self.task_definition.add_container(
            "MyContainer",
            image=ecs.ContainerImage.from_ecr_repository(repository, tag=s.image_tag),
            logging=ecs.LogDrivers.aws_logs(
                stream_prefix=s.log_stream_prefix,
                log_retention=RETENTION_BY_DAYS[s.log_retention_days],
            ),
        )
        self.container.add_port_mappings(
            ecs.PortMapping(
                container_port=s.container_port,
                protocol=ecs.Protocol.TCP,
            )
        )

        # private subnets only, tasks get no public IP
        self.service = ecs.FargateService(
            self, "MyService",
            cluster=self.cluster,
            task_definition=self.task_definition,
            security_groups=[self.service_security_group],
            assign_public_ip=False,
            desired_count=s.desired_count,
            vpc_subnets=private_subnets,
        )

        # ---------------------------------------------------------------
        # Application Load Balancer
        # ---------------------------------------------------------------
        self.load_balancer = elbv2.ApplicationLoadBalancer(
            self, "MyALB",
            vpc=self.vpc,
            internet_facing=True,
            vpc_subnets=ec2.SubnetSelection(subnet_type=ec2.SubnetType.PUBLIC),
        )

        self.listener = self.load_balancer.add_listener(
            "MyListener",
            port=s.listener_port,
            protocol=elbv2.ApplicationProtocol.HTTP,
        )
        # registering the service opens the task SG to the ALB on the container port
        self.target_group = self.listener.add_targets(
            "MyFargateService",
            port=80,
            protocol=elbv2.ApplicationProtocol.HTTP,
            targets=[self.service],
            health_check=elbv2.HealthCheck(
                path=s.health_check_path,
                interval=Duration.seconds(30),
                healthy_threshold_count=2,
                unhealthy_threshold_count=3,
            ),
        )

        # ---------------------------------------------------------------
        # RDS PostgreSQL
        # ---------------------------------------------------------------
        self.database = rds.DatabaseInstance(
            self, "MyDatabase",
            engine=rds.DatabaseInstanceEngine.postgres(
                version=rds.PostgresEngineVersion.of(
                    s.postgres_full_version, s.postgres_major_version,
                ),
            ),
            instance_type=ec2.InstanceType(s.db_instance_type),
            vpc=self.vpc,
            vpc_subnets=private_subnets,
            port=s.db_port,
            credentials=rds.Credentials.from_generated_secret(s.db_username),
            multi_az=False,
            allocated_storage=s.allocated_storage_gib,
            max_allocated_storage=s.max_allocated_storage_gib,
            deletion_protection=False,
            backup_retention=Duration.days(s.backup_retention_days),
        )

        self.database.connections.allow_from(
            self.service_security_group,
            ec2.Port.tcp(s.db_port),
            "Allow inbound from ECS",
        )

        for key, value in sorted(s.tags.items()):
            cdk.Tags.of(self).add(key, value)

        # ---------------------------------------------------------------
        # Outputs
        # ---------------------------------------------------------------
        cdk.CfnOutput(self, "LoadBalancerDNS",
                      value=self.load_balancer.load_balancer_dns_name)
        cdk.CfnOutput(self, "DatabaseEndpoint",
                      value=self.database.db_instance_endpoint_address)
