"""
Typed parameters for the web service stack.

Every field defaults to the value the stack has always been deployed with,
so `cdk synth` without context overrides gives the standard topology.
Overrides come from CDK context, one key per field:

    cdk synth -c container_port=8080 -c desired_count=2
"""

from __future__ import annotations

import json
from typing import Any, Dict, List

from constructs import Node
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# Fargate CPU units -> allowed memory sizes (MiB)
FARGATE_MEMORY_BY_CPU: Dict[int, List[int]] = {
    256: [512, 1024, 2048],
    512: list(range(1024, 4096 + 1, 1024)),
    1024: list(range(2048, 8192 + 1, 1024)),
    2048: list(range(4096, 16384 + 1, 1024)),
    4096: list(range(8192, 30720 + 1, 1024)),
    8192: list(range(16384, 61440 + 1, 4096)),
    16384: list(range(32768, 122880 + 1, 8192)),
}

# prefix length of the VPC's default CIDR (10.0.0.0/16)
VPC_CIDR_MASK = 16

# values accepted by CloudWatch Logs for RetentionInDays
LOG_RETENTION_DAYS = (
    1, 3, 5, 7, 14, 30, 60, 90, 120, 150, 180, 365, 400, 545,
    731, 1096, 1827, 2192, 2557, 2922, 3288, 3653,
)


class StackSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    stack_name: str = Field(default="InfraStack", min_length=1)

    # network
    max_azs: int = Field(default=2, ge=1, le=6)
    nat_gateways: int = Field(default=1, ge=1)
    subnet_cidr_mask: int = Field(default=24, ge=16, le=28)

    # image + task
    repository_name: str = Field(default="teju-ecr", min_length=1)
    image_tag: str = Field(default="latest", min_length=1)
    cpu: int = 256
    memory_limit_mib: int = 512
    container_port: int = Field(default=5001, ge=1, le=65535)
    desired_count: int = Field(default=1, ge=0)
    log_stream_prefix: str = Field(default="MyApp", min_length=1)
    log_retention_days: int = 14

    # load balancer
    listener_port: int = Field(default=80, ge=1, le=65535)
    health_check_path: str = Field(default="/", pattern=r"^/")

    # database
    postgres_full_version: str = "13.13"
    postgres_major_version: str = "13"
    db_instance_type: str = Field(default="t3.micro", min_length=1)
    db_port: int = Field(default=5432, ge=1, le=65535)
    db_username: str = Field(default="myadmin", min_length=1)
    allocated_storage_gib: int = Field(default=20, ge=20)
    max_allocated_storage_gib: int = 100
    backup_retention_days: int = Field(default=7, ge=0, le=35)

    tags: Dict[str, str] = Field(
        default_factory=lambda: {"Project": "web-service", "ManagedBy": "cdk"}
    )

    @field_validator("cpu")
    @classmethod
    def _check_cpu(cls, v: int) -> int:
        if v not in FARGATE_MEMORY_BY_CPU:
            raise ValueError(
                f"cpu must be one of {sorted(FARGATE_MEMORY_BY_CPU)}, got {v}"
            )
        return v

    @field_validator("log_retention_days")
    @classmethod
    def _check_retention(cls, v: int) -> int:
        if v not in LOG_RETENTION_DAYS:
            raise ValueError(f"log_retention_days must be one of {LOG_RETENTION_DAYS}")
        return v

    @field_validator("tags", mode="before")
    @classmethod
    def _parse_tags(cls, v: Any) -> Any:
        # `-c tags=...` arrives as a JSON string
        if isinstance(v, str):
            return json.loads(v)
        return v

    @model_validator(mode="after")
    def _check_combinations(self) -> "StackSettings":
        allowed = FARGATE_MEMORY_BY_CPU[self.cpu]
        if self.memory_limit_mib not in allowed:
            raise ValueError(
                f"memory_limit_mib={self.memory_limit_mib} is not valid for "
                f"cpu={self.cpu}; allowed: {allowed}"
            )
        if self.nat_gateways > self.max_azs:
            raise ValueError("nat_gateways cannot exceed max_azs")
        # two tiers per AZ carved out of the default 10.0.0.0/16 VPC range
        subnets_needed = 2 * self.max_azs
        if 2 ** (self.subnet_cidr_mask - VPC_CIDR_MASK) < subnets_needed:
            raise ValueError(
                f"subnet_cidr_mask /{self.subnet_cidr_mask} cannot fit "
                f"{subnets_needed} subnets in a /{VPC_CIDR_MASK} VPC"
            )
        if self.max_allocated_storage_gib < self.allocated_storage_gib:
            raise ValueError(
                "max_allocated_storage_gib must be >= allocated_storage_gib"
            )
        if not (
            self.postgres_full_version == self.postgres_major_version
            or self.postgres_full_version.startswith(self.postgres_major_version + ".")
        ):
            raise ValueError(
                f"postgres_full_version {self.postgres_full_version!r} does not "
                f"belong to major version {self.postgres_major_version!r}"
            )
        return self

    @classmethod
    def from_context(cls, node: Node) -> "StackSettings":
        """Build settings from CDK context, falling back to the defaults."""
        overrides: Dict[str, Any] = {}
        for name in cls.model_fields:
            value = node.try_get_context(name)
            if value is not None:
                overrides[name] = value
        return cls(**overrides)
