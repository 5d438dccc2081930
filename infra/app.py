#!/usr/bin/env python3
"""
AWS CDK entry point.

Provisions:
  - VPC with public/private subnets
  - ECS Fargate service running the image from an existing ECR repository
  - Application Load Balancer
  - RDS PostgreSQL

Context overrides (see stacks/settings.py for the full list):
    cdk synth -c container_port=8080 -c account=123456789012 -c region=eu-west-1
"""

from __future__ import annotations

import logging
import os
import sys

import aws_cdk as cdk
from pydantic import ValidationError

from stacks.settings import StackSettings
from stacks.web_service_stack import WebServiceStack

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(message)s",
)
logger = logging.getLogger("infra")


def main() -> None:
    app = cdk.App()

    try:
        settings = StackSettings.from_context(app.node)
    except ValidationError as e:
        logger.error("Invalid stack configuration:\n%s", e)
        sys.exit(1)

    account = app.node.try_get_context("account") or os.getenv("CDK_DEFAULT_ACCOUNT")
    region = app.node.try_get_context("region") or os.getenv("CDK_DEFAULT_REGION")
    logger.info(
        "Synthesizing %s (account=%s region=%s image=%s:%s port=%d)",
        settings.stack_name,
        account or "<agnostic>",
        region or "<agnostic>",
        settings.repository_name,
        settings.image_tag,
        settings.container_port,
    )

    WebServiceStack(
        app,
        settings.stack_name,
        settings=settings,
        env=cdk.Environment(account=account, region=region),
    )

    app.synth()


if __name__ == "__main__":
    main()
