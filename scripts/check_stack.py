"""
Check a deployed web service stack from the operator's side.

Reads the CloudFormation outputs of the stack, then:
  1. sends an HTTP GET to the load balancer
  2. reports the status of the RDS instance behind DatabaseEndpoint

Usage:
    python scripts/check_stack.py
    python scripts/check_stack.py --stack-name InfraStack --wait

Requires:
    - AWS credentials configured (~/.aws/credentials)
    - boto3, requests installed
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
import time
from typing import Any, Dict, Optional

import boto3
import requests
from botocore.exceptions import BotoCoreError, ClientError

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(message)s",
)
logger = logging.getLogger("check_stack")

REQUIRED_OUTPUTS = ("LoadBalancerDNS", "DatabaseEndpoint")


class StackCheckError(RuntimeError):
    pass


def get_stack_outputs(cfn, stack_name: str) -> Dict[str, str]:
    """Return {OutputKey: OutputValue} for *stack_name*."""
    resp = cfn.describe_stacks(StackName=stack_name)
    stacks = resp.get("Stacks", [])
    if not stacks:
        raise StackCheckError(f"Stack not found: {stack_name}")

    outputs = {o["OutputKey"]: o["OutputValue"] for o in stacks[0].get("Outputs", [])}
    missing = [k for k in REQUIRED_OUTPUTS if k not in outputs]
    if missing:
        raise StackCheckError(f"Stack {stack_name} is missing outputs: {', '.join(missing)}")
    return outputs


def probe_load_balancer(dns_name: str, path: str = "/", timeout: float = 5.0) -> int:
    """GET the load balancer and return the HTTP status code."""
    url = f"http://{dns_name}/{path.lstrip('/')}"
    logger.info("GET %s", url)
    resp = requests.get(url, timeout=timeout)
    return resp.status_code


def find_db_instance(rds, endpoint: str) -> Optional[Dict[str, Any]]:
    """Find the RDS instance whose endpoint address is *endpoint*."""
    paginator = rds.get_paginator("describe_db_instances")
    for page in paginator.paginate():
        for inst in page.get("DBInstances", []):
            if inst.get("Endpoint", {}).get("Address") == endpoint:
                return inst
    return None


def wait_for_load_balancer(dns_name: str, path: str, timeout_s: int, interval_s: int = 15) -> int:
    """Poll until the ALB returns a non-5xx response or *timeout_s* passes."""
    deadline = time.monotonic() + timeout_s
    while True:
        try:
            status = probe_load_balancer(dns_name, path)
            logger.info("  -> HTTP %d", status)
            if status < 500:
                return status
        except requests.RequestException as e:
            logger.info("  -> %s", e.__class__.__name__)
            status = None

        if time.monotonic() >= deadline:
            if status is None:
                raise StackCheckError(f"Load balancer {dns_name} did not answer within {timeout_s}s")
            return status
        time.sleep(interval_s)


def run_checks(session, stack_name: str, path: str, wait: bool, timeout_s: int) -> bool:
    outputs = get_stack_outputs(session.client("cloudformation"), stack_name)
    lb_dns = outputs["LoadBalancerDNS"]
    db_endpoint = outputs["DatabaseEndpoint"]
    logger.info("Load balancer:  %s", lb_dns)
    logger.info("DB endpoint:    %s", db_endpoint)

    ok = True

    if wait:
        status = wait_for_load_balancer(lb_dns, path, timeout_s)
    else:
        try:
            status = probe_load_balancer(lb_dns, path)
        except requests.RequestException as e:
            logger.error("Load balancer unreachable: %s", e)
            status = None

    if status is None or status >= 500:
        logger.error("Load balancer check FAILED (status=%s)", status)
        ok = False
    else:
        logger.info("Load balancer check OK (HTTP %d)", status)

    inst = find_db_instance(session.client("rds"), db_endpoint)
    if inst is None:
        logger.error("No RDS instance found for endpoint %s", db_endpoint)
        ok = False
    else:
        state = inst.get("DBInstanceStatus", "unknown")
        logger.info(
            "RDS %s  engine=%s %s  status=%s",
            inst.get("DBInstanceIdentifier"),
            inst.get("Engine"),
            inst.get("EngineVersion"),
            state,
        )
        if state != "available":
            ok = False

    return ok


def main(argv: Optional[list] = None) -> int:
    parser = argparse.ArgumentParser(description="Check a deployed web service stack")
    parser.add_argument("--stack-name", default=os.getenv("STACK_NAME", "InfraStack"))
    parser.add_argument("--region", default=os.getenv("AWS_REGION"))
    parser.add_argument("--path", default="/", help="Path requested on the load balancer")
    parser.add_argument("--wait", action="store_true",
                        help="Poll the load balancer until it answers")
    parser.add_argument("--timeout", type=int, default=600,
                        help="Seconds to wait with --wait")
    args = parser.parse_args(argv)

    session = boto3.Session(region_name=args.region)

    try:
        ok = run_checks(session, args.stack_name, args.path, args.wait, args.timeout)
    except ClientError as e:
        logger.error("AWS API error: %s", e)
        return 1
    except BotoCoreError as e:
        logger.error("AWS client error: %s", e)
        return 1
    except StackCheckError as e:
        logger.error("%s", e)
        return 1

    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
