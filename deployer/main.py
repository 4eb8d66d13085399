# deployer/main.py
import argparse
import logging
import logging.config
import sys

import yaml
from botocore.exceptions import BotoCoreError, ClientError

from deployer.catalog import load_families
from deployer.config_loader import apply_overrides, load_runtime_config
from deployer.errors import ConfigError, DeployError
from deployer.monitor import DeploymentMonitor
from deployer.prerequisites import PrerequisiteValidator
from deployer.price_estimator import SpotPriceEstimator, render_price_summary
from deployer.reconciler import AddressReconciler
from deployer.reporter import ResultReporter
from deployer.stack import StackDeployer, StackIdentity
from deployer.utils import always_confirm, install_interrupt_notice, make_session, prompt_confirm

log = logging.getLogger("deployer.main")

EPILOG = """\
Features:
  - 6 launch configurations across all AZs
  - Multiple instance families (M5, M6i, C5, C6i, R5, R6i)
  - Dynamic spot pricing with real-time analysis

Example:
  spot-fleet-deploy --stack my-enhanced-stack --region us-west-2
"""


def load_logging_config(path="config/logging.yaml"):
    try:
        with open(path) as f:
            cfg = yaml.safe_load(f)
        logging.config.dictConfig(cfg)
    except (OSError, yaml.YAMLError, ValueError, TypeError):
        logging.basicConfig(
            level=logging.INFO,
            format='{"time":"%(asctime)s","level":"%(levelname)s","name":"%(name)s","msg":"%(message)s"}',
        )


def build_parser():
    parser = argparse.ArgumentParser(
        prog="spot-fleet-deploy",
        description="Deploy a multi-AZ spot fleet stack with dynamic spot pricing.",
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-s", "--stack", help="Custom stack name")
    parser.add_argument("-r", "--region", help="AWS region (default: us-west-2)")
    parser.add_argument("-k", "--key", help="Key pair name (default: amazon-q-key-uswest2)")
    parser.add_argument("-t", "--template", help="CloudFormation template path")
    parser.add_argument("--profile", help="Optional AWS CLI profile")
    parser.add_argument("-y", "--yes", action="store_true", help="Answer yes to all confirmation prompts")
    return parser


def run(cfg, session, confirm, sleep=None):
    """
    One deployment pass. Returns the exit code; DeployError subclasses
    propagate to the caller.
    """
    timing = {"sleep": sleep} if sleep else {}
    families = load_families(cfg.get("families"), ceiling=cfg["price_ceiling"])
    zones = cfg["zones"]
    identity = StackIdentity(cfg["stack_name"], cfg["region"], cfg["key_name"])
    ec2 = session.client("ec2", region_name=identity.region)
    cfn = session.client("cloudformation", region_name=identity.region)

    PrerequisiteValidator(
        session,
        cfg["template_file"],
        identity.key_name,
        identity.region,
        required_tools=cfg["required_tools"],
        installable_tools=cfg["installable_tools"],
    ).validate()

    prices = SpotPriceEstimator(
        ec2,
        families,
        zones,
        buffer_ratio=cfg["buffer_ratio"],
        ceiling=cfg["price_ceiling"],
        lookback_minutes=cfg["lookback_minutes"],
    ).estimate()
    print(render_price_summary(families, zones, prices))
    print()

    if not confirm("Proceed with enhanced deployment?"):
        log.info("Deployment cancelled by user")
        return 0

    reconciler = AddressReconciler(ec2, identity.name, settle_delay=cfg["settle_delay"], **timing)
    reconciler.stack_addresses()
    reconciler.reconcile()

    deployer = StackDeployer(cfn, identity, cfg["template_file"], confirm, tags=cfg["stack_tags"])
    operation = deployer.choose_operation()
    deployer.deploy(operation, families, prices)

    DeploymentMonitor(
        cfn,
        identity.name,
        interval=cfg["poll_interval"],
        timeout=cfg["deploy_timeout"],
        **timing,
    ).wait()

    reporter = ResultReporter(
        cfn,
        ec2,
        identity.name,
        port=cfg["service_port"],
        attempts=cfg["readiness_attempts"],
        interval=cfg["readiness_interval"],
        **timing,
    )
    outputs = reporter.report(families, prices)
    reporter.wait_for_endpoint(outputs)

    log.info("Deployment completed successfully!")
    log.info("Stack Name: %s | Region: %s", identity.name, identity.region)
    log.info("Instance Families: %s", ", ".join(f.name for f in families))
    log.info("Availability Zones: %s", ", ".join(zones))
    return 0


def main(argv=None):
    args = build_parser().parse_args(argv)

    load_logging_config()

    try:
        runtime = load_runtime_config()
    except ConfigError as e:
        log.error("%s", e)
        sys.exit(e.exit_code)
    cfg = apply_overrides(
        runtime,
        stack_name=args.stack,
        region=args.region,
        key_name=args.key,
        template_file=args.template,
        profile=args.profile,
    )
    confirm = always_confirm if args.yes else prompt_confirm

    print("=" * 46)
    print("Spot Fleet Deployment")
    print("   6 Launch Configs | Multi-AZ | Dynamic Pricing")
    print("=" * 46)
    print()

    install_interrupt_notice(cfg["stack_name"])
    try:
        code = run(cfg, make_session(cfg["region"], cfg.get("profile")), confirm)
    except DeployError as e:
        log.error("%s", e)
        code = e.exit_code
    except (ClientError, BotoCoreError) as e:
        log.error("AWS request failed: %s", e)
        code = 1
    except KeyboardInterrupt:
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    main()
