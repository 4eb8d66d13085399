import argparse

from deployer.catalog import load_families
from deployer.config_loader import apply_overrides, load_runtime_config
from deployer.main import load_logging_config
from deployer.price_estimator import SpotPriceEstimator, render_price_summary
from deployer.utils import make_session


def price_report(region, zones=None, profile=None):
    cfg = apply_overrides(load_runtime_config(), region=region, profile=profile)
    if zones:
        cfg["zones"] = zones
    families = load_families(cfg.get("families"), ceiling=cfg["price_ceiling"])
    ec2 = make_session(cfg["region"], cfg.get("profile")).client("ec2", region_name=cfg["region"])

    prices = SpotPriceEstimator(
        ec2,
        families,
        cfg["zones"],
        buffer_ratio=cfg["buffer_ratio"],
        ceiling=cfg["price_ceiling"],
        lookback_minutes=cfg["lookback_minutes"],
    ).estimate()
    print(render_price_summary(families, cfg["zones"], prices))
    return prices


def main():
    parser = argparse.ArgumentParser(description="Print buffered spot bid prices without deploying anything.")
    parser.add_argument("--region", default=None, help="AWS region (default from config, else us-west-2)")
    parser.add_argument("--zones", default=None, help="Comma-separated availability zones")
    parser.add_argument("--profile", default=None, help="Optional AWS CLI profile")
    args = parser.parse_args()

    zones = [z.strip() for z in args.zones.split(",") if z.strip()] if args.zones else None
    load_logging_config()
    price_report(args.region, zones=zones, profile=args.profile)


if __name__ == "__main__":
    main()
