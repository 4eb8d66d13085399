# deployer/price_estimator.py
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import ROUND_DOWN, Decimal
from types import MappingProxyType

from botocore.exceptions import BotoCoreError, ClientError

log = logging.getLogger("deployer.price_estimator")

BUFFER_RATIO = Decimal("1.25")
PRICE_CEILING = Decimal("0.500")
_SCALE = Decimal("0.001")


@dataclass(frozen=True)
class SpotPriceSample:
    zone: str
    price: float
    timestamp: datetime


def compute_bid_price(samples, default_price, buffer_ratio=BUFFER_RATIO, ceiling=PRICE_CEILING):
    """
    Average the samples, apply the buffer, floor at the family default and
    cap at the ceiling. No samples means the default. Intermediate values are
    truncated to three decimals.
    """
    default = Decimal(str(default_price))
    if not samples:
        return float(default)

    total = sum((Decimal(str(s.price)) for s in samples), Decimal("0"))
    average = (total / len(samples)).quantize(_SCALE, rounding=ROUND_DOWN)
    buffered = (average * Decimal(str(buffer_ratio))).quantize(_SCALE, rounding=ROUND_DOWN)
    buffered = max(buffered, default)
    buffered = min(buffered, Decimal(str(ceiling)))
    return float(buffered)


class SpotPriceEstimator:
    def __init__(
        self,
        ec2,
        families,
        zones,
        buffer_ratio=BUFFER_RATIO,
        ceiling=PRICE_CEILING,
        lookback_minutes=60,
        now=None,
    ):
        self.ec2 = ec2
        self.families = families
        self.zones = list(zones)
        self.buffer_ratio = Decimal(str(buffer_ratio))
        self.ceiling = Decimal(str(ceiling))
        self.lookback = timedelta(minutes=lookback_minutes)
        self._now = now or (lambda: datetime.now(timezone.utc))

    def fetch_samples(self, instance_type):
        """Spot price history for the lookback window, restricted to target zones."""
        paginator = self.ec2.get_paginator("describe_spot_price_history")
        pages = paginator.paginate(
            InstanceTypes=[instance_type],
            ProductDescriptions=["Linux/UNIX"],
            StartTime=self._now() - self.lookback,
        )
        samples = []
        for page in pages:
            for entry in page.get("SpotPriceHistory", []):
                zone = entry.get("AvailabilityZone")
                if zone not in self.zones:
                    continue
                samples.append(SpotPriceSample(zone, float(entry["SpotPrice"]), entry.get("Timestamp")))
        return samples

    def estimate(self):
        """Return an immutable mapping family name -> bid price."""
        log.info("Fetching current spot prices for %d instance families", len(self.families))
        prices = {}
        for family in self.families:
            log.info("Checking spot prices for %s across %s", family.instance_type, ", ".join(self.zones))
            try:
                samples = self.fetch_samples(family.instance_type)
            except (ClientError, BotoCoreError) as e:
                log.warning(
                    "Failed to fetch spot prices for %s, using default: $%.3f (%s)",
                    family.instance_type,
                    family.default_price,
                    e,
                )
                prices[family.name] = family.default_price
                continue

            if not samples:
                log.warning(
                    "No recent spot price data for %s, using default: $%.3f",
                    family.instance_type,
                    family.default_price,
                )
                prices[family.name] = family.default_price
                continue

            for s in samples:
                log.debug("  %s: $%s", s.zone, s.price)
            price = compute_bid_price(samples, family.default_price, self.buffer_ratio, self.ceiling)
            log.info(
                "%s: %d samples, max=$%.3f, bid=$%.3f (%s%% buffer)",
                family.name,
                len(samples),
                max(s.price for s in samples),
                price,
                int((self.buffer_ratio - 1) * 100),
            )
            prices[family.name] = price

        log.info("Spot price analysis completed")
        return MappingProxyType(prices)


def launch_matrix(families, zones):
    """Pair each family's instance type with a zone, round-robin."""
    return [(family, zones[i % len(zones)]) for i, family in enumerate(families)]


def render_price_summary(families, zones, prices):
    lines = [
        "ENHANCED SPOT FLEET CONFIGURATION SUMMARY",
        "=" * 46,
        "Instance Family Coverage:",
    ]
    for family in families:
        lines.append(f"  {family.name}: {family.description}")
        lines.append(f"    Spot Price: ${prices[family.name]:.3f}")
    lines.append("")
    lines.append("Availability Zone Coverage:")
    for zone in zones:
        lines.append(f"  {zone}: Multi-instance family deployment")
    lines.append("")
    lines.append("Launch Configuration Matrix:")
    for i, (family, zone) in enumerate(launch_matrix(families, zones), start=1):
        lines.append(f"  {i}. {family.instance_type} in {zone} ({family.description.split(' - ')[0]})")
    lines.append("=" * 46)
    return "\n".join(lines)
