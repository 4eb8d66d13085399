# deployer/catalog.py
from dataclasses import dataclass

from deployer.errors import ConfigError


@dataclass(frozen=True)
class InstanceFamily:
    name: str
    instance_type: str
    description: str
    default_price: float

    @property
    def parameter_key(self) -> str:
        # m6i -> SpotPriceM6i
        return f"SpotPrice{self.name[0].upper()}{self.name[1:]}"


DEFAULT_FAMILIES = (
    InstanceFamily("m5", "m5.2xlarge", "General Purpose - Balanced compute, memory, and networking", 0.400),
    InstanceFamily("m6i", "m6i.2xlarge", "Latest General Purpose - Intel 3rd gen processors", 0.350),
    InstanceFamily("c5", "c5.2xlarge", "Compute Optimized - High performance processors", 0.300),
    InstanceFamily("c6i", "c6i.2xlarge", "Latest Compute Optimized - Intel 3rd gen processors", 0.280),
    InstanceFamily("r5", "r5.2xlarge", "Memory Optimized - High memory-to-vCPU ratio", 0.450),
    InstanceFamily("r6i", "r6i.2xlarge", "Latest Memory Optimized - Intel 3rd gen processors", 0.400),
)


def load_families(overrides=None, ceiling=None):
    """
    Build the family catalog. `overrides` is the optional `families` list from
    config/runtime.yaml; each entry needs name, instance_type and default_price.
    A default price above `ceiling` is rejected.
    """
    families = _parse_families(overrides) if overrides else DEFAULT_FAMILIES
    if ceiling is not None:
        for family in families:
            if family.default_price > float(ceiling):
                raise ConfigError(
                    f"Default price ${family.default_price:.3f} for {family.name} "
                    f"exceeds the price ceiling ${float(ceiling):.3f}"
                )
    return families


def _parse_families(overrides):
    families = []
    for entry in overrides:
        try:
            families.append(
                InstanceFamily(
                    name=entry["name"],
                    instance_type=entry["instance_type"],
                    description=entry.get("description", ""),
                    default_price=float(entry["default_price"]),
                )
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigError(f"Invalid instance family entry {entry!r}: {e}") from e
    return tuple(families)
