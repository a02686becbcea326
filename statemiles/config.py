"""
Run configuration: rate table, distance constant, file locations and run policy.

Settings come from a TOML file. Lookup order is the explicit path, then the
STATEMILES_CONFIG environment variable, then ./statemiles.toml, then defaults.
"""

import os
import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, FrozenSet, Mapping, Optional, Union

import toml

from statemiles.errors import ConfigurationError

logger = logging.getLogger(__name__)

# ──────────────────────────────────────────────────────────────────────────────
# Configuration & Constants
# ──────────────────────────────────────────────────────────────────────────────

CONFIG_ENV_VAR = "STATEMILES_CONFIG"
DEFAULT_CONFIG_FILE = Path("statemiles.toml")

EARTH_RADIUS_MILES = 3958.8

# High-pay states get the higher rate and absorb the deduction first
DEFAULT_HIGH_RATES = {"CA": 0.70, "IL": 0.70, "MA": 0.70}
DEFAULT_RATE = 0.30

TRIP_ERROR_POLICIES = ("skip", "abort")

# Census FIPS state code to postal abbreviation (us_states.geojson carries FIPS in "STATE")
FIPS_TO_POSTAL = {
    '01': 'AL', '02': 'AK', '04': 'AZ', '05': 'AR', '06': 'CA', '08': 'CO', '09': 'CT',
    '10': 'DE', '11': 'DC', '12': 'FL', '13': 'GA', '15': 'HI', '16': 'ID', '17': 'IL',
    '18': 'IN', '19': 'IA', '20': 'KS', '21': 'KY', '22': 'LA', '23': 'ME', '24': 'MD',
    '25': 'MA', '26': 'MI', '27': 'MN', '28': 'MS', '29': 'MO', '30': 'MT', '31': 'NE',
    '32': 'NV', '33': 'NH', '34': 'NJ', '35': 'NM', '36': 'NY', '37': 'NC', '38': 'ND',
    '39': 'OH', '40': 'OK', '41': 'OR', '42': 'PA', '44': 'RI', '45': 'SC', '46': 'SD',
    '47': 'TN', '48': 'TX', '49': 'UT', '50': 'VT', '51': 'VA', '53': 'WA', '54': 'WV',
    '55': 'WI', '56': 'WY',
}

# State abbreviation to full name mapping
STATE_NAMES = {
    'AL': 'Alabama', 'AK': 'Alaska', 'AZ': 'Arizona', 'AR': 'Arkansas', 'CA': 'California',
    'CO': 'Colorado', 'CT': 'Connecticut', 'DE': 'Delaware', 'FL': 'Florida', 'GA': 'Georgia',
    'HI': 'Hawaii', 'ID': 'Idaho', 'IL': 'Illinois', 'IN': 'Indiana', 'IA': 'Iowa',
    'KS': 'Kansas', 'KY': 'Kentucky', 'LA': 'Louisiana', 'ME': 'Maine', 'MD': 'Maryland',
    'MA': 'Massachusetts', 'MI': 'Michigan', 'MN': 'Minnesota', 'MS': 'Mississippi', 'MO': 'Missouri',
    'MT': 'Montana', 'NE': 'Nebraska', 'NV': 'Nevada', 'NH': 'New Hampshire', 'NJ': 'New Jersey',
    'NM': 'New Mexico', 'NY': 'New York', 'NC': 'North Carolina', 'ND': 'North Dakota', 'OH': 'Ohio',
    'OK': 'Oklahoma', 'OR': 'Oregon', 'PA': 'Pennsylvania', 'RI': 'Rhode Island', 'SC': 'South Carolina',
    'SD': 'South Dakota', 'TN': 'Tennessee', 'TX': 'Texas', 'UT': 'Utah', 'VT': 'Vermont',
    'VA': 'Virginia', 'WA': 'Washington', 'WV': 'West Virginia', 'WI': 'Wisconsin', 'WY': 'Wyoming',
    'DC': 'District of Columbia'
}


@dataclass(frozen=True)
class RateTable:
    """Per-mile rates. Regions listed in high_rates form the deduction-priority set."""

    high_rates: Mapping[str, float] = field(default_factory=lambda: dict(DEFAULT_HIGH_RATES))
    default_rate: float = DEFAULT_RATE

    def __post_init__(self):
        for region, value in self.high_rates.items():
            _check_rate(f"rates.high.{region}", value)
        _check_rate("rates.default", self.default_rate)
        # Freeze a private copy so callers cannot change policy mid-run
        object.__setattr__(self, "high_rates", dict(self.high_rates))

    @property
    def high_rate_regions(self) -> FrozenSet[str]:
        return frozenset(self.high_rates)

    def is_high_rate(self, region: str) -> bool:
        return region in self.high_rates

    def rate(self, region: str) -> float:
        return self.high_rates.get(region, self.default_rate)


@dataclass(frozen=True)
class Settings:
    rates: RateTable = field(default_factory=RateTable)
    earth_radius_miles: float = EARTH_RADIUS_MILES
    regions_file: Path = Path("data/us_states.geojson")
    regions_id_field: str = "STATE"
    trips_file: Path = Path("data/input/TravelItems.csv")
    legs_file: Path = Path("data/input/TravelItemDetails.csv")
    output_dir: Path = Path("data/output")
    debug_dir: Optional[Path] = None
    on_trip_error: str = "skip"
    merge_repeat_crossings: bool = False
    excel_output: bool = False

    def __post_init__(self):
        if not _is_number(self.earth_radius_miles) or self.earth_radius_miles <= 0:
            raise ConfigurationError(f"geometry.earth_radius_miles must be positive, got {self.earth_radius_miles!r}")
        if self.on_trip_error not in TRIP_ERROR_POLICIES:
            raise ConfigurationError(
                f"run.on_trip_error must be one of {', '.join(TRIP_ERROR_POLICIES)}, got {self.on_trip_error!r}"
            )


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _check_rate(name: str, value) -> None:
    if not _is_number(value) or value < 0:
        raise ConfigurationError(f"{name} must be a non-negative number, got {value!r}")


def _optional_path(value) -> Optional[Path]:
    return Path(value) if value else None


def settings_from_mapping(cfg: Mapping) -> Settings:
    """Build Settings from a parsed TOML document. Missing keys keep their defaults."""
    defaults = Settings()

    rates_cfg = cfg.get("rates", {})
    rates = RateTable(
        high_rates={str(k).strip().upper(): v for k, v in rates_cfg.get("high", DEFAULT_HIGH_RATES).items()},
        default_rate=rates_cfg.get("default", DEFAULT_RATE),
    )

    geometry_cfg = cfg.get("geometry", {})
    paths_cfg = cfg.get("paths", {})
    run_cfg = cfg.get("run", {})

    return Settings(
        rates=rates,
        earth_radius_miles=geometry_cfg.get("earth_radius_miles", defaults.earth_radius_miles),
        regions_file=Path(paths_cfg.get("regions", defaults.regions_file)),
        regions_id_field=geometry_cfg.get("id_field", defaults.regions_id_field),
        trips_file=Path(paths_cfg.get("trips", defaults.trips_file)),
        legs_file=Path(paths_cfg.get("legs", defaults.legs_file)),
        output_dir=Path(paths_cfg.get("output_dir", defaults.output_dir)),
        debug_dir=_optional_path(paths_cfg.get("debug_dir")),
        on_trip_error=run_cfg.get("on_trip_error", defaults.on_trip_error),
        merge_repeat_crossings=bool(run_cfg.get("merge_repeat_crossings", defaults.merge_repeat_crossings)),
        excel_output=bool(run_cfg.get("excel_output", defaults.excel_output)),
    )


def load_settings(path: Union[str, Path, None] = None) -> Settings:
    """Load settings from TOML, falling back to built-in defaults when no file is found"""
    if path is None:
        env_path = os.environ.get(CONFIG_ENV_VAR)
        if env_path:
            path = env_path
        elif DEFAULT_CONFIG_FILE.exists():
            path = DEFAULT_CONFIG_FILE

    if path is None:
        logger.info("No configuration file found, using built-in defaults")
        return Settings()

    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Configuration file not found: {path}")

    try:
        cfg = toml.load(path)
    except toml.TomlDecodeError as e:
        raise ConfigurationError(f"Error parsing {path}: {e}") from e

    settings = settings_from_mapping(cfg)
    logger.info(f"Loaded configuration from {path}")
    return settings


def describe_rates(rates: RateTable) -> Dict[str, str]:
    """Readable rate policy for log output"""
    described = {
        STATE_NAMES.get(region, region): f"${value:.2f}/mile" for region, value in sorted(rates.high_rates.items())
    }
    described["all other regions"] = f"${rates.default_rate:.2f}/mile"
    return described
