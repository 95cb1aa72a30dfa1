from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Tuple

from fabricsim.models import (
    ComplianceCert,
    ContractTier,
    CoolingType,
    CustomerType,
    EnergySource,
    Environment,
    IncidentCategory,
    IncidentEffect,
    InsuranceType,
    OpsTier,
    Personality,
    RedundancyLevel,
    Season,
    SecurityTier,
    Severity,
    StaffRole,
    SuiteTier,
    WeatherCondition,
)


# Facility constants
STARTING_MONEY = 50_000.0
STARTING_REPUTATION = 20.0
MAX_SERVERS_PER_CABINET = 4
MINUTES_PER_TICK = 15

CABINET_COST = 2_000.0
SERVER_COST = 2_000.0
LEAF_COST = 5_000.0
SPINE_COST = 12_000.0

SERVER_POWER_W = 450.0
LEAF_POWER_W = 150.0
SPINE_POWER_W = 250.0

REVENUE_PER_SERVER = 12.0
POWER_COST_PER_KW = 0.50
HEAT_PER_SERVER = 1.5
HEAT_PER_LEAF = 0.3

AMBIENT_TEMP = 22.0
THROTTLE_TEMP = 80.0
CRITICAL_TEMP = 95.0
HEAT_CEILING = 110.0

# Heat dynamics
EQUILIBRIUM_LOAD_GAIN = 6.0
EQUILIBRIUM_COOLING_GAIN = 3.0
HEAT_RISE_RATE = 0.15
BASE_AMBIENT_DISSIPATION = 0.3
AISLE_CONTAINMENT_RELIEF = 2.0
SAME_FACING_PENALTY = 1.0
SPACING_PER_NEIGHBOR = 0.3
SPACING_CROWDED = 0.8
SPACING_FRONT_OPEN = 0.3
SPACING_REAR_OPEN = 0.2

# Network
GBPS_PER_SERVER = 1.0
LINK_CAPACITY_GBPS = 10.0
OPTICAL_LINK_CAPACITY_GBPS = 20.0
UTIL_ELEVATED = 0.5
UTIL_CRITICAL = 0.8
DEGRADED_SERVED_FRACTION = 0.9
NETWORK_REVENUE_FLOOR = 0.25
TRAFFIC_SPIKE_CHANCE = 0.02
TRAFFIC_SPIKE_MULTIPLIER = 1.5
TRAFFIC_SPIKE_TICKS = 4

# Zones
ZONE_MIN_SIZE = 3
PRODUCTION_ZONE_REVENUE_BONUS = 0.08
LAB_ZONE_HEAT_REDUCTION = 0.10
MANAGEMENT_ZONE_HEAT_REDUCTION = 0.05
MIXED_ENV_HEAT_PENALTY = 0.05
MIXED_ENV_REVENUE_PENALTY = 0.03
MANAGEMENT_BONUS_PER_SERVER = 0.03
MANAGEMENT_BONUS_CAP = 0.30


@dataclass(frozen=True)
class CustomerConfig:
    power_multiplier: float
    heat_multiplier: float
    revenue_multiplier: float
    bandwidth_multiplier: float
    zone_revenue_bonus: float


@dataclass(frozen=True)
class EnvironmentConfig:
    revenue_multiplier: float
    heat_multiplier: float


@dataclass(frozen=True)
class CoolingConfig:
    cooling_rate: float
    operating_multiplier: float
    overhead_reduction: float
    upgrade_cost: float


@dataclass(frozen=True)
class SuiteTierConfig:
    cols: int
    rows: int
    max_cabinets: int
    max_spines: int
    max_staff: int
    upgrade_cost: float


@dataclass(frozen=True)
class GeneratorConfig:
    kind: str
    label: str
    cost: float
    fuel_cost_per_tick: float
    capacity_w: float


@dataclass(frozen=True)
class RedundancyConfig:
    protection: float
    upgrade_cost: float
    maintenance_per_tick: float


@dataclass(frozen=True)
class EnergySourceConfig:
    cost_multiplier: float
    carbon_per_kw: float
    install_cost: float
    reliability: float


@dataclass(frozen=True)
class RegionConfig:
    region_id: str
    name: str
    power_cost_multiplier: float
    ambient_offset: float
    carbon_tax_multiplier: float
    earthquake_risk: float
    flood_risk: float
    heatwave_risk: float
    grid_instability: float

    @property
    def disaster_risk(self) -> float:
        return (self.earthquake_risk + self.flood_risk + self.heatwave_risk) / 3.0


@dataclass(frozen=True)
class LoanOption:
    label: str
    principal: float
    interest_rate: float
    term_ticks: int


@dataclass(frozen=True)
class InsuranceConfig:
    label: str
    premium_per_tick: float
    coverage: float
    covered_effect: IncidentEffect


@dataclass(frozen=True)
class SecurityTierConfig:
    cost: float
    maintenance_per_tick: float
    intrusion_defense: float


@dataclass(frozen=True)
class OpsTierConfig:
    upgrade_cost: float
    min_staff: int
    required_techs: Tuple[str, ...]
    min_reputation: float
    min_suite: SuiteTier
    incident_spawn_reduction: float
    auto_resolve_speed_bonus: float
    resolve_cost_reduction: float
    auto_resolves: bool


@dataclass(frozen=True)
class StaffRoleConfig:
    label: str
    salary_per_tick: float
    hire_cost: float


@dataclass(frozen=True)
class TechDef:
    tech_id: str
    label: str
    branch: str
    cost: float
    research_ticks: int
    prerequisite: Optional[str]


@dataclass(frozen=True)
class ReputationTier:
    tier: str
    min_score: float
    contract_bonus: float


@dataclass(frozen=True)
class ContractDef:
    contract_type: str
    company: str
    tier: ContractTier
    min_servers: int
    max_temp: float
    revenue_per_tick: float
    duration: int
    penalty_per_tick: float
    termination_ticks: int
    completion_bonus: float
    zone_kind: Optional[str] = None
    zone_key: Optional[str] = None
    zone_min_size: int = 0
    required_cert: Optional[ComplianceCert] = None


@dataclass(frozen=True)
class IncidentDef:
    incident_type: str
    label: str
    category: IncidentCategory
    severity: Severity
    duration: int
    resolve_cost: float
    effect: IncidentEffect
    magnitude: float = 1.0
    hardware_target: Optional[str] = None  # leaf|spine|cabinet


@dataclass(frozen=True)
class PersonalityConfig:
    bid_modifier: float
    growth_rate: float


@dataclass(frozen=True)
class ValuationMilestone:
    milestone_id: str
    target_price: float
    reward: float


@dataclass(frozen=True)
class SeasonConfig:
    label: str
    ambient_modifier: float
    duration_ticks: int


@dataclass(frozen=True)
class WeatherConfig:
    label: str
    ambient_modifier: float
    min_ticks: int
    max_ticks: int
    chance: float


@dataclass(frozen=True)
class CertConfig:
    label: str
    min_security: SecurityTier
    min_reputation: float
    min_officers: int
    audit_cost: float
    audit_ticks: int
    valid_ticks: int


@dataclass(frozen=True)
class AchievementDef:
    achievement_id: str
    label: str
    description: str


def _frozen(d: Dict) -> Mapping:
    return MappingProxyType(dict(d))


CUSTOMER_TYPES: Mapping[CustomerType, CustomerConfig] = _frozen(
    {
        CustomerType.GENERAL: CustomerConfig(1.0, 1.0, 1.0, 1.0, 0.05),
        CustomerType.AI_TRAINING: CustomerConfig(1.8, 2.0, 2.5, 0.6, 0.10),
        CustomerType.STREAMING: CustomerConfig(0.9, 0.8, 1.3, 2.0, 0.07),
        CustomerType.CRYPTO: CustomerConfig(2.0, 1.8, 1.6, 0.3, 0.06),
        CustomerType.ENTERPRISE: CustomerConfig(1.1, 1.0, 1.8, 1.2, 0.08),
    }
)

ENVIRONMENTS: Mapping[Environment, EnvironmentConfig] = _frozen(
    {
        Environment.PRODUCTION: EnvironmentConfig(revenue_multiplier=1.0, heat_multiplier=1.0),
        Environment.LAB: EnvironmentConfig(revenue_multiplier=0.25, heat_multiplier=0.7),
        Environment.MANAGEMENT: EnvironmentConfig(revenue_multiplier=0.0, heat_multiplier=0.5),
    }
)

COOLING: Mapping[CoolingType, CoolingConfig] = _frozen(
    {
        CoolingType.AIR: CoolingConfig(cooling_rate=2.0, operating_multiplier=1.0, overhead_reduction=0.0, upgrade_cost=0.0),
        CoolingType.WATER: CoolingConfig(cooling_rate=3.5, operating_multiplier=1.4, overhead_reduction=0.35, upgrade_cost=25_000.0),
    }
)

# Containment pays only on an aisle with cabinets in both adjacent rows.
AISLE_CONTAINMENT_COST = 15_000.0
AISLE_CONTAINMENT_BONUS = 0.06
AISLE_CONTAINMENT_MAX_BONUS = 0.20
AISLE_CONTAINMENT_MIN_SUITE = SuiteTier.STANDARD

SUITE_ORDER: Tuple[SuiteTier, ...] = (
    SuiteTier.STARTER,
    SuiteTier.STANDARD,
    SuiteTier.PROFESSIONAL,
    SuiteTier.ENTERPRISE,
)

# Grid rows interleave cabinet rows with aisles: rows = 2 * cabinet_rows + 1.
SUITE_TIERS: Mapping[SuiteTier, SuiteTierConfig] = _frozen(
    {
        SuiteTier.STARTER: SuiteTierConfig(cols=5, rows=5, max_cabinets=8, max_spines=2, max_staff=2, upgrade_cost=0.0),
        SuiteTier.STANDARD: SuiteTierConfig(cols=8, rows=7, max_cabinets=18, max_spines=4, max_staff=4, upgrade_cost=40_000.0),
        SuiteTier.PROFESSIONAL: SuiteTierConfig(cols=10, rows=9, max_cabinets=32, max_spines=6, max_staff=8, upgrade_cost=120_000.0),
        SuiteTier.ENTERPRISE: SuiteTierConfig(cols=14, rows=11, max_cabinets=50, max_spines=8, max_staff=16, upgrade_cost=350_000.0),
    }
)

GENERATOR_OPTIONS: Tuple[GeneratorConfig, ...] = (
    GeneratorConfig(kind="diesel_small", label="Small Diesel", cost=15_000.0, fuel_cost_per_tick=8.0, capacity_w=50_000.0),
    GeneratorConfig(kind="diesel_large", label="Large Diesel", cost=40_000.0, fuel_cost_per_tick=15.0, capacity_w=150_000.0),
    GeneratorConfig(kind="natural_gas", label="Natural Gas", cost=75_000.0, fuel_cost_per_tick=10.0, capacity_w=300_000.0),
)

REDUNDANCY_ORDER: Tuple[RedundancyLevel, ...] = (RedundancyLevel.N, RedundancyLevel.N_PLUS_1, RedundancyLevel.TWO_N)

POWER_REDUNDANCY: Mapping[RedundancyLevel, RedundancyConfig] = _frozen(
    {
        RedundancyLevel.N: RedundancyConfig(protection=0.0, upgrade_cost=0.0, maintenance_per_tick=0.0),
        RedundancyLevel.N_PLUS_1: RedundancyConfig(protection=0.70, upgrade_cost=30_000.0, maintenance_per_tick=8.0),
        RedundancyLevel.TWO_N: RedundancyConfig(protection=0.95, upgrade_cost=80_000.0, maintenance_per_tick=20.0),
    }
)

ENERGY_SOURCES: Mapping[EnergySource, EnergySourceConfig] = _frozen(
    {
        EnergySource.GRID_MIXED: EnergySourceConfig(cost_multiplier=1.0, carbon_per_kw=0.0008, install_cost=0.0, reliability=1.0),
        EnergySource.GRID_GREEN: EnergySourceConfig(cost_multiplier=1.4, carbon_per_kw=0.0001, install_cost=5_000.0, reliability=1.0),
        EnergySource.ONSITE_SOLAR: EnergySourceConfig(cost_multiplier=0.6, carbon_per_kw=0.0, install_cost=80_000.0, reliability=0.35),
        EnergySource.ONSITE_WIND: EnergySourceConfig(cost_multiplier=0.7, carbon_per_kw=0.0, install_cost=60_000.0, reliability=0.45),
    }
)

REGIONS: Mapping[str, RegionConfig] = _frozen(
    {
        "ashburn": RegionConfig("ashburn", "Northern Virginia (Ashburn)", 0.8, 0.0, 0.5, 0.05, 0.15, 0.3, 0.05),
        "bay_area": RegionConfig("bay_area", "Bay Area (Santa Clara)", 1.4, 2.0, 1.5, 0.7, 0.1, 0.4, 0.15),
        "dallas": RegionConfig("dallas", "Dallas / Fort Worth", 0.7, 5.0, 0.2, 0.05, 0.2, 0.6, 0.2),
        "chicago": RegionConfig("chicago", "Chicago", 0.9, -3.0, 0.8, 0.02, 0.2, 0.2, 0.1),
    }
)
DEFAULT_REGION = "ashburn"

SEASON_ORDER: Tuple[Season, ...] = (Season.SPRING, Season.SUMMER, Season.AUTUMN, Season.WINTER)

SEASONS: Mapping[Season, SeasonConfig] = _frozen(
    {
        Season.SPRING: SeasonConfig("Spring", ambient_modifier=2.0, duration_ticks=200),
        Season.SUMMER: SeasonConfig("Summer", ambient_modifier=8.0, duration_ticks=200),
        Season.AUTUMN: SeasonConfig("Autumn", ambient_modifier=0.0, duration_ticks=200),
        Season.WINTER: SeasonConfig("Winter", ambient_modifier=-5.0, duration_ticks=200),
    }
)

# Chances are the weights used when a weather spell ends; they sum to 1.
WEATHER: Mapping[WeatherCondition, WeatherConfig] = _frozen(
    {
        WeatherCondition.CLEAR: WeatherConfig("Clear", 0.0, 10, 20, 0.30),
        WeatherCondition.CLOUDY: WeatherConfig("Cloudy", -1.0, 8, 15, 0.25),
        WeatherCondition.RAIN: WeatherConfig("Rain", -2.0, 5, 12, 0.20),
        WeatherCondition.STORM: WeatherConfig("Storm", -3.0, 3, 8, 0.10),
        WeatherCondition.HEATWAVE: WeatherConfig("Heatwave", 10.0, 8, 15, 0.10),
        WeatherCondition.COLD_SNAP: WeatherConfig("Cold Snap", -8.0, 5, 10, 0.05),
    }
)

POWER_MARKET_MIN = 0.6
POWER_MARKET_MAX = 2.0
POWER_MARKET_VOLATILITY = 0.08
POWER_MARKET_MEAN_REVERSION = 0.02
POWER_MARKET_SPIKE_CHANCE = 0.03
POWER_MARKET_SPIKE_MULTIPLIER = 1.5
POWER_MARKET_SPIKE_TICKS = 8

SERVER_LIFESPAN_TICKS = 800
EFFICIENCY_FLOOR = 0.5
REFRESH_COST_PER_SERVER = 1_500.0
REVENUE_DECAY_START = 0.3

# (min_tick, rate) bands; a band applies until the next one starts.
CARBON_TAX_SCHEDULE: Tuple[Tuple[int, float], ...] = ((0, 0.0), (200, 2.0), (500, 5.0), (1000, 10.0))
CARBON_TAX_SCALE = 100.0

LOAN_OPTIONS: Tuple[LoanOption, ...] = (
    LoanOption(label="Small Loan", principal=10_000.0, interest_rate=0.0008, term_ticks=200),
    LoanOption(label="Medium Loan", principal=30_000.0, interest_rate=0.0012, term_ticks=400),
    LoanOption(label="Large Loan", principal=75_000.0, interest_rate=0.0018, term_ticks=600),
)
MAX_ACTIVE_LOANS = 3

INSURANCE: Mapping[InsuranceType, InsuranceConfig] = _frozen(
    {
        InsuranceType.FIRE: InsuranceConfig("Fire Insurance", 3.0, 15_000.0, IncidentEffect.HEAT_SPIKE),
        InsuranceType.POWER: InsuranceConfig("Power Insurance", 4.0, 10_000.0, IncidentEffect.POWER_SURGE),
        InsuranceType.CYBER: InsuranceConfig("Cyber Insurance", 5.0, 20_000.0, IncidentEffect.REVENUE_PENALTY),
        InsuranceType.EQUIPMENT: InsuranceConfig("Equipment Insurance", 3.0, 12_000.0, IncidentEffect.COOLING_FAILURE),
    }
)

SECURITY_ORDER: Tuple[SecurityTier, ...] = (
    SecurityTier.BASIC,
    SecurityTier.ENHANCED,
    SecurityTier.HIGH_SECURITY,
    SecurityTier.MAXIMUM,
)

# intrusion_defense is the sum of the features each tier includes.
SECURITY_TIERS: Mapping[SecurityTier, SecurityTierConfig] = _frozen(
    {
        SecurityTier.BASIC: SecurityTierConfig(cost=0.0, maintenance_per_tick=0.0, intrusion_defense=0.05),
        SecurityTier.ENHANCED: SecurityTierConfig(cost=15_000.0, maintenance_per_tick=8.0, intrusion_defense=0.25),
        SecurityTier.HIGH_SECURITY: SecurityTierConfig(cost=50_000.0, maintenance_per_tick=20.0, intrusion_defense=0.95),
        SecurityTier.MAXIMUM: SecurityTierConfig(cost=150_000.0, maintenance_per_tick=45.0, intrusion_defense=1.15),
    }
)
SECURITY_OFFICER_DEFENSE = 0.05
MAX_INTRUSION_DEFENSE = 0.9

COMPLIANCE_CERTS: Mapping[ComplianceCert, CertConfig] = _frozen(
    {
        ComplianceCert.SOC2_TYPE1: CertConfig("SOC 2 Type I", SecurityTier.ENHANCED, 40.0, 0, 8_000.0, 10, 200),
        ComplianceCert.SOC2_TYPE2: CertConfig("SOC 2 Type II", SecurityTier.ENHANCED, 50.0, 1, 15_000.0, 15, 300),
        ComplianceCert.HIPAA: CertConfig("HIPAA", SecurityTier.HIGH_SECURITY, 60.0, 1, 20_000.0, 12, 250),
        ComplianceCert.PCI_DSS: CertConfig("PCI-DSS", SecurityTier.HIGH_SECURITY, 55.0, 1, 18_000.0, 10, 200),
        ComplianceCert.FEDRAMP: CertConfig("FedRAMP", SecurityTier.MAXIMUM, 75.0, 2, 50_000.0, 20, 400),
    }
)

OPS_ORDER: Tuple[OpsTier, ...] = (OpsTier.MANUAL, OpsTier.MONITORING, OpsTier.AUTOMATION, OpsTier.ORCHESTRATION)

OPS_TIERS: Mapping[OpsTier, OpsTierConfig] = _frozen(
    {
        OpsTier.MANUAL: OpsTierConfig(0.0, 0, (), 0.0, SuiteTier.STARTER, 0.0, 0.0, 0.0, False),
        OpsTier.MONITORING: OpsTierConfig(15_000.0, 2, ("ups_upgrade",), 25.0, SuiteTier.STARTER, 0.10, 0.05, 0.20, False),
        OpsTier.AUTOMATION: OpsTierConfig(
            50_000.0,
            4,
            ("ups_upgrade", "redundant_cooling", "auto_failover"),
            45.0,
            SuiteTier.STANDARD,
            0.25,
            0.20,
            0.35,
            True,
        ),
        OpsTier.ORCHESTRATION: OpsTierConfig(
            120_000.0,
            8,
            ("ups_upgrade", "redundant_cooling", "auto_failover", "hot_aisle", "variable_fans"),
            65.0,
            SuiteTier.PROFESSIONAL,
            0.40,
            0.40,
            0.50,
            True,
        ),
    }
)

STAFF_ROLES: Mapping[StaffRole, StaffRoleConfig] = _frozen(
    {
        StaffRole.NETWORK_ENGINEER: StaffRoleConfig("Network Engineer", salary_per_tick=4.0, hire_cost=3_000.0),
        StaffRole.ELECTRICIAN: StaffRoleConfig("Electrician", salary_per_tick=3.0, hire_cost=2_500.0),
        StaffRole.COOLING_SPECIALIST: StaffRoleConfig("Cooling Specialist", salary_per_tick=3.0, hire_cost=2_500.0),
        StaffRole.SECURITY_OFFICER: StaffRoleConfig("Security Officer", salary_per_tick=5.0, hire_cost=4_000.0),
    }
)
NETWORK_ENGINEER_CAPACITY_BONUS = 0.02
COOLING_SPECIALIST_BONUS = 0.05
ELECTRICIAN_SURGE_REDUCTION = 0.10
FIRST_NAMES = ("Alex", "Sam", "Jordan", "Casey", "Riley", "Morgan", "Taylor", "Quinn", "Drew", "Blake")
LAST_NAMES = ("Chen", "Patel", "Kim", "Garcia", "Murphy", "Nakamura", "Berg", "Santos", "Fischer", "Okafor")

TECH_TREE: Mapping[str, TechDef] = _frozen(
    {
        "hot_aisle": TechDef("hot_aisle", "Hot Aisle Containment", "cooling", 10_000.0, 40, None),
        "variable_fans": TechDef("variable_fans", "Variable Speed Fans", "cooling", 20_000.0, 60, "hot_aisle"),
        "immersion_cooling": TechDef("immersion_cooling", "Immersion Cooling", "cooling", 50_000.0, 100, "variable_fans"),
        "high_density": TechDef("high_density", "High Density Racks", "density", 12_000.0, 45, None),
        "gpu_clusters": TechDef("gpu_clusters", "GPU Clusters", "density", 30_000.0, 70, "high_density"),
        "optical_interconnect": TechDef("optical_interconnect", "Optical Interconnect", "density", 60_000.0, 90, "gpu_clusters"),
        "ups_upgrade": TechDef("ups_upgrade", "UPS Upgrade", "resilience", 8_000.0, 30, None),
        "redundant_cooling": TechDef("redundant_cooling", "Redundant Cooling", "resilience", 25_000.0, 60, "ups_upgrade"),
        "auto_failover": TechDef("auto_failover", "Automatic Failover", "resilience", 45_000.0, 80, "redundant_cooling"),
    }
)
HOT_AISLE_COOLING_BONUS = 0.5
IMMERSION_COOLING_BONUS = 1.5
VARIABLE_FANS_OVERHEAD_REDUCTION = 0.15
IMMERSION_OVERHEAD_REDUCTION = 0.25
HIGH_DENSITY_REVENUE_BONUS = 0.15
GPU_CLUSTERS_AI_REVENUE_BONUS = 0.30
REDUNDANT_COOLING_FAILURE_REDUCTION = 0.5
AUTO_FAILOVER_SPEEDUP = 0.3

PATENT_COST = 5_000.0
PATENT_INCOME_PER_TICK = 8.0
MAX_PATENTS = 9

REPUTATION_TIERS: Tuple[ReputationTier, ...] = (
    ReputationTier("unknown", 0.0, 0.0),
    ReputationTier("poor", 10.0, -0.2),
    ReputationTier("average", 30.0, 0.0),
    ReputationTier("good", 50.0, 0.15),
    ReputationTier("excellent", 75.0, 0.3),
    ReputationTier("legendary", 95.0, 0.5),
)

CONTRACT_CATALOG: Tuple[ContractDef, ...] = (
    ContractDef("startup_cloud", "NimbusStart", ContractTier.BRONZE, 2, 90.0, 8.0, 100, 4.0, 15, 1_500.0),
    ContractDef("dev_agency", "PixelForge Studios", ContractTier.BRONZE, 3, 85.0, 10.0, 80, 5.0, 12, 1_200.0),
    ContractDef("indie_game", "Lucky Dice Games", ContractTier.BRONZE, 2, 85.0, 9.0, 120, 4.0, 15, 2_000.0),
    ContractDef("streaming_cdn", "StreamWave Media", ContractTier.SILVER, 6, 78.0, 25.0, 200, 15.0, 10, 6_000.0),
    ContractDef("ecommerce", "ShopSphere", ContractTier.SILVER, 5, 75.0, 22.0, 180, 12.0, 10, 5_000.0),
    ContractDef("saas_platform", "Cloudlane SaaS", ContractTier.SILVER, 8, 78.0, 30.0, 250, 18.0, 8, 8_000.0),
    ContractDef("bank_trading", "Meridian Capital", ContractTier.GOLD, 10, 70.0, 60.0, 300, 40.0, 5, 20_000.0),
    ContractDef("ai_training", "Synapse AI Labs", ContractTier.GOLD, 12, 72.0, 70.0, 250, 45.0, 6, 18_000.0),
    ContractDef("gov_secure", "Federal Data Agency", ContractTier.GOLD, 10, 68.0, 55.0, 350, 35.0, 5, 22_000.0),
)

ZONE_CONTRACT_CATALOG: Tuple[ContractDef, ...] = (
    ContractDef("enterprise_sla", "Atlas Enterprise", ContractTier.ZONE, 6, 75.0, 35.0, 200, 20.0, 8, 10_000.0, "environment", "production", 4),
    ContractDef("ai_cluster", "DeepTensor", ContractTier.ZONE, 4, 78.0, 40.0, 180, 25.0, 8, 12_000.0, "customer", "ai_training", 3),
    ContractDef("data_vault", "VaultGuard Holdings", ContractTier.ZONE, 8, 68.0, 65.0, 300, 40.0, 5, 25_000.0, "customer", "enterprise", 4),
    ContractDef("crypto_farm", "HashRidge Mining", ContractTier.ZONE, 4, 82.0, 30.0, 150, 15.0, 10, 8_000.0, "customer", "crypto", 3),
)

COMPLIANCE_CONTRACT_CATALOG: Tuple[ContractDef, ...] = (
    ContractDef("healthnet_emr", "HealthNet", ContractTier.GOLD, 8, 68.0, 80.0, 400, 50.0, 5, 30_000.0, required_cert=ComplianceCert.HIPAA),
    ContractDef("tradefast_hft", "TradeFast", ContractTier.GOLD, 10, 65.0, 90.0, 350, 60.0, 4, 35_000.0, required_cert=ComplianceCert.PCI_DSS),
    ContractDef("govsecure_cloud", "GovSecure", ContractTier.GOLD, 10, 65.0, 120.0, 500, 70.0, 5, 50_000.0, required_cert=ComplianceCert.FEDRAMP),
    ContractDef("paystream", "PayStream", ContractTier.GOLD, 6, 70.0, 75.0, 300, 45.0, 5, 25_000.0, required_cert=ComplianceCert.PCI_DSS),
)

CONTRACT_OFFER_COUNT = 3
MAX_ACTIVE_CONTRACTS = 3
SILVER_MIN_REPUTATION = 30.0
GOLD_MIN_REPUTATION = 50.0
CANCEL_FEE_TICKS_MULTIPLIER = 1  # fee = penalty_per_tick * termination_ticks

RFP_WINDOW_TICKS = 15
RFP_WIN_DECAY_PER_TICK = 0.03
RFP_REVENUE_PREMIUM = 0.2
RFP_COMPANIES = ("NexGen Data", "CloudVault Inc", "TerraHost", "IronCloud", "DataForge")

INCIDENT_CATALOG: Mapping[str, IncidentDef] = _frozen(
    {
        d.incident_type: d
        for d in (
            IncidentDef("fiber_cut", "Fiber Cut", IncidentCategory.DISASTER, Severity.MAJOR, 15, 5_000.0, IncidentEffect.TRAFFIC_DROP, 0.5),
            IncidentDef("power_surge", "Power Surge", IncidentCategory.POWER, Severity.MAJOR, 10, 3_000.0, IncidentEffect.POWER_SURGE, 1.3),
            IncidentDef("cooling_failure", "Cooling Failure", IncidentCategory.THERMAL, Severity.CRITICAL, 12, 8_000.0, IncidentEffect.COOLING_FAILURE, 0.4),
            IncidentDef("ddos", "DDoS Attack", IncidentCategory.SECURITY, Severity.MINOR, 8, 2_000.0, IncidentEffect.REVENUE_PENALTY, 0.7),
            IncidentDef("heat_wave", "Heat Wave", IncidentCategory.DISASTER, Severity.MAJOR, 20, 4_000.0, IncidentEffect.HEAT_SPIKE, 8.0),
            IncidentDef("squirrel", "Squirrel in Transformer", IncidentCategory.POWER, Severity.MINOR, 5, 500.0, IncidentEffect.POWER_SURGE, 1.15),
            IncidentDef("pipe_leak", "Pipe Leak", IncidentCategory.THERMAL, Severity.MAJOR, 10, 6_000.0, IncidentEffect.COOLING_FAILURE, 0.3),
            IncidentDef("ransomware", "Ransomware", IncidentCategory.SECURITY, Severity.CRITICAL, 15, 12_000.0, IncidentEffect.REVENUE_PENALTY, 0.3),
            IncidentDef("spine_failure", "Spine Switch Failure", IncidentCategory.DISASTER, Severity.MAJOR, 20, 12_000.0, IncidentEffect.HARDWARE_FAILURE, 1.0, "spine"),
            IncidentDef("leaf_failure", "Leaf Switch Failure", IncidentCategory.DISASTER, Severity.MAJOR, 15, 5_000.0, IncidentEffect.HARDWARE_FAILURE, 1.0, "leaf"),
            IncidentDef("tailgating", "Tailgating Intrusion", IncidentCategory.SECURITY, Severity.MINOR, 5, 1_000.0, IncidentEffect.REVENUE_PENALTY, 0.95),
            IncidentDef("social_engineering", "Social Engineering", IncidentCategory.SECURITY, Severity.MAJOR, 10, 5_000.0, IncidentEffect.REVENUE_PENALTY, 0.6),
            IncidentDef("break_in", "Physical Break-in", IncidentCategory.SECURITY, Severity.CRITICAL, 8, 15_000.0, IncidentEffect.REVENUE_PENALTY, 0.3),
            IncidentDef("grid_outage", "Utility Grid Outage", IncidentCategory.POWER, Severity.MAJOR, 6, 2_000.0, IncidentEffect.POWER_OUTAGE, 0.0),
            IncidentDef("thermal_runaway", "Thermal Runaway", IncidentCategory.THERMAL, Severity.CRITICAL, 10, 10_000.0, IncidentEffect.HARDWARE_FAILURE, 1.0, "cabinet"),
            IncidentDef("fabric_outage", "Fabric Outage", IncidentCategory.DISASTER, Severity.CRITICAL, 10, 6_000.0, IncidentEffect.REVENUE_PENALTY, 0.9),
        )
    }
)

# Catastrophic incidents are raised by threshold checks, never sampled.
TRIGGERED_INCIDENTS = frozenset({"thermal_runaway", "fabric_outage", "grid_outage"})

SEVERITY_ORDER: Tuple[Severity, ...] = (Severity.MINOR, Severity.MAJOR, Severity.CRITICAL)
ESCALATION_COST_MULTIPLIER = 1.5
ESCALATION_REPUTATION_PENALTY = 2.0
CASCADE_REPUTATION_PENALTY = 5.0
CASCADE_COST_FRACTION = 0.5
GRID_OUTAGE_SCALE = 0.01
HEAT_RISK_START = 60.0
HEAT_RISK_SPAN = 20.0

DRILL_COST = 2_000.0
DRILL_COOLDOWN_TICKS = 100
DRILL_PASS_THRESHOLD = 60.0
DRILL_REPUTATION_BONUS = 3.0
DRILL_REPUTATION_PENALTY = -2.0
DRILL_TECH_SCORES: Mapping[str, float] = _frozen({"ups_upgrade": 5.0, "redundant_cooling": 10.0, "auto_failover": 15.0})

VALUATION_MILESTONES: Tuple[ValuationMilestone, ...] = (
    ValuationMilestone("ipo", 50.0, 10_000.0),
    ValuationMilestone("growth", 100.0, 25_000.0),
    ValuationMilestone("blue_chip", 250.0, 50_000.0),
    ValuationMilestone("mega_cap", 500.0, 100_000.0),
    ValuationMilestone("trillion", 1_000.0, 250_000.0),
)
STOCK_VALUATION_DIVISOR = 2_000.0
STOCK_INCOME_MULTIPLE = 200.0

PERSONALITIES: Mapping[Personality, PersonalityConfig] = _frozen(
    {
        Personality.BUDGET: PersonalityConfig(bid_modifier=-0.25, growth_rate=0.8),
        Personality.PREMIUM: PersonalityConfig(bid_modifier=0.1, growth_rate=1.2),
        Personality.GREEN: PersonalityConfig(bid_modifier=0.15, growth_rate=1.0),
        Personality.AGGRESSIVE: PersonalityConfig(bid_modifier=-0.1, growth_rate=1.5),
        Personality.STEADY: PersonalityConfig(bid_modifier=0.0, growth_rate=1.0),
    }
)
COMPETITOR_NAMES = (
    "NexGen Data",
    "CloudVault Inc",
    "TerraHost",
    "IronGrid Systems",
    "ArcticCore",
    "DataForge",
    "SkyBridge DC",
    "VoltStack",
    "ByteHaven",
    "CoreFlux",
)
COMPETITOR_ARRIVAL_TICKS: Tuple[int, ...] = (100, 300, 600)
COMPETITOR_ENTRY_SHARE = 10.0
COMPETITOR_BID_WINDOW = 15
STRENGTH_GROWTH_RATE = 0.05
RUBBER_BAND_STRENGTH = 0.02
SHARE_DRIFT_RATE = 0.02
PRICE_WAR_CHANCE = 0.003
PRICE_WAR_TICKS = 20
PRICE_WAR_REVENUE_CUT = 0.15
POACH_ATTEMPT_CHANCE = 0.002
POACH_WINDOW_TICKS = 10
COUNTER_OFFER_RAISE = 0.20
COMPETITOR_OUTAGE_CHANCE = 0.004
COMPETITOR_OUTAGE_SHARE_LOSS = 3.0
COMPETITOR_BID_CHANCE = 0.01
MAX_STRENGTH = 100.0

PRESTIGE_MAX_LEVEL = 10
PRESTIGE_MIN_MONEY = 500_000.0
PRESTIGE_MIN_REPUTATION = 75.0
PRESTIGE_MIN_CABINETS = 30
PRESTIGE_REVENUE_STEP = 0.05
PRESTIGE_POWER_STEP = 0.03
PRESTIGE_MONEY_STEP = 10_000.0
PRESTIGE_COOLING_STEP = 0.04
PRESTIGE_REPUTATION_STEP = 3.0

ACHIEVEMENTS: Tuple[AchievementDef, ...] = (
    AchievementDef("first_cabinet", "Hello World", "Place your first cabinet."),
    AchievementDef("first_spine", "Backbone", "Deploy your first spine switch."),
    AchievementDef("full_rack", "Fully Loaded", "Fill a cabinet with 4 servers and a leaf switch."),
    AchievementDef("ten_cabinets", "Scaling Up", "Deploy 10 cabinets."),
    AchievementDef("water_cooling", "Liquid Assets", "Upgrade to water cooling."),
    AchievementDef("first_loan", "Leveraged", "Take out your first loan."),
    AchievementDef("debt_free", "Debt Free", "Pay off all outstanding loans."),
    AchievementDef("survive_incident", "Crisis Manager", "Resolve your first incident."),
    AchievementDef("five_incidents", "Veteran Operator", "Resolve 5 incidents."),
    AchievementDef("hundred_k", "Six Figures", "Accumulate $100,000."),
    AchievementDef("million", "Millionaire", "Accumulate $1,000,000."),
    AchievementDef("low_pue", "Green Machine", "Achieve a PUE of 1.30 or lower."),
    AchievementDef("max_spines", "Full Fabric", "Deploy the maximum spine switches for your suite."),
    AchievementDef("thermal_crisis", "Feeling the Heat", "Have a cabinet reach critical temperature."),
    AchievementDef("first_contract", "Open for Business", "Accept your first tenant contract."),
    AchievementDef("contract_complete", "Delivered", "Successfully complete a tenant contract."),
    AchievementDef("gold_contract", "Enterprise Grade", "Accept a Gold tier contract."),
    AchievementDef("three_contracts", "Full House", "Have 3 active contracts simultaneously."),
    AchievementDef("zone_contract", "Zone Landlord", "Complete a zone-gated contract."),
    AchievementDef("first_zone", "Zoned In", "Form your first zone of 3+ adjacent same-type cabinets."),
    AchievementDef("first_generator", "Backup Plan", "Purchase your first backup generator."),
    AchievementDef("first_research", "R&D Pioneer", "Complete your first technology research."),
    AchievementDef("tech_savvy", "Tech Savvy", "Unlock 6 technologies."),
    AchievementDef("excellent_rep", "Excellent Reputation", "Reach Excellent reputation tier."),
    AchievementDef("hardware_refresh", "Fresh Hardware", "Refresh aging server hardware."),
    AchievementDef("suite_upgrade", "Moving Up", "Upgrade your facility to a bigger suite."),
    AchievementDef("enterprise_suite", "Hyperscale", "Reach Enterprise suite tier."),
    AchievementDef("first_insurance", "Insured", "Purchase your first insurance policy."),
    AchievementDef("fully_insured", "Fully Covered", "Hold all 4 insurance policies simultaneously."),
    AchievementDef("drill_passed", "Drill Sergeant", "Pass a disaster recovery drill."),
    AchievementDef("stock_100", "Going Public", "Reach a stock price of $100."),
    AchievementDef("stock_500", "Blue Chip", "Reach a stock price of $500."),
    AchievementDef("first_patent", "Inventor", "Patent your first technology."),
    AchievementDef("all_patents", "Patent Troll", "Patent 5 or more technologies."),
    AchievementDef("rfp_won", "Winning Bid", "Win an RFP competition."),
    AchievementDef("first_hire", "First Hire", "Hire your first staff member."),
    AchievementDef("full_staff", "Full Staff", "Reach your maximum staff capacity."),
    AchievementDef("green_power", "Green Power", "Switch to a non-fossil energy source."),
    AchievementDef("locked_down", "Locked Down", "Reach High Security tier."),
    AchievementDef("market_leader", "Market Leader", "Achieve 50% or greater market share with rivals present."),
    AchievementDef("monopoly", "Monopoly", "Win 5 contracts that competitors bid on."),
    AchievementDef("rivalry", "Rivalry", "Outperform all competitors for 100 consecutive ticks."),
    AchievementDef("script_kiddie", "Script Kiddie", "Unlock Monitoring & Alerting ops tier."),
    AchievementDef("sre", "SRE", "Unlock Basic Automation ops tier."),
    AchievementDef("platform_engineer", "Platform Engineer", "Unlock Full Orchestration ops tier."),
    AchievementDef("lights_out", "Lights Out", "Auto-resolve 20 incidents via ops automation."),
    AchievementDef("game_saved", "Save Scummer", "Save your game for the first time."),
)
ACHIEVEMENT_IDS = frozenset(a.achievement_id for a in ACHIEVEMENTS)


def suite_config(tier: SuiteTier) -> SuiteTierConfig:
    return SUITE_TIERS[SuiteTier(tier)]


def region_config(region_id: str) -> RegionConfig:
    return REGIONS.get(str(region_id), REGIONS[DEFAULT_REGION])


def reputation_tier(score: float) -> ReputationTier:
    out = REPUTATION_TIERS[0]
    for t in REPUTATION_TIERS:
        if float(score) >= t.min_score:
            out = t
    return out


def next_in_order(order: Tuple, current) -> Optional[object]:
    idx = order.index(current)
    if idx + 1 >= len(order):
        return None
    return order[idx + 1]


def contract_defs() -> Tuple[ContractDef, ...]:
    return CONTRACT_CATALOG + ZONE_CONTRACT_CATALOG + COMPLIANCE_CONTRACT_CATALOG


def validate_catalog() -> None:
    """Check that every closed enumeration has a config record and cross-references resolve."""

    for enum_cls, table in (
        (CustomerType, CUSTOMER_TYPES),
        (Environment, ENVIRONMENTS),
        (CoolingType, COOLING),
        (SuiteTier, SUITE_TIERS),
        (RedundancyLevel, POWER_REDUNDANCY),
        (EnergySource, ENERGY_SOURCES),
        (InsuranceType, INSURANCE),
        (SecurityTier, SECURITY_TIERS),
        (OpsTier, OPS_TIERS),
        (StaffRole, STAFF_ROLES),
        (Personality, PERSONALITIES),
        (Season, SEASONS),
        (WeatherCondition, WEATHER),
        (ComplianceCert, COMPLIANCE_CERTS),
    ):
        missing = [m.value for m in enum_cls if m not in table]
        if missing:
            raise ValueError(f"{enum_cls.__name__} missing config for: {missing}")

    for tech in TECH_TREE.values():
        if tech.prerequisite is not None and tech.prerequisite not in TECH_TREE:
            raise ValueError(f"tech {tech.tech_id} has unknown prerequisite {tech.prerequisite}")
    for ops in OPS_TIERS.values():
        for t in ops.required_techs:
            if t not in TECH_TREE:
                raise ValueError(f"ops tier requires unknown tech {t}")

    prev_cols = prev_rows = prev_cab = 0
    for tier in SUITE_ORDER:
        cfg = SUITE_TIERS[tier]
        if cfg.cols < prev_cols or cfg.rows < prev_rows or cfg.max_cabinets < prev_cab:
            raise ValueError(f"suite tier {tier.value} shrinks the facility")
        if cfg.max_cabinets > cfg.cols * cfg.rows:
            raise ValueError(f"suite tier {tier.value} allows more cabinets than tiles")
        prev_cols, prev_rows, prev_cab = cfg.cols, cfg.rows, cfg.max_cabinets

    scores = [t.min_score for t in REPUTATION_TIERS]
    if scores != sorted(scores):
        raise ValueError("reputation tiers must be ordered by min_score")

    for d in contract_defs():
        if d.zone_kind is not None:
            keys = {e.value for e in Environment} if d.zone_kind == "environment" else {c.value for c in CustomerType}
            if d.zone_kind not in ("environment", "customer") or d.zone_key not in keys:
                raise ValueError(f"contract {d.contract_type} has an invalid zone requirement")
        if d.required_cert is not None and d.required_cert not in COMPLIANCE_CERTS:
            raise ValueError(f"contract {d.contract_type} requires an unknown certification")

    if abs(sum(w.chance for w in WEATHER.values()) - 1.0) > 1e-9:
        raise ValueError("weather chances must sum to 1")
    for w in WEATHER.values():
        if not 0 < w.min_ticks <= w.max_ticks:
            raise ValueError(f"weather {w.label} has an invalid duration range")

    for inc in INCIDENT_CATALOG.values():
        if inc.effect == IncidentEffect.HARDWARE_FAILURE and inc.hardware_target not in ("leaf", "spine", "cabinet"):
            raise ValueError(f"incident {inc.incident_type} needs a hardware target")


validate_catalog()
