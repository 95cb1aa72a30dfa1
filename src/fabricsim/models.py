from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class Environment(str, Enum):
    PRODUCTION = "production"
    LAB = "lab"
    MANAGEMENT = "management"


class CustomerType(str, Enum):
    GENERAL = "general"
    AI_TRAINING = "ai_training"
    STREAMING = "streaming"
    CRYPTO = "crypto"
    ENTERPRISE = "enterprise"


class Facing(str, Enum):
    NORTH = "north"
    SOUTH = "south"


class CoolingType(str, Enum):
    AIR = "air"
    WATER = "water"


class SuiteTier(str, Enum):
    STARTER = "starter"
    STANDARD = "standard"
    PROFESSIONAL = "professional"
    ENTERPRISE = "enterprise"


class OpsTier(str, Enum):
    MANUAL = "manual"
    MONITORING = "monitoring"
    AUTOMATION = "automation"
    ORCHESTRATION = "orchestration"


class SecurityTier(str, Enum):
    BASIC = "basic"
    ENHANCED = "enhanced"
    HIGH_SECURITY = "high_security"
    MAXIMUM = "maximum"


class EnergySource(str, Enum):
    GRID_MIXED = "grid_mixed"
    GRID_GREEN = "grid_green"
    ONSITE_SOLAR = "onsite_solar"
    ONSITE_WIND = "onsite_wind"


class RedundancyLevel(str, Enum):
    N = "N"
    N_PLUS_1 = "N+1"
    TWO_N = "2N"


class Severity(str, Enum):
    MINOR = "minor"
    MAJOR = "major"
    CRITICAL = "critical"


class IncidentEffect(str, Enum):
    TRAFFIC_DROP = "traffic_drop"
    POWER_SURGE = "power_surge"
    COOLING_FAILURE = "cooling_failure"
    REVENUE_PENALTY = "revenue_penalty"
    HEAT_SPIKE = "heat_spike"
    HARDWARE_FAILURE = "hardware_failure"
    POWER_OUTAGE = "power_outage"


class IncidentCategory(str, Enum):
    THERMAL = "thermal"
    POWER = "power"
    SECURITY = "security"
    DISASTER = "disaster"


class ContractTier(str, Enum):
    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"
    ZONE = "zone"


class StaffRole(str, Enum):
    NETWORK_ENGINEER = "network_engineer"
    ELECTRICIAN = "electrician"
    COOLING_SPECIALIST = "cooling_specialist"
    SECURITY_OFFICER = "security_officer"


class InsuranceType(str, Enum):
    FIRE = "fire_insurance"
    POWER = "power_insurance"
    CYBER = "cyber_insurance"
    EQUIPMENT = "equipment_insurance"


class Personality(str, Enum):
    BUDGET = "budget"
    PREMIUM = "premium"
    GREEN = "green"
    AGGRESSIVE = "aggressive"
    STEADY = "steady"


class Season(str, Enum):
    SPRING = "spring"
    SUMMER = "summer"
    AUTUMN = "autumn"
    WINTER = "winter"


class WeatherCondition(str, Enum):
    CLEAR = "clear"
    CLOUDY = "cloudy"
    RAIN = "rain"
    STORM = "storm"
    HEATWAVE = "heatwave"
    COLD_SNAP = "cold_snap"


class ComplianceCert(str, Enum):
    SOC2_TYPE1 = "soc2_type1"
    SOC2_TYPE2 = "soc2_type2"
    HIPAA = "hipaa"
    PCI_DSS = "pci_dss"
    FEDRAMP = "fedramp"


@dataclass
class Cabinet:
    id: str
    col: int
    row: int
    environment: Environment = Environment.PRODUCTION
    customer_type: CustomerType = CustomerType.GENERAL
    server_count: int = 0
    has_leaf_switch: bool = False
    power_status: bool = True
    heat_level: float = 22.0
    server_age: int = 0
    facing: Facing = Facing.NORTH

    # Set by incidents; cleared when the incident resolves.
    leaf_failed: bool = False
    tripped: bool = False

    @property
    def is_active(self) -> bool:
        return bool(self.power_status) and not bool(self.tripped)

    @property
    def leaf_active(self) -> bool:
        return self.is_active and bool(self.has_leaf_switch) and not bool(self.leaf_failed)


@dataclass
class SpineSwitch:
    id: str
    power_status: bool = True
    failed: bool = False

    @property
    def is_active(self) -> bool:
        return bool(self.power_status) and not bool(self.failed)


@dataclass
class NetworkFlow:
    leaf_cabinet_id: str
    spine_id: str
    demand_gbps: float = 0.0
    allocated_gbps: float = 0.0
    capacity_gbps: float = 0.0
    utilization: float = 0.0
    redirected: bool = False


@dataclass
class TrafficStats:
    total_flows: int = 0
    redirected_flows: int = 0
    total_demand_gbps: float = 0.0
    total_bandwidth_gbps: float = 0.0
    total_capacity_gbps: float = 0.0
    served_fraction: float = 1.0
    flows: List[NetworkFlow] = field(default_factory=list)
    spine_utilization: Dict[str, float] = field(default_factory=dict)
    spine_status: Dict[str, str] = field(default_factory=dict)  # normal|elevated|critical


@dataclass
class NetworkTopology:
    total_links: int = 0
    healthy_links: int = 0
    oversubscription_ratio: float = 0.0
    avg_utilization: float = 0.0
    redundancy_level: int = 0


@dataclass
class PowerStats:
    it_power_w: float = 0.0
    cooling_power_w: float = 0.0
    total_power_w: float = 0.0
    pue: float = 0.0
    avg_heat: float = 22.0
    max_heat: float = 22.0
    cooling_rate: float = 2.0
    throttled_cabinets: int = 0
    backup_coverage: float = 1.0


@dataclass
class Zone:
    kind: str  # environment|customer
    key: str
    cabinet_ids: List[str] = field(default_factory=list)


@dataclass
class ContractTerms:
    contract_type: str
    company: str
    tier: ContractTier
    revenue_per_tick: float
    min_servers: int
    max_temp: float
    duration: int
    penalty_per_tick: float
    termination_ticks: int
    completion_bonus: float

    # Zone-gated contracts only.
    zone_kind: Optional[str] = None
    zone_key: Optional[str] = None
    zone_min_size: int = 0

    # Compliance contracts only.
    required_cert: Optional[ComplianceCert] = None


@dataclass
class ActiveContract:
    id: str
    terms: ContractTerms
    ticks_remaining: int
    consecutive_violations: int = 0
    total_earned: float = 0.0
    total_penalties: float = 0.0
    compliant: bool = True
    accepted_tick: int = 0
    source: str = "offer"  # offer|rfp


@dataclass
class CompetitorBid:
    competitor_id: str
    competitor_name: str
    contract_type: str
    win_chance: float
    ticks_remaining: int


@dataclass
class RFPOffer:
    id: str
    terms: ContractTerms
    win_chance: float
    ticks_remaining: int
    bids: List[CompetitorBid] = field(default_factory=list)


@dataclass
class ActiveIncident:
    id: str
    incident_type: str
    label: str
    category: IncidentCategory
    severity: Severity
    effect: IncidentEffect
    magnitude: float
    resolve_cost: float
    duration: int
    ticks_remaining: int
    resolved: bool = False
    auto_resolved: bool = False
    escalations: int = 0
    affected_hardware_id: Optional[str] = None
    started_tick: int = 0


@dataclass
class Competitor:
    id: str
    name: str
    personality: Personality
    strength: float = 10.0
    specialization: CustomerType = CustomerType.GENERAL
    reputation_score: float = 30.0
    security_tier: SecurityTier = SecurityTier.BASIC
    aggression: float = 0.5
    tech_level: int = 0
    market_share: float = 0.0
    contract_wins: int = 0
    contract_losses: int = 0


@dataclass
class Loan:
    id: str
    label: str
    principal: float
    remaining: float
    interest_rate: float
    payment_per_tick: float
    ticks_remaining: int


@dataclass
class Generator:
    id: str
    kind: str
    capacity_w: float
    fuel_cost_per_tick: float


@dataclass
class StaffMember:
    id: str
    name: str
    role: StaffRole
    salary_per_tick: float
    hired_tick: int = 0


@dataclass
class PoachAttempt:
    id: str
    staff_id: str
    competitor_id: str
    competitor_name: str
    ticks_remaining: int


@dataclass
class ComplianceAudit:
    cert: ComplianceCert
    ticks_remaining: int


@dataclass
class Certification:
    cert: ComplianceCert
    granted_tick: int
    expires_tick: int


@dataclass
class ResearchProgress:
    tech_id: str
    ticks_remaining: int


@dataclass
class PrestigeBonuses:
    revenue_multiplier: float = 0.0
    power_cost_reduction: float = 0.0
    starting_money_bonus: float = 0.0
    cooling_efficiency: float = 0.0
    reputation_start_bonus: float = 0.0


@dataclass
class PrestigeState:
    level: int = 0
    total_prestige_points: int = 0
    bonuses: PrestigeBonuses = field(default_factory=PrestigeBonuses)
    highest_tick_reached: int = 0
    highest_revenue_reached: float = 0.0
    total_runs_completed: int = 0


@dataclass
class FinanceBreakdown:
    server_revenue: float = 0.0
    contract_revenue: float = 0.0
    zone_bonus_revenue: float = 0.0
    patent_income: float = 0.0
    total_revenue: float = 0.0

    power_cost: float = 0.0
    cooling_cost: float = 0.0
    loan_payments: float = 0.0
    insurance_premiums: float = 0.0
    generator_fuel: float = 0.0
    security_maintenance: float = 0.0
    redundancy_maintenance: float = 0.0
    staff_salaries: float = 0.0
    carbon_tax: float = 0.0
    sla_penalties: float = 0.0
    incident_penalties: float = 0.0
    total_expenses: float = 0.0

    net_income: float = 0.0


@dataclass
class StockStats:
    price: float = 0.0
    low: float = 0.0
    high: float = 0.0
    change_pct: float = 0.0


@dataclass
class LogEntry:
    tick: int
    category: str
    message: str


@dataclass
class Counters:
    incidents_resolved: int = 0
    incidents_auto_resolved: int = 0
    incidents_escalated: int = 0
    contracts_accepted: int = 0
    contracts_completed: int = 0
    contracts_terminated: int = 0
    zone_contracts_completed: int = 0
    gold_contracts_accepted: int = 0
    rfp_wins: int = 0
    rfp_losses: int = 0
    contracts_beaten_competitors: int = 0
    hardware_refreshes: int = 0
    drills_run: int = 0
    drills_passed: int = 0
    loans_taken: int = 0
    loans_repaid: int = 0
    staff_hired: int = 0
    staff_poached: int = 0
    saves: int = 0
    outperform_streak: int = 0
    max_cabinet_heat: float = 22.0
    total_revenue: float = 0.0
    total_expenses: float = 0.0


@dataclass
class TickResult:
    tick: int
    finance: FinanceBreakdown = field(default_factory=FinanceBreakdown)
    contracts_completed: List[str] = field(default_factory=list)
    contracts_terminated: List[str] = field(default_factory=list)
    incidents_spawned: List[str] = field(default_factory=list)
    incidents_closed: List[str] = field(default_factory=list)
    research_completed: Optional[str] = None
    achievements_unlocked: List[str] = field(default_factory=list)


@dataclass
class GameState:
    tick: int = 0
    money: float = 50_000.0
    suite_tier: SuiteTier = SuiteTier.STARTER
    cooling_type: CoolingType = CoolingType.AIR
    region_id: str = "ashburn"

    cabinets: List[Cabinet] = field(default_factory=list)
    spine_switches: List[SpineSwitch] = field(default_factory=list)

    # Clock and demand
    hour_of_day: float = 0.0
    demand_multiplier: float = 1.0
    traffic_spike_ticks: int = 0
    power_price_multiplier: float = 1.0
    power_spike_ticks: int = 0

    # Outdoor conditions
    season: Season = Season.SPRING
    season_tick_counter: int = 0
    weather_condition: WeatherCondition = WeatherCondition.CLEAR
    weather_ticks_remaining: int = 15

    # Derived aggregates (recomputed every tick and after every accepted command)
    power: PowerStats = field(default_factory=PowerStats)
    traffic_stats: TrafficStats = field(default_factory=TrafficStats)
    network_topology: NetworkTopology = field(default_factory=NetworkTopology)
    zones: List[Zone] = field(default_factory=list)
    finance: FinanceBreakdown = field(default_factory=FinanceBreakdown)
    stock: StockStats = field(default_factory=StockStats)

    # Power infrastructure
    energy_source: EnergySource = EnergySource.GRID_MIXED
    power_redundancy: RedundancyLevel = RedundancyLevel.N
    generators: List[Generator] = field(default_factory=list)
    on_backup_power: bool = False

    # Cooling layout; aisle r lies between grid rows r and r+1
    aisle_containments: List[int] = field(default_factory=list)

    # Contracts
    contract_offers: List[ContractTerms] = field(default_factory=list)
    active_contracts: List[ActiveContract] = field(default_factory=list)
    rfp_offers: List[RFPOffer] = field(default_factory=list)
    competitor_bids: List[CompetitorBid] = field(default_factory=list)

    # Incidents
    active_incidents: List[ActiveIncident] = field(default_factory=list)
    last_drill_tick: Optional[int] = None
    last_drill_passed: Optional[bool] = None

    # Finance
    loans: List[Loan] = field(default_factory=list)
    insurance_policies: List[InsuranceType] = field(default_factory=list)
    stock_history: List[float] = field(default_factory=list)
    income_history: List[float] = field(default_factory=list)
    valuation_milestones: List[str] = field(default_factory=list)
    ticks_in_debt: int = 0
    bankrupt: bool = False

    # Market
    competitors: List[Competitor] = field(default_factory=list)
    player_market_share: float = 100.0
    price_war_ticks: int = 0
    poach_attempts: List[PoachAttempt] = field(default_factory=list)
    staff: List[StaffMember] = field(default_factory=list)

    # Progression
    reputation_score: float = 20.0
    ops_tier: OpsTier = OpsTier.MANUAL
    security_tier: SecurityTier = SecurityTier.BASIC
    certifications: List[Certification] = field(default_factory=list)
    active_audit: Optional[ComplianceAudit] = None
    unlocked_tech: List[str] = field(default_factory=list)
    active_research: Optional[ResearchProgress] = None
    patents: List[str] = field(default_factory=list)
    achievements: List[str] = field(default_factory=list)
    prestige: PrestigeState = field(default_factory=PrestigeState)

    counters: Counters = field(default_factory=Counters)
    event_log: List[LogEntry] = field(default_factory=list)
    last_tick: Optional[TickResult] = None

    next_id: int = 1
    rng_seed: int = 20260101
    rng_state: Optional[Any] = None

    def cabinet_by_id(self, cabinet_id: str) -> Optional[Cabinet]:
        for cab in self.cabinets:
            if cab.id == cabinet_id:
                return cab
        return None

    def spine_by_id(self, spine_id: str) -> Optional[SpineSwitch]:
        for sp in self.spine_switches:
            if sp.id == spine_id:
                return sp
        return None

    def new_id(self, prefix: str) -> str:
        n = int(self.next_id)
        self.next_id = n + 1
        return f"{prefix}-{n}"

    def adjust_reputation(self, delta: float) -> None:
        self.reputation_score = max(0.0, min(100.0, float(self.reputation_score) + float(delta)))

    def log(self, category: str, message: str) -> None:
        self.event_log.append(LogEntry(tick=int(self.tick), category=str(category), message=str(message)))
