"""
Canonical measurement fields per emission category.

Each ``CategoryRule`` names the canonical fields a scope of that category
records, and for each field the source keys accepted for it, in priority
order.  ``CATEGORY_RULES`` is evaluated top to bottom and the first
matching rule wins, so activity-specific rules (SF6, CH4 leaks) sit above
the generic fugitive rule of the same category.
"""

import re
from collections.abc import Callable
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from carbon_kernel.domain.org_chart import ScopeConfig

SCOPE_1 = "Scope 1"
SCOPE_2 = "Scope 2"
SCOPE_3 = "Scope 3"


class FieldKind(str, Enum):
    NUMERIC = "numeric"
    TEXT = "text"


@dataclass(frozen=True)
class CanonicalField:
    name: str
    aliases: tuple[str, ...]
    default: Decimal | str = Decimal("0")
    kind: FieldKind = FieldKind.NUMERIC
    # Extra canonical names that receive the same value.
    mirrors: tuple[str, ...] = ()

    @property
    def output_names(self) -> tuple[str, ...]:
        return (self.name, *self.mirrors)


@dataclass(frozen=True)
class CategoryRule:
    name: str
    tier: str
    matches: Callable[[ScopeConfig], bool]
    fields: tuple[CanonicalField, ...]


def _num(name: str, *aliases: str, default: str = "0") -> CanonicalField:
    return CanonicalField(name=name, aliases=(name, *aliases), default=Decimal(default))


def _text(name: str, *aliases: str) -> CanonicalField:
    return CanonicalField(name=name, aliases=(name, *aliases), default="", kind=FieldKind.TEXT)


def _category_contains(fragment: str) -> Callable[[ScopeConfig], bool]:
    return lambda scope: fragment in scope.category_name


def _category_is(name: str) -> Callable[[ScopeConfig], bool]:
    return lambda scope: scope.category_name == name


_SF6 = re.compile(r"SF6", re.IGNORECASE)
_CH4_LEAKS = re.compile(r"CH4[_\s-]?Leaks?", re.IGNORECASE)
_REFRIGERATION = re.compile(r"ref.*?geration", re.IGNORECASE)


def _purchased_energy(kind: str) -> tuple[CanonicalField, ...]:
    name = f"consumed_{kind}"
    return (_num(name, kind, f"power_{kind}", f"{kind}_consumed"),)


_SCOPE_1_RULES = (
    CategoryRule(
        "Combustion",
        SCOPE_1,
        _category_contains("Combustion"),
        (_num("fuelConsumption", "fuel_consumed", "consumption"),),
    ),
    CategoryRule(
        "Fugitive SF6",
        SCOPE_1,
        lambda s: "Fugitive" in s.category_name and bool(_SF6.search(s.activity)),
        (
            _num("nameplateCapacity", "nameplate_capacity"),
            _num("defaultLeakageRate", "default_leakage_rate"),
            _num("decreaseInventory", "decrease_inventory"),
            _num("acquisitions"),
            _num("disbursements"),
            _num("netCapacityIncrease", "net_capacity_increase"),
        ),
    ),
    CategoryRule(
        "Fugitive CH4 Leaks",
        SCOPE_1,
        lambda s: "Fugitive" in s.category_name and bool(_CH4_LEAKS.search(s.activity)),
        (
            _num("activityData", "activity_data"),
            _num("numberOfComponents", "number_of_components"),
        ),
    ),
    CategoryRule(
        "Fugitive",
        SCOPE_1,
        lambda s: "Fugitive" in s.category_name or bool(_REFRIGERATION.search(s.activity)),
        (
            _num("numberOfUnits", "unit_count"),
            _num("leakageRate", "leakage"),
            _num("installedCapacity"),
            _num("endYearCapacity"),
            _num("purchases"),
            _num("disposals"),
        ),
    ),
    CategoryRule(
        "Process Emission",
        SCOPE_1,
        _category_contains("Process Emission"),
        (
            _num("productionOutput", "production_output"),
            _num("rawMaterialInput", "raw_material_input"),
        ),
    ),
)

_SCOPE_2_RULES = (
    CategoryRule("Purchased Steam", SCOPE_2, _category_is("Purchased Steam"), _purchased_energy("steam")),
    CategoryRule("Purchased Heating", SCOPE_2, _category_is("Purchased Heating"), _purchased_energy("heating")),
    CategoryRule("Purchased Cooling", SCOPE_2, _category_is("Purchased Cooling"), _purchased_energy("cooling")),
    # Electricity is also the fallback for any other Scope 2 category.
    CategoryRule("Purchased Electricity", SCOPE_2, lambda s: True, _purchased_energy("electricity")),
)

_LEASED_ASSET_FIELDS = (
    _num("leasedArea", "leased_area"),
    _num("totalArea", "total_area"),
    _num("energyConsumption", "energy", "kWh", "MWh"),
    _num("BuildingTotalS1_S2", "buildingTotalS1S2", "BuildingTotals1_S2"),
    _num("occupancyEF", "occupancyFactor", "occupancy_factor", "OccupancyFactor", default="1"),
)

_SCOPE_3_RULES = (
    CategoryRule(
        "Purchased Goods and Services",
        SCOPE_3,
        _category_is("Purchased Goods and Services"),
        (
            _num("procurementSpend", "procurement_spend"),
            _num("physicalQuantity", "physical_quantity"),
        ),
    ),
    CategoryRule(
        "Capital Goods",
        SCOPE_3,
        _category_is("Capital Goods"),
        (
            _num("procurementSpend", "procurement_spend", "capital_spend"),
            _num("assetQuantity", "asset_quantity"),
        ),
    ),
    CategoryRule(
        "Fuel and energy",
        SCOPE_3,
        _category_is("Fuel and energy"),
        (
            _num("fuelConsumed", "fuel_consumed"),
            CanonicalField("fuelConsumption", ("consumed_fuel", "consumedFuel")),
            _num("electricityConsumption", "electricity_consumed"),
            _num("tdLossFactor", "td_loss_factor"),
        ),
    ),
    CategoryRule(
        "Upstream Transport and Distribution",
        SCOPE_3,
        _category_is("Upstream Transport and Distribution"),
        (
            CanonicalField(
                "transportationSpend",
                (
                    "transportationSpend",
                    "transportation_spend",
                    "transportSpend",
                    "transport_Spend",
                    "spendTransport",
                ),
                mirrors=("transportSpend",),
            ),
            _num("allocation", "weight"),
            _num("distance", "km"),
        ),
    ),
    CategoryRule(
        "Waste Generated in Operation",
        SCOPE_3,
        _category_is("Waste Generated in Operation"),
        (_num("wasteMass", "mass_waste"), _text("treatmentType")),
    ),
    CategoryRule(
        "Business Travel",
        SCOPE_3,
        _category_is("Business Travel"),
        (
            _num("travelSpend", "travel_spend"),
            _num("numberOfPassengers", "passengers"),
            _num("distanceTravelled", "distance"),
            _num("hotelNights", "hotel_nights"),
        ),
    ),
    CategoryRule(
        "Employee Commuting",
        SCOPE_3,
        lambda s: s.category_name == "Employee Commuting" and s.calculation_model == "tier 1",
        (
            _num("employeeCount", "employee_Count"),
            _num("averageCommuteDistance", "average_Commuting_Distance"),
            _num("workingDays", "working_Days"),
        ),
    ),
    # Tier 2 commuting has no canonical inputs yet.
    CategoryRule("Employee Commuting (tier 2)", SCOPE_3, _category_is("Employee Commuting"), ()),
    CategoryRule(
        "Upstream Leased Assets", SCOPE_3, _category_is("Upstream Leased Assets"), _LEASED_ASSET_FIELDS
    ),
    CategoryRule(
        "Downstream Leased Assets", SCOPE_3, _category_is("Downstream Leased Assets"), _LEASED_ASSET_FIELDS
    ),
    CategoryRule(
        "Downstream Transport and Distribution",
        SCOPE_3,
        _category_is("Downstream Transport and Distribution"),
        (
            CanonicalField(
                "transportSpend",
                (
                    "transportSpend",
                    "transport_Spend",
                    "spendTransport",
                    "transportationSpend",
                    "transportation_spend",
                ),
                mirrors=("transportationSpend",),
            ),
            _num("allocation", "transportMass", "weight"),
            _num("distance", "transportDistance", "km"),
        ),
    ),
    CategoryRule(
        "Processing of Sold Products",
        SCOPE_3,
        _category_is("Processing of Sold Products"),
        (_num("productQuantity", "product_quantity"), _text("customerType", "customer_type")),
    ),
    CategoryRule(
        "Use of Sold Products",
        SCOPE_3,
        _category_is("Use of Sold Products"),
        (
            _num("productQuantity", "product_quantity"),
            _num("averageLifetimeEnergyConsumption", "average_lifetime_energy_consumption"),
            _num("usePattern", "use_pattern", default="1"),
            _num("energyEfficiency", "energy_efficiency"),
        ),
    ),
    CategoryRule(
        "End-of-Life Treatment of Sold Products",
        SCOPE_3,
        _category_is("End-of-Life Treatment of Sold Products"),
        (
            _num("massEol", "mass_eol"),
            _num("toDisposal", "to_disposal"),
            _num("toLandfill", "to_landfill"),
            _num("toIncineration", "to_incineration"),
        ),
    ),
    CategoryRule(
        "Franchises",
        SCOPE_3,
        _category_is("Franchises"),
        (
            _num("franchiseCount", "noOfFranchises"),
            _num("avgEmissionPerFranchise", "averageEmissionPerFranchise"),
            _num("franchiseTotalS1Emission", "totalS1Emission"),
            _num("franchiseTotalS2Emission", "totalS2Emission"),
            _num("energyConsumption", "energy_Consumption"),
        ),
    ),
    CategoryRule(
        "Investments",
        SCOPE_3,
        _category_is("Investments"),
        (
            _num("investeeRevenue", "investee_revenue"),
            _num("investeeScope1Emission", "scope1Emission"),
            _num("investeeScope2Emission", "scope2Emission"),
            _num("energyConsumption", "energy_consumption"),
        ),
    ),
)

CATEGORY_RULES: tuple[CategoryRule, ...] = _SCOPE_1_RULES + _SCOPE_2_RULES + _SCOPE_3_RULES


def find_rule(scope: ScopeConfig) -> CategoryRule | None:
    for rule in CATEGORY_RULES:
        if rule.tier == scope.scope_tier and rule.matches(scope):
            return rule
    return None
