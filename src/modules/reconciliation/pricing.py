"""Match TMS vehicles to persisted ones and re-price them against the tariff."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal

from src.modules.order.schemas import (
    ZERO,
    PricingModifiers,
    TotalPricing,
    Vehicle,
    VehiclePricing,
)
from src.modules.tms.constants import DEFAULT_PRICING_CLASS, VEHICLE_TYPE_PRICING_CLASS
from src.modules.tms.schemas import TmsVehicle

logger = logging.getLogger(__name__)


@dataclass
class VehicleReconciliation:
    vehicles: list[Vehicle]
    total_pricing: TotalPricing
    ambiguities: list[str] = field(default_factory=list)


def map_pricing_class(vehicle_type: str | None) -> str:
    normalized = (vehicle_type or "").strip().lower()
    return VEHICLE_TYPE_PRICING_CLASS.get(normalized, DEFAULT_PRICING_CLASS)


def _same(a: str | None, b: str | None) -> bool:
    return bool(a and b and a.strip().lower() == b.strip().lower())


def find_matching_vehicle(
    external: TmsVehicle, persisted: list[Vehicle]
) -> tuple[Vehicle | None, list[Vehicle]]:
    """Return ``(match, make_model_candidates)``.

    A VIN carried by both sides decides the match outright. Otherwise the
    first vehicle whose make or model matches wins; every make/model
    candidate is returned so the caller can report an ambiguous match.
    """
    if external.vin:
        for vehicle in persisted:
            if _same(vehicle.vin, external.vin):
                return vehicle, [vehicle]

    candidates = [
        vehicle
        for vehicle in persisted
        if _same(vehicle.make, external.make) or _same(vehicle.model, external.model)
    ]
    return (candidates[0] if candidates else None), candidates


def _describe(vehicle: TmsVehicle | Vehicle) -> str:
    parts = [vehicle.year, vehicle.make, vehicle.model]
    label = " ".join(p for p in parts if p)
    return f"{label} (VIN {vehicle.vin})" if vehicle.vin else label or "unknown vehicle"


def reprice_matched_vehicle(
    external: TmsVehicle,
    saved: Vehicle,
    order_commission: Decimal,
    order_company_tariff: Decimal,
) -> Vehicle:
    price = saved.pricing
    commission = price.modifiers.commission or order_commission or ZERO
    company_tariff = price.modifiers.company_tariff or order_company_tariff or ZERO
    modifiers = price.modifiers.model_copy(
        update={"commission": commission, "company_tariff": company_tariff}
    )

    if external.tariff is None:
        # Unusable tariff: keep what we had, only refresh the modifiers
        total = price.total
        base = price.base
        tariff = saved.tariff
    else:
        total = external.tariff
        tariff = external.tariff
        delta = price.total - external.tariff
        base = price.base - delta if delta else price.base

    return Vehicle(
        make=external.make or saved.make,
        model=external.model or saved.model,
        year=external.year if external.year is not None else saved.year,
        vin=external.vin if external.vin is not None else saved.vin,
        is_inoperable=external.is_inoperable,
        pricing_class=map_pricing_class(external.type),
        tariff=tariff,
        pricing=VehiclePricing(
            base=base,
            modifiers=modifiers,
            total=total,
            total_with_company_tariff_and_commission=total + commission + company_tariff,
        ),
    )


def price_new_vehicle(
    external: TmsVehicle,
    order_commission: Decimal,
    order_company_tariff: Decimal,
) -> Vehicle:
    tariff = external.tariff if external.tariff is not None else ZERO
    commission = order_commission or ZERO
    company_tariff = order_company_tariff or ZERO
    return Vehicle(
        make=external.make,
        model=external.model,
        year=external.year,
        vin=external.vin,
        is_inoperable=external.is_inoperable,
        pricing_class=map_pricing_class(external.type),
        tariff=external.tariff,
        pricing=VehiclePricing(
            base=tariff,
            modifiers=PricingModifiers(commission=commission, company_tariff=company_tariff),
            total=tariff,
            total_with_company_tariff_and_commission=tariff + commission + company_tariff,
        ),
    )


def reconcile_vehicles(
    external: list[TmsVehicle],
    persisted: list[Vehicle],
    total_pricing: TotalPricing,
) -> VehicleReconciliation:
    """Rebuild the vehicle list from the TMS and recompute order totals.

    The order-level modifiers on ``total_pricing`` supply the commission and
    company tariff for vehicles that carry none of their own.
    """
    order_commission = total_pricing.modifiers.commission
    order_company_tariff = total_pricing.modifiers.company_tariff

    vehicles: list[Vehicle] = []
    ambiguities: list[str] = []
    for ext in external:
        match, candidates = find_matching_vehicle(ext, persisted)
        if len(candidates) > 1 and not (match and ext.vin and _same(match.vin, ext.vin)):
            message = (
                f"{_describe(ext)} matches {len(candidates)} vehicles by make/model; "
                f"using {_describe(candidates[0])}"
            )
            logger.warning("Ambiguous vehicle match: %s", message)
            ambiguities.append(message)

        if match is not None:
            vehicles.append(
                reprice_matched_vehicle(ext, match, order_commission, order_company_tariff)
            )
        else:
            vehicles.append(price_new_vehicle(ext, order_commission, order_company_tariff))

    total = sum((v.pricing.total for v in vehicles), ZERO)
    total_with = sum(
        (v.pricing.total_with_company_tariff_and_commission for v in vehicles), ZERO
    )
    new_total_pricing = total_pricing.model_copy(
        update={
            "total": total,
            "total_with_company_tariff_and_commission": total_with,
        }
    )
    return VehicleReconciliation(
        vehicles=vehicles, total_pricing=new_total_pricing, ambiguities=ambiguities
    )
