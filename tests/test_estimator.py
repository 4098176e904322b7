import itertools

import pytest

from recon.config import PricingConfig
from recon.data_models import DAMAGE_TYPES, SEVERITIES, DamageObservation, PriceQuote, VehicleDescriptor
from recon.repair_costs import installation_labor, repair_cost, static_part_price
from recon_service.estimator import EstimateBuilder, round_usd
from recon_service.part_pricing import static_quote

HONDA = VehicleDescriptor(year=2019, make="Honda", model="Accord")
BMW = VehicleDescriptor(year=2020, make="BMW", model="3 Series")


class StaticResolver:
    async def resolve(self, part_name, vehicle):
        return static_quote(part_name, vehicle)


class FixedResolver:
    def __init__(self, quote):
        self.quote = quote

    async def resolve(self, part_name, vehicle):
        return self.quote


class ExplodingResolver:
    async def resolve(self, part_name, vehicle):
        raise RuntimeError("pricing backend crashed")


def _obs(id="obs-1", damage_type="scratch", severity="moderate", part_name=None, location="hood"):
    return DamageObservation(
        id=id,
        location=location,
        damage_type=damage_type,
        severity=severity,
        requires_part_replacement=part_name is not None,
        part_name=part_name,
    )


def test_round_usd_rounds_half_up():
    assert round_usd(2.5) == 3
    assert round_usd(3.5) == 4
    assert round_usd(127.5) == 128
    assert round_usd(127.49) == 127


@pytest.mark.asyncio
async def test_minor_dent_on_mainstream_vehicle():
    builder = EstimateBuilder(StaticResolver())
    [item] = await builder.build_estimate([_obs(damage_type="dent_small", severity="minor")], HONDA, "medium")
    assert item.repair_operation == "pdr_small"
    assert (item.labor_cost_low, item.labor_cost_high) == (75, 150)
    assert (item.parts_cost_low, item.parts_cost_high) == (0, 0)
    assert (item.cost_low, item.cost_high) == (75, 150)
    assert item.pricing_source == "static"
    assert item.is_included is False


@pytest.mark.asyncio
async def test_severe_scratch_on_luxury_vehicle_high_labor():
    builder = EstimateBuilder(StaticResolver())
    [item] = await builder.build_estimate([_obs(severity="severe")], BMW, "high")
    assert item.repair_operation == "full_panel_respray"
    assert (item.labor_cost_low, item.labor_cost_high) == (416, 936)
    assert (item.parts_cost_low, item.parts_cost_high) == (60, 150)
    assert (item.cost_low, item.cost_high) == (476, 1086)
    assert item.recommended_repair == repair_cost("full_panel_respray").description
    assert item.is_included is True


@pytest.mark.asyncio
async def test_paintable_panel_replacement_adds_respray():
    builder = EstimateBuilder(StaticResolver())
    [item] = await builder.build_estimate(
        [_obs(damage_type="crack", severity="severe", part_name="front_bumper_cover")], HONDA, "medium",
    )
    assert item.recommended_repair == "Replace front_bumper_cover + prime/paint"
    assert (item.parts_cost_low, item.parts_cost_high) == (140, 400)
    assert (item.labor_cost_low, item.labor_cost_high) == (350, 800)
    assert item.pricing_source == "static"
    assert item.repair_operation is None
    assert item.purchase_link.startswith("https://www.ebay.com/sch/")
    assert item.purchase_link_label


@pytest.mark.asyncio
async def test_marketplace_part_price_is_not_tier_scaled():
    quote = PriceQuote(
        source="marketplace", price_low=40, price_median=50, price_high=60,
        purchase_link="https://www.ebay.com/itm/40",
    )
    builder = EstimateBuilder(FixedResolver(quote))
    [item] = await builder.build_estimate(
        [_obs(damage_type="broken", severity="severe", part_name="side_mirror", location="left mirror")],
        BMW,
        "medium",
    )
    assert item.recommended_repair == "Replace side_mirror"
    assert (item.parts_cost_low, item.parts_cost_high) == (40, 60)
    assert (item.labor_cost_low, item.labor_cost_high) == (80, 240)
    assert item.pricing_source == "marketplace"
    assert item.purchase_link == "https://www.ebay.com/itm/40"


@pytest.mark.asyncio
async def test_static_part_price_is_tier_scaled():
    builder = EstimateBuilder(StaticResolver())
    [item] = await builder.build_estimate(
        [_obs(damage_type="broken", severity="severe", part_name="side_mirror")], BMW, "low",
    )
    price = static_part_price("side_mirror")
    labor = installation_labor("side_mirror")
    assert item.parts_cost_low == round_usd(price.low * 1.6)
    assert item.parts_cost_high == round_usd(price.high * 1.6)
    assert item.labor_cost_low == round_usd(labor.low * 1.6 * 0.8)
    assert item.labor_cost_high == round_usd(labor.high * 1.6 * 0.8)


@pytest.mark.asyncio
async def test_resolver_failure_still_prices_item():
    builder = EstimateBuilder(ExplodingResolver())
    [item] = await builder.build_estimate(
        [_obs(damage_type="broken", severity="severe", part_name="hood")], HONDA, "medium",
    )
    assert item.pricing_source == "static"
    assert item.cost_low > 0


@pytest.mark.asyncio
async def test_flag_without_part_name_is_a_repair():
    obs = DamageObservation(
        id="x", location="hood", damage_type="crack", severity="severe", requires_part_replacement=True,
    )
    [item] = await EstimateBuilder(StaticResolver()).build_estimate([obs], HONDA)
    assert item.repair_operation is not None
    assert not item.recommended_repair.startswith("Replace")


@pytest.mark.asyncio
async def test_every_combination_yields_one_consistent_item():
    observations = [
        _obs(id=f"{d}-{s}", damage_type=d, severity=s)
        for d, s in itertools.product(DAMAGE_TYPES, SEVERITIES)
    ]
    items = await EstimateBuilder(StaticResolver()).build_estimate(observations, HONDA, "medium")

    assert [i.id for i in items] == [o.id for o in observations]
    for obs, item in zip(observations, items):
        assert item.cost_low == item.parts_cost_low + item.labor_cost_low
        assert item.cost_high == item.parts_cost_high + item.labor_cost_high
        assert item.cost_low <= item.cost_high
        assert item.is_included == (obs.severity != "minor")


@pytest.mark.asyncio
async def test_item_order_follows_observations():
    observations = [
        _obs(id="c", damage_type="broken", severity="severe", part_name="hood"),
        _obs(id="a", damage_type="scratch", severity="minor"),
        _obs(id="b", damage_type="rust_spot", severity="moderate"),
    ]
    items = await EstimateBuilder(StaticResolver()).build_estimate(observations, HONDA)
    assert [i.id for i in items] == ["c", "a", "b"]


@pytest.mark.asyncio
async def test_empty_observations_yield_empty_estimate():
    assert await EstimateBuilder(StaticResolver()).build_estimate([], HONDA) == []


@pytest.mark.asyncio
@pytest.mark.parametrize("damage_type,severity,part_name", [
    ("scratch", "moderate", None),
    ("dent_large", "severe", None),
    ("crack", "severe", "fender"),
])
async def test_costs_grow_with_vehicle_tier(damage_type, severity, part_name):
    builder = EstimateBuilder(StaticResolver())
    obs = [_obs(damage_type=damage_type, severity=severity, part_name=part_name)]
    totals = []
    for make in ("Kia", "Ford", "Audi"):
        [item] = await builder.build_estimate(obs, VehicleDescriptor(year=2021, make=make, model="X"), "medium")
        totals.append((item.cost_low, item.cost_high))
    assert totals[0] <= totals[1] <= totals[2]


@pytest.mark.asyncio
async def test_default_labor_tier_comes_from_config():
    builder = EstimateBuilder(StaticResolver(), PricingConfig(default_labor_tier="high"))
    [default_item] = await builder.build_estimate([_obs()], HONDA)
    [high_item] = await builder.build_estimate([_obs()], HONDA, "high")
    assert default_item == high_item


@pytest.mark.asyncio
async def test_interior_repair_gets_cleaning_link():
    [item] = await EstimateBuilder(StaticResolver()).build_estimate(
        [_obs(damage_type="stain", severity="moderate", location="rear seat")], HONDA,
    )
    assert item.purchase_link is not None
    assert "amazon" in item.purchase_link
