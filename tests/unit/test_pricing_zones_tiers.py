import pytest

from backend.catalogue.packs import BASE_PACKS, get_base_pack
from backend.pricing.tiers import MANUAL_QUOTE_HEADCOUNT, UNKNOWN_TIER, adjust_tier, tier_description
from backend.pricing.zones import DeliveryZone, extract_postal_code, resolve_zone
from backend.utils.errors import ValidationError


@pytest.mark.parametrize(
    "postal_code, expected",
    [
        ("75011", DeliveryZone.PARIS),
        ("75116", DeliveryZone.PARIS),
        ("92100", DeliveryZone.PETITE_COURONNE),
        ("93200", DeliveryZone.PETITE_COURONNE),
        ("94300", DeliveryZone.PETITE_COURONNE),
        ("77300", DeliveryZone.GRANDE_COURONNE),
        ("78000", DeliveryZone.GRANDE_COURONNE),
        ("91000", DeliveryZone.GRANDE_COURONNE),
        ("95000", DeliveryZone.GRANDE_COURONNE),
        ("69001", DeliveryZone.HORS_ZONE),
        ("13001", DeliveryZone.HORS_ZONE),
    ],
)
def test_resolve_zone_by_postal_code(postal_code, expected):
    assert resolve_zone(postal_code=postal_code) == expected


def test_resolve_zone_from_free_text():
    assert resolve_zone(address_text="12 rue Oberkampf, 75011 Paris") == DeliveryZone.PARIS
    assert resolve_zone(address_text="Boulogne-Billancourt (92100)") == DeliveryZone.PETITE_COURONNE


def test_postal_code_has_priority_over_text():
    assert resolve_zone(address_text="Lyon 69001", postal_code="93200") == DeliveryZone.PETITE_COURONNE


@pytest.mark.parametrize(
    "text",
    [None, "", "Paris", "7501", "750111", "abcde", "75011 ou 92100", "   "],
)
def test_resolve_zone_never_raises_and_fails_safe(text):
    # Entrée absente, mal formée ou ambiguë: hors zone, jamais une remise
    assert resolve_zone(address_text=text) == DeliveryZone.HORS_ZONE


def test_extract_postal_code_same_code_twice_is_not_ambiguous():
    assert extract_postal_code("75011 Paris (75011)") == "75011"
    assert extract_postal_code("75011 / 75012") is None


@pytest.mark.parametrize(
    "pack, headcount, tier, price",
    [
        ("conference", 1, "S", 21200),
        ("conference", 29, "S", 21200),
        ("conference", 30, "M", 27400),
        ("conference", 69, "M", 27400),
        ("conference", 70, "L", 31100),
        ("conference", 149, "L", 31100),
        ("soiree", 29, "S", 25400),
        ("soiree", 30, "M", 32900),
        ("soiree", 70, "L", 37400),
        ("mariage", 1, "M", 38400),
        ("mariage", 69, "M", 38400),
        ("mariage", 70, "L", 43600),
    ],
)
def test_adjust_tier_bands(pack, headcount, tier, price):
    adj = adjust_tier(get_base_pack(pack), headcount)
    assert adj.tier == tier
    assert adj.adjusted_price == price
    assert adj.requires_manual_quote is False
    assert adj.items


def test_boundary_goes_to_higher_band():
    # [min, max): 30 et 70 appartiennent au palier supérieur
    pack = get_base_pack("conference")
    assert adjust_tier(pack, 29).tier == "S"
    assert adjust_tier(pack, 30).tier == "M"
    assert adjust_tier(pack, 69).tier == "M"
    assert adjust_tier(pack, 70).tier == "L"


@pytest.mark.parametrize("pack", sorted(BASE_PACKS))
def test_adjust_tier_is_monotonic(pack):
    base = get_base_pack(pack)
    prices = [adjust_tier(base, h).adjusted_price for h in range(1, MANUAL_QUOTE_HEADCOUNT + 50)]
    assert all(a <= b for a, b in zip(prices, prices[1:]))


def test_above_top_tier_requires_manual_quote():
    adj = adjust_tier(get_base_pack("soiree"), 150)
    assert adj.tier == "L"
    assert adj.adjusted_price == 37400
    assert adj.requires_manual_quote is True
    assert "sur devis" in adj.capacity


@pytest.mark.parametrize("headcount", [None, 0])
def test_missing_headcount_is_unknown_tier(headcount):
    assert adjust_tier(get_base_pack("conference"), headcount) is UNKNOWN_TIER
    assert UNKNOWN_TIER.is_known is False


def test_negative_headcount_is_validation_error():
    with pytest.raises(ValidationError) as exc:
        adjust_tier(get_base_pack("conference"), -5)
    assert exc.value.code == "invalid_headcount"


def test_tier_description():
    pack = get_base_pack("mariage")
    assert tier_description(pack, adjust_tier(pack, 80)).startswith("Pack Mariage L")
    assert tier_description(pack, UNKNOWN_TIER) == "Pack Mariage"
