from datetime import datetime

import pytest

from backend.catalogue.packs import get_base_pack
from backend.pricing.draft import BookingDraft, apply_change, draft_from_dict, quote_for_draft
from backend.pricing.quote import REASON_ABOVE_TOP_TIER, REASON_HORS_ZONE, ZoneInput, compute_quote, normalize_addons
from backend.pricing.zones import DeliveryZone
from backend.utils.errors import ValidationError
from backend.utils.timespan import Span

EVENING = Span(datetime(2025, 6, 1, 20, 0), datetime(2025, 6, 1, 23, 30))
NIGHT = Span(datetime(2025, 6, 1, 20, 0), datetime(2025, 6, 2, 2, 30))


def test_quote_paris_tier_m():
    quote = compute_quote(get_base_pack("conference"), 40, ZoneInput("Paris", "75011"), EVENING)
    assert quote.tier == "M"
    assert quote.zone == DeliveryZone.PARIS
    assert [s.code for s in quote.surcharge_breakdown] == ["delivery", "installation"]
    assert quote.total == 27400 + 5900
    assert quote.deposit == 9990
    assert quote.balance == 23310
    assert quote.caution == 84000
    assert quote.requires_manual_quote is False


def test_quote_petite_couronne_next_day_with_addons():
    quote = compute_quote(
        get_base_pack("conference"),
        10,
        ZoneInput("Boulogne-Billancourt", "92100"),
        NIGHT,
        addons={"micro_filaire": 2},
    )
    assert quote.tier == "S"
    assert [(s.code, s.amount) for s in quote.surcharge_breakdown] == [("delivery", 12000), ("next_day_pickup", 7000)]
    assert quote.total == 21200 + 12000 + 7000 + 2000
    assert quote.deposit + quote.balance == quote.total


def test_quote_hors_zone_is_manual_not_error():
    quote = compute_quote(get_base_pack("soiree"), 40, ZoneInput("Lyon", "69001"), EVENING)
    assert quote.requires_manual_quote is True
    assert quote.manual_quote_reasons == (REASON_HORS_ZONE,)
    assert quote.total is None and quote.deposit is None and quote.balance is None


def test_quote_above_top_tier_is_manual():
    quote = compute_quote(get_base_pack("mariage"), 200, ZoneInput("Paris", "75008"), EVENING)
    assert quote.manual_quote_reasons == (REASON_ABOVE_TOP_TIER,)
    assert quote.tier == "L"


def test_quote_rejects_malformed_postal_code():
    with pytest.raises(ValidationError) as exc:
        compute_quote(get_base_pack("conference"), 40, ZoneInput("Paris", "750"), EVENING)
    assert exc.value.code == "invalid_postal_code"


def test_quote_requires_headcount():
    with pytest.raises(ValidationError) as exc:
        compute_quote(get_base_pack("conference"), None, ZoneInput("Paris", "75011"), EVENING)
    assert exc.value.code == "missing_headcount"


def test_quote_unknown_package():
    with pytest.raises(ValidationError) as exc:
        compute_quote(get_base_pack("karaoke"), 10, ZoneInput("Paris", "75011"), EVENING)
    assert exc.value.code == "unknown_package"


def test_span_end_before_start():
    with pytest.raises(ValidationError) as exc:
        Span(datetime(2025, 6, 1, 20, 0), datetime(2025, 6, 1, 19, 0))
    assert exc.value.code == "end_before_start"


def test_normalize_addons_aggregates_duplicates():
    lines = normalize_addons([("micro_sans_fil", 1), {"key": "micro_sans_fil", "quantity": 2}, ("micro_filaire", 0)])
    assert [(a.key, a.quantity, a.amount) for a in lines] == [("micro_sans_fil", 3, 6000)]


def test_normalize_addons_rejects_unknown():
    with pytest.raises(ValidationError) as exc:
        normalize_addons({"fumigene": 1})
    assert exc.value.code == "invalid_addon"


def test_apply_change_returns_new_draft():
    draft = BookingDraft()
    updated = apply_change(draft, "headcount", "45")
    assert updated is not draft
    assert draft.headcount is None
    assert updated.headcount == 45


def test_apply_change_unknown_field():
    with pytest.raises(ValidationError) as exc:
        apply_change(BookingDraft(), "price", 0)
    assert exc.value.code == "unknown_field"


def test_quote_for_draft_is_memoized():
    draft = draft_from_dict({
        "package_key": "conference",
        "start": "2025-06-01T20:00:00",
        "end": "2025-06-01T23:30:00",
        "city": "Paris",
        "postal_code": "75 011",
        "headcount": 40,
    })
    first = quote_for_draft(draft)
    again = quote_for_draft(apply_change(draft, "city", "Paris"))
    assert again is first
    assert quote_for_draft.cache_info().hits >= 1

    changed = quote_for_draft(apply_change(draft, "headcount", 80))
    assert changed.tier == "L"
    assert changed is not first


def test_quote_for_draft_without_dates():
    with pytest.raises(ValidationError) as exc:
        quote_for_draft(BookingDraft(package_key="conference", headcount=10))
    assert exc.value.code == "missing_dates"


def test_quote_dict_carries_description_and_display_amounts():
    pack = get_base_pack("conference")
    data = compute_quote(pack, 40, ZoneInput("Paris", "75011"), EVENING).to_dict()
    assert data["description"].startswith(f"{pack.title} M")
    assert data["display"] == {
        "total": "333 €",
        "deposit": "99,90 €",
        "balance": "233,10 €",
        "caution": "840 €",
    }


def test_manual_quote_display_is_sur_devis():
    data = compute_quote(get_base_pack("conference"), 40, ZoneInput("Lyon", "69001"), EVENING).to_dict()
    assert data["display"]["total"] == "Sur devis"
    assert data["display"]["deposit"] == "Sur devis"
