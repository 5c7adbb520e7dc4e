from cleanquote.domain.pricing.field_resolver import ZERO, FieldValues
from cleanquote.domain.pricing.models import BookingDraft
from cleanquote.infra.metrics import configure_metrics
from tests.conftest import field, make_snapshot


def test_selection_resolves_value_and_time(default_snapshot):
    resolver = default_snapshot.resolver
    draft = BookingDraft(property_type="House", service_type="deep-clean")
    assert resolver.resolve_time("propertyType", draft) == 60
    service = resolver.resolve("serviceType", draft)
    assert (service.value, service.time, service.matched) == (20, 1.5, True)


def test_empty_selection_uses_category_default(default_snapshot):
    resolver = default_snapshot.resolver
    draft = BookingDraft()
    assert resolver.resolve_time("propertyType", draft) == 30
    assert resolver.resolve("serviceType", draft).value == 15
    assert resolver.resolve("bedrooms", draft) == ZERO


def test_config_miss_resolves_to_zero_and_is_counted(default_snapshot):
    metrics_client = configure_metrics(True)
    resolver = default_snapshot.resolver
    draft = BookingDraft(service_type="window-washing")
    assert resolver.resolve("serviceType", draft) == ZERO
    assert (
        metrics_client.registry.get_sample_value("field_config_misses_total", {"category": "servicetype"})
        == 1.0
    )


def test_resolution_is_repeatable(default_snapshot):
    resolver = default_snapshot.resolver
    draft = BookingDraft(bedrooms="3", bathrooms="2", additional_rooms={"toilets": 1})
    names = ["bedrooms", "Bathrooms", "additional-rooms"]
    first = [resolver.resolve(name, draft) for name in names]
    second = [resolver.resolve(name, draft) for name in names]
    assert first == second


def test_selected_option_falls_back_to_category_default(default_snapshot):
    resolver = default_snapshot.resolver
    assert resolver.selected_option("serviceType", BookingDraft()) == "check-in-check-out"
    assert resolver.selected_option("serviceType", BookingDraft(service_type=" deep-clean ")) == "deep-clean"
    assert resolver.selected_option("bedrooms", BookingDraft()) is None
    assert resolver.selected_option("bedrooms", BookingDraft(bedrooms=3)) == "3"


def test_quantities_multiply_per_option(default_snapshot):
    resolver = default_snapshot.resolver
    draft = BookingDraft(additional_rooms={"toilets": 2, "studyRooms": 1, "otherRooms": 0}, bed_sizes={"double": 2})
    rooms = resolver.resolve("additionalRooms", draft)
    assert rooms.time == 50
    assert rooms.matched
    beds = resolver.resolve("bedSizes", draft)
    assert (beds.value, beds.time) == (180, 40)


def test_individual_quantity_fields(default_snapshot):
    resolver = default_snapshot.resolver
    draft = BookingDraft(additional_rooms={"studyRooms": 2})
    assert resolver.resolve("studyRooms", draft) == FieldValues(value=2, time=40, matched=True)
    assert resolver.resolve("utilityRooms", draft) == ZERO


def test_booleans_map_to_yes_and_no(default_snapshot):
    resolver = default_snapshot.resolver
    no = resolver.resolve("alreadyCleaned", BookingDraft(already_cleaned=False))
    assert (no.value, no.time) == (2, 1.25)
    yes = resolver.resolve("alreadyCleaned", BookingDraft(already_cleaned=True))
    assert (yes.value, yes.time) == (0, 1)
    assert resolver.resolve("alreadyCleaned", BookingDraft()) == ZERO


def test_flag_uses_fixed_option(default_snapshot):
    resolver = default_snapshot.resolver
    assert resolver.resolve_value("sameDayTurnaround", BookingDraft(same_day_turnaround=True)) == 3
    assert resolver.resolve("sameDayTurnaround", BookingDraft()) == ZERO


def test_numbers_and_feature_maps(default_snapshot):
    resolver = default_snapshot.resolver
    draft = BookingDraft(
        ironing_hours=1.5,
        number_of_floors=2,
        property_features={"balcony": True, "separateKitchenLivingRoom": False},
    )
    assert resolver.resolve_value("ironingHours", draft) == 1.5
    assert resolver.resolve_value("numberOfFloors", draft) == 2
    assert resolver.resolve_time("propertyFeatures", draft) == 10
    assert resolver.resolve("balcony", draft) == FieldValues(value=1, time=10, matched=True)


def test_multi_select_products_are_summed(default_snapshot):
    resolver = default_snapshot.resolver
    draft = BookingDraft(cleaning_products=["I will provide", "Cleaner brings products"])
    assert resolver.resolve_value("cleaningProducts", draft) == 2.5


def test_known_fields_and_can_resolve(default_snapshot):
    resolver = default_snapshot.resolver
    known = resolver.known_fields()
    assert {"bedrooms", "servicetype", "toilets", "double", "balcony"} <= known
    draft = BookingDraft(bed_sizes={"Bunk": 1})
    assert resolver.can_resolve("bedrooms", draft)
    assert resolver.can_resolve("bunk", draft)
    assert not resolver.can_resolve("ghost", draft)


def test_known_fields_are_formula_identifiers():
    snapshot = make_snapshot(
        field_configs=[field("Bed Sizes", "2 Single Beds", value=60), field("Bed Sizes", "Double", value=90)]
    )
    known = snapshot.resolver.known_fields()
    assert "double" in known
    assert "2singlebeds" not in known
