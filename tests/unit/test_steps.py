"""
Unit tests for rule steps.

Each step is exercised directly on row dictionaries, independent of the
rule catalog.
"""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
from hypothesis import given
from hypothesis import strategies as st

from silver_refresh.core.models import TransformContext
from silver_refresh.core.models.rule_definition import (
    DeduplicateRule,
    DefaultIfNullRule,
    LeadDateRule,
    NormalizeRule,
    NullIfFutureRule,
    ParseYyyymmddRule,
    RecomputeProductRule,
    RecomputeQuotientRule,
    RemoveCharsRule,
    SplitKeyRule,
    StripPrefixRule,
    TrimRule,
)
from silver_refresh.core.steps import (
    DeduplicateStep,
    DefaultIfNullStep,
    LeadDateStep,
    NormalizeStep,
    NullIfFutureStep,
    ParseYyyymmddStep,
    RecomputeProductStep,
    RecomputeQuotientStep,
    RemoveCharsStep,
    SplitKeyStep,
    StepError,
    StripPrefixStep,
    TrimStep,
)
from silver_refresh.core.steps.cleanse_steps import parse_yyyymmdd

CONTEXT = TransformContext(as_of=date(2025, 1, 15), ingested_at=datetime(2025, 1, 15, tzinfo=timezone.utc))


def run(step, rows):
    return list(step.apply(iter(rows), CONTEXT))


@pytest.mark.unit
class TestCleanseSteps:
    """Tests for row-local cleanse steps"""

    def test_trim(self):
        """Test that strings are trimmed and other values pass through"""
        step = TrimStep(TrimRule(type="trim", name="t", fields=["a", "b"]))
        assert run(step, [{"a": "  Ann ", "b": None}]) == [{"a": "Ann", "b": None}]

    def test_trim_missing_field(self):
        """Test that a missing field is a StepError naming the rule"""
        step = TrimStep(TrimRule(type="trim", name="trim_names", fields=["a"]))
        with pytest.raises(StepError) as exc_info:
            run(step, [{"b": "x"}])
        assert exc_info.value.rule_name == "trim_names"
        assert exc_info.value.field_name == "a"

    def test_default_if_null(self):
        """Test that only null values are replaced"""
        step = DefaultIfNullStep(DefaultIfNullRule(type="default_if_null", field="cost", value=0))
        assert run(step, [{"cost": None}, {"cost": Decimal("5")}]) == [{"cost": 0}, {"cost": Decimal("5")}]

    def test_strip_prefix(self):
        """Test that the prefix is removed only where present"""
        step = StripPrefixStep(StripPrefixRule(type="strip_prefix", field="cid", prefix="NAS"))
        rows = run(step, [{"cid": "NASAW00011000"}, {"cid": "AW00011001"}, {"cid": None}])
        assert [row["cid"] for row in rows] == ["AW00011000", "AW00011001", None]

    def test_remove_chars(self):
        """Test that every listed character is deleted"""
        step = RemoveCharsStep(RemoveCharsRule(type="remove_chars", field="cid", chars="-"))
        assert run(step, [{"cid": "AW-000-11000"}]) == [{"cid": "AW00011000"}]

    def test_split_key(self):
        """Test splitting a composite product key"""
        step = SplitKeyStep(SplitKeyRule(
            type="split_key",
            field="prd_key",
            prefix_field="cat_id",
            prefix_length=5,
            separator_length=1,
            prefix_replace={"-": "_"},
        ))
        assert run(step, [{"prd_key": "CO-RF-FR-R92B-58"}]) == [{"prd_key": "FR-R92B-58", "cat_id": "CO_RF"}]

    def test_split_null_key(self):
        """Test that a null key yields a null prefix"""
        step = SplitKeyStep(SplitKeyRule(type="split_key", field="k", prefix_field="p", prefix_length=2))
        assert run(step, [{"k": None}]) == [{"k": None, "p": None}]

    def test_split_non_string_key(self):
        """Test that a non-string key is a StepError"""
        step = SplitKeyStep(SplitKeyRule(type="split_key", field="k", prefix_field="p", prefix_length=2))
        with pytest.raises(StepError):
            run(step, [{"k": 12345}])

    @pytest.mark.parametrize(
        "value,expected",
        [
            (20101229, date(2010, 12, 29)),
            ("20110105", date(2011, 1, 5)),
            (0, None),
            (-20101229, None),
            (None, None),
            (2010122, None),
            (20101332, None),
            (20100230, None),
        ],
    )
    def test_parse_yyyymmdd(self, value, expected):
        """Test integer date parsing edge cases"""
        assert parse_yyyymmdd(value) == expected

    def test_parse_yyyymmdd_step(self):
        """Test that every listed field is parsed"""
        step = ParseYyyymmddStep(ParseYyyymmddRule(type="parse_yyyymmdd", fields=["a", "b"]))
        assert run(step, [{"a": 20200101, "b": 0}]) == [{"a": date(2020, 1, 1), "b": None}]

    @given(st.dates(min_value=date(1000, 1, 1), max_value=date(9999, 12, 31)))
    def test_parse_yyyymmdd_valid_dates(self, value):
        """Test that every valid calendar date parses back to itself"""
        assert parse_yyyymmdd(int(value.strftime("%Y%m%d"))) == value


@pytest.mark.unit
class TestNormalizeStep:
    """Tests for closed-world normalization"""

    def make_step(self, default="n/a"):
        return NormalizeStep(NormalizeRule(
            type="normalize",
            name="gender",
            field="gen",
            mapping={"F": "Female", "FEMALE": "Female", "M": "Male"},
            default=default,
        ))

    @pytest.mark.parametrize(
        "value,expected",
        [("f", "Female"), (" Female ", "Female"), ("M", "Male"), ("X", "n/a"), ("", "n/a"), (None, "n/a")],
    )
    def test_mapping(self, value, expected):
        """Test that codes map case-insensitively and everything else takes the default"""
        assert run(self.make_step(), [{"gen": value}]) == [{"gen": expected}]

    def test_unmapped_without_default(self):
        """Test that an unmapped code without a default is an error"""
        with pytest.raises(StepError) as exc_info:
            run(self.make_step(default=None), [{"gen": "X"}])
        assert exc_info.value.rule_name == "gender"

    @given(st.one_of(st.none(), st.text(max_size=10)))
    def test_output_in_closed_set(self, value):
        """Test that output is always one of the rule's labels"""
        step = self.make_step()
        assert run(step, [{"gen": value}])[0]["gen"] in step.definition.labels()


@pytest.mark.unit
class TestDeduplicateStep:
    """Tests for keeping the latest row per key"""

    def make_step(self):
        return DeduplicateStep(DeduplicateRule(type="deduplicate", key=["id"], recency="created"))

    def test_latest_wins(self):
        """Test that the row with the greatest recency survives"""
        rows = [
            {"id": 7, "name": "old", "created": date(2024, 1, 1)},
            {"id": 7, "name": "new", "created": date(2024, 6, 1)},
            {"id": 3, "name": "only", "created": date(2023, 1, 1)},
        ]
        result = run(self.make_step(), rows)
        assert [(row["id"], row["name"]) for row in result] == [(3, "only"), (7, "new")]

    def test_null_key_dropped(self):
        """Test that rows without a key are dropped"""
        rows = [{"id": None, "name": "x", "created": date(2024, 1, 1)}]
        assert run(self.make_step(), rows) == []

    def test_null_recency_ranks_last(self):
        """Test that a dated row beats an undated one"""
        rows = [
            {"id": 1, "name": "undated", "created": None},
            {"id": 1, "name": "dated", "created": date(2000, 1, 1)},
        ]
        assert run(self.make_step(), rows)[0]["name"] == "dated"

    def test_ties_do_not_depend_on_input_order(self):
        """Test that equal recency resolves the same way for any input order"""
        rows = [
            {"id": 1, "name": "b", "created": date(2024, 1, 1)},
            {"id": 1, "name": "a", "created": date(2024, 1, 1)},
        ]
        forward = run(self.make_step(), [dict(row) for row in rows])
        backward = run(self.make_step(), [dict(row) for row in reversed(rows)])
        assert forward == backward
        assert forward[0]["name"] == "a"

    @given(st.lists(
        st.tuples(st.integers(1, 5), st.dates(min_value=date(2000, 1, 1), max_value=date(2030, 1, 1))),
        max_size=30,
    ))
    def test_one_row_per_key(self, pairs):
        """Test that output keys are unique and carry the maximum recency"""
        rows = [{"id": key, "created": created} for key, created in pairs]
        result = run(self.make_step(), rows)

        assert [row["id"] for row in result] == sorted({key for key, _ in pairs})
        for row in result:
            assert row["created"] == max(created for key, created in pairs if key == row["id"])


@pytest.mark.unit
class TestLeadDateStep:
    """Tests for version end-date derivation"""

    def make_step(self, open_value=date(9999, 12, 31)):
        return LeadDateStep(LeadDateRule(
            type="lead_date",
            partition_by=["key"],
            order_by="start",
            target="end",
            tie_break=["id"],
            offset_days=-1,
            open_value=open_value,
        ))

    def test_version_chain(self):
        """Test end dates d2-1, d3-1 and the open value"""
        rows = [
            {"id": 3, "key": "A", "start": date(2013, 7, 1), "end": None},
            {"id": 1, "key": "A", "start": date(2011, 7, 1), "end": None},
            {"id": 2, "key": "A", "start": date(2012, 7, 1), "end": date(2000, 1, 1)},
        ]
        result = run(self.make_step(), rows)
        assert [(row["id"], row["end"]) for row in result] == [
            (1, date(2012, 6, 30)),
            (2, date(2013, 6, 30)),
            (3, date(9999, 12, 31)),
        ]

    def test_partitions_are_independent(self):
        """Test that each key has its own chain"""
        rows = [
            {"id": 1, "key": "B", "start": date(2020, 1, 1), "end": None},
            {"id": 2, "key": "A", "start": date(2020, 1, 1), "end": None},
            {"id": 3, "key": "A", "start": date(2021, 1, 1), "end": None},
        ]
        result = {row["id"]: row["end"] for row in run(self.make_step(), rows)}
        assert result == {1: date(9999, 12, 31), 2: date(2020, 12, 31), 3: date(9999, 12, 31)}

    def test_null_open_value(self):
        """Test that the latest version stays open-ended with a null open value"""
        rows = [{"id": 1, "key": "A", "start": date(2020, 1, 1), "end": None}]
        assert run(self.make_step(open_value=None), rows)[0]["end"] is None

    def test_next_start_null(self):
        """Test that a null start sorts first and yields a null-derived predecessor"""
        rows = [
            {"id": 1, "key": "A", "start": None, "end": None},
            {"id": 2, "key": "A", "start": date(2020, 1, 1), "end": None},
        ]
        result = run(self.make_step(), rows)
        assert [(row["id"], row["end"]) for row in result] == [(1, date(2019, 12, 31)), (2, date(9999, 12, 31))]


@pytest.mark.unit
class TestSubstituteSteps:
    """Tests for validate-and-substitute steps"""

    def product_step(self):
        return RecomputeProductStep(RecomputeProductRule(
            type="recompute_product",
            target="sales",
            factors=["quantity", "price"],
            absolute=["price"],
        ))

    def quotient_step(self):
        return RecomputeQuotientStep(RecomputeQuotientRule(
            type="recompute_quotient",
            target="price",
            numerator="sales",
            denominator="quantity",
            scale=4,
        ))

    def test_consistent_sales_unchanged(self):
        """Test that a valid amount passes through"""
        rows = run(self.product_step(), [{"sales": Decimal("20"), "quantity": 2, "price": Decimal("10")}])
        assert rows[0]["sales"] == Decimal("20")

    @pytest.mark.parametrize("sales", [None, Decimal("0"), Decimal("-20"), Decimal("19")])
    def test_invalid_sales_recomputed(self, sales):
        """Test that null, non-positive and inconsistent amounts are recomputed"""
        rows = run(self.product_step(), [{"sales": sales, "quantity": 2, "price": Decimal("-10")}])
        assert rows[0]["sales"] == Decimal("20")

    def test_amount_within_tolerance_kept(self):
        """Test that a tolerance keeps amounts close to the product and replaces the rest"""
        step = RecomputeProductStep(RecomputeProductRule(
            type="recompute_product",
            target="sales",
            factors=["quantity", "price"],
            tolerance="0.01",
        ))
        rows = run(step, [
            {"sales": Decimal("100"), "quantity": 3, "price": Decimal("33.3333")},
            {"sales": Decimal("1"), "quantity": 3000, "price": Decimal("0.0003")},
        ])
        assert [row["sales"] for row in rows] == [Decimal("100"), Decimal("0.9")]

    def test_unknown_factor_keeps_positive_sales(self):
        """Test that a positive amount stays when a factor is unknown"""
        rows = run(self.product_step(), [{"sales": Decimal("20"), "quantity": None, "price": Decimal("10")}])
        assert rows[0]["sales"] == Decimal("20")

    def test_price_from_sales(self):
        """Test that a missing price is derived and rounded half-up"""
        rows = run(self.quotient_step(), [{"sales": Decimal("10"), "quantity": 3, "price": None}])
        assert rows[0]["price"] == Decimal("3.3333")

        rows = run(self.quotient_step(), [{"sales": Decimal("0.00005"), "quantity": 1, "price": Decimal("-1")}])
        assert rows[0]["price"] == Decimal("0.0001")

    def test_price_zero_quantity(self):
        """Test that a zero quantity leaves the price null"""
        rows = run(self.quotient_step(), [{"sales": Decimal("10"), "quantity": 0, "price": None}])
        assert rows[0]["price"] is None

    def test_valid_price_unchanged(self):
        """Test that a positive price is kept even when inconsistent"""
        rows = run(self.quotient_step(), [{"sales": Decimal("10"), "quantity": 3, "price": Decimal("7")}])
        assert rows[0]["price"] == Decimal("7")

    def test_non_numeric_factor(self):
        """Test that a non-numeric factor is a StepError"""
        with pytest.raises(StepError):
            run(self.product_step(), [{"sales": None, "quantity": "two", "price": Decimal("1")}])

    @given(
        st.integers(min_value=1, max_value=100),
        st.decimals(min_value=Decimal("0.01"), max_value=Decimal("10000"), places=2),
    )
    def test_sales_equals_quantity_times_price(self, quantity, price):
        """Test that after both steps sales = quantity * price within 0.01"""
        rows = run(self.product_step(), [{"sales": None, "quantity": quantity, "price": price}])
        rows = run(self.quotient_step(), rows)
        row = rows[0]
        assert abs(row["sales"] - row["quantity"] * row["price"]) <= Decimal("0.01")

    def test_null_if_future(self):
        """Test that only dates after the as-of date are nulled"""
        step = NullIfFutureStep(NullIfFutureRule(type="null_if_future", field="bdate"))
        rows = run(step, [
            {"bdate": date(2025, 1, 16)},
            {"bdate": date(2025, 1, 15)},
            {"bdate": None},
        ])
        assert [row["bdate"] for row in rows] == [None, date(2025, 1, 15), None]
