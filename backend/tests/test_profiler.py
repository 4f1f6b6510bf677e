"""
Unit tests for the column profiler and cleaner.
"""
import pytest
from insight_weaver.core.config import Settings
from insight_weaver.core.errors import UnrecoverableInputError
from insight_weaver.services.profiler import (
    clean_dataset,
    detect_rating_scale,
    infer_semantic_type,
    normalize_headers,
    parse_number,
)


@pytest.mark.unit
def test_clean_dataset_basic(sales_dataset):
    """Column types and report for a small, already clean dataset."""
    assert sales_dataset.columns == ["Month", "Region", "Revenue"]
    assert sales_dataset.row_count == 9

    types = {profile.name: profile.semantic_type for profile in sales_dataset.profiles}
    assert types == {"Month": "categorical", "Region": "categorical", "Revenue": "continuous"}

    report = sales_dataset.report
    assert report.total_rows == 9
    assert report.cleaned_rows == 9
    assert report.removed_rows == 0
    assert report.duplicates_removed == 0
    assert [column.name for column in report.columns_analyzed] == sales_dataset.columns


@pytest.mark.unit
def test_numeric_profile_stats(sales_dataset):
    """Continuous columns carry rounded stats and both outlier counts."""
    revenue = sales_dataset.profile("Revenue")
    assert revenue.is_numeric is True
    assert revenue.stats.min == 7600
    assert revenue.stats.max == 13500
    assert revenue.stats.median == 10200
    assert revenue.outliers is not None
    assert len(revenue.sample_values) == 5


@pytest.mark.unit
def test_removes_duplicate_and_empty_rows():
    rows = [
        ["Name", "Score"],
        ["Alice", "10"],
        ["", ""],
        ["Alice", "10"],
        ["Bob", ""],
    ]
    dataset = clean_dataset(rows, Settings())

    assert dataset.row_count == 2
    assert dataset.report.duplicates_removed == 1
    assert dataset.report.removed_rows == 2
    # The empty cell in Bob's row is counted, not filled in
    assert dataset.report.nulls_handled == 1
    assert dataset.profile("Score").null_count == 1
    assert dataset.frame["Score"].tolist() == ["10", ""]


@pytest.mark.unit
def test_currency_and_accounting_values_are_normalized():
    rows = [
        ["Item", "Amount"],
        ["a", "$1,200"],
        ["b", "(35)"],
        ["c", "€ 7.50"],
        ["d", "900"],
    ]
    dataset = clean_dataset(rows, Settings())

    assert dataset.frame["Amount"].tolist() == ["1200", "-35", "7.5", "900"]
    assert dataset.report.data_type_corrections == 3


@pytest.mark.unit
def test_boolean_values_are_canonicalized():
    rows = [["Name", "Active"], ["a", "Yes"], ["b", "no"], ["c", "YES"], ["d", "No"]]
    dataset = clean_dataset(rows, Settings())

    assert dataset.profile("Active").semantic_type == "boolean"
    assert dataset.frame["Active"].tolist() == ["true", "false", "true", "false"]


@pytest.mark.unit
def test_ragged_rows_are_fitted_to_header():
    rows = [["A", "B", "C"], ["1"], ["2", "3", "4", "5"]]
    dataset = clean_dataset(rows, Settings())

    assert dataset.frame.shape == (2, 3)
    assert dataset.frame.iloc[0].tolist() == ["1", "", ""]


@pytest.mark.unit
def test_empty_column_degrades_to_text():
    rows = [["Name", "Notes"], ["x", ""], ["y", None]]
    dataset = clean_dataset(rows, Settings())

    notes = dataset.profile("Notes")
    assert notes.semantic_type == "text"
    assert notes.stats is None
    assert notes.null_count == 2


@pytest.mark.unit
def test_outlier_definitions_are_kept_separately():
    """The IQR fence catches 100; three population standard deviations do not."""
    rows = [["Batch", "Weight"]] + [[str(i), value] for i, value in enumerate(["10", "11", "12", "13", "14", "100"])]
    dataset = clean_dataset(rows, Settings())

    weight = dataset.profile("Weight")
    assert weight.semantic_type == "continuous"
    assert weight.outliers.iqr == 1
    assert weight.outliers.zscore == 0
    assert dataset.report.outliers_flagged == 1


@pytest.mark.unit
def test_rejects_dataset_without_data_rows():
    with pytest.raises(UnrecoverableInputError):
        clean_dataset([["A", "B"]], Settings())

    with pytest.raises(UnrecoverableInputError):
        clean_dataset([["A", "B"], ["", ""], [None, " "]], Settings())


@pytest.mark.unit
def test_parse_number():
    assert parse_number("$1,200") == 1200.0
    assert parse_number("(1,234)") == -1234.0
    assert parse_number("12%") == 12.0
    assert parse_number(" 3.5 ") == 3.5
    assert parse_number(7) == 7.0
    assert parse_number("nan") is None
    assert parse_number("inf") is None
    assert parse_number("abc") is None
    assert parse_number("") is None
    assert parse_number(True) is None


@pytest.mark.unit
def test_normalize_headers():
    assert normalize_headers(["Name", "", "name", None, "  Total   Sales "]) == [
        "Name", "Column 2", "name (2)", "Column 4", "Total Sales",
    ]


@pytest.mark.unit
def test_infer_semantic_type_variants():
    settings = Settings()

    assert infer_semantic_type("Rating", ["1", "2", "3", "2", "1", "3"], settings) == ("ordinal", True, None)
    assert infer_semantic_type("Amount", ["1.5", "2.25", "3.75", "8.5"], settings) == ("continuous", True, None)
    assert infer_semantic_type("Signup", ["2024-01-05", "2024-02-11", "2024-03-09"], settings) == ("date", False, None)
    assert infer_semantic_type("Active", ["yes", "no", "yes", "yes"], settings) == ("boolean", False, None)
    assert infer_semantic_type("City", ["Paris", "Lyon", "Paris", "Nice"], settings) == ("categorical", False, None)

    names = [f"Person {i}" for i in range(30)]
    assert infer_semantic_type("Name", names, settings) == ("text", False, None)
    assert infer_semantic_type("Empty", [], settings) == ("text", False, None)


@pytest.mark.unit
def test_year_columns_are_dates():
    settings = Settings()

    assert infer_semantic_type("Year", ["2019", "2020", "2021", "2022"], settings)[0] == "date"
    assert infer_semantic_type("Period", ["2019", "2020", "2021", "2022", "2023"], settings)[0] == "date"
    assert infer_semantic_type("Units", ["5000", "6200", "7100", "8800", "9100"], settings)[0] == "continuous"


@pytest.mark.unit
def test_rating_scale_is_non_numeric_ordinal():
    values = ["Agree", "Disagree", "Neutral", "Agree", "Strongly Agree"]
    semantic_type, is_numeric, levels = infer_semantic_type("Q1", values, Settings())

    assert semantic_type == "ordinal"
    assert is_numeric is False
    assert levels == ["Disagree", "Neutral", "Agree", "Strongly Agree"]


@pytest.mark.unit
def test_detect_rating_scale_with_numeric_prefixes():
    is_scale, levels = detect_rating_scale(["3 - Good", "1 - Poor", "2 - Fair"])
    assert is_scale is True
    assert levels == ["1 - Poor", "2 - Fair", "3 - Good"]

    assert detect_rating_scale(["Red", "Blue"]) == (False, None)
    assert detect_rating_scale(["Agree"]) == (False, None)
