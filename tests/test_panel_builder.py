"""Tests for the index-constituent panel builder."""

import numpy as np
import pandas as pd
import pytest

from index_factors.config import INDUSTRY_LABELS, SENTINEL_CLASS, SENTINEL_SIC_BOUND
from index_factors.data.panel_builder import (
    PanelBuilder,
    JoinCardinalityError,
    RET_INVALID,
    RET_MISSING,
    RET_VALID,
    load_panel,
)


def _rows(panel, permno):
    return panel[panel["permno"] == permno].reset_index(drop=True)


class TestScreenReturns:
    """Tests for return screening."""

    def test_flags_floor_and_missing_values(self, loader):
        returns = pd.DataFrame({
            "permno": [1, 1, 1, 1],
            "date": pd.to_datetime(["2000-01-31", "2000-02-29", "2000-03-31", "2000-04-30"]),
            "ret": [0.05, -0.99, np.nan, 0.01],
            "retx": [0.04, 0.10, 0.02, -0.995],
        })
        builder = PanelBuilder(loader=loader)
        screened = builder.screen_returns(returns)

        assert screened["ret_status"].tolist() == [RET_VALID, RET_INVALID, RET_INVALID, RET_INVALID]
        assert screened["ret"].iloc[0] == 0.05
        assert screened.loc[1:, ["ret", "retx"]].isna().all().all()
        assert builder.stats["returns_invalid"] == 3

    def test_repeated_records_keep_first(self, loader):
        returns = pd.DataFrame({
            "permno": [1, 1],
            "date": pd.to_datetime(["2000-01-31", "2000-01-31"]),
            "ret": [0.05, 0.07],
            "retx": [0.05, 0.07],
        })
        screened = PanelBuilder(loader=loader).screen_returns(returns)

        assert len(screened) == 1
        assert screened["ret"].iloc[0] == 0.05


class TestFirmDates:
    """Tests for the firm x calendar cross join and trading windows."""

    def test_cross_join_size(self, loader, headers, calendar):
        firm_dates = PanelBuilder(loader=loader).build_firm_dates(headers, calendar)
        assert len(firm_dates) == len(headers) * len(calendar)

    def test_trading_window_and_uniqueness(self, loader, headers, calendar, returns):
        builder = PanelBuilder(loader=loader)
        panel = builder.attach_returns(builder.build_firm_dates(headers, calendar), returns)

        assert not panel.duplicated(subset=["permno", "date"]).any()
        assert "begret" not in panel.columns

        beta = _rows(panel, 10002)
        assert beta["ret_status"].tolist() == [RET_VALID, RET_MISSING, RET_INVALID]

    def test_dates_outside_window_dropped(self, loader, headers, calendar, returns):
        headers = headers.copy()
        headers.loc[headers["permno"] == 10001, "endret"] = pd.Timestamp("2000-02-15")
        builder = PanelBuilder(loader=loader)
        panel = builder.attach_returns(builder.build_firm_dates(headers, calendar), returns)

        assert _rows(panel, 10001)["date"].tolist() == [pd.Timestamp("2000-01-31")]

    def test_cardinality_guard(self, loader):
        builder = PanelBuilder(loader=loader, max_panel_rows=5)
        with pytest.raises(JoinCardinalityError):
            builder.build()

    def test_membership_join_guard(self, loader, headers, calendar, returns):
        # Six firm-dates fit the limit; three intervals for 10001 grow them to twelve
        builder = PanelBuilder(loader=loader, max_panel_rows=6)
        panel = builder.attach_returns(builder.build_firm_dates(headers, calendar), returns)
        assert len(panel) == 6

        membership = pd.DataFrame({
            "permno": [10001, 10001, 10001, 10002],
            "begdt": pd.to_datetime(["2000-01-01", "2000-02-01", "2000-03-01", "2000-01-01"]),
            "enddt": pd.to_datetime(["2000-01-31", "2000-02-28", "2000-03-31", "2000-12-31"]),
        })
        with pytest.raises(JoinCardinalityError, match="Membership join"):
            builder.restrict_to_index(panel, membership)


class TestBuild:
    """End-to-end tests of PanelBuilder.build()."""

    def test_final_columns(self, loader):
        panel = PanelBuilder(loader=loader).build()

        expected = {"permno", "hcomnam", "date", "ret", "retx", "ret_status",
                    "month", "year", "ffclass", "mktpre", "smb", "hml", "rf"}
        assert set(panel.columns) == expected

    def test_membership_scenario_month_granularity(self, loader):
        """Interval [2000-02-01, 2000-02-28] keeps the 2000-02-29 index date."""
        panel = PanelBuilder(loader=loader).build()
        alpha = _rows(panel, 10001)

        assert len(alpha) == 1
        assert alpha["date"].iloc[0] == pd.Timestamp("2000-02-29")
        assert alpha["ret"].iloc[0] == pytest.approx(0.02)
        assert alpha["mktpre"].iloc[0] == pytest.approx(0.0245)

    def test_membership_scenario_day_granularity(self, loader):
        """Comparing exact days, 2000-02-29 falls after the interval end."""
        panel = PanelBuilder(loader=loader, membership_granularity="day").build()

        assert _rows(panel, 10001).empty
        assert len(_rows(panel, 10002)) == 3

    def test_industry_in_range(self, loader):
        panel = PanelBuilder(loader=loader).build()
        assert _rows(panel, 10001)["ffclass"].unique().tolist() == [2]

    def test_industry_sentinel(self, loader):
        panel = PanelBuilder(loader=loader).build()
        assert _rows(panel, 10002)["ffclass"].unique().tolist() == [SENTINEL_CLASS]

    def test_all_classes_known(self, loader):
        panel = PanelBuilder(loader=loader).build()
        assert panel["ffclass"].notna().all()
        assert panel["ffclass"].isin(list(INDUSTRY_LABELS)).all()

    def test_zero_fill_keeps_status(self, loader):
        panel = PanelBuilder(loader=loader, missing_returns="zero").build()
        beta = _rows(panel, 10002)

        assert beta["ret"].tolist() == [0.05, 0.0, 0.0]
        assert beta["ret_status"].tolist() == [RET_VALID, RET_MISSING, RET_INVALID]
        assert panel[["ret", "retx"]].notna().all().all()
        assert (panel[["ret", "retx"]] >= -0.99).all().all()

    def test_drop_policy(self, loader):
        panel = PanelBuilder(loader=loader, missing_returns="drop").build()

        assert len(panel) == 2
        assert (panel["ret_status"] == RET_VALID).all()

    def test_analysis_window(self, loader):
        panel = PanelBuilder(loader=loader, analysis_end="2000-02-29").build()
        assert panel["date"].max() == pd.Timestamp("2000-02-29")
        assert len(panel) == 3

    def test_year_month_keys(self, loader):
        panel = PanelBuilder(loader=loader).build()

        assert panel["year"].dtype == np.int64
        assert (panel["month"] == panel["date"].dt.month).all()

    def test_missing_factor_month(self, loader):
        loader.factors = loader.factors[loader.factors["month"] < 3]
        builder = PanelBuilder(loader=loader)
        panel = builder.build()

        march = panel[panel["month"] == 3]
        assert march["mktpre"].isna().all()
        assert builder.stats["rows_without_factors"] == len(march)

    def test_sorted_output(self, loader):
        panel = PanelBuilder(loader=loader).build()
        keys = list(zip(panel["permno"], panel["date"]))
        assert keys == sorted(keys)

    def test_deterministic(self, loader):
        first = PanelBuilder(loader=loader).build()
        second = PanelBuilder(loader=loader).build()

        pd.testing.assert_frame_equal(first, second)
        assert first["ret"].sum() == second["ret"].sum()

    def test_invalid_policy_rejected(self, loader):
        with pytest.raises(ValueError):
            PanelBuilder(loader=loader, missing_returns="interpolate")


class TestDuplicates:
    """Overlapping membership intervals produce repeated firm-months."""

    @pytest.fixture
    def overlapping_loader(self, loader):
        extra = pd.DataFrame({
            "permno": [10002],
            "begdt": pd.to_datetime(["2000-03-01"]),
            "enddt": pd.to_datetime(["2000-03-31"]),
        })
        loader.membership = pd.concat([loader.membership, extra], ignore_index=True)
        return loader

    def test_warn_keeps_rows(self, overlapping_loader):
        builder = PanelBuilder(loader=overlapping_loader, duplicate_policy="warn")
        panel = builder.build()

        assert len(_rows(panel, 10002)) == 4
        assert builder.stats["index_panel_duplicates"] == 1

    def test_drop_removes_rows(self, overlapping_loader):
        panel = PanelBuilder(loader=overlapping_loader, duplicate_policy="drop").build()

        assert len(_rows(panel, 10002)) == 3
        assert not panel.duplicated(subset=["permno", "date"]).any()

    def test_raise(self, overlapping_loader):
        with pytest.raises(ValueError, match="duplicate"):
            PanelBuilder(loader=overlapping_loader, duplicate_policy="raise").build()


class TestClassifyIndustries:
    """Tests for the SIC range join."""

    @pytest.fixture
    def panel(self):
        return pd.DataFrame({
            "permno": [1, 2, 3, 4],
            "date": pd.to_datetime(["2000-01-31"] * 4),
            "hsiccd": [1500.0, 9999.0, np.nan, 3575.0],
        })

    def test_matches_and_sentinel(self, loader, panel, classes):
        out = PanelBuilder(loader=loader).classify_industries(panel, classes)
        out = out.set_index("permno")

        assert out.loc[1, "ffclass"] == 2
        assert (out.loc[1, "sic_start"], out.loc[1, "sic_end"]) == (1500, 1599)
        assert out.loc[4, "ffclass"] == 3
        for permno in (2, 3):
            assert out.loc[permno, "ffclass"] == SENTINEL_CLASS
            assert out.loc[permno, "sic_start"] == SENTINEL_SIC_BOUND
            assert out.loc[permno, "sic_end"] == SENTINEL_SIC_BOUND

    def test_range_bounds_inclusive(self, loader, classes):
        panel = pd.DataFrame({
            "permno": [1, 2],
            "date": pd.to_datetime(["2000-01-31"] * 2),
            "hsiccd": [1599.0, 1600.0],
        })
        out = PanelBuilder(loader=loader).classify_industries(panel, classes)
        assert out["ffclass"].tolist() == [2, SENTINEL_CLASS]

    def test_overlapping_ranges_duplicate(self, loader, panel, classes):
        classes = pd.concat(
            [classes, pd.DataFrame({"ffclass": [5], "sic_start": [1500], "sic_end": [1500]})],
            ignore_index=True,
        )
        builder = PanelBuilder(loader=loader)
        out = builder.classify_industries(panel, classes)

        assert sorted(out.loc[out["permno"] == 1, "ffclass"]) == [2, 5]
        assert builder.stats["classified_panel_duplicates"] == 1

    def test_range_join_guard(self, loader, panel, classes):
        classes = pd.concat(
            [classes, pd.DataFrame({"ffclass": [5], "sic_start": [1500], "sic_end": [1500]})],
            ignore_index=True,
        )
        builder = PanelBuilder(loader=loader, max_panel_rows=len(panel))

        with pytest.raises(JoinCardinalityError, match="Industry range join"):
            builder.classify_industries(panel, classes)


class TestSave:
    """Tests for saving and reloading panels."""

    def test_csv_round_trip(self, loader, tmp_path):
        builder = PanelBuilder(loader=loader)
        panel = builder.build()
        path = tmp_path / "panel.csv"

        builder.save(panel, path)
        reloaded = load_panel(path)

        assert len(reloaded) == len(panel)
        assert pd.api.types.is_datetime64_any_dtype(reloaded["date"])

    def test_parquet(self, loader, tmp_path):
        pytest.importorskip("pyarrow")
        builder = PanelBuilder(loader=loader)
        panel = builder.build()
        path = tmp_path / "panel.parquet"

        builder.save(panel, path, format="parquet")
        assert load_panel(path)["ffclass"].tolist() == panel["ffclass"].tolist()

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_panel(tmp_path / "nope.csv")
