"""Shared fixtures: a small in-memory universe of two firms over three months."""

import pandas as pd
import pytest

from index_factors import config
from index_factors.data.base_loader import DataLoader


class InMemoryLoader(DataLoader):
    """DataLoader serving fixed DataFrames."""

    def __init__(self, headers, calendar, membership, returns, classes, factors):
        super().__init__()
        self.headers = headers
        self.calendar = calendar
        self.membership = membership
        self.returns = returns
        self.classes = classes
        self.factors = factors

    def load_headers(self):
        return self.headers.copy()

    def load_calendar(self):
        return self.calendar.copy()

    def load_membership(self):
        return self.membership.copy()

    def load_returns(self):
        return self.returns.copy()

    def load_industry_classes(self, scheme=5):
        return self.classes.copy()

    def load_factors(self):
        return self.factors.copy()


@pytest.fixture
def headers():
    # 10001: SIC 1500 (construction, class 2), trades Jan-Mar 2000
    # 10002: SIC 9999 (no range), trades Dec 1999-Jun 2000
    return pd.DataFrame({
        "permno": [10001, 10002],
        "hsiccd": [1500.0, 9999.0],
        "hcomnam": ["ALPHA CORP", "BETA INC"],
        "begret": pd.to_datetime(["2000-01-01", "1999-12-01"]),
        "endret": pd.to_datetime(["2000-03-31", "2000-06-30"]),
    })


@pytest.fixture
def calendar():
    return pd.DataFrame({"date": pd.to_datetime(["2000-01-31", "2000-02-29", "2000-03-31"])})


@pytest.fixture
def membership():
    return pd.DataFrame({
        "permno": [10001, 10002],
        "begdt": pd.to_datetime(["2000-02-01", "2000-01-01"]),
        "enddt": pd.to_datetime(["2000-02-28", "2000-12-31"]),
    })


@pytest.fixture
def returns():
    # 10002 has no February record and an invalid March return
    return pd.DataFrame({
        "permno": [10001, 10001, 10001, 10002, 10002],
        "date": pd.to_datetime([
            "2000-01-31", "2000-02-29", "2000-03-31", "2000-01-31", "2000-03-31",
        ]),
        "ret": [0.01, 0.02, 0.03, 0.05, -0.995],
        "retx": [0.01, 0.015, 0.03, 0.04, -0.995],
    })


@pytest.fixture
def classes():
    return pd.DataFrame({
        "ffclass": [1, 2, 3, 4],
        "sic_start": [100, 1500, 3570, 2830],
        "sic_end": [999, 1599, 3579, 2836],
    })


@pytest.fixture
def factors():
    return pd.DataFrame({
        "year": [2000, 2000, 2000],
        "month": [1, 2, 3],
        "mktpre": [-0.0474, 0.0245, 0.0520],
        "smb": [0.0443, 0.2138, -0.1724],
        "hml": [-0.0188, -0.0970, 0.0816],
        "rf": [0.0041, 0.0043, 0.0047],
    })


@pytest.fixture
def loader(headers, calendar, membership, returns, classes, factors):
    return InMemoryLoader(headers, calendar, membership, returns, classes, factors)


@pytest.fixture
def restore_config():
    """Snapshot the mutable config dicts and restore them after the test."""
    sections = [config.PIPELINE, config.REGRESSION, config.PLOTS,
                config.DATA_FILES, config.REFERENCE_URLS]
    saved = [dict(s) for s in sections]
    yield
    for section, snapshot in zip(sections, saved):
        section.clear()
        section.update(snapshot)


def write_crsp_files(directory, headers=None, calendar=None, membership=None, returns=None):
    """Write CRSP-style CSV extracts (upper-case headers, DDMONYYYY dates)."""
    directory.mkdir(parents=True, exist_ok=True)
    (directory / "msfhdr.csv").write_text(headers or (
        "PERMNO,HSICCD,HCOMNAM,BEGRET,ENDRET,HEXCD\n"
        "10001,1500,ALPHA CORP,01JAN2000,31MAR2000,1\n"
        "10002,9999,BETA INC,01DEC1999,30JUN2000,3\n"
    ))
    (directory / "msp500.csv").write_text(calendar or (
        "CALDT,VWRETD\n"
        "31JAN2000,-0.05\n"
        "29FEB2000,-0.02\n"
        "31MAR2000,0.09\n"
        "31MAR2000,0.09\n"
    ))
    (directory / "msp500list.csv").write_text(membership or (
        "PERMNO,START,ENDING\n"
        "10001,01FEB2000,28FEB2000\n"
        "10002,01JAN2000,31DEC2000\n"
    ))
    (directory / "msf.csv").write_text(returns or (
        "PERMNO,DATE,RET,RETX,PRC\n"
        "10001,31JAN2000,0.01,0.01,10\n"
        "10001,29FEB2000,0.02,0.015,10\n"
        "10001,31MAR2000,0.03,0.03,10\n"
        "10002,31JAN2000,0.05,0.04,20\n"
        "10002,31MAR2000,C,C,20\n"
    ))
    return directory


def write_reference_files(directory):
    """Write ffind.csv and 3factors.csv style reference tables; returns a urls mapping."""
    directory.mkdir(parents=True, exist_ok=True)
    ffind = directory / "ffind.csv"
    ffind.write_text(
        "ind_def,class,sic_start,sic_end\n"
        "5,1,100,999\n"
        "5,2,1500,1599\n"
        "5,3,3570,3579\n"
        "5,4,2830,2836\n"
        "12,1,100,999\n"
    )
    factors = directory / "3factors.csv"
    factors.write_text(
        "date,mktpre,smb,hml,rf\n"
        "200001,-4.74,4.43,-1.88,0.41\n"
        "200002,2.45,21.38,-9.70,0.43\n"
        "200003,5.20,-17.24,8.16,0.47\n"
    )
    return {"industry_classes": str(ffind), "factors": str(factors)}


@pytest.fixture
def crsp_dir(tmp_path):
    return write_crsp_files(tmp_path / "stock_data")


@pytest.fixture
def reference_urls(tmp_path):
    return write_reference_files(tmp_path / "reference")
