from datetime import date

import pytest

from driver_verification.tools.policy import UnderwritingPolicy, clear_policy_cache

SAMPLE_RECORD_TEXT = """View your driving licence information
Driver's full name: JOHN ALAN SMITH
Driving licence number XXXXXXXX162JD9GA
Licence status: Current full licence
Categories: B, BE, AM
Penalty points (endorsements)
You have 1 endorsement
SP30 Exceeding statutory speed limit on a public road
Offence date: 14 March 2025
Penalty points: 3
Check code: Ab Cd Ef Gh
Date summary generated: 20 July 2025 10:32
"""

SAMPLE_POA_BILL = """British Gas
Gas and electricity bill
Bill date: 15/07/2025
Account number: 12345678
Mr John Smith
12 High Street
Leeds
LS1 4AP
"""

SAMPLE_POA_STATEMENT = """Barclays
Bank statement
Statement date: 02/07/2025
Sort code 20-00-00 Account: 87654321
Mr John Smith
12 High Street
Leeds
LS1 4AP
"""


@pytest.fixture(autouse=True)
def _fresh_policy_cache():
    clear_policy_cache()
    yield
    clear_policy_cache()


@pytest.fixture
def policy() -> UnderwritingPolicy:
    return UnderwritingPolicy()


@pytest.fixture
def today() -> date:
    return date(2025, 8, 1)


@pytest.fixture
def record_text() -> str:
    return SAMPLE_RECORD_TEXT


@pytest.fixture
def poa_texts():
    return SAMPLE_POA_BILL, SAMPLE_POA_STATEMENT
