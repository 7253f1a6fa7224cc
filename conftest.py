import pytest

from snowdecode.formatting import SessionFormattingContext
from snowdecode.decoder import StructuredValueDecoder


@pytest.fixture(scope="session")
def pacific_context():
    """Session settings used by the server-side structured type tests: Pacific time, default patterns."""
    return SessionFormattingContext(timezone="America/Los_Angeles")


@pytest.fixture(scope="session")
def utc_context():
    return SessionFormattingContext(timezone="UTC")


@pytest.fixture(scope="session")
def decoder(pacific_context):
    return StructuredValueDecoder(pacific_context)


@pytest.fixture(scope="session")
def string_decoder(pacific_context):
    context = pacific_context.with_fetch_as_string("OBJECT", "ARRAY", "MAP")
    return StructuredValueDecoder(context)
