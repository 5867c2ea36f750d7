import pytest

from curatorworks.apps.curation.config import CurationSettings


@pytest.fixture
def settings() -> CurationSettings:
    return CurationSettings(cooldown_seconds=0.0)
