"""Pytest fixtures for the CDK stack tests."""

import pytest

from template_helpers import synth_template


@pytest.fixture(scope="module")
def template():
    """Stack synthesized with the default settings."""
    return synth_template()
