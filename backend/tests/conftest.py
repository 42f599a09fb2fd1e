"""Shared fixtures for the globestamp test suite."""

from __future__ import annotations

import base64

import pytest

from globestamp.db import models as db_models
from globestamp.services import image_validation


@pytest.fixture
def png_bytes() -> bytes:
    """Bytes that start with the PNG signature."""
    return image_validation.PNG_SIGNATURE + b"\x00\x00\x00\rIHDR" + b"\x00" * 32


@pytest.fixture
def png_data_url(png_bytes: bytes) -> str:
    """A small payload that passes the PNG prefix and signature checks."""
    return image_validation.DATA_URL_PREFIX + base64.b64encode(png_bytes).decode()


@pytest.fixture
def bounds() -> db_models.Bounds:
    return db_models.Bounds(
        north=10.0,
        south=-10.0,
        east=15.0,
        west=-5.0,
        center=db_models.GeoPoint(lat=0.0, long=5.0),
    )
