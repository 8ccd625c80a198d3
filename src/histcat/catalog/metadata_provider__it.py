import numpy as np
import pytest
import xarray
from fsspec.implementations.local import LocalFileSystem

from histcat.catalog.classifier import FileClassifier
from histcat.catalog.components import ComponentSpec
from histcat.catalog.history_file import DateKey
from histcat.catalog.metadata_provider import XarrayMetadataProvider
from histcat.errors import MetadataError

pytestmark = pytest.mark.integration

CASE = "N1850"
TIME_ATTRS = {"units": "days since 0001-01-01 00:00:00", "calendar": "noleap"}


def _write_history_file(path, times, attrs=TIME_ATTRS):
    dataset = xarray.Dataset(
        {"aice": (("time", "nj"), np.zeros((len(times), 3)))},
        coords={"time": ("time", np.asarray(times, dtype="float64"), attrs)},
    )
    dataset.to_netcdf(path, engine="netcdf4")
    return str(path)


def test__extract__time_variable__returns_raw_offsets(tmp_path):
    path = _write_history_file(tmp_path / "sample.nc", [1.0, 2.0, 3.5])

    values = XarrayMetadataProvider().extract(path, "time")

    assert values == [1.0, 2.0, 3.5]


def test__attributes__time_variable__returns_units_and_calendar(tmp_path):
    path = _write_history_file(tmp_path / "sample.nc", [1.0])

    attributes = XarrayMetadataProvider().attributes(path, "time")

    assert attributes["units"] == TIME_ATTRS["units"]
    assert attributes["calendar"] == "noleap"


def test__extract__missing_variable__raises_metadata_error(tmp_path):
    path = _write_history_file(tmp_path / "sample.nc", [1.0])

    with pytest.raises(MetadataError, match="mcdate"):
        XarrayMetadataProvider().extract(path, "mcdate")


def test__extract__not_a_netcdf_file__raises_metadata_error(tmp_path):
    path = tmp_path / "broken.nc"
    path.write_text("not netcdf")

    with pytest.raises(MetadataError):
        XarrayMetadataProvider().extract(str(path), "time")


def test__classify__ocean_file_on_disk__resolves_frame_dates(tmp_path):
    path = _write_history_file(tmp_path / f"{CASE}.blom.hd.0005-01-01.nc", [1461.0, 1462.0])
    classifier = FileClassifier(
        filesystem=LocalFileSystem(),
        metadata_provider=XarrayMetadataProvider(),
        case_name=CASE,
    )

    history_file = classifier.classify(path, ComponentSpec.parse("ocn:blom"))

    assert history_file.frame_dates == (DateKey(5, 1, 1), DateKey(5, 1, 2))
