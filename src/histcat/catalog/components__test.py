import pytest

from histcat.catalog.components import DEFAULT_COMPONENTS, ComponentSpec, ComponentType
from histcat.errors import ArgumentError, UnknownComponentError


def test__from_name__known_component__returns_type():
    assert ComponentType.from_name("ocn") is ComponentType.OCN


def test__from_name__unknown_component__raises_unknown_component():
    with pytest.raises(UnknownComponentError, match="glc"):
        ComponentType.from_name("glc")


def test__parse__component_and_model__returns_spec():
    assert ComponentSpec.parse("atm:cam") == ComponentSpec(ComponentType.ATM, "cam")


def test__parse__restart_without_model__uses_component_name():
    assert ComponentSpec.parse("rest") == ComponentSpec(ComponentType.REST, "rest")


def test__parse__history_component_without_model__raises_argument_error():
    with pytest.raises(ArgumentError):
        ComponentSpec.parse("lnd")


def test__parse__unknown_component__raises_argument_error():
    with pytest.raises(ArgumentError, match="glc"):
        ComponentSpec.parse("glc:cism")


def test__default_components__is_sea_ice():
    assert [str(spec) for spec in DEFAULT_COMPONENTS] == ["ice:cice"]


@pytest.mark.parametrize(
    ("spec", "name", "model", "stream", "date"),
    [
        ("atm:cam", "N1850.cam.h0.0001-01.nc", "cam", "h0", "0001-01"),
        ("atm:cam", "N1850.cam_0002.h1.0001-01-01-00000.nc", "cam_0002", "h1", "0001-01-01-00000"),
        ("ice:cice", "N1850.cice.h.0005-01-01.nc", "cice", "h", "0005-01-01"),
        ("ocn:blom", "N1850.blom.hbgcy.0010.nc", "blom", "hbgcy", "0010"),
        ("lnd:clm2", "N1850.clm2.h0.0012-07.nc", "clm2", "h0", "0012-07"),
    ],
)
def test__history_file_regex__history_filenames__extracts_fields(spec, name, model, stream, date):
    match = ComponentSpec.parse(spec).history_file_regex("N1850").match(name)

    assert match is not None
    assert match.group("model") == model
    assert match.group("stream") == stream
    assert match.group("date") == date


@pytest.mark.parametrize(
    "name",
    [
        "OTHER.cam.h0.0001-01.nc",
        "N1850.clm2.h0.0001-01.nc",
        "N1850.cam.i.0001-01-01-00000.nc",
        "N1850.cam.h0.nc",
    ],
)
def test__history_file_regex__other_files__does_not_match(name):
    assert ComponentSpec.parse("atm:cam").history_file_regex("N1850").match(name) is None
