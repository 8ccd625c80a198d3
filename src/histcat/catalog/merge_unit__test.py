import pytest

from histcat.catalog.components import ComponentType
from histcat.catalog.history_file import DateKey, StreamId
from histcat.catalog.merge_unit import (
    Bucket,
    DateRange,
    MergeMode,
    MergeUnit,
    MergeUnitKey,
)
from histcat.errors import ArgumentError


def test__merge_mode__from_name__known_name__returns_mode():
    assert MergeMode.from_name("mergeall") is MergeMode.MERGE_ALL


def test__merge_mode__from_name__unknown_name__raises_argument_error():
    with pytest.raises(ArgumentError, match="weekly"):
        MergeMode.from_name("weekly")


@pytest.mark.parametrize(
    ("mode", "expected"),
    [
        (MergeMode.YEARLY, True),
        (MergeMode.MONTHLY, True),
        (MergeMode.MERGE_ALL, False),
        (MergeMode.COMPRESS_ONLY, False),
    ],
)
def test__merge_mode__needs_frame_dates(mode, expected):
    assert mode.needs_frame_dates is expected


@pytest.mark.parametrize(
    ("bucket", "label"),
    [
        (Bucket.for_year(5), "0005"),
        (Bucket.for_year(12345), "12345"),
        (Bucket.for_month(12, 7), "0012-07"),
        (Bucket.for_file("0001-01-01-00000"), "0001-01-01-00000"),
    ],
)
def test__bucket__label(bucket, label):
    assert bucket.label == label


def test__bucket__sort_key__orders_chronologically():
    buckets = [Bucket.for_month(2, 1), Bucket.for_month(1, 12), Bucket.for_month(1, 2)]

    assert sorted(buckets, key=lambda bucket: bucket.sort_key) == [
        Bucket.for_month(1, 2),
        Bucket.for_month(1, 12),
        Bucket.for_month(2, 1),
    ]


def test__merge_unit_key__sort_key__orders_by_stream_then_bucket():
    keys = [
        MergeUnitKey(ComponentType.ATM, StreamId("cam", "h1"), Bucket.for_year(1)),
        MergeUnitKey(ComponentType.ATM, StreamId("cam", "h0"), Bucket.for_year(2)),
        MergeUnitKey(ComponentType.ATM, StreamId("cam", "h0"), Bucket.for_year(1)),
    ]

    ordered = sorted(keys, key=lambda key: key.sort_key)

    assert [(str(key.stream_id), key.bucket.year) for key in ordered] == [
        ("cam.h0", 1),
        ("cam.h0", 2),
        ("cam.h1", 1),
    ]


def test__date_range__including__widens_both_ends():
    date_range = DateRange(DateKey(10, 6), DateKey(10, 6))

    widened = date_range.including(DateKey(11, 12)).including(DateKey(10, 1))

    assert widened == DateRange(DateKey(10, 1), DateKey(11, 12))
    assert widened.label == "00100101-00111231"


def test__merge_unit__label__prefers_date_range():
    key = MergeUnitKey(ComponentType.LND, StreamId("clm2", "h0"), Bucket.whole_run())
    unit = MergeUnit(
        key=key,
        members=(),
        output_path="out.nc",
        source_paths=("in.nc",),
        date_range=DateRange(DateKey(1, 1, 1), DateKey(3, 12, 31)),
    )

    assert unit.label == "00010101-00031231"
    assert not unit.passthrough


def test__merge_unit__passthrough_bucket__is_passthrough():
    key = MergeUnitKey(ComponentType.REST, None, Bucket.passthrough("0011-01-01-00000/rpointer.atm"))
    unit = MergeUnit(key=key, members=(), output_path="out", source_paths=("in",))

    assert unit.passthrough
    assert unit.label == "0011-01-01-00000/rpointer.atm"
