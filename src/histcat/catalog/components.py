"""The model components that can be cataloged, and how to find their files."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

from histcat.errors import ArgumentError, UnknownComponentError


class DateSource(Enum):
    """Where the date of each frame lives inside a history file of a component."""

    DATE_VARIABLE = ("date", "date")
    """
    An integer ``date`` variable, encoded as yyyymmdd (atmosphere).
    """
    MCDATE_VARIABLE = ("mcdate", "mcdate")
    """
    An integer ``mcdate`` variable, encoded as yyyymmdd (land, river).
    """
    TIME_VARIABLE = ("time", "time")
    """
    A continuous ``time`` variable in days since a start year (ocean, sea ice).
    """

    def __init__(self, type_name: str, variable: str) -> None:
        """
        Initialize the DateSource with a name and the variable holding the date.

        :param type_name: The name of the date source.
        :param variable: The variable to read from the file.
        """
        self.type_name = type_name
        self.variable = variable


class ComponentType(Enum):
    """The component types of a coupled model run."""

    ATM = ("atm", r"h\d{1,2}", DateSource.DATE_VARIABLE)
    LND = ("lnd", r"h\d{1,2}", DateSource.MCDATE_VARIABLE)
    ICE = ("ice", r"h\d{0,2}", DateSource.TIME_VARIABLE)
    OCN = ("ocn", r"h[a-z]{1,4}", DateSource.TIME_VARIABLE)
    ROF = ("rof", r"h\d{1,2}", DateSource.MCDATE_VARIABLE)
    REST = ("rest", r".*", None)
    """
    Restart sets, copied as they are.
    """

    def __init__(
        self,
        type_name: str,
        stream_pattern: str,
        date_source: DateSource | None,
    ) -> None:
        """
        Initialize the ComponentType.

        :param type_name: The directory name of the component in a case archive.
        :param stream_pattern: The regular expression matching the history stream field.
        :param date_source: Where the frame dates are stored, None for restart sets.
        """
        self.type_name = type_name
        self.stream_pattern = stream_pattern
        self.date_source = date_source

    @property
    def is_restart(self) -> bool:
        """Whether this component holds restart sets rather than history streams."""
        return self is ComponentType.REST

    @staticmethod
    def from_name(name: str) -> ComponentType:
        """
        Look up a component type by its directory name.

        :param name: The name, e.g. ``ice``.
        :return: The component type.
        :raises UnknownComponentError: If no component has that name.
        """
        for component in ComponentType:
            if component.type_name == name:
                return component
        valid = ", ".join(component.type_name for component in ComponentType)
        msg = f"Unknown component type '{name}'. Valid values: {valid}"
        raise UnknownComponentError(msg)


@dataclass(frozen=True)
class ComponentSpec:
    """A component selected for processing, together with the name of its model."""

    component: ComponentType
    model: str

    @staticmethod
    def parse(value: str) -> ComponentSpec:
        """
        Parse a ``component:model`` pair, e.g. ``ice:cice`` or ``atm:cam``.

        The model may be omitted for restart sets.

        :param value: The pair to parse.
        :return: The parsed component spec.
        :raises ArgumentError: If the pair is malformed or names an unknown component.
        """
        name, _, model = value.partition(":")
        try:
            component = ComponentType.from_name(name.strip())
        except UnknownComponentError as exc:
            raise ArgumentError(str(exc)) from exc

        model = model.strip()
        if not model:
            if not component.is_restart:
                msg = f"Component '{value}' needs a model name, e.g. '{name}:<model>'"
                raise ArgumentError(msg)
            model = component.type_name

        return ComponentSpec(component=component, model=model)

    def history_file_regex(self, case_name: str) -> re.Pattern[str]:
        """
        Build the pattern matching history filenames of this component.

        Names look like ``<case>.<model>[_NNNN].<stream>.<date>.<ext>``, where the
        optional ``_NNNN`` is the instance number of multi-instance runs.

        :param case_name: The name of the case the files belong to.
        :return: A compiled pattern with ``model``, ``stream``, ``date`` and ``ext`` groups.
        """
        return re.compile(
            rf"^{re.escape(case_name)}\."
            rf"(?P<model>{re.escape(self.model)}(?:_\d{{4}})?)\."
            rf"(?P<stream>{self.component.stream_pattern})\."
            r"(?P<date>[0-9][0-9-]*)"
            r"\.(?P<ext>[A-Za-z0-9.]+)$",
        )

    def __str__(self) -> str:
        """Return the spec as ``component:model``."""
        return f"{self.component.type_name}:{self.model}"


DEFAULT_COMPONENTS = (ComponentSpec(component=ComponentType.ICE, model="cice"),)
