"""Reads variables and attributes from NetCDF history files."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

import xarray

from histcat.errors import MetadataError
from histcat.logging import logger


class MetadataProvider(ABC):
    """
    Interface for reading metadata from history files.

    Implementations must raise MetadataError when the file cannot be read or
    when the variable or attribute is missing.
    """

    @abstractmethod
    def extract(self, path: str, variable: str) -> list[Any]:
        """
        Read the values of a variable, in file order.

        :param path: The file to read.
        :param variable: The variable to read, e.g. ``time``.
        :return: The values of the variable, one per frame for time-like variables.
        """

    @abstractmethod
    def attributes(self, path: str, variable: str) -> dict[str, Any]:
        """
        Read the attributes of a variable.

        :param path: The file to read.
        :param variable: The variable whose attributes are read.
        :return: The attributes, e.g. ``{"units": "days since 0001-01-01 00:00:00"}``.
        """


class XarrayMetadataProvider(MetadataProvider):
    """
    Reads metadata with xarray.

    Times are read raw (``decode_times=False``): decoding is left to the date
    resolver, which knows the no-leap calendar used by the model.
    """

    def extract(self, path: str, variable: str) -> list[Any]:
        """
        Read the values of a variable, in file order.

        :param path: The file to read.
        :param variable: The variable to read, e.g. ``time``.
        :return: The values of the variable, flattened.
        :raises MetadataError: If the file or the variable cannot be read.
        """
        logger.debug(f"Reading variable '{variable}' from {path}")
        try:
            with xarray.open_dataset(path, decode_times=False) as dataset:
                return dataset[variable].values.ravel().tolist()
        except KeyError as exc:
            msg = f"Variable '{variable}' is missing from {path}"
            raise MetadataError(msg) from exc
        except (OSError, ValueError) as exc:
            msg = f"Error extracting '{variable}' from {path}: {exc}"
            raise MetadataError(msg) from exc

    def attributes(self, path: str, variable: str) -> dict[str, Any]:
        """
        Read the attributes of a variable.

        :param path: The file to read.
        :param variable: The variable whose attributes are read.
        :return: The attributes of the variable.
        :raises MetadataError: If the file or the variable cannot be read.
        """
        logger.debug(f"Reading attributes of '{variable}' from {path}")
        try:
            with xarray.open_dataset(path, decode_times=False) as dataset:
                return dict(dataset[variable].attrs)
        except KeyError as exc:
            msg = f"Variable '{variable}' is missing from {path}"
            raise MetadataError(msg) from exc
        except (OSError, ValueError) as exc:
            msg = f"Error extracting metadata of '{variable}' from {path}: {exc}"
            raise MetadataError(msg) from exc
