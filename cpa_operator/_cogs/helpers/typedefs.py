"""
Rudimentary type [re-]definitions for Python & mypy.

Some of the StdLib types are generics only in the type-sheds, not at runtime
(e.g. `logging.LoggerAdapter`). This module defines them in a reusable way.
"""
import logging
from typing import TYPE_CHECKING, Any, Union

if TYPE_CHECKING:
    LoggerAdapter = logging.LoggerAdapter[Any]
else:
    LoggerAdapter = logging.LoggerAdapter

# We only promise that it is based on one of the built-in loggable classes.
Logger = Union[logging.Logger, LoggerAdapter]
