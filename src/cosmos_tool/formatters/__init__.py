"""Output formatters for Cosmos Tool."""

from cosmos_tool.formatters.base import Formatter, FormatterRegistry, registry
from cosmos_tool.formatters.csv import CSVFormatter
from cosmos_tool.formatters.json import JSONFormatter
from cosmos_tool.formatters.table import TableFormatter
