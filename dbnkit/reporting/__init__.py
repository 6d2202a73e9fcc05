"""Reporting utilities for dbnkit."""

from .console import ConsoleWatcher
from .metrics import CsvSink, JsonlSink
from .summary import write_summary

__all__ = ["ConsoleWatcher", "CsvSink", "JsonlSink", "write_summary"]
