"""Exports of scan results."""

from .csv_dump import CSV_HEADER, dump_dataset_csv

__all__ = ["CSV_HEADER", "dump_dataset_csv"]
