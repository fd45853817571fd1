"""Shop-floor spreadsheet import: CSV/XLSX machine-operation exports to KPI tables."""

__version__ = "0.3.0"
