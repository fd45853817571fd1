"""Spreadsheet decoding and cell coercion."""
