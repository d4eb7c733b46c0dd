"""Decoding of spreadsheet, CSV and clipboard sources into raw rows."""
