"""Tabular and spreadsheet views of allocation results."""
