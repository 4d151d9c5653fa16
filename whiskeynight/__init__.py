"""Whiskey Night: meeting-time suggestions for tasting clubs."""
