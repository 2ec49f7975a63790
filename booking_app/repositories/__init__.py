"""
Explicit query functions over the booking tables.

Every date-window query takes (start_date, end_date) in that order and
matches rows sharing at least one day with the inclusive window.
"""
