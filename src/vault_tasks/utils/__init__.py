from .dates import format_date, parse_date, parse_iso_date, today

__all__ = ["format_date", "parse_date", "parse_iso_date", "today"]
