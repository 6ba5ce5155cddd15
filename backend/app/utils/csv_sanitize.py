# Leading characters that spreadsheet applications evaluate as a formula
_FORMULA_PREFIXES = ("=", "+", "-", "@", "\t", "\r")


def sanitize_csv_cell(value: str | None) -> str | None:
    """Neutralize user-controlled text before an admin exports it to a spreadsheet.

    Names and emails come straight from registration forms, so a value such as
    ``=HYPERLINK(...)`` is prefixed with a single quote and shown as plain text.
    """
    if not value:
        return value
    if value.startswith(_FORMULA_PREFIXES):
        return f"'{value}"
    return value
