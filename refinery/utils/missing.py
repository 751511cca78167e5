from refinery.utils.cells import MissingCell, NumberCell, TextCell


def is_effectively_missing(cell) -> bool:
    """
    Returns True for cells that should be treated as missing:
    - MissingCell / None
    - Empty text
    - DOES NOT treat 0, "0" or whitespace-only text as missing
    """
    if cell is None or isinstance(cell, MissingCell):
        return True
    if isinstance(cell, TextCell):
        return cell.value == ""
    if isinstance(cell, NumberCell):
        return False
    return cell == ""


def present_values(rows, column: str) -> list:
    return [
        row.get(column)
        for row in rows
        if not is_effectively_missing(row.get(column))
    ]
