# utilities/codes.py
from typing import Iterable

from utilities.database import db, Asset, Employee
from utilities.errors import CodeGenerationError

CODE_PREFIXES = {
    "asset": "AST",
    "employee": "EMP",
}
CODE_DIGITS = 5


def _code_column(kind: str):
    if kind == "asset":
        return Asset.asset_code
    if kind == "employee":
        return Employee.employee_code
    raise CodeGenerationError(f"Unknown code kind: {kind}")


def next_code(prefix: str, existing_codes: Iterable[str]) -> str:
    """Return the code one past the highest numeric suffix found for `prefix`.

    Codes that do not follow the PREFIX-NNNNN pattern are ignored, so manually
    entered legacy codes never break the sequence.
    """
    max_number = 0
    marker = f"{prefix}-"
    for code in existing_codes:
        if not code or not code.startswith(marker):
            continue
        try:
            number = int(code[len(marker):])
        except ValueError:
            continue
        if number > max_number:
            max_number = number

    max_number += 1
    if max_number >= 10 ** CODE_DIGITS:
        raise CodeGenerationError(f"Ran out of codes for prefix {prefix}")
    return f"{prefix}-{max_number:0{CODE_DIGITS}d}"


def generate_code(kind: str) -> str:
    """Generate the next unique code for an asset or an employee."""
    if kind not in CODE_PREFIXES:
        raise CodeGenerationError(f"Unknown code kind: {kind}")

    prefix = CODE_PREFIXES[kind]
    column = _code_column(kind)
    rows = db.session.query(column).filter(column.like(f"{prefix}-%")).all()
    code = next_code(prefix, [row[0] for row in rows])

    # The code must be fresh; a clash means someone wrote it outside the sequence
    clash = db.session.query(column).filter(column == code).first()
    if clash is not None:
        raise CodeGenerationError(f"Generated {kind} code {code} is already in use")
    return code
