from typing import List

from jsonschema import Draft7Validator


def schema_errors(schema: dict, data) -> List[str]:
    """
    Validate data against a JSON schema and describe every violation.
    Returns an empty list when the document is valid.
    """
    validator = Draft7Validator(schema)
    errors = sorted(validator.iter_errors(data), key=lambda e: list(e.absolute_path))
    described = []
    for error in errors:
        location = "/".join(str(p) for p in error.absolute_path) or "<root>"
        described.append(f"{location}: {error.message}")
    return described
