from .units_validator import validate_unit_dimensions, validate_units

__all__ = ["validate_units", "validate_unit_dimensions"]
