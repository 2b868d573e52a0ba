from goosetap.core.validation.input_validator import InputValidator

__all__ = ["InputValidator"]
